"""Optional REST-backed remote store for catalog and project records.

The remote speaks a PostgREST-style contract (``/rest/v1/<table>`` with
``?col=eq.value`` filters). Without a URL and key the client stays
disconnected and every request raises :class:`RemoteStoreError`.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional
from urllib.error import HTTPError
from urllib.parse import quote
from urllib.request import Request, urlopen

from .models import IndirectCosts, Item, Project, ProjectItem, utc_now_iso
from .retry import CircuitBreaker, RetryPolicy, execute_with_retry

LOGGER = logging.getLogger(__name__)


class RemoteStoreError(RuntimeError):
    """Raised when the remote store is unconfigured or rejects a request."""


class RemoteStore:
    def __init__(self, url: str, anon_key: str, retry: Optional[RetryPolicy] = None) -> None:
        self.base_url = f"{url.rstrip('/')}/rest/v1" if url else ""
        self.anon_key = anon_key
        self.retry = retry or RetryPolicy()
        self._breaker = CircuitBreaker(self.retry.circuit_breaker_failures)

    def is_connected(self) -> bool:
        return bool(self.base_url and self.anon_key)

    def _headers(self, extra: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.anon_key}",
            "Prefer": "return=representation",
        }
        headers.update(extra or {})
        return headers

    def request(
        self,
        endpoint: str,
        *,
        method: str = "GET",
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        if not self.is_connected():
            raise RemoteStoreError("Remote store not configured")
        data = json.dumps(body).encode("utf-8") if body is not None else None
        request = Request(
            f"{self.base_url}{endpoint}",
            data=data,
            headers=self._headers(headers),
            method=method,
        )
        return execute_with_retry(
            lambda timeout: _read_json(request, timeout),
            policy=self.retry,
            description=f"remote {method} {endpoint}",
            logger=LOGGER,
            breaker=self._breaker,
        )

    # Catalog items
    def get_items(self) -> List[Item]:
        rows = self.request("/items?order=category.asc,item_no.asc") or []
        return [Item.from_dict(row) for row in rows]

    def create_item(self, fields: Mapping[str, Any]) -> Item:
        payload = {k: v for k, v in fields.items() if k not in ("id", "date_added")}
        return Item.from_dict(_first(self.request("/items", method="POST", body=payload)))

    def update_item(self, item_id: int, updates: Mapping[str, Any]) -> Item:
        rows = self.request(f"/items?id=eq.{item_id}", method="PATCH", body=dict(updates))
        return Item.from_dict(_first(rows))

    def delete_item(self, item_id: int) -> None:
        self.request(f"/items?id=eq.{item_id}", method="DELETE")

    # Projects
    def get_projects(self) -> List[Project]:
        rows = self.request("/projects?order=updated_at.desc") or []
        return [Project.from_dict(row) for row in rows]

    def create_project(self, fields: Mapping[str, Any]) -> Project:
        payload = {k: v for k, v in fields.items() if k not in ("id", "created_at", "updated_at")}
        return Project.from_dict(_first(self.request("/projects", method="POST", body=payload)))

    def update_project(self, project_id: str, updates: Mapping[str, Any]) -> Project:
        payload = dict(updates)
        payload["updated_at"] = utc_now_iso()
        rows = self.request(f"/projects?id=eq.{quote(project_id)}", method="PATCH", body=payload)
        return Project.from_dict(_first(rows))

    def delete_project(self, project_id: str) -> None:
        self.request(f"/projects?id=eq.{quote(project_id)}", method="DELETE")

    # Project items
    def get_project_items(self, project_id: str) -> List[ProjectItem]:
        select = "id,project_id,item_id,quantity,unit_cost,total_cost,items(item_no,description,category,unit,cost_type)"
        rows = self.request(f"/project_items?project_id=eq.{quote(project_id)}&select={select}") or []
        flattened = []
        for row in rows:
            joined = row.get("items") or {}
            merged = {k: v for k, v in row.items() if k != "items"}
            for name in ("item_no", "description", "category", "unit", "cost_type"):
                merged[name] = joined.get(name, merged.get(name))
            flattened.append(ProjectItem.from_dict(merged))
        return flattened

    def create_project_item(self, fields: Mapping[str, Any]) -> ProjectItem:
        payload = {
            k: v for k, v in fields.items()
            if k in ("project_id", "item_id", "quantity", "unit_cost")
        }
        return ProjectItem.from_dict(_first(self.request("/project_items", method="POST", body=payload)))

    def update_project_item(self, project_item_id: int, updates: Mapping[str, Any]) -> ProjectItem:
        rows = self.request(f"/project_items?id=eq.{project_item_id}", method="PATCH", body=dict(updates))
        return ProjectItem.from_dict(_first(rows))

    def delete_project_item(self, project_item_id: int) -> None:
        self.request(f"/project_items?id=eq.{project_item_id}", method="DELETE")

    # Indirect costs
    def get_indirect_costs(self, project_id: str) -> Optional[IndirectCosts]:
        rows = self.request(f"/indirect_costs?project_id=eq.{quote(project_id)}") or []
        return IndirectCosts.from_dict(rows[0]) if rows else None

    def upsert_indirect_costs(self, fields: Mapping[str, Any]) -> IndirectCosts:
        payload = {k: v for k, v in fields.items() if k != "id"}
        rows = self.request(
            "/indirect_costs",
            method="POST",
            body=payload,
            headers={"Prefer": "resolution=merge-duplicates,return=representation"},
        )
        return IndirectCosts.from_dict(_first(rows))


def _first(rows: Any) -> Mapping[str, Any]:
    if isinstance(rows, list) and rows:
        return rows[0]
    if isinstance(rows, Mapping):
        return rows
    raise RemoteStoreError("Remote store returned no record")


def _read_json(request: Request, timeout: float) -> Any:
    try:
        with urlopen(request, timeout=timeout) as response:
            payload = response.read()
    except HTTPError as exc:
        if exc.code >= 500:
            raise
        raise RemoteStoreError(f"Remote store error: {exc.code} {exc.reason}") from exc
    if not payload:
        return None
    try:
        return json.loads(payload.decode("utf-8"))
    except ValueError as exc:
        raise RemoteStoreError(f"Remote store returned invalid JSON: {exc}") from exc


__all__ = ["RemoteStore", "RemoteStoreError"]
