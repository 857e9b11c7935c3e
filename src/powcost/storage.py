"""Key-value persistence for the catalog, projects, project items, markups and settings.

Each collection is stored as one JSON document under a fixed key and is always
read and written whole: read all, change locally, write all back.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, TypeVar

from .models import (
    AppSettings,
    IndirectCosts,
    Item,
    Project,
    ProjectItem,
    new_project_id,
    utc_now_iso,
)
from .snapshots import StateSnapshot

LOGGER = logging.getLogger(__name__)

KEY_PREFIX = "pow_cost_"
COLLECTIONS = ("items", "projects", "project_items", "indirect_costs", "settings")
KEYS: Dict[str, str] = {name: f"{KEY_PREFIX}{name}" for name in COLLECTIONS}

DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024


class QuotaExceededError(OSError):
    """Raised when a write would push the medium over its capacity."""


class MemoryMedium:
    """In-process key-value medium with a byte capacity."""

    def __init__(self, quota_bytes: int = DEFAULT_QUOTA_BYTES) -> None:
        self.quota_bytes = quota_bytes
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        candidate = dict(self._data)
        candidate[key] = value
        size = _size_of(candidate)
        if self.quota_bytes and size > self.quota_bytes:
            raise QuotaExceededError(
                f"writing {key!r} needs {size} bytes; quota is {self.quota_bytes}"
            )
        self._data = candidate
        self._flush()

    def remove(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._flush()

    def keys(self) -> List[str]:
        return list(self._data)

    @property
    def used_bytes(self) -> int:
        return _size_of(self._data)

    def _flush(self) -> None:
        pass


class JsonFileMedium(MemoryMedium):
    """Key-value medium persisted as a single JSON document on disk."""

    def __init__(self, path: Path, quota_bytes: int = DEFAULT_QUOTA_BYTES) -> None:
        super().__init__(quota_bytes)
        self.path = Path(path)
        if self.path.exists():
            try:
                raw = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                LOGGER.error("Unable to read storage file %s: %s", self.path, exc)
                raw = {}
            if isinstance(raw, dict):
                self._data = {str(k): str(v) for k, v in raw.items()}
            else:
                LOGGER.error("Storage file %s does not hold an object; starting empty", self.path)

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".storage-", suffix=".json", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


def _size_of(data: Mapping[str, str]) -> int:
    return sum(len(k.encode("utf-8")) + len(v.encode("utf-8")) for k, v in data.items())


def _next_id(records) -> int:
    return max((record.id for record in records), default=0) + 1


T = TypeVar("T")


class _Collection(Generic[T]):
    name: str = ""
    decoder: Callable[[Mapping[str, Any]], T]

    def __init__(self, store: "PersistenceStore") -> None:
        self._store = store

    @property
    def key(self) -> str:
        return KEYS[self.name]

    def get_all(self) -> List[T]:
        raw = self._store.read(self.key, [])
        if not isinstance(raw, list):
            LOGGER.error("Stored value for %s is not a list; treating as empty", self.key)
            return []
        records: List[T] = []
        for entry in raw:
            try:
                records.append(type(self).decoder(entry))
            except (KeyError, TypeError, ValueError) as exc:
                LOGGER.error("Skipping malformed record in %s: %s", self.key, exc)
        return records

    def save(self, records: List[T]) -> None:
        self._store.write(self.key, [record.to_dict() for record in records])

    def clear(self) -> None:
        self.save([])

    def _find_index(self, records: List[T], record_id: Any) -> int:
        for index, record in enumerate(records):
            if record.id == record_id:
                return index
        return -1

    def delete(self, record_id: Any) -> bool:
        records = self.get_all()
        remaining = [record for record in records if record.id != record_id]
        if len(remaining) == len(records):
            return False
        self.save(remaining)
        return True


class ItemRepository(_Collection[Item]):
    name = "items"
    decoder = Item.from_dict

    def add(self, fields: Mapping[str, Any]) -> Item:
        items = self.get_all()
        data = {k: v for k, v in fields.items() if k not in ("id", "date_added")}
        data["id"] = _next_id(items)
        data["date_added"] = utc_now_iso()
        item = Item.from_dict(data)
        items.append(item)
        self.save(items)
        return item

    def update(self, item_id: int, updates: Mapping[str, Any]) -> Optional[Item]:
        items = self.get_all()
        index = self._find_index(items, item_id)
        if index == -1:
            return None
        merged = items[index].to_dict()
        merged.update({k: v for k, v in updates.items() if k not in ("id", "date_added")})
        items[index] = Item.from_dict(merged)
        self.save(items)
        return items[index]

    def find_by_item_no(self, item_no: str) -> Optional[Item]:
        return next((item for item in self.get_all() if item.item_no == item_no), None)

    def find_by_id(self, item_id: int) -> Optional[Item]:
        return next((item for item in self.get_all() if item.id == item_id), None)


class ProjectRepository(_Collection[Project]):
    name = "projects"
    decoder = Project.from_dict

    def add(self, fields: Mapping[str, Any]) -> Project:
        projects = self.get_all()
        now = utc_now_iso()
        data = dict(fields)
        data.update({"id": new_project_id(), "created_at": now, "updated_at": now})
        project = Project.from_dict(data)
        projects.append(project)
        self.save(projects)
        return project

    def update(self, project_id: str, updates: Mapping[str, Any]) -> Optional[Project]:
        projects = self.get_all()
        index = self._find_index(projects, project_id)
        if index == -1:
            return None
        merged = projects[index].to_dict()
        merged.update({k: v for k, v in updates.items() if k not in ("id", "created_at")})
        merged["updated_at"] = utc_now_iso()
        projects[index] = Project.from_dict(merged)
        self.save(projects)
        return projects[index]

    def delete(self, project_id: str) -> bool:
        if not super().delete(project_id):
            return False
        self._store.project_items.delete_by_project(project_id)
        self._store.indirect_costs.delete_by_project(project_id)
        return True

    def upsert(self, project: Project) -> Project:
        """Insert or replace a project as-is, keeping its id and timestamps."""

        projects = self.get_all()
        index = self._find_index(projects, project.id)
        if index >= 0:
            projects[index] = project
        else:
            projects.append(project)
        self.save(projects)
        return project

    def find_by_id(self, project_id: str) -> Optional[Project]:
        return next((project for project in self.get_all() if project.id == project_id), None)


class ProjectItemRepository(_Collection[ProjectItem]):
    name = "project_items"
    decoder = ProjectItem.from_dict

    def get_by_project(self, project_id: str) -> List[ProjectItem]:
        return [pi for pi in self.get_all() if pi.project_id == project_id]

    def add(self, fields: Mapping[str, Any]) -> ProjectItem:
        project_items = self.get_all()
        data = {k: v for k, v in fields.items() if k not in ("id", "total_cost")}
        data["id"] = _next_id(project_items)
        project_item = ProjectItem.from_dict(data)
        project_items.append(project_item)
        self.save(project_items)
        return project_item

    def update(self, project_item_id: int, updates: Mapping[str, Any]) -> Optional[ProjectItem]:
        project_items = self.get_all()
        index = self._find_index(project_items, project_item_id)
        if index == -1:
            return None
        merged = project_items[index].to_dict()
        merged.update({k: v for k, v in updates.items() if k not in ("id", "total_cost")})
        project_items[index] = ProjectItem.from_dict(merged)
        self.save(project_items)
        return project_items[index]

    def delete_by_project(self, project_id: str) -> None:
        self.save([pi for pi in self.get_all() if pi.project_id != project_id])

    def replace_for_project(self, project_id: str, project_items: List[ProjectItem]) -> List[ProjectItem]:
        """Swap in ``project_items`` as the project's items.

        Incoming ids are kept unless another record already holds them, in
        which case the item is renumbered with the next max+1 id.
        """

        kept = [pi for pi in self.get_all() if pi.project_id != project_id]
        taken = {pi.id for pi in kept}
        placed: List[ProjectItem] = []
        for project_item in project_items:
            if project_item.id in taken:
                project_item = replace(project_item, id=max(taken) + 1)
            taken.add(project_item.id)
            placed.append(project_item)
        self.save(kept + placed)
        return placed


class IndirectCostsRepository(_Collection[IndirectCosts]):
    name = "indirect_costs"
    decoder = IndirectCosts.from_dict

    def get_by_project(self, project_id: str) -> Optional[IndirectCosts]:
        return next((ic for ic in self.get_all() if ic.project_id == project_id), None)

    def upsert(self, fields: Mapping[str, Any]) -> IndirectCosts:
        """Update the record for ``fields['project_id']`` in place, or insert one."""

        records = self.get_all()
        project_id = str(fields["project_id"])
        data = {k: v for k, v in fields.items() if k != "id"}
        for index, existing in enumerate(records):
            if existing.project_id == project_id:
                merged = existing.to_dict()
                merged.update(data)
                records[index] = IndirectCosts.from_dict(merged)
                self.save(records)
                return records[index]
        data["id"] = _next_id(records)
        record = IndirectCosts.from_dict(data)
        records.append(record)
        self.save(records)
        return record

    def delete_by_project(self, project_id: str) -> None:
        self.save([ic for ic in self.get_all() if ic.project_id != project_id])


class SettingsRepository:
    def __init__(self, store: "PersistenceStore") -> None:
        self._store = store

    @property
    def key(self) -> str:
        return KEYS["settings"]

    def get(self) -> AppSettings:
        raw = self._store.read(self.key, None)
        if not isinstance(raw, dict):
            return AppSettings()
        return AppSettings.from_dict(raw)

    def save(self, settings: AppSettings) -> None:
        self._store.write(self.key, settings.to_dict())

    def update(self, updates: Mapping[str, Any]) -> AppSettings:
        settings = self.get().merged(updates)
        self.save(settings)
        return settings


class PersistenceStore:
    """Process-wide record collections over a key-value medium.

    Build one per process and hand it to every consumer.
    """

    def __init__(self, medium: Optional[MemoryMedium] = None, *, strict_writes: bool = False) -> None:
        self.medium = medium if medium is not None else MemoryMedium()
        self.strict_writes = strict_writes
        self.items = ItemRepository(self)
        self.projects = ProjectRepository(self)
        self.project_items = ProjectItemRepository(self)
        self.indirect_costs = IndirectCostsRepository(self)
        self.settings = SettingsRepository(self)

    def read(self, key: str, default: Any) -> Any:
        try:
            raw = self.medium.get(key)
        except OSError as exc:
            LOGGER.error("Error reading storage key %s: %s", key, exc)
            return default
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError as exc:
            LOGGER.error("Error decoding storage key %s: %s", key, exc)
            return default

    def write(self, key: str, value: Any) -> None:
        try:
            self.medium.set(key, json.dumps(value, ensure_ascii=False))
        except OSError as exc:
            LOGGER.error("Error saving storage key %s: %s", key, exc)
            if self.strict_writes:
                raise

    def snapshot(self) -> StateSnapshot:
        return StateSnapshot(
            projects=self.projects.get_all(),
            project_items=self.project_items.get_all(),
            items=self.items.get_all(),
            indirect_costs=self.indirect_costs.get_all(),
            settings=self.settings.get(),
            timestamp=utc_now_iso(),
        )

    def load_snapshot(self, snapshot: StateSnapshot) -> None:
        """Overwrite every collection the snapshot carries; absent sections are left alone."""

        if snapshot.projects is not None:
            self.projects.save(snapshot.projects)
        if snapshot.project_items is not None:
            self.project_items.save(snapshot.project_items)
        if snapshot.items is not None:
            self.items.save(snapshot.items)
        if snapshot.indirect_costs is not None:
            self.indirect_costs.save(snapshot.indirect_costs)
        if snapshot.settings is not None:
            self.settings.save(snapshot.settings)
        if snapshot.projects is not None:
            self.prune_orphans()

    def prune_orphans(self) -> None:
        """Drop project items and indirect costs whose project no longer exists."""

        project_ids = {project.id for project in self.projects.get_all()}
        project_items = self.project_items.get_all()
        kept_items = [pi for pi in project_items if pi.project_id in project_ids]
        if len(kept_items) != len(project_items):
            LOGGER.info("Removing %d orphaned project item(s)", len(project_items) - len(kept_items))
            self.project_items.save(kept_items)
        indirect_costs = self.indirect_costs.get_all()
        kept_costs = [ic for ic in indirect_costs if ic.project_id in project_ids]
        if len(kept_costs) != len(indirect_costs):
            LOGGER.info("Removing %d orphaned indirect cost record(s)", len(indirect_costs) - len(kept_costs))
            self.indirect_costs.save(kept_costs)

    def reset(self) -> None:
        self.projects.clear()
        self.project_items.clear()
        self.items.clear()
        self.indirect_costs.clear()
        self.settings.save(AppSettings())


__all__ = [
    "COLLECTIONS",
    "IndirectCostsRepository",
    "ItemRepository",
    "JsonFileMedium",
    "KEYS",
    "MemoryMedium",
    "PersistenceStore",
    "ProjectItemRepository",
    "ProjectRepository",
    "QuotaExceededError",
    "SettingsRepository",
]
