"""JSON snapshot encoding for single projects, project bundles and full state."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .models import AppSettings, IndirectCosts, Item, Project, ProjectItem, utc_now_iso

LOGGER = logging.getLogger(__name__)


@dataclass
class ProjectSnapshot:
    project: Project
    project_items: List[ProjectItem] = field(default_factory=list)
    indirect_costs: Optional[IndirectCosts] = None


@dataclass
class StateSnapshot:
    """Whole-application state; ``None`` means the section was absent."""

    projects: Optional[List[Project]] = None
    project_items: Optional[List[ProjectItem]] = None
    items: Optional[List[Item]] = None
    indirect_costs: Optional[List[IndirectCosts]] = None
    settings: Optional[AppSettings] = None
    timestamp: Optional[str] = None


def project_to_dict(snapshot: ProjectSnapshot) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "project": snapshot.project.to_dict(),
        "projectItems": [item.to_dict() for item in snapshot.project_items],
    }
    if snapshot.indirect_costs is not None:
        data["indirectCosts"] = snapshot.indirect_costs.to_dict()
    return data


def project_from_dict(data: Mapping[str, Any]) -> ProjectSnapshot:
    """Decode a single-project payload; raises ``ValueError`` on a bad shape."""

    if not isinstance(data, Mapping) or not isinstance(data.get("project"), Mapping):
        raise ValueError("project snapshot is missing the 'project' object")
    raw_items = data.get("projectItems") or []
    if not isinstance(raw_items, list):
        raise ValueError("'projectItems' must be a list")
    try:
        project = Project.from_dict(data["project"])
        items = [ProjectItem.from_dict(entry) for entry in raw_items]
        raw_indirect = data.get("indirectCosts")
        indirect = IndirectCosts.from_dict(raw_indirect) if isinstance(raw_indirect, Mapping) else None
    except (KeyError, TypeError) as exc:
        raise ValueError(f"invalid project snapshot: {exc}") from exc
    return ProjectSnapshot(project=project, project_items=items, indirect_costs=indirect)


def state_to_dict(snapshot: StateSnapshot) -> Dict[str, Any]:
    return {
        "projects": [p.to_dict() for p in snapshot.projects or []],
        "projectItems": [pi.to_dict() for pi in snapshot.project_items or []],
        "items": [item.to_dict() for item in snapshot.items or []],
        "indirectCosts": [ic.to_dict() for ic in snapshot.indirect_costs or []],
        "settings": (snapshot.settings or AppSettings()).to_dict(),
        "timestamp": snapshot.timestamp or utc_now_iso(),
    }


def _decode_list(data: Mapping[str, Any], key: str, decoder) -> Optional[list]:
    raw = data.get(key)
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise ValueError(f"'{key}' must be a list")
    try:
        return [decoder(entry) for entry in raw]
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError(f"invalid entry in '{key}': {exc}") from exc


def state_from_dict(data: Mapping[str, Any]) -> StateSnapshot:
    if not isinstance(data, Mapping):
        raise ValueError("state snapshot must be a JSON object")
    settings_raw = data.get("settings")
    return StateSnapshot(
        projects=_decode_list(data, "projects", Project.from_dict),
        project_items=_decode_list(data, "projectItems", ProjectItem.from_dict),
        items=_decode_list(data, "items", Item.from_dict),
        indirect_costs=_decode_list(data, "indirectCosts", IndirectCosts.from_dict),
        settings=AppSettings.from_dict(settings_raw) if isinstance(settings_raw, Mapping) else None,
        timestamp=data.get("timestamp"),
    )


def dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False)


def loads_project(text: str) -> Optional[ProjectSnapshot]:
    """Parse a project export; malformed input is logged and yields ``None``."""

    try:
        return project_from_dict(json.loads(text))
    except ValueError as exc:
        LOGGER.error("Error parsing project snapshot: %s", exc)
        return None


def loads_state(text: str) -> Optional[StateSnapshot]:
    try:
        return state_from_dict(json.loads(text))
    except ValueError as exc:
        LOGGER.error("Error parsing state snapshot: %s", exc)
        return None


def projects_bundle_to_dict(projects: List[Project], project_items: List[ProjectItem]) -> Dict[str, Any]:
    return {
        "projects": [p.to_dict() for p in projects],
        "projectItems": [pi.to_dict() for pi in project_items],
    }


def loads_projects_bundle(text: str) -> Optional[StateSnapshot]:
    """Parse a ``projects.json`` bundle into a partial state snapshot."""

    try:
        data = json.loads(text)
        if not isinstance(data, Mapping):
            raise ValueError("projects bundle must be a JSON object")
        return StateSnapshot(
            projects=_decode_list(data, "projects", Project.from_dict),
            project_items=_decode_list(data, "projectItems", ProjectItem.from_dict),
        )
    except ValueError as exc:
        LOGGER.error("Error parsing projects bundle: %s", exc)
        return None


__all__ = [
    "ProjectSnapshot",
    "StateSnapshot",
    "dumps",
    "loads_project",
    "loads_projects_bundle",
    "loads_state",
    "project_from_dict",
    "project_to_dict",
    "projects_bundle_to_dict",
    "state_from_dict",
    "state_to_dict",
]
