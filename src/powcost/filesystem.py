"""Storage backends: a directory-tree mirror and the key-value fallback.

Both implement :class:`StorageBackend`, so callers never need to know which
one was selected at startup. The directory tree looks like::

    <root>/Projects/project_<id>.json
    <root>/Database/cost_items.json
    <root>/Backups/<YYYY-MM-DD>/backup_<epoch-ms>.json
"""
from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .models import IndirectCosts, Item, Project, ProjectItem, utc_now_iso
from .snapshots import (
    ProjectSnapshot,
    StateSnapshot,
    dumps,
    loads_project,
    loads_state,
    project_from_dict,
    project_to_dict,
    state_to_dict,
)
from .storage import PersistenceStore

LOGGER = logging.getLogger(__name__)

PROJECTS_DIR = "Projects"
DATABASE_DIR = "Database"
BACKUPS_DIR = "Backups"
DATABASE_FILE = "cost_items.json"

DirectoryPicker = Callable[[], Optional[Path]]

_DATE_LABEL = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class FileSystemNotInitialized(RuntimeError):
    """Raised when a directory-tree operation runs before ``initialize()``."""


@dataclass
class LoadedProjects:
    projects: List[Project] = field(default_factory=list)
    project_items: List[ProjectItem] = field(default_factory=list)
    indirect_costs: List[IndirectCosts] = field(default_factory=list)


def project_export_filename(project: Project) -> str:
    stem = re.sub(r"\s+", "_", project.title) or "project"
    return f"{stem}.json"


def _write_text(path: Path, text: str) -> None:
    """Write ``text`` to ``path`` via a temporary file and rename."""

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.stem}-", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_name, path)
    except OSError:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


class StorageBackend(ABC):
    """Save/load contract shared by every persistence backend."""

    is_file_backed = False

    def __init__(self, store: PersistenceStore, export_dir: Optional[Path] = None) -> None:
        self.store = store
        self.export_dir = Path(export_dir) if export_dir else Path.cwd()

    @abstractmethod
    def initialize(self) -> bool: ...

    @abstractmethod
    def save_project(
        self,
        project: Project,
        project_items: List[ProjectItem],
        indirect_costs: Optional[IndirectCosts] = None,
    ) -> None: ...

    @abstractmethod
    def load_all_projects(self) -> LoadedProjects: ...

    @abstractmethod
    def save_database(self, items: List[Item]) -> None: ...

    @abstractmethod
    def load_database(self) -> List[Item]: ...

    @abstractmethod
    def create_backup(self, now: Optional[datetime] = None) -> Path: ...

    @abstractmethod
    def get_backup_list(self) -> List[str]: ...

    @abstractmethod
    def restore_backup(self, backup_label: str) -> bool: ...

    def export_project(
        self,
        project: Project,
        project_items: List[ProjectItem],
        indirect_costs: Optional[IndirectCosts] = None,
        target_dir: Optional[Path] = None,
    ) -> Path:
        """Write a standalone ``{project, projectItems, indirectCosts}`` file."""

        snapshot = ProjectSnapshot(project=project, project_items=list(project_items), indirect_costs=indirect_costs)
        path = Path(target_dir or self.export_dir) / project_export_filename(project)
        _write_text(path, dumps(project_to_dict(snapshot)))
        LOGGER.info("Exported project %s to %s", project.id, path)
        return path

    def import_project(self, path: Path) -> Optional[ProjectSnapshot]:
        """Read a project export; unreadable or malformed files yield ``None``."""

        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            LOGGER.error("Error reading import file %s: %s", path, exc)
            return None
        return loads_project(text)


class FileSystemMirror(StorageBackend):
    """Backend rooted at a user-chosen directory."""

    is_file_backed = True

    def __init__(
        self,
        store: PersistenceStore,
        root: Optional[Path] = None,
        *,
        export_dir: Optional[Path] = None,
        directory_picker: Optional[DirectoryPicker] = None,
    ) -> None:
        super().__init__(store, export_dir)
        self._requested_root = Path(root) if root else None
        self._directory_picker = directory_picker
        self.root: Optional[Path] = None

    @property
    def is_initialized(self) -> bool:
        return self.root is not None

    @property
    def projects_dir(self) -> Path:
        return self._require() / PROJECTS_DIR

    @property
    def database_dir(self) -> Path:
        return self._require() / DATABASE_DIR

    @property
    def backups_dir(self) -> Path:
        return self._require() / BACKUPS_DIR

    def _require(self) -> Path:
        if self.root is None:
            raise FileSystemNotInitialized("File system not initialized")
        return self.root

    def initialize(self) -> bool:
        """Acquire the root directory and lay out its subdirectories.

        Returns False, without raising, when no directory is configured, the
        picker declines, or the directory cannot be written.
        """

        try:
            root = self._requested_root
            if root is None and self._directory_picker is not None:
                picked = self._directory_picker()
                root = Path(picked) if picked else None
        except OSError as exc:
            LOGGER.warning("File system access denied: %s", exc)
            return False
        if root is None:
            LOGGER.warning("No data directory selected; using key-value storage")
            return False

        try:
            root = root.expanduser().resolve()
            for name in (PROJECTS_DIR, DATABASE_DIR, BACKUPS_DIR):
                (root / name).mkdir(parents=True, exist_ok=True)
            if not os.access(root, os.W_OK):
                raise PermissionError(f"{root} is not writable")
        except OSError as exc:
            LOGGER.warning("File system access unavailable at %s: %s", root, exc)
            return False

        self.root = root
        LOGGER.info("File system storage initialized at %s", root)
        return True

    def project_path(self, project_id: str) -> Path:
        return self.projects_dir / f"project_{project_id}.json"

    def save_project(
        self,
        project: Project,
        project_items: List[ProjectItem],
        indirect_costs: Optional[IndirectCosts] = None,
    ) -> None:
        payload = project_to_dict(
            ProjectSnapshot(project=project, project_items=list(project_items), indirect_costs=indirect_costs)
        )
        payload["lastModified"] = utc_now_iso()
        path = self.project_path(project.id)
        try:
            _write_text(path, dumps(payload))
        except OSError as exc:
            LOGGER.error("Error saving project to file %s: %s", path, exc)
            raise
        LOGGER.debug("Saved project %s to %s", project.id, path)

    def delete_project(self, project_id: str) -> bool:
        path = self.project_path(project_id)
        if not path.exists():
            return False
        path.unlink()
        return True

    def load_all_projects(self) -> LoadedProjects:
        loaded = LoadedProjects()
        for path in sorted(self.projects_dir.glob("*.json")):
            if not path.is_file():
                continue
            try:
                snapshot = project_from_dict(json.loads(path.read_text(encoding="utf-8")))
            except (OSError, ValueError) as exc:
                LOGGER.error("Error loading project file %s: %s", path.name, exc)
                continue
            loaded.projects.append(snapshot.project)
            loaded.project_items.extend(snapshot.project_items)
            if snapshot.indirect_costs is not None:
                loaded.indirect_costs.append(snapshot.indirect_costs)
        return loaded

    def save_database(self, items: List[Item]) -> None:
        path = self.database_dir / DATABASE_FILE
        try:
            _write_text(path, dumps([item.to_dict() for item in items]))
        except OSError as exc:
            LOGGER.error("Error saving database to file %s: %s", path, exc)
            raise

    def load_database(self) -> List[Item]:
        path = self.database_dir / DATABASE_FILE
        if not path.exists():
            return []
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(raw, list):
                raise ValueError("catalog file does not hold a list")
            return [Item.from_dict(entry) for entry in raw]
        except (OSError, KeyError, TypeError, ValueError) as exc:
            LOGGER.error("Error loading database from file %s: %s", path, exc)
            return []

    def create_backup(self, now: Optional[datetime] = None) -> Path:
        """Snapshot projects, catalog and settings into today's backup folder."""

        moment = now or datetime.now(timezone.utc)
        backup_dir = self.backups_dir / moment.date().isoformat()
        backup_dir.mkdir(parents=True, exist_ok=True)

        loaded = self.load_all_projects()
        snapshot = StateSnapshot(
            projects=loaded.projects,
            project_items=loaded.project_items,
            items=self.load_database(),
            indirect_costs=loaded.indirect_costs,
            settings=self.store.settings.get(),
            timestamp=utc_now_iso(),
        )

        stamp = int(moment.timestamp() * 1000)
        path = backup_dir / f"backup_{stamp}.json"
        while path.exists():
            stamp += 1
            path = backup_dir / f"backup_{stamp}.json"
        try:
            _write_text(path, dumps(state_to_dict(snapshot)))
        except OSError as exc:
            LOGGER.error("Error creating backup %s: %s", path, exc)
            raise
        LOGGER.info("Created backup %s", path)
        return path

    def get_backup_list(self) -> List[str]:
        if not self.is_initialized:
            return []
        try:
            labels = [entry.name for entry in self.backups_dir.iterdir() if entry.is_dir()]
        except OSError as exc:
            LOGGER.error("Error getting backup list: %s", exc)
            return []
        return sorted(labels, reverse=True)

    def restore_backup(self, backup_label: str) -> bool:
        """Restore the most recently modified backup file under ``backup_label``."""

        if not self.is_initialized:
            return False
        if not _DATE_LABEL.match(backup_label or ""):
            LOGGER.error("Invalid backup label %r", backup_label)
            return False
        backup_dir = self.backups_dir / backup_label
        if not backup_dir.is_dir():
            LOGGER.error("Backup folder %s does not exist", backup_dir)
            return False
        files = [path for path in backup_dir.glob("*.json") if path.is_file()]
        if not files:
            return False

        latest = max(files, key=lambda path: path.stat().st_mtime_ns)
        try:
            snapshot = loads_state(latest.read_text(encoding="utf-8"))
        except OSError as exc:
            LOGGER.error("Error reading backup %s: %s", latest, exc)
            return False
        if snapshot is None:
            return False

        try:
            self._apply_snapshot(snapshot)
        except OSError as exc:
            LOGGER.error("Error restoring backup %s: %s", latest, exc)
            return False
        LOGGER.info("Restored backup %s", latest)
        return True

    def _apply_snapshot(self, snapshot: StateSnapshot) -> None:
        if snapshot.projects is not None:
            for stale in self.projects_dir.glob("project_*.json"):
                stale.unlink()
            items_by_project: Dict[str, List[ProjectItem]] = {}
            for project_item in snapshot.project_items or []:
                items_by_project.setdefault(project_item.project_id, []).append(project_item)
            indirect_by_project = {ic.project_id: ic for ic in snapshot.indirect_costs or []}
            for project in snapshot.projects:
                self.save_project(
                    project,
                    items_by_project.get(project.id, []),
                    indirect_by_project.get(project.id),
                )
        if snapshot.items is not None:
            self.save_database(snapshot.items)
        self.store.load_snapshot(snapshot)


class KeyValueFallback(StorageBackend):
    """Backend used when no directory is available; always initializes."""

    def initialize(self) -> bool:
        return True

    def save_project(
        self,
        project: Project,
        project_items: List[ProjectItem],
        indirect_costs: Optional[IndirectCosts] = None,
    ) -> None:
        self.store.projects.upsert(project)
        self.store.project_items.replace_for_project(project.id, list(project_items))
        if indirect_costs is not None:
            self.store.indirect_costs.upsert(indirect_costs.to_dict())

    def load_all_projects(self) -> LoadedProjects:
        return LoadedProjects(
            projects=self.store.projects.get_all(),
            project_items=self.store.project_items.get_all(),
            indirect_costs=self.store.indirect_costs.get_all(),
        )

    def save_database(self, items: List[Item]) -> None:
        self.store.items.save(list(items))

    def load_database(self) -> List[Item]:
        return self.store.items.get_all()

    def backup_path(self, backup_label: str) -> Path:
        return self.export_dir / f"pow-cost-backup-{backup_label}.json"

    def create_backup(self, now: Optional[datetime] = None) -> Path:
        moment = now or datetime.now(timezone.utc)
        path = self.backup_path(moment.date().isoformat())
        _write_text(path, dumps(state_to_dict(self.store.snapshot())))
        LOGGER.info("Wrote backup file %s", path)
        return path

    def get_backup_list(self) -> List[str]:
        return []

    def restore_backup(self, backup_label: str) -> bool:
        """Restore from a backup file path, or from the export folder by date label."""

        candidate = Path(backup_label)
        path = candidate if candidate.suffix == ".json" else self.backup_path(backup_label)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            LOGGER.error("Error reading backup %s: %s", path, exc)
            return False
        snapshot = loads_state(text)
        if snapshot is None:
            return False
        self.store.load_snapshot(snapshot)
        return True


def create_backend(
    store: PersistenceStore,
    root: Optional[Path] = None,
    *,
    export_dir: Optional[Path] = None,
    directory_picker: Optional[DirectoryPicker] = None,
) -> StorageBackend:
    """Return the file mirror when it initializes, otherwise the key-value fallback."""

    mirror = FileSystemMirror(store, root, export_dir=export_dir, directory_picker=directory_picker)
    if mirror.initialize():
        return mirror
    LOGGER.info("File system storage unavailable; using key-value storage")
    fallback = KeyValueFallback(store, export_dir)
    fallback.initialize()
    return fallback


__all__ = [
    "BACKUPS_DIR",
    "DATABASE_DIR",
    "DATABASE_FILE",
    "FileSystemMirror",
    "FileSystemNotInitialized",
    "KeyValueFallback",
    "LoadedProjects",
    "PROJECTS_DIR",
    "StorageBackend",
    "create_backend",
    "project_export_filename",
]
