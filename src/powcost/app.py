"""Application context: one store, one backend, optional remote, and the workflows over them."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .config import Config
from .csv_io import catalog_csv_filename, decode_catalog_csv, encode_catalog_csv
from .excel_export import WorkbookData, workbook_filename, write_workbook
from .filesystem import DirectoryPicker, FileSystemMirror, StorageBackend, create_backend
from .models import (
    CategorySubtotal,
    CostBreakdown,
    IndirectCosts,
    IndirectRates,
    Item,
    Project,
    ProjectItem,
    parse_number,
)
from .pricing import compute_category_subtotals, compute_cost_breakdown
from .remote import RemoteStore, RemoteStoreError
from .sample_data import initialize_sample_data
from .snapshots import dumps, loads_projects_bundle, projects_bundle_to_dict, state_to_dict
from .storage import JsonFileMedium, MemoryMedium, PersistenceStore

LOGGER = logging.getLogger(__name__)

DATA_EXPORT_FILENAME = "pow-cost-data.json"
PROJECTS_EXPORT_FILENAME = "projects.json"


@dataclass
class CatalogImportResult:
    added: List[Item]
    replaced: bool


class AppContext:
    """Holds the process-wide store and backend; build once with :meth:`create`."""

    def __init__(
        self,
        store: PersistenceStore,
        backend: StorageBackend,
        remote: Optional[RemoteStore] = None,
        export_dir: Optional[Path] = None,
    ) -> None:
        self.store = store
        self.backend = backend
        self.remote = remote
        self.export_dir = Path(export_dir) if export_dir else backend.export_dir

    @classmethod
    def create(
        cls,
        config: Config,
        *,
        medium: Optional[MemoryMedium] = None,
        directory_picker: Optional[DirectoryPicker] = None,
    ) -> "AppContext":
        if medium is None:
            medium = JsonFileMedium(config.storage_file, config.storage_quota_bytes)
        store = PersistenceStore(medium, strict_writes=config.strict_writes)
        backend = create_backend(
            store,
            config.fs_root,
            export_dir=config.export_dir,
            directory_picker=directory_picker,
        )
        settings = store.settings.get()
        url = config.supabase_url or settings.supabase_url
        key = config.supabase_anon_key or settings.supabase_anon_key
        remote = RemoteStore(url, key, config.retry_policy) if url and key else None
        context = cls(store, backend, remote, config.export_dir)
        if backend.is_file_backed:
            context.sync_from_files()
        return context

    @property
    def file_backed(self) -> bool:
        return self.backend.is_file_backed

    def storage_status(self) -> str:
        if isinstance(self.backend, FileSystemMirror) and self.backend.root is not None:
            return f"Saving to folder {self.backend.root}"
        return "Saving to local key-value storage"

    # ------------------------------------------------------------------ sync
    def sync_from_files(self) -> None:
        """Load the directory tree into the store; seed the tree when it is empty."""

        loaded = self.backend.load_all_projects()
        if loaded.projects:
            self.store.projects.save(loaded.projects)
            self.store.project_items.save(loaded.project_items)
            for record in loaded.indirect_costs:
                self.store.indirect_costs.upsert(record.to_dict())
            self.store.prune_orphans()
            LOGGER.info("Loaded %d project(s) from files", len(loaded.projects))
        else:
            for project in self.store.projects.get_all():
                self._autosave_project(project.id)

        items = self.backend.load_database()
        if items:
            self.store.items.save(items)
        elif self.store.items.get_all():
            self._autosave_catalog()

    def _autosave_project(self, project_id: str) -> None:
        if not self.file_backed:
            return
        project = self.store.projects.find_by_id(project_id)
        if project is None:
            return
        self.backend.save_project(
            project,
            self.store.project_items.get_by_project(project_id),
            self.store.indirect_costs.get_by_project(project_id),
        )

    def _autosave_catalog(self) -> None:
        if self.file_backed:
            self.backend.save_database(self.store.items.get_all())

    # -------------------------------------------------------------- projects
    def list_projects(self) -> List[Project]:
        return sorted(self.store.projects.get_all(), key=lambda p: p.updated_at, reverse=True)

    def get_project(self, project_id: str) -> Optional[Project]:
        return self.store.projects.find_by_id(project_id)

    def create_project(self, fields: Mapping[str, Any]) -> Project:
        title = str(fields.get("title") or "").strip()
        if not title:
            raise ValueError("Project title is required")
        data = dict(fields)
        data["title"] = title
        project = self.store.projects.add(data)
        self._autosave_project(project.id)
        return project

    def update_project(self, project_id: str, updates: Mapping[str, Any]) -> Optional[Project]:
        if "title" in updates and not str(updates["title"] or "").strip():
            raise ValueError("Project title is required")
        project = self.store.projects.update(project_id, updates)
        if project is not None:
            self._autosave_project(project_id)
        return project

    def delete_project(self, project_id: str) -> bool:
        removed = self.store.projects.delete(project_id)
        if removed and isinstance(self.backend, FileSystemMirror):
            self.backend.delete_project(project_id)
        return removed

    def duplicate_project(self, project_id: str) -> Optional[Project]:
        """Create a new project carrying the source project's details, without its items."""

        source = self.get_project(project_id)
        if source is None:
            return None
        return self.create_project(
            {
                "title": f"{source.title} (Copy)",
                "location": source.location,
                "category": source.category,
                "identification_no": f"{source.identification_no or 'COPY'}-{int(time.time() * 1000)}",
                "duration": source.duration,
                "source_of_fund": source.source_of_fund,
            }
        )

    # --------------------------------------------------------- project items
    def project_items(self, project_id: str) -> List[ProjectItem]:
        return self.store.project_items.get_by_project(project_id)

    def add_item_to_project(self, project_id: str, item_id: int, quantity: object) -> Optional[ProjectItem]:
        """Add a catalog item to a project, freezing its current unit cost.

        Returns ``None`` when the quantity is not positive or either record is
        missing.
        """

        qty = parse_number(quantity)
        if qty <= 0:
            LOGGER.warning("Ignoring non-positive quantity %r for item %s", quantity, item_id)
            return None
        if self.get_project(project_id) is None:
            LOGGER.warning("Project %s not found", project_id)
            return None
        item = self.store.items.find_by_id(item_id)
        if item is None:
            LOGGER.warning("Catalog item %s not found", item_id)
            return None
        project_item = self.store.project_items.add(
            {
                "project_id": project_id,
                "item_id": item.id,
                "quantity": qty,
                "unit_cost": item.unit_cost,
                "item_no": item.item_no,
                "description": item.description,
                "category": item.category,
                "unit": item.unit,
                "cost_type": item.cost_type.value,
            }
        )
        self._autosave_project(project_id)
        return project_item

    def update_project_item(self, project_item_id: int, updates: Mapping[str, Any]) -> Optional[ProjectItem]:
        data = dict(updates)
        data.pop("project_id", None)
        updated = self.store.project_items.update(project_item_id, data)
        if updated is not None:
            self._autosave_project(updated.project_id)
        return updated

    def remove_project_item(self, project_item_id: int) -> bool:
        existing = next(
            (pi for pi in self.store.project_items.get_all() if pi.id == project_item_id), None
        )
        if existing is None:
            return False
        removed = self.store.project_items.delete(project_item_id)
        self._autosave_project(existing.project_id)
        return removed

    # ---------------------------------------------------------------- rates
    def get_rates(self, project_id: str) -> IndirectRates:
        record = self.store.indirect_costs.get_by_project(project_id)
        if record is not None:
            return record.rates
        return self.store.settings.get().default_rates

    def set_rates(self, project_id: str, updates: Mapping[str, Any]) -> IndirectCosts:
        current = self.get_rates(project_id)
        fields: Dict[str, Any] = {
            "project_id": project_id,
            "ocm_percent": current.ocm_percent,
            "profit_percent": current.profit_percent,
            "tax_percent": current.tax_percent,
        }
        for name in ("ocm_percent", "profit_percent", "tax_percent"):
            if name in updates and updates[name] is not None:
                fields[name] = parse_number(updates[name])
        record = self.store.indirect_costs.upsert(fields)
        self._autosave_project(project_id)
        return record

    # --------------------------------------------------------- calculations
    def cost_breakdown(self, project_id: str) -> CostBreakdown:
        return compute_cost_breakdown(self.project_items(project_id), self.get_rates(project_id))

    def category_subtotals(self, project_id: str) -> List[CategorySubtotal]:
        items = self.project_items(project_id)
        breakdown = compute_cost_breakdown(items, self.get_rates(project_id))
        return compute_category_subtotals(items, breakdown)

    def workbook_data(self, project_id: str) -> WorkbookData:
        project = self.get_project(project_id)
        if project is None:
            raise KeyError(f"Project {project_id} not found")
        items = self.project_items(project_id)
        rates = self.get_rates(project_id)
        breakdown = compute_cost_breakdown(items, rates)
        return WorkbookData(
            project=project,
            project_items=items,
            breakdown=breakdown,
            category_subtotals=compute_category_subtotals(items, breakdown),
            rates=rates,
        )

    def export_workbook(
        self, project_id: str, target_dir: Optional[Path] = None, today: Optional[date] = None
    ) -> Path:
        data = self.workbook_data(project_id)
        path = Path(target_dir or self.export_dir) / workbook_filename(data.project, today)
        return write_workbook(path, data)

    # --------------------------------------------------------------- catalog
    def catalog(self) -> List[Item]:
        return self.store.items.get_all()

    def add_catalog_item(self, fields: Mapping[str, Any]) -> Item:
        item = self.store.items.add(fields)
        self._autosave_catalog()
        return item

    def update_catalog_item(self, item_id: int, updates: Mapping[str, Any]) -> Optional[Item]:
        item = self.store.items.update(item_id, updates)
        if item is not None:
            self._autosave_catalog()
        return item

    def delete_catalog_item(self, item_id: int) -> bool:
        removed = self.store.items.delete(item_id)
        if removed:
            self._autosave_catalog()
        return removed

    def export_catalog_csv(self, target_dir: Optional[Path] = None, today: Optional[date] = None) -> Path:
        path = Path(target_dir or self.export_dir) / catalog_csv_filename(today)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(encode_catalog_csv(self.catalog()), encoding="utf-8")
        LOGGER.info("Exported %d catalog item(s) to %s", len(self.catalog()), path)
        return path

    def import_catalog_csv(self, path: Path, *, replace: bool = False, naive: bool = False) -> CatalogImportResult:
        """Add the rows of a catalog CSV; ``replace`` clears the catalog first."""

        records = decode_catalog_csv(Path(path).read_text(encoding="utf-8"), naive=naive)
        if replace:
            self.store.items.clear()
        added = [self.store.items.add(record) for record in records]
        self._autosave_catalog()
        LOGGER.info("%s %d catalog item(s) from %s", "Replaced with" if replace else "Added", len(added), path)
        return CatalogImportResult(added=added, replaced=replace)

    def seed_sample_data(self) -> int:
        count, project = initialize_sample_data(self.store)
        if count:
            self._autosave_catalog()
        if project is not None:
            self._autosave_project(project.id)
        return count

    # ------------------------------------------------------------- snapshots
    def export_project_json(self, project_id: str, target_dir: Optional[Path] = None) -> Path:
        project = self.get_project(project_id)
        if project is None:
            raise KeyError(f"Project {project_id} not found")
        return self.backend.export_project(
            project,
            self.project_items(project_id),
            self.store.indirect_costs.get_by_project(project_id),
            target_dir=target_dir or self.export_dir,
        )

    def import_project_json(self, path: Path) -> Optional[Project]:
        """Upsert a project export by id, replacing that project's items."""

        snapshot = self.backend.import_project(path)
        if snapshot is None:
            return None
        project = snapshot.project
        self.store.projects.upsert(project)
        self.store.project_items.replace_for_project(
            project.id, [pi for pi in snapshot.project_items if pi.project_id == project.id]
        )
        if snapshot.indirect_costs is not None:
            fields = snapshot.indirect_costs.to_dict()
            fields["project_id"] = project.id
            self.store.indirect_costs.upsert(fields)
        self._autosave_project(project.id)
        return project

    def export_projects_bundle(self, target_dir: Optional[Path] = None) -> Path:
        path = Path(target_dir or self.export_dir) / PROJECTS_EXPORT_FILENAME
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = projects_bundle_to_dict(self.store.projects.get_all(), self.store.project_items.get_all())
        path.write_text(dumps(payload), encoding="utf-8")
        return path

    def import_projects_bundle(self, path: Path) -> bool:
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            LOGGER.error("Error reading projects bundle %s: %s", path, exc)
            return False
        snapshot = loads_projects_bundle(text)
        if snapshot is None:
            return False
        self.store.load_snapshot(snapshot)
        for project in self.store.projects.get_all():
            self._autosave_project(project.id)
        return True

    def export_all_data(self, target_dir: Optional[Path] = None) -> Path:
        path = Path(target_dir or self.export_dir) / DATA_EXPORT_FILENAME
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(dumps(state_to_dict(self.store.snapshot())), encoding="utf-8")
        return path

    def reset_data(self) -> None:
        self.store.reset()
        if isinstance(self.backend, FileSystemMirror):
            for stale in self.backend.projects_dir.glob("project_*.json"):
                stale.unlink()
            self.backend.save_database([])
        LOGGER.info("All local data has been reset")

    # --------------------------------------------------------------- backups
    def create_backup(self) -> Path:
        return self.backend.create_backup()

    def list_backups(self) -> List[str]:
        return self.backend.get_backup_list()

    def restore_backup(self, label: str) -> bool:
        return self.backend.restore_backup(label)

    # ---------------------------------------------------------------- remote
    def pull_catalog_from_remote(self) -> List[Item]:
        """Replace the local catalog with the remote store's items."""

        if self.remote is None or not self.remote.is_connected():
            raise RemoteStoreError("Remote store not configured")
        items = self.remote.get_items()
        self.store.items.save(items)
        self._autosave_catalog()
        LOGGER.info("Pulled %d catalog item(s) from remote store", len(items))
        return items


__all__ = ["AppContext", "CatalogImportResult"]
