from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict

import pytest

from powcost.config import Config, load_config
from powcost.models import CostType, ProjectItem
from powcost.storage import MemoryMedium, PersistenceStore


@pytest.fixture
def store() -> PersistenceStore:
    return PersistenceStore(MemoryMedium())


@pytest.fixture
def seeded_store(store: PersistenceStore) -> PersistenceStore:
    store.items.add(
        {
            "item_no": "ST-001",
            "description": "Portland Cement 40kg",
            "category": "Structural Works",
            "unit": "bag",
            "unit_cost": 285.0,
            "cost_type": "Material",
        }
    )
    store.items.add(
        {
            "item_no": "ST-004",
            "description": "Concrete pouring and finishing",
            "category": "Structural Works",
            "unit": "m³",
            "unit_cost": 850.0,
            "cost_type": "Labor",
        }
    )
    store.items.add(
        {
            "item_no": "SW-002",
            "description": "Excavation for foundation",
            "category": "Site Works",
            "unit": "m³",
            "unit_cost": 125.0,
            "cost_type": "Equipment",
        }
    )
    return store


@pytest.fixture
def project_item_factory() -> Callable[..., ProjectItem]:
    counter: Dict[str, int] = {"next": 1}

    def _create(
        quantity: float,
        unit_cost: float,
        cost_type: CostType = CostType.MATERIAL,
        category: str = "General",
        project_id: str = "p-1",
    ) -> ProjectItem:
        item_id = counter["next"]
        counter["next"] += 1
        return ProjectItem(
            id=item_id,
            project_id=project_id,
            item_id=item_id,
            quantity=quantity,
            unit_cost=unit_cost,
            item_no=f"IT-{item_id:03d}",
            description=f"Item {item_id}",
            category=category,
            unit="ea",
            cost_type=cost_type,
        )

    return _create


@pytest.fixture
def app_config(tmp_path: Path) -> Config:
    env = {
        "POWCOST_DATA_DIR": str(tmp_path / "data"),
        "POWCOST_EXPORT_DIR": str(tmp_path / "exports"),
    }
    return load_config(env, None)


@pytest.fixture
def mirrored_config(tmp_path: Path) -> Config:
    env = {
        "POWCOST_DATA_DIR": str(tmp_path / "data"),
        "POWCOST_EXPORT_DIR": str(tmp_path / "exports"),
        "POWCOST_FS_ROOT": str(tmp_path / "tree"),
    }
    return load_config(env, None)
