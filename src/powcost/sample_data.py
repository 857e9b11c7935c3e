"""
Starter catalog and project used to populate an empty workspace.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from .models import Project
from .storage import PersistenceStore

LOGGER = logging.getLogger(__name__)

# (item_no, description, category, subcategory, unit, unit_cost, cost_type)
SAMPLE_ITEMS: Tuple[Tuple[str, str, str, str, str, float, str], ...] = (
    ("SW-001", "Site clearing and grubbing", "Site Works", "Preparation", "m²", 45.00, "Labor"),
    ("SW-002", "Excavation for foundation", "Site Works", "Earthworks", "m³", 125.00, "Equipment"),
    ("SW-003", "Backfilling and compaction", "Site Works", "Earthworks", "m³", 85.00, "Labor"),
    ("ST-001", "Portland Cement 40kg", "Structural Works", "Materials", "bag", 285.00, "Material"),
    ("ST-002", "Reinforcing steel bars 12mm", "Structural Works", "Materials", "kg", 55.00, "Material"),
    ("ST-003", "Ready mix concrete Class B", "Structural Works", "Concrete", "m³", 4250.00, "Material"),
    ("ST-004", "Concrete pouring and finishing", "Structural Works", "Labor", "m³", 850.00, "Labor"),
    ("ST-005", "Steel reinforcement installation", "Structural Works", "Labor", "kg", 18.00, "Labor"),
    ("AR-001", 'Hollow blocks 4" (100mm)', "Architectural Works", "Masonry", "pc", 18.50, "Material"),
    ("AR-002", "Masonry works installation", "Architectural Works", "Masonry", "m²", 450.00, "Labor"),
    ("AR-003", "Ceramic floor tiles 300x300mm", "Architectural Works", "Finishes", "m²", 285.00, "Material"),
    ("AR-004", "Floor tile installation", "Architectural Works", "Finishes", "m²", 125.00, "Labor"),
    ("EL-001", "THWN wire 2.0mm²", "Electrical Works", "Wiring", "m", 12.50, "Material"),
    ("EL-002", "PVC conduit 20mm", "Electrical Works", "Conduit", "m", 35.00, "Material"),
    ("EL-003", "Electrical rough-in installation", "Electrical Works", "Installation", "outlet", 285.00, "Labor"),
    ("PL-001", 'PVC pipe 4" (100mm)', "Plumbing Works", "Pipes", "m", 125.00, "Material"),
    ("PL-002", "Water closet installation", "Plumbing Works", "Fixtures", "ea", 1850.00, "Labor"),
    ("MC-001", "Split-type aircon 1HP", "Mechanical Works", "HVAC", "ea", 28500.00, "Material"),
    ("MC-002", "Aircon installation and testing", "Mechanical Works", "HVAC", "ea", 3500.00, "Labor"),
)

SAMPLE_PROJECT: Dict[str, str] = {
    "title": "Sample Residential Building Project",
    "location": "Quezon City, Metro Manila",
    "category": "Residential",
    "identification_no": "RES-2024-001",
    "duration": "6 months",
    "source_of_fund": "Private",
}


def sample_item_fields() -> List[Dict[str, object]]:
    return [
        {
            "item_no": item_no,
            "description": description,
            "category": category,
            "subcategory": subcategory,
            "unit": unit,
            "unit_cost": unit_cost,
            "cost_type": cost_type,
        }
        for item_no, description, category, subcategory, unit, unit_cost, cost_type in SAMPLE_ITEMS
    ]


def initialize_sample_data(store: PersistenceStore) -> Tuple[int, Optional[Project]]:
    """Seed the catalog and a sample project when the catalog is empty.

    Returns ``(items_added, project)``; ``(0, None)`` when data already exists.
    """

    if store.items.get_all():
        return 0, None
    LOGGER.info("Initializing sample data...")
    fields = sample_item_fields()
    for entry in fields:
        store.items.add(entry)
    project = store.projects.add(SAMPLE_PROJECT)
    LOGGER.info("Sample data initialized successfully")
    return len(fields), project


__all__ = ["SAMPLE_ITEMS", "SAMPLE_PROJECT", "initialize_sample_data", "sample_item_fields"]
