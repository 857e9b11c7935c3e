"""Program of Works cost estimate builder: catalog, projects, markups and exports."""

from .app import AppContext
from .config import Config, load_config
from .models import (
    AppSettings,
    CategorySubtotal,
    CostBreakdown,
    CostType,
    IndirectCosts,
    IndirectRates,
    Item,
    Project,
    ProjectItem,
)
from .pricing import compute_category_subtotals, compute_cost_breakdown
from .storage import PersistenceStore

__all__ = [
    "AppContext",
    "AppSettings",
    "CategorySubtotal",
    "Config",
    "CostBreakdown",
    "CostType",
    "IndirectCosts",
    "IndirectRates",
    "Item",
    "PersistenceStore",
    "Project",
    "ProjectItem",
    "compute_category_subtotals",
    "compute_cost_breakdown",
    "load_config",
]
