"""Direct/indirect cost aggregation for a project's line items.

All functions here are pure. Sums go through :func:`math.fsum`, which rounds
once at the end, so results do not depend on the order items are supplied in.
"""
from __future__ import annotations

import math
from typing import Dict, Iterable, List, Sequence

from .models import (
    CategorySubtotal,
    CostBreakdown,
    CostType,
    DirectCosts,
    IndirectCostAmounts,
    IndirectRates,
    ProjectItem,
)


def safe_ratio(numerator: float, denominator: float) -> float:
    """Return ``numerator / denominator``, or 0.0 when the denominator is zero."""

    if not denominator:
        return 0.0
    return numerator / denominator


def _sum_costs(items: Iterable[ProjectItem]) -> float:
    return math.fsum(item.total_cost for item in items)


def compute_direct_costs(project_items: Sequence[ProjectItem]) -> DirectCosts:
    material = _sum_costs(pi for pi in project_items if pi.cost_type is CostType.MATERIAL)
    labor = _sum_costs(pi for pi in project_items if pi.cost_type is CostType.LABOR)
    equipment = _sum_costs(pi for pi in project_items if pi.cost_type is CostType.EQUIPMENT)
    return DirectCosts(
        material=material,
        labor=labor,
        equipment=equipment,
        total=material + labor + equipment,
    )


def compute_cost_breakdown(project_items: Sequence[ProjectItem], rates: IndirectRates) -> CostBreakdown:
    """Compute the direct/indirect breakdown for a project.

    Markups compound: OCM applies to the direct total, profit to direct + OCM,
    and taxes to direct + OCM + profit.
    """

    direct = compute_direct_costs(project_items)
    ocm = direct.total * (rates.ocm_percent / 100)
    profit = (direct.total + ocm) * (rates.profit_percent / 100)
    taxes = (direct.total + ocm + profit) * (rates.tax_percent / 100)
    indirect_total = ocm + profit + taxes
    return CostBreakdown(
        direct_costs=direct,
        indirect_costs=IndirectCostAmounts(ocm=ocm, profit=profit, taxes=taxes, total=indirect_total),
        grand_total=direct.total + indirect_total,
    )


def group_by_category(project_items: Iterable[ProjectItem]) -> Dict[str, List[ProjectItem]]:
    """Group items by category, keeping first-seen category order."""

    groups: Dict[str, List[ProjectItem]] = {}
    for item in project_items:
        groups.setdefault(item.category, []).append(item)
    return groups


def compute_category_subtotals(
    project_items: Sequence[ProjectItem], breakdown: CostBreakdown
) -> List[CategorySubtotal]:
    """Per-category subtotals with their share of the direct total.

    With a zero direct total every percentage is 0.0.
    """

    direct_total = breakdown.direct_costs.total
    subtotals: List[CategorySubtotal] = []
    for category, items in group_by_category(project_items).items():
        subtotal = _sum_costs(items)
        subtotals.append(
            CategorySubtotal(
                category=category,
                subtotal=subtotal,
                percentage=safe_ratio(subtotal, direct_total) * 100,
            )
        )
    return subtotals


__all__ = [
    "compute_category_subtotals",
    "compute_cost_breakdown",
    "compute_direct_costs",
    "group_by_category",
    "safe_ratio",
]
