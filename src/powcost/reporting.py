from __future__ import annotations

from typing import List

import pandas as pd

from .models import CategorySubtotal, CostBreakdown, ProjectItem

ITEM_COLUMNS = ["ITEM_NO", "DESCRIPTION", "CATEGORY", "COST_TYPE", "QUANTITY", "UNIT", "UNIT_COST", "TOTAL_COST"]


def project_items_frame(project_items: List[ProjectItem]) -> pd.DataFrame:
    """Tabular view of a project's line items."""

    rows = [
        {
            "ITEM_NO": pi.item_no,
            "DESCRIPTION": pi.description,
            "CATEGORY": pi.category,
            "COST_TYPE": pi.cost_type.value,
            "QUANTITY": pi.quantity,
            "UNIT": pi.unit,
            "UNIT_COST": pi.unit_cost,
            "TOTAL_COST": pi.total_cost,
        }
        for pi in project_items
    ]
    return pd.DataFrame(rows, columns=ITEM_COLUMNS)


def make_summary_text(
    project_items: List[ProjectItem],
    breakdown: CostBreakdown,
    subtotals: List[CategorySubtotal],
    currency: str = "₱",
) -> str:
    items_df = project_items_frame(project_items)
    direct = breakdown.direct_costs
    indirect = breakdown.indirect_costs
    lines = [
        f"Direct cost: {currency}{direct.total:,.2f} "
        f"(material {currency}{direct.material:,.2f}, labor {currency}{direct.labor:,.2f}, "
        f"equipment {currency}{direct.equipment:,.2f})",
        f"Indirect cost: {currency}{indirect.total:,.2f} "
        f"(OCM {currency}{indirect.ocm:,.2f}, profit {currency}{indirect.profit:,.2f}, "
        f"taxes {currency}{indirect.taxes:,.2f})",
        f"Grand total: {currency}{breakdown.grand_total:,.2f}",
    ]
    if subtotals:
        lines.append("By category:")
        for cs in subtotals:
            lines.append(f"  {cs.category}: {currency}{cs.subtotal:,.2f} ({cs.percentage:.1f}%)")
    if not items_df.empty:
        top = items_df.sort_values("TOTAL_COST", ascending=False).head(5)[
            ["ITEM_NO", "DESCRIPTION", "QUANTITY", "UNIT_COST", "TOTAL_COST"]
        ]
        lines.append(f"Top cost drivers:\n{top.to_string(index=False)}")
    return "\n".join(lines) + "\n"
