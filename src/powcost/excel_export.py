"""Program of Works workbook: row building and xlsx serialization."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import pandas as pd

from .models import CategorySubtotal, CostBreakdown, IndirectRates, Project, ProjectItem
from .pricing import group_by_category, safe_ratio

LOGGER = logging.getLogger(__name__)

Cell = Union[str, float, int, None]
Row = List[Cell]

POW_SHEET = "Program of Works"
SUBTOTALS_SHEET = "Category Subtotals"
BREAKDOWN_SHEET = "Cost Breakdown"

COLUMN_WIDTHS: Dict[str, Sequence[int]] = {
    POW_SHEET: (10, 50, 12, 12, 10, 15, 18),
    SUBTOTALS_SHEET: (30, 18, 18),
    BREAKDOWN_SHEET: (40, 18, 18),
}


@dataclass
class WorkbookData:
    project: Project
    project_items: List[ProjectItem]
    breakdown: CostBreakdown
    category_subtotals: List[CategorySubtotal]
    rates: IndirectRates


def _underscored(text: str) -> str:
    return re.sub(r"\s+", "_", text)


def workbook_filename(project: Project, today: Optional[date] = None) -> str:
    label = project.identification_no or _underscored(project.title)
    return f"POW_{label}_{(today or date.today()).isoformat()}.xlsx"


def _format_percent(value: float) -> str:
    return f"{value:g}"


def build_program_of_works_rows(data: WorkbookData) -> List[Row]:
    """Line items grouped by category, with subtotals and a direct-cost total.

    The ``% Weight`` column is a fraction of the direct total.
    """

    project = data.project
    direct_total = data.breakdown.direct_costs.total
    subtotal_lookup = {cs.category: cs for cs in data.category_subtotals}

    rows: List[Row] = [
        ["PROGRAM OF WORKS"],
        [project.title],
        [],
        ["Project Location:", project.location or "", "", "Project ID:", project.identification_no or ""],
        ["Source of Fund:", project.source_of_fund or "", "", "Duration:", project.duration or ""],
        [],
        ["Item No.", "Scope of Work", "% Weight", "Quantity", "Unit", "Unit Cost", "Total Cost"],
    ]
    for category, items in group_by_category(data.project_items).items():
        rows.append([category.upper()])
        for item in items:
            rows.append(
                [
                    item.item_no,
                    item.description,
                    safe_ratio(item.total_cost, direct_total),
                    item.quantity,
                    item.unit,
                    item.unit_cost,
                    item.total_cost,
                ]
            )
        subtotal = subtotal_lookup.get(category)
        if subtotal is not None:
            rows.append(["", "", "", "", "", f"SUBTOTAL - {category}", subtotal.subtotal])
        rows.append([])

    rows.append(["", "", "", "", "", "TOTAL DIRECT COST", direct_total])
    rows.extend(
        [
            [],
            [],
            ["Prepared by:", "", "Recommended by:", "", "Approved by:"],
            [],
            [],
            ["_____________________", "", "_____________________", "", "_____________________"],
            ["Project Engineer", "", "Project Manager", "", "Approving Authority"],
        ]
    )
    return rows


def build_category_subtotal_rows(data: WorkbookData) -> List[Row]:
    rows: List[Row] = [
        ["COST BREAKDOWN BY CATEGORY"],
        [],
        ["Category", "Subtotal Cost", "% of Direct Cost"],
    ]
    for cs in data.category_subtotals:
        rows.append([cs.category, cs.subtotal, cs.percentage / 100])
    direct_total = data.breakdown.direct_costs.total
    rows.append(["GRAND TOTAL", direct_total, safe_ratio(direct_total, direct_total)])
    return rows


def build_cost_breakdown_rows(data: WorkbookData) -> List[Row]:
    breakdown = data.breakdown
    rates = data.rates
    grand = breakdown.grand_total
    direct = breakdown.direct_costs
    indirect = breakdown.indirect_costs

    def share(value: float) -> float:
        return safe_ratio(value, grand)

    return [
        ["PROJECT COST BREAKDOWN"],
        [],
        ["Cost Type", "Amount", "% of Total Cost"],
        ["Direct Costs:", direct.total, share(direct.total)],
        ["  - Materials", direct.material, share(direct.material)],
        ["  - Labor", direct.labor, share(direct.labor)],
        ["  - Equipment", direct.equipment, share(direct.equipment)],
        [],
        [
            f"Overhead, Contingency & Management ({_format_percent(rates.ocm_percent)}%)",
            indirect.ocm,
            share(indirect.ocm),
        ],
        [f"Contractor's Profit ({_format_percent(rates.profit_percent)}%)", indirect.profit, share(indirect.profit)],
        [f"Taxes ({_format_percent(rates.tax_percent)}%)", indirect.taxes, share(indirect.taxes)],
        [],
        ["GRAND TOTAL", grand, share(grand)],
    ]


def build_workbook_rows(data: WorkbookData) -> Dict[str, List[Row]]:
    return {
        POW_SHEET: build_program_of_works_rows(data),
        SUBTOTALS_SHEET: build_category_subtotal_rows(data),
        BREAKDOWN_SHEET: build_cost_breakdown_rows(data),
    }


def _rows_to_frame(rows: List[Row]) -> pd.DataFrame:
    width = max((len(row) for row in rows), default=0)
    padded = [list(row) + [None] * (width - len(row)) for row in rows]
    return pd.DataFrame(padded)


def _column_letter(index: int) -> str:
    letters = ""
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(65 + remainder) + letters
    return letters


def write_workbook(path: Path, data: WorkbookData) -> Path:
    """Write the three-sheet workbook to ``path`` and return it."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    sheets = build_workbook_rows(data)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for sheet_name, rows in sheets.items():
            _rows_to_frame(rows).to_excel(writer, sheet_name=sheet_name, header=False, index=False)
            worksheet = writer.sheets[sheet_name]
            for index, width in enumerate(COLUMN_WIDTHS.get(sheet_name, ())):
                worksheet.column_dimensions[_column_letter(index)].width = width
    LOGGER.info("Wrote Program of Works workbook to %s", path)
    return path


__all__ = [
    "BREAKDOWN_SHEET",
    "POW_SHEET",
    "SUBTOTALS_SHEET",
    "WorkbookData",
    "build_category_subtotal_rows",
    "build_cost_breakdown_rows",
    "build_program_of_works_rows",
    "build_workbook_rows",
    "workbook_filename",
    "write_workbook",
]
