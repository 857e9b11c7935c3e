from __future__ import annotations

from datetime import date
from pathlib import Path

import pandas as pd
import pytest
from openpyxl import load_workbook

from powcost.excel_export import (
    BREAKDOWN_SHEET,
    POW_SHEET,
    SUBTOTALS_SHEET,
    WorkbookData,
    build_category_subtotal_rows,
    build_cost_breakdown_rows,
    build_program_of_works_rows,
    workbook_filename,
    write_workbook,
)
from powcost.models import CostType, IndirectRates, Project
from powcost.pricing import compute_category_subtotals, compute_cost_breakdown


@pytest.fixture
def workbook_data(project_item_factory) -> WorkbookData:
    project = Project(
        id="p-1",
        title="Rural Health Unit",
        location="Iloilo",
        identification_no="RHU-2024-01",
        duration="120 days",
        source_of_fund="GAA",
    )
    items = [
        project_item_factory(10, 45, CostType.LABOR, category="Site Works"),
        project_item_factory(20, 285, CostType.MATERIAL, category="Structural Works"),
        project_item_factory(5, 125, CostType.EQUIPMENT, category="Site Works"),
    ]
    rates = IndirectRates()
    breakdown = compute_cost_breakdown(items, rates)
    return WorkbookData(
        project=project,
        project_items=items,
        breakdown=breakdown,
        category_subtotals=compute_category_subtotals(items, breakdown),
        rates=rates,
    )


def test_workbook_filename_prefers_identification_no():
    project = Project(id="x", title="Day Care Center", identification_no="DCC-9")
    assert workbook_filename(project, date(2024, 2, 1)) == "POW_DCC-9_2024-02-01.xlsx"
    project.identification_no = None
    assert workbook_filename(project, date(2024, 2, 1)) == "POW_Day_Care_Center_2024-02-01.xlsx"


def test_program_of_works_rows_group_by_category(workbook_data):
    rows = build_program_of_works_rows(workbook_data)
    assert rows[0] == ["PROGRAM OF WORKS"]
    assert rows[1] == ["Rural Health Unit"]
    assert rows[3][4] == "RHU-2024-01"

    labels = [row[0] for row in rows if len(row) == 1]
    assert "SITE WORKS" in labels and "STRUCTURAL WORKS" in labels

    subtotal_rows = [row for row in rows if len(row) == 7 and str(row[5]).startswith("SUBTOTAL")]
    assert [row[6] for row in subtotal_rows] == [1075.0, 5700.0]

    total_row = next(row for row in rows if len(row) == 7 and row[5] == "TOTAL DIRECT COST")
    assert total_row[6] == pytest.approx(6775.0)

    item_rows = [row for row in rows if len(row) == 7 and str(row[0]).startswith("IT-")]
    assert sum(row[2] for row in item_rows) == pytest.approx(1.0)
    assert rows[-1] == ["Project Engineer", "", "Project Manager", "", "Approving Authority"]


def test_category_subtotal_rows(workbook_data):
    rows = build_category_subtotal_rows(workbook_data)
    assert rows[2] == ["Category", "Subtotal Cost", "% of Direct Cost"]
    assert rows[3][0] == "Site Works"
    assert rows[3][2] == pytest.approx(1075 / 6775)
    assert rows[-1] == ["GRAND TOTAL", pytest.approx(6775.0), 1.0]


def test_cost_breakdown_rows_label_rates(workbook_data):
    rows = build_cost_breakdown_rows(workbook_data)
    labels = [row[0] for row in rows if row]
    assert "Overhead, Contingency & Management (5%)" in labels
    assert "Contractor's Profit (8%)" in labels
    assert "Taxes (12%)" in labels
    assert rows[-1][1] == pytest.approx(workbook_data.breakdown.grand_total)


def test_empty_project_rows_have_zero_shares():
    project = Project(id="e", title="Empty")
    breakdown = compute_cost_breakdown([], IndirectRates())
    data = WorkbookData(project, [], breakdown, [], IndirectRates())
    rows = build_cost_breakdown_rows(data)
    assert rows[3] == ["Direct Costs:", 0.0, 0.0]


def test_write_workbook_has_three_sheets(workbook_data, tmp_path: Path):
    path = write_workbook(tmp_path / "out" / "pow.xlsx", workbook_data)
    sheets = pd.read_excel(path, sheet_name=None, header=None)
    assert list(sheets) == [POW_SHEET, SUBTOTALS_SHEET, BREAKDOWN_SHEET]
    assert sheets[POW_SHEET].iloc[0, 0] == "PROGRAM OF WORKS"
    assert sheets[SUBTOTALS_SHEET].iloc[3, 0] == "Site Works"

    worksheet = load_workbook(path)[POW_SHEET]
    assert worksheet.column_dimensions["B"].width == 50
    assert worksheet.column_dimensions["G"].width == 18


def test_empty_project_grand_total_shares_are_zero():
    breakdown = compute_cost_breakdown([], IndirectRates())
    data = WorkbookData(Project(id="e", title="Empty"), [], breakdown, [], IndirectRates())
    assert build_category_subtotal_rows(data)[-1] == ["GRAND TOTAL", 0.0, 0.0]
    assert build_cost_breakdown_rows(data)[-1] == ["GRAND TOTAL", 0.0, 0.0]
