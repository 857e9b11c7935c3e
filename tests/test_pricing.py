from __future__ import annotations

import itertools

import pytest

from powcost.models import CostType, IndirectRates
from powcost.pricing import (
    compute_category_subtotals,
    compute_cost_breakdown,
    group_by_category,
    safe_ratio,
)


def test_markups_compound_on_running_total(project_item_factory):
    items = [project_item_factory(10, 100, CostType.MATERIAL)]
    breakdown = compute_cost_breakdown(items, IndirectRates())

    assert breakdown.direct_costs.total == pytest.approx(1000.0)
    assert breakdown.indirect_costs.ocm == pytest.approx(50.0)
    assert breakdown.indirect_costs.profit == pytest.approx(84.0)
    assert breakdown.indirect_costs.taxes == pytest.approx(136.08)
    assert breakdown.indirect_costs.total == pytest.approx(270.08)
    assert breakdown.grand_total == pytest.approx(1270.08)


def test_direct_costs_split_by_cost_type(project_item_factory):
    items = [
        project_item_factory(2, 150, CostType.MATERIAL),
        project_item_factory(1, 400, CostType.LABOR),
        project_item_factory(4, 25, CostType.EQUIPMENT),
        project_item_factory(1, 50, CostType.MATERIAL),
    ]
    direct = compute_cost_breakdown(items, IndirectRates(0, 0, 0)).direct_costs
    assert direct.material == pytest.approx(350.0)
    assert direct.labor == pytest.approx(400.0)
    assert direct.equipment == pytest.approx(100.0)
    assert direct.total == pytest.approx(direct.material + direct.labor + direct.equipment)


def test_zero_rates_leave_grand_total_equal_to_direct(project_item_factory):
    items = [project_item_factory(3, 33.3, CostType.LABOR)]
    breakdown = compute_cost_breakdown(items, IndirectRates(0, 0, 0))
    assert breakdown.indirect_costs.total == 0
    assert breakdown.grand_total == breakdown.direct_costs.total


def test_empty_project_has_zero_breakdown():
    breakdown = compute_cost_breakdown([], IndirectRates())
    assert breakdown.direct_costs.total == 0
    assert breakdown.grand_total == 0
    assert compute_category_subtotals([], breakdown) == []


def test_breakdown_is_independent_of_item_order(project_item_factory):
    items = [
        project_item_factory(0.1, 0.7, CostType.MATERIAL),
        project_item_factory(3, 1e6, CostType.MATERIAL),
        project_item_factory(7, 0.3, CostType.LABOR),
        project_item_factory(1, 1e-3, CostType.EQUIPMENT),
    ]
    rates = IndirectRates(5, 8, 12)
    expected = compute_cost_breakdown(items, rates)
    for ordering in itertools.permutations(items):
        assert compute_cost_breakdown(list(ordering), rates) == expected


def test_category_subtotals_keep_first_seen_order(project_item_factory):
    items = [
        project_item_factory(1, 300, category="Site Works"),
        project_item_factory(1, 600, category="Structural Works"),
        project_item_factory(1, 100, category="Site Works"),
    ]
    breakdown = compute_cost_breakdown(items, IndirectRates())
    subtotals = compute_category_subtotals(items, breakdown)

    assert [cs.category for cs in subtotals] == ["Site Works", "Structural Works"]
    assert [cs.subtotal for cs in subtotals] == [400, 600]
    assert [cs.percentage for cs in subtotals] == pytest.approx([40.0, 60.0])
    assert sum(cs.subtotal for cs in subtotals) == pytest.approx(breakdown.direct_costs.total)
    assert list(group_by_category(items)) == ["Site Works", "Structural Works"]


def test_zero_direct_total_gives_zero_percentages(project_item_factory):
    items = [project_item_factory(0, 100, category="Plumbing Works")]
    breakdown = compute_cost_breakdown(items, IndirectRates())
    subtotals = compute_category_subtotals(items, breakdown)
    assert subtotals[0].subtotal == 0
    assert subtotals[0].percentage == 0.0


def test_safe_ratio():
    assert safe_ratio(1, 4) == 0.25
    assert safe_ratio(5, 0) == 0.0
