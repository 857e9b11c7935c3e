from __future__ import annotations

import math
import re

import pytest

from powcost.models import (
    AppSettings,
    CostType,
    IndirectCosts,
    Item,
    Project,
    ProjectItem,
    parse_number,
    utc_now_iso,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1,250.50", 1250.5),
        ("₱ 45", 45.0),
        ("$3", 3.0),
        ("", 0.0),
        ("abc", 0.0),
        (None, 0.0),
        (float("nan"), 0.0),
        ("inf", 0.0),
        (7, 7.0),
    ],
)
def test_parse_number_is_permissive(raw, expected):
    assert parse_number(raw) == expected


def test_cost_type_parse_defaults_to_material():
    assert CostType.parse("labor") is CostType.LABOR
    assert CostType.parse(" Equipment ") is CostType.EQUIPMENT
    assert CostType.parse("Subcontract") is CostType.MATERIAL
    assert CostType.parse(None) is CostType.MATERIAL


def test_utc_timestamp_has_millisecond_precision():
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z", utc_now_iso())


def test_project_item_total_is_derived_from_stored_record():
    record = {
        "id": 3,
        "project_id": "p",
        "item_id": 9,
        "quantity": 4,
        "unit_cost": 2.5,
        "total_cost": 999,
        "cost_type": "Labor",
    }
    item = ProjectItem.from_dict(record)
    assert item.total_cost == 10.0
    assert item.to_dict()["total_cost"] == 10.0

    item.quantity = 6
    item.recompute()
    assert item.total_cost == 15.0


def test_item_round_trip_keeps_optional_subcategory():
    item = Item(id=1, item_no="A", description="d", category="c", unit="ea", unit_cost=1.0)
    data = item.to_dict()
    assert "subcategory" not in data
    assert Item.from_dict(data) == item

    item.subcategory = "Finishes"
    assert Item.from_dict(item.to_dict()).subcategory == "Finishes"


def test_project_omits_unset_optional_fields():
    project = Project(id="abc", title="School Building", location="Cebu")
    data = project.to_dict()
    assert data["location"] == "Cebu"
    assert "duration" not in data
    assert Project.from_dict(data) == project


def test_indirect_costs_default_rates():
    record = IndirectCosts.from_dict({"id": 1, "project_id": "p"})
    rates = record.rates
    assert (rates.ocm_percent, rates.profit_percent, rates.tax_percent) == (5.0, 8.0, 12.0)


def test_settings_use_camel_case_wire_names():
    settings = AppSettings(default_tax_percent=10.0)
    data = settings.to_dict()
    assert data["defaultTaxPercent"] == 10.0
    assert data["currencySymbol"] == "₱"
    assert AppSettings.from_dict(data) == settings


def test_settings_merged_accepts_either_naming():
    settings = AppSettings().merged({"defaultOcmPercent": "7", "currency_symbol": "$", "unknown": 1})
    assert math.isclose(settings.default_ocm_percent, 7.0)
    assert settings.currency_symbol == "$"
    assert settings.default_profit_percent == 8.0


@pytest.mark.parametrize("record_type", [Item, Project, ProjectItem, IndirectCosts, AppSettings])
@pytest.mark.parametrize("raw", [1, "bad", None, ["id", 1]])
def test_from_dict_rejects_non_objects(record_type, raw):
    with pytest.raises(TypeError):
        record_type.from_dict(raw)
