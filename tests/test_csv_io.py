from __future__ import annotations

from datetime import date

from powcost.csv_io import CSV_HEADERS, catalog_csv_filename, decode_catalog_csv, encode_catalog_csv
from powcost.models import CostType, Item


def _item(**overrides) -> Item:
    fields = dict(
        id=1,
        item_no="AR-001",
        description='Hollow blocks 4" (100mm)',
        category="Architectural Works",
        unit="pc",
        unit_cost=18.5,
        cost_type=CostType.MATERIAL,
        subcategory="Masonry",
        date_added="2024-01-02T03:04:05.000Z",
    )
    fields.update(overrides)
    return Item(**fields)


def test_encode_quotes_only_description():
    text = encode_catalog_csv([_item()])
    header, row = text.split("\n")
    assert header == ",".join(CSV_HEADERS)
    assert row == (
        'AR-001,"Hollow blocks 4"" (100mm)",Architectural Works,Masonry,pc,18.5,'
        "Material,2024-01-02T03:04:05.000Z"
    )


def test_encode_writes_whole_costs_without_decimals():
    row = encode_catalog_csv([_item(unit_cost=285.0, subcategory=None)]).split("\n")[1]
    assert ",,pc,285,Material," in row


def test_decode_reads_encoded_catalog():
    items = [_item(), _item(id=2, item_no="EL-001", description="THWN wire, 2.0mm²", cost_type=CostType.LABOR)]
    records = decode_catalog_csv(encode_catalog_csv(items))
    assert [r["item_no"] for r in records] == ["AR-001", "EL-001"]
    assert records[0]["description"] == 'Hollow blocks 4" (100mm)'
    assert records[1]["description"] == "THWN wire, 2.0mm²"
    assert records[1]["cost_type"] == "Labor"
    assert records[0]["unit_cost"] == 18.5


def test_decode_applies_defaults_for_missing_values():
    text = "item_no,description,category,subcategory,unit,unit_cost,cost_type\n,,,,,not-a-number,Subcontract\n"
    [record] = decode_catalog_csv(text)
    assert record == {
        "item_no": "IMP-1",
        "description": "Imported Item",
        "category": "Miscellaneous",
        "subcategory": None,
        "unit": "ea",
        "unit_cost": 0.0,
        "cost_type": "Material",
    }


def test_decode_skips_blank_lines_and_numbers_by_row():
    text = "\ufeffheader\r\nA,desc,cat,,m,\"1,200\",Labor\r\n\r\n,second,cat,,m,3,Equipment\r\n"
    records = decode_catalog_csv(text)
    assert len(records) == 2
    assert records[0]["unit_cost"] == 1200.0
    assert records[1]["item_no"] == "IMP-2"


def test_naive_decode_splits_on_every_comma():
    text = 'header\nA,"wire, 2mm",cat,,m,5,Material\n'
    [record] = decode_catalog_csv(text, naive=True)
    assert record["description"] == "wire"
    assert record["category"] == '2mm'


def test_catalog_csv_filename():
    assert catalog_csv_filename(date(2024, 3, 9)) == "cost_database_2024-03-09.csv"
