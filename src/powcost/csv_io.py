"""Catalog CSV export/import."""
from __future__ import annotations

import csv
import io
import logging
import re
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .models import CostType, Item, parse_number

LOGGER = logging.getLogger(__name__)

CSV_HEADERS: Sequence[str] = (
    "item_no",
    "description",
    "category",
    "subcategory",
    "unit",
    "unit_cost",
    "cost_type",
    "date_added",
)

_EDGE_QUOTES = re.compile(r'^"|"$')


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def encode_catalog_csv(items: Iterable[Item]) -> str:
    """Render the catalog as CSV text, one row per item.

    Only the description is quoted (with embedded quotes doubled); other
    columns are written as-is.
    """

    lines = [",".join(CSV_HEADERS)]
    for item in items:
        description = item.description.replace('"', '""')
        lines.append(
            ",".join(
                [
                    item.item_no,
                    f'"{description}"',
                    item.category,
                    item.subcategory or "",
                    item.unit,
                    _format_number(item.unit_cost),
                    item.cost_type.value,
                    item.date_added,
                ]
            )
        )
    return "\n".join(lines)


def catalog_csv_filename(today: Optional[date] = None) -> str:
    return f"cost_database_{(today or date.today()).isoformat()}.csv"


def _naive_rows(text: str) -> List[List[str]]:
    rows: List[List[str]] = []
    for line in text.split("\n")[1:]:
        if not line.strip():
            continue
        rows.append([_EDGE_QUOTES.sub("", value.strip()) for value in line.split(",")])
    return rows


def _parsed_rows(text: str) -> List[List[str]]:
    reader = csv.reader(io.StringIO(text))
    rows: List[List[str]] = []
    for index, row in enumerate(reader):
        if index == 0:
            continue
        values = [value.strip() for value in row]
        if not any(values):
            continue
        rows.append(values)
    return rows


def decode_catalog_csv(text: str, *, naive: bool = False) -> List[Dict[str, Any]]:
    """Decode catalog CSV into item field mappings (without ids).

    The first line is treated as a header and skipped. Missing values fall
    back to defaults and unparsable costs become 0. ``naive=True`` splits
    lines on commas without honouring quotes.
    """

    text = text.lstrip("\ufeff").replace("\r\n", "\n")
    rows = _naive_rows(text) if naive else _parsed_rows(text)
    records: List[Dict[str, Any]] = []
    for index, values in enumerate(rows, start=1):
        values = list(values) + [""] * (len(CSV_HEADERS) - len(values))
        records.append(
            {
                "item_no": values[0] or f"IMP-{index}",
                "description": values[1] or "Imported Item",
                "category": values[2] or "Miscellaneous",
                "subcategory": values[3] or None,
                "unit": values[4] or "ea",
                "unit_cost": parse_number(values[5]),
                "cost_type": CostType.parse(values[6]).value,
            }
        )
    LOGGER.debug("Decoded %d catalog rows from CSV", len(records))
    return records


__all__ = ["CSV_HEADERS", "catalog_csv_filename", "decode_catalog_csv", "encode_catalog_csv"]
