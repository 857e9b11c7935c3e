from __future__ import annotations

import math
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class CostType(str, Enum):
    MATERIAL = "Material"
    LABOR = "Labor"
    EQUIPMENT = "Equipment"

    @classmethod
    def parse(cls, value: object) -> "CostType":
        """Map a free-text cost type onto the enum; unknown values become Material."""

        if isinstance(value, CostType):
            return value
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        return cls.MATERIAL


def utc_now_iso() -> str:
    """Return the current UTC time as ``2024-01-01T00:00:00.000Z``."""

    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def new_project_id() -> str:
    return str(uuid.uuid4())


def parse_number(value: object) -> float:
    """Parse user-entered numbers permissively.

    Anything that is not a finite number parses to ``0.0`` instead of failing.
    """

    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        numeric = float(value)
    else:
        text = str(value).replace("₱", "").replace("$", "").replace(",", "").strip()
        if not text:
            return 0.0
        try:
            numeric = float(text)
        except ValueError:
            return 0.0
    if not math.isfinite(numeric):
        return 0.0
    return numeric


def _require_mapping(data: object, kind: str) -> None:
    if not isinstance(data, Mapping):
        raise TypeError(f"{kind} record must be an object, got {type(data).__name__}")


def _optional_text(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


@dataclass
class Item:
    """Catalog entry: a reusable priced line item."""

    id: int
    item_no: str
    description: str
    category: str
    unit: str
    unit_cost: float
    cost_type: CostType = CostType.MATERIAL
    subcategory: Optional[str] = None
    date_added: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "item_no": self.item_no,
            "description": self.description,
            "category": self.category,
            "unit": self.unit,
            "unit_cost": self.unit_cost,
            "cost_type": self.cost_type.value,
            "date_added": self.date_added,
        }
        if self.subcategory is not None:
            data["subcategory"] = self.subcategory
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Item":
        _require_mapping(data, "item")
        return cls(
            id=int(data["id"]),
            item_no=str(data.get("item_no") or ""),
            description=str(data.get("description") or ""),
            category=str(data.get("category") or ""),
            unit=str(data.get("unit") or ""),
            unit_cost=parse_number(data.get("unit_cost")),
            cost_type=CostType.parse(data.get("cost_type")),
            subcategory=_optional_text(data.get("subcategory")),
            date_added=str(data.get("date_added") or utc_now_iso()),
        )


@dataclass
class Project:
    id: str
    title: str
    location: Optional[str] = None
    category: Optional[str] = None
    identification_no: Optional[str] = None
    duration: Optional[str] = None
    source_of_fund: Optional[str] = None
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    OPTIONAL_FIELDS = ("location", "category", "identification_no", "duration", "source_of_fund")

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "title": self.title}
        for name in self.OPTIONAL_FIELDS:
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        data["created_at"] = self.created_at
        data["updated_at"] = self.updated_at
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Project":
        _require_mapping(data, "project")
        created = str(data.get("created_at") or utc_now_iso())
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            location=_optional_text(data.get("location")),
            category=_optional_text(data.get("category")),
            identification_no=_optional_text(data.get("identification_no")),
            duration=_optional_text(data.get("duration")),
            source_of_fund=_optional_text(data.get("source_of_fund")),
            created_at=created,
            updated_at=str(data.get("updated_at") or created),
        )


@dataclass
class ProjectItem:
    """A catalog item placed in a project.

    ``unit_cost`` is a snapshot of the catalog price at the time the item was
    added; ``total_cost`` is always ``quantity * unit_cost`` and is recomputed
    rather than assigned.
    """

    id: int
    project_id: str
    item_id: int
    quantity: float
    unit_cost: float
    item_no: str = ""
    description: str = ""
    category: str = ""
    unit: str = ""
    cost_type: CostType = CostType.MATERIAL
    total_cost: float = field(init=False, default=0.0)

    def __post_init__(self) -> None:
        self.recompute()

    def recompute(self) -> None:
        self.total_cost = self.quantity * self.unit_cost

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "unit_cost": self.unit_cost,
            "total_cost": self.total_cost,
            "item_no": self.item_no,
            "description": self.description,
            "category": self.category,
            "unit": self.unit,
            "cost_type": self.cost_type.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProjectItem":
        _require_mapping(data, "project item")
        # total_cost is derived; any stored value is ignored.
        return cls(
            id=int(data["id"]),
            project_id=str(data["project_id"]),
            item_id=int(parse_number(data.get("item_id"))),
            quantity=parse_number(data.get("quantity")),
            unit_cost=parse_number(data.get("unit_cost")),
            item_no=str(data.get("item_no") or ""),
            description=str(data.get("description") or ""),
            category=str(data.get("category") or ""),
            unit=str(data.get("unit") or ""),
            cost_type=CostType.parse(data.get("cost_type")),
        )


DEFAULT_OCM_PERCENT = 5.0
DEFAULT_PROFIT_PERCENT = 8.0
DEFAULT_TAX_PERCENT = 12.0


@dataclass
class IndirectRates:
    """Markup percentages applied sequentially to the direct cost."""

    ocm_percent: float = DEFAULT_OCM_PERCENT
    profit_percent: float = DEFAULT_PROFIT_PERCENT
    tax_percent: float = DEFAULT_TAX_PERCENT


@dataclass
class IndirectCosts:
    id: int
    project_id: str
    ocm_percent: float = DEFAULT_OCM_PERCENT
    profit_percent: float = DEFAULT_PROFIT_PERCENT
    tax_percent: float = DEFAULT_TAX_PERCENT

    @property
    def rates(self) -> IndirectRates:
        return IndirectRates(self.ocm_percent, self.profit_percent, self.tax_percent)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "ocm_percent": self.ocm_percent,
            "profit_percent": self.profit_percent,
            "tax_percent": self.tax_percent,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IndirectCosts":
        _require_mapping(data, "indirect costs")
        return cls(
            id=int(data["id"]),
            project_id=str(data["project_id"]),
            ocm_percent=parse_number(data.get("ocm_percent", DEFAULT_OCM_PERCENT)),
            profit_percent=parse_number(data.get("profit_percent", DEFAULT_PROFIT_PERCENT)),
            tax_percent=parse_number(data.get("tax_percent", DEFAULT_TAX_PERCENT)),
        )


@dataclass(frozen=True)
class DirectCosts:
    material: float = 0.0
    labor: float = 0.0
    equipment: float = 0.0
    total: float = 0.0


@dataclass(frozen=True)
class IndirectCostAmounts:
    ocm: float = 0.0
    profit: float = 0.0
    taxes: float = 0.0
    total: float = 0.0


@dataclass(frozen=True)
class CostBreakdown:
    """Derived cost summary; never persisted."""

    direct_costs: DirectCosts
    indirect_costs: IndirectCostAmounts
    grand_total: float


@dataclass(frozen=True)
class CategorySubtotal:
    category: str
    subtotal: float
    percentage: float


# camelCase names used in the stored settings record.
_SETTINGS_WIRE_NAMES = {
    "default_ocm_percent": "defaultOcmPercent",
    "default_profit_percent": "defaultProfitPercent",
    "default_tax_percent": "defaultTaxPercent",
    "currency_symbol": "currencySymbol",
    "supabase_url": "supabaseUrl",
    "supabase_anon_key": "supabaseAnonKey",
}
_SETTINGS_FIELD_NAMES = {wire: name for name, wire in _SETTINGS_WIRE_NAMES.items()}


@dataclass
class AppSettings:
    default_ocm_percent: float = DEFAULT_OCM_PERCENT
    default_profit_percent: float = DEFAULT_PROFIT_PERCENT
    default_tax_percent: float = DEFAULT_TAX_PERCENT
    currency_symbol: str = "₱"
    supabase_url: str = ""
    supabase_anon_key: str = ""

    @property
    def default_rates(self) -> IndirectRates:
        return IndirectRates(
            self.default_ocm_percent,
            self.default_profit_percent,
            self.default_tax_percent,
        )

    def merged(self, updates: Mapping[str, Any]) -> "AppSettings":
        """Return a copy with ``updates`` applied; keys may use either naming."""

        values = asdict(self)
        for key, value in updates.items():
            name = _SETTINGS_FIELD_NAMES.get(key, key)
            if name in values:
                values[name] = value
        return AppSettings.from_dict(values)

    def to_dict(self) -> Dict[str, Any]:
        return {wire: getattr(self, name) for name, wire in _SETTINGS_WIRE_NAMES.items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AppSettings":
        _require_mapping(data, "settings")
        defaults = cls()
        values: Dict[str, Any] = {}
        for name, wire in _SETTINGS_WIRE_NAMES.items():
            raw = data.get(wire, data.get(name))
            if raw is None:
                values[name] = getattr(defaults, name)
            elif name.endswith("_percent"):
                values[name] = parse_number(raw)
            else:
                values[name] = str(raw)
        return cls(**values)


__all__ = [
    "AppSettings",
    "CategorySubtotal",
    "CostBreakdown",
    "CostType",
    "DirectCosts",
    "IndirectCostAmounts",
    "IndirectCosts",
    "IndirectRates",
    "Item",
    "Project",
    "ProjectItem",
    "new_project_id",
    "parse_number",
    "utc_now_iso",
]
