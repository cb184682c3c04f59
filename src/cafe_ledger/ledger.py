"""Ledger entities for the cafe back office.

Every record maps one-to-one onto a document held by the document store.
Documents use the camelCase field names the dashboard and the image-analysis
payload share; records use snake_case attributes and ``Decimal`` amounts.

Reading a document never yields a partially-populated record: numeric fields
missing from a document default to zero.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

ZERO = Decimal("0")


class LedgerValidationError(ValueError):
    """Raised when a value is rejected before anything is written."""


def to_decimal(value: Any, field_name: str = "value") -> Decimal:
    """Coerce a form or document value into a Decimal.

    ``None`` and empty strings count as zero, matching an untouched input box.
    """
    if value is None or value == "":
        return ZERO
    if isinstance(value, bool):
        raise LedgerValidationError(f"{field_name} must be numeric, got {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise LedgerValidationError(
                f"{field_name} must be numeric, got {value!r}"
            ) from exc
    if not result.is_finite():
        raise LedgerValidationError(f"{field_name} must be finite, got {value!r}")
    return result


def to_quantity(value: Any, field_name: str = "quantity") -> int:
    """Coerce a unit count, rejecting fractional values."""
    qty = to_decimal(value, field_name)
    if qty != qty.to_integral_value():
        raise LedgerValidationError(f"{field_name} must be a whole number, got {qty}")
    return int(qty)


def to_number(value: Decimal) -> int | float:
    """Render a Decimal as a JSON number (int when integral)."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def validate_day(value: Any, field_name: str = "date") -> str:
    """Return ``value`` as a ``YYYY-MM-DD`` string or raise."""
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(str(value)).isoformat()
    except ValueError as exc:
        raise LedgerValidationError(
            f"{field_name} must be an ISO date (YYYY-MM-DD), got {value!r}"
        ) from exc


# attribute -> document key, in dashboard display order
RESULT_FIELDS: dict[str, str] = {
    # Revenue
    "total_revenue": "totalRevenue",
    "morning_revenue": "morningRevenue",
    "evening_revenue": "eveningRevenue",
    "discounts": "discounts",
    "net_revenue": "netRevenue",
    # COGS
    "cost_of_goods_sold": "costOfGoodsSold",
    "cost_of_goods_import": "costOfGoodsImport",
    "waste_cost": "wasteCost",
    # Staff
    "staff_total_cost": "staffTotalCost",
    "staff_salary": "staffSalary",
    "staff_bonus": "staffBonus",
    "staff_allowance": "staffAllowance",
    # Operating
    "operating_total_cost": "operatingTotalCost",
    "marketing": "marketing",
    "tools": "tools",
    "consumables": "consumables",
    "other_cash": "otherCash",
    "net_profit": "netProfit",
}

OPERATING_FIELDS = ("marketing", "tools", "consumables", "other_cash")
STAFF_FIELDS = ("staff_salary", "staff_bonus", "staff_allowance")


@dataclass
class DailyBusinessResult:
    """Profit and loss for one calendar date (document key = date)."""

    date: str
    total_revenue: Decimal = ZERO
    morning_revenue: Decimal = ZERO
    evening_revenue: Decimal = ZERO
    discounts: Decimal = ZERO
    net_revenue: Decimal = ZERO
    cost_of_goods_sold: Decimal = ZERO
    cost_of_goods_import: Decimal = ZERO
    waste_cost: Decimal = ZERO
    staff_total_cost: Decimal = ZERO
    staff_salary: Decimal = ZERO
    staff_bonus: Decimal = ZERO
    staff_allowance: Decimal = ZERO
    operating_total_cost: Decimal = ZERO
    marketing: Decimal = ZERO
    tools: Decimal = ZERO
    consumables: Decimal = ZERO
    other_cash: Decimal = ZERO
    net_profit: Decimal = ZERO

    @classmethod
    def blank(cls, day: str) -> DailyBusinessResult:
        """A zeroed result for ``day``."""
        return cls(date=validate_day(day))

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> DailyBusinessResult:
        values = {attr: to_decimal(doc.get(key), key) for attr, key in RESULT_FIELDS.items()}
        return cls(date=validate_day(doc.get("date")), **values)

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {"date": self.date}
        for attr, key in RESULT_FIELDS.items():
            doc[key] = to_number(getattr(self, attr))
        return doc

    def copy(self, **changes: Any) -> DailyBusinessResult:
        return replace(self, **changes)

    def compute_staff_total(self) -> Decimal:
        return sum((getattr(self, name) for name in STAFF_FIELDS), ZERO)

    def compute_operating_total(self) -> Decimal:
        return sum((getattr(self, name) for name in OPERATING_FIELDS), ZERO)

    def compute_net_profit(self) -> Decimal:
        return (
            self.net_revenue
            - self.cost_of_goods_sold
            - self.waste_cost
            - self.staff_total_cost
            - self.operating_total_cost
        )

    def recompute_profit(self) -> None:
        """Recompute net profit from the stored totals."""
        self.net_profit = self.compute_net_profit()

    def recompute_totals(self) -> None:
        """Recompute staff and operating totals, then net profit."""
        self.staff_total_cost = self.compute_staff_total()
        self.operating_total_cost = self.compute_operating_total()
        self.recompute_profit()

    def is_consistent(self) -> bool:
        """True when the stored totals and profit agree with their parts."""
        return (
            self.staff_total_cost == self.compute_staff_total()
            and self.operating_total_cost == self.compute_operating_total()
            and self.net_profit == self.compute_net_profit()
        )


class ExpenseCategory(str, Enum):
    """Categories of the ad-hoc expense ledger."""

    RAW_MATERIAL = "RawMaterial"
    TOOLS = "Tools"
    CONSUMABLES = "Consumables"
    MARKETING = "Marketing"
    OTHER = "Other"

    @classmethod
    def parse(cls, value: Any) -> ExpenseCategory:
        """Read a stored category; anything unrecognised is Other."""
        try:
            return cls(value)
        except ValueError:
            return cls.OTHER


@dataclass
class ExpenseRecord:
    """One ad-hoc expense entry (document key = id)."""

    id: str
    date: str
    category: ExpenseCategory
    description: str
    amount: Decimal

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> ExpenseRecord:
        return cls(
            id=str(doc["id"]),
            date=validate_day(doc.get("date")),
            category=ExpenseCategory.parse(doc.get("category")),
            description=str(doc.get("description", "")),
            amount=to_decimal(doc.get("amount"), "amount"),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date,
            "category": self.category.value,
            "description": self.description,
            "amount": to_number(self.amount),
        }


@dataclass
class Material:
    """An entry of the raw-material price list (document key = str(id))."""

    id: int
    category: str
    name: str
    unit: str
    price: Decimal = ZERO

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> Material:
        return cls(
            id=int(doc["id"]),
            category=str(doc.get("category", "")),
            name=str(doc.get("name", "")),
            unit=str(doc.get("unit", "")),
            price=to_decimal(doc.get("price"), "price"),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category,
            "name": self.name,
            "unit": self.unit,
            "price": to_number(self.price),
        }


@dataclass
class InventoryRecord:
    """Stock counts of one material within a day's checklist."""

    material_id: int
    open: Decimal = ZERO
    imported: Decimal = ZERO
    close: Decimal = ZERO
    used: Decimal = ZERO
    cost: Decimal = ZERO

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> InventoryRecord:
        return cls(
            material_id=int(doc["materialId"]),
            open=to_decimal(doc.get("open"), "open"),
            imported=to_decimal(doc.get("import"), "import"),
            close=to_decimal(doc.get("close"), "close"),
            used=to_decimal(doc.get("used"), "used"),
            cost=to_decimal(doc.get("cost"), "cost"),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "materialId": self.material_id,
            "open": to_number(self.open),
            "import": to_number(self.imported),
            "close": to_number(self.close),
            "used": to_number(self.used),
            "cost": to_number(self.cost),
        }


@dataclass
class DailyInventorySession:
    """A saved inventory checklist (document key = date)."""

    date: str
    records: list[InventoryRecord] = field(default_factory=list)
    total_cost: Decimal = ZERO

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> DailyInventorySession:
        return cls(
            date=validate_day(doc.get("date")),
            records=[InventoryRecord.from_document(r) for r in doc.get("records") or []],
            total_cost=to_decimal(doc.get("totalCost"), "totalCost"),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "records": [r.to_document() for r in self.records],
            "totalCost": to_number(self.total_cost),
        }

    def record_for(self, material_id: int) -> InventoryRecord | None:
        for record in self.records:
            if record.material_id == material_id:
                return record
        return None


@dataclass
class StaffDailyDetail:
    """One day of attendance for a staff member."""

    date: str
    check_in: str
    check_out: str
    work_hours: Decimal = ZERO
    work_day_credit: Decimal = ZERO
    daily_salary: Decimal = ZERO
    allowance: Decimal = ZERO
    total_daily_income: Decimal = ZERO

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> StaffDailyDetail:
        return cls(
            date=validate_day(doc.get("date")),
            check_in=str(doc.get("checkIn", "")),
            check_out=str(doc.get("checkOut", "")),
            work_hours=to_decimal(doc.get("workHours"), "workHours"),
            work_day_credit=to_decimal(doc.get("workDayCredit"), "workDayCredit"),
            daily_salary=to_decimal(doc.get("dailySalary"), "dailySalary"),
            allowance=to_decimal(doc.get("allowance"), "allowance"),
            total_daily_income=to_decimal(doc.get("totalDailyIncome"), "totalDailyIncome"),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "checkIn": self.check_in,
            "checkOut": self.check_out,
            "workHours": to_number(self.work_hours),
            "workDayCredit": to_number(self.work_day_credit),
            "dailySalary": to_number(self.daily_salary),
            "allowance": to_number(self.allowance),
            "totalDailyIncome": to_number(self.total_daily_income),
        }


@dataclass
class StaffShift:
    """A staff member with cumulative payroll totals (document key = name)."""

    name: str
    total_hours: Decimal = ZERO
    salary: Decimal = ZERO
    role: str = ""
    hourly_rate: Decimal = ZERO
    start_date: str | None = None
    off_days: list[str] = field(default_factory=list)
    details: list[StaffDailyDetail] = field(default_factory=list)
    date_of_birth: str | None = None
    phone_number: str | None = None

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> StaffShift:
        return cls(
            name=str(doc["name"]),
            total_hours=to_decimal(doc.get("totalHours"), "totalHours"),
            salary=to_decimal(doc.get("salary"), "salary"),
            role=str(doc.get("role") or ""),
            hourly_rate=to_decimal(doc.get("hourlyRate"), "hourlyRate"),
            start_date=doc.get("startDate") or None,
            off_days=list(doc.get("offDays") or []),
            details=[StaffDailyDetail.from_document(d) for d in doc.get("details") or []],
            date_of_birth=doc.get("dateOfBirth") or None,
            phone_number=doc.get("phoneNumber") or None,
        )

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "name": self.name,
            "role": self.role,
            "totalHours": to_number(self.total_hours),
            "salary": to_number(self.salary),
            "hourlyRate": to_number(self.hourly_rate),
            "offDays": list(self.off_days),
            "details": [d.to_document() for d in self.details],
        }
        if self.start_date:
            doc["startDate"] = self.start_date
        if self.date_of_birth:
            doc["dateOfBirth"] = self.date_of_birth
        if self.phone_number:
            doc["phoneNumber"] = self.phone_number
        return doc

    def detail_for(self, day: str) -> StaffDailyDetail | None:
        for detail in self.details:
            if detail.date == day:
                return detail
        return None


@dataclass
class MenuItemSales:
    """Units of one menu item sold on a date (document key = id)."""

    id: str
    date: str
    item_name: str
    quantity: int = 0
    revenue: Decimal = ZERO

    def __post_init__(self) -> None:
        if self.quantity < 0:
            raise LedgerValidationError(
                f"quantity for {self.item_name!r} cannot be negative: {self.quantity}"
            )

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> MenuItemSales:
        return cls(
            id=str(doc["id"]),
            date=validate_day(doc.get("date")),
            item_name=str(doc.get("itemName", "")),
            quantity=to_quantity(doc.get("quantity")),
            revenue=to_decimal(doc.get("revenue"), "revenue"),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date,
            "itemName": self.item_name,
            "quantity": self.quantity,
            "revenue": to_number(self.revenue),
        }


def menu_item_id(day: str, item_name: str, stamp: int | None = None) -> str:
    """Composite sales-line id: date, then item name with whitespace runs as ``_``."""
    slug = re.sub(r"\s+", "_", item_name)
    if stamp is None:
        return f"{day}-{slug}"
    return f"{day}-{slug}-{stamp}"
