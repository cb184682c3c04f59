"""Reconciliation of the per-date P&L record.

Three writers replace the same ``business_results/<date>`` document:

- the manual entry form (``ManualEntryForm``),
- the inventory checklist save (``sync_inventory``),
- the expense ledger (``cafe_ledger.expenses.apply_expense``).

Each starts from the caller's cached copy of the record and the last write
wins. Races between writers are not detected.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from decimal import Decimal
from typing import Any

import structlog

from cafe_ledger.expenses import CATEGORY_FIELDS, category_totals
from cafe_ledger.ledger import (
    RESULT_FIELDS,
    DailyBusinessResult,
    DailyInventorySession,
    ExpenseRecord,
    LedgerValidationError,
    MenuItemSales,
    menu_item_id,
    to_decimal,
    to_quantity,
    validate_day,
)

logger = structlog.get_logger(__name__)

# Fields the operator types in.
INPUT_FIELDS = (
    "morning_revenue",
    "evening_revenue",
    "discounts",
    "cost_of_goods_sold",
    "waste_cost",
    "staff_salary",
    "staff_bonus",
    "staff_allowance",
)

# Mirrors of the expense ledger, refreshed whenever the form is opened.
EXPENSE_FIELDS = tuple(CATEGORY_FIELDS.values())

DERIVED_FIELDS = (
    "total_revenue",
    "net_revenue",
    "staff_total_cost",
    "operating_total_cost",
    "net_profit",
)

_KEY_TO_ATTR = {key: attr for attr, key in RESULT_FIELDS.items()}


def _attr_name(name: str) -> str:
    """Accept either the attribute name or the document key."""
    if name in RESULT_FIELDS:
        return name
    attr = _KEY_TO_ATTR.get(name)
    if attr is None:
        raise LedgerValidationError(f"unknown business result field {name!r}")
    return attr


def recompute_manual_totals(result: DailyBusinessResult) -> None:
    """Derive every total of a manually entered record from its inputs."""
    result.total_revenue = result.morning_revenue + result.evening_revenue
    result.net_revenue = result.total_revenue - result.discounts
    result.recompute_totals()


class ManualEntryForm:
    """The manual P&L form for one date.

    Prefill precedence when the form is opened for a date:

    1. the stored result for the date, if any, supplies every field;
    2. otherwise revenue, cost and profit fields start at zero;
    3. the expense ledger's per-category sums always override the operating
       fields and ``cost_of_goods_import``.
    """

    def __init__(
        self,
        result: DailyBusinessResult,
        sales: Iterable[MenuItemSales] = (),
    ) -> None:
        self._result = result
        self._sales = list(sales)
        recompute_manual_totals(self._result)

    @classmethod
    def for_date(
        cls,
        day: str,
        results: Iterable[DailyBusinessResult],
        expenses: Iterable[ExpenseRecord],
        sales: Iterable[MenuItemSales] = (),
    ) -> ManualEntryForm:
        day = validate_day(day)
        existing = next((r for r in results if r.date == day), None)
        result = existing.copy() if existing else DailyBusinessResult.blank(day)

        for category, total in category_totals(expenses, day).items():
            setattr(result, CATEGORY_FIELDS[category], total)

        day_sales = [s for s in sales if s.date == day]
        logger.debug(
            "manual_form_opened",
            date=day,
            has_existing=existing is not None,
            sales_lines=len(day_sales),
        )
        return cls(result, day_sales)

    @property
    def date(self) -> str:
        return self._result.date

    @property
    def sales(self) -> list[MenuItemSales]:
        return list(self._sales)

    def get(self, name: str) -> Decimal:
        return getattr(self._result, _attr_name(name))

    def set_field(self, name: str, value: Any) -> DailyBusinessResult:
        """Update one input field and recompute the derived totals."""
        attr = _attr_name(name)
        if attr in DERIVED_FIELDS:
            raise LedgerValidationError(f"{attr} is computed and cannot be edited")
        if attr in EXPENSE_FIELDS:
            raise LedgerValidationError(
                f"{attr} is filled from the expense ledger and cannot be edited"
            )
        setattr(self._result, attr, to_decimal(value, attr))
        recompute_manual_totals(self._result)
        return self.to_result()

    def add_sale_item(
        self,
        item_name: str,
        quantity: Any,
        revenue: Any = None,
        now_ms: int | None = None,
    ) -> MenuItemSales:
        if not item_name or not item_name.strip():
            raise LedgerValidationError("item name is required")
        if quantity is None or quantity == "":
            raise LedgerValidationError("quantity is required")
        qty = to_quantity(quantity)
        stamp = now_ms if now_ms is not None else time.time_ns() // 1_000_000
        item = MenuItemSales(
            id=menu_item_id(self.date, item_name, stamp),
            date=self.date,
            item_name=item_name,
            quantity=qty,
            revenue=to_decimal(revenue, "revenue"),
        )
        self._sales.append(item)
        return item

    def remove_sale_item(self, index: int) -> MenuItemSales:
        try:
            return self._sales.pop(index)
        except IndexError as exc:
            raise LedgerValidationError(f"no sales line at position {index}") from exc

    def to_result(self) -> DailyBusinessResult:
        return self._result.copy()


def sync_inventory(
    existing: DailyBusinessResult | None,
    session: DailyInventorySession,
) -> DailyBusinessResult:
    """Fold a saved inventory session into the day's result.

    ``cost_of_goods_sold`` becomes the session total and net profit is
    recomputed from the other stored fields as they are.
    """
    if existing is None:
        result = DailyBusinessResult.blank(session.date)
        result.cost_of_goods_sold = session.total_cost
        result.net_profit = -session.total_cost
        return result

    result = existing.copy(cost_of_goods_sold=session.total_cost)
    result.recompute_profit()
    return result
