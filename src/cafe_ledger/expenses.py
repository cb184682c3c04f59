"""Expense ledger aggregation.

Expense entries are the durable record; the operating-cost fields of a
``DailyBusinessResult`` only cache their per-category sums. Adding or deleting
an entry folds ``+amount`` / ``-amount`` into the mapped field and recomputes
the operating total and net profit.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from decimal import Decimal
from typing import Any

import structlog

from cafe_ledger.ledger import (
    ZERO,
    DailyBusinessResult,
    ExpenseCategory,
    ExpenseRecord,
    LedgerValidationError,
    to_decimal,
    validate_day,
)

logger = structlog.get_logger(__name__)

CATEGORY_FIELDS: dict[ExpenseCategory, str] = {
    ExpenseCategory.RAW_MATERIAL: "cost_of_goods_import",
    ExpenseCategory.TOOLS: "tools",
    ExpenseCategory.CONSUMABLES: "consumables",
    ExpenseCategory.MARKETING: "marketing",
    ExpenseCategory.OTHER: "other_cash",
}


def result_field_for(category: ExpenseCategory) -> str:
    return CATEGORY_FIELDS.get(category, "other_cash")


def create_expense(
    day: str,
    category: Any,
    description: str,
    amount: Any,
    now_ms: int | None = None,
) -> ExpenseRecord:
    """Validate a new expense entry and give it a date+timestamp id."""
    day = validate_day(day)
    if not description or not str(description).strip():
        raise LedgerValidationError("expense description is required")
    if amount is None or amount == "":
        raise LedgerValidationError("expense amount is required")
    value = to_decimal(amount, "amount")
    if value <= 0:
        raise LedgerValidationError(f"expense amount must be positive, got {value}")
    try:
        parsed_category = ExpenseCategory(category)
    except ValueError as exc:
        raise LedgerValidationError(f"unknown expense category {category!r}") from exc

    stamp = now_ms if now_ms is not None else time.time_ns() // 1_000_000
    return ExpenseRecord(
        id=f"{day}-{stamp}",
        date=day,
        category=parsed_category,
        description=str(description).strip(),
        amount=value,
    )


def expenses_for(expenses: Iterable[ExpenseRecord], day: str) -> list[ExpenseRecord]:
    return [e for e in expenses if e.date == day]


def category_totals(
    expenses: Iterable[ExpenseRecord], day: str
) -> dict[ExpenseCategory, Decimal]:
    """Sum the day's expenses per category (every category present, zero if none)."""
    totals = {category: ZERO for category in ExpenseCategory}
    for expense in expenses_for(expenses, day):
        totals[expense.category] += expense.amount
    return totals


def daily_total(expenses: Iterable[ExpenseRecord], day: str) -> Decimal:
    return sum((e.amount for e in expenses_for(expenses, day)), ZERO)


def apply_expense(
    existing: DailyBusinessResult | None,
    expense: ExpenseRecord,
    deleting: bool = False,
) -> DailyBusinessResult | None:
    """Fold one expense add/delete into the day's business result.

    Returns the updated copy, or None when deleting from a date that has no
    result (nothing to subtract from).
    """
    if existing is None and deleting:
        logger.info(
            "expense_delete_without_result",
            expense_id=expense.id,
            date=expense.date,
        )
        return None

    result = existing.copy() if existing else DailyBusinessResult.blank(expense.date)
    change = -expense.amount if deleting else expense.amount
    attr = result_field_for(expense.category)
    setattr(result, attr, getattr(result, attr) + change)

    result.operating_total_cost = result.compute_operating_total()
    result.recompute_profit()
    return result
