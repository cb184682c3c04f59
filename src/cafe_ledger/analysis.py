"""Month summaries for the dashboard and menu-mix analysis."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal

from cafe_ledger.dates import month_days, month_key
from cafe_ledger.ledger import (
    RESULT_FIELDS,
    ZERO,
    DailyBusinessResult,
    MenuItemSales,
)

_HUNDRED = Decimal("100")


@dataclass
class MonthSummary:
    """Sums of every business-result field over one month."""

    month: str
    days_recorded: int
    totals: dict[str, Decimal] = field(default_factory=dict)

    def __getitem__(self, name: str) -> Decimal:
        return self.totals[name]

    @property
    def profit_margin(self) -> Decimal:
        """Net profit as a percentage of net revenue (0 when there is no revenue)."""
        revenue = self.totals["net_revenue"]
        if revenue == 0:
            return ZERO
        return (self.totals["net_profit"] / revenue * _HUNDRED).quantize(Decimal("0.1"))


def results_for_month(
    results: Iterable[DailyBusinessResult], month: str
) -> list[DailyBusinessResult]:
    return sorted((r for r in results if month_key(r.date) == month), key=lambda r: r.date)


def summarize_month(results: Iterable[DailyBusinessResult], month: str) -> MonthSummary:
    rows = results_for_month(results, month)
    totals = {attr: ZERO for attr in RESULT_FIELDS}
    for row in rows:
        for attr in RESULT_FIELDS:
            totals[attr] += getattr(row, attr)
    return MonthSummary(month=month, days_recorded=len(rows), totals=totals)


def cost_distribution(summary: MonthSummary) -> list[tuple[str, Decimal]]:
    """Cost slices for the dashboard pie; empty slices are dropped."""
    slices = [
        ("Raw materials (COGS)", summary["cost_of_goods_sold"]),
        ("Staff", summary["staff_total_cost"]),
        ("Operating", summary["operating_total_cost"]),
        ("Waste", summary["waste_cost"]),
    ]
    return [(name, value) for name, value in slices if value > 0]


def month_calendar(
    results: Iterable[DailyBusinessResult], month: str
) -> list[tuple[str, DailyBusinessResult | None]]:
    """Every day of the month paired with its result, if one was recorded."""
    by_date = {r.date: r for r in results_for_month(results, month)}
    return [(day, by_date.get(day)) for day in month_days(month)]


@dataclass
class MenuItemSummary:
    name: str
    quantity: int = 0
    revenue: Decimal = ZERO
    contribution: Decimal = ZERO  # share of month revenue, percent
    classification: str = "regular"  # star, regular, slow


@dataclass
class MenuMix:
    month: str
    items: list[MenuItemSummary]
    total_quantity: int
    total_revenue: Decimal

    @property
    def top_items(self) -> list[MenuItemSummary]:
        return self.items[:5]

    @property
    def slow_items(self) -> list[MenuItemSummary]:
        return [i for i in reversed(self.items) if i.quantity > 0][:5]


def aggregate_menu(sales: Iterable[MenuItemSales], month: str) -> MenuMix:
    """Group a month's sales lines by item name, best sellers first.

    The three best sellers are stars; the last five (when not stars) are slow.
    """
    grouped: dict[str, MenuItemSummary] = {}
    for line in sales:
        if month_key(line.date) != month:
            continue
        entry = grouped.setdefault(line.item_name, MenuItemSummary(name=line.item_name))
        entry.quantity += line.quantity
        entry.revenue += line.revenue

    items = sorted(grouped.values(), key=lambda i: i.quantity, reverse=True)
    total_quantity = sum(i.quantity for i in items)
    total_revenue = sum((i.revenue for i in items), ZERO)

    for idx, item in enumerate(items):
        if total_revenue > 0:
            item.contribution = (item.revenue / total_revenue * _HUNDRED).quantize(
                Decimal("0.1")
            )
        if idx < 3:
            item.classification = "star"
        elif idx >= len(items) - 5:
            item.classification = "slow"

    return MenuMix(
        month=month,
        items=items,
        total_quantity=total_quantity,
        total_revenue=total_revenue,
    )
