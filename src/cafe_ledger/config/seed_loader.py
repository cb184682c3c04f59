"""Utilities for loading the initial ledger data from YAML.

The seed file carries the raw-material price list and the staff roster. Staff
attendance and the daily P&L for the current month are generated on load so a
fresh store has something to chart.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_FLOOR, Decimal
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from cafe_ledger.config.settings import get_settings
from cafe_ledger.dates import month_days, parse_day, weekday_vn
from cafe_ledger.ledger import (
    DailyBusinessResult,
    DailyInventorySession,
    Material,
    StaffShift,
)
from cafe_ledger.payroll import build_daily_detail, recompute_staff_totals

DEFAULT_SEED_FILE = Path(__file__).resolve().parent / "seed.yaml"

SHIFT_CHECK_IN = "14:00"
SHIFT_CHECK_OUT = "22:00"
SHIFT_ALLOWANCE = Decimal("25000")
DAILY_STAFF_ALLOWANCE = Decimal("50000")
MONTHLY_TOOLS_PURCHASE = Decimal("1500000")


@dataclass
class SeedData:
    """Documents written to an empty store."""

    materials: list[Material] = field(default_factory=list)
    staff: list[StaffShift] = field(default_factory=list)
    business_results: list[DailyBusinessResult] = field(default_factory=list)
    inventory_sessions: list[DailyInventorySession] = field(default_factory=list)


@lru_cache
def _read_seed_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ValueError(f"{path.name}: seed file not found")
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path.name}: seed file must be a mapping")
    return data


def _as_list(data: dict[str, Any], key: str, path: Path) -> list[dict[str, Any]]:
    items = data.get(key) or []
    if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
        raise ValueError(f"{path.name}: {key} must be a list of mappings")
    return items


def _as_iso(value: Any) -> Any:
    # YAML reads unquoted dates as datetime.date
    if isinstance(value, date):
        return value.isoformat()
    return value


def _floor(value: Decimal) -> Decimal:
    return value.to_integral_value(rounding=ROUND_FLOOR)


def generate_staff_details(
    staff: StaffShift, month: str, rng: random.Random
) -> StaffShift:
    """Fill one month of 14:00-22:00 shifts, skipping the member's days off.

    Members without fixed days off get a random day off about once a week.
    """
    details = []
    for day in month_days(month):
        code = weekday_vn(day)
        if staff.off_days:
            if code in staff.off_days:
                continue
        elif rng.random() < 1 / 7:
            continue
        details.append(
            build_daily_detail(
                day,
                SHIFT_CHECK_IN,
                SHIFT_CHECK_OUT,
                staff.hourly_rate,
                SHIFT_ALLOWANCE,
            )
        )
    staff.details = details
    return recompute_staff_totals(staff)


def generate_business_results(month: str, rng: random.Random) -> list[DailyBusinessResult]:
    """Plausible daily P&L rows for every day of ``month``."""
    results = []
    for index, day in enumerate(month_days(month)):
        weekend = parse_day(day).weekday() >= 5
        result = DailyBusinessResult.blank(day)

        revenue = Decimal("1800000") + Decimal(rng.random()) * Decimal("2000000")
        if weekend:
            revenue += Decimal("1500000") + Decimal(rng.random()) * Decimal("1000000")
        result.total_revenue = _floor(revenue)
        result.morning_revenue = _floor(
            result.total_revenue * (Decimal("0.35") + Decimal(rng.random()) / 10)
        )
        result.evening_revenue = result.total_revenue - result.morning_revenue
        result.discounts = _floor(
            result.total_revenue * (Decimal("0.05") + Decimal(rng.random()) / 20)
        )
        result.net_revenue = result.total_revenue - result.discounts

        result.cost_of_goods_sold = _floor(result.net_revenue * Decimal("0.38"))
        if rng.random() > 0.7:
            result.cost_of_goods_import = _floor(Decimal(rng.random()) * Decimal("5000000"))
        if rng.random() > 0.8:
            result.waste_cost = _floor(Decimal(rng.random()) * Decimal("150000"))

        result.staff_salary = _floor(result.net_revenue * Decimal("0.18"))
        result.staff_allowance = DAILY_STAFF_ALLOWANCE

        if index == 0:
            result.tools = MONTHLY_TOOLS_PURCHASE
        if rng.random() > 0.5:
            result.consumables = Decimal("50000")

        result.recompute_totals()
        results.append(result)
    return results


def load_seed_data(
    path: Path | None = None,
    today: date | None = None,
    rng: random.Random | None = None,
) -> SeedData:
    """Load the seed file and generate the current month's activity.

    Args:
        path: Seed YAML file. Defaults to ``SEED_FILE`` or the bundled seed.yaml.
        today: Reference date for the generated month.
        rng: Random source for the generated figures.

    Returns:
        SeedData ready for ``BackOffice.seed_if_empty``.
    """
    path = path or get_settings().seed_file or DEFAULT_SEED_FILE
    data = _read_seed_file(path)
    month = (today or date.today()).isoformat()[:7]
    rng = rng or random.Random()

    try:
        materials = [Material.from_document(m) for m in _as_list(data, "materials", path)]
        roster = [
            StaffShift.from_document(
                {key: _as_iso(value) for key, value in s.items()}
            )
            for s in _as_list(data, "staff", path)
        ]
        sessions = [
            DailyInventorySession.from_document(
                {key: _as_iso(value) for key, value in s.items()}
            )
            for s in _as_list(data, "inventory_sessions", path)
        ]
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError(f"{path.name}: invalid seed entry: {exc}") from exc

    ids = [m.id for m in materials]
    if len(ids) != len(set(ids)):
        raise ValueError(f"{path.name}: duplicate material ids")

    staff = [generate_staff_details(member, month, rng) for member in roster]
    return SeedData(
        materials=materials,
        staff=staff,
        business_results=generate_business_results(month, rng),
        inventory_sessions=sessions,
    )
