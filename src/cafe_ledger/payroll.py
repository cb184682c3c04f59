"""Attendance-based payroll accrual.

A single check-in/check-out pair becomes a ``StaffDailyDetail``; the staff
member's ``total_hours`` and ``salary`` are then recomputed as full sums over
every detail record. That recomputation is authoritative and replaces any
hand-edited totals on the profile.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import structlog

from cafe_ledger.dates import WEEKDAY_CODES, format_date_vn, weekday_vn
from cafe_ledger.ledger import (
    ZERO,
    LedgerValidationError,
    StaffDailyDetail,
    StaffShift,
    to_decimal,
    to_number,
    validate_day,
)

logger = structlog.get_logger(__name__)

FULL_SHIFT_HOURS = Decimal("8")
_HUNDREDTHS = Decimal("0.01")
_UNITS = Decimal("1")


class AttendanceOverwriteDeclined(Exception):
    """An attendance record exists for the date and overwrite was not confirmed."""

    def __init__(self, staff_name: str, day: str):
        super().__init__(
            f"attendance for {staff_name} on {format_date_vn(day)} already exists"
        )
        self.staff_name = staff_name
        self.date = day


def _parse_clock(value: str, field_name: str) -> time:
    try:
        return time.fromisoformat(value)
    except (TypeError, ValueError) as exc:
        raise LedgerValidationError(
            f"{field_name} must be a time of day (HH:MM), got {value!r}"
        ) from exc


def work_hours(check_in: str, check_out: str) -> Decimal:
    """Hours between two clock times; a check-out before check-in crosses midnight."""
    start = _parse_clock(check_in, "check_in")
    end = _parse_clock(check_out, "check_out")
    start_s = start.hour * 3600 + start.minute * 60 + start.second
    end_s = end.hour * 3600 + end.minute * 60 + end.second
    if end_s < start_s:
        end_s += 24 * 3600
    return Decimal(end_s - start_s) / Decimal(3600)


def work_day_credit(hours: Decimal) -> Decimal:
    if hours >= FULL_SHIFT_HOURS:
        return Decimal("1.0")
    return (hours / FULL_SHIFT_HOURS).quantize(_HUNDREDTHS, rounding=ROUND_HALF_UP)


def build_daily_detail(
    day: str,
    check_in: str,
    check_out: str,
    hourly_rate: Any,
    allowance: Any = 0,
) -> StaffDailyDetail:
    """Turn one attendance entry into the day's pay."""
    day = validate_day(day)
    rate = to_decimal(hourly_rate, "hourly_rate")
    extra = to_decimal(allowance, "allowance")
    if rate < 0 or extra < 0:
        raise LedgerValidationError("hourly rate and allowance cannot be negative")

    hours = work_hours(check_in, check_out)
    pay = (hours * rate).quantize(_UNITS, rounding=ROUND_HALF_UP)
    return StaffDailyDetail(
        date=day,
        check_in=check_in,
        check_out=check_out,
        work_hours=hours.quantize(_HUNDREDTHS, rounding=ROUND_HALF_UP),
        work_day_credit=work_day_credit(hours),
        daily_salary=pay,
        allowance=extra,
        total_daily_income=pay + extra,
    )


def recompute_staff_totals(staff: StaffShift) -> StaffShift:
    """Return a copy whose totals are the sums over its detail records."""
    return replace(
        staff,
        total_hours=sum((d.work_hours for d in staff.details), ZERO),
        salary=sum((d.total_daily_income for d in staff.details), ZERO),
    )


def record_attendance(
    staff: StaffShift,
    detail: StaffDailyDetail,
    confirm_overwrite: Callable[[str], bool] | None = None,
) -> StaffShift:
    """Insert or replace the detail for ``detail.date`` and recompute totals.

    Replacing an existing day needs ``confirm_overwrite(date)`` to return True;
    otherwise ``AttendanceOverwriteDeclined`` is raised and nothing changes.
    """
    details = list(staff.details)
    index = next((i for i, d in enumerate(details) if d.date == detail.date), None)

    if index is not None:
        if confirm_overwrite is None or not confirm_overwrite(detail.date):
            raise AttendanceOverwriteDeclined(staff.name, detail.date)
        details[index] = detail
    else:
        details.append(detail)

    updated = recompute_staff_totals(replace(staff, details=details))
    logger.info(
        "attendance_recorded",
        staff=staff.name,
        date=detail.date,
        replaced=index is not None,
        work_hours=str(detail.work_hours),
        total_salary=str(updated.salary),
    )
    return updated


def details_newest_first(
    staff: StaffShift, search: str = ""
) -> list[StaffDailyDetail]:
    """Attendance rows sorted newest first, filtered by date, weekday or income."""
    needle = search.strip().lower()
    rows = []
    for detail in staff.details:
        if needle:
            haystack = (
                format_date_vn(detail.date).lower(),
                weekday_vn(detail.date).lower(),
                str(to_number(detail.total_daily_income)),
            )
            if not any(needle in text for text in haystack):
                continue
        rows.append(detail)
    return sorted(rows, key=lambda d: d.date, reverse=True)


@dataclass(frozen=True)
class Tenure:
    """Length of service shown on a staff card."""

    stage: str  # probation, months, years
    months: int
    label: str


def tenure(start_date: str | None, today: date | None = None) -> Tenure | None:
    """Whole calendar months since ``start_date``; under two months is probation."""
    if not start_date:
        return None
    start = date.fromisoformat(start_date)
    now = today or datetime.now().date()
    months = (now.year - start.year) * 12 + now.month - start.month

    if months < 2:
        return Tenure(stage="probation", months=max(months, 0), label="Probation")
    if months < 12:
        return Tenure(stage="months", months=months, label=f"{months} months")

    years, remainder = divmod(months, 12)
    label = f"{years} years"
    if remainder:
        label += f" {remainder} months"
    return Tenure(stage="years", months=months, label=label)


class StaffRoster:
    """Staff profiles keyed by name."""

    def __init__(self, staff: Iterable[StaffShift] = ()) -> None:
        self._staff: dict[str, StaffShift] = {s.name: s for s in staff}

    @property
    def staff(self) -> list[StaffShift]:
        return list(self._staff.values())

    def get(self, name: str) -> StaffShift | None:
        return self._staff.get(name)

    def search(self, term: str) -> list[StaffShift]:
        needle = term.lower()
        return [
            s
            for s in self._staff.values()
            if needle in s.name.lower() or needle in s.role.lower()
        ]

    def upsert(self, profile: StaffShift) -> StaffShift:
        if not profile.name or not profile.name.strip():
            raise LedgerValidationError("staff name is required")
        unknown = [d for d in profile.off_days if d not in WEEKDAY_CODES]
        if unknown:
            raise LedgerValidationError(f"unknown off days: {unknown}")
        profile.off_days = sorted(profile.off_days, key=WEEKDAY_CODES.index)
        self._staff[profile.name] = profile
        return profile

    def delete(self, name: str) -> StaffShift:
        try:
            return self._staff.pop(name)
        except KeyError as exc:
            raise LedgerValidationError(f"unknown staff member {name!r}") from exc

    def replace_staff(self, staff: StaffShift) -> None:
        self._staff[staff.name] = staff


def apply_profile_edit(staff: StaffShift, field_name: str, value: Any) -> StaffShift:
    """Edit a numeric profile field; rate or hours edits re-derive ``salary``.

    The next attendance write recomputes the totals from the detail records and
    overrides whatever this produced.
    """
    if field_name not in ("hourly_rate", "total_hours", "salary"):
        raise LedgerValidationError(f"{field_name} is not an editable numeric field")
    amount = to_decimal(value, field_name)
    if amount < 0:
        raise LedgerValidationError(f"{field_name} cannot be negative")

    updated = replace(staff, **{field_name: amount})
    if field_name == "hourly_rate":
        updated.salary = amount * staff.total_hours
    elif field_name == "total_hours":
        updated.salary = staff.hourly_rate * amount
    return updated
