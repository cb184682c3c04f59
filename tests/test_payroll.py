"""Tests for attendance-based payroll accrual."""

from datetime import date
from decimal import Decimal

import pytest

from cafe_ledger.ledger import LedgerValidationError, StaffShift
from cafe_ledger.payroll import (
    AttendanceOverwriteDeclined,
    StaffRoster,
    apply_profile_edit,
    build_daily_detail,
    details_newest_first,
    record_attendance,
    tenure,
    work_day_credit,
    work_hours,
)


class TestWorkHours:
    def test_same_day_shift(self):
        assert work_hours("14:00", "22:00") == Decimal("8")

    def test_shift_crossing_midnight(self):
        hours = work_hours("22:00", "06:00")

        assert hours == Decimal("8")
        assert work_day_credit(hours) == Decimal("1.0")

    def test_partial_day_credit(self):
        hours = work_hours("08:00", "12:30")

        assert hours == Decimal("4.5")
        assert work_day_credit(hours) == Decimal("0.56")

    @pytest.mark.parametrize("check_in,check_out", [("", "22:00"), ("14:00", "25:00"), ("2pm", "10pm")])
    def test_malformed_times(self, check_in, check_out):
        with pytest.raises(LedgerValidationError):
            work_hours(check_in, check_out)


class TestDailyDetail:
    def test_pay_with_allowance(self):
        detail = build_daily_detail("2026-01-02", "14:00", "22:00", 28000, 25000)

        assert detail.work_hours == Decimal("8.00")
        assert detail.work_day_credit == Decimal("1.0")
        assert detail.daily_salary == Decimal("224000")
        assert detail.total_daily_income == Decimal("249000")

    def test_pay_rounds_half_up(self):
        # 20 minutes at 25,000/h = 8,333.33...
        detail = build_daily_detail("2026-01-02", "10:00", "10:20", 25000)

        assert detail.work_hours == Decimal("0.33")
        assert detail.daily_salary == Decimal("8333")

    def test_negative_rate_rejected(self):
        with pytest.raises(LedgerValidationError):
            build_daily_detail("2026-01-02", "14:00", "22:00", -1)


class TestRecordAttendance:
    def test_appends_and_recomputes_totals(self, barista):
        first = build_daily_detail("2026-01-02", "14:00", "22:00", 28000, 25000)
        second = build_daily_detail("2026-01-03", "08:00", "18:00", 30000)

        staff = record_attendance(barista, first)
        staff = record_attendance(staff, second)

        assert staff.total_hours == Decimal("18.00")
        assert staff.salary == Decimal("549000")
        assert barista.details == []

    def test_overwrite_needs_confirmation(self, barista):
        staff = record_attendance(
            barista, build_daily_detail("2026-01-02", "14:00", "22:00", 28000)
        )
        replacement = build_daily_detail("2026-01-02", "14:00", "18:00", 28000)

        with pytest.raises(AttendanceOverwriteDeclined):
            record_attendance(staff, replacement, confirm_overwrite=lambda day: False)
        with pytest.raises(AttendanceOverwriteDeclined):
            record_attendance(staff, replacement)

        assert staff.salary == Decimal("224000")

    def test_confirmed_overwrite_replaces(self, barista):
        staff = record_attendance(
            barista, build_daily_detail("2026-01-02", "14:00", "22:00", 28000)
        )
        asked = []

        staff = record_attendance(
            staff,
            build_daily_detail("2026-01-02", "14:00", "18:00", 28000),
            confirm_overwrite=lambda day: asked.append(day) or True,
        )

        assert asked == ["2026-01-02"]
        assert len(staff.details) == 1
        assert staff.total_hours == Decimal("4.00")
        assert staff.salary == Decimal("112000")

    def test_recompute_overrides_profile_edits(self, barista):
        edited = apply_profile_edit(barista, "salary", 9999999)

        staff = record_attendance(
            edited, build_daily_detail("2026-01-02", "14:00", "22:00", 28000)
        )

        assert staff.salary == Decimal("224000")

    def test_details_newest_first_with_filter(self, barista):
        staff = barista
        for day in ("2026-01-02", "2026-01-05", "2026-01-03"):
            staff = record_attendance(
                staff, build_daily_detail(day, "14:00", "22:00", 28000)
            )

        assert [d.date for d in details_newest_first(staff)] == [
            "2026-01-05",
            "2026-01-03",
            "2026-01-02",
        ]
        # 2026-01-05 is a Monday
        assert [d.date for d in details_newest_first(staff, "t2")] == ["2026-01-05"]
        assert [d.date for d in details_newest_first(staff, "03/01")] == ["2026-01-03"]


class TestProfile:
    def test_rate_edit_derives_salary(self, barista):
        barista.total_hours = Decimal("100")

        edited = apply_profile_edit(barista, "hourly_rate", 30000)

        assert edited.salary == Decimal("3000000")
        assert barista.hourly_rate == Decimal("28000")

    def test_hours_edit_derives_salary(self, barista):
        edited = apply_profile_edit(barista, "total_hours", "10")

        assert edited.salary == Decimal("280000")

    @pytest.mark.parametrize("field_name,value", [("name", 1), ("hourly_rate", -1)])
    def test_invalid_edits(self, barista, field_name, value):
        with pytest.raises(LedgerValidationError):
            apply_profile_edit(barista, field_name, value)


class TestTenure:
    def test_probation(self):
        assert tenure("2026-01-15", today=date(2026, 2, 20)).label == "Probation"

    def test_months(self):
        result = tenure("2025-08-01", today=date(2026, 2, 1))

        assert result.stage == "months"
        assert result.label == "6 months"

    def test_years(self):
        result = tenure("2022-05-15", today=date(2026, 1, 2))

        assert result.stage == "years"
        assert result.months == 44
        assert result.label == "3 years 8 months"

    def test_whole_years(self):
        assert tenure("2024-03-01", today=date(2026, 3, 9)).label == "2 years"

    def test_missing_start(self):
        assert tenure(None) is None


class TestStaffRoster:
    def test_upsert_sorts_off_days(self, barista):
        roster = StaffRoster()
        barista.off_days = ["CN", "T2"]

        roster.upsert(barista)

        assert roster.get(barista.name).off_days == ["T2", "CN"]

    @pytest.mark.parametrize(
        "profile",
        [StaffShift(name=""), StaffShift(name="  "), StaffShift(name="A", off_days=["Sun"])],
    )
    def test_upsert_validates(self, profile):
        with pytest.raises(LedgerValidationError):
            StaffRoster().upsert(profile)

    def test_search_and_delete(self, barista):
        roster = StaffRoster([barista, StaffShift(name="Nguyễn Thiên Phúc", role="Quản lý")])

        assert [s.name for s in roster.search("quản")] == ["Nguyễn Thiên Phúc"]
        assert roster.delete(barista.name) is barista
        with pytest.raises(LedgerValidationError):
            roster.delete(barista.name)
