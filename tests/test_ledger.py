"""Tests for ledger entities and their document codecs."""

from decimal import Decimal

import pytest

from cafe_ledger.ledger import (
    DailyBusinessResult,
    ExpenseCategory,
    ExpenseRecord,
    LedgerValidationError,
    MenuItemSales,
    StaffShift,
    menu_item_id,
    to_decimal,
    to_number,
    validate_day,
)


class TestCoercion:
    """Tests for value coercion helpers."""

    def test_blank_values_are_zero(self):
        assert to_decimal(None) == Decimal("0")
        assert to_decimal("") == Decimal("0")

    def test_numeric_strings_and_numbers(self):
        assert to_decimal("1200000") == Decimal("1200000")
        assert to_decimal(2.5) == Decimal("2.5")
        assert to_decimal(7) == Decimal("7")

    @pytest.mark.parametrize("value", ["abc", True, "NaN", "Infinity"])
    def test_rejects_non_numeric(self, value):
        with pytest.raises(LedgerValidationError):
            to_decimal(value, "amount")

    def test_to_number_keeps_integers_integral(self):
        assert to_number(Decimal("625000.0")) == 625000
        assert isinstance(to_number(Decimal("625000.0")), int)
        assert to_number(Decimal("0.75")) == 0.75

    def test_validate_day(self):
        assert validate_day("2026-01-02") == "2026-01-02"
        with pytest.raises(LedgerValidationError):
            validate_day("02/01/2026")


class TestDailyBusinessResult:
    """Tests for the per-date P&L record."""

    def test_blank_is_zeroed(self):
        result = DailyBusinessResult.blank("2026-01-05")

        assert result.date == "2026-01-05"
        assert result.net_profit == 0
        assert result.is_consistent()

    def test_from_document_fills_missing_fields(self):
        result = DailyBusinessResult.from_document({"date": "2026-01-05", "netRevenue": 100})

        assert result.net_revenue == Decimal("100")
        assert result.cost_of_goods_sold == Decimal("0")
        assert result.staff_bonus == Decimal("0")

    def test_recompute_totals(self, business_result):
        assert business_result.staff_total_cost == Decimal("550000")
        assert business_result.operating_total_cost == Decimal("100000")
        # 2,800,000 - 900,000 - 50,000 - 550,000 - 100,000
        assert business_result.net_profit == Decimal("1200000")
        assert business_result.is_consistent()

    def test_recompute_profit_leaves_totals(self, business_result):
        business_result.staff_salary = Decimal("0")
        business_result.recompute_profit()

        assert business_result.staff_total_cost == Decimal("550000")
        assert business_result.net_profit == Decimal("1200000")
        assert not business_result.is_consistent()

    def test_document_uses_camel_case(self, business_result):
        doc = business_result.to_document()

        assert doc["date"] == "2026-01-02"
        assert doc["costOfGoodsSold"] == 900000
        assert doc["netProfit"] == 1200000
        assert DailyBusinessResult.from_document(doc) == business_result

    def test_copy_is_independent(self, business_result):
        changed = business_result.copy(cost_of_goods_sold=Decimal("1"))

        assert changed.cost_of_goods_sold == Decimal("1")
        assert business_result.cost_of_goods_sold == Decimal("900000")


class TestExpenses:
    def test_unknown_category_reads_as_other(self):
        expense = ExpenseRecord.from_document(
            {
                "id": "2026-01-02-1",
                "date": "2026-01-02",
                "category": "Rent",
                "description": "x",
                "amount": 10,
            }
        )

        assert expense.category == ExpenseCategory.OTHER

    def test_category_values(self):
        assert ExpenseCategory.RAW_MATERIAL.value == "RawMaterial"
        assert ExpenseCategory.parse("Marketing") is ExpenseCategory.MARKETING


class TestStaffShift:
    def test_optional_profile_fields_omitted(self, barista):
        doc = barista.to_document()

        assert doc["startDate"] == "2023-08-01"
        assert "dateOfBirth" not in doc
        assert "phoneNumber" not in doc

    def test_from_document_with_details(self):
        staff = StaffShift.from_document(
            {
                "name": "Nguyễn Thiên Phúc",
                "role": "Quản lý",
                "hourlyRate": 35000,
                "details": [
                    {
                        "date": "2026-01-02",
                        "checkIn": "14:00",
                        "checkOut": "22:00",
                        "workHours": 8,
                        "totalDailyIncome": 305000,
                    }
                ],
            }
        )

        assert staff.hourly_rate == Decimal("35000")
        assert staff.detail_for("2026-01-02").total_daily_income == Decimal("305000")
        assert staff.detail_for("2026-01-03") is None


class TestMenuItemSales:
    def test_negative_quantity_rejected(self):
        with pytest.raises(LedgerValidationError):
            MenuItemSales(id="x", date="2026-01-02", item_name="Latte", quantity=-1)

    def test_menu_item_id_replaces_whitespace_runs(self):
        assert menu_item_id("2026-01-02", "Bạc  xỉu đá") == "2026-01-02-Bạc_xỉu_đá"
        assert menu_item_id("2026-01-02", "Latte", 17) == "2026-01-02-Latte-17"

    def test_fractional_quantity_rejected(self):
        doc = {"id": "x", "date": "2026-01-02", "itemName": "Latte", "quantity": 2.7}

        with pytest.raises(LedgerValidationError, match="whole number"):
            MenuItemSales.from_document(doc)

    def test_whole_decimal_quantity_accepted(self):
        doc = {"id": "x", "date": "2026-01-02", "itemName": "Latte", "quantity": "3.0"}

        assert MenuItemSales.from_document(doc).quantity == 3
