"""Pytest configuration and fixtures."""

import os
from decimal import Decimal

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("GOOGLE_API_KEY", "test-key")
os.environ.setdefault("LOGIN_PASSWORD", "1234")

from cafe_ledger.ledger import (  # noqa: E402
    DailyBusinessResult,
    Material,
    StaffShift,
)
from cafe_ledger.store import Collection, InMemoryDocumentStore  # noqa: E402


@pytest.fixture
def materials():
    """A small price list."""
    return [
        Material(id=1, category="COFFEE & TEA", name="Espresso Blend 8R/2A", unit="Kg",
                 price=Decimal("250000")),
        Material(id=2, category="COFFEE & TEA", name="Arabica Wash", unit="Kg",
                 price=Decimal("350000")),
        Material(id=60, category="CAKE", name="Sausage Roll", unit="Cái",
                 price=Decimal("22000")),
    ]


@pytest.fixture
def barista():
    return StaffShift(
        name="Hoàng Vũ Thanh Thủy",
        role="Pha chế",
        hourly_rate=Decimal("28000"),
        start_date="2023-08-01",
    )


@pytest.fixture
def business_result():
    """A consistent P&L row for 2026-01-02."""
    result = DailyBusinessResult(
        date="2026-01-02",
        total_revenue=Decimal("3000000"),
        morning_revenue=Decimal("1200000"),
        evening_revenue=Decimal("1800000"),
        discounts=Decimal("200000"),
        net_revenue=Decimal("2800000"),
        cost_of_goods_sold=Decimal("900000"),
        waste_cost=Decimal("50000"),
        staff_salary=Decimal("500000"),
        staff_allowance=Decimal("50000"),
        marketing=Decimal("100000"),
    )
    result.recompute_totals()
    return result


@pytest.fixture
def store(materials, barista, business_result):
    """An in-memory store pre-loaded with materials, one staff member and one result."""
    return InMemoryDocumentStore(
        {
            Collection.MATERIALS: {str(m.id): m.to_document() for m in materials},
            Collection.STAFF: {barista.name: barista.to_document()},
            Collection.BUSINESS_RESULTS: {
                business_result.date: business_result.to_document()
            },
        }
    )
