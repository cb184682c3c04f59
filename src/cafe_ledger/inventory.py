"""Inventory checklist costing and the raw-material price list.

A checklist is the editable draft of one date's stock counts. Opening stock
carries over from the previous day's closing count; every edit recomputes the
used quantity and its cost at the current list price. Saving produces a
``DailyInventorySession`` that replaces whatever session is stored for that date.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

import structlog

from cafe_ledger.ledger import (
    ZERO,
    DailyInventorySession,
    InventoryRecord,
    LedgerValidationError,
    Material,
    to_decimal,
    validate_day,
)

logger = structlog.get_logger(__name__)

# editable count field -> InventoryRecord attribute
COUNT_FIELDS = {"open": "open", "import": "imported", "close": "close"}


def previous_day(day: str) -> str:
    return (date.fromisoformat(day) - timedelta(days=1)).isoformat()


def compute_usage(
    open_qty: Decimal, imported: Decimal, close: Decimal, price: Decimal
) -> tuple[Decimal, Decimal]:
    """Return (used, cost). Used is clamped at zero when close exceeds stock."""
    used = max(ZERO, open_qty + imported - close)
    return used, used * price


def session_total(records: Iterable[InventoryRecord]) -> Decimal:
    return sum((r.cost for r in records), ZERO)


class InventoryChecklist:
    """Editable stock counts for one date."""

    def __init__(
        self,
        day: str,
        materials: Iterable[Material],
        records: Iterable[InventoryRecord] = (),
    ) -> None:
        self.date = validate_day(day)
        self._materials = {m.id: m for m in materials}
        self._records: dict[int, InventoryRecord] = {r.material_id: r for r in records}

    @property
    def records(self) -> list[InventoryRecord]:
        return list(self._records.values())

    def record_for(self, material_id: int) -> InventoryRecord | None:
        return self._records.get(material_id)

    def update_materials(self, materials: Iterable[Material]) -> None:
        """Swap in a newer price list; only later edits pick up the new prices."""
        self._materials = {m.id: m for m in materials}

    def set_field(self, material_id: int, field_name: str, value: Any) -> InventoryRecord:
        """Set one count on a material and recompute its usage and cost."""
        attr = COUNT_FIELDS.get(field_name)
        if attr is None:
            raise LedgerValidationError(
                f"unknown inventory field {field_name!r}; expected one of {sorted(COUNT_FIELDS)}"
            )
        qty = to_decimal(value, field_name)
        if qty < 0:
            raise LedgerValidationError(f"{field_name} cannot be negative: {qty}")

        material = self._materials.get(material_id)
        record = self._records.get(material_id)
        if record is None:
            if material is None:
                raise LedgerValidationError(f"unknown material id {material_id}")
            record = InventoryRecord(material_id=material_id)
            self._records[material_id] = record

        setattr(record, attr, qty)
        price = material.price if material else ZERO
        record.used, record.cost = compute_usage(
            record.open, record.imported, record.close, price
        )
        return record

    def total_cost(self) -> Decimal:
        return session_total(self._records.values())

    def to_session(self) -> DailyInventorySession:
        records = [
            InventoryRecord(
                material_id=r.material_id,
                open=r.open,
                imported=r.imported,
                close=r.close,
                used=r.used,
                cost=r.cost,
            )
            for r in self._records.values()
        ]
        return DailyInventorySession(
            date=self.date, records=records, total_cost=session_total(records)
        )


def open_checklist(
    day: str,
    materials: Iterable[Material],
    sessions: Iterable[DailyInventorySession],
) -> InventoryChecklist:
    """Start (or resume) the checklist for ``day``.

    A stored session for the day is loaded as-is. Otherwise every material gets
    a fresh record whose opening stock is the previous day's closing count.
    """
    day = validate_day(day)
    materials = list(materials)
    by_date = {s.date: s for s in sessions}

    existing = by_date.get(day)
    if existing is not None:
        return InventoryChecklist(
            day,
            materials,
            [InventoryRecord(**vars(r)) for r in existing.records],
        )

    prior = by_date.get(previous_day(day))
    records = []
    for material in materials:
        prior_record = prior.record_for(material.id) if prior else None
        records.append(
            InventoryRecord(
                material_id=material.id,
                open=prior_record.close if prior_record else ZERO,
            )
        )

    logger.debug(
        "checklist_initialized",
        date=day,
        material_count=len(records),
        carried_over=prior is not None,
    )
    return InventoryChecklist(day, materials, records)


class MaterialCatalog:
    """The raw-material price list.

    Ids are handed out from a counter that only moves forward, so a deleted id
    is never reissued by this catalog.
    """

    def __init__(self, materials: Iterable[Material] = ()) -> None:
        self._materials: dict[int, Material] = {m.id: m for m in materials}
        self._high_water = max(self._materials, default=0)

    @property
    def materials(self) -> list[Material]:
        return [self._materials[k] for k in sorted(self._materials)]

    def get(self, material_id: int) -> Material | None:
        return self._materials.get(material_id)

    def _next_id(self) -> int:
        self._high_water = max(self._high_water, max(self._materials, default=0)) + 1
        return self._high_water

    @staticmethod
    def _validate(category: str, name: str, unit: str, price: Any) -> Decimal:
        if not name or not category or not unit:
            raise LedgerValidationError("material name, category and unit are required")
        amount = to_decimal(price, "price")
        if amount < 0:
            raise LedgerValidationError(f"price cannot be negative: {amount}")
        return amount

    def add(self, category: str, name: str, unit: str, price: Any) -> Material:
        amount = self._validate(category, name, unit, price)
        material = Material(
            id=self._next_id(), category=category, name=name, unit=unit, price=amount
        )
        self._materials[material.id] = material
        return material

    def update(self, material: Material) -> Material:
        if material.id not in self._materials:
            raise LedgerValidationError(f"unknown material id {material.id}")
        material.price = self._validate(
            material.category, material.name, material.unit, material.price
        )
        self._materials[material.id] = material
        return material

    def delete(self, material_id: int) -> Material:
        try:
            return self._materials.pop(material_id)
        except KeyError as exc:
            raise LedgerValidationError(f"unknown material id {material_id}") from exc

    def categories(self) -> list[str]:
        return sorted({m.category for m in self._materials.values()})

    def grouped(
        self, search: str = "", category: str | None = None
    ) -> dict[str, list[Material]]:
        """Materials grouped by category, filtered by name substring."""
        needle = search.lower()
        groups: dict[str, list[Material]] = {}
        for material in self.materials:
            if needle and needle not in material.name.lower():
                continue
            if category and material.category != category:
                continue
            groups.setdefault(material.category, []).append(material)
        return groups
