"""Back office - coordinates the ledger components and the document store.

The back office owns the locally cached copy of every collection, kept fresh by
store subscriptions. Each user action runs through the pure components
(inventory, expenses, reconciliation, payroll) against that cache and then
writes whole documents back:

- saving an inventory checklist writes the session, then syncs COGS into the
  day's business result
- adding or deleting an expense writes the expense, then folds the amount into
  the day's business result
- submitting the manual form overwrites the day's business result and saves
  its menu-item sales lines
- recording attendance rewrites the staff member's document

Writers never re-read the store before writing; the last write wins.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

from cafe_ledger.clients.gemini import AnalysisResult, GeminiImageAnalyzer
from cafe_ledger.events import (
    ChangeFeedPublisher,
    LedgerEvent,
    analysis_imported,
    collection_changed,
    error_event,
    record_deleted,
    record_written,
    session_blocked,
)
from cafe_ledger.expenses import apply_expense, create_expense
from cafe_ledger.inventory import InventoryChecklist, MaterialCatalog, open_checklist
from cafe_ledger.ledger import (
    DailyBusinessResult,
    DailyInventorySession,
    ExpenseRecord,
    LedgerValidationError,
    Material,
    MenuItemSales,
    StaffShift,
)
from cafe_ledger.payroll import StaffRoster, build_daily_detail, record_attendance
from cafe_ledger.reconciliation import ManualEntryForm, sync_inventory
from cafe_ledger.store import (
    Collection,
    Document,
    DocumentStore,
    PermissionDeniedError,
    PersistenceError,
    Unsubscribe,
)

if TYPE_CHECKING:
    from cafe_ledger.config.seed_loader import SeedData

logger = structlog.get_logger(__name__)

MISSING_PERMISSIONS = "MISSING_PERMISSIONS"


@dataclass
class LedgerSnapshot:
    """Locally cached contents of every collection."""

    business_results: list[DailyBusinessResult] = field(default_factory=list)
    staff: list[StaffShift] = field(default_factory=list)
    materials: list[Material] = field(default_factory=list)
    inventory_sessions: list[DailyInventorySession] = field(default_factory=list)
    expenses: list[ExpenseRecord] = field(default_factory=list)
    sales: list[MenuItemSales] = field(default_factory=list)
    error: str | None = None
    loaded: set[Collection] = field(default_factory=set)

    @property
    def is_blocked(self) -> bool:
        return self.error == MISSING_PERMISSIONS

    def result_for(self, day: str) -> DailyBusinessResult | None:
        return next((r for r in self.business_results if r.date == day), None)

    def session_for(self, day: str) -> DailyInventorySession | None:
        return next((s for s in self.inventory_sessions if s.date == day), None)

    def staff_member(self, name: str) -> StaffShift | None:
        return next((s for s in self.staff if s.name == name), None)

    def expense(self, expense_id: str) -> ExpenseRecord | None:
        return next((e for e in self.expenses if e.id == expense_id), None)


# collection -> (snapshot attribute, document decoder, ordering)
_DECODERS: dict[Collection, tuple[str, Callable[[Document], Any], Callable[[list], list]]] = {
    Collection.BUSINESS_RESULTS: (
        "business_results",
        DailyBusinessResult.from_document,
        lambda rows: sorted(rows, key=lambda r: r.date),
    ),
    Collection.STAFF: ("staff", StaffShift.from_document, list),
    Collection.MATERIALS: (
        "materials",
        Material.from_document,
        lambda rows: sorted(rows, key=lambda m: m.id),
    ),
    Collection.INVENTORY_SESSIONS: (
        "inventory_sessions",
        DailyInventorySession.from_document,
        lambda rows: sorted(rows, key=lambda s: s.date),
    ),
    Collection.EXPENSES: (
        "expenses",
        ExpenseRecord.from_document,
        lambda rows: sorted(rows, key=lambda e: e.id, reverse=True),
    ),
    Collection.SALES: ("sales", MenuItemSales.from_document, list),
}


class BackOffice:
    """Coordinator between the café's screens and the document store.

    Usage:
        office = BackOffice(InMemoryDocumentStore())
        office.start()

        checklist = office.open_checklist("2026-01-02")
        checklist.set_field(1, "close", 2)
        await office.save_inventory_session(checklist)

        office.stop()
    """

    def __init__(
        self,
        store: DocumentStore,
        analyzer: GeminiImageAnalyzer | None = None,
        publisher: ChangeFeedPublisher | None = None,
    ):
        self._store = store
        self._analyzer = analyzer
        self._publisher = publisher
        self._snapshot = LedgerSnapshot()
        self._unsubscribers: list[Unsubscribe] = []
        self._loop: asyncio.AbstractEventLoop | None = None
        self._logger = logger.bind(component="backoffice")

    @property
    def snapshot(self) -> LedgerSnapshot:
        return self._snapshot

    @property
    def is_started(self) -> bool:
        return bool(self._unsubscribers)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Subscribe to every collection."""
        if self._unsubscribers:
            return

        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

        self._logger.info("starting_backoffice")
        for collection in Collection:
            self._unsubscribers.append(
                self._store.subscribe(
                    collection,
                    self._change_handler(collection),
                    self._error_handler(collection),
                )
            )

    def stop(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._logger.info("backoffice_stopped")

    def _change_handler(self, collection: Collection) -> Callable[[dict[str, Document]], None]:
        attr, decode, order = _DECODERS[collection]

        def on_change(documents: dict[str, Document]) -> None:
            rows = []
            for key, doc in documents.items():
                try:
                    rows.append(decode(doc))
                except (KeyError, TypeError, ValueError) as e:
                    self._logger.warning(
                        "document_skipped",
                        collection=collection.value,
                        key=key,
                        error=str(e),
                    )
            setattr(self._snapshot, attr, order(rows))
            self._snapshot.loaded.add(collection)
            self._logger.debug(
                "collection_updated", collection=collection.value, count=len(rows)
            )
            self._publish(collection_changed(collection.value, documents))

        return on_change

    def _error_handler(self, collection: Collection) -> Callable[[Exception], None]:
        def on_error(exc: Exception) -> None:
            self._logger.error(
                "subscription_error", collection=collection.value, error=str(exc)
            )
            if isinstance(exc, PermissionDeniedError):
                self._block()
            else:
                self._snapshot.error = str(exc) or "database connection error"
                self._publish(error_event(self._snapshot.error, {"collection": collection.value}))

        return on_error

    def _block(self) -> None:
        if self._snapshot.is_blocked:
            return
        self._snapshot.error = MISSING_PERMISSIONS
        self._publish(session_blocked(MISSING_PERMISSIONS))

    def _publish(self, event: LedgerEvent) -> None:
        if self._publisher is None:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        # Firestore listeners fire on their own thread.
        if self._loop is not None and running is not self._loop and self._loop.is_running():
            self._loop.call_soon_threadsafe(self._publisher.publish, event)
        else:
            self._publisher.publish(event)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def _write(self, action: str, collection: Collection, op: Awaitable[None]) -> None:
        try:
            await op
        except PermissionDeniedError as e:
            self._logger.error(
                "write_failed", action=action, collection=collection.value, error=str(e)
            )
            self._block()
            raise
        except PersistenceError as e:
            self._logger.error(
                "write_failed", action=action, collection=collection.value, error=str(e)
            )
            raise

    async def _put(
        self, action: str, collection: Collection, key: str, document: Document
    ) -> None:
        await self._write(action, collection, self._store.set_document(collection, key, document))
        self._publish(record_written(collection.value, key, action, document))

    async def _put_batch(
        self, action: str, collection: Collection, items: list[tuple[str, Document]]
    ) -> None:
        if not items:
            return
        await self._write(action, collection, self._store.batch_set(collection, items))
        for key, _ in items:
            self._publish(record_written(collection.value, key, action))

    async def seed_if_empty(self, seed: SeedData) -> bool:
        """Load the seed data when the material list is empty.

        Returns True when the seed was written.
        """
        try:
            existing = await self._store.list_documents(Collection.MATERIALS)
        except PermissionDeniedError as e:
            self._logger.error("seed_failed", error=str(e))
            self._block()
            raise
        if existing:
            self._logger.debug("seed_skipped", materials=len(existing))
            return False

        self._logger.info(
            "seeding_store",
            materials=len(seed.materials),
            staff=len(seed.staff),
            business_results=len(seed.business_results),
            inventory_sessions=len(seed.inventory_sessions),
        )
        await self._put_batch(
            "seed",
            Collection.MATERIALS,
            [(str(m.id), m.to_document()) for m in seed.materials],
        )
        await self._put_batch(
            "seed", Collection.STAFF, [(s.name, s.to_document()) for s in seed.staff]
        )
        await self._put_batch(
            "seed",
            Collection.BUSINESS_RESULTS,
            [(r.date, r.to_document()) for r in seed.business_results],
        )
        await self._put_batch(
            "seed",
            Collection.INVENTORY_SESSIONS,
            [(s.date, s.to_document()) for s in seed.inventory_sessions],
        )
        return True

    # Inventory

    def open_checklist(self, day: str) -> InventoryChecklist:
        return open_checklist(
            day, self._snapshot.materials, self._snapshot.inventory_sessions
        )

    def material_catalog(self) -> MaterialCatalog:
        return MaterialCatalog(self._snapshot.materials)

    async def save_inventory_session(
        self, checklist: InventoryChecklist | DailyInventorySession
    ) -> DailyBusinessResult:
        """Save the day's stock counts and sync their cost into the P&L record."""
        if isinstance(checklist, InventoryChecklist):
            session = checklist.to_session()
        else:
            session = checklist

        existing = self._snapshot.result_for(session.date)
        await self._put(
            "inventory", Collection.INVENTORY_SESSIONS, session.date, session.to_document()
        )

        result = sync_inventory(existing, session)
        await self._put(
            "inventory", Collection.BUSINESS_RESULTS, result.date, result.to_document()
        )
        self._logger.info(
            "inventory_saved",
            date=session.date,
            total_cost=str(session.total_cost),
            net_profit=str(result.net_profit),
        )
        return result

    async def save_materials(self, materials: Iterable[Material] | MaterialCatalog) -> None:
        if isinstance(materials, MaterialCatalog):
            materials = materials.materials
        await self._put_batch(
            "materials",
            Collection.MATERIALS,
            [(str(m.id), m.to_document()) for m in materials],
        )

    async def delete_material(self, material_id: int) -> None:
        """Remove a material from the price list; saved sessions keep their records."""
        key = str(material_id)
        await self._write(
            "materials", Collection.MATERIALS, self._store.delete_document(Collection.MATERIALS, key)
        )
        self._publish(record_deleted(Collection.MATERIALS.value, key, "materials"))

    # Expenses

    async def save_expense(
        self,
        day: str,
        category: Any,
        description: str,
        amount: Any,
        now_ms: int | None = None,
    ) -> ExpenseRecord:
        """Record an expense and add it to the day's operating costs."""
        expense = create_expense(day, category, description, amount, now_ms=now_ms)
        existing = self._snapshot.result_for(expense.date)

        await self._put("expense", Collection.EXPENSES, expense.id, expense.to_document())

        result = apply_expense(existing, expense)
        if result is not None:
            await self._put(
                "expense", Collection.BUSINESS_RESULTS, result.date, result.to_document()
            )
        self._logger.info(
            "expense_saved",
            expense_id=expense.id,
            category=expense.category.value,
            amount=str(expense.amount),
        )
        return expense

    async def delete_expense(self, expense_id: str) -> DailyBusinessResult | None:
        """Delete an expense and subtract it from the day's operating costs."""
        expense = self._snapshot.expense(expense_id)
        if expense is None:
            raise LedgerValidationError(f"unknown expense {expense_id!r}")
        existing = self._snapshot.result_for(expense.date)

        await self._write(
            "expense",
            Collection.EXPENSES,
            self._store.delete_document(Collection.EXPENSES, expense_id),
        )
        self._publish(record_deleted(Collection.EXPENSES.value, expense_id, "expense"))

        result = apply_expense(existing, expense, deleting=True)
        if result is not None:
            await self._put(
                "expense", Collection.BUSINESS_RESULTS, result.date, result.to_document()
            )
        self._logger.info("expense_deleted", expense_id=expense_id, date=expense.date)
        return result

    # Manual P&L entry

    def open_manual_entry(self, day: str) -> ManualEntryForm:
        return ManualEntryForm.for_date(
            day,
            self._snapshot.business_results,
            self._snapshot.expenses,
            self._snapshot.sales,
        )

    async def submit_manual_entry(self, form: ManualEntryForm) -> DailyBusinessResult:
        """Overwrite the day's P&L record and save its sales lines."""
        result = form.to_result()
        await self._put("manual", Collection.BUSINESS_RESULTS, result.date, result.to_document())
        sales = form.sales
        await self._put_batch(
            "manual", Collection.SALES, [(s.id, s.to_document()) for s in sales]
        )
        self._logger.info(
            "manual_entry_saved",
            date=result.date,
            net_profit=str(result.net_profit),
            sales_lines=len(sales),
        )
        return result

    # Staff

    async def save_staff(self, profile: StaffShift) -> StaffShift:
        roster = StaffRoster(self._snapshot.staff)
        profile = roster.upsert(profile)
        await self._put("staff", Collection.STAFF, profile.name, profile.to_document())
        return profile

    async def delete_staff(self, name: str) -> StaffShift:
        roster = StaffRoster(self._snapshot.staff)
        removed = roster.delete(name)
        await self._write(
            "staff", Collection.STAFF, self._store.delete_document(Collection.STAFF, name)
        )
        self._publish(record_deleted(Collection.STAFF.value, name, "staff"))
        return removed

    async def record_attendance(
        self,
        name: str,
        day: str,
        check_in: str,
        check_out: str,
        allowance: Any = 0,
        confirm_overwrite: Callable[[str], bool] | None = None,
    ) -> StaffShift:
        """Add one attendance record and rewrite the staff member's totals."""
        staff = self._snapshot.staff_member(name)
        if staff is None:
            raise LedgerValidationError(f"unknown staff member {name!r}")

        detail = build_daily_detail(day, check_in, check_out, staff.hourly_rate, allowance)
        updated = record_attendance(staff, detail, confirm_overwrite)
        await self._put("attendance", Collection.STAFF, updated.name, updated.to_document())
        return updated

    # Photo import

    async def import_analysis(
        self,
        image: bytes | str,
        mime_type: str = "image/jpeg",
    ) -> AnalysisResult:
        """Extract records from a spreadsheet photo and save them.

        Nothing is written unless the analysis succeeds.
        """
        if self._analyzer is None:
            raise RuntimeError("No image analyzer configured")

        result = await self._analyzer.analyze(image, mime_type=mime_type)
        return await self.save_analysis(result)

    async def save_analysis(self, result: AnalysisResult) -> AnalysisResult:
        for business_result in result.business_results:
            await self._put(
                "import",
                Collection.BUSINESS_RESULTS,
                business_result.date,
                business_result.to_document(),
            )
        await self._put_batch(
            "import",
            Collection.SALES,
            [(s.id, s.to_document()) for s in result.sales_details],
        )

        dates = [r.date for r in result.business_results]
        self._publish(
            analysis_imported(len(result.business_results), len(result.sales_details), dates)
        )
        self._logger.info(
            "analysis_imported",
            business_results=len(result.business_results),
            sales_lines=len(result.sales_details),
            dates=dates,
        )
        return result

    def get_status(self) -> dict[str, Any]:
        """Get current back-office status."""
        snap = self._snapshot
        return {
            "is_started": self.is_started,
            "error": snap.error,
            "loaded": sorted(c.value for c in snap.loaded),
            "counts": {
                "business_results": len(snap.business_results),
                "staff": len(snap.staff),
                "materials": len(snap.materials),
                "inventory_sessions": len(snap.inventory_sessions),
                "expenses": len(snap.expenses),
                "sales": len(snap.sales),
            },
            "publisher": self._publisher.get_status() if self._publisher else None,
        }
