"""Cafe Ledger - back-office bookkeeping for a single café."""

__version__ = "0.1.0"

from cafe_ledger.access import LoginError, User, login
from cafe_ledger.backoffice import MISSING_PERMISSIONS, BackOffice, LedgerSnapshot
from cafe_ledger.clients import GeminiImageAnalyzer, ImageAnalysisError
from cafe_ledger.config import configure_logging, get_settings
from cafe_ledger.events import ChangeFeedPublisher
from cafe_ledger.ledger import (
    DailyBusinessResult,
    DailyInventorySession,
    ExpenseCategory,
    ExpenseRecord,
    InventoryRecord,
    LedgerValidationError,
    Material,
    MenuItemSales,
    StaffDailyDetail,
    StaffShift,
)
from cafe_ledger.store import (
    Collection,
    FirestoreDocumentStore,
    InMemoryDocumentStore,
    PermissionDeniedError,
    PersistenceError,
)

__all__ = [
    # Version
    "__version__",
    # Ledger entities
    "DailyBusinessResult",
    "DailyInventorySession",
    "ExpenseCategory",
    "ExpenseRecord",
    "InventoryRecord",
    "LedgerValidationError",
    "Material",
    "MenuItemSales",
    "StaffDailyDetail",
    "StaffShift",
    # Coordinator
    "BackOffice",
    "LedgerSnapshot",
    "MISSING_PERMISSIONS",
    # Store
    "Collection",
    "FirestoreDocumentStore",
    "InMemoryDocumentStore",
    "PermissionDeniedError",
    "PersistenceError",
    # Image analysis
    "GeminiImageAnalyzer",
    "ImageAnalysisError",
    # Change feed
    "ChangeFeedPublisher",
    # Access
    "LoginError",
    "User",
    "login",
    # Config
    "get_settings",
    "configure_logging",
]
