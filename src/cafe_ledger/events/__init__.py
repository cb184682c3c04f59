"""Dashboard change feed."""

from cafe_ledger.events.publisher import (
    ChangeFeedPublisher,
    ClientConnection,
    get_publisher,
    start_publisher,
    stop_publisher,
)
from cafe_ledger.events.types import (
    CollectionEvent,
    EventType,
    LedgerEvent,
    RecordEvent,
    analysis_imported,
    collection_changed,
    error_event,
    record_deleted,
    record_written,
    session_blocked,
)

__all__ = [
    "ChangeFeedPublisher",
    "ClientConnection",
    "CollectionEvent",
    "EventType",
    "LedgerEvent",
    "RecordEvent",
    "analysis_imported",
    "collection_changed",
    "error_event",
    "record_deleted",
    "record_written",
    "session_blocked",
    "get_publisher",
    "start_publisher",
    "stop_publisher",
]
