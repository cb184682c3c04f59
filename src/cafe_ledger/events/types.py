"""Event type definitions for the dashboard change feed.

Every pushed collection snapshot and every write made by the back office is
published as an event so connected dashboards can redraw.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class EventType(str, Enum):
    """Types of events published by the back office."""

    # Store push
    COLLECTION_CHANGED = "collection.changed"

    # Writes
    RECORD_WRITTEN = "record.written"
    RECORD_DELETED = "record.deleted"
    ANALYSIS_IMPORTED = "analysis.imported"

    # Session
    SESSION_BLOCKED = "session.blocked"
    ERROR = "error"


@dataclass
class LedgerEvent:
    """Base event structure for all change-feed events."""

    event_type: EventType
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: UUID = field(default_factory=uuid4)
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary for JSON transmission."""
        return {
            "id": str(self.event_id),
            "type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }


@dataclass
class CollectionEvent(LedgerEvent):
    """Full contents of one collection after a change."""

    collection: str = ""
    documents: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["collection"] = {
            "name": self.collection,
            "count": len(self.documents),
            "documents": self.documents,
        }
        return base


@dataclass
class RecordEvent(LedgerEvent):
    """A single document written or deleted by a back-office action."""

    collection: str = ""
    key: str = ""
    writer: str = ""

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["record"] = {
            "collection": self.collection,
            "key": self.key,
            "writer": self.writer,
        }
        return base


def collection_changed(collection: str, documents: dict[str, Any]) -> CollectionEvent:
    """Create a collection snapshot event."""
    return CollectionEvent(
        event_type=EventType.COLLECTION_CHANGED,
        collection=collection,
        documents=documents,
    )


def record_written(
    collection: str, key: str, writer: str, document: dict[str, Any] | None = None
) -> RecordEvent:
    """Create an event for a document written by ``writer``."""
    return RecordEvent(
        event_type=EventType.RECORD_WRITTEN,
        collection=collection,
        key=key,
        writer=writer,
        data={"document": document} if document is not None else {},
    )


def record_deleted(collection: str, key: str, writer: str) -> RecordEvent:
    return RecordEvent(
        event_type=EventType.RECORD_DELETED,
        collection=collection,
        key=key,
        writer=writer,
    )


def analysis_imported(
    business_results: int, sales_lines: int, dates: list[str]
) -> LedgerEvent:
    return LedgerEvent(
        event_type=EventType.ANALYSIS_IMPORTED,
        data={
            "business_results": business_results,
            "sales_lines": sales_lines,
            "dates": dates,
        },
    )


def session_blocked(reason: str) -> LedgerEvent:
    """The store denied access; dashboards switch to the remediation screen."""
    return LedgerEvent(event_type=EventType.SESSION_BLOCKED, data={"reason": reason})


def error_event(message: str, details: dict[str, Any] | None = None) -> LedgerEvent:
    """Create an error event."""
    return LedgerEvent(
        event_type=EventType.ERROR,
        data={"message": message, "details": details or {}},
    )
