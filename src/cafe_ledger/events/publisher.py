"""WebSocket change feed for dashboard clients.

The publisher keeps connections to dashboard clients and pushes every change
the back office sees. It supports:
- Multiple concurrent client connections
- Filtering by event type or collection name
- The latest snapshot of each collection for late-joining clients
- A short buffer of recent write events
"""

import asyncio
import contextlib
import json
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog
import websockets
from websockets.asyncio.server import Server, ServerConnection

from cafe_ledger.config import get_settings
from cafe_ledger.events.types import CollectionEvent, EventType, LedgerEvent

logger = structlog.get_logger(__name__)


@dataclass
class ClientConnection:
    """Represents a connected dashboard client."""

    websocket: ServerConnection
    connected_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    subscribed_events: set[EventType] = field(default_factory=set)
    subscribed_collections: set[str] = field(default_factory=set)
    client_id: str = ""

    def __post_init__(self) -> None:
        if not self.client_id and self.websocket.remote_address:
            addr = self.websocket.remote_address
            self.client_id = f"{addr[0]}:{addr[1]}" if isinstance(addr, tuple) else str(addr)

    def __hash__(self) -> int:
        return hash(id(self.websocket))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ClientConnection):
            return False
        return self.websocket is other.websocket


class ChangeFeedPublisher:
    """WebSocket server pushing ledger changes to dashboards.

    Usage:
        publisher = ChangeFeedPublisher()
        await publisher.start()

        publisher.publish(collection_changed("expenses", docs))

        await publisher.stop()
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        buffer_size: int = 100,
    ):
        settings = get_settings()
        self._host = host or settings.ws_host
        self._port = port or settings.ws_port
        self._buffer_size = buffer_size

        self._server: Server | None = None
        self._clients: set[ClientConnection] = set()
        self._event_buffer: deque[LedgerEvent] = deque(maxlen=buffer_size)
        self._snapshots: dict[str, CollectionEvent] = {}
        self._is_running = False

        self._event_hooks: list[Callable[[LedgerEvent], None]] = []
        self._pending: set[asyncio.Task[None]] = set()

        self._logger = logger.bind(component="change_feed")

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def client_count(self) -> int:
        return len(self._clients)

    @property
    def recent_events(self) -> list[LedgerEvent]:
        return list(self._event_buffer)

    def latest_snapshot(self, collection: str) -> CollectionEvent | None:
        return self._snapshots.get(collection)

    def add_event_hook(self, hook: Callable[[LedgerEvent], None]) -> None:
        """Add a hook called synchronously for every event before broadcasting."""
        self._event_hooks.append(hook)

    def remove_event_hook(self, hook: Callable[[LedgerEvent], None]) -> None:
        if hook in self._event_hooks:
            self._event_hooks.remove(hook)

    async def start(self) -> None:
        """Start the WebSocket server."""
        if self._is_running:
            self._logger.warning("publisher_already_running")
            return

        self._logger.info("starting_publisher", host=self._host, port=self._port)

        self._server = await websockets.serve(
            self._handle_client,
            self._host,
            self._port,
            ping_interval=30,
            ping_timeout=10,
        )

        self._is_running = True
        self._logger.info("publisher_started", address=f"ws://{self._host}:{self._port}")

    async def stop(self) -> None:
        """Stop the WebSocket server and disconnect all clients."""
        if not self._is_running:
            return

        self._logger.info("stopping_publisher", client_count=len(self._clients))

        close_tasks = [
            client.websocket.close(1001, "Server shutting down")
            for client in list(self._clients)
        ]
        if close_tasks:
            await asyncio.gather(*close_tasks, return_exceptions=True)

        self._clients.clear()

        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

        self._is_running = False
        self._logger.info("publisher_stopped")

    async def _handle_client(self, websocket: ServerConnection) -> None:
        client = ClientConnection(websocket=websocket)
        self._clients.add(client)

        self._logger.info("client_connected", client_id=client.client_id)

        await self._send_current_state(client)

        try:
            async for message in websocket:
                await self._handle_message(client, message)
        except websockets.ConnectionClosed as e:
            self._logger.info(
                "client_disconnected",
                client_id=client.client_id,
                code=e.code,
                reason=e.reason,
            )
        except Exception as e:
            self._logger.error("client_error", client_id=client.client_id, error=str(e))
        finally:
            self._clients.discard(client)

    async def _handle_message(self, client: ClientConnection, message: str | bytes) -> None:
        """Handle an incoming client message.

        Supported message types:
        - subscribe: Subscribe to specific event types or collections
        - unsubscribe: Unsubscribe from event types or collections
        - ping: Health check
        """
        try:
            if isinstance(message, bytes):
                try:
                    message = message.decode("utf-8")
                except UnicodeDecodeError:
                    self._logger.warning("invalid_message_encoding", client_id=client.client_id)
                    return

            data = json.loads(message)
            msg_type = data.get("type", "")

            if msg_type == "subscribe":
                await self._handle_subscribe(client, data)
            elif msg_type == "unsubscribe":
                self._handle_unsubscribe(client, data)
            elif msg_type == "ping":
                await client.websocket.send(json.dumps({"type": "pong"}))
            else:
                self._logger.warning(
                    "unknown_message_type",
                    client_id=client.client_id,
                    msg_type=msg_type,
                )

        except json.JSONDecodeError:
            self._logger.warning("invalid_json", client_id=client.client_id)
        except Exception as e:
            self._logger.error("message_handling_error", error=str(e))

    async def _handle_subscribe(self, client: ClientConnection, data: dict[str, Any]) -> None:
        for et in data.get("event_types", []):
            with contextlib.suppress(ValueError):
                client.subscribed_events.add(EventType(et))

        for name in data.get("collections", []):
            if isinstance(name, str) and name:
                client.subscribed_collections.add(name)

        self._logger.debug(
            "client_subscribed",
            client_id=client.client_id,
            events=len(client.subscribed_events),
            collections=len(client.subscribed_collections),
        )

        await client.websocket.send(
            json.dumps(
                {
                    "type": "subscribed",
                    "event_types": sorted(et.value for et in client.subscribed_events),
                    "collections": sorted(client.subscribed_collections),
                }
            )
        )

    def _handle_unsubscribe(self, client: ClientConnection, data: dict[str, Any]) -> None:
        for et in data.get("event_types", []):
            with contextlib.suppress(ValueError):
                client.subscribed_events.discard(EventType(et))

        for name in data.get("collections", []):
            client.subscribed_collections.discard(name)

    async def _send_current_state(self, client: ClientConnection) -> None:
        """Send the latest collection snapshots and recent writes to a new client."""
        if not self._snapshots and not self._event_buffer:
            return

        state = {
            "type": "current_state",
            "collections": [event.to_dict() for event in self._snapshots.values()],
            "events": [event.to_dict() for event in self._event_buffer],
        }
        await client.websocket.send(json.dumps(state))

    def _should_send_to_client(self, client: ClientConnection, event: LedgerEvent) -> bool:
        """Clients without subscriptions receive everything."""
        if not client.subscribed_events and not client.subscribed_collections:
            return True

        if client.subscribed_events and event.event_type not in client.subscribed_events:
            return False

        if client.subscribed_collections:
            collection = getattr(event, "collection", None)
            if collection and collection not in client.subscribed_collections:
                return False

        return True

    def _record(self, event: LedgerEvent) -> None:
        if isinstance(event, CollectionEvent):
            self._snapshots[event.collection] = event
        else:
            self._event_buffer.append(event)

        for hook in self._event_hooks:
            try:
                hook(event)
            except Exception as e:
                self._logger.error("event_hook_error", error=str(e))

    def publish(self, event: LedgerEvent) -> None:
        """Publish an event to all subscribed clients.

        Non-blocking: delivery is scheduled on the running event loop.
        """
        self._record(event)

        if self._is_running:
            task = asyncio.create_task(self._broadcast(event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _broadcast(self, event: LedgerEvent) -> None:
        if not self._clients:
            return

        message = json.dumps(event.to_dict())

        tasks = [
            self._safe_send(client, message)
            for client in list(self._clients)
            if self._should_send_to_client(client, event)
        ]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _safe_send(self, client: ClientConnection, message: str) -> None:
        try:
            await client.websocket.send(message)
        except websockets.ConnectionClosed:
            self._clients.discard(client)
        except Exception as e:
            self._logger.error(
                "send_error",
                client_id=client.client_id,
                error=str(e),
            )

    async def broadcast_all(self, event: LedgerEvent) -> None:
        """Like publish(), but waits for delivery to finish."""
        self._record(event)
        await self._broadcast(event)

    def get_status(self) -> dict[str, Any]:
        return {
            "is_running": self._is_running,
            "host": self._host,
            "port": self._port,
            "client_count": len(self._clients),
            "buffer_size": len(self._event_buffer),
            "collections": sorted(self._snapshots),
            "clients": [
                {
                    "id": c.client_id,
                    "connected_at": c.connected_at.isoformat(),
                    "subscribed_events": len(c.subscribed_events),
                    "subscribed_collections": sorted(c.subscribed_collections),
                }
                for c in self._clients
            ],
        }


_publisher: ChangeFeedPublisher | None = None


def get_publisher() -> ChangeFeedPublisher:
    """Get or create the global change feed publisher."""
    global _publisher
    if _publisher is None:
        _publisher = ChangeFeedPublisher()
    return _publisher


async def start_publisher() -> ChangeFeedPublisher:
    publisher = get_publisher()
    await publisher.start()
    return publisher


async def stop_publisher() -> None:
    global _publisher
    if _publisher:
        await _publisher.stop()
        _publisher = None
