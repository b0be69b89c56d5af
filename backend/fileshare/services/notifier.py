"""Change notifications pushed to connected clients.

The notifier is created at startup, stored on ``app.state.notifier`` and
injected into routes with ``get_notifier``. ``publish`` never waits for
delivery: it schedules the fan-out and returns.
"""
import asyncio
import json
import logging
from typing import Any, Protocol

from fastapi import Request, WebSocket

logger = logging.getLogger(__name__)

NEW_FILE = "NEW_FILE"
UPDATE_FILE = "UPDATE_FILE"
DELETE_FILE = "DELETE_FILE"

# Never broadcast to every connected client
_PRIVATE_FIELDS = {"pin", "key"}


def public_payload(file_data: dict) -> dict:
    return {k: v for k, v in file_data.items() if k not in _PRIVATE_FIELDS}


class ChangeNotifier(Protocol):
    def publish(self, event_kind: str, payload: dict) -> None:
        ...


class NullNotifier:
    """Used when no realtime transport is configured."""

    def publish(self, event_kind: str, payload: dict) -> None:
        logger.debug(f"No notifier configured, dropping {event_kind}")


class WebSocketNotifier:
    """Broadcasts JSON events to every connected WebSocket."""

    def __init__(self):
        self._clients: set[WebSocket] = set()
        self._tasks: set[asyncio.Task] = set()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._clients.add(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        self._clients.discard(websocket)

    def publish(self, event_kind: str, payload: dict) -> None:
        if not self._clients:
            return
        message = json.dumps(
            {"type": event_kind, "payload": public_payload(payload)}, default=_json_default
        )
        task = asyncio.get_running_loop().create_task(self._broadcast(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _broadcast(self, message: str) -> None:
        for client in list(self._clients):
            try:
                await client.send_text(message)
            except Exception as e:
                logger.warning(f"Dropping websocket client after send failure: {e}")
                self.disconnect(client)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        for client in list(self._clients):
            try:
                await client.close()
            except Exception:
                # Already gone; nothing left to release
                pass
        self._clients.clear()


def _json_default(value: Any) -> str:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def get_notifier(request: Request) -> ChangeNotifier:
    """FastAPI dependency returning the notifier configured at startup."""
    return getattr(request.app.state, "notifier", None) or NullNotifier()
