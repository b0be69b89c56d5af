"""WebSocket endpoint for file change events."""
import logging
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from fileshare.services.notifier import WebSocketNotifier

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def change_events(websocket: WebSocket):
    """Push NEW_FILE / UPDATE_FILE / DELETE_FILE events to the client."""
    notifier = getattr(websocket.app.state, "notifier", None)
    if not isinstance(notifier, WebSocketNotifier):
        await websocket.close(code=1013)
        return
    await notifier.connect(websocket)
    try:
        while True:
            # Clients only listen; drain anything they send
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        notifier.disconnect(websocket)
