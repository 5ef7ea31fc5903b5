"""WebSocket handler for real-time sweep event streaming.

This module streams a session's sweep and task events to connected clients,
replaying recorded history first so a late subscriber sees the whole sweep.
"""

import asyncio
import contextlib

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from api.routes import get_orchestrator
from events import EventType

logger = structlog.get_logger(__name__)

websocket_router = APIRouter()


@websocket_router.websocket("/ws/{session_id}")
async def websocket_endpoint(websocket: WebSocket, session_id: str) -> None:
    """WebSocket endpoint for real-time event streaming.

    - Server -> Client: Sweep and task events as JSON
    - Client -> Server: ``{"type": "ping"}``, answered with a pong

    The stream ends when the client disconnects or the session is closed.

    Args:
        websocket: The WebSocket connection.
        session_id: The session ID to stream events for.
    """
    event_bus = get_orchestrator().event_bus
    if event_bus is None:
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    await websocket.accept()
    logger.info("websocket_connected", session_id=session_id)

    # Subscribe before reading history so nothing published in between is lost
    queue = event_bus.subscribe(session_id)

    try:
        last_replay_timestamp: float = 0.0
        for event in event_bus.get_event_history(session_id):
            await websocket.send_json(event.model_dump(mode="json"))
            last_replay_timestamp = event.timestamp

        async def send_events() -> None:
            while True:
                event = await queue.get()
                if event.type == EventType.SESSION_CLOSED:
                    logger.info("session_closed_sentinel", session_id=session_id)
                    await websocket.close()
                    return
                # Already sent during replay
                if event.timestamp <= last_replay_timestamp:
                    continue
                await websocket.send_json(event.model_dump(mode="json"))

        async def receive_commands() -> None:
            while True:
                data = await websocket.receive_json()
                if isinstance(data, dict) and data.get("type") == "ping":
                    await websocket.send_json(
                        {"type": "pong", "timestamp": data.get("timestamp")}
                    )
                else:
                    logger.warning("unknown_command", session_id=session_id)

        send_task = asyncio.create_task(send_events())
        receive_task = asyncio.create_task(receive_commands())

        done, pending = await asyncio.wait(
            [send_task, receive_task],
            return_when=asyncio.FIRST_COMPLETED,
        )
        for task in pending:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.error("websocket_error", session_id=session_id, error=str(exc))

    except WebSocketDisconnect:
        logger.info("websocket_disconnected", session_id=session_id)
    finally:
        event_bus.unsubscribe(session_id, queue)
        logger.info("websocket_cleanup_complete", session_id=session_id)
