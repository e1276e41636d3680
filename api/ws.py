"""WebSocket endpoint pushing encounter updates to connected clients."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from models.combat_state import CombatEncounter

logger = logging.getLogger(__name__)

router = APIRouter()

# Connected clients
connections: list[WebSocket] = []

# Broadcasts queued from sync code, held until they finish
pending_broadcasts: set[asyncio.Task] = set()


async def broadcast(message: dict[str, Any]) -> None:
    """Send a message to all connected WebSocket clients.

    Args:
        message: The JSON-serializable message to send.
    """
    disconnected = []
    for i, ws in enumerate(connections):
        try:
            await ws.send_json(message)
        except Exception:
            disconnected.append(i)
    # Clean up disconnected clients
    for i in reversed(disconnected):
        connections.pop(i)


def state_message(encounter: CombatEncounter | None) -> dict[str, Any]:
    """The message clients receive after every encounter change."""
    return {
        "type": "combat_state",
        "encounter": encounter.model_dump(mode="json") if encounter else None,
    }


def notify_state(encounter: CombatEncounter | None) -> None:
    """Engine listener: queue a broadcast of the new state.

    Does nothing without clients or outside the event loop thread.
    """
    if not connections:
        return
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.debug("No running event loop; skipping state broadcast")
        return
    task = loop.create_task(broadcast(state_message(encounter)))
    pending_broadcasts.add(task)
    task.add_done_callback(pending_broadcasts.discard)


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """Stream encounter updates until the client goes away."""
    await websocket.accept()
    connections.append(websocket)

    try:
        await websocket.send_json({"type": "connected"})
        await websocket.send_json(state_message(websocket.app.state.engine.state))

        # Keep connection alive, listen for client messages (optional)
        while True:
            try:
                await websocket.receive_text()
            except WebSocketDisconnect:
                break
    finally:
        if websocket in connections:
            connections.remove(websocket)
