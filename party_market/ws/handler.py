"""Realtime room subscribers.

Clients open ``/ws?room_id=...`` and receive ``room_updated`` messages
whenever the room changes. The socket is read-only for room state: the only
message a client may send is a heartbeat.
"""
import json
import logging

from fastapi import WebSocket, WebSocketDisconnect

from party_market.database import async_session
from party_market.models.room import Room

log = logging.getLogger(__name__)

MSG_HEARTBEAT = "heartbeat"
MSG_HEARTBEAT_ACK = "heartbeat_ack"
MSG_ROOM_UPDATED = "room_updated"
MSG_ERROR = "error"


class RoomBroadcaster:
    """Keeps the open WebSockets of every room and fans messages out to them."""

    def __init__(self):
        self.rooms: dict[str, set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, room_id: str):
        await websocket.accept()
        self.rooms.setdefault(room_id, set()).add(websocket)

    def disconnect(self, websocket: WebSocket, room_id: str):
        sockets = self.rooms.get(room_id)
        if sockets is None:
            return
        sockets.discard(websocket)
        if not sockets:
            self.rooms.pop(room_id, None)

    def subscriber_count(self, room_id: str) -> int:
        return len(self.rooms.get(room_id, ()))

    async def broadcast(self, room_id: str, message: dict):
        for ws in list(self.rooms.get(room_id, ())):
            try:
                await ws.send_json(message)
            except Exception:
                log.debug("Dropping dead subscriber of room %s", room_id)
                self.disconnect(ws, room_id)


manager = RoomBroadcaster()


async def notify_room(room_id: str, reason: str, **extra) -> None:
    """Tell a room's subscribers to refresh. Call only after the commit."""
    await manager.broadcast(room_id, {"type": MSG_ROOM_UPDATED, "room_id": room_id,
                                      "reason": reason, **extra})


async def websocket_handler(websocket: WebSocket):
    room_id = websocket.query_params.get("room_id")
    if not room_id:
        await websocket.close(code=4002, reason="Missing room_id")
        return

    async with async_session() as db:
        room = await db.get(Room, room_id)
        if room is None:
            await websocket.close(code=4004, reason="Room not found")
            return

    await manager.connect(websocket, room_id)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json({"type": MSG_ERROR, "detail": "Invalid JSON"})
                continue

            if message.get("type") == MSG_HEARTBEAT:
                await websocket.send_json({"type": MSG_HEARTBEAT_ACK})
            else:
                await websocket.send_json(
                    {"type": MSG_ERROR, "detail": "Room state cannot be changed over this socket"}
                )
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket, room_id)
