from __future__ import annotations

import logging

from flask import request
from flask_socketio import join_room

from ...extensions import socketio
from ...helpers.feed import room_channel
from ...lib.utils import now_ms
from ...models import Room
from ...services import rooms as room_service
from ..middleware import require_room_by_code


def register() -> None:
    @socketio.on("room.subscribe")
    @require_room_by_code
    def _on_room_subscribe(room: Room, data: dict):
        try:
            # Join first so no change committed after the snapshot query is missed
            join_room(room_channel(room.id))
            room, messages = room_service.get_room_with_messages(room.id)
            expired = room_service.is_expired(room)
            socketio.emit(
                "room.snapshot",
                {
                    "code": room.id,
                    "room": room.to_dict(),
                    "messages": [] if expired else [m.to_dict() for m in messages],
                    "is_expired": expired,
                    "serverNowMs": now_ms(),
                    "clientTimestamp": data.get("clientTimestamp"),
                },
                to=request.sid,
            )
        except Exception:
            logging.exception("room.subscribe handler error (room=%s)", room.id)
            error = {"code": room.id, "error": "store_unavailable", "message": "Failed to subscribe"}
            socketio.emit("room.error", error, to=request.sid)
            return {"ok": False, **error}
        # Acked only once the socket is in the room channel
        return {"ok": True, "code": room.id}
