from __future__ import annotations

from typing import Optional

from flask import request
from flask_socketio import leave_room

from ...extensions import socketio
from ...helpers.feed import room_channel
from ...schemas import is_room_code


def register() -> None:
    @socketio.on("room.unsubscribe")
    def _on_room_unsubscribe(data: Optional[dict] = None):
        # The room may already be gone (deleted or swept); leaving is still valid
        code = (data or {}).get("code")
        if not is_room_code(code):
            return
        leave_room(room_channel(code))
        socketio.emit("room.unsubscribed", {"code": code}, to=request.sid)
