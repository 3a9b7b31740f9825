from __future__ import annotations

import logging
from typing import Iterable

from ..extensions import change_feed, socketio

logger = logging.getLogger(__name__)


def room_channel(code: str) -> str:
    """Socket.IO room name that carries the change feed of one room."""
    return f"room:{code}"


def publish_change(room_id: str, change_type: str, row: dict) -> None:
    """Push a committed message row change to socket subscribers and in-process listeners."""
    event = {"type": change_type, "row": row}
    try:
        socketio.emit(
            "messages.change",
            {"code": room_id, **event},
            to=room_channel(room_id),
        )
    except Exception:
        logger.exception(
            "publish_change: socket emit failed (room=%s) (type=%s) (id=%s)",
            room_id,
            change_type,
            row.get("id"),
        )
    change_feed.publish(room_id, event)


def publish_deletes(room_id: str, rows: Iterable[dict]) -> None:
    for row in rows:
        publish_change(room_id, "delete", row)


def emit_room_deleted(room_id: str, reason: str = "deleted") -> None:
    try:
        socketio.emit(
            "room.deleted",
            {"code": room_id, "reason": reason},
            to=room_channel(room_id),
        )
    except Exception:
        logger.exception("emit_room_deleted: socket emit failed (room=%s)", room_id)
