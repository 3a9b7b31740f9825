# Future annotations for forward references and clearer typing
from __future__ import annotations

import logging
# Cryptographically secure choice for join codes
import secrets
from datetime import datetime, timezone
from typing import Callable, Optional

from flask import current_app
from sqlalchemy import func

from ..errors import Conflict, ExhaustedRetries, NotFound, ValidationError
from ..extensions import db
from ..helpers.feed import emit_room_deleted, publish_change, publish_deletes
from ..lib.utils import commit_or_raise, now_ms, store_errors
from ..models import Message, Room
from ..schemas import RoomCreateRequest, RoomUpdateRequest, is_room_code, parse_payload
from .messages import build_message

logger = logging.getLogger(__name__)


# Draw a join code uniformly from the configured alphabet
def generate_room_code(length: Optional[int] = None, alphabet: Optional[str] = None) -> str:
    length = length or current_app.config["ROOM_CODE_LENGTH"]
    alphabet = alphabet or current_app.config["ROOM_CODE_ALPHABET"]
    return "".join(secrets.choice(alphabet) for _ in range(length))


def _validate_code(room_id) -> str:
    if not is_room_code(room_id):
        raise ValidationError("room code must be 6 uppercase letters or digits")
    return room_id


def _insert_room(code: str, name: str, seed_message: bool) -> tuple[Room, Optional[Message]]:
    with store_errors(db.session):
        if db.session.get(Room, code) is not None:
            raise Conflict(f"room code {code} already taken")
        room = Room(id=code, name=name)
        db.session.add(room)
        seeded = None
        if seed_message:
            seeded = build_message(code)
            db.session.add(seeded)
    # A concurrent insert of the same code surfaces here as a unique violation (Conflict)
    commit_or_raise(db.session)
    return room, seeded


def create_room(
    name: str,
    *,
    seed_message: bool = False,
    code_factory: Optional[Callable[[], str]] = None,
) -> Room:
    """Create a room under a fresh join code.

    Collisions with existing codes are retried with a new code up to
    ROOM_CREATE_MAX_ATTEMPTS times before giving up with ``ExhaustedRetries``.
    """
    payload = parse_payload(RoomCreateRequest, {"name": name, "seed": seed_message})
    make_code = code_factory or generate_room_code
    max_attempts = int(current_app.config["ROOM_CREATE_MAX_ATTEMPTS"])

    for attempt in range(1, max_attempts + 1):
        code = make_code()
        if not is_room_code(code):
            raise ValueError(f"code factory produced an invalid room code: {code!r}")
        try:
            room, seeded = _insert_room(code, payload.name, payload.seed)
        except Conflict:
            logger.info(
                "create_room: code collision (code=%s) (attempt=%s/%s)",
                code,
                attempt,
                max_attempts,
            )
            continue

        logger.info("create_room: created room %s (attempts=%s)", room.id, attempt)
        if seeded is not None:
            publish_change(room.id, "insert", seeded.to_dict())
        return room

    logger.warning("create_room: exhausted %s attempts", max_attempts)
    raise ExhaustedRetries(f"failed to create room after {max_attempts} attempts")


def get_room(room_id: str) -> Room:
    """Fetch a room by exact code. Expired rooms are returned as-is; callers check age."""
    code = _validate_code(room_id)
    with store_errors(db.session):
        room = db.session.get(Room, code)
    if not room:
        raise NotFound(f"room {code} not found")
    return room


def get_room_with_messages(room_id: str) -> tuple[Room, list[Message]]:
    room = get_room(room_id)
    with store_errors(db.session):
        messages = (
            Message.query.filter_by(room_id=room.id)
            .order_by(Message.created_at.asc())
            .all()
        )
    return room, messages


def list_rooms() -> list[Room]:
    with store_errors(db.session):
        return Room.query.order_by(Room.created_at.desc()).all()


def rename_room(room_id: str, name: Optional[str]) -> Room:
    payload = parse_payload(RoomUpdateRequest, {"id": room_id, "name": name})
    if payload.name is None:
        raise ValidationError("no fields provided to update")
    room = get_room(payload.id)
    room.name = payload.name
    commit_or_raise(db.session)
    return room


def touch_room(room_id: str) -> Optional[Room]:
    """Bump ``updated_at``; returns None when the room is gone."""
    code = _validate_code(room_id)
    with store_errors(db.session):
        room = db.session.get(Room, code)
    if not room:
        return None
    room.updated_at = now_ms()
    commit_or_raise(db.session)
    return room


def delete_room(room_id: str) -> dict:
    """Delete a room and, by cascade in the same transaction, its messages.

    Returns the deleted room's last state.
    """
    room = get_room(room_id)
    snapshot = room.to_dict()
    with store_errors(db.session):
        cascaded = [m.to_dict() for m in room.messages]
        db.session.delete(room)
    commit_or_raise(db.session)

    logger.info("delete_room: deleted room %s (%s messages)", snapshot["id"], len(cascaded))
    publish_deletes(snapshot["id"], cascaded)
    emit_room_deleted(snapshot["id"])
    return snapshot


def expiry_cutoff(now: Optional[int] = None) -> int:
    ttl_ms = int(current_app.config["ROOM_TTL_SECONDS"]) * 1000
    return (now if now is not None else now_ms()) - ttl_ms


def is_expired(room: Room, now: Optional[int] = None) -> bool:
    return room.is_expired(int(current_app.config["ROOM_TTL_SECONDS"]), now)


def _iso(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()


def room_stats(now: Optional[int] = None) -> dict:
    now = now if now is not None else now_ms()
    cutoff = expiry_cutoff(now)
    with store_errors(db.session):
        total = db.session.query(func.count(Room.id)).scalar() or 0
        expired = (
            db.session.query(func.count(Room.id))
            .filter(Room.created_at < cutoff)
            .scalar()
            or 0
        )
    return {
        "total_rooms": total,
        "expired_rooms": expired,
        "timestamp": _iso(now),
        "cutoff_time": _iso(cutoff),
    }
