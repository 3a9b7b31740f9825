from __future__ import annotations

import logging
from typing import Optional

from flask import current_app

from ..errors import Conflict, NotFound
from ..extensions import db
from ..helpers.feed import publish_change
from ..lib.utils import commit_or_raise, store_errors
from ..models import Message, Room
from ..schemas import (
    MessageCreateRequest,
    MessageIdRequest,
    MessageUpdateRequest,
    RoomMessagesRequest,
    parse_payload,
)

logger = logging.getLogger(__name__)


def build_message(room_id: str, title: Optional[str] = None, message_id: Optional[str] = None) -> Message:
    """Unsaved message with empty content and the placeholder title when none is given."""
    message = Message(
        room_id=room_id,
        title=title or current_app.config["DEFAULT_MESSAGE_TITLE"],
        content="",
    )
    if message_id:
        message.id = message_id
    return message


def get_messages_by_room(room_id: str) -> list[Message]:
    payload = parse_payload(RoomMessagesRequest, {"room_id": room_id})
    with store_errors(db.session):
        return (
            Message.query.filter_by(room_id=payload.room_id)
            .order_by(Message.created_at.asc())
            .all()
        )


def get_message(message_id: str) -> Message:
    payload = parse_payload(MessageIdRequest, {"id": message_id})
    with store_errors(db.session):
        message = db.session.get(Message, payload.id)
    if not message:
        raise NotFound(f"message {payload.id} not found")
    return message


def create_message(
    room_id: str, title: Optional[str] = None, message_id: Optional[str] = None
) -> Message:
    payload = parse_payload(
        MessageCreateRequest, {"room_id": room_id, "title": title, "id": message_id}
    )
    with store_errors(db.session):
        if not db.session.get(Room, payload.room_id):
            raise NotFound(f"room {payload.room_id} not found")
        if payload.id and db.session.get(Message, payload.id):
            raise Conflict(f"message {payload.id} already exists")
        message = build_message(payload.room_id, payload.title, payload.id)
        db.session.add(message)
    commit_or_raise(db.session)

    row = message.to_dict()
    logger.debug("create_message: created %s in room %s", row["id"], row["room_id"])
    publish_change(row["room_id"], "insert", row)
    return message


def update_message(
    message_id: str, title: Optional[str] = None, content: Optional[str] = None
) -> Message:
    """Partial update; omitting both fields is rejected rather than treated as a no-op."""
    payload = parse_payload(
        MessageUpdateRequest, {"id": message_id, "title": title, "content": content}
    )
    with store_errors(db.session):
        message = db.session.get(Message, payload.id)
    if not message:
        raise NotFound(f"message {payload.id} not found")

    for field, value in payload.changes().items():
        setattr(message, field, value)
    commit_or_raise(db.session)

    row = message.to_dict()
    publish_change(row["room_id"], "update", row)
    return message


def rename_message(message_id: str, title: str) -> Message:
    return update_message(message_id, title=title)


def delete_message(message_id: str) -> dict:
    """Delete a message and return its last state."""
    message = get_message(message_id)
    row = message.to_dict()
    with store_errors(db.session):
        db.session.delete(message)
    commit_or_raise(db.session)

    publish_change(row["room_id"], "delete", row)
    return row
