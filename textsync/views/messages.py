from __future__ import annotations

from flask import Blueprint, jsonify

from ..schemas import (
    MessageCreateRequest,
    MessageIdRequest,
    MessageUpdateRequest,
    RoomMessagesRequest,
    parse_payload,
)
from ..services import messages as message_service
from .middleware import json_body

messages_bp = Blueprint("messages", __name__, url_prefix="/api")


@messages_bp.post("/messages.list")
def messages_list():
    payload = parse_payload(RoomMessagesRequest, json_body())
    return jsonify(
        [m.to_dict() for m in message_service.get_messages_by_room(payload.room_id)]
    )


@messages_bp.post("/message.get")
def message_get():
    payload = parse_payload(MessageIdRequest, json_body())
    return jsonify(message_service.get_message(payload.id).to_dict())


@messages_bp.post("/message.create")
def message_create():
    payload = parse_payload(MessageCreateRequest, json_body())
    message = message_service.create_message(
        payload.room_id, title=payload.title, message_id=payload.id
    )
    return jsonify(message.to_dict()), 201


@messages_bp.post("/message.update")
def message_update():
    payload = parse_payload(MessageUpdateRequest, json_body())
    message = message_service.update_message(
        payload.id, title=payload.title, content=payload.content
    )
    return jsonify(message.to_dict())


@messages_bp.post("/message.delete")
def message_delete():
    payload = parse_payload(MessageIdRequest, json_body())
    return jsonify(message_service.delete_message(payload.id))
