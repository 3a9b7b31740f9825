from __future__ import annotations

from flask import Blueprint, jsonify

from ..lib.utils import now_ms
from ..schemas import RoomCreateRequest, RoomIdRequest, RoomUpdateRequest, parse_payload
from ..services import rooms as room_service
from .middleware import json_body

rooms_bp = Blueprint("rooms", __name__, url_prefix="/api")


@rooms_bp.post("/room.create")
def room_create():
    payload = parse_payload(RoomCreateRequest, json_body())
    room = room_service.create_room(payload.name, seed_message=payload.seed)
    return (
        jsonify({**room.to_dict(), "messages": [m.to_dict() for m in room.messages]}),
        201,
    )


@rooms_bp.post("/room.get")
def room_get():
    payload = parse_payload(RoomIdRequest, json_body())
    room, messages = room_service.get_room_with_messages(payload.id)
    expired = room_service.is_expired(room)
    return jsonify(
        {
            "room": room.to_dict(),
            # Expired rooms are still readable; the client shows an "expired" view instead
            "messages": [] if expired else [m.to_dict() for m in messages],
            "is_expired": expired,
            "serverNowMs": now_ms(),
        }
    )


@rooms_bp.get("/rooms")
def room_list():
    return jsonify([room.to_dict() for room in room_service.list_rooms()])


@rooms_bp.post("/room.update")
def room_update():
    payload = parse_payload(RoomUpdateRequest, json_body())
    room = room_service.rename_room(payload.id, payload.name)
    return jsonify(room.to_dict())


@rooms_bp.post("/room.touch")
def room_touch():
    payload = parse_payload(RoomIdRequest, json_body())
    room = room_service.touch_room(payload.id)
    return jsonify(room.to_dict() if room else None)


@rooms_bp.post("/room.delete")
def room_delete():
    payload = parse_payload(RoomIdRequest, json_body())
    return jsonify(room_service.delete_room(payload.id))
