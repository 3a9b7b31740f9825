from __future__ import annotations

import hmac
import logging
from functools import wraps
from typing import Callable, Optional

from flask import current_app, jsonify, request

from ..errors import TextSyncError
from ..extensions import socketio
from ..services.rooms import get_room


def json_body() -> dict:
    """Request JSON as a dict; a missing or non-object body reads as empty."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def require_admin(handler: Callable) -> Callable:
    """
    Guard for admin endpoints. When ADMIN_TOKEN is configured the request must carry
    ``Authorization: Bearer <token>``; otherwise the endpoint is open (local/dev use).
    """
    @wraps(handler)
    def wrapper(*args, **kwargs):
        expected = current_app.config.get("ADMIN_TOKEN") or ""
        if expected:
            auth = request.headers.get("Authorization", "")
            token = auth.split(" ", 1)[1].strip() if auth.lower().startswith("bearer ") else ""
            if not hmac.compare_digest(token, expected):
                return jsonify({"error": "unauthorized"}), 401
        return handler(*args, **kwargs)
    return wrapper


def _event_name() -> Optional[str]:
    event = getattr(request, "event", None)
    if isinstance(event, dict):
        return event.get("message")
    return None


def require_room_by_code(handler: Callable) -> Callable:
    """
    Decorator for socket handlers that require a room identified by ``code`` in data.

    Validates the code, loads the room and passes (room, data) to the handler. On a
    missing/malformed code or unknown room a ``room.error`` is sent back to the caller,
    the handler is skipped and the same error is returned as the ack with ``ok: False``.

    Usage:
        @socketio.on("room.subscribe")
        @require_room_by_code
        def _on_subscribe(room, data):
            ...
    """
    @wraps(handler)
    def wrapper(data: Optional[dict] = None):
        code = (data or {}).get("code")
        try:
            room = get_room(code)
        except TextSyncError as e:
            logging.warning(
                "require_room_by_code: rejected code=%s (handler=%s, event=%s, error=%s)",
                code,
                handler.__name__,
                _event_name(),
                e.code,
            )
            error = {"code": code, "error": e.code, "message": e.message}
            socketio.emit("room.error", error, to=request.sid)
            return {"ok": False, **error}
        return handler(room, data or {})
    return wrapper
