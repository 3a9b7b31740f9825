from __future__ import annotations

from flask import Blueprint, jsonify

from ..services import rooms as room_service
from ..services.sweeper import trigger_cleanup
from .middleware import require_admin

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.post("/cleanup")
@require_admin
def cleanup():
    result = trigger_cleanup()
    return jsonify(result), (200 if result["success"] else 503)


@admin_bp.get("/room.stats")
@require_admin
def stats():
    return jsonify(room_service.room_stats())
