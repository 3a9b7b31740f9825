"""
Expiry sweeper: removes rooms (and, by cascade, their messages) older than the room TTL.

Runs on a recurring background loop in exactly one worker and can be triggered on
demand through the admin endpoint or ``flask cleanup-rooms``.
"""
from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Optional

import redis
from flask import Flask, current_app

from ..errors import TextSyncError
from ..extensions import db, socketio
from ..helpers.feed import emit_room_deleted, publish_deletes
from ..lib.background_slots import claim_background_slot
from ..lib.utils import commit_or_raise, get_redis_client, store_errors
from ..models import Message, Room
from .rooms import expiry_cutoff

logger = logging.getLogger(__name__)

SWEEP_LOCK_KEY = "textsync:sweep:lock"

# Guard to ensure we start only one sweeper loop per process
_sweeper_started: bool = False


def sweep(now: Optional[int] = None) -> dict:
    """Delete every room created before ``now - ROOM_TTL_SECONDS`` in one transaction.

    Returns ``{"deleted_count", "deleted_rooms": [{id, name, created_at}]}``. Running it
    again right away finds nothing. Store failures roll back and propagate.
    """
    cutoff = expiry_cutoff(now)
    with store_errors(db.session):
        expired = (
            Room.query.filter(Room.created_at < cutoff)
            .order_by(Room.created_at.asc())
            .all()
        )
    if not expired:
        logger.debug("sweep: no expired rooms (cutoff=%s)", cutoff)
        return {"deleted_count": 0, "deleted_rooms": []}

    summaries = [room.summary() for room in expired]
    ids = [s["id"] for s in summaries]

    with store_errors(db.session):
        cascaded = [
            m.to_dict()
            for m in Message.query.filter(Message.room_id.in_(ids)).all()
        ]
        # Children first; the FK cascade is not relied on here
        db.session.query(Message).filter(Message.room_id.in_(ids)).delete(
            synchronize_session=False
        )
        deleted = (
            db.session.query(Room)
            .filter(Room.id.in_(ids), Room.created_at < cutoff)
            .delete(synchronize_session=False)
        )
    commit_or_raise(db.session)
    db.session.expire_all()

    logger.info(
        "sweep: deleted %s expired rooms: %s",
        deleted,
        [{"id": s["id"], "name": s["name"]} for s in summaries],
    )

    by_room: dict[str, list[dict]] = {}
    for row in cascaded:
        by_room.setdefault(row["room_id"], []).append(row)
    for room_id in ids:
        publish_deletes(room_id, by_room.get(room_id, []))
        emit_room_deleted(room_id, reason="expired")

    return {"deleted_count": deleted, "deleted_rooms": summaries}


def cleanup_expired_rooms(now: Optional[int] = None) -> dict:
    """Scheduled entry point: sweep under the cross-host lease when Redis is available."""
    logger.info("cleanup: starting scheduled cleanup of expired rooms")
    r = get_redis_client()
    token = str(time.time())
    if r is not None:
        try:
            lease = int(current_app.config.get("SWEEP_LOCK_SECONDS", 120))
            if not r.set(SWEEP_LOCK_KEY, token, nx=True, ex=lease):
                logger.info("cleanup: another sweep holds the lease, skipping")
                return {"deleted_count": 0, "deleted_rooms": [], "skipped": True}
        except redis.RedisError as e:
            logger.warning("cleanup: Redis lease unavailable, sweeping without it: %s", e)
            r = None

    try:
        result = sweep(now)
    finally:
        if r is not None:
            try:
                if r.get(SWEEP_LOCK_KEY) == token:
                    r.delete(SWEEP_LOCK_KEY)
            except redis.RedisError as e:
                logger.warning("cleanup: failed to release sweep lease: %s", e)

    if result["deleted_count"] > 0:
        logger.info("cleanup: deleted %s expired rooms", result["deleted_count"])
    else:
        logger.info("cleanup: no expired rooms found")
    return result


def trigger_cleanup(now: Optional[int] = None) -> dict:
    """Manual trigger for operational testing; reports failure instead of raising."""
    timestamp = datetime.now(timezone.utc).isoformat()
    logger.info("cleanup: manual trigger at %s", timestamp)
    try:
        result = cleanup_expired_rooms(now)
    except TextSyncError as e:
        logger.exception("cleanup: manual cleanup failed")
        return {"success": False, "timestamp": timestamp, "error": e.message}
    return {"success": True, "timestamp": timestamp, **result}


def _sweep_forever(app: Flask) -> None:
    """Background loop that sweeps expired rooms every SWEEP_INTERVAL_SECONDS."""
    with app.app_context():
        interval = app.config.get("SWEEP_INTERVAL_SECONDS", 3600)

    while True:
        start_time = time.perf_counter_ns()
        try:
            with app.app_context():
                cleanup_expired_rooms()
        except Exception:
            # Keep the loop alive; the next cycle retries with a fresh session
            logger.exception("sweeper: error during sweep cycle")
            with app.app_context():
                db.session.remove()

        elapsed_time = time.perf_counter_ns() - start_time
        logger.debug("sweeper: cycle completed in %s milliseconds", elapsed_time / 1000000)

        socketio.sleep(interval)


def start_sweeper_if_needed(app: Flask) -> Optional[str]:
    """Start the sweeper loop if this worker claims the sweeper slot; returns the claim."""
    global _sweeper_started
    if _sweeper_started:
        return None

    # Only one worker should sweep even when several background workers run.
    slot = claim_background_slot(app, task="sweeper", slots=1)
    if not slot:
        app.logger.info(
            "sweeper: disabled in this worker (no slot claimed; BACKGROUND_TASK_SLOTS=%s)",
            app.config.get("BACKGROUND_TASK_SLOTS"),
        )
        return None

    socketio.start_background_task(_sweep_forever, app)
    _sweeper_started = True
    app.logger.info("sweeper: started background sweeps (slot=%s)", slot)
    return slot
