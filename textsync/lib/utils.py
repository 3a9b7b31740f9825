# Enable postponed annotations for forward references
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Optional

import redis
from flask import current_app
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError

from ..errors import Conflict, StoreUnavailable

_redis_clients: dict[str, Optional[redis.Redis]] = {}


# Return current epoch time in milliseconds
def now_ms() -> int:
    return int(time.time() * 1000)


# Commit a SQLAlchemy session, translating store failures into the app error taxonomy
def commit_or_raise(session) -> None:
    """Commit the session; roll back and raise ``Conflict`` or ``StoreUnavailable`` on failure.

    Unlike a lock-retry loop this never retries: transient store failures go straight
    back to the caller, which owns the retry affordance.
    """
    try:
        session.commit()
    except IntegrityError as e:
        _rollback_quietly(session)
        raise Conflict(str(e.orig) if e.orig is not None else str(e)) from e
    except (DBAPIError, SQLAlchemyError) as e:
        _rollback_quietly(session)
        raise StoreUnavailable(str(e)) from e


@contextmanager
def store_errors(session):
    """Translate SQLAlchemy failures inside the block into ``StoreUnavailable``."""
    try:
        yield
    except SQLAlchemyError as e:
        _rollback_quietly(session)
        raise StoreUnavailable(str(e)) from e


def _rollback_quietly(session) -> None:
    try:
        session.rollback()
    except SQLAlchemyError:
        logging.exception("rollback after failed commit also failed")


# Resolve a Redis client from REDIS_URL (or the Socket.IO message queue DSN); None when unset/unreachable
def get_redis_client() -> Optional[redis.Redis]:
    url = current_app.config.get("REDIS_URL") or current_app.config.get(
        "SOCKETIO_MESSAGE_QUEUE", ""
    )
    if not url or not url.startswith(("redis://", "rediss://", "unix://")):
        return None
    if url in _redis_clients:
        return _redis_clients[url]
    client: Optional[redis.Redis]
    try:
        client = redis.Redis.from_url(url, decode_responses=True, socket_connect_timeout=2)
        client.ping()
    except redis.RedisError as e:
        logging.warning("get_redis_client: Redis connection failed: %s", e)
        client = None
    _redis_clients[url] = client
    return client
