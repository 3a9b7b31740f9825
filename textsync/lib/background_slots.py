"""
Background slot claiming for multi-worker deployments.

Every Gunicorn worker imports the app and runs init code, but the expiry sweeper
must only run in a subset of workers. Workers "claim" one of N background slots at
startup and only claimers start background loops.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import redis
from flask import Flask

from ..config import Config

_claims: dict[str, Optional[str]] = {}
_fds: dict[str, object] = {}


def _default_lock_dir(app: Flask) -> Path:
    configured = (app.config.get("BACKGROUND_TASK_LOCK_DIR") or "").strip()
    if configured:
        base = Path(configured)
        # If the user already points directly at a lock folder, don't nest again.
        return base if base.name in ("lock", "locks") else (base / "locks")

    version = app.config.get("VERSION", Config.VERSION)
    base = Path(Config._ROOT) / "instance" / str(version)
    return base / "locks"


def _claim_file_slot(app: Flask, task: str, nslots: int) -> Optional[str]:
    import fcntl

    lock_dir = _default_lock_dir(app)
    lock_dir.mkdir(parents=True, exist_ok=True)
    version = app.config.get("VERSION", Config.VERSION)
    app_name = app.config.get("APP_NAME", Config.APP_NAME)

    for i in range(1, nslots + 1):
        lock_path = lock_dir / f"{app_name}.{version}.{task}.bgslot.{i}.lock"
        fd = open(lock_path, "a+", encoding="utf-8")
        try:
            fcntl.flock(fd.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            fd.close()
            continue

        # Keep fd open for process lifetime to retain the lock.
        fd.seek(0)
        fd.truncate()
        fd.write(f"pid={os.getpid()} task={task}\n")
        fd.flush()

        _fds[task] = fd
        return f"file:{lock_path}"
    return None


def _claim_redis_slot(app: Flask, task: str, nslots: int) -> Optional[str]:
    with app.app_context():
        from .utils import get_redis_client

        r = get_redis_client()
    if not r:
        return None

    lease = max(5, int(app.config.get("BACKGROUND_TASK_LEASE_SECONDS", 60)))
    version = app.config.get("VERSION", Config.VERSION)
    app_name = app.config.get("APP_NAME", Config.APP_NAME)
    pid = str(os.getpid())

    for i in range(1, nslots + 1):
        key = f"textsync:{version}:{app_name}:{task}:bgslot:{i}"
        if r.set(key, pid, nx=True, ex=lease):
            return f"redis:{key}"
    return None


def claim_background_slot(
    app: Flask, *, task: str = "background", slots: Optional[int] = None
) -> Optional[str]:
    """
    Try to claim one of N background slots.

    Returns a string describing the claim (e.g. "file:/path/lock" or "redis:key") if
    successful, otherwise None. Local file locks are preferred (they auto-release when
    the worker exits); a Redis lease is used when the filesystem route is unavailable.
    """
    if task in _claims:
        return _claims[task]

    nslots = int(slots if slots is not None else app.config.get("BACKGROUND_TASK_SLOTS", 1))
    nslots = max(0, nslots)
    if nslots == 0:
        _claims[task] = None
        return None

    claim: Optional[str] = None
    try:
        claim = _claim_file_slot(app, task, nslots)
    except (ImportError, OSError):
        # No fcntl (non-POSIX) or an unusable lock dir: fall through to Redis.
        claim = None

    if claim is None:
        try:
            claim = _claim_redis_slot(app, task, nslots)
        except redis.RedisError:
            claim = None

    _claims[task] = claim
    return claim


def release_background_slots() -> None:
    """Drop file locks and forget claims (used on shutdown and by tests)."""
    for fd in _fds.values():
        try:
            fd.close()
        except OSError:
            pass
    _fds.clear()
    _claims.clear()
