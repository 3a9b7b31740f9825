"""
In-process change feed for message rows.

Every committed insert/update/delete on the ``message`` table is published to the
subscribers of the owning room. Socket.IO clients get the same events through
``room:{code}`` rooms (see ``helpers.feed``); this registry serves consumers that
live in the same process, such as ``sync.stores.LocalStore``.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

CHANGE_TYPES = ("insert", "update", "delete")

logger = logging.getLogger(__name__)


class Subscription:
    def __init__(self, feed: "ChangeFeed", room_id: str, callback: Callable[[dict], None]):
        self._feed = feed
        self.room_id = room_id
        self.callback = callback
        self.active = True

    def close(self) -> None:
        if not self.active:
            return
        self.active = False
        self._feed._remove(self)


class ChangeFeed:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[Subscription]] = {}

    def subscribe(self, room_id: str, callback: Callable[[dict], None]) -> Subscription:
        sub = Subscription(self, room_id, callback)
        with self._lock:
            self._subscribers.setdefault(room_id, []).append(sub)
        logger.debug("feed: subscribed to room %s", room_id)
        return sub

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._subscribers.get(sub.room_id)
            if not subs:
                return
            try:
                subs.remove(sub)
            except ValueError:
                pass
            if not subs:
                self._subscribers.pop(sub.room_id, None)
        logger.debug("feed: unsubscribed from room %s", sub.room_id)

    def subscriber_count(self, room_id: Optional[str] = None) -> int:
        with self._lock:
            if room_id is not None:
                return len(self._subscribers.get(room_id, ()))
            return sum(len(subs) for subs in self._subscribers.values())

    def publish(self, room_id: str, event: dict) -> int:
        """Deliver ``event`` to every live subscriber of ``room_id``; returns the delivery count."""
        if event.get("type") not in CHANGE_TYPES:
            raise ValueError(f"unknown change type: {event.get('type')!r}")
        with self._lock:
            subs = list(self._subscribers.get(room_id, ()))
        delivered = 0
        for sub in subs:
            if not sub.active:
                continue
            try:
                sub.callback(event)
                delivered += 1
            except Exception:
                # One broken subscriber must not starve the others
                logger.exception(
                    "feed: subscriber callback failed (room=%s) (type=%s)",
                    room_id,
                    event.get("type"),
                )
        return delivered
