"""
Per-room message cache kept consistent with the store through its change feed.

Local mutations are applied optimistically and then persisted. While a local write
for a message is in flight, feed events for that message are dropped; once the write
resolves the entry takes the store's response as its confirmed state. Conflicts are
last-write-wins by whole-field replacement.
"""
from __future__ import annotations

import itertools
import logging
import threading
import uuid
from typing import Callable, Optional

from ..config import Config
from ..errors import Conflict, NotFound, ValidationError
from ..lib.utils import now_ms
from ..schemas import is_room_code

logger = logging.getLogger(__name__)

UNINITIALIZED = "uninitialized"
LIVE = "live"
CLOSED = "closed"


class CacheEntry:
    """One cached message: the store-confirmed row plus an optional local overlay."""

    __slots__ = ("confirmed", "pending", "pending_since", "inflight", "order")

    def __init__(self, confirmed: Optional[dict], order: int):
        # Last row confirmed by the store; None for an optimistic insert
        self.confirmed = dict(confirmed) if confirmed is not None else None
        # Fields written locally whose persistence has not resolved yet
        self.pending: Optional[dict] = None
        self.pending_since: Optional[int] = None
        self.inflight = 0
        self.order = order

    @property
    def state(self) -> str:
        return "pending" if self.pending is not None else "confirmed"

    def begin_write(self, fields: dict, now: int) -> None:
        if self.pending is None:
            self.pending = {}
            self.pending_since = now
        self.pending.update(fields)
        self.inflight += 1

    def accept(self, row: dict) -> bool:
        """Take ``row`` as confirmed unless it is older than what we already hold."""
        if self.confirmed is not None and int(row.get("updated_at") or 0) < int(
            self.confirmed.get("updated_at") or 0
        ):
            return False
        self.confirmed = dict(row)
        return True

    def settle(self, row: Optional[dict] = None) -> None:
        """Resolve one in-flight write; the overlay is dropped once none remain."""
        if row is not None:
            self.accept(row)
        self.inflight = max(0, self.inflight - 1)
        if self.inflight == 0:
            self.pending = None
            self.pending_since = None

    def view(self) -> dict:
        row = dict(self.confirmed or {})
        if self.pending:
            row.update(self.pending)
        return row


def apply_feed_event(entries: dict, event: dict) -> bool:
    """Apply one feed event to a keyed cache; returns True when the cache changed.

    ``insert`` and ``update`` replace the confirmed row (adding the key when missing),
    ``delete`` removes the key. Events for keys with a pending local write are dropped.
    Re-applying the same event leaves the cache unchanged.
    """
    change_type = event.get("type")
    row = event.get("row") or {}
    key = row.get("id")
    if not key:
        return False

    entry = entries.get(key)
    if entry is not None and entry.pending is not None:
        logger.debug("feed: dropping %s for %s while a local write is pending", change_type, key)
        return False

    if change_type in ("insert", "update"):
        if entry is None:
            entries[key] = CacheEntry(row, order=len(entries))
            return True
        before = entry.confirmed
        entry.accept(row)
        return entry.confirmed != before
    if change_type == "delete":
        return entries.pop(key, None) is not None
    logger.warning("feed: ignoring unknown change type %r", change_type)
    return False


class MessageSyncEngine:
    def __init__(self, room_id: str, store, *, default_title: Optional[str] = None):
        if not is_room_code(room_id):
            raise ValidationError("room code must be 6 uppercase letters or digits")
        self.room_id = room_id
        self.store = store
        self.default_title = default_title or Config.DEFAULT_MESSAGE_TITLE
        self.state = UNINITIALIZED

        self._lock = threading.RLock()
        self._entries: dict[str, CacheEntry] = {}
        # Entries removed locally whose delete has not resolved yet
        self._deleting: dict[str, CacheEntry] = {}
        self._order = itertools.count()
        self._backlog: Optional[list[dict]] = None
        self._subscription = None
        self._listeners: list[Callable[[list[dict]], None]] = []

    def __enter__(self) -> "MessageSyncEngine":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    # -- lifecycle ---------------------------------------------------------

    def open(self) -> "MessageSyncEngine":
        """Subscribe to the room feed, hydrate from the store and go live."""
        with self._lock:
            if self.state != UNINITIALIZED:
                raise RuntimeError(f"engine for room {self.room_id} is already {self.state}")
            # Events that arrive before the snapshot is in are replayed after it
            self._backlog = []

        self._subscription = self.store.subscribe(self.room_id, self.apply_feed_event)
        try:
            rows = self.store.list_messages(self.room_id)
        except Exception:
            self._subscription.close()
            self._subscription = None
            with self._lock:
                self._backlog = None
            raise

        with self._lock:
            if self.state == CLOSED:
                return self
            for row in rows:
                self._entries[row["id"]] = CacheEntry(row, next(self._order))
            backlog, self._backlog = self._backlog or [], None
            self.state = LIVE
            for event in backlog:
                self._apply(event)
        logger.debug("engine: room %s live with %s messages", self.room_id, len(rows))
        self._notify()
        return self

    def close(self) -> None:
        """Stop applying feed events and drop the cache. In-flight writes still finish."""
        with self._lock:
            if self.state == CLOSED:
                return
            self.state = CLOSED
            self._entries.clear()
            self._deleting.clear()
            self._backlog = None
            self._listeners.clear()
            subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.close()
        logger.debug("engine: room %s closed", self.room_id)

    def on_change(self, callback: Callable[[list[dict]], None]) -> Callable[[], None]:
        """Register a listener called with the message list after every cache change."""
        with self._lock:
            self._listeners.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    # -- feed --------------------------------------------------------------

    def apply_feed_event(self, event: dict) -> bool:
        with self._lock:
            if self.state == CLOSED:
                return False
            if self._backlog is not None:
                self._backlog.append(event)
                return False
            if self.state != LIVE:
                return False
            changed = self._apply(event)
        if changed:
            self._notify()
        return changed

    def _apply(self, event: dict) -> bool:
        row = event.get("row") or {}
        if row.get("room_id") != self.room_id:
            return False
        if row.get("id") in self._deleting:
            return False
        if event.get("type") in ("insert", "update") and row.get("id") not in self._entries:
            self._entries[row["id"]] = CacheEntry(row, next(self._order))
            return True
        return apply_feed_event(self._entries, event)

    # -- reads -------------------------------------------------------------

    def _sorted_entries(self) -> list[CacheEntry]:
        return sorted(
            self._entries.values(),
            key=lambda e: (int(e.view().get("created_at") or 0), e.order),
        )

    def list_messages(self) -> list[dict]:
        """Messages in creation order, local pending edits included."""
        with self._lock:
            return [entry.view() for entry in self._sorted_entries()]

    def get_message(self, message_id: str) -> dict:
        with self._lock:
            entry = self._entries.get(message_id)
            if entry is None:
                raise NotFound(f"message {message_id} not found")
            return entry.view()

    def entry_state(self, message_id: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(message_id)
            return entry.state if entry is not None else None

    def default_selection(self) -> Optional[str]:
        """First message by creation order, or None for an empty room."""
        with self._lock:
            entries = self._sorted_entries()
            return entries[0].view()["id"] if entries else None

    # -- writes ------------------------------------------------------------

    def _require_live(self) -> None:
        if self.state != LIVE:
            raise RuntimeError(f"engine for room {self.room_id} is {self.state}")

    def create_message(self, title: Optional[str] = None, message_id: Optional[str] = None) -> dict:
        """Insert optimistically, persist, then settle on the store's row."""
        self._require_live()
        message_id = message_id or str(uuid.uuid4())
        now = now_ms()
        optimistic = {
            "id": message_id,
            "room_id": self.room_id,
            "title": title or self.default_title,
            "content": "",
            "created_at": now,
            "updated_at": now,
        }
        with self._lock:
            if message_id in self._entries:
                raise Conflict(f"message {message_id} already exists")
            entry = CacheEntry(None, next(self._order))
            entry.begin_write(optimistic, now)
            self._entries[message_id] = entry
        self._notify()

        try:
            row = self.store.create_message(self.room_id, title=title, message_id=message_id)
        except Exception:
            with self._lock:
                if self._entries.get(message_id) is entry:
                    del self._entries[message_id]
            self._notify()
            raise

        with self._lock:
            if self.state == LIVE and self._entries.get(message_id) is entry:
                entry.settle(row)
        self._notify()
        return row

    def update_message(
        self, message_id: str, title: Optional[str] = None, content: Optional[str] = None
    ) -> dict:
        if title is None and content is None:
            raise ValidationError("no fields provided to update")
        self._require_live()
        fields = {}
        if title is not None:
            fields["title"] = title
        if content is not None:
            fields["content"] = content

        with self._lock:
            entry = self._entries.get(message_id)
            if entry is None:
                raise NotFound(f"message {message_id} not found")
            entry.begin_write(fields, now_ms())
        self._notify()

        try:
            row = self.store.update_message(message_id, title=title, content=content)
        except NotFound:
            # Deleted elsewhere before our write landed
            with self._lock:
                if self._entries.get(message_id) is entry:
                    del self._entries[message_id]
            self._notify()
            raise
        except Exception:
            with self._lock:
                if self._entries.get(message_id) is entry:
                    entry.settle()
            self._notify()
            raise

        with self._lock:
            if self.state == LIVE and self._entries.get(message_id) is entry:
                entry.settle(row)
        self._notify()
        return row

    def rename_message(self, message_id: str, title: str) -> dict:
        return self.update_message(message_id, title=title)

    def delete_message(self, message_id: str) -> dict:
        self._require_live()
        with self._lock:
            entry = self._entries.pop(message_id, None)
            if entry is None:
                raise NotFound(f"message {message_id} not found")
            self._deleting[message_id] = entry
        self._notify()

        try:
            row = self.store.delete_message(message_id)
        except NotFound:
            with self._lock:
                self._deleting.pop(message_id, None)
            raise
        except Exception:
            with self._lock:
                self._deleting.pop(message_id, None)
                if self.state == LIVE:
                    self._entries[message_id] = entry
            self._notify()
            raise

        with self._lock:
            self._deleting.pop(message_id, None)
        return row

    def _notify(self) -> None:
        with self._lock:
            if self.state != LIVE or not self._listeners:
                return
            listeners = list(self._listeners)
            snapshot = [entry.view() for entry in self._sorted_entries()]
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.exception("engine: change listener failed (room=%s)", self.room_id)
