"""
Local edit buffer for the selected message.

Keystrokes land in the buffer immediately and are persisted through the sync engine
once they have been quiet for the debounce delay, so a burst of typing turns into a
single update carrying the final text.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from ..config import Config
from ..errors import NotFound, TextSyncError

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "content")


class Debouncer:
    """Calls ``callback`` once ``delay`` seconds after the most recent ``arm()``."""

    def __init__(self, delay: float, callback: Callable[[], None], timer_factory=threading.Timer):
        self.delay = delay
        self.callback = callback
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer = None
        # Bumped on every arm/cancel so a timer that already fired cannot act twice
        self._generation = 0

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def arm(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            timer = self._timer_factory(self.delay, self._fire, args=(self._generation,))
            timer.daemon = True
            self._timer = timer
        timer.start()

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._timer is None:
                return
            self._timer = None
        self.callback()

    def cancel(self) -> bool:
        """Drop the scheduled call; returns True when one was pending."""
        with self._lock:
            timer, self._timer = self._timer, None
            self._generation += 1
        if timer is None:
            return False
        timer.cancel()
        return True

    def flush(self) -> bool:
        """Run the scheduled call now; returns True when one was pending."""
        if not self.cancel():
            return False
        self.callback()
        return True


class EditBuffer:
    def __init__(
        self,
        engine,
        *,
        delay: Optional[float] = None,
        flush_on_select: Optional[bool] = None,
        timer_factory=threading.Timer,
        on_error: Optional[Callable[[TextSyncError], None]] = None,
    ):
        self.engine = engine
        self.delay = delay if delay is not None else Config.EDIT_DEBOUNCE_MS / 1000
        self.flush_on_select = Config.FLUSH_ON_SELECT if flush_on_select is None else flush_on_select
        self.on_error = on_error
        self.last_error: Optional[TextSyncError] = None

        self.message_id: Optional[str] = None
        self.title = ""
        self.content = ""
        self._dirty: set[str] = set()
        self._lock = threading.RLock()
        self._debouncer = Debouncer(self.delay, self._write_dirty, timer_factory)
        self._unsubscribe = engine.on_change(self._on_engine_change)
        self.closed = False

    @property
    def has_unsaved_changes(self) -> bool:
        return bool(self._dirty)

    def select(self, message_id: Optional[str]) -> None:
        """Switch the buffer to another message and load its current text."""
        with self._lock:
            if message_id is not None:
                # Unknown targets raise before the current edits are touched
                self.engine.get_message(message_id)
            previous = self.message_id
            if self.flush_on_select:
                self.flush()
            elif self._debouncer.cancel() and self._dirty:
                logger.info(
                    "edit buffer: discarding unsaved %s of %s",
                    sorted(self._dirty),
                    previous,
                )
            self._dirty.clear()
            self._load(message_id)

    def _load(self, message_id: Optional[str]) -> None:
        message = self.engine.get_message(message_id) if message_id is not None else {}
        self.message_id = message_id
        self.title = message.get("title") or ""
        self.content = message.get("content") or ""

    def _edit(self, field: str, value: str) -> None:
        with self._lock:
            if self.closed:
                raise RuntimeError("edit buffer is closed")
            if self.message_id is None:
                raise NotFound("no message selected")
            setattr(self, field, value)
            self._dirty.add(field)
            self._debouncer.arm()

    def set_content(self, text: str) -> None:
        self._edit("content", text)

    def set_title(self, text: str) -> None:
        self._edit("title", text)

    def flush(self) -> bool:
        """Persist buffered edits now instead of waiting out the delay."""
        self._debouncer.cancel()
        if not self._dirty:
            return False
        self._write_dirty()
        return True

    def _write_dirty(self) -> None:
        with self._lock:
            message_id = self.message_id
            fields = {name: getattr(self, name) for name in EDITABLE_FIELDS if name in self._dirty}
            self._dirty.clear()
        if message_id is None or not fields:
            return

        try:
            self.engine.update_message(message_id, **fields)
        except NotFound as e:
            self._report(e, message_id)
            self.handle_deleted(message_id)
        except TextSyncError as e:
            # Keep the unsaved text in the buffer so the next flush retries it
            with self._lock:
                if self.message_id == message_id:
                    for name, value in fields.items():
                        if name not in self._dirty:
                            setattr(self, name, value)
                            self._dirty.add(name)
            self._report(e, message_id)
        else:
            self.last_error = None

    def _report(self, error: TextSyncError, message_id: str) -> None:
        logger.warning("edit buffer: saving %s failed: %s (%s)", message_id, error.code, error.message)
        self.last_error = error
        if self.on_error is not None:
            self.on_error(error)

    def handle_deleted(self, message_id: str) -> None:
        """Move off ``message_id`` when it is deleted; buffered edits for it are dropped."""
        with self._lock:
            if self.closed or message_id != self.message_id:
                return
            self._debouncer.cancel()
            self._dirty.clear()
            self._load(self.engine.default_selection())

    def _on_engine_change(self, messages: list[dict]) -> None:
        with self._lock:
            if self.closed or self.message_id is None:
                return
            current = next((m for m in messages if m.get("id") == self.message_id), None)
            if current is None:
                self.handle_deleted(self.message_id)
                return
            # Remote changes only replace fields the user is not editing
            for name in EDITABLE_FIELDS:
                if name not in self._dirty:
                    setattr(self, name, current.get(name) or "")

    def close(self) -> None:
        with self._lock:
            if self.closed:
                return
            self.closed = True
            if self._debouncer.cancel() and self._dirty:
                logger.info("edit buffer: closed with unsaved %s of %s", sorted(self._dirty), self.message_id)
            self._dirty.clear()
        self._unsubscribe()
