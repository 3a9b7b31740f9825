from .buffer import Debouncer, EditBuffer
from .engine import CacheEntry, MessageSyncEngine, apply_feed_event
from .stores import HttpStore, LocalStore, MessageStore

__all__ = [
    "CacheEntry",
    "Debouncer",
    "EditBuffer",
    "HttpStore",
    "LocalStore",
    "MessageStore",
    "MessageSyncEngine",
    "apply_feed_event",
]
