# Enable postponed annotations to avoid runtime import issues and allow future-style typing
from __future__ import annotations

from .room import Room
from .message import Message

__all__ = ["Room", "Message"]
