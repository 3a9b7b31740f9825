from . import messages, rooms, sweeper

__all__ = ["messages", "rooms", "sweeper"]
