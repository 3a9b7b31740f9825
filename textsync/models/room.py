# Enable postponed annotations to avoid runtime import issues and allow future-style typing
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

# SQLAlchemy typing helper for mapped attributes / relationships
from sqlalchemy.orm import Mapped

# Import the SQLAlchemy instance from the shared extensions module
from ..extensions import db
from ..lib.utils import now_ms

if TYPE_CHECKING:
    # Imported only for static type checking to avoid circular imports at runtime
    from .message import Message


# A room is a named sync session identified by its short join code
class Room(db.Model):
    __tablename__ = "room"

    # Six character join code ([A-Z0-9]); doubles as the primary key
    id: Mapped[str] = db.Column(db.String(6), primary_key=True)
    # Display label shown to everyone in the room
    name: Mapped[str] = db.Column(db.String(255), nullable=False)
    # Epoch milliseconds when the room was created; drives expiry
    created_at: Mapped[int] = db.Column(
        db.BigInteger, default=now_ms, nullable=False, index=True
    )
    # Epoch milliseconds of the last rename/touch
    updated_at: Mapped[int] = db.Column(
        db.BigInteger, default=now_ms, onupdate=now_ms, nullable=False
    )

    # ORM relationship to messages, cascade deletion when room is removed
    messages: Mapped[list["Message"]] = db.relationship(
        "Message",
        back_populates="room",
        lazy=True,
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Message.created_at",
    )

    def age_ms(self, now: Optional[int] = None) -> int:
        return (now if now is not None else now_ms()) - int(self.created_at)

    def is_expired(self, ttl_seconds: int, now: Optional[int] = None) -> bool:
        """True once the room is strictly older than ``ttl_seconds``."""
        return self.age_ms(now) > ttl_seconds * 1000

    def summary(self) -> dict:
        return {"id": self.id, "name": self.name, "created_at": self.created_at}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
