# Enable postponed annotations to avoid runtime import issues and allow future-style typing
from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Optional

from sqlalchemy.orm import Mapped

# Import the SQLAlchemy instance from the shared extensions module
from ..extensions import db
from ..lib.utils import now_ms

if TYPE_CHECKING:
    from .room import Room


def new_message_id() -> str:
    return str(uuid.uuid4())


# A titled text document owned by exactly one room
class Message(db.Model):
    __tablename__ = "message"

    # UUID4 string; clients may pick it up front for optimistic inserts
    id: Mapped[str] = db.Column(db.String(36), primary_key=True, default=new_message_id)
    # Owning room code; the database removes messages along with their room
    room_id: Mapped[str] = db.Column(
        db.String(6),
        db.ForeignKey("room.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Display label; placeholder is filled in by the service when absent
    title: Mapped[Optional[str]] = db.Column(db.String(255), nullable=True)
    # Free-form text body, may be empty
    content: Mapped[str] = db.Column(db.Text, nullable=False, default="")
    # Creation timestamp (epoch milliseconds); display order
    created_at: Mapped[int] = db.Column(
        db.BigInteger, default=now_ms, nullable=False, index=True
    )
    # Last edit timestamp (epoch milliseconds)
    updated_at: Mapped[int] = db.Column(
        db.BigInteger, default=now_ms, onupdate=now_ms, nullable=False
    )

    room: Mapped["Room"] = db.relationship("Room", back_populates="messages")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "room_id": self.room_id,
            "title": self.title,
            "content": self.content if self.content is not None else "",
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
