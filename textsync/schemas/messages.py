import uuid
from typing import Annotated, Optional

from pydantic import BaseModel, StringConstraints, field_validator, model_validator

from .rooms import RoomCode

MessageTitle = Annotated[str, StringConstraints(max_length=255)]


class MessageCreateRequest(BaseModel):
    room_id: RoomCode
    title: Optional[MessageTitle] = None
    id: Optional[str] = None

    @field_validator("id")
    @classmethod
    def _uuid_id(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return str(uuid.UUID(value))


class MessageIdRequest(BaseModel):
    id: Annotated[str, StringConstraints(min_length=1)]


class MessageUpdateRequest(BaseModel):
    id: Annotated[str, StringConstraints(min_length=1)]
    title: Optional[MessageTitle] = None
    content: Optional[str] = None

    @model_validator(mode="after")
    def _some_field(self):
        if self.title is None and self.content is None:
            raise ValueError("no fields provided to update")
        return self

    def changes(self) -> dict:
        values = {}
        if self.title is not None:
            values["title"] = self.title
        if self.content is not None:
            values["content"] = self.content
        return values


class RoomMessagesRequest(BaseModel):
    room_id: RoomCode
