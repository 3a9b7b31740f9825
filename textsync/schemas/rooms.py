import re
from typing import Annotated, Optional

from pydantic import BaseModel, Field, StringConstraints

ROOM_CODE_RE = re.compile(r"^[A-Z0-9]{6}$")

RoomCode = Annotated[str, StringConstraints(pattern=r"^[A-Z0-9]{6}$")]
RoomName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]


def is_room_code(value) -> bool:
    return isinstance(value, str) and bool(ROOM_CODE_RE.match(value))


class RoomCreateRequest(BaseModel):
    name: RoomName
    # Seed the room with one empty message, like the first-visit flow
    seed: bool = True


class RoomIdRequest(BaseModel):
    id: RoomCode


class RoomUpdateRequest(BaseModel):
    id: RoomCode
    name: Optional[RoomName] = Field(default=None)
