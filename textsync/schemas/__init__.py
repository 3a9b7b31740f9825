from __future__ import annotations

from typing import Any, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError
from .messages import MessageCreateRequest, MessageIdRequest, MessageUpdateRequest, RoomMessagesRequest
from .rooms import ROOM_CODE_RE, RoomCreateRequest, RoomIdRequest, RoomUpdateRequest, is_room_code

TModel = TypeVar("TModel", bound=BaseModel)


def format_validation_error(error: PydanticValidationError) -> str:
    parts = []
    for issue in error.errors():
        path = ".".join(str(p) for p in issue.get("loc", ())) or "root"
        parts.append(f"{path}: {issue.get('msg')}")
    return ", ".join(parts)


def parse_payload(model: Type[TModel], data: Any) -> TModel:
    """Validate ``data`` against ``model``, raising the app ``ValidationError`` on failure."""
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("request body must be a JSON object")
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(format_validation_error(e)) from e


__all__ = [
    "ROOM_CODE_RE",
    "is_room_code",
    "parse_payload",
    "RoomCreateRequest",
    "RoomIdRequest",
    "RoomUpdateRequest",
    "MessageCreateRequest",
    "MessageIdRequest",
    "MessageUpdateRequest",
    "RoomMessagesRequest",
]
