import itertools

import pytest

from textsync.errors import ExhaustedRetries, NotFound, ValidationError
from textsync.extensions import change_feed, db
from textsync.schemas import ROOM_CODE_RE
from textsync.services import messages as message_service
from textsync.services import rooms as room_service


def test_create_room_code_shape_and_uniqueness(ctx):
    codes = {room_service.create_room(f"room {i}").id for i in range(20)}
    assert len(codes) == 20
    assert all(ROOM_CODE_RE.match(code) for code in codes)


def test_create_room_seeds_message(ctx):
    room = room_service.create_room("Notes", seed_message=True)
    messages = message_service.get_messages_by_room(room.id)
    assert len(messages) == 1
    assert messages[0].title == "Untitled Message"
    assert messages[0].content == ""


def test_create_room_retries_collisions(ctx):
    room_service.create_room("taken", code_factory=lambda: "AAAAAA")
    codes = itertools.chain(["AAAAAA"] * 4, ["BBBBBB"])
    room = room_service.create_room("second", code_factory=lambda: next(codes))
    assert room.id == "BBBBBB"


def test_create_room_exhausts_retries(ctx):
    room_service.create_room("taken", code_factory=lambda: "AAAAAA")
    calls = []

    def same_code():
        calls.append(1)
        return "AAAAAA"

    with pytest.raises(ExhaustedRetries):
        room_service.create_room("second", code_factory=same_code)
    assert len(calls) == 5


@pytest.mark.parametrize("name", ["", "   ", "x" * 256])
def test_create_room_rejects_bad_names(ctx, name):
    with pytest.raises(ValidationError):
        room_service.create_room(name)


@pytest.mark.parametrize("code", ["abc123", "ABC12", "ABC1234", "ABC-12", None, 123456])
def test_get_room_rejects_malformed_codes(ctx, code):
    with pytest.raises(ValidationError):
        room_service.get_room(code)


def test_get_room_unknown(ctx):
    with pytest.raises(NotFound):
        room_service.get_room("ZZZZZZ")


def test_rename_and_touch(ctx):
    room = room_service.create_room("before")
    renamed = room_service.rename_room(room.id, "  after  ")
    assert renamed.name == "after"

    with pytest.raises(ValidationError):
        room_service.rename_room(room.id, None)

    room.updated_at = 1
    db.session.commit()
    touched = room_service.touch_room(room.id)
    assert touched.updated_at > 1
    assert room_service.touch_room("QQQQQQ") is None


def test_delete_room_cascades_messages(ctx):
    room = room_service.create_room("doomed", seed_message=True)
    message_service.create_message(room.id, "second")
    events = []
    sub = change_feed.subscribe(room.id, events.append)

    deleted = room_service.delete_room(room.id)
    sub.close()

    assert deleted["id"] == room.id
    with pytest.raises(NotFound):
        room_service.get_room(room.id)
    assert message_service.get_messages_by_room(room.id) == []
    assert [e["type"] for e in events] == ["delete", "delete"]


def test_delete_room_unknown(ctx):
    with pytest.raises(NotFound):
        room_service.delete_room("ZZZZZZ")


def test_expiry_is_strictly_after_ttl(ctx):
    room = room_service.create_room("old")
    ttl_ms = ctx.config["ROOM_TTL_SECONDS"] * 1000
    assert not room_service.is_expired(room, now=room.created_at + ttl_ms)
    assert room_service.is_expired(room, now=room.created_at + ttl_ms + 1)


def test_expired_room_is_still_readable(ctx):
    room = room_service.create_room("old", seed_message=True)
    room.created_at -= 25 * 3600 * 1000
    db.session.commit()

    fetched, messages = room_service.get_room_with_messages(room.id)
    assert room_service.is_expired(fetched)
    assert len(messages) == 1


def test_room_stats(ctx):
    fresh = room_service.create_room("fresh")
    old = room_service.create_room("old")
    old.created_at = fresh.created_at - 25 * 3600 * 1000
    db.session.commit()

    stats = room_service.room_stats(now=fresh.created_at)
    assert stats["total_rooms"] == 2
    assert stats["expired_rooms"] == 1
    assert "timestamp" in stats and "cutoff_time" in stats


def test_list_rooms_newest_first(ctx):
    first = room_service.create_room("first")
    second = room_service.create_room("second")
    first.created_at = second.created_at - 10
    db.session.commit()
    assert [r.id for r in room_service.list_rooms()] == [second.id, first.id]
