import uuid

import pytest

from textsync.errors import NotFound, StoreUnavailable, ValidationError
from textsync.extensions import change_feed
from textsync.services import rooms as room_service
from textsync.sync import CacheEntry, LocalStore, MessageSyncEngine, apply_feed_event

ROOM = "ROOM01"


def _row(message_id, content="", title="Untitled Message", created_at=1, updated_at=1, room_id=ROOM):
    return {
        "id": message_id,
        "room_id": room_id,
        "title": title,
        "content": content,
        "created_at": created_at,
        "updated_at": updated_at,
    }


class FakeSubscription:
    def __init__(self, store):
        self.store = store

    def close(self):
        self.store.callback = None


class FakeStore:
    """In-memory store; ``hooks`` run inside a call before it returns."""

    def __init__(self, rows=()):
        self.rows = {row["id"]: dict(row) for row in rows}
        self.callback = None
        self.hooks = {}
        self.fail = {}
        self.clock = 100

    def _run(self, name):
        hook = self.hooks.pop(name, None)
        if hook:
            hook()
        if name in self.fail:
            raise self.fail.pop(name)

    def emit(self, change_type, row):
        if self.callback:
            self.callback({"type": change_type, "row": dict(row)})

    def subscribe(self, room_id, callback):
        self.callback = callback
        return FakeSubscription(self)

    def list_messages(self, room_id):
        self._run("list")
        return [dict(r) for r in self.rows.values() if r["room_id"] == room_id]

    def create_message(self, room_id, title=None, message_id=None):
        self._run("create")
        self.clock += 1
        row = _row(message_id, title=title or "Untitled Message", created_at=self.clock, updated_at=self.clock)
        self.rows[row["id"]] = row
        return dict(row)

    def update_message(self, message_id, title=None, content=None):
        self._run("update")
        if message_id not in self.rows:
            raise NotFound("gone")
        self.clock += 1
        row = self.rows[message_id]
        if title is not None:
            row["title"] = title
        if content is not None:
            row["content"] = content
        row["updated_at"] = self.clock
        return dict(row)

    def delete_message(self, message_id):
        self._run("delete")
        if message_id not in self.rows:
            raise NotFound("gone")
        return self.rows.pop(message_id)


@pytest.fixture
def store():
    return FakeStore([_row("m1", "one", created_at=1), _row("m2", "two", created_at=2)])


@pytest.fixture
def engine(store):
    engine = MessageSyncEngine(ROOM, store).open()
    yield engine
    engine.close()


def test_engine_rejects_bad_room_code(store):
    with pytest.raises(ValidationError):
        MessageSyncEngine("room01", store)


def test_open_hydrates_in_creation_order(engine):
    assert engine.state == "live"
    assert [m["id"] for m in engine.list_messages()] == ["m1", "m2"]
    assert engine.default_selection() == "m1"


def test_open_twice_is_an_error(engine):
    with pytest.raises(RuntimeError):
        engine.open()


def test_events_during_hydration_are_applied_after_snapshot(store):
    store.hooks["list"] = lambda: store.emit("update", _row("m1", "newer", updated_at=5))
    engine = MessageSyncEngine(ROOM, store).open()
    assert engine.get_message("m1")["content"] == "newer"


def test_feed_insert_update_delete(engine, store):
    store.emit("insert", _row("m3", "three", created_at=3))
    store.emit("update", _row("m2", "TWO", created_at=2, updated_at=9))
    store.emit("delete", _row("m1"))
    assert [(m["id"], m["content"]) for m in engine.list_messages()] == [("m2", "TWO"), ("m3", "three")]


def test_feed_ignores_other_rooms(engine, store):
    store.emit("insert", _row("x1", room_id="OTHER1"))
    assert [m["id"] for m in engine.list_messages()] == ["m1", "m2"]


def test_duplicate_update_event_is_idempotent():
    entries = {"m1": CacheEntry(_row("m1", "one"), 0)}
    event = {"type": "update", "row": _row("m1", "changed", updated_at=4)}

    assert apply_feed_event(entries, event) is True
    once = {k: e.view() for k, e in entries.items()}
    assert apply_feed_event(entries, event) is False
    assert {k: e.view() for k, e in entries.items()} == once


def test_duplicate_delete_event_is_idempotent():
    entries = {"m1": CacheEntry(_row("m1"), 0)}
    event = {"type": "delete", "row": _row("m1")}
    assert apply_feed_event(entries, event) is True
    assert apply_feed_event(entries, event) is False
    assert entries == {}


def test_stale_update_does_not_regress(engine, store):
    store.emit("update", _row("m1", "new", updated_at=10))
    store.emit("update", _row("m1", "old", updated_at=5))
    assert engine.get_message("m1")["content"] == "new"


def test_pending_write_takes_precedence_over_feed(engine, store):
    seen = {}

    def concurrent_remote_edit():
        store.emit("update", _row("m1", "remote", updated_at=50))
        seen["state"] = engine.entry_state("m1")
        seen["content"] = engine.get_message("m1")["content"]

    store.hooks["update"] = concurrent_remote_edit
    row = engine.update_message("m1", content="local")

    assert seen == {"state": "pending", "content": "local"}
    assert engine.entry_state("m1") == "confirmed"
    assert engine.get_message("m1") == row
    assert row["content"] == "local"


def test_create_message_is_optimistic_and_deduplicated(engine, store):
    seen = {}

    def echo():
        seen["during"] = engine.entry_state(message_id)
        store.emit("insert", _row(message_id, created_at=3))

    message_id = str(uuid.uuid4())
    store.hooks["create"] = echo
    row = engine.create_message(message_id=message_id)
    store.emit("insert", row)

    assert seen["during"] == "pending"
    ids = [m["id"] for m in engine.list_messages()]
    assert ids.count(message_id) == 1
    assert engine.get_message(message_id)["title"] == "Untitled Message"


def test_create_message_failure_removes_optimistic_entry(engine, store):
    store.fail["create"] = StoreUnavailable("down")
    with pytest.raises(StoreUnavailable):
        engine.create_message(title="draft")
    assert [m["id"] for m in engine.list_messages()] == ["m1", "m2"]


def test_update_requires_fields(engine):
    with pytest.raises(ValidationError):
        engine.update_message("m1")


def test_update_unknown_message(engine):
    with pytest.raises(NotFound):
        engine.update_message("nope", content="x")


def test_update_of_message_deleted_elsewhere_drops_entry(engine, store):
    del store.rows["m1"]
    with pytest.raises(NotFound):
        engine.update_message("m1", content="late")
    assert [m["id"] for m in engine.list_messages()] == ["m2"]


def test_update_failure_reverts_overlay(engine, store):
    store.fail["update"] = StoreUnavailable("down")
    with pytest.raises(StoreUnavailable):
        engine.update_message("m1", content="lost")
    assert engine.get_message("m1")["content"] == "one"
    assert engine.entry_state("m1") == "confirmed"


def test_rename_message(engine):
    assert engine.rename_message("m2", "Second")["title"] == "Second"
    assert engine.get_message("m2")["title"] == "Second"


def test_delete_message(engine, store):
    engine.delete_message("m1")
    store.emit("delete", _row("m1"))
    assert [m["id"] for m in engine.list_messages()] == ["m2"]
    with pytest.raises(NotFound):
        engine.delete_message("m1")


def test_delete_failure_restores_entry(engine, store):
    store.fail["delete"] = StoreUnavailable("down")
    with pytest.raises(StoreUnavailable):
        engine.delete_message("m2")
    assert [m["id"] for m in engine.list_messages()] == ["m1", "m2"]


def test_close_discards_in_flight_results(engine, store):
    store.hooks["update"] = engine.close
    row = engine.update_message("m1", content="after close")

    assert row["content"] == "after close"
    assert engine.state == "closed"
    assert engine.list_messages() == []
    assert store.callback is None
    assert engine.apply_feed_event({"type": "insert", "row": _row("m9")}) is False
    with pytest.raises(RuntimeError):
        engine.create_message()


def test_on_change_listeners(engine, store):
    snapshots = []
    unsubscribe = engine.on_change(snapshots.append)
    store.emit("update", _row("m1", "changed", updated_at=3))
    unsubscribe()
    store.emit("update", _row("m1", "again", updated_at=4))
    assert len(snapshots) == 1
    assert snapshots[0][0]["content"] == "changed"


def test_two_clients_converge_through_local_store(ctx):
    room = room_service.create_room("shared", seed_message=True)
    store = LocalStore(ctx)
    a = MessageSyncEngine(room.id, store).open()
    b = MessageSyncEngine(room.id, store).open()
    try:
        m1 = a.default_selection()
        assert b.default_selection() == m1

        a.update_message(m1, content="A")
        assert b.get_message(m1)["content"] == "A"

        created = b.create_message(title="From B")
        assert a.get_message(created["id"])["title"] == "From B"

        a.delete_message(created["id"])
        assert [m["id"] for m in b.list_messages()] == [m1]
    finally:
        a.close()
        b.close()
    assert change_feed.subscriber_count(room.id) == 0
