import pytest
import requests
from socketio.exceptions import ConnectionError as SocketConnectionError, TimeoutError as SocketTimeoutError

from textsync.errors import Conflict, NotFound, StoreUnavailable, ValidationError
from textsync.sync import HttpStore, MessageSyncEngine


class FakeResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class FakeSession:
    def __init__(self, responses, timeline=None):
        self.responses = list(responses)
        self.calls = []
        self.timeline = timeline if timeline is not None else []

    def request(self, method, url, json=None, timeout=None):
        self.calls.append((method, url, json))
        self.timeline.append(url.rsplit("/", 1)[-1])
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeSocketClient:
    instances = []
    timeline = []

    def __init__(self):
        self.handlers = {}
        self.emitted = []
        self.connected = False
        self.fail_connect = False
        self.fail_call = False
        self.ack = {"ok": True}
        FakeSocketClient.instances.append(self)

    def on(self, event):
        def register(handler):
            self.handlers[event] = handler
            return handler
        return register

    def connect(self, url, transports=None):
        if self.fail_connect:
            raise SocketConnectionError("refused")
        self.url = url
        self.connected = True

    def emit(self, event, data=None):
        self.emitted.append((event, data))

    def call(self, event, data=None, timeout=None):
        if self.fail_call:
            raise SocketTimeoutError()
        self.emitted.append((event, data))
        FakeSocketClient.timeline.append(event)
        return self.ack

    def disconnect(self):
        self.connected = False

    def deliver(self, event, data):
        self.handlers[event](data)


@pytest.fixture(autouse=True)
def _reset_sockets():
    FakeSocketClient.instances = []
    FakeSocketClient.timeline = []


def _store(*responses):
    return HttpStore("http://sync.test/", session=FakeSession(responses), socket_factory=FakeSocketClient)


def test_requests_use_dotted_routes():
    row = {"id": "m1", "room_id": "ROOM01", "title": "t", "content": "c", "created_at": 1, "updated_at": 1}
    store = _store(FakeResponse(200, [row]), FakeResponse(201, row), FakeResponse(200, row))

    assert store.list_messages("ROOM01") == [row]
    assert store.create_message("ROOM01", message_id="m1") == row
    assert store.update_message("m1", content="") == row

    assert store.session.calls == [
        ("POST", "http://sync.test/api/messages.list", {"room_id": "ROOM01"}),
        ("POST", "http://sync.test/api/message.create", {"room_id": "ROOM01", "id": "m1"}),
        ("POST", "http://sync.test/api/message.update", {"id": "m1", "content": ""}),
    ]


@pytest.mark.parametrize(
    "status, body, error",
    [
        (400, {"error": "validation_error", "message": "bad"}, ValidationError),
        (404, {"error": "not_found", "message": "gone"}, NotFound),
        (409, {"error": "conflict", "message": "dup"}, Conflict),
        (503, {"error": "store_unavailable", "message": "down"}, StoreUnavailable),
        (502, ValueError("not json"), StoreUnavailable),
        (404, ValueError("not json"), NotFound),
    ],
)
def test_error_responses_are_typed(status, body, error):
    store = _store(FakeResponse(status, body))
    with pytest.raises(error):
        store.delete_message("m1")


def test_connection_failure_is_store_unavailable():
    store = _store(requests.ConnectionError("refused"))
    with pytest.raises(StoreUnavailable):
        store.list_messages("ROOM01")


def test_subscribe_forwards_room_changes():
    store = _store()
    events = []
    sub = store.subscribe("ROOM01", events.append)
    client = FakeSocketClient.instances[0]

    assert client.emitted == [("room.subscribe", {"code": "ROOM01"})]
    client.deliver("messages.change", {"code": "ROOM01", "type": "insert", "row": {"id": "m1"}})
    client.deliver("messages.change", {"code": "OTHER1", "type": "insert", "row": {"id": "x"}})
    assert events == [{"type": "insert", "row": {"id": "m1"}}]

    sub.close()
    assert client.emitted[-1] == ("room.unsubscribe", {"code": "ROOM01"})
    assert client.connected is False


def test_subscribe_connection_failure():
    def failing():
        client = FakeSocketClient()
        client.fail_connect = True
        return client

    store = HttpStore("http://sync.test", session=FakeSession([]), socket_factory=failing)
    with pytest.raises(StoreUnavailable):
        store.subscribe("ROOM01", lambda event: None)


def test_engine_over_http_store():
    row = {"id": "m1", "room_id": "ROOM01", "title": "t", "content": "", "created_at": 1, "updated_at": 1}
    edited = dict(row, content="remote", updated_at=2)
    store = _store(FakeResponse(200, [row]))
    engine = MessageSyncEngine("ROOM01", store).open()
    client = FakeSocketClient.instances[0]

    client.deliver("messages.change", {"code": "ROOM01", "type": "update", "row": edited})
    assert engine.get_message("m1")["content"] == "remote"
    engine.close()
    assert client.connected is False


def test_engine_hydrates_after_subscribe_is_acked():
    row = {"id": "m1", "room_id": "ROOM01", "title": "t", "content": "", "created_at": 1, "updated_at": 1}
    session = FakeSession([FakeResponse(200, [row])], timeline=FakeSocketClient.timeline)
    store = HttpStore("http://sync.test", session=session, socket_factory=FakeSocketClient)
    engine = MessageSyncEngine("ROOM01", store).open()
    try:
        assert FakeSocketClient.timeline == ["room.subscribe", "messages.list"]
    finally:
        engine.close()


def test_subscribe_rejected_by_server_disconnects():
    def rejecting():
        client = FakeSocketClient()
        client.ack = {"ok": False, "code": "ROOM01", "error": "not_found", "message": "Room not found"}
        return client

    store = HttpStore("http://sync.test", session=FakeSession([]), socket_factory=rejecting)
    with pytest.raises(NotFound):
        store.subscribe("ROOM01", lambda event: None)
    assert FakeSocketClient.instances[0].connected is False


def test_subscribe_without_ack_disconnects():
    def silent():
        client = FakeSocketClient()
        client.fail_call = True
        return client

    store = HttpStore("http://sync.test", session=FakeSession([]), socket_factory=silent)
    with pytest.raises(StoreUnavailable):
        store.subscribe("ROOM01", lambda event: None)
    assert FakeSocketClient.instances[0].connected is False
