"""
Stores the sync engine persists through.

``LocalStore`` calls the service layer directly and listens on the in-process change
feed. ``HttpStore`` talks to a running server over the JSON API and receives changes
over Socket.IO.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

import requests
import socketio
from flask import Flask, current_app, has_app_context
from socketio.exceptions import SocketIOError

from ..errors import StoreUnavailable, error_from_payload
from ..extensions import change_feed

logger = logging.getLogger(__name__)


class MessageStore:
    """Operations a ``MessageSyncEngine`` needs from its backing store."""

    def list_messages(self, room_id: str) -> list[dict]:
        raise NotImplementedError

    def create_message(self, room_id: str, title: Optional[str] = None, message_id: Optional[str] = None) -> dict:
        raise NotImplementedError

    def update_message(self, message_id: str, title: Optional[str] = None, content: Optional[str] = None) -> dict:
        raise NotImplementedError

    def delete_message(self, message_id: str) -> dict:
        raise NotImplementedError

    def subscribe(self, room_id: str, callback: Callable[[dict], None]):
        """Start delivering ``{"type", "row"}`` events for the room; returns an object with ``close()``."""
        raise NotImplementedError


class LocalStore(MessageStore):
    def __init__(self, app: Flask):
        self.app = app

    def _call(self, fn, *args, **kwargs):
        # Reuse the caller's context so we share its session
        if has_app_context() and current_app._get_current_object() is self.app:
            return fn(*args, **kwargs)
        with self.app.app_context():
            return fn(*args, **kwargs)

    def list_messages(self, room_id):
        from ..services.messages import get_messages_by_room

        return self._call(lambda: [m.to_dict() for m in get_messages_by_room(room_id)])

    def create_message(self, room_id, title=None, message_id=None):
        from ..services.messages import create_message

        return self._call(lambda: create_message(room_id, title, message_id).to_dict())

    def update_message(self, message_id, title=None, content=None):
        from ..services.messages import update_message

        return self._call(lambda: update_message(message_id, title, content).to_dict())

    def delete_message(self, message_id):
        from ..services.messages import delete_message

        return self._call(delete_message, message_id)

    def subscribe(self, room_id, callback):
        return change_feed.subscribe(room_id, callback)


class SocketSubscription:
    def __init__(self, client: socketio.Client, room_id: str):
        self.client = client
        self.room_id = room_id
        self.active = True

    def close(self) -> None:
        if not self.active:
            return
        self.active = False
        try:
            if self.client.connected:
                self.client.emit("room.unsubscribe", {"code": self.room_id})
        except SocketIOError as e:
            logger.warning("SocketSubscription: unsubscribe failed (room=%s): %s", self.room_id, e)
        finally:
            self.client.disconnect()


class HttpStore(MessageStore):
    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: float = 10,
        socket_factory: Callable[[], socketio.Client] = socketio.Client,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.socket_factory = socket_factory

    def _request(self, method: str, route: str, payload: Optional[dict] = None):
        url = f"{self.base_url}/api/{route}"
        try:
            resp = self.session.request(method, url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("HttpStore: %s %s failed: %s", method, route, e)
            raise StoreUnavailable(str(e)) from e

        if resp.status_code >= 400:
            try:
                body = resp.json()
            except ValueError:
                body = None
            raise error_from_payload(body if isinstance(body, dict) else None, resp.status_code)
        return resp.json()

    def list_messages(self, room_id):
        return self._request("POST", "messages.list", {"room_id": room_id})

    def create_message(self, room_id, title=None, message_id=None):
        payload = {"room_id": room_id}
        if title is not None:
            payload["title"] = title
        if message_id is not None:
            payload["id"] = message_id
        return self._request("POST", "message.create", payload)

    def update_message(self, message_id, title=None, content=None):
        payload = {"id": message_id}
        if title is not None:
            payload["title"] = title
        if content is not None:
            payload["content"] = content
        return self._request("POST", "message.update", payload)

    def delete_message(self, message_id):
        return self._request("POST", "message.delete", {"id": message_id})

    def subscribe(self, room_id, callback):
        client = self.socket_factory()

        @client.on("messages.change")
        def _on_change(data):
            if not isinstance(data, dict) or data.get("code") != room_id:
                return
            callback({"type": data.get("type"), "row": data.get("row")})

        @client.on("room.error")
        def _on_error(data):
            logger.warning("HttpStore: room.error for %s: %s", room_id, data)

        # Wait for the ack so the socket is in the room before the engine hydrates
        try:
            client.connect(self.base_url, transports=["websocket", "polling"])
            ack = client.call("room.subscribe", {"code": room_id}, timeout=self.timeout)
        except SocketIOError as e:
            logger.warning("HttpStore: subscribe to %s failed: %s", room_id, e)
            client.disconnect()
            raise StoreUnavailable(str(e)) from e

        if not isinstance(ack, dict) or not ack.get("ok"):
            logger.warning("HttpStore: subscribe to %s rejected: %s", room_id, ack)
            client.disconnect()
            raise error_from_payload(ack if isinstance(ack, dict) else None, 503)
        return SocketSubscription(client, room_id)
