from .subscribe import register as register_room_subscribe
from .unsubscribe import register as register_room_unsubscribe

__all__ = ["register_socket_handlers"]


def register_socket_handlers() -> None:
    register_room_subscribe()
    register_room_unsubscribe()
