from .admin import admin_bp
from .messages import messages_bp
from .rooms import rooms_bp

__all__ = ["admin_bp", "messages_bp", "rooms_bp"]
