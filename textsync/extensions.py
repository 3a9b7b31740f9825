from __future__ import annotations

# Shared extension singletons, bound to the app inside create_app
from flask_socketio import SocketIO
from flask_sqlalchemy import SQLAlchemy

from .lib.feed import ChangeFeed

db = SQLAlchemy()
socketio = SocketIO()
# In-process subscribers to message row changes, keyed by room code
change_feed = ChangeFeed()
