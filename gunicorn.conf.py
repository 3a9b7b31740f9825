import os

# Web pool: serves the JSON API and Socket.IO; the sweeper runs in the background pool
bind = os.getenv("WEB_BIND", "127.0.0.1:5080")
# More than one worker requires SOCKETIO_MESSAGE_QUEUE so change events reach every client
workers = int(os.getenv("WEB_WORKERS", "1"))
graceful_timeout = 5
# Gevent WebSocket worker for Flask-SocketIO
worker_class = "geventwebsocket.gunicorn.workers.GeventWebSocketWorker"
wsgi_app = "textsync.wsgi:app"
raw_env = ["SWEEPER_ENABLED=false"]

timeout = 120
umask = 0o007
loglevel = os.getenv("LOG_LEVEL", "info").lower()
capture_output = True
reload = os.getenv("GUNICORN_RELOAD", "false").lower() in ("true", "1", "yes", "on")
