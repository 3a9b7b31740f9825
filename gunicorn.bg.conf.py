import os

from dotenv import load_dotenv

load_dotenv()

# Background pool: not proxied; exists to run the expiry sweeper
bind = os.getenv("BG_BIND", "127.0.0.1:5081")
# Extra workers are fine, the sweeper is gated to BACKGROUND_TASK_SLOTS claimers
workers = int(os.getenv("BG_WORKERS", "1"))
graceful_timeout = 5
worker_class = "geventwebsocket.gunicorn.workers.GeventWebSocketWorker"
# Avoid importing the app in the master process (gevent monkey-patching order)
preload_app = False
wsgi_app = "textsync.wsgi:app"
raw_env = ["SWEEPER_ENABLED=true"]

timeout = 120
umask = 0o007
loglevel = os.getenv("LOG_LEVEL", "info").lower()
capture_output = True


def post_fork(server, worker):
    """Log which database and TTL the freshly forked worker runs with."""
    import logging

    logger = logging.getLogger("gunicorn.error")
    from textsync.config import Config

    logger.info(
        "[worker] boot: version=%s app=%s ttl=%ss sweep_interval=%ss pid=%s",
        Config.VERSION,
        Config.APP_NAME,
        Config.ROOM_TTL_SECONDS,
        Config.SWEEP_INTERVAL_SECONDS,
        os.getpid(),
    )
    logger.info("[worker] boot: db=%s", Config.SQLALCHEMY_DATABASE_URI)
