# Future annotations for forward reference typing compatibility
from __future__ import annotations

import json
import logging

import click
from flask import Flask, jsonify, request
# Enable Cross-Origin Resource Sharing for API and Socket.IO
from flask_cors import CORS
from sqlalchemy import event
from werkzeug.exceptions import HTTPException

# Import configuration object
from .config import Config
from .errors import TextSyncError
# Import shared Flask extensions (SQLAlchemy and SocketIO)
from .extensions import db, socketio

# Configure a standard log format for file and console handlers
log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format=log_format)
    root = logging.getLogger()
    root.setLevel(level)
    # Also emit to console for systemd/journald visibility, once
    if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(logging.Formatter(log_format))
        root.addHandler(console)
    # Reduce noisy third-party loggers so we only see our explicit logs and exceptions
    for noisy_name in ("engineio", "engineio.server", "socketio", "socketio.server", "socketio.client"):
        logging.getLogger(noisy_name).setLevel(logging.WARNING)


# SQLite pragmas
# - foreign_keys is per-connection in SQLite and must be on for ON DELETE CASCADE
# - WAL and busy_timeout reduce 'database is locked' errors under concurrent workers
def configure_sqlite_pragmas() -> None:
    eng = db.engine
    if eng.dialect.name != "sqlite":
        return

    @event.listens_for(eng, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA foreign_keys=ON")
            if eng.url.database not in (None, "", ":memory:"):
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA busy_timeout=15000")
        finally:
            cursor.close()


# Application factory returning a configured Flask app
def create_app(config_object=Config, **overrides) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.config.update(overrides)
    configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    # Bind SQLAlchemy to the app
    db.init_app(app)
    # Resolve allowed origins from configuration for both Flask and Socket.IO
    origins_cfg = app.config["CORS_ORIGINS"]
    if origins_cfg.strip() == "*":
        allowed_origins = "*"
    else:
        allowed_origins = [o.strip() for o in origins_cfg.split(",") if o.strip()]
    CORS(app, resources={r"/*": {"origins": allowed_origins}})
    # Initialize Socket.IO with the same CORS policy and optional message queue
    socketio.init_app(
        app,
        cors_allowed_origins=allowed_origins,
        message_queue=app.config.get("SOCKETIO_MESSAGE_QUEUE") or None,
        async_mode=app.config.get("SOCKETIO_ASYNC_MODE") or "gevent",
        ping_timeout=30,
        ping_interval=10,
    )
    app.logger.info(
        "SocketIO configured: async_mode=%s, message_queue=%s",
        socketio.async_mode,
        app.config.get("SOCKETIO_MESSAGE_QUEUE") or "(none)",
    )

    # Perform database setup inside app context
    with app.app_context():
        # Import models to register metadata with SQLAlchemy
        from . import models  # noqa: F401

        configure_sqlite_pragmas()
        db.create_all()

    register_routes(app)
    register_commands(app)

    if app.config.get("SWEEPER_ENABLED", False):
        from .services.sweeper import start_sweeper_if_needed

        start_sweeper_if_needed(app)

    return app


# Helper to bind routes, socket handlers, and error handlers
def register_routes(app: Flask) -> None:
    from .views import admin_bp, messages_bp, rooms_bp
    from .views.ws import register_socket_handlers

    @app.get("/api/health")
    def health():
        return "ok"

    @app.errorhandler(TextSyncError)
    def _handle_app_error(e: TextSyncError):
        if e.status >= 500:
            logger.warning("%s %s failed: %s (%s)", request.method, request.path, e.code, e.message)
        return jsonify(e.to_dict()), e.status

    # Global error handler to ensure stacktraces get logged
    @app.errorhandler(Exception)
    def _log_unhandled_error(e):
        if isinstance(e, HTTPException):
            return e
        logger.exception("UNHANDLED %s %s", request.method, request.path)
        # Re-raise after logging to let Flask generate the default 500
        raise e

    app.register_blueprint(rooms_bp)
    app.register_blueprint(messages_bp)
    app.register_blueprint(admin_bp)
    register_socket_handlers()


def register_commands(app: Flask) -> None:
    @app.cli.command("cleanup-rooms")
    def cleanup_rooms_command():
        """Delete rooms older than ROOM_TTL_SECONDS now."""
        from .services.sweeper import trigger_cleanup

        result = trigger_cleanup()
        click.echo(json.dumps(result, indent=2))
        if not result["success"]:
            raise SystemExit(1)

    @app.cli.command("room-stats")
    def room_stats_command():
        """Print total and expired room counts."""
        from .services.rooms import room_stats

        click.echo(json.dumps(room_stats(), indent=2))
