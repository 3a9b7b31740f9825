# Import the standard library module used for environment variables and filesystem paths
import os

# Import timedelta to express the room lifetime in seconds
from datetime import timedelta

# Import helper to load environment variables from a .env file
from dotenv import load_dotenv


# Load variables from a .env file into process environment if present
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes", "on")


# Define a configuration holder class for the Flask application
class Config:
    # Secret key used by Flask and extensions (sessions, CSRF, etc.); falls back to a dev value
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")

    VERSION = os.getenv("VERSION", "v1")
    APP_NAME = os.getenv("APP_NAME", "TextSync")

    # Prefer absolute DB path under instance/ directory at repo root for SQLite
    _ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
    # Default SQLAlchemy URI pointing to a sqlite database stored in instance/VERSION/APP_NAME.db
    _DB_DEFAULT = (
        f"sqlite:///{os.path.join(_ROOT, 'instance', VERSION, f'{APP_NAME}.db')}"
    )

    # Database URL taken from env when present, otherwise fallback to default
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", _DB_DEFAULT)
    # When true, echo SQL statements to logs for debugging
    SQLALCHEMY_ECHO = _env_bool("SQLALCHEMY_ECHO", "false")

    # Comma-separated list of CORS origins; '*' means allow all
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Socket.IO message queue DSN (e.g., Redis) for multi-process broadcast support (optional)
    SOCKETIO_MESSAGE_QUEUE = os.getenv("SOCKETIO_MESSAGE_QUEUE", "")
    # Socket.IO async mode override (e.g., 'gevent', 'threading'); empty means gevent
    SOCKETIO_ASYNC_MODE = os.getenv("SOCKETIO_ASYNC_MODE", "")
    # Redis used for sweep leases and background slot claims; falls back to the message queue DSN
    REDIS_URL = os.getenv("REDIS_URL", "")

    # Development toggle controlling Flask debug behavior
    DEBUG = _env_bool("DEBUG", "false")

    # Global logging level
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # Rooms older than this are expired and get swept
    ROOM_TTL_SECONDS = int(
        os.getenv("ROOM_TTL_SECONDS", str(int(timedelta(hours=24).total_seconds())))
    )
    # Join code shape: fixed length drawn from uppercase letters and digits
    ROOM_CODE_LENGTH = 6
    ROOM_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
    # Fresh codes drawn before giving up on a room creation
    ROOM_CREATE_MAX_ATTEMPTS = int(os.getenv("ROOM_CREATE_MAX_ATTEMPTS", "5"))
    # Title stored when a message is created without one
    DEFAULT_MESSAGE_TITLE = os.getenv("DEFAULT_MESSAGE_TITLE", "Untitled Message")

    # Run the expiry sweeper loop in this process (still gated by background slots).
    # Off by default; gunicorn.bg.conf.py turns it on for the background pool
    SWEEPER_ENABLED = _env_bool("SWEEPER_ENABLED", "false")
    # Seconds between two sweeps
    SWEEP_INTERVAL_SECONDS = int(os.getenv("SWEEP_INTERVAL_SECONDS", "3600"))
    # Redis lease held while a sweep runs so two hosts never sweep concurrently
    SWEEP_LOCK_SECONDS = int(os.getenv("SWEEP_LOCK_SECONDS", "120"))

    # Background worker slotting:
    # In a multi-worker Gunicorn deployment, every worker will import the app and run init code.
    # The sweeper must only run in a subset of workers. Workers "claim" one of N background
    # slots at startup; only claimers start background loops.
    BACKGROUND_TASK_SLOTS = int(os.getenv("BACKGROUND_TASK_SLOTS", "1"))
    # Optional directory for local file-lock based slot claiming. When empty, defaults to
    # "<project_root>/instance/<VERSION>/".
    BACKGROUND_TASK_LOCK_DIR = os.getenv("BACKGROUND_TASK_LOCK_DIR", "")
    # Redis lease seconds for slot claiming when Redis is used as the coordination backend.
    BACKGROUND_TASK_LEASE_SECONDS = int(os.getenv("BACKGROUND_TASK_LEASE_SECONDS", "60"))

    # Quiet period before buffered edits are persisted by the client edit buffer
    EDIT_DEBOUNCE_MS = int(os.getenv("EDIT_DEBOUNCE_MS", "500"))
    # When true, switching the selected message flushes pending edits instead of dropping them
    FLUSH_ON_SELECT = _env_bool("FLUSH_ON_SELECT", "false")

    # Optional shared secret for /api/admin endpoints; empty leaves them open
    ADMIN_TOKEN = os.getenv("ADMIN_TOKEN", "")
