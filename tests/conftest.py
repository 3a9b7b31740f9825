import pytest

from textsync import create_app
from textsync.extensions import db


@pytest.fixture
def app():
    app = create_app(
        SQLALCHEMY_DATABASE_URI="sqlite://",
        SOCKETIO_ASYNC_MODE="threading",
        SOCKETIO_MESSAGE_QUEUE="",
        REDIS_URL="",
        SWEEPER_ENABLED=False,
        ADMIN_TOKEN="",
        TESTING=True,
    )
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


class FakeTimer:
    """Stand-in for threading.Timer that only fires when the test says so."""

    instances = []

    def __init__(self, interval, function, args=None, kwargs=None):
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.started = False
        self.cancelled = False
        self.daemon = False
        FakeTimer.instances.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    @classmethod
    def fire_all(cls):
        """Fire every started, uncancelled timer once."""
        for timer in list(cls.instances):
            if timer.started and not timer.cancelled:
                timer.fire()

    def fire(self):
        if not self.cancelled:
            self.function(*self.args, **self.kwargs)


@pytest.fixture
def timers():
    FakeTimer.instances = []
    return FakeTimer
