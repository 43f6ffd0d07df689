import threading
from datetime import datetime

import pytest

from app import create_app
from config import Config
from models import db
from security.alerts import ADMIN, USER

SERVICE_KEY = "test-service-key"


class TestConfig(Config):
    __test__ = False

    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    SERVICE_API_KEY = SERVICE_KEY
    ALERT_ASYNC = False
    ALERT_RETRY_BACKOFF_SECONDS = 0
    GEOLOCATION_ENABLED = False
    CAPTCHA_REQUIRED = False
    LOCKOUT_THRESHOLD = 5
    LOCKOUT_MINUTES = 15
    LOCKOUT_BACKOFF_MULTIPLIER = 2
    FAILED_LOGIN_WARNING_THRESHOLD = 3
    ADMIN_ALERT_URL = None
    USER_ALERT_URL = None


class RecordingChannel:
    """Stands in for a delivery channel; optionally fails the first N sends."""

    def __init__(self, name, fail_times=0):
        self.name = name
        self.fail_times = fail_times
        self.calls = 0
        self.sent = []
        self._lock = threading.Lock()

    def send(self, alert):
        with self._lock:
            self.calls += 1
            if self.calls <= self.fail_times:
                return False, "channel down"
            self.sent.append(alert)
        return True, None

    def types(self):
        return [a.alert_type for a in self.sent]


def build_app(config=TestConfig):
    app = create_app(config)
    channels = {ADMIN: RecordingChannel(ADMIN), USER: RecordingChannel(USER)}
    app.extensions["alert_dispatcher"].channels = channels
    return app, channels


@pytest.fixture
def app_and_channels():
    app, channels = build_app()
    with app.app_context():
        db.create_all()
        yield app, channels
        db.session.remove()
        db.drop_all()


@pytest.fixture
def app(app_and_channels):
    return app_and_channels[0]


@pytest.fixture
def channels(app_and_channels):
    return app_and_channels[1]


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {SERVICE_KEY}"}


@pytest.fixture
def t0():
    return datetime(2026, 3, 1, 12, 0, 0)
