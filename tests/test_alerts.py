import pytest
import requests

from security import alerts
from security.alerts import (
    ADMIN,
    USER,
    AdminChannel,
    AlertDispatcher,
    SecurityAlert,
    UserChannel,
    channels_for,
    render_email,
)
from tests.conftest import RecordingChannel


@pytest.mark.parametrize("alert_type,expected", [
    ("account_locked", (ADMIN, USER)),
    ("impossible_travel", (ADMIN, USER)),
    ("suspicious_login", (ADMIN,)),
    ("multiple_failed_logins", (ADMIN,)),
    ("new_device_login", (USER,)),
])
def test_routing_table(alert_type, expected):
    assert channels_for(SecurityAlert(alert_type, "a@example.com")) == expected


def test_user_facing_adds_user_channel():
    alert = SecurityAlert("suspicious_login", "a@example.com", user_facing=True)
    assert channels_for(alert) == (ADMIN, USER)


def test_dispatch_fans_out_to_routed_channels(app, channels):
    alerts.dispatch_alert(SecurityAlert("account_locked", "a@example.com", {"failed_attempts": 5}))
    alerts.dispatch_alert(SecurityAlert("new_device_login", "a@example.com"))

    assert channels[ADMIN].types() == ["account_locked"]
    assert channels[USER].types() == ["account_locked", "new_device_login"]


def test_transient_failure_is_retried(app):
    flaky = RecordingChannel(ADMIN, fail_times=2)
    dispatcher = AlertDispatcher(channels={ADMIN: flaky})

    dispatcher.dispatch(SecurityAlert("suspicious_login", "a@example.com"))

    assert flaky.calls == 3
    assert flaky.types() == ["suspicious_login"]


def test_exhausted_retries_are_logged_and_swallowed(app, caplog):
    dead = RecordingChannel(ADMIN, fail_times=99)
    dispatcher = AlertDispatcher(channels={ADMIN: dead})

    dispatcher.dispatch(SecurityAlert("suspicious_login", "a@example.com"))

    assert dead.calls == 3
    assert dead.sent == []
    assert "not delivered via admin channel: channel down" in caplog.text


def test_raising_channel_never_reaches_caller(app, caplog):
    class Exploding:
        name = ADMIN

        def send(self, alert):
            raise RuntimeError("boom")

    AlertDispatcher(channels={ADMIN: Exploding()}).dispatch(SecurityAlert("multiple_failed_logins", "a@example.com"))
    assert "boom" in caplog.text


def test_one_failing_channel_does_not_block_the_other(app):
    dead = RecordingChannel(ADMIN, fail_times=99)
    user = RecordingChannel(USER)
    AlertDispatcher(channels={ADMIN: dead, USER: user}).dispatch(SecurityAlert("account_locked", "a@example.com"))
    assert user.types() == ["account_locked"]


def test_async_dispatch_delivers_in_background(app):
    app.config["ALERT_ASYNC"] = True
    admin = RecordingChannel(ADMIN)
    dispatcher = AlertDispatcher(channels={ADMIN: admin})
    dispatcher.init_app(app)
    try:
        dispatcher.dispatch(SecurityAlert("suspicious_login", "a@example.com"))
    finally:
        dispatcher.shutdown(wait=True)
    assert admin.types() == ["suspicious_login"]


class FakeResponse:
    def __init__(self, status_code=200, text="ok"):
        self.status_code = status_code
        self.text = text

    @property
    def ok(self):
        return self.status_code < 400


def test_admin_webhook_payload(app, monkeypatch):
    app.config["ADMIN_ALERT_URL"] = "https://alerts.example.com/admin"
    app.config["ALERT_API_KEY"] = "alert-key"
    posted = {}

    def fake_post(url, json=None, headers=None, timeout=None):
        posted.update(url=url, json=json, headers=headers)
        return FakeResponse()

    monkeypatch.setattr(alerts.requests, "post", fake_post)

    ok, error = AdminChannel().send(SecurityAlert("account_locked", "a@example.com", {"failed_attempts": 5}))

    assert ok is True and error is None
    assert posted["url"] == "https://alerts.example.com/admin"
    assert posted["headers"] == {"Authorization": "Bearer alert-key"}
    assert posted["json"] == {
        "alert_type": "account_locked",
        "target_email": "a@example.com",
        "details": {"failed_attempts": 5},
    }


def test_user_webhook_payload_and_http_error(app, monkeypatch):
    app.config["USER_ALERT_URL"] = "https://alerts.example.com/user"
    posted = {}

    def fake_post(url, json=None, headers=None, timeout=None):
        posted.update(json=json)
        return FakeResponse(503, "unavailable")

    monkeypatch.setattr(alerts.requests, "post", fake_post)

    ok, error = UserChannel().send(SecurityAlert("new_device_login", "a@example.com", user_name="Ann"))

    assert ok is False
    assert error.startswith("HTTP 503")
    assert posted["json"] == {
        "alert_type": "new_device_login",
        "user_email": "a@example.com",
        "details": {},
        "user_name": "Ann",
    }


def test_webhook_network_error_is_reported(app, monkeypatch):
    app.config["ADMIN_ALERT_URL"] = "https://alerts.example.com/admin"

    def fake_post(*args, **kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(alerts.requests, "post", fake_post)
    ok, error = AdminChannel().send(SecurityAlert("suspicious_login", "a@example.com"))
    assert ok is False
    assert "refused" in error


def test_email_fallback_without_smtp_reports_failure(app):
    ok, error = AdminChannel().send(SecurityAlert("suspicious_login", "a@example.com"))
    assert ok is False
    assert error == "Email not configured"


def test_render_email_lists_known_details():
    alert = SecurityAlert("account_locked", "a@example.com", {
        "failed_attempts": 5,
        "ip_address": "203.0.113.5",
        "location": None,
    }, user_name="Ann")

    subject, body = render_email(USER, alert)
    assert subject == "Your account has been temporarily locked"
    assert body.startswith("Hi Ann,")
    assert "Failed attempts: 5" in body
    assert "IP address: 203.0.113.5" in body
    assert "Location" not in body

    subject, body = render_email(ADMIN, alert)
    assert subject == "Account Locked Alert"
    assert "a@example.com" in body
