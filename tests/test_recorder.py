from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from models.audit_log import AuditLog
from models.known_device import KnownDevice
from models.login_attempt import LoginAttempt
from security import lockout
from security.context import LoginContext
from security.errors import ValidationError
from security.recorder import LOCKED_MESSAGE, pre_auth_gate, record_login_attempt


def test_attempt_is_stored_with_context(app, t0):
    ctx = LoginContext(ip="203.0.113.4", latitude=38.72, longitude=-9.14, city="Lisbon",
                       country="Portugal", user_agent="curl/8.0", device_fingerprint="fp-1")
    record_login_attempt("Rae@Example.com", False, ctx, now=t0)

    row = LoginAttempt.query.one()
    assert row.email == "rae@example.com"
    assert row.success is False
    assert row.ip == "203.0.113.4"
    assert (row.latitude, row.longitude) == (38.72, -9.14)
    assert row.device_fingerprint == "fp-1"
    assert row.created_at == t0


@pytest.mark.parametrize("email,success", [
    ("not-an-email", True),
    (None, False),
    ("ok@example.com", "yes"),
    ("ok@example.com", None),
])
def test_bad_input_is_rejected_without_side_effects(app, email, success):
    with pytest.raises(ValidationError):
        record_login_attempt(email, success)
    assert LoginAttempt.query.count() == 0
    assert AuditLog.query.count() == 0


def test_result_shape_on_lock(app, t0):
    for i in range(4):
        record_login_attempt("sam@example.com", False, now=t0 + timedelta(seconds=i))
    out = record_login_attempt("sam@example.com", False, now=t0 + timedelta(seconds=5)).to_dict()

    assert out["locked"] is True
    assert out["message"] == LOCKED_MESSAGE
    assert out["locked_until"] == (t0 + timedelta(seconds=5, minutes=15)).isoformat()
    assert out["should_alert"] is True
    assert out["alert_type"] == "account_locked"
    assert out["alert_details"]["failed_attempts"] == 5
    assert "attempts_remaining" not in out
    assert "impossible_travel" not in out


def test_result_shape_on_plain_failure(app, t0):
    out = record_login_attempt("tia@example.com", False, now=t0).to_dict()
    assert out == {"locked": False, "message": "Login failed", "attempts_remaining": 4, "should_alert": False}


def test_lockout_store_failure_fails_open(app, monkeypatch, caplog, t0):
    def broken(*args, **kwargs):
        raise OperationalError("UPDATE lockout_states", {}, Exception("disk I/O error"))

    monkeypatch.setattr(lockout, "register_attempt", broken)

    result = record_login_attempt("uma@example.com", False, now=t0)

    assert result.locked is False
    assert result.message == "Failed to record attempt"
    assert "failing open" in caplog.text
    assert LoginAttempt.query.count() == 1
    entry = AuditLog.query.one()
    assert entry.action == "login_failed"
    assert entry.details["lockout_state"] == "unavailable"


def test_new_device_notice_after_first_success(app, channels, t0):
    email = "vic@example.com"
    record_login_attempt(email, True, LoginContext(device_fingerprint="laptop"), now=t0)
    assert channels["user"].types() == []

    record_login_attempt(email, True, LoginContext(device_fingerprint="laptop"), now=t0 + timedelta(minutes=1))
    assert channels["user"].types() == []

    result = record_login_attempt(email, True, LoginContext(device_fingerprint="phone"), now=t0 + timedelta(minutes=2))
    assert channels["user"].types() == ["new_device_login"]
    assert channels["admin"].types() == []
    assert result.to_dict()["alert_type"] == "new_device_login"
    assert KnownDevice.query.filter_by(email=email).count() == 2


def test_gate_allows_open_account(app, t0):
    assert pre_auth_gate("wes@example.com", ip="203.0.113.8", now=t0) == {
        "allowed": True, "retry_after_seconds": 0, "message": "OK",
    }


def test_gate_blocks_locked_account(app, t0):
    for i in range(5):
        record_login_attempt("xia@example.com", False, now=t0 + timedelta(seconds=i))
    verdict = pre_auth_gate("xia@example.com", now=t0 + timedelta(minutes=5))
    assert verdict["allowed"] is False
    assert verdict["message"] == LOCKED_MESSAGE
    assert verdict["retry_after_seconds"] > 0


def test_gate_throttle_and_lock_look_the_same(app, t0):
    for i in range(5):
        record_login_attempt("yan@example.com", False, now=t0 + timedelta(seconds=i))
    locked = pre_auth_gate("yan@example.com", now=t0 + timedelta(minutes=1))

    for _ in range(15):
        pre_auth_gate("zed@example.com", ip="198.51.100.200", now=t0)
    throttled = pre_auth_gate("zed@example.com", ip="198.51.100.200", now=t0)

    assert throttled["allowed"] is False
    assert throttled["message"] == locked["message"]
    assert set(throttled) == set(locked)


def test_gate_fails_open_when_lock_store_is_down(app, monkeypatch, caplog, t0):
    for i in range(5):
        record_login_attempt("abe@example.com", False, now=t0 + timedelta(seconds=i))

    def broken(*args, **kwargs):
        raise OperationalError("SELECT lockout_states", {}, Exception("disk I/O error"))

    monkeypatch.setattr(lockout, "lock_status", broken)

    verdict = pre_auth_gate("abe@example.com", ip="203.0.113.30", now=t0 + timedelta(minutes=1))
    assert verdict["allowed"] is True
    assert "failing open" in caplog.text


def test_success_refused_by_lock_is_stored_as_failure(app, t0):
    for i in range(5):
        record_login_attempt("bea@example.com", False, now=t0 + timedelta(seconds=i))
    result = record_login_attempt("bea@example.com", True, now=t0 + timedelta(minutes=1))

    assert result.locked is True
    assert LoginAttempt.query.filter_by(email="bea@example.com", success=True).count() == 0
    assert LoginAttempt.query.filter_by(email="bea@example.com").count() == 6


def test_every_raised_alert_is_listed(app, channels, t0):
    email = "cal@example.com"
    record_login_attempt(email, True, LoginContext(latitude=0.0, longitude=0.0, device_fingerprint="laptop"), now=t0)

    out = record_login_attempt(
        email, True,
        LoginContext(latitude=0.0, longitude=80.9389, device_fingerprint="phone"),
        now=t0 + timedelta(minutes=30),
    ).to_dict()

    assert out["alert_types"] == ["impossible_travel", "new_device_login"]
    assert out["alert_type"] == "impossible_travel"
    assert channels["user"].types() == ["impossible_travel", "new_device_login"]
