"""
Login attempt recording.

``record_login_attempt`` is the single entry point the identity layer calls
after every credential check. Per call it advances the lockout state, runs the
impossible-travel check for successes, stores the attempt, writes exactly one
audit entry and hands any resulting alerts to the dispatcher.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.login_attempt import LoginAttempt
from security import lockout
from security.alerts import SecurityAlert, dispatch_alert
from security.context import LoginContext
from security.devices import remember_device
from security.errors import ValidationError
from security.rate_limit import BLOCKED_MESSAGE, check_rate_limit
from security.travel import GeoPoint, TravelCheck, check_impossible_travel
from utils.audit import create_audit_log
from utils.clock import utcnow
from utils.validation import require_email

# Shown for every lock or throttle, whatever the cause
LOCKED_MESSAGE = BLOCKED_MESSAGE


@dataclass
class AttemptResult:
    locked: bool
    message: str
    locked_until: Optional[datetime] = None
    attempts_remaining: Optional[int] = None
    impossible_travel: Optional[TravelCheck] = None
    alerts: list = field(default_factory=list)

    def to_dict(self) -> dict:
        out = {"locked": self.locked, "message": self.message}
        if self.locked_until is not None:
            out["locked_until"] = self.locked_until.isoformat()
        if self.attempts_remaining is not None:
            out["attempts_remaining"] = self.attempts_remaining
        out["should_alert"] = bool(self.alerts)
        if self.alerts:
            out["alert_types"] = [a.alert_type for a in self.alerts]
            out["alert_type"] = self.alerts[0].alert_type
            out["alert_details"] = self.alerts[0].details
        if self.impossible_travel is not None:
            out["impossible_travel"] = self.impossible_travel.to_dict()
        return out


def _store_attempt(email: str, success: bool, ctx: LoginContext, now: datetime) -> None:
    try:
        db.session.add(LoginAttempt(
            email=email,
            success=success,
            ip=ctx.ip,
            latitude=ctx.latitude,
            longitude=ctx.longitude,
            city=ctx.city,
            country=ctx.country,
            user_agent=ctx.user_agent,
            device_fingerprint=ctx.device_fingerprint,
            created_at=now,
        ))
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Could not store login attempt for %s", email)


def _base_details(email: str, ctx: LoginContext) -> dict:
    return {
        "email": email,
        "ip_address": ctx.ip,
        "location": ctx.location_label,
        "device": ctx.device,
    }


def _audit_action(success: bool, outcome: lockout.LockoutOutcome, travel: Optional[TravelCheck]) -> str:
    if outcome.rejected:
        return "login_blocked"
    if success:
        if travel is not None and travel.suspicious:
            return "impossible_travel_detected"
        return "login_success"
    if outcome.locked_now:
        return "account_locked"
    if outcome.locked:
        return "login_blocked"
    return "login_failed"


def _success_alerts(email, ctx, outcome, travel) -> list:
    alerts = []
    base = _base_details(email, ctx)

    if travel.suspicious:
        alerts.append(SecurityAlert(
            "impossible_travel", email,
            details={**base, **travel.details, "reason": travel.reason},
            user_facing=True,
        ))

    if ctx.device_fingerprint:
        try:
            is_new = remember_device(email, ctx.device_fingerprint, ctx.user_agent)
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception("Could not update known devices for %s", email)
            is_new = False
        if is_new and outcome.had_prior_success:
            alerts.append(SecurityAlert("new_device_login", email, details=base, user_facing=True))
    return alerts


def _failure_alerts(email, ctx, outcome) -> list:
    base = _base_details(email, ctx)
    if outcome.locked_now:
        return [SecurityAlert("account_locked", email, details={
            **base,
            "failed_attempts": outcome.failure_count,
            "locked_until": outcome.locked_until.isoformat(),
        })]
    if outcome.warned_now:
        return [SecurityAlert("multiple_failed_logins", email, details={
            **base,
            "attempt_count": outcome.failure_count,
        })]
    return []


def record_login_attempt(email, success, context: LoginContext = None, user_id=None,
                         now: datetime = None) -> AttemptResult:
    email = require_email(email)
    if not isinstance(success, bool):
        raise ValidationError("success must be a boolean")
    ctx = context or LoginContext()
    now = now or utcnow()

    try:
        outcome = lockout.register_attempt(email, success, ctx, now=now)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Lockout update failed for %s; failing open", email)
        outcome = None

    # a success refused by an active lock is not an accepted login
    _store_attempt(email, success and not (outcome is not None and outcome.rejected), ctx, now)

    if outcome is None:
        create_audit_log(user_id, "login_success" if success else "login_failed", {
            **_base_details(email, ctx),
            "success": success,
            "lockout_state": "unavailable",
        })
        return AttemptResult(locked=False, message="Failed to record attempt")

    travel = None
    alerts = []
    if success and not outcome.rejected:
        current = GeoPoint(ctx.latitude, ctx.longitude, now, ctx.city, ctx.country)
        travel = check_impossible_travel(outcome.previous_location, current)
        alerts = _success_alerts(email, ctx, outcome, travel)
    elif not success:
        alerts = _failure_alerts(email, ctx, outcome)

    details = {
        **_base_details(email, ctx),
        "success": success,
        "device_fingerprint": ctx.device_fingerprint,
        "failure_count": outcome.failure_count,
        "locked_until": outcome.locked_until.isoformat() if outcome.locked_until else None,
        "alert_types": [a.alert_type for a in alerts],
    }
    if travel is not None and travel.suspicious:
        details["impossible_travel"] = travel.details
    create_audit_log(user_id, _audit_action(success, outcome, travel), details)

    for alert in alerts:
        try:
            dispatch_alert(alert)
        except Exception:
            current_app.logger.exception("Alert dispatch failed for %s", email)

    if outcome.locked:
        return AttemptResult(
            locked=True,
            message=LOCKED_MESSAGE,
            locked_until=outcome.locked_until,
            alerts=alerts,
        )
    return AttemptResult(
        locked=False,
        message="Login successful" if success else "Login failed",
        attempts_remaining=None if success else outcome.attempts_remaining,
        impossible_travel=travel,
        alerts=alerts,
    )


def pre_auth_gate(email, ip: str = None, now: datetime = None) -> dict:
    """
    Answers "may this login proceed to the credential check?".

    Throttled IPs and locked accounts get the same answer and message so a
    prober cannot tell which rule fired.
    """
    email = require_email(email)
    now = now or utcnow()

    if ip:
        decision = check_rate_limit(ip, "login_ip", now=now)
        if not decision.allowed:
            return {"allowed": False, "retry_after_seconds": decision.retry_after_seconds, "message": LOCKED_MESSAGE}

    try:
        locked, seconds = lockout.lock_status(email, now)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Lockout probe failed for %s; failing open", email)
        locked, seconds = False, 0
    if locked:
        return {"allowed": False, "retry_after_seconds": seconds, "message": LOCKED_MESSAGE}
    return {"allowed": True, "retry_after_seconds": 0, "message": "OK"}
