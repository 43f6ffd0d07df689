"""
Security alert fan-out.

An alert is routed to a fixed set of channels by type. Each channel delivery
runs on a small worker pool with its own retry budget, so the request that
produced the alert never waits on (or fails because of) delivery. Callers are
responsible for dispatching only on an authoritative state transition; the
dispatcher itself does not de-duplicate.
"""
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional

import requests
from flask import current_app

from utils.emailer import send_email

ADMIN = "admin"
USER = "user"

ALERT_ROUTES = {
    "account_locked": (ADMIN, USER),
    "impossible_travel": (ADMIN, USER),
    "suspicious_login": (ADMIN,),
    "multiple_failed_logins": (ADMIN,),
    "new_device_login": (USER,),
}


@dataclass(frozen=True)
class SecurityAlert:
    alert_type: str
    email: str
    details: dict = field(default_factory=dict)
    user_facing: bool = False
    user_name: Optional[str] = None


def channels_for(alert: SecurityAlert) -> tuple:
    channels = ALERT_ROUTES.get(alert.alert_type, (ADMIN,))
    if alert.user_facing and USER not in channels:
        channels = channels + (USER,)
    return channels


SUBJECTS = {
    ADMIN: {
        "account_locked": "Account Locked Alert",
        "impossible_travel": "Impossible Travel Detected",
        "suspicious_login": "Suspicious Activity Detected",
        "multiple_failed_logins": "Multiple Failed Logins",
    },
    USER: {
        "account_locked": "Your account has been temporarily locked",
        "impossible_travel": "Unusual sign-in location on your account",
        "suspicious_login": "Suspicious login attempt on your account",
        "new_device_login": "New device signed in to your account",
    },
}

DETAIL_LABELS = (
    ("failed_attempts", "Failed attempts"),
    ("attempt_count", "Attempt count"),
    ("ip_address", "IP address"),
    ("location", "Location"),
    ("device", "Device"),
    ("reason", "Reason"),
    ("last_location", "Previous location"),
    ("distance_km", "Distance (km)"),
    ("time_hours", "Hours since previous login"),
    ("locked_until", "Locked until (UTC)"),
)


def render_email(channel: str, alert: SecurityAlert) -> tuple[str, str]:
    subject = SUBJECTS[channel].get(alert.alert_type, "Security Alert")
    lines = []
    if channel == ADMIN:
        lines.append(f"A security event ({alert.alert_type}) was recorded for {alert.email}.")
    else:
        lines.append(f"Hi {alert.user_name or 'there'},")
        lines.append("")
        lines.append("We noticed security-relevant activity on your account.")
    lines.append("")
    for key, label in DETAIL_LABELS:
        value = alert.details.get(key)
        if value not in (None, ""):
            lines.append(f"{label}: {value}")
    lines.append("")
    if channel == USER:
        lines.append("If this wasn't you, change your password and enable two-factor authentication.")
    else:
        lines.append("Review this activity in the admin security dashboard.")
    return subject, "\n".join(lines)


class AdminChannel:
    name = ADMIN

    def payload(self, alert: SecurityAlert) -> dict:
        return {"alert_type": alert.alert_type, "target_email": alert.email, "details": alert.details}

    def send(self, alert: SecurityAlert):
        cfg = current_app.config
        url = cfg.get("ADMIN_ALERT_URL")
        if url:
            return _post_webhook(url, self.payload(alert))
        subject, body = render_email(ADMIN, alert)
        return send_email(cfg.get("ADMIN_ALERT_EMAILS") or [], subject, body)


class UserChannel:
    name = USER

    def payload(self, alert: SecurityAlert) -> dict:
        out = {"alert_type": alert.alert_type, "user_email": alert.email, "details": alert.details}
        if alert.user_name:
            out["user_name"] = alert.user_name
        return out

    def send(self, alert: SecurityAlert):
        url = current_app.config.get("USER_ALERT_URL")
        if url:
            return _post_webhook(url, self.payload(alert))
        subject, body = render_email(USER, alert)
        return send_email(alert.email, subject, body)


def _post_webhook(url: str, payload: dict):
    headers = {}
    api_key = current_app.config.get("ALERT_API_KEY")
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    try:
        resp = requests.post(url, json=payload, headers=headers, timeout=5)
    except requests.RequestException as exc:
        return False, str(exc)
    if not resp.ok:
        return False, f"HTTP {resp.status_code}: {resp.text[:200]}"
    return True, None


class AlertDispatcher:
    def __init__(self, app=None, channels=None, max_workers: int = 4):
        self.channels = channels or {ADMIN: AdminChannel(), USER: UserChannel()}
        self.max_workers = max_workers
        self._executor = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        if app.config.get("ALERT_ASYNC", True):
            self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="security-alerts")
        app.extensions["alert_dispatcher"] = self

    def dispatch(self, alert: SecurityAlert) -> None:
        """Fire and forget. Never raises into the caller."""
        app = current_app._get_current_object()
        for name in channels_for(alert):
            channel = self.channels.get(name)
            if channel is None:
                app.logger.warning("No channel %r configured for %s alert", name, alert.alert_type)
                continue
            try:
                if self._executor is None:
                    self._deliver(app, channel, alert)
                else:
                    self._executor.submit(self._deliver, app, channel, alert)
            except Exception:
                app.logger.exception("Could not queue %s alert for %s", alert.alert_type, alert.email)

    def _deliver(self, app, channel, alert: SecurityAlert) -> bool:
        with app.app_context():
            retries = app.config.get("ALERT_MAX_RETRIES", 2)
            backoff = app.config.get("ALERT_RETRY_BACKOFF_SECONDS", 0.5)
            error = None
            for attempt in range(retries + 1):
                try:
                    ok, error = channel.send(alert)
                except Exception as exc:
                    ok, error = False, str(exc)
                if ok:
                    return True
                if attempt < retries:
                    time.sleep(backoff * (2 ** attempt))
            app.logger.error(
                "Security alert %s for %s not delivered via %s channel: %s",
                alert.alert_type, alert.email, channel.name, error,
            )
            return False

    def shutdown(self, wait: bool = True):
        if self._executor is not None:
            self._executor.shutdown(wait=wait)


def get_dispatcher() -> AlertDispatcher:
    return current_app.extensions["alert_dispatcher"]


def dispatch_alert(alert: SecurityAlert) -> None:
    get_dispatcher().dispatch(alert)
