import json

from flask import request, current_app, has_request_context
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.audit_log import AuditLog
from security.errors import ValidationError

AUDIT_ACTIONS = frozenset({
    "login_success",
    "login_failed",
    "login_blocked",
    "account_locked",
    "impossible_travel_detected",
    "logout",
    "password_changed",
    "password_reset_requested",
    "2fa_enabled",
    "2fa_disabled",
    "session_revoked",
    "session_revoked_all",
    "profile_updated",
    "admin_role_granted",
    "admin_role_revoked",
    "admin_account_unlocked",
    "admin_viewed_user_data",
    "admin_rate_limit_reset",
    "admin_rate_limit_set",
    "backup_codes_generated",
    "recovery_email_updated",
    "rate_limit_exceeded",
})


def _jsonable(details):
    if details is None:
        return {}
    if not isinstance(details, dict):
        raise ValidationError("details must be an object")
    return json.loads(json.dumps(details, default=str))


def create_audit_log(user_id, action: str, details=None):
    """
    Appends one audit entry and returns its id.

    Unknown actions are rejected. A storage failure never propagates: the
    entry is written in full to the application log instead and None is
    returned, so the security decision already taken stands.
    """
    if action not in AUDIT_ACTIONS:
        raise ValidationError(f"Unknown audit action: {action}")
    details = _jsonable(details)

    ip = user_agent = None
    if has_request_context():
        ip = request.headers.get("X-Forwarded-For", request.remote_addr)
        user_agent = request.headers.get("User-Agent", "")

    row = AuditLog(
        user_id=str(user_id) if user_id is not None else None,
        action=action,
        ip=ip[:64] if ip else None,
        user_agent=user_agent[:255] if user_agent else None,
        details=details,
    )
    try:
        db.session.add(row)
        db.session.commit()
        return row.id
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.critical(
            "AUDIT FALLBACK %s",
            json.dumps({"user_id": row.user_id, "action": action, "ip": row.ip, "details": details}, default=str),
            exc_info=True,
        )
        return None
