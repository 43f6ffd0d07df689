from flask import Blueprint, request, jsonify, current_app

from security.context import resolve_login_context
from security.lockout import is_account_locked
from security.rate_limit import check_rate_limit, get_remaining
from security.rbac import require_service_token
from security.recorder import LOCKED_MESSAGE, pre_auth_gate, record_login_attempt
from utils.audit import create_audit_log
from utils.captcha import verify_captcha
from utils.validation import json_body, require_email


security_bp = Blueprint("security", __name__, url_prefix="/security")


def _first(data, *keys):
    for key in keys:
        if data.get(key) is not None:
            return data.get(key)
    return None


@security_bp.post("/login-attempts")
@require_service_token
def login_attempt():
    data = json_body()
    context = resolve_login_context(
        ip=data.get("ip"),
        latitude=_first(data, "latitude", "lat"),
        longitude=_first(data, "longitude", "lon"),
        city=data.get("city"),
        country=data.get("country"),
        user_agent=data.get("user_agent"),
        device_fingerprint=data.get("device_fingerprint"),
    )
    result = record_login_attempt(
        data.get("email"),
        data.get("success"),
        context,
        user_id=data.get("user_id"),
    )
    return jsonify(result.to_dict()), 200


@security_bp.post("/login-gate")
@require_service_token
def login_gate():
    data = json_body()
    verdict = pre_auth_gate(data.get("email"), ip=data.get("ip"))
    return jsonify(verdict), 200 if verdict["allowed"] else 429


@security_bp.get("/lockout")
@require_service_token
def lockout_probe():
    email = require_email(request.args.get("email"))
    return jsonify(locked=is_account_locked(email)), 200


@security_bp.post("/rate-limit")
@require_service_token
def rate_limit_probe():
    data = json_body()
    decision = check_rate_limit(data.get("subject"), data.get("action"))
    if not decision.allowed:
        create_audit_log(data.get("user_id"), "rate_limit_exceeded", {
            "subject": str(data.get("subject")),
            "limit_action": data.get("action"),
            "retry_after_seconds": decision.retry_after_seconds,
        })
    return jsonify(decision.to_dict()), 200


@security_bp.get("/rate-limit/remaining")
@require_service_token
def rate_limit_remaining():
    subject = request.args.get("subject")
    action = request.args.get("action")
    return jsonify(subject=subject, action=action, remaining=get_remaining(subject, action)), 200


@security_bp.post("/password-reset")
@require_service_token
def password_reset():
    data = json_body()
    email = require_email(data.get("email"))

    if current_app.config.get("CAPTCHA_REQUIRED", False):
        if not verify_captcha(data.get("captcha_token"), remote_ip=data.get("ip")):
            return jsonify(error="CAPTCHA verification failed"), 400

    decision = check_rate_limit(email, "password_reset")
    if not decision.allowed:
        create_audit_log(None, "rate_limit_exceeded", {
            "email": email,
            "limit_action": "password_reset",
            "retry_after_seconds": decision.retry_after_seconds,
        })
        return jsonify(allowed=False, retry_after_seconds=decision.retry_after_seconds, message=LOCKED_MESSAGE), 429

    create_audit_log(data.get("user_id"), "password_reset_requested", {"email": email, "ip_address": data.get("ip")})
    return jsonify(allowed=True, retry_after_seconds=0, message="Password reset request accepted"), 200


@security_bp.post("/audit-logs")
@require_service_token
def append_audit_log():
    data = json_body()
    entry_id = create_audit_log(data.get("user_id"), data.get("action"), data.get("details"))
    if entry_id is None:
        return jsonify(id=None, message="Audit entry written to fallback log"), 202
    return jsonify(id=entry_id), 201
