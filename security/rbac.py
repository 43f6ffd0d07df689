import hmac
from functools import wraps
from flask import g, jsonify, request, current_app

from security.rate_limit import check_rate_limit


def _bearer_token():
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return None
    return header[len("Bearer "):].strip() or None


def require_service_token(fn):
    """
    Only the trusted caller holding SERVICE_API_KEY may reach the endpoint.
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        expected = current_app.config.get("SERVICE_API_KEY")
        token = _bearer_token()
        if not expected or not token or not hmac.compare_digest(token, expected):
            return jsonify(error="Authentication required"), 401
        return fn(*args, **kwargs)
    return wrapper


def require_actor(fn):
    """
    Admin endpoints: the caller names the acting admin in X-Actor-Id.
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        actor = (request.headers.get("X-Actor-Id") or "").strip()
        if not actor or len(actor) > 64:
            return jsonify(error="X-Actor-Id required"), 403
        g.actor_id = actor
        return fn(*args, **kwargs)
    return wrapper


def rate_limited(action: str):
    """
    Usage: @rate_limited("admin_write"), keyed by the acting admin.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            decision = check_rate_limit(getattr(g, "actor_id", None) or "anonymous", action)
            if not decision.allowed:
                return jsonify(error=decision.message, retry_after_seconds=decision.retry_after_seconds), 429
            return fn(*args, **kwargs)
        return wrapper
    return decorator
