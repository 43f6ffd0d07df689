from flask import Blueprint, jsonify, g

from security.admin import admin_unlock_account, admin_reset_rate_limit, admin_set_rate_limit
from security.rbac import require_service_token, require_actor, rate_limited
from utils.validation import json_body

admin_bp = Blueprint("admin", __name__, url_prefix="/admin/security")


@admin_bp.post("/unlock")
@require_service_token
@require_actor
@rate_limited("admin_write")
def unlock_account():
    data = json_body()
    return jsonify(admin_unlock_account(g.actor_id, data.get("email"))), 200


@admin_bp.post("/rate-limits/reset")
@require_service_token
@require_actor
@rate_limited("admin_write")
def reset_rate_limit():
    data = json_body()
    return jsonify(admin_reset_rate_limit(g.actor_id, data.get("subject"), data.get("action"))), 200


@admin_bp.post("/rate-limits/set")
@require_service_token
@require_actor
@rate_limited("admin_write")
def set_rate_limit():
    data = json_body()
    return jsonify(admin_set_rate_limit(g.actor_id, data.get("subject"), data.get("action"), data.get("count"))), 200
