from flask import Blueprint, jsonify, request, g
from models.audit_log import AuditLog
from security.rbac import require_service_token, require_actor
from utils.audit import create_audit_log

audit_bp = Blueprint("audit", __name__, url_prefix="/admin/security")


@audit_bp.get("/audit-logs")
@require_service_token
@require_actor
def list_audit_logs():

    limit = request.args.get("limit", type=int) or 200
    limit = max(1, min(limit, 500))

    action = request.args.get("action")
    user_id = request.args.get("user_id")

    q = AuditLog.query
    if action:
        q = q.filter(AuditLog.action == action)
    if user_id:
        q = q.filter(AuditLog.user_id == user_id)

    rows = q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()

    out = [
        {
            "id": r.id,
            "created_at": r.created_at.isoformat() if r.created_at else None,
            "user_id": r.user_id,
            "action": r.action,
            "ip": r.ip,
            "user_agent": r.user_agent,
            "details": r.details,
        }
        for r in rows
    ]

    # Looking at one user's trail is itself an auditable admin data view
    if user_id:
        create_audit_log(g.actor_id, "admin_viewed_user_data", {"viewed_user_id": user_id, "rows": len(out)})

    return jsonify(out), 200
