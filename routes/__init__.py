from flask import Blueprint, jsonify

from .security import security_bp
from .admin import admin_bp
from .audit_logs import audit_bp

health_bp = Blueprint("health", __name__)


@health_bp.get("/health")
def health():
    return jsonify(status="ok"), 200
