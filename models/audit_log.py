from models.db import db
from utils.clock import utcnow

class AuditLog(db.Model):
    """Append-only. Nothing in this service updates or deletes rows."""
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=True, index=True)  # nullable for unauth events
    action = db.Column(db.String(80), nullable=False, index=True)  # e.g. login_failed, account_locked

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    details = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)
