from models.db import db
from utils.clock import utcnow

class LoginAttempt(db.Model):
    """One authentication attempt. Written once, never updated."""
    __tablename__ = "login_attempts"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), nullable=False, index=True)  # case-folded
    success = db.Column(db.Boolean, nullable=False, default=False)

    ip = db.Column(db.String(64), nullable=True, index=True)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    city = db.Column(db.String(120), nullable=True)
    country = db.Column(db.String(120), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    device_fingerprint = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)

    __table_args__ = (
        db.Index("ix_login_attempts_email_created", "email", "created_at"),
    )
