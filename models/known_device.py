from models.db import db
from utils.clock import utcnow

class KnownDevice(db.Model):
    __tablename__ = "known_devices"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, index=True)
    fingerprint = db.Column(db.String(128), nullable=False)
    user_agent = db.Column(db.String(255), nullable=True)

    first_seen_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("email", "fingerprint", name="uq_known_devices_email_fingerprint"),
    )
