from models.db import db
from utils.clock import utcnow

class RateLimitWindow(db.Model):
    __tablename__ = "rate_limit_windows"

    id = db.Column(db.Integer, primary_key=True)
    subject = db.Column(db.String(255), nullable=False)   # email, user id, admin id, ip
    action = db.Column(db.String(64), nullable=False)     # password_reset, ai_coach, ...

    window_start = db.Column(db.DateTime, nullable=False)
    count = db.Column(db.Integer, default=0, nullable=False)

    version = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("subject", "action", name="uq_rate_limit_windows_subject_action"),
    )
    __mapper_args__ = {"version_id_col": version}
