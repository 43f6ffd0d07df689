from models.db import db
from utils.clock import utcnow

class LockoutState(db.Model):
    __tablename__ = "lockout_states"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)

    # Consecutive failures since the last success (or since the last expired lock)
    failure_count = db.Column(db.Integer, default=0, nullable=False)
    locked_until = db.Column(db.DateTime, nullable=True)

    # Lock cycles inside the backoff cooldown window
    lock_count = db.Column(db.Integer, default=0, nullable=False)
    last_locked_at = db.Column(db.DateTime, nullable=True)

    last_success_at = db.Column(db.DateTime, nullable=True)
    last_success_ip = db.Column(db.String(64), nullable=True)

    # Last known good location, only replaced by a success that carries coordinates
    last_location_at = db.Column(db.DateTime, nullable=True)
    last_latitude = db.Column(db.Float, nullable=True)
    last_longitude = db.Column(db.Float, nullable=True)
    last_city = db.Column(db.String(120), nullable=True)
    last_country = db.Column(db.String(120), nullable=True)

    # Compare-and-set guard: every UPDATE checks and bumps this
    version = db.Column(db.Integer, nullable=False, default=1)

    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}
