from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.db import compare_and_set
from models.lockout_state import LockoutState
from security.context import LoginContext
from security.travel import GeoPoint
from utils.clock import utcnow


@dataclass(frozen=True)
class LockoutOutcome:
    threshold: int
    failure_count: int
    locked_until: Optional[datetime]
    locked: bool                 # a lock is in force after this attempt
    locked_now: bool = False     # this attempt performed OPEN -> LOCKED
    warned_now: bool = False     # this attempt reached the warning threshold
    rejected: bool = False       # success that arrived while locked
    previous_location: Optional[GeoPoint] = None
    had_prior_success: bool = False

    @property
    def attempts_remaining(self) -> Optional[int]:
        if self.locked:
            return None
        return max(self.threshold - self.failure_count, 0)


def _threshold() -> int:
    return current_app.config.get("LOCKOUT_THRESHOLD", 5)


def _load(email: str) -> Optional[LockoutState]:
    return LockoutState.query.filter_by(email=email).populate_existing().first()


def _lock_active(row: LockoutState, now: datetime) -> bool:
    return row.locked_until is not None and row.locked_until > now


def _previous_location(row: LockoutState) -> Optional[GeoPoint]:
    if row.last_location_at is None:
        return None
    return GeoPoint(
        latitude=row.last_latitude,
        longitude=row.last_longitude,
        at=row.last_location_at,
        city=row.last_city,
        country=row.last_country,
    )


def _lock_duration(row: LockoutState, now: datetime) -> timedelta:
    """
    Base duration, doubled (by LOCKOUT_BACKOFF_MULTIPLIER) for every earlier lock
    cycle inside the cooldown window, capped at LOCKOUT_MAX_MINUTES.
    """
    cfg = current_app.config
    base = cfg.get("LOCKOUT_MINUTES", 15)
    multiplier = cfg.get("LOCKOUT_BACKOFF_MULTIPLIER", 1)
    cooldown = timedelta(hours=cfg.get("LOCKOUT_BACKOFF_COOLDOWN_HOURS", 24))
    cap = cfg.get("LOCKOUT_MAX_MINUTES", base)

    if row.last_locked_at is not None and now - row.last_locked_at < cooldown:
        row.lock_count = (row.lock_count or 0) + 1
    else:
        row.lock_count = 1

    minutes = min(base * (multiplier ** (row.lock_count - 1)), max(cap, base))
    return timedelta(minutes=minutes)


def lock_status(email: str, now: datetime = None) -> tuple[bool, int]:
    """
    Returns (locked, seconds_remaining). Read only; an expired lock reads as open.
    """
    now = now or utcnow()
    row = _load(email)
    if not row or not _lock_active(row, now):
        return False, 0
    seconds = int((row.locked_until - now).total_seconds())
    return True, max(seconds, 1)


def is_account_locked(email: str, now: datetime = None) -> bool:
    """Side-effect-free probe. Fails open when the store is unavailable."""
    try:
        locked, _ = lock_status(email, now)
        return locked
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Lockout probe failed for %s; failing open", email)
        return False


def register_attempt(email: str, success: bool, context: LoginContext = None, now: datetime = None) -> LockoutOutcome:
    """
    Advances the per-email state machine by one attempt, atomically.

    The read-modify-write runs inside compare_and_set, so concurrent attempts
    for the same email are applied one after another and exactly one of them
    can observe the OPEN -> LOCKED transition.
    """
    context = context or LoginContext()
    now = now or utcnow()
    threshold = _threshold()
    warning = current_app.config.get("FAILED_LOGIN_WARNING_THRESHOLD", 0)

    def mutate() -> LockoutOutcome:
        row = _load(email)
        if row is None:
            row = LockoutState(email=email, failure_count=0, lock_count=0)
            db.session.add(row)

        active = _lock_active(row, now)
        previous = _previous_location(row)
        had_prior_success = row.last_success_at is not None

        if success:
            if active:
                # The identity provider should never have let this through
                return LockoutOutcome(threshold, row.failure_count, row.locked_until, True,
                                      rejected=True, had_prior_success=had_prior_success)

            row.failure_count = 0
            row.locked_until = None
            row.lock_count = 0
            row.last_success_at = now
            row.last_success_ip = context.ip
            if context.has_coordinates:
                row.last_location_at = now
                row.last_latitude = context.latitude
                row.last_longitude = context.longitude
                row.last_city = context.city
                row.last_country = context.country
            return LockoutOutcome(threshold, 0, None, False,
                                  previous_location=previous, had_prior_success=had_prior_success)

        if active:
            row.failure_count += 1
            return LockoutOutcome(threshold, row.failure_count, row.locked_until, True)

        if row.locked_until is not None:
            # Lock ran out: LOCKED -> OPEN on first touch, new counting cycle
            row.failure_count = 0
            row.locked_until = None

        row.failure_count += 1
        count = row.failure_count

        if count >= threshold:
            row.locked_until = now + _lock_duration(row, now)
            row.last_locked_at = now
            return LockoutOutcome(threshold, count, row.locked_until, True, locked_now=True)

        return LockoutOutcome(threshold, count, None, False, warned_now=bool(warning) and count == warning)

    return compare_and_set(mutate)


def unlock(email: str, now: datetime = None) -> bool:
    """
    Clears failures and any lock. Returns True if a lock was in force.
    """
    now = now or utcnow()

    def mutate() -> bool:
        row = _load(email)
        if row is None:
            return False
        was_locked = _lock_active(row, now)
        row.failure_count = 0
        row.locked_until = None
        return was_locked

    return compare_and_set(mutate)
