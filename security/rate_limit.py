import math
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.db import compare_and_set
from models.rate_limit_window import RateLimitWindow
from security.errors import ValidationError
from utils.clock import utcnow

BLOCKED_MESSAGE = "Too many attempts. Please try again later."


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after_seconds: int
    message: str
    remaining: int

    def to_dict(self) -> dict:
        return asdict(self)


def get_policy(action: str) -> tuple[int, int]:
    """
    Returns (limit, window_seconds) for a configured action.
    """
    policies = current_app.config.get("RATE_LIMIT_POLICIES", {})
    policy = policies.get(action) if isinstance(action, str) else None
    if not policy:
        raise ValidationError(f"Unknown rate limit action: {action}")
    return int(policy["limit"]), int(policy["window_seconds"])


def _subject(value) -> str:
    subject = (str(value) if value is not None else "").strip().lower()
    if not subject or len(subject) > 255:
        raise ValidationError("Invalid rate limit subject")
    return subject


def _load(subject: str, action: str):
    return RateLimitWindow.query.filter_by(subject=subject, action=action).populate_existing().first()


def _expired(row: RateLimitWindow, now: datetime, window_seconds: int) -> bool:
    return now - row.window_start >= timedelta(seconds=window_seconds)


def check_rate_limit(subject, action: str, now: datetime = None) -> RateLimitDecision:
    """
    Fixed window per (subject, action). An allowed call consumes one unit; a
    denied call consumes nothing and reports how long until the window rolls.
    The read-increment runs as one compare-and-set at the data layer.
    """
    subject = _subject(subject)
    limit, window_seconds = get_policy(action)
    now = now or utcnow()

    def mutate() -> RateLimitDecision:
        row = _load(subject, action)
        if row is None:
            row = RateLimitWindow(subject=subject, action=action, window_start=now, count=0)
            db.session.add(row)
        elif _expired(row, now, window_seconds):
            row.window_start = now
            row.count = 0

        if row.count < limit:
            row.count += 1
            return RateLimitDecision(True, 0, "OK", limit - row.count)

        elapsed = (now - row.window_start).total_seconds()
        retry_after = max(int(math.ceil(window_seconds - elapsed)), 1)
        return RateLimitDecision(False, retry_after, BLOCKED_MESSAGE, 0)

    try:
        return compare_and_set(mutate)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Rate limit check failed for %s/%s; failing open", subject, action)
        return RateLimitDecision(True, 0, "OK", limit)


def get_remaining(subject, action: str, now: datetime = None) -> int:
    """Read-only view of the quota left in the current window."""
    subject = _subject(subject)
    limit, window_seconds = get_policy(action)
    now = now or utcnow()

    row = _load(subject, action)
    if row is None or _expired(row, now, window_seconds):
        return limit
    return max(limit - row.count, 0)


def set_count(subject, action: str, count: int, now: datetime = None) -> int:
    """
    Overwrites the counter of the current window (0 resets it). Returns the new count.
    """
    subject = _subject(subject)
    _, window_seconds = get_policy(action)
    if not isinstance(count, int) or isinstance(count, bool) or count < 0:
        raise ValidationError("count must be a non-negative integer")
    now = now or utcnow()

    def mutate() -> int:
        row = _load(subject, action)
        if row is None:
            row = RateLimitWindow(subject=subject, action=action, window_start=now, count=0)
            db.session.add(row)
        elif _expired(row, now, window_seconds):
            row.window_start = now
        row.count = count
        return count

    return compare_and_set(mutate)
