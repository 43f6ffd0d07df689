import re

from flask import request

from security.errors import ValidationError

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(value: str) -> str:
    return (value or "").strip().lower()


def require_email(value) -> str:
    """Case-folds and validates an email, raising ValidationError if malformed."""
    if not isinstance(value, str):
        raise ValidationError("email is required")
    email = normalize_email(value)
    if not email or len(email) > 255 or not _EMAIL_RE.match(email):
        raise ValidationError("Invalid email")
    return email


def clean_str(value, max_len: int = 255):
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    value = value.strip()
    return value[:max_len] if value else None


def json_body() -> dict:
    """Parsed JSON request body; anything but an object (or no body) is rejected."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("JSON object body required")
    return data
