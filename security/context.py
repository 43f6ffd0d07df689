import ipaddress
from dataclasses import dataclass, asdict, replace
from typing import Optional

from flask import current_app
from user_agents import parse as parse_ua

from security.errors import ValidationError
from utils import geolocation
from utils.validation import clean_str


@dataclass(frozen=True)
class LoginContext:
    """Canonical client signals for one attempt. Every field is optional."""
    ip: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    city: Optional[str] = None
    country: Optional[str] = None
    user_agent: Optional[str] = None
    device_fingerprint: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def location_label(self) -> str:
        if self.city and self.country:
            return f"{self.city}, {self.country}"
        return self.country or self.city or "Unknown"

    @property
    def device(self) -> Optional[str]:
        return describe_device(self.user_agent) if self.user_agent else None

    def to_dict(self) -> dict:
        return asdict(self)


def describe_device(user_agent: str) -> str:
    """'Chrome on Windows (Desktop)' style label for alerts and audit details."""
    ua = parse_ua(user_agent or "")
    if ua.is_tablet:
        kind = "Tablet"
    elif ua.is_mobile:
        kind = "Mobile"
    else:
        kind = "Desktop"
    browser = ua.browser.family if ua.browser.family != "Other" else "Unknown Browser"
    os_name = ua.os.family if ua.os.family != "Other" else "Unknown OS"
    return f"{browser} on {os_name} ({kind})"


def _normalize_ip(value) -> Optional[str]:
    raw = clean_str(value, 255)
    if not raw:
        return None
    # X-Forwarded-For: client is the left-most hop
    raw = raw.split(",")[0].strip()
    try:
        return str(ipaddress.ip_address(raw))
    except ValueError:
        return None


def _coordinate(value, name: str, limit: float) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number")
    if number != number or not -limit <= number <= limit:
        raise ValidationError(f"{name} out of range")
    return number


def resolve_login_context(ip=None, latitude=None, longitude=None, city=None, country=None,
                          user_agent=None, device_fingerprint=None, lookup=None) -> LoginContext:
    """
    Normalizes raw client signals into a LoginContext.

    Coordinates only count as a pair; a lone latitude or longitude is dropped.
    When no coordinates were supplied and geolocation is enabled, the IP is
    looked up through the provider chain to fill the gaps.
    """
    lat = _coordinate(latitude, "latitude", 90)
    lon = _coordinate(longitude, "longitude", 180)
    if lat is None or lon is None:
        lat = lon = None

    ctx = LoginContext(
        ip=_normalize_ip(ip),
        latitude=lat,
        longitude=lon,
        city=clean_str(city, 120),
        country=clean_str(country, 120),
        user_agent=clean_str(user_agent, 255),
        device_fingerprint=clean_str(device_fingerprint, 128),
    )

    if lookup is None:
        lookup = current_app.config.get("GEOLOCATION_ENABLED", False)
    if lookup and ctx.ip and not ctx.has_coordinates:
        found = geolocation.lookup(ctx.ip)
        if found is not None:
            paired = found.latitude is not None and found.longitude is not None
            ctx = replace(
                ctx,
                latitude=found.latitude if paired else None,
                longitude=found.longitude if paired else None,
                city=ctx.city or found.city,
                country=ctx.country or found.country,
            )
    return ctx
