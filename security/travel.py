"""Impossible-travel detection between two geo-tagged successful logins."""
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from flask import current_app

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class GeoPoint:
    latitude: Optional[float]
    longitude: Optional[float]
    at: datetime
    city: Optional[str] = None
    country: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def label(self) -> str:
        if self.city and self.country:
            return f"{self.city}, {self.country}"
        return self.country or self.city or "Unknown"


@dataclass(frozen=True)
class TravelCheck:
    suspicious: bool
    reason: str
    details: Optional[dict] = None

    def to_dict(self) -> dict:
        out = {"suspicious": self.suspicious, "reason": self.reason}
        if self.details is not None:
            out["details"] = self.details
        return out


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def _setting(value, key, default):
    if value is not None:
        return value
    return current_app.config.get(key, default)


def check_impossible_travel(previous: Optional[GeoPoint], current: GeoPoint,
                            max_speed_kmh: float = None, window_hours: float = None,
                            min_distance_km: float = None, epsilon_hours: float = None) -> TravelCheck:
    """
    Flags ``current`` when reaching it from ``previous`` would need a speed above
    ``max_speed_kmh`` and less than ``window_hours`` have passed. Missing
    coordinates on either side are never guessed at: the result is simply not
    suspicious.
    """
    if not current.has_coordinates:
        return TravelCheck(False, "No location data available")
    if previous is None or not previous.has_coordinates:
        return TravelCheck(False, "No previous login location to compare")

    max_speed_kmh = _setting(max_speed_kmh, "IMPOSSIBLE_TRAVEL_MAX_SPEED_KMH", 1000.0)
    window_hours = _setting(window_hours, "IMPOSSIBLE_TRAVEL_WINDOW_HOURS", 1.0)
    min_distance_km = _setting(min_distance_km, "IMPOSSIBLE_TRAVEL_MIN_DISTANCE_KM", 100.0)
    epsilon_hours = _setting(epsilon_hours, "IMPOSSIBLE_TRAVEL_EPSILON_HOURS", 1 / 3600)

    elapsed_hours = (current.at - previous.at).total_seconds() / 3600.0
    if elapsed_hours >= window_hours:
        return TravelCheck(False, "Sufficient time has passed for travel")

    distance_km = haversine_km(previous.latitude, previous.longitude, current.latitude, current.longitude)
    required_speed = distance_km / max(elapsed_hours, epsilon_hours)

    if required_speed > max_speed_kmh and distance_km >= min_distance_km:
        return TravelCheck(True, "Impossible travel detected", {
            "distance_km": round(distance_km, 2),
            "time_hours": round(max(elapsed_hours, 0.0), 2),
            "required_speed_kmh": round(required_speed, 2),
            "last_location": previous.label,
            "last_login_at": previous.at.isoformat(),
            "current_location": current.label,
        })

    return TravelCheck(False, "Travel speed within acceptable limits")
