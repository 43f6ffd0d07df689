"""IP geolocation through a prioritized list of interchangeable providers.

Each provider takes an IP and a timeout and returns a ``GeoLocation`` or
``None``. ``lookup`` walks the configured list in order and stops at the
first provider that answers.
"""
import ipaddress
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

import requests
from flask import current_app


@dataclass(frozen=True)
class GeoLocation:
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    city: Optional[str] = None
    country: Optional[str] = None
    provider: Optional[str] = None


def _float(value):
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _ip_api(ip: str, timeout: float) -> Optional[GeoLocation]:
    resp = requests.get(
        f"http://ip-api.com/json/{ip}",
        params={"fields": "status,country,city,lat,lon,query"},
        timeout=timeout,
    )
    if not resp.ok:
        return None
    data = resp.json()
    if data.get("status") != "success":
        return None
    return GeoLocation(_float(data.get("lat")), _float(data.get("lon")), data.get("city"), data.get("country"), "ip-api")


def _ipapi(ip: str, timeout: float) -> Optional[GeoLocation]:
    resp = requests.get(f"https://ipapi.co/{ip}/json/", timeout=timeout)
    if not resp.ok:
        return None
    data = resp.json()
    if data.get("error"):
        return None
    return GeoLocation(_float(data.get("latitude")), _float(data.get("longitude")), data.get("city"), data.get("country_name"), "ipapi")


def _ipwhois(ip: str, timeout: float) -> Optional[GeoLocation]:
    resp = requests.get(f"https://ipwho.is/{ip}", timeout=timeout)
    if not resp.ok:
        return None
    data = resp.json()
    if not data.get("success"):
        return None
    return GeoLocation(_float(data.get("latitude")), _float(data.get("longitude")), data.get("city"), data.get("country"), "ipwhois")


PROVIDERS: Dict[str, Callable[[str, float], Optional[GeoLocation]]] = {
    "ip-api": _ip_api,
    "ipapi": _ipapi,
    "ipwhois": _ipwhois,
}


def is_public_ip(ip: str) -> bool:
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return addr.is_global


def lookup(ip: str, providers: Iterable[str] = None, timeout: float = None) -> Optional[GeoLocation]:
    if not ip or not is_public_ip(ip):
        return None

    if providers is None:
        providers = current_app.config.get("GEOLOCATION_PROVIDERS", list(PROVIDERS))
    if timeout is None:
        timeout = current_app.config.get("GEOLOCATION_TIMEOUT_SECONDS", 2)

    for name in providers:
        provider = PROVIDERS.get(name)
        if provider is None:
            current_app.logger.warning("Unknown geolocation provider %r skipped", name)
            continue
        try:
            found = provider(ip, timeout)
        except (requests.RequestException, ValueError) as exc:
            current_app.logger.warning("Geolocation provider %s failed for %s: %s", name, ip, exc)
            continue
        if found is not None:
            return found
    return None
