"""
Geo Helpers
===========
Distance, bounding boxes and cache keys shared by the pipeline stages
"""

import hashlib
import math
from typing import NamedTuple

EARTH_RADIUS_M = 6_371_000


class BoundingBox(NamedTuple):
    north: float
    south: float
    east: float
    west: float


# Rough country bounding boxes used by the fallback generator
COUNTRY_BOUNDS: dict[str, BoundingBox] = {
    "united states": BoundingBox(49.38, 24.52, -66.95, -124.77),
    "canada": BoundingBox(60.0, 42.0, -52.6, -139.0),
    "mexico": BoundingBox(32.72, 14.53, -86.71, -117.12),
    "united kingdom": BoundingBox(58.64, 49.96, 1.76, -7.57),
    "ireland": BoundingBox(55.39, 51.42, -5.99, -10.48),
    "germany": BoundingBox(55.06, 47.27, 15.04, 5.87),
    "france": BoundingBox(51.09, 42.33, 8.23, -4.79),
    "spain": BoundingBox(43.79, 36.00, 3.32, -9.30),
    "italy": BoundingBox(47.09, 36.65, 18.52, 6.63),
    "netherlands": BoundingBox(53.51, 50.75, 7.23, 3.36),
    "poland": BoundingBox(54.84, 49.00, 24.15, 14.12),
    "sweden": BoundingBox(69.06, 55.34, 24.17, 11.11),
    "united arab emirates": BoundingBox(26.08, 22.63, 56.38, 51.58),
    "saudi arabia": BoundingBox(32.16, 16.38, 55.67, 34.50),
    "india": BoundingBox(35.50, 6.75, 97.40, 68.18),
    "japan": BoundingBox(45.55, 30.99, 145.82, 129.41),
    "australia": BoundingBox(-10.68, -43.64, 153.64, 113.34),
    "brazil": BoundingBox(5.27, -33.75, -34.79, -73.99),
}

COUNTRY_ALIASES: dict[str, str] = {
    "us": "united states",
    "usa": "united states",
    "united states of america": "united states",
    "uk": "united kingdom",
    "gb": "united kingdom",
    "great britain": "united kingdom",
    "england": "united kingdom",
    "de": "germany",
    "deutschland": "germany",
    "fr": "france",
    "es": "spain",
    "it": "italy",
    "nl": "netherlands",
    "uae": "united arab emirates",
    "ae": "united arab emirates",
    "jp": "japan",
    "au": "australia",
    "br": "brazil",
    "ca": "canada",
    "mx": "mexico",
    "ie": "ireland",
    "pl": "poland",
    "se": "sweden",
    "in": "india",
    "sa": "saudi arabia",
}


def normalize_country_name(country: str) -> str:
    """Lowercase, trimmed, alias-resolved country name."""
    key = " ".join(country.strip().lower().split())
    return COUNTRY_ALIASES.get(key, key)


def country_bounds(country: str) -> BoundingBox | None:
    return COUNTRY_BOUNDS.get(normalize_country_name(country))


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def region_cache_key(region: str) -> str:
    """md5 of the normalized region name."""
    normalized = " ".join(region.strip().lower().split())
    return hashlib.md5(normalized.encode("utf-8")).hexdigest()


def coordinate_cache_key(lat: float, lng: float, precision: int = 3) -> str:
    """md5 of the coordinate rounded to `precision` decimals (~110 m at 3)."""
    rounded = f"{round(lat, precision):.{precision}f},{round(lng, precision):.{precision}f}"
    return hashlib.md5(rounded.encode("utf-8")).hexdigest()
