"""
Domain Interfaces
=================
Protocols for the external collaborators of the planner
"""

from src.domain.interfaces.cache_store import CacheStoreProtocol
from src.domain.interfaces.geocoder import (
    GeocodeFailure,
    GeocodeRequest,
    GeocoderProtocol,
    GeocodeResult,
)

__all__ = [
    "CacheStoreProtocol",
    "GeocodeFailure",
    "GeocodeRequest",
    "GeocodeResult",
    "GeocoderProtocol",
]
