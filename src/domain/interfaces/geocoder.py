"""
Geocoder Protocol
=================
Batch address -> coordinate resolution

Implementations:
- GeocodingClient (src/tools/geocoding.py)
"""

from typing import Protocol, runtime_checkable

from pydantic import BaseModel


class GeocodeRequest(BaseModel):
    id: str
    address: str = ""
    city: str = ""
    postcode: str = ""
    country: str = ""


class GeocodeResult(BaseModel):
    id: str
    lat: float
    lng: float
    formatted_address: str = ""


class GeocodeFailure(BaseModel):
    id: str
    message: str
    retryable: bool = False


@runtime_checkable
class GeocoderProtocol(Protocol):
    async def geocode_batch(
        self, rows: list[GeocodeRequest]
    ) -> list[GeocodeResult | GeocodeFailure]:
        """
        Resolve rows; one result per input row, in input order.
        """
        ...
