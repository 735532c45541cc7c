"""
Geocoding Client
================
Batch address -> coordinate resolution over the Google Geocoding HTTP API.

- at most 50 rows per batch
- one request per row, each through the geocoding ResilientClient
  (rate limit + retry + circuit breaker)
- one result per row: GeocodeResult or GeocodeFailure(retryable)

HTTP 429 / 5xx, network errors and OVER_QUERY_LIMIT style statuses are
retried by the resilience layer; empty results and bad requests are not.
"""

import logging
from typing import Any, Optional

import httpx

from src.core.resilient_client import ResilientClient
from src.domain.exceptions import DataValidationError, DependencyError, GeocodingError
from src.domain.interfaces.geocoder import GeocodeFailure, GeocodeRequest, GeocodeResult
from src.shared.constants import GEOCODE_BATCH_SIZE

logger = logging.getLogger(__name__)

RETRYABLE_API_STATUSES = ("OVER_QUERY_LIMIT", "OVER_DAILY_LIMIT", "UNKNOWN_ERROR")


class GeocodingClient:
    """
    Usage:
        client = GeocodingClient(api_key, resilient=geocoding_resilience)
        results = await client.geocode_batch([GeocodeRequest(id="1", address="Marienplatz", city="Munich")])
        await client.close()
    """

    def __init__(
        self,
        api_key: Optional[str],
        resilient: Optional[ResilientClient] = None,
        base_url: str = "https://maps.googleapis.com/maps/api/geocode/json",
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.resilient = resilient
        self.base_url = base_url
        self.timeout = timeout
        self._client = http_client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def geocode_batch(self, rows: list[GeocodeRequest]) -> list[GeocodeResult | GeocodeFailure]:
        """
        Raises:
            DataValidationError: more than 50 rows
        """
        if len(rows) > GEOCODE_BATCH_SIZE:
            raise DataValidationError(
                f"At most {GEOCODE_BATCH_SIZE} rows per geocoding batch",
                field="rows",
                value=len(rows),
                constraint=f"<= {GEOCODE_BATCH_SIZE}",
            )

        results: list[GeocodeResult | GeocodeFailure] = []
        for row in rows:
            results.append(await self.geocode_row(row))

        resolved = sum(1 for r in results if isinstance(r, GeocodeResult))
        logger.info(f"Geocoded {resolved}/{len(rows)} rows")
        return results

    async def geocode_row(self, row: GeocodeRequest) -> GeocodeResult | GeocodeFailure:
        address = ", ".join(p.strip() for p in (row.address, row.city, row.postcode, row.country) if p and p.strip())
        if not address:
            return GeocodeFailure(id=row.id, message="No address components provided", retryable=False)
        if not self.api_key:
            return GeocodeFailure(id=row.id, message="Geocoding API key not configured", retryable=False)

        async def _call() -> GeocodeResult | GeocodeFailure:
            return await self._request(row.id, address)

        try:
            if self.resilient is None:
                return await _call()
            return await self.resilient.call(_call)
        except DependencyError as e:
            logger.warning(f"Geocoding failed for row {row.id}: {e}")
            return GeocodeFailure(id=row.id, message=str(e), retryable=e.is_retryable)

    async def _request(self, row_id: str, address: str) -> GeocodeResult | GeocodeFailure:
        """
        Transient faults raise GeocodingError so the resilience layer retries and
        counts them; definitive answers (no match, bad request) come back as a
        GeocodeFailure.
        """
        try:
            response = await self._get_client().get(
                self.base_url, params={"address": address, "key": self.api_key, "language": "en"}
            )
        except httpx.HTTPError as e:
            raise GeocodingError(f"Network error: {e}", is_retryable=True) from e

        if response.status_code >= 500 or response.status_code == 429:
            raise GeocodingError(
                f"Geocoding API error: {response.status_code}", status_code=response.status_code
            )
        if response.status_code != 200:
            return GeocodeFailure(
                id=row_id, message=f"Geocoding API error: {response.status_code}", retryable=False
            )

        data: dict[str, Any] = response.json()
        status = data.get("status", "UNKNOWN_ERROR")
        if status in RETRYABLE_API_STATUSES:
            raise GeocodingError(f"Geocoding error: {status}")
        if status != "OK":
            return GeocodeFailure(id=row_id, message=f"Geocoding error: {status}", retryable=False)

        results = data.get("results") or []
        if not results:
            return GeocodeFailure(id=row_id, message="No results found", retryable=False)

        first = results[0]
        location = first.get("geometry", {}).get("location", {})
        try:
            lat = float(location["lat"])
            lng = float(location["lng"])
        except (KeyError, TypeError, ValueError):
            return GeocodeFailure(id=row_id, message="Invalid coordinates in response", retryable=False)

        return GeocodeResult(
            id=row_id, lat=lat, lng=lng, formatted_address=first.get("formatted_address", "")
        )
