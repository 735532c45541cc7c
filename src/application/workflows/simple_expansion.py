"""
Simple Expansion Service
========================
Single reasoning call that returns named locations, then geocoding.

Flow:
1. one SIMPLE_EXPANSION call with the full store list and a city summary
2. geocode every suggestion's search query in batches
3. rows that fail are retried once with the city alone
4. suggestions closer than 500 m to an existing store are dropped

Errors from the reasoning call propagate; this path has no fallback.
"""

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

from pydantic import BaseModel, Field

from src.domain.entities.candidate import ExpansionCandidate
from src.domain.entities.market import StoreLocation
from src.domain.exceptions import DataValidationError
from src.domain.interfaces.geocoder import (
    GeocodeFailure,
    GeocodeRequest,
    GeocodeResult,
    GeocoderProtocol,
)
from src.shared.constants import (
    GEOCODE_BATCH_SIZE,
    MIN_DISTANCE_FROM_EXISTING_M,
    SIMPLE_MODEL_VERSION,
)
from src.shared.geo import haversine_m
from src.shared.llm_client import ReasoningClient
from src.shared.model_registry import OperationType

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a retail expansion strategist for a restaurant franchise. Identify new city "
    "zones that maximize coverage, minimize overlap with existing stores and capture "
    "untapped population centers."
)

DEFAULT_CONFIDENCE = 0.7
DEFAULT_REVENUE = 450_000
CITY_SUMMARY_LIMIT = 20


class NearestStore(BaseModel):
    distance: float = 0.0
    location: str = ""


class SimpleSuggestion(BaseModel):
    city: str = "Unknown"
    specific_location: str = ""
    search_query: str = ""
    nearest_existing_store: Optional[NearestStore] = None
    rationale: str = "AI-generated location"
    confidence: float = DEFAULT_CONFIDENCE
    estimated_revenue: Optional[float] = Field(default=None, ge=0)


class SimpleAnalysis(BaseModel):
    market_gaps: str = ""
    recommendations: str = ""


class SimpleExpansionPayload(BaseModel):
    suggestions: list[SimpleSuggestion]
    analysis: Optional[SimpleAnalysis] = None


@dataclass
class SimpleExpansionRequest:
    region: str
    target_count: int
    existing_stores: list[StoreLocation] = field(default_factory=list)
    country: str = ""


@dataclass
class SimpleExpansionResult:
    candidates: list[ExpansionCandidate]
    suggested: int
    model: str
    tokens_used: int
    cost: float
    processing_time_ms: float
    analysis: Optional[SimpleAnalysis] = None


class SimpleExpansionService:
    """
    Usage:
        service = SimpleExpansionService(reasoning_client, geocoder)
        result = await service.generate(SimpleExpansionRequest(region="Germany", target_count=50))
    """

    def __init__(
        self,
        client: ReasoningClient,
        geocoder: GeocoderProtocol,
        batch_size: int = GEOCODE_BATCH_SIZE,
        min_distance_m: float = MIN_DISTANCE_FROM_EXISTING_M,
    ):
        self.client = client
        self.geocoder = geocoder
        self.batch_size = batch_size
        self.min_distance_m = min_distance_m

    async def generate(self, request: SimpleExpansionRequest) -> SimpleExpansionResult:
        if request.target_count <= 0:
            raise DataValidationError(
                "targetCount must be provided and greater than 0",
                field="target_count",
                value=request.target_count,
                constraint="> 0",
            )

        start = time.monotonic()
        response = await self.client.request_json(
            OperationType.SIMPLE_EXPANSION,
            system_prompt=SYSTEM_PROMPT,
            user_prompt=self.build_prompt(request),
            schema=SimpleExpansionPayload,
        )
        payload = SimpleExpansionPayload.model_validate(response.data)

        located = await self.geocode_suggestions(payload.suggestions, request)
        candidates = self.to_candidates(located, request)

        elapsed_ms = (time.monotonic() - start) * 1000
        logger.info(
            f"Simple expansion: region={request.region} suggested={len(payload.suggestions)} "
            f"kept={len(candidates)} elapsed={elapsed_ms:.0f}ms"
        )
        return SimpleExpansionResult(
            candidates=candidates,
            suggested=len(payload.suggestions),
            model=response.model,
            tokens_used=response.usage.total_tokens,
            cost=response.cost,
            processing_time_ms=elapsed_ms,
            analysis=payload.analysis,
        )

    async def geocode_suggestions(
        self, suggestions: list[SimpleSuggestion], request: SimpleExpansionRequest
    ) -> list[tuple[SimpleSuggestion, GeocodeResult]]:
        """Resolve suggestions to coordinates; unresolvable ones are dropped."""
        country = request.country or request.region
        rows = [
            GeocodeRequest(
                id=str(index),
                address=s.search_query or s.specific_location,
                city=s.city,
                country=country,
            )
            for index, s in enumerate(suggestions)
        ]
        resolved = await self._geocode(rows)

        retry = [
            GeocodeRequest(id=row.id, city=row.city, country=row.country)
            for row in rows
            if row.id not in resolved and row.city
        ]
        if retry:
            logger.info(f"Retrying {len(retry)} suggestions with city-level geocoding")
            resolved.update(await self._geocode(retry))

        return [(s, resolved[str(i)]) for i, s in enumerate(suggestions) if str(i) in resolved]

    async def _geocode(self, rows: list[GeocodeRequest]) -> dict[str, GeocodeResult]:
        resolved: dict[str, GeocodeResult] = {}
        for offset in range(0, len(rows), self.batch_size):
            batch = rows[offset:offset + self.batch_size]
            for result in await self.geocoder.geocode_batch(batch):
                if isinstance(result, GeocodeFailure):
                    logger.debug(f"Geocoding failed for row {result.id}: {result.message}")
                    continue
                resolved[result.id] = result
        return resolved

    def to_candidates(
        self,
        located: list[tuple[SimpleSuggestion, GeocodeResult]],
        request: SimpleExpansionRequest,
    ) -> list[ExpansionCandidate]:
        candidates: list[ExpansionCandidate] = []
        for suggestion, point in located:
            if abs(point.lat) > 90 or abs(point.lng) > 180:
                continue
            if request.existing_stores:
                nearest = min(
                    haversine_m(point.lat, point.lng, s.lat, s.lng) for s in request.existing_stores
                )
                if nearest < self.min_distance_m:
                    logger.debug(f"Dropping suggestion {nearest:.0f}m from an existing store")
                    continue

            confidence = min(1.0, max(0.0, suggestion.confidence))
            rank = len(candidates) + 1
            candidates.append(
                ExpansionCandidate(
                    id=f"simple-ai-{rank}",
                    lat=point.lat,
                    lng=point.lng,
                    region=suggestion.city,
                    country=request.country or request.region,
                    city=suggestion.city,
                    demand_score=confidence,
                    confidence=confidence,
                    competition_penalty=0.1,
                    supply_penalty=0.1,
                    predicted_auv=suggestion.estimated_revenue or DEFAULT_REVENUE,
                    rationale=suggestion.rationale,
                    model_version=SIMPLE_MODEL_VERSION,
                    processing_rank=rank,
                )
            )
        return candidates[:request.target_count]

    @staticmethod
    def build_prompt(request: SimpleExpansionRequest) -> str:
        store_lines = "\n".join(
            f"{s.city or 'Unknown'}, {s.lat:.4f}, {s.lng:.4f}"
            + (f", {round(s.annual_revenue / 1000)}k" if s.annual_revenue else "")
            for s in request.existing_stores
        )
        city_counts = Counter(s.city or "Unknown" for s in request.existing_stores)
        city_summary = ", ".join(
            f"{city}: {count} store{'s' if count > 1 else ''}"
            for city, count in city_counts.most_common(CITY_SUMMARY_LIMIT)
        )
        return (
            f"Analyze expansion opportunities in {request.region}.\n\n"
            "EXISTING NETWORK SUMMARY:\n"
            f"Total stores: {len(request.existing_stores)}\n"
            f"Cities with most stores: {city_summary or 'none'}\n\n"
            f"EXISTING STORES ({len(request.existing_stores)} locations):\n{store_lines}\n\n"
            f"TARGET: Generate {request.target_count} expansion suggestions.\n"
            "- Keep new stores at least 3-5 km from the nearest existing store\n"
            "- Name an exact street or landmark for each suggestion\n"
            "- Reference the nearest existing store in every rationale\n"
            "- Confidence 0.76-1.0 for major hubs, 0.51-0.75 for mid-sized towns, "
            "below 0.5 for experimental sites\n\n"
            'Respond with {"suggestions": [{"city", "specific_location", "search_query", '
            '"nearest_existing_store": {"distance", "location"}, "rationale", "confidence", '
            '"estimated_revenue"}], "analysis": {"market_gaps", "recommendations"}}'
        )
