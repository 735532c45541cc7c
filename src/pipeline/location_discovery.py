"""
Location Discovery Stage
========================
Generates raw expansion candidates inside strategic zones.

- candidates per zone = ceil(target × zone.priority / Σ priority)
- one reasoning call per batch of at most 50 candidates
- invalid coordinates and signals below 0.1 are dropped
- demand score = 0.4 × AI viability + 0.6 × weighted factor score
- quality threshold (0.3) and minimum spacing between candidates

The discovery score is stored as `demand_score`; `viability_score` is left
for the validation stage to attach.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional

from pydantic import BaseModel, Field

from src.domain.entities.candidate import ExpansionCandidate
from src.domain.entities.market import RegionBounds, StoreLocation, StrategicZone
from src.shared.constants import (
    DEFAULT_ZONE_PRIORITY,
    DISCOVERY_BATCH_SIZE,
    DISCOVERY_QUALITY_THRESHOLD,
    MIN_CANDIDATE_SIGNAL,
    MIN_CANDIDATE_SPACING_M,
    PIPELINE_MODEL_VERSION,
)
from src.shared.geo import haversine_m
from src.shared.llm_client import ReasoningClient
from src.shared.model_registry import OperationType

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a location discovery specialist for restaurant expansion. Generate viable "
    "location candidates within specified zones, focusing on accessibility, foot traffic, "
    "and market potential."
)


class SiteFactor(BaseModel):
    type: str = "ACCESSIBILITY"
    score: float = Field(default=0.5, ge=0, le=1)
    weight: float = Field(default=0.5, ge=0, le=1)
    description: str = ""


class DiscoveredSite(BaseModel):
    lat: float
    lng: float
    confidence: float = Field(default=0.5, ge=0, le=1)
    viability_score: float = Field(default=0.5, ge=0, le=1)
    reasoning: str = "AI-generated location candidate"
    factors: List[SiteFactor] = Field(default_factory=list)


class DiscoveryBatchPayload(BaseModel):
    candidates: List[DiscoveredSite] = Field(default_factory=list)


@dataclass
class DiscoveryRequest:
    region: str
    bounds: RegionBounds
    zones: list[StrategicZone]
    target_count: int
    existing_stores: list[StoreLocation] = field(default_factory=list)
    quality_threshold: float = DISCOVERY_QUALITY_THRESHOLD


@dataclass
class DiscoveryResult:
    candidates: list[ExpansionCandidate]
    total_generated: int
    batches_processed: int
    tokens_used: int
    cost: float


def default_zone(bounds: RegionBounds, target_count: int) -> StrategicZone:
    """Single zone covering the whole region, used when no zones were identified."""
    center_lat, center_lng = bounds.center
    radius = haversine_m(center_lat, center_lng, bounds.north, bounds.east)
    return StrategicZone(
        id="default-zone",
        name="Region-wide Zone",
        center_lat=center_lat,
        center_lng=center_lng,
        radius=max(radius, 1000.0),
        priority=DEFAULT_ZONE_PRIORITY,
        estimated_capacity=target_count,
    )


class LocationDiscoveryService:
    """
    Zone-guided candidate generation

    Usage:
        service = LocationDiscoveryService(reasoning_client)
        result = await service.discover_locations(DiscoveryRequest(...))
    """

    def __init__(
        self,
        client: ReasoningClient,
        batch_size: int = DISCOVERY_BATCH_SIZE,
        min_spacing_m: float = MIN_CANDIDATE_SPACING_M,
    ):
        self.client = client
        self.batch_size = batch_size
        self.min_spacing_m = min_spacing_m

        self._candidates_generated = 0
        self._batches_processed = 0

    async def discover_locations(self, request: DiscoveryRequest) -> DiscoveryResult:
        zones = request.zones or [default_zone(request.bounds, request.target_count)]
        total_priority = sum(z.priority for z in zones) or 1.0

        raw: list[ExpansionCandidate] = []
        tokens_used = 0
        cost = 0.0
        batches = 0

        for zone in zones:
            per_zone = math.ceil(request.target_count * zone.priority / total_priority)
            logger.info(f"Generating {per_zone} candidates for zone {zone.id}")

            for batch_index in range(math.ceil(per_zone / self.batch_size)):
                batch_target = min(self.batch_size, per_zone - batch_index * self.batch_size)
                if batch_target <= 0:
                    break
                batch_id = f"{zone.id}-batch-{batch_index}"
                sites, batch_tokens, batch_cost = await self._process_batch(
                    zone, batch_target, request.existing_stores
                )
                raw.extend(self._to_candidates(sites, batch_id, zone, request.region))
                tokens_used += batch_tokens
                cost += batch_cost
                batches += 1

        filtered = self.filter_candidates(raw, request.quality_threshold)
        selected = [
            c.model_copy(update={"processing_rank": rank})
            for rank, c in enumerate(filtered[: request.target_count], start=1)
        ]

        self._candidates_generated += len(selected)
        self._batches_processed += batches
        logger.info(
            f"Location discovery completed: {len(selected)}/{len(raw)} candidates "
            f"from {batches} batches"
        )
        return DiscoveryResult(
            candidates=selected,
            total_generated=len(raw),
            batches_processed=batches,
            tokens_used=tokens_used,
            cost=cost,
        )

    async def _process_batch(
        self, zone: StrategicZone, target: int, existing_stores: list[StoreLocation]
    ) -> tuple[list[DiscoveredSite], int, float]:
        response = await self.client.request_json(
            OperationType.LOCATION_DISCOVERY,
            system_prompt=SYSTEM_PROMPT,
            user_prompt=self.build_prompt(zone, target, existing_stores),
            schema=DiscoveryBatchPayload,
        )
        payload = DiscoveryBatchPayload.model_validate(response.data)
        return payload.candidates, response.usage.total_tokens, response.cost

    def _to_candidates(
        self, sites: list[DiscoveredSite], batch_id: str, zone: StrategicZone, region: str
    ) -> list[ExpansionCandidate]:
        candidates = []
        for index, site in enumerate(sites):
            if not self.is_valid_site(site):
                continue
            candidates.append(
                ExpansionCandidate(
                    id=f"{batch_id}-{index}",
                    lat=site.lat,
                    lng=site.lng,
                    region=region,
                    zone_id=zone.id,
                    demand_score=self.enhanced_score(site),
                    confidence=site.confidence,
                    rationale=site.reasoning,
                    model_version=PIPELINE_MODEL_VERSION,
                    score_breakdown={f.type.lower(): f.score for f in site.factors},
                )
            )
        return candidates

    @staticmethod
    def is_valid_site(site: DiscoveredSite) -> bool:
        if site.lat == 0 or site.lng == 0:
            return False
        if not (-90 <= site.lat <= 90 and -180 <= site.lng <= 180):
            return False
        return site.viability_score >= MIN_CANDIDATE_SIGNAL and site.confidence >= MIN_CANDIDATE_SIGNAL

    @staticmethod
    def enhanced_score(site: DiscoveredSite) -> float:
        total_weight = sum(f.weight for f in site.factors)
        if total_weight == 0:
            return site.viability_score
        factor_score = sum(f.score * f.weight for f in site.factors) / total_weight
        return round(site.viability_score * 0.4 + factor_score * 0.6, 4)

    def filter_candidates(
        self, candidates: list[ExpansionCandidate], quality_threshold: float
    ) -> list[ExpansionCandidate]:
        """Threshold, best-first, then enforce spacing against already kept candidates."""
        ranked = sorted(
            (c for c in candidates if c.demand_score >= quality_threshold),
            key=lambda c: c.demand_score,
            reverse=True,
        )
        kept: list[ExpansionCandidate] = []
        for candidate in ranked:
            if all(
                haversine_m(candidate.lat, candidate.lng, other.lat, other.lng) >= self.min_spacing_m
                for other in kept
            ):
                kept.append(candidate)
        return kept

    @staticmethod
    def build_prompt(
        zone: StrategicZone, target: int, existing_stores: list[StoreLocation], limit: Optional[int] = 50
    ) -> str:
        stores = existing_stores[:limit] if limit else existing_stores
        lines = [
            f"Generate {target} viable restaurant location candidates within the specified strategic zone.",
            "",
            "ZONE INFORMATION:",
            f"- Zone ID: {zone.id}",
            f"- Zone Center: {zone.center_lat:.4f}, {zone.center_lng:.4f}",
            f"- Zone Radius: ~{zone.radius / 1000:.2f} km",
            f"- Target Candidates: {target}",
            "",
            "EXISTING STORES (to avoid):",
            *(f"- {s.lat:.4f}, {s.lng:.4f}" for s in stores),
            "",
            "Generate location candidates that are within the zone, accessible by road and foot "
            "traffic, commercially visible and spaced from existing stores.",
            "",
            'Respond with {"candidates": [{"lat", "lng", "confidence", "viability_score", '
            '"reasoning", "factors": [{"type", "score", "weight", "description"}]}]}',
        ]
        return "\n".join(lines)

    def get_service_stats(self) -> dict:
        return {
            "candidates_generated": self._candidates_generated,
            "batches_processed": self._batches_processed,
        }
