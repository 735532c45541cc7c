"""
Market Analysis Stage
=====================
Produces a structured MarketAnalysis for a region and derives StrategicZones
from it. Results are cached per region for 7 days.

Flow:
1. cache lookup by md5(normalized region) -> cached=True, zero cost
2. prompt: bounds, 5-store sample + count, competitors grouped by brand
3. reasoning call through the resilience layer (strict JSON schema)
4. cache write (a failed write is logged, never fatal)
5. zone derivation from high-priority opportunities and large competitive gaps

A missing API key raises MissingCredentialError immediately. Timeouts and
malformed payloads are retried by the resilience layer and then propagate;
this stage never substitutes fabricated data.
"""

import logging
import math
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from src.domain.entities.market import (
    CompetitorLocation,
    MarketAnalysis,
    MarketAnalysisPayload,
    Priority,
    RegionBounds,
    StoreLocation,
    StrategicZone,
)
from src.domain.interfaces.cache_store import CacheStoreProtocol
from src.infrastructure.persistence.cache_store import MARKET_ANALYSIS_NAMESPACE
from src.shared.constants import (
    GAP_ZONE_CONFIDENCE_FACTOR,
    GAP_ZONE_MIN_SIZE,
    GAP_ZONE_RADIUS_PER_SIZE_M,
    GAP_ZONE_REVENUE_PER_STORE,
    MARKET_ANALYSIS_TTL,
    OPPORTUNITY_CAPACITY_BASE,
    OPPORTUNITY_CAPACITY_MULTIPLIERS,
    STORE_SAMPLE_SIZE,
)
from src.shared.geo import region_cache_key
from src.shared.llm_client import ReasoningClient
from src.shared.model_registry import OperationType

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a market analysis expert specializing in restaurant location strategy. "
    "Provide comprehensive market analysis with structured data and actionable insights. "
    "Answer with a JSON object with the keys saturation, opportunities, competitive_gaps, "
    "demographic_insights, recommendations and confidence (0-1)."
)


@dataclass
class MarketAnalysisRequest:
    region: str
    bounds: RegionBounds
    existing_stores: list[StoreLocation] = field(default_factory=list)
    competitors: list[CompetitorLocation] = field(default_factory=list)


@dataclass
class MarketAnalysisOutcome:
    analysis: MarketAnalysis
    strategic_zones: list[StrategicZone]
    execution_time_ms: float
    tokens_used: int
    cost: float
    cached: bool


class MarketAnalysisService:
    """
    Market analysis with region cache

    Usage:
        service = MarketAnalysisService(reasoning_client, cache_store)
        outcome = await service.analyze_market(MarketAnalysisRequest(...))
    """

    def __init__(
        self,
        client: ReasoningClient,
        cache: CacheStoreProtocol,
        cache_ttl: timedelta = MARKET_ANALYSIS_TTL,
    ):
        self.client = client
        self.cache = cache
        self.cache_ttl = cache_ttl

        self._analyses_performed = 0
        self._total_tokens_used = 0
        self._total_analysis_ms = 0.0
        self._cache_hits = 0
        self._cache_misses = 0

    async def analyze_market(self, request: MarketAnalysisRequest) -> MarketAnalysisOutcome:
        start = time.monotonic()

        cached = await self.get_cached_analysis(request.region)
        if cached is not None:
            self._cache_hits += 1
            logger.info(f"Market analysis cache hit: region={request.region}")
            return MarketAnalysisOutcome(
                analysis=cached,
                strategic_zones=self.identify_strategic_zones(cached, request.bounds),
                execution_time_ms=(time.monotonic() - start) * 1000,
                tokens_used=0,
                cost=0.0,
                cached=True,
            )

        self._cache_misses += 1
        self.client.ensure_configured()

        response = await self.client.request_json(
            OperationType.MARKET_ANALYSIS,
            system_prompt=SYSTEM_PROMPT,
            user_prompt=self.build_prompt(request),
            schema=MarketAnalysisPayload,
        )
        analysis = MarketAnalysis(
            **response.data,
            region=request.region,
            tokens_used=response.usage.total_tokens,
            cost=response.cost,
            analyzed_at=datetime.now(),
        )

        await self.cache_analysis(analysis)

        elapsed_ms = (time.monotonic() - start) * 1000
        self._analyses_performed += 1
        self._total_tokens_used += analysis.tokens_used
        self._total_analysis_ms += elapsed_ms
        logger.info(
            f"Market analysis completed: region={request.region} "
            f"tokens={analysis.tokens_used} elapsed={elapsed_ms:.0f}ms"
        )

        return MarketAnalysisOutcome(
            analysis=analysis,
            strategic_zones=self.identify_strategic_zones(analysis, request.bounds),
            execution_time_ms=elapsed_ms,
            tokens_used=analysis.tokens_used,
            cost=analysis.cost,
            cached=False,
        )

    async def get_cached_analysis(self, region: str) -> MarketAnalysis | None:
        payload = await self.cache.get(MARKET_ANALYSIS_NAMESPACE, region_cache_key(region))
        if payload is None:
            return None
        return MarketAnalysis.model_validate(payload).model_copy(
            update={"cached": True, "tokens_used": 0, "cost": 0.0}
        )

    async def cache_analysis(self, analysis: MarketAnalysis) -> None:
        try:
            await self.cache.put(
                MARKET_ANALYSIS_NAMESPACE,
                region_cache_key(analysis.region),
                analysis.model_dump(mode="json"),
                self.cache_ttl,
            )
        except Exception as e:
            # overwrite is idempotent; the next run simply re-analyses
            logger.warning(f"Market analysis cache write failed: region={analysis.region} error={e}")

    def identify_strategic_zones(
        self, analysis: MarketAnalysis, bounds: RegionBounds | None = None
    ) -> list[StrategicZone]:
        """
        Derive zones from the analysis, highest priority first.

        High-priority opportunities with a location become zones whose priority is
        the estimated impact. Competitive gaps above 0.6 become zones centered on
        the region (gaps carry no coordinate of their own).
        """
        zones: list[StrategicZone] = []

        for index, opportunity in enumerate(analysis.opportunities):
            if opportunity.priority != Priority.HIGH or opportunity.location is None:
                continue
            zones.append(
                StrategicZone(
                    id=f"opportunity-{index}",
                    name=f"{opportunity.type.value} Opportunity Zone",
                    center_lat=opportunity.location.lat,
                    center_lng=opportunity.location.lng,
                    radius=opportunity.location.radius,
                    priority=opportunity.estimated_impact,
                    characteristics=[opportunity.description],
                    estimated_capacity=self._opportunity_capacity(
                        opportunity.estimated_impact, opportunity.type.value
                    ),
                    confidence=analysis.confidence,
                )
            )

        center = bounds.center if bounds is not None else (0.0, 0.0)
        for index, gap in enumerate(analysis.competitive_gaps):
            if gap.gap_size <= GAP_ZONE_MIN_SIZE:
                continue
            zones.append(
                StrategicZone(
                    id=f"gap-{index}",
                    name=f"{gap.area} Gap Zone",
                    center_lat=center[0],
                    center_lng=center[1],
                    radius=gap.gap_size * GAP_ZONE_RADIUS_PER_SIZE_M,
                    priority=gap.gap_size,
                    characteristics=[f"Low {', '.join(gap.competitors)} presence", gap.opportunity],
                    estimated_capacity=math.ceil(gap.estimated_revenue / GAP_ZONE_REVENUE_PER_STORE),
                    estimated_revenue=gap.estimated_revenue,
                    confidence=analysis.confidence * GAP_ZONE_CONFIDENCE_FACTOR,
                )
            )

        return sorted(zones, key=lambda z: z.priority, reverse=True)

    @staticmethod
    def _opportunity_capacity(impact: float, opportunity_type: str) -> int:
        multiplier = OPPORTUNITY_CAPACITY_MULTIPLIERS.get(opportunity_type, 1.0)
        return math.ceil(impact * OPPORTUNITY_CAPACITY_BASE * multiplier)

    def build_prompt(self, request: MarketAnalysisRequest) -> str:
        b = request.bounds
        parts = [
            f"Perform comprehensive market analysis for restaurant expansion in {request.region}.",
            "",
            "REGION BOUNDS:",
            f"North: {b.north}, South: {b.south}",
            f"East: {b.east}, West: {b.west}",
            "",
            f"EXISTING STORES: {len(request.existing_stores)} locations",
            self._format_stores(request.existing_stores),
            "",
            f"COMPETITORS: {len(request.competitors)} locations",
            self._format_competitors(request.competitors),
            "",
            "Provide structured analysis including:",
            "1. Market saturation assessment",
            "2. Growth opportunities with specific locations",
            "3. Competitive gaps and revenue estimates",
            "4. Demographic insights and recommendations",
            "5. Overall confidence score and strategic recommendations",
        ]
        return "\n".join(parts)

    @staticmethod
    def _format_stores(stores: list[StoreLocation]) -> str:
        if not stores:
            return "No existing stores in region"
        sample = "\n".join(
            f"{s.id}: {s.lat:.4f}, {s.lng:.4f}" for s in stores[:STORE_SAMPLE_SIZE]
        )
        if len(stores) > STORE_SAMPLE_SIZE:
            return f"{sample}\n... and {len(stores) - STORE_SAMPLE_SIZE} more stores"
        return sample

    @staticmethod
    def _format_competitors(competitors: list[CompetitorLocation]) -> str:
        if not competitors:
            return "No competitors identified in region"
        counts = Counter(c.brand for c in competitors)
        return ", ".join(f"{brand}: {count} locations" for brand, count in counts.items())

    def get_service_stats(self) -> dict[str, Any]:
        total = self._cache_hits + self._cache_misses
        return {
            "analyses_performed": self._analyses_performed,
            "total_tokens_used": self._total_tokens_used,
            "average_analysis_ms": (
                self._total_analysis_ms / self._analyses_performed
                if self._analyses_performed
                else 0.0
            ),
            "cache_hit_rate": round(self._cache_hits / total * 100, 2) if total else 0.0,
        }

    def reset_stats(self) -> None:
        self._analyses_performed = 0
        self._total_tokens_used = 0
        self._total_analysis_ms = 0.0
        self._cache_hits = 0
        self._cache_misses = 0
