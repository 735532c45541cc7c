"""
Strategic Zone Identification Stage
===================================
Refines the zones derived by market analysis into a prioritized,
geographically spread shortlist.

Steps:
1. AI enhancement of the analysis zones (falls back to the analysis zones)
2. min-priority filter, sort by priority then estimated revenue
3. drop zones whose center is within 5 km of a higher-ranked zone
4. cap at max_zones

Zone priority is on a 0-10 scale here. Zones coming straight from market
analysis carry a 0-1 priority and are rescaled.
"""

import logging
from dataclasses import dataclass
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from src.domain.entities.market import MarketAnalysis, StrategicZone
from src.domain.exceptions import DependencyError
from src.shared.constants import MAX_ZONES, MIN_ZONE_PRIORITY, MIN_ZONE_SEPARATION_M
from src.shared.geo import haversine_m
from src.shared.llm_client import ReasoningClient
from src.shared.model_registry import OperationType

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a strategic expansion analyst specializing in identifying optimal zones "
    "for restaurant expansion. Focus on geographic clustering, market opportunities, "
    "and risk assessment."
)


class EnhancedZone(BaseModel):
    name: str
    priority: float = Field(..., ge=0, le=10)
    center_lat: float = Field(..., ge=-90, le=90)
    center_lng: float = Field(..., ge=-180, le=180)
    radius_km: float = Field(default=5, gt=0)
    expected_stores: int = Field(default=1, ge=0)
    revenue_projection: float = Field(default=500_000, ge=0)
    risk_level: Literal["LOW", "MEDIUM", "HIGH"] = "MEDIUM"
    reasoning: str = ""
    key_factors: List[str] = Field(default_factory=list)


class EnhancedZonesPayload(BaseModel):
    zones: List[EnhancedZone] = Field(default_factory=list)


@dataclass
class ZoneIdentificationResult:
    zones: list[StrategicZone]
    enhanced: bool
    tokens_used: int = 0
    cost: float = 0.0


class ZoneIdentificationService:
    """
    Zone shortlisting

    Usage:
        service = ZoneIdentificationService(reasoning_client)
        result = await service.identify_zones(analysis, base_zones)
    """

    def __init__(
        self,
        client: ReasoningClient,
        max_zones: int = MAX_ZONES,
        min_priority: float = MIN_ZONE_PRIORITY,
        min_separation_m: float = MIN_ZONE_SEPARATION_M,
    ):
        self.client = client
        self.max_zones = max_zones
        self.min_priority = min_priority
        self.min_separation_m = min_separation_m

    async def identify_zones(
        self, analysis: MarketAnalysis, base_zones: list[StrategicZone]
    ) -> ZoneIdentificationResult:
        scaled = [self.rescale(zone) for zone in base_zones]
        enhanced = await self._enhance(analysis, scaled)

        if enhanced is None:
            zones, tokens, cost = scaled, 0, 0.0
        else:
            zones, tokens, cost = enhanced

        shortlisted = self.prioritize(zones)
        logger.info(
            f"Identified {len(shortlisted)} strategic zones for {analysis.region} "
            f"(enhanced={enhanced is not None})"
        )
        return ZoneIdentificationResult(
            zones=shortlisted, enhanced=enhanced is not None, tokens_used=tokens, cost=cost
        )

    @staticmethod
    def rescale(zone: StrategicZone) -> StrategicZone:
        """0-1 analysis priority -> 0-10 zone priority"""
        if zone.priority <= 1:
            return zone.model_copy(update={"priority": round(zone.priority * 10, 2)})
        return zone

    async def _enhance(
        self, analysis: MarketAnalysis, zones: list[StrategicZone]
    ) -> Optional[tuple[list[StrategicZone], int, float]]:
        try:
            response = await self.client.request_json(
                OperationType.ZONE_IDENTIFICATION,
                system_prompt=SYSTEM_PROMPT,
                user_prompt=self.build_prompt(analysis, zones),
                schema=EnhancedZonesPayload,
            )
        except DependencyError as e:
            logger.warning(f"Zone enhancement unavailable, using analysis zones: {e}")
            return None

        payload = EnhancedZonesPayload.model_validate(response.data)
        if not payload.zones:
            return None

        converted = [
            StrategicZone(
                id=f"enhanced-zone-{index}",
                name=zone.name,
                center_lat=zone.center_lat,
                center_lng=zone.center_lng,
                radius=zone.radius_km * 1000,
                priority=zone.priority,
                characteristics=[zone.reasoning, *zone.key_factors] if zone.reasoning else zone.key_factors,
                estimated_capacity=zone.expected_stores,
                estimated_revenue=zone.revenue_projection,
                confidence=analysis.confidence,
            )
            for index, zone in enumerate(payload.zones)
        ]
        return converted, response.usage.total_tokens, response.cost

    def prioritize(self, zones: list[StrategicZone]) -> list[StrategicZone]:
        ranked = sorted(
            (z for z in zones if z.priority >= self.min_priority),
            key=lambda z: (z.priority, z.estimated_revenue),
            reverse=True,
        )

        kept: list[StrategicZone] = []
        for zone in ranked:
            too_close = any(
                haversine_m(zone.center_lat, zone.center_lng, other.center_lat, other.center_lng)
                < self.min_separation_m
                for other in kept
            )
            if not too_close:
                kept.append(zone)
            if len(kept) >= self.max_zones:
                break
        return kept

    def build_prompt(self, analysis: MarketAnalysis, zones: list[StrategicZone]) -> str:
        lines = [
            "Enhance strategic zone identification for restaurant expansion based on market analysis.",
            "",
            "MARKET ANALYSIS SUMMARY:",
            f"- Region: {analysis.region}",
            f"- Market Saturation: {analysis.saturation.level.value} ({analysis.saturation.score})",
            f"- Growth Opportunities: {len(analysis.opportunities)}",
            f"- Competitive Gaps: {len(analysis.competitive_gaps)}",
            f"- Current Strategic Zones: {len(zones)}",
            "",
            "EXISTING STRATEGIC ZONES:",
        ]
        for zone in zones:
            lines.append(
                f"- {zone.name}: priority {zone.priority}, center {zone.center_lat:.4f}, "
                f"{zone.center_lng:.4f}, radius {zone.radius / 1000:.1f}km"
            )
        for opportunity in analysis.opportunities:
            lines.append(
                f"- Opportunity ({opportunity.type.value}, {opportunity.priority.value}): "
                f"{opportunity.description}"
            )
        lines += [
            "",
            "REQUIREMENTS:",
            f"- Maximum zones: {self.max_zones}",
            f"- Minimum priority: {self.min_priority} (scale 1-10)",
            "",
            'Respond with {"zones": [{"name", "priority", "center_lat", "center_lng", '
            '"radius_km", "expected_stores", "revenue_projection", "risk_level", '
            '"reasoning", "key_factors"}]}',
        ]
        return "\n".join(lines)
