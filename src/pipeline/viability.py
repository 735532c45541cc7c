"""
Viability Validation Stage
==========================
Rule checks per candidate plus an AI re-assessment for borderline cases.

Checks:
- distance_from_existing (critical): nearest existing store >= 500 m
- road_access: accessibility factor from discovery
- population: cached demographic indicator, else candidate population
- infrastructure: infrastructure / accessibility factors

Candidates scoring 0.4-0.7, or failing a critical check, are re-assessed by
the reasoning service. Those close to the escalation threshold, failing a
critical check, or with a middling average check score use the escalation
model. A failed re-assessment keeps the discovery score.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from pydantic import BaseModel, Field

from src.domain.entities.candidate import ExpansionCandidate, ViabilityCheck
from src.domain.entities.market import StoreLocation
from src.domain.exceptions import DependencyError
from src.pipeline.demographics import DemographicIndicatorCache
from src.shared.constants import (
    DEFAULT_QUALITY_THRESHOLD,
    MIN_DISTANCE_FROM_EXISTING_M,
    POPULATION_BANDS,
    VIABILITY_BORDERLINE_HIGH,
    VIABILITY_BORDERLINE_LOW,
    VIABILITY_CONCURRENCY,
    VIABILITY_ESCALATION_THRESHOLD,
)
from src.shared.geo import haversine_m
from src.shared.llm_client import ReasoningClient
from src.shared.model_registry import OperationType

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a location viability analyst. Assess restaurant location candidates, "
    "focusing on the factors that matter most for restaurant success."
)

DEFAULT_ROAD_ACCESS = 0.85
DEFAULT_INFRASTRUCTURE = 0.5
MIN_INFRASTRUCTURE = 0.4


class ViabilityAssessmentPayload(BaseModel):
    viability_score: float = Field(..., ge=0, le=1)
    reasoning: str = ""


@dataclass
class ViabilityOutcome:
    candidate: ExpansionCandidate
    is_valid: bool
    escalated: bool
    tokens_used: int = 0
    cost: float = 0.0


@dataclass
class ViabilityResult:
    candidates: list[ExpansionCandidate]
    outcomes: list[ViabilityOutcome] = field(default_factory=list)
    tokens_used: int = 0
    cost: float = 0.0

    @property
    def escalated_count(self) -> int:
        return sum(1 for o in self.outcomes if o.escalated)

    @property
    def rejected_count(self) -> int:
        return sum(1 for o in self.outcomes if not o.is_valid)


class ViabilityValidationService:
    """
    Viability checks with bounded-concurrency AI re-assessment

    Usage:
        service = ViabilityValidationService(reasoning_client, demographic_cache)
        result = await service.validate(candidates, existing_stores, quality_threshold=0.25)
    """

    def __init__(
        self,
        client: ReasoningClient,
        demographics: Optional[DemographicIndicatorCache] = None,
        concurrency: int = VIABILITY_CONCURRENCY,
        min_distance_m: float = MIN_DISTANCE_FROM_EXISTING_M,
        escalation_threshold: float = VIABILITY_ESCALATION_THRESHOLD,
    ):
        self.client = client
        self.demographics = demographics
        self.concurrency = concurrency
        self.min_distance_m = min_distance_m
        self.escalation_threshold = escalation_threshold

    async def validate(
        self,
        candidates: list[ExpansionCandidate],
        existing_stores: list[StoreLocation],
        quality_threshold: float = DEFAULT_QUALITY_THRESHOLD,
    ) -> ViabilityResult:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(candidate: ExpansionCandidate) -> ViabilityOutcome:
            async with semaphore:
                return await self.assess_candidate(candidate, existing_stores, quality_threshold)

        outcomes = await asyncio.gather(*(_bounded(c) for c in candidates))

        result = ViabilityResult(
            candidates=[o.candidate for o in outcomes if o.is_valid],
            outcomes=list(outcomes),
            tokens_used=sum(o.tokens_used for o in outcomes),
            cost=sum(o.cost for o in outcomes),
        )
        logger.info(
            f"Viability validation: {len(result.candidates)}/{len(candidates)} passed, "
            f"{result.escalated_count} escalated"
        )
        return result

    async def assess_candidate(
        self,
        candidate: ExpansionCandidate,
        existing_stores: list[StoreLocation],
        quality_threshold: float,
    ) -> ViabilityOutcome:
        checks = await self.run_checks(candidate, existing_stores)
        score = candidate.demand_score
        rationale = candidate.rationale
        tokens, cost, escalated = 0, 0.0, False

        critical_failure = any(c.critical and not c.passed for c in checks)
        borderline = VIABILITY_BORDERLINE_LOW <= score <= VIABILITY_BORDERLINE_HIGH

        if borderline or critical_failure:
            escalated = self.should_escalate(score, checks)
            operation = (
                OperationType.VIABILITY_ESCALATION if escalated else OperationType.VIABILITY_VALIDATION
            )
            try:
                response = await self.client.request_json(
                    operation,
                    system_prompt=SYSTEM_PROMPT,
                    user_prompt=self.build_prompt(candidate, checks, len(existing_stores)),
                    schema=ViabilityAssessmentPayload,
                )
                assessment = ViabilityAssessmentPayload.model_validate(response.data)
                score = assessment.viability_score
                rationale = assessment.reasoning or rationale
                tokens, cost = response.usage.total_tokens, response.cost
            except DependencyError as e:
                logger.warning(f"Viability re-assessment failed for {candidate.id}, keeping score: {e}")

        enriched = candidate.enrich(
            viability_score=round(score, 4), viability_checks=checks, rationale=rationale
        )
        is_valid = not critical_failure and score >= quality_threshold
        return ViabilityOutcome(
            candidate=enriched, is_valid=is_valid, escalated=escalated, tokens_used=tokens, cost=cost
        )

    def should_escalate(self, score: float, checks: list[ViabilityCheck]) -> bool:
        if abs(score - self.escalation_threshold) < 0.1:
            return True
        if any(c.critical and not c.passed for c in checks):
            return True
        if checks:
            average = sum(c.score for c in checks) / len(checks)
            if 0.4 < average < 0.7:
                return True
        return False

    async def run_checks(
        self, candidate: ExpansionCandidate, existing_stores: list[StoreLocation]
    ) -> list[ViabilityCheck]:
        return [
            self.check_distance(candidate, existing_stores),
            self.check_road_access(candidate),
            await self.check_population(candidate),
            self.check_infrastructure(candidate),
        ]

    def check_distance(
        self, candidate: ExpansionCandidate, existing_stores: list[StoreLocation]
    ) -> ViabilityCheck:
        if not existing_stores:
            return ViabilityCheck(
                name="distance_from_existing",
                passed=True,
                score=1.0,
                critical=True,
                detail="No existing stores nearby",
            )
        nearest = min(haversine_m(candidate.lat, candidate.lng, s.lat, s.lng) for s in existing_stores)
        return ViabilityCheck(
            name="distance_from_existing",
            passed=nearest >= self.min_distance_m,
            score=min(1.0, nearest / self.min_distance_m),
            critical=True,
            detail=(
                f"Nearest existing store: {nearest / 1000:.2f}km "
                f"(required: {self.min_distance_m / 1000:.2f}km)"
            ),
        )

    @staticmethod
    def check_road_access(candidate: ExpansionCandidate) -> ViabilityCheck:
        score = candidate.score_breakdown.get("accessibility", DEFAULT_ROAD_ACCESS)
        return ViabilityCheck(
            name="road_access",
            passed=score >= MIN_INFRASTRUCTURE,
            score=score,
            detail=f"Accessibility: {score:.0%}",
        )

    async def check_population(self, candidate: ExpansionCandidate) -> ViabilityCheck:
        population = candidate.population
        source = "candidate estimate"
        if self.demographics is not None:
            indicators = await self.demographics.get(candidate.lat, candidate.lng)
            if indicators and "population" in indicators:
                population = int(indicators["population"])
                source = "cached indicators"

        return ViabilityCheck(
            name="population",
            passed=population >= POPULATION_BANDS["small"],
            score=min(1.0, population / POPULATION_BANDS["medium"]),
            detail=f"Catchment population {population:,} ({source})",
        )

    @staticmethod
    def check_infrastructure(candidate: ExpansionCandidate) -> ViabilityCheck:
        values = [
            candidate.score_breakdown[key]
            for key in ("infrastructure", "accessibility")
            if key in candidate.score_breakdown
        ]
        score = sum(values) / len(values) if values else DEFAULT_INFRASTRUCTURE
        return ViabilityCheck(
            name="infrastructure",
            passed=score >= MIN_INFRASTRUCTURE,
            score=score,
            detail=f"Infrastructure suitability: {score:.0%}",
        )

    @staticmethod
    def build_prompt(
        candidate: ExpansionCandidate, checks: list[ViabilityCheck], existing_count: int
    ) -> str:
        lines = [
            "Assess the viability of this restaurant location candidate:",
            "",
            f"LOCATION: {candidate.lat:.4f}, {candidate.lng:.4f}",
            f"CURRENT VIABILITY SCORE: {candidate.demand_score:.2f}",
            f"CURRENT REASONING: {candidate.rationale}",
            f"EXISTING STORES IN AREA: {existing_count}",
            "",
            "VALIDATION CHECKS:",
            *(
                f"- {c.name}: {'passed' if c.passed else 'FAILED'} ({c.score:.0%}){' [critical]' if c.critical else ''}"
                for c in checks
            ),
            "",
            'Respond with {"viability_score": 0.0-1.0, "reasoning": "..."}',
        ]
        return "\n".join(lines)
