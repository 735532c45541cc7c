"""
Strategic Scoring Stage
=======================
Scores validated candidates against the market context and ranks them.

Each candidate gets one reasoning call. When that call fails the
deterministic basic score is used instead:

    strategic = Σ w_i × s_i / Σ w_i  over
        market (saturation alignment)    0.3
        competitive (store proximity)    0.25
        demographic (actionable insights) 0.2
        viability                         0.2

Risk bucket: > 0.7 LOW, > 0.4 MEDIUM, else HIGH.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Literal, Optional

from pydantic import BaseModel, Field

from src.domain.entities.candidate import ExpansionCandidate
from src.domain.entities.market import MarketAnalysis, SaturationLevel, StoreLocation
from src.domain.exceptions import DependencyError
from src.shared.constants import STRATEGIC_WEIGHTS, VIABILITY_CONCURRENCY
from src.shared.geo import haversine_m
from src.shared.llm_client import ReasoningClient
from src.shared.model_registry import OperationType

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a senior strategic analyst specializing in restaurant expansion. Score "
    "candidates on market context, competitive positioning and business value."
)

SATURATION_ALIGNMENT = {
    SaturationLevel.LOW: 0.9,
    SaturationLevel.MEDIUM: 0.7,
    SaturationLevel.HIGH: 0.4,
    SaturationLevel.OVERSATURATED: 0.2,
}


class StrategicScorePayload(BaseModel):
    strategic_score: float = Field(..., ge=0, le=1)
    market_context_score: Optional[float] = Field(default=None, ge=0, le=1)
    competitive_position_score: Optional[float] = Field(default=None, ge=0, le=1)
    demographic_alignment_score: Optional[float] = Field(default=None, ge=0, le=1)
    overall_risk: Optional[Literal["LOW", "MEDIUM", "HIGH"]] = None
    strategic_reasoning: str = ""


@dataclass
class ScoringResult:
    candidates: list[ExpansionCandidate]
    ai_scored: int
    tokens_used: int
    cost: float


def risk_bucket(score: float) -> str:
    if score > 0.7:
        return "LOW"
    if score > 0.4:
        return "MEDIUM"
    return "HIGH"


def competitor_proximity(candidate: ExpansionCandidate, stores: list[StoreLocation]) -> float:
    """Distance to the nearest network store; 2-5 km is the sweet spot."""
    if not stores:
        return 0.8
    nearest = min(haversine_m(candidate.lat, candidate.lng, s.lat, s.lng) for s in stores)
    if nearest < 1000:
        return 0.2
    if nearest > 10000:
        return 0.4
    if 2000 <= nearest <= 5000:
        return 0.9
    return 0.6


def demographic_fit(analysis: MarketAnalysis) -> float:
    actionable = [i for i in analysis.demographic_insights if i.actionable]
    return min(1.0, len(actionable) * 0.2)


class StrategicScoringService:
    """
    Usage:
        service = StrategicScoringService(reasoning_client)
        result = await service.score_candidates(candidates, analysis, existing_stores)
    """

    def __init__(
        self,
        client: ReasoningClient,
        weights: Optional[dict[str, float]] = None,
        concurrency: int = VIABILITY_CONCURRENCY,
    ):
        self.client = client
        self.weights = weights or dict(STRATEGIC_WEIGHTS)
        self.concurrency = concurrency

    async def score_candidates(
        self,
        candidates: list[ExpansionCandidate],
        analysis: MarketAnalysis,
        existing_stores: list[StoreLocation],
    ) -> ScoringResult:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(candidate: ExpansionCandidate):
            async with semaphore:
                return await self.score_candidate(candidate, analysis, existing_stores)

        scored = await asyncio.gather(*(_bounded(c) for c in candidates))

        ranked = sorted((s[0] for s in scored), key=lambda c: c.strategic_score, reverse=True)
        ranked = [c.model_copy(update={"processing_rank": i}) for i, c in enumerate(ranked, start=1)]

        ai_scored = sum(1 for s in scored if s[1])
        logger.info(f"Strategic scoring: {len(ranked)} candidates, {ai_scored} AI-scored")
        return ScoringResult(
            candidates=ranked,
            ai_scored=ai_scored,
            tokens_used=sum(s[2] for s in scored),
            cost=sum(s[3] for s in scored),
        )

    async def score_candidate(
        self,
        candidate: ExpansionCandidate,
        analysis: MarketAnalysis,
        existing_stores: list[StoreLocation],
    ) -> tuple[ExpansionCandidate, bool, int, float]:
        """Returns (scored candidate, ai_scored, tokens, cost)."""
        components = {
            "market": SATURATION_ALIGNMENT.get(analysis.saturation.level, 0.5),
            "competitive": competitor_proximity(candidate, existing_stores),
            "demographic": demographic_fit(analysis),
            "viability": candidate.viability_score if candidate.viability_score is not None else candidate.demand_score,
        }

        try:
            response = await self.client.request_json(
                OperationType.STRATEGIC_SCORING,
                system_prompt=SYSTEM_PROMPT,
                user_prompt=self.build_prompt(candidate, analysis, components),
                schema=StrategicScorePayload,
            )
        except DependencyError as e:
            logger.warning(f"AI scoring failed for {candidate.id}, using basic score: {e}")
            return self.basic_score(candidate, components), False, 0, 0.0

        payload = StrategicScorePayload.model_validate(response.data)
        breakdown = {
            **candidate.score_breakdown,
            "market": payload.market_context_score if payload.market_context_score is not None else components["market"],
            "competitive": (
                payload.competitive_position_score
                if payload.competitive_position_score is not None
                else components["competitive"]
            ),
            "demographic": (
                payload.demographic_alignment_score
                if payload.demographic_alignment_score is not None
                else components["demographic"]
            ),
            "viability": components["viability"],
        }
        scored = candidate.enrich(
            strategic_score=payload.strategic_score,
            score_breakdown=breakdown,
            risk_level=payload.overall_risk or risk_bucket(payload.strategic_score),
            rationale=payload.strategic_reasoning or candidate.rationale,
        )
        return scored, True, response.usage.total_tokens, response.cost

    def basic_score(self, candidate: ExpansionCandidate, components: dict[str, float]) -> ExpansionCandidate:
        keys = ("market", "competitive", "demographic", "viability")
        total_weight = sum(self.weights[k] for k in keys)
        score = sum(components[k] * self.weights[k] for k in keys) / total_weight
        return candidate.enrich(
            strategic_score=round(score, 4),
            score_breakdown={**candidate.score_breakdown, **components},
            risk_level=risk_bucket(score),
        )

    @staticmethod
    def build_prompt(
        candidate: ExpansionCandidate, analysis: MarketAnalysis, components: dict[str, float]
    ) -> str:
        lines = [
            "Score this restaurant expansion candidate strategically.",
            "",
            f"LOCATION: {candidate.lat:.4f}, {candidate.lng:.4f}",
            f"VIABILITY: {components['viability']:.2f}",
            f"REASONING SO FAR: {candidate.rationale}",
            "",
            "MARKET CONTEXT:",
            f"- Region: {analysis.region}",
            f"- Saturation: {analysis.saturation.level.value} ({analysis.saturation.score})",
            f"- Competitive gaps: {len(analysis.competitive_gaps)}",
            f"- Saturation alignment: {components['market']:.2f}",
            f"- Competitor proximity: {components['competitive']:.2f}",
            f"- Demographic fit: {components['demographic']:.2f}",
            "",
            'Respond with {"strategic_score", "market_context_score", "competitive_position_score", '
            '"demographic_alignment_score", "overall_risk": "LOW|MEDIUM|HIGH", "strategic_reasoning"}',
        ]
        return "\n".join(lines)
