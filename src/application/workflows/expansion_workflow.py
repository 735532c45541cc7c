"""
Expansion Workflow
==================
Entry point for "generate expansion candidates".

Flow:
1. validate the region filter (country, state or city required)
2. target count: explicit value, else the aggression step function
3. enable_ai_rationale=False -> fallback generator (placeholder candidates)
4. flag expansion.use_simple_expansion -> single-call path, else the
   five-stage pipeline

Pipeline errors are surfaced; there is no automatic switch to the simple path.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import BaseModel, Field

from src.application.workflows.fallback_generator import DEFAULT_COUNTRY, FallbackCandidateGenerator
from src.application.workflows.simple_expansion import SimpleExpansionRequest, SimpleExpansionService
from src.domain.entities.candidate import ExpansionCandidate
from src.domain.entities.market import CompetitorLocation, RegionBounds, StoreLocation
from src.domain.exceptions import DataValidationError
from src.infrastructure.feature_flags import FeatureFlags
from src.pipeline.controller import PipelineConfig, PipelineController, PipelineRequest
from src.shared.constants import AGGRESSION_STEPS, MAX_AGGRESSION_TARGET
from src.shared.geo import country_bounds, normalize_country_name

logger = logging.getLogger(__name__)


class RegionFilter(BaseModel):
    country: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None

    def is_valid(self) -> bool:
        return any(v and v.strip() for v in (self.country, self.state, self.city))

    def label(self) -> str:
        return ", ".join(v for v in (self.city, self.state, self.country) if v)


class ExpansionRequest(BaseModel):
    region: RegionFilter
    aggression: int = Field(default=50, ge=0, le=100)
    target_count: Optional[int] = Field(default=None, ge=1)
    enable_ai_rationale: bool = True
    bounds: Optional[RegionBounds] = None
    existing_stores: list[StoreLocation] = Field(default_factory=list)
    competitors: list[CompetitorLocation] = Field(default_factory=list)
    # client-chosen id, so a pipeline run can be polled or cancelled while in flight
    pipeline_id: Optional[str] = Field(default=None, min_length=1, max_length=64)


@dataclass
class ExpansionResult:
    candidates: list[ExpansionCandidate]
    mode: str
    target_count: int
    tokens_used: int = 0
    cost: float = 0.0
    generation_time_ms: float = 0.0
    pipeline_id: Optional[str] = None
    stages: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "candidates": [c.model_dump(mode="json") for c in self.candidates],
            "mode": self.mode,
            "target_count": self.target_count,
            "tokens_used": self.tokens_used,
            "cost": round(self.cost, 6),
            "generation_time_ms": round(self.generation_time_ms, 1),
            "pipeline_id": self.pipeline_id,
            "stages": self.stages,
        }


def calculate_target_count(aggression: int) -> int:
    """<=20 -> 50, <=40 -> 100, <=60 -> 150, <=80 -> 200, else 300"""
    for ceiling, target in AGGRESSION_STEPS:
        if aggression <= ceiling:
            return target
    return MAX_AGGRESSION_TARGET


class ExpansionWorkflow:
    """
    Usage:
        workflow = ExpansionWorkflow(flags, simple_service, controller, fallback)
        result = await workflow.generate(ExpansionRequest(region=RegionFilter(country="Germany")))
    """

    def __init__(
        self,
        flags: FeatureFlags,
        simple_service: SimpleExpansionService,
        controller: PipelineController,
        fallback: Optional[FallbackCandidateGenerator] = None,
    ):
        self.flags = flags
        self.simple_service = simple_service
        self.controller = controller
        self.fallback = fallback or FallbackCandidateGenerator()

    async def generate(self, request: ExpansionRequest) -> ExpansionResult:
        """
        Raises:
            DataValidationError: empty region filter, AI requested while disabled,
                                 no bounds for the pipeline
            DependencyError: simple path reasoning call failed
            StageFailure: pipeline produced nothing and a stage failed
            PipelineCancelledError: the pipeline run was cancelled between stages
        """
        if not request.region.is_valid():
            raise DataValidationError(
                "Invalid region filter: at least one region parameter must be specified",
                field="region",
                value=request.region.model_dump(),
                constraint="country, state or city required",
            )

        target = request.target_count or calculate_target_count(request.aggression)
        country = request.region.country or DEFAULT_COUNTRY
        start = time.monotonic()

        if not request.enable_ai_rationale:
            candidates = self.fallback.generate(country, target)
            return ExpansionResult(
                candidates=candidates,
                mode="fallback",
                target_count=target,
                generation_time_ms=(time.monotonic() - start) * 1000,
            )

        if not self.flags.enable_ai_rationale():
            raise DataValidationError(
                "AI Rationale is not enabled. Please enable it to run the expansion pipeline.",
                field="enable_ai_rationale",
                value=True,
                constraint="expansion.enable_ai_rationale flag",
            )

        if self.flags.use_simple_expansion():
            return await self._generate_simple(request, target, country, start)
        return await self._generate_pipeline(request, target, country, start)

    async def _generate_simple(
        self, request: ExpansionRequest, target: int, country: str, start: float
    ) -> ExpansionResult:
        result = await self.simple_service.generate(
            SimpleExpansionRequest(
                region=request.region.label() or country,
                target_count=target,
                existing_stores=request.existing_stores,
                country=normalize_country_name(country).title(),
            )
        )
        return ExpansionResult(
            candidates=result.candidates,
            mode="simple",
            target_count=target,
            tokens_used=result.tokens_used,
            cost=result.cost,
            generation_time_ms=(time.monotonic() - start) * 1000,
        )

    async def _generate_pipeline(
        self, request: ExpansionRequest, target: int, country: str, start: float
    ) -> ExpansionResult:
        bounds = request.bounds or self._bounds_for(country)
        country_label = normalize_country_name(country).title()

        pipeline_request = PipelineRequest(
            region=request.region.label() or country_label,
            bounds=bounds,
            target_candidates=target,
            existing_stores=request.existing_stores,
            competitors=request.competitors,
            config=PipelineConfig.from_flags(self.flags),
        )
        if request.pipeline_id:
            pipeline_request.pipeline_id = request.pipeline_id
        execution = await self.controller.execute_pipeline(pipeline_request)

        if not execution.final_candidates:
            failed = [r for r in execution.stages.values() if r.error is not None]
            if failed:
                logger.error(
                    f"Pipeline {execution.pipeline_id} produced no candidates; "
                    f"{len(failed)} stage(s) failed"
                )
                raise failed[0].error

        candidates = [
            c.model_copy(
                update={
                    "country": c.country or country_label,
                    "region": c.region or request.region.label(),
                    "state": c.state or request.region.state,
                }
            )
            for c in execution.final_candidates
        ]
        return ExpansionResult(
            candidates=candidates,
            mode="pipeline",
            target_count=target,
            tokens_used=execution.metadata.total_tokens_used,
            cost=execution.metadata.total_cost,
            generation_time_ms=(time.monotonic() - start) * 1000,
            pipeline_id=execution.pipeline_id,
            stages={stage.value: result.status.value for stage, result in execution.stages.items()},
        )

    @staticmethod
    def _bounds_for(country: str) -> RegionBounds:
        box = country_bounds(country)
        if box is None:
            raise DataValidationError(
                f"No bounding box known for country '{country}'; pass bounds explicitly",
                field="bounds",
                value=country,
                constraint="known country or explicit bounds",
            )
        return RegionBounds(north=box.north, south=box.south, east=box.east, west=box.west)
