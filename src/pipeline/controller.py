"""
Expansion Pipeline Controller
=============================
Runs the five expansion stages in order and folds their results into one
PipelineExecutionResult.

Stages:
1. Market Analysis
2. Strategic Zone Identification (needs 1)
3. Location Discovery (zones optional; a region-wide zone is used otherwise)
4. Viability Validation (needs 3)
5. Strategic Scoring (needs 1 and 4)

Every stage produces a StageResult (succeeded / failed / skipped). A failed
stage never aborts the run; stages whose input is missing are skipped.
Final candidates come from the furthest stage that succeeded:
scoring > validation > discovery > [].

Cancellation is checked between stages. A call already sent to the
reasoning service is allowed to finish or time out on its own.

Run bookkeeping is bounded by max_retained_runs: once exceeded, the oldest
finished runs are evicted. Running runs are never evicted.
"""

import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, NamedTuple, Optional

from src.domain.entities.candidate import ExpansionCandidate
from src.domain.entities.market import CompetitorLocation, RegionBounds, StoreLocation
from src.domain.exceptions import DataValidationError, PipelineCancelledError, StageFailure
from src.infrastructure.feature_flags import FeatureFlags
from src.monitoring.logger import AgentLogger
from src.pipeline.location_discovery import DiscoveryRequest, LocationDiscoveryService
from src.pipeline.market_analysis import MarketAnalysisRequest, MarketAnalysisService
from src.pipeline.strategic_scoring import StrategicScoringService
from src.pipeline.viability import ViabilityValidationService
from src.pipeline.zone_identification import ZoneIdentificationService
from src.shared.constants import (
    DEFAULT_QUALITY_THRESHOLD,
    DISCOVERY_QUALITY_THRESHOLD,
    MAX_RETAINED_RUNS,
    PIPELINE_COST_CEILING,
    PIPELINE_TARGET_MS,
)


class PipelineStage(str, Enum):
    MARKET_ANALYSIS = "Market Analysis"
    ZONE_IDENTIFICATION = "Strategic Zone Identification"
    LOCATION_DISCOVERY = "Location Discovery"
    VIABILITY_VALIDATION = "Viability Validation"
    STRATEGIC_SCORING = "Strategic Scoring"


class StageStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class PipelineStatus(str, Enum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


@dataclass
class PipelineConfig:
    """Stage toggles and thresholds"""
    enable_market_analysis: bool = True
    enable_zone_identification: bool = True
    enable_location_discovery: bool = True
    enable_viability_validation: bool = True
    enable_strategic_scoring: bool = True
    quality_threshold: float = DEFAULT_QUALITY_THRESHOLD
    discovery_quality_threshold: float = DISCOVERY_QUALITY_THRESHOLD

    @classmethod
    def from_flags(cls, flags: FeatureFlags) -> "PipelineConfig":
        return cls(
            enable_market_analysis=flags.is_stage_enabled("market_analysis"),
            enable_zone_identification=flags.is_stage_enabled("zone_identification"),
            enable_location_discovery=flags.is_stage_enabled("location_discovery"),
            enable_viability_validation=flags.is_stage_enabled("viability_validation"),
            enable_strategic_scoring=flags.is_stage_enabled("strategic_scoring"),
        )


@dataclass
class PipelineRequest:
    region: str
    bounds: RegionBounds
    target_candidates: int
    existing_stores: list[StoreLocation] = field(default_factory=list)
    competitors: list[CompetitorLocation] = field(default_factory=list)
    config: PipelineConfig = field(default_factory=PipelineConfig)
    pipeline_id: str = field(default_factory=lambda: uuid.uuid4().hex)


class StageOutput(NamedTuple):
    payload: Any
    tokens_used: int = 0
    cost: float = 0.0


@dataclass
class StageResult:
    stage: PipelineStage
    status: StageStatus
    payload: Any = None
    tokens_used: int = 0
    cost: float = 0.0
    duration_ms: float = 0.0
    error: Optional[StageFailure] = None
    reason: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status == StageStatus.SUCCEEDED


@dataclass
class PipelineMetadata:
    total_execution_ms: float
    stages_executed: list[str]
    total_tokens_used: int
    total_cost: float
    successful_stages: int
    failed_stages: int


@dataclass
class QualityMetrics:
    candidate_quality: float
    pipeline_efficiency: float
    cost_effectiveness: float


@dataclass
class PipelineExecutionResult:
    pipeline_id: str
    final_candidates: list[ExpansionCandidate]
    stages: dict[PipelineStage, StageResult]
    metadata: PipelineMetadata
    quality_metrics: QualityMetrics

    def output(self, stage: PipelineStage) -> Any:
        result = self.stages.get(stage)
        return result.payload if result is not None and result.succeeded else None


@dataclass
class PipelineRun:
    pipeline_id: str
    region: str
    status: PipelineStatus = PipelineStatus.RUNNING
    current_stage: Optional[PipelineStage] = None
    stages_finished: int = 0
    cancel_requested: bool = False
    started_at: float = field(default_factory=time.monotonic)


class PipelineController:
    """
    Five-stage expansion pipeline

    Usage:
        controller = PipelineController(market, zones, discovery, viability, scoring)
        result = await controller.execute_pipeline(PipelineRequest(...))
        for candidate in result.final_candidates:
            ...
    """

    def __init__(
        self,
        market_analysis: MarketAnalysisService,
        zone_identification: ZoneIdentificationService,
        location_discovery: LocationDiscoveryService,
        viability_validation: ViabilityValidationService,
        strategic_scoring: StrategicScoringService,
        logger: Optional[AgentLogger] = None,
        clock: Callable[[], float] = time.monotonic,
        max_retained_runs: int = MAX_RETAINED_RUNS,
    ):
        self.market_analysis = market_analysis
        self.zone_identification = zone_identification
        self.location_discovery = location_discovery
        self.viability_validation = viability_validation
        self.strategic_scoring = strategic_scoring
        self.logger = logger or AgentLogger("pipeline")
        self._clock = clock
        self.max_retained_runs = max_retained_runs
        self._runs: OrderedDict[str, PipelineRun] = OrderedDict()

    async def execute_pipeline(self, request: PipelineRequest) -> PipelineExecutionResult:
        """
        Run all enabled stages.

        Raises:
            DataValidationError: a run with the same pipeline_id is still running
            PipelineCancelledError: cancel_pipeline() was called during the run
        """
        run = self._register(PipelineRun(pipeline_id=request.pipeline_id, region=request.region))
        start = self._clock()
        config = request.config
        stages: dict[PipelineStage, StageResult] = {}

        self.logger.info(
            "Starting expansion pipeline",
            {"pipeline_id": run.pipeline_id, "region": request.region, "target": request.target_candidates},
        )

        market = await self._run_stage(
            run, PipelineStage.MARKET_ANALYSIS, config.enable_market_analysis, True,
            lambda: self._market_analysis(request),
        )
        stages[market.stage] = market

        zones = await self._run_stage(
            run, PipelineStage.ZONE_IDENTIFICATION, config.enable_zone_identification, market.succeeded,
            lambda: self._zone_identification(market.payload),
        )
        stages[zones.stage] = zones

        discovery = await self._run_stage(
            run, PipelineStage.LOCATION_DISCOVERY, config.enable_location_discovery, True,
            lambda: self._location_discovery(request, zones.payload if zones.succeeded else []),
        )
        stages[discovery.stage] = discovery

        validation = await self._run_stage(
            run, PipelineStage.VIABILITY_VALIDATION, config.enable_viability_validation, discovery.succeeded,
            lambda: self._viability_validation(request, discovery.payload),
        )
        stages[validation.stage] = validation

        scoring = await self._run_stage(
            run, PipelineStage.STRATEGIC_SCORING, config.enable_strategic_scoring,
            validation.succeeded and market.succeeded,
            lambda: self._strategic_scoring(request, validation.payload, market.payload),
        )
        stages[scoring.stage] = scoring

        candidates = self.select_final_candidates(stages, request.target_candidates)
        elapsed_ms = (self._clock() - start) * 1000

        executed = [r for r in stages.values() if r.status != StageStatus.SKIPPED]
        metadata = PipelineMetadata(
            total_execution_ms=elapsed_ms,
            stages_executed=[r.stage.value for r in executed if r.succeeded],
            total_tokens_used=sum(r.tokens_used for r in executed),
            total_cost=sum(r.cost for r in executed),
            successful_stages=sum(1 for r in executed if r.succeeded),
            failed_stages=sum(1 for r in executed if r.status == StageStatus.FAILED),
        )
        quality = self.calculate_quality_metrics(candidates, elapsed_ms, metadata.total_cost)

        run.status = PipelineStatus.COMPLETED
        run.current_stage = None
        self.logger.info(
            "Expansion pipeline completed",
            {
                "pipeline_id": run.pipeline_id,
                "region": request.region,
                "candidates": len(candidates),
                "successful_stages": metadata.successful_stages,
                "failed_stages": metadata.failed_stages,
                "elapsed_ms": round(elapsed_ms),
            },
        )
        return PipelineExecutionResult(
            pipeline_id=run.pipeline_id,
            final_candidates=candidates,
            stages=stages,
            metadata=metadata,
            quality_metrics=quality,
        )

    async def _run_stage(
        self,
        run: PipelineRun,
        stage: PipelineStage,
        enabled: bool,
        ready: bool,
        work: Callable[[], Awaitable[StageOutput]],
    ) -> StageResult:
        if run.cancel_requested:
            run.status = PipelineStatus.CANCELLED
            self.logger.warning("Pipeline cancelled", {"pipeline_id": run.pipeline_id, "before": stage.value})
            raise PipelineCancelledError(run.pipeline_id)

        details = {"pipeline_id": run.pipeline_id, "region": run.region}
        if not enabled or not ready:
            reason = "disabled" if not enabled else "input stage did not succeed"
            self.logger.pipeline_stage(stage.value, "skip", {**details, "reason": reason})
            run.stages_finished += 1
            return StageResult(stage=stage, status=StageStatus.SKIPPED, reason=reason)

        run.current_stage = stage
        self.logger.pipeline_stage(stage.value, "start", details)
        started = self._clock()

        try:
            output = await work()
        except Exception as e:
            duration_ms = (self._clock() - started) * 1000
            failure = StageFailure(stage.value, str(e), cause=e)
            self.logger.pipeline_stage(
                stage.value, "error", {**details, "error_type": type(e).__name__, "error": str(e)}
            )
            run.stages_finished += 1
            return StageResult(
                stage=stage, status=StageStatus.FAILED, duration_ms=duration_ms, error=failure
            )

        duration_ms = (self._clock() - started) * 1000
        self.logger.pipeline_stage(
            stage.value, "complete", {**details, "tokens": output.tokens_used, "ms": round(duration_ms)}
        )
        run.stages_finished += 1
        return StageResult(
            stage=stage,
            status=StageStatus.SUCCEEDED,
            payload=output.payload,
            tokens_used=output.tokens_used,
            cost=output.cost,
            duration_ms=duration_ms,
        )

    async def _market_analysis(self, request: PipelineRequest) -> StageOutput:
        outcome = await self.market_analysis.analyze_market(
            MarketAnalysisRequest(
                region=request.region,
                bounds=request.bounds,
                existing_stores=request.existing_stores,
                competitors=request.competitors,
            )
        )
        return StageOutput(outcome, outcome.tokens_used, outcome.cost)

    async def _zone_identification(self, market_outcome) -> StageOutput:
        result = await self.zone_identification.identify_zones(
            market_outcome.analysis, market_outcome.strategic_zones
        )
        return StageOutput(result.zones, result.tokens_used, result.cost)

    async def _location_discovery(self, request: PipelineRequest, zones) -> StageOutput:
        result = await self.location_discovery.discover_locations(
            DiscoveryRequest(
                region=request.region,
                bounds=request.bounds,
                zones=zones,
                target_count=request.target_candidates,
                existing_stores=request.existing_stores,
                quality_threshold=request.config.discovery_quality_threshold,
            )
        )
        return StageOutput(result.candidates, result.tokens_used, result.cost)

    async def _viability_validation(self, request: PipelineRequest, candidates) -> StageOutput:
        result = await self.viability_validation.validate(
            candidates, request.existing_stores, quality_threshold=request.config.quality_threshold
        )
        return StageOutput(result.candidates, result.tokens_used, result.cost)

    async def _strategic_scoring(self, request: PipelineRequest, candidates, market_outcome) -> StageOutput:
        result = await self.strategic_scoring.score_candidates(
            candidates, market_outcome.analysis, request.existing_stores
        )
        return StageOutput(result.candidates, result.tokens_used, result.cost)

    @staticmethod
    def select_final_candidates(
        stages: dict[PipelineStage, StageResult], target: int
    ) -> list[ExpansionCandidate]:
        for stage in (
            PipelineStage.STRATEGIC_SCORING,
            PipelineStage.VIABILITY_VALIDATION,
            PipelineStage.LOCATION_DISCOVERY,
        ):
            result = stages.get(stage)
            if result is not None and result.succeeded:
                return list(result.payload)[:target]
        return []

    @staticmethod
    def calculate_quality_metrics(
        candidates: list[ExpansionCandidate], elapsed_ms: float, total_cost: float
    ) -> QualityMetrics:
        quality = sum(c.best_score for c in candidates) / len(candidates) if candidates else 0.0
        efficiency = min(1.0, PIPELINE_TARGET_MS / elapsed_ms) if elapsed_ms > 0 else 1.0
        cost_effectiveness = min(1.0, PIPELINE_COST_CEILING / total_cost) if total_cost > 0 else 1.0
        return QualityMetrics(
            candidate_quality=round(quality, 4),
            pipeline_efficiency=round(efficiency, 4),
            cost_effectiveness=round(cost_effectiveness, 4),
        )

    def _register(self, run: PipelineRun) -> PipelineRun:
        existing = self._runs.get(run.pipeline_id)
        if existing is not None and existing.status == PipelineStatus.RUNNING:
            raise DataValidationError(
                f"Pipeline {run.pipeline_id} is already running",
                field="pipeline_id",
                value=run.pipeline_id,
                constraint="unique among running pipelines",
            )

        self._runs.pop(run.pipeline_id, None)
        self._runs[run.pipeline_id] = run

        excess = len(self._runs) - self.max_retained_runs
        if excess > 0:
            finished = [pid for pid, r in self._runs.items() if r.status != PipelineStatus.RUNNING]
            for pid in finished[:excess]:
                del self._runs[pid]
        return run

    def get_pipeline_status(self, pipeline_id: str) -> Optional[dict[str, Any]]:
        run = self._runs.get(pipeline_id)
        if run is None:
            return None
        return {
            "pipeline_id": run.pipeline_id,
            "region": run.region,
            "status": run.status.value,
            "current_stage": run.current_stage.value if run.current_stage else None,
            "progress": round(run.stages_finished / len(PipelineStage) * 100),
            "cancel_requested": run.cancel_requested,
        }

    def cancel_pipeline(self, pipeline_id: str) -> bool:
        """Request cancellation. Returns False for unknown or already finished runs."""
        run = self._runs.get(pipeline_id)
        if run is None or run.status != PipelineStatus.RUNNING:
            return False
        run.cancel_requested = True
        self.logger.info("Pipeline cancellation requested", {"pipeline_id": pipeline_id})
        return True
