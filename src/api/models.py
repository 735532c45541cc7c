"""
API Pydantic Models
===================
Request/response bodies for the inbound API. Domain entities are reused
directly where they already describe the payload.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from src.domain.entities.candidate import ExpansionCandidate
from src.domain.entities.portfolio import (
    OptimizationConstraints,
    OptimizationStrategy,
    PortfolioCandidate,
)
from src.domain.entities.scenario import ScenarioConfig

# ============= Portfolio =============


class OptimizePortfolioRequest(BaseModel):
    """Portfolio optimization request"""

    candidates: list[PortfolioCandidate]
    budget: float
    strategy: OptimizationStrategy = OptimizationStrategy.MAXIMIZE_ROI
    constraints: OptimizationConstraints = Field(default_factory=OptimizationConstraints)
    max_stores: Optional[int] = Field(default=None, ge=1)
    generate_insights: bool = True


# ============= Scenarios =============


class ScenarioRequest(BaseModel):
    """Single scenario generation request"""

    config: ScenarioConfig
    candidates: list[PortfolioCandidate]


class CompareScenariosRequest(BaseModel):
    """Head-to-head comparison of 2-5 scenarios"""

    scenarios: list[ScenarioConfig]
    candidates: list[PortfolioCandidate]


class QuickScenariosRequest(BaseModel):
    """Preset scenario set: budget, store_count, timeline or geographic"""

    type: str = Field(..., description="budget | store_count | timeline | geographic")
    candidates: list[PortfolioCandidate]
    base_config: Optional[dict[str, Any]] = None


# ============= Expansion =============


class ExpansionResponse(BaseModel):
    """Generated expansion candidates"""

    candidates: list[ExpansionCandidate]
    mode: str
    target_count: int
    tokens_used: int = 0
    cost: float = 0.0
    generation_time_ms: float = 0.0
    pipeline_id: Optional[str] = None
    stages: dict[str, str] = Field(default_factory=dict)


class PipelineStatusResponse(BaseModel):
    pipeline_id: str
    region: str
    status: str
    current_stage: Optional[str] = None
    progress: int
    cancel_requested: bool


class PipelineCancelResponse(BaseModel):
    pipeline_id: str
    cancelled: bool


# ============= Health =============


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    resilience: dict[str, Any]
    feature_flags: dict[str, bool]


class ErrorResponse(BaseModel):
    error: str
    type: str
    detail: dict[str, Any] = Field(default_factory=dict)
