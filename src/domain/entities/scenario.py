"""
Scenario Domain Entities
========================
ScenarioConfig and the computed scenario outputs: TimelineProjection,
RiskAssessment, FinancialProjections, ScenarioResult, ComparisonMatrix
"""

from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from src.domain.entities.portfolio import (
    OptimizationConstraints,
    OptimizationResult,
    OptimizationStrategy,
)


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class TimelineConfig(BaseModel):
    years: int = Field(default=3, description="Rollout horizon in years")
    phased_rollout: bool = True


class ScenarioConfig(BaseModel):
    """
    Named scenario configuration

    Range checks (budget >= $1M, 1-10 years) live in the scenario service so the
    API can answer with a validation error instead of a schema error.
    """
    name: str
    budget: float
    target_stores: Optional[int] = Field(default=None, ge=1)
    timeline: TimelineConfig = Field(default_factory=TimelineConfig)
    strategy: OptimizationStrategy = OptimizationStrategy.MAXIMIZE_ROI
    constraints: OptimizationConstraints = Field(default_factory=OptimizationConstraints)

    model_config = {
        "json_schema_extra": {
            "example": {
                "name": "Moderate",
                "budget": 50000000,
                "timeline": {"years": 3, "phased_rollout": True},
                "strategy": "maximize_roi",
                "constraints": {"min_roi": 15, "max_cannibalization": 10},
            }
        }
    }


class TimelineYear(BaseModel):
    year: int
    stores_opened: int
    investment: float
    cumulative_stores: int
    cumulative_investment: float
    annual_revenue: float
    cumulative_revenue: float
    cash_flow: float


class TimelineProjection(BaseModel):
    years: List[TimelineYear] = Field(default_factory=list)
    break_even_month: int
    peak_cash_requirement: float


class RiskFactor(BaseModel):
    factor: str
    severity: RiskLevel
    impact: str
    mitigation: str


class RiskAssessment(BaseModel):
    overall_risk: RiskLevel
    risk_score: int = Field(..., ge=0, le=100)
    factors: List[RiskFactor] = Field(default_factory=list)
    confidence_level: int = Field(..., ge=0, le=100)


class FinancialProjections(BaseModel):
    year1_revenue: float
    year3_revenue: float
    year5_revenue: float
    year5_roi: float
    year5_npv: float
    payback_period: float
    irr: float


class ScenarioResult(BaseModel):
    config: ScenarioConfig
    portfolio: OptimizationResult
    timeline: TimelineProjection
    risk_assessment: RiskAssessment
    financial_projections: FinancialProjections
    ai_recommendation: str


class ComparisonMetric(BaseModel):
    name: str
    values: List[float]
    unit: str
    format: Literal["number", "currency", "percentage"]


class ComparisonMatrix(BaseModel):
    metrics: List[ComparisonMetric] = Field(default_factory=list)
    winner: int = 0


class ScenarioComparison(BaseModel):
    scenarios: List[ScenarioResult]
    comparison: ComparisonMatrix
    recommendation: str
