"""
Candidate Domain Entity
=======================
ExpansionCandidate: a proposed new store location, enriched stage by stage
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from src.domain.exceptions import DataValidationError

# Scores attached by later stages. Once set they are never overwritten.
ATTACHED_SCORES = ("viability_score", "strategic_score")


class ViabilityCheck(BaseModel):
    name: str
    passed: bool
    score: float = Field(..., ge=0, le=1)
    critical: bool = False
    detail: str = ""

    model_config = {"frozen": True}


class ExpansionCandidate(BaseModel):
    """
    Expansion candidate entity

    Immutable; stages produce enriched copies via `enrich()`.

    Attributes:
        id: candidate ID
        lat / lng: coordinate
        region / country / state / city: location labels
        demand_score: demand sub-score (0-1)
        competition_penalty / supply_penalty: penalties (0-1)
        population: catchment population
        footfall_index / income_index: indices (0-1)
        predicted_auv: predicted annual revenue (average unit volume)
        payback_months: predicted payback period
        rationale: reasoning text
        has_ai_analysis: provenance, False for fallback placeholders
        model_version: generator version tag
        processing_rank: order in which the candidate left its producing stage
    """
    id: str = Field(..., description="Candidate ID")
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    region: Optional[str] = None
    country: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None
    zone_id: Optional[str] = None

    demand_score: float = Field(default=0.5, ge=0, le=1)
    competition_penalty: float = Field(default=0.2, ge=0, le=1)
    supply_penalty: float = Field(default=0.1, ge=0, le=1)
    population: int = Field(default=100_000, ge=0)
    footfall_index: float = Field(default=0.7, ge=0, le=1)
    income_index: float = Field(default=0.7, ge=0, le=1)
    predicted_auv: float = Field(default=450_000, ge=0)
    payback_months: int = Field(default=18, ge=0)
    confidence: float = Field(default=0.5, ge=0, le=1)

    rationale: str = ""
    has_ai_analysis: bool = True
    model_version: str = "v3.0-ai-pipeline"
    processing_rank: Optional[int] = None

    viability_score: Optional[float] = Field(default=None, ge=0, le=1)
    viability_checks: List[ViabilityCheck] = Field(default_factory=list)
    strategic_score: Optional[float] = Field(default=None, ge=0, le=1)
    score_breakdown: Dict[str, float] = Field(default_factory=dict)
    risk_level: Optional[str] = None

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "example": {
                "id": "cand-berlin-001",
                "lat": 52.5200,
                "lng": 13.4050,
                "country": "Germany",
                "city": "Berlin",
                "demand_score": 0.74,
                "predicted_auv": 480000,
                "payback_months": 17,
                "rationale": "Dense student population, no QSR within 800m",
                "has_ai_analysis": True,
                "model_version": "v3.0-ai-pipeline",
            }
        },
    }

    def enrich(self, **updates) -> "ExpansionCandidate":
        """
        Return a copy with extra scores attached.

        Raises:
            DataValidationError: when an already attached score would be replaced
        """
        for name in ATTACHED_SCORES:
            if name in updates and getattr(self, name) is not None:
                raise DataValidationError(
                    f"{name} already attached to candidate {self.id}",
                    field=name,
                    value=updates[name],
                    constraint="scores are attached once",
                )
        return self.model_copy(update=updates)

    @property
    def best_score(self) -> float:
        """strategic score, else viability score, else 0.5"""
        if self.strategic_score is not None:
            return self.strategic_score
        if self.viability_score is not None:
            return self.viability_score
        return 0.5
