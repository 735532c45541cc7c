"""
Market Domain Entities
======================
Region inputs and the structured market assessment: RegionBounds, StoreLocation,
CompetitorLocation, MarketAnalysisPayload, MarketAnalysis, StrategicZone
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class SaturationLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    OVERSATURATED = "oversaturated"


class OpportunityType(str, Enum):
    DEMOGRAPHIC = "demographic"
    GEOGRAPHIC = "geographic"
    COMPETITIVE = "competitive"
    INFRASTRUCTURE = "infrastructure"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class InsightCategory(str, Enum):
    AGE = "age"
    INCOME = "income"
    LIFESTYLE = "lifestyle"
    BEHAVIOR = "behavior"


class RegionBounds(BaseModel):
    """Bounding box of the analysed region (degrees)"""
    north: float = Field(..., ge=-90, le=90)
    south: float = Field(..., ge=-90, le=90)
    east: float = Field(..., ge=-180, le=180)
    west: float = Field(..., ge=-180, le=180)

    @property
    def center(self) -> tuple[float, float]:
        return ((self.north + self.south) / 2, (self.east + self.west) / 2)

    def contains(self, lat: float, lng: float) -> bool:
        return self.south <= lat <= self.north and self.west <= lng <= self.east


class StoreLocation(BaseModel):
    """An existing store of the network"""
    id: str = Field(..., description="Store ID")
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    name: Optional[str] = None
    city: Optional[str] = None
    annual_revenue: Optional[float] = Field(default=None, description="Annual turnover")


class CompetitorLocation(BaseModel):
    """A known competitor outlet"""
    brand: str = Field(..., description="Competitor brand name")
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class MarketSaturation(BaseModel):
    level: SaturationLevel
    score: float = Field(..., ge=0, le=1)
    store_count: int = Field(default=0, ge=0)
    population_per_store: float = Field(default=0, ge=0)
    competitor_density: float = Field(default=0, ge=0)


class OpportunityLocation(BaseModel):
    lat: float
    lng: float
    radius: float = Field(..., gt=0, description="Radius in meters")


class MarketOpportunity(BaseModel):
    type: OpportunityType
    description: str
    priority: Priority
    estimated_impact: float = Field(..., ge=0, le=1)
    location: Optional[OpportunityLocation] = None


class CompetitiveGap(BaseModel):
    area: str
    competitors: List[str] = Field(default_factory=list)
    gap_size: float = Field(..., ge=0, le=1)
    opportunity: str
    estimated_revenue: float = Field(default=0, ge=0)


class DemographicInsight(BaseModel):
    category: InsightCategory
    insight: str
    relevance: float = Field(..., ge=0, le=1)
    actionable: bool = False


class MarketAnalysisPayload(BaseModel):
    """
    JSON schema the reasoning service must answer with for a market analysis
    """
    saturation: MarketSaturation
    opportunities: List[MarketOpportunity] = Field(default_factory=list)
    competitive_gaps: List[CompetitiveGap] = Field(default_factory=list)
    demographic_insights: List[DemographicInsight] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    confidence: float = Field(..., ge=0, le=1)


class MarketAnalysis(MarketAnalysisPayload):
    """
    Market analysis entity

    Per-region assessment. Created once per pipeline run or read back from the
    cache, read-only afterwards.

    Attributes:
        region: region name as requested
        tokens_used: reasoning tokens spent (0 when served from cache)
        cost: USD spent (0 when served from cache)
        cached: True when read from the cache
        analyzed_at: when the analysis was produced
    """
    region: str = Field(..., description="Region name")
    tokens_used: int = Field(default=0, ge=0)
    cost: float = Field(default=0.0, ge=0)
    cached: bool = Field(default=False)
    analyzed_at: datetime = Field(default_factory=datetime.now)

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "example": {
                "region": "Berlin",
                "saturation": {
                    "level": "medium",
                    "score": 0.45,
                    "store_count": 12,
                    "population_per_store": 300000,
                    "competitor_density": 0.8,
                },
                "opportunities": [],
                "competitive_gaps": [],
                "demographic_insights": [],
                "recommendations": ["Target university districts"],
                "confidence": 0.78,
                "tokens_used": 2400,
                "cost": 0.0041,
                "cached": False,
            }
        },
    }


class StrategicZone(BaseModel):
    """
    Strategic zone entity

    High-opportunity area derived from a market analysis; never user-created.

    Attributes:
        id: zone ID
        name: human readable name
        center_lat / center_lng: zone center
        radius: radius in meters
        priority: priority score (0-1 from market analysis, 0-10 after zone identification)
        characteristics: free-text traits
        estimated_capacity: number of stores the zone can absorb
        estimated_revenue: revenue potential, if known
        confidence: inherited from the producing analysis
    """
    id: str
    name: str
    center_lat: float
    center_lng: float
    radius: float = Field(..., gt=0)
    priority: float = Field(..., ge=0)
    characteristics: List[str] = Field(default_factory=list)
    estimated_capacity: int = Field(default=1, ge=0)
    estimated_revenue: float = Field(default=0, ge=0)
    confidence: float = Field(default=0.5, ge=0, le=1)

    model_config = {"frozen": True}
