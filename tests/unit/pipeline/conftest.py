"""Shared fixtures for the pipeline stage tests"""

import pytest

from src.domain.entities.market import MarketAnalysis, RegionBounds


def _market_payload():
    return {
        "saturation": {"level": "medium", "score": 0.45, "store_count": 12},
        "opportunities": [
            {
                "type": "demographic",
                "description": "Large student population near the university",
                "priority": "high",
                "estimated_impact": 0.8,
                "location": {"lat": 52.52, "lng": 13.40, "radius": 2000},
            },
            {
                "type": "geographic",
                "description": "Suburban growth corridor",
                "priority": "medium",
                "estimated_impact": 0.9,
                "location": {"lat": 52.40, "lng": 13.10, "radius": 3000},
            },
            {
                "type": "infrastructure",
                "description": "New rail station",
                "priority": "high",
                "estimated_impact": 0.5,
            },
        ],
        "competitive_gaps": [
            {
                "area": "Kreuzberg",
                "competitors": ["BurgerCo", "PizzaHouse"],
                "gap_size": 0.7,
                "opportunity": "Late-night dining",
                "estimated_revenue": 1_200_000,
            },
            {"area": "Spandau", "gap_size": 0.6, "opportunity": "Family dining"},
        ],
        "demographic_insights": [
            {"category": "age", "insight": "Young professionals", "relevance": 0.7, "actionable": True}
        ],
        "recommendations": ["Target university districts"],
        "confidence": 0.8,
    }


@pytest.fixture
def market_payload():
    """Reasoning answer for a Berlin market analysis"""
    return _market_payload()


@pytest.fixture
def berlin_bounds():
    return RegionBounds(north=52.68, south=52.34, east=13.76, west=13.09)


@pytest.fixture
def market_analysis():
    return MarketAnalysis(**_market_payload(), region="Berlin", tokens_used=1200, cost=0.002)
