"""
Centralized Constants
=====================
Planner thresholds and defaults in one place.
"""

from datetime import timedelta

# ==============================================================================
# CACHE
# ==============================================================================

MARKET_ANALYSIS_TTL = timedelta(days=7)
DEMOGRAPHIC_TTL = timedelta(days=30)


# ==============================================================================
# MARKET ANALYSIS
# ==============================================================================

STORE_SAMPLE_SIZE = 5  # stores listed verbatim in the analysis prompt
GAP_ZONE_MIN_SIZE = 0.6  # competitive gaps above this become zones
GAP_ZONE_RADIUS_PER_SIZE_M = 5000
GAP_ZONE_REVENUE_PER_STORE = 500_000
GAP_ZONE_CONFIDENCE_FACTOR = 0.8
OPPORTUNITY_CAPACITY_BASE = 5

# Capacity multipliers by opportunity type
OPPORTUNITY_CAPACITY_MULTIPLIERS = {
    "demographic": 1.2,
    "geographic": 1.0,
    "competitive": 0.8,
    "infrastructure": 1.1,
}


# ==============================================================================
# PIPELINE
# ==============================================================================

PIPELINE_TARGET_MS = 300_000  # 5 minutes
PIPELINE_COST_CEILING = 10.0  # USD
MAX_RETAINED_RUNS = 100  # finished runs kept for status lookups
DEFAULT_QUALITY_THRESHOLD = 0.25

MAX_ZONES = 10
MIN_ZONE_PRIORITY = 5
MIN_ZONE_SEPARATION_M = 5000
DEFAULT_ZONE_PRIORITY = 5

DISCOVERY_BATCH_SIZE = 50
DISCOVERY_QUALITY_THRESHOLD = 0.3
MIN_CANDIDATE_SPACING_M = 800
MIN_CANDIDATE_SIGNAL = 0.1  # viability / confidence below this are dropped

MIN_DISTANCE_FROM_EXISTING_M = 500
VIABILITY_ESCALATION_THRESHOLD = 0.6
VIABILITY_BORDERLINE_LOW = 0.4
VIABILITY_BORDERLINE_HIGH = 0.7
VIABILITY_CONCURRENCY = 10

STRATEGIC_WEIGHTS = {
    "market": 0.3,
    "competitive": 0.25,
    "demographic": 0.2,
    "viability": 0.2,
    "risk": 0.05,
}


# ==============================================================================
# PORTFOLIO
# ==============================================================================

MAX_ROI_STORE_CAP = 30
MIN_REMAINING_BUDGET = 500_000

POPULATION_BANDS = {
    "small": 25_000,
    "medium": 125_000,
    "large": 350_000,
    "major": 750_000,
}


# ==============================================================================
# SCENARIOS
# ==============================================================================

MIN_SCENARIO_BUDGET = 1_000_000
MIN_TIMELINE_YEARS = 1
MAX_TIMELINE_YEARS = 10
MIN_COMPARE_SCENARIOS = 2
MAX_COMPARE_SCENARIOS = 5
NPV_DISCOUNT_RATE = 0.10

SCENARIO_FALLBACK_TEXT = (
    "AI analysis temporarily unavailable. Review metrics above for decision-making."
)
COMPARISON_FALLBACK_TEXT = (
    "AI analysis temporarily unavailable. Review comparison metrics above for decision-making."
)
PORTFOLIO_FALLBACK_TEXT = (
    "AI analysis temporarily unavailable. Portfolio metrics are available above."
)


# ==============================================================================
# EXPANSION
# ==============================================================================

# (max aggression, target candidate count)
AGGRESSION_STEPS = ((20, 50), (40, 100), (60, 150), (80, 200))
MAX_AGGRESSION_TARGET = 300

PIPELINE_MODEL_VERSION = "v3.0-ai-pipeline"
SIMPLE_MODEL_VERSION = "v4.0-simple-ai"
FALLBACK_MODEL_VERSION = "v1.0-fallback"

GEOCODE_BATCH_SIZE = 50
