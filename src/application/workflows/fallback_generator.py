"""
Fallback Candidate Generator
============================
Placeholder candidates for when AI generation is switched off.

Points are drawn uniformly inside the country's bounding box. They carry
low confidence, fixed conservative financials and has_ai_analysis=False so
consumers can tell them apart from analysed candidates.
"""

import logging
import random
from typing import Optional

from src.domain.entities.candidate import ExpansionCandidate
from src.domain.exceptions import DataValidationError
from src.shared.constants import FALLBACK_MODEL_VERSION
from src.shared.geo import country_bounds, normalize_country_name

logger = logging.getLogger(__name__)

DEFAULT_COUNTRY = "Germany"
FALLBACK_CONFIDENCE_RANGE = (0.3, 0.5)


class FallbackCandidateGenerator:
    """
    Usage:
        generator = FallbackCandidateGenerator()
        candidates = generator.generate("Germany", 50)
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def generate(
        self,
        country: Optional[str],
        count: int,
        region: Optional[str] = None,
    ) -> list[ExpansionCandidate]:
        """
        Raises:
            DataValidationError: count < 1 or no bounding box known for the country
        """
        if count < 1:
            raise DataValidationError(
                "Target count must be at least 1", field="target_count", value=count, constraint=">= 1"
            )

        name = normalize_country_name(country or DEFAULT_COUNTRY)
        bounds = country_bounds(name)
        if bounds is None:
            raise DataValidationError(
                f"No bounding box known for country '{country}'",
                field="country",
                value=country,
                constraint="known country",
            )

        label = name.title()
        low, high = FALLBACK_CONFIDENCE_RANGE
        candidates = []
        for index in range(1, count + 1):
            confidence = round(self.rng.uniform(low, high), 3)
            candidates.append(
                ExpansionCandidate(
                    id=f"fallback-suggestion-{index}",
                    lat=self.rng.uniform(bounds.south, bounds.north),
                    lng=self.rng.uniform(bounds.west, bounds.east),
                    region=region or f"{label} Location {index}",
                    country=label,
                    demand_score=confidence,
                    confidence=confidence,
                    competition_penalty=0.2,
                    supply_penalty=0.1,
                    population=80_000,
                    footfall_index=0.6,
                    income_index=0.6,
                    predicted_auv=350_000,
                    payback_months=24,
                    rationale=f"Fallback location analysis for {label} Location {index}",
                    has_ai_analysis=False,
                    model_version=FALLBACK_MODEL_VERSION,
                    processing_rank=index,
                )
            )

        logger.info(f"Fallback generator produced {len(candidates)} candidates for {label}")
        return candidates
