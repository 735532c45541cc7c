"""
Application Workflows
=====================
Expansion candidate generation: simple path, pipeline path and fallback.
"""

from .expansion_workflow import ExpansionRequest, ExpansionResult, ExpansionWorkflow, RegionFilter
from .fallback_generator import FallbackCandidateGenerator
from .simple_expansion import SimpleExpansionRequest, SimpleExpansionResult, SimpleExpansionService

__all__ = [
    "ExpansionRequest",
    "ExpansionResult",
    "ExpansionWorkflow",
    "FallbackCandidateGenerator",
    "RegionFilter",
    "SimpleExpansionRequest",
    "SimpleExpansionResult",
    "SimpleExpansionService",
]
