"""
Expansion Pipeline
==================
Five ordered stages and the controller that runs them

Market Analysis -> Zone Identification -> Location Discovery
    -> Viability Validation -> Strategic Scoring
"""

from src.pipeline.controller import (
    PipelineConfig,
    PipelineController,
    PipelineExecutionResult,
    PipelineRequest,
    PipelineStage,
    StageResult,
    StageStatus,
)

__all__ = [
    "PipelineConfig",
    "PipelineController",
    "PipelineExecutionResult",
    "PipelineRequest",
    "PipelineStage",
    "StageResult",
    "StageStatus",
]
