"""
Shared utilities for the expansion planner.
"""

from .llm_client import MalformedResponse, ParsedResponse, ReasoningClient
from .model_registry import ModelRegistry, OperationType

__all__ = ["MalformedResponse", "ModelRegistry", "OperationType", "ParsedResponse", "ReasoningClient"]
