"""
Application Layer
=================
Use cases on top of the domain, the pipeline and the planning services.

Structure:
- workflows/: expansion candidate generation (simple, pipeline, fallback)
"""

from src.application.workflows import ExpansionRequest, ExpansionResult, ExpansionWorkflow, RegionFilter

__all__ = ["ExpansionRequest", "ExpansionResult", "ExpansionWorkflow", "RegionFilter"]
