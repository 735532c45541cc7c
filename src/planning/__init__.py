"""
Planning Layer
==============
Portfolio optimization and multi-year scenario modeling
"""

from src.planning.portfolio_optimizer import PortfolioOptimizer
from src.planning.scenario_modeling import ScenarioModelingService

__all__ = ["PortfolioOptimizer", "ScenarioModelingService"]
