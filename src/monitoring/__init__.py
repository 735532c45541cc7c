"""
Monitoring and observability modules
"""

from .logger import AgentLogger

__all__ = ["AgentLogger"]
