"""
Infrastructure Layer
====================
Integration with configuration, persistence and the DI container.

Structure:
- config/: AppConfig (environment)
- persistence/: cache store implementations (SQLite, in-memory)
- feature_flags.py: ENV > JSON > default flags
- container.py: DI container
"""

from src.infrastructure.config.config_manager import AppConfig

__all__ = ["AppConfig"]
