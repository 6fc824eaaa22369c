"""
Utility Functions Module

This module provides common utility functions used across the project.
- Logging setup
- Typed YAML configuration
"""

from .logging import setup_logger, PACKAGE_LOGGER
from .config import (
    AppConfig,
    FeaturesConfig,
    ParallelConfig,
    LoggingConfig,
    load_config,
)

__all__ = [
    "setup_logger",
    "PACKAGE_LOGGER",
    "AppConfig",
    "FeaturesConfig",
    "ParallelConfig",
    "LoggingConfig",
    "load_config",
]
