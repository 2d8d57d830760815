"""
Logging Configuration Module
============================

Responsibility:
- Root logger setup for console (colored) and rotating file output.
"""

from .logging_config import ColoredFormatter, LoggingConfigurator

__all__ = ['ColoredFormatter', 'LoggingConfigurator']
