"""
Configuration Manager Module
============================

Responsibility:
- Centralized loading and validation of JSON configuration files.
- Enforcement of schema constraints and logical rules (catalog, measure, budgets).
- Resource usage guardrails (evaluation budget, memory).
- Deterministic seed propagation for reproducibility.
"""

from .config_manager import ConfigurationManager

__all__ = ['ConfigurationManager']
