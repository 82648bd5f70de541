# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# CREATED: 19 OCT 2026
# ============================================================================
"""
Configuration Module

Provides centralized configuration and defaults for the workflow engine.
"""

from core.config.defaults import (
    Defaults,
    EngineDefaults,
    HttpToolDefaults,
    get_defaults,
    reset_defaults,
)

__all__ = [
    "Defaults",
    "EngineDefaults",
    "HttpToolDefaults",
    "get_defaults",
    "reset_defaults",
]
