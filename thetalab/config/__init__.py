"""
Configuration Package for the Theta Lab Calculator

Typed settings with defaults, a YAML settings file with per-environment
sections, and logging setup.

Usage:
    from thetalab.config import get_settings, configure_logging

    settings = get_settings()          # THETALAB_ENV selects the profile
    configure_logging(settings)
    print(settings.market.spot, settings.solver.max_iterations)
"""

from thetalab.config.settings import (
    MarketSettings,
    PositionSettings,
    SolverSettings,
    MoneynessSettings,
    ProjectionSettings,
    ErosionSettings,
    RiskSettings,
    CalculatorSettings,
    ConfigValidationError,
    validate_settings,
)

from thetalab.config.environment import (
    Environment,
    SettingsStore,
    settings_store,
    get_environment,
    get_settings,
    set_environment,
    load_settings,
    configure_logging,
)

__all__ = [
    # Settings
    "MarketSettings",
    "PositionSettings",
    "SolverSettings",
    "MoneynessSettings",
    "ProjectionSettings",
    "ErosionSettings",
    "RiskSettings",
    "CalculatorSettings",
    "ConfigValidationError",
    "validate_settings",
    # Environment
    "Environment",
    "SettingsStore",
    "settings_store",
    "get_environment",
    "get_settings",
    "set_environment",
    "load_settings",
    "configure_logging",
]
