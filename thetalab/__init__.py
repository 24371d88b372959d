"""
Theta Lab Package

An options pricing and risk calculator for European index options: BSM
prices and Greeks, implied volatility, put-call parity, a position book
with aggregate Greeks, and decay / P&L projections.

Modules:
    core: Pricing, Greeks, implied volatility, parity and positions
    analytics: Decay and P&L projections, premium erosion, risk spotlight
    config: Settings, environments and logging setup
"""

__version__ = "1.0.0"
__author__ = "Theta Lab Team"

from thetalab.core import (
    OptionType,
    MarketContext,
    OptionPosition,
    PositionBook,
    price,
    greeks,
    implied_vol,
    check_parity,
)

from thetalab.config import (
    CalculatorSettings,
    Environment,
    get_environment,
    get_settings,
    set_environment,
    configure_logging,
)

__all__ = [
    "__version__",
    "__author__",
    "OptionType",
    "MarketContext",
    "OptionPosition",
    "PositionBook",
    "price",
    "greeks",
    "implied_vol",
    "check_parity",
    "CalculatorSettings",
    "Environment",
    "get_environment",
    "get_settings",
    "set_environment",
    "configure_logging",
]
