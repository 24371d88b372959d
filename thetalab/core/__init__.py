"""
Core Module for the Theta Lab Calculator

Pricing, implied volatility, parity checking and position management for
European options on an index.

Components:
    - math_kernel: Normal distribution helpers and d1/d2
    - pricing: Black-Scholes-Merton prices and Greeks
    - implied_volatility: Bisection IV solver
    - parity: Put-call parity check
    - position: OptionPosition, input parsing and moneyness
    - position_book: PositionBook (collection with stable ids)

Conventions:
    - Greeks scaling: theta per calendar day, vega/rho per 1 percentage point
    - Time to expiry: days / 365
    - At T <= 0 every option is worth its intrinsic value

Usage:
    from thetalab.core import PositionBook, MarketContext, greeks

    market = MarketContext(spot=17450, rate=0.065, volatility=0.15)
    book = PositionBook(market)
    call = book.add('call', strike=17450, days_to_expiry=30)
    put = book.add('put', strike=17450, days_to_expiry=30)
    print(book.aggregate()['total_theta'])

    g = greeks('call', S=100, K=100, T=0.25, r=0.05, sigma=0.20)
    print(f"Delta: {g['delta']:.4f}, Gamma: {g['gamma']:.4f}")
"""

from thetalab.core.math_kernel import (
    PricingError,
    DomainPreconditionError,
    norm_cdf,
    norm_pdf,
    d1_d2,
    DAYS_PER_YEAR,
)

from thetalab.core.pricing import (
    OptionType,
    normalize_option_type,
    intrinsic_value,
    price,
    probability_itm,
    greeks,
    format_greeks,
    DISPLAY_PRECISION,
)

from thetalab.core.implied_volatility import (
    ImpliedVolResult,
    solve_implied_vol,
    implied_vol,
)

from thetalab.core.parity import (
    ParityResult,
    check_parity,
    PARITY_TOLERANCE,
)

from thetalab.core.position import (
    PositionError,
    InvalidInputError,
    PositionNotFoundError,
    Moneyness,
    MarketContext,
    OptionPosition,
    classify_moneyness,
    EXPORT_COLUMNS,
    GREEK_NAMES,
)

from thetalab.core.position_book import PositionBook

# Define public API
__all__ = [
    # =========================================================================
    # Exceptions
    # =========================================================================
    "PricingError",
    "DomainPreconditionError",
    "PositionError",
    "InvalidInputError",
    "PositionNotFoundError",
    # =========================================================================
    # Math Kernel
    # =========================================================================
    "norm_cdf",
    "norm_pdf",
    "d1_d2",
    # =========================================================================
    # Pricing
    # =========================================================================
    "OptionType",
    "normalize_option_type",
    "intrinsic_value",
    "price",
    "probability_itm",
    "greeks",
    "format_greeks",
    # =========================================================================
    # Implied Volatility and Parity
    # =========================================================================
    "ImpliedVolResult",
    "solve_implied_vol",
    "implied_vol",
    "ParityResult",
    "check_parity",
    # =========================================================================
    # Positions
    # =========================================================================
    "Moneyness",
    "MarketContext",
    "OptionPosition",
    "PositionBook",
    "classify_moneyness",
    # =========================================================================
    # Constants
    # =========================================================================
    "DAYS_PER_YEAR",
    "DISPLAY_PRECISION",
    "PARITY_TOLERANCE",
    "EXPORT_COLUMNS",
    "GREEK_NAMES",
]
