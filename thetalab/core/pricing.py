"""
Options Pricing Module

Black-Scholes-Merton pricing of single European options with a continuous
dividend yield, together with the analytical Greeks used for the position
table and the portfolio summary.

Mathematical Framework:
    The model assumes:
    - European-style options (no early exercise)
    - Log-normal distribution of underlying returns
    - Constant volatility, risk-free rate and dividend yield
    - Continuous trading with no transaction costs

Key Formulas:
    Call Price: C = S*exp(-qT)*N(d1) - K*exp(-rT)*N(d2)
    Put Price:  P = K*exp(-rT)*N(-d2) - S*exp(-qT)*N(-d1)

    At T <= 0 the price is the intrinsic value max(S-K, 0) / max(K-S, 0).

Greek Conventions:
    - Theta is per calendar day (annual theta / 365)
    - Vega is per 1 percentage point change in volatility
    - Rho is per 1 percentage point change in the risk-free rate

Usage:
    from thetalab.core.pricing import price, greeks, OptionType

    call = price(OptionType.CALL, S=17450, K=17450, T=30/365, r=0.065, sigma=0.15)
    g = greeks('put', S=17450, K=17500, T=30/365, r=0.065, sigma=0.15)
    print(f"Delta: {g['delta']:.4f}  Theta/day: {g['theta']:.2f}")

References:
    - Black, F., & Scholes, M. (1973). The Pricing of Options and Corporate Liabilities.
    - Merton, R. C. (1973). Theory of Rational Option Pricing.
    - Hull, J. C. (2018). Options, Futures, and Other Derivatives.
"""

import logging
import math
from enum import Enum
from typing import Dict, Union

from thetalab.core.math_kernel import (
    DAYS_PER_YEAR,
    DomainPreconditionError,
    PricingError,
    check_finite,
    d1_d2,
    norm_cdf,
    norm_pdf,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Option Type
# =============================================================================

class OptionType(str, Enum):
    """Option contract type."""

    CALL = "call"
    PUT = "put"


OptionTypeLike = Union[OptionType, str]

_OPTION_TYPE_ALIASES = {
    'call': OptionType.CALL,
    'c': OptionType.CALL,
    'ce': OptionType.CALL,
    'put': OptionType.PUT,
    'p': OptionType.PUT,
    'pe': OptionType.PUT,
}


def normalize_option_type(option_type: OptionTypeLike) -> OptionType:
    """
    Convert an option type given as enum or string to OptionType.

    Accepts 'call'/'c'/'ce' and 'put'/'p'/'pe' in any case.

    Raises:
        DomainPreconditionError: If the value is not a recognised type.
    """
    if isinstance(option_type, OptionType):
        return option_type
    if isinstance(option_type, str):
        resolved = _OPTION_TYPE_ALIASES.get(option_type.lower().strip())
        if resolved is not None:
            return resolved
    raise DomainPreconditionError(
        f"option_type must be 'call' or 'put', got '{option_type}'"
    )


# =============================================================================
# Display Precision
# =============================================================================

# Decimal places used when Greeks are formatted for display
DISPLAY_PRECISION: Dict[str, int] = {
    'price': 2,
    'intrinsic': 2,
    'extrinsic': 2,
    'theta': 2,
    'vega': 2,
    'rho': 2,
    'delta': 4,
    'gamma': 6,
    'd1': 4,
    'd2': 4,
    'probability_itm': 4,
}


# =============================================================================
# Helper Functions
# =============================================================================

def _validate_inputs(S: float, K: float, T: float, r: float, q: float) -> None:
    """Validate the market inputs shared by every pricing function."""
    check_finite(S=S, K=K, T=T, r=r, q=q)

    if S <= 0:
        raise DomainPreconditionError(f"Spot price (S) must be positive, got {S}")

    if K <= 0:
        raise DomainPreconditionError(f"Strike price (K) must be positive, got {K}")


def intrinsic_value(option_type: OptionTypeLike, S: float, K: float) -> float:
    """
    Immediate exercise value of an option.

    Call: max(S - K, 0)
    Put:  max(K - S, 0)
    """
    if normalize_option_type(option_type) is OptionType.CALL:
        return max(S - K, 0.0)
    return max(K - S, 0.0)


# =============================================================================
# Pricing
# =============================================================================

def price(
    option_type: OptionTypeLike,
    S: float,
    K: float,
    T: float,
    r: float,
    sigma: float,
    q: float = 0.0
) -> float:
    """
    Price a European option under Black-Scholes-Merton.

    Args:
        option_type: 'call' or 'put' (or OptionType)
        S: Spot price of the underlying
        K: Strike price
        T: Time to expiration in years (<= 0 means expired)
        r: Risk-free rate (annualized, decimal)
        sigma: Volatility (annualized, decimal)
        q: Continuous dividend yield (annualized, decimal)

    Returns:
        Option price, never negative.

    Raises:
        DomainPreconditionError: For non-finite or out-of-domain inputs,
            including sigma <= 0 while T > 0.

    Example:
        >>> call = price('call', S=100, K=100, T=0.25, r=0.05, sigma=0.20)
        >>> print(f"Call price: {call:.2f}")  # roughly 4.6
    """
    kind = normalize_option_type(option_type)
    _validate_inputs(S, K, T, r, q)

    # Expiry boundary
    if T <= 0:
        return intrinsic_value(kind, S, K)

    d1, d2 = d1_d2(S, K, T, r, sigma, q)

    spot_discount = math.exp(-q * T)
    strike_discount = math.exp(-r * T)

    if kind is OptionType.CALL:
        value = S * spot_discount * norm_cdf(d1) - K * strike_discount * norm_cdf(d2)
    else:
        value = K * strike_discount * norm_cdf(-d2) - S * spot_discount * norm_cdf(-d1)

    # Ensure non-negative price (numerical precision)
    return max(value, 0.0)


def probability_itm(
    option_type: OptionTypeLike,
    S: float,
    K: float,
    T: float,
    r: float,
    sigma: float,
    q: float = 0.0
) -> float:
    """
    Risk-neutral probability that the option finishes in the money.

    Call: N(d2), Put: N(-d2). At expiry this is 1.0 for an ITM option and
    0.0 otherwise.
    """
    kind = normalize_option_type(option_type)
    _validate_inputs(S, K, T, r, q)

    if T <= 0:
        return 1.0 if intrinsic_value(kind, S, K) > 0 else 0.0

    _, d2 = d1_d2(S, K, T, r, sigma, q)
    return norm_cdf(d2) if kind is OptionType.CALL else norm_cdf(-d2)


def greeks(
    option_type: OptionTypeLike,
    S: float,
    K: float,
    T: float,
    r: float,
    sigma: float,
    q: float = 0.0
) -> Dict[str, float]:
    """
    Calculate price and all first-order Greeks for a European option.

    Formulas (T > 0):
        delta  = exp(-qT)*N(d1)                 (call)
                 exp(-qT)*(N(d1) - 1)           (put)
        gamma  = exp(-qT)*n(d1) / (S*sigma*sqrt(T))
        theta  = [-S*sigma*exp(-qT)*n(d1) / (2*sqrt(T))
                  + q*S*exp(-qT)*N(d1) - r*K*exp(-rT)*N(d2)] / 365      (call)
                 [-S*sigma*exp(-qT)*n(d1) / (2*sqrt(T))
                  - q*S*exp(-qT)*N(-d1) + r*K*exp(-rT)*N(-d2)] / 365    (put)
        vega   = S*exp(-qT)*sqrt(T)*n(d1) * 0.01
        rho    = K*T*exp(-rT)*N(d2) * 0.01      (call)
                 -K*T*exp(-rT)*N(-d2) * 0.01    (put)

    At T <= 0 delta is the exercise indicator (call: 1 if S > K else 0,
    put: -1 if S < K else 0) and gamma, theta, vega and rho are 0.

    Args:
        option_type: 'call' or 'put' (or OptionType)
        S: Spot price
        K: Strike price
        T: Time to expiration in years
        r: Risk-free rate (annualized, decimal)
        sigma: Volatility (annualized, decimal)
        q: Continuous dividend yield (annualized, decimal)

    Returns:
        Dictionary with keys 'delta', 'gamma', 'theta', 'vega', 'rho',
        'price', 'intrinsic', 'extrinsic', 'd1', 'd2', 'probability_itm'.

    Raises:
        DomainPreconditionError: For non-finite or out-of-domain inputs.
    """
    kind = normalize_option_type(option_type)
    _validate_inputs(S, K, T, r, q)

    intrinsic = intrinsic_value(kind, S, K)

    if T <= 0:
        if kind is OptionType.CALL:
            delta = 1.0 if S > K else 0.0
        else:
            delta = -1.0 if S < K else 0.0
        return {
            'delta': delta,
            'gamma': 0.0,
            'theta': 0.0,
            'vega': 0.0,
            'rho': 0.0,
            'price': intrinsic,
            'intrinsic': intrinsic,
            'extrinsic': 0.0,
            'd1': 0.0,
            'd2': 0.0,
            'probability_itm': 1.0 if intrinsic > 0 else 0.0,
        }

    d1, d2 = d1_d2(S, K, T, r, sigma, q)

    sqrt_T = math.sqrt(T)
    spot_discount = math.exp(-q * T)
    strike_discount = math.exp(-r * T)
    pdf_d1 = norm_pdf(d1)

    gamma = spot_discount * pdf_d1 / (S * sigma * sqrt_T)
    vega = S * spot_discount * sqrt_T * pdf_d1 * 0.01

    # Time decay component (same for calls and puts)
    time_decay = -S * sigma * spot_discount * pdf_d1 / (2 * sqrt_T)

    if kind is OptionType.CALL:
        delta = spot_discount * norm_cdf(d1)
        theta_annual = (
            time_decay
            + q * S * spot_discount * norm_cdf(d1)
            - r * K * strike_discount * norm_cdf(d2)
        )
        rho = K * T * strike_discount * norm_cdf(d2) * 0.01
        probability = norm_cdf(d2)
    else:
        delta = spot_discount * (norm_cdf(d1) - 1.0)
        theta_annual = (
            time_decay
            - q * S * spot_discount * norm_cdf(-d1)
            + r * K * strike_discount * norm_cdf(-d2)
        )
        rho = -K * T * strike_discount * norm_cdf(-d2) * 0.01
        probability = norm_cdf(-d2)

    option_price = price(kind, S, K, T, r, sigma, q)

    return {
        'delta': delta,
        'gamma': gamma,
        'theta': theta_annual / DAYS_PER_YEAR,
        'vega': vega,
        'rho': rho,
        'price': option_price,
        'intrinsic': intrinsic,
        # Floating point error can push price a hair below intrinsic
        'extrinsic': max(option_price - intrinsic, 0.0),
        'd1': d1,
        'd2': d2,
        'probability_itm': probability,
    }


def format_greeks(values: Dict[str, float]) -> Dict[str, float]:
    """
    Round a Greeks dictionary to display precision.

    Price, intrinsic, extrinsic, theta, vega and rho to 2 dp, delta to 4 dp,
    gamma to 6 dp. Keys without a configured precision pass through.
    """
    return {
        key: round(value, DISPLAY_PRECISION[key]) if key in DISPLAY_PRECISION else value
        for key, value in values.items()
    }


__all__ = [
    'OptionType',
    'OptionTypeLike',
    'PricingError',
    'DomainPreconditionError',
    'DISPLAY_PRECISION',
    'normalize_option_type',
    'intrinsic_value',
    'price',
    'probability_itm',
    'greeks',
    'format_greeks',
]
