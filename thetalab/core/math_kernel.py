"""
Math Kernel for Options Pricing

Standard normal distribution helpers and the Black-Scholes-Merton auxiliary
terms d1/d2. Everything in this module is a pure function with no state;
the pricing engine, implied volatility solver and projection engine all
build on it.

Key Formulas:
    N(x)  = cumulative standard normal distribution
    n(x)  = (1 / sqrt(2*pi)) * exp(-x^2 / 2)

    d1 = [ln(S/K) + (r - q + sigma^2/2)*T] / (sigma*sqrt(T))
    d2 = d1 - sigma*sqrt(T)

Usage:
    from thetalab.core.math_kernel import norm_cdf, norm_pdf, d1_d2

    d1, d2 = d1_d2(S=17450, K=17500, T=30/365, r=0.065, sigma=0.15)
    prob_itm = norm_cdf(d2)
"""

import logging
import math
from typing import Tuple

import numpy as np
from scipy.stats import norm

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================

class PricingError(Exception):
    """Exception raised when a pricing calculation fails."""
    pass


class DomainPreconditionError(PricingError):
    """
    Exception raised when a numerical routine receives input outside the
    domain it can handle (e.g. sigma <= 0 with time remaining).

    Raised instead of letting NaN or infinity leak into aggregates.
    """
    pass


# =============================================================================
# Constants
# =============================================================================

# Calendar days used for annualising time and per-day theta
DAYS_PER_YEAR = 365

INV_SQRT_2PI = 1.0 / math.sqrt(2.0 * math.pi)


# =============================================================================
# Normal Distribution
# =============================================================================

def norm_cdf(x: float) -> float:
    """
    Standard normal cumulative distribution function.

    Delegates to scipy's implementation, which is accurate to machine
    precision and satisfies N(-x) = 1 - N(x).

    Args:
        x: Point at which to evaluate the CDF

    Returns:
        Probability in [0, 1]
    """
    return float(norm.cdf(x))


def norm_pdf(x: float) -> float:
    """Standard normal probability density, (1/sqrt(2*pi)) * exp(-x^2/2)."""
    return INV_SQRT_2PI * math.exp(-0.5 * x * x)


# =============================================================================
# Black-Scholes-Merton Auxiliary Terms
# =============================================================================

def d1_d2(
    S: float,
    K: float,
    T: float,
    r: float,
    sigma: float,
    q: float = 0.0
) -> Tuple[float, float]:
    """
    Calculate d1 and d2 for the Black-Scholes-Merton formula.

    Formula:
        d1 = [ln(S/K) + (r - q + sigma^2/2)*T] / (sigma*sqrt(T))
        d2 = d1 - sigma*sqrt(T)

    Args:
        S: Spot price (> 0)
        K: Strike price (> 0)
        T: Time to expiration in years
        r: Risk-free rate (annualized, decimal)
        sigma: Volatility (annualized, decimal, > 0 when T > 0)
        q: Continuous dividend yield (annualized, decimal)

    Returns:
        Tuple of (d1, d2). Returns (0.0, 0.0) when T <= 0; callers handle
        the expiry boundary themselves.

    Raises:
        DomainPreconditionError: If T > 0 and sigma <= 0, or if S, K, r, q
            are not finite / S, K not positive.
    """
    if T <= 0:
        return 0.0, 0.0

    check_finite(S=S, K=K, T=T, r=r, sigma=sigma, q=q)

    if S <= 0 or K <= 0:
        raise DomainPreconditionError(
            f"Spot and strike must be positive, got S={S}, K={K}"
        )

    if sigma <= 0:
        raise DomainPreconditionError(
            f"Volatility (sigma) must be positive when T > 0, got {sigma}"
        )

    sigma_sqrt_T = sigma * math.sqrt(T)

    d1 = (math.log(S / K) + (r - q + 0.5 * sigma ** 2) * T) / sigma_sqrt_T
    d2 = d1 - sigma_sqrt_T

    return d1, d2


def check_finite(**values: float) -> None:
    """Raise DomainPreconditionError for any None or non-finite input."""
    for name, value in values.items():
        if value is None or not np.isfinite(value):
            raise DomainPreconditionError(f"{name} must be finite, got {value}")
