"""
Implied Volatility Solver

Recovers the volatility that makes the Black-Scholes-Merton price equal an
observed option price. Uses plain bisection over a fixed volatility domain:
the option price is monotonically non-decreasing in sigma for both calls
and puts, so halving the bracket always converges.

Algorithm:
    lower, upper = 0.001, 5.0          (0.1% to 500% annualized vol)
    sigma = 0.3                        (first trial)
    repeat up to max_iterations:
        diff = price(sigma) - observed
        if |diff| < tolerance: return sigma
        if diff > 0: upper = sigma else: lower = sigma
        sigma = (lower + upper) / 2
    return sigma                       (best effort, not an error)

Observed prices outside the achievable range (below intrinsic or above the
sigma=5.0 price) converge to a bound of the search domain rather than
raising. Use solve_implied_vol() to see whether that happened.

Usage:
    from thetalab.core.implied_volatility import implied_vol

    sigma = implied_vol('call', S=17450, K=17450, T=30/365, r=0.065,
                        observed_price=310.0)
    print(f"IV: {sigma:.2%}")
"""

import logging
from dataclasses import dataclass

import numpy as np

from thetalab.core.math_kernel import DomainPreconditionError
from thetalab.core.pricing import OptionTypeLike, normalize_option_type, price

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

IV_INITIAL_GUESS = 0.30     # First trial volatility (30%)
IV_MAX_ITERATIONS = 100     # Bisection iteration cap
IV_TOLERANCE = 0.0001       # Price tolerance for convergence
IV_LOWER_BOUND = 0.001      # Lower bound of the search domain (0.1%)
IV_UPPER_BOUND = 5.0        # Upper bound of the search domain (500%)


@dataclass(frozen=True)
class ImpliedVolResult:
    """Outcome of an implied volatility solve."""

    sigma: float
    iterations: int
    converged: bool
    pinned_to_bound: bool

    @property
    def sigma_pct(self) -> float:
        """Implied volatility as a percentage (e.g. 15.0 for 15%)."""
        return self.sigma * 100.0


def solve_implied_vol(
    option_type: OptionTypeLike,
    S: float,
    K: float,
    T: float,
    r: float,
    observed_price: float,
    q: float = 0.0,
    max_iterations: int = IV_MAX_ITERATIONS,
    tolerance: float = IV_TOLERANCE,
    lower_bound: float = IV_LOWER_BOUND,
    upper_bound: float = IV_UPPER_BOUND,
    initial_guess: float = IV_INITIAL_GUESS
) -> ImpliedVolResult:
    """
    Solve for implied volatility by bisection and report diagnostics.

    Args:
        option_type: 'call' or 'put'
        S: Spot price
        K: Strike price
        T: Time to expiration in years
        r: Risk-free rate (annualized)
        observed_price: Market price of the option
        q: Continuous dividend yield (annualized)
        max_iterations: Iteration cap
        tolerance: Absolute price tolerance
        lower_bound: Lowest volatility searched
        upper_bound: Highest volatility searched
        initial_guess: First trial volatility

    Returns:
        ImpliedVolResult. At T <= 0 sigma is 0.0 and converged is False.

    Raises:
        DomainPreconditionError: If observed_price is negative or not
            finite, or the solver parameters are inconsistent.
    """
    kind = normalize_option_type(option_type)

    if observed_price is None or not np.isfinite(observed_price) or observed_price < 0:
        raise DomainPreconditionError(
            f"observed_price must be non-negative and finite, got {observed_price}"
        )

    if max_iterations < 1:
        raise DomainPreconditionError(
            f"max_iterations must be at least 1, got {max_iterations}"
        )

    if not 0 < lower_bound < upper_bound:
        raise DomainPreconditionError(
            f"Invalid search domain [{lower_bound}, {upper_bound}]"
        )

    # No meaningful implied vol at or after expiry
    if T <= 0:
        return ImpliedVolResult(sigma=0.0, iterations=0, converged=False, pinned_to_bound=False)

    lower, upper = lower_bound, upper_bound
    sigma = min(max(initial_guess, lower), upper)

    for iteration in range(1, max_iterations + 1):
        diff = price(kind, S, K, T, r, sigma, q) - observed_price

        if abs(diff) < tolerance:
            logger.debug(
                f"IV converged for {kind.value} K={K}: sigma={sigma:.6f} "
                f"after {iteration} iterations"
            )
            return ImpliedVolResult(
                sigma=sigma, iterations=iteration, converged=True, pinned_to_bound=False
            )

        if diff > 0:
            upper = sigma
        else:
            lower = sigma
        sigma = (lower + upper) / 2.0

    span = upper_bound - lower_bound
    pinned = (
        abs(sigma - lower_bound) < span * 1e-9
        or abs(sigma - upper_bound) < span * 1e-9
    )
    logger.warning(
        f"IV bisection for {kind.value} K={K} price={observed_price:.4f} did not "
        f"reach tolerance in {max_iterations} iterations; returning {sigma:.6f}"
        + (" (pinned to search bound)" if pinned else "")
    )
    return ImpliedVolResult(
        sigma=sigma, iterations=max_iterations, converged=False, pinned_to_bound=pinned
    )


def implied_vol(
    option_type: OptionTypeLike,
    S: float,
    K: float,
    T: float,
    r: float,
    observed_price: float,
    q: float = 0.0,
    max_iterations: int = IV_MAX_ITERATIONS,
    tolerance: float = IV_TOLERANCE
) -> float:
    """
    Implied volatility (decimal) that reproduces observed_price.

    Returns 0.0 when T <= 0. When the iteration cap is reached the last
    trial volatility is returned.

    Example:
        >>> p = price('put', S=100, K=105, T=0.5, r=0.05, sigma=0.25)
        >>> abs(implied_vol('put', 100, 105, 0.5, 0.05, p) - 0.25) < 1e-3
        True
    """
    result = solve_implied_vol(
        option_type, S, K, T, r, observed_price, q,
        max_iterations=max_iterations, tolerance=tolerance
    )
    return result.sigma


__all__ = [
    'ImpliedVolResult',
    'solve_implied_vol',
    'implied_vol',
    'IV_INITIAL_GUESS',
    'IV_MAX_ITERATIONS',
    'IV_TOLERANCE',
    'IV_LOWER_BOUND',
    'IV_UPPER_BOUND',
]
