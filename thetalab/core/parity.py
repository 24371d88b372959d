"""
Put-Call Parity Validator

Checks a matched call/put pair (same strike, same expiry) against the
no-arbitrage identity

    C + K*exp(-rT) = P + S*exp(-qT)

and reports the discrepancy together with the synthetic price each leg
"should" have given the other. The validator never corrects or mutates the
prices it is given.

The tolerance is a fixed absolute amount (one paisa / one cent), matching
the smallest tradable price increment rather than a relative error.
"""

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any, Dict

from thetalab.core.math_kernel import check_finite

# Configure module logger
logger = logging.getLogger(__name__)

# Absolute tolerance for parity to hold
PARITY_TOLERANCE = 0.01


@dataclass(frozen=True)
class ParityResult:
    """Result of a put-call parity check."""

    valid: bool
    discrepancy: float
    synthetic_call: float
    synthetic_put: float

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for display."""
        return asdict(self)


def check_parity(
    call_price: float,
    put_price: float,
    S: float,
    K: float,
    T: float,
    r: float,
    q: float = 0.0,
    tolerance: float = PARITY_TOLERANCE
) -> ParityResult:
    """
    Check put-call parity for a call/put pair.

    discrepancy    = (C + K*exp(-rT)) - (P + S*exp(-qT))
    synthetic_call = P + S*exp(-qT) - K*exp(-rT)
    synthetic_put  = C + K*exp(-rT) - S*exp(-qT)

    Args:
        call_price: Call price
        put_price: Put price
        S: Spot price
        K: Strike price (shared by both legs)
        T: Time to expiration in years (shared by both legs)
        r: Risk-free rate (annualized)
        q: Continuous dividend yield (annualized)
        tolerance: Absolute tolerance on the discrepancy

    Returns:
        ParityResult with valid = |discrepancy| < tolerance

    Raises:
        DomainPreconditionError: If any input is not finite.
    """
    check_finite(call_price=call_price, put_price=put_price, S=S, K=K, T=T, r=r, q=q)

    # T <= 0 collapses both discount factors to 1
    horizon = max(T, 0.0)
    discounted_strike = K * math.exp(-r * horizon)
    discounted_spot = S * math.exp(-q * horizon)

    discrepancy = (call_price + discounted_strike) - (put_price + discounted_spot)
    valid = abs(discrepancy) < tolerance

    if not valid:
        logger.debug(
            f"Parity violated for K={K}: call={call_price:.4f} put={put_price:.4f} "
            f"discrepancy={discrepancy:.4f}"
        )

    return ParityResult(
        valid=valid,
        discrepancy=discrepancy,
        synthetic_call=put_price + discounted_spot - discounted_strike,
        synthetic_put=call_price + discounted_strike - discounted_spot,
    )


__all__ = ['ParityResult', 'check_parity', 'PARITY_TOLERANCE']
