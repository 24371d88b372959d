"""
Premium Erosion Projections

Theta-driven estimates of how much premium an option sheds between now and
expiry, for the erosion summary cards. Unlike the projection engine, these
are quick extrapolations from a quoted theta rather than full re-pricing.

Models:
    Linear (accelerating):
        erosion = sum_{i=0}^{days-1} theta * (1 + (i/days) * (accel - 1))
        Daily decay ramps from theta on day 0 towards theta * accel.

    Non-linear (square-root):
        decay_i = theta / sqrt(days - i) * (1.2 if ATM else 0.8)
        Stops early once a day's decay would exceed the remaining premium.

    A volatility change adds vega * (change / 100) on top of either model.

Confidence Band:
    |daily theta| / premium >= 2%  -> HIGH erosion risk
    |daily theta| / premium >= 1%  -> MEDIUM
    otherwise                      -> LOW
"""

import logging
import math
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional

from thetalab.config.settings import CalculatorSettings, ErosionSettings
from thetalab.core.position import InvalidInputError, Moneyness, OptionPosition

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_THETA_ACCELERATION = ErosionSettings.theta_acceleration
ATM_THETA_MULTIPLIER = 1.2
NON_ATM_THETA_MULTIPLIER = 0.8

# Premium is never projected below one paisa
MIN_PREMIUM_AT_EXPIRY = 0.01

DAYS_PER_WEEK = 7

HIGH_EROSION_PCT = 2.0
MEDIUM_EROSION_PCT = 1.0


class ConfidenceLevel(str, Enum):
    """Erosion risk level."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


_CONFIDENCE_LABELS = {
    ConfidenceLevel.HIGH: "High Erosion Risk",
    ConfidenceLevel.MEDIUM: "Medium Erosion Risk",
    ConfidenceLevel.LOW: "Low Erosion Risk",
}


@dataclass(frozen=True)
class ConfidenceBand:
    """Erosion risk classification with display label."""

    level: ConfidenceLevel
    label: str
    impact_pct: float


@dataclass(frozen=True)
class ErosionResult:
    """Projected premium erosion for one option."""

    daily_erosion: float
    weekly_erosion: float
    total_erosion: float
    premium_in_week: float
    premium_at_expiry: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =============================================================================
# Models
# =============================================================================

def linear_erosion(
    theta: float,
    days: int,
    acceleration: float = DEFAULT_THETA_ACCELERATION
) -> float:
    """
    Total erosion with daily theta ramping linearly by the acceleration factor.

    Args:
        theta: Daily theta (negative for decay)
        days: Days to expiry
        acceleration: Multiplier reached by the end of the period

    Returns:
        Signed total erosion (negative for decay)
    """
    _check_days(days)
    return sum(
        theta * (1 + (i / days) * (acceleration - 1))
        for i in range(days)
    )


def nonlinear_theta(theta: float, day: int, total_days: int, is_atm: bool) -> float:
    """
    Daily decay under the square-root model.

    Returns 0 once no time remains.
    """
    remaining = total_days - day
    if remaining <= 0:
        return 0.0
    multiplier = ATM_THETA_MULTIPLIER if is_atm else NON_ATM_THETA_MULTIPLIER
    return theta * (1 / math.sqrt(remaining)) * multiplier


def nonlinear_erosion(premium: float, theta: float, days: int, is_atm: bool) -> float:
    """
    Total erosion under the square-root model.

    Stops adding decay once a day's decay would exceed the premium still
    left, so the premium never goes below zero.
    """
    _check_days(days)
    total = 0.0
    remaining_premium = premium
    for day in range(days):
        decay = nonlinear_theta(theta, day, days, is_atm)
        if abs(decay) > remaining_premium:
            break
        total += decay
        remaining_premium += decay
    return total


def project_erosion(
    premium: float,
    theta: float,
    days: int,
    vega: float = 0.0,
    volatility_change: float = 0.0,
    is_atm: bool = False,
    use_nonlinear: bool = False,
    acceleration: float = DEFAULT_THETA_ACCELERATION
) -> ErosionResult:
    """
    Project premium erosion to expiry.

    Args:
        premium: Current premium
        theta: Daily theta (negative for decay)
        days: Days to expiry
        vega: Vega per 1 vol point
        volatility_change: Expected vol change in percentage points
        is_atm: Whether the option is at the money (non-linear model)
        use_nonlinear: Use the square-root model instead of the linear one
        acceleration: Theta acceleration for the linear model

    Returns:
        ErosionResult
    """
    if premium < 0:
        raise InvalidInputError(f"premium must be non-negative, got {premium}")

    if use_nonlinear:
        erosion = nonlinear_erosion(premium, theta, days, is_atm)
    else:
        erosion = linear_erosion(theta, days, acceleration)

    if vega and volatility_change:
        erosion += vega * (volatility_change / 100)

    weekly = theta * DAYS_PER_WEEK

    return ErosionResult(
        daily_erosion=theta,
        weekly_erosion=weekly,
        total_erosion=erosion,
        premium_in_week=max(0.0, premium + weekly),
        premium_at_expiry=max(MIN_PREMIUM_AT_EXPIRY, premium + erosion),
    )


def erosion_for(
    position: OptionPosition,
    volatility_change: float = 0.0,
    use_nonlinear: Optional[bool] = None,
    acceleration: Optional[float] = None,
    settings: Optional[CalculatorSettings] = None
) -> ErosionResult:
    """
    Project erosion for a refreshed position from its own theta and vega.

    The model choice and acceleration default to the erosion section of
    settings (library defaults when settings is None).
    """
    erosion_settings = (settings or CalculatorSettings()).erosion
    if use_nonlinear is None:
        use_nonlinear = erosion_settings.use_nonlinear
    if acceleration is None:
        acceleration = erosion_settings.theta_acceleration

    if position.is_stale:
        logger.warning(f"Projecting erosion for position {position.id} with stale Greeks")
    return project_erosion(
        premium=position.premium,
        theta=position.theta,
        days=position.days_to_expiry,
        vega=position.vega,
        volatility_change=volatility_change,
        is_atm=position.moneyness is Moneyness.ATM,
        use_nonlinear=use_nonlinear,
        acceleration=acceleration,
    )


def confidence_band(premium: float, daily_theta: float) -> ConfidenceBand:
    """
    Classify erosion risk by daily theta as a percentage of premium.

    Any decay against a zero premium is treated as maximal impact.
    """
    if premium < 0:
        raise InvalidInputError(f"premium must be non-negative, got {premium}")

    if premium > 0:
        impact_pct = abs(daily_theta) / premium * 100
    else:
        impact_pct = math.inf if daily_theta else 0.0

    if impact_pct >= HIGH_EROSION_PCT:
        level = ConfidenceLevel.HIGH
    elif impact_pct >= MEDIUM_EROSION_PCT:
        level = ConfidenceLevel.MEDIUM
    else:
        level = ConfidenceLevel.LOW

    return ConfidenceBand(level=level, label=_CONFIDENCE_LABELS[level], impact_pct=impact_pct)


def _check_days(days: Optional[int]) -> None:
    if isinstance(days, bool) or not isinstance(days, int) or days < 1:
        raise InvalidInputError(f"days must be a positive integer, got {days!r}")


__all__ = [
    'ConfidenceLevel',
    'ConfidenceBand',
    'ErosionResult',
    'linear_erosion',
    'nonlinear_theta',
    'nonlinear_erosion',
    'project_erosion',
    'erosion_for',
    'confidence_band',
]
