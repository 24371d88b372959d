"""
Risk Spotlight

Picks the single dominant risk driver of a position book so the summary
banner can show one message instead of a wall of Greeks. Thresholds are
tuned for Indian index options and come from RiskSettings.

Priority (highest first):
    1. THETA     expiry within 7 days (+80) and/or daily decay >= 1.2% of
                 premium (+70)
    2. IV_HIGH   IV percentile >= 70 (seller opportunity, score 65)
       IV_LOW    IV percentile <= 30 (seller warning, score 55)
    3. GAMMA     expiry within 10 days and an option within +/-1% of spot
                 whose gamma meets the instrument threshold (score 60)
    4. DELTA     |net delta| >= 0.25 (score 40)
    5. NEUTRAL   nothing fired (score 10; 0 for an empty book)

Within the same priority the higher score wins. IV percentile is a linear
position inside a typical historical IV range for the underlying, not a
true percentile over history.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from thetalab.config.settings import RiskSettings
from thetalab.core.position import MarketContext, OptionPosition

# Configure module logger
logger = logging.getLogger(__name__)


# Typical IV ranges (percent) per underlying
HISTORICAL_IV_RANGES: Dict[str, Dict[str, float]] = {
    'NIFTY': {'min': 10.0, 'max': 35.0, 'median': 15.0},
    'BANKNIFTY': {'min': 15.0, 'max': 45.0, 'median': 20.0},
    'FINNIFTY': {'min': 12.0, 'max': 40.0, 'median': 18.0},
    'DEFAULT': {'min': 10.0, 'max': 40.0, 'median': 16.0},
}


class RiskKind(str, Enum):
    """Risk spotlight categories."""

    THETA = "THETA"
    IV_HIGH = "IV_HIGH"
    IV_LOW = "IV_LOW"
    GAMMA = "GAMMA"
    DELTA = "DELTA"
    NEUTRAL = "NEUTRAL"


RISK_PRIORITY = {
    RiskKind.THETA: 1,
    RiskKind.IV_HIGH: 2,
    RiskKind.IV_LOW: 2,
    RiskKind.GAMMA: 3,
    RiskKind.DELTA: 4,
    RiskKind.NEUTRAL: 5,
}


@dataclass(frozen=True)
class RiskSignal:
    """One detected risk."""

    kind: RiskKind
    score: int
    message: str
    description: str = ""
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def priority(self) -> int:
        return RISK_PRIORITY[self.kind]


@dataclass(frozen=True)
class PortfolioMetrics:
    """Book-level inputs to the spotlight."""

    total_theta: float
    total_premium: float
    net_delta: float
    total_gamma: float
    atm_positions: List[OptionPosition]
    days_to_expiry: int

    @property
    def daily_decay_pct(self) -> float:
        """Absolute daily theta as a percentage of premium."""
        if self.total_premium <= 0:
            return 0.0
        return self.total_theta / self.total_premium * 100


# =============================================================================
# Metrics
# =============================================================================

def iv_percentile(current_iv_pct: float, underlying: str = 'NIFTY') -> int:
    """
    Position of the current IV inside the underlying's typical range.

    Returns:
        Integer in [0, 100]
    """
    bounds = HISTORICAL_IV_RANGES.get(underlying.upper(), HISTORICAL_IV_RANGES['DEFAULT'])
    pct = (current_iv_pct - bounds['min']) / (bounds['max'] - bounds['min']) * 100
    return int(round(max(0.0, min(100.0, pct))))


def portfolio_metrics(
    positions: Iterable[OptionPosition],
    market: MarketContext,
    strike_range_pct: float = 0.01
) -> PortfolioMetrics:
    """
    Collect the spotlight inputs from a set of positions.

    Theta is summed as magnitudes. ATM positions are those with strike
    within strike_range_pct of spot. days_to_expiry is the nearest expiry
    in the book (0 when empty).
    """
    legs = list(positions)
    atm = [
        p for p in legs
        if abs(p.strike - market.spot) / market.spot <= strike_range_pct
    ]
    return PortfolioMetrics(
        total_theta=sum(abs(p.theta) for p in legs),
        total_premium=sum(p.premium for p in legs),
        net_delta=sum(p.delta for p in legs),
        total_gamma=sum(p.gamma for p in legs),
        atm_positions=atm,
        days_to_expiry=min((p.days_to_expiry for p in legs), default=0),
    )


# =============================================================================
# Evaluators
# =============================================================================

def evaluate_theta_risk(
    metrics: PortfolioMetrics,
    thresholds: RiskSettings
) -> Optional[RiskSignal]:
    """Theta risk from time to expiry and decay relative to premium."""
    score = 0
    message = ""
    description = ""

    if metrics.days_to_expiry <= thresholds.theta_days_max:
        score += 80
        message = "Weekly expiry approaching"

    decay_pct = metrics.daily_decay_pct
    if metrics.total_premium > 0 and decay_pct >= thresholds.theta_daily_decay_pct:
        score += 70
        message = f"{message} with high decay" if message else "High daily theta decay detected"
        description = (
            f"{metrics.total_theta:.2f}/day decay ({decay_pct:.1f}% of premium)"
        )

    if score == 0:
        return None

    return RiskSignal(
        kind=RiskKind.THETA,
        score=score,
        message=message,
        description=description or "Time decay dominates without price movement",
        data={
            'total_theta': metrics.total_theta,
            'daily_decay_pct': decay_pct,
            'days_to_expiry': metrics.days_to_expiry,
        },
    )


def evaluate_iv_risk(
    current_iv_pct: float,
    underlying: str,
    thresholds: RiskSettings
) -> Optional[RiskSignal]:
    """IV opportunity (high percentile) or warning (low percentile)."""
    percentile = iv_percentile(current_iv_pct, underlying)
    data = {'current_iv': current_iv_pct, 'iv_percentile': percentile}

    if percentile >= thresholds.iv_high_percentile:
        return RiskSignal(
            kind=RiskKind.IV_HIGH,
            score=65,
            message="IV elevated relative to historical range",
            description="Implied volatility favorable for premium selling strategies",
            data={**data, 'threshold': thresholds.iv_high_percentile},
        )

    if percentile <= thresholds.iv_low_percentile:
        return RiskSignal(
            kind=RiskKind.IV_LOW,
            score=55,
            message="IV compressed relative to historical range",
            description="Limited premium erosion potential - unfavorable for selling",
            data={**data, 'threshold': thresholds.iv_low_percentile},
        )

    return None


def evaluate_gamma_risk(
    metrics: PortfolioMetrics,
    underlying: str,
    thresholds: RiskSettings
) -> Optional[RiskSignal]:
    """Gamma risk from near-expiry ATM positions with high gamma."""
    if metrics.days_to_expiry > thresholds.gamma_days_max or not metrics.atm_positions:
        return None

    limit = thresholds.gamma_thresholds.get(
        underlying.upper(), thresholds.gamma_thresholds['DEFAULT']
    )
    hot = [p for p in metrics.atm_positions if p.gamma >= limit]
    if not hot:
        return None

    return RiskSignal(
        kind=RiskKind.GAMMA,
        score=60,
        message="ATM options with high gamma detected",
        description="Small price moves may cause rapid P&L swings",
        data={
            'high_gamma_count': len(hot),
            'max_gamma': max(p.gamma for p in hot),
            'threshold': limit,
            'days_to_expiry': metrics.days_to_expiry,
        },
    )


def evaluate_delta_risk(
    metrics: PortfolioMetrics,
    thresholds: RiskSettings
) -> Optional[RiskSignal]:
    """Directional exposure from net delta."""
    magnitude = abs(metrics.net_delta)
    if magnitude < thresholds.delta_threshold:
        return None

    direction = '+' if metrics.net_delta > 0 else '-'
    return RiskSignal(
        kind=RiskKind.DELTA,
        score=40,
        message="Significant directional exposure",
        description=f"Net delta {direction}{magnitude:.2f} - P&L sensitive to market direction",
        data={
            'net_delta': metrics.net_delta,
            'threshold': thresholds.delta_threshold,
            'direction': direction,
        },
    )


# =============================================================================
# Spotlight
# =============================================================================

def detect_risks(
    positions: Iterable[OptionPosition],
    market: MarketContext,
    underlying: Optional[str] = None,
    thresholds: Optional[RiskSettings] = None,
    current_iv_pct: Optional[float] = None
) -> List[RiskSignal]:
    """
    Every risk that fires, ordered by priority then score.

    Args:
        positions: Positions (a PositionBook or any iterable)
        market: Market context
        underlying: Instrument name for IV ranges and gamma thresholds
        thresholds: Risk settings (defaults when None)
        current_iv_pct: IV percentage (market volatility when None)
    """
    thresholds = thresholds or RiskSettings()
    underlying = (underlying or thresholds.underlying).upper()
    iv_pct = market.volatility * 100 if current_iv_pct is None else current_iv_pct

    legs = list(positions)
    if not legs:
        return []

    metrics = portfolio_metrics(legs, market, thresholds.gamma_strike_range_pct)

    signals = [
        evaluate_theta_risk(metrics, thresholds),
        evaluate_iv_risk(iv_pct, underlying, thresholds),
        evaluate_gamma_risk(metrics, underlying, thresholds),
        evaluate_delta_risk(metrics, thresholds),
    ]
    fired = [s for s in signals if s is not None]
    fired.sort(key=lambda s: (s.priority, -s.score))
    return fired


def dominant_risk(
    positions: Iterable[OptionPosition],
    market: MarketContext,
    underlying: Optional[str] = None,
    thresholds: Optional[RiskSettings] = None,
    current_iv_pct: Optional[float] = None
) -> RiskSignal:
    """
    The single highest-priority risk, or NEUTRAL when none fires.

    See detect_risks() for arguments.
    """
    legs = list(positions)
    if not legs:
        return RiskSignal(
            kind=RiskKind.NEUTRAL,
            score=0,
            message="No options detected for risk analysis",
        )

    fired = detect_risks(legs, market, underlying, thresholds, current_iv_pct)
    if not fired:
        return RiskSignal(
            kind=RiskKind.NEUTRAL,
            score=10,
            message="No dominant risk driver detected",
            description="Your position shows balanced risk characteristics",
        )

    logger.debug(f"Dominant risk: {fired[0].kind.value} (score {fired[0].score})")
    return fired[0]


__all__ = [
    'RiskKind',
    'RiskSignal',
    'PortfolioMetrics',
    'HISTORICAL_IV_RANGES',
    'RISK_PRIORITY',
    'iv_percentile',
    'portfolio_metrics',
    'evaluate_theta_risk',
    'evaluate_iv_risk',
    'evaluate_gamma_risk',
    'evaluate_delta_risk',
    'detect_risks',
    'dominant_risk',
]
