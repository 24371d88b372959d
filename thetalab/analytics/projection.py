"""
Projection Engine

Derived, recomputed-on-demand series for the charts:

    - Decay series: for each day offset 0..H, the aggregate value of the
      calls and puts still alive at that offset, re-priced from scratch with
      BSM at T = (days_to_expiry - day) / 365. Cached Greeks are never used
      here; they are local linear approximations and the decay curve must
      show the true curvature.

    - P&L series: for underlying prices stepped linearly across
      [spot*(1-range), spot*(1+range)], the at-expiry payoff of every
      position (intrinsic at that price, minus premium when requested),
      summed per type and net, plus max profit / max loss and the nearest
      breakevens on either side of spot.

Breakevens:
    Moving away from spot in either direction, a breakeven is the first
    point where net P&L crosses from negative to non-negative. The search
    runs over the display grid plus spot and every strike inside it, so
    each segment between search points is a straight piece of the payoff
    and interpolating inside it gives the exact crossing. When no crossing
    exists on a side it is reported as None. A breakeven at spot counts as
    the upper one.

Defaults:
    Horizon, price range, steps and include_premium left as None come from
    the projection section of the settings: the ones passed in, else the
    book's own when positions is a PositionBook, else library defaults.

Usage:
    from thetalab.analytics.projection import decay_series, pl_series

    decay = decay_series(book, market, horizon_days=30)
    pl = pl_series(book, market, price_range_pct=0.10, steps=50,
                   include_premium=True)
    print(pl.max_profit, pl.max_loss, pl.upper_breakeven, pl.lower_breakeven)
    df = pl.to_dataframe()
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from thetalab.config.settings import CalculatorSettings, ProjectionSettings
from thetalab.core.math_kernel import DAYS_PER_YEAR
from thetalab.core.position import InvalidInputError, MarketContext, OptionPosition
from thetalab.core.position_book import PositionBook
from thetalab.core.pricing import OptionType, price

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_HORIZON_DAYS = 365


# =============================================================================
# Result Types
# =============================================================================

@dataclass(frozen=True)
class DecaySeries:
    """
    Day-indexed projected premium values.

    Attributes:
        days: Day offsets 0..horizon
        call_value: Aggregate value of live calls at each offset
        put_value: Aggregate value of live puts at each offset
    """

    days: np.ndarray
    call_value: np.ndarray
    put_value: np.ndarray

    @property
    def total_value(self) -> np.ndarray:
        """Calls plus puts at each offset."""
        return self.call_value + self.put_value

    @property
    def horizon_days(self) -> int:
        return int(self.days[-1])

    def summary(self) -> Dict[str, Any]:
        """Start and end value of the book and the decay between them."""
        total = self.total_value
        return {
            'horizon_days': self.horizon_days,
            'start_value': float(total[0]),
            'end_value': float(total[-1]),
            'total_decay': float(total[-1] - total[0]),
        }

    def to_dataframe(self) -> pd.DataFrame:
        """Columns: day, call_value, put_value, total_value."""
        return pd.DataFrame({
            'day': self.days,
            'call_value': self.call_value,
            'put_value': self.put_value,
            'total_value': self.total_value,
        })

    def to_rows(self) -> List[tuple]:
        """Sequence of (day, call_value, put_value) tuples."""
        return [
            (int(d), float(c), float(p))
            for d, c, p in zip(self.days, self.call_value, self.put_value)
        ]

    def __len__(self) -> int:
        return len(self.days)


@dataclass(frozen=True)
class PLSeries:
    """
    Price-indexed at-expiry P&L with summary statistics.

    Attributes:
        prices: Underlying prices, steps + 1 points
        call_pl: Aggregate call P&L at each price
        put_pl: Aggregate put P&L at each price
        net_pl: call_pl + put_pl
        spot: Spot the grid was centred on
        include_premium: Whether premium was subtracted
        max_profit: Maximum of net_pl
        max_loss: Minimum of net_pl
        upper_breakeven: Nearest breakeven above spot, None if absent
        lower_breakeven: Nearest breakeven below spot, None if absent
    """

    prices: np.ndarray
    call_pl: np.ndarray
    put_pl: np.ndarray
    net_pl: np.ndarray
    spot: float
    include_premium: bool
    max_profit: float
    max_loss: float
    upper_breakeven: Optional[float]
    lower_breakeven: Optional[float]

    def summary(self) -> Dict[str, Any]:
        """Summary panel values."""
        return {
            'max_profit': self.max_profit,
            'max_loss': self.max_loss,
            'upper_breakeven': self.upper_breakeven,
            'lower_breakeven': self.lower_breakeven,
        }

    def to_dataframe(self) -> pd.DataFrame:
        """Columns: price, call_pl, put_pl, net_pl."""
        return pd.DataFrame({
            'price': self.prices,
            'call_pl': self.call_pl,
            'put_pl': self.put_pl,
            'net_pl': self.net_pl,
        })

    def to_rows(self) -> List[tuple]:
        """Sequence of (price, call_pl, put_pl, net_pl) tuples."""
        return [
            (float(s), float(c), float(p), float(n))
            for s, c, p, n in zip(self.prices, self.call_pl, self.put_pl, self.net_pl)
        ]

    def pl_at(self, underlying_price: float) -> float:
        """Net P&L interpolated at an underlying price inside the grid."""
        return float(np.interp(underlying_price, self.prices, self.net_pl))

    def __len__(self) -> int:
        return len(self.prices)


# =============================================================================
# Decay Series
# =============================================================================

def decay_series(
    positions: Iterable[OptionPosition],
    market: MarketContext,
    horizon_days: Optional[int] = None,
    settings: Optional[CalculatorSettings] = None
) -> DecaySeries:
    """
    Project aggregate call and put values across a day horizon.

    A position is alive at day d when d <= days_to_expiry. Each live
    position is priced with its own strike and the current market's
    spot, rate, dividend yield and volatility at
    T = (days_to_expiry - d) / 365; at T = 0 that is intrinsic value.

    Args:
        positions: Positions (a PositionBook or any iterable)
        market: Market context
        horizon_days: Last day offset, inclusive (0..365)
        settings: Source of the default horizon

    Returns:
        DecaySeries with horizon_days + 1 points

    Raises:
        InvalidInputError: If horizon_days is invalid
    """
    defaults = _projection_defaults(positions, settings)
    if horizon_days is None:
        horizon_days = defaults.horizon_days
    horizon = _validate_horizon(horizon_days)
    legs = list(positions)

    days = np.arange(horizon + 1)
    call_value = np.zeros(horizon + 1)
    put_value = np.zeros(horizon + 1)

    for position in legs:
        last_day = min(position.days_to_expiry, horizon)
        for day in range(last_day + 1):
            T = (position.days_to_expiry - day) / DAYS_PER_YEAR
            value = price(
                position.option_type,
                market.spot,
                position.strike,
                T,
                market.rate,
                market.volatility,
                market.dividend_yield,
            )
            if position.option_type is OptionType.CALL:
                call_value[day] += value
            else:
                put_value[day] += value

    logger.debug(
        f"Decay series over {horizon} days for {len(legs)} positions: "
        f"day0 total={call_value[0] + put_value[0]:.2f}"
    )
    return DecaySeries(days=days, call_value=call_value, put_value=put_value)


# =============================================================================
# P&L Series
# =============================================================================

def pl_series(
    positions: Iterable[OptionPosition],
    market: MarketContext,
    price_range_pct: Optional[float] = None,
    steps: Optional[int] = None,
    include_premium: Optional[bool] = None,
    settings: Optional[CalculatorSettings] = None
) -> PLSeries:
    """
    At-expiry P&L across a range of underlying prices.

    Each position contributes max(price - K, 0) (call) or max(K - price, 0)
    (put), less its premium when include_premium is set.

    Args:
        positions: Positions (a PositionBook or any iterable)
        market: Market context (only spot is used)
        price_range_pct: Half-width of the grid as a fraction of spot (0..1)
        steps: Number of increments; the grid has steps + 1 points
        include_premium: Subtract each position's premium
        settings: Source of the defaults for the arguments left as None

    Returns:
        PLSeries

    Raises:
        InvalidInputError: If price_range_pct or steps is invalid
    """
    defaults = _projection_defaults(positions, settings)
    if price_range_pct is None:
        price_range_pct = defaults.price_range_pct
    if steps is None:
        steps = defaults.steps
    if include_premium is None:
        include_premium = defaults.include_premium

    range_pct = _validate_range(price_range_pct)
    n_steps = _validate_steps(steps)
    legs = list(positions)

    spot = market.spot
    prices = np.linspace(spot * (1 - range_pct), spot * (1 + range_pct), n_steps + 1)
    call_pl, put_pl = _expiry_pl(legs, prices, include_premium)
    net_pl = call_pl + put_pl

    # Kinks of the payoff inside the grid, so every search segment is linear
    kinks = [p.strike for p in legs if prices[0] < p.strike < prices[-1]]
    search_prices = np.unique(np.concatenate([prices, [spot], kinks]))
    search_call, search_put = _expiry_pl(legs, search_prices, include_premium)
    upper, lower = find_breakevens(search_prices, search_call + search_put, spot)

    logger.debug(
        f"P&L series over [{prices[0]:.2f}, {prices[-1]:.2f}] for {len(legs)} positions: "
        f"max profit={net_pl.max():.2f} max loss={net_pl.min():.2f}"
    )
    return PLSeries(
        prices=prices,
        call_pl=call_pl,
        put_pl=put_pl,
        net_pl=net_pl,
        spot=spot,
        include_premium=bool(include_premium),
        max_profit=float(net_pl.max()),
        max_loss=float(net_pl.min()),
        upper_breakeven=upper,
        lower_breakeven=lower,
    )


def _expiry_pl(
    legs: List[OptionPosition],
    prices: np.ndarray,
    include_premium: bool
) -> Tuple[np.ndarray, np.ndarray]:
    """Aggregate call and put payoff at expiry for each price."""
    call_pl = np.zeros_like(prices, dtype=float)
    put_pl = np.zeros_like(prices, dtype=float)

    for position in legs:
        cost = position.premium if include_premium else 0.0
        if position.option_type is OptionType.CALL:
            call_pl += np.maximum(prices - position.strike, 0.0) - cost
        else:
            put_pl += np.maximum(position.strike - prices, 0.0) - cost

    return call_pl, put_pl


def find_breakevens(
    prices: np.ndarray,
    net_pl: np.ndarray,
    spot: float
) -> Tuple[Optional[float], Optional[float]]:
    """
    Nearest breakevens above and below spot.

    Walking outward from spot, a breakeven is where net P&L moves from
    negative to non-negative. Crossing prices are linearly interpolated,
    which is exact when net P&L is linear between consecutive prices.
    A crossing at spot itself is reported as the upper breakeven.

    Returns:
        Tuple (upper_breakeven, lower_breakeven); either may be None.
    """
    upper: Optional[float] = None
    lower: Optional[float] = None

    for i in range(len(prices) - 1):
        left, right = net_pl[i], net_pl[i + 1]

        # Rising through zero: breakeven when walking up from spot
        if left < 0 <= right:
            crossing = _interpolate_zero(prices[i], prices[i + 1], left, right)
            if crossing >= spot and (upper is None or crossing < upper):
                upper = crossing

        # Falling through zero: breakeven when walking down from spot
        if right < 0 <= left:
            crossing = _interpolate_zero(prices[i], prices[i + 1], left, right)
            if crossing < spot and (lower is None or crossing > lower):
                lower = crossing

    return upper, lower


def _interpolate_zero(x0: float, x1: float, y0: float, y1: float) -> float:
    """Price where the segment (x0, y0)-(x1, y1) reaches zero."""
    if y0 == 0:
        return float(x0)
    if y1 == 0:
        return float(x1)
    return float(x0 + (0.0 - y0) * (x1 - x0) / (y1 - y0))


def _projection_defaults(
    positions: Iterable[OptionPosition],
    settings: Optional[CalculatorSettings]
) -> ProjectionSettings:
    if settings is None and isinstance(positions, PositionBook):
        settings = positions.settings
    return (settings or CalculatorSettings()).projection


# =============================================================================
# Validation
# =============================================================================

def _validate_horizon(horizon_days: Any) -> int:
    if isinstance(horizon_days, bool) or not isinstance(horizon_days, (int, np.integer)):
        raise InvalidInputError(f"horizon_days must be an integer, got {horizon_days!r}")
    if not 0 <= horizon_days <= MAX_HORIZON_DAYS:
        raise InvalidInputError(
            f"horizon_days must be between 0 and {MAX_HORIZON_DAYS}, got {horizon_days}"
        )
    return int(horizon_days)


def _validate_range(price_range_pct: Any) -> float:
    if isinstance(price_range_pct, bool) or not isinstance(price_range_pct, (int, float, np.number)):
        raise InvalidInputError(f"price_range_pct must be a number, got {price_range_pct!r}")
    if not np.isfinite(price_range_pct):
        raise InvalidInputError(f"price_range_pct must be finite, got {price_range_pct!r}")
    if not 0 < price_range_pct < 1:
        raise InvalidInputError(
            f"price_range_pct must be between 0 and 1 (exclusive), got {price_range_pct}"
        )
    return float(price_range_pct)


def _validate_steps(steps: Any) -> int:
    if isinstance(steps, bool) or not isinstance(steps, (int, np.integer)):
        raise InvalidInputError(f"steps must be an integer, got {steps!r}")
    if steps < 1:
        raise InvalidInputError(f"steps must be at least 1, got {steps}")
    return int(steps)


__all__ = [
    'DecaySeries',
    'PLSeries',
    'decay_series',
    'pl_series',
    'find_breakevens',
]
