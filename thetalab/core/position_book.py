"""
Position Book

An ordered collection of OptionPosition objects owned by one session. The
book owns the position lifecycle (add, update, refresh, clone, remove) and
derives the portfolio aggregates shown in the summary tiles.

Lifecycle:
    add()      -> new position with id one above the highest id issued so
                  far, BSM-priced or IV-solved, then refreshed
    update()   -> exactly one input field changes; Greeks become stale and
                  are NOT recomputed (callers refresh when an edit commits)
    refresh()  -> Greeks, theoretical price, moneyness and IV consistency
                  recomputed from the position's own inputs and the given
                  market context; idempotent
    clone()    -> copy under a new id with the strike shifted by the clone
                  offset (+ for calls, - for puts)
    remove()   -> delete; unknown ids raise PositionNotFoundError

Ids are never reused within a session, even after the highest id is
removed.

Usage:
    from thetalab.core import PositionBook, MarketContext

    market = MarketContext(spot=17450, rate=0.065, volatility=0.15)
    book = PositionBook(market)

    call = book.add('call')                     # ATM call, BSM-priced
    put = book.add('put', strike=17400, premium=120.0)   # IV back-solved

    book.update(put.id, 'days', '14')
    book.refresh(put.id, market)

    summary = book.aggregate()
    table = book.to_dataframe()
"""

import logging
from typing import Any, Dict, Iterator, List, Optional

import pandas as pd

from thetalab.config.settings import CalculatorSettings
from thetalab.core.implied_volatility import solve_implied_vol
from thetalab.core.math_kernel import DAYS_PER_YEAR
from thetalab.core.pricing import OptionTypeLike, greeks, price
from thetalab.core.position import (
    EXPORT_COLUMNS,
    IV_SOURCE_MARKET,
    IV_SOURCE_SOLVED,
    IV_SOURCE_SUPPLIED,
    InvalidInputError,
    MarketContext,
    OptionPosition,
    PositionNotFoundError,
    classify_moneyness,
    parse_days,
    parse_implied_vol,
    parse_option_type,
    parse_premium,
    parse_strike,
)

# Configure module logger
logger = logging.getLogger(__name__)


# Keys returned by aggregate()
AGGREGATE_FIELDS = {
    'total_theta': 'theta',
    'total_delta': 'delta',
    'total_gamma': 'gamma',
    'total_vega': 'vega',
    'total_rho': 'rho',
    'total_premium': 'premium',
    'total_intrinsic': 'intrinsic',
    'total_extrinsic': 'extrinsic',
}


class PositionBook:
    """
    Ordered, session-owned collection of option positions.

    Attributes:
        market (MarketContext): Market context used when none is passed
        settings (CalculatorSettings): Defaults for strikes, days, solver
            and moneyness bands

    Example:
        >>> market = MarketContext(spot=17450, rate=0.065, volatility=0.15)
        >>> book = PositionBook(market)
        >>> position = book.add('call', strike=17500)
        >>> position.id
        1
    """

    def __init__(
        self,
        market: Optional[MarketContext] = None,
        settings: Optional[CalculatorSettings] = None
    ) -> None:
        """
        Initialize an empty book.

        Args:
            market: Default market context. Built from settings when None.
            settings: Calculator settings. Library defaults when None.
        """
        self._settings = settings or CalculatorSettings()
        self._market = market or MarketContext.from_settings(self._settings)
        self._positions: List[OptionPosition] = []
        self._last_id = 0

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def market(self) -> MarketContext:
        """Get default market context."""
        return self._market

    @market.setter
    def market(self, market: MarketContext) -> None:
        """Replace the default market context (positions are not refreshed)."""
        if not isinstance(market, MarketContext):
            raise InvalidInputError(f"market must be a MarketContext, got {type(market)}")
        self._market = market

    @property
    def settings(self) -> CalculatorSettings:
        """Get calculator settings."""
        return self._settings

    @property
    def positions(self) -> List[OptionPosition]:
        """Positions in insertion order (a copy of the list)."""
        return list(self._positions)

    @property
    def ids(self) -> List[int]:
        """Position ids in insertion order."""
        return [p.id for p in self._positions]

    @property
    def is_empty(self) -> bool:
        return not self._positions

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def add(
        self,
        option_type: OptionTypeLike,
        strike: Any = None,
        premium: Any = None,
        days_to_expiry: Any = None,
        implied_vol: Any = None,
        market: Optional[MarketContext] = None
    ) -> OptionPosition:
        """
        Add a position and return it refreshed.

        Missing optional fields are defaulted: strike to the ATM strike
        (spot rounded to the strike step), days to the configured default,
        premium to the BSM price. When a premium is supplied without an IV,
        the IV is back-solved from it.

        Args:
            option_type: 'call' or 'put'
            strike: Strike price (ATM when None)
            premium: Premium (BSM-priced when None)
            days_to_expiry: Days to expiry, 1..365 (default when None)
            implied_vol: IV percentage (market volatility when None)
            market: Market context (book default when None)

        Returns:
            The new OptionPosition

        Raises:
            InvalidInputError: If any supplied value is invalid
        """
        market = market or self._market

        # Parse everything before touching the book
        kind = parse_option_type(option_type)
        strike_value = self.atm_strike(market) if strike is None else parse_strike(strike)
        days = (
            self._settings.positions.default_days
            if days_to_expiry is None else parse_days(days_to_expiry)
        )
        iv = None if implied_vol is None else parse_implied_vol(implied_vol)
        premium_value = None if premium is None else parse_premium(premium)

        T = days / DAYS_PER_YEAR

        if premium_value is None:
            sigma = iv / 100.0 if iv is not None else market.volatility
            premium_value = price(
                kind, market.spot, strike_value, T, market.rate, sigma, market.dividend_yield
            )
            iv_source = IV_SOURCE_SUPPLIED if iv is not None else IV_SOURCE_MARKET
            if iv is None:
                iv = market.volatility * 100.0
        elif iv is None:
            iv = self._solve_iv(kind, strike_value, T, premium_value, market)
            iv_source = IV_SOURCE_SOLVED
        else:
            iv_source = IV_SOURCE_SUPPLIED

        position = OptionPosition(
            self._next_id(),
            kind,
            strike=strike_value,
            premium=premium_value,
            days_to_expiry=days,
            implied_vol=iv,
            iv_source=iv_source,
        )
        self._positions.append(position)
        self._last_id = position.id

        logger.debug(f"Added position {position} (iv {iv:.2f}% from {iv_source})")

        self.refresh(position.id, market)
        return position

    def update(self, position_id: int, field_name: str, value: Any) -> OptionPosition:
        """
        Change exactly one input field of a position.

        Greeks are marked stale but not recomputed; call refresh() when the
        edit is committed. A rejected value leaves the book unchanged.

        Args:
            position_id: Position id
            field_name: 'strike', 'premium', 'days_to_expiry' ('days'),
                'implied_vol' ('iv') or 'option_type' ('type')
            value: Raw value (number or numeric string)

        Returns:
            The updated position

        Raises:
            PositionNotFoundError: If the id does not exist
            InvalidInputError: If the field or value is invalid
        """
        position = self.get(position_id)
        changed = position.apply_update(field_name, value)
        logger.debug(f"Updated position {position_id}: {changed} -> {value!r}")
        return position

    def refresh(
        self,
        position_id: int,
        market: Optional[MarketContext] = None
    ) -> OptionPosition:
        """
        Recompute Greeks, theoretical price, moneyness and IV for a position.

        Volatility used is the position's own IV. When the IV was solved
        from the premium, it is re-solved first so IV and premium stay
        consistent. Repeated calls with unchanged inputs give identical
        results.

        Args:
            position_id: Position id
            market: Market context (book default when None)

        Returns:
            The refreshed position

        Raises:
            PositionNotFoundError: If the id does not exist
        """
        position = self.get(position_id)
        market = market or self._market
        T = position.time_to_expiry

        solved_iv = None
        if position.iv_source == IV_SOURCE_SOLVED or position.implied_vol is None:
            solved_iv = self._solve_iv(
                position.option_type, position.strike, T, position.premium, market
            )
            iv_pct = solved_iv
        else:
            iv_pct = position.implied_vol

        values = greeks(
            position.option_type,
            market.spot,
            position.strike,
            T,
            market.rate,
            iv_pct / 100.0,
            market.dividend_yield,
        )
        moneyness = classify_moneyness(
            position.option_type,
            position.strike,
            market.spot,
            atm_band=self._settings.moneyness.atm_band,
            deep_band=self._settings.moneyness.deep_band,
        )
        position.apply_refresh(values, moneyness, implied_vol=solved_iv)

        logger.debug(
            f"Refreshed position {position_id}: price={values['price']:.4f} "
            f"delta={values['delta']:.4f} theta={values['theta']:.4f} {moneyness.value}"
        )
        return position

    def refresh_all(self, market: Optional[MarketContext] = None) -> None:
        """Refresh every position against one market context."""
        for position in self._positions:
            self.refresh(position.id, market)

    def clone(self, position_id: int, market: Optional[MarketContext] = None) -> OptionPosition:
        """
        Duplicate a position under a new id with a shifted strike.

        Calls move up by the clone offset, puts move down, so the copy is
        not an exact duplicate. The clone is refreshed.

        Raises:
            PositionNotFoundError: If the id does not exist
            InvalidInputError: If the shifted strike would not be positive
        """
        source = self.get(position_id)
        offset = self._settings.positions.clone_offset
        new_strike = source.strike + offset if source.is_call else source.strike - offset

        if new_strike <= 0:
            raise InvalidInputError(
                f"Cannot clone position {position_id}: shifted strike {new_strike} "
                f"is not positive"
            )

        clone = source.copy_with(self._next_id(), new_strike)
        self._positions.append(clone)
        self._last_id = clone.id

        logger.debug(f"Cloned position {position_id} as {clone}")

        self.refresh(clone.id, market)
        return clone

    def remove(self, position_id: int) -> OptionPosition:
        """
        Delete a position.

        Returns:
            The removed position

        Raises:
            PositionNotFoundError: If the id does not exist
        """
        position = self.get(position_id)
        self._positions.remove(position)
        logger.debug(f"Removed position {position}")
        return position

    def clear(self) -> None:
        """Remove all positions. Ids keep increasing afterwards."""
        self._positions.clear()

    def get(self, position_id: int) -> OptionPosition:
        """
        Look up a position by id.

        Raises:
            PositionNotFoundError: If the id does not exist
        """
        for position in self._positions:
            if position.id == position_id:
                return position
        raise PositionNotFoundError(f"No position with id {position_id}")

    def override_greek(self, position_id: int, greek: str, value: Any) -> OptionPosition:
        """
        Set a transient what-if display value for one Greek.

        Overrides only affect display_greeks(); aggregates and projections
        use computed values. The next refresh clears them.
        """
        position = self.get(position_id)
        position.set_override(greek, value)
        return position

    # =========================================================================
    # Aggregates
    # =========================================================================

    def aggregate(self) -> Dict[str, float]:
        """
        Sum Greeks and values across all positions.

        Theta is summed signed (negative = decay).

        Returns:
            Dictionary with 'total_theta', 'total_delta', 'total_gamma',
            'total_vega', 'total_rho', 'total_premium', 'total_intrinsic',
            'total_extrinsic'
        """
        stale = [p.id for p in self._positions if p.is_stale]
        if stale:
            logger.warning(f"Aggregating positions with stale Greeks: {stale}")

        return {
            key: sum(getattr(p, attr) for p in self._positions)
            for key, attr in AGGREGATE_FIELDS.items()
        }

    # =========================================================================
    # Defaults
    # =========================================================================

    def atm_strike(self, market: Optional[MarketContext] = None) -> float:
        """Spot rounded to the nearest strike step."""
        market = market or self._market
        step = self._settings.positions.strike_step
        strike = round(market.spot / step) * step
        return float(strike) if strike > 0 else float(step)

    # =========================================================================
    # Export
    # =========================================================================

    def to_records(self) -> List[Dict[str, Any]]:
        """Every position as a flat record in EXPORT_COLUMNS order."""
        return [p.to_record() for p in self._positions]

    def to_dataframe(self) -> pd.DataFrame:
        """Every position as a DataFrame with EXPORT_COLUMNS columns."""
        return pd.DataFrame(self.to_records(), columns=EXPORT_COLUMNS)

    # =========================================================================
    # Internal
    # =========================================================================

    def _max_id(self) -> int:
        return max((p.id for p in self._positions), default=0)

    def _next_id(self) -> int:
        return max(self._last_id, self._max_id()) + 1

    def _solve_iv(
        self,
        option_type: OptionTypeLike,
        strike: float,
        T: float,
        premium: float,
        market: MarketContext
    ) -> float:
        """Back-solve an IV percentage from a premium using solver settings."""
        solver = self._settings.solver
        result = solve_implied_vol(
            option_type,
            market.spot,
            strike,
            T,
            market.rate,
            premium,
            market.dividend_yield,
            max_iterations=solver.max_iterations,
            tolerance=solver.tolerance,
            lower_bound=solver.lower_bound,
            upper_bound=solver.upper_bound,
            initial_guess=solver.initial_guess,
        )
        return result.sigma_pct

    # =========================================================================
    # Special Methods
    # =========================================================================

    def __len__(self) -> int:
        return len(self._positions)

    def __iter__(self) -> Iterator[OptionPosition]:
        return iter(list(self._positions))

    def __contains__(self, position_id: object) -> bool:
        return any(p.id == position_id for p in self._positions)

    def __repr__(self) -> str:
        return f"PositionBook(positions={len(self._positions)}, spot={self._market.spot})"


__all__ = ['PositionBook', 'AGGREGATE_FIELDS']
