"""
Option Position Model

This module provides the value types the position book works with:

    - MarketContext: ambient market state (spot, rate, dividend yield,
      volatility) passed explicitly into every pricing call
    - OptionPosition: one option contract under analysis, with its
      user-entered inputs and the Greeks cached from the last refresh
    - Field parsers that turn raw form values (numbers or strings) into
      validated inputs
    - Five-tier moneyness classification

Key Conventions:
    - premium is the user-entered / market price and is never overwritten
      with the model price; theoretical_price is kept separately and only
      their difference is exposed
    - implied_vol on a position is a percentage (15.0 means 15%), while
      MarketContext.volatility is a decimal (0.15)
    - any input mutation marks the cached Greeks stale until the next
      refresh

Moneyness Banding (calls; puts mirror around spot):
    strike <  spot * 0.980  -> DeepITM
    strike <  spot * 0.995  -> ITM
    strike <= spot * 1.005  -> ATM
    strike <= spot * 1.020  -> OTM
    otherwise               -> DeepOTM
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np

from thetalab.core.math_kernel import DAYS_PER_YEAR, DomainPreconditionError
from thetalab.core.pricing import (
    OptionType,
    OptionTypeLike,
    format_greeks,
    normalize_option_type,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MIN_DAYS_TO_EXPIRY = 1
MAX_DAYS_TO_EXPIRY = 365

# Moneyness bands as fractions of spot
DEFAULT_ATM_BAND = 0.005
DEFAULT_DEEP_BAND = 0.02

GREEK_NAMES = ['delta', 'gamma', 'theta', 'vega', 'rho']

# Cached values produced by a refresh
COMPUTED_FIELDS = GREEK_NAMES + [
    'theoretical_price', 'intrinsic', 'extrinsic', 'd1', 'd2', 'probability_itm',
]

# Column order of the flat export shape consumed by CSV writers
EXPORT_COLUMNS = [
    'id',
    'type',
    'strike',
    'premium',
    'delta',
    'gamma',
    'theta',
    'vega',
    'rho',
    'days_to_expiry',
    'moneyness',
    'implied_vol',
    'intrinsic',
    'extrinsic',
    'theoretical_price',
    'd1',
    'd2',
]

# Where a position's implied volatility came from
IV_SOURCE_SUPPLIED = 'supplied'
IV_SOURCE_SOLVED = 'solved'
IV_SOURCE_MARKET = 'market'

# Accepted spellings for updatable fields
FIELD_ALIASES = {
    'strike': 'strike',
    'premium': 'premium',
    'days_to_expiry': 'days_to_expiry',
    'days': 'days_to_expiry',
    'daystoexpiry': 'days_to_expiry',
    'implied_vol': 'implied_vol',
    'iv': 'implied_vol',
    'impliedvol': 'implied_vol',
    'option_type': 'option_type',
    'type': 'option_type',
}


# =============================================================================
# Exceptions
# =============================================================================

class PositionError(Exception):
    """Base exception for position and position book errors."""
    pass


class InvalidInputError(PositionError):
    """Exception raised when a supplied value fails parsing or validation."""
    pass


class PositionNotFoundError(PositionError):
    """Exception raised when a position id does not exist."""
    pass


# =============================================================================
# Enums
# =============================================================================

class Moneyness(str, Enum):
    """Five-tier moneyness classification."""

    DEEP_ITM = "DeepITM"
    ITM = "ITM"
    ATM = "ATM"
    OTM = "OTM"
    DEEP_OTM = "DeepOTM"


# =============================================================================
# Field Parsers
# =============================================================================

def _parse_number(field_name: str, value: Any) -> float:
    """Parse a numeric form value, rejecting blanks, text and non-finite values."""
    if value is None or isinstance(value, bool):
        raise InvalidInputError(f"{field_name} must be a number, got {value!r}")

    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise InvalidInputError(f"{field_name} cannot be blank")
        try:
            number = float(text)
        except ValueError:
            raise InvalidInputError(
                f"{field_name} must be numeric, got {value!r}"
            ) from None
    elif isinstance(value, (int, float, np.integer, np.floating)):
        try:
            number = float(value)
        except OverflowError:
            raise InvalidInputError(f"{field_name} is out of range") from None
    else:
        raise InvalidInputError(
            f"{field_name} must be a number, got {type(value).__name__}"
        )

    if not np.isfinite(number):
        raise InvalidInputError(f"{field_name} must be finite, got {value!r}")

    return number


def parse_strike(value: Any) -> float:
    """Parse a strike price (> 0)."""
    strike = _parse_number('strike', value)
    if strike <= 0:
        raise InvalidInputError(f"strike must be positive, got {strike}")
    return strike


def parse_premium(value: Any) -> float:
    """Parse a premium (>= 0)."""
    premium = _parse_number('premium', value)
    if premium < 0:
        raise InvalidInputError(f"premium must be non-negative, got {premium}")
    return premium


def parse_days(value: Any) -> int:
    """Parse whole days to expiry in [1, 365]."""
    days = _parse_number('days_to_expiry', value)
    if not days.is_integer():
        raise InvalidInputError(f"days_to_expiry must be a whole number, got {value!r}")
    if not MIN_DAYS_TO_EXPIRY <= days <= MAX_DAYS_TO_EXPIRY:
        raise InvalidInputError(
            f"days_to_expiry must be between {MIN_DAYS_TO_EXPIRY} and "
            f"{MAX_DAYS_TO_EXPIRY}, got {int(days)}"
        )
    return int(days)


def parse_implied_vol(value: Any) -> float:
    """Parse an implied volatility percentage (> 0)."""
    iv = _parse_number('implied_vol', value)
    if iv <= 0:
        raise InvalidInputError(f"implied_vol must be positive, got {iv}")
    return iv


def parse_option_type(value: Any) -> OptionType:
    """Parse an option type ('call'/'put' and their short forms)."""
    try:
        return normalize_option_type(value)
    except DomainPreconditionError as e:
        raise InvalidInputError(str(e)) from e


FIELD_PARSERS = {
    'strike': parse_strike,
    'premium': parse_premium,
    'days_to_expiry': parse_days,
    'implied_vol': parse_implied_vol,
    'option_type': parse_option_type,
}


def resolve_field(field_name: str) -> str:
    """Map a field name or alias to its canonical name."""
    key = str(field_name).strip().lower()
    canonical = FIELD_ALIASES.get(key)
    if canonical is None:
        raise InvalidInputError(
            f"Unknown field '{field_name}'. Valid fields: {sorted(FIELD_PARSERS)}"
        )
    return canonical


# =============================================================================
# Market Context
# =============================================================================

@dataclass(frozen=True)
class MarketContext:
    """
    Ambient market state for a computation.

    Attributes:
        spot: Underlying spot price (> 0)
        rate: Risk-free rate, annualized decimal (e.g. 0.065)
        volatility: Implied volatility, annualized decimal (> 0)
        dividend_yield: Continuous dividend yield, annualized decimal (>= 0)
    """

    spot: float
    rate: float
    volatility: float
    dividend_yield: float = 0.0

    def __post_init__(self) -> None:
        spot = _parse_number('spot', self.spot)
        rate = _parse_number('rate', self.rate)
        volatility = _parse_number('volatility', self.volatility)
        dividend_yield = _parse_number('dividend_yield', self.dividend_yield)

        if spot <= 0:
            raise InvalidInputError(f"spot must be positive, got {spot}")
        if volatility <= 0:
            raise InvalidInputError(f"volatility must be positive, got {volatility}")
        if dividend_yield < 0:
            raise InvalidInputError(
                f"dividend_yield must be non-negative, got {dividend_yield}"
            )

        object.__setattr__(self, 'spot', spot)
        object.__setattr__(self, 'rate', rate)
        object.__setattr__(self, 'volatility', volatility)
        object.__setattr__(self, 'dividend_yield', dividend_yield)

    @classmethod
    def from_settings(cls, settings: Any) -> 'MarketContext':
        """Build from CalculatorSettings (or its market section)."""
        market = getattr(settings, 'market', settings)
        return cls(
            spot=market.spot,
            rate=market.rate,
            volatility=market.volatility,
            dividend_yield=market.dividend_yield,
        )

    def with_spot(self, spot: float) -> 'MarketContext':
        """Copy with a different spot price."""
        return MarketContext(
            spot=spot,
            rate=self.rate,
            volatility=self.volatility,
            dividend_yield=self.dividend_yield,
        )

    def with_volatility(self, volatility: float) -> 'MarketContext':
        """Copy with a different volatility."""
        return MarketContext(
            spot=self.spot,
            rate=self.rate,
            volatility=volatility,
            dividend_yield=self.dividend_yield,
        )


# =============================================================================
# Moneyness
# =============================================================================

def classify_moneyness(
    option_type: OptionTypeLike,
    strike: float,
    spot: float,
    atm_band: float = DEFAULT_ATM_BAND,
    deep_band: float = DEFAULT_DEEP_BAND
) -> Moneyness:
    """
    Classify a strike relative to spot into five tiers.

    Args:
        option_type: 'call' or 'put'
        strike: Strike price
        spot: Current underlying price
        atm_band: Half-width of the ATM band as a fraction of spot
        deep_band: Distance beyond which a strike is deep ITM/OTM

    Returns:
        Moneyness member

    Example:
        >>> classify_moneyness('call', 17000, 17450)
        <Moneyness.DEEP_ITM: 'DeepITM'>
        >>> classify_moneyness('put', 17000, 17450)
        <Moneyness.DEEP_OTM: 'DeepOTM'>
    """
    if spot <= 0:
        raise InvalidInputError(f"spot must be positive, got {spot}")
    if not 0 <= atm_band < deep_band:
        raise InvalidInputError(
            f"Moneyness bands must satisfy 0 <= atm_band < deep_band, "
            f"got {atm_band}, {deep_band}"
        )

    kind = normalize_option_type(option_type)

    if kind is OptionType.CALL:
        if strike < spot * (1 - deep_band):
            return Moneyness.DEEP_ITM
        if strike < spot * (1 - atm_band):
            return Moneyness.ITM
        if strike <= spot * (1 + atm_band):
            return Moneyness.ATM
        if strike <= spot * (1 + deep_band):
            return Moneyness.OTM
        return Moneyness.DEEP_OTM

    if strike > spot * (1 + deep_band):
        return Moneyness.DEEP_ITM
    if strike > spot * (1 + atm_band):
        return Moneyness.ITM
    if strike >= spot * (1 - atm_band):
        return Moneyness.ATM
    if strike >= spot * (1 - deep_band):
        return Moneyness.OTM
    return Moneyness.DEEP_OTM


# =============================================================================
# OptionPosition
# =============================================================================

class OptionPosition:
    """
    One option contract under analysis.

    Inputs (type, strike, premium, days_to_expiry, implied_vol) are set on
    construction or through apply_update(). Computed values (Greeks,
    theoretical price, intrinsic/extrinsic, d1/d2, moneyness) are written
    only by apply_refresh(), which PositionBook.refresh() calls.

    Attributes:
        id (int): Position identifier, unique within a book
        option_type (OptionType): CALL or PUT
        strike (float): Strike price
        premium (float): User-entered / market premium
        days_to_expiry (int): Calendar days to expiry, 1..365
        implied_vol (Optional[float]): IV percentage, None until known
        iv_source (str): 'supplied', 'solved' or 'market'
        is_stale (bool): True when inputs changed since the last refresh

    Example:
        >>> position = OptionPosition(1, 'call', strike=17450, premium=310.0,
        ...                           days_to_expiry=30, implied_vol=15.0)
        >>> print(position)
        #1 CALL 17450.00 30d @ 310.00
    """

    __slots__ = (
        '_id',
        '_option_type',
        '_strike',
        '_premium',
        '_days_to_expiry',
        '_implied_vol',
        '_iv_source',
        '_computed',
        '_moneyness',
        '_stale',
        '_overrides',
    )

    def __init__(
        self,
        position_id: int,
        option_type: OptionTypeLike,
        strike: Any,
        premium: Any,
        days_to_expiry: Any,
        implied_vol: Any = None,
        iv_source: str = IV_SOURCE_SUPPLIED
    ) -> None:
        if isinstance(position_id, bool) or not isinstance(position_id, (int, np.integer)):
            raise InvalidInputError(f"position id must be an integer, got {position_id!r}")
        if position_id < 1:
            raise InvalidInputError(f"position id must be positive, got {position_id}")
        if iv_source not in (IV_SOURCE_SUPPLIED, IV_SOURCE_SOLVED, IV_SOURCE_MARKET):
            raise InvalidInputError(f"Unknown iv_source '{iv_source}'")

        self._id = int(position_id)
        self._option_type = parse_option_type(option_type)
        self._strike = parse_strike(strike)
        self._premium = parse_premium(premium)
        self._days_to_expiry = parse_days(days_to_expiry)
        self._implied_vol = None if implied_vol is None else parse_implied_vol(implied_vol)
        self._iv_source = iv_source

        self._computed: Dict[str, float] = {name: 0.0 for name in COMPUTED_FIELDS}
        self._moneyness: Optional[Moneyness] = None
        self._stale = True
        self._overrides: Dict[str, float] = {}

    # =========================================================================
    # Properties - Inputs
    # =========================================================================

    @property
    def id(self) -> int:
        """Get position id."""
        return self._id

    @property
    def option_type(self) -> OptionType:
        """Get option type."""
        return self._option_type

    @property
    def is_call(self) -> bool:
        """Check if this is a call."""
        return self._option_type is OptionType.CALL

    @property
    def is_put(self) -> bool:
        """Check if this is a put."""
        return self._option_type is OptionType.PUT

    @property
    def strike(self) -> float:
        """Get strike price."""
        return self._strike

    @property
    def premium(self) -> float:
        """Get user-entered premium."""
        return self._premium

    @property
    def days_to_expiry(self) -> int:
        """Get calendar days to expiry."""
        return self._days_to_expiry

    @property
    def implied_vol(self) -> Optional[float]:
        """Get implied volatility as a percentage."""
        return self._implied_vol

    @property
    def iv_source(self) -> str:
        """Get where the implied volatility came from."""
        return self._iv_source

    @property
    def is_stale(self) -> bool:
        """True when inputs changed since the last refresh."""
        return self._stale

    # =========================================================================
    # Properties - Computed
    # =========================================================================

    @property
    def delta(self) -> float:
        return self._computed['delta']

    @property
    def gamma(self) -> float:
        return self._computed['gamma']

    @property
    def theta(self) -> float:
        """Per-day theta (signed, negative means decay)."""
        return self._computed['theta']

    @property
    def vega(self) -> float:
        return self._computed['vega']

    @property
    def rho(self) -> float:
        return self._computed['rho']

    @property
    def theoretical_price(self) -> float:
        """Black-Scholes-Merton fair value from the last refresh."""
        return self._computed['theoretical_price']

    @property
    def intrinsic(self) -> float:
        return self._computed['intrinsic']

    @property
    def extrinsic(self) -> float:
        return self._computed['extrinsic']

    @property
    def d1(self) -> float:
        return self._computed['d1']

    @property
    def d2(self) -> float:
        return self._computed['d2']

    @property
    def probability_itm(self) -> float:
        return self._computed['probability_itm']

    @property
    def moneyness(self) -> Optional[Moneyness]:
        """Moneyness from the last refresh (None before the first)."""
        return self._moneyness

    @property
    def price_difference(self) -> float:
        """Premium minus theoretical price (positive = premium rich)."""
        return self._premium - self._computed['theoretical_price']

    @property
    def time_to_expiry(self) -> float:
        """Time to expiry in years."""
        return self._days_to_expiry / DAYS_PER_YEAR

    def greeks(self) -> Dict[str, float]:
        """Cached Greeks as a dictionary (unrounded, without overrides)."""
        return {name: self._computed[name] for name in GREEK_NAMES}

    # =========================================================================
    # Mutation
    # =========================================================================

    def apply_update(self, field_name: str, value: Any) -> str:
        """
        Set one input field from a raw value.

        The value is fully parsed before anything is assigned, so a rejected
        value leaves the position untouched.

        Args:
            field_name: Field name or alias (e.g. 'strike', 'days', 'iv')
            value: Raw value (number or numeric string)

        Returns:
            Canonical name of the field that changed

        Raises:
            InvalidInputError: If the field is unknown or the value invalid
        """
        canonical = resolve_field(field_name)
        parsed = FIELD_PARSERS[canonical](value)

        if canonical == 'strike':
            self._strike = parsed
        elif canonical == 'premium':
            self._premium = parsed
            # A user-entered premium now drives the implied volatility
            if self._iv_source == IV_SOURCE_MARKET:
                self._iv_source = IV_SOURCE_SOLVED
        elif canonical == 'days_to_expiry':
            self._days_to_expiry = parsed
        elif canonical == 'implied_vol':
            self._implied_vol = parsed
            self._iv_source = IV_SOURCE_SUPPLIED
        elif canonical == 'option_type':
            self._option_type = parsed

        self._stale = True
        return canonical

    def apply_refresh(
        self,
        values: Dict[str, float],
        moneyness: Moneyness,
        implied_vol: Optional[float] = None
    ) -> None:
        """
        Store freshly computed values and clear the stale flag.

        Args:
            values: Output of pricing.greeks() for this position
            moneyness: Classification against the current spot
            implied_vol: Re-solved IV percentage, if the IV tracks premium
        """
        self._computed = {
            'delta': values['delta'],
            'gamma': values['gamma'],
            'theta': values['theta'],
            'vega': values['vega'],
            'rho': values['rho'],
            'theoretical_price': values['price'],
            'intrinsic': values['intrinsic'],
            'extrinsic': values['extrinsic'],
            'd1': values['d1'],
            'd2': values['d2'],
            'probability_itm': values['probability_itm'],
        }
        self._moneyness = moneyness
        if implied_vol is not None:
            self._implied_vol = implied_vol
        self._overrides.clear()
        self._stale = False

    def set_override(self, greek: str, value: Any) -> None:
        """Set a transient what-if display value for one Greek."""
        name = str(greek).strip().lower()
        if name not in GREEK_NAMES:
            raise InvalidInputError(f"Unknown greek '{greek}'. Valid: {GREEK_NAMES}")
        self._overrides[name] = _parse_number(name, value)

    def clear_overrides(self) -> None:
        """Drop all display overrides."""
        self._overrides.clear()

    @property
    def overrides(self) -> Dict[str, float]:
        """Current display overrides."""
        return dict(self._overrides)

    def display_greeks(self) -> Dict[str, float]:
        """Greeks for display: overrides applied, rounded to display precision."""
        merged = self.greeks()
        merged.update(self._overrides)
        merged['price'] = self.theoretical_price
        merged['intrinsic'] = self.intrinsic
        merged['extrinsic'] = self.extrinsic
        return format_greeks(merged)

    def copy_with(self, position_id: int, strike: float) -> 'OptionPosition':
        """
        Copy this position under a new id and strike.

        The copy keeps premium, days and IV, and starts stale.
        """
        clone = OptionPosition(
            position_id,
            self._option_type,
            strike=strike,
            premium=self._premium,
            days_to_expiry=self._days_to_expiry,
            implied_vol=self._implied_vol,
            iv_source=self._iv_source,
        )
        clone._computed = dict(self._computed)
        return clone

    # =========================================================================
    # Export
    # =========================================================================

    def to_record(self) -> Dict[str, Any]:
        """Flat record in EXPORT_COLUMNS order."""
        return {
            'id': self._id,
            'type': self._option_type.value,
            'strike': self._strike,
            'premium': self._premium,
            'delta': self.delta,
            'gamma': self.gamma,
            'theta': self.theta,
            'vega': self.vega,
            'rho': self.rho,
            'days_to_expiry': self._days_to_expiry,
            'moneyness': self._moneyness.value if self._moneyness else None,
            'implied_vol': self._implied_vol,
            'intrinsic': self.intrinsic,
            'extrinsic': self.extrinsic,
            'theoretical_price': self.theoretical_price,
            'd1': self.d1,
            'd2': self.d2,
        }

    # =========================================================================
    # Special Methods
    # =========================================================================

    def __repr__(self) -> str:
        return (
            f"OptionPosition(id={self._id}, option_type='{self._option_type.value}', "
            f"strike={self._strike}, premium={self._premium}, "
            f"days_to_expiry={self._days_to_expiry}, implied_vol={self._implied_vol})"
        )

    def __str__(self) -> str:
        return (
            f"#{self._id} {self._option_type.value.upper()} {self._strike:.2f} "
            f"{self._days_to_expiry}d @ {self._premium:.2f}"
        )


__all__ = [
    'PositionError',
    'InvalidInputError',
    'PositionNotFoundError',
    'Moneyness',
    'MarketContext',
    'OptionPosition',
    'classify_moneyness',
    'parse_strike',
    'parse_premium',
    'parse_days',
    'parse_implied_vol',
    'parse_option_type',
    'resolve_field',
    'EXPORT_COLUMNS',
    'GREEK_NAMES',
    'COMPUTED_FIELDS',
    'DEFAULT_ATM_BAND',
    'DEFAULT_DEEP_BAND',
    'MIN_DAYS_TO_EXPIRY',
    'MAX_DAYS_TO_EXPIRY',
    'IV_SOURCE_SUPPLIED',
    'IV_SOURCE_SOLVED',
    'IV_SOURCE_MARKET',
]
