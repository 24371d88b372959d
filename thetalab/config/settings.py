"""
Calculator Settings Schema

Typed defaults for every tunable of the calculator: the ambient market,
position defaults, the implied volatility solver, moneyness bands,
projection ranges, erosion modelling and risk spotlight thresholds.

Settings are plain dataclasses. CalculatorSettings.from_dict() builds them
from nested dictionaries (as loaded from YAML), merging field by field over
the defaults, and validate() returns a list of problems.
"""

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or []
        super().__init__(message)


@dataclass
class MarketSettings:
    """Default market context."""

    spot: float = 17450.0
    rate: float = 0.065
    dividend_yield: float = 0.0
    volatility: float = 0.15


@dataclass
class PositionSettings:
    """Defaults used when adding and cloning positions."""

    default_days: int = 30
    strike_step: float = 50.0
    clone_offset: float = 100.0


@dataclass
class SolverSettings:
    """Implied volatility bisection parameters."""

    max_iterations: int = 100
    tolerance: float = 0.0001
    lower_bound: float = 0.001
    upper_bound: float = 5.0
    initial_guess: float = 0.30


@dataclass
class MoneynessSettings:
    """Moneyness band widths as fractions of spot."""

    atm_band: float = 0.005
    deep_band: float = 0.02


@dataclass
class ProjectionSettings:
    """Default ranges for decay and P&L projections."""

    horizon_days: int = 30
    price_range_pct: float = 0.10
    steps: int = 50
    include_premium: bool = True


@dataclass
class ErosionSettings:
    """Premium erosion model parameters."""

    theta_acceleration: float = 1.2
    use_nonlinear: bool = False


@dataclass
class RiskSettings:
    """Risk spotlight thresholds (Indian index options)."""

    underlying: str = "NIFTY"
    theta_days_max: int = 7
    theta_daily_decay_pct: float = 1.2
    iv_high_percentile: float = 70.0
    iv_low_percentile: float = 30.0
    gamma_days_max: int = 10
    gamma_strike_range_pct: float = 0.01
    gamma_thresholds: Dict[str, float] = field(default_factory=lambda: {
        "NIFTY": 0.0004,
        "BANKNIFTY": 0.0006,
        "FINNIFTY": 0.0005,
        "DEFAULT": 0.0004,
    })
    delta_threshold: float = 0.25


_SECTIONS = {
    "market": MarketSettings,
    "positions": PositionSettings,
    "solver": SolverSettings,
    "moneyness": MoneynessSettings,
    "projection": ProjectionSettings,
    "erosion": ErosionSettings,
    "risk": RiskSettings,
}


@dataclass
class CalculatorSettings:
    """Complete calculator configuration."""

    market: MarketSettings = field(default_factory=MarketSettings)
    positions: PositionSettings = field(default_factory=PositionSettings)
    solver: SolverSettings = field(default_factory=SolverSettings)
    moneyness: MoneynessSettings = field(default_factory=MoneynessSettings)
    projection: ProjectionSettings = field(default_factory=ProjectionSettings)
    erosion: ErosionSettings = field(default_factory=ErosionSettings)
    risk: RiskSettings = field(default_factory=RiskSettings)

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CalculatorSettings":
        """
        Build settings from a nested dictionary.

        Unknown sections and keys are ignored with a warning; missing ones
        keep their defaults.
        """
        data = data or {}
        kwargs: Dict[str, Any] = {}

        for name, section_cls in _SECTIONS.items():
            section_data = data.get(name) or {}
            if not isinstance(section_data, dict):
                raise ConfigValidationError(
                    f"Section '{name}' must be a mapping",
                    errors=[f"{name}: expected mapping, got {type(section_data).__name__}"],
                )
            known = {f.name for f in fields(section_cls)}
            for key in section_data:
                if key not in known:
                    logger.warning(f"Ignoring unknown setting '{name}.{key}'")
            kwargs[name] = section_cls(
                **{k: v for k, v in section_data.items() if k in known}
            )

        for key in data:
            if key not in _SECTIONS and key not in ("log_level", "log_file"):
                logger.warning(f"Ignoring unknown setting '{key}'")

        if "log_level" in data:
            kwargs["log_level"] = data["log_level"]
        if "log_file" in data:
            kwargs["log_file"] = data["log_file"]

        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a nested dictionary."""
        return asdict(self)

    def validate(self) -> List[str]:
        """Return a list of validation errors (empty when valid)."""
        errors: List[str] = []

        if self.market.spot <= 0:
            errors.append("market.spot must be positive")
        if self.market.volatility <= 0:
            errors.append("market.volatility must be positive")
        if self.market.dividend_yield < 0:
            errors.append("market.dividend_yield must be non-negative")

        if not 1 <= self.positions.default_days <= 365:
            errors.append("positions.default_days must be between 1 and 365")
        if self.positions.strike_step <= 0:
            errors.append("positions.strike_step must be positive")
        if self.positions.clone_offset < 0:
            errors.append("positions.clone_offset must be non-negative")

        if self.solver.max_iterations < 1:
            errors.append("solver.max_iterations must be at least 1")
        if self.solver.tolerance <= 0:
            errors.append("solver.tolerance must be positive")
        if not 0 < self.solver.lower_bound < self.solver.upper_bound:
            errors.append("solver bounds must satisfy 0 < lower_bound < upper_bound")

        if not 0 <= self.moneyness.atm_band < self.moneyness.deep_band:
            errors.append("moneyness bands must satisfy 0 <= atm_band < deep_band")

        if self.projection.horizon_days < 0:
            errors.append("projection.horizon_days must be non-negative")
        if not 0 < self.projection.price_range_pct < 1:
            errors.append("projection.price_range_pct must be between 0 and 1")
        if self.projection.steps < 1:
            errors.append("projection.steps must be at least 1")

        if self.erosion.theta_acceleration <= 0:
            errors.append("erosion.theta_acceleration must be positive")

        if self.risk.iv_low_percentile >= self.risk.iv_high_percentile:
            errors.append("risk.iv_low_percentile must be below risk.iv_high_percentile")
        if "DEFAULT" not in self.risk.gamma_thresholds:
            errors.append("risk.gamma_thresholds must define a DEFAULT entry")

        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            errors.append(f"Unknown log_level '{self.log_level}'")

        return errors


def validate_settings(settings: CalculatorSettings) -> None:
    """Validate settings and raise if invalid."""
    errors = settings.validate()
    if errors:
        raise ConfigValidationError("Settings validation failed", errors=errors)
