"""
Analytics Module for the Theta Lab Calculator

Derived views over a position book. Nothing here mutates positions.

Components:
    - projection: Decay series and at-expiry P&L series with breakevens
    - erosion: Theta-driven premium erosion estimates and confidence bands
    - risk: Dominant risk driver (risk spotlight)
"""

from thetalab.analytics.projection import (
    DecaySeries,
    PLSeries,
    decay_series,
    pl_series,
    find_breakevens,
)

from thetalab.analytics.erosion import (
    ConfidenceLevel,
    ConfidenceBand,
    ErosionResult,
    project_erosion,
    erosion_for,
    confidence_band,
)

from thetalab.analytics.risk import (
    RiskKind,
    RiskSignal,
    iv_percentile,
    detect_risks,
    dominant_risk,
)

__all__ = [
    # Projection
    "DecaySeries",
    "PLSeries",
    "decay_series",
    "pl_series",
    "find_breakevens",
    # Erosion
    "ConfidenceLevel",
    "ConfidenceBand",
    "ErosionResult",
    "project_erosion",
    "erosion_for",
    "confidence_band",
    # Risk
    "RiskKind",
    "RiskSignal",
    "iv_percentile",
    "detect_risks",
    "dominant_risk",
]
