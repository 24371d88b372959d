"""
Unit Tests for the Math Kernel

Covers the standard normal helpers and the d1/d2 terms, including the
expiry boundary and domain checks.
"""

import math

import pytest
import numpy as np
from scipy.stats import norm

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from thetalab.core.math_kernel import (
    DAYS_PER_YEAR,
    DomainPreconditionError,
    PricingError,
    check_finite,
    d1_d2,
    norm_cdf,
    norm_pdf,
)


class TestNormCdf:
    """Tests for norm_cdf."""

    def test_center(self):
        """N(0) is one half."""
        assert norm_cdf(0.0) == pytest.approx(0.5, abs=1e-12)

    @pytest.mark.parametrize("x", [0.1, 0.5, 1.0, 1.96, 3.0, 6.5, 9.9])
    def test_symmetry(self, x):
        """N(-x) = 1 - N(x)."""
        assert norm_cdf(-x) == pytest.approx(1.0 - norm_cdf(x), abs=1e-12)

    def test_accuracy_against_erf(self):
        """Agrees with the erf closed form across |x| < 10."""
        for x in np.linspace(-9.9, 9.9, 199):
            expected = 0.5 * (1.0 + math.erf(x / math.sqrt(2.0)))
            assert abs(norm_cdf(x) - expected) < 1e-6

    def test_monotonic(self):
        """CDF is non-decreasing."""
        values = [norm_cdf(x) for x in np.linspace(-8, 8, 161)]
        assert all(b >= a for a, b in zip(values, values[1:]))

    def test_returns_python_float(self):
        assert isinstance(norm_cdf(0.3), float)


class TestNormPdf:
    """Tests for norm_pdf."""

    def test_peak(self):
        assert norm_pdf(0.0) == pytest.approx(1.0 / math.sqrt(2.0 * math.pi))

    @pytest.mark.parametrize("x", [-3.0, -1.0, 0.25, 2.0])
    def test_matches_scipy(self, x):
        assert norm_pdf(x) == pytest.approx(norm.pdf(x), rel=1e-12)

    def test_even(self):
        assert norm_pdf(1.3) == norm_pdf(-1.3)


class TestD1D2:
    """Tests for d1_d2."""

    def test_known_values(self):
        """S=K=100, T=0.25, r=5%, sigma=20%."""
        d1, d2 = d1_d2(S=100, K=100, T=0.25, r=0.05, sigma=0.20)
        assert d1 == pytest.approx(0.175, abs=1e-12)
        assert d2 == pytest.approx(0.075, abs=1e-12)

    def test_dividend_yield_lowers_d1(self):
        d1_no_q, _ = d1_d2(100, 100, 0.5, 0.05, 0.2)
        d1_q, _ = d1_d2(100, 100, 0.5, 0.05, 0.2, q=0.03)
        assert d1_q < d1_no_q

    def test_d2_relation(self):
        sigma, T = 0.3, 0.75
        d1, d2 = d1_d2(120, 100, T, 0.04, sigma)
        assert d1 - d2 == pytest.approx(sigma * math.sqrt(T))

    @pytest.mark.parametrize("T", [0.0, -0.01, -1.0])
    def test_expiry_boundary(self, T):
        """No time remaining gives (0, 0) whatever sigma is."""
        assert d1_d2(100, 90, T, 0.05, 0.0) == (0.0, 0.0)

    @pytest.mark.parametrize("sigma", [0.0, -0.2])
    def test_non_positive_sigma_rejected(self, sigma):
        with pytest.raises(DomainPreconditionError):
            d1_d2(100, 100, 0.25, 0.05, sigma)

    @pytest.mark.parametrize("S,K", [(0.0, 100.0), (100.0, 0.0), (-5.0, 100.0)])
    def test_non_positive_spot_or_strike_rejected(self, S, K):
        with pytest.raises(DomainPreconditionError):
            d1_d2(S, K, 0.25, 0.05, 0.2)

    def test_non_finite_rejected(self):
        with pytest.raises(DomainPreconditionError):
            d1_d2(float('nan'), 100, 0.25, 0.05, 0.2)
        with pytest.raises(DomainPreconditionError):
            d1_d2(100, 100, 0.25, float('inf'), 0.2)


class TestHelpers:
    """Tests for constants and check_finite."""

    def test_days_per_year(self):
        assert DAYS_PER_YEAR == 365

    def test_domain_error_is_pricing_error(self):
        assert issubclass(DomainPreconditionError, PricingError)

    def test_check_finite_names_the_field(self):
        with pytest.raises(DomainPreconditionError, match="rate"):
            check_finite(spot=100.0, rate=float('nan'))

    def test_check_finite_rejects_none(self):
        with pytest.raises(DomainPreconditionError):
            check_finite(spot=None)

    def test_check_finite_accepts_numbers(self):
        check_finite(a=1, b=-2.5, c=0.0)
