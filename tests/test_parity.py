"""
Unit Tests for the Put-Call Parity Validator
"""

import math

import pytest
import numpy as np

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from thetalab.core.math_kernel import DomainPreconditionError
from thetalab.core.parity import PARITY_TOLERANCE, ParityResult, check_parity
from thetalab.core.pricing import price


@pytest.fixture
def rng():
    return np.random.default_rng(11)


class TestModelPrices:
    """BSM-priced pairs satisfy parity."""

    def test_random_grid(self, rng):
        for _ in range(300):
            S = float(rng.uniform(50, 150))
            K = float(rng.uniform(50, 150))
            T = float(rng.uniform(0.01, 2.0))
            r = float(rng.uniform(0.0, 0.10))
            q = float(rng.uniform(0.0, 0.05))
            sigma = float(rng.uniform(0.05, 0.8))

            call = price('call', S, K, T, r, sigma, q)
            put = price('put', S, K, T, r, sigma, q)
            result = check_parity(call, put, S, K, T, r, q)

            assert result.valid
            assert abs(result.discrepancy) < PARITY_TOLERANCE

    def test_full_parameter_box(self, rng):
        """S,K in [1, 100000], T in (0, 2], r and sigma in (0, 1], q in [0, 0.1]."""
        for _ in range(2000):
            S = float(rng.uniform(1, 100000))
            K = float(rng.uniform(1, 100000))
            T = 2.0 * (1.0 - float(rng.random()))
            r = 1.0 - float(rng.random())
            sigma = 1.0 - float(rng.random())
            q = float(rng.uniform(0.0, 0.1))

            call = price('call', S, K, T, r, sigma, q)
            put = price('put', S, K, T, r, sigma, q)

            assert check_parity(call, put, S, K, T, r, q).valid

    def test_log_uniform_strikes_and_spots(self, rng):
        """Spot and strike spread evenly across magnitudes from 1 to 100000."""
        for _ in range(1000):
            S = float(10 ** rng.uniform(0, 5))
            K = float(10 ** rng.uniform(0, 5))
            T = 2.0 * (1.0 - float(rng.random()))
            r = 1.0 - float(rng.random())
            sigma = 1.0 - float(rng.random())
            q = float(rng.uniform(0.0, 0.1))

            call = price('call', S, K, T, r, sigma, q)
            put = price('put', S, K, T, r, sigma, q)

            assert check_parity(call, put, S, K, T, r, q).valid

    def test_synthetics_reproduce_model_prices(self):
        S, K, T, r, sigma = 17450.0, 17500.0, 30 / 365, 0.065, 0.15
        call = price('call', S, K, T, r, sigma)
        put = price('put', S, K, T, r, sigma)

        result = check_parity(call, put, S, K, T, r)

        assert result.synthetic_call == pytest.approx(call, abs=1e-8)
        assert result.synthetic_put == pytest.approx(put, abs=1e-8)


class TestViolations:
    """Mispriced pairs are flagged, never corrected."""

    def test_overpriced_call(self):
        S, K, T, r, sigma = 100.0, 100.0, 0.25, 0.05, 0.2
        call = price('call', S, K, T, r, sigma)
        put = price('put', S, K, T, r, sigma)

        result = check_parity(call + 0.05, put, S, K, T, r)

        assert not result.valid
        assert result.discrepancy == pytest.approx(0.05, abs=1e-9)
        assert result.synthetic_call == pytest.approx(call, abs=1e-9)

    def test_tolerance_is_absolute(self):
        S, K, T, r = 100.0, 100.0, 0.25, 0.05
        call = price('call', S, K, T, r, 0.2)
        put = price('put', S, K, T, r, 0.2)

        assert check_parity(call + 0.009, put, S, K, T, r).valid
        assert not check_parity(call + 0.011, put, S, K, T, r).valid

    def test_custom_tolerance(self):
        result = check_parity(10.0, 5.0, 100.0, 95.0, 0.0, 0.05, tolerance=1.0)
        assert result.valid


class TestExpiry:
    """At T <= 0 discounting disappears."""

    def test_intrinsic_pair(self):
        result = check_parity(10.0, 0.0, S=110.0, K=100.0, T=0.0, r=0.05)
        assert result.valid
        assert result.discrepancy == pytest.approx(0.0)

    def test_negative_time_treated_as_expired(self):
        result = check_parity(0.0, 10.0, S=90.0, K=100.0, T=-1.0, r=0.05)
        assert result.valid


class TestResult:
    """ParityResult shape and validation."""

    def test_to_dict(self):
        result = check_parity(10.0, 0.0, 110.0, 100.0, 0.0, 0.05)
        data = result.to_dict()

        assert set(data) == {'valid', 'discrepancy', 'synthetic_call', 'synthetic_put'}
        assert isinstance(result, ParityResult)

    def test_identity(self):
        S, K, T, r, q = 100.0, 90.0, 0.5, 0.04, 0.01
        result = check_parity(15.0, 3.0, S, K, T, r, q)
        expected = (15.0 + K * math.exp(-r * T)) - (3.0 + S * math.exp(-q * T))

        assert result.discrepancy == pytest.approx(expected)

    @pytest.mark.parametrize("bad", [float('nan'), float('inf')])
    def test_non_finite_rejected(self, bad):
        with pytest.raises(DomainPreconditionError):
            check_parity(bad, 1.0, 100.0, 100.0, 0.25, 0.05)
