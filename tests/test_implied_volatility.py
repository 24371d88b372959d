"""
Unit Tests for the Implied Volatility Solver

Covers round trips against the pricing engine, the expiry boundary,
best-effort fallbacks at the search bounds and input validation.
"""

import logging

import pytest
import numpy as np

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from thetalab.core.implied_volatility import (
    IV_LOWER_BOUND,
    IV_UPPER_BOUND,
    ImpliedVolResult,
    implied_vol,
    solve_implied_vol,
)
from thetalab.core.math_kernel import DomainPreconditionError
from thetalab.core.pricing import greeks, price


IV_TOL = 1e-3

# Vega per unit sigma below which a 1e-4 price tolerance cannot fix sigma to IV_TOL
MIN_RESOLVABLE_VEGA = 0.2


@pytest.fixture
def rng():
    return np.random.default_rng(7)


class TestRoundTrip:
    """price(sigma) -> implied_vol -> sigma."""

    def test_atm_call(self):
        observed = price('call', S=100, K=100, T=0.25, r=0.05, sigma=0.20)
        assert implied_vol('call', 100, 100, 0.25, 0.05, observed) == pytest.approx(0.20, abs=IV_TOL)

    def test_index_put(self):
        observed = price('put', S=17450, K=17400, T=30 / 365, r=0.065, sigma=0.15)
        sigma = implied_vol('put', 17450, 17400, 30 / 365, 0.065, observed)
        assert sigma == pytest.approx(0.15, abs=IV_TOL)

    def test_random_grid(self, rng):
        """Moderate moneyness, maturity and volatility recover sigma to 1e-3."""
        for _ in range(200):
            S = 100.0
            K = float(rng.uniform(95, 105))
            T = float(rng.uniform(0.2, 1.0))
            r = float(rng.uniform(0.0, 0.08))
            sigma = float(rng.uniform(0.15, 0.6))
            option_type = 'call' if rng.random() < 0.5 else 'put'

            observed = price(option_type, S, K, T, r, sigma)
            recovered = implied_vol(option_type, S, K, T, r, observed)

            assert abs(recovered - sigma) < IV_TOL

    def test_full_volatility_range(self, rng):
        """
        sigma0 anywhere in [0.01, 3.0] is recovered to 1e-3.

        The solver stops once the price is within 1e-4, which bounds the
        volatility error by about 1e-4 / vega. Draws whose vega per unit
        sigma is under MIN_RESOLVABLE_VEGA (deep OTM at low volatility,
        prices of a few ten-thousandths) cannot be pinned to 1e-3 by any
        price-tolerance solver and are skipped.
        """
        checked = 0
        for _ in range(300):
            S = 100.0
            K = float(rng.uniform(60, 160))
            T = float(rng.uniform(0.05, 2.0))
            r = float(rng.uniform(0.0, 0.10))
            q = float(rng.uniform(0.0, 0.05))
            sigma = float(rng.uniform(0.01, 3.0))
            option_type = 'call' if rng.random() < 0.5 else 'put'

            if greeks(option_type, S, K, T, r, sigma, q)['vega'] * 100 < MIN_RESOLVABLE_VEGA:
                continue

            observed = price(option_type, S, K, T, r, sigma, q)
            recovered = implied_vol(option_type, S, K, T, r, observed, q)

            assert abs(recovered - sigma) < IV_TOL
            checked += 1

        assert checked >= 100

    @pytest.mark.parametrize("sigma", [0.01, 0.05, 1.0, 2.0, 3.0])
    @pytest.mark.parametrize("option_type", ['call', 'put'])
    def test_range_endpoints_at_the_money(self, option_type, sigma):
        # r = 0 keeps the strike at the forward, so vega stays large at 1% vol
        observed = price(option_type, S=100, K=100, T=1.0, r=0.0, sigma=sigma)
        recovered = implied_vol(option_type, 100, 100, 1.0, 0.0, observed)

        assert recovered == pytest.approx(sigma, abs=IV_TOL)

    def test_with_dividend_yield(self):
        observed = price('call', S=100, K=100, T=0.5, r=0.05, sigma=0.3, q=0.02)
        result = solve_implied_vol('call', 100, 100, 0.5, 0.05, observed, q=0.02)
        assert result.sigma == pytest.approx(0.3, abs=IV_TOL)

    def test_result_diagnostics(self):
        observed = price('call', S=100, K=100, T=0.25, r=0.05, sigma=0.25)
        result = solve_implied_vol('call', 100, 100, 0.25, 0.05, observed)

        assert isinstance(result, ImpliedVolResult)
        assert result.converged
        assert not result.pinned_to_bound
        assert 1 <= result.iterations <= 100
        assert result.sigma_pct == pytest.approx(result.sigma * 100)

    def test_initial_guess_hit_exactly(self):
        """An observed price generated at 30% converges on the first trial."""
        observed = price('call', S=100, K=100, T=0.25, r=0.05, sigma=0.30)
        result = solve_implied_vol('call', 100, 100, 0.25, 0.05, observed)

        assert result.iterations == 1
        assert result.sigma == 0.30


class TestExpiry:
    """T <= 0 has no implied volatility."""

    @pytest.mark.parametrize("T", [0.0, -0.5])
    def test_returns_zero(self, T):
        assert implied_vol('call', 110, 100, T, 0.05, 10.0) == 0.0

    def test_not_converged(self):
        result = solve_implied_vol('put', 90, 100, 0.0, 0.05, 10.0)
        assert result.sigma == 0.0
        assert result.iterations == 0
        assert not result.converged


class TestBestEffort:
    """Unreachable prices converge to a bound instead of raising."""

    def test_price_above_achievable_pins_to_upper_bound(self, caplog):
        with caplog.at_level(logging.WARNING, logger='thetalab.core.implied_volatility'):
            result = solve_implied_vol('call', 100, 100, 0.25, 0.05, observed_price=99.0)

        assert result.sigma == pytest.approx(IV_UPPER_BOUND, abs=1e-6)
        assert not result.converged
        assert result.pinned_to_bound
        assert result.iterations == 100
        assert "did not reach tolerance" in caplog.text

    def test_price_below_intrinsic_pins_to_lower_bound(self):
        result = solve_implied_vol('call', 110, 100, 0.25, 0.05, observed_price=5.0)

        assert result.sigma == pytest.approx(IV_LOWER_BOUND, abs=1e-6)
        assert result.pinned_to_bound

    def test_iteration_cap_returns_last_trial(self):
        observed = price('call', S=100, K=100, T=0.25, r=0.05, sigma=0.2)
        result = solve_implied_vol(
            'call', 100, 100, 0.25, 0.05, observed, max_iterations=3, tolerance=1e-12
        )

        assert result.iterations == 3
        assert not result.converged
        assert IV_LOWER_BOUND < result.sigma < IV_UPPER_BOUND

    def test_zero_price_is_allowed(self):
        sigma = implied_vol('call', 100, 150, 0.1, 0.05, 0.0)
        assert IV_LOWER_BOUND <= sigma <= IV_UPPER_BOUND


class TestValidation:
    """Invalid solver input."""

    @pytest.mark.parametrize("observed", [-1.0, float('nan'), float('inf'), None])
    def test_bad_observed_price(self, observed):
        with pytest.raises(DomainPreconditionError):
            implied_vol('call', 100, 100, 0.25, 0.05, observed)

    def test_bad_iteration_cap(self):
        with pytest.raises(DomainPreconditionError):
            solve_implied_vol('call', 100, 100, 0.25, 0.05, 5.0, max_iterations=0)

    def test_bad_search_domain(self):
        with pytest.raises(DomainPreconditionError):
            solve_implied_vol('call', 100, 100, 0.25, 0.05, 5.0, lower_bound=2.0, upper_bound=1.0)

    def test_bad_option_type(self):
        with pytest.raises(DomainPreconditionError):
            implied_vol('future', 100, 100, 0.25, 0.05, 5.0)
