"""
Unit Tests for the Position Book

Test Categories:
    1. Adding positions (defaults, BSM pricing, IV back-solving)
    2. Id allocation (monotonic, never reused)
    3. Update / refresh semantics (stale until refresh, idempotent refresh)
    4. Clone and remove
    5. Aggregates and export
"""

import logging

import pytest

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from thetalab.config.settings import CalculatorSettings
from thetalab.core.position import (
    EXPORT_COLUMNS,
    IV_SOURCE_MARKET,
    IV_SOURCE_SOLVED,
    IV_SOURCE_SUPPLIED,
    InvalidInputError,
    MarketContext,
    Moneyness,
    PositionNotFoundError,
)
from thetalab.core.position_book import AGGREGATE_FIELDS, PositionBook
from thetalab.core.pricing import greeks, price


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def market():
    """Index market at 17450."""
    return MarketContext(spot=17450, rate=0.065, volatility=0.15)


@pytest.fixture
def book(market):
    return PositionBook(market)


@pytest.fixture
def straddle(book):
    """ATM straddle, 30 days."""
    call = book.add('call', strike=17450, days_to_expiry=30)
    put = book.add('put', strike=17450, days_to_expiry=30)
    return book, call, put


# =============================================================================
# Add
# =============================================================================

class TestAdd:
    """Tests for PositionBook.add()."""

    def test_defaults(self, book, market):
        position = book.add('call')

        assert position.id == 1
        assert position.strike == 17450.0
        assert position.days_to_expiry == 30
        assert position.implied_vol == pytest.approx(15.0)
        assert position.iv_source == IV_SOURCE_MARKET
        assert position.premium == pytest.approx(
            price('call', 17450, 17450, 30 / 365, 0.065, 0.15)
        )
        assert not position.is_stale
        assert position.moneyness is Moneyness.ATM

    def test_atm_strike_rounds_to_step(self):
        book = PositionBook(MarketContext(spot=17463, rate=0.065, volatility=0.15))
        assert book.atm_strike() == 17450.0
        assert book.add('put').strike == 17450.0

    def test_supplied_iv_prices_premium(self, book):
        position = book.add('put', strike=17400, days_to_expiry=14, implied_vol=18)

        assert position.iv_source == IV_SOURCE_SUPPLIED
        assert position.implied_vol == 18.0
        assert position.premium == pytest.approx(
            price('put', 17450, 17400, 14 / 365, 0.065, 0.18)
        )

    def test_supplied_premium_solves_iv(self, book):
        observed = price('put', 17450, 17400, 30 / 365, 0.065, 0.17)
        position = book.add('put', strike=17400, premium=observed, days_to_expiry=30)

        assert position.iv_source == IV_SOURCE_SOLVED
        assert position.implied_vol == pytest.approx(17.0, abs=0.1)
        assert position.theoretical_price == pytest.approx(observed, abs=1e-3)

    def test_premium_and_iv_both_supplied(self, book):
        position = book.add('call', strike=17500, premium=250, implied_vol=16)

        assert position.premium == 250.0
        assert position.implied_vol == 16.0
        assert position.iv_source == IV_SOURCE_SUPPLIED

    def test_string_inputs(self, book):
        position = book.add('CE', strike='17500', premium='200', days_to_expiry='7', implied_vol='14')

        assert position.strike == 17500.0
        assert position.days_to_expiry == 7

    @pytest.mark.parametrize("kwargs", [
        {'strike': -1},
        {'strike': 'abc'},
        {'premium': -5},
        {'days_to_expiry': 0},
        {'days_to_expiry': 400},
        {'implied_vol': 0},
    ])
    def test_invalid_input_leaves_book_unchanged(self, book, kwargs):
        with pytest.raises(InvalidInputError):
            book.add('call', **kwargs)

        assert len(book) == 0
        assert book.add('call').id == 1

    def test_invalid_type(self, book):
        with pytest.raises(InvalidInputError):
            book.add('straddle')

    def test_per_call_market(self, book):
        other = MarketContext(spot=18000, rate=0.065, volatility=0.2)
        position = book.add('call', market=other)

        assert position.strike == 18000.0
        assert position.implied_vol == pytest.approx(20.0)


# =============================================================================
# Ids
# =============================================================================

class TestIds:
    """Ids increase monotonically and are never reused."""

    def test_sequential(self, book):
        ids = [book.add('call').id for _ in range(3)]
        assert ids == [1, 2, 3]

    def test_not_reused_after_removing_highest(self, book):
        for _ in range(3):
            book.add('call')
        book.remove(3)

        assert book.add('put').id == 4

    def test_not_reused_after_clear(self, book):
        book.add('call')
        book.add('put')
        book.clear()

        assert book.is_empty
        assert book.add('call').id == 3

    def test_clone_takes_next_id(self, straddle):
        book, call, _ = straddle
        assert book.clone(call.id).id == 3


# =============================================================================
# Update and Refresh
# =============================================================================

class TestUpdateRefresh:
    """Update changes one field; refresh recomputes."""

    def test_update_does_not_recompute(self, straddle):
        book, call, _ = straddle
        theta_before = call.theta

        book.update(call.id, 'days', 7)

        assert call.days_to_expiry == 7
        assert call.is_stale
        assert call.theta == theta_before

    def test_refresh_recomputes(self, straddle, market):
        book, call, _ = straddle
        book.update(call.id, 'days', 7)
        book.refresh(call.id)

        expected = greeks('call', 17450, 17450, 7 / 365, 0.065, 0.15)
        assert not call.is_stale
        assert call.theta == pytest.approx(expected['theta'])
        assert call.gamma == pytest.approx(expected['gamma'])

    def test_refresh_is_idempotent(self, straddle):
        book, call, put = straddle
        for position in (call, put):
            first = dict(position.greeks(), price=position.theoretical_price)
            book.refresh(position.id)
            second = dict(position.greeks(), price=position.theoretical_price)
            assert first == second

    def test_refresh_idempotent_for_solved_iv(self, book):
        position = book.add('put', strike=17300, premium=95.0, days_to_expiry=21)
        iv_first = position.implied_vol
        greeks_first = position.greeks()

        book.refresh(position.id)

        assert position.implied_vol == iv_first
        assert position.greeks() == greeks_first

    def test_premium_change_resolves_iv(self, book):
        position = book.add('put', strike=17300, premium=95.0, days_to_expiry=21)
        iv_before = position.implied_vol

        book.update(position.id, 'premium', 140.0)
        book.refresh(position.id)

        assert position.implied_vol > iv_before

    def test_refresh_against_new_spot_reclassifies(self, straddle, market):
        book, call, put = straddle
        book.refresh_all(market.with_spot(17000))

        assert call.moneyness is Moneyness.DEEP_OTM
        assert put.moneyness is Moneyness.DEEP_ITM

    def test_invalid_update_leaves_position_untouched(self, straddle):
        book, call, _ = straddle
        with pytest.raises(InvalidInputError):
            book.update(call.id, 'strike', '')

        assert call.strike == 17450.0
        assert not call.is_stale

    def test_unknown_field(self, straddle):
        book, call, _ = straddle
        with pytest.raises(InvalidInputError):
            book.update(call.id, 'gamma', 0.1)

    def test_unknown_id(self, book):
        with pytest.raises(PositionNotFoundError):
            book.update(42, 'strike', 100)
        with pytest.raises(PositionNotFoundError):
            book.refresh(42)


# =============================================================================
# Clone and Remove
# =============================================================================

class TestCloneRemove:
    """Tests for clone() and remove()."""

    def test_clone_shifts_call_up_put_down(self, straddle):
        book, call, put = straddle

        call_clone = book.clone(call.id)
        put_clone = book.clone(put.id)

        assert call_clone.strike == 17550.0
        assert put_clone.strike == 17350.0
        assert call_clone.premium == call.premium
        assert not call_clone.is_stale
        assert call_clone.theoretical_price < call.theoretical_price

    def test_clone_custom_offset(self, market):
        settings = CalculatorSettings()
        settings.positions.clone_offset = 50.0
        book = PositionBook(market, settings)
        call = book.add('call')

        assert book.clone(call.id).strike == 17500.0

    def test_clone_non_positive_strike_rejected(self, book):
        put = book.add('put', strike=80, premium=1.0, implied_vol=20)
        with pytest.raises(InvalidInputError):
            book.clone(put.id)
        assert len(book) == 1

    def test_remove(self, straddle):
        book, call, put = straddle
        removed = book.remove(call.id)

        assert removed is call
        assert book.ids == [put.id]
        assert call.id not in book

    def test_remove_unknown(self, straddle):
        book, _, _ = straddle
        with pytest.raises(PositionNotFoundError):
            book.remove(99)
        assert len(book) == 2


# =============================================================================
# Aggregates and Export
# =============================================================================

class TestAggregate:
    """Portfolio sums."""

    def test_theta_is_plain_sum(self, straddle):
        book, call, put = straddle
        totals = book.aggregate()

        assert abs(totals['total_theta'] - (call.theta + put.theta)) < 1e-9
        assert totals['total_theta'] < 0

    def test_all_fields(self, straddle):
        book, call, put = straddle
        totals = book.aggregate()

        assert set(totals) == set(AGGREGATE_FIELDS)
        assert totals['total_delta'] == pytest.approx(call.delta + put.delta)
        assert totals['total_premium'] == pytest.approx(call.premium + put.premium)

    def test_empty_book(self, book):
        assert all(value == 0 for value in book.aggregate().values())

    def test_overrides_do_not_leak(self, straddle):
        book, call, put = straddle
        book.override_greek(call.id, 'theta', -999)

        assert book.aggregate()['total_theta'] == pytest.approx(call.theta + put.theta)
        assert call.display_greeks()['theta'] == -999

    def test_stale_warning(self, straddle, caplog):
        book, call, _ = straddle
        book.update(call.id, 'premium', 400)

        with caplog.at_level(logging.WARNING, logger='thetalab.core.position_book'):
            book.aggregate()

        assert "stale" in caplog.text


class TestExport:
    """Flat export shape."""

    def test_dataframe_columns(self, straddle):
        book, _, _ = straddle
        df = book.to_dataframe()

        assert list(df.columns) == EXPORT_COLUMNS
        assert len(df) == 2
        assert list(df['type']) == ['call', 'put']

    def test_empty_dataframe(self, book):
        df = book.to_dataframe()
        assert list(df.columns) == EXPORT_COLUMNS
        assert df.empty

    def test_container_protocol(self, straddle):
        book, call, put = straddle

        assert len(book) == 2
        assert [p.id for p in book] == [call.id, put.id]
        assert book.get(put.id) is put
        assert "positions=2" in repr(book)
