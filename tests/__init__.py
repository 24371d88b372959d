"""
Test Suite for Options Theta Lab

Unit tests for the calculator, organized by module.

Test modules:
    - test_math_kernel: Normal distribution helpers and d1/d2
    - test_pricing: BSM prices, Greeks and expiry boundary
    - test_implied_volatility: Bisection solver round trips and fallbacks
    - test_parity: Put-call parity checks
    - test_position: Field parsing, moneyness and OptionPosition
    - test_position_book: Position lifecycle and aggregates
    - test_projection: Decay and P&L series, breakevens
    - test_erosion: Premium erosion models and confidence bands
    - test_risk: Risk spotlight
    - test_config: Settings, environments and logging setup

Run all tests:
    pytest tests/ -v

Run with coverage:
    pytest tests/ --cov=thetalab --cov-report=term-missing
"""
