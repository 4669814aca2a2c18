"""
Shared fixtures for tradelab tests.

Provides bar builders and a small SMA crossover strategy description used
across the strategy, portfolio and backtest tests.
"""

from datetime import datetime, timedelta

import pytest

from tradelab.data import Bar


def make_bars(closes, start=datetime(2024, 1, 1), step=timedelta(days=1)):
    """Flat bars (open == high == low == close) at a fixed interval."""
    return [Bar.flat(start + i * step, float(price), volume=100.0) for i, price in enumerate(closes)]


@pytest.fixture
def bar_factory():
    """Expose make_bars as a fixture."""
    return make_bars


@pytest.fixture
def crossover_closes():
    """
    SMA(2)/SMA(4) cross up on index 4 (close 20) and down on index 7 (close 10).
    """
    return [10, 10, 10, 10, 20, 20, 20, 10, 10, 10]


@pytest.fixture
def sma_strategy():
    """SMA crossover strategy using the full account per entry."""
    return {
        'name': 'SMA Crossover',
        'description': 'Fast/slow SMA crossover',
        'version': '1.0',
        'parameters': {
            'symbol': 'BTCUSD',
            'position_size': 1.0,
            'fast_period': 2,
            'slow_period': 4,
        },
        'indicators': [
            {'name': 'sma_fast', 'type': 'SMA', 'parameters': {'period': '{{parameters.fast_period}}'}},
            {'name': 'sma_slow', 'type': 'SMA', 'parameters': {'period': '{{slow_period}}'}},
        ],
        'signals': {
            'buy': [{
                'condition': 'sma_fast > sma_slow AND sma_fast[-1] <= sma_slow[-1]',
                'description': 'Fast SMA crosses above slow SMA',
            }],
            'sell': [{
                'condition': 'crossunder(sma_fast, sma_slow)',
                'description': 'Fast SMA crosses below slow SMA',
            }],
        },
    }
