"""
Tests for tradelab/strategy/engine.py

Covers:
- execute_strategy signal generation over a bar stream
- Priority ordering of simultaneous signals
- StrategyExecutionStats bookkeeping (executions, signals, errors)
- Indicator registration through the engine
"""

import pytest

from tradelab.indicators import BaseIndicator
from tradelab.strategy import SignalType, StrategyEngine


class Exploding(BaseIndicator):
    """Indicator whose update always fails."""

    kind = 'BOOM'

    def calculate(self, bar):
        raise RuntimeError("feed error")


def collect(engine, compiled, bars):
    """Signals per bar index."""
    fired = {}
    for i, bar in enumerate(bars):
        signals = engine.execute_strategy(compiled, bar)
        if signals:
            fired[i] = signals
    return fired


# =============================================================================
# Signal Generation Tests
# =============================================================================

class TestExecuteStrategy:
    """Test bar-by-bar signal generation."""

    def test_crossover_signals(self, sma_strategy, bar_factory, crossover_closes):
        """Buy on the up-cross bar, sell on the down-cross bar."""
        engine = StrategyEngine()
        compiled = engine.load_strategy(sma_strategy)

        fired = collect(engine, compiled, bar_factory(crossover_closes))

        assert sorted(fired) == [4, 7]
        buy = fired[4][0]
        sell = fired[7][0]
        assert buy.signal_type == SignalType.BUY
        assert buy.price == 20.0
        assert buy.reason == 'Fast SMA crosses above slow SMA'
        assert buy.symbol == 'BTCUSD'
        assert sell.signal_type == SignalType.SELL
        assert sell.price == 10.0

    def test_signals_sorted_by_priority(self, sma_strategy, bar_factory):
        """All matching conditions are returned, lowest priority first."""
        sma_strategy['signals'] = {
            'buy': [
                {'condition': 'close > 0', 'priority': 5, 'id': 'b5'},
                {'condition': 'close > 1', 'priority': 1, 'id': 'b1'},
                {'condition': 'sma_fast > 0 OR sma_slow > 0'},
            ],
            'sell': [{'condition': 'close > 0', 'priority': 3, 'id': 's3'}],
        }
        engine = StrategyEngine()
        compiled = engine.load_strategy(sma_strategy)

        signals = engine.execute_strategy(compiled, bar_factory([10])[0])

        assert [s.condition_id for s in signals] == ['b1', 's3', 'b5']

    def test_signal_to_dict(self, sma_strategy, bar_factory, crossover_closes):
        """TradeSignal serializes with its type value."""
        engine = StrategyEngine()
        compiled = engine.load_strategy(sma_strategy)

        fired = collect(engine, compiled, bar_factory(crossover_closes))

        data = fired[4][0].to_dict()
        assert data['type'] == 'BUY'
        assert data['strategy_name'] == 'SMA Crossover'


# =============================================================================
# Execution Stats Tests
# =============================================================================

class TestExecutionStats:
    """Test StrategyExecutionStats."""

    def test_stats_counts(self, sma_strategy, bar_factory, crossover_closes):
        """Executions and signal counts accumulate per strategy."""
        engine = StrategyEngine()
        compiled = engine.load_strategy(sma_strategy)
        collect(engine, compiled, bar_factory(crossover_closes))

        stats = engine.get_execution_stats(compiled.strategy_id)

        assert stats.total_executions == 10
        assert stats.total_signals == 2
        assert stats.buy_signals == 1
        assert stats.sell_signals == 1
        assert stats.error_count == 0
        assert stats.success_rate == 1.0
        assert stats.last_execution is not None
        assert stats.average_execution_time_ms >= 0

    def test_stats_returns_copy(self, sma_strategy, bar_factory):
        """Mutating the returned stats does not affect the engine."""
        engine = StrategyEngine()
        compiled = engine.load_strategy(sma_strategy)
        engine.execute_strategy(compiled, bar_factory([10])[0])

        stats = engine.get_execution_stats(compiled.strategy_id)
        stats.total_executions = 99

        assert engine.get_execution_stats(compiled.strategy_id).total_executions == 1

    def test_reload_keeps_stats(self, sma_strategy, bar_factory):
        """Loading an identical description again does not reset its stats."""
        engine = StrategyEngine()
        first = engine.load_strategy(sma_strategy)
        engine.execute_strategy(first, bar_factory([10])[0])

        second = engine.load_strategy(sma_strategy)

        assert second.strategy_id == first.strategy_id
        assert engine.get_execution_stats(first.strategy_id).total_executions == 1

    def test_unknown_strategy_raises(self):
        """Stats for an unknown id raise KeyError."""
        with pytest.raises(KeyError):
            StrategyEngine().get_execution_stats('missing')

    def test_errors_counted_and_raised(self, sma_strategy, bar_factory):
        """A failing indicator increments error_count and propagates."""
        engine = StrategyEngine()
        engine.register_indicator('BOOM', Exploding)
        sma_strategy['indicators'].append({'name': 'boom', 'type': 'BOOM', 'parameters': {'period': 1}})
        sma_strategy['signals']['sell'].append({'condition': 'boom > 0'})
        compiled = engine.load_strategy(sma_strategy)

        with pytest.raises(RuntimeError):
            engine.execute_strategy(compiled, bar_factory([10])[0])

        stats = engine.get_execution_stats(compiled.strategy_id)
        assert stats.error_count == 1
        assert stats.total_executions == 0
        assert stats.success_rate == 0.0

    def test_stats_to_dict(self, sma_strategy):
        """to_dict includes the derived success rate."""
        engine = StrategyEngine()
        compiled = engine.load_strategy(sma_strategy)

        data = engine.get_execution_stats(compiled.strategy_id).to_dict()

        assert data['strategy_id'] == compiled.strategy_id
        assert data['success_rate'] == 1.0


# =============================================================================
# Registry Tests
# =============================================================================

class TestEngineIndicators:
    """Test indicator registration via the engine."""

    def test_register_and_unregister(self):
        """Registered kinds appear in available_indicators."""
        engine = StrategyEngine()

        engine.register_indicator('BOOM', Exploding)
        assert 'BOOM' in engine.available_indicators()

        engine.unregister_indicator('BOOM')
        assert 'BOOM' not in engine.available_indicators()

    def test_validate_strategy(self, sma_strategy):
        """validate_strategy delegates to the compiler."""
        assert StrategyEngine().validate_strategy(sma_strategy).is_valid
