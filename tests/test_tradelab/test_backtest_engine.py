"""
Tests for tradelab/backtesting/engine.py

Covers:
- End-to-end SMA crossover scenario (trade count, prices, P&L)
- One equity point per bar, determinism
- Fatal input errors (empty data, out-of-order timestamps, bad config)
- Date window, cancellation, progress reporting
- Entry policy, end-of-run closing, risk exits, commission sizing
- run_many batch execution
"""

import threading
from datetime import datetime
from decimal import Decimal

import pandas as pd
import pytest

from tradelab.backtesting import (
    BacktestConfig,
    BacktestEngine,
    BacktestResult,
    BacktestStatus,
    run_many,
)
from tradelab.data import bars_to_dataframe
from tradelab.exceptions import (
    ConfigError,
    DataOrderError,
    EmptyDatasetError,
    StrategyValidationError,
)
from tradelab.strategy import StrategyCompiler


@pytest.fixture
def zero_commission():
    return BacktestConfig(initial_capital=10000, commission_rate=0.0)


def single_indicator_strategy(buy, sell, size=1.0, risk=None):
    """Strategy with one SMA(1) named `px` (equal to the close)."""
    strategy = {
        'name': 'Test Strategy',
        'parameters': {'symbol': 'TEST', 'position_size': size},
        'indicators': [{'name': 'px', 'type': 'SMA', 'parameters': {'period': 1}}],
        'signals': {'buy': buy, 'sell': sell},
    }
    if risk:
        strategy['risk_management'] = risk
    return strategy


# =============================================================================
# End-to-End Scenario
# =============================================================================

class TestCrossoverScenario:
    """SMA(2)/SMA(4) crossover over a fixed close series."""

    def test_one_round_trip(self, sma_strategy, bar_factory, crossover_closes, zero_commission):
        """Buy at 20 on the up-cross, sell at 10 on the down-cross."""
        result = BacktestEngine(zero_commission).run(sma_strategy, bar_factory(crossover_closes))

        assert result.status == BacktestStatus.COMPLETED
        assert len(result.trades) == 1
        trade = result.trades[0]
        assert trade.entry_price == Decimal('20')
        assert trade.exit_price == Decimal('10')
        assert trade.quantity == Decimal('500')
        assert trade.realized_pnl == Decimal('-5000')
        assert trade.exit_reason == 'Fast SMA crosses below slow SMA'
        assert float(result.final_portfolio.total_value) == pytest.approx(5000.0)

    def test_equity_curve_one_point_per_bar(self, sma_strategy, bar_factory, crossover_closes, zero_commission):
        """Equity curve length equals the number of bars."""
        bars = bar_factory(crossover_closes)

        result = BacktestEngine(zero_commission).run(sma_strategy, bars)

        assert len(result.equity_curve) == len(bars)
        assert [p.timestamp for p in result.equity_curve] == [b.timestamp for b in bars]
        assert result.metadata['bars_processed'] == len(bars)

    def test_summary_metrics(self, sma_strategy, bar_factory, crossover_closes, zero_commission):
        """Summary reflects the single losing trade."""
        result = BacktestEngine(zero_commission).run(sma_strategy, bar_factory(crossover_closes))

        summary = result.summary
        assert summary.total_trades == 1
        assert summary.losing_trades == 1
        assert summary.win_rate == 0.0
        assert summary.total_return == pytest.approx(-0.5)
        assert summary.max_drawdown == pytest.approx(0.5)
        assert summary.profit_factor == 0.0

    def test_deterministic(self, sma_strategy, bar_factory, crossover_closes, zero_commission):
        """Same inputs give identical results."""
        engine = BacktestEngine(zero_commission)
        bars = bar_factory(crossover_closes)

        first = engine.run(sma_strategy, bars)
        second = engine.run(sma_strategy, bars)

        assert first.summary == second.summary
        assert [t.to_dict() for t in first.trades] == [t.to_dict() for t in second.trades]

    def test_compiled_strategy_reused(self, sma_strategy, bar_factory, crossover_closes, zero_commission):
        """A compiled strategy is reset before each run."""
        compiled = StrategyCompiler().load_strategy(sma_strategy)
        engine = BacktestEngine(zero_commission)
        bars = bar_factory(crossover_closes)

        first = engine.run(compiled, bars)
        second = engine.run(compiled, bars)

        assert len(first.trades) == len(second.trades) == 1

    def test_dataframe_input(self, sma_strategy, bar_factory, crossover_closes, zero_commission):
        """An OHLCV DataFrame replays like the bar list."""
        df = bars_to_dataframe(bar_factory(crossover_closes))

        result = BacktestEngine(zero_commission).run(sma_strategy, df)

        assert len(result.equity_curve) == len(df)
        assert len(result.trades) == 1

    def test_commission_sizing(self, sma_strategy, bar_factory, crossover_closes):
        """Entry value plus commission fits the available cash."""
        config = BacktestConfig(initial_capital=10000, commission_rate=0.001)

        result = BacktestEngine(config).run(sma_strategy, bar_factory(crossover_closes))

        trade = result.trades[0]
        assert trade.entry_value + trade.entry_commission <= Decimal('10000')
        assert trade.quantity == Decimal('499.50049950')

    def test_total_return_includes_closing_commission(self, sma_strategy, bar_factory):
        """Return matches the final value after the end-of-run close pays its fee."""
        config = BacktestConfig(initial_capital=10000, commission_rate=0.01)

        result = BacktestEngine(config).run(sma_strategy, bar_factory([10, 10, 10, 10, 20, 20]))

        assert result.trades[0].exit_reason == 'End of backtest'
        final_value = float(result.final_portfolio.total_value)
        assert final_value == pytest.approx(9801.98, abs=0.01)
        assert result.summary.total_return == pytest.approx((final_value - 10000) / 10000)
        assert result.summary.total_return == pytest.approx(-0.0198, abs=1e-4)
        assert float(result.trades[0].realized_pnl) == pytest.approx(-198.02, abs=0.01)


# =============================================================================
# Fatal Input Errors
# =============================================================================

class TestFatalInputs:
    """Errors that abort the run."""

    def test_empty_bars(self, sma_strategy):
        """No bars -> EmptyDatasetError and FAILED status."""
        engine = BacktestEngine()

        with pytest.raises(EmptyDatasetError):
            engine.run(sma_strategy, [])
        assert engine.status == BacktestStatus.FAILED

    def test_out_of_order_bars(self, sma_strategy, bar_factory):
        """Non-increasing timestamps -> DataOrderError under strict ordering."""
        bars = bar_factory([10, 11, 12])
        bars[1], bars[2] = bars[2], bars[1]

        with pytest.raises(DataOrderError):
            BacktestEngine().run(sma_strategy, bars)

    def test_out_of_order_sorted_when_lenient(self, sma_strategy, bar_factory):
        """strict_ordering=False sorts instead of failing."""
        bars = bar_factory([10, 11, 12])
        shuffled = [bars[2], bars[0], bars[1]]

        result = BacktestEngine(BacktestConfig(strict_ordering=False)).run(sma_strategy, shuffled)

        assert [p.timestamp for p in result.equity_curve] == [b.timestamp for b in bars]

    def test_invalid_config(self, sma_strategy, bar_factory):
        """Invalid run config -> ConfigError."""
        with pytest.raises(ConfigError):
            BacktestEngine(BacktestConfig(initial_capital=-1)).run(sma_strategy, bar_factory([1]))

    def test_invalid_strategy(self, sma_strategy, bar_factory):
        """Strategy validation errors surface before replay."""
        del sma_strategy['name']

        with pytest.raises(StrategyValidationError):
            BacktestEngine().run(sma_strategy, bar_factory([1]))


# =============================================================================
# Window / Cancellation / Progress
# =============================================================================

class TestRunControl:
    """Test date window, cancellation and progress reporting."""

    def test_date_window(self, sma_strategy, bar_factory):
        """Only bars inside [start, end] are replayed; date-only end is inclusive."""
        config = BacktestConfig(start_date='2024-01-03', end_date='2024-01-05')

        result = BacktestEngine(config).run(sma_strategy, bar_factory(range(1, 11)))

        stamps = [p.timestamp for p in result.equity_curve]
        assert stamps == [datetime(2024, 1, 3), datetime(2024, 1, 4), datetime(2024, 1, 5)]

    def test_empty_window(self, sma_strategy, bar_factory):
        """A window with no bars is an empty dataset."""
        config = BacktestConfig(start_date='2030-01-01')

        with pytest.raises(EmptyDatasetError):
            BacktestEngine(config).run(sma_strategy, bar_factory([1, 2]))

    def test_progress_callback(self, sma_strategy, bar_factory):
        """Progress is reported after every bar."""
        calls = []

        BacktestEngine().run(sma_strategy, bar_factory([1, 2, 3]),
                             progress_callback=lambda done, total: calls.append((done, total)))

        assert calls == [(1, 3), (2, 3), (3, 3)]

    def test_cancellation(self, sma_strategy, bar_factory):
        """Setting the cancel event stops the run with a partial result."""
        cancel = threading.Event()

        def progress(done, total):
            if done == 3:
                cancel.set()

        engine = BacktestEngine()
        result = engine.run(sma_strategy, bar_factory(range(1, 11)),
                            progress_callback=progress, cancel_event=cancel)

        assert result.status == BacktestStatus.CANCELLED
        assert engine.status == BacktestStatus.CANCELLED
        assert len(result.equity_curve) == 3
        assert result.metadata['bars_processed'] == 3
        assert result.metadata['total_bars'] == 10


# =============================================================================
# Execution Policy
# =============================================================================

class TestExecutionPolicy:
    """Test entry policy, end-of-run closing and risk exits."""

    def test_first_match_wins(self, bar_factory, zero_commission):
        """Only the first matching buy condition fires per bar by default."""
        strategy = single_indicator_strategy(
            buy=[{'condition': 'px > 0', 'size': 0.25}, {'condition': 'px > 1', 'size': 0.25}],
            sell=[{'condition': 'px < 0'}],
        )

        result = BacktestEngine(zero_commission).run(strategy, bar_factory([100]))

        assert result.metadata['buy_signals'] == 1
        assert len(result.trades) == 1

    def test_multiple_entries(self, bar_factory):
        """allow_multiple_entries opens one lot per matching condition."""
        strategy = single_indicator_strategy(
            buy=[{'condition': 'px > 0', 'size': 0.25}, {'condition': 'px > 1', 'size': 0.25}],
            sell=[{'condition': 'px < 0'}],
        )
        config = BacktestConfig(initial_capital=10000, commission_rate=0.0, allow_multiple_entries=True)

        result = BacktestEngine(config).run(strategy, bar_factory([100]))

        assert result.metadata['buy_signals'] == 2
        assert len(result.trades) == 2

    def test_close_at_end(self, bar_factory, zero_commission):
        """Open positions are closed at the last close with 'End of backtest'."""
        strategy = single_indicator_strategy(buy=['close > close[1]'], sell=['px < 0'])

        result = BacktestEngine(zero_commission).run(strategy, bar_factory([10, 11, 12]))

        assert len(result.trades) == 1
        assert result.trades[0].exit_reason == 'End of backtest'
        assert result.trades[0].exit_price == Decimal('12')
        assert result.final_portfolio.open_positions == 0

    def test_keep_positions_open(self, bar_factory):
        """close_positions_at_end=False leaves the position open."""
        strategy = single_indicator_strategy(buy=['close > close[1]'], sell=['px < 0'])
        config = BacktestConfig(commission_rate=0.0, close_positions_at_end=False)

        result = BacktestEngine(config).run(strategy, bar_factory([10, 11, 12]))

        assert result.trades == []
        assert result.final_portfolio.open_positions == 1

    def test_stop_loss_exit(self, bar_factory, zero_commission):
        """A 5% stop closes the position at the bar close."""
        strategy = single_indicator_strategy(
            buy=['close > close[1]'], sell=['px < 0'], risk={'stop_loss': 0.05},
        )

        result = BacktestEngine(zero_commission).run(strategy, bar_factory([100, 110, 100, 90]))

        assert len(result.trades) == 1
        trade = result.trades[0]
        assert trade.exit_reason == 'Stop Loss'
        assert trade.entry_price == Decimal('110')
        assert trade.exit_price == Decimal('100')
        assert float(trade.realized_pnl) == pytest.approx(-909.0909, abs=1e-3)

    def test_max_positions_override(self, bar_factory):
        """max_positions in the run config caps open lots."""
        strategy = single_indicator_strategy(buy=['px > 0'], sell=['px < 0'], size=0.1)
        config = BacktestConfig(commission_rate=0.0, max_positions=2, close_positions_at_end=False)

        result = BacktestEngine(config).run(strategy, bar_factory([10, 10, 10, 10]))

        assert result.final_portfolio.open_positions == 1
        assert result.metadata['skipped_signals'] == 2

    def test_signal_size_override(self, bar_factory, zero_commission):
        """A condition's size overrides the strategy default."""
        strategy = single_indicator_strategy(buy=[{'condition': 'px > 0', 'size': 0.5}], sell=['px < 0'])

        result = BacktestEngine(zero_commission).run(strategy, bar_factory([100]))

        assert result.trades[0].quantity == Decimal('50')


# =============================================================================
# Batch Runs
# =============================================================================

class TestRunMany:
    """Test run_many."""

    def test_independent_results(self, sma_strategy, bar_factory, crossover_closes):
        """Each job gets its own portfolio and indicators."""
        bars = bar_factory(crossover_closes)
        jobs = [
            {'strategy': sma_strategy, 'bars': bars, 'config': BacktestConfig(initial_capital=10000, commission_rate=0.0)},
            {'strategy': sma_strategy, 'bars': bars, 'config': BacktestConfig(initial_capital=20000, commission_rate=0.0)},
        ]

        results = run_many(jobs, max_workers=2)

        assert [r.status for r in results] == [BacktestStatus.COMPLETED] * 2
        assert float(results[0].trades[0].realized_pnl) == pytest.approx(-5000)
        assert float(results[1].trades[0].realized_pnl) == pytest.approx(-10000)

    def test_failed_job_reported(self, sma_strategy, bar_factory):
        """A job with bad inputs yields a FAILED result."""
        jobs = [
            {'strategy': sma_strategy, 'bars': []},
            {'strategy': sma_strategy, 'bars': bar_factory([1, 2])},
        ]

        results = run_many(jobs)

        assert results[0].status == BacktestStatus.FAILED
        assert 'Empty dataset' in results[0].error
        assert results[1].status == BacktestStatus.COMPLETED


# =============================================================================
# Results Formatting
# =============================================================================

class TestBacktestResult:
    """Test BacktestResult DataFrames and text."""

    @pytest.fixture
    def result(self, sma_strategy, bar_factory, crossover_closes, zero_commission):
        return BacktestEngine(zero_commission).run(sma_strategy, bar_factory(crossover_closes))

    def test_trades_df(self, result):
        """One row per closed trade."""
        df = result.trades_df()

        assert len(df) == 1
        assert df.loc[0, 'realized_pnl'] == pytest.approx(-5000.0)
        assert pd.api.types.is_datetime64_any_dtype(df['entry_time'])

    def test_equity_df(self, result):
        """Equity curve indexed by timestamp."""
        df = result.equity_df()

        assert isinstance(df.index, pd.DatetimeIndex)
        assert len(df) == 10
        assert df['total_value'].iloc[-1] == pytest.approx(5000.0)

    def test_empty_frames(self):
        """Empty results still have the expected columns."""
        empty = BacktestResult(status=BacktestStatus.CANCELLED)

        assert empty.trades_df().empty
        assert 'total_value' in empty.equity_df().columns

    def test_summary_text(self, result):
        """Text summary names the strategy and exit reasons."""
        text = result.summary_text()

        assert 'BACKTEST RESULTS: SMA Crossover' in text
        assert 'Total Trades:  1' in text
        assert 'Fast SMA crosses below slow SMA' in text

    def test_to_dict(self, result):
        """to_dict is plain data."""
        data = result.to_dict()

        assert data['status'] == 'COMPLETED'
        assert data['summary']['total_trades'] == 1
        assert len(data['equity_curve']) == 10
        assert data['config']['initial_capital'] == 10000
        assert result.exit_reasons() == {'Fast SMA crosses below slow SMA': 1}
