"""
Backtest Engine - Top-level Orchestrator

Replays a historical bar sequence through a compiled strategy:
1. Update every indicator with the bar
2. Evaluate buy conditions in priority order (first match wins unless
   allow_multiple_entries) and open positions sized from the signal
3. Evaluate sell conditions when a position is held; close on first match
4. Apply stop-loss / take-profit exits at the bar close
5. Record one equity-curve point per bar
After the loop, remaining positions are closed at the last close and the
trades and equity curve go through performance analytics.

Portfolio constraint failures (insufficient cash, limits) skip that one
signal; empty or out-of-order data aborts the run with a FAILED status.

Usage:
    from tradelab.backtesting.engine import BacktestEngine
    from tradelab.backtesting.config import BacktestConfig

    config = BacktestConfig(initial_capital=10000, commission_rate=0.001)
    engine = BacktestEngine(config)
    result = engine.run(strategy_dict, bars)
    print(result.summary_text())
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from decimal import ROUND_DOWN, Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import pandas as pd

from tradelab.backtesting.analytics.performance import calculate_performance_metrics
from tradelab.backtesting.analytics.results_formatter import BacktestResult, BacktestStatus
from tradelab.backtesting.config import BacktestConfig, ProgressCallback
from tradelab.backtesting.simulation.models import ExitReason, PortfolioSnapshot
from tradelab.backtesting.simulation.portfolio import Portfolio, to_decimal
from tradelab.conditions.evaluator import ConditionEvaluator
from tradelab.data import Bar, bars_from_dataframe
from tradelab.exceptions import (
    ConfigError,
    DataOrderError,
    EmptyDatasetError,
    PortfolioError,
    TradelabError,
)
from tradelab.strategy.compiler import CompiledStrategy, StrategyCompiler
from tradelab.strategy.config import StrategyConfig
from tradelab.strategy.signals import SignalType, TradeSignal, generate_signals

logger = logging.getLogger(__name__)

# Quantities are rounded down to this many decimal places
QUANTITY_QUANTUM = Decimal('0.00000001')

BarInput = Union[Sequence[Bar], pd.DataFrame]
StrategyInput = Union[CompiledStrategy, StrategyConfig, Mapping[str, Any]]


class BacktestEngine:
    """
    Single-threaded, deterministic bar replay.

    One engine can run many backtests one after another; each run builds
    its own Portfolio and evaluation context and resets the compiled
    strategy's indicators first. `status` reflects the most recent run.

    Args:
        config: Default BacktestConfig for run() calls that pass none
        compiler: Used when run() receives a strategy dict / StrategyConfig
    """

    def __init__(
        self,
        config: Optional[BacktestConfig] = None,
        compiler: Optional[StrategyCompiler] = None,
    ):
        self._config = config or BacktestConfig()
        self._compiler = compiler or StrategyCompiler()
        self.status = BacktestStatus.INITIALIZED

    def run(
        self,
        strategy: StrategyInput,
        bars: BarInput,
        config: Optional[BacktestConfig] = None,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> BacktestResult:
        """
        Execute one backtest.

        Args:
            strategy: CompiledStrategy, StrategyConfig or raw strategy dict
            bars: Bars in timestamp order, or an OHLCV DataFrame
            config: Overrides the engine's default config for this run
            progress_callback: Called as (bars_done, total_bars) after each bar
            cancel_event: Checked once per bar; when set the run stops and a
                partial CANCELLED result is returned

        Returns:
            BacktestResult (COMPLETED or CANCELLED)

        Raises:
            ConfigError: Invalid BacktestConfig
            StrategyValidationError: Strategy description failed validation
            EmptyDatasetError: No bars (after the date window)
            DataOrderError: Timestamps not strictly increasing (strict_ordering)
        """
        config = config or self._config
        self.status = BacktestStatus.RUNNING
        started = time.perf_counter()

        try:
            issues = config.validate()
            if issues:
                raise ConfigError("Invalid backtest config: " + "; ".join(issues))
            compiled = self._resolve_strategy(strategy)
            replay = self._prepare_bars(bars, config)
        except Exception as e:
            self.status = BacktestStatus.FAILED
            logger.error("Backtest failed before replay: %s", e)
            raise

        compiled.reset()
        portfolio = self._build_portfolio(compiled, config)
        context = compiled.new_context()
        evaluator = ConditionEvaluator(compiled.functions)
        symbol = compiled.symbol
        total = len(replay)
        equity_curve: List[PortfolioSnapshot] = []
        counters = {'buy_signals': 0, 'sell_signals': 0, 'skipped_signals': 0}

        logger.info("Running backtest: %s on %s, %d bars (%s to %s)",
                    compiled.name, symbol, total, replay[0].timestamp, replay[-1].timestamp)

        try:
            for index, bar in enumerate(replay):
                if cancel_event is not None and cancel_event.is_set():
                    self.status = BacktestStatus.CANCELLED
                    logger.warning("Backtest cancelled after %d/%d bars", index, total)
                    break

                compiled.update(bar)
                context.push_bar(bar)
                prices = {symbol: bar.close}

                buys = generate_signals(
                    compiled, SignalType.BUY, context, evaluator, bar,
                    first_only=not config.allow_multiple_entries,
                )
                for signal in buys:
                    counters['buy_signals'] += 1
                    if not self._execute_buy(portfolio, compiled, signal, prices):
                        counters['skipped_signals'] += 1

                if portfolio.has_position(symbol):
                    for signal in generate_signals(compiled, SignalType.SELL, context, evaluator, bar):
                        counters['sell_signals'] += 1
                        if not self._execute_sell(portfolio, signal):
                            counters['skipped_signals'] += 1

                portfolio.apply_risk_management(prices, bar.timestamp)
                equity_curve.append(portfolio.get_snapshot(prices, bar.timestamp))

                if progress_callback is not None:
                    progress_callback(index + 1, total)
        except Exception as e:
            self.status = BacktestStatus.FAILED
            logger.error("Backtest failed at bar %d: %s", len(equity_curve), e)
            raise

        if self.status != BacktestStatus.CANCELLED:
            self.status = BacktestStatus.COMPLETED
            if config.close_positions_at_end:
                self._close_remaining(portfolio, replay[-1])

        last_bar = replay[len(equity_curve) - 1] if equity_curve else replay[0]
        final = portfolio.get_snapshot({symbol: last_bar.close}, last_bar.timestamp)
        trades = portfolio.get_closed_trades()
        summary = calculate_performance_metrics(
            trades, equity_curve, config.initial_capital, config.risk_free_rate,
            final_value=final.total_value,
        )

        elapsed = time.perf_counter() - started
        result = BacktestResult(
            status=self.status,
            summary=summary,
            trades=trades,
            equity_curve=equity_curve,
            final_portfolio=final,
            config=config.to_dict(),
            metadata={
                'strategy_name': compiled.name,
                'strategy_id': compiled.strategy_id,
                'symbol': symbol,
                'bars_processed': len(equity_curve),
                'total_bars': total,
                'start_date': equity_curve[0].timestamp if equity_curve else None,
                'end_date': equity_curve[-1].timestamp if equity_curve else None,
                'execution_time': elapsed,
                **counters,
            },
        )
        logger.info("Backtest %s: %d trades, return %.2f%%, sharpe %.2f, max dd %.2f%% (%.2fs)",
                    self.status.value, summary.total_trades, summary.total_return * 100,
                    summary.sharpe_ratio, summary.max_drawdown * 100, elapsed)
        return result

    # ── Setup ───────────────────────────────────────────────────────

    def _resolve_strategy(self, strategy: StrategyInput) -> CompiledStrategy:
        if isinstance(strategy, CompiledStrategy):
            return strategy
        return self._compiler.load_strategy(strategy)

    @staticmethod
    def _prepare_bars(bars: BarInput, config: BacktestConfig) -> List[Bar]:
        """Convert, check ordering and apply the date window."""
        if isinstance(bars, pd.DataFrame):
            bars = bars_from_dataframe(bars)
        bars = list(bars or [])
        if not bars:
            raise EmptyDatasetError("Empty dataset: no bars to replay")

        for prev, curr in zip(bars, bars[1:]):
            if curr.timestamp <= prev.timestamp:
                if config.strict_ordering:
                    raise DataOrderError(
                        f"Bars out of order: {curr.timestamp} follows {prev.timestamp}"
                    )
                logger.warning("Bars not in timestamp order; sorting")
                bars = sorted(bars, key=lambda b: b.timestamp)
                break

        if config.start_date is not None or config.end_date is not None:
            bars = [b for b in bars if config.in_window(b.timestamp)]
            if not bars:
                raise EmptyDatasetError(
                    f"Empty dataset: no bars between {config.start_date} and {config.end_date}"
                )
        return bars

    @staticmethod
    def _build_portfolio(compiled: CompiledStrategy, config: BacktestConfig) -> Portfolio:
        risk = compiled.risk
        if config.max_positions is not None:
            risk = replace(risk, max_positions=config.max_positions)
        return Portfolio(risk=risk, strategy_name=compiled.name, **config.portfolio_kwargs())

    # ── Execution ───────────────────────────────────────────────────

    @staticmethod
    def position_quantity(
        portfolio: Portfolio,
        price: float,
        fraction: float,
        prices: Mapping[str, float],
    ) -> Decimal:
        """
        Units to buy so that value + commission fits `fraction` of total value.

        The fraction is capped by the portfolio's max position size, and the
        quantity is rounded down so the order never exceeds its budget.
        """
        fraction = to_decimal(fraction)
        if portfolio.max_position_size is not None:
            fraction = min(fraction, portfolio.max_position_size)
        budget = min(portfolio.get_total_value(prices) * fraction, portfolio.cash)
        unit_cost = to_decimal(price) * (1 + portfolio.commission_rate)
        if unit_cost <= 0 or budget <= 0:
            return Decimal('0')
        return (budget / unit_cost).quantize(QUANTITY_QUANTUM, rounding=ROUND_DOWN)

    def _execute_buy(
        self,
        portfolio: Portfolio,
        compiled: CompiledStrategy,
        signal: TradeSignal,
        prices: Dict[str, float],
    ) -> bool:
        fraction = signal.size if signal.size is not None else compiled.position_size
        quantity = self.position_quantity(portfolio, signal.price, fraction, prices)
        if quantity <= 0:
            logger.debug("Skip BUY %s @ %s: zero quantity", signal.symbol, signal.timestamp)
            return False
        if not portfolio.can_buy(signal.symbol, signal.price, quantity, prices):
            logger.debug("Skip BUY %s @ %s: rejected by portfolio", signal.symbol, signal.timestamp)
            return False
        try:
            portfolio.open_position(
                signal.symbol, signal.price, quantity, signal.timestamp,
                reason=signal.reason, prices=prices,
            )
        except PortfolioError as e:
            logger.warning("Skip BUY %s @ %s: %s", signal.symbol, signal.timestamp, e)
            return False
        return True

    @staticmethod
    def _execute_sell(portfolio: Portfolio, signal: TradeSignal) -> bool:
        try:
            portfolio.close_position(signal.symbol, signal.price, signal.timestamp, signal.reason)
        except PortfolioError as e:
            logger.warning("Skip SELL %s @ %s: %s", signal.symbol, signal.timestamp, e)
            return False
        return True

    @staticmethod
    def _close_remaining(portfolio: Portfolio, last_bar: Bar) -> None:
        for symbol in list(portfolio.get_positions()):
            portfolio.close_position(
                symbol, last_bar.close, last_bar.timestamp, ExitReason.END_OF_BACKTEST.value,
            )


def run_many(
    jobs: Iterable[Mapping[str, Any]],
    compiler: Optional[StrategyCompiler] = None,
    max_workers: int = 1,
) -> List[BacktestResult]:
    """
    Run independent backtests, each with its own compiled strategy and portfolio.

    Args:
        jobs: Dicts with 'strategy', 'bars' and optional 'config'
        compiler: Shared compiler (registries are read-only during runs)
        max_workers: > 1 runs jobs on a thread pool

    Returns:
        Results in job order; a job that fails on its inputs yields a
        FAILED result carrying the error message instead of aborting the batch
    """
    compiler = compiler or StrategyCompiler()

    def run_job(job: Mapping[str, Any]) -> BacktestResult:
        strategy = job['strategy']
        if isinstance(strategy, CompiledStrategy):
            # fresh indicator instances per job
            strategy = strategy.config
        engine = BacktestEngine(job.get('config'), compiler)
        try:
            return engine.run(strategy, job['bars'])
        except TradelabError as e:
            config = job.get('config') or engine._config
            return BacktestResult(status=BacktestStatus.FAILED, config=config.to_dict(), error=str(e))

    jobs = list(jobs)
    if max_workers <= 1:
        return [run_job(job) for job in jobs]
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        return list(pool.map(run_job, jobs))
