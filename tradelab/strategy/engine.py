"""
Strategy Engine - bar-by-bar signal generation for live runners

Wraps a StrategyCompiler and keeps per-strategy execution statistics.
Unlike the backtest engine, execute_strategy reports every condition that
holds on the bar (buy and sell), sorted by priority; deciding what to
trade is left to the caller.

Usage:
    from tradelab.strategy.engine import StrategyEngine

    engine = StrategyEngine()
    compiled = engine.load_strategy(strategy_dict)
    for bar in feed:
        for signal in engine.execute_strategy(compiled, bar):
            broker.submit(signal)
    stats = engine.get_execution_stats(compiled.strategy_id)
"""

import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from tradelab.conditions.evaluator import ConditionEvaluator
from tradelab.data import Bar
from tradelab.strategy.compiler import CompiledStrategy, StrategyCompiler, StrategyInput
from tradelab.strategy.signals import SignalType, TradeSignal, generate_signals
from tradelab.strategy.validation import ValidationResult

logger = logging.getLogger(__name__)


@dataclass
class StrategyExecutionStats:
    """Running counters for one loaded strategy."""
    strategy_id: str
    total_executions: int = 0
    total_signals: int = 0
    buy_signals: int = 0
    sell_signals: int = 0
    average_execution_time_ms: float = 0.0
    last_execution: Optional[datetime] = None
    error_count: int = 0

    @property
    def success_rate(self) -> float:
        attempts = self.total_executions + self.error_count
        if attempts == 0:
            return 1.0
        return self.total_executions / attempts

    def record(self, signals: List[TradeSignal], elapsed_ms: float) -> None:
        self.total_executions += 1
        self.total_signals += len(signals)
        self.buy_signals += sum(1 for s in signals if s.signal_type == SignalType.BUY)
        self.sell_signals += sum(1 for s in signals if s.signal_type == SignalType.SELL)
        n = self.total_executions
        self.average_execution_time_ms = (self.average_execution_time_ms * (n - 1) + elapsed_ms) / n
        self.last_execution = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result['success_rate'] = self.success_rate
        return result


class StrategyEngine:
    """
    Loads strategies and evaluates them one bar at a time.

    Args:
        compiler: StrategyCompiler to use (a fresh default one if omitted)
    """

    def __init__(self, compiler: Optional[StrategyCompiler] = None):
        self.compiler = compiler or StrategyCompiler()
        self._stats: Dict[str, StrategyExecutionStats] = {}

    # ── Strategy lifecycle ──────────────────────────────────────────

    def validate_strategy(self, config: StrategyInput) -> ValidationResult:
        return self.compiler.validate_strategy(config)

    def load_strategy(self, config: StrategyInput) -> CompiledStrategy:
        """
        Compile a strategy and register a stats record for it.

        Ids are content hashes, so loading the same description again
        shares (and keeps) the existing stats record.
        """
        compiled = self.compiler.load_strategy(config)
        if compiled.strategy_id in self._stats:
            logger.debug("Strategy '%s' reloaded; keeping execution stats", compiled.name)
        else:
            self._stats[compiled.strategy_id] = StrategyExecutionStats(compiled.strategy_id)
        return compiled

    def execute_strategy(self, compiled: CompiledStrategy, bar: Bar) -> List[TradeSignal]:
        """
        Feed one bar and return every signal that fires on it.

        Args:
            compiled: Strategy from load_strategy
            bar: Next bar in time order

        Returns:
            Buy and sell signals sorted by priority (unprioritized last)
        """
        stats = self._stats.setdefault(compiled.strategy_id, StrategyExecutionStats(compiled.strategy_id))
        started = time.perf_counter()
        try:
            compiled.update(bar)
            context = compiled.live_context()
            context.push_bar(bar)
            evaluator = ConditionEvaluator(compiled.functions)
            signals = (
                generate_signals(compiled, SignalType.BUY, context, evaluator, bar, first_only=False)
                + generate_signals(compiled, SignalType.SELL, context, evaluator, bar, first_only=False)
            )
        except Exception as e:
            stats.error_count += 1
            logger.error("Strategy '%s' execution failed: %s", compiled.name, e)
            raise

        signals.sort(key=lambda s: s.sort_priority)
        stats.record(signals, (time.perf_counter() - started) * 1000)
        if signals:
            logger.debug("Strategy '%s' @ %s: %d signal(s)", compiled.name, bar.timestamp, len(signals))
        return signals

    def get_execution_stats(self, strategy_id: str) -> StrategyExecutionStats:
        """Copy of the stats for a loaded strategy (KeyError if unknown)."""
        if strategy_id not in self._stats:
            raise KeyError(f"No execution stats found for strategy: {strategy_id}")
        stats = self._stats[strategy_id]
        return StrategyExecutionStats(**asdict(stats))

    # ── Indicator registry ──────────────────────────────────────────

    def register_indicator(self, kind: str, indicator: Any) -> None:
        self.compiler.indicators.register(kind, indicator)
        logger.info("Indicator registered: %s", kind)

    def unregister_indicator(self, kind: str) -> None:
        self.compiler.indicators.unregister(kind)
        logger.info("Indicator unregistered: %s", kind)

    def available_indicators(self) -> List[str]:
        return self.compiler.indicators.available()
