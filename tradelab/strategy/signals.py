"""
Trade signals produced by evaluating a compiled strategy on one bar.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from tradelab.conditions.context import EvaluationContext
from tradelab.conditions.evaluator import ConditionEvaluator
from tradelab.data import Bar

# Sort key for conditions declared without a priority
DEFAULT_SIGNAL_PRIORITY = 999


class SignalType(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True)
class TradeSignal:
    """
    An intent to trade, emitted when a condition holds on a bar.

    Attributes:
        signal_type: BUY or SELL
        symbol: Strategy symbol
        price: Bar close the signal fired on
        timestamp: Bar timestamp
        reason: Condition description
        size: Override position size fraction (None = strategy default)
        priority: Condition priority (None = unprioritized)
        strategy_name: Name of the emitting strategy
        condition_id: Id of the condition that fired
    """
    signal_type: SignalType
    symbol: str
    price: float
    timestamp: datetime
    reason: str = ''
    size: Optional[float] = None
    priority: Optional[int] = None
    strategy_name: str = ''
    condition_id: str = ''

    @property
    def sort_priority(self) -> int:
        return DEFAULT_SIGNAL_PRIORITY if self.priority is None else self.priority

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.signal_type.value,
            'symbol': self.symbol,
            'price': self.price,
            'timestamp': self.timestamp.isoformat() if hasattr(self.timestamp, 'isoformat') else self.timestamp,
            'reason': self.reason,
            'size': self.size,
            'priority': self.priority,
            'strategy_name': self.strategy_name,
            'condition_id': self.condition_id,
        }


def generate_signals(
    compiled,
    side: SignalType,
    context: EvaluationContext,
    evaluator: ConditionEvaluator,
    bar: Bar,
    first_only: bool = True,
) -> List[TradeSignal]:
    """
    Evaluate one side's conditions (already in priority order) on `bar`.

    Args:
        compiled: CompiledStrategy
        side: Which condition list to evaluate
        context: Context holding the bar history and indicators
        evaluator: Condition evaluator
        bar: Current bar (signal price is its close)
        first_only: Stop at the first condition that holds

    Returns:
        Signals in priority order (at most one when first_only)
    """
    conditions = compiled.buy_conditions if side == SignalType.BUY else compiled.sell_conditions
    signals = []
    for condition in conditions:
        if not evaluator.evaluate(condition.parsed, context):
            continue
        signals.append(TradeSignal(
            signal_type=side,
            symbol=compiled.symbol,
            price=bar.close,
            timestamp=bar.timestamp,
            reason=condition.description,
            size=condition.size,
            priority=condition.priority,
            strategy_name=compiled.name,
            condition_id=condition.id,
        ))
        if first_only:
            break
    return signals
