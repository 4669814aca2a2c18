"""
Base Indicator - shared state machine for all technical indicators

Every indicator consumes one Bar at a time and keeps a bounded history
of its own outputs. Values are None until the indicator has seen enough
bars (its warm-up period).

Capability set (what the condition evaluator relies on):
    update(bar)        - consume the next bar
    value(offset=0)    - 0 = current, 1 = previous bar, ...; None if unknown
    is_ready()         - current value is not None
    reset()            - forget all state
    history()          - retained outputs, oldest first
"""

import logging
from collections import deque
from typing import Any, Dict, List, Optional

from tradelab.data import BAR_FIELDS, Bar
from tradelab.exceptions import IndicatorConfigError

logger = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY = 1000


class BaseIndicator:
    """
    Abstract base for bar-driven indicators.

    Subclasses implement calculate(bar) which returns the new output (or
    None during warm-up). The base class appends it to a deque capped at
    max_history, so memory stays bounded for very long replays.
    """

    kind = 'BASE'

    def __init__(
        self,
        period: int,
        name: Optional[str] = None,
        source: str = 'close',
        max_history: int = DEFAULT_MAX_HISTORY,
    ):
        if not isinstance(period, int) or isinstance(period, bool) or period < 1:
            raise IndicatorConfigError(
                f"{self.kind}: period must be a positive integer, got {period!r}"
            )
        if source not in BAR_FIELDS:
            raise IndicatorConfigError(
                f"{self.kind}: unknown source '{source}' (expected one of {BAR_FIELDS})"
            )
        if max_history < 1:
            raise IndicatorConfigError(f"{self.kind}: max_history must be >= 1")

        self.period = period
        self.name = name or self.kind
        self.source = source
        self.max_history = max_history
        self._values = deque(maxlen=max_history)

    @classmethod
    def from_config(
        cls,
        name: str,
        parameters: Dict[str, Any],
        max_history: int = DEFAULT_MAX_HISTORY,
    ) -> 'BaseIndicator':
        """
        Build an indicator from a strategy's indicator entry.

        Args:
            name: Declared indicator name (e.g. 'sma_fast')
            parameters: Parameter map; 'period' and optional 'source'
            max_history: Number of past outputs to retain

        Returns:
            Configured indicator instance
        """
        params = dict(parameters or {})
        if 'period' not in params:
            raise IndicatorConfigError(f"{cls.kind} '{name}': missing 'period' parameter")
        period = _coerce_period(params.pop('period'), cls.kind, name)
        source = str(params.pop('source', 'close')).lower()
        if params:
            logger.debug("%s '%s': ignoring unknown parameters %s",
                         cls.kind, name, sorted(params))
        return cls(period=period, name=name, source=source, max_history=max_history)

    # ── Capability set ──────────────────────────────────────────────

    def update(self, bar: Bar) -> None:
        self._values.append(self.calculate(bar))

    def value(self, offset: int = 0) -> Optional[float]:
        if offset < 0 or offset >= len(self._values):
            return None
        return self._values[-1 - offset]

    def is_ready(self) -> bool:
        return self.value() is not None

    def reset(self) -> None:
        self._values.clear()

    def history(self) -> List[Optional[float]]:
        return list(self._values)

    # ── Subclass hooks ──────────────────────────────────────────────

    def calculate(self, bar: Bar) -> Optional[float]:
        raise NotImplementedError

    def source_value(self, bar: Bar) -> float:
        return float(bar.field(self.source))

    def get_config(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'type': self.kind,
            'parameters': {'period': self.period, 'source': self.source},
        }

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, period={self.period}, source={self.source!r})"


def _coerce_period(raw: Any, kind: str, name: str) -> int:
    """Accept ints and integral floats/strings (e.g. '14' after templating)."""
    try:
        as_float = float(raw)
    except (TypeError, ValueError):
        raise IndicatorConfigError(f"{kind} '{name}': period {raw!r} is not a number")
    if not as_float.is_integer():
        raise IndicatorConfigError(f"{kind} '{name}': period {raw!r} is not an integer")
    return int(as_float)
