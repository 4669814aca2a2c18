"""
Evaluation context - what a condition can see on the current bar.
"""

from collections import deque
from typing import Deque, Dict, Mapping, Optional

from tradelab.data import BAR_FIELDS, Bar
from tradelab.indicators.base import BaseIndicator


class EvaluationContext:
    """
    Bar history plus named indicators for one replay.

    The context does not update indicators; the caller feeds each bar to
    the indicators first and then pushes it here.

    Args:
        indicators: Indicator name -> indicator instance
        lookback: Deepest bar offset any condition reads
    """

    def __init__(self, indicators: Optional[Mapping[str, BaseIndicator]] = None, lookback: int = 0):
        self.indicators: Dict[str, BaseIndicator] = dict(indicators or {})
        self.lookback = max(int(lookback), 0)
        self._bars: Deque[Bar] = deque(maxlen=self.lookback + 1)

    def push_bar(self, bar: Bar) -> None:
        self._bars.append(bar)

    @property
    def current_bar(self) -> Optional[Bar]:
        return self._bars[-1] if self._bars else None

    @property
    def bars_seen(self) -> int:
        return len(self._bars)

    def bar(self, offset: int = 0) -> Optional[Bar]:
        """Bar `offset` bars ago, or None beyond retained history."""
        if offset < 0 or offset >= len(self._bars):
            return None
        return self._bars[-1 - offset]

    def series_value(self, name: str, offset: int = 0) -> Optional[float]:
        """
        Value of a bar field or indicator `offset` bars ago.

        Returns None for gaps: indicator not ready, offset beyond history,
        or a name that is neither a bar field nor a known indicator.
        """
        if name in self.indicators:
            return self.indicators[name].value(offset)
        if name in BAR_FIELDS:
            bar = self.bar(offset)
            return None if bar is None else bar.field(name)
        return None

    def reset(self) -> None:
        self._bars.clear()
        for indicator in self.indicators.values():
            indicator.reset()
