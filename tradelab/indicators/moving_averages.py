"""
Moving averages: SMA, EMA, WMA.
"""

from collections import deque
from typing import Optional

from tradelab.data import Bar
from tradelab.indicators.base import BaseIndicator


class SimpleMovingAverage(BaseIndicator):
    """Arithmetic mean of the last `period` source values."""

    kind = 'SMA'

    def __init__(self, period: int, **kwargs):
        super().__init__(period, **kwargs)
        self._window = deque(maxlen=period)

    def calculate(self, bar: Bar) -> Optional[float]:
        self._window.append(self.source_value(bar))
        if len(self._window) < self.period:
            return None
        return sum(self._window) / self.period

    def reset(self) -> None:
        super().reset()
        self._window.clear()


class ExponentialMovingAverage(BaseIndicator):
    """
    Exponential moving average with smoothing factor 2 / (period + 1).

    Seeded with the first input: the first output equals the first source
    value, so there is no separate SMA warm-up phase. Early values differ
    slightly from SMA-seeded EMAs and converge after a few multiples of
    `period`.
    """

    kind = 'EMA'

    def __init__(self, period: int, **kwargs):
        super().__init__(period, **kwargs)
        self.smoothing_factor = 2.0 / (period + 1)
        self._previous: Optional[float] = None

    def calculate(self, bar: Bar) -> Optional[float]:
        price = self.source_value(bar)
        if self._previous is None:
            self._previous = price
            return price
        ema = price * self.smoothing_factor + self._previous * (1 - self.smoothing_factor)
        self._previous = ema
        return ema

    def reset(self) -> None:
        super().reset()
        self._previous = None


class WeightedMovingAverage(BaseIndicator):
    """Linearly weighted average; the newest value has weight `period`."""

    kind = 'WMA'

    def __init__(self, period: int, **kwargs):
        super().__init__(period, **kwargs)
        self._window = deque(maxlen=period)
        self._denominator = period * (period + 1) / 2

    def calculate(self, bar: Bar) -> Optional[float]:
        self._window.append(self.source_value(bar))
        if len(self._window) < self.period:
            return None
        weighted = sum(weight * value for weight, value in enumerate(self._window, start=1))
        return weighted / self._denominator

    def reset(self) -> None:
        super().reset()
        self._window.clear()
