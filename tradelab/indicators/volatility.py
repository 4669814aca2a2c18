"""
Volatility and channel indicators: ATR, STDDEV, MAX, MIN.

MAX/MIN are the rolling highest high / lowest low used for breakout
channels ("close > high_channel[1]").
"""

import math
from collections import deque
from typing import Optional

from tradelab.data import Bar
from tradelab.indicators.base import BaseIndicator


class AverageTrueRange(BaseIndicator):
    """
    Wilder ATR over `period` bars.

    True range = max(high - low, |high - prev_close|, |low - prev_close|);
    the first bar's true range is simply high - low. ATR is the mean of the
    first `period` true ranges, then Wilder-smoothed. The `source` setting
    is ignored because true range always uses high/low/close.
    """

    kind = 'ATR'

    def __init__(self, period: int = 14, **kwargs):
        super().__init__(period, **kwargs)
        self._prev_close: Optional[float] = None
        self._seed = []
        self._atr: Optional[float] = None

    def calculate(self, bar: Bar) -> Optional[float]:
        if self._prev_close is None:
            true_range = bar.high - bar.low
        else:
            true_range = max(
                bar.high - bar.low,
                abs(bar.high - self._prev_close),
                abs(bar.low - self._prev_close),
            )
        self._prev_close = bar.close

        if self._atr is None:
            self._seed.append(true_range)
            if len(self._seed) < self.period:
                return None
            self._atr = sum(self._seed) / self.period
            self._seed = []
        else:
            self._atr = (self._atr * (self.period - 1) + true_range) / self.period
        return self._atr

    def reset(self) -> None:
        super().reset()
        self._prev_close = None
        self._seed = []
        self._atr = None


class StandardDeviation(BaseIndicator):
    """Population standard deviation of the last `period` source values."""

    kind = 'STDDEV'

    def __init__(self, period: int = 20, **kwargs):
        super().__init__(period, **kwargs)
        self._window = deque(maxlen=period)

    def calculate(self, bar: Bar) -> Optional[float]:
        self._window.append(self.source_value(bar))
        if len(self._window) < self.period:
            return None
        mean = sum(self._window) / self.period
        variance = sum((x - mean) ** 2 for x in self._window) / self.period
        return math.sqrt(variance)

    def reset(self) -> None:
        super().reset()
        self._window.clear()


class RollingMax(BaseIndicator):
    """Highest source value over the last `period` bars."""

    kind = 'MAX'

    def __init__(self, period: int, **kwargs):
        super().__init__(period, **kwargs)
        self._window = deque(maxlen=period)

    def calculate(self, bar: Bar) -> Optional[float]:
        self._window.append(self.source_value(bar))
        if len(self._window) < self.period:
            return None
        return max(self._window)

    def reset(self) -> None:
        super().reset()
        self._window.clear()


class RollingMin(RollingMax):
    """Lowest source value over the last `period` bars."""

    kind = 'MIN'

    def calculate(self, bar: Bar) -> Optional[float]:
        self._window.append(self.source_value(bar))
        if len(self._window) < self.period:
            return None
        return min(self._window)
