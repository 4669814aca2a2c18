"""
Relative Strength Index (Wilder).

RSI = 100 - 100 / (1 + RS), RS = average gain / average loss.

The first averages are the simple means of the first `period`
close-to-close changes; after that each average is smoothed as
    avg = (avg_prev * (period - 1) + current) / period
If the average loss is exactly zero the RSI is 100 (no division by zero,
never NaN). An all-losses series therefore converges to 0, an all-gains
series reads 100.
"""

from typing import Optional

from tradelab.data import Bar
from tradelab.indicators.base import BaseIndicator


class RelativeStrengthIndex(BaseIndicator):
    """Wilder's RSI over `period` changes of the source field."""

    kind = 'RSI'

    def __init__(self, period: int = 14, **kwargs):
        super().__init__(period, **kwargs)
        self._last_price: Optional[float] = None
        self._change_count = 0
        self._gain_sum = 0.0
        self._loss_sum = 0.0
        self.average_gain: Optional[float] = None
        self.average_loss: Optional[float] = None

    def calculate(self, bar: Bar) -> Optional[float]:
        price = self.source_value(bar)
        if self._last_price is None:
            self._last_price = price
            return None

        change = price - self._last_price
        self._last_price = price
        gain = change if change > 0 else 0.0
        loss = -change if change < 0 else 0.0
        self._change_count += 1

        if self.average_gain is None:
            # Seed phase: accumulate the first `period` changes
            self._gain_sum += gain
            self._loss_sum += loss
            if self._change_count < self.period:
                return None
            self.average_gain = self._gain_sum / self.period
            self.average_loss = self._loss_sum / self.period
        else:
            self.average_gain = (self.average_gain * (self.period - 1) + gain) / self.period
            self.average_loss = (self.average_loss * (self.period - 1) + loss) / self.period

        return self._rsi(self.average_gain, self.average_loss)

    @staticmethod
    def _rsi(average_gain: float, average_loss: float) -> float:
        if average_loss == 0:
            return 100.0
        relative_strength = average_gain / average_loss
        return 100.0 - (100.0 / (1.0 + relative_strength))

    @property
    def relative_strength(self) -> Optional[float]:
        if self.average_gain is None or not self.average_loss:
            return None
        return self.average_gain / self.average_loss

    def reset(self) -> None:
        super().reset()
        self._last_price = None
        self._change_count = 0
        self._gain_sum = 0.0
        self._loss_sum = 0.0
        self.average_gain = None
        self.average_loss = None
