"""
Indicator Engine - stateful, bar-at-a-time technical indicators.
"""

from tradelab.indicators.base import DEFAULT_MAX_HISTORY, BaseIndicator
from tradelab.indicators.moving_averages import (
    ExponentialMovingAverage,
    SimpleMovingAverage,
    WeightedMovingAverage,
)
from tradelab.indicators.oscillators import RelativeStrengthIndex
from tradelab.indicators.volatility import (
    AverageTrueRange,
    RollingMax,
    RollingMin,
    StandardDeviation,
)
from tradelab.indicators.registry import (
    BUILT_IN_INDICATORS,
    IndicatorRegistry,
    default_indicator_registry,
)

__all__ = [
    'DEFAULT_MAX_HISTORY',
    'BaseIndicator',
    'SimpleMovingAverage',
    'ExponentialMovingAverage',
    'WeightedMovingAverage',
    'RelativeStrengthIndex',
    'AverageTrueRange',
    'StandardDeviation',
    'RollingMax',
    'RollingMin',
    'BUILT_IN_INDICATORS',
    'IndicatorRegistry',
    'default_indicator_registry',
]
