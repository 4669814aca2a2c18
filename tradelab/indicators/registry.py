"""
Indicator Registry - maps indicator type names to constructors

The registry is an explicit object, not module state: each StrategyCompiler
(and therefore each parallel backtest) owns its own registry, so
registering a custom indicator in one place never leaks into another.

Usage:
    from tradelab.indicators.registry import default_indicator_registry

    registry = default_indicator_registry()
    registry.register('HMA', HullMovingAverage)
    sma = registry.create('sma_fast', 'SMA', {'period': 10})
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Union

from tradelab.exceptions import IndicatorConfigError
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

logger = logging.getLogger(__name__)

# Factory signature: (name, parameters, max_history) -> BaseIndicator
IndicatorFactory = Callable[[str, Dict[str, Any], int], BaseIndicator]

BUILT_IN_INDICATORS = {
    'SMA': SimpleMovingAverage,
    'EMA': ExponentialMovingAverage,
    'WMA': WeightedMovingAverage,
    'RSI': RelativeStrengthIndex,
    'ATR': AverageTrueRange,
    'STDDEV': StandardDeviation,
    'MAX': RollingMax,
    'MIN': RollingMin,
}


class IndicatorRegistry:
    """
    Open set of indicator kinds.

    New kinds are added by registering a BaseIndicator subclass (its
    from_config classmethod is used) or any factory callable with the
    signature (name, parameters, max_history). Type names are
    case-insensitive.
    """

    def __init__(self):
        self._factories: Dict[str, IndicatorFactory] = {}

    def register(
        self,
        kind: str,
        indicator: Union[type, IndicatorFactory],
    ) -> None:
        """Register (or replace) an indicator constructor under `kind`."""
        if isinstance(indicator, type) and issubclass(indicator, BaseIndicator):
            factory = indicator.from_config
        elif callable(indicator):
            factory = indicator
        else:
            raise TypeError(f"Indicator for '{kind}' must be a BaseIndicator subclass or callable")
        self._factories[kind.upper()] = factory
        logger.debug("Indicator registered: %s", kind.upper())

    def unregister(self, kind: str) -> None:
        self._factories.pop(kind.upper(), None)

    def available(self) -> List[str]:
        return sorted(self._factories)

    def __contains__(self, kind: object) -> bool:
        return isinstance(kind, str) and kind.upper() in self._factories

    def create(
        self,
        name: str,
        kind: str,
        parameters: Optional[Dict[str, Any]] = None,
        max_history: int = DEFAULT_MAX_HISTORY,
    ) -> BaseIndicator:
        """
        Instantiate an indicator.

        Args:
            name: Declared indicator name
            kind: Registered type ('SMA', 'RSI', ...)
            parameters: Indicator parameters (period, source, ...)
            max_history: Output values to retain

        Returns:
            New indicator instance

        Raises:
            IndicatorConfigError: Unknown kind or invalid parameters
        """
        factory = self._factories.get(str(kind).upper())
        if factory is None:
            raise IndicatorConfigError(f"Unsupported indicator type: {kind}")
        indicator = factory(name, dict(parameters or {}), max_history)
        if not isinstance(indicator, BaseIndicator):
            raise IndicatorConfigError(
                f"Factory for '{kind}' returned {type(indicator).__name__}, not an indicator"
            )
        return indicator

    def copy(self) -> 'IndicatorRegistry':
        clone = IndicatorRegistry()
        clone._factories = dict(self._factories)
        return clone


def default_indicator_registry() -> IndicatorRegistry:
    """Fresh registry populated with the built-in indicators."""
    registry = IndicatorRegistry()
    for kind, cls in BUILT_IN_INDICATORS.items():
        registry.register(kind, cls)
    return registry
