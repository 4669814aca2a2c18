"""
Strategy description model.

A strategy arrives as a plain dict (parsed from JSON/YAML upstream) and is
wrapped into StrategyConfig without any semantic checks; validation is the
compiler's job so every problem can be reported at once.

Both camelCase and snake_case keys are accepted (positionSize /
position_size, riskManagement / risk_management, stopLoss / stop_loss, ...).

Usage:
    from tradelab.strategy.config import StrategyConfig

    config = StrategyConfig.from_dict({
        'name': 'SMA Crossover',
        'parameters': {'symbol': 'BTCUSD', 'position_size': 0.1},
        'indicators': [{'name': 'sma_fast', 'type': 'SMA', 'parameters': {'period': 10}}],
        'signals': {'buy': [{'condition': 'close > sma_fast'}], 'sell': []},
    })
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

DEFAULT_POSITION_SIZE = 0.1


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """First present key wins (snake_case listed first)."""
    for key in keys:
        if key in data:
            return data[key]
    return default


@dataclass
class IndicatorConfig:
    """One `indicators[]` entry."""
    name: str
    type: str
    parameters: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'IndicatorConfig':
        data = data or {}
        parameters = dict(data.get('parameters') or {})
        # shorthand: {'name': 'sma', 'type': 'SMA', 'period': 10}
        for key in ('period', 'source'):
            if key in data and key not in parameters:
                parameters[key] = data[key]
        return cls(
            name=str(data.get('name') or ''),
            type=str(data.get('type') or ''),
            parameters=parameters,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'type': self.type, 'parameters': dict(self.parameters)}


@dataclass
class SignalConfig:
    """One `signals.buy[]` / `signals.sell[]` entry."""
    condition: str
    description: str = ''
    size: Any = None
    priority: Any = None
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> 'SignalConfig':
        if isinstance(data, str):
            return cls(condition=data)
        data = data or {}
        return cls(
            condition=data.get('condition', ''),
            description=str(data.get('description') or ''),
            size=_pick(data, 'size', 'position_size', 'positionSize'),
            priority=data.get('priority'),
            id=data.get('id'),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {'condition': self.condition, 'description': self.description}
        if self.size is not None:
            result['size'] = self.size
        if self.priority is not None:
            result['priority'] = self.priority
        if self.id is not None:
            result['id'] = self.id
        return result


@dataclass
class RiskSettings:
    """
    Risk-management parameters (all optional).

    Attributes:
        stop_loss: Close when price falls this fraction below avg entry (0.05 = 5%)
        take_profit: Close when price rises this fraction above avg entry
        max_positions: Max concurrently open lots
        max_position_size: Max position value as a fraction of total value
    """
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    max_positions: Optional[int] = None
    max_position_size: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> 'RiskSettings':
        data = data or {}
        return cls(
            stop_loss=_pick(data, 'stop_loss', 'stopLoss', 'stop_loss_percent', 'stopLossPercent'),
            take_profit=_pick(data, 'take_profit', 'takeProfit', 'take_profit_percent', 'takeProfitPercent'),
            max_positions=_pick(data, 'max_positions', 'maxPositions'),
            max_position_size=_pick(data, 'max_position_size', 'maxPositionSize'),
        )

    def validate(self) -> List[str]:
        """Return list of problems (empty if valid)."""
        issues = []
        for name in ('stop_loss', 'take_profit', 'max_position_size'):
            value = getattr(self, name)
            if value is None:
                continue
            if not is_number(value):
                issues.append(f"{name} must be a number, got {value!r}")
            elif float(value) <= 0:
                issues.append(f"{name} must be > 0, got {value}")
            elif name == 'max_position_size' and float(value) > 1:
                issues.append(f"{name} must be <= 1, got {value}")
        if self.max_positions is not None:
            if (not is_number(self.max_positions)
                    or not float(self.max_positions).is_integer()
                    or int(self.max_positions) < 1):
                issues.append(f"max_positions must be a positive integer, got {self.max_positions!r}")
        return issues

    def normalized(self) -> 'RiskSettings':
        """Copy with numeric types coerced; call after validate() passes."""
        return RiskSettings(
            stop_loss=None if self.stop_loss is None else float(self.stop_loss),
            take_profit=None if self.take_profit is None else float(self.take_profit),
            max_positions=None if self.max_positions is None else int(float(self.max_positions)),
            max_position_size=None if self.max_position_size is None else float(self.max_position_size),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'stop_loss': self.stop_loss,
            'take_profit': self.take_profit,
            'max_positions': self.max_positions,
            'max_position_size': self.max_position_size,
        }


@dataclass
class StrategyConfig:
    """
    Declarative strategy description.

    `parameters`, `buy` and `sell` are None when the key is absent, which
    validation reports differently from an empty value.
    """
    name: str = ''
    description: str = ''
    version: str = ''
    parameters: Optional[Dict[str, Any]] = None
    indicators: List[IndicatorConfig] = field(default_factory=list)
    buy: Optional[List[SignalConfig]] = None
    sell: Optional[List[SignalConfig]] = None
    risk_management: RiskSettings = field(default_factory=RiskSettings)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'StrategyConfig':
        """Wrap a raw strategy dict; the input is deep-copied, never mutated."""
        data = copy.deepcopy(dict(data or {}))
        signals = data.get('signals') or {}
        buy = signals.get('buy')
        sell = signals.get('sell')
        parameters = data.get('parameters')
        return cls(
            name=str(data.get('name') or ''),
            description=str(data.get('description') or ''),
            version=str(data.get('version') or ''),
            parameters=dict(parameters) if isinstance(parameters, Mapping) else None,
            indicators=[IndicatorConfig.from_dict(i) for i in (data.get('indicators') or [])],
            buy=None if buy is None else [SignalConfig.from_dict(s) for s in buy],
            sell=None if sell is None else [SignalConfig.from_dict(s) for s in sell],
            risk_management=RiskSettings.from_dict(_pick(data, 'risk_management', 'riskManagement')),
            metadata=dict(data.get('metadata') or {}),
        )

    # ── Parameter shortcuts ─────────────────────────────────────────

    @property
    def symbol(self) -> Optional[str]:
        if not self.parameters:
            return None
        return self.parameters.get('symbol')

    @property
    def position_size(self) -> Any:
        if not self.parameters:
            return None
        return _pick(self.parameters, 'position_size', 'positionSize')

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'description': self.description,
            'version': self.version,
            'parameters': copy.deepcopy(self.parameters),
            'indicators': [i.to_dict() for i in self.indicators],
            'signals': {
                'buy': None if self.buy is None else [s.to_dict() for s in self.buy],
                'sell': None if self.sell is None else [s.to_dict() for s in self.sell],
            },
            'risk_management': self.risk_management.to_dict(),
            'metadata': copy.deepcopy(self.metadata),
        }


def is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    try:
        float(value)
    except (TypeError, ValueError):
        return False
    return True
