"""
Strategy Compiler - validated description -> executable CompiledStrategy

Pipeline (shared by validate_strategy and load_strategy):
    1. Wrap the raw dict in a StrategyConfig (deep copy, input never mutated)
    2. Check name / parameters / symbol / position size
    3. Substitute {{ parameters.x }} templates in indicator parameters,
       conditions, signal sizes and risk settings
    4. Instantiate every indicator through the IndicatorRegistry
    5. Parse every buy/sell condition and resolve its references
    6. Validate risk settings, then collect warnings

validate_strategy reports every problem it finds; load_strategy raises
StrategyValidationError when any error is present, otherwise returns a
CompiledStrategy whose conditions are sorted by ascending priority.

Usage:
    from tradelab.strategy.compiler import StrategyCompiler

    compiler = StrategyCompiler()
    result = compiler.validate_strategy(strategy_dict)
    if result.is_valid:
        compiled = compiler.load_strategy(strategy_dict)
"""

import copy
import hashlib
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from tradelab.conditions.context import EvaluationContext
from tradelab.conditions.functions import FunctionRegistry, default_function_registry
from tradelab.conditions.lexer import KEYWORDS
from tradelab.conditions.parser import ParsedCondition, parse_condition
from tradelab.data import BAR_FIELDS, Bar
from tradelab.exceptions import (
    ConditionSyntaxError,
    IndicatorConfigError,
    StrategyValidationError,
)
from tradelab.indicators.base import BaseIndicator
from tradelab.indicators.registry import IndicatorRegistry, default_indicator_registry
from tradelab.strategy import templating
from tradelab.strategy.config import (
    DEFAULT_POSITION_SIZE,
    RiskSettings,
    SignalConfig,
    StrategyConfig,
    is_number,
)
from tradelab.strategy.validation import IssueCode, ValidationResult

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')

StrategyInput = Union[StrategyConfig, Mapping[str, Any]]


@dataclass(frozen=True)
class CompiledCondition:
    """A parsed buy or sell rule."""
    signal_type: str                # 'BUY' or 'SELL'
    parsed: ParsedCondition
    description: str = ''
    priority: Optional[int] = None
    size: Optional[float] = None
    id: str = ''

    @property
    def condition(self) -> str:
        return self.parsed.text

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.signal_type,
            'condition': self.parsed.text,
            'description': self.description,
            'priority': self.priority,
            'size': self.size,
        }


@dataclass
class CompiledStrategy:
    """
    Executable form of a strategy.

    Owns its indicator instances; only their values change during a
    replay. Call reset() before replaying a second dataset.
    """
    strategy_id: str
    config: StrategyConfig
    symbol: str
    position_size: float
    indicators: Dict[str, BaseIndicator]
    buy_conditions: List[CompiledCondition]
    sell_conditions: List[CompiledCondition]
    risk: RiskSettings
    lookback: int
    functions: FunctionRegistry = field(repr=False, compare=False, default_factory=default_function_registry)
    _live_context: Optional[EvaluationContext] = field(default=None, init=False, repr=False, compare=False)

    @property
    def name(self) -> str:
        return self.config.name

    def update(self, bar: Bar) -> None:
        """Feed one bar to every indicator."""
        for indicator in self.indicators.values():
            indicator.update(bar)

    def new_context(self) -> EvaluationContext:
        return EvaluationContext(self.indicators, self.lookback)

    def live_context(self) -> EvaluationContext:
        """Context kept across StrategyEngine.execute_strategy calls."""
        if self._live_context is None:
            self._live_context = self.new_context()
        return self._live_context

    def reset(self) -> None:
        for indicator in self.indicators.values():
            indicator.reset()
        if self._live_context is not None:
            self._live_context.reset()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'strategy_id': self.strategy_id,
            'name': self.name,
            'symbol': self.symbol,
            'position_size': self.position_size,
            'lookback': self.lookback,
            'indicators': [ind.get_config() for ind in self.indicators.values()],
            'buy_conditions': [c.to_dict() for c in self.buy_conditions],
            'sell_conditions': [c.to_dict() for c in self.sell_conditions],
            'risk_management': self.risk.to_dict(),
        }


@dataclass
class _Prepared:
    """Intermediate state shared by validate and load."""
    config: StrategyConfig
    result: ValidationResult
    position_size: float = DEFAULT_POSITION_SIZE
    buy: List[CompiledCondition] = field(default_factory=list)
    sell: List[CompiledCondition] = field(default_factory=list)
    risk: RiskSettings = field(default_factory=RiskSettings)


class StrategyCompiler:
    """
    Validates and compiles strategy descriptions.

    Args:
        indicators: Indicator registry (a fresh default registry if omitted)
        functions: Condition function registry (fresh default if omitted)
    """

    def __init__(
        self,
        indicators: Optional[IndicatorRegistry] = None,
        functions: Optional[FunctionRegistry] = None,
    ):
        self.indicators = indicators or default_indicator_registry()
        self.functions = functions or default_function_registry()

    # ── Public API ──────────────────────────────────────────────────

    def validate_strategy(self, config: StrategyInput) -> ValidationResult:
        """Run the full compile pipeline without building anything."""
        return self._prepare(config).result

    def load_strategy(self, config: StrategyInput) -> CompiledStrategy:
        """
        Compile a strategy.

        Args:
            config: StrategyConfig or raw strategy dict

        Returns:
            CompiledStrategy with fresh indicator instances

        Raises:
            StrategyValidationError: Validation produced errors
        """
        prepared = self._prepare(config)
        if not prepared.result.is_valid:
            logger.warning("Strategy '%s' failed validation: %s",
                           prepared.config.name, prepared.result.codes())
            raise StrategyValidationError(prepared.result)

        for issue in prepared.result.warnings:
            logger.info("Strategy '%s' warning [%s]: %s",
                        prepared.config.name, issue.code, issue.message)

        conditions = prepared.buy + prepared.sell
        lookback = max((c.parsed.lookback for c in conditions), default=0)
        max_history = max(lookback + 1, 2)

        indicators = {}
        for entry in prepared.config.indicators:
            indicators[entry.name] = self.indicators.create(
                entry.name, entry.type, entry.parameters, max_history=max_history,
            )

        compiled = CompiledStrategy(
            strategy_id=_strategy_id(prepared.config),
            config=prepared.config,
            symbol=str(prepared.config.symbol),
            position_size=prepared.position_size,
            indicators=indicators,
            buy_conditions=_sort_by_priority(prepared.buy),
            sell_conditions=_sort_by_priority(prepared.sell),
            risk=prepared.risk,
            lookback=lookback,
            functions=self.functions,
        )
        logger.info(
            "Strategy '%s' compiled: %d indicators, %d buy / %d sell conditions, lookback %d",
            compiled.name, len(indicators), len(compiled.buy_conditions),
            len(compiled.sell_conditions), lookback,
        )
        return compiled

    # ── Pipeline ────────────────────────────────────────────────────

    def _prepare(self, config: StrategyInput) -> _Prepared:
        if isinstance(config, StrategyConfig):
            config = copy.deepcopy(config)
        else:
            config = StrategyConfig.from_dict(config)

        result = ValidationResult()
        prepared = _Prepared(config=config, result=result)

        if not config.name or not config.name.strip():
            result.error(IssueCode.MISSING_NAME, "Strategy name is required", 'name')

        parameters = config.parameters or {}
        self._check_parameters(prepared)
        self._check_templates(config, parameters, result)
        self._render(config, parameters)

        declared = self._check_indicators(config, result)
        self._check_signals(prepared, declared)
        self._check_risk(prepared)
        self._check_usage(prepared, declared)
        return prepared

    def _check_parameters(self, prepared: _Prepared) -> None:
        config, result = prepared.config, prepared.result
        if config.parameters is None:
            result.error(IssueCode.MISSING_PARAMETERS, "Strategy parameters are required", 'parameters')
            return

        if not config.symbol:
            result.error(IssueCode.MISSING_SYMBOL, "Trading symbol is required", 'parameters.symbol')

        size = config.position_size
        if size is None:
            return
        size = templating.render(size, config.parameters)
        if not is_number(size) or not 0 < float(size) <= 1:
            result.error(
                IssueCode.INVALID_POSITION_SIZE,
                f"Position size must be between 0 and 1, got {size!r}",
                'parameters.position_size',
            )
        else:
            prepared.position_size = float(size)

    def _check_templates(self, config: StrategyConfig, parameters: Mapping[str, Any], result: ValidationResult) -> None:
        sections = [('indicators', [i.parameters for i in config.indicators])]
        for side in ('buy', 'sell'):
            signals = getattr(config, side) or []
            sections.append((f'signals.{side}', [(s.condition, s.size, s.priority) for s in signals]))
        sections.append(('risk_management', config.risk_management.to_dict()))

        seen = set()
        for field_name, value in sections:
            for name in templating.missing_parameters(value, parameters):
                if name in seen:
                    continue
                seen.add(name)
                result.error(
                    IssueCode.UNKNOWN_PARAMETER,
                    f"Template references unknown parameter '{name}'",
                    field_name,
                )

    def _render(self, config: StrategyConfig, parameters: Mapping[str, Any]) -> None:
        for entry in config.indicators:
            entry.parameters = templating.render(entry.parameters, parameters)
        for side in ('buy', 'sell'):
            for signal in getattr(config, side) or []:
                if isinstance(signal.condition, str):
                    signal.condition = templating.render(signal.condition, parameters)
                    if not isinstance(signal.condition, str):
                        signal.condition = str(signal.condition)
                signal.size = templating.render(signal.size, parameters)
                signal.priority = templating.render(signal.priority, parameters)
        risk = config.risk_management
        for name in ('stop_loss', 'take_profit', 'max_positions', 'max_position_size'):
            setattr(risk, name, templating.render(getattr(risk, name), parameters))

    def _check_indicators(self, config: StrategyConfig, result: ValidationResult) -> Dict[str, str]:
        """Returns declared name -> type for the indicators that compiled."""
        declared = {}
        if not config.indicators:
            result.error(IssueCode.NO_INDICATORS, "At least one indicator is required", 'indicators')
            return declared

        seen = set()
        for i, entry in enumerate(config.indicators):
            field_name = f'indicators[{i}]'
            if not entry.name or not _IDENTIFIER_RE.match(entry.name):
                result.error(
                    IssueCode.INVALID_INDICATOR,
                    f"Indicator name {entry.name!r} is not a valid identifier",
                    field_name,
                )
                continue
            if entry.name.lower() in BAR_FIELDS or entry.name.upper() in KEYWORDS:
                result.error(
                    IssueCode.INVALID_INDICATOR,
                    f"Indicator name '{entry.name}' is reserved",
                    field_name,
                )
                continue
            if entry.name in seen:
                result.error(
                    IssueCode.DUPLICATE_INDICATOR,
                    f"Duplicate indicator name: {entry.name}",
                    field_name,
                )
                continue
            seen.add(entry.name)

            if entry.type not in self.indicators:
                result.error(
                    IssueCode.UNSUPPORTED_INDICATOR,
                    f"Unsupported indicator type: {entry.type}",
                    f'{field_name}.type',
                )
                continue
            try:
                self.indicators.create(entry.name, entry.type, entry.parameters)
            except IndicatorConfigError as e:
                result.error(IssueCode.INVALID_INDICATOR, str(e), f'{field_name}.parameters')
                continue
            declared[entry.name] = entry.type
        return declared

    def _check_signals(self, prepared: _Prepared, declared: Dict[str, str]) -> None:
        config, result = prepared.config, prepared.result
        if config.buy is None or config.sell is None or not config.buy:
            result.error(IssueCode.MISSING_SIGNALS, "Buy and sell signals are required", 'signals')
        elif not config.sell:
            result.warning(
                IssueCode.NO_SELL_CONDITIONS,
                "No sell conditions; positions only close on risk exits or at the end",
                'signals.sell',
            )

        all_names = {entry.name for entry in config.indicators}
        for side, target in (('buy', prepared.buy), ('sell', prepared.sell)):
            for i, signal in enumerate(getattr(config, side) or []):
                compiled = self._compile_signal(side, i, signal, declared, all_names, result)
                if compiled is not None:
                    target.append(compiled)

    def _compile_signal(
        self,
        side: str,
        index: int,
        signal: SignalConfig,
        declared: Dict[str, str],
        all_names: set,
        result: ValidationResult,
    ) -> Optional[CompiledCondition]:
        field_name = f'signals.{side}[{index}]'
        ok = True

        size = signal.size
        if size is not None and (not is_number(size) or not 0 < float(size) <= 1):
            result.error(
                IssueCode.INVALID_SIGNAL_SIZE,
                f"Signal size must be between 0 and 1, got {size!r}",
                f'{field_name}.size',
            )
            ok = False

        priority = signal.priority
        if priority is not None and (not is_number(priority) or not float(priority).is_integer()):
            result.error(
                IssueCode.INVALID_PRIORITY,
                f"Signal priority must be an integer, got {priority!r}",
                f'{field_name}.priority',
            )
            ok = False

        if not isinstance(signal.condition, str) or not signal.condition.strip():
            result.error(IssueCode.CONDITION_SYNTAX, "Condition is empty", f'{field_name}.condition')
            return None
        try:
            parsed = parse_condition(signal.condition, self.functions)
        except ConditionSyntaxError as e:
            result.error(IssueCode.CONDITION_SYNTAX, str(e), f'{field_name}.condition')
            return None

        for name in sorted(parsed.references):
            if name not in all_names:
                result.error(
                    IssueCode.UNDEFINED_REFERENCE,
                    f"Condition references undefined indicator '{name}'",
                    f'{field_name}.condition',
                )
                ok = False
            elif name not in declared:
                # indicator itself failed to compile; already reported
                ok = False

        if not ok:
            return None
        return CompiledCondition(
            signal_type=side.upper(),
            parsed=parsed,
            description=signal.description or signal.condition,
            priority=None if priority is None else int(float(priority)),
            size=None if size is None else float(size),
            id=str(signal.id) if signal.id is not None else f'{side}-{index}',
        )

    def _check_risk(self, prepared: _Prepared) -> None:
        risk, result = prepared.config.risk_management, prepared.result
        issues = risk.validate()
        for issue in issues:
            result.error(IssueCode.INVALID_RISK_PARAMETER, issue, 'risk_management')
        if not issues:
            prepared.risk = risk.normalized()
        if risk.stop_loss is None:
            result.warning(IssueCode.NO_STOP_LOSS, "No stop loss configured", 'risk_management.stop_loss')

    def _check_usage(self, prepared: _Prepared, declared: Dict[str, str]) -> None:
        used = set()
        for condition in prepared.buy + prepared.sell:
            used |= condition.parsed.references
        for name in declared:
            if name not in used:
                prepared.result.warning(
                    IssueCode.UNUSED_INDICATOR,
                    f"Indicator '{name}' is not referenced by any condition",
                    'indicators',
                )


def _sort_by_priority(conditions: List[CompiledCondition]) -> List[CompiledCondition]:
    """Ascending priority; unprioritized conditions follow in declaration order."""
    return sorted(
        conditions,
        key=lambda c: (c.priority is None, c.priority if c.priority is not None else 0),
    )


def _strategy_id(config: StrategyConfig) -> str:
    slug = re.sub(r'\s+', '_', config.name.strip()).lower()
    digest = hashlib.sha1(
        json.dumps(config.to_dict(), sort_keys=True, default=str).encode('utf-8')
    ).hexdigest()[:8]
    return f"{slug}_{digest}"
