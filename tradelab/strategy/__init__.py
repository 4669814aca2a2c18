"""
Strategy description, validation, compilation and live signal generation.
"""

from tradelab.strategy.compiler import CompiledCondition, CompiledStrategy, StrategyCompiler
from tradelab.strategy.config import (
    DEFAULT_POSITION_SIZE,
    IndicatorConfig,
    RiskSettings,
    SignalConfig,
    StrategyConfig,
)
from tradelab.strategy.engine import StrategyEngine, StrategyExecutionStats
from tradelab.strategy.signals import SignalType, TradeSignal
from tradelab.strategy.validation import IssueCode, ValidationIssue, ValidationResult

__all__ = [
    'CompiledCondition',
    'CompiledStrategy',
    'StrategyCompiler',
    'DEFAULT_POSITION_SIZE',
    'IndicatorConfig',
    'RiskSettings',
    'SignalConfig',
    'StrategyConfig',
    'StrategyEngine',
    'StrategyExecutionStats',
    'SignalType',
    'TradeSignal',
    'IssueCode',
    'ValidationIssue',
    'ValidationResult',
]
