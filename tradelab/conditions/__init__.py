"""
Condition language - parse once, evaluate every bar.
"""

from tradelab.conditions.context import EvaluationContext
from tradelab.conditions.evaluator import ConditionEvaluator
from tradelab.conditions.functions import (
    BUILT_IN_FUNCTIONS,
    FunctionRegistry,
    FunctionSpec,
    default_function_registry,
)
from tradelab.conditions.nodes import (
    BinaryOp,
    FunctionCall,
    Literal,
    SeriesRef,
    UnaryOp,
    ValueType,
    to_source,
)
from tradelab.conditions.parser import ParsedCondition, parse_condition, required_lookback

__all__ = [
    'EvaluationContext',
    'ConditionEvaluator',
    'BUILT_IN_FUNCTIONS',
    'FunctionRegistry',
    'FunctionSpec',
    'default_function_registry',
    'BinaryOp',
    'FunctionCall',
    'Literal',
    'SeriesRef',
    'UnaryOp',
    'ValueType',
    'to_source',
    'ParsedCondition',
    'parse_condition',
    'required_lookback',
]
