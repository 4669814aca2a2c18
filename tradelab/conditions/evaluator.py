"""
Condition Evaluator - walks a parsed tree against an EvaluationContext

Null semantics: any operand that resolves to None (indicator still warming
up, offset beyond retained history, division by zero) propagates upwards,
and a None at the root evaluates to False. Data gaps never raise.

Usage:
    from tradelab.conditions import ConditionEvaluator, parse_condition

    evaluator = ConditionEvaluator()
    parsed = parse_condition("crossover(sma_fast, sma_slow)")
    if evaluator.evaluate(parsed, context):
        ...
"""

import math
import operator
from typing import Optional, Union

from tradelab.conditions.context import EvaluationContext
from tradelab.conditions.functions import FunctionRegistry, default_function_registry
from tradelab.conditions.nodes import (
    BinaryOp,
    FunctionCall,
    Literal,
    Node,
    SeriesRef,
    UnaryOp,
)
from tradelab.conditions.parser import ParsedCondition

_COMPARE = {
    '>': operator.gt,
    '<': operator.lt,
    '>=': operator.ge,
    '<=': operator.le,
    '==': operator.eq,
    '!=': operator.ne,
}

_ARITHMETIC = {
    '+': operator.add,
    '-': operator.sub,
    '*': operator.mul,
}


class ConditionEvaluator:
    """Stateless tree walker; one instance can serve any number of contexts."""

    def __init__(self, functions: Optional[FunctionRegistry] = None):
        self.functions = functions or default_function_registry()

    def evaluate(self, condition: Union[ParsedCondition, Node], context: EvaluationContext) -> bool:
        """True only when the condition resolves to a definite True."""
        tree = condition.tree if isinstance(condition, ParsedCondition) else condition
        return self.evaluate_node(tree, context) is True

    def evaluate_node(self, node: Node, context: EvaluationContext, shift: int = 0):
        """
        Value of `node` as of `shift` bars ago.

        Returns:
            float, bool, or None when any input is unavailable
        """
        if isinstance(node, Literal):
            return node.value

        if isinstance(node, SeriesRef):
            return context.series_value(node.name, node.offset + shift)

        if isinstance(node, UnaryOp):
            value = self.evaluate_node(node.operand, context, shift)
            if value is None:
                return None
            return (not value) if node.op == 'NOT' else -value

        if isinstance(node, BinaryOp):
            return self._binary(node, context, shift)

        if isinstance(node, FunctionCall):
            spec = self.functions.get(node.name)
            if spec is None:
                return None

            def evaluate(child, child_shift):
                return self.evaluate_node(child, context, child_shift)

            return spec.impl(evaluate, node.args, shift)

        raise TypeError(f"Not a condition node: {node!r}")

    def _binary(self, node: BinaryOp, context: EvaluationContext, shift: int):
        # both sides are always evaluated so a null on either side reaches the root
        left = self.evaluate_node(node.left, context, shift)
        right = self.evaluate_node(node.right, context, shift)
        if left is None or right is None:
            return None

        if node.op == 'AND':
            return bool(left and right)
        if node.op == 'OR':
            return bool(left or right)
        if node.op in _COMPARE:
            return _COMPARE[node.op](left, right)
        if node.op == '/':
            if right == 0:
                return None
            result = left / right
        else:
            result = _ARITHMETIC[node.op](left, right)
        if isinstance(result, float) and not math.isfinite(result):
            return None
        return result
