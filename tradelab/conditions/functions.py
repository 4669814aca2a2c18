"""
Built-in functions for the condition language.

Functions are looked up in a FunctionRegistry instance (never a global),
so an engine can add domain-specific functions without affecting others.

Series-aware functions (crossover, rising, highest, ...) evaluate their
series arguments at several historical offsets through the `evaluate`
callback they receive; window sizes must be positive integer literals so
the required lookback is known at parse time.

Implementation signature:
    impl(evaluate, args, shift) -> value or None
where evaluate(node, shift) returns the node's value `shift` bars ago
(None when unavailable).
"""

import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from tradelab.conditions.nodes import Literal, Node, ValueType

Evaluate = Callable[[Node, int], object]


@dataclass(frozen=True)
class FunctionSpec:
    """
    Definition of one built-in.

    Attributes:
        name: Lower-case function name
        min_args / max_args: Arity (max_args None = variadic)
        returns: Result type, used by the parser's type check
        impl: Callable(evaluate, args, shift)
        window_arg: Index of the positive-int literal window argument, if any
        base_lookback: Extra bars of history needed beyond the window
    """
    name: str
    min_args: int
    max_args: Optional[int]
    returns: ValueType
    impl: Callable[[Evaluate, Sequence[Node], int], object]
    window_arg: Optional[int] = None
    base_lookback: int = 0

    def extra_lookback(self, args: Sequence[Node]) -> int:
        extra = self.base_lookback
        if self.window_arg is not None:
            extra += int(args[self.window_arg].value) - 1
        return extra


# ── Series helpers ──────────────────────────────────────────────────

def _window_values(evaluate: Evaluate, node: Node, n: int, shift: int) -> Optional[List[float]]:
    """Values of `node` at shift, shift+1, ... shift+n-1 (newest first)."""
    values = []
    for i in range(n):
        v = evaluate(node, shift + i)
        if v is None:
            return None
        values.append(v)
    return values


def _window(args: Sequence[Node]) -> int:
    return int(args[1].value)


def _crossover(evaluate, args, shift):
    a_now, b_now = evaluate(args[0], shift), evaluate(args[1], shift)
    a_prev, b_prev = evaluate(args[0], shift + 1), evaluate(args[1], shift + 1)
    if None in (a_now, b_now, a_prev, b_prev):
        return None
    return a_now > b_now and a_prev <= b_prev


def _crossunder(evaluate, args, shift):
    a_now, b_now = evaluate(args[0], shift), evaluate(args[1], shift)
    a_prev, b_prev = evaluate(args[0], shift + 1), evaluate(args[1], shift + 1)
    if None in (a_now, b_now, a_prev, b_prev):
        return None
    return a_now < b_now and a_prev >= b_prev


def _rising(evaluate, args, shift):
    values = _window_values(evaluate, args[0], _window(args), shift)
    if values is None:
        return None
    # values[0] is the newest
    return all(values[i] > values[i + 1] for i in range(len(values) - 1))


def _falling(evaluate, args, shift):
    values = _window_values(evaluate, args[0], _window(args), shift)
    if values is None:
        return None
    return all(values[i] < values[i + 1] for i in range(len(values) - 1))


def _reducer(func):
    def impl(evaluate, args, shift):
        values = _window_values(evaluate, args[0], _window(args), shift)
        if values is None:
            return None
        return func(values)
    return impl


def _scalar(func):
    """Wrap a plain math function; None in, None out; math errors -> None."""
    def impl(evaluate, args, shift):
        values = [evaluate(arg, shift) for arg in args]
        if any(v is None for v in values):
            return None
        try:
            result = func(*values)
        except (ValueError, OverflowError, ZeroDivisionError):
            return None
        if isinstance(result, complex) or (isinstance(result, float) and not math.isfinite(result)):
            return None
        return result
    return impl


def _sqrt(x):
    if x < 0:
        return None
    return math.sqrt(x)


def _pow(x, y):
    return math.pow(x, y)


BUILT_IN_FUNCTIONS = (
    FunctionSpec('crossover', 2, 2, ValueType.BOOLEAN, _crossover, base_lookback=1),
    FunctionSpec('crossunder', 2, 2, ValueType.BOOLEAN, _crossunder, base_lookback=1),
    FunctionSpec('rising', 2, 2, ValueType.BOOLEAN, _rising, window_arg=1),
    FunctionSpec('falling', 2, 2, ValueType.BOOLEAN, _falling, window_arg=1),
    FunctionSpec('highest', 2, 2, ValueType.NUMBER, _reducer(max), window_arg=1),
    FunctionSpec('lowest', 2, 2, ValueType.NUMBER, _reducer(min), window_arg=1),
    FunctionSpec('avg', 2, 2, ValueType.NUMBER, _reducer(lambda v: sum(v) / len(v)), window_arg=1),
    FunctionSpec('sum', 2, 2, ValueType.NUMBER, _reducer(sum), window_arg=1),
    FunctionSpec('abs', 1, 1, ValueType.NUMBER, _scalar(abs)),
    FunctionSpec('min', 2, None, ValueType.NUMBER, _scalar(min)),
    FunctionSpec('max', 2, None, ValueType.NUMBER, _scalar(max)),
    FunctionSpec('pow', 2, 2, ValueType.NUMBER, _scalar(_pow)),
    FunctionSpec('sqrt', 1, 1, ValueType.NUMBER, _scalar(_sqrt)),
)


class FunctionRegistry:
    """Name -> FunctionSpec table; names are case-insensitive."""

    def __init__(self, functions: Sequence[FunctionSpec] = ()):
        self._functions: Dict[str, FunctionSpec] = {}
        for spec in functions:
            self.register(spec)

    def register(self, spec: FunctionSpec) -> None:
        self._functions[spec.name.lower()] = spec

    def unregister(self, name: str) -> None:
        self._functions.pop(name.lower(), None)

    def get(self, name: str) -> Optional[FunctionSpec]:
        return self._functions.get(name.lower())

    def names(self) -> List[str]:
        return sorted(self._functions)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._functions


def default_function_registry() -> FunctionRegistry:
    """Fresh registry with the built-in functions."""
    return FunctionRegistry(BUILT_IN_FUNCTIONS)


def is_window_literal(node: Node) -> bool:
    """True for a positive integer literal usable as a window size."""
    return (
        isinstance(node, Literal)
        and not isinstance(node.value, bool)
        and float(node.value).is_integer()
        and node.value >= 1
    )
