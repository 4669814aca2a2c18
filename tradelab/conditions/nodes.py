"""
Condition expression tree.

Immutable (frozen) nodes produced once by the parser and walked every bar
by the evaluator. `position` is the character offset in the source string,
kept for error messages and excluded from equality so two compilations of
the same text compare equal.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple, Union


class ValueType(str, Enum):
    NUMBER = "number"
    BOOLEAN = "boolean"


@dataclass(frozen=True)
class Literal:
    value: Union[float, bool]
    position: int = field(default=-1, compare=False)

    @property
    def value_type(self) -> ValueType:
        return ValueType.BOOLEAN if isinstance(self.value, bool) else ValueType.NUMBER


@dataclass(frozen=True)
class SeriesRef:
    """Named series (indicator or bar field) `offset` bars ago."""
    name: str
    offset: int = 0
    position: int = field(default=-1, compare=False)


@dataclass(frozen=True)
class UnaryOp:
    op: str                 # 'NOT' or 'NEG'
    operand: 'Node'
    position: int = field(default=-1, compare=False)


@dataclass(frozen=True)
class BinaryOp:
    op: str                 # AND OR > < >= <= == != + - * /
    left: 'Node'
    right: 'Node'
    position: int = field(default=-1, compare=False)


@dataclass(frozen=True)
class FunctionCall:
    name: str
    args: Tuple['Node', ...]
    position: int = field(default=-1, compare=False)


Node = Union[Literal, SeriesRef, UnaryOp, BinaryOp, FunctionCall]

LOGICAL_OPS = frozenset({'AND', 'OR'})
COMPARISON_OPS = frozenset({'>', '<', '>=', '<=', '==', '!='})
ARITHMETIC_OPS = frozenset({'+', '-', '*', '/'})


def iter_nodes(node: Node):
    """Depth-first walk over a tree, parents before children."""
    yield node
    if isinstance(node, UnaryOp):
        yield from iter_nodes(node.operand)
    elif isinstance(node, BinaryOp):
        yield from iter_nodes(node.left)
        yield from iter_nodes(node.right)
    elif isinstance(node, FunctionCall):
        for arg in node.args:
            yield from iter_nodes(arg)


def to_source(node: Node) -> str:
    """Render a tree back to canonical condition text (fully parenthesized)."""
    if isinstance(node, Literal):
        if isinstance(node.value, bool):
            return 'true' if node.value else 'false'
        value = node.value
        return str(int(value)) if float(value).is_integer() else repr(value)
    if isinstance(node, SeriesRef):
        return f"{node.name}[{node.offset}]" if node.offset else node.name
    if isinstance(node, UnaryOp):
        inner = to_source(node.operand)
        return f"NOT ({inner})" if node.op == 'NOT' else f"-({inner})"
    if isinstance(node, BinaryOp):
        return f"({to_source(node.left)} {node.op} {to_source(node.right)})"
    if isinstance(node, FunctionCall):
        return f"{node.name}({', '.join(to_source(a) for a in node.args)})"
    raise TypeError(f"Not a condition node: {node!r}")
