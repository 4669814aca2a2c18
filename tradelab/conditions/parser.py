"""
Condition Parser - text -> immutable expression tree

Operator precedence, lowest to highest:
    OR
    AND
    NOT
    comparison      > < >= <= == !=   (non-associative: a < b < c is an error)
    additive        + -
    multiplicative  * /
    unary minus
    primary         number | true | false | name | name[k] | fn(args) | ( expr )

`name[k]` reads the series k bars ago. Both `sma[-1]` and `sma[1]` mean
"one bar ago": the sign is ignored because a strategy can never look
into the future.

After parsing, a type check ensures the whole condition is boolean,
AND/OR/NOT operands are boolean, and comparison/arithmetic operands and
function arguments are numeric.

Usage:
    from tradelab.conditions.parser import parse_condition

    parsed = parse_condition("sma_fast > sma_slow AND sma_fast[-1] <= sma_slow[-1]")
    parsed.references   # frozenset({'sma_fast', 'sma_slow'})
    parsed.lookback     # 1
"""

from dataclasses import dataclass
from typing import FrozenSet, List, Optional

from tradelab.conditions.functions import (
    FunctionRegistry,
    default_function_registry,
    is_window_literal,
)
from tradelab.conditions.lexer import Token, tokenize
from tradelab.conditions.nodes import (
    COMPARISON_OPS,
    LOGICAL_OPS,
    BinaryOp,
    FunctionCall,
    Literal,
    Node,
    SeriesRef,
    UnaryOp,
    ValueType,
    iter_nodes,
)
from tradelab.data import BAR_FIELDS
from tradelab.exceptions import ConditionSyntaxError

_DEFAULT_FUNCTIONS = default_function_registry()


@dataclass(frozen=True)
class ParsedCondition:
    """
    A compiled, reusable condition.

    Attributes:
        text: Source text (after parameter substitution)
        tree: Root expression node (boolean)
        references: Indicator names referenced (bar fields excluded)
        fields: Bar fields referenced ('close', 'volume', ...)
        lookback: Deepest history offset the condition can read
    """
    text: str
    tree: Node
    references: FrozenSet[str]
    fields: FrozenSet[str]
    lookback: int


class _Parser:
    """Recursive-descent parser over a token list."""

    def __init__(self, text: str, functions: FunctionRegistry):
        self.text = text
        self.functions = functions
        self.tokens: List[Token] = tokenize(text)
        self.index = 0

    # ── Token helpers ───────────────────────────────────────────────

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def advance(self) -> Token:
        token = self.tokens[self.index]
        if token.kind != 'EOF':
            self.index += 1
        return token

    def match(self, kind: str, text: Optional[str] = None) -> bool:
        token = self.current
        return token.kind == kind and (text is None or token.text == text)

    def expect(self, kind: str, text: str) -> Token:
        if not self.match(kind, text):
            self.error(f"Expected '{text}'")
        return self.advance()

    def error(self, message: str, position: Optional[int] = None):
        token = self.current
        if position is None:
            position = token.position
            if token.kind == 'EOF':
                message = f"{message}, found end of condition"
            else:
                message = f"{message}, found '{token.text}'"
        raise ConditionSyntaxError(message, self.text, position)

    # ── Grammar ─────────────────────────────────────────────────────

    def parse(self) -> Node:
        if self.match('EOF'):
            self.error("Empty condition")
        node = self.parse_or()
        if not self.match('EOF'):
            self.error("Unexpected token")
        return node

    def parse_or(self) -> Node:
        node = self.parse_and()
        while self.match('KEYWORD', 'OR'):
            token = self.advance()
            node = BinaryOp('OR', node, self.parse_and(), token.position)
        return node

    def parse_and(self) -> Node:
        node = self.parse_not()
        while self.match('KEYWORD', 'AND'):
            token = self.advance()
            node = BinaryOp('AND', node, self.parse_not(), token.position)
        return node

    def parse_not(self) -> Node:
        if self.match('KEYWORD', 'NOT'):
            token = self.advance()
            return UnaryOp('NOT', self.parse_not(), token.position)
        return self.parse_comparison()

    def parse_comparison(self) -> Node:
        node = self.parse_additive()
        if self.current.kind == 'OP' and self.current.text in COMPARISON_OPS:
            token = self.advance()
            node = BinaryOp(token.text, node, self.parse_additive(), token.position)
            if self.current.kind == 'OP' and self.current.text in COMPARISON_OPS:
                self.error("Chained comparisons are not supported; combine with AND")
        return node

    def parse_additive(self) -> Node:
        node = self.parse_multiplicative()
        while self.current.kind == 'OP' and self.current.text in ('+', '-'):
            token = self.advance()
            node = BinaryOp(token.text, node, self.parse_multiplicative(), token.position)
        return node

    def parse_multiplicative(self) -> Node:
        node = self.parse_unary()
        while self.current.kind == 'OP' and self.current.text in ('*', '/'):
            token = self.advance()
            node = BinaryOp(token.text, node, self.parse_unary(), token.position)
        return node

    def parse_unary(self) -> Node:
        if self.match('OP', '-'):
            token = self.advance()
            operand = self.parse_unary()
            if isinstance(operand, Literal) and not isinstance(operand.value, bool):
                return Literal(-operand.value, token.position)
            return UnaryOp('NEG', operand, token.position)
        if self.match('OP', '+'):
            self.advance()
            return self.parse_unary()
        return self.parse_primary()

    def parse_primary(self) -> Node:
        token = self.current

        if token.kind == 'NUMBER':
            self.advance()
            return Literal(float(token.text), token.position)

        if token.kind == 'KEYWORD' and token.text in ('TRUE', 'FALSE'):
            self.advance()
            return Literal(token.text == 'TRUE', token.position)

        if token.kind == 'IDENT':
            self.advance()
            if self.match('PUNCT', '('):
                return self.parse_call(token)
            return self.parse_series(token)

        if self.match('PUNCT', '('):
            self.advance()
            node = self.parse_or()
            self.expect('PUNCT', ')')
            return node

        self.error("Expected a number, name or '('")

    def parse_call(self, name_token: Token) -> Node:
        spec = self.functions.get(name_token.text)
        if spec is None:
            self.error(f"Unknown function '{name_token.text}'", name_token.position)
        self.expect('PUNCT', '(')
        args = []
        if not self.match('PUNCT', ')'):
            args.append(self.parse_or())
            while self.match('PUNCT', ','):
                self.advance()
                args.append(self.parse_or())
        self.expect('PUNCT', ')')

        count = len(args)
        if count < spec.min_args or (spec.max_args is not None and count > spec.max_args):
            expected = (
                f"{spec.min_args}" if spec.min_args == spec.max_args
                else f"at least {spec.min_args}" if spec.max_args is None
                else f"{spec.min_args}-{spec.max_args}"
            )
            self.error(
                f"{spec.name}() takes {expected} argument(s), got {count}",
                name_token.position,
            )
        if spec.window_arg is not None and not is_window_literal(args[spec.window_arg]):
            self.error(
                f"{spec.name}() window must be a positive integer literal",
                name_token.position,
            )
        if spec.window_arg is not None:
            window = args[spec.window_arg]
            args[spec.window_arg] = Literal(int(window.value), window.position)
        return FunctionCall(spec.name, tuple(args), name_token.position)

    def parse_series(self, name_token: Token) -> Node:
        name = name_token.text
        if name.lower() in BAR_FIELDS:
            name = name.lower()
        offset = 0
        if self.match('PUNCT', '['):
            self.advance()
            # sign is accepted and ignored: offsets always point backwards
            if self.current.kind == 'OP' and self.current.text in ('-', '+'):
                self.advance()
            token = self.current
            if token.kind != 'NUMBER' or not token.text.isdigit():
                self.error("Offset must be an integer")
            self.advance()
            offset = int(token.text)
            self.expect('PUNCT', ']')
        return SeriesRef(name, offset, name_token.position)


# ── Type check ──────────────────────────────────────────────────────

def _infer_type(node: Node, text: str, functions: FunctionRegistry) -> ValueType:
    def require(child: Node, expected: ValueType, context: str) -> None:
        actual = _infer_type(child, text, functions)
        if actual != expected:
            raise ConditionSyntaxError(
                f"{context} expects a {expected.value} operand, got {actual.value}",
                text, getattr(child, 'position', None),
            )

    if isinstance(node, Literal):
        return node.value_type
    if isinstance(node, SeriesRef):
        return ValueType.NUMBER
    if isinstance(node, UnaryOp):
        if node.op == 'NOT':
            require(node.operand, ValueType.BOOLEAN, 'NOT')
            return ValueType.BOOLEAN
        require(node.operand, ValueType.NUMBER, 'Unary minus')
        return ValueType.NUMBER
    if isinstance(node, BinaryOp):
        if node.op in LOGICAL_OPS:
            require(node.left, ValueType.BOOLEAN, node.op)
            require(node.right, ValueType.BOOLEAN, node.op)
            return ValueType.BOOLEAN
        require(node.left, ValueType.NUMBER, f"'{node.op}'")
        require(node.right, ValueType.NUMBER, f"'{node.op}'")
        return ValueType.BOOLEAN if node.op in COMPARISON_OPS else ValueType.NUMBER
    if isinstance(node, FunctionCall):
        spec = functions.get(node.name)
        for arg in node.args:
            require(arg, ValueType.NUMBER, f"{node.name}()")
        return spec.returns
    raise TypeError(f"Not a condition node: {node!r}")


def required_lookback(node: Node, functions: Optional[FunctionRegistry] = None) -> int:
    """Deepest bar offset the tree can read (0 = current bar only)."""
    functions = functions or _DEFAULT_FUNCTIONS
    if isinstance(node, Literal):
        return 0
    if isinstance(node, SeriesRef):
        return node.offset
    if isinstance(node, UnaryOp):
        return required_lookback(node.operand, functions)
    if isinstance(node, BinaryOp):
        return max(required_lookback(node.left, functions), required_lookback(node.right, functions))
    if isinstance(node, FunctionCall):
        spec = functions.get(node.name)
        series_args = [
            arg for i, arg in enumerate(node.args) if i != spec.window_arg
        ]
        deepest = max((required_lookback(arg, functions) for arg in series_args), default=0)
        return deepest + spec.extra_lookback(node.args)
    raise TypeError(f"Not a condition node: {node!r}")


def parse_condition(
    text: str,
    functions: Optional[FunctionRegistry] = None,
) -> ParsedCondition:
    """
    Parse and type-check a condition string.

    Args:
        text: Condition text with parameters already substituted
        functions: Function table (defaults to the built-ins)

    Returns:
        ParsedCondition with tree, referenced names and lookback

    Raises:
        ConditionSyntaxError: Invalid syntax, unknown function, bad arity
            or a non-boolean condition
    """
    if not isinstance(text, str):
        raise ConditionSyntaxError(f"Condition must be a string, got {type(text).__name__}")
    functions = functions or _DEFAULT_FUNCTIONS
    tree = _Parser(text, functions).parse()

    result_type = _infer_type(tree, text, functions)
    if result_type != ValueType.BOOLEAN:
        raise ConditionSyntaxError("Condition must evaluate to true/false", text, 0)

    references = set()
    fields = set()
    for node in iter_nodes(tree):
        if isinstance(node, SeriesRef):
            if node.name in BAR_FIELDS:
                fields.add(node.name)
            else:
                references.add(node.name)

    return ParsedCondition(
        text=text,
        tree=tree,
        references=frozenset(references),
        fields=frozenset(fields),
        lookback=required_lookback(tree, functions),
    )
