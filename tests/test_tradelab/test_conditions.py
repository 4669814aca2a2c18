"""
Tests for tradelab/conditions

Covers:
- tokenize: keywords, symbolic aliases, unresolved templates
- parse_condition: precedence, offsets, type check, references, lookback
- ConditionEvaluator: null propagation, arithmetic, offsets, built-ins
"""

import pytest

from tradelab.conditions import (
    BinaryOp,
    ConditionEvaluator,
    EvaluationContext,
    FunctionCall,
    Literal,
    SeriesRef,
    UnaryOp,
    parse_condition,
    to_source,
)
from tradelab.conditions.lexer import tokenize
from tradelab.exceptions import ConditionSyntaxError
from tradelab.indicators import BaseIndicator, SimpleMovingAverage


class SeriesIndicator(BaseIndicator):
    """Replays a fixed list of values, one per bar."""

    kind = 'SERIES'

    def __init__(self, values, name='series'):
        super().__init__(1, name=name)
        self._pending = list(values)

    def calculate(self, bar):
        return self._pending.pop(0)


def run_condition(text, bars, indicators=None):
    """Evaluate `text` on every bar; returns the list of results."""
    parsed = parse_condition(text)
    context = EvaluationContext(indicators or {}, parsed.lookback)
    evaluator = ConditionEvaluator()
    results = []
    for bar in bars:
        for indicator in (indicators or {}).values():
            indicator.update(bar)
        context.push_bar(bar)
        results.append(evaluator.evaluate(parsed, context))
    return results


# =============================================================================
# Lexer Tests
# =============================================================================

class TestTokenize:
    """Test the condition tokenizer."""

    def test_keywords_case_insensitive(self):
        """and/AND both become the AND keyword."""
        kinds = [(t.kind, t.text) for t in tokenize("a > 1 and b < 2")]

        assert ('KEYWORD', 'AND') in kinds
        assert kinds[-1] == ('EOF', '')

    def test_symbolic_aliases(self):
        """&& || ! map to AND OR NOT."""
        texts = [t.text for t in tokenize("!a && b || c") if t.kind == 'KEYWORD']

        assert texts == ['NOT', 'AND', 'OR']

    def test_unresolved_template_rejected(self):
        """A leftover {{ }} template is a syntax error."""
        with pytest.raises(ConditionSyntaxError):
            tokenize("sma > {{threshold}}")

    def test_unexpected_character_position(self):
        """Errors carry the character offset."""
        with pytest.raises(ConditionSyntaxError) as exc_info:
            tokenize("close > $5")

        assert exc_info.value.position == 8


# =============================================================================
# Parser Tests
# =============================================================================

class TestParseCondition:
    """Test parse_condition structure and precedence."""

    def test_simple_comparison(self):
        """close > 10 parses to one BinaryOp."""
        parsed = parse_condition("close > 10")

        assert parsed.tree == BinaryOp('>', SeriesRef('close'), Literal(10.0))

    def test_multiplication_binds_tighter_than_addition(self):
        """a + b * 2 > c groups as (a + (b * 2)) > c."""
        tree = parse_condition("a + b * 2 > c").tree

        assert tree == BinaryOp(
            '>',
            BinaryOp('+', SeriesRef('a'), BinaryOp('*', SeriesRef('b'), Literal(2.0))),
            SeriesRef('c'),
        )

    def test_and_binds_tighter_than_or(self):
        """x OR y AND z groups as x OR (y AND z)."""
        tree = parse_condition("a > 1 OR b > 1 AND c > 1").tree

        assert tree.op == 'OR'
        assert tree.right.op == 'AND'

    def test_not_binds_tighter_than_and(self):
        """NOT applies to the comparison, not the whole AND."""
        tree = parse_condition("NOT a > 1 AND b > 1").tree

        assert tree.op == 'AND'
        assert isinstance(tree.left, UnaryOp)
        assert tree.left.op == 'NOT'

    def test_parentheses_override_precedence(self):
        """Parentheses group explicitly."""
        tree = parse_condition("(a > 1 OR b > 1) AND c > 1").tree

        assert tree.op == 'AND'
        assert tree.left.op == 'OR'

    def test_negative_literal_folded(self):
        """-5 becomes a single literal."""
        tree = parse_condition("a > -5").tree

        assert tree.right == Literal(-5.0)

    def test_offsets_sign_ignored(self):
        """sma[-2] and sma[2] both read two bars ago."""
        assert parse_condition("sma[-2] > 0").tree.left == SeriesRef('sma', 2)
        assert parse_condition("sma[2] > 0").tree.left == SeriesRef('sma', 2)

    def test_function_call(self):
        """crossover(a, b) parses into a FunctionCall."""
        tree = parse_condition("crossover(sma_fast, sma_slow)").tree

        assert tree == FunctionCall('crossover', (SeriesRef('sma_fast'), SeriesRef('sma_slow')))

    def test_to_source_round_trip(self):
        """Canonical text re-parses to the same tree."""
        parsed = parse_condition("NOT (a + 1 > b[1]) OR rising(close, 3)")

        assert parse_condition(to_source(parsed.tree)).tree == parsed.tree

    def test_boolean_literal_condition(self):
        """true alone is a valid condition."""
        assert parse_condition("true").tree == Literal(True)


class TestParseReferences:
    """Test references, fields and lookback."""

    def test_references_exclude_bar_fields(self):
        """Bar fields are reported separately from indicators."""
        parsed = parse_condition("close > sma_fast AND VOLUME > 0")

        assert parsed.references == frozenset({'sma_fast'})
        assert parsed.fields == frozenset({'close', 'volume'})

    def test_lookback_from_offsets(self):
        """Deepest offset sets the lookback."""
        assert parse_condition("a > b[3]").lookback == 3
        assert parse_condition("a > b").lookback == 0

    def test_lookback_from_functions(self):
        """crossover needs 1 bar; window functions need window - 1."""
        assert parse_condition("crossover(a, b)").lookback == 1
        assert parse_condition("rising(close, 3)").lookback == 2
        assert parse_condition("highest(high[1], 5) < close").lookback == 5


class TestParseErrors:
    """Test syntax and type errors."""

    @pytest.mark.parametrize("text", [
        "",
        "   ",
        "a >",
        "a > > 1",
        "(a > 1",
        "a > 1)",
        "a < b < c",
        "a + 1",
        "a AND b",
        "NOT a",
        "foo(a) > 1",
        "crossover(a)",
        "rising(a, b)",
        "rising(a, 0)",
        "sma[1.5] > 0",
        "crossover(a > 1, b)",
    ])
    def test_invalid_conditions_raise(self, text):
        """Each malformed condition raises ConditionSyntaxError."""
        with pytest.raises(ConditionSyntaxError):
            parse_condition(text)

    def test_error_position(self):
        """The error points at the offending token."""
        with pytest.raises(ConditionSyntaxError) as exc_info:
            parse_condition("a > > 1")

        assert exc_info.value.position == 4

    def test_non_string_rejected(self):
        """Conditions must be strings."""
        with pytest.raises(ConditionSyntaxError):
            parse_condition(42)


# =============================================================================
# Evaluator Tests
# =============================================================================

class TestEvaluatorNulls:
    """Test null propagation."""

    def test_not_ready_indicator_is_false(self, bar_factory):
        """An indicator still warming up makes the condition False."""
        indicators = {'sma': SeriesIndicator([None, 5.0])}

        assert run_condition("sma > 0", bar_factory([1, 2]), indicators) == [False, True]

    def test_null_not_negated(self, bar_factory):
        """NOT of an unknown value is still not True."""
        indicators = {'sma': SeriesIndicator([None])}

        assert run_condition("NOT (sma > 0)", bar_factory([1]), indicators) == [False]

    def test_null_or_true_is_false(self, bar_factory):
        """A null operand anywhere in OR suppresses the signal."""
        indicators = {'x': SeriesIndicator([None])}

        assert run_condition("x > 0 OR close > 0", bar_factory([1]), indicators) == [False]

    def test_false_and_null_is_null(self, bar_factory):
        """False AND null stays null rather than False."""
        evaluator = ConditionEvaluator()
        context = EvaluationContext({'x': SeriesIndicator([None])})
        bar = bar_factory([1])[0]
        context.indicators['x'].update(bar)
        context.push_bar(bar)

        tree = parse_condition("close < 0 AND x > 0").tree
        assert evaluator.evaluate_node(tree, context) is None

    def test_negated_and_with_warming_indicator(self, bar_factory):
        """NOT (false AND not-ready) does not fire during warm-up."""
        indicators = {'sma': SimpleMovingAverage(5, name='sma')}

        results = run_condition("NOT (close < 0 AND sma > 0)", bar_factory([1, 2, 3, 4, 5]), indicators)

        assert results == [False, False, False, False, True]

    def test_division_by_zero_is_null(self, bar_factory):
        """x / 0 is null, never an error."""
        indicators = {'zero': SeriesIndicator([0.0])}

        assert run_condition("close / zero > 1", bar_factory([10]), indicators) == [False]
        indicators = {'zero': SeriesIndicator([0.0])}
        assert run_condition("NOT (close / zero > 1)", bar_factory([10]), indicators) == [False]

    def test_unknown_runtime_name_is_null(self, bar_factory):
        """A name with no indicator behind it evaluates to null."""
        assert run_condition("ghost > 0", bar_factory([1])) == [False]

    def test_offset_beyond_history_is_false(self, bar_factory):
        """close[1] on the first bar is unavailable."""
        assert run_condition("close > close[1]", bar_factory([1, 2, 1])) == [False, True, False]


class TestEvaluatorValues:
    """Test arithmetic and built-in functions."""

    def test_arithmetic(self, bar_factory):
        """(close + 2) * 2 == 24 for close 10."""
        assert run_condition("(close + 2) * 2 == 24", bar_factory([10])) == [True]

    def test_unary_minus_on_series(self, bar_factory):
        """-close < 0 for positive prices."""
        assert run_condition("-close < 0", bar_factory([5])) == [True]

    def test_crossover(self, bar_factory):
        """crossover is True only on the bar a moves above b."""
        indicators = {
            'a': SeriesIndicator([1.0, 2.0, 3.0, 4.0], name='a'),
            'b': SeriesIndicator([2.0, 2.0, 2.0, 2.0], name='b'),
        }

        results = run_condition("crossover(a, b)", bar_factory([1, 1, 1, 1]), indicators)

        assert results == [False, False, True, False]

    def test_crossunder(self, bar_factory):
        """crossunder is True only on the bar a moves below b."""
        indicators = {
            'a': SeriesIndicator([3.0, 2.0, 1.0], name='a'),
            'b': SeriesIndicator([2.0, 2.0, 2.0], name='b'),
        }

        results = run_condition("crossunder(a, b)", bar_factory([1, 1, 1]), indicators)

        assert results == [False, False, True]

    def test_crossover_not_ready(self, bar_factory):
        """Series without a previous value never cross."""
        indicators = {
            'a': SeriesIndicator([None, 3.0], name='a'),
            'b': SeriesIndicator([2.0, 2.0], name='b'),
        }

        assert run_condition("crossover(a, b)", bar_factory([1, 1]), indicators) == [False, False]

    def test_window_functions(self, bar_factory):
        """highest / lowest / avg / sum over the last n closes."""
        bars = bar_factory([1, 5, 3])

        assert run_condition("highest(close, 3) == 5", bars)[-1] is True
        assert run_condition("lowest(close, 3) == 1", bars)[-1] is True
        assert run_condition("avg(close, 3) == 3", bars)[-1] is True
        assert run_condition("sum(close, 2) == 8", bars)[-1] is True

    def test_rising_falling(self, bar_factory):
        """rising/falling require strict moves across the window."""
        assert run_condition("rising(close, 3)", bar_factory([1, 2, 3])) == [False, False, True]
        assert run_condition("falling(close, 2)", bar_factory([3, 2, 2])) == [False, True, False]

    def test_scalar_functions(self, bar_factory):
        """abs / min / max / pow / sqrt."""
        bars = bar_factory([10])

        assert run_condition("abs(close - 20) == 10", bars) == [True]
        assert run_condition("min(close, 5, 7) == 5", bars) == [True]
        assert run_condition("max(close, 5) == 10", bars) == [True]
        assert run_condition("pow(close, 2) == 100", bars) == [True]
        assert run_condition("sqrt(close - 20) > 0", bars) == [False]
