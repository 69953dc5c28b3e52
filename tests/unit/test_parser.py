"""
Tests for the formula tokenizer and parser.
"""

import pytest

from modelterms.core.exceptions import FormulaSyntaxError, MalformedFormulaError
from modelterms.formulas.parser import FormulaParser, parse, parse_formula, parse_terms, tokenize
from modelterms.formulas.terms import (
    And,
    ConstantTerm,
    FormulaTerm,
    FunctionTerm,
    InteractionTerm,
    LiteralTerm,
    Product,
    Sum,
    Tilde,
    VariableTerm,
)


pytestmark = pytest.mark.unit


class TestTokenizer:
    """Token stream tests."""

    def test_tokens(self):
        """Names, numbers and operators are split with their positions."""
        tokens = tokenize("y ~ log(x) + 1")
        kinds = [t.kind for t in tokens]
        assert kinds == ["name", "op", "name", "op", "name", "op", "op", "number", "eof"]
        assert tokens[2].start == 4

    def test_quoted_names(self):
        """Backtick-quoted names may contain spaces."""
        tokens = tokenize("`body mass` ~ age")
        assert tokens[0].kind == "name"
        assert tokens[0].text == "body mass"

    def test_unexpected_character(self):
        """Unknown characters raise FormulaSyntaxError with the position."""
        with pytest.raises(FormulaSyntaxError) as exc_info:
            tokenize("y ~ a $ b")
        assert exc_info.value.position == 6
        assert "^" in str(exc_info.value)


class TestParser:
    """Raw tree construction."""

    def setup_method(self):
        """Setup for each test."""
        self.parser = FormulaParser()

    def test_precedence(self):
        """'~' binds loosest, then '+', then '&' and '*'."""
        raw = self.parser.parse("y ~ a + b & c")
        assert isinstance(raw, Tilde)
        assert raw.lhs == VariableTerm("y")
        assert raw.rhs == Sum((VariableTerm("a"), And((VariableTerm("b"), VariableTerm("c")))))

    def test_star_chain_is_nary(self):
        """a * b * c parses as one Product with three parts."""
        raw = parse("a * b * c")
        assert isinstance(raw, Product)
        assert len(raw.parts) == 3

    def test_mixed_left_associative(self):
        """a * b & c groups as (a * b) & c."""
        raw = parse("a * b & c")
        assert isinstance(raw, And)
        assert isinstance(raw.parts[0], Product)

    def test_parentheses_group(self):
        """(a + b) & c keeps the sum as an operand."""
        raw = parse("(a + b) & c")
        assert isinstance(raw, And)
        assert isinstance(raw.parts[0], Sum)

    def test_constants(self):
        """0 and 1 become constant terms."""
        raw = parse("y ~ 0 + a")
        assert raw.rhs.parts[0] == ConstantTerm(0)

    def test_other_numbers_rejected_at_formula_level(self):
        """Numbers other than 0 and 1 outside calls are malformed."""
        with pytest.raises(MalformedFormulaError):
            parse("y ~ 2 + a")

    def test_function_call_keeps_source_text(self):
        """Function terms record the exact source slice."""
        raw = parse("log( x )")
        assert isinstance(raw, FunctionTerm)
        assert raw.callee == "log"
        assert raw.expr == "log( x )"
        assert raw.args == (VariableTerm("x"),)

    def test_arithmetic_arguments(self):
        """Operators inside calls build arithmetic function terms."""
        raw = parse("log(x + 1)")
        inner = raw.args[0]
        assert inner.callee == "+"
        assert inner.args == (VariableTerm("x"), LiteralTerm(1.0))

    def test_arithmetic_precedence(self):
        """Inside calls '*' binds tighter than '+' and '^' tighter than unary minus."""
        raw = parse("I(a + b * c)")
        assert raw.args[0].callee == "+"
        assert raw.args[0].args[1].callee == "*"

        neg = parse("I(-x^2)").args[0]
        assert neg.callee == "neg"
        assert neg.args[0].callee == "^"

    def test_multiple_arguments(self):
        """Comma-separated arguments are kept in order."""
        raw = parse("pow(x, 2)")
        assert raw.args == (VariableTerm("x"), LiteralTerm(2.0))

    def test_nested_calls(self):
        """Calls nest inside arguments."""
        raw = parse("exp(log(x))")
        assert raw.args[0].callee == "log"
        assert raw.args[0].expr == "log(x)"

    def test_interaction_inside_call_rejected(self):
        """'&' and '~' inside a call are malformed."""
        with pytest.raises(MalformedFormulaError):
            parse("log(a & b)")
        with pytest.raises(MalformedFormulaError):
            parse("log(a ~ b)")

    @pytest.mark.parametrize("source", [
        "",
        "y ~",
        "y ~ (a + b",
        "y ~ a +",
        "y ~ log()",
        "y ~ a b",
        "y ~ - a",
    ])
    def test_syntax_errors(self, source):
        """Incomplete or invalid formulas raise FormulaSyntaxError."""
        with pytest.raises(FormulaSyntaxError):
            parse(source)

    def test_syntax_error_is_malformed_formula(self):
        """FormulaSyntaxError is a MalformedFormulaError."""
        with pytest.raises(MalformedFormulaError):
            parse("y ~ (a")


class TestParseEntryPoints:
    """parse_formula and parse_terms."""

    def test_parse_formula_normalizes(self):
        """parse_formula expands the right-hand side."""
        formula = parse_formula("y ~ a * b")
        assert isinstance(formula, FormulaTerm)
        assert formula.lhs == VariableTerm("y")
        assert [t.name for t in formula.rhs] == ["a", "b", "a & b"]
        assert isinstance(formula.rhs[2], InteractionTerm)

    def test_parse_formula_requires_tilde(self):
        """A formula without '~' is malformed."""
        with pytest.raises(MalformedFormulaError):
            parse_formula("a + b")

    def test_parse_terms(self):
        """parse_terms returns a flat tuple."""
        result = parse_terms("a * b + c")
        assert [t.name for t in result] == ["a", "b", "a & b", "c"]

    def test_multiple_tildes_rejected(self):
        """'~' may appear only once."""
        with pytest.raises(MalformedFormulaError):
            parse_formula("y ~ a ~ b")
