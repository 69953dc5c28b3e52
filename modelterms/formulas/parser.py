"""
Formula parser for modelterms.

Converts formula source text into the raw term tree consumed by the normalizer.

Supported syntax:
- Response and predictors: ``y ~ a + b``
- Interactions: ``a & b``; main effects plus interactions: ``a * b``
- Intercept control: ``1`` (explicit) and ``0`` (suppressed)
- Function terms: ``log(x)``, ``pow(x, 2)``, ``I(a * b)``, ``protect(a + b)``
- Quoted column names: ```body mass` ~ age``

Precedence from lowest to highest: ``~``, ``+``, then ``&`` and ``*`` (equal,
left-associative). Inside function calls the operators ``+ - * / ^`` are
arithmetic.
"""

import re
from typing import List, NamedTuple, Optional, Tuple

from .terms import (
    And,
    ConstantTerm,
    FormulaTerm,
    FunctionTerm,
    LiteralTerm,
    NEGATION,
    Product,
    Sum,
    Term,
    Tilde,
    VariableTerm,
)
from .normalize import normalize, normalize_terms
from ..core.exceptions import FormulaSyntaxError, MalformedFormulaError
from ..utils.logging import get_logger


logger = get_logger(__name__)


class Token(NamedTuple):
    kind: str
    text: str
    start: int
    end: int


_TOKEN_PATTERN = re.compile(
    r"""
    (?P<ws>\s+)
    |(?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
    |(?P<name>[A-Za-z_][A-Za-z0-9_.]*)
    |(?P<quoted>`[^`]+`)
    |(?P<op>[~+&*\-/^(),])
    """,
    re.VERBOSE,
)


def tokenize(source: str) -> List[Token]:
    """Split formula source into tokens."""
    tokens = []
    pos = 0
    while pos < len(source):
        match = _TOKEN_PATTERN.match(source, pos)
        if match is None:
            raise FormulaSyntaxError(source, pos, f"unexpected character {source[pos]!r}")
        kind = match.lastgroup
        if kind == "quoted":
            tokens.append(Token("name", match.group()[1:-1], match.start(), match.end()))
        elif kind != "ws":
            tokens.append(Token(kind, match.group(), match.start(), match.end()))
        pos = match.end()
    tokens.append(Token("eof", "", len(source), len(source)))
    return tokens


class _ParseState:
    """Recursive-descent parser over a token list."""

    def __init__(self, source: str):
        self.source = source
        self.tokens = tokenize(source)
        self.index = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def peek_op(self, *ops: str) -> Optional[str]:
        token = self.current
        if token.kind == "op" and token.text in ops:
            return token.text
        return None

    def advance(self) -> Token:
        token = self.current
        self.index += 1
        return token

    def expect(self, op: str) -> Token:
        if self.peek_op(op) is None:
            self.fail(f"expected '{op}'")
        return self.advance()

    def fail(self, reason: str, token: Optional[Token] = None):
        token = token or self.current
        found = "end of formula" if token.kind == "eof" else repr(token.text)
        raise FormulaSyntaxError(self.source, token.start, f"{reason}, found {found}")

    # formula level ---------------------------------------------------------

    def parse(self) -> Term:
        if self.current.kind == "eof":
            raise FormulaSyntaxError(self.source, 0, "empty formula")
        result = self.formula()
        if self.current.kind != "eof":
            self.fail("unexpected token")
        return result

    def formula(self) -> Term:
        left = self.sum()
        while self.peek_op("~"):
            self.advance()
            left = Tilde(left, self.sum())
        return left

    def sum(self) -> Term:
        parts = [self.product()]
        while self.peek_op("+"):
            self.advance()
            parts.append(self.product())
        return parts[0] if len(parts) == 1 else Sum(tuple(parts))

    def product(self) -> Term:
        left = self.atom()
        while True:
            op = self.peek_op("&", "*")
            if op is None:
                return left
            self.advance()
            right = self.atom()
            node_type = Product if op == "*" else And
            if isinstance(left, node_type):
                left = node_type(left.parts + (right,))
            else:
                left = node_type((left, right))

    def atom(self) -> Term:
        token = self.current
        if token.kind == "number":
            self.advance()
            return self.constant(token)
        if token.kind == "name":
            self.advance()
            if self.peek_op("("):
                return self.call(token)
            return VariableTerm(token.text)
        if self.peek_op("("):
            self.advance()
            inner = self.formula()
            self.expect(")")
            return inner
        if self.peek_op("-"):
            self.fail("'-' is only allowed inside function calls")
        self.fail("expected a term")

    def constant(self, token: Token) -> ConstantTerm:
        if token.text not in ("0", "1"):
            raise MalformedFormulaError(
                formula=self.source,
                reason=f"numeric literal {token.text} at position {token.start}; only 0 and 1 may appear outside function calls",
                suggestions=[
                    "Use '1' to request and '0' to suppress the intercept",
                    "Wrap arithmetic in a function call, e.g. I(2 * x)",
                ],
            )
        return ConstantTerm(int(token.text))

    # function arguments ------------------------------------------------------

    def call(self, name_token: Token) -> FunctionTerm:
        self.expect("(")
        if self.peek_op(")"):
            self.fail(f"function '{name_token.text}' requires arguments")
        args = [self.arith()]
        while self.peek_op(","):
            self.advance()
            args.append(self.arith())
        closing = self.expect(")")
        expr = self.source[name_token.start:closing.end]
        return FunctionTerm(name_token.text, tuple(args), expr=expr)

    def arith(self) -> Term:
        left = self.arith_term()
        while True:
            op = self.peek_op("+", "-")
            if op is None:
                break
            self.advance()
            left = FunctionTerm(op, (left, self.arith_term()))
        self._reject_formula_operator()
        return left

    def arith_term(self) -> Term:
        left = self.arith_unary()
        while True:
            op = self.peek_op("*", "/")
            if op is None:
                return left
            self.advance()
            left = FunctionTerm(op, (left, self.arith_unary()))

    def arith_unary(self) -> Term:
        if self.peek_op("-"):
            self.advance()
            return FunctionTerm(NEGATION, (self.arith_unary(),))
        return self.arith_power()

    def arith_power(self) -> Term:
        base = self.arith_atom()
        if self.peek_op("^"):
            self.advance()
            return FunctionTerm("^", (base, self.arith_unary()))
        return base

    def arith_atom(self) -> Term:
        token = self.current
        if token.kind == "number":
            self.advance()
            return LiteralTerm(float(token.text))
        if token.kind == "name":
            self.advance()
            if self.peek_op("("):
                return self.call(token)
            return VariableTerm(token.text)
        if self.peek_op("("):
            self.advance()
            inner = self.arith()
            self.expect(")")
            return inner
        self._reject_formula_operator()
        self.fail("expected an argument")

    def _reject_formula_operator(self) -> None:
        op = self.peek_op("&", "~")
        if op is not None:
            raise MalformedFormulaError(
                formula=self.source,
                reason=f"'{op}' at position {self.current.start} is not allowed inside a function call",
                suggestions=[
                    "Move interactions outside the function call",
                    "Arithmetic inside calls uses '+', '-', '*', '/', '^'",
                ],
            )


class FormulaParser:
    """
    Parser for formula source text.

    Examples:
        "y ~ a + b"       -> Tilde(y, Sum(a, b))
        "y ~ a * b"       -> Tilde(y, Product(a, b))
        "y ~ 0 + log(x)"  -> Tilde(y, Sum(0, log(x)))
    """

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def parse(self, source: str) -> Term:
        """Parse source text into the raw (unnormalized) term tree."""
        if not isinstance(source, str):
            raise MalformedFormulaError(reason=f"formula source must be a string, got {type(source).__name__}")
        self.logger.debug(f"Parsing formula: {source.strip()}")
        return _ParseState(source).parse()

    def parse_formula(self, source: str) -> FormulaTerm:
        """Parse and normalize a two-sided formula."""
        formula = normalize(self.parse(source))
        self.logger.debug(
            f"Parsed formula: {formula}",
            terms=len(formula.rhs),
            intercept=formula.has_intercept,
        )
        return formula

    def parse_terms(self, source: str) -> Tuple[Term, ...]:
        """Parse and normalize a right-hand side without a response."""
        return normalize_terms(self.parse(source))


def parse(source: str) -> Term:
    """Parse source text into the raw term tree."""
    return FormulaParser().parse(source)


def parse_formula(source: str) -> FormulaTerm:
    """
    Parse a formula string into a normalized FormulaTerm.

    Args:
        source: Formula text, e.g. ``"y ~ 1 + a * b + log(x)"``

    Returns:
        FormulaTerm with a flat, deduplicated right-hand side

    Raises:
        FormulaSyntaxError: If the text cannot be parsed
        MalformedFormulaError: If '~' or constants are misused
    """
    return FormulaParser().parse_formula(source)


def parse_terms(source: str) -> Tuple[Term, ...]:
    """Parse a right-hand side such as ``"a * b + c"`` into normalized terms."""
    return FormulaParser().parse_terms(source)
