"""
Tests for schema resolution (apply_schema).
"""

import numpy as np
import pandas as pd
import pytest

from modelterms.config.settings import ModelTermsConfig
from modelterms.core.exceptions import (
    AmbiguousCodingError,
    DuplicateTermError,
    MalformedFormulaError,
    SchemaMismatchError,
    UnknownFunctionError,
)
from modelterms.formulas.contrasts import EffectsCoding, FullDummyCoding, contrast_matrix
from modelterms.formulas.parser import parse_formula
from modelterms.formulas.resolve import apply_schema, term_key
from modelterms.formulas.schema import Categorical, Continuous, Schema, extract_schema
from modelterms.formulas.terms import (
    CategoricalTerm,
    ConstantTerm,
    ContinuousTerm,
    FormulaTerm,
    FunctionTerm,
    InteractionTerm,
    InterceptTerm,
    LiteralTerm,
    VariableTerm,
    function,
    protect,
    term,
    terms,
)


pytestmark = pytest.mark.unit


def resolve(source, data, **kwargs):
    formula = parse_formula(source)
    schema = extract_schema(formula, data, hints=kwargs.pop("hints", None))
    return apply_schema(formula, schema, **kwargs)


class TestVariables:
    """Variable resolution."""

    def test_variables_become_typed_terms(self, sample_frame):
        """Numeric columns resolve continuous and strings categorical."""
        formula = resolve("y ~ x + a", sample_frame)
        assert isinstance(formula.lhs, ContinuousTerm)
        assert isinstance(formula.rhs[0], InterceptTerm)
        assert isinstance(formula.rhs[1], ContinuousTerm)
        assert isinstance(formula.rhs[2], CategoricalTerm)
        assert formula.rhs[2].levels == ("hi", "lo", "mid")

    def test_no_variable_terms_remain(self, sample_frame):
        """A resolved formula holds no VariableTerm."""
        formula = resolve("y ~ a * b + log(x)", sample_frame)

        def walk(t):
            assert not isinstance(t, VariableTerm)
            for child in getattr(t, "factors", ()) + getattr(t, "args", ()):
                walk(child)

        for t in formula.rhs:
            walk(t)

    def test_continuous_statistics_carried(self, sample_frame):
        """Continuous terms keep the extracted statistics."""
        x = resolve("y ~ x", sample_frame).rhs[1]
        assert x.mean == pytest.approx(3.5)
        assert x.minimum == 1.0

    def test_default_scheme_from_config(self, sample_frame):
        """The configured default scheme is used without overrides."""
        config = ModelTermsConfig(contrasts={"default": "effects"})
        formula = parse_formula("y ~ a")
        schema = extract_schema(formula, sample_frame)
        resolved = apply_schema(formula, schema, config=config)
        assert resolved.rhs[1].contrasts.scheme == EffectsCoding()

    def test_override_wins(self, sample_frame):
        """Per-variable overrides are checked before the default."""
        formula = resolve("y ~ a + b", sample_frame, contrasts={"a": "helmert"})
        assert formula.rhs[1].contrasts.scheme.name == "helmert"
        assert formula.rhs[2].contrasts.scheme.name == "dummy"

    def test_hint_scheme_used(self, sample_frame):
        """A scheme given as a hint is used when there is no override."""
        formula = resolve("y ~ a", sample_frame, hints={"a": EffectsCoding()})
        assert formula.rhs[1].contrasts.scheme == EffectsCoding()

    def test_shared_resolved_terms(self, sample_frame):
        """A variable used twice resolves to one shared object."""
        formula = resolve("y ~ x + a + x & a", sample_frame)
        interaction = formula.rhs[3]
        assert interaction.factors[0] is formula.rhs[1]
        assert interaction.factors[1] is formula.rhs[2]

    def test_single_level_is_ambiguous(self):
        """A categorical variable with one level cannot be coded."""
        frame = pd.DataFrame({"y": [1.0, 2.0], "c": ["only", "only"]})
        with pytest.raises(AmbiguousCodingError):
            resolve("y ~ c", frame)


class TestIntercept:
    """Formula-level intercept handling."""

    def test_implicit_intercept(self, sample_frame):
        """An intercept is added unless suppressed."""
        formula = resolve("y ~ x", sample_frame)
        assert formula.rhs[0] == InterceptTerm()
        assert formula.has_intercept

    def test_explicit_intercept_moves_first(self, sample_frame):
        """An explicit 1 becomes the leading InterceptTerm."""
        formula = resolve("y ~ x + 1", sample_frame)
        assert formula.rhs[0] == InterceptTerm()
        assert len(formula.rhs) == 2

    def test_zero_drops_intercept(self, sample_frame):
        """0 suppresses the intercept and is dropped."""
        formula = resolve("y ~ 0 + x", sample_frame)
        assert not any(isinstance(t, (InterceptTerm, ConstantTerm)) for t in formula.rhs)

    def test_config_disables_implicit_intercept(self, sample_frame):
        """implicit_intercept=False drops the implicit intercept."""
        config = ModelTermsConfig(formulas={"implicit_intercept": False})
        formula = parse_formula("y ~ x")
        resolved = apply_schema(formula, extract_schema(formula, sample_frame), config=config)
        assert not resolved.has_intercept

    def test_intercept_only(self, sample_frame):
        """y ~ 1 resolves to just the intercept."""
        assert resolve("y ~ 1", sample_frame).rhs == (InterceptTerm(),)

    def test_nothing_to_generate(self, sample_frame):
        """y ~ 0 has no columns and is malformed."""
        with pytest.raises(MalformedFormulaError):
            resolve("y ~ 0", sample_frame)

    def test_zero_and_one_in_constructed_formula(self, sample_frame):
        """A FormulaTerm built by hand with 0 and 1 is rejected."""
        formula = FormulaTerm(term("y"), (ConstantTerm(0), ConstantTerm(1), term("x")))
        schema = extract_schema(formula, sample_frame)
        with pytest.raises(MalformedFormulaError):
            apply_schema(formula, schema)


class TestRankPromotion:
    """Formula-global choice between reduced and full rank."""

    def test_pure_interaction_is_full_rank(self, sample_frame):
        """y ~ 0 + a & b codes both factors at full rank."""
        formula = resolve("y ~ 0 + a & b", sample_frame)
        interaction = formula.rhs[0]
        assert all(f.full_rank for f in interaction.factors)
        assert interaction.width == 6

    def test_main_effects_keep_reduced_rank(self, sample_frame):
        """y ~ 1 + a + b + a & b codes everything at reduced rank."""
        formula = resolve("y ~ 1 + a + b + a & b", sample_frame)
        interaction = formula.rhs[3]
        assert not any(f.full_rank for f in interaction.factors)
        assert interaction.width == 2

    def test_no_intercept_promotes_first_main_effect(self, sample_frame):
        """Without an intercept the first categorical main effect is full rank."""
        formula = resolve("y ~ 0 + a + b", sample_frame)
        assert formula.rhs[0].full_rank
        assert not formula.rhs[1].full_rank

    def test_partial_promotion(self, sample_frame):
        """y ~ a + a & b nests b within a: a is full rank inside the interaction."""
        formula = resolve("y ~ a + a & b", sample_frame)
        a_main, interaction = formula.rhs[1], formula.rhs[2]
        assert not a_main.full_rank
        a_factor, b_factor = interaction.factors
        assert a_factor.full_rank
        assert not b_factor.full_rank
        assert interaction.width == 3 * 1

    def test_continuous_factors_are_not_promoted(self, sample_frame):
        """x & a without main effects promotes only the categorical factor."""
        formula = resolve("y ~ x & a", sample_frame)
        x_factor, a_factor = formula.rhs[1].factors
        assert isinstance(x_factor, ContinuousTerm)
        assert a_factor.full_rank
        assert formula.rhs[1].width == 3

    def test_bare_terms_are_reduced_rank(self, sample_frame):
        """Terms resolved outside a formula use reduced rank."""
        schema = extract_schema(term("a"), sample_frame)
        resolved = apply_schema(term("a"), schema)
        assert not resolved.full_rank
        assert resolved.width == 2

    def test_term_key(self):
        """Keys ignore factor order and resolution state."""
        a, b = terms("a", "b")
        assert term_key(InteractionTerm((a, b))) == term_key(InteractionTerm((b, a)))
        assert term_key(InterceptTerm()) == frozenset()
        assert term_key(ContinuousTerm("a")) == term_key(a)


class TestFunctions:
    """Function term resolution."""

    def test_function_bound(self, sample_frame):
        """Registered callees are bound to their callables."""
        formula = resolve("y ~ log(x)", sample_frame)
        log_x = formula.rhs[1]
        assert log_x.fn is np.log
        assert log_x.expr == "log(x)"
        assert isinstance(log_x.args[0], ContinuousTerm)

    def test_per_call_functions(self, sample_frame):
        """Functions passed per call are found before the registry."""
        double = lambda v: 2 * v  # noqa: E731
        formula = resolve("y ~ double(x)", sample_frame, functions={"double": double})
        assert formula.rhs[1].fn is double

    def test_reresolving_keeps_per_call_function(self, sample_frame):
        """A resolved formula re-resolves without passing its functions again."""
        double = lambda v: 2 * v  # noqa: E731
        formula = resolve("y ~ double(x)", sample_frame, functions={"double": double})
        again = apply_schema(formula, extract_schema(formula, sample_frame))
        assert again == formula
        assert again.rhs[1].fn is double

    def test_reresolving_prefers_new_per_call_function(self, sample_frame):
        """Functions passed on re-resolution replace the earlier binding."""
        double = lambda v: 2 * v  # noqa: E731
        triple = lambda v: 3 * v  # noqa: E731
        formula = resolve("y ~ scale(x)", sample_frame, functions={"scale": double})
        schema = extract_schema(formula, sample_frame)
        again = apply_schema(formula, schema, functions={"scale": triple})
        assert again.rhs[1].fn is triple

    def test_unknown_function(self, sample_frame):
        """Unknown callees raise UnknownFunctionError."""
        with pytest.raises(UnknownFunctionError):
            resolve("y ~ nosuchfn(x)", sample_frame)

    def test_protect_converts_operators(self, sample_frame):
        """Formula operators inside protect() become arithmetic."""
        y, x, w = terms("y", "x", "w")
        formula = FormulaTerm(y, (protect(x + w),))
        schema = extract_schema(formula, sample_frame)
        protected = apply_schema(formula, schema).rhs[1]
        assert protected.args[0].callee == "+"
        assert protected.args[0].fn is not None

    def test_protect_interaction_becomes_product(self, sample_frame):
        """An interaction inside protect() is multiplied elementwise."""
        y, x, w = terms("y", "x", "w")
        formula = FormulaTerm(y, (protect(x & w),))
        schema = extract_schema(formula, sample_frame)
        protected = apply_schema(formula, schema).rhs[1]
        assert protected.args[0].callee == "*"

    def test_protected_product_matches_parsed(self, sample_frame):
        """protect(x * w) built in code resolves like the parsed text."""
        y, x, w = terms("y", "x", "w")
        built = FormulaTerm(y, (protect(x * w),))
        schema = extract_schema(built, sample_frame)
        resolved = apply_schema(built, schema)
        assert resolved.rhs[1].args[0].callee == "*"
        assert resolved == resolve("y ~ protect(x * w)", sample_frame)

    def test_literal_arguments(self, sample_frame):
        """Numeric arguments stay literals."""
        formula = resolve("y ~ pow(x, 2)", sample_frame)
        assert formula.rhs[1].args[1] == LiteralTerm(2.0)

    def test_protect_takes_one_argument(self, sample_frame):
        """protect(a, b) is malformed."""
        with pytest.raises(MalformedFormulaError):
            resolve("y ~ I(x, w)", sample_frame)


class TestValidation:
    """Structural checks during resolution."""

    def test_duplicate_resolved_terms(self, sample_frame):
        """Two terms that resolve identically are duplicates."""
        formula = FormulaTerm(term("y"), (term("x"), ContinuousTerm("x")))
        schema = extract_schema(formula, sample_frame)
        with pytest.raises(DuplicateTermError):
            apply_schema(formula, schema)

    def test_schema_mismatch(self):
        """A resolved continuous term conflicts with a categorical entry."""
        schema = Schema({"x": Categorical("x", ("p", "q"))})
        with pytest.raises(SchemaMismatchError):
            apply_schema(ContinuousTerm("x"), schema)

    def test_reresolving_on_changed_column_type(self, sample_frame):
        """A formula resolved on numeric x conflicts with a table where x holds strings."""
        resolved = resolve("y ~ x", sample_frame)
        relabelled = sample_frame.assign(x=["p", "q", "r", "p", "q", "r"])
        schema = extract_schema(resolved, relabelled)
        assert schema["x"].kind == "categorical"
        with pytest.raises(SchemaMismatchError):
            apply_schema(resolved, schema)

    def test_resolved_terms_kept(self):
        """A resolved term with a matching entry is kept as is."""
        resolved = CategoricalTerm("c", contrast_matrix(FullDummyCoding(), ("p", "q")))
        schema = Schema({"c": Categorical("c", ("p", "q", "r"))})
        assert apply_schema(resolved, schema) is resolved

    def test_resolution_is_deterministic(self, sample_frame):
        """Resolving twice gives equal formulas."""
        first = resolve("y ~ a * b + log(x)", sample_frame)
        second = resolve("y ~ a * b + log(x)", sample_frame)
        assert first == second

    def test_schema_mapping_accepted(self):
        """A plain dict of entries works as a schema."""
        resolved = apply_schema(term("x"), {"x": Continuous("x")})
        assert resolved == ContinuousTerm("x")

    def test_function_requires_resolved_arguments(self):
        """Programmatic function terms resolve their arguments."""
        resolved = apply_schema(function("exp", term("x")), {"x": Continuous("x")})
        assert isinstance(resolved, FunctionTerm)
        assert resolved.args == (ContinuousTerm("x"),)
