"""Tests for the well-posedness check."""

from __future__ import annotations

from daeblt.analysis import (
    DiagnosticCategory,
    Matching,
    Occurrence,
    Severity,
    build_incidence,
    check_well_posed,
    decompose,
    match,
)
from daeblt.ir import Equation, Model, Variable, VariableType, lit, var


def _var(name: str, var_type: VariableType = VariableType.ALGEBRAIC) -> Variable:
    return Variable(name=name, var_type=var_type)


def _eq(lhs, rhs) -> Equation:
    return Equation.simple(lhs, rhs)


def _check(model: Model):
    incidence = build_incidence(model)
    matching = match(incidence, model)
    return check_well_posed(incidence, matching, decompose(incidence, matching))


def _categories(issues) -> list:
    return [i.category for i in issues if i.severity == Severity.ERROR]


class TestMatchingChecks:
    def test_well_posed_has_no_issues(self) -> None:
        model = Model(name="M", variables=[_var("x"), _var("y")], equations=[_eq(var("x"), lit(1)), _eq(var("y"), var("x"))])
        assert _check(model) == ()

    def test_over_determined(self) -> None:
        model = Model(name="M", variables=[_var("x")], equations=[_eq(var("x"), lit(1)), _eq(var("x"), lit(2))])
        issues = _check(model)
        assert _categories(issues) == [DiagnosticCategory.OVER_DETERMINED, DiagnosticCategory.OVER_DETERMINED]
        assert "2 equations for 1 unknowns" in issues[0].message
        assert issues[1].location == "eq[1]"
        assert str(issues[1]) == "[ERROR] over_determined: Surplus equation eq[1]: x = 2 at eq[1]"

    def test_under_determined(self) -> None:
        model = Model(name="M", variables=[_var("x"), _var("y")], equations=[_eq(var("x"), lit(1))])
        issues = _check(model)
        assert _categories(issues) == [DiagnosticCategory.UNDER_DETERMINED, DiagnosticCategory.UNDER_DETERMINED]
        assert issues[1].message == "No equation determines y"

    def test_structurally_singular(self) -> None:
        # Two equations, two unknowns, but y appears nowhere
        model = Model(name="M", variables=[_var("x"), _var("y")], equations=[_eq(var("x"), lit(1)), _eq(var("x"), lit(2))])
        issues = _check(model)
        assert _categories(issues) == [DiagnosticCategory.STRUCTURALLY_SINGULAR] * 3
        assert [i.location for i in issues] == [None, "eq[1]", "y"]

    def test_aborted_search(self) -> None:
        model = Model(name="M", variables=[_var("x")], equations=[_eq(var("x"), lit(1))])
        incidence = build_incidence(model)
        matching = Matching(slots=(Occurrence("x"),), assignment={"eq[0]": Occurrence("x")}, aborted=True)
        issues = check_well_posed(incidence, matching, decompose(incidence, matching))
        assert _categories(issues) == [DiagnosticCategory.INCOMPLETE_SEARCH]


class TestConsistencyChecks:
    def _incidence(self):
        model = Model(name="M", variables=[_var("x"), _var("y")], equations=[_eq(var("x"), lit(1)), _eq(var("y"), lit(2))])
        return model, build_incidence(model)

    def test_slot_listed_twice(self) -> None:
        _, incidence = self._incidence()
        x = Occurrence("x")
        matching = Matching(slots=(x, x), assignment={"eq[0]": x, "eq[1]": x})
        issues = check_well_posed(incidence, matching, ())
        categories = _categories(issues)
        assert categories.count(DiagnosticCategory.DUPLICATE_ASSIGNMENT) == 2
        messages = [i.message for i in issues]
        assert "Unknown x is listed 2 times" in messages
        assert "Unknown x is assigned to 2 equations: eq[0], eq[1]" in messages

    def test_missing_blocks(self) -> None:
        model, incidence = self._incidence()
        matching = match(incidence, model)
        issues = check_well_posed(incidence, matching, ())
        assert _categories(issues) == [DiagnosticCategory.BLOCK_MISMATCH] * 2
        assert issues[0].message == "Equation eq[0] appears in 0 blocks"

    def test_equation_in_two_blocks(self) -> None:
        model, incidence = self._incidence()
        matching = match(incidence, model)
        blocks = decompose(incidence, matching)
        issues = check_well_posed(incidence, matching, blocks + blocks[:1])
        assert _categories(issues) == [DiagnosticCategory.BLOCK_MISMATCH]
        assert issues[0].location == blocks[0].equations[0]

    def test_block_with_wrong_variables(self) -> None:
        model, incidence = self._incidence()
        matching = match(incidence, model)
        swapped = Matching(
            slots=matching.slots,
            assignment={"eq[0]": Occurrence("y"), "eq[1]": Occurrence("x")},
        )
        issues = check_well_posed(incidence, swapped, decompose(incidence, matching))
        assert _categories(issues) == [DiagnosticCategory.BLOCK_MISMATCH] * 2
        assert issues[0].location == "block 0"


class TestLoops:
    def test_loop_is_info(self) -> None:
        model = Model(
            name="M",
            variables=[_var("x"), _var("y")],
            equations=[_eq(var("y"), var("x") + 1), _eq(var("x"), var("y") - 1)],
        )
        (issue,) = _check(model)
        assert issue.severity == Severity.INFO
        assert issue.category == DiagnosticCategory.ALGEBRAIC_LOOP
        assert str(issue) == "[INFO] algebraic_loop: Algebraic loop of size 2 in ['x', 'y'] at block 0"
