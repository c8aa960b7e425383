"""Tests for the causality assignment (bipartite matching)."""

from __future__ import annotations

import pytest

from daeblt.analysis import Occurrence, OccurrenceKind, build_incidence, match, unknown_slots
from daeblt.ir import Equation, Model, Variable, VariableType, der, lit, var

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _var(name: str, var_type: VariableType = VariableType.ALGEBRAIC, **kwargs) -> Variable:
    return Variable(name=name, var_type=var_type, **kwargs)


def _eq(lhs, rhs) -> Equation:
    return Equation.simple(lhs, rhs)


def _match(model: Model, **kwargs):
    return match(build_incidence(model), model, **kwargs)


def _needs_augmenting_path() -> Model:
    # Greedy gives x to eq[0] and y to eq[1], leaving eq[2] with no free
    # candidate; one augmenting path moves eq[0] over to z.
    return Model(
        name="Augment",
        variables=[_var("x"), _var("y"), _var("z")],
        equations=[
            _eq(var("x"), var("z") * 2),
            _eq(var("x") + var("y"), lit(1)),
            _eq(var("x") - var("y"), lit(3)),
        ],
    )


# ---------------------------------------------------------------------------
# Unknown slots
# ---------------------------------------------------------------------------


class TestUnknownSlots:
    def test_state_contributes_derivative_slot(self) -> None:
        model = Model(
            name="M",
            variables=[_var("x", VariableType.STATE), _var("y"), _var("p", VariableType.PARAMETER)],
            equations=[_eq(der("x"), var("y")), _eq(var("y"), var("p") * var("x"))],
        )
        slots = unknown_slots(model, build_incidence(model))
        assert slots == (Occurrence("x", OccurrenceKind.DERIVATIVE), Occurrence("y"))

    def test_initial_equation_adds_value_slot(self) -> None:
        model = Model(
            name="M",
            variables=[_var("x", VariableType.STATE)],
            equations=[_eq(der("x"), -var("x"))],
            initial_equations=[_eq(var("x"), lit(1.0))],
        )
        with_init = unknown_slots(model, build_incidence(model))
        assert with_init == (Occurrence("x", OccurrenceKind.DERIVATIVE), Occurrence("x"))
        without = unknown_slots(model, build_incidence(model, include_initial=False))
        assert without == (Occurrence("x", OccurrenceKind.DERIVATIVE),)

    def test_steady_state_initialization_adds_value_slot(self) -> None:
        # initial equation der(x) = 0 constrains x through its derivative
        model = Model(
            name="M",
            variables=[_var("x", VariableType.STATE)],
            equations=[_eq(der("x"), -var("x") + 1)],
            initial_equations=[_eq(der("x"), lit(0.0))],
        )
        slots = unknown_slots(model, build_incidence(model))
        assert slots == (Occurrence("x", OccurrenceKind.DERIVATIVE), Occurrence("x"))
        matching = _match(model)
        assert matching.is_total
        assert matching.assignment == {
            "eq[0]": Occurrence("x"),
            "init[0]": Occurrence("x", OccurrenceKind.DERIVATIVE),
        }

    def test_undifferentiated_state_has_no_slot(self) -> None:
        model = Model(name="M", variables=[_var("x", VariableType.STATE)])
        assert unknown_slots(model, build_incidence(model)) == ()

    def test_array_elements_and_outputs(self) -> None:
        model = Model(
            name="M",
            variables=[_var("a", shape=(2,)), _var("o", VariableType.OUTPUT), _var("n", VariableType.DISCRETE_REAL)],
        )
        names = [str(s) for s in unknown_slots(model, build_incidence(model))]
        assert names == ["a[1]", "a[2]", "o", "n"]


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


class TestMatch:
    def test_derivative_slot_preferred(self) -> None:
        # der(x) = x: the equation determines der(x), never the state value
        model = Model(
            name="M",
            variables=[_var("x", VariableType.STATE)],
            equations=[_eq(der("x"), -var("x"))],
            initial_equations=[_eq(var("x") + der("x"), lit(0.0))],
        )
        matching = _match(model)
        assert matching.is_total
        assert matching.assignment["eq[0]"] == Occurrence("x", OccurrenceKind.DERIVATIVE)
        assert matching.assignment["init[0]"] == Occurrence("x")

    def test_total_matching(self) -> None:
        matching = _match(_needs_augmenting_path())
        assert matching.is_total
        assert len(matching) == 3
        assert matching.assignment == {
            "eq[0]": Occurrence("z"),
            "eq[1]": Occurrence("y"),
            "eq[2]": Occurrence("x"),
        }
        assert matching.equation_for(Occurrence("z")) == "eq[0]"

    def test_over_determined(self) -> None:
        model = Model(name="M", variables=[_var("x")], equations=[_eq(var("x"), lit(1)), _eq(var("x"), lit(2))])
        matching = _match(model)
        assert not matching.is_total
        assert matching.assignment == {"eq[0]": Occurrence("x")}
        assert matching.unmatched_equations == ("eq[1]",)
        assert matching.unmatched_slots == ()

    def test_under_determined(self) -> None:
        model = Model(name="M", variables=[_var("x"), _var("y")], equations=[_eq(var("x"), lit(1))])
        matching = _match(model)
        assert matching.unmatched_slots == (Occurrence("y"),)
        assert matching.equation_for(Occurrence("y")) is None

    def test_equation_without_unknowns(self) -> None:
        model = Model(name="M", variables=[_var("p", VariableType.PARAMETER)], equations=[_eq(var("p"), lit(1))])
        matching = _match(model)
        assert matching.unmatched_equations == ("eq[0]",)

    def test_deterministic(self) -> None:
        model = _needs_augmenting_path()
        assert _match(model) == _match(model)

    def test_model_is_not_modified(self) -> None:
        model = _needs_augmenting_path()
        before = str(model)
        _match(model)
        assert str(model) == before


class TestSearchBudget:
    def test_exhausted_budget_aborts(self) -> None:
        with pytest.warns(UserWarning, match="stopped"):
            matching = _match(_needs_augmenting_path(), max_steps=0)
        assert matching.aborted
        assert not matching.is_total
        assert matching.unmatched_equations == ("eq[2]",)

    def test_sufficient_budget(self) -> None:
        matching = _match(_needs_augmenting_path(), max_steps=10)
        assert matching.is_total
        assert not matching.aborted

    def test_budget_unused_when_greedy_suffices(self) -> None:
        model = Model(name="M", variables=[_var("x")], equations=[_eq(var("x"), lit(1))])
        matching = _match(model, max_steps=0)
        assert matching.is_total
