"""Tests for expression trees (daeblt.ir.expr)."""

from __future__ import annotations

import pytest

from daeblt.errors import SubscriptError
from daeblt.ir.expr import (
    BinaryOp,
    BinaryOperator,
    Call,
    Der,
    Expr,
    Function,
    IfExpr,
    Literal,
    Pre,
    UnaryOp,
    UnaryOperator,
    VarRef,
    call,
    children,
    compare,
    der,
    evaluate_int,
    if_expr,
    is_reduction,
    iter_refs,
    lit,
    not_,
    pre,
    resolve_subscripts,
    substitute,
    var,
    walk,
)


class _Unknown(Expr):
    """Node type the traversals do not know about."""


# ---------------------------------------------------------------------------
# Builders and operators
# ---------------------------------------------------------------------------


class TestBuilders:
    def test_operators_build_binary_ops(self) -> None:
        e = var("x") + 1
        assert e == BinaryOp(BinaryOperator.ADD, VarRef("x"), Literal(1))

    def test_reflected_operators(self) -> None:
        e = 2 * var("x")
        assert e == BinaryOp(BinaryOperator.MUL, Literal(2), VarRef("x"))
        assert (1 - var("x")).left == Literal(1)
        assert (1 / var("x")).op == BinaryOperator.DIV

    def test_negation(self) -> None:
        assert -var("x") == UnaryOp(UnaryOperator.NEG, VarRef("x"))

    def test_der_and_pre_accept_names(self) -> None:
        assert der("x") == Der(VarRef("x"))
        assert pre("n") == Pre(VarRef("n"))

    def test_subscripted_var(self) -> None:
        ref = var("x", 1, var("i"))
        assert ref.subscripts == (Literal(1), VarRef("i"))
        assert str(ref) == "x[1,i]"

    def test_compare_rejects_arithmetic(self) -> None:
        with pytest.raises(ValueError):
            compare(BinaryOperator.ADD, var("x"), 1)

    def test_compare_and_not(self) -> None:
        c = compare(BinaryOperator.LT, var("h"), 0)
        assert str(c) == "(h < 0)"
        assert str(not_(c)) == "not (h < 0)"

    def test_call_and_if_expr(self) -> None:
        assert str(call(Function.SIN, var("x"))) == "sin(x)"
        e = if_expr(compare(BinaryOperator.GT, var("u"), 0), var("u"), 0)
        assert isinstance(e, IfExpr)
        assert e.false_expr == Literal(0)

    def test_str(self) -> None:
        assert str(der("x")) == "der(x)"
        assert str(var("a") * var("b") ** 2) == "(a * (b ^ 2))"


# ---------------------------------------------------------------------------
# Traversal
# ---------------------------------------------------------------------------


class TestTraversal:
    def test_walk_is_preorder(self) -> None:
        e = var("a") + var("b") * var("c")
        names = [n.name for n in walk(e) if isinstance(n, VarRef)]
        assert names == ["a", "b", "c"]

    def test_walk_visits_every_node(self) -> None:
        e = call(Function.MAX, der("x"), -pre("y"))
        kinds = [type(n) for n in walk(e)]
        assert kinds == [Call, Der, VarRef, UnaryOp, Pre, VarRef]

    def test_iter_refs_flags_der_and_pre(self) -> None:
        e = der("x") + pre("n") + var("y")
        sites = {s.ref.name: (s.in_der, s.in_pre) for s in iter_refs(e)}
        assert sites == {"x": (True, False), "n": (False, True), "y": (False, False)}

    def test_iter_refs_counts_repeats(self) -> None:
        e = var("x") * var("x")
        assert len(list(iter_refs(e))) == 2

    def test_unknown_node_raises(self) -> None:
        with pytest.raises(TypeError):
            children(_Unknown())
        with pytest.raises(TypeError):
            list(walk(var("x") + _Unknown()))
        with pytest.raises(TypeError):
            substitute(_Unknown(), {})


# ---------------------------------------------------------------------------
# Substitution and subscripts
# ---------------------------------------------------------------------------


class TestSubscripts:
    def test_substitute_index(self) -> None:
        e = var("x", var("i") + 1) + var("i")
        out = substitute(e, {"i": lit(2)})
        assert out == var("x", lit(2) + 1) + lit(2)

    def test_substitute_leaves_subscripted_names(self) -> None:
        # x[1] is not the loop index even if the index is called x
        e = var("x", 1)
        assert substitute(e, {"x": lit(5)}) == e

    def test_substitute_keeps_reductions(self) -> None:
        e = var("x") + call(Function.MAX, var("x"))
        bindings = {"x": var("x[1]")}
        assert substitute(e, bindings, keep_reductions=True) == var("x[1]") + call(Function.MAX, var("x"))
        assert substitute(e, bindings) == var("x[1]") + call(Function.MAX, var("x[1]"))
        assert not is_reduction(call(Function.MAX, var("x"), var("y")))

    def test_resolve_subscripts(self) -> None:
        e = der(var("x", lit(1) + 1)) + var("A", 2, 3)
        assert resolve_subscripts(e) == der("x[2]") + var("A[2,3]")

    def test_evaluate_int(self) -> None:
        assert evaluate_int(lit(3) * 2 - 1) == 5
        assert evaluate_int(-lit(2)) == -2

    def test_evaluate_int_rejects_variables(self) -> None:
        with pytest.raises(SubscriptError):
            evaluate_int(var("n") + 1)

    def test_evaluate_int_rejects_fractions(self) -> None:
        with pytest.raises(SubscriptError):
            evaluate_int(lit(1.5))
        with pytest.raises(SubscriptError):
            evaluate_int(lit(True))
