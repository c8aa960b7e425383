"""
Symbolic solution of scalar blocks.

A scalar block ``lhs = rhs`` matched to unknown u can be evaluated
explicitly when both sides are affine in u:

    lhs = a_l * u + b_l,   rhs = a_r * u + b_r
    u = (b_r - b_l) / (a_l - a_r)

Only simple patterns are recognized (+, -, *, / by an expression free of u,
unary minus). Anything else is left implicit for a runtime Newton solve.
"""

from __future__ import annotations

from typing import Optional

from daeblt.analysis.incidence import Occurrence
from daeblt.ir.expr import (
    BinaryOp,
    BinaryOperator,
    Der,
    Expr,
    Literal,
    Number,
    Pre,
    UnaryOp,
    UnaryOperator,
    VarRef,
    children,
)

ZERO = Literal(0.0)
ONE = Literal(1.0)


def is_occurrence(expr: Expr, unknown: Occurrence) -> bool:
    """True if the node is exactly the unknown: x for a value, der(x) for a derivative."""
    if unknown.is_derivative:
        return isinstance(expr, Der) and isinstance(expr.operand, VarRef) and expr.operand.name == unknown.name
    return isinstance(expr, VarRef) and expr.name == unknown.name


def contains(expr: Expr, unknown: Occurrence) -> bool:
    """True if the unknown occurs in the expression (pre() values never count)."""
    if is_occurrence(expr, unknown):
        return True
    if isinstance(expr, Pre):
        return False
    if isinstance(expr, Der) and not unknown.is_derivative:
        return False
    return any(contains(child, unknown) for child in children(expr))


def linear_coefficients(expr: Expr, unknown: Occurrence) -> Optional[tuple[Expr, Expr]]:
    """
    Check if expression is affine in the unknown.

    Returns (coefficient, constant) such that expr = coefficient * u + constant,
    or None if not affine (or too complex for us to detect).

    Handles common cases like:
    - u              (1, 0)
    - a * u, u * a   (a, 0)
    - u / a          (1 / a, 0)
    - a * u + b      (a, b)
    - -u             (-1, 0)
    """
    if not contains(expr, unknown):
        return ZERO, expr
    if is_occurrence(expr, unknown):
        return ONE, ZERO

    if isinstance(expr, UnaryOp) and expr.op == UnaryOperator.NEG:
        inner = linear_coefficients(expr.operand, unknown)
        if inner is None:
            return None
        return _neg(inner[0]), _neg(inner[1])

    if not isinstance(expr, BinaryOp):
        return None

    left, right = expr.left, expr.right
    if expr.op in (BinaryOperator.ADD, BinaryOperator.SUB):
        lc = linear_coefficients(left, unknown)
        rc = linear_coefficients(right, unknown)
        if lc is None or rc is None:
            return None
        if expr.op == BinaryOperator.ADD:
            return _add(lc[0], rc[0]), _add(lc[1], rc[1])
        return _sub(lc[0], rc[0]), _sub(lc[1], rc[1])

    if expr.op == BinaryOperator.MUL:
        if not contains(left, unknown):
            rc = linear_coefficients(right, unknown)
            return None if rc is None else (_mul(left, rc[0]), _mul(left, rc[1]))
        if not contains(right, unknown):
            lc = linear_coefficients(left, unknown)
            return None if lc is None else (_mul(lc[0], right), _mul(lc[1], right))
        return None

    if expr.op == BinaryOperator.DIV and not contains(right, unknown):
        lc = linear_coefficients(left, unknown)
        return None if lc is None else (_div(lc[0], right), _div(lc[1], right))

    return None


def solve_linear(lhs: Expr, rhs: Expr, unknown: Occurrence) -> Optional[Expr]:
    """
    Solve lhs = rhs for the unknown.

    Returns the explicit expression for the unknown, or None if the equation
    is not affine in it or its coefficient is identically zero.
    """
    lc = linear_coefficients(lhs, unknown)
    rc = linear_coefficients(rhs, unknown)
    if lc is None or rc is None:
        return None

    coefficient = _sub(lc[0], rc[0])
    if _is_literal(coefficient, 0):
        return None
    return _div(_sub(rc[1], lc[1]), coefficient)


def _is_literal(expr: Expr, value: Number) -> bool:
    return isinstance(expr, Literal) and not isinstance(expr.value, bool) and expr.value == value


def _both_numbers(a: Expr, b: Expr) -> bool:
    return all(isinstance(e, Literal) and not isinstance(e.value, bool) for e in (a, b))


def _neg(a: Expr) -> Expr:
    if _both_numbers(a, a):
        return Literal(-a.value)
    if isinstance(a, UnaryOp) and a.op == UnaryOperator.NEG:
        return a.operand
    return UnaryOp(UnaryOperator.NEG, a)


def _add(a: Expr, b: Expr) -> Expr:
    if _is_literal(a, 0):
        return b
    if _is_literal(b, 0):
        return a
    if _both_numbers(a, b):
        return Literal(a.value + b.value)
    return BinaryOp(BinaryOperator.ADD, a, b)


def _sub(a: Expr, b: Expr) -> Expr:
    if _is_literal(b, 0):
        return a
    if _is_literal(a, 0):
        return _neg(b)
    if _both_numbers(a, b):
        return Literal(a.value - b.value)
    return BinaryOp(BinaryOperator.SUB, a, b)


def _mul(a: Expr, b: Expr) -> Expr:
    if _is_literal(a, 0) or _is_literal(b, 0):
        return ZERO
    if _is_literal(a, 1):
        return b
    if _is_literal(b, 1):
        return a
    if _both_numbers(a, b):
        return Literal(a.value * b.value)
    return BinaryOp(BinaryOperator.MUL, a, b)


def _div(a: Expr, b: Expr) -> Expr:
    if _is_literal(b, 1):
        return a
    if _is_literal(a, 0):
        return ZERO
    if _is_literal(b, -1):
        return _neg(a)
    return BinaryOp(BinaryOperator.DIV, a, b)
