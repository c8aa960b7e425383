"""
Expression representation in the IR.

Expressions are immutable trees built from a closed set of node types:

- Literal: numeric or Boolean constant
- VarRef: reference to a variable (dotted path, optional subscripts)
- UnaryOp / BinaryOp: arithmetic, comparison and logical operators
- Call: elementary math function
- IfExpr: conditional expression
- Der: der(x), derivative of a state
- Pre: pre(x), left limit of a variable at an event

Derivatives are operators, not variables: ``der(x)`` is a node wrapping a
reference to the state ``x``. Every traversal in this module handles all
node types and raises TypeError on anything else.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Union

from daeblt.errors import SubscriptError
from daeblt.ir.types import Number
from daeblt.ir.variable import element_name


class UnaryOperator(Enum):
    NEG = "-"
    NOT = "not"


class BinaryOperator(Enum):
    # Arithmetic
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    POW = "^"
    # Comparison
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    EQ = "=="
    NE = "<>"
    # Logical
    AND = "and"
    OR = "or"

    @property
    def is_arithmetic(self) -> bool:
        return self in _ARITHMETIC


_ARITHMETIC = frozenset(
    {BinaryOperator.ADD, BinaryOperator.SUB, BinaryOperator.MUL, BinaryOperator.DIV, BinaryOperator.POW}
)


class Function(Enum):
    """Elementary functions callable from expressions."""

    SIN = "sin"
    COS = "cos"
    TAN = "tan"
    ASIN = "asin"
    ACOS = "acos"
    ATAN = "atan"
    ATAN2 = "atan2"
    SINH = "sinh"
    COSH = "cosh"
    TANH = "tanh"
    EXP = "exp"
    LOG = "log"
    LOG10 = "log10"
    SQRT = "sqrt"
    ABS = "abs"
    SIGN = "sign"
    FLOOR = "floor"
    CEIL = "ceil"
    MIN = "min"
    MAX = "max"


@dataclass(frozen=True)
class Expr:
    """Base class for all expressions."""

    def __add__(self, other: Union[Expr, Number]) -> BinaryOp:
        return BinaryOp(BinaryOperator.ADD, self, to_expr(other))

    def __radd__(self, other: Number) -> BinaryOp:
        return BinaryOp(BinaryOperator.ADD, to_expr(other), self)

    def __sub__(self, other: Union[Expr, Number]) -> BinaryOp:
        return BinaryOp(BinaryOperator.SUB, self, to_expr(other))

    def __rsub__(self, other: Number) -> BinaryOp:
        return BinaryOp(BinaryOperator.SUB, to_expr(other), self)

    def __mul__(self, other: Union[Expr, Number]) -> BinaryOp:
        return BinaryOp(BinaryOperator.MUL, self, to_expr(other))

    def __rmul__(self, other: Number) -> BinaryOp:
        return BinaryOp(BinaryOperator.MUL, to_expr(other), self)

    def __truediv__(self, other: Union[Expr, Number]) -> BinaryOp:
        return BinaryOp(BinaryOperator.DIV, self, to_expr(other))

    def __rtruediv__(self, other: Number) -> BinaryOp:
        return BinaryOp(BinaryOperator.DIV, to_expr(other), self)

    def __pow__(self, other: Union[Expr, Number]) -> BinaryOp:
        return BinaryOp(BinaryOperator.POW, self, to_expr(other))

    def __neg__(self) -> UnaryOp:
        return UnaryOp(UnaryOperator.NEG, self)


@dataclass(frozen=True)
class Literal(Expr):
    """Literal constant value."""

    value: Number

    def __str__(self):
        return str(self.value)


@dataclass(frozen=True)
class VarRef(Expr):
    """
    Reference to a variable by name.

    Examples:
        x              -> VarRef("x")
        body.pos       -> VarRef("body.pos")
        x[i + 1]       -> VarRef("x", (i + 1,))
    """

    name: str
    subscripts: tuple[Expr, ...] = ()

    def __str__(self):
        if self.subscripts:
            return f"{self.name}[{','.join(str(s) for s in self.subscripts)}]"
        return self.name


@dataclass(frozen=True)
class UnaryOp(Expr):
    op: UnaryOperator
    operand: Expr

    def __str__(self):
        if self.op == UnaryOperator.NOT:
            return f"not {self.operand}"
        return f"-{self.operand}"


@dataclass(frozen=True)
class BinaryOp(Expr):
    op: BinaryOperator
    left: Expr
    right: Expr

    def __str__(self):
        return f"({self.left} {self.op.value} {self.right})"


@dataclass(frozen=True)
class Call(Expr):
    func: Function
    args: tuple[Expr, ...]

    def __str__(self):
        return f"{self.func.value}({', '.join(str(a) for a in self.args)})"


@dataclass(frozen=True)
class IfExpr(Expr):
    """Conditional expression: if condition then true_expr else false_expr."""

    condition: Expr
    true_expr: Expr
    false_expr: Expr

    def __str__(self):
        return f"(if {self.condition} then {self.true_expr} else {self.false_expr})"


@dataclass(frozen=True)
class Der(Expr):
    """
    Derivative operator der(x).

    The operand must be a VarRef to a state; Model checks this at
    construction.
    """

    operand: Expr

    def __str__(self):
        return f"der({self.operand})"


@dataclass(frozen=True)
class Pre(Expr):
    """Left limit pre(x). Always a known value, never an unknown."""

    operand: Expr

    def __str__(self):
        return f"pre({self.operand})"


def children(expr: Expr) -> tuple[Expr, ...]:
    """Direct sub-expressions of a node."""
    if isinstance(expr, Literal):
        return ()
    if isinstance(expr, VarRef):
        return expr.subscripts
    if isinstance(expr, UnaryOp):
        return (expr.operand,)
    if isinstance(expr, BinaryOp):
        return (expr.left, expr.right)
    if isinstance(expr, Call):
        return expr.args
    if isinstance(expr, IfExpr):
        return (expr.condition, expr.true_expr, expr.false_expr)
    if isinstance(expr, (Der, Pre)):
        return (expr.operand,)
    raise TypeError(f"Unknown expression node: {type(expr).__name__}")


def walk(expr: Expr) -> Iterator[Expr]:
    """Iterate over every node of the tree in pre-order."""
    stack = [expr]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(children(node)))


@dataclass(frozen=True)
class RefSite:
    """A variable reference found in an expression, with its operator context."""

    ref: VarRef
    in_der: bool = False
    in_pre: bool = False


def iter_refs(expr: Expr) -> Iterator[RefSite]:
    """
    Find all variable references in an expression, in pre-order.

    References nested in der() or pre() are flagged so callers can tell a
    derivative or a left limit from a plain value.
    """
    stack = [(expr, False, False)]
    while stack:
        node, in_der, in_pre = stack.pop()
        if isinstance(node, VarRef):
            yield RefSite(node, in_der, in_pre)
        if isinstance(node, Der):
            stack.append((node.operand, True, in_pre))
        elif isinstance(node, Pre):
            stack.append((node.operand, in_der, True))
        else:
            for child in reversed(children(node)):
                stack.append((child, in_der, in_pre))


def is_reduction(expr: Expr) -> bool:
    """True for a one-argument min() or max(), which reduces an array to a scalar."""
    return isinstance(expr, Call) and expr.func in (Function.MIN, Function.MAX) and len(expr.args) == 1


def substitute(expr: Expr, bindings: Mapping[str, Expr], keep_reductions: bool = False) -> Expr:
    """
    Replace unsubscripted references named in bindings (e.g. a for-loop index).

    With keep_reductions, the argument of a reduction is left whole, so
    max(x) still covers every element of x.
    """
    if isinstance(expr, Literal):
        return expr
    if isinstance(expr, VarRef):
        if not expr.subscripts and expr.name in bindings:
            return bindings[expr.name]
        return VarRef(expr.name, tuple(substitute(s, bindings, keep_reductions) for s in expr.subscripts))
    if isinstance(expr, UnaryOp):
        return UnaryOp(expr.op, substitute(expr.operand, bindings, keep_reductions))
    if isinstance(expr, BinaryOp):
        return BinaryOp(
            expr.op,
            substitute(expr.left, bindings, keep_reductions),
            substitute(expr.right, bindings, keep_reductions),
        )
    if isinstance(expr, Call):
        if keep_reductions and is_reduction(expr):
            return expr
        return Call(expr.func, tuple(substitute(a, bindings, keep_reductions) for a in expr.args))
    if isinstance(expr, IfExpr):
        return IfExpr(
            substitute(expr.condition, bindings, keep_reductions),
            substitute(expr.true_expr, bindings, keep_reductions),
            substitute(expr.false_expr, bindings, keep_reductions),
        )
    if isinstance(expr, Der):
        return Der(substitute(expr.operand, bindings, keep_reductions))
    if isinstance(expr, Pre):
        return Pre(substitute(expr.operand, bindings, keep_reductions))
    raise TypeError(f"Unknown expression node: {type(expr).__name__}")


def evaluate_int(expr: Expr) -> int:
    """Evaluate a constant integer expression (subscripts, loop bounds)."""
    if isinstance(expr, Literal):
        if isinstance(expr.value, bool) or float(expr.value) != int(expr.value):
            raise SubscriptError(f"Subscript {expr} is not an integer")
        return int(expr.value)
    if isinstance(expr, UnaryOp) and expr.op == UnaryOperator.NEG:
        return -evaluate_int(expr.operand)
    if isinstance(expr, BinaryOp):
        left = evaluate_int(expr.left)
        right = evaluate_int(expr.right)
        if expr.op == BinaryOperator.ADD:
            return left + right
        if expr.op == BinaryOperator.SUB:
            return left - right
        if expr.op == BinaryOperator.MUL:
            return left * right
    raise SubscriptError(f"Subscript {expr} is not a constant integer expression")


def resolve_subscripts(expr: Expr) -> Expr:
    """Turn constant-subscripted references into element references, x[1+1] -> x[2]."""
    if isinstance(expr, VarRef):
        if not expr.subscripts:
            return expr
        indices = tuple(evaluate_int(s) for s in expr.subscripts)
        return VarRef(element_name(expr.name, indices))
    if isinstance(expr, Literal):
        return expr
    if isinstance(expr, UnaryOp):
        return UnaryOp(expr.op, resolve_subscripts(expr.operand))
    if isinstance(expr, BinaryOp):
        return BinaryOp(expr.op, resolve_subscripts(expr.left), resolve_subscripts(expr.right))
    if isinstance(expr, Call):
        return Call(expr.func, tuple(resolve_subscripts(a) for a in expr.args))
    if isinstance(expr, IfExpr):
        return IfExpr(
            resolve_subscripts(expr.condition),
            resolve_subscripts(expr.true_expr),
            resolve_subscripts(expr.false_expr),
        )
    if isinstance(expr, Der):
        return Der(resolve_subscripts(expr.operand))
    if isinstance(expr, Pre):
        return Pre(resolve_subscripts(expr.operand))
    raise TypeError(f"Unknown expression node: {type(expr).__name__}")


# Convenience constructors


def to_expr(x: Union[Expr, Number]) -> Expr:
    """Wrap plain numbers in a Literal."""
    if isinstance(x, Expr):
        return x
    return Literal(x)


def var(name: str, *subscripts: Union[Expr, int]) -> VarRef:
    """Create a variable reference, optionally subscripted: var("x", 1)."""
    return VarRef(name, tuple(to_expr(s) for s in subscripts))


def lit(value: Number) -> Literal:
    return Literal(value)


def der(x: Union[Expr, str]) -> Der:
    """
    Derivative operator: der(x)

    This is THE way to express derivatives - not a separate variable.
    """
    return Der(VarRef(x) if isinstance(x, str) else x)


def pre(x: Union[Expr, str]) -> Pre:
    """Previous value operator: pre(x)"""
    return Pre(VarRef(x) if isinstance(x, str) else x)


def call(func: Function, *args: Union[Expr, Number]) -> Call:
    return Call(func, tuple(to_expr(a) for a in args))


def if_expr(condition: Expr, true_expr: Union[Expr, Number], false_expr: Union[Expr, Number]) -> IfExpr:
    return IfExpr(condition, to_expr(true_expr), to_expr(false_expr))


def compare(op: BinaryOperator, left: Union[Expr, Number], right: Union[Expr, Number]) -> BinaryOp:
    """Comparison or logical operation, e.g. compare(BinaryOperator.LT, h, 0)."""
    if op.is_arithmetic:
        raise ValueError(f"{op.name} is an arithmetic operator, use the Python operators instead")
    return BinaryOp(op, to_expr(left), to_expr(right))


def not_(operand: Expr) -> UnaryOp:
    return UnaryOp(UnaryOperator.NOT, operand)
