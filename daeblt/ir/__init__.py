"""
Intermediate Representation (IR) of a classified DAE model.

This is the in-memory form the structural analysis consumes. Loaders that
read the on-disk IR build these objects; they are immutable once built.
"""

from daeblt.ir.types import EquationSection, EquationType, VariableType
from daeblt.ir.variable import Variable, element_name
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
    compare,
    der,
    if_expr,
    iter_refs,
    lit,
    not_,
    pre,
    var,
    walk,
)
from daeblt.ir.equation import Branch, Equation, ResidualGroup, residual_groups
from daeblt.ir.model import Model

__all__ = [
    # Types
    "VariableType",
    "EquationType",
    "EquationSection",
    # Variables
    "Variable",
    "element_name",
    # Expressions
    "Expr",
    "Literal",
    "VarRef",
    "UnaryOp",
    "UnaryOperator",
    "BinaryOp",
    "BinaryOperator",
    "Call",
    "Function",
    "IfExpr",
    "Der",
    "Pre",
    "var",
    "lit",
    "der",
    "pre",
    "call",
    "compare",
    "if_expr",
    "not_",
    "walk",
    "iter_refs",
    # Equations
    "Equation",
    "Branch",
    "ResidualGroup",
    "residual_groups",
    # Model
    "Model",
]
