"""
Exceptions raised by daeblt.

Malformed models are faults and raise immediately. Structural properties of
the equation graph (singularity, algebraic loops) are never raised; they are
reported as diagnostics on the analysis result.
"""

from __future__ import annotations


class ModelError(ValueError):
    """The classified model violates one of its construction invariants."""


class DuplicateVariableError(ModelError):
    """Two variables share a name."""


class StateIndexError(ModelError):
    """state_index is missing, duplicated, not dense, or set on a non-state."""


class DerivativeError(ModelError):
    """der() applied to something other than a reference to a state."""


class UnbalancedEquationError(ModelError):
    """Branches of an if/when equation do not assign the same variables."""


class SubscriptError(ModelError):
    """A subscript or for-range could not be evaluated to a valid integer."""


class UndeclaredReferenceError(ReferenceError):
    """An equation references a variable the model does not declare."""

    def __init__(self, equation: str, symbol: str):
        self.equation = equation
        self.symbol = symbol
        super().__init__(f"Equation {equation} references undeclared variable '{symbol}'")
