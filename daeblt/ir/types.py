"""
Type definitions for the IR.
"""

from enum import Enum, auto
from typing import Union

# Numeric literal and metadata values.
Number = Union[float, int, bool]


class VariableType(Enum):
    """Classification of a variable (Modelica DAE formalism, MLS Appendix B)."""

    STATE = auto()  # x: continuous, appears differentiated
    ALGEBRAIC = auto()  # y: continuous, not differentiated
    DISCRETE_REAL = auto()  # z: Real, changes only at events
    DISCRETE_VALUED = auto()  # m: Boolean/Integer, changes only at events
    PARAMETER = auto()  # p: fixed after initialization
    CONSTANT = auto()  # compile-time value
    INPUT = auto()  # u: set from outside
    OUTPUT = auto()  # computed and exposed


class EquationType(Enum):
    """Type of equation."""

    SIMPLE = auto()  # lhs = rhs
    FOR = auto()  # for i in start:step:stop loop ... end for
    IF = auto()  # if c1 then ... elseif c2 then ... else ... end if
    WHEN = auto()  # when c1 then ... elsewhen c2 then ... end when


class EquationSection(Enum):
    """Section of the classified model an equation belongs to."""

    CONTINUOUS = "eq"
    EVENT = "event"
    DISCRETE = "disc"
    INITIAL = "init"


# Variables whose values are given rather than solved for.
KNOWN_TYPES = frozenset({VariableType.PARAMETER, VariableType.CONSTANT, VariableType.INPUT})
