"""
Variable representation in the IR.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from collections.abc import Iterator
from typing import Optional

from daeblt.errors import ModelError, StateIndexError
from daeblt.ir.types import KNOWN_TYPES, Number, VariableType


def element_name(name: str, indices: tuple[int, ...]) -> str:
    """Name of one scalar element of an array variable, e.g. ``x[1,2]``."""
    return f"{name}[{','.join(str(i) for i in indices)}]"


@dataclass(frozen=True)
class Variable:
    """
    A classified variable.

    Variables are created once by the loader that classifies the model and
    never change afterwards. Array variables (``shape`` set) are analyzed
    element by element; elements are named with 1-based subscripts.
    """

    name: str
    var_type: VariableType

    # Position of the state in the state vector (states only)
    state_index: Optional[int] = None

    start: Optional[Number] = None
    shape: Optional[tuple[int, ...]] = None

    # Metadata
    description: str = ""
    unit: str = ""
    min_value: Optional[Number] = None
    max_value: Optional[Number] = None
    nominal: Optional[Number] = None

    def __post_init__(self):
        if not self.name:
            raise ModelError("Variable name must not be empty")
        if self.state_index is not None:
            if self.var_type != VariableType.STATE:
                raise StateIndexError(
                    f"Variable '{self.name}' is {self.var_type.name}, only states carry a state_index"
                )
            if self.state_index < 0:
                raise StateIndexError(f"State '{self.name}' has negative state_index {self.state_index}")
        if self.shape is not None and (not self.shape or any(n < 1 for n in self.shape)):
            raise ModelError(f"Variable '{self.name}' has invalid shape {self.shape}")

    @property
    def is_state(self) -> bool:
        """True if this is a continuous state."""
        return self.var_type == VariableType.STATE

    @property
    def is_algebraic(self) -> bool:
        return self.var_type == VariableType.ALGEBRAIC

    @property
    def is_discrete(self) -> bool:
        """True for discrete-real and discrete-valued variables."""
        return self.var_type in (VariableType.DISCRETE_REAL, VariableType.DISCRETE_VALUED)

    @property
    def is_parameter(self) -> bool:
        """True if this is a parameter or constant."""
        return self.var_type in (VariableType.PARAMETER, VariableType.CONSTANT)

    @property
    def is_known(self) -> bool:
        """True if the value is given (parameter, constant or input), never solved for."""
        return self.var_type in KNOWN_TYPES

    @property
    def is_array(self) -> bool:
        return self.shape is not None

    def element_indices(self) -> Iterator[tuple[int, ...]]:
        """1-based subscripts of every element, in row-major order (nothing for a scalar)."""
        if self.shape is None:
            return
        yield from itertools.product(*(range(1, n + 1) for n in self.shape))

    def element_names(self) -> Iterator[str]:
        """Scalar names covered by this variable, in row-major order."""
        if self.shape is None:
            yield self.name
            return
        for indices in self.element_indices():
            yield element_name(self.name, indices)
