"""
Result of structural analysis.

The result owns all derived data (matching, block membership, evaluation
order); nothing is written back onto the model. It is built once per
analysis run and never mutated.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from daeblt.analysis.incidence import EquationEntry, IncidenceGraph, Occurrence
from daeblt.analysis.matching import Matching
from daeblt.ir.expr import Der, Expr, walk


class BlockKind(Enum):
    SCALAR = "scalar"
    ALGEBRAIC_LOOP = "algebraic_loop"


@dataclass(frozen=True)
class Block:
    """
    One unit of the BLT sequence.

    A SCALAR block is a single (equation, unknown) pair evaluated on its own.
    An ALGEBRAIC_LOOP is a strongly connected set of equations whose unknowns
    must be solved simultaneously; members are listed in declaration order
    for display only.
    """

    kind: BlockKind
    entries: tuple[EquationEntry, ...]
    slots: tuple[Occurrence, ...]

    # Explicit expression for the unknown of a scalar block, when it is affine
    solution: Optional[Expr] = None

    @property
    def equations(self) -> tuple[str, ...]:
        """Entry ids of the member equations."""
        return tuple(e.id for e in self.entries)

    @property
    def variables(self) -> tuple[str, ...]:
        """Unknowns solved by this block: x, or der(x) for derivatives."""
        return tuple(str(s) for s in self.slots)

    @property
    def size(self) -> int:
        return len(self.entries)

    @property
    def is_scalar(self) -> bool:
        return self.kind == BlockKind.SCALAR

    @property
    def is_loop(self) -> bool:
        return self.kind == BlockKind.ALGEBRAIC_LOOP

    @property
    def solvable(self) -> bool:
        """True if this is a scalar block with an explicit solution."""
        return self.is_scalar and self.solution is not None

    def __str__(self):
        if self.solvable:
            return f"{self.variables[0]} := {self.solution}    ({self.equations[0]})"
        members = ", ".join(f"{e.id}: {e}" for e in self.entries)
        label = "loop" if self.is_loop else "implicit"
        return f"{label} {list(self.variables)} <- {members}"


class Severity(Enum):
    """Severity level of a diagnostic."""

    ERROR = "error"  # The system is not well posed
    WARNING = "warning"  # May cause problems downstream
    INFO = "info"  # Informational note


class DiagnosticCategory(Enum):
    OVER_DETERMINED = "over_determined"
    UNDER_DETERMINED = "under_determined"
    STRUCTURALLY_SINGULAR = "structurally_singular"
    DUPLICATE_ASSIGNMENT = "duplicate_assignment"
    BLOCK_MISMATCH = "block_mismatch"
    INCOMPLETE_SEARCH = "incomplete_search"
    ALGEBRAIC_LOOP = "algebraic_loop"


@dataclass(frozen=True)
class Diagnostic:
    """A single finding of the well-posedness check."""

    severity: Severity
    category: DiagnosticCategory
    message: str
    location: Optional[str] = None  # e.g. "eq[3]", "der(x)"

    def __str__(self) -> str:
        loc = f" at {self.location}" if self.location else ""
        return f"[{self.severity.value.upper()}] {self.category.value}: {self.message}{loc}"


@dataclass(frozen=True)
class BLTResult:
    """
    Ordered evaluation plan of a model.

    Inspect ``is_well_posed`` and ``diagnostics`` before trusting ``blocks``
    for code generation: for an ill-posed model the blocks only cover the
    matched part of the system.
    """

    model_name: str
    blocks: tuple[Block, ...]
    issues: tuple[Diagnostic, ...]
    incidence: IncidenceGraph
    matching: Matching

    @property
    def diagnostics(self) -> list[str]:
        """Human-readable messages, in a stable order."""
        return [str(issue) for issue in self.issues]

    @property
    def errors(self) -> list[Diagnostic]:
        return [i for i in self.issues if i.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [i for i in self.issues if i.severity == Severity.WARNING]

    @property
    def is_well_posed(self) -> bool:
        """True if there are no errors (warnings and loops are OK)."""
        return not self.errors

    @property
    def algebraic_loops(self) -> list[Block]:
        return [b for b in self.blocks if b.is_loop]

    @property
    def has_algebraic_loops(self) -> bool:
        return any(b.is_loop for b in self.blocks)

    @property
    def is_ode_explicit(self) -> bool:
        """
        True if every derivative is given by an explicit scalar block.

        The right-hand side may still depend on algebraic variables computed
        by earlier blocks, but never on another derivative.
        """
        by_slot = {slot: block for block in self.blocks for slot in block.slots}
        for slot in self.matching.slots:
            if not slot.is_derivative:
                continue
            block = by_slot.get(slot)
            if block is None or not block.solvable:
                return False
            if any(isinstance(node, Der) for node in walk(block.solution)):
                return False
        return True

    def block_of(self, entry_id: str) -> Optional[Block]:
        """Block containing an equation, or None if it was not matched."""
        for block in self.blocks:
            if entry_id in block.equations:
                return block
        return None

    def incidence_matrix(self) -> np.ndarray:
        """
        Incidence matrix permuted to BLT order.

        Rows are equations and columns unknowns, both in block order with the
        matched pair of each row on the diagonal. Unmatched equations and
        unknowns follow at the end. For a well-posed model the result is
        block lower triangular.
        """
        rows = [e.id for b in self.blocks for e in b.entries]
        rows.extend(self.matching.unmatched_equations)
        columns = [s for b in self.blocks for s in b.slots]
        columns.extend(self.matching.unmatched_slots)
        return self.incidence.to_matrix(columns, rows)

    def summary(self) -> str:
        """Get a summary of the analysis."""
        status = "WELL-POSED" if self.is_well_posed else "ILL-POSED"
        n_loops = len(self.algebraic_loops)
        lines = [
            f"BLT analysis of '{self.model_name}': {status}",
            f"  Equations: {len(self.incidence)}",
            f"  Unknowns: {len(self.matching.slots)}",
            f"  Blocks: {len(self.blocks)} ({len(self.blocks) - n_loops} scalar, {n_loops} algebraic loops)",
        ]
        if self.blocks:
            lines.append("\nBlocks:")
            for i, block in enumerate(self.blocks):
                lines.append(f"  {i}: {block}")
        if self.issues:
            lines.append("\nDiagnostics:")
            for message in self.diagnostics:
                lines.append(f"  - {message}")
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.summary()
