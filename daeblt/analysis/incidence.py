"""
Incidence graph construction.

Walks every equation that must be solved and records which unknowns it
references. Derivatives are not separate variables: der(x) is recorded as an
occurrence of x tagged DERIVATIVE, so the matching stage can tell "this
equation determines der(x)" from "this equation determines x".
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from daeblt.errors import UndeclaredReferenceError
from daeblt.ir.equation import Equation, residual_groups
from daeblt.ir.expr import Expr, iter_refs
from daeblt.ir.model import Model
from daeblt.ir.types import EquationSection, EquationType

logger = logging.getLogger(__name__)

# Sections whose equations are solved for unknowns. Event equations reset
# states at events and are not part of the structural problem.
SOLVED_SECTIONS = (EquationSection.CONTINUOUS, EquationSection.DISCRETE)


class OccurrenceKind(Enum):
    VALUE = "value"
    DERIVATIVE = "derivative"


@dataclass(frozen=True)
class Occurrence:
    """An unknown as it appears in an equation: the value of x, or der(x)."""

    name: str
    kind: OccurrenceKind = OccurrenceKind.VALUE

    @property
    def is_derivative(self) -> bool:
        return self.kind == OccurrenceKind.DERIVATIVE

    def __str__(self):
        return f"der({self.name})" if self.is_derivative else self.name


@dataclass(frozen=True)
class EquationEntry:
    """
    One scalar equation of the structural problem.

    ``id`` is stable for a given model: ``eq[3]`` for the fourth continuous
    equation, ``eq[3][i=2].0`` for an unrolled for-loop body, ``#k`` suffix
    for the k-th residual of an if/when equation. ``position`` is the
    declaration order used for every tie-break.
    """

    id: str
    section: EquationSection
    position: int
    source: Equation
    exprs: tuple[Expr, ...]
    assigned: Optional[str] = None
    multiplicity: int = 1

    def __str__(self):
        if self.source.eq_type == EquationType.SIMPLE:
            return str(self.source)
        suffix = f" [{self.assigned}]" if self.assigned else ""
        return f"{self.source}{suffix}"


@dataclass(frozen=True)
class IncidenceGraph:
    """Bipartite incidence structure: equation entry -> unknowns it references."""

    entries: tuple[EquationEntry, ...]
    counts: Mapping[str, Mapping[Occurrence, int]]

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[EquationEntry]:
        return iter(self.entries)

    def entry(self, entry_id: str) -> EquationEntry:
        for entry in self.entries:
            if entry.id == entry_id:
                return entry
        raise KeyError(entry_id)

    def occurrences(self, entry_id: str) -> frozenset[Occurrence]:
        """Unknowns referenced by an entry."""
        return frozenset(self.counts[entry_id])

    def count(self, entry_id: str, occurrence: Occurrence) -> int:
        """How many times an unknown is referenced by an entry."""
        return self.counts[entry_id].get(occurrence, 0)

    def to_matrix(self, columns: Sequence[Occurrence], rows: Optional[Sequence[str]] = None) -> np.ndarray:
        """
        0/1 incidence matrix.

        Args:
            columns: Unknowns, one per column
            rows: Entry ids, one per row (default: all entries in order)

        Returns:
            int8 array of shape (len(rows), len(columns))
        """
        row_ids = [e.id for e in self.entries] if rows is None else list(rows)
        col_index = {occ: j for j, occ in enumerate(columns)}
        matrix = np.zeros((len(row_ids), len(columns)), dtype=np.int8)
        for i, entry_id in enumerate(row_ids):
            for occ in self.counts[entry_id]:
                j = col_index.get(occ)
                if j is not None:
                    matrix[i, j] = 1
        return matrix


def build_incidence(model: Model, include_initial: bool = True) -> IncidenceGraph:
    """
    Build the incidence graph of a classified model.

    Continuous and discrete equations are always included; initial equations
    when include_initial is set. Parameters, constants, inputs and anything
    under pre() are known values and never recorded.

    Args:
        model: Classified model
        include_initial: Also include the initial equations (initialization problem)

    Returns:
        A fresh IncidenceGraph; the model is not modified.

    Raises:
        UndeclaredReferenceError: if an equation references an undeclared name
    """
    sections = SOLVED_SECTIONS + ((EquationSection.INITIAL,) if include_initial else ())

    entries = []
    counts: dict[str, Mapping[Occurrence, int]] = {}
    for section in sections:
        for label, eq in model.expanded(section):
            groups = residual_groups(eq)
            for k, group in enumerate(groups):
                entry_id = label if len(groups) == 1 else f"{label}#{k}"
                entry = EquationEntry(
                    id=entry_id,
                    section=section,
                    position=len(entries),
                    source=eq,
                    exprs=group.exprs,
                    assigned=group.assigned,
                    multiplicity=group.multiplicity,
                )
                counts[entry_id] = _count_occurrences(model, entry_id, group.exprs)
                entries.append(entry)

    logger.debug(f"Incidence of '{model.name}': {len(entries)} equations from {len(sections)} sections")
    return IncidenceGraph(entries=tuple(entries), counts=counts)


def _count_occurrences(model: Model, entry_id: str, exprs: tuple[Expr, ...]) -> Counter:
    result: Counter = Counter()
    for expr in exprs:
        for site in iter_refs(expr):
            name = site.ref.name
            owner = model.owner_of(name)
            if owner is not None:
                elements = [name]
            else:
                # Left bare only inside min()/max() or a condition: all elements.
                owner = model.get_variable(name)
                if owner is None:
                    raise UndeclaredReferenceError(entry_id, name)
                elements = list(owner.element_names())
            if site.in_pre or owner.is_known:
                continue
            kind = OccurrenceKind.DERIVATIVE if site.in_der else OccurrenceKind.VALUE
            for element in elements:
                result[Occurrence(element, kind)] += 1
    return result
