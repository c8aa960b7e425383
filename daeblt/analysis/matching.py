"""
Causality assignment: match every equation to the unknown it determines.

Unknown slots
-------------
- der(x) for every state x that appears differentiated
- x for a state only if it is otherwise constrained: an initial equation
  references it, as x or as der(x). Otherwise the state value is a known
  during simulation
- one slot per algebraic, discrete and output element

Algorithm
---------
Greedy initial assignment followed by augmenting-path search
(Ford-Fulkerson / Kuhn style, iterative DFS). Any maximum matching is
correct; the visiting order only decides which one is found:

- equations with fewer candidate unknowns go first. This is a heuristic
  that tends to keep algebraic loops small, not a correctness requirement.
- an equation tries derivative slots before value slots, each in
  declaration order.
- remaining ties are broken by equation declaration order, so the result is
  reproducible.
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Optional

from daeblt.analysis.incidence import IncidenceGraph, Occurrence, OccurrenceKind
from daeblt.ir.model import Model
from daeblt.ir.types import EquationSection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Matching:
    """Result of the assignment: entry id -> slot it determines."""

    slots: tuple[Occurrence, ...]
    assignment: Mapping[str, Occurrence]
    unmatched_equations: tuple[str, ...] = ()
    unmatched_slots: tuple[Occurrence, ...] = ()
    aborted: bool = False

    @property
    def is_total(self) -> bool:
        """True if every equation and every unknown is matched."""
        return not (self.unmatched_equations or self.unmatched_slots or self.aborted)

    def __len__(self) -> int:
        return len(self.assignment)

    def equation_for(self, slot: Occurrence) -> Optional[str]:
        """Entry id determining a slot, if any."""
        for entry_id, assigned in self.assignment.items():
            if assigned == slot:
                return entry_id
        return None


def unknown_slots(model: Model, incidence: IncidenceGraph) -> tuple[Occurrence, ...]:
    """Matchable unknowns in declaration order."""
    differentiated = set()
    constrained = set()
    for entry in incidence.entries:
        for occ in incidence.counts[entry.id]:
            if occ.is_derivative:
                differentiated.add(occ.name)
            if entry.section == EquationSection.INITIAL:
                constrained.add(occ.name)

    slots = []
    for var in model.variables:
        if var.is_known:
            continue
        for element in var.element_names():
            if not var.is_state:
                slots.append(Occurrence(element))
                continue
            if element in differentiated:
                slots.append(Occurrence(element, OccurrenceKind.DERIVATIVE))
            if element in constrained:
                slots.append(Occurrence(element))
    return tuple(slots)


def match(incidence: IncidenceGraph, model: Model, max_steps: Optional[int] = None) -> Matching:
    """
    Compute a maximum matching between equations and unknown slots.

    Args:
        incidence: Incidence graph of the model
        model: The classified model (for variable categories and order)
        max_steps: Optional bound on augmenting-path node expansions. When
            exhausted the search stops and a partial matching flagged
            ``aborted`` is returned.

    Returns:
        Matching; total when every equation and unknown could be paired.
    """
    slots = unknown_slots(model, incidence)
    slot_index = {slot: j for j, slot in enumerate(slots)}

    # Candidate slots per equation: derivatives first, then values.
    adj: dict[str, list[int]] = {}
    for entry in incidence.entries:
        cands = [slot_index[occ] for occ in incidence.counts[entry.id] if occ in slot_index]
        cands.sort(key=lambda j: (not slots[j].is_derivative, j))
        adj[entry.id] = cands

    order = sorted(incidence.entries, key=lambda e: (len(adj[e.id]), e.position))
    eq_to_slot: dict[str, int] = {}
    slot_to_eq: dict[int, str] = {}

    for entry in order:
        for j in adj[entry.id]:
            if j not in slot_to_eq:
                eq_to_slot[entry.id] = j
                slot_to_eq[j] = entry.id
                break

    budget = max_steps
    aborted = False
    for entry in order:
        if entry.id in eq_to_slot:
            continue
        _, used = _augment(entry.id, adj, eq_to_slot, slot_to_eq, budget)
        if budget is not None:
            budget -= used
            if budget < 0:
                aborted = True
                warnings.warn(
                    f"Matching search stopped after {max_steps} steps; the assignment is partial",
                    UserWarning,
                    stacklevel=2,
                )
                break

    assignment = {e.id: slots[eq_to_slot[e.id]] for e in incidence.entries if e.id in eq_to_slot}
    unmatched_eqs = tuple(e.id for e in incidence.entries if e.id not in eq_to_slot)
    unmatched_slots = tuple(s for j, s in enumerate(slots) if j not in slot_to_eq)

    logger.debug(
        f"Matched {len(assignment)} of {len(incidence)} equations to {len(slots)} unknowns"
        + (" (aborted)" if aborted else "")
    )
    return Matching(
        slots=slots,
        assignment=assignment,
        unmatched_equations=unmatched_eqs,
        unmatched_slots=unmatched_slots,
        aborted=aborted,
    )


def _augment(
    root: str,
    adj: dict[str, list[int]],
    eq_to_slot: dict[str, int],
    slot_to_eq: dict[int, str],
    budget: Optional[int],
) -> tuple[bool, int]:
    """
    Search an augmenting path from an unmatched equation and flip it.

    Returns (found, steps) where steps counts visited slots. With a budget,
    the search gives up once steps exceeds it.
    """
    visited: set[int] = set()
    stack = [(root, 0)]  # (equation, next candidate)
    path: list[int] = []  # slot leading from stack[k] to stack[k + 1]
    steps = 0
    while stack:
        eq, i = stack[-1]
        cands = adj[eq]
        if i >= len(cands):
            stack.pop()
            if path:
                path.pop()
            continue
        stack[-1] = (eq, i + 1)
        j = cands[i]
        if j in visited:
            continue
        visited.add(j)
        steps += 1
        if budget is not None and steps > budget:
            return False, steps
        owner = slot_to_eq.get(j)
        path.append(j)
        if owner is None:
            for (eq_k, _), slot in zip(stack, path):
                eq_to_slot[eq_k] = slot
                slot_to_eq[slot] = eq_k
            return True, steps
        stack.append((owner, 0))
    return False, steps
