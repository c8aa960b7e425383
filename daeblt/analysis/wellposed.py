"""
Well-posedness check of a BLT decomposition.

Verifies, after decomposition:
- the matching is total (no surplus equation, no undetermined unknown)
- no unknown is listed or assigned twice
- the blocks account for exactly the assigned unknowns and partition the
  matched equations

Nothing here raises. Every violated check adds a Diagnostic so the caller
can inspect the partial result.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence

from daeblt.analysis.incidence import IncidenceGraph
from daeblt.analysis.matching import Matching
from daeblt.analysis.result import Block, Diagnostic, DiagnosticCategory, Severity


def check_well_posed(
    incidence: IncidenceGraph, matching: Matching, blocks: Sequence[Block]
) -> tuple[Diagnostic, ...]:
    """
    Check a decomposition and collect diagnostics.

    Args:
        incidence: Incidence graph the matching was computed on
        matching: Result of the matching stage
        blocks: Blocks produced by decompose()

    Returns:
        Diagnostics in a stable order: matching, duplicates, blocks, loops.
    """
    issues: list[Diagnostic] = []
    _check_matching(incidence, matching, issues)
    _check_duplicates(matching, issues)
    _check_blocks(matching, blocks, issues)
    _report_loops(blocks, issues)
    return tuple(issues)


def _error(issues: list[Diagnostic], category: DiagnosticCategory, message: str, location=None) -> None:
    issues.append(Diagnostic(Severity.ERROR, category, message, location))


def _check_matching(incidence: IncidenceGraph, matching: Matching, issues: list[Diagnostic]) -> None:
    n_eqs = len(incidence)
    n_unknowns = len(matching.slots)

    if n_eqs > n_unknowns:
        category = DiagnosticCategory.OVER_DETERMINED
        _error(issues, category, f"Over-determined system: {n_eqs} equations for {n_unknowns} unknowns")
    elif n_eqs < n_unknowns:
        category = DiagnosticCategory.UNDER_DETERMINED
        _error(issues, category, f"Under-determined system: {n_eqs} equations for {n_unknowns} unknowns")
    else:
        category = DiagnosticCategory.STRUCTURALLY_SINGULAR
        if matching.unmatched_equations or matching.unmatched_slots:
            _error(
                issues,
                category,
                f"Structurally singular system: {n_eqs} equations and unknowns, "
                f"but only {len(matching)} could be matched",
            )

    surplus = DiagnosticCategory.OVER_DETERMINED if n_eqs > n_unknowns else DiagnosticCategory.STRUCTURALLY_SINGULAR
    for entry_id in matching.unmatched_equations:
        entry = incidence.entry(entry_id)
        _error(issues, surplus, f"Surplus equation {entry_id}: {entry}", entry_id)

    missing = DiagnosticCategory.UNDER_DETERMINED if n_eqs < n_unknowns else DiagnosticCategory.STRUCTURALLY_SINGULAR
    for slot in matching.unmatched_slots:
        _error(issues, missing, f"No equation determines {slot}", str(slot))

    if matching.aborted:
        _error(
            issues,
            DiagnosticCategory.INCOMPLETE_SEARCH,
            "Matching search was stopped before completion; the result may be incomplete",
        )


def _check_duplicates(matching: Matching, issues: list[Diagnostic]) -> None:
    for slot, n in Counter(matching.slots).items():
        if n > 1:
            _error(issues, DiagnosticCategory.DUPLICATE_ASSIGNMENT, f"Unknown {slot} is listed {n} times", str(slot))

    owners: dict = {}
    for entry_id, slot in matching.assignment.items():
        owners.setdefault(slot, []).append(entry_id)
    for slot, entry_ids in owners.items():
        if len(entry_ids) > 1:
            _error(
                issues,
                DiagnosticCategory.DUPLICATE_ASSIGNMENT,
                f"Unknown {slot} is assigned to {len(entry_ids)} equations: {', '.join(entry_ids)}",
                str(slot),
            )


def _check_blocks(matching: Matching, blocks: Sequence[Block], issues: list[Diagnostic]) -> None:
    seen: Counter = Counter()
    for i, block in enumerate(blocks):
        expected = Counter(matching.assignment.get(entry_id) for entry_id in block.equations)
        if expected != Counter(block.slots) or len(block.slots) != len(block.entries):
            _error(
                issues,
                DiagnosticCategory.BLOCK_MISMATCH,
                f"Block {i} solves {list(block.variables)} but its equations are assigned "
                f"{sorted(str(s) for s in expected.elements() if s is not None)}",
                f"block {i}",
            )
        seen.update(block.equations)

    for entry_id in matching.assignment:
        if seen[entry_id] != 1:
            _error(
                issues,
                DiagnosticCategory.BLOCK_MISMATCH,
                f"Equation {entry_id} appears in {seen[entry_id]} blocks",
                entry_id,
            )
    for entry_id in sorted(set(seen) - set(matching.assignment)):
        _error(issues, DiagnosticCategory.BLOCK_MISMATCH, f"Unmatched equation {entry_id} placed in a block", entry_id)


def _report_loops(blocks: Sequence[Block], issues: list[Diagnostic]) -> None:
    for i, block in enumerate(blocks):
        if block.is_loop:
            issues.append(
                Diagnostic(
                    Severity.INFO,
                    DiagnosticCategory.ALGEBRAIC_LOOP,
                    f"Algebraic loop of size {block.size} in {list(block.variables)}",
                    f"block {i}",
                )
            )
