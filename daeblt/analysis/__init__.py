"""
Structural analysis of classified models.

The entry point is analyze(); the stages are exposed for callers that need
the intermediate structures.
"""

from daeblt.analysis.incidence import (
    EquationEntry,
    IncidenceGraph,
    Occurrence,
    OccurrenceKind,
    build_incidence,
)
from daeblt.analysis.matching import Matching, match, unknown_slots
from daeblt.analysis.result import BLTResult, Block, BlockKind, Diagnostic, DiagnosticCategory, Severity
from daeblt.analysis.solve import linear_coefficients, solve_linear
from daeblt.analysis.blt import decompose, dependency_graph, strongly_connected_components
from daeblt.analysis.wellposed import check_well_posed
from daeblt.analysis.pipeline import analyze

__all__ = [
    # Incidence
    "EquationEntry",
    "IncidenceGraph",
    "Occurrence",
    "OccurrenceKind",
    "build_incidence",
    # Matching
    "Matching",
    "match",
    "unknown_slots",
    # Blocks
    "Block",
    "BlockKind",
    "decompose",
    "dependency_graph",
    "strongly_connected_components",
    "linear_coefficients",
    "solve_linear",
    # Result
    "BLTResult",
    "Diagnostic",
    "DiagnosticCategory",
    "Severity",
    "check_well_posed",
    "analyze",
]
