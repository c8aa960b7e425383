"""
BLT (Block Lower Triangular) decomposition.

Given a matching, every matched (equation, unknown) pair becomes a node of a
directed graph with an edge u -> v when the unknown assigned to u is
referenced by the equation of v, i.e. u must be evaluated before v.

1. Find strongly connected components with Tarjan's algorithm
2. Order the condensation topologically (Kahn), breaking ties by the
   smallest declaration position in each component so the output is
   deterministic and a block-ordered model reproduces its own order
3. Emit one Block per component: a lone node without self-dependency is
   SCALAR, everything else is an ALGEBRAIC_LOOP

Both graph traversals are iterative, so deep dependency chains do not hit
the recursion limit.
"""

from __future__ import annotations

import heapq
import logging
from collections.abc import Mapping, Sequence

from daeblt.analysis.incidence import IncidenceGraph
from daeblt.analysis.matching import Matching
from daeblt.analysis.result import Block, BlockKind
from daeblt.analysis.solve import solve_linear
from daeblt.ir.types import EquationType

logger = logging.getLogger(__name__)


def dependency_graph(incidence: IncidenceGraph, matching: Matching) -> dict[str, list[str]]:
    """
    Successor lists of the matched-node graph.

    Returns:
        entry id -> ids of the entries that reference its assigned unknown,
        in declaration order. Self-edges are omitted; see has_self_dependency.
    """
    owner = {slot: entry_id for entry_id, slot in matching.assignment.items()}
    succ: dict[str, list[str]] = {entry_id: [] for entry_id in matching.assignment}
    for entry in incidence.entries:
        if entry.id not in matching.assignment:
            continue
        for occ in incidence.counts[entry.id]:
            source = owner.get(occ)
            if source is not None and source != entry.id:
                succ[source].append(entry.id)
    position = {e.id: e.position for e in incidence.entries}
    for targets in succ.values():
        targets.sort(key=position.__getitem__)
    return succ


def has_self_dependency(incidence: IncidenceGraph, matching: Matching, entry_id: str) -> bool:
    """
    True if an equation references its own unknown other than through its
    definition, e.g. x = x + 1 or x * x = 4. Each branch of an if/when
    equation defines the unknown once.
    """
    entry = incidence.entry(entry_id)
    return incidence.count(entry_id, matching.assignment[entry_id]) > entry.multiplicity


def strongly_connected_components(nodes: Sequence[str], succ: Mapping[str, list[str]]) -> list[list[str]]:
    """
    Find strongly connected components using Tarjan's algorithm.

    Args:
        nodes: Node identifiers; roots are tried in this order
        succ: Adjacency list (succ[node] = nodes this node points to)

    Returns:
        List of SCCs, in reverse topological order.
    """
    index: dict[str, int] = {}
    lowlink: dict[str, int] = {}
    on_stack: set[str] = set()
    stack: list[str] = []
    sccs: list[list[str]] = []

    for root in nodes:
        if root in index:
            continue
        index[root] = lowlink[root] = len(index)
        stack.append(root)
        on_stack.add(root)
        work = [(root, 0)]

        while work:
            node, i = work[-1]
            successors = succ.get(node, [])
            if i < len(successors):
                work[-1] = (node, i + 1)
                w = successors[i]
                if w not in index:
                    index[w] = lowlink[w] = len(index)
                    stack.append(w)
                    on_stack.add(w)
                    work.append((w, 0))
                elif w in on_stack:
                    lowlink[node] = min(lowlink[node], index[w])
                continue

            work.pop()
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[node])

            # Root of a component: pop it off the stack
            if lowlink[node] == index[node]:
                scc = []
                while True:
                    w = stack.pop()
                    on_stack.discard(w)
                    scc.append(w)
                    if w == node:
                        break
                sccs.append(scc)

    return sccs


def order_components(
    sccs: Sequence[list[str]], succ: Mapping[str, list[str]], position: Mapping[str, int]
) -> list[list[str]]:
    """
    Topologically sort the condensation of the graph.

    Among components that are ready at the same time, the one holding the
    earliest declared equation goes first. Members of each component are
    returned in declaration order.
    """
    members = [sorted(scc, key=position.__getitem__) for scc in sccs]
    comp_of = {node: c for c, scc in enumerate(members) for node in scc}
    key = [position[scc[0]] for scc in members]

    out_edges: list[set[int]] = [set() for _ in members]
    indegree = [0] * len(members)
    for node, targets in succ.items():
        for target in targets:
            a, b = comp_of[node], comp_of[target]
            if a != b and b not in out_edges[a]:
                out_edges[a].add(b)
                indegree[b] += 1

    ready = [(key[c], c) for c in range(len(members)) if indegree[c] == 0]
    heapq.heapify(ready)
    ordered = []
    while ready:
        _, c = heapq.heappop(ready)
        ordered.append(members[c])
        for b in out_edges[c]:
            indegree[b] -= 1
            if indegree[b] == 0:
                heapq.heappush(ready, (key[b], b))
    return ordered


def decompose(incidence: IncidenceGraph, matching: Matching) -> tuple[Block, ...]:
    """
    Sort the matched equations into BLT blocks.

    Unmatched equations are left out; the well-posedness check reports them.

    Returns:
        Blocks in evaluation order.
    """
    succ = dependency_graph(incidence, matching)
    matched = [e.id for e in incidence.entries if e.id in matching.assignment]
    position = {e.id: e.position for e in incidence.entries}
    entries = {e.id: e for e in incidence.entries}

    sccs = strongly_connected_components(matched, succ)
    blocks = []
    for scc in order_components(sccs, succ, position):
        slots = tuple(matching.assignment[entry_id] for entry_id in scc)
        members = tuple(entries[entry_id] for entry_id in scc)
        if len(scc) == 1 and not has_self_dependency(incidence, matching, scc[0]):
            entry = members[0]
            solution = None
            if entry.source.eq_type == EquationType.SIMPLE:
                solution = solve_linear(entry.source.lhs, entry.source.rhs, slots[0])
            blocks.append(Block(BlockKind.SCALAR, members, slots, solution))
        else:
            blocks.append(Block(BlockKind.ALGEBRAIC_LOOP, members, slots))

    logger.debug(
        f"BLT: {len(blocks)} blocks, {sum(b.is_loop for b in blocks)} algebraic loops "
        f"from {len(matched)} matched equations"
    )
    return tuple(blocks)
