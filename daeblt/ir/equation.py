"""
Equation representation in the IR.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Optional

from daeblt.errors import ModelError, SubscriptError, UnbalancedEquationError
from daeblt.ir.expr import Der, Expr, Literal, VarRef, resolve_subscripts, substitute
from daeblt.ir.types import EquationType


@dataclass(frozen=True)
class Branch:
    """One guarded branch of an if- or when-equation."""

    condition: Expr
    body: tuple[Equation, ...]


@dataclass(frozen=True)
class Equation:
    """
    Represents an equation in the model.

    Examples:
        der(x) = v                          -> SIMPLE with der() in lhs
        y = sin(x)                          -> SIMPLE (algebraic)
        for i in 1:3 loop x[i] = i; end for -> FOR
        if u > 0 then y = u; else y = 0;    -> IF
        when h < 0 then n = pre(n) + 1;     -> WHEN
    """

    eq_type: EquationType
    lhs: Optional[Expr] = None
    rhs: Optional[Expr] = None

    # For loops: inclusive integer range start:step:stop
    index_var: Optional[str] = None
    start: int = 1
    stop: int = 0
    step: int = 1
    body: tuple[Equation, ...] = ()

    # If/when equations: guarded branches, plus else branch for if
    branches: tuple[Branch, ...] = ()
    else_body: Optional[tuple[Equation, ...]] = None

    def __post_init__(self):
        if self.eq_type == EquationType.SIMPLE and (self.lhs is None or self.rhs is None):
            raise ModelError("Simple equation needs both lhs and rhs")
        if self.eq_type == EquationType.FOR and not self.index_var:
            raise ModelError("For-equation needs an index variable")

    def __str__(self):
        if self.eq_type == EquationType.SIMPLE:
            return f"{self.lhs} = {self.rhs}"
        if self.eq_type == EquationType.FOR:
            body = "; ".join(str(eq) for eq in self.body)
            rng = f"{self.start}:{self.stop}" if self.step == 1 else f"{self.start}:{self.step}:{self.stop}"
            return f"for {self.index_var} in {rng} loop {body}; end for"
        keyword = "if" if self.eq_type == EquationType.IF else "when"
        parts = []
        for i, branch in enumerate(self.branches):
            head = keyword if i == 0 else f"else{keyword}"
            body = "; ".join(str(eq) for eq in branch.body)
            parts.append(f"{head} {branch.condition} then {body};")
        if self.else_body is not None:
            parts.append(f"else {'; '.join(str(eq) for eq in self.else_body)};")
        parts.append(f"end {keyword}")
        return " ".join(parts)

    @staticmethod
    def simple(lhs: Expr, rhs: Expr) -> Equation:
        """
        Create a simple equation: lhs = rhs

        Examples:
            Equation.simple(der(x), v)           # Derivative: der(x) = v
            Equation.simple(y, sin(x))           # Algebraic: y = sin(x)
        """
        return Equation(eq_type=EquationType.SIMPLE, lhs=lhs, rhs=rhs)

    @staticmethod
    def for_loop(index_var: str, start: int, stop: int, body: Sequence[Equation], step: int = 1) -> Equation:
        """
        Create a for-equation over the inclusive range start:step:stop.

        In Modelica:
            for i in 1:n loop
              der(x[i]) = v[i];
            end for
        """
        if step == 0:
            raise SubscriptError(f"for {index_var}: step must not be zero")
        return Equation(
            eq_type=EquationType.FOR,
            index_var=index_var,
            start=start,
            stop=stop,
            step=step,
            body=tuple(body),
        )

    @staticmethod
    def if_eq(*branches: tuple[Expr, Sequence[Equation]], else_eqs: Sequence[Equation]) -> Equation:
        """
        Create a structural if-equation (not to be confused with if-expression).

        Examples:
            # if x > 0 then y = 1; else y = 0; end if;
            Equation.if_eq((x_gt_0, [eq_y_1]), else_eqs=[eq_y_0])
        """
        return Equation(
            eq_type=EquationType.IF,
            branches=tuple(Branch(cond, tuple(body)) for cond, body in branches),
            else_body=tuple(else_eqs),
        )

    @staticmethod
    def when(*branches: tuple[Expr, Sequence[Equation]]) -> Equation:
        """Create a when-equation; branches after the first are elsewhen branches."""
        return Equation(
            eq_type=EquationType.WHEN,
            branches=tuple(Branch(cond, tuple(body)) for cond, body in branches),
        )

    def expand(self, label: str = "") -> list[tuple[str, Equation]]:
        """
        Unroll for-loops and resolve constant subscripts.

        Returns (label, equation) pairs where no equation is a FOR and every
        reference is a scalar element name. Iterations are labelled
        ``[i=2].0`` (index value, then body position).
        """
        return _expand(self, label, {})

    def assigned_name(self) -> Optional[str]:
        """Name of the variable a simple equation assigns, or der(x) for derivatives."""
        if self.eq_type != EquationType.SIMPLE:
            return None
        if isinstance(self.lhs, VarRef) and not self.lhs.subscripts:
            return self.lhs.name
        if isinstance(self.lhs, Der) and isinstance(self.lhs.operand, VarRef):
            return f"der({self.lhs.operand.name})"
        return None


def _expand(eq: Equation, label: str, bindings: dict[str, Expr]) -> list[tuple[str, Equation]]:
    if eq.eq_type == EquationType.SIMPLE:
        lhs = resolve_subscripts(substitute(eq.lhs, bindings))
        rhs = resolve_subscripts(substitute(eq.rhs, bindings))
        return [(label, Equation.simple(lhs, rhs))]

    if eq.eq_type == EquationType.FOR:
        result = []
        last = eq.stop + (1 if eq.step > 0 else -1)
        for i in range(eq.start, last, eq.step):
            inner = {**bindings, eq.index_var: Literal(i)}
            for k, sub in enumerate(eq.body):
                result.extend(_expand(sub, f"{label}[{eq.index_var}={i}].{k}", inner))
        return result

    if eq.eq_type in (EquationType.IF, EquationType.WHEN):
        branches = tuple(
            Branch(
                resolve_subscripts(substitute(b.condition, bindings)),
                tuple(e for _, e in _expand_body(b.body, bindings)),
            )
            for b in eq.branches
        )
        else_body = None
        if eq.else_body is not None:
            else_body = tuple(e for _, e in _expand_body(eq.else_body, bindings))
        return [(label, Equation(eq_type=eq.eq_type, branches=branches, else_body=else_body))]

    raise TypeError(f"Unknown equation type: {eq.eq_type}")


def _expand_body(body: tuple[Equation, ...], bindings: dict[str, Expr]) -> list[tuple[str, Equation]]:
    result = []
    for k, sub in enumerate(body):
        result.extend(_expand(sub, f".{k}", bindings))
    return result


@dataclass(frozen=True)
class ResidualGroup:
    """
    One scalar residual contributed by an (expanded) equation.

    A simple equation is one group. An if/when equation contributes one group
    per assigned variable; the group holds every branch condition plus the
    matching equation of every branch.
    """

    assigned: Optional[str]
    exprs: tuple[Expr, ...]

    # Number of branch equations merged into the group; the assigned
    # unknown is expected once per branch equation.
    multiplicity: int = 1


def residual_groups(eq: Equation) -> list[ResidualGroup]:
    """
    Split an expanded equation into scalar residual groups.

    Raises:
        UnbalancedEquationError: if an if-equation lacks an else branch or
            the branches of an if/when equation do not assign the same
            variables.
    """
    if eq.eq_type == EquationType.SIMPLE:
        return [ResidualGroup(eq.assigned_name(), (eq.lhs, eq.rhs))]

    if eq.eq_type == EquationType.FOR:
        raise TypeError("for-equations must be expanded before grouping")

    if eq.eq_type == EquationType.IF and eq.else_body is None:
        raise UnbalancedEquationError(f"if-equation has no else branch: {eq}")
    if eq.eq_type == EquationType.WHEN and eq.else_body is not None:
        raise UnbalancedEquationError(f"when-equation cannot have an else branch: {eq}")
    if not eq.branches:
        raise UnbalancedEquationError(f"{eq.eq_type.name.lower()}-equation has no branches")

    bodies = [b.body for b in eq.branches]
    if eq.else_body is not None:
        bodies.append(eq.else_body)
    conditions = tuple(b.condition for b in eq.branches)

    per_branch = []
    for body in bodies:
        groups = []
        for sub in body:
            groups.extend(residual_groups(sub))
        per_branch.append(groups)

    reference = per_branch[0]
    ref_names = [g.assigned for g in reference]
    for groups in per_branch[1:]:
        names = [g.assigned for g in groups]
        if len(groups) != len(reference) or Counter(names) != Counter(ref_names):
            raise UnbalancedEquationError(
                f"Branches of {eq.eq_type.name.lower()}-equation assign different variables: "
                f"{sorted(n or '?' for n in ref_names)} vs {sorted(n or '?' for n in names)}"
            )

    pair_by_name = None not in ref_names and len(set(ref_names)) == len(ref_names)
    result = []
    for j, group in enumerate(reference):
        exprs = list(conditions)
        multiplicity = 0
        for groups in per_branch:
            if pair_by_name:
                match = next(g for g in groups if g.assigned == group.assigned)
            else:
                match = groups[j]
            exprs.extend(match.exprs)
            multiplicity += match.multiplicity
        result.append(ResidualGroup(group.assigned, tuple(exprs), multiplicity))
    return result
