"""
Model representation in the IR.

A Model is the classified, validated form of a DAE system: variables sorted
into categories and equations sorted into sections. It is immutable; the
analysis never writes derived data back onto it.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Optional

from daeblt.errors import DerivativeError, DuplicateVariableError, StateIndexError, SubscriptError
from daeblt.ir.equation import Branch, Equation, residual_groups
from daeblt.ir.expr import Der, Expr, VarRef, children, is_reduction, substitute, walk
from daeblt.ir.types import EquationSection, EquationType, VariableType
from daeblt.ir.variable import Variable, element_name

_SECTION_FIELDS = {
    EquationSection.CONTINUOUS: "equations",
    EquationSection.EVENT: "event_equations",
    EquationSection.DISCRETE: "discrete_equations",
    EquationSection.INITIAL: "initial_equations",
}


@dataclass(frozen=True)
class Model:
    """
    Represents a complete classified model.

    It contains:
    - Variables (states, algebraic, discrete, parameters, constants, inputs, outputs)
    - Continuous equations
    - Event equations (state resets at events)
    - Discrete equations (updates of discrete variables)
    - Initial equations (only hold at t=0)

    Construction checks the model invariants and raises a ModelError
    subclass if one is violated:
    - variable (and array element) names are unique
    - state_index, when given, is dense 0..n_states-1 and unique
    - der() is applied only to references to states
    - if/when equations are balanced
    - for-ranges and subscripts evaluate to constant integers within the
      declared shape
    - array equations relate arrays of one shape; they are split into one
      scalar equation per element (labelled eq[0][1], eq[0][2], ...)
    """

    name: str
    variables: Sequence[Variable] = ()
    equations: Sequence[Equation] = ()
    event_equations: Sequence[Equation] = ()
    discrete_equations: Sequence[Equation] = ()
    initial_equations: Sequence[Equation] = ()
    description: str = ""

    # Lookup tables (built automatically)
    _var_dict: dict = field(default_factory=dict, init=False, repr=False, compare=False)
    _owners: dict = field(default_factory=dict, init=False, repr=False, compare=False)
    _expanded: dict = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self):
        for attr in ("variables", *_SECTION_FIELDS.values()):
            object.__setattr__(self, attr, tuple(getattr(self, attr)))

        for var in self.variables:
            if var.name in self._var_dict:
                raise DuplicateVariableError(f"Variable '{var.name}' already exists in model")
            self._var_dict[var.name] = var
            for element in var.element_names():
                if element in self._owners:
                    raise DuplicateVariableError(
                        f"Element '{element}' of '{var.name}' clashes with '{self._owners[element].name}'"
                    )
                self._owners[element] = var

        self._check_state_indices()

        for section, attr in _SECTION_FIELDS.items():
            expanded = []
            for i, eq in enumerate(getattr(self, attr)):
                for label, scalar in eq.expand(f"{section.value}[{i}]"):
                    expanded.extend(self._scalarize(label, scalar))
            self._expanded[section] = tuple(expanded)

        for section in EquationSection:
            for label, eq in self._expanded[section]:
                self._check_subscripts(label, eq)
                self._check_derivatives(label, eq)
                residual_groups(eq)

    def _check_state_indices(self) -> None:
        states = self.states
        given = [v.state_index for v in states if v.state_index is not None]
        if not given:
            return
        if len(given) != len(states):
            missing = [v.name for v in states if v.state_index is None]
            raise StateIndexError(f"States without state_index: {missing}")
        if sorted(given) != list(range(len(states))):
            raise StateIndexError(
                f"state_index values {sorted(given)} are not a permutation of 0..{len(states) - 1}"
            )

    def _scalarize(self, label: str, eq: Equation) -> list[tuple[str, Equation]]:
        """Split an array equation, x = k * y with x and y arrays, into element equations."""
        if eq.eq_type != EquationType.SIMPLE:
            if not eq.branches:
                return [(label, eq)]
            branches = tuple(Branch(b.condition, self._scalarize_body(label, b.body)) for b in eq.branches)
            else_body = None
            if eq.else_body is not None:
                else_body = self._scalarize_body(label, eq.else_body)
            return [(label, dataclasses.replace(eq, branches=branches, else_body=else_body))]

        arrays: dict[str, Variable] = {}
        for expr in (eq.lhs, eq.rhs):
            for name in _elementwise_names(expr):
                var = self._var_dict.get(name)
                if var is not None and var.is_array:
                    arrays.setdefault(name, var)
        if not arrays:
            return [(label, eq)]

        shapes = {var.shape for var in arrays.values()}
        if len(shapes) > 1:
            found = ", ".join(f"{name}{list(var.shape)}" for name, var in arrays.items())
            raise SubscriptError(f"{label}: array shapes do not match in {eq} ({found})")
        target = eq.lhs.operand if isinstance(eq.lhs, Der) else eq.lhs
        if isinstance(target, VarRef) and target.name not in arrays and target.name in self._owners:
            raise SubscriptError(f"{label}: scalar '{target.name}' is equated with an array in {eq}")

        element = next(iter(arrays.values()))
        result = []
        for indices in element.element_indices():
            bindings = {name: VarRef(element_name(name, indices)) for name in arrays}
            lhs = substitute(eq.lhs, bindings, keep_reductions=True)
            rhs = substitute(eq.rhs, bindings, keep_reductions=True)
            result.append((element_name(label, indices), Equation.simple(lhs, rhs)))
        return result

    def _scalarize_body(self, label: str, body: tuple[Equation, ...]) -> tuple[Equation, ...]:
        return tuple(e for sub in body for _, e in self._scalarize(label, sub))

    def _check_subscripts(self, label: str, eq: Equation) -> None:
        for expr in _equation_exprs(eq):
            for node in walk(expr):
                if not isinstance(node, VarRef) or node.name in self._owners or node.name in self._var_dict:
                    continue
                base, bracket, _ = node.name.partition("[")
                var = self._var_dict.get(base)
                # Undeclared names are left for the incidence builder to report.
                if not bracket or var is None:
                    continue
                if not var.is_array:
                    raise SubscriptError(f"{label}: '{base}' is not an array but is referenced as {node.name}")
                raise SubscriptError(f"{label}: {node.name} is out of range for {base}{list(var.shape)}")

    def _check_derivatives(self, label: str, eq: Equation) -> None:
        for expr in _equation_exprs(eq):
            for node in walk(expr):
                if not isinstance(node, Der):
                    continue
                if not isinstance(node.operand, VarRef):
                    raise DerivativeError(f"{label}: der() must be applied to a variable, got {node}")
                # Undeclared names are left for the incidence builder to report.
                owner = self._owners.get(node.operand.name) or self._var_dict.get(node.operand.name)
                if owner is not None and not owner.is_state:
                    raise DerivativeError(
                        f"{label}: der({node.operand.name}) applied to {owner.var_type.name} "
                        f"variable, only states may be differentiated"
                    )

    def get_variable(self, name: str) -> Optional[Variable]:
        """Get a variable by its declared name."""
        return self._var_dict.get(name)

    def has_variable(self, name: str) -> bool:
        return name in self._var_dict

    def owner_of(self, element: str) -> Optional[Variable]:
        """Variable declaring a scalar name: x for x, x for x[2]."""
        return self._owners.get(element)

    def element_names(self) -> Iterator[str]:
        """All scalar names, in declaration order."""
        for var in self.variables:
            yield from var.element_names()

    def get_variables_by_type(self, var_type: VariableType) -> list[Variable]:
        """Get all variables of a specific type."""
        return [v for v in self.variables if v.var_type == var_type]

    @property
    def states(self) -> list[Variable]:
        return self.get_variables_by_type(VariableType.STATE)

    @property
    def algebraic_vars(self) -> list[Variable]:
        return self.get_variables_by_type(VariableType.ALGEBRAIC)

    @property
    def discrete_vars(self) -> list[Variable]:
        """Discrete-real and discrete-valued variables."""
        return [v for v in self.variables if v.is_discrete]

    @property
    def parameters(self) -> list[Variable]:
        return self.get_variables_by_type(VariableType.PARAMETER)

    @property
    def constants(self) -> list[Variable]:
        return self.get_variables_by_type(VariableType.CONSTANT)

    @property
    def inputs(self) -> list[Variable]:
        return self.get_variables_by_type(VariableType.INPUT)

    @property
    def outputs(self) -> list[Variable]:
        return self.get_variables_by_type(VariableType.OUTPUT)

    @property
    def n_states(self) -> int:
        """Number of continuous states."""
        return len(self.states)

    def state_index(self, name: str) -> int:
        """Position of a state in the state vector (declaration order unless given)."""
        states = self.states
        for i, var in enumerate(states):
            if var.name == name:
                return var.state_index if var.state_index is not None else i
        raise KeyError(f"'{name}' is not a state of model '{self.name}'")

    def section(self, section: EquationSection) -> tuple[Equation, ...]:
        """Equations of one section, as declared."""
        return getattr(self, _SECTION_FIELDS[section])

    def expanded(self, section: EquationSection) -> tuple[tuple[str, Equation], ...]:
        """Equations of one section with for-loops unrolled, as (label, equation) pairs."""
        return self._expanded[section]

    def with_equations(self, **sections: Sequence[Equation]) -> Model:
        """
        Return a copy with some equation sections replaced.

        Example:
            reordered = model.with_equations(equations=list(reversed(model.equations)))
        """
        return dataclasses.replace(self, **sections)

    def _format_variable(self, var: Variable) -> str:
        parts = [var.name]
        if var.shape:
            parts.append(f"[{','.join(map(str, var.shape))}]")
        if var.start is not None:
            parts.append(f"(start={var.start})")
        if var.unit:
            parts.append(f"[{var.unit}]")
        return "".join(parts)

    def __str__(self):
        """String representation of the model."""
        lines = [f"Model: {self.name}"]
        if self.description:
            lines.append(f"  Description: {self.description}")

        for var_type in VariableType:
            group = self.get_variables_by_type(var_type)
            if group:
                title = var_type.name.replace("_", " ").title()
                lines.append(f"\n  {title} ({len(group)}):")
                for v in group:
                    lines.append(f"    {self._format_variable(v)}")

        for section in EquationSection:
            eqs = self.section(section)
            if eqs:
                lines.append(f"\n  {section.name.title()} Equations ({len(eqs)}):")
                for eq in eqs:
                    lines.append(f"    {eq}")

        return "\n".join(lines)


def _equation_exprs(eq: Equation) -> Iterator:
    """Every expression of an expanded equation, branch conditions included."""
    if eq.lhs is not None:
        yield eq.lhs
    if eq.rhs is not None:
        yield eq.rhs
    for branch in eq.branches:
        yield branch.condition
        for sub in branch.body:
            yield from _equation_exprs(sub)
    for sub in eq.else_body or ():
        yield from _equation_exprs(sub)


def _elementwise_names(expr: Expr) -> Iterator[str]:
    """Names referenced by an expression outside of min()/max() reductions."""
    stack = [expr]
    while stack:
        node = stack.pop()
        if is_reduction(node):
            continue
        if isinstance(node, VarRef):
            yield node.name
        stack.extend(reversed(children(node)))
