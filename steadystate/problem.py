"""
Problem Definition
The immutable bundle consumed by the steady-state solver: steady-state
equations, ordered variables, ordered parameters and a Jacobian.
"""

from dataclasses import dataclass, field, replace
from typing import Optional, Sequence, Tuple, Union

import sympy as sp
from sympy import Symbol, Expr, ImmutableMatrix

from .equations import SlowFlowEquations
from .exceptions import StructuralError
from .jacobian import (
    ExplicitJacobian, ImplicitJacobian, JacobianForm,
    get_explicit_jacobian, get_implicit_jacobian, get_jacobian
)


@dataclass(frozen=True)
class Problem:
    """
    A square polynomial system whose roots are the steady states.

    Attributes:
        equations: Steady-state equations (each == 0) in plain symbols
        variables: Unknowns, one per equation
        parameters: Parameter symbols; every grid point assigns all of them
        jacobian: ExplicitJacobian or ImplicitJacobian used for stability

    If no Jacobian is given, the equations are taken to be the right-hand
    sides f of du/dT = f(u) and differentiated directly.
    """

    equations: Tuple[Expr, ...]
    variables: Tuple[Symbol, ...]
    parameters: Tuple[Symbol, ...]
    jacobian: Optional[JacobianForm] = field(default=None, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "equations", tuple(sp.sympify(eq) for eq in self.equations))
        object.__setattr__(self, "variables", tuple(self.variables))
        object.__setattr__(self, "parameters", tuple(self.parameters))

        n = len(self.variables)
        if len(self.equations) != n:
            raise StructuralError(
                f"System is not square: {len(self.equations)} equations "
                f"for {n} variables"
            )
        if len(set(self.variables)) != n:
            raise StructuralError("Variables must be distinct")
        overlap = set(self.variables) & set(self.parameters)
        if overlap:
            raise StructuralError(f"Symbols {sorted(map(str, overlap))} are both variables and parameters")

        if self.jacobian is None:
            J = get_jacobian(self.equations, self.variables)
            object.__setattr__(self, "jacobian", ExplicitJacobian(ImmutableMatrix(J)))
        self._validate_jacobian()

    def _validate_jacobian(self) -> None:
        jac = self.jacobian
        if isinstance(jac, ExplicitJacobian):
            rows, cols = jac.matrix.shape
            if rows != cols or rows != len(self.variables):
                raise StructuralError(
                    f"Jacobian of shape {jac.matrix.shape} does not match "
                    f"{len(self.variables)} variables"
                )
        elif isinstance(jac, ImplicitJacobian):
            if jac.J0.shape != jac.J1.shape or jac.J0.shape != (jac.size, jac.size):
                raise StructuralError("Implicit Jacobian matrices must be square and of equal shape")
            if jac.size != len(jac.variables):
                raise StructuralError("Implicit Jacobian size does not match its variables")
            names = {str(v) for v in self.variables}
            missing = [str(v) for v in jac.variables if str(v) not in names]
            if missing:
                raise StructuralError(f"Jacobian variables {missing} are not problem variables")
        else:
            raise StructuralError(f"Unsupported Jacobian type {type(jac).__name__}")

    @classmethod
    def from_equations(
        cls,
        eom: SlowFlowEquations,
        jacobian: Union[str, JacobianForm] = "explicit"
    ) -> "Problem":
        """
        Build a Problem from slow-flow equations.

        Args:
            eom: The slow-flow equations
            jacobian: "explicit" (rearrange then differentiate), "implicit"
                (J0/J1 evaluated numerically) or a precomputed Jacobian
        """
        if jacobian == "explicit":
            jac = get_explicit_jacobian(eom)
        elif jacobian == "implicit":
            jac = get_implicit_jacobian(eom)
        elif isinstance(jacobian, (ExplicitJacobian, ImplicitJacobian)):
            jac = jacobian
        else:
            raise ValueError(f"Unknown Jacobian option {jacobian!r}")

        return cls(
            equations=tuple(eom.steady_state_equations()),
            variables=tuple(eom.variable_symbols()),
            parameters=tuple(eom.parameters),
            jacobian=jac
        )

    def replace(self, **changes) -> "Problem":
        """Return a new Problem; the original is left untouched."""
        return replace(self, **changes)

    @property
    def n_variables(self) -> int:
        return len(self.variables)

    def __str__(self) -> str:
        lines = [f"{eq} = 0" for eq in self.equations]
        lines.append(f"variables: {', '.join(map(str, self.variables))}")
        lines.append(f"parameters: {', '.join(map(str, self.parameters))}")
        return "\n".join(lines)
