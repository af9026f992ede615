"""
Jacobian Builder
Symbolic linearization of the slow-flow equations, in explicit or
implicit form, and compilation into numerical evaluators.

Explicit: J = d f / d u for the rearranged system du/dT = f(u).
Implicit: for the unrearranged system G(u, du/dT) = 0,
    J0 = dG/du,  J1 = dG/d(du/dT),  J = -inv(J1) * J0
evaluated only after numbers are substituted. This avoids the symbolic
rearrangement at the price of one dense solve per evaluation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence, Tuple, Union
import logging

import numpy as np
import sympy as sp
from sympy import Symbol, Expr, ImmutableMatrix, lambdify
from scipy import linalg

from .equations import SlowFlowEquations
from .exceptions import DegenerateJacobianError, StructuralError

logger = logging.getLogger(__name__)

SINGULAR_COND = 1e12


@dataclass(frozen=True)
class ExplicitJacobian:
    """Symbolic Jacobian in the problem variables and parameters."""

    matrix: ImmutableMatrix

    @property
    def size(self) -> int:
        return self.matrix.shape[0]


@dataclass(frozen=True)
class ImplicitJacobian:
    """J0 and J1 of an unrearranged system, taken w.r.t. `variables`."""

    J0: ImmutableMatrix
    J1: ImmutableMatrix
    variables: Tuple[Symbol, ...]

    @property
    def size(self) -> int:
        return self.J0.shape[0]


JacobianForm = Union[ExplicitJacobian, ImplicitJacobian]


def get_jacobian(equations: Sequence[Expr], variables: Sequence) -> sp.Matrix:
    """
    Jacobian of `equations` with respect to `variables`.

    Entry (i, j) is d(equations[i]) / d(variables[j]) with all derivative
    operators evaluated.
    """
    n = len(variables)
    if len(equations) != n:
        raise StructuralError("Jacobians are only defined for square systems!")

    eqs = [sp.sympify(eq) for eq in equations]
    return sp.Matrix(n, n, lambda i, j: sp.diff(eqs[i], variables[j]).doit())


def get_explicit_jacobian(eom: SlowFlowEquations) -> ExplicitJacobian:
    """Rearrange `eom` if needed and differentiate the right-hand sides."""
    rhs = eom.right_hand_sides()
    J = get_jacobian(rhs, eom.variable_symbols())
    return ExplicitJacobian(ImmutableMatrix(J))


def _get_J_matrix(eom: SlowFlowEquations, order: int = 0) -> sp.Matrix:
    if order > 1:
        raise StructuralError(
            "Cannot get a J matrix of order > 1 from slow-flow equations; "
            "they contain no higher derivatives"
        )
    dsyms = eom.derivative_symbols()
    eqs = eom.to_symbols(eom.equations, derivative_symbols=dsyms)
    wrt = eom.variable_symbols() if order == 0 else dsyms

    J = get_jacobian(eqs, wrt)
    # linearize around a steady state
    return J.subs({d: 0 for d in dsyms})


def get_implicit_jacobian(eom: SlowFlowEquations) -> ImplicitJacobian:
    """J0 and J1 of the unrearranged system."""
    eom._check_order()
    J0 = _get_J_matrix(eom, order=0)
    J1 = _get_J_matrix(eom, order=1)
    return ImplicitJacobian(
        ImmutableMatrix(J0),
        ImmutableMatrix(J1),
        tuple(eom.variable_symbols())
    )


def _compile_matrix(matrix: sp.Matrix, args: Sequence[Symbol]):
    n, m = matrix.shape
    func = lambdify(list(args), matrix, modules=['numpy'])

    def evaluate(values):
        out = np.asarray(func(*values), dtype=complex)
        return out.reshape(n, m)
    return evaluate


class JacobianEvaluator(ABC):
    """
    Numerical Jacobian: call with a mapping {symbol: value} holding all
    variables and swept parameters (fixed parameters are compiled in).
    Symbols are matched by name.
    """

    def __init__(self, matrices: Dict[str, sp.Matrix], fixed_parameters: Mapping[Symbol, complex]):
        fixed = {sym: val for sym, val in fixed_parameters.items()}
        free = set()
        subbed = {}
        for name, matrix in matrices.items():
            matrix = sp.Matrix(matrix).subs(fixed)
            subbed[name] = matrix
            free |= matrix.free_symbols
        self.arguments: List[Symbol] = sorted(free, key=str)
        self._compiled = {name: _compile_matrix(m, self.arguments) for name, m in subbed.items()}
        self.size = next(iter(subbed.values())).shape[0]

    def _values(self, assignment: Mapping) -> List[complex]:
        by_name = {str(k): v for k, v in assignment.items()}
        try:
            return [complex(by_name[str(sym)]) for sym in self.arguments]
        except KeyError as e:
            raise KeyError(f"No value given for {e.args[0]} when evaluating the Jacobian") from None

    @abstractmethod
    def __call__(self, assignment: Mapping) -> np.ndarray:
        """Numerical Jacobian at `assignment`."""


class ExplicitJacobianEvaluator(JacobianEvaluator):

    def __init__(self, jacobian: ExplicitJacobian, fixed_parameters):
        super().__init__({"J": jacobian.matrix}, fixed_parameters)

    def __call__(self, assignment: Mapping) -> np.ndarray:
        return self._compiled["J"](self._values(assignment))


class ImplicitJacobianEvaluator(JacobianEvaluator):

    def __init__(self, jacobian: ImplicitJacobian, fixed_parameters, singular_cond: float = SINGULAR_COND):
        super().__init__({"J0": jacobian.J0, "J1": jacobian.J1}, fixed_parameters)
        self.singular_cond = singular_cond

    def __call__(self, assignment: Mapping) -> np.ndarray:
        values = self._values(assignment)
        J0 = self._compiled["J0"](values)
        J1 = self._compiled["J1"](values)

        if not np.all(np.isfinite(J1)) or np.linalg.cond(J1) > self.singular_cond:
            raise DegenerateJacobianError(
                "Implicit Jacobian is degenerate: the time-derivative matrix J1 is singular"
            )
        try:
            return -linalg.solve(J1, J0)
        except linalg.LinAlgError as e:
            raise DegenerateJacobianError(f"Implicit Jacobian is degenerate: {e}") from e


def compile_jacobian(problem, swept_parameters, fixed_parameters) -> JacobianEvaluator:
    """
    Compile the Jacobian of `problem`, inserting `fixed_parameters`.

    Returns a callable taking a mapping of variables and swept parameters
    to the numerical Jacobian matrix.
    """
    jac = problem.jacobian
    if isinstance(jac, ExplicitJacobian):
        evaluator = ExplicitJacobianEvaluator(jac, fixed_parameters)
    elif isinstance(jac, ImplicitJacobian):
        evaluator = ImplicitJacobianEvaluator(jac, fixed_parameters)
    else:
        raise TypeError(f"Unsupported Jacobian type {type(jac).__name__}")

    logger.debug(f"Compiled {type(jac).__name__} over {[str(a) for a in evaluator.arguments]}")
    return evaluator
