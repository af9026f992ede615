"""
Limit Cycles
Steady states of slow-flow equations extended by a Hopf frequency. The
limit-cycle frequency becomes an unknown; the resulting free phase (U(1)
symmetry) is removed by fixing one Hopf variable to zero.
"""

from typing import List, Mapping, Optional
import logging

import sympy as sp
from sympy import Symbol, Expr

from .equations import SlowFlowEquations
from .exceptions import ParameterError, StructuralError
from .jacobian import ImplicitJacobian, get_implicit_jacobian
from .problem import Problem

logger = logging.getLogger(__name__)


def hopf_variables(eom: SlowFlowEquations, frequency: Symbol) -> List[Expr]:
    """Variables whose harmonic frequency involves `frequency`."""
    return [
        var for var in eom.variables
        if var in eom.harmonics and sp.sympify(eom.harmonics[var]).has(frequency)
    ]


def _hopf_jacobian(eom: SlowFlowEquations, fixed_var: Expr) -> ImplicitJacobian:
    """
    Usual Jacobian with the entries of the free variable removed. The
    discarded eigenvalue is 0, corresponding to the free phase.
    """
    eom_jac = eom if eom.is_rearranged() else eom.rearrange_standard()
    free_idx = eom_jac.variables.index(fixed_var)
    eom_jac = eom_jac.remove(free_idx)
    # the free variable is fixed to zero, as in the problem itself
    eom_jac = eom_jac.substitute({fixed_var: 0})
    return get_implicit_jacobian(eom_jac)


def _fix_gauge(eom: SlowFlowEquations, omega_lc: Symbol, fixed_var: Expr) -> SlowFlowEquations:
    """Replace `fixed_var` by the unknown frequency `omega_lc`."""
    new_var = sp.Function(str(omega_lc))(eom.time)
    rules = {omega_lc: new_var, fixed_var: 0}

    equations = [sp.sympify(eq).subs(rules).doit() for eq in eom.equations]
    variables = [new_var if v == fixed_var else v for v in eom.variables]
    parameters = [p for p in eom.parameters if p != omega_lc]
    harmonics = {v: w for v, w in eom.harmonics.items() if v != fixed_var}
    harmonics[new_var] = sp.S.Zero

    return SlowFlowEquations(equations, variables, parameters, eom.time, harmonics)


def hopf_problem(eom: SlowFlowEquations, omega_lc: Symbol) -> Problem:
    """
    Construct a Problem for limit cycles of frequency `omega_lc`.

    `eom` is not modified; a new Problem is returned in which `omega_lc`
    is an unknown and the last Hopf variable has been eliminated. Its
    Jacobian is always implicit.
    """
    candidates = hopf_variables(eom, omega_lc)
    if not candidates:
        raise StructuralError("No Hopf variables found!")
    if omega_lc not in eom.parameters:
        raise ParameterError(f"{omega_lc} is not a parameter of the harmonic equations", omega_lc)

    # eliminate one of the Cartesian variables, it does not matter which
    fixed_var = candidates[-1]
    J = _hopf_jacobian(eom, fixed_var)
    gauged = _fix_gauge(eom, omega_lc, fixed_var)

    logger.info(f"Limit cycle problem: {fixed_var} fixed to 0, {omega_lc} is now a variable")
    return Problem.from_equations(gauged, jacobian=J)


def get_limit_cycles(
    eom: SlowFlowEquations,
    swept_parameters: Mapping,
    fixed_parameters: Optional[Mapping],
    omega_lc: Symbol,
    **kwargs
):
    """
    Steady states of `eom` including limit cycles of frequency `omega_lc`.
    Uses a random warm-up with threading unless told otherwise.
    """
    from .solve import get_steady_states

    prob = hopf_problem(eom, omega_lc)
    kwargs.setdefault("random_warmup", True)
    kwargs.setdefault("threading", True)
    return get_steady_states(prob, swept_parameters, fixed_parameters, **kwargs)
