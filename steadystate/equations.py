"""
Slow-Flow Equations
Container for the harmonic (slow-flow) equations handed over by the
equation-generation stage, and the symbolic manipulations needed before
solving: rearrangement, steady-state reduction and substitution.
"""

from typing import Dict, List, Optional, Sequence, Tuple
import logging

import sympy as sp
from sympy import Symbol, Expr, Derivative, Matrix
from sympy.core.function import AppliedUndef
from sympy.solvers.solveset import NonlinearError

from .exceptions import StructuralError

logger = logging.getLogger(__name__)


class SlowFlowEquations:
    """
    A square system of first-order equations in slowly varying variables.

    Each equation is an expression implicitly equal to zero. The unknowns
    are applied functions of the slow time, e.g. ``u(T)``, and may appear
    together with their first time-derivatives ``Derivative(u(T), T)``.

    Example:
        >>> T, omega, gamma, F = sp.symbols('T omega gamma F')
        >>> u, v = sp.Function('u')(T), sp.Function('v')(T)
        >>> eom = SlowFlowEquations(
        ...     [u.diff(T) + gamma*u/2 + (1 - omega**2)*v/(2*omega),
        ...      v.diff(T) + gamma*v/2 - (1 - omega**2)*u/(2*omega) + F/(2*omega)],
        ...     [u, v], parameters=[omega, gamma, F])

    Attributes:
        equations: List of expressions (each == 0)
        variables: List of applied functions of `time`
        parameters: List of parameter symbols
        time: The slow time symbol
        harmonics: Optional mapping variable -> harmonic frequency
    """

    def __init__(
        self,
        equations: Sequence,
        variables: Sequence[Expr],
        parameters: Optional[Sequence[Symbol]] = None,
        time: Optional[Symbol] = None,
        harmonics: Optional[Dict[Expr, Expr]] = None
    ):
        self.equations: List[Expr] = [self._as_expression(eq) for eq in equations]
        self.variables: List[Expr] = list(variables)

        if len(self.equations) != len(self.variables):
            raise StructuralError(
                f"System is not square: {len(self.equations)} equations "
                f"for {len(self.variables)} variables"
            )
        if not self.variables:
            raise StructuralError("System has no variables")

        self.time = time if time is not None else self._infer_time()
        for var in self.variables:
            if not isinstance(var, AppliedUndef) or var.args != (self.time,):
                raise StructuralError(f"Variable {var} is not a function of {self.time}")

        if parameters is None:
            parameters = self._infer_parameters()
        self.parameters: List[Symbol] = list(parameters)
        self.harmonics: Dict[Expr, Expr] = dict(harmonics or {})

    @staticmethod
    def _as_expression(eq) -> Expr:
        if isinstance(eq, sp.Equality):
            return eq.lhs - eq.rhs
        return sp.sympify(eq)

    def _infer_time(self) -> Symbol:
        first = self.variables[0]
        if not isinstance(first, AppliedUndef) or len(first.args) != 1:
            raise StructuralError(f"Cannot infer the time variable from {first}")
        return first.args[0]

    def _infer_parameters(self) -> List[Symbol]:
        free = set()
        for eq in self.equations:
            free |= eq.free_symbols
        free.discard(self.time)
        return sorted(free, key=str)

    # -- symbols ---------------------------------------------------------

    def variable_symbols(self) -> List[Symbol]:
        """Plain symbols standing for the variables, named after them."""
        return [sp.Symbol(var.func.__name__) for var in self.variables]

    def derivatives(self) -> List[Derivative]:
        return [Derivative(var, self.time) for var in self.variables]

    def derivative_symbols(self) -> List[Symbol]:
        return [sp.Dummy(f"d{var.func.__name__}") for var in self.variables]

    def _check_order(self) -> None:
        for eq in self.equations:
            for der in eq.atoms(Derivative):
                if der.derivative_count > 1:
                    raise StructuralError(
                        f"Derivative {der} is of order > 1; slow-flow equations are first order"
                    )

    def to_symbols(
        self,
        exprs: Sequence[Expr],
        derivative_symbols: Optional[Sequence[Symbol]] = None
    ) -> List[Expr]:
        """
        Replace derivatives by `derivative_symbols` (or zero) and the
        variables by plain symbols.
        """
        if derivative_symbols is None:
            der_rules = {d: 0 for d in self.derivatives()}
        else:
            der_rules = dict(zip(self.derivatives(), derivative_symbols))
        var_rules = dict(zip(self.variables, self.variable_symbols()))

        out = []
        for expr in exprs:
            expr = sp.sympify(expr).subs(der_rules).doit()
            out.append(expr.subs(var_rules))
        return out

    # -- rearrangement ---------------------------------------------------

    def _linear_form(self) -> Tuple[Matrix, Matrix, List[Symbol]]:
        """Write the system as A * d(u)/dT = b."""
        self._check_order()
        dsyms = self.derivative_symbols()
        rules = dict(zip(self.derivatives(), dsyms))
        eqs = [eq.subs(rules) for eq in self.equations]
        try:
            A, b = sp.linear_eq_to_matrix(eqs, dsyms)
        except NonlinearError as e:
            raise StructuralError(f"Equations are not linear in the time derivatives: {e}") from e
        return A, b, dsyms

    def is_rearranged(self) -> bool:
        """True if every equation reads d(u_i)/dT - f_i(u) = 0."""
        A, _, _ = self._linear_form()
        return sp.simplify(A - sp.eye(len(self.variables))) == sp.zeros(*A.shape)

    def rearrange_standard(self) -> "SlowFlowEquations":
        """
        Isolate the time derivatives: returns a new system in which the
        i-th equation is d(u_i)/dT - f_i(u) = 0.

        This is a symbolic linear solve and can be very expensive for
        large systems. It fails if the derivative coefficient matrix is
        singular, e.g. for a system with a free phase.
        """
        A, b, _ = self._linear_form()
        n = len(self.variables)
        if A.rank(simplify=True) < n:
            raise StructuralError(
                "Cannot rearrange: the time-derivative coefficient matrix is singular"
            )
        rhs = A.LUsolve(b)
        new_eqs = [der - sp.simplify(f) for der, f in zip(self.derivatives(), rhs)]
        logger.debug(f"Rearranged {n} equations into standard form")
        return self._copy(equations=new_eqs)

    def right_hand_sides(self) -> List[Expr]:
        """f(u) such that du/dT = f(u), in plain symbols."""
        rearranged = self if self.is_rearranged() else self.rearrange_standard()
        return [-eq for eq in rearranged.steady_state_equations()]

    def steady_state_equations(self) -> List[Expr]:
        """Equations with all derivatives set to zero, in plain symbols."""
        return [sp.expand(eq) for eq in self.to_symbols(self.equations)]

    # -- transformations -------------------------------------------------

    def _copy(self, **changes) -> "SlowFlowEquations":
        kwargs = dict(
            equations=list(self.equations),
            variables=list(self.variables),
            parameters=list(self.parameters),
            time=self.time,
            harmonics=dict(self.harmonics)
        )
        kwargs.update(changes)
        return SlowFlowEquations(**kwargs)

    def substitute(self, rules: Dict) -> "SlowFlowEquations":
        """Return a new system with `rules` substituted in every equation."""
        eqs = [sp.sympify(eq).subs(rules).doit() for eq in self.equations]
        return self._copy(equations=eqs)

    def remove(self, index: int) -> "SlowFlowEquations":
        """Return a new system without the index-th equation and variable."""
        eqs = [eq for i, eq in enumerate(self.equations) if i != index]
        variables = [v for i, v in enumerate(self.variables) if i != index]
        harmonics = {v: w for v, w in self.harmonics.items() if v in variables}
        return self._copy(equations=eqs, variables=variables, harmonics=harmonics)

    def __repr__(self) -> str:
        return (f"SlowFlowEquations(\n"
                f"  equations = {self.equations}\n"
                f"  variables = {self.variables}\n"
                f"  parameters = {self.parameters}\n"
                f")")

    def __str__(self) -> str:
        return "\n".join(f"{eq} = 0" for eq in self.equations)
