"""
Tests for Jacobian construction and the Problem container
"""

import pytest
import numpy as np
import sympy as sp
from sympy import symbols, Function, ImmutableMatrix

import sys
sys.path.insert(0, '..')

from steadystate.equations import SlowFlowEquations
from steadystate.problem import Problem
from steadystate.jacobian import (
    ExplicitJacobian, ImplicitJacobian,
    get_jacobian, compile_jacobian, JacobianEvaluator
)
from steadystate.exceptions import StructuralError, DegenerateJacobianError


class TestGetJacobian:
    """Tests for the symbolic Jacobian."""

    def test_entries(self):
        """Entry (i, j) is d eq_i / d var_j."""
        x, y, a = symbols('x y a')
        J = get_jacobian([x**2 + a*y, x*y], [x, y])
        assert J == sp.Matrix([[2*x, a], [y, x]])

    def test_non_square(self):
        """Three equations in two variables have no Jacobian."""
        x, y = symbols('x y')
        with pytest.raises(StructuralError, match="square"):
            get_jacobian([x, y, x*y], [x, y])


class TestJacobianForms:
    """Explicit and implicit Jacobians of the same system."""

    @pytest.fixture
    def eom(self):
        T, omega, omega0, gamma, F = symbols('T omega omega0 gamma F')
        u, v = Function('u')(T), Function('v')(T)
        eqs = [
            gamma*u.diff(T) + 2*omega*v.diff(T) + (omega0**2 - omega**2)*u + gamma*omega*v - F,
            -2*omega*u.diff(T) + gamma*v.diff(T) + (omega0**2 - omega**2)*v - gamma*omega*u,
        ]
        return SlowFlowEquations(eqs, [u, v])

    @pytest.fixture
    def point(self):
        u, v, omega = symbols('u v omega')
        return {u: 0.3, v: -0.2, omega: 1.1}

    @pytest.fixture
    def fixed(self):
        omega0, gamma, F = symbols('omega0 gamma F')
        return {omega0: 1.0, gamma: 0.1, F: 0.3}

    def test_explicit_form(self, eom):
        """Explicit Jacobians are a single symbolic matrix."""
        problem = Problem.from_equations(eom, jacobian="explicit")
        assert isinstance(problem.jacobian, ExplicitJacobian)
        assert problem.jacobian.size == 2

    def test_implicit_form(self, eom):
        """Implicit Jacobians keep J0 and J1 separate."""
        problem = Problem.from_equations(eom, jacobian="implicit")
        jac = problem.jacobian
        assert isinstance(jac, ImplicitJacobian)
        gamma, omega = symbols('gamma omega')
        assert sp.simplify(jac.J1 - sp.Matrix([[gamma, 2*omega], [-2*omega, gamma]])) == sp.zeros(2, 2)

    def test_forms_agree_numerically(self, eom, point, fixed):
        """-inv(J1) J0 equals the derivative of the rearranged system."""
        omega = symbols('omega')
        swept = {omega: np.array([1.1])}
        explicit = compile_jacobian(Problem.from_equations(eom, "explicit"), swept, fixed)
        implicit = compile_jacobian(Problem.from_equations(eom, "implicit"), swept, fixed)

        assert np.allclose(explicit(point), implicit(point))

    def test_eigenvalues_damped(self, eom, point, fixed):
        """The linear oscillator decays: all eigenvalues in the left half-plane."""
        omega = symbols('omega')
        J = compile_jacobian(Problem.from_equations(eom), {omega: [1.1]}, fixed)(point)
        assert np.all(np.linalg.eigvals(J).real < 0)

    def test_missing_value(self, eom, fixed):
        """Evaluating without a swept parameter fails."""
        u, v, omega = symbols('u v omega')
        J = compile_jacobian(Problem.from_equations(eom), {omega: [1.1]}, fixed)
        with pytest.raises(KeyError):
            J({u: 0.1, v: 0.1})

    def test_unknown_option(self, eom):
        with pytest.raises(ValueError):
            Problem.from_equations(eom, jacobian="numeric")

    def test_evaluator_is_abstract(self):
        """Only the explicit and implicit evaluators can be built."""
        x = symbols('x')
        with pytest.raises(TypeError):
            JacobianEvaluator({"J": sp.Matrix([[x]])}, {})

    def test_degenerate_implicit(self):
        """A singular J1 cannot be inverted."""
        x, a = symbols('x a')
        jac = ImplicitJacobian(ImmutableMatrix([[1]]), ImmutableMatrix([[x]]), (x,))
        problem = Problem([x - a], [x], [a], jacobian=jac)
        J = compile_jacobian(problem, {a: [0.0]}, {})

        with pytest.raises(DegenerateJacobianError):
            J({x: 0.0, a: 0.0})
        assert np.allclose(J({x: 2.0, a: 0.0}), [[-0.5]])


class TestProblem:
    """Tests for the Problem container."""

    @pytest.fixture
    def syms(self):
        return symbols('x y a b')

    def test_default_jacobian(self, syms):
        """Without a Jacobian the equations are differentiated directly."""
        x, y, a, b = syms
        problem = Problem([a*x - y**2, x + b*y], [x, y], [a, b])
        assert problem.jacobian.matrix == ImmutableMatrix([[a, -2*y], [1, b]])
        assert problem.n_variables == 2

    def test_not_square(self, syms):
        x, y, a, b = syms
        with pytest.raises(StructuralError):
            Problem([x - a], [x, y], [a])

    def test_duplicate_variables(self, syms):
        x, y, a, b = syms
        with pytest.raises(StructuralError):
            Problem([x - a, x + a], [x, x], [a])

    def test_variable_as_parameter(self, syms):
        x, y, a, b = syms
        with pytest.raises(StructuralError):
            Problem([x - a], [x], [a, x])

    def test_foreign_implicit_variables(self, syms):
        """An implicit Jacobian must be taken w.r.t. problem variables."""
        x, y, a, b = syms
        jac = ImplicitJacobian(ImmutableMatrix([[1]]), ImmutableMatrix([[1]]), (y,))
        with pytest.raises(StructuralError):
            Problem([x - a], [x], [a], jacobian=jac)

    def test_wrong_jacobian_size(self, syms):
        x, y, a, b = syms
        with pytest.raises(StructuralError):
            Problem([x - a], [x], [a], jacobian=ExplicitJacobian(ImmutableMatrix([[1, 0], [0, 1]])))

    def test_replace(self, syms):
        """replace() returns a new Problem and leaves the original intact."""
        x, y, a, b = syms
        problem = Problem([x - a], [x], [a])
        other = problem.replace(equations=(x**2 - a,))

        assert other.equations == (x**2 - a,)
        assert problem.equations == (x - a,)

    def test_frozen(self, syms):
        x, y, a, b = syms
        problem = Problem([x - a], [x], [a])
        with pytest.raises(Exception):
            problem.variables = (y,)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
