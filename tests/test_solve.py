"""
Tests for the steady-state pipeline
"""

import pytest
import numpy as np
import sympy as sp
from sympy import symbols, Function

import sys
sys.path.insert(0, '..')

from steadystate import (
    SlowFlowEquations, Problem, Result,
    get_steady_states, get_single_solution, pad_solutions,
    ParameterError, NoSolutionsError,
)


class RealCubicRoots:
    """Root oracle returning only the real roots of x^3 - x - a."""

    def __init__(self):
        self.calls = 0

    def solve_total_degree(self, system, parameters):
        self.calls += 1
        roots = np.roots([1, 0, -1, -parameters[0]])
        return [np.array([r.real]) for r in roots if abs(r.imag) < 1e-9]

    def solve_continuation(self, system, start_solutions, start_parameters, target_parameters):
        raise AssertionError("continuation not expected")


class NoRoots:

    def solve_total_degree(self, system, parameters):
        return []

    def solve_continuation(self, system, start_solutions, start_parameters, target_parameters):
        return [[] for _ in target_parameters]


def linear_response(omega, omega0, gamma, F):
    """Steady state (u, v) of the damped driven linear oscillator."""
    delta = omega0**2 - omega**2
    A = np.array([[delta, gamma*omega], [-gamma*omega, delta]])
    return np.linalg.solve(A, [F, 0.0])


@pytest.fixture
def oscillator():
    T, omega, omega0, gamma, F = symbols('T omega omega0 gamma F')
    u, v = Function('u')(T), Function('v')(T)
    eqs = [
        gamma*u.diff(T) + 2*omega*v.diff(T) + (omega0**2 - omega**2)*u + gamma*omega*v - F,
        -2*omega*u.diff(T) + gamma*v.diff(T) + (omega0**2 - omega**2)*v - gamma*omega*u,
    ]
    return SlowFlowEquations(eqs, [u, v])


@pytest.fixture
def fixed():
    omega0, gamma, F = symbols('omega0 gamma F')
    return {omega0: 1.0, gamma: 0.01, F: 0.005}


class TestLinearOscillator:
    """Full pipeline on a system with exactly one steady state."""

    def test_single_stable_branch(self, oscillator, fixed):
        """50 sweep points, one branch, stable everywhere."""
        omega = symbols('omega')
        sweep = np.linspace(0.9, 1.1, 50)
        result = get_steady_states(oscillator, {omega: sweep}, fixed, show_progress=False, seed=1)

        assert isinstance(result, Result)
        assert result.grid_shape == (50,)
        assert result.n_branches == 1
        assert np.all(result.classes["physical"])
        assert np.all(result.classes["stable"])
        assert not np.any(result.classes["Hopf"])

    def test_values(self, oscillator, fixed):
        omega, omega0, gamma, F = symbols('omega omega0 gamma F')
        sweep = np.linspace(0.9, 1.1, 7)
        result = get_steady_states(oscillator, {omega: sweep}, fixed, show_progress=False, seed=1)

        for i, w in enumerate(sweep):
            expected = linear_response(w, fixed[omega0], fixed[gamma], fixed[F])
            assert np.allclose(result.solutions[i, 0].real, expected, atol=1e-8)

    def test_random_warmup(self, oscillator, fixed):
        """Continuation from a perturbed point finds the same branch."""
        omega, omega0, gamma, F = symbols('omega omega0 gamma F')
        sweep = np.linspace(0.9, 1.1, 9)
        result = get_steady_states(
            oscillator, {omega: sweep}, fixed,
            random_warmup=True, threading=True, show_progress=False, seed=7
        )

        assert result.n_branches == 1
        expected = linear_response(sweep[0], fixed[omega0], fixed[gamma], fixed[F])
        assert np.allclose(result.solutions[0, 0].real, expected, atol=1e-8)
        assert np.all(result.classes["physical"])

    def test_string_keys(self, oscillator):
        """Parameters may be named instead of passed as symbols."""
        result = get_steady_states(
            oscillator,
            {"omega": np.linspace(0.95, 1.05, 5)},
            {"omega0": 1.0, "gamma": 0.01, "F": 0.005},
            show_progress=False
        )
        assert result.n_branches == 1

    def test_implicit_jacobian(self, oscillator, fixed):
        omega = symbols('omega')
        problem = Problem.from_equations(oscillator, jacobian="implicit")
        result = get_steady_states(problem, {omega: np.linspace(0.9, 1.1, 5)}, fixed, show_progress=False)
        assert np.all(result.classes["stable"])

    def test_2d_sweep(self, oscillator):
        omega, omega0, gamma, F = symbols('omega omega0 gamma F')
        swept = {omega: np.linspace(0.9, 1.1, 4), F: np.array([0.001, 0.002, 0.003])}
        result = get_steady_states(oscillator, swept, {omega0: 1.0, gamma: 0.01}, show_progress=False)

        assert result.grid_shape == (4, 3)
        assert result.classes["binary_labels"].shape == (4, 3, 1)
        expected = linear_response(swept[omega][1], 1.0, 0.01, 0.003)
        assert np.allclose(result.solutions[1, 2, 0].real, expected, atol=1e-8)

    def test_transform(self, oscillator, fixed):
        """Derived quantities are evaluated on every solution."""
        omega, omega0, gamma, F = symbols('omega omega0 gamma F')
        sweep = np.linspace(0.9, 1.1, 3)
        result = get_steady_states(oscillator, {omega: sweep}, fixed, show_progress=False)
        amplitude = result.transform("sqrt(u**2 + v**2)")

        assert amplitude.shape == (3, 1)
        expected = np.linalg.norm(linear_response(sweep[2], 1.0, 0.01, 0.005))
        assert amplitude[2, 0].real == pytest.approx(expected)

    def test_summary(self, oscillator, fixed):
        omega = symbols('omega')
        result = get_steady_states(oscillator, {omega: [1.0, 1.1]}, fixed, show_progress=False)
        text = str(result)

        assert "2 parameter points" in text
        assert "Solution branches:   1" in text
        assert "binary_labels" in text


class TestChangingRootCount:
    """Three roots on one side of the sweep, one on the other."""

    @pytest.fixture
    def problem(self):
        x, a = symbols('x a')
        return Problem([x**3 - x - a], [x], [a])

    @pytest.fixture
    def result(self, problem):
        a = symbols('a')
        return get_steady_states(
            problem, {a: np.linspace(0, 1, 10)}, solver=RealCubicRoots(), show_progress=False
        )

    def test_branch_count(self, result):
        """Every point has as many branches as the richest point."""
        assert result.n_branches == 3
        assert result.solutions.shape == (10, 3, 1)

    def test_padding(self, result):
        missing = np.isnan(result.solutions).any(axis=-1)
        # a < 2/(3*sqrt(3)) for the first four points only
        assert missing.sum() == 6 * 2
        assert not missing[:4].any()

    def test_padding_not_physical(self, result):
        missing = np.isnan(result.solutions).any(axis=-1)
        assert not np.any(result.classes["physical"][missing])
        assert not np.any(result.classes["stable"][missing])
        assert np.all(result.classes["physical"][~missing])

    def test_class_shapes(self, result):
        for name in ("physical", "stable", "Hopf", "binary_labels"):
            assert result.classes[name].shape == (10, 3)

    def test_sorted_branches_continuous(self, result):
        """The surviving root stays on a single branch index."""
        present = ~np.isnan(result.solutions[:, :, 0])
        surviving = [np.flatnonzero(present[i]) for i in range(4, 10)]
        assert all(len(s) == 1 and s[0] == surviving[0][0] for s in surviving)

    def test_single_solution_branch_then_point(self, result):
        """The branch comes before the grid index."""
        a = symbols('a')
        sol = get_single_solution(result, 0, 4)

        assert sol[a] == pytest.approx(np.linspace(0, 1, 10)[4])
        expected = result.solution_dict((4,), 0)
        assert list(sol) == list(expected)
        np.testing.assert_array_equal(list(sol.values()), list(expected.values()))
        assert get_single_solution(result, 2, 3) == result.solution_dict((3,), 2)
        with pytest.raises(IndexError):
            get_single_solution(result, 4, 0)

    def test_solver_called_per_point(self, problem):
        a = symbols('a')
        solver = RealCubicRoots()
        get_steady_states(problem, {a: np.linspace(0, 1, 6)}, solver=solver, show_progress=False)
        assert solver.calls == 6


class TestInputErrors:
    """Invalid inputs are reported before solving."""

    def test_no_solutions(self):
        x, a = symbols('x a')
        problem = Problem([x**2 - a], [x], [a])
        with pytest.raises(NoSolutionsError, match="No solutions found!"):
            get_steady_states(problem, {a: [1.0, 2.0]}, solver=NoRoots(), show_progress=False)

    def test_unknown_name(self, oscillator, fixed):
        with pytest.raises(ParameterError):
            get_steady_states(oscillator, {"Omega": [1.0]}, fixed, show_progress=False)

    def test_missing_parameter(self, oscillator):
        omega, gamma = symbols('omega gamma')
        with pytest.raises(ParameterError):
            get_steady_states(oscillator, {omega: [1.0]}, {gamma: 0.01}, show_progress=False)

    def test_hilbert_2d(self, oscillator):
        omega, F = symbols('omega F')
        with pytest.raises(ValueError, match="hilbert"):
            get_steady_states(
                oscillator, {omega: [1.0, 1.1], F: [0.1, 0.2]}, {},
                sorting="hilbert", solver=NoRoots()
            )

    def test_unknown_sorting(self, oscillator, fixed):
        omega = symbols('omega')
        with pytest.raises(ValueError):
            get_steady_states(oscillator, {omega: [1.0]}, fixed, sorting="fastest", solver=NoRoots())


class TestPadSolutions:
    """Tests for pad_solutions."""

    def test_pads_with_nan(self):
        padded = pad_solutions([[[1.0], [2.0]], [[3.0]]], 1)

        assert padded.shape == (2, 2, 1)
        assert padded[0, 1, 0] == 2.0
        assert padded[1, 0, 0] == 3.0
        assert np.isnan(padded[1, 1, 0])

    def test_idempotent(self):
        padded = pad_solutions([[[1.0, 0.0]], [], [[2.0, 1.0], [3.0, 2.0]]], 2)
        again = pad_solutions(padded, 2)

        assert np.array_equal(padded, again, equal_nan=True)

    def test_grid(self):
        cells = np.empty((2, 2), dtype=object)
        cells[0, 0] = [np.array([1.0])]
        cells[0, 1] = []
        cells[1, 0] = [np.array([1.0]), np.array([2.0]), np.array([3.0])]
        cells[1, 1] = [np.array([4.0])]
        padded = pad_solutions(cells, 1)

        assert padded.shape == (2, 2, 3, 1)
        assert np.isnan(padded[0, 1]).all()
        assert padded[1, 0, 2, 0] == 3.0

    def test_custom_padding(self):
        padded = pad_solutions([[[1.0]], []], 1, padding_value=0.0)
        assert padded[1, 0, 0] == 0.0


class TestSingleSolution:
    """Tests for get_single_solution."""

    @pytest.fixture
    def result(self, oscillator):
        omega, omega0, gamma, F = symbols('omega omega0 gamma F')
        swept = {omega: np.linspace(0.9, 1.1, 4), F: np.array([0.001, 0.002, 0.003])}
        return get_steady_states(oscillator, swept, {omega0: 1.0, gamma: 0.01}, show_progress=False)

    def test_contents(self, result):
        u, v, omega, omega0, gamma, F = symbols('u v omega omega0 gamma F')
        sol = get_single_solution(result, 0, (1, 2))

        assert set(sol) == {u, v, omega, omega0, gamma, F}
        assert sol[F] == pytest.approx(0.003)
        assert sol[gamma] == pytest.approx(0.01)
        expected = linear_response(sol[omega].real, 1.0, 0.01, 0.003)
        assert sol[u].real == pytest.approx(expected[0])

    def test_linear_index(self, result):
        assert get_single_solution(result, 0, 5) == get_single_solution(result, 0, (1, 2))

    def test_all_branches(self, result):
        sols = get_single_solution(result, None, (0, 0))
        assert isinstance(sols, list)
        assert len(sols) == result.n_branches
        assert get_single_solution(result, branch=None, index=(0, 0)) == sols

    def test_bad_index(self, result):
        with pytest.raises(IndexError):
            get_single_solution(result, 0, (4, 0))
        with pytest.raises(IndexError):
            get_single_solution(result, 0, 12)
        with pytest.raises(IndexError):
            get_single_solution(result, 0, (0, 0, 0))

    def test_bad_branch(self, result):
        with pytest.raises(IndexError):
            get_single_solution(result, 1, 0)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
