"""
Basic Usage Examples for SteadyStateSolver v1.0

This file demonstrates the core functionality of the library.
"""

import sys
sys.path.insert(0, '..')

import numpy as np
from sympy import symbols, Function

from steadystate import (
    SlowFlowEquations, Problem,
    get_steady_states, get_single_solution, get_limit_cycles,
)


def duffing_equations():
    """
    Slow flow of the driven Duffing oscillator

        x'' + gamma*x' + omega0^2*x + alpha*x^3 = F*cos(omega*t)

    with the ansatz x = u*cos(omega*t) + v*sin(omega*t).
    """
    T = symbols('T')
    omega, omega0, alpha, gamma, F = symbols('omega omega0 alpha gamma F')
    u, v = Function('u')(T), Function('v')(T)

    A2 = u**2 + v**2
    eqs = [
        gamma*u.diff(T) + 2*omega*v.diff(T)
        + (omega0**2 - omega**2)*u + gamma*omega*v + 3*alpha*u*A2/4 - F,
        -2*omega*u.diff(T) + gamma*v.diff(T)
        + (omega0**2 - omega**2)*v - gamma*omega*u + 3*alpha*v*A2/4,
    ]
    return SlowFlowEquations(eqs, [u, v], time=T)


def example_1_duffing():
    """
    Example 1: Frequency sweep of the Duffing oscillator

    Near resonance three steady states coexist, two of them stable.
    """
    print("=" * 60)
    print("Example 1: Duffing Oscillator")
    print("=" * 60)

    eom = duffing_equations()
    omega, omega0, alpha, gamma, F = symbols('omega omega0 alpha gamma F')

    print("\nSlow-flow equations:")
    print(eom)

    swept = {omega: np.linspace(0.9, 1.2, 100)}
    fixed = {omega0: 1.0, alpha: 1.0, gamma: 0.01, F: 0.005}

    result = get_steady_states(eom, swept, fixed, seed=0)
    print()
    print(result)

    amplitude = result.transform("sqrt(u**2 + v**2)")
    print("\nAmplitudes at omega = 1.1:")
    idx = int(np.argmin(np.abs(swept[omega] - 1.1)))
    for branch in range(result.n_branches):
        stable = result.classes["stable"][idx, branch]
        print(f"  branch {branch}: |A| = {amplitude[idx, branch].real:8.5f}  stable={stable}")

    print("\nSingle solution (point 0, branch 0):")
    for key, value in get_single_solution(result, 0, 0).items():
        print(f"  {key} = {value.real:.6g}")

    return result


def example_2_warmup():
    """
    Example 2: Warm-up continuation

    One perturbed point is solved from scratch; its roots are then
    tracked to every grid point.
    """
    print("\n" + "=" * 60)
    print("Example 2: Random Warm-up")
    print("=" * 60)

    eom = duffing_equations()
    omega, omega0, alpha, gamma, F = symbols('omega omega0 alpha gamma F')
    problem = Problem.from_equations(eom, jacobian="implicit")

    result = get_steady_states(
        problem,
        {omega: np.linspace(0.9, 1.2, 60), F: np.linspace(0.001, 0.005, 5)},
        {omega0: 1.0, alpha: 1.0, gamma: 0.01},
        random_warmup=True,
        threading=True,
        seed=1
    )
    print(result)

    labels = np.unique(result.classes["binary_labels"])
    print(f"\nDistinct stability regions: {len(labels)}")
    return result


def example_3_limit_cycles():
    """
    Example 3: Limit cycles of the Hopf normal form

        u' = mu*u - omega_lc*v - u*(u^2 + v^2)
        v' = mu*v + omega_lc*u - v*(u^2 + v^2)
    """
    print("\n" + "=" * 60)
    print("Example 3: Limit Cycles")
    print("=" * 60)

    T, mu, omega_lc = symbols('T mu omega_lc')
    u, v = Function('u')(T), Function('v')(T)
    eqs = [
        u.diff(T) - (mu*u - omega_lc*v - u*(u**2 + v**2)),
        v.diff(T) - (mu*v + omega_lc*u - v*(u**2 + v**2)),
    ]
    eom = SlowFlowEquations(eqs, [u, v], time=T, harmonics={u: omega_lc, v: omega_lc})

    result = get_limit_cycles(eom, {mu: np.linspace(0.1, 1.0, 10)}, {}, omega_lc, seed=2)
    print(result)
    return result


if __name__ == "__main__":
    example_1_duffing()
    example_2_warmup()
    example_3_limit_cycles()
