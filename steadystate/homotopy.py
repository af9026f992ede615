"""
Homotopy Continuation Solver
Numerical root finding for square polynomial systems by path tracking.

Two entry points make up the solver interface used by the steady-state
pipeline; any object providing them can be passed instead:

    solve_total_degree(system, parameters) -> list of root vectors
    solve_continuation(system, start_solutions, start_parameters,
                       target_parameters) -> list of root vectors
                                             (one list per target for 2D input)
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence
import itertools
import logging
import os
import time
import warnings

import numpy as np
import sympy as sp
from sympy import Symbol, Expr, lambdify
from scipy import linalg

from .exceptions import StructuralError

logger = logging.getLogger(__name__)


def default_workers() -> int:
    """Worker count from STEADYSTATE_NUM_THREADS, else the CPU count."""
    env = os.environ.get("STEADYSTATE_NUM_THREADS")
    if env:
        try:
            return max(1, int(env))
        except ValueError:
            logger.warning(f"Ignoring invalid STEADYSTATE_NUM_THREADS={env!r}")
    return os.cpu_count() or 1


@dataclass
class SolverSettings:
    """Tolerances and step control of the path tracker."""

    initial_step: float = 0.02
    max_step: float = 0.1
    min_step: float = 1e-9
    max_steps: int = 20000
    corrector_tol: float = 1e-9
    corrector_iterations: int = 3
    refine_tol: float = 1e-12
    refine_iterations: int = 12
    residual_tol: float = 1e-8
    max_norm: float = 1e8
    singular_cond: float = 1e10
    dedup_tol: float = 1e-7
    workers: int = field(default_factory=default_workers)


@dataclass
class PathResult:
    """Outcome of tracking a single path."""

    solution: np.ndarray
    status: str
    t: float
    steps: int

    @property
    def success(self) -> bool:
        return self.status == "success"


class PolynomialSystem:
    """
    Square polynomial system F(x; p) = 0 compiled for numerical evaluation.

    Coefficients may be arbitrary expressions of the parameters; the
    equations must be polynomial in the variables.
    """

    def __init__(
        self,
        equations: Sequence[Expr],
        variables: Sequence[Symbol],
        parameters: Sequence[Symbol] = ()
    ):
        self.equations = [sp.expand(sp.sympify(eq)) for eq in equations]
        self.variables = list(variables)
        self.parameters = list(parameters)
        self.n = len(self.variables)
        self.m = len(self.parameters)

        if len(self.equations) != self.n:
            raise StructuralError("Polynomial system must be square")

        self.degrees = [self._degree(eq) for eq in self.equations]

        args = self.variables + self.parameters
        F = sp.Matrix(self.equations)
        self._f = lambdify(args, F, modules=['numpy'])
        self._dfdx = lambdify(args, F.jacobian(self.variables), modules=['numpy'])
        self._dfdp = lambdify(args, F.jacobian(self.parameters), modules=['numpy']) if self.m else None

        logger.debug(f"PolynomialSystem with degrees {self.degrees}")

    def _degree(self, eq: Expr) -> int:
        try:
            deg = sp.Poly(eq, *self.variables).total_degree()
        except sp.PolynomialError as e:
            raise StructuralError(f"Equation {eq} is not polynomial in the variables") from e
        if deg < 1:
            raise StructuralError(f"Equation {eq} does not depend on any variable")
        return deg

    @property
    def total_degree(self) -> int:
        return int(np.prod(self.degrees))

    def _call(self, func, x, p, shape):
        out = np.asarray(func(*x, *p), dtype=complex)
        return out.reshape(shape)

    def residual(self, x, p) -> np.ndarray:
        return self._call(self._f, x, p, (self.n,))

    def jacobian_x(self, x, p) -> np.ndarray:
        return self._call(self._dfdx, x, p, (self.n, self.n))

    def jacobian_p(self, x, p) -> np.ndarray:
        if self._dfdp is None:
            return np.zeros((self.n, 0), dtype=complex)
        return self._call(self._dfdp, x, p, (self.n, self.m))


def _solve(A: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Dense solve with LinAlgWarning silenced."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", linalg.LinAlgWarning)
        return linalg.solve(A, b)


class Homotopy:
    """H(x, t) with its derivatives, tracked from t=0 to t=1."""

    def __init__(self, H: Callable, Hx: Callable, Ht: Callable):
        self.H = H
        self.Hx = Hx
        self.Ht = Ht

    @classmethod
    def total_degree(cls, system: PolynomialSystem, parameters, gamma: complex) -> "Homotopy":
        """(1 - t) * gamma * G(x) + t * F(x), with G_i = x_i^d_i - 1."""
        d = np.asarray(system.degrees)

        def G(x):
            return x ** d - 1

        def Gx(x):
            return np.diag(d * x ** (d - 1))

        def H(x, t):
            return (1 - t) * gamma * G(x) + t * system.residual(x, parameters)

        def Hx(x, t):
            return (1 - t) * gamma * Gx(x) + t * system.jacobian_x(x, parameters)

        def Ht(x, t):
            return system.residual(x, parameters) - gamma * G(x)

        return cls(H, Hx, Ht)

    @classmethod
    def parameter(cls, system: PolynomialSystem, start, target) -> "Homotopy":
        """F(x; (1 - t) * start + t * target)."""
        start = np.asarray(start, dtype=complex)
        target = np.asarray(target, dtype=complex)
        dp = target - start

        def p(t):
            return start + t * dp

        def H(x, t):
            return system.residual(x, p(t))

        def Hx(x, t):
            return system.jacobian_x(x, p(t))

        def Ht(x, t):
            return system.jacobian_p(x, p(t)) @ dp

        return cls(H, Hx, Ht)

    @staticmethod
    def start_solutions(system: PolynomialSystem) -> List[np.ndarray]:
        """All combinations of the d_i-th roots of unity."""
        roots = [np.exp(2j * np.pi * np.arange(d) / d) for d in system.degrees]
        return [np.array(c, dtype=complex) for c in itertools.product(*roots)]


class HomotopySolver:
    """
    Predictor-corrector path tracker.

    Paths are followed with an RK4 predictor on dx/dt = -Hx^-1 Ht and a
    Newton corrector under adaptive step control. Paths that diverge,
    stall or end on singular roots are discarded; only finite
    non-singular roots are returned.

    Args:
        settings: Tracker tolerances (SolverSettings)
        threading: Track batched continuation targets on a thread pool
        seed: Seed for the random gamma of total-degree homotopies
    """

    def __init__(
        self,
        settings: Optional[SolverSettings] = None,
        threading: bool = False,
        seed: Optional[int] = None
    ):
        self.settings = settings or SolverSettings()
        self.threading = threading
        self.rng = np.random.default_rng(seed)

    # -- interface -------------------------------------------------------

    def solve_total_degree(self, system: PolynomialSystem, parameters) -> List[np.ndarray]:
        """Solve from scratch, tracking all total-degree paths."""
        parameters = np.asarray(parameters, dtype=complex)
        gamma = np.exp(2j * np.pi * self.rng.random())
        homotopy = Homotopy.total_degree(system, parameters, gamma)

        starts = Homotopy.start_solutions(system)
        paths = [self.track(homotopy, x0) for x0 in starts]
        roots = self._finalize(system, parameters, paths)

        logger.debug(f"Total degree: {len(starts)} paths, {len(roots)} roots")
        return roots

    def solve_continuation(
        self,
        system: PolynomialSystem,
        start_solutions: Sequence[np.ndarray],
        start_parameters,
        target_parameters
    ):
        """
        Track `start_solutions` from `start_parameters` to each target.

        A 1D `target_parameters` gives a list of roots; a 2D array gives
        one list per row, in order.
        """
        targets = np.asarray(target_parameters, dtype=complex)
        if targets.ndim == 1:
            return self._continue_to(system, start_solutions, start_parameters, targets)

        start_time = time.time()

        def run(target):
            return self._continue_to(system, start_solutions, start_parameters, target)

        if self.threading and len(targets) > 1:
            with ThreadPoolExecutor(max_workers=self.settings.workers) as pool:
                results = list(pool.map(run, targets))
        else:
            results = [run(target) for target in targets]

        elapsed = time.time() - start_time
        logger.info(
            f"Tracked {len(start_solutions)} paths to {len(targets)} parameter points "
            f"in {elapsed:.2f}s"
        )
        return results

    def _continue_to(self, system, start_solutions, start_parameters, target):
        homotopy = Homotopy.parameter(system, start_parameters, target)
        paths = [self.track(homotopy, np.asarray(x0, dtype=complex)) for x0 in start_solutions]
        return self._finalize(system, target, paths)

    # -- tracking --------------------------------------------------------

    def _tangent(self, homotopy: Homotopy, x, t) -> np.ndarray:
        return -_solve(homotopy.Hx(x, t), homotopy.Ht(x, t))

    def _predict(self, homotopy: Homotopy, x, t, h) -> np.ndarray:
        k1 = self._tangent(homotopy, x, t)
        k2 = self._tangent(homotopy, x + h / 2 * k1, t + h / 2)
        k3 = self._tangent(homotopy, x + h / 2 * k2, t + h / 2)
        k4 = self._tangent(homotopy, x + h * k3, t + h)
        return x + h / 6 * (k1 + 2 * k2 + 2 * k3 + k4)

    def _correct(self, homotopy: Homotopy, x, t) -> Optional[np.ndarray]:
        s = self.settings
        previous = np.inf
        for _ in range(s.corrector_iterations):
            dx = _solve(homotopy.Hx(x, t), homotopy.H(x, t))
            x = x - dx
            size = np.linalg.norm(dx)
            if size <= s.corrector_tol * (1 + np.linalg.norm(x)):
                return x
            if size > previous:
                return None
            previous = size
        return None

    def track(self, homotopy: Homotopy, x0: np.ndarray) -> PathResult:
        """Follow one path from t=0 to t=1."""
        s = self.settings
        x = np.array(x0, dtype=complex)
        t = 0.0
        h = s.initial_step
        successes = 0

        for step in range(s.max_steps):
            if t >= 1.0:
                return PathResult(x, "success", t, step)
            if not np.all(np.isfinite(x)) or np.linalg.norm(x) > s.max_norm:
                return PathResult(x, "at_infinity", t, step)

            h = min(h, 1.0 - t)
            try:
                predicted = self._predict(homotopy, x, t, h)
                corrected = self._correct(homotopy, predicted, t + h)
            except (linalg.LinAlgError, ValueError, FloatingPointError):
                corrected = None

            if corrected is not None and np.all(np.isfinite(corrected)):
                x = corrected
                t = 1.0 if t + h >= 1.0 - 1e-14 else t + h
                successes += 1
                if successes >= 3:
                    h = min(2 * h, s.max_step)
                    successes = 0
            else:
                h /= 2
                successes = 0
                if h < s.min_step:
                    return PathResult(x, "failed", t, step)

        return PathResult(x, "failed", t, s.max_steps)

    # -- endpoints -------------------------------------------------------

    def _refine(self, system: PolynomialSystem, x, p) -> np.ndarray:
        s = self.settings
        for _ in range(s.refine_iterations):
            try:
                dx = _solve(system.jacobian_x(x, p), system.residual(x, p))
            except (linalg.LinAlgError, ValueError):
                break
            x = x - dx
            if np.linalg.norm(dx) <= s.refine_tol * (1 + np.linalg.norm(x)):
                break
        return x

    def _accept(self, system: PolynomialSystem, x, p) -> bool:
        s = self.settings
        if not np.all(np.isfinite(x)) or np.linalg.norm(x) > s.max_norm:
            return False
        residual = np.linalg.norm(system.residual(x, p))
        if residual > s.residual_tol * (1 + np.linalg.norm(x)):
            return False
        return np.linalg.cond(system.jacobian_x(x, p)) < s.singular_cond

    def _finalize(self, system: PolynomialSystem, p, paths: List[PathResult]) -> List[np.ndarray]:
        roots: List[np.ndarray] = []
        for path in paths:
            if not path.success:
                continue
            x = self._refine(system, path.solution, p)
            if not self._accept(system, x, p):
                continue
            duplicate = any(
                np.linalg.norm(x - r) <= self.settings.dedup_tol * (1 + np.linalg.norm(r))
                for r in roots
            )
            if not duplicate:
                roots.append(x)
        return roots
