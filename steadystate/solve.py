"""
Steady-State Solver - Main API
Finds all steady states of a Problem over a grid of parameters, then
aligns, sorts, classifies and orders them into branches.
"""

from typing import Dict, Mapping, Optional, Union
import logging
import time

import numpy as np
from tqdm import tqdm

from .analysis import (
    sort_solutions, classify_solutions, classify_binaries, order_branches,
    is_physical, is_stable, is_hopf_unstable,
)
from .analysis.sorting import check_sorting
from .equations import SlowFlowEquations
from .exceptions import NoSolutionsError, ParameterError
from .homotopy import HomotopySolver, PolynomialSystem
from .jacobian import compile_jacobian
from .parameters import filter_duplicate_parameters, prepare_input_params
from .problem import Problem
from .registry import SymbolRegistry
from .result import Result

logger = logging.getLogger(__name__)

WARMUP_PERTURBATION = 1e-2


def get_steady_states(
    problem: Union[Problem, SlowFlowEquations],
    swept_parameters: Mapping,
    fixed_parameters: Optional[Mapping] = None,
    random_warmup: bool = False,
    threading: bool = False,
    sorting: str = "nearest",
    solver=None,
    show_progress: bool = True,
    seed: Optional[int] = None
) -> Result:
    """
    Solve `problem` over the grid spanned by `swept_parameters`, keeping
    `fixed_parameters` constant. Swept parameters take precedence over
    fixed ones.

    Args:
        problem: Problem (or SlowFlowEquations, converted with an explicit Jacobian)
        swept_parameters: {parameter: 1D values}; symbols or names as keys
        fixed_parameters: {parameter: value}; symbols or names as keys
        random_warmup: Solve one randomly perturbed point with a total-degree
            homotopy, then track its roots to every grid point. Much faster,
            but roots are silently missed if the warm-up point is degenerate.
            Otherwise every point is solved separately by total degree.
        threading: Let the solver track batched continuations in parallel
        sorting: "nearest", "hilbert" (1D only) or "none"
        solver: Root-finding oracle; defaults to HomotopySolver
        show_progress: Show a progress bar for point-by-point solving
        seed: Random seed for the warm-up perturbation and the solver

    Returns:
        Result with classes "physical", "stable", "Hopf" and "binary_labels".
        "Hopf" marks solutions unstable through exactly one complex-conjugate
        eigenvalue pair (is_hopf_unstable); use classify_solutions with
        is_neutrally_stable to label limit cycles by their zero eigenvalue.

    Example:
        >>> swept = {omega: np.linspace(0.8, 1.2, 100)}
        >>> fixed = {gamma: 0.01, F: 0.5}
        >>> result = get_steady_states(problem, swept, fixed)
    """
    if isinstance(problem, SlowFlowEquations):
        problem = Problem.from_equations(problem)

    start_time = time.time()
    check_sorting(sorting, len(swept_parameters))

    with SymbolRegistry.for_problem(problem) as registry:
        swept = _resolve(registry, swept_parameters)
        fixed = filter_duplicate_parameters(swept, _resolve(registry, fixed_parameters or {}))

        # one parameter vector per grid point, an N-D sweep gives an N-D array
        input_array = prepare_input_params(problem, swept, fixed)
        logger.info(
            f"Solving for {int(np.prod(input_array.shape[:-1]))} parameter points "
            f"(random_warmup={random_warmup}, threading={threading})"
        )

        if solver is None:
            solver = HomotopySolver(threading=threading, seed=seed)
        swept_mask = np.array([par in swept for par in problem.parameters])

        raw = _get_raw_solution(
            problem, input_array,
            swept_mask=swept_mask,
            random_warmup=random_warmup,
            solver=solver,
            show_progress=show_progress,
            rng=np.random.default_rng(seed)
        )
        if all(len(cell) == 0 for cell in raw.flat):
            raise NoSolutionsError("No solutions found!")

        solutions = pad_solutions(raw, len(problem.variables))
        compiled_J = compile_jacobian(problem, swept, fixed)

        result = Result(solutions, swept, fixed, problem, {}, compiled_J)

        sort_solutions(result, sorting=sorting)
        classify_solutions(result, is_physical, "physical")
        classify_solutions(result, is_stable, "stable")
        classify_solutions(result, is_hopf_unstable, "Hopf")
        # relevant branches first
        order_branches(result, ["physical", "stable", "Hopf"])
        classify_binaries(result)

    elapsed = time.time() - start_time
    logger.info(f"Steady states found in {elapsed:.2f}s: {result.n_branches} branches")
    return result


def _resolve(registry: SymbolRegistry, mapping: Mapping) -> Dict:
    resolved = {}
    for key, value in dict(mapping).items():
        try:
            sym = registry.resolve(key)
        except KeyError:
            raise ParameterError(f"Parameter '{key}' does not appear in the problem", key) from None
        if sym in resolved:
            raise ParameterError(f"Parameter {sym} is given more than once", sym)
        resolved[sym] = value
    return resolved


def _get_raw_solution(
    problem: Problem,
    parameter_values: np.ndarray,
    swept_mask: np.ndarray,
    random_warmup: bool,
    solver,
    show_progress: bool = True,
    rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    """
    Root lists at every grid point.

    Returns an object array shaped like the grid, each cell a list of
    complex root vectors.
    """
    grid_shape = parameter_values.shape[:-1]
    params_1D = parameter_values.reshape(-1, parameter_values.shape[-1])
    system = PolynomialSystem(problem.equations, problem.variables, problem.parameters)
    rng = rng if rng is not None else np.random.default_rng()

    start_time = time.time()
    if random_warmup:
        # complex perturbation of the swept parameters only
        noise = (rng.standard_normal(len(swept_mask)) + 1j * rng.standard_normal(len(swept_mask))) / np.sqrt(2)
        complex_pert = WARMUP_PERTURBATION * swept_mask * noise
        warmup_parameters = params_1D[len(params_1D) // 2] * (1 + complex_pert)

        warmup_solutions = solver.solve_total_degree(system, warmup_parameters)
        logger.info(f"Warm-up found {len(warmup_solutions)} paths")
        result_full = solver.solve_continuation(
            system, warmup_solutions, warmup_parameters, params_1D
        )
    else:
        result_full = []
        # solver state is not safe for concurrent use: do NOT parallelize
        for i, p in enumerate(tqdm(params_1D, desc="Solving via total degree homotopy",
                                   disable=not show_progress)):
            roots = solver.solve_total_degree(system, p)
            logger.debug(f"Point {i + 1}/{len(params_1D)}: {len(roots)} roots")
            result_full.append(roots)

    elapsed = time.time() - start_time
    logger.info(f"Root finding completed in {elapsed:.2f}s")

    raw = np.empty(len(params_1D), dtype=object)
    for i, roots in enumerate(result_full):
        raw[i] = [np.asarray(r, dtype=complex) for r in roots]
    return raw.reshape(grid_shape)


def pad_solutions(solutions, n_variables: int, padding_value: complex = np.nan) -> np.ndarray:
    """
    Align a grid of root lists into a complex array of shape
    (*grid_shape, max_roots, n_variables), appending `padding_value`
    vectors where a point has fewer roots. Existing roots keep their order.
    An already aligned complex array is returned unchanged.
    """
    if isinstance(solutions, np.ndarray) and solutions.dtype != object:
        return np.array(solutions, dtype=complex)

    if not isinstance(solutions, np.ndarray):
        cells = list(solutions)
        solutions = np.empty(len(cells), dtype=object)
        for i, cell in enumerate(cells):
            solutions[i] = list(cell)
    grid_shape = solutions.shape
    max_n = max(len(cell) for cell in solutions.flat)

    padded = np.full(grid_shape + (max_n, n_variables), padding_value, dtype=complex)
    for index in np.ndindex(*grid_shape):
        cell = solutions[index]
        for k, root in enumerate(cell):
            padded[index + (k,)] = root

    n_padded = sum(max_n - len(cell) for cell in solutions.flat)
    if n_padded:
        logger.debug(f"Padded {n_padded} missing roots to {max_n} branches")
    return padded


def _resolve_index(result: Result, index) -> tuple:
    shape = result.grid_shape
    idx = tuple(int(i) for i in np.atleast_1d(index))

    if len(idx) == len(shape):
        for i, n in zip(idx, shape):
            if not -n <= i < n:
                raise IndexError(f"Index {index} out of bounds for a solution of size {shape}")
        return tuple(i % n for i, n in zip(idx, shape))
    if len(idx) == 1:
        # linear index
        n = int(np.prod(shape))
        if not 0 <= idx[0] < n:
            raise IndexError(f"Linear index {idx[0]} out of bounds for {n} points")
        return tuple(int(i) for i in np.unravel_index(idx[0], shape))
    raise IndexError(f"Index {index} undefined for a solution of size {shape}")


def get_single_solution(result: Result, branch: Optional[int], index):
    """
    Variables, swept and fixed parameters of the solution on `branch` at
    grid position `index` (a linear index or one index per sweep axis).

    With `branch=None`, returns the list of dictionaries for all branches.

    Example:
        >>> get_single_solution(result, 0, (3, 1))
        >>> get_single_solution(result, branch=None, index=5)
    """
    if branch is None:
        return [get_single_solution(result, b, index) for b in range(result.n_branches)]
    if not 0 <= branch < result.n_branches:
        raise IndexError(f"Branch {branch} out of range for {result.n_branches} branches")

    return result.solution_dict(_resolve_index(result, index), branch)
