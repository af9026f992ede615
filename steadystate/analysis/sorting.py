"""
Branch Sorting
Reorders the roots at every grid point so that branch index k follows one
continuous solution across the grid.
"""

from typing import Tuple
import logging
import time

import numpy as np
from scipy.optimize import linear_sum_assignment

logger = logging.getLogger(__name__)

SORTING_METHODS = ("hilbert", "nearest", "none")

# relative cost of matching a root to a missing (NaN) branch
NAN_PENALTY = 1e3


def check_sorting(sorting: str, ndim: int) -> None:
    if sorting not in SORTING_METHODS:
        raise ValueError(f"Unknown sorting method {sorting!r}; use one of {SORTING_METHODS}")
    if sorting == "hilbert" and ndim != 1:
        raise ValueError(f"'hilbert' sorting is only available for 1D sweeps, got {ndim}D")


def distance_matrix(reference: np.ndarray, candidates: np.ndarray) -> np.ndarray:
    """
    Euclidean distances between reference branches (rows) and candidate
    branches (columns). Two missing branches are at distance 0; a missing
    and a present branch at a large finite distance.
    """
    d = np.linalg.norm(reference[:, np.newaxis, :] - candidates[np.newaxis, :, :], axis=-1)
    ref_nan = np.isnan(reference).any(axis=-1)
    cand_nan = np.isnan(candidates).any(axis=-1)

    finite = d[np.isfinite(d)]
    penalty = NAN_PENALTY * (1.0 + (finite.max() if finite.size else 0.0))

    d = np.where(np.isfinite(d), d, penalty)
    d[ref_nan[:, np.newaxis] & cand_nan[np.newaxis, :]] = 0.0
    return d


def match_branches(cost: np.ndarray) -> np.ndarray:
    """Permutation `order` such that candidates[order] best matches the reference."""
    rows, cols = linear_sum_assignment(cost)
    order = np.empty(cost.shape[0], dtype=int)
    order[rows] = cols
    return order


def _reference(sorted_solns: np.ndarray, index: Tuple[int, ...], axis: int, extrapolate: bool) -> np.ndarray:
    prev_idx = list(index)
    prev_idx[axis] -= 1
    previous = sorted_solns[tuple(prev_idx)]
    if not extrapolate or index[axis] < 2:
        return previous

    prev_idx[axis] -= 1
    before = sorted_solns[tuple(prev_idx)]
    predicted = 2 * previous - before
    # fall back where the branch did not exist two points ago
    return np.where(np.isnan(predicted), previous, predicted)


def sort_hilbert(solutions: np.ndarray) -> np.ndarray:
    """
    1D sort: every point is matched to its predecessor along the sweep.
    Returns the branch permutation per point, shape (n_points, n_branches).
    """
    n_points, n_branches = solutions.shape[:2]
    orders = np.tile(np.arange(n_branches), (n_points, 1))
    sorted_solns = solutions.copy()

    for i in range(1, n_points):
        cost = distance_matrix(sorted_solns[i - 1], solutions[i])
        orders[i] = match_branches(cost)
        sorted_solns[i] = solutions[i][orders[i]]
    return orders


def sort_nearest(solutions: np.ndarray) -> np.ndarray:
    """
    N-D sort: grid cells are visited in row-major order and each cell is
    matched against all its already sorted neighbours (one per axis),
    extrapolating linearly along each axis where possible.
    Returns the branch permutation per point, shape (*grid_shape, n_branches).
    """
    grid_shape = solutions.shape[:-2]
    n_branches = solutions.shape[-2]
    orders = np.empty(grid_shape + (n_branches,), dtype=int)
    sorted_solns = solutions.copy()

    for index in np.ndindex(*grid_shape):
        axes = [ax for ax in range(len(grid_shape)) if index[ax] > 0]
        if not axes:
            orders[index] = np.arange(n_branches)
            continue

        cost = np.zeros((n_branches, n_branches))
        for ax in axes:
            reference = _reference(sorted_solns, index, ax, extrapolate=True)
            cost += distance_matrix(reference, solutions[index])

        orders[index] = match_branches(cost)
        sorted_solns[index] = solutions[index][orders[index]]
    return orders


def apply_branch_permutation(array: np.ndarray, orders: np.ndarray) -> np.ndarray:
    """Permute the branch axis of `array` point-wise; `array` is (*grid, n_branches, ...)."""
    extra = array.ndim - orders.ndim
    idx = orders.reshape(orders.shape + (1,) * extra)
    return np.take_along_axis(array, idx, axis=orders.ndim - 1)


def sort_solutions(result, sorting: str = "nearest") -> None:
    """
    Sort the branches of `result` in place. Classification arrays already
    present are permuted together with the solutions.

    Args:
        result: Result to sort
        sorting: "nearest", "hilbert" (1D only) or "none"
    """
    check_sorting(sorting, len(result.grid_shape))
    if sorting == "none" or result.n_branches < 2:
        return

    start_time = time.time()
    if sorting == "hilbert":
        orders = sort_hilbert(result.solutions)
    else:
        orders = sort_nearest(result.solutions)

    result.solutions = apply_branch_permutation(result.solutions, orders)
    for name in list(result.classes):
        result.classes[name] = apply_branch_permutation(result.classes[name], orders)
    for name in list(result.undetermined):
        result.undetermined[name] = apply_branch_permutation(result.undetermined[name], orders)

    elapsed = time.time() - start_time
    logger.info(f"Sorted {result.n_branches} branches ({sorting}) in {elapsed:.2f}s")
