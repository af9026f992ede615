"""
Solution Classification
Boolean labels per (grid point, branch): physical validity, stability
from Jacobian eigenvalues, Hopf instability, and composite binary labels.
"""

from typing import Callable, Dict, List
import logging
import time

import numpy as np
from scipy import linalg

from ..exceptions import DegenerateJacobianError

logger = logging.getLogger(__name__)

IM_TOL = 1e-6


def _variable_values(solution: Dict, result) -> np.ndarray:
    return np.array([solution[v] for v in result.problem.variables], dtype=complex)


def _eigenvalues(solution: Dict, result) -> np.ndarray:
    return linalg.eigvals(result.jacobian(solution))


def is_physical(solution: Dict, result, im_tol: float = IM_TOL) -> bool:
    """All variables are finite and real up to `im_tol` (relative to their size)."""
    values = _variable_values(solution, result)
    if not np.all(np.isfinite(values)):
        return False
    return bool(np.all(np.abs(values.imag) <= im_tol * np.maximum(1.0, np.abs(values.real))))


def is_stable(solution: Dict, result, im_tol: float = IM_TOL, rel_tol: float = 1e-10) -> bool:
    """
    Physical, and every Jacobian eigenvalue has a negative real part.

    The comparison is relative to the spectral radius, so a vanishing
    Jacobian counts as not stable.
    """
    if not is_physical(solution, result, im_tol=im_tol):
        return False
    eigs = _eigenvalues(solution, result)
    scale = np.max(np.abs(eigs))
    if scale == 0 or not np.isfinite(scale):
        return False
    return bool(np.max(eigs.real) / scale < rel_tol)


def is_hopf_unstable(solution: Dict, result, im_tol: float = IM_TOL, rel_tol: float = 1e-10) -> bool:
    """
    Unstable through exactly one complex-conjugate pair of eigenvalues,
    i.e. the branch lies beyond a Hopf bifurcation.
    """
    if not is_physical(solution, result, im_tol=im_tol):
        return False
    eigs = _eigenvalues(solution, result)
    scale = np.max(np.abs(eigs))
    if scale == 0 or not np.isfinite(scale):
        return False

    unstable = eigs[eigs.real > rel_tol * scale]
    if len(unstable) != 2:
        return False
    a, b = unstable
    is_pair = abs(a - np.conj(b)) <= im_tol * scale
    return bool(is_pair and abs(a.imag) > im_tol * scale)


def is_neutrally_stable(
    solution: Dict,
    result,
    zero_modes: int = 1,
    im_tol: float = IM_TOL,
    rel_tol: float = 1e-8
) -> bool:
    """
    Exactly `zero_modes` eigenvalues vanish and all others have negative
    real parts. Distinguishes a limit-cycle branch, whose free phase gives
    a zero eigenvalue, from a genuinely unstable one.
    """
    if not is_physical(solution, result, im_tol=im_tol):
        return False
    eigs = _eigenvalues(solution, result)
    scale = np.max(np.abs(eigs))
    if scale == 0 or not np.isfinite(scale):
        return False

    zero = np.abs(eigs) <= rel_tol * scale
    if np.count_nonzero(zero) != zero_modes:
        return False
    return bool(np.all(eigs[~zero].real < -rel_tol * scale))


def classify_solutions(result, predicate: Callable, name: str, **kwargs) -> np.ndarray:
    """
    Evaluate `predicate(solution, result, **kwargs)` on every (point, branch)
    and store the boolean array in `result.classes[name]`.

    Missing (NaN) branches are always False. A degenerate linearization
    leaves the label False and marks it in `result.undetermined[name]`.
    """
    start_time = time.time()
    shape = result.grid_shape + (result.n_branches,)
    labels = np.zeros(shape, dtype=bool)
    undetermined = np.zeros(shape, dtype=bool)
    missing = np.isnan(result.solutions).any(axis=-1)

    for index in np.ndindex(*result.grid_shape):
        for branch in range(result.n_branches):
            if missing[index + (branch,)]:
                continue
            solution = result.solution_dict(index, branch)
            try:
                labels[index + (branch,)] = bool(predicate(solution, result, **kwargs))
            except DegenerateJacobianError as e:
                undetermined[index + (branch,)] = True
                logger.debug(f"{name}: point {index}, branch {branch} undetermined: {e}")

    result.classes[name] = labels
    result.undetermined[name] = undetermined

    n_undetermined = int(undetermined.sum())
    if n_undetermined:
        logger.warning(
            f"Class '{name}' could not be determined for {n_undetermined} solutions "
            f"(degenerate Jacobian)"
        )

    elapsed = time.time() - start_time
    logger.debug(f"Classified '{name}' in {elapsed:.2f}s: {int(labels.sum())} positive")
    return labels


def classify_branch(result, name: str) -> np.ndarray:
    """Per branch: True if the class holds at any grid point."""
    labels = result.get_class(name)
    return labels.reshape(-1, result.n_branches).any(axis=0)


def clean_bitstrings(result) -> np.ndarray:
    """Per (point, branch): physical and stable."""
    return result.get_class("stable") & result.get_class("physical")


def classify_binaries(result) -> np.ndarray:
    """
    Label every grid point by the set of branches that are stable there.

    Each distinct set gets a consecutive integer id, in order of first
    appearance. The id is stored for every branch of the point so the
    array has the same shape as the other classes.
    """
    bits = clean_bitstrings(result)
    flat = bits.reshape(-1, result.n_branches)
    keys = [sum(1 << k for k, bit in enumerate(row) if bit) for row in flat]

    ids: Dict[int, int] = {}
    for key in keys:
        ids.setdefault(key, len(ids))

    per_point = np.array([ids[k] for k in keys], dtype=int).reshape(result.grid_shape)
    labels = np.repeat(per_point[..., np.newaxis], result.n_branches, axis=-1)

    result.classes["binary_labels"] = labels
    logger.debug(f"Found {len(ids)} distinct stability regions")
    return labels
