"""
Parameter Grid
Turns swept and fixed parameter mappings into an array of
parameter vectors ordered like Problem.parameters.
"""

from typing import Dict, List, Mapping
import itertools
import logging

import numpy as np

from .exceptions import ParameterError

logger = logging.getLogger(__name__)


def filter_duplicate_parameters(swept: Mapping, fixed: Mapping) -> Dict:
    """Remove occurrences of swept parameters from `fixed`; sweeping takes precedence."""
    new_params = dict(fixed)
    for par in swept:
        if par in new_params:
            logger.debug(f"Parameter {par} is swept, ignoring its fixed value")
            del new_params[par]
    return new_params


def parameter_permutation(problem_parameters, keys: List) -> List[int]:
    """
    Position in `keys` of every problem parameter.

    Fails if a parameter is missing, appears more than once, or `keys`
    holds parameters that do not appear in the problem.
    """
    permutation = []
    for par in problem_parameters:
        positions = [i for i, key in enumerate(keys) if key == par]
        if not positions:
            raise ParameterError(f"Parameter {par} is missing from the input parameters", par)
        if len(positions) > 1:
            raise ParameterError(f"Parameter {par} is given more than once", par)
        permutation.append(positions[0])

    extra = [key for key in keys if key not in problem_parameters]
    if extra:
        raise ParameterError(
            f"Input parameter {extra[0]} does not appear in the equations", extra[0]
        )
    return permutation


def _as_number(value):
    value = complex(value)
    return value.real if value.imag == 0 else value


def sweep_axes(swept: Mapping) -> List[np.ndarray]:
    axes = []
    for par, values in swept.items():
        axis = np.asarray(values)
        if axis.dtype == object:
            axis = np.asarray([_as_number(v) for v in axis.ravel()]).reshape(axis.shape)
        if axis.ndim != 1 or axis.size == 0:
            raise ParameterError(f"Sweep over {par} must be a non-empty 1D sequence", par)
        axes.append(axis)
    return axes


def prepare_input_params(problem, swept: Mapping, fixed: Mapping) -> np.ndarray:
    """
    Array of shape (*grid_shape, n_parameters): one parameter vector per
    grid point, in the order of `problem.parameters`.
    """
    if not swept:
        raise ValueError("At least one parameter must be swept")

    fixed = filter_duplicate_parameters(swept, fixed)
    all_keys = list(swept) + list(fixed)
    permutation = parameter_permutation(problem.parameters, all_keys)

    axes = sweep_axes(swept)
    grid_shape = tuple(len(axis) for axis in axes)
    fixed_values = [_as_number(v) for v in fixed.values()]
    dtype = np.result_type(*axes, *[np.asarray(v) for v in fixed_values], float)

    # fixed values are constant across the grid
    points = [tuple(p) + tuple(fixed_values) for p in itertools.product(*axes)]
    table = np.array(points, dtype=dtype).reshape(*grid_shape, len(all_keys))

    return table[..., permutation]
