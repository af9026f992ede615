"""
Branch Ordering
Grid-wide branch permutations putting branches of preferred classes first.
"""

from typing import List, Sequence, Union
import logging

import numpy as np

from .classification import classify_branch

logger = logging.getLogger(__name__)


def reorder_array(array: np.ndarray, order: Sequence[int]) -> np.ndarray:
    """Apply the branch permutation `order` at every grid point."""
    return np.asarray(array)[..., list(order)]


def reorder_solutions(result, order: Sequence[int]) -> None:
    """
    Permute branches of `result` by `order`: the solutions, every class
    and every undetermined mask are reordered together.
    """
    order = [int(i) for i in order]
    if sorted(order) != list(range(result.n_branches)):
        raise ValueError(f"{order} is not a permutation of {result.n_branches} branches")

    result.solutions = result.solutions[..., order, :]
    for key in list(result.classes):
        result.classes[key] = reorder_array(result.classes[key], order)
    for key in list(result.undetermined):
        result.undetermined[key] = reorder_array(result.undetermined[key], order)


def _order_by_class(result, name: str) -> List[int]:
    positive = classify_branch(result, name)
    indices = [i for i in range(result.n_branches) if positive[i]]
    rest = [i for i in range(result.n_branches) if not positive[i]]
    return indices + rest


def order_branches(result, classes: Union[str, Sequence[str]]) -> List[int]:
    """
    Put branches positive in `classes` first; the classes are given in
    descending precedence. Returns the overall permutation applied.
    """
    if isinstance(classes, str):
        classes = [classes]

    total = list(range(result.n_branches))
    for name in reversed(list(classes)):
        order = _order_by_class(result, name)
        reorder_solutions(result, order)
        total = [total[i] for i in order]

    logger.debug(f"Branch order by {list(classes)}: {total}")
    return total
