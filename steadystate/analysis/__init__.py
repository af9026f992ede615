"""
Post-processing of steady-state results: branch sorting, classification
and branch ordering.
"""

from .sorting import sort_solutions, SORTING_METHODS
from .classification import (
    classify_solutions, classify_binaries, classify_branch,
    is_physical, is_stable, is_hopf_unstable, is_neutrally_stable,
)
from .ordering import order_branches, reorder_solutions

__all__ = [
    "sort_solutions",
    "SORTING_METHODS",
    "classify_solutions",
    "classify_binaries",
    "classify_branch",
    "is_physical",
    "is_stable",
    "is_hopf_unstable",
    "is_neutrally_stable",
    "order_branches",
    "reorder_solutions",
]
