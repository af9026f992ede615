"""
SteadyStateSolver v1.0
Steady states of parameterized harmonic-balance equations: homotopy
root finding over parameter grids, branch sorting and stability analysis.
"""

import logging

from .equations import SlowFlowEquations
from .problem import Problem
from .jacobian import (
    ExplicitJacobian, ImplicitJacobian,
    get_jacobian, get_explicit_jacobian, get_implicit_jacobian, compile_jacobian,
)
from .registry import SymbolRegistry
from .homotopy import HomotopySolver, PolynomialSystem, SolverSettings
from .result import Result
from .solve import get_steady_states, get_single_solution, pad_solutions
from .limit_cycles import get_limit_cycles, hopf_problem, hopf_variables
from .analysis import (
    sort_solutions, classify_solutions, classify_binaries, order_branches,
    is_physical, is_stable, is_hopf_unstable, is_neutrally_stable,
)
from .exceptions import (
    SteadyStateError, StructuralError, ParameterError,
    DegenerateJacobianError, NoSolutionsError,
)

__version__ = "1.0.0"
__author__ = "SteadyStateSolver Team"

__all__ = [
    "SlowFlowEquations",
    "Problem",
    "ExplicitJacobian",
    "ImplicitJacobian",
    "get_jacobian",
    "get_explicit_jacobian",
    "get_implicit_jacobian",
    "compile_jacobian",
    "SymbolRegistry",
    "HomotopySolver",
    "PolynomialSystem",
    "SolverSettings",
    "Result",
    "get_steady_states",
    "get_single_solution",
    "pad_solutions",
    "get_limit_cycles",
    "hopf_problem",
    "hopf_variables",
    "sort_solutions",
    "classify_solutions",
    "classify_binaries",
    "order_branches",
    "is_physical",
    "is_stable",
    "is_hopf_unstable",
    "is_neutrally_stable",
    "SteadyStateError",
    "StructuralError",
    "ParameterError",
    "DegenerateJacobianError",
    "NoSolutionsError",
    "enable_debug_logging",
]


def enable_debug_logging(level: str = "DEBUG", log_file: str = None):
    """
    Enable debug logging for steady-state computations.

    Args:
        level: Logging level ('DEBUG', 'INFO', 'WARNING', 'ERROR')
        log_file: Optional file path to write logs (None = console only)

    Example:
        >>> import steadystate
        >>> steadystate.enable_debug_logging()  # Console output
        >>> steadystate.enable_debug_logging(log_file="steadystate.log")  # File output
    """
    log_level = getattr(logging, level.upper(), logging.DEBUG)

    logger = logging.getLogger("steadystate")
    logger.setLevel(log_level)

    if not logger.handlers:
        formatter = logging.Formatter(
            '%(asctime)s | %(name)s | %(levelname)s | %(message)s',
            datefmt='%H:%M:%S'
        )

        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    logger.info(f"Debug logging enabled (level={level})")
    return logger
