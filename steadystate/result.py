"""
Steady-State Result
Aligned, sorted and classified solutions over a parameter grid.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union
import logging

import numpy as np
import sympy as sp
from sympy import Symbol, Expr, lambdify

from .parameters import prepare_input_params

logger = logging.getLogger(__name__)


class Result:
    """
    Steady states of a Problem over a grid of swept parameters.

    Attributes:
        solutions: Complex array (*grid_shape, n_branches, n_variables);
            missing roots are NaN
        swept_parameters: {symbol: axis values}, defines the grid
        fixed_parameters: {symbol: value}, constant over the grid
        problem: The solved Problem
        classes: {name: array (*grid_shape, n_branches)}
        jacobian: Compiled Jacobian evaluator
        undetermined: {name: bool array} marking labels that could not be
            computed (degenerate linearization)
    """

    def __init__(
        self,
        solutions: np.ndarray,
        swept_parameters: Mapping,
        fixed_parameters: Mapping,
        problem,
        classes: Optional[Dict[str, np.ndarray]] = None,
        jacobian: Optional[Callable] = None
    ):
        self.solutions = np.asarray(solutions, dtype=complex)
        self.swept_parameters = {k: np.asarray(v) for k, v in swept_parameters.items()}
        self.fixed_parameters = dict(fixed_parameters)
        self.problem = problem
        self.classes: Dict[str, np.ndarray] = dict(classes or {})
        self.jacobian = jacobian
        self.undetermined: Dict[str, np.ndarray] = {}

        expected = len(self.swept_parameters) + 2
        if self.solutions.ndim != expected:
            raise ValueError(
                f"Solutions of shape {self.solutions.shape} do not match "
                f"{len(self.swept_parameters)} swept parameters"
            )

    @property
    def grid_shape(self) -> Tuple[int, ...]:
        return self.solutions.shape[:-2]

    @property
    def n_points(self) -> int:
        return int(np.prod(self.grid_shape))

    @property
    def n_branches(self) -> int:
        return self.solutions.shape[-2]

    @property
    def n_variables(self) -> int:
        return self.solutions.shape[-1]

    def parameter_grid(self) -> np.ndarray:
        """Parameter vectors (*grid_shape, n_parameters) in problem order."""
        return prepare_input_params(self.problem, self.swept_parameters, self.fixed_parameters)

    def swept_values(self, index: Tuple[int, ...]) -> Dict[Symbol, Any]:
        return {
            par: values[index[i]]
            for i, (par, values) in enumerate(self.swept_parameters.items())
        }

    def solution_dict(self, index: Tuple[int, ...], branch: int) -> Dict[Symbol, complex]:
        """Variables, swept and fixed parameters at one (point, branch)."""
        vector = self.solutions[tuple(index) + (branch,)]
        full = dict(zip(self.problem.variables, vector))
        full.update(self.swept_values(index))
        full.update(self.fixed_parameters)
        return {k: complex(v) for k, v in full.items()}

    def get_class(self, name: str) -> np.ndarray:
        try:
            return self.classes[name]
        except KeyError:
            raise KeyError(f"Class '{name}' not found; available: {list(self.classes)}") from None

    def transform(self, expr: Union[str, Expr]) -> np.ndarray:
        """
        Evaluate `expr` (of variables and parameters) on every solution.

        Returns a complex array of shape (*grid_shape, n_branches); NaN
        solutions give NaN.
        """
        symbols = list(self.problem.variables) + list(self.problem.parameters)
        if isinstance(expr, str):
            expr = sp.sympify(expr, locals={str(s): s for s in symbols})
        expr = sp.sympify(expr).subs(self.fixed_parameters)

        swept = list(self.swept_parameters)
        func = lambdify(list(self.problem.variables) + swept, expr, modules=['numpy'])

        var_values = [self.solutions[..., k] for k in range(self.n_variables)]
        grids = np.meshgrid(*self.swept_parameters.values(), indexing='ij')
        par_values = [g[..., np.newaxis] for g in grids]

        out = np.asarray(func(*var_values, *par_values), dtype=complex)
        out = np.broadcast_to(out, self.grid_shape + (self.n_branches,)).copy()
        out[np.isnan(self.solutions).any(axis=-1)] = np.nan
        return out

    def __repr__(self) -> str:
        return (f"Result(grid_shape={self.grid_shape}, n_branches={self.n_branches}, "
                f"classes={list(self.classes)})")

    def __str__(self) -> str:
        lines = [f"A steady state result for {self.n_points} parameter points", ""]
        lines.append(f"    Solution branches:   {self.n_branches}")
        for name, label in (("physical", "real"), ("stable", "stable")):
            if name in self.classes:
                count = int(np.sum(self.classes[name].reshape(-1, self.n_branches).any(axis=0)))
                lines.append(f"       of which {label}:{' ' * (8 - len(label))}{count}")
        lines.append("")
        lines.append(f"    Classes: {', '.join(self.classes)}")
        return "\n".join(lines)
