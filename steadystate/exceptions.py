"""
Error taxonomy for steady-state analysis.
"""


class SteadyStateError(Exception):
    """Base class for all errors raised by steadystate."""


class StructuralError(SteadyStateError, ValueError):
    """The equation system is malformed (non-square, wrong dimensions, not polynomial)."""


class ParameterError(SteadyStateError, ValueError):
    """A parameter required by the problem is missing or ambiguous."""

    def __init__(self, message: str, parameter=None):
        super().__init__(message)
        self.parameter = parameter


class DegenerateJacobianError(SteadyStateError, ArithmeticError):
    """The implicit Jacobian cannot be evaluated because J1 is singular."""


class NoSolutionsError(SteadyStateError, RuntimeError):
    """Not a single root was found anywhere in the parameter grid."""
