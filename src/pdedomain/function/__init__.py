"""
Closed-form evaluators.

This module provides the evaluation contract used by boundary conditions,
source terms, property definitions and advection fields.

Key Classes
-----------
AnalyticFunction
    Pure function of ``(time, position)`` returning a scalar, a 3-vector or
    a 3x3 tensor.
ManufacturedSolution
    Derives source terms and boundary data from an exact solution.

Key Functions
-------------
analytic
    Build (or pass through) an `AnalyticFunction`.
evaluate_pure_sympy
    Vectorised evaluation of a sympy expression at many points.
"""

from pdedomain.coordinates import x, y, z, t

from .analytic import AnalyticFunction, analytic
from .manufactured import ManufacturedSolution
from .pure_sympy_evaluator import evaluate_pure_sympy, clear_lambdify_cache
