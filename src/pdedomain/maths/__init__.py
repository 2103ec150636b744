"""
Mathematical utilities for pdedomain.

This module provides tensor shape handling and Cartesian vector calculus
on closed-form sympy expressions.

Submodules
----------
tensors
    Value parsing, shape checks, tensor expansion.
vector_calculus
    Gradient, Hessian, divergence and the anisotropic diffusion operator.
"""

from . import tensors
from . import vector_calculus
from .vector_calculus import (
    gradient,
    hessian,
    divergence,
    symmetric_contraction,
    anisotropic_diffusion,
    advective_derivative,
)
