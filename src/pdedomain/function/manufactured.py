r"""
Manufactured solutions for verification cases.

Given an assumed exact solution :math:`u(x, y, z, t)`, the source term that
makes it exact for the convection-diffusion-reaction equation

.. math::

    c \frac{\partial u}{\partial t} - \nabla \cdot (K \nabla u)
    + \boldsymbol{\beta} \cdot \nabla u + r u = f

is derived here by closed-form differentiation. The diffusion part is
contracted against the symmetric tensor :math:`K` as

.. math::

    -\left( \sum_i K_{ii} \frac{\partial^2 u}{\partial x_i^2}
    + 2 \sum_{i<j} K_{ij} \frac{\partial^2 u}{\partial x_i \partial x_j} \right)

plus the first-derivative terms of :math:`K` when it varies in space.

Example
-------
>>> from pdedomain.coordinates import x, y, z
>>> u = 1 + sympy.sin(sympy.pi * x) * sympy.sin(sympy.pi * (y + 0.5)) * sympy.sin(sympy.pi * (z + sympy.Rational(1, 3)))
>>> ms = ManufacturedSolution(u, diffusivity=[[1, 0.5, 0], [0.5, 1, 0.5], [0, 0.5, 1]],
...                           advection=(y - 0.5, 0.5 - x, z), reaction=1)
>>> f = ms.source_term()
>>> f(0.0, (0.0, 0.0, 0.0))   # 1 - pi*sqrt(3)/4
-0.36034952317566...
"""

import logging

import numpy as np
import sympy

from pdedomain._var_types import ValueShape
from pdedomain.coordinates import X, canonicalise, parse_expression, t
from pdedomain.errors import InvalidOptionError, ShapeMismatchError
from pdedomain.maths import vector_calculus
from pdedomain.maths.tensors import expand_to_tensor_sym, is_symmetric, symbolic_shape

from .analytic import AnalyticFunction

logger = logging.getLogger(__name__)


def _to_sym(value):
    if isinstance(value, str):
        return parse_expression(value)
    if isinstance(value, np.ndarray):
        return sympy.Matrix(value.tolist())
    if isinstance(value, (list, tuple)):
        return sympy.Matrix([_to_sym(v) if not isinstance(v, (list, tuple)) else [_to_sym(c) for c in v] for v in value])
    return canonicalise(sympy.sympify(value))


def _symbolic_definition(entity, role):
    """Extract the symbolic value of a Property or AdvectionField"""

    definition = getattr(entity, "definition", None)
    if definition is None:
        raise InvalidOptionError(
            f"{role} '{entity.name}' has no definition", entity=entity.name
        )

    value = definition.symbolic()
    if value is None:
        raise InvalidOptionError(
            f"{role} '{entity.name}' is not defined by a constant or closed-form "
            "expression of x, y, z, t; cannot derive a source term from it",
            entity=entity.name,
        )
    return value


class ManufacturedSolution:
    r"""
    Derive consistent source terms and boundary values from an exact solution.

    Parameters
    ----------
    exact : sympy expression or str
        Scalar exact solution in ``x, y, z`` (and optionally ``t``).
    diffusivity : number, sequence, Matrix or Property, optional
        One value (isotropic), three values (orthotropic) or a symmetric
        3x3 tensor. Entries may depend on ``x, y, z``.
    advection : sequence, Matrix or AdvectionField, optional
        Advection vector :math:`\boldsymbol{\beta}`.
    reaction : number, expression or Property, optional
        Zero-order coefficient :math:`r`.
    time_coefficient : number, expression or Property, optional
        Coefficient :math:`c` of the time derivative.
    """

    def __init__(
        self,
        exact,
        diffusivity=None,
        advection=None,
        reaction=0,
        time_coefficient=None,
    ):
        self.u = canonicalise(_to_sym(exact))
        if symbolic_shape(self.u) != ValueShape.SCALAR or isinstance(self.u, sympy.MatrixBase):
            raise ShapeMismatchError("The exact solution must be a scalar expression", value=exact)

        self.K = self._diffusion_tensor(diffusivity)
        self.beta = self._advection_vector(advection)
        self.reaction = self._scalar_coefficient(reaction, "Reaction")
        self.time_coefficient = self._scalar_coefficient(time_coefficient, "Time")

    def _diffusion_tensor(self, diffusivity):
        if diffusivity is None:
            return sympy.zeros(3, 3)

        if hasattr(diffusivity, "kind"):
            value = _symbolic_definition(diffusivity, "Property")
            return canonicalise(expand_to_tensor_sym(value, diffusivity.kind.shape))

        value = _to_sym(diffusivity)
        shape = symbolic_shape(value)
        if shape is None:
            raise ShapeMismatchError(
                "Diffusivity must be 1, 3 or 3x3 values", value=diffusivity
            )

        K = canonicalise(expand_to_tensor_sym(value, shape))
        if not is_symmetric(K):
            raise ShapeMismatchError("Diffusivity tensor must be symmetric", value=diffusivity)
        return K

    def _advection_vector(self, advection):
        if advection is None:
            return sympy.zeros(3, 1)

        if hasattr(advection, "definition") and not hasattr(advection, "kind"):
            value = _symbolic_definition(advection, "Advection field")
        else:
            value = _to_sym(advection)

        if symbolic_shape(value) != ValueShape.VECTOR:
            raise ShapeMismatchError("Advection field must have three components", value=advection)

        return canonicalise(sympy.Matrix(list(value)))

    def _scalar_coefficient(self, coefficient, role):
        if coefficient is None:
            return sympy.Integer(0)

        if hasattr(coefficient, "kind"):
            if coefficient.kind.shape != ValueShape.SCALAR:
                raise ShapeMismatchError(
                    f"{role} property '{coefficient.name}' must be isotropic",
                    entity=coefficient.name,
                )
            value = _symbolic_definition(coefficient, "Property")
        else:
            value = _to_sym(coefficient)

        if isinstance(value, sympy.MatrixBase):
            value = value[0]
        return canonicalise(value)

    def gradient(self):
        r"""Closed-form :math:`\nabla u` as a (3, 1) Matrix"""
        return vector_calculus.gradient(self.u, X)

    def hessian(self):
        r"""Closed-form second derivatives of :math:`u` (symmetric 3x3 Matrix)"""
        return vector_calculus.hessian(self.u, X)

    def diffusion_term(self):
        return vector_calculus.anisotropic_diffusion(self.u, self.K, X)

    def advection_term(self):
        return vector_calculus.advective_derivative(self.u, self.beta, X)

    def reaction_term(self):
        return self.reaction * self.u

    def time_term(self):
        return self.time_coefficient * sympy.diff(self.u, t)

    def source_expression(self):
        """The full source term :math:`f` as a sympy expression"""
        return (
            self.time_term()
            + self.diffusion_term()
            + self.advection_term()
            + self.reaction_term()
        )

    def source_term(self, name="manufactured_source"):
        """Source term as a scalar `AnalyticFunction`"""
        f = self.source_expression()
        logger.debug("Manufactured source term: %s", f)
        return AnalyticFunction(f, shape=ValueShape.SCALAR, name=name)

    def boundary_value(self, name="manufactured_solution"):
        """Exact solution as a scalar `AnalyticFunction` (for Dirichlet data)"""
        return AnalyticFunction(self.u, shape=ValueShape.SCALAR, name=name)

    def flux(self, name="manufactured_flux"):
        r"""Diffusive flux :math:`-K \nabla u` as a vector `AnalyticFunction`"""
        return AnalyticFunction(-self.K * self.gradient(), shape=ValueShape.VECTOR, name=name)
