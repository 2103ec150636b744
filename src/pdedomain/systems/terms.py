"""
Boundary conditions, source terms and reaction terms of an equation.

Each term carries a validated payload whose shape was checked against the
equation when the term was added, so evaluation by the solver core cannot
produce a value of the wrong shape.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

import numpy as np

from pdedomain.function.analytic import AnalyticFunction
from pdedomain.mesh_location import MeshLocation
from pdedomain.utilities._api_tools import Freezable

from .options import ReactionTermOptions, SourceTermOptions


class BCType(str, Enum):
    DIRICHLET = "dirichlet"
    NEUMANN = "neumann"
    ROBIN = "robin"


class DefinitionMethod(str, Enum):
    VALUE = "value"
    ANALYTIC = "analytic"
    USER = "user"


class DefaultBC(str, Enum):
    """Condition applied on boundary faces that carry no explicit condition"""

    ZERO_VALUE = "zero_value"
    ZERO_FLUX = "zero_flux"


def _evaluate_payload(method, payload, time, position):
    if method == DefinitionMethod.VALUE:
        if isinstance(payload, np.ndarray):
            return payload.copy()
        return payload
    if method == DefinitionMethod.ANALYTIC:
        return payload.evaluate(time, position)
    return payload(time, position)


def _describe_payload(method, payload):
    if method == DefinitionMethod.VALUE:
        return payload.tolist() if isinstance(payload, np.ndarray) else payload
    if isinstance(payload, AnalyticFunction):
        return payload.describe_definition()
    return {"type": "callable", "name": getattr(payload, "__qualname__", repr(payload))}


@dataclass(frozen=True, eq=False)
class BoundaryCondition:
    """
    Condition on a boundary location.

    For Robin conditions the payload is the vector of coefficients
    ``(alpha, beta, g)`` of ``alpha * u + beta * du/dn = g``.
    """

    location: MeshLocation
    bc_type: BCType
    method: DefinitionMethod
    payload: Any
    derived: bool = False

    def evaluate(self, time, position):
        return _evaluate_payload(self.method, self.payload, time, position)

    __call__ = evaluate

    def describe(self):
        return {
            "location": self.location.name,
            "type": self.bc_type.value,
            "method": self.method.value,
            "payload": _describe_payload(self.method, self.payload),
        }


class SourceTerm(Freezable):
    """
    Right-hand side contribution on a location (default: all cells).

    ``user`` payloads are callables ``f(time, position)`` handed to the
    solver core as they are.
    """

    def __init__(self, label, location, method, payload):
        super().__init__()
        self.label = label
        self.location = location
        self.method = DefinitionMethod(method)
        self.payload = payload
        self._options = SourceTermOptions()

    @property
    def name(self):
        return self.label

    @property
    def options(self):
        return self._options

    @options.setter
    def options(self, value):
        self._check_mutable()
        self._options = value

    def set_option(self, key, value):
        self._check_mutable()
        self.options = self.options.updated(key, value, entity=self.label)
        self._increment()

    def evaluate(self, time, position):
        return _evaluate_payload(self.method, self.payload, time, position)

    __call__ = evaluate

    def describe(self):
        return {
            "label": self.label,
            "location": self.location.name,
            "method": self.method.value,
            "payload": _describe_payload(self.method, self.payload),
            "options": {
                "quadrature": self.options.quadrature.value,
                "post": self.options.post,
            },
        }

    def __repr__(self):
        return f"SourceTerm(label={self.label!r}, location={self.location.name!r}, method={self.method.value!r})"


class ReactionTerm(Freezable):
    """Zero-order term whose coefficient is an isotropic property"""

    def __init__(self, label, prop):
        super().__init__()
        self.label = label
        self.property = prop
        self._options = ReactionTermOptions()

    @property
    def name(self):
        return self.label

    @property
    def options(self):
        return self._options

    @options.setter
    def options(self, value):
        self._check_mutable()
        self._options = value

    def set_option(self, key, value):
        self._check_mutable()
        self.options = self.options.updated(key, value, entity=self.label)
        self._increment()

    def evaluate(self, time, position, **state):
        """Reaction coefficient (inverted when ``inv_pty`` is set)"""
        value = self.property.evaluate(time, position, **state)
        if self.options.inv_pty:
            return 1.0 / value
        return value

    __call__ = evaluate

    def describe(self):
        return {
            "label": self.label,
            "property": self.property.name,
            "options": {
                "hodge_algo": self.options.hodge_algo.value,
                "hodge_coef": self.options.hodge_coef,
                "lumping": self.options.lumping,
                "inv_pty": self.options.inv_pty,
            },
        }

    def __repr__(self):
        return f"ReactionTerm(label={self.label!r}, property={self.property.name!r})"
