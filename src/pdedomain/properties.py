"""
Material property registry.

A property is a named material coefficient attached to the diffusion,
time or reaction term of an equation. Its kind fixes the shape of every
value it can produce:

- ``isotropic``: one value
- ``orthotropic``: three values (the diagonal of the tensor)
- ``anisotropic``: a symmetric 3x3 tensor

Each property receives exactly one active definition: a constant value,
a closed-form analytic function of ``(t, x, y, z)``, or a law that also
depends on named state inputs (temperature, for example).

Example:
--------
>>> properties = PropertyRegistry()
>>> k = properties.add("conductivity", "anisotropic")
>>> k.def_by_value("1.0 0.5 0.0\\n0.5 1.0 0.5\\n0.0 0.5 1.0")
>>> properties.get("unity").evaluate(0.0, (0, 0, 0))
1.0
"""

import logging
import warnings
from dataclasses import dataclass
from enum import Enum
from typing import Any, Tuple

import numpy as np
import sympy

from pdedomain._var_types import ValueShape
from pdedomain.errors import (
    InvalidOptionError,
    SetupWarning,
    ShapeMismatchError,
    UnlinkedRoleError,
)
from pdedomain.function.analytic import AnalyticFunction, analytic
from pdedomain.maths.tensors import as_shape, expand_to_tensor, is_symmetric
from pdedomain.utilities._api_tools import setup_object
from pdedomain.utilities._registry import NamedRegistry

logger = logging.getLogger(__name__)


class PropertyKind(Enum):
    """Standard property kinds and the value shape they imply"""

    ISOTROPIC = "isotropic"
    ORTHOTROPIC = "orthotropic"
    ANISOTROPIC = "anisotropic"

    @property
    def shape(self) -> ValueShape:
        return {
            PropertyKind.ISOTROPIC: ValueShape.SCALAR,
            PropertyKind.ORTHOTROPIC: ValueShape.VECTOR,
            PropertyKind.ANISOTROPIC: ValueShape.TENSOR,
        }[self]


@dataclass(frozen=True, eq=False)
class ConstantDefinition:
    """Uniform value (``float`` or numpy array of the entity's shape)"""

    value: Any
    method = "value"

    def evaluate(self, time, position, **state):
        if isinstance(self.value, np.ndarray):
            return self.value.copy()
        return self.value

    def symbolic(self):
        if isinstance(self.value, np.ndarray):
            return sympy.Matrix(self.value.tolist())
        return sympy.Float(self.value)

    def describe(self):
        if isinstance(self.value, np.ndarray):
            return self.value.tolist()
        return self.value


@dataclass(frozen=True, eq=False)
class AnalyticDefinition:
    """Closed-form function of position and time"""

    function: AnalyticFunction
    method = "analytic"

    def evaluate(self, time, position, **state):
        return self.function.evaluate(time, position)

    def symbolic(self):
        return self.function.sym

    def describe(self):
        return self.function.describe_definition()


@dataclass(frozen=True, eq=False)
class LawDefinition:
    """Function of position, time and the named state ``inputs``"""

    function: AnalyticFunction
    method = "law"

    @property
    def inputs(self) -> Tuple[str, ...]:
        return self.function.inputs

    def evaluate(self, time, position, **state):
        return self.function.evaluate(time, position, **state)

    def symbolic(self):
        return None

    def describe(self):
        return {"expression": self.function.describe_definition(), "inputs": list(self.inputs)}


class DefinedEntity(setup_object):
    """
    Shared behaviour of named entities that carry a single definition
    (properties and advection fields).
    """

    _entity_label = "Entity"
    _methods = ("value", "analytic")

    def __init__(self, name):
        super().__init__()
        self.name = name
        self._definition = None

    @property
    def value_shape(self) -> ValueShape:
        raise NotImplementedError

    @property
    def definition(self):
        return self._definition

    @property
    def is_defined(self):
        return self._definition is not None

    @property
    def is_uniform(self):
        return isinstance(self._definition, ConstantDefinition)

    def _set_definition(self, definition):
        self._check_mutable()

        if self._definition is not None:
            message = (
                f"{self._entity_label} '{self.name}' already has a "
                f"'{self._definition.method}' definition; replacing it with "
                f"a '{definition.method}' definition"
            )
            logger.warning(message)
            warnings.warn(message, SetupWarning, stacklevel=3)

        self._definition = definition
        self._increment()
        logger.debug("%s '%s' defined by %s", self._entity_label, self.name, definition.method)

    def def_by_value(self, value):
        """Define by a uniform value of the entity's shape"""
        value = as_shape(value, self.value_shape, entity=f"{self._entity_label} '{self.name}'")
        self._validate_value(value)
        self._set_definition(ConstantDefinition(value))

    def def_by_analytic(self, fn):
        """Define by a closed-form function of ``(t, x, y, z)``"""
        function = self._checked_function(fn, ())
        self._set_definition(AnalyticDefinition(function))

    def set_definition(self, method, payload, inputs=()):
        """
        Generic definition entry point.

        Parameters
        ----------
        method : str
            One of the definition methods supported by the entity
            (``"value"``, ``"analytic"`` and, for properties, ``"law"``)
        payload : object
            Value, expression or callable
        inputs : sequence of str
            State inputs of a law
        """
        if method not in self._methods:
            raise InvalidOptionError(
                f"{self._entity_label} '{self.name}': unknown definition method "
                f"'{method}'; expected one of {list(self._methods)}",
                entity=self.name,
                key="method",
                value=method,
            )

        if method == "value":
            self.def_by_value(payload)
        elif method == "analytic":
            self.def_by_analytic(payload)
        else:
            self.def_by_law(payload, inputs)

    def _checked_function(self, fn, inputs):
        try:
            function = analytic(fn, shape=self.value_shape, inputs=inputs, name=self.name)
        except ShapeMismatchError as e:
            raise ShapeMismatchError(
                f"{self._entity_label} '{self.name}' needs a {self.value_shape.value} "
                f"definition: {e}",
                entity=self.name,
                value=fn,
            )

        if function.sym is not None and self.value_shape == ValueShape.TENSOR:
            self._validate_value(function.sym)

        return function

    def _validate_value(self, value):
        pass

    def evaluate(self, time, position, **state):
        """Value at one point (shape given by ``value_shape``)"""
        if self._definition is None:
            raise UnlinkedRoleError(
                f"{self._entity_label} '{self.name}' has no definition",
                entity=self.name,
            )
        return self._definition.evaluate(time, position, **state)

    __call__ = evaluate

    def describe_definition(self):
        if self._definition is None:
            return None
        return {self._definition.method: self._definition.describe()}

    def _object_viewer(self):
        method = self._definition.method if self._definition is not None else "undefined"
        return [f"- `{self.name}` ({self.value_shape.value}): {method}"]


class Property(DefinedEntity):
    """
    Named material coefficient.

    Parameters
    ----------
    name : str
        Unique property name
    kind : PropertyKind or str
        ``isotropic``, ``orthotropic`` or ``anisotropic``
    read_only : bool
        Predefined properties cannot be redefined
    """

    _entity_label = "Property"
    _methods = ("value", "analytic", "law")

    def __init__(self, name, kind, read_only=False):
        super().__init__(name)

        try:
            self.kind = PropertyKind(kind)
        except ValueError:
            raise InvalidOptionError(
                f"Property '{name}': unknown kind '{kind}'; expected one of "
                f"{[k.value for k in PropertyKind]}",
                entity=name,
                key="kind",
                value=kind,
            )

        self.read_only = read_only

    @property
    def value_shape(self) -> ValueShape:
        return self.kind.shape

    def _set_definition(self, definition):
        if self.read_only:
            raise InvalidOptionError(
                f"Property '{self.name}' is predefined and cannot be redefined",
                entity=self.name,
            )
        super()._set_definition(definition)

    def _validate_value(self, value):
        if self.kind == PropertyKind.ANISOTROPIC and not is_symmetric(value):
            raise ShapeMismatchError(
                f"Property '{self.name}' is anisotropic and its tensor must be symmetric",
                entity=self.name,
                value=value,
            )

    def def_by_law(self, fn, inputs=()):
        """Define by a function of ``(t, x, y, z)`` and the named state inputs"""
        function = self._checked_function(fn, tuple(inputs))
        self._set_definition(LawDefinition(function))

    def tensor(self, time, position, **state):
        """Value expanded to a full 3x3 tensor"""
        return expand_to_tensor(self.evaluate(time, position, **state), self.value_shape)

    def _object_viewer(self):
        method = self._definition.method if self._definition is not None else "undefined"
        return [f"- `{self.name}` ({self.kind.value}): {method}"]


class PropertyRegistry(NamedRegistry):
    """
    Registry of material properties.

    The isotropic property ``unity`` (value 1.0) always exists.
    """

    _entity_label = "Property"

    def __init__(self):
        super().__init__()

        unity = Property("unity", PropertyKind.ISOTROPIC)
        unity.def_by_value(1.0)
        unity.read_only = True
        self._register("unity", unity)

    def add(self, name, kind) -> Property:
        """Register a property of the given kind (raises DuplicateNameError)"""
        prop = self._register(name, Property(name, kind))
        logger.debug("Added property '%s' (%s)", name, prop.kind.value)
        return prop

    def set_definition(self, name, method, payload, inputs=()):
        """Define the named property (see `Property.set_definition`)"""
        self.get(name).set_definition(method, payload, inputs)
