"""
Advection field registry.

Advection fields are named vector fields that transport the unknown of an
equation. They are defined like properties, either by a uniform vector or
by a closed-form function of ``(t, x, y, z)``, but always produce three
components.
"""

import logging

from pdedomain._var_types import ValueShape
from pdedomain.properties import DefinedEntity
from pdedomain.utilities._registry import NamedRegistry

logger = logging.getLogger(__name__)


class AdvectionField(DefinedEntity):
    r"""
    Named vector field :math:`\boldsymbol{\beta}(t, \mathbf{x})`.

    ```python
    adv = AdvectionField("adv_field")
    adv.def_by_analytic(["y - 0.5", "0.5 - x", "z"])
    adv.evaluate(0.0, (0.0, 0.0, 1.0))   # -> array([-0.5, 0.5, 1.0])
    ```
    """

    _entity_label = "Advection field"
    _methods = ("value", "analytic")

    @property
    def value_shape(self) -> ValueShape:
        return ValueShape.VECTOR


class AdvectionFieldRegistry(NamedRegistry):
    """Registry of advection fields"""

    _entity_label = "Advection field"

    def add(self, name) -> AdvectionField:
        """Register an advection field (raises DuplicateNameError)"""
        field = self._register(name, AdvectionField(name))
        logger.debug("Added advection field '%s'", name)
        return field

    def set_definition(self, name, method, payload):
        """Define the named field by ``"value"`` or ``"analytic"``"""
        self.get(name).set_definition(method, payload)
