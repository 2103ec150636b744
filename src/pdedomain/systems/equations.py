r"""
Equation registry and linker.

An equation is a named unknown together with the terms of its
convection-diffusion-reaction balance

.. math::

    \underbrace{c \frac{\partial u}{\partial t}}_{\text{time}}
    - \underbrace{\nabla \cdot (K \nabla u)}_{\text{diffusion}}
    + \underbrace{\boldsymbol{\beta} \cdot \nabla u}_{\text{advection}}
    + r u = f

The time, diffusion and advection roles are linked to registered
properties and advection fields; boundary conditions, source terms and
reaction terms are attached to the equation directly. Nothing is checked
for completeness until `EquationRegistry.check` is called, which collects
every violation rather than stopping at the first.

Example
-------
>>> eqs = EquationRegistry(locations, properties, advection_fields)
>>> eq = eqs.add("user_1", "potential", "scalar", "zero_value")
>>> eqs.link(eq, "diffusion", "conductivity")
>>> eqs.add_source_term(eq, "SourceTerm", "cells", "analytic", "1 + x")
>>> eqs.set_source_term_option(eq, "SourceTerm", "quadrature", "subdiv")
"""

import logging
import warnings
from enum import Enum
from itertools import combinations
from types import MappingProxyType
from typing import Dict, List

import numpy as np

from pdedomain._var_types import EntityKind, ValueShape
from pdedomain.advection import AdvectionField
from pdedomain.errors import (
    ConfigurationError,
    DuplicateNameError,
    InvalidOptionError,
    NotFoundError,
    OverlappingBoundaryConditionError,
    SetupWarning,
    ShapeMismatchError,
    UnlinkedRoleError,
)
from pdedomain.function.analytic import analytic
from pdedomain.maths.tensors import as_shape
from pdedomain.mesh_location import overlap
from pdedomain.properties import Property, PropertyKind
from pdedomain.utilities._api_tools import setup_object
from pdedomain.utilities._registry import NamedRegistry

from .options import EquationOptions
from .terms import (
    BCType,
    BoundaryCondition,
    DefaultBC,
    DefinitionMethod,
    ReactionTerm,
    SourceTerm,
)

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """Terms of an equation that are linked to a registered entity"""

    TIME = "time"
    DIFFUSION = "diffusion"
    ADVECTION = "advection"


def _enum(enum_cls, value, what, entity=None):
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidOptionError(
            f"Unknown {what} '{value}'"
            + (f" for '{entity}'" if entity else "")
            + f"; expected one of {[e.value for e in enum_cls]}",
            entity=entity,
            key=what,
            value=value,
        )


def _same_derived_condition(a, b):
    # Derived conditions on overlapping boundaries of the same kind impose
    # the same constraint twice.
    return (
        a.derived
        and b.derived
        and a.bc_type == b.bc_type
        and a.method == DefinitionMethod.VALUE
        and b.method == DefinitionMethod.VALUE
        and np.array_equal(np.asarray(a.payload), np.asarray(b.payload))
    )


class Equation(setup_object):
    """
    A named unknown and its terms.

    Parameters
    ----------
    name : str
        Unique equation name
    field_name : str
        Name of the unknown field produced by the solver core
    value_shape : ValueShape or str
        ``scalar``, ``vector`` or ``tensor``
    default_bc : DefaultBC or str
        ``zero_value`` or ``zero_flux`` on boundaries without a condition
    predefined : bool
        True for equations activated by tag (e.g. ``wall_distance``)
    """

    _frozen_attributes = (
        "name",
        "field_name",
        "value_shape",
        "default_bc",
        "predefined",
        "options",
        "links",
        "boundary_conditions",
        "source_terms",
        "reaction_terms",
    )

    def __init__(self, name, field_name, value_shape, default_bc, predefined=False):
        super().__init__()

        self.name = name
        self.field_name = field_name
        self.value_shape = _enum(ValueShape, value_shape, "value shape", name)
        self.default_bc = _enum(DefaultBC, default_bc, "default boundary condition", name)
        self.predefined = predefined

        self.options = EquationOptions()
        self.links: Dict[Role, object] = {}
        self.boundary_conditions: List[BoundaryCondition] = []
        self.source_terms: List[SourceTerm] = []
        self.reaction_terms: List[ReactionTerm] = []

    @property
    def is_unsteady(self):
        return Role.TIME in self.links

    def linked(self, role):
        """Entity linked to ``role``, or None"""
        return self.links.get(_enum(Role, role, "role", self.name))

    def source_term(self, label) -> SourceTerm:
        return self._find_term(self.source_terms, label, "Source term")

    def reaction_term(self, label) -> ReactionTerm:
        return self._find_term(self.reaction_terms, label, "Reaction term")

    def _find_term(self, terms, label, what):
        for term in terms:
            if term.label == label:
                return term
        raise NotFoundError(
            f"{what} '{label}' is not defined for equation '{self.name}'; known "
            f"labels: {[t.label for t in terms if t.label]}",
            entity=self.name,
            key="label",
            value=label,
        )

    def freeze(self):
        """Freeze the equation, its terms and the containers holding them"""
        self.links = MappingProxyType(dict(self.links))
        self.boundary_conditions = tuple(self.boundary_conditions)
        self.source_terms = tuple(self.source_terms)
        self.reaction_terms = tuple(self.reaction_terms)
        for term in self.source_terms + self.reaction_terms:
            term.freeze()
        super().freeze()

    def __setattr__(self, name, value):
        if name in self._frozen_attributes and getattr(self, "_frozen", False):
            self._check_mutable()
        super().__setattr__(name, value)

    def describe_links(self):
        return {role.value: entity.name for role, entity in self.links.items()}

    def _object_viewer(self):
        lines = [
            f"**Equation** `{self.name}`: field `{self.field_name}` "
            f"({self.value_shape.value}, default {self.default_bc.value})",
            "",
        ]
        for role, entity in self.links.items():
            lines.append(f"- {role.value}: `{entity.name}`")
        for bc in self.boundary_conditions:
            lines.append(f"- {bc.bc_type.value} on `{bc.location.name}` ({bc.method.value})")
        for term in self.source_terms:
            lines.append(f"- source `{term.label}` on `{term.location.name}` ({term.method.value})")
        for term in self.reaction_terms:
            lines.append(f"- reaction `{term.label}`: `{term.property.name}`")
        return lines


class EquationRegistry(NamedRegistry):
    """
    Registry of equations and the linker between equations and the other
    registries.

    Equations may be given by name or as `Equation` objects; link targets
    by name or as `Property` / `AdvectionField` objects.
    """

    _entity_label = "Equation"

    def __init__(self, locations, properties, advection_fields):
        super().__init__()
        self.locations = locations
        self.properties = properties
        self.advection_fields = advection_fields

    def add(self, name, field_name, value_shape="scalar", default_bc="zero_value", predefined=False):
        """Register an equation (raises DuplicateNameError)"""
        self._check_mutable()
        equation = Equation(name, field_name, value_shape, default_bc, predefined=predefined)
        self._register(name, equation)
        logger.debug("Added equation '%s' (field '%s', %s)", name, field_name, equation.value_shape.value)
        return equation

    ## Boundary conditions

    def add_boundary_condition(self, eq, location, bc_type, method, payload, derived=False):
        """
        Attach a boundary condition to an equation.

        Parameters
        ----------
        eq : str or Equation
        location : str
            Mesh location made of boundary faces or vertices
        bc_type : str
            ``dirichlet``, ``neumann`` or ``robin`` (scalar equations only)
        method : str
            ``value`` or ``analytic``
        payload : object
            Value or expression of the equation's shape; for Robin
            conditions the three coefficients ``(alpha, beta, g)``
        """
        equation = self.get(eq)
        equation._check_mutable()

        loc = self.locations.resolve(location)
        if loc.kind not in (EntityKind.BOUNDARY_FACES, EntityKind.VERTICES):
            raise InvalidOptionError(
                f"Equation '{equation.name}': boundary condition location "
                f"'{loc.name}' is made of {loc.kind.value}; expected boundary "
                "faces or vertices",
                entity=equation.name,
                key="location",
                value=loc.name,
            )

        bc_type = _enum(BCType, bc_type, "boundary condition type", equation.name)
        method = _enum(DefinitionMethod, method, "definition method", equation.name)
        if method == DefinitionMethod.USER:
            raise InvalidOptionError(
                f"Equation '{equation.name}': boundary conditions are defined by "
                "'value' or 'analytic'",
                entity=equation.name,
                key="method",
                value=method.value,
            )

        shape = equation.value_shape
        if bc_type == BCType.ROBIN:
            if equation.value_shape != ValueShape.SCALAR:
                raise ShapeMismatchError(
                    f"Equation '{equation.name}': Robin conditions are only "
                    f"available for scalar equations, not {equation.value_shape.value}",
                    entity=equation.name,
                    key="bc_type",
                    value=bc_type.value,
                )
            shape = ValueShape.VECTOR

        payload = self._checked_payload(equation, method, payload, shape, f"boundary condition on '{loc.name}'")

        bc = BoundaryCondition(loc, bc_type, method, payload, derived=derived)
        equation.boundary_conditions.append(bc)
        equation._increment()

        logger.debug(
            "Equation '%s': %s condition on '%s' (%s)",
            equation.name, bc_type.value, loc.name, method.value,
        )
        return bc

    def _checked_payload(self, equation, method, payload, shape, what):
        entity = f"Equation '{equation.name}' {what}"

        if method == DefinitionMethod.VALUE:
            return as_shape(payload, shape, entity=entity)

        if method == DefinitionMethod.ANALYTIC:
            try:
                return analytic(payload, shape=shape, name=f"{equation.name}:{what}")
            except ShapeMismatchError as e:
                raise ShapeMismatchError(
                    f"{entity}: {e}", entity=equation.name, value=payload
                )

        if not callable(payload):
            raise InvalidOptionError(
                f"{entity}: a 'user' definition must be callable, got {payload!r}",
                entity=equation.name,
                key="method",
                value=payload,
            )
        return payload

    ## Source and reaction terms

    def add_source_term(self, eq, label=None, location="cells", method="value", payload=None):
        """
        Attach a source term (default location: all cells).

        Labels are optional but must be unique within the equation; a label
        is needed to set options on a single term.
        """
        equation = self.get(eq)
        equation._check_mutable()

        if label and any(term.label == label for term in equation.source_terms):
            raise DuplicateNameError(
                f"Equation '{equation.name}' already has a source term '{label}'",
                entity=equation.name,
                key="label",
                value=label,
            )

        loc = self.locations.resolve(location)
        method = _enum(DefinitionMethod, method, "definition method", equation.name)
        payload = self._checked_payload(
            equation, method, payload, equation.value_shape, f"source term '{label or ''}'"
        )

        term = SourceTerm(label, loc, method, payload)
        equation.source_terms.append(term)
        equation._increment()

        logger.debug("Equation '%s': source term '%s' on '%s'", equation.name, label, loc.name)
        return term

    def add_reaction_term(self, eq, label=None, prop="unity"):
        """Attach a reaction term whose coefficient is an isotropic property"""
        equation = self.get(eq)
        equation._check_mutable()

        if label and any(term.label == label for term in equation.reaction_terms):
            raise DuplicateNameError(
                f"Equation '{equation.name}' already has a reaction term '{label}'",
                entity=equation.name,
                key="label",
                value=label,
            )

        target = self._resolve_property(equation, prop, "reaction")
        if target.kind != PropertyKind.ISOTROPIC:
            raise ShapeMismatchError(
                f"Equation '{equation.name}': reaction property '{target.name}' "
                f"must be isotropic, not {target.kind.value}",
                entity=equation.name,
                value=target.name,
            )

        term = ReactionTerm(label, target)
        equation.reaction_terms.append(term)
        equation._increment()

        logger.debug("Equation '%s': reaction term '%s' (%s)", equation.name, label, target.name)
        return term

    def set_source_term_option(self, eq, label, key, value):
        """
        Set an option of the source term ``label`` (``None``: all source terms).

        Keys: ``quadrature`` (subdiv, bary, higher, highest) and ``post``
        (-1: never, 0: initial state only, n: every n steps).
        """
        equation = self.get(eq)
        self._set_term_option(equation, equation.source_terms, "source", label, key, value)

    def set_reaction_term_option(self, eq, label, key, value):
        """
        Set an option of the reaction term ``label`` (``None``: all reaction terms).

        Keys: ``hodge_algo``, ``hodge_coef``, ``lumping``, ``inv_pty``.
        """
        equation = self.get(eq)
        self._set_term_option(equation, equation.reaction_terms, "reaction", label, key, value)

    def _set_term_option(self, equation, terms, kind, label, key, value):
        equation._check_mutable()

        if label is None:
            selected = list(terms)
        else:
            selected = [equation._find_term(terms, label, f"{kind.capitalize()} term")]

        for term in selected:
            term.set_option(key, value)

        equation._increment()

        logger.debug(
            "Equation '%s': %s term option %s = %r (%s)",
            equation.name, kind, key, value,
            f"'{label}'" if label is not None else f"{len(selected)} term(s)",
        )

    ## Links and options

    def _resolve_property(self, equation, target, role):
        if isinstance(target, Property):
            return target
        if isinstance(target, AdvectionField):
            raise InvalidOptionError(
                f"Equation '{equation.name}': the {role} role needs a property, "
                f"but '{target.name}' is an advection field",
                entity=equation.name,
                key=role,
                value=target.name,
            )
        if isinstance(target, str):
            if target not in self.properties and target in self.advection_fields:
                raise InvalidOptionError(
                    f"Equation '{equation.name}': the {role} role needs a property, "
                    f"but '{target}' is an advection field",
                    entity=equation.name,
                    key=role,
                    value=target,
                )
            return self.properties.get(target)

        raise InvalidOptionError(
            f"Equation '{equation.name}': cannot link {target!r} to the {role} role",
            entity=equation.name,
            key=role,
            value=target,
        )

    def _resolve_advection_field(self, equation, target):
        if isinstance(target, AdvectionField):
            return target
        if isinstance(target, Property) or (
            isinstance(target, str) and target not in self.advection_fields and target in self.properties
        ):
            name = getattr(target, "name", target)
            raise InvalidOptionError(
                f"Equation '{equation.name}': the advection role needs an advection "
                f"field, but '{name}' is a property",
                entity=equation.name,
                key="advection",
                value=name,
            )
        if isinstance(target, str):
            return self.advection_fields.get(target)

        raise InvalidOptionError(
            f"Equation '{equation.name}': cannot link {target!r} to the advection role",
            entity=equation.name,
            key="advection",
            value=target,
        )

    def link(self, eq, role, target):
        """
        Link the ``time``, ``diffusion`` or ``advection`` role of an equation.

        Linking a role again replaces the previous target and emits a
        `SetupWarning`.
        """
        equation = self.get(eq)
        equation._check_mutable()
        role = _enum(Role, role, "role", equation.name)

        if role == Role.ADVECTION:
            entity = self._resolve_advection_field(equation, target)
        else:
            entity = self._resolve_property(equation, target, role.value)

        if role == Role.TIME and entity.kind != PropertyKind.ISOTROPIC:
            raise ShapeMismatchError(
                f"Equation '{equation.name}': the time property '{entity.name}' "
                f"must be isotropic, not {entity.kind.value}",
                entity=equation.name,
                key=role.value,
                value=entity.name,
            )

        previous = equation.links.get(role)
        if previous is not None:
            message = (
                f"Equation '{equation.name}': {role.value} role was linked to "
                f"'{previous.name}' and is now linked to '{entity.name}'"
            )
            logger.warning(message)
            warnings.warn(message, SetupWarning, stacklevel=2)

        equation.links[role] = entity
        equation._increment()
        logger.debug("Equation '%s': %s -> '%s'", equation.name, role.value, entity.name)

    def set_option(self, eq, key, value):
        """
        Set a numerical option of an equation (see
        `pdedomain.systems.options.OPTION_KEYS` for the accepted keys).
        """
        equation = self.get(eq)
        equation._check_mutable()
        equation.options = equation.options.updated(key, value, entity=equation.name)
        equation._increment()
        logger.debug("Equation '%s': option %s = %r", equation.name, key, value)

    ## Checks

    def check(self, probe_points=None) -> List[ConfigurationError]:
        """
        Collect every violation of the linked model.

        - linked properties / advection fields (and reaction properties)
          without a definition: `UnlinkedRoleError`
        - option combinations the solver family does not provide:
          `InvalidOptionError`
        - boundary conditions on overlapping locations:
          `OverlappingBoundaryConditionError` (derived conditions that
          impose the same value are exempt)

        Overlaps that cannot be decided are logged as warnings.
        """
        violations = []
        for equation in self:
            violations.extend(self._check_equation(equation, probe_points))
        return violations

    def _check_equation(self, equation, probe_points):
        violations = []

        for role, entity in equation.links.items():
            if not entity.is_defined:
                violations.append(
                    UnlinkedRoleError(
                        f"Equation '{equation.name}': {role.value} is linked to "
                        f"'{entity.name}', which has no definition",
                        entity=equation.name,
                        key=role.value,
                        value=entity.name,
                    )
                )

        for term in equation.reaction_terms:
            if not term.property.is_defined:
                violations.append(
                    UnlinkedRoleError(
                        f"Equation '{equation.name}': reaction term '{term.label}' "
                        f"uses '{term.property.name}', which has no definition",
                        entity=equation.name,
                        key="reaction",
                        value=term.property.name,
                    )
                )

        for issue in equation.options.issues():
            violations.append(
                InvalidOptionError(
                    f"Equation '{equation.name}': {issue}", entity=equation.name
                )
            )

        for a, b in combinations(equation.boundary_conditions, 2):
            if _same_derived_condition(a, b):
                continue
            overlapping = overlap(a.location, b.location, probe_points)
            if overlapping:
                violations.append(
                    OverlappingBoundaryConditionError(
                        f"Equation '{equation.name}': {a.bc_type.value} condition on "
                        f"'{a.location.name}' and {b.bc_type.value} condition on "
                        f"'{b.location.name}' cover the same entities",
                        entity=equation.name,
                        value=(a.location.name, b.location.name),
                    )
                )
            elif overlapping is None:
                logger.warning(
                    "Equation '%s': cannot decide whether '%s' and '%s' overlap; "
                    "pass probe points to finalize() to check",
                    equation.name, a.location.name, b.location.name,
                )

        return violations
