"""
Domain configuration facade.

The `Domain` is the one mutable object of the setup phase. It owns the
mesh location, property, advection field and equation registries, the
classification of boundary locations and the time stepping policy.
`Domain.finalize` checks the whole configuration, reporting every
violation at once, and hands back an immutable `DomainSetup` for the
solver core.

Example
-------
>>> domain = Domain("cdo_condif")
>>> domain.add_mesh_location("in", "boundary_faces", "x < 1e-5")
>>> domain.add_boundary("in", "inlet")
>>> k = domain.add_property("conductivity", "anisotropic")
>>> k.def_by_value("1.0 0.5 0.0\\n0.5 1.0 0.5\\n0.0 0.5 1.0")
>>> eq = domain.add_equation("user_1", "potential", "scalar", "zero_value")
>>> domain.link(eq, "diffusion", k)
>>> setup = domain.finalize()
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from itertools import combinations
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple

import numpy as np
import yaml

from pdedomain._var_types import EntityKind
from pdedomain.advection import AdvectionFieldRegistry
from pdedomain.coordinates import X
from pdedomain.errors import (
    DuplicateNameError,
    InvalidOptionError,
    OverlappingBoundaryConditionError,
    SetupError,
)
from pdedomain.function.analytic import AnalyticFunction, analytic
from pdedomain.mesh_location import MeshLocationRegistry, overlap
from pdedomain.properties import PropertyRegistry
from pdedomain.systems.equations import EquationRegistry
from pdedomain.systems.terms import DefaultBC
from pdedomain.utilities._api_tools import setup_object

logger = logging.getLogger(__name__)


WALL_DISTANCE = "wall_distance"


class BoundaryKind(str, Enum):
    WALL = "wall"
    INLET = "inlet"
    OUTLET = "outlet"
    SYMMETRY = "symmetry"


class TimeStepMethod(str, Enum):
    VALUE = "value"
    TIME_FUNC = "time_func"
    USER = "user"


@dataclass(frozen=True)
class TimeStepPolicy:
    """
    Global time stepping.

    ``method`` selects how the step is computed:

    - ``value``: ``payload`` is a constant positive step
    - ``time_func``: ``payload`` is an analytic function of ``t``
    - ``user``: ``payload`` is a callable ``f(step, time) -> dt``

    Time stepping stops at whichever of ``max_steps`` and ``final_time`` is
    reached first.
    """

    max_steps: Optional[int]
    final_time: Optional[float]
    method: TimeStepMethod
    payload: Any

    def dt(self, step, time) -> float:
        if self.method == TimeStepMethod.VALUE:
            return self.payload
        if self.method == TimeStepMethod.TIME_FUNC:
            return float(self.payload.evaluate(time, (0.0, 0.0, 0.0)))
        return float(self.payload(step, time))

    def should_stop(self, step, time) -> bool:
        if self.max_steps is not None and step >= self.max_steps:
            return True
        if self.final_time is not None:
            return time >= self.final_time - 1.0e-12 * max(1.0, abs(self.final_time))
        return False

    def iterate(self):
        """Yield ``(step, time, dt)`` after each step until stopping"""
        step, time = 0, 0.0
        while not self.should_stop(step, time):
            dt = self.dt(step, time)
            if not dt > 0.0:
                raise InvalidOptionError(
                    f"Time step {step + 1}: non-positive time step {dt} at t = {time}",
                    key="dt",
                    value=dt,
                )
            step += 1
            time += dt
            yield step, time, dt

    def describe(self):
        if self.method == TimeStepMethod.VALUE:
            payload = self.payload
        elif isinstance(self.payload, AnalyticFunction):
            payload = self.payload.describe_definition()
        else:
            payload = {
                "type": "callable",
                "name": getattr(self.payload, "__qualname__", repr(self.payload)),
            }
        return {
            "max_steps": self.max_steps,
            "final_time": self.final_time,
            "method": self.method.value,
            "payload": payload,
        }


@dataclass(frozen=True)
class DomainSetup:
    """
    Immutable, checked configuration handed to the solver core.

    The mappings are read-only views; the entities they hold are frozen.
    """

    name: str
    mesh_locations: Mapping
    properties: Mapping
    advection_fields: Mapping
    equations: Mapping
    default_boundary: BoundaryKind
    boundaries: Mapping
    time_step: Optional[TimeStepPolicy]
    predefined: Tuple[str, ...]

    def boundary_kind(self, location) -> BoundaryKind:
        return self.boundaries.get(location, self.default_boundary)


class Domain(setup_object):
    """
    Builder of a PDE setup.

    Parameters
    ----------
    name : str
        Label used in messages and configuration files
    """

    _predefined_tags = (WALL_DISTANCE,)

    def __init__(self, name="domain"):
        super().__init__()

        self.name = name
        self.locations = MeshLocationRegistry()
        self.properties = PropertyRegistry()
        self.advection_fields = AdvectionFieldRegistry()
        self.equations = EquationRegistry(self.locations, self.properties, self.advection_fields)

        self.default_boundary = BoundaryKind.WALL
        self._boundaries = {}
        self.time_step: Optional[TimeStepPolicy] = None
        self._predefined = []
        self._setup = None

    ## Registries

    def add_mesh_location(self, name, kind, selection=None):
        self._check_mutable()
        return self.locations.add(name, kind, selection)

    def get_mesh_location(self, name):
        return self.locations.resolve(name)

    def add_property(self, name, kind):
        self._check_mutable()
        return self.properties.add(name, kind)

    def get_property(self, name):
        return self.properties.get(name)

    def add_advection_field(self, name):
        self._check_mutable()
        return self.advection_fields.add(name)

    def get_advection_field(self, name):
        return self.advection_fields.get(name)

    def add_equation(self, name, field_name, value_shape="scalar", default_bc="zero_value"):
        """Register a user equation"""
        self._check_mutable()
        return self.equations.add(name, field_name, value_shape, default_bc)

    def get_equation(self, name):
        return self.equations.get(name)

    ## Equation terms (see `EquationRegistry`)

    def add_boundary_condition(self, eq, location, bc_type, method, payload):
        return self.equations.add_boundary_condition(eq, location, bc_type, method, payload)

    def add_source_term(self, eq, label=None, location="cells", method="value", payload=None):
        return self.equations.add_source_term(eq, label, location, method, payload)

    def add_reaction_term(self, eq, label=None, prop="unity"):
        return self.equations.add_reaction_term(eq, label, prop)

    def set_source_term_option(self, eq, label, key, value):
        self.equations.set_source_term_option(eq, label, key, value)

    def set_reaction_term_option(self, eq, label, key, value):
        self.equations.set_reaction_term_option(eq, label, key, value)

    def link(self, eq, role, target):
        self.equations.link(eq, role, target)

    def set_option(self, eq, key, value):
        self.equations.set_option(eq, key, value)

    ## Boundaries

    def set_default_boundary(self, kind):
        """Kind of every boundary face not classified otherwise (``wall`` or ``symmetry``)"""
        self._check_mutable()

        if kind not in (BoundaryKind.WALL.value, BoundaryKind.SYMMETRY.value):
            raise InvalidOptionError(
                f"Domain '{self.name}': the default boundary must be 'wall' or "
                f"'symmetry', not '{getattr(kind, 'value', kind)}'",
                entity=self.name,
                key="default_boundary",
                value=kind,
            )

        self.default_boundary = BoundaryKind(kind)
        self._increment()

    def add_boundary(self, location, kind):
        """Classify a boundary location as ``wall``, ``inlet``, ``outlet`` or ``symmetry``"""
        self._check_mutable()

        loc = self.locations.resolve(location)
        if loc.kind != EntityKind.BOUNDARY_FACES:
            raise InvalidOptionError(
                f"Domain '{self.name}': boundary '{loc.name}' must be made of "
                f"boundary faces, not {loc.kind.value}",
                entity=loc.name,
                key="kind",
                value=loc.kind.value,
            )

        if loc.name in self._boundaries:
            raise DuplicateNameError(
                f"Domain '{self.name}': boundary '{loc.name}' is already classified "
                f"as {self._boundaries[loc.name].value}",
                entity=loc.name,
            )

        try:
            kind = BoundaryKind(kind)
        except ValueError:
            raise InvalidOptionError(
                f"Domain '{self.name}': unknown boundary kind '{kind}'; expected one "
                f"of {[k.value for k in BoundaryKind]}",
                entity=loc.name,
                key="kind",
                value=kind,
            )

        self._boundaries[loc.name] = kind
        self._increment()
        logger.debug("Boundary '%s' classified as %s", loc.name, kind.value)

    def boundary_kind(self, location) -> BoundaryKind:
        return self._boundaries.get(self.locations.resolve(location).name, self.default_boundary)

    @property
    def boundaries(self):
        return dict(self._boundaries)

    ## Time stepping

    def set_time_step(self, max_steps=None, final_time=None, method="value", payload=None):
        """
        Set the global time stepping policy (see `TimeStepPolicy`).

        At least one of ``max_steps`` and ``final_time`` is required.
        """
        self._check_mutable()

        try:
            method = TimeStepMethod(method)
        except ValueError:
            raise InvalidOptionError(
                f"Unknown time step method '{method}'; expected one of "
                f"{[m.value for m in TimeStepMethod]}",
                key="method",
                value=method,
            )

        if max_steps is None and final_time is None:
            raise InvalidOptionError(
                "The time step needs max_steps, final_time or both", key="max_steps"
            )
        if max_steps is not None:
            try:
                steps = float(max_steps)
            except (TypeError, ValueError):
                steps = None
            if steps is None or not steps.is_integer() or steps < 0:
                raise InvalidOptionError(
                    f"max_steps must be a non-negative integer, not {max_steps!r}",
                    key="max_steps",
                    value=max_steps,
                )
            max_steps = int(steps)

        if final_time is not None:
            try:
                final = float(final_time)
            except (TypeError, ValueError):
                final = None
            if final is None or not np.isfinite(final) or not final > 0.0:
                raise InvalidOptionError(
                    f"final_time must be a positive number, not {final_time!r}",
                    key="final_time",
                    value=final_time,
                )
            final_time = final

        if method == TimeStepMethod.VALUE:
            try:
                payload = float(payload)
            except (TypeError, ValueError):
                payload = None
            if payload is None or not np.isfinite(payload) or not payload > 0.0:
                raise InvalidOptionError(
                    "A 'value' time step needs a positive number", key="payload", value=payload
                )
        elif method == TimeStepMethod.TIME_FUNC:
            payload = analytic(payload, shape="scalar", name="time_step")
            if payload.is_symbolic and payload.sym.free_symbols & set(X):
                raise InvalidOptionError(
                    f"A 'time_func' time step may only depend on t, not {payload.sym}",
                    key="payload",
                    value=payload.describe_definition(),
                )
        elif not callable(payload):
            raise InvalidOptionError(
                "A 'user' time step needs a callable f(step, time)", key="payload", value=payload
            )

        self.time_step = TimeStepPolicy(
            None if max_steps is None else int(max_steps),
            None if final_time is None else float(final_time),
            method,
            payload,
        )
        self._increment()
        logger.debug("Time step: %s", self.time_step.describe())

    ## Predefined equations

    def activate_predefined_equation(self, tag):
        """
        Activate a predefined equation. Activating it again does nothing.

        ``wall_distance`` solves :math:`-\\Delta \\phi = 1` with
        :math:`\\phi = 0` on wall boundaries and zero flux elsewhere; its
        boundary conditions follow the boundary classification at
        `finalize`.
        """
        self._check_mutable()

        if tag not in self._predefined_tags:
            raise InvalidOptionError(
                f"Unknown predefined equation '{tag}'; expected one of "
                f"{list(self._predefined_tags)}",
                key="tag",
                value=tag,
            )

        if tag in self._predefined:
            logger.debug("Predefined equation '%s' is already active", tag)
            return self.equations.get(tag)

        eq = self.equations.add(WALL_DISTANCE, WALL_DISTANCE, "scalar", "zero_flux", predefined=True)
        self.equations.link(eq, "diffusion", "unity")
        self.equations.add_source_term(eq, "wall_distance_source", "cells", "value", 1.0)

        self._predefined.append(tag)
        self._increment()
        logger.debug("Activated predefined equation '%s'", tag)
        return eq

    def _resolve_wall_distance(self):
        eq = self.equations.get(WALL_DISTANCE)
        eq.boundary_conditions = [bc for bc in eq.boundary_conditions if not bc.derived]

        if self.default_boundary == BoundaryKind.WALL:
            eq.default_bc = DefaultBC.ZERO_VALUE
            for name, kind in self._boundaries.items():
                if kind != BoundaryKind.WALL:
                    self.equations.add_boundary_condition(eq, name, "neumann", "value", 0.0, derived=True)
            return []

        eq.default_bc = DefaultBC.ZERO_FLUX
        walls = [name for name, kind in self._boundaries.items() if kind == BoundaryKind.WALL]
        if not walls:
            return [
                InvalidOptionError(
                    f"Domain '{self.name}': the wall distance needs at least one wall "
                    "boundary (the default boundary is symmetry and no location is "
                    "classified as wall)",
                    entity=WALL_DISTANCE,
                )
            ]

        for name in walls:
            self.equations.add_boundary_condition(eq, name, "dirichlet", "value", 0.0, derived=True)
        return []

    ## Finalisation

    def _check_boundaries(self, probe_points):
        violations = []
        for (name_a, kind_a), (name_b, kind_b) in combinations(self._boundaries.items(), 2):
            if kind_a == kind_b:
                continue
            overlapping = overlap(
                self.locations.resolve(name_a), self.locations.resolve(name_b), probe_points
            )
            if overlapping:
                violations.append(
                    OverlappingBoundaryConditionError(
                        f"Domain '{self.name}': boundary '{name_a}' ({kind_a.value}) "
                        f"and boundary '{name_b}' ({kind_b.value}) share faces",
                        entity=self.name,
                        value=(name_a, name_b),
                    )
                )
            elif overlapping is None:
                logger.warning(
                    "Domain '%s': cannot decide whether boundaries '%s' and '%s' overlap",
                    self.name, name_a, name_b,
                )
        return violations

    def finalize(self, probe_points=None) -> DomainSetup:
        """
        Check the configuration and freeze it.

        Parameters
        ----------
        probe_points : array of shape (n, 3), optional
            Entity centres used to decide overlaps that cannot be decided
            symbolically

        Returns
        -------
        DomainSetup
            The same object on every call once finalisation succeeded

        Raises
        ------
        SetupError
            With every violation found
        """
        if self._setup is not None:
            return self._setup

        violations = []

        if WALL_DISTANCE in self._predefined:
            violations.extend(self._resolve_wall_distance())

        violations.extend(self._check_boundaries(probe_points))
        violations.extend(self.equations.check(probe_points))

        if self.time_step is None:
            for eq in self.equations:
                if eq.is_unsteady:
                    violations.append(
                        InvalidOptionError(
                            f"Equation '{eq.name}' has a time term but no time step "
                            "is set (call set_time_step)",
                            entity=eq.name,
                            key="time_step",
                        )
                    )

        if violations:
            logger.error("Domain '%s': %d configuration error(s)", self.name, len(violations))
            raise SetupError(violations, entity=self.name)

        self.freeze()
        for registry in (self.locations, self.properties, self.advection_fields, self.equations):
            registry.freeze()

        self._setup = DomainSetup(
            name=self.name,
            mesh_locations=MappingProxyType({loc.name: loc for loc in self.locations}),
            properties=MappingProxyType({p.name: p for p in self.properties}),
            advection_fields=MappingProxyType({f.name: f for f in self.advection_fields}),
            equations=MappingProxyType({eq.name: eq for eq in self.equations}),
            default_boundary=self.default_boundary,
            boundaries=MappingProxyType(dict(self._boundaries)),
            time_step=self.time_step,
            predefined=tuple(self._predefined),
        )

        logger.info(
            "Domain '%s' finalized: %d location(s), %d propert(y/ies), %d advection "
            "field(s), %d equation(s)",
            self.name, len(self.locations), len(self.properties),
            len(self.advection_fields), len(self.equations),
        )
        return self._setup

    @property
    def is_finalized(self):
        return self._setup is not None

    ## Configuration files

    def to_dict(self):
        """
        Export the configuration as plain data.

        Sympy expressions are stored as strings; Python callables are
        recorded by name only and cannot be imported back.
        """
        locations = [
            {"name": loc.name, "kind": loc.kind.value, "selection": loc.describe_selection()}
            for loc in self.locations
            if not loc.predefined
        ]

        properties = {
            p.name: {"kind": p.kind.value, "definition": p.describe_definition()}
            for p in self.properties
            if not p.read_only
        }

        advection_fields = {
            f.name: {"definition": f.describe_definition()} for f in self.advection_fields
        }

        equations = {}
        for eq in self.equations:
            if eq.predefined:
                continue
            equations[eq.name] = {
                "field": eq.field_name,
                "shape": eq.value_shape.value,
                "default_bc": eq.default_bc.value,
                "links": eq.describe_links(),
                "options": eq.options.as_flat_dict(),
                "boundary_conditions": [
                    bc.describe() for bc in eq.boundary_conditions if not bc.derived
                ],
                "source_terms": [term.describe() for term in eq.source_terms],
                "reaction_terms": [term.describe() for term in eq.reaction_terms],
            }

        config = {
            "name": self.name,
            "mesh_locations": locations,
            "boundaries": {
                "default": self.default_boundary.value,
                "locations": {name: kind.value for name, kind in self._boundaries.items()},
            },
            "time_step": self.time_step.describe() if self.time_step is not None else None,
            "predefined": list(self._predefined),
            "properties": properties,
            "advection_fields": advection_fields,
            "equations": equations,
            "export_timestamp": datetime.now().isoformat(),
        }

        return config

    def to_yaml(self, file_path: Optional[str] = None) -> str:
        """
        Export the configuration to YAML.

        Parameters
        ----------
        file_path : str, optional
            If provided, write YAML to this file path

        Returns
        -------
        str
            YAML string representation of the configuration
        """
        yaml_str = yaml.dump(self.to_dict(), default_flow_style=False, sort_keys=False)

        if file_path:
            Path(file_path).write_text(yaml_str)
            logger.info("Domain '%s': exported to %s", self.name, file_path)

        return yaml_str

    @classmethod
    def from_dict(cls, config) -> "Domain":
        """
        Build a domain from a configuration dictionary (as written by
        `to_dict` or loaded from YAML). The domain is not finalized.
        """
        domain = cls(config.get("name", "domain"))

        for loc in config.get("mesh_locations") or []:
            domain.add_mesh_location(
                loc["name"], loc["kind"], _importable(loc.get("selection"), f"mesh location '{loc['name']}'")
            )

        boundaries = config.get("boundaries") or {}
        if boundaries.get("default") is not None:
            domain.set_default_boundary(boundaries["default"])
        for name, kind in (boundaries.get("locations") or {}).items():
            domain.add_boundary(name, kind)

        for name, entry in (config.get("properties") or {}).items():
            prop = domain.add_property(name, entry["kind"])
            _define(prop, entry.get("definition"))

        for name, entry in (config.get("advection_fields") or {}).items():
            field = domain.add_advection_field(name)
            _define(field, entry.get("definition"))

        for tag in config.get("predefined") or []:
            domain.activate_predefined_equation(tag)

        for name, entry in (config.get("equations") or {}).items():
            eq = domain.add_equation(
                name,
                entry.get("field", name),
                entry.get("shape", "scalar"),
                entry.get("default_bc", "zero_value"),
            )

            for role, target in (entry.get("links") or {}).items():
                domain.link(eq, role, target)

            for key, value in (entry.get("options") or {}).items():
                if key == "post":
                    for extra in value:
                        domain.set_option(eq, "post", extra)
                else:
                    domain.set_option(eq, key, value)

            for bc in entry.get("boundary_conditions") or []:
                what = f"boundary condition of '{name}' on '{bc['location']}'"
                domain.add_boundary_condition(
                    eq, bc["location"], bc["type"], bc["method"], _importable(bc["payload"], what)
                )

            for st in entry.get("source_terms") or []:
                what = f"source term '{st.get('label')}' of '{name}'"
                term = domain.add_source_term(
                    eq,
                    st.get("label"),
                    st.get("location", "cells"),
                    st["method"],
                    _importable(st.get("payload"), what),
                )
                for key, value in (st.get("options") or {}).items():
                    term.set_option(key, value)

            for rt in entry.get("reaction_terms") or []:
                term = domain.add_reaction_term(eq, rt.get("label"), rt.get("property", "unity"))
                for key, value in (rt.get("options") or {}).items():
                    term.set_option(key, value)

        time_step = config.get("time_step")
        if time_step:
            domain.set_time_step(
                time_step.get("max_steps"),
                time_step.get("final_time"),
                time_step.get("method", "value"),
                _importable(time_step.get("payload"), "time step"),
            )

        logger.info("Domain '%s': imported configuration", domain.name)
        return domain

    @classmethod
    def from_yaml(cls, yaml_content: str = None, file_path: str = None) -> "Domain":
        """
        Build a domain from YAML.

        Parameters
        ----------
        yaml_content : str, optional
            YAML string to parse
        file_path : str, optional
            Path to YAML file to load
        """
        if file_path:
            yaml_content = Path(file_path).read_text()
        elif yaml_content is None:
            raise ValueError("Must provide either yaml_content or file_path")

        config = yaml.safe_load(yaml_content)
        return cls.from_dict(config)

    def _object_viewer(self):
        lines = [f"## Domain `{self.name}`", ""]
        lines.append(f"Default boundary: {self.default_boundary.value}")
        for name, kind in self._boundaries.items():
            lines.append(f"- `{name}`: {kind.value}")
        if self.time_step is not None:
            lines.append(f"Time step: {self.time_step.describe()}")
        lines.append("")
        for registry in (self.locations, self.properties, self.advection_fields, self.equations):
            lines.extend(registry._object_viewer())
            lines.append("")
        return lines


def _importable(payload, what):
    if isinstance(payload, dict) and payload.get("type") == "callable":
        raise InvalidOptionError(
            f"The {what} was defined by the Python callable '{payload.get('name')}', "
            "which cannot be imported from a configuration file",
            value=payload,
        )
    return payload


def _define(entity, definition):
    """Apply an exported ``{method: description}`` definition"""
    if not definition:
        return

    ((method, payload),) = definition.items()
    payload = _importable(payload, f"definition of '{entity.name}'")

    if method == "law":
        expression = _importable(payload["expression"], f"law of '{entity.name}'")
        entity.set_definition("law", expression, inputs=payload.get("inputs", ()))
    else:
        entity.set_definition(method, payload)
