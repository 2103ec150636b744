"""
Named subsets of mesh entities.

A mesh location names a family of entities (cells, interior faces,
boundary faces or vertices) and an optional selection. Everything else in a
domain - boundary classification, boundary conditions, source terms - is
scoped by location name.

The selection is never evaluated against a mesh here; that is the job of
the solver core's mesh selection evaluator. What this module does provide
is the overlap test used to reject boundary conditions that would cover
the same entities twice.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np
import sympy

from pdedomain._var_types import EntityKind
from pdedomain.coordinates import X, canonicalise, parse_expression
from pdedomain.errors import DuplicateNameError, InvalidOptionError, NotFoundError
from pdedomain.utilities._api_tools import setup_object

logger = logging.getLogger(__name__)


def _normalise_selection(name, selection):
    """Validate a selection and convert strings into sympy relations"""

    if selection is None or callable(selection) and not isinstance(selection, sympy.Basic):
        return selection

    if isinstance(selection, str):
        try:
            selection = parse_expression(selection)
        except (sympy.SympifyError, SyntaxError, TypeError) as e:
            raise InvalidOptionError(
                f"Mesh location '{name}': cannot parse selection '{selection}' ({e})",
                entity=name,
                key="selection",
                value=selection,
            )

    if isinstance(selection, sympy.Basic):
        selection = canonicalise(selection)
        if not isinstance(selection, sympy.logic.boolalg.Boolean):
            raise InvalidOptionError(
                f"Mesh location '{name}': selection {selection} is not a condition",
                entity=name,
                key="selection",
                value=selection,
            )
        unknown = selection.free_symbols - set(X)
        if unknown:
            raise InvalidOptionError(
                f"Mesh location '{name}': selection uses {sorted(map(str, unknown))}; "
                "only x, y, z are allowed",
                entity=name,
                key="selection",
                value=selection,
            )
        return selection

    if isinstance(selection, Iterable):
        try:
            return frozenset(int(i) for i in selection)
        except (TypeError, ValueError):
            pass

    raise InvalidOptionError(
        f"Mesh location '{name}': unsupported selection {selection!r}",
        entity=name,
        key="selection",
        value=selection,
    )


@dataclass(frozen=True)
class MeshLocation:
    """
    A named, immutable selection of mesh entities.

    Attributes
    ----------
    name : str
        Unique name
    kind : EntityKind
        Family of entities selected
    selection : object
        ``None`` (all entities of the kind), a sympy condition on
        ``x, y, z``, a predicate on entity centres, or a frozenset of ids
    predefined : bool
        True for the four locations that always exist
    """

    name: str
    kind: EntityKind
    selection: Any = None
    predefined: bool = False

    @property
    def selects_all(self):
        return self.selection is None

    @property
    def is_symbolic(self):
        return isinstance(self.selection, sympy.Basic)

    @property
    def is_explicit(self):
        return isinstance(self.selection, frozenset)

    def select(self, centers):
        """
        Boolean mask of the entities (given by their centres) in this location.

        Explicit id selections cannot be applied to coordinates and raise
        ``InvalidOptionError``.
        """
        centers = np.asarray(centers, dtype=np.double).reshape(-1, 3)
        n = centers.shape[0]

        if self.selection is None:
            return np.ones(n, dtype=bool)

        if self.is_explicit:
            raise InvalidOptionError(
                f"Mesh location '{self.name}' is defined by entity ids, not coordinates",
                entity=self.name,
            )

        if self.is_symbolic:
            fn = sympy.lambdify(X, self.selection, modules="numpy")
            mask = fn(centers[:, 0], centers[:, 1], centers[:, 2])
        else:
            mask = self.selection(centers)

        return np.broadcast_to(np.asarray(mask, dtype=bool), (n,)).copy()

    def describe_selection(self):
        if self.selection is None:
            return None
        if self.is_symbolic:
            return str(self.selection)
        if self.is_explicit:
            return sorted(self.selection)
        return {
            "type": "callable",
            "name": getattr(self.selection, "__qualname__", repr(self.selection)),
        }


def _symbolic_overlap(a, b):
    """Exact overlap of two univariate conditions, or None if undecidable"""

    variables = a.free_symbols | b.free_symbols
    if len(variables) != 1:
        return None

    (var,) = variables
    try:
        intersection = sympy.And(a, b).as_set()
    except (NotImplementedError, TypeError, ValueError):
        return None

    if intersection.is_empty is None:
        return None

    logger.debug("Overlap of (%s) and (%s) on %s: %s", a, b, var, intersection)
    return not intersection.is_empty


def overlap(a: MeshLocation, b: MeshLocation, probe_points=None) -> Optional[bool]:
    """
    Decide whether two locations share any entity.

    Returns True or False when it can be decided, None otherwise.

    Rules, in order:

    1. different entity kinds never overlap
    2. a location overlaps itself, and an all-entity location overlaps
       every location of its kind
    3. explicit id sets overlap if they intersect
    4. univariate symbolic conditions are intersected exactly
    5. with ``probe_points`` (entity centres supplied by the caller), the
       two masks are compared
    """

    if a.kind != b.kind:
        return False

    if a.name == b.name or a.selects_all or b.selects_all:
        return True

    if a.is_explicit and b.is_explicit:
        return bool(a.selection & b.selection)

    if a.is_symbolic and b.is_symbolic:
        decided = _symbolic_overlap(a.selection, b.selection)
        if decided is not None:
            return decided

    if probe_points is not None and not (a.is_explicit or b.is_explicit):
        return bool(np.any(a.select(probe_points) & b.select(probe_points)))

    return None


class MeshLocationRegistry(setup_object):
    """
    Registry of named mesh locations.

    The predefined locations ``cells``, ``interior_faces``,
    ``boundary_faces`` and ``vertices`` always exist. User locations are
    added once and are immutable afterwards.

    Example:
    --------
    >>> locations = MeshLocationRegistry()
    >>> locations.add("in", "boundary_faces", "x < 1e-5")
    >>> locations.resolve("in").kind
    <EntityKind.BOUNDARY_FACES: 'boundary_faces'>
    """

    def __init__(self):
        super().__init__()
        self._locations: Dict[str, MeshLocation] = {}

        for kind in EntityKind:
            self._locations[kind.value] = MeshLocation(kind.value, kind, None, predefined=True)

    def add(self, name: str, kind, selection=None) -> MeshLocation:
        """
        Register a new location.

        Parameters
        ----------
        name : str
            Unique location name
        kind : EntityKind or str
            Entity family, e.g. ``"boundary_faces"``
        selection : str, sympy condition, callable or iterable of int, optional
            Which entities of that family belong to the location
        """
        self._check_mutable()

        if name in self._locations:
            raise DuplicateNameError(
                f"Mesh location '{name}' already exists", entity=name
            )

        try:
            kind = EntityKind(kind)
        except ValueError:
            raise InvalidOptionError(
                f"Mesh location '{name}': unknown entity kind '{kind}'; "
                f"expected one of {[k.value for k in EntityKind]}",
                entity=name,
                key="kind",
                value=kind,
            )

        location = MeshLocation(name, kind, _normalise_selection(name, selection))
        self._locations[name] = location
        self._increment()

        logger.debug("Added mesh location '%s' (%s)", name, kind.value)
        return location

    def resolve(self, name: str) -> MeshLocation:
        """Location by name (raises NotFoundError)"""
        try:
            return self._locations[name]
        except KeyError:
            raise NotFoundError(
                f"Mesh location '{name}' is not defined; known locations: "
                f"{self.names()}",
                entity=name,
            )

    get = resolve

    def names(self) -> List[str]:
        return list(self._locations.keys())

    def overlap(self, name_a: str, name_b: str, probe_points=None) -> Optional[bool]:
        return overlap(self.resolve(name_a), self.resolve(name_b), probe_points)

    def __contains__(self, name):
        return name in self._locations

    def __iter__(self):
        return iter(self._locations.values())

    def __len__(self):
        return len(self._locations)

    def _object_viewer(self):
        lines = ["**Mesh locations**", ""]
        for loc in self._locations.values():
            tag = " (predefined)" if loc.predefined else ""
            lines.append(f"- `{loc.name}`: {loc.kind.value}{tag} {loc.describe_selection() or ''}")
        return lines
