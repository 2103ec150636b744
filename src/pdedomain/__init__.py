"""
pdedomain: configuration and verification layer of a mesh-based PDE solver.

Mesh locations, material properties, advection fields and equations are
declared on a `Domain`, linked term by term, given validated numerical
options and finally frozen into a `DomainSetup` that the solver core
consumes.
"""

from ._version import __version__

from ._var_types import ValueShape, EntityKind

# Needed everywhere
from pdedomain.utilities import _api_tools

import pdedomain.errors
import pdedomain.coordinates
import pdedomain.maths
import pdedomain.function
import pdedomain.mesh_location
import pdedomain.properties
import pdedomain.advection
import pdedomain.systems
import pdedomain.domain

from .errors import (
    ConfigurationError,
    DuplicateNameError,
    NotFoundError,
    ShapeMismatchError,
    InvalidOptionError,
    UnlinkedRoleError,
    OverlappingBoundaryConditionError,
    FrozenConfigurationError,
    SetupError,
    SetupWarning,
)
from .function import AnalyticFunction, ManufacturedSolution, analytic
from .domain import Domain, DomainSetup, BoundaryKind, TimeStepPolicy
