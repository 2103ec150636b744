"""
Equations, their terms and their numerical options.
"""

from .options import (
    EquationOptions,
    SolverOptions,
    TimeOptions,
    DiscretisationOptions,
    BoundaryOptions,
    AdvectionOptions,
    OutputOptions,
    SourceTermOptions,
    ReactionTermOptions,
    OPTION_KEYS,
)
from .terms import BCType, BoundaryCondition, DefaultBC, DefinitionMethod, ReactionTerm, SourceTerm
from .equations import Equation, EquationRegistry, Role
