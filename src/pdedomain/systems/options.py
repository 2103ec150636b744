"""
Numerical options of equations and their terms.

Options are closed, validated structures - one pydantic model per concern
(linear solver, time scheme, space discretisation, boundary enforcement,
advection, output) - rather than free-form string maps. The string keys
used in setup scripts and configuration files (``"itsol"``,
``"time_theta"``, ...) are translated into a field of one of these models
and validated on the spot, so an unknown key or an out-of-range value is
reported at the call that introduced it.

Example
-------
>>> opts = EquationOptions()
>>> opts = opts.updated("time_scheme", "theta")
>>> opts = opts.updated("time_theta", "0.5")
>>> opts.time.effective_theta
0.5
>>> opts.updated("time_theta", "1.5")
Traceback (most recent call last):
...
pdedomain.errors.InvalidOptionError: Invalid value '1.5' for option 'time_theta' ...
"""

import math
from enum import Enum
from typing import Dict, List, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pdedomain.errors import InvalidOptionError


def _normalise(value, aliases=None):
    """Lower-case strings and map accepted aliases onto canonical values"""
    if isinstance(value, str):
        value = value.strip().lower()
        if aliases:
            value = aliases.get(value, value)
    return value


# Named Hodge coefficients of the "cost" algorithm
HODGE_COEFFICIENTS = {
    "dga": 1.0 / 3.0,
    "sushi": 1.0 / math.sqrt(3.0),
    "gcr": 1.0,
}


def _hodge_coefficient(value):
    value = _normalise(value)
    if isinstance(value, str) and value in HODGE_COEFFICIENTS:
        return HODGE_COEFFICIENTS[value]
    return value


class SpaceScheme(str, Enum):
    VERTEX_BASED = "vertex_based"
    FACE_BASED = "face_based"


class TimeScheme(str, Enum):
    IMPLICIT = "implicit"
    EXPLICIT = "explicit"
    CRANK_NICOLSON = "crank_nicolson"
    THETA = "theta"


class SolverFamily(str, Enum):
    CS = "cs"
    PETSC = "petsc"


class IterativeMethod(str, Enum):
    CG = "cg"
    BICG = "bicg"
    GMRES = "gmres"
    AMG = "amg"


class Preconditioner(str, Enum):
    JACOBI = "jacobi"
    POLY1 = "poly1"
    SSOR = "ssor"
    ILU0 = "ilu0"
    ICC0 = "icc0"
    AMG = "amg"
    AS = "as"


class BCEnforcement(str, Enum):
    STRONG = "strong"
    PENALIZATION = "penalization"
    WEAK_NITSCHE = "weak_nitsche"
    WEAK_SYM_NITSCHE = "weak_sym_nitsche"


class Quadrature(str, Enum):
    """
    Integration of analytic data over a mesh entity.

    ``subdiv`` splits into tetrahedra, ``bary`` uses the barycentre,
    ``higher`` and ``highest`` use 4 and 5 Gauss points on the subdivision.
    """

    SUBDIV = "subdiv"
    BARY = "bary"
    HIGHER = "higher"
    HIGHEST = "highest"

    @property
    def subdivides(self):
        return self != Quadrature.BARY


class HodgeAlgo(str, Enum):
    VORONOI = "voronoi"
    COST = "cost"
    WHITNEY_BARY = "whitney_bary"


class AdvectionWeight(str, Enum):
    UPWIND = "upwind"
    CENTERED = "centered"
    SAMARSKII = "samarskii"
    SG = "sg"
    D10G5 = "d10g5"


class AdvectionCriterion(str, Enum):
    XEXC = "xexc"
    FLUX = "flux"


class PostExtra(str, Enum):
    PECLET = "peclet"
    UPWIND_COEF = "upwind_coef"


_SPACE_ALIASES = {"cdo_vb": "vertex_based", "cdo_fb": "face_based"}
_TIME_ALIASES = {"theta_scheme": "theta", "cn": "crank_nicolson"}
_ENFORCEMENT_ALIASES = {
    "nitsche": "weak_nitsche",
    "weak": "weak_nitsche",
    "sym_nitsche": "weak_sym_nitsche",
    "weak_sym": "weak_sym_nitsche",
}
_HODGE_ALIASES = {"wbs": "whitney_bary"}


class OptionSet(BaseModel):
    """Immutable, validated group of options"""

    model_config = ConfigDict(frozen=True, extra="forbid", allow_inf_nan=False)

    def updated(self, field, value, key=None, entity=None):
        """
        Copy with one field replaced, validated.

        Raises ``InvalidOptionError`` for unknown fields and invalid values.
        """
        key = key or field

        if field not in type(self).model_fields:
            raise InvalidOptionError(
                f"Unknown option '{key}'"
                + (f" for '{entity}'" if entity else "")
                + f"; expected one of {sorted(type(self).model_fields)}",
                entity=entity,
                key=key,
                value=value,
            )

        data = self.model_dump()
        data[field] = value

        try:
            return type(self).model_validate(data)
        except ValidationError as e:
            reasons = "; ".join(err["msg"] for err in e.errors())
            raise InvalidOptionError(
                f"Invalid value {value!r} for option '{key}'"
                + (f" of '{entity}'" if entity else "")
                + f": {reasons}",
                entity=entity,
                key=key,
                value=value,
            )


class SolverOptions(OptionSet):
    """Linear solver family, method, preconditioner and stopping criteria"""

    family: SolverFamily = SolverFamily.CS
    method: IterativeMethod = IterativeMethod.CG
    preconditioner: Preconditioner = Preconditioner.JACOBI
    max_iter: int = Field(default=10000, gt=0)
    tolerance: float = Field(default=1.0e-12, gt=0)
    use_residual_norm: bool = False

    @field_validator("family", "method", "preconditioner", mode="before")
    @classmethod
    def _lower(cls, value):
        return _normalise(value)

    def issues(self) -> List[str]:
        """Combinations that the selected family does not provide"""
        problems = []
        if self.family != SolverFamily.PETSC and self.preconditioner in (
            Preconditioner.SSOR,
            Preconditioner.AS,
        ):
            problems.append(
                f"preconditioner '{self.preconditioner.value}' needs solver_family 'petsc'"
            )
        if self.family == SolverFamily.PETSC and self.preconditioner == Preconditioner.POLY1:
            problems.append("preconditioner 'poly1' needs solver_family 'cs'")
        return problems

    def to_petsc_options(self, prefix: str = "") -> Dict[str, str]:
        """
        Convert to a PETSc options dictionary.

        Returns
        -------
        dict
            PETSc options (option name without leading dash -> value string)
        """
        ksp = {
            IterativeMethod.CG: "cg",
            IterativeMethod.BICG: "bcgs",
            IterativeMethod.GMRES: "gmres",
            IterativeMethod.AMG: "richardson",
        }[self.method]

        pc = {
            Preconditioner.JACOBI: "jacobi",
            Preconditioner.SSOR: "sor",
            Preconditioner.ILU0: "ilu",
            Preconditioner.ICC0: "icc",
            Preconditioner.AMG: "gamg",
            Preconditioner.AS: "asm",
            Preconditioner.POLY1: "jacobi",
        }[self.preconditioner]

        if self.method == IterativeMethod.AMG:
            pc = "gamg"

        p = f"{prefix}_" if prefix else ""
        petsc_opts = {
            f"{p}ksp_type": ksp,
            f"{p}pc_type": pc,
            f"{p}ksp_max_it": str(self.max_iter),
            f"{p}ksp_rtol": str(self.tolerance),
        }

        if self.preconditioner == Preconditioner.SSOR:
            petsc_opts[f"{p}pc_sor_symmetric"] = ""
        if self.use_residual_norm:
            petsc_opts[f"{p}ksp_norm_type"] = "unpreconditioned"

        return petsc_opts


class TimeOptions(OptionSet):
    """Time scheme; ``theta`` is only used by the ``theta`` scheme"""

    scheme: TimeScheme = TimeScheme.IMPLICIT
    theta: float = Field(default=1.0, ge=0.0, le=1.0)

    @field_validator("scheme", mode="before")
    @classmethod
    def _alias(cls, value):
        return _normalise(value, _TIME_ALIASES)

    @property
    def effective_theta(self) -> float:
        return {
            TimeScheme.IMPLICIT: 1.0,
            TimeScheme.EXPLICIT: 0.0,
            TimeScheme.CRANK_NICOLSON: 0.5,
        }.get(self.scheme, self.theta)


class DiscretisationOptions(OptionSet):
    """Space scheme and discrete Hodge operators of the diffusion and time terms"""

    space_scheme: SpaceScheme = SpaceScheme.VERTEX_BASED
    hodge_diff_algo: HodgeAlgo = HodgeAlgo.COST
    hodge_diff_coef: float = Field(default=HODGE_COEFFICIENTS["dga"], gt=0)
    hodge_time_algo: HodgeAlgo = HodgeAlgo.VORONOI
    hodge_time_coef: float = Field(default=HODGE_COEFFICIENTS["dga"], gt=0)

    @field_validator("space_scheme", mode="before")
    @classmethod
    def _space_alias(cls, value):
        return _normalise(value, _SPACE_ALIASES)

    @field_validator("hodge_diff_algo", "hodge_time_algo", mode="before")
    @classmethod
    def _hodge_alias(cls, value):
        return _normalise(value, _HODGE_ALIASES)

    @field_validator("hodge_diff_coef", "hodge_time_coef", mode="before")
    @classmethod
    def _named_coef(cls, value):
        return _hodge_coefficient(value)


class BoundaryOptions(OptionSet):
    """Enforcement of boundary conditions and quadrature of analytic data"""

    enforcement: BCEnforcement = BCEnforcement.STRONG
    quadrature: Quadrature = Quadrature.BARY

    @field_validator("enforcement", mode="before")
    @classmethod
    def _alias(cls, value):
        return _normalise(value, _ENFORCEMENT_ALIASES)

    @field_validator("quadrature", mode="before")
    @classmethod
    def _lower(cls, value):
        return _normalise(value)


class AdvectionOptions(OptionSet):
    weight: AdvectionWeight = AdvectionWeight.UPWIND
    criterion: AdvectionCriterion = AdvectionCriterion.XEXC

    @field_validator("weight", "criterion", mode="before")
    @classmethod
    def _lower(cls, value):
        return _normalise(value)


class OutputOptions(OptionSet):
    """Verbosity and post-processing (``post_freq = 0``: initial state only)"""

    verbosity: int = Field(default=0, ge=0)
    post_freq: int = Field(default=10, ge=0)
    extras: Tuple[PostExtra, ...] = ()

    @field_validator("extras", mode="before")
    @classmethod
    def _lower(cls, value):
        if isinstance(value, str):
            value = (value,)
        return tuple(dict.fromkeys(_normalise(v) for v in value))


# Setup key -> (group, field)
OPTION_KEYS = {
    "space_scheme": ("discretisation", "space_scheme"),
    "scheme_space": ("discretisation", "space_scheme"),
    "hodge_diff_algo": ("discretisation", "hodge_diff_algo"),
    "hodge_diff_coef": ("discretisation", "hodge_diff_coef"),
    "hodge_time_algo": ("discretisation", "hodge_time_algo"),
    "hodge_time_coef": ("discretisation", "hodge_time_coef"),
    "solver_family": ("solver", "family"),
    "itsol": ("solver", "method"),
    "precond": ("solver", "preconditioner"),
    "itsol_max_iter": ("solver", "max_iter"),
    "itsol_eps": ("solver", "tolerance"),
    "itsol_resnorm": ("solver", "use_residual_norm"),
    "bc_enforcement": ("bc", "enforcement"),
    "bc_quadrature": ("bc", "quadrature"),
    "time_scheme": ("time", "scheme"),
    "time_theta": ("time", "theta"),
    "adv_weight": ("advection", "weight"),
    "adv_weight_criterion": ("advection", "criterion"),
    "verbosity": ("output", "verbosity"),
    "post_freq": ("output", "post_freq"),
    "post": ("output", "extras"),
}


class EquationOptions(BaseModel):
    """All numerical options of one equation, grouped by concern"""

    model_config = ConfigDict(frozen=True, extra="forbid")

    solver: SolverOptions = SolverOptions()
    time: TimeOptions = TimeOptions()
    discretisation: DiscretisationOptions = DiscretisationOptions()
    bc: BoundaryOptions = BoundaryOptions()
    advection: AdvectionOptions = AdvectionOptions()
    output: OutputOptions = OutputOptions()

    def updated(self, key, value, entity=None) -> "EquationOptions":
        """
        Copy with the option ``key`` set to ``value``.

        The ``post`` key adds a post-processing extra; every other key
        replaces the previous value.
        """
        try:
            group, field = OPTION_KEYS[key]
        except KeyError:
            raise InvalidOptionError(
                f"Unknown option '{key}'"
                + (f" for equation '{entity}'" if entity else "")
                + f"; expected one of {sorted(OPTION_KEYS)}",
                entity=entity,
                key=key,
                value=value,
            )

        current = getattr(self, group)

        if key == "post":
            value = tuple(e.value for e in current.extras) + (value,)

        new_group = current.updated(field, value, key=key, entity=entity)
        return self.model_copy(update={group: new_group})

    def issues(self) -> List[str]:
        return self.solver.issues()

    def as_flat_dict(self) -> Dict[str, object]:
        """Options keyed by their setup key (for export)"""
        flat = {}
        for key, (group, field) in OPTION_KEYS.items():
            if key in ("scheme_space",):
                continue
            value = getattr(getattr(self, group), field)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, tuple):
                value = [v.value for v in value]
            flat[key] = value
        return flat


class SourceTermOptions(OptionSet):
    """Per source term: quadrature and post-processing (-1: none, 0: initial, n: every n)"""

    quadrature: Quadrature = Quadrature.BARY
    post: int = Field(default=-1, ge=-1)

    @field_validator("quadrature", mode="before")
    @classmethod
    def _lower(cls, value):
        return _normalise(value)


class ReactionTermOptions(OptionSet):
    """Per reaction term: discrete Hodge operator and its treatment"""

    hodge_algo: HodgeAlgo = HodgeAlgo.VORONOI
    hodge_coef: float = Field(default=HODGE_COEFFICIENTS["dga"], gt=0)
    lumping: bool = False
    inv_pty: bool = False

    @field_validator("hodge_algo", mode="before")
    @classmethod
    def _hodge_alias(cls, value):
        return _normalise(value, _HODGE_ALIASES)

    @field_validator("hodge_coef", mode="before")
    @classmethod
    def _named_coef(cls, value):
        return _hodge_coefficient(value)
