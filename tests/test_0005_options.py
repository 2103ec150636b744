"""
Tests for the closed option structures of equations and terms.
"""

import math

import pytest

import pdedomain as pd
from pdedomain.systems.options import (
    EquationOptions,
    ReactionTermOptions,
    SolverOptions,
    SourceTermOptions,
)

pytestmark = pytest.mark.level_1


class TestEquationOptions:
    def test_defaults(self):
        opts = EquationOptions()
        assert opts.discretisation.space_scheme.value == "vertex_based"
        assert opts.time.scheme.value == "implicit"
        assert opts.solver.family.value == "cs"
        assert opts.bc.enforcement.value == "strong"

    def test_theta_in_range(self):
        opts = EquationOptions().updated("time_theta", "0.5")
        assert opts.time.theta == 0.5

    @pytest.mark.parametrize("theta", ["1.5", "-0.1", "half"])
    def test_theta_out_of_range(self, theta):
        with pytest.raises(pd.InvalidOptionError) as e:
            EquationOptions().updated("time_theta", theta, entity="user_1")

        assert e.value.key == "time_theta"
        assert e.value.value == theta
        assert e.value.entity == "user_1"

    def test_updated_returns_copy(self):
        opts = EquationOptions()
        new = opts.updated("itsol", "gmres")
        assert opts.solver.method.value == "cg"
        assert new.solver.method.value == "gmres"

    def test_unknown_key(self):
        with pytest.raises(pd.InvalidOptionError):
            EquationOptions().updated("itsol_tolerance", 1e-8)

    def test_unknown_value(self):
        with pytest.raises(pd.InvalidOptionError):
            EquationOptions().updated("itsol", "minres")

    @pytest.mark.parametrize(
        "key, value, group, field, expected",
        [
            ("space_scheme", "cdo_vb", "discretisation", "space_scheme", "vertex_based"),
            ("scheme_space", "cdo_fb", "discretisation", "space_scheme", "face_based"),
            ("bc_enforcement", "nitsche", "bc", "enforcement", "weak_nitsche"),
            ("bc_enforcement", "weak", "bc", "enforcement", "weak_nitsche"),
            ("bc_enforcement", "weak_sym", "bc", "enforcement", "weak_sym_nitsche"),
            ("bc_enforcement", "Penalization", "bc", "enforcement", "penalization"),
            ("time_scheme", "theta_scheme", "time", "scheme", "theta"),
            ("hodge_diff_algo", "wbs", "discretisation", "hodge_diff_algo", "whitney_bary"),
            ("bc_quadrature", "higher", "bc", "quadrature", "higher"),
            ("adv_weight", "samarskii", "advection", "weight", "samarskii"),
            ("adv_weight_criterion", "flux", "advection", "criterion", "flux"),
        ],
    )
    def test_aliases(self, key, value, group, field, expected):
        opts = EquationOptions().updated(key, value)
        assert getattr(getattr(opts, group), field).value == expected

    @pytest.mark.parametrize(
        "value, expected", [("dga", 1.0 / 3.0), ("sushi", 1.0 / math.sqrt(3.0)), ("gcr", 1.0), ("0.25", 0.25)]
    )
    def test_hodge_coefficients(self, value, expected):
        opts = EquationOptions().updated("hodge_diff_coef", value)
        assert opts.discretisation.hodge_diff_coef == pytest.approx(expected)

    def test_hodge_coefficient_must_be_positive(self):
        with pytest.raises(pd.InvalidOptionError):
            EquationOptions().updated("hodge_diff_coef", "0")

    @pytest.mark.parametrize(
        "key, value",
        [
            ("itsol_eps", float("inf")),
            ("itsol_eps", "nan"),
            ("hodge_diff_coef", float("inf")),
            ("hodge_time_coef", "inf"),
        ],
    )
    def test_numbers_must_be_finite(self, key, value):
        with pytest.raises(pd.InvalidOptionError) as e:
            EquationOptions().updated(key, value)
        assert e.value.key == key

    def test_numbers_from_strings(self):
        opts = EquationOptions()
        opts = opts.updated("itsol_max_iter", "2500")
        opts = opts.updated("itsol_eps", "1e-12")
        opts = opts.updated("itsol_resnorm", "true")
        opts = opts.updated("verbosity", "2")
        opts = opts.updated("post_freq", "0")

        assert opts.solver.max_iter == 2500
        assert opts.solver.tolerance == 1e-12
        assert opts.solver.use_residual_norm is True
        assert opts.output.verbosity == 2
        assert opts.output.post_freq == 0

    def test_post_accumulates(self):
        opts = EquationOptions().updated("post", "peclet").updated("post", "upwind_coef")
        assert [e.value for e in opts.output.extras] == ["peclet", "upwind_coef"]

        opts = opts.updated("post", "peclet")
        assert len(opts.output.extras) == 2

    @pytest.mark.parametrize(
        "scheme, theta", [("implicit", 1.0), ("explicit", 0.0), ("crank_nicolson", 0.5)]
    )
    def test_effective_theta(self, scheme, theta):
        opts = EquationOptions().updated("time_scheme", scheme).updated("time_theta", "0.3")
        assert opts.time.effective_theta == theta

    def test_effective_theta_of_theta_scheme(self):
        opts = EquationOptions().updated("time_scheme", "theta").updated("time_theta", "0.3")
        assert opts.time.effective_theta == pytest.approx(0.3)

    def test_flat_dict(self):
        flat = EquationOptions().updated("post", "peclet").as_flat_dict()
        assert flat["space_scheme"] == "vertex_based"
        assert flat["post"] == ["peclet"]
        assert "scheme_space" not in flat


class TestSolverOptions:
    @pytest.mark.parametrize("precond", ["ssor", "as"])
    def test_petsc_only_preconditioners(self, precond):
        opts = SolverOptions().updated("preconditioner", precond)
        assert opts.issues()

        opts = opts.updated("family", "petsc")
        assert not opts.issues()

    def test_poly1_is_not_petsc(self):
        opts = SolverOptions(family="petsc", preconditioner="poly1")
        assert opts.issues()

    def test_petsc_options(self):
        opts = SolverOptions(family="petsc", method="cg", preconditioner="ssor", tolerance=1e-10)
        petsc = opts.to_petsc_options(prefix="user_1")

        assert petsc["user_1_ksp_type"] == "cg"
        assert petsc["user_1_pc_type"] == "sor"
        assert "user_1_pc_sor_symmetric" in petsc
        assert float(petsc["user_1_ksp_rtol"]) == 1e-10

    def test_amg_method(self):
        petsc = SolverOptions(method="amg", family="petsc").to_petsc_options()
        assert petsc["ksp_type"] == "richardson"
        assert petsc["pc_type"] == "gamg"

    def test_frozen(self):
        opts = SolverOptions()
        with pytest.raises(Exception):
            opts.max_iter = 10


class TestTermOptions:
    def test_source_term_defaults(self):
        opts = SourceTermOptions()
        assert opts.quadrature.value == "bary"
        assert opts.post == -1

    def test_source_term_post(self):
        assert SourceTermOptions().updated("post", "0").post == 0
        with pytest.raises(pd.InvalidOptionError):
            SourceTermOptions().updated("post", "-2")

    def test_reaction_term(self):
        opts = ReactionTermOptions()
        assert opts.hodge_algo.value == "voronoi"
        assert opts.hodge_coef == pytest.approx(1.0 / 3.0)

        opts = opts.updated("hodge_algo", "wbs").updated("lumping", "true").updated("hodge_coef", "sushi")
        assert opts.hodge_algo.value == "whitney_bary"
        assert opts.lumping is True
        assert opts.hodge_coef == pytest.approx(1.0 / math.sqrt(3.0))

    def test_unknown_term_option(self):
        with pytest.raises(pd.InvalidOptionError):
            ReactionTermOptions().updated("quadrature", "bary")
