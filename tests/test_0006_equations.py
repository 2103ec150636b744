"""
Tests for the equation registry and linker.
"""

import warnings

import numpy as np
import pytest

import pdedomain as pd
from pdedomain.systems import BCType, Role

pytestmark = pytest.mark.level_1


@pytest.fixture
def setup(domain):
    domain.add_mesh_location("in", "boundary_faces", "x < 1e-5")
    domain.add_mesh_location("out", "boundary_faces", "x > 0.99999")
    domain.add_mesh_location("left_half", "boundary_faces", "x < 0.5")
    domain.add_mesh_location("core", "cells", "(x - 0.5)**2 + (y - 0.5)**2 < 0.1")

    k = domain.add_property("conductivity", "anisotropic")
    k.def_by_value("1.0 0.5 0.0\n0.5 1.0 0.5\n0.0 0.5 1.0")
    domain.add_property("rho_cp", "isotropic").def_by_value(2.0)
    domain.add_property("k_iso", "isotropic").def_by_value(1.0)

    domain.add_advection_field("adv_field").def_by_analytic(["y - 0.5", "0.5 - x", "z"])

    eq = domain.add_equation("user_1", "potential", "scalar", "zero_value")
    return domain, eq


class TestEquations:
    def test_add_and_get(self, setup):
        domain, eq = setup
        assert domain.get_equation("user_1") is eq
        assert eq.field_name == "potential"
        assert eq.value_shape == pd.ValueShape.SCALAR
        assert eq.default_bc.value == "zero_value"
        assert not eq.is_unsteady

    def test_duplicate(self, setup):
        domain, _ = setup
        with pytest.raises(pd.DuplicateNameError):
            domain.add_equation("user_1", "other")

    def test_invalid_shape_and_default_bc(self, domain):
        with pytest.raises(pd.InvalidOptionError):
            domain.add_equation("a", "a", "matrix")
        with pytest.raises(pd.InvalidOptionError):
            domain.add_equation("b", "b", "scalar", "zero")

    def test_unknown_equation(self, setup):
        domain, _ = setup
        with pytest.raises(pd.NotFoundError):
            domain.link("user_2", "diffusion", "conductivity")


class TestLinks:
    def test_link_by_name_and_object(self, setup):
        domain, eq = setup
        domain.link(eq, "diffusion", "conductivity")
        domain.link("user_1", "advection", domain.get_advection_field("adv_field"))
        domain.link(eq, "time", "rho_cp")

        assert eq.linked("diffusion").name == "conductivity"
        assert eq.linked(Role.ADVECTION).name == "adv_field"
        assert eq.is_unsteady

    def test_relink_keeps_last(self, setup):
        domain, eq = setup
        domain.link(eq, "diffusion", "conductivity")

        with pytest.warns(pd.SetupWarning):
            domain.link(eq, "diffusion", "k_iso")

        assert eq.linked("diffusion").name == "k_iso"
        assert list(eq.links) == [Role.DIFFUSION]

    def test_relink_is_logged(self, setup, pdedomain_logs):
        domain, eq = setup
        domain.link(eq, "diffusion", "conductivity")
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            domain.link(eq, "diffusion", "k_iso")

        assert any(
            r.levelname == "WARNING" and "now linked to 'k_iso'" in r.getMessage()
            for r in pdedomain_logs.records
        )

    @pytest.mark.parametrize(
        "role, target", [("diffusion", "adv_field"), ("time", "adv_field"), ("advection", "conductivity")]
    )
    def test_wrong_target_type(self, setup, role, target):
        domain, eq = setup
        with pytest.raises(pd.InvalidOptionError):
            domain.link(eq, role, target)

    def test_wrong_target_object(self, setup):
        domain, eq = setup
        with pytest.raises(pd.InvalidOptionError):
            domain.link(eq, "advection", domain.get_property("conductivity"))

    def test_time_property_must_be_isotropic(self, setup):
        domain, eq = setup
        with pytest.raises(pd.ShapeMismatchError):
            domain.link(eq, "time", "conductivity")

    def test_unknown_role(self, setup):
        domain, eq = setup
        with pytest.raises(pd.InvalidOptionError):
            domain.link(eq, "reaction", "k_iso")

    def test_unknown_target(self, setup):
        domain, eq = setup
        with pytest.raises(pd.NotFoundError):
            domain.link(eq, "diffusion", "missing")


class TestBoundaryConditions:
    def test_value_and_analytic(self, setup):
        domain, eq = setup
        bc_in = domain.add_boundary_condition(eq, "in", "dirichlet", "value", 1.0)
        bc_out = domain.add_boundary_condition(eq, "out", "dirichlet", "analytic", "1 + y*z")

        assert bc_in.bc_type == BCType.DIRICHLET
        assert bc_in(0.0, (0.0, 0.3, 0.3)) == 1.0
        assert bc_out(0.0, (1.0, 2.0, 3.0)) == pytest.approx(7.0)
        assert len(eq.boundary_conditions) == 2

    def test_location_must_exist(self, setup):
        domain, eq = setup
        with pytest.raises(pd.NotFoundError):
            domain.add_boundary_condition(eq, "nowhere", "dirichlet", "value", 0.0)

    def test_location_must_be_on_the_boundary(self, setup):
        domain, eq = setup
        with pytest.raises(pd.InvalidOptionError):
            domain.add_boundary_condition(eq, "core", "dirichlet", "value", 0.0)

    def test_vertices_are_accepted(self, setup):
        domain, eq = setup
        domain.add_boundary_condition(eq, "vertices", "dirichlet", "value", 0.0)

    def test_payload_shape(self, setup):
        domain, eq = setup
        with pytest.raises(pd.ShapeMismatchError):
            domain.add_boundary_condition(eq, "in", "dirichlet", "value", [1.0, 0.0, 0.0])
        with pytest.raises(pd.ShapeMismatchError):
            domain.add_boundary_condition(eq, "in", "neumann", "analytic", ["x", "y", "z"])

    def test_vector_equation(self, domain):
        domain.add_mesh_location("in", "boundary_faces", "x < 1e-5")
        eq = domain.add_equation("velocity", "u", "vector", "zero_value")
        bc = domain.add_boundary_condition(eq, "in", "dirichlet", "value", "1 0 0")
        assert np.allclose(bc(0.0, (0.0, 0.0, 0.0)), [1.0, 0.0, 0.0])

        with pytest.raises(pd.ShapeMismatchError):
            domain.add_boundary_condition(eq, "in", "robin", "value", [1.0, 1.0, 0.0])

    def test_robin(self, setup):
        domain, eq = setup
        bc = domain.add_boundary_condition(eq, "in", "robin", "value", [1.0, 0.5, 2.0])
        assert np.allclose(bc(0.0, (0.0, 0.0, 0.0)), [1.0, 0.5, 2.0])

        with pytest.raises(pd.ShapeMismatchError):
            domain.add_boundary_condition(eq, "out", "robin", "value", 1.0)

    @pytest.mark.parametrize("bc_type, method", [("periodic", "value"), ("dirichlet", "user"), ("dirichlet", "table")])
    def test_invalid_type_or_method(self, setup, bc_type, method):
        domain, eq = setup
        with pytest.raises(pd.InvalidOptionError):
            domain.add_boundary_condition(eq, "in", bc_type, method, 0.0)


class TestSourceTerms:
    def test_add(self, setup):
        domain, eq = setup
        st = domain.add_source_term(eq, "SourceTerm", "cells", "analytic", "1 + x")
        assert st.location.name == "cells"
        assert st(0.0, (1.0, 0.0, 0.0)) == pytest.approx(2.0)
        assert eq.source_term("SourceTerm") is st

    def test_duplicate_label(self, setup):
        domain, eq = setup
        domain.add_source_term(eq, "SourceTerm", "cells", "value", 1.0)
        with pytest.raises(pd.DuplicateNameError):
            domain.add_source_term(eq, "SourceTerm", "core", "value", 2.0)

    def test_unlabelled_terms(self, setup):
        domain, eq = setup
        domain.add_source_term(eq, None, "cells", "value", 1.0)
        domain.add_source_term(eq, None, "core", "value", 2.0)
        assert len(eq.source_terms) == 2

    def test_user_payload(self, setup):
        domain, eq = setup

        def heat(time, position):
            return 3.0

        st = domain.add_source_term(eq, "user", "cells", "user", heat)
        assert st(0.0, (0.0, 0.0, 0.0)) == 3.0

        with pytest.raises(pd.InvalidOptionError):
            domain.add_source_term(eq, "not_callable", "cells", "user", 3.0)

    def test_option_last_write_wins(self, setup):
        domain, eq = setup
        domain.add_source_term(eq, "SourceTerm", "cells", "analytic", "1 + x")

        domain.set_source_term_option(eq, "SourceTerm", "quadrature", "bary")
        domain.set_source_term_option(eq, "SourceTerm", "quadrature", "subdiv")

        assert eq.source_term("SourceTerm").options.quadrature.value == "subdiv"

    def test_option_broadcast(self, setup):
        domain, eq = setup
        a = domain.add_source_term(eq, "a", "cells", "value", 1.0)
        b = domain.add_source_term(eq, "b", "core", "value", 1.0)

        domain.set_source_term_option(eq, None, "quadrature", "highest")
        domain.set_source_term_option(eq, "b", "post", 0)

        assert a.options.quadrature.value == "highest"
        assert b.options.quadrature.value == "highest"
        assert a.options.post == -1
        assert b.options.post == 0

    def test_option_of_unknown_label(self, setup):
        domain, eq = setup
        domain.add_source_term(eq, "a", "cells", "value", 1.0)
        with pytest.raises(pd.NotFoundError):
            domain.set_source_term_option(eq, "b", "quadrature", "bary")

    def test_invalid_option(self, setup):
        domain, eq = setup
        domain.add_source_term(eq, "a", "cells", "value", 1.0)
        with pytest.raises(pd.InvalidOptionError):
            domain.set_source_term_option(eq, "a", "quadrature", "gauss")
        with pytest.raises(pd.InvalidOptionError):
            domain.set_source_term_option(eq, "a", "hodge_algo", "cost")


class TestReactionTerms:
    def test_add_and_options(self, setup):
        domain, eq = setup
        rt = domain.add_reaction_term(eq, "decay", "rho_cp")
        domain.set_reaction_term_option(eq, "decay", "inv_pty", True)
        domain.set_reaction_term_option(eq, None, "hodge_algo", "cost")

        assert rt(0.0, (0.0, 0.0, 0.0)) == pytest.approx(0.5)
        assert rt.options.hodge_algo.value == "cost"

    def test_default_property_is_unity(self, setup):
        domain, eq = setup
        rt = domain.add_reaction_term(eq, "r")
        assert rt.property.name == "unity"

    def test_property_must_be_isotropic(self, setup):
        domain, eq = setup
        with pytest.raises(pd.ShapeMismatchError):
            domain.add_reaction_term(eq, "r", "conductivity")

    def test_unknown_label(self, setup):
        domain, eq = setup
        with pytest.raises(pd.NotFoundError):
            domain.set_reaction_term_option(eq, "missing", "lumping", True)


class TestEquationOptions:
    def test_set_option(self, setup):
        domain, eq = setup
        domain.set_option(eq, "time_scheme", "theta")
        domain.set_option(eq, "time_theta", "0.5")
        assert eq.options.time.effective_theta == 0.5

    def test_theta_out_of_range(self, setup):
        domain, eq = setup
        with pytest.raises(pd.InvalidOptionError) as e:
            domain.set_option(eq, "time_theta", "1.5")
        assert e.value.entity == "user_1"
        assert eq.options.time.theta == 1.0
