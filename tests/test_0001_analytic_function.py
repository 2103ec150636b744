"""
Tests for the closed-form evaluator (`AnalyticFunction`).

Covers shape inference, rejection of mismatched shapes and unknown symbols
at construction, single point and vectorised evaluation, Python callables
and law inputs.
"""

import numpy as np
import pytest
import sympy

import pdedomain as pd
from pdedomain import ValueShape
from pdedomain.function import AnalyticFunction, analytic, evaluate_pure_sympy, x, y, z, t

pytestmark = pytest.mark.level_1


@pytest.fixture
def sample_points():
    return np.array(
        [
            [0.0, 0.0, 0.0],
            [0.5, 0.25, 1.0],
            [1.0, 2.0, 3.0],
        ]
    )


class TestShapes:
    def test_scalar_from_string(self):
        f = AnalyticFunction("1 + x*y")
        assert f.shape == ValueShape.SCALAR
        assert f.evaluate(0.0, (2.0, 3.0, 0.0)) == pytest.approx(7.0)

    def test_vector_from_components(self):
        f = AnalyticFunction(["y - 0.5", "0.5 - x", "z"])
        assert f.shape == ValueShape.VECTOR

        value = f.evaluate(0.0, (0.0, 0.0, 1.0))
        assert value.shape == (3,)
        assert np.allclose(value, [-0.5, 0.5, 1.0])

    def test_tensor_from_nested_lists(self):
        f = AnalyticFunction([[1, "x", 0], ["x", 1, 0], [0, 0, 2]])
        assert f.shape == ValueShape.TENSOR

        value = f(0.0, (3.0, 0.0, 0.0))
        assert value.shape == (3, 3)
        assert value[0, 1] == pytest.approx(3.0)
        assert value[2, 2] == pytest.approx(2.0)

    def test_sympy_matrix_column(self):
        f = AnalyticFunction(sympy.Matrix([x, 2 * y, 3 * z]))
        assert f.shape == ValueShape.VECTOR
        assert np.allclose(f(0.0, (1.0, 1.0, 1.0)), [1.0, 2.0, 3.0])

    def test_declared_shape_mismatch(self):
        with pytest.raises(pd.ShapeMismatchError):
            AnalyticFunction("x + y", shape="vector")

    def test_unsupported_matrix_shape(self):
        with pytest.raises(pd.ShapeMismatchError):
            AnalyticFunction(sympy.Matrix([x, y]))

    def test_unknown_symbol(self):
        with pytest.raises(pd.InvalidOptionError):
            AnalyticFunction("x + w")

    def test_analytic_passes_through(self):
        f = AnalyticFunction("x")
        assert analytic(f, shape="scalar") is f

        with pytest.raises(pd.ShapeMismatchError):
            analytic(f, shape="vector")


class TestEvaluation:
    def test_user_symbols_are_shared_by_name(self):
        # A symbol created by the user, without assumptions, is the same x
        f = AnalyticFunction(sympy.Symbol("x") + 1)
        assert f(0.0, (1.0, 0.0, 0.0)) == pytest.approx(2.0)

    def test_time_dependence(self):
        f = AnalyticFunction(t * x)
        assert f.is_time_dependent
        assert f(2.0, (3.0, 0.0, 0.0)) == pytest.approx(6.0)
        assert not AnalyticFunction("x").is_time_dependent

    def test_law_inputs(self):
        f = AnalyticFunction("1 + T*x", inputs=("T",))
        assert f.evaluate(0.0, (2.0, 0.0, 0.0), T=3.0) == pytest.approx(7.0)

    def test_callable(self):
        f = AnalyticFunction(lambda time, position: 2.0 * position[0] + time)
        assert f.sym is None
        assert not f.is_symbolic
        assert f.shape == ValueShape.SCALAR
        assert f(1.0, (1.0, 0.0, 0.0)) == pytest.approx(3.0)
        assert f.describe_definition()["type"] == "callable"

    def test_vector_callable(self):
        f = AnalyticFunction(lambda time, position: [1.0, 2.0, 3.0], shape="vector")
        assert f(0.0, (0.0, 0.0, 0.0)).shape == (3,)

    @pytest.mark.parametrize(
        "shape, returned",
        [
            ("scalar", [1.0, 2.0, 3.0]),
            ("vector", 1.0),
            ("tensor", [1.0, 2.0, 3.0]),
        ],
    )
    def test_callable_returning_wrong_size(self, shape, returned):
        f = AnalyticFunction(lambda time, position: returned, shape=shape)
        with pytest.raises(pd.ShapeMismatchError):
            f(0.0, (0.0, 0.0, 0.0))

    def test_evaluation_is_repeatable(self, sample_points):
        f = AnalyticFunction("sin(pi*x)*cos(pi*y) + z**2")
        first = [f(0.0, p) for p in sample_points]
        second = [f(0.0, p) for p in sample_points]
        assert first == second


class TestVectorisedEvaluation:
    def test_scalar(self, sample_points):
        f = AnalyticFunction(x**2 + y)
        values = f.evaluate_many(0.0, sample_points)

        assert values.shape == (3,)
        assert np.allclose(values, sample_points[:, 0] ** 2 + sample_points[:, 1])

    def test_vector_with_constant_component(self, sample_points):
        f = AnalyticFunction(["1", "x", "0"])
        values = f.evaluate_many(0.0, sample_points)

        assert values.shape == (3, 3)
        assert np.allclose(values[:, 0], 1.0)
        assert np.allclose(values[:, 1], sample_points[:, 0])

    def test_tensor(self, sample_points):
        f = AnalyticFunction([[1, 0, 0], [0, "y", 0], [0, 0, 1]])
        assert f.evaluate_many(0.0, sample_points).shape == (3, 3, 3)

    def test_callable(self, sample_points):
        f = AnalyticFunction(lambda time, position: position[2], shape="scalar")
        assert np.allclose(f.evaluate_many(0.0, sample_points), sample_points[:, 2])

    def test_matches_single_point(self, sample_points):
        f = AnalyticFunction("exp(-x)*sin(pi*z) + t", name="mixed")
        many = f.evaluate_many(0.5, sample_points)
        single = [f(0.5, p) for p in sample_points]
        assert np.allclose(many, single)

    def test_law_inputs_per_point(self, sample_points):
        f = AnalyticFunction("1 + T*x", inputs=("T",))
        temperature = np.array([1.0, 2.0, 3.0])

        values = f.evaluate_many(0.0, sample_points, T=temperature)

        assert np.allclose(values, 1.0 + temperature * sample_points[:, 0])
        assert np.allclose(f.evaluate_many(0.0, sample_points, T=2.0), 1.0 + 2.0 * sample_points[:, 0])

    def test_callable_law_inputs_per_point(self, sample_points):
        f = AnalyticFunction(lambda time, position, T: T * position[1], inputs=("T",))
        values = f.evaluate_many(0.0, sample_points, T=[1.0, 2.0, 3.0])
        assert np.allclose(values, [0.0, 0.5, 6.0])

    def test_evaluate_pure_sympy(self):
        result = evaluate_pure_sympy(x**2 + y, np.array([[1.0, 2.0, 0.0]]))
        assert np.allclose(result, [3.0])
