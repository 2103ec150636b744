r"""
Closed-form evaluators for boundary values, source terms and fields.

An :class:`AnalyticFunction` turns a mathematical expression of position
and time into a pure function

.. math::

    f : (t, \mathbf{x}) \mapsto s \in \mathbb{R},\
    \mathbf{v} \in \mathbb{R}^3 \text{ or } T \in \mathbb{R}^{3 \times 3}

The shape of the value is fixed when the evaluator is built, so that a
registry can reject a mismatch before any evaluation happens. Evaluation
has no side effects and no hidden state: the solver core may call it
concurrently at every quadrature point.
"""

import logging

import numpy as np
import sympy

from pdedomain._var_types import ValueShape
from pdedomain.coordinates import X, canonicalise, input_symbols, parse_expression, t
from pdedomain.errors import InvalidOptionError, ShapeMismatchError
from pdedomain.maths.tensors import symbolic_shape
from pdedomain.utilities._api_tools import setup_object

from .pure_sympy_evaluator import compile_components, default_arguments, evaluate_components

logger = logging.getLogger(__name__)


def _as_symbolic(fn, inputs):
    """Convert strings / component lists to sympy, or return None for callables"""

    if isinstance(fn, str):
        return parse_expression(fn, inputs)

    if isinstance(fn, (list, tuple)):
        rows = [
            [_as_symbolic(c, inputs) for c in row] if isinstance(row, (list, tuple))
            else _as_symbolic(row, inputs)
            for row in fn
        ]
        return sympy.Matrix(rows)

    if isinstance(fn, (int, float, np.number)):
        return sympy.Float(fn) if isinstance(fn, (float, np.floating)) else sympy.Integer(fn)

    if isinstance(fn, (sympy.Basic, sympy.MatrixBase)):
        return fn

    if callable(fn):
        return None

    raise InvalidOptionError(f"Cannot build an analytic function from {fn!r}", value=fn)


class AnalyticFunction(setup_object):
    r"""
    Pure evaluator of a closed-form field.

    ```python
    from pdedomain.coordinates import x, y, z
    bc = AnalyticFunction(1 + sympy.sin(sympy.pi * x))
    bc(0.0, (0.5, 0.0, 0.0))   # -> 2.0

    adv = AnalyticFunction(["y - 0.5", "0.5 - x", "z"])
    adv.shape                  # -> ValueShape.VECTOR
    ```

    Parameters
    ----------
    fn : sympy expression, Matrix, str, list or callable
        Symbolic definitions may use ``x, y, z, t`` and the names listed in
        ``inputs``. A callable is invoked as ``fn(time, position, **state)``.
    shape : ValueShape or str, optional
        Required for callables (default scalar). For symbolic definitions
        it is inferred and, if given, must agree.
    inputs : sequence of str
        Names of extra state inputs (used by property laws).
    name : str, optional
        Label used in messages.
    """

    def __init__(self, fn, shape=None, inputs=(), name=None):
        super().__init__()

        self.name = name if name is not None else f"analytic_{self.instance_number}"
        self.inputs = tuple(inputs)

        declared = ValueShape(shape) if shape is not None else None
        expr = _as_symbolic(fn, self.inputs)

        if expr is None:
            self._sym = None
            self._callable = fn
            self._shape = declared if declared is not None else ValueShape.SCALAR
            self._functions = None
        else:
            expr = canonicalise(expr, self.inputs)

            inferred = symbolic_shape(expr)
            if inferred is None:
                raise ShapeMismatchError(
                    f"Analytic function '{self.name}' has shape {expr.shape}; "
                    "expected a scalar, a 3-vector or a 3x3 tensor",
                    entity=self.name,
                    value=expr,
                )
            if declared is not None and declared != inferred:
                raise ShapeMismatchError(
                    f"Analytic function '{self.name}' is a {inferred.value} "
                    f"but was declared as a {declared.value}",
                    entity=self.name,
                    value=expr,
                )

            allowed = set(X) | {t} | set(input_symbols(self.inputs))
            unknown = expr.free_symbols - allowed
            if unknown:
                raise InvalidOptionError(
                    f"Analytic function '{self.name}' uses unknown symbols "
                    f"{sorted(str(s) for s in unknown)}; allowed are x, y, z, t"
                    + (f" and {', '.join(self.inputs)}" if self.inputs else ""),
                    entity=self.name,
                    value=expr,
                )

            if isinstance(expr, sympy.MatrixBase) and inferred == ValueShape.SCALAR:
                expr = expr[0]
            if inferred == ValueShape.VECTOR:
                expr = sympy.Matrix(list(expr))

            self._sym = expr
            self._callable = None
            self._shape = inferred
            self._functions = compile_components(
                expr, default_arguments(input_symbols(self.inputs))
            )

        logger.debug("Built %s evaluator '%s'", self._shape.value, self.name)

    @property
    def shape(self) -> ValueShape:
        return self._shape

    @property
    def sym(self):
        """The symbolic form, or None when defined by a Python callable"""
        return self._sym

    @property
    def is_symbolic(self):
        return self._sym is not None

    @property
    def is_time_dependent(self):
        if self._sym is None:
            return True
        return t in self._sym.free_symbols

    def evaluate(self, time, position, **state):
        """
        Evaluate at one point.

        Returns a ``float`` for scalars, and ``(3,)`` or ``(3, 3)`` arrays
        for vectors and tensors.
        """
        if self._callable is not None:
            value = np.asarray(self._callable(time, position, **state), dtype=np.double)
            if value.size != self._shape.size:
                raise ShapeMismatchError(
                    f"Analytic function '{self.name}' is a {self._shape.value} "
                    f"but its callable returned {value.size} value(s)",
                    entity=self.name,
                    value=value,
                )
            if self._shape == ValueShape.SCALAR:
                return float(value.reshape(-1)[0])
            return value.reshape(self._shape.array_shape)

        px, py, pz = position
        args = [time, px, py, pz] + [state[name] for name in self.inputs]
        return evaluate_components(self._functions, self._shape.array_shape, args)

    __call__ = evaluate

    def evaluate_many(self, time, points, **state):
        """
        Evaluate at an array of points of shape ``(n, 3)``. State inputs may
        be single values or arrays of length ``n``.

        Returns ``(n,)``, ``(n, 3)`` or ``(n, 3, 3)``.
        """
        points = np.asarray(points, dtype=np.double).reshape(-1, 3)
        n_points = points.shape[0]

        state = {
            name: np.broadcast_to(np.asarray(value, dtype=np.double), (n_points,))
            for name, value in state.items()
        }

        if self._callable is not None:
            values = [
                self.evaluate(time, p, **{name: value[i] for name, value in state.items()})
                for i, p in enumerate(points)
            ]
            return np.asarray(values, dtype=np.double).reshape(
                (n_points,) + self._shape.array_shape
            )

        args = (
            [np.full(n_points, float(time))]
            + [points[:, i] for i in range(3)]
            + [state[name] for name in self.inputs]
        )
        return evaluate_components(
            self._functions, self._shape.array_shape, args, n_points=n_points
        )

    def describe_definition(self):
        """Serialisable description (expression string or callable name)"""
        if self._sym is not None:
            if isinstance(self._sym, sympy.MatrixBase):
                if self._shape == ValueShape.VECTOR:
                    return [str(c) for c in self._sym]
                return [[str(self._sym[i, j]) for j in range(3)] for i in range(3)]
            return str(self._sym)

        return {
            "type": "callable",
            "name": getattr(self._callable, "__qualname__", repr(self._callable)),
        }

    def _object_viewer(self):
        lines = [f"**Analytic function** `{self.name}` ({self._shape.value})"]
        if self._sym is not None:
            lines.append(f"$${sympy.latex(self._sym)}$$")
        else:
            lines.append(f"Python callable `{self.describe_definition()['name']}`")
        return lines

    def __repr__(self):
        body = self.describe_definition()
        return f"AnalyticFunction({body!r}, shape={self._shape.value!r})"


def analytic(fn, shape=None, inputs=(), name=None):
    """Build an `AnalyticFunction` unless ``fn`` already is one"""

    if isinstance(fn, AnalyticFunction):
        if shape is not None and fn.shape != ValueShape(shape):
            raise ShapeMismatchError(
                f"Analytic function '{fn.name}' is a {fn.shape.value} "
                f"but a {ValueShape(shape).value} is required",
                entity=fn.name,
            )
        return fn

    return AnalyticFunction(fn, shape=shape, inputs=inputs, name=name)
