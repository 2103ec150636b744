r"""
Value parsing and tensor shape utilities.

Material coefficients come in three flavours which all describe a rank-2
tensor :math:`K_{ij}`:

- **isotropic**: one value, :math:`K_{ij} = k \delta_{ij}`
- **orthotropic**: three values, :math:`K = \mathrm{diag}(k_1, k_2, k_3)`
- **anisotropic**: a full symmetric :math:`3 \times 3` tensor

The helpers below turn user input (numbers, nested lists, numpy arrays or
whitespace separated strings) into arrays of the right shape, and expand
any of the three flavours into the full tensor, numerically or
symbolically.

See Also
--------
pdedomain.maths.vector_calculus : Differential operators using these tensors.
pdedomain.properties : Property registry built on these checks.
"""

import numpy as np
import sympy

from pdedomain._var_types import ValueShape
from pdedomain.errors import InvalidOptionError, ShapeMismatchError


def parse_values(value):
    r"""
    Convert a user supplied value into a flat float array.

    Strings are split on whitespace, commas and newlines so that
    ``"1.0 0.5 0.0\n0.5 1.0 0.5\n0.0 0.5 1.0"`` gives nine values.
    """

    if isinstance(value, str):
        tokens = value.replace(",", " ").split()
        try:
            return np.array([float(tok) for tok in tokens], dtype=np.double)
        except ValueError:
            raise ShapeMismatchError(
                f"Cannot read numerical values from '{value}'", value=value
            )

    return np.asarray(value, dtype=np.double).reshape(-1)


def as_shape(value, shape: ValueShape, entity=None):
    """
    Parse ``value`` and reshape it to ``shape``.

    Returns a ``float`` for scalars, and ``(3,)`` or ``(3, 3)`` arrays
    otherwise. Raises ``ShapeMismatchError`` if the number of values does
    not match and ``InvalidOptionError`` for NaN or infinite values.
    """

    try:
        values = parse_values(value)
    except (TypeError, ValueError):
        raise ShapeMismatchError(
            f"{entity or 'Value'}: cannot interpret {value!r} as numerical values",
            entity=entity,
            value=value,
        )

    if values.size != shape.size:
        raise ShapeMismatchError(
            f"{entity or 'Value'}: expected {shape.size} value(s) for a "
            f"{shape.value} but got {values.size}",
            entity=entity,
            value=value,
        )

    if not np.all(np.isfinite(values)):
        raise InvalidOptionError(
            f"{entity or 'Value'}: values must be finite, got {value!r}",
            entity=entity,
            value=value,
        )

    if shape == ValueShape.SCALAR:
        return float(values[0])

    return values.reshape(shape.array_shape)


def symbolic_shape(expr):
    """Value shape of a sympy expression or matrix (None if not 1, 3 or 3x3)"""

    if isinstance(expr, sympy.MatrixBase):
        if expr.shape in ((3, 1), (1, 3)):
            return ValueShape.VECTOR
        if expr.shape == (3, 3):
            return ValueShape.TENSOR
        if expr.shape == (1, 1):
            return ValueShape.SCALAR
        return None

    if isinstance(expr, sympy.Basic):
        return ValueShape.SCALAR

    return None


def is_symmetric(tensor, tol=1.0e-12):
    """Check symmetry of a numerical or symbolic 3x3 tensor"""

    if isinstance(tensor, sympy.MatrixBase):
        diff = tensor - tensor.T
        return all(sympy.simplify(entry) == 0 for entry in diff)

    tensor = np.asarray(tensor, dtype=np.double)
    return bool(np.allclose(tensor, tensor.T, atol=tol, rtol=0.0))


def expand_to_tensor(value, shape: ValueShape):
    r"""
    Expand a property value of the given shape into a full :math:`3 \times 3` tensor.

    Numerical input gives a numpy array, sympy input gives a sympy Matrix.
    """

    if isinstance(value, (sympy.Basic, sympy.MatrixBase)):
        return expand_to_tensor_sym(value, shape)

    if shape == ValueShape.SCALAR:
        return float(value) * np.eye(3)

    if shape == ValueShape.VECTOR:
        return np.diag(np.asarray(value, dtype=np.double).reshape(3))

    return np.asarray(value, dtype=np.double).reshape(3, 3)


def expand_to_tensor_sym(value, shape: ValueShape):
    r"""Symbolic version of `expand_to_tensor` (returns a sympy Matrix)"""

    if shape == ValueShape.SCALAR:
        if isinstance(value, sympy.MatrixBase):
            value = value[0]
        return sympy.eye(3) * sympy.sympify(value)

    if shape == ValueShape.VECTOR:
        return sympy.diag(*[sympy.sympify(v) for v in value])

    return sympy.Matrix(value).reshape(3, 3)
