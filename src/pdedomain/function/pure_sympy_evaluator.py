"""
Fast evaluation of closed-form sympy expressions.

Expressions in the coordinate symbols ``x, y, z``, the time ``t`` and any
extra law inputs are compiled once with ``sympy.lambdify`` and cached, so
that repeated evaluation at quadrature points never goes back through the
symbolic machinery.

Matrix-valued expressions are compiled component by component; constant
components are broadcast to the number of evaluation points.
"""

import hashlib

import numpy as np
import sympy

from pdedomain.coordinates import X, t

# Global cache for lambdified functions
# Key: (expr_hash, symbols_tuple, modules_tuple)
# Value: lambdified function
_lambdify_cache = {}


def _expr_hash(expr):
    """
    Generate a hash for a sympy expression for caching.

    Parameters
    ----------
    expr : sympy expression
        Expression to hash

    Returns
    -------
    str
        Hash string
    """
    # Use sympy's srepr for consistent string representation
    expr_str = sympy.srepr(expr)
    return hashlib.md5(expr_str.encode()).hexdigest()


def get_cached_lambdified(expr, symbols, modules=("scipy", "numpy")):
    """
    Get a cached lambdified function for an expression.

    Parameters
    ----------
    expr : sympy expression
        Expression to lambdify
    symbols : tuple of sympy.Symbol
        Symbols in order for lambdify
    modules : tuple of str, optional
        Modules to use for lambdify. Default: ('scipy', 'numpy')
        scipy is required for special functions like erf, gamma, etc.

    Returns
    -------
    callable
        Lambdified function
    """
    expr_h = _expr_hash(expr)
    symbols_tuple = tuple(str(s) for s in symbols)
    modules_tuple = tuple(modules) if isinstance(modules, (list, tuple)) else (modules,)

    cache_key = (expr_h, symbols_tuple, modules_tuple)

    if cache_key in _lambdify_cache:
        return _lambdify_cache[cache_key]

    try:
        func = sympy.lambdify(symbols, expr, modules=modules)
    except ImportError:
        # Fallback to numpy only if scipy is not available
        if "scipy" not in modules:
            raise
        func = sympy.lambdify(symbols, expr, modules="numpy")

    _lambdify_cache[cache_key] = func
    return func


def default_arguments(inputs=()):
    """Argument order of compiled functions: ``(t, x, y, z, *inputs)``"""
    return (t,) + tuple(X) + tuple(inputs)


def compile_components(expr, arguments):
    """
    Lambdify every component of ``expr``.

    Returns a list of callables in row-major order (a single entry for a
    scalar expression).
    """
    if isinstance(expr, sympy.MatrixBase):
        components = list(expr)
    else:
        components = [expr]

    return [get_cached_lambdified(sympy.sympify(c), arguments) for c in components]


def evaluate_components(functions, shape, args, n_points=None):
    """
    Call compiled components and assemble the result.

    Parameters
    ----------
    functions : list of callable
        Output of `compile_components`.
    shape : tuple
        Shape of a single value, e.g. ``()``, ``(3,)`` or ``(3, 3)``.
    args : sequence
        Arguments in the order given to `compile_components`.
    n_points : int, optional
        If given, arguments are arrays of this length and the result has
        shape ``(n_points,) + shape``.
    """
    if n_points is None:
        values = [float(f(*args)) for f in functions]
        if shape == ():
            return values[0]
        return np.array(values, dtype=np.double).reshape(shape)

    result = np.empty((n_points, len(functions)), dtype=np.double)
    for k, f in enumerate(functions):
        result[:, k] = np.broadcast_to(np.asarray(f(*args), dtype=np.double), (n_points,))

    return result.reshape((n_points,) + tuple(shape))


def evaluate_pure_sympy(expr, coords, time=0.0, inputs=None):
    """
    Evaluate a closed-form expression at many points.

    Parameters
    ----------
    expr : sympy expression or Matrix
        Expression in ``x, y, z, t`` (and input symbols)
    coords : np.ndarray
        Coordinates at which to evaluate, shape (n_points, 3)
    time : float
        Time at which to evaluate
    inputs : dict, optional
        Values of extra input symbols, keyed by symbol

    Returns
    -------
    np.ndarray
        Shape ``(n_points,)`` for scalars, ``(n_points, rows*cols)``
        reshaped to the matrix shape otherwise.

    Examples
    --------
    >>> from pdedomain.coordinates import x, y
    >>> evaluate_pure_sympy(x**2 + y, np.array([[1.0, 2.0, 0.0]]))
    array([3.])
    """
    inputs = dict(inputs or {})

    coords_array = np.asarray(coords, dtype=np.double)
    if coords_array.ndim == 1:
        coords_array = coords_array.reshape(1, -1)

    n_points = coords_array.shape[0]

    arguments = default_arguments(inputs.keys())
    functions = compile_components(expr, arguments)

    shape = tuple(expr.shape) if isinstance(expr, sympy.MatrixBase) else ()
    args = (
        [np.full(n_points, float(time))]
        + [coords_array[:, i] for i in range(3)]
        + [np.full(n_points, float(v)) for v in inputs.values()]
    )

    return evaluate_components(functions, shape, args, n_points=n_points)


def clear_lambdify_cache():
    """
    Clear the cached lambdified functions.

    Useful for testing or if memory usage becomes a concern.
    """
    global _lambdify_cache
    _lambdify_cache.clear()
