"""
Coordinate symbols shared by every closed-form expression.

Analytic boundary conditions, source terms, property laws, advection fields
and mesh location selections are all written in terms of the same symbols
``x, y, z`` (position) and ``t`` (time). Expressions built by users with
their own ``sympy.Symbol("x")`` are mapped onto these symbols by name, so
both spellings evaluate identically.
"""

import sympy

x, y, z = sympy.symbols("x y z", real=True)
t = sympy.Symbol("t", real=True)

X = (x, y, z)
"""Position symbols in component order"""

RESERVED_NAMES = ("x", "y", "z", "t")


def input_symbols(names):
    """Real sympy symbols for extra state inputs (used by property laws)"""
    return tuple(sympy.Symbol(name, real=True) for name in names)


def _namespace(inputs=()):
    namespace = {"x": x, "y": y, "z": z, "t": t}
    namespace.update({s.name: s for s in input_symbols(inputs)})
    return namespace


def parse_expression(text, inputs=()):
    """
    Parse a string such as ``"1 + sin(pi*x)"`` into a sympy expression
    using the shared coordinate symbols.
    """
    return sympy.sympify(text, locals=_namespace(inputs))


def canonicalise(expr, inputs=()):
    """
    Replace any free symbol named like a coordinate (or an input) by the
    shared symbol of that name.
    """
    namespace = _namespace(inputs)
    free = getattr(expr, "free_symbols", set())

    subs = {
        s: namespace[s.name] for s in free if s.name in namespace and s != namespace[s.name]
    }
    if subs:
        expr = expr.subs(subs)

    return expr
