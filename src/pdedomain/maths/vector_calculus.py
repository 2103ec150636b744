r"""
Cartesian vector calculus on closed-form expressions.

These operators act on sympy expressions in the coordinate symbols
:math:`(x, y, z)` and are the building blocks of manufactured-solution
source terms.

See Also
--------
pdedomain.maths.tensors : Tensor expansion and symmetry checks.
pdedomain.function.manufactured : Source terms built from these operators.
"""

import sympy


def gradient(scalar, coords):
    r"""
    Gradient :math:`\nabla \phi` as a (3, 1) column matrix.

    Parameters
    ----------
    scalar : sympy.Expr
        Scalar field.
    coords : sequence of sympy.Symbol
        Coordinate symbols :math:`(x, y, z)`.
    """
    return sympy.Matrix([sympy.diff(scalar, xi) for xi in coords])


def hessian(scalar, coords):
    r"""
    Matrix of second derivatives :math:`\partial^2 \phi / \partial x_i \partial x_j`.

    Mixed derivatives are computed once and mirrored, so the result is
    exactly symmetric.
    """
    n = len(coords)
    H = sympy.zeros(n, n)

    for i in range(n):
        for j in range(i, n):
            H[i, j] = sympy.diff(scalar, coords[i], coords[j])
            H[j, i] = H[i, j]

    return H


def divergence(vector, coords):
    r"""Divergence :math:`\nabla \cdot \mathbf{v}` of a 3-component vector"""
    return sum(sympy.diff(vector[i], coords[i]) for i in range(len(coords)))


def symmetric_contraction(K, H):
    r"""
    Contract a symmetric tensor with a Hessian.

    .. math::

        K : H = \sum_i K_{ii} H_{ii} + 2 \sum_{i<j} K_{ij} H_{ij}

    Both :math:`K` and :math:`H` must be symmetric; the off-diagonal terms
    are counted once and doubled.
    """
    n = H.shape[0]

    diagonal = sum(K[i, i] * H[i, i] for i in range(n))
    mixed = sum(K[i, j] * H[i, j] for i in range(n) for j in range(i + 1, n))

    return diagonal + 2 * mixed


def anisotropic_diffusion(scalar, K, coords):
    r"""
    Diffusion operator :math:`-\nabla \cdot (K \nabla u)` for symmetric :math:`K`.

    Expanded as

    .. math::

        -\left( K : \nabla\nabla u + \sum_{ij} \frac{\partial K_{ij}}{\partial x_i}
        \frac{\partial u}{\partial x_j} \right)

    The second sum vanishes when :math:`K` is constant.
    """
    grad_u = gradient(scalar, coords)
    H = hessian(scalar, coords)

    n = len(coords)
    variable_part = sum(
        sympy.diff(K[i, j], coords[i]) * grad_u[j] for i in range(n) for j in range(n)
    )

    return -(symmetric_contraction(K, H) + variable_part)


def advective_derivative(scalar, velocity, coords):
    r"""Advection term :math:`\boldsymbol{\beta} \cdot \nabla u`"""
    grad_u = gradient(scalar, coords)
    return sum(velocity[i] * grad_u[i] for i in range(len(coords)))
