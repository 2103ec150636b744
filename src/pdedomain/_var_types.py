"""
Value shape and mesh entity enumerations.

This module defines the ``ValueShape`` enum used throughout pdedomain to
describe what an evaluator returns, and the ``EntityKind`` enum naming the
families of mesh entities a location can select.
"""
from enum import Enum as _Enum


class ValueShape(_Enum):
    """
    Shape of a value produced by an evaluator or carried by an equation.

    Attributes
    ----------
    SCALAR : str
        A single real number (``float``).
    VECTOR : str
        Three components (``numpy.ndarray`` of shape ``(3,)``).
    TENSOR : str
        A 3x3 tensor (``numpy.ndarray`` of shape ``(3, 3)``).

    Examples
    --------
    >>> ValueShape("vector").array_shape
    (3,)
    """

    SCALAR = "scalar"
    VECTOR = "vector"
    TENSOR = "tensor"

    @property
    def array_shape(self):
        return _ARRAY_SHAPES[self]

    @property
    def size(self):
        return _SIZES[self]


_ARRAY_SHAPES = {
    ValueShape.SCALAR: (),
    ValueShape.VECTOR: (3,),
    ValueShape.TENSOR: (3, 3),
}

_SIZES = {ValueShape.SCALAR: 1, ValueShape.VECTOR: 3, ValueShape.TENSOR: 9}


class EntityKind(_Enum):
    """
    Family of mesh entities selected by a mesh location.

    The value of each member is also the name of the predefined location
    that selects every entity of that family.
    """

    CELLS = "cells"
    INTERIOR_FACES = "interior_faces"
    BOUNDARY_FACES = "boundary_faces"
    VERTICES = "vertices"
