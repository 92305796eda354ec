"""Geometric shape definitions, each centred at its own origin."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import IntEnum
from typing import ClassVar, Optional

import numpy as np

__all__ = [
    "ShapeType",
    "StaticShapeType",
    "Shape",
    "StaticShape",
    "Sphere",
    "Cylinder",
    "Box",
    "Mesh",
    "Plane",
    "clone_shape",
]


class ShapeType(IntEnum):
    UNKNOWN_SHAPE = 0
    SPHERE = 1
    CYLINDER = 2
    BOX = 3
    MESH = 4


class StaticShapeType(IntEnum):
    UNKNOWN_STATIC_SHAPE = 0
    PLANE = 1


@dataclass
class Shape:
    """Base of all shapes that can be posed."""

    type: ClassVar[ShapeType] = ShapeType.UNKNOWN_SHAPE


@dataclass
class StaticShape:
    """Base of shapes that have no pose."""

    type: ClassVar[StaticShapeType] = StaticShapeType.UNKNOWN_STATIC_SHAPE


@dataclass
class Sphere(Shape):
    type: ClassVar[ShapeType] = ShapeType.SPHERE
    radius: float = 0.0


@dataclass
class Cylinder(Shape):
    """A cylinder whose axis is the local z axis."""

    type: ClassVar[ShapeType] = ShapeType.CYLINDER
    radius: float = 0.0
    length: float = 0.0


@dataclass
class Box(Shape):
    """An axis-aligned box with full extents along x, y and z."""

    type: ClassVar[ShapeType] = ShapeType.BOX
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    @property
    def size(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)


def _rows(values, dtype) -> np.ndarray:
    arr = np.array(values if values is not None else [], dtype=dtype)
    return arr.reshape(-1, 3)


@dataclass(eq=False)
class Mesh(Shape):
    """A triangle mesh: vertex rows, triangle index rows and one normal per triangle."""

    type: ClassVar[ShapeType] = ShapeType.MESH
    vertices: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))
    triangles: np.ndarray = field(default_factory=lambda: np.zeros((0, 3), dtype=np.int64))
    normals: Optional[np.ndarray] = None

    def __post_init__(self):
        self.vertices = _rows(self.vertices, float)
        self.triangles = _rows(self.triangles, np.int64)
        if self.normals is None:
            self.normals = np.zeros((len(self.triangles), 3))
        else:
            self.normals = _rows(self.normals, float)
        if len(self.normals) != len(self.triangles):
            raise ValueError("a mesh needs exactly one normal per triangle")

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    @property
    def triangle_count(self) -> int:
        return len(self.triangles)


@dataclass
class Plane(StaticShape):
    """The plane a*x + b*y + c*z + d = 0."""

    type: ClassVar[StaticShapeType] = StaticShapeType.PLANE
    a: float = 0.0
    b: float = 0.0
    c: float = 0.0
    d: float = 0.0


def clone_shape(shape):
    """Return an independent copy of a shape, or None for an unknown shape type."""
    if isinstance(shape, Mesh):
        return Mesh(shape.vertices.copy(), shape.triangles.copy(), shape.normals.copy())
    if isinstance(shape, (Sphere, Cylinder, Box, Plane)):
        return copy.copy(shape)
    if isinstance(shape, (Shape, StaticShape)):
        return None
    raise TypeError(f"not a shape: {shape!r}")