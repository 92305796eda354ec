"""Convex mesh bodies built from the convex hull of a mesh, and body creation from shapes."""

from __future__ import annotations

import logging
import math
from typing import ClassVar, Optional

import numpy as np
from scipy.spatial import ConvexHull, QhullError

from . import shapes
from .bodies import Body, BoundingSphere, Box, Cylinder, Sphere, _distance_sqr, _vec
from .mesh import MeshError
from .shapes import ShapeType
from .transform import Transform

__all__ = ["ConvexMesh", "create_body_from_shape"]

_log = logging.getLogger(__name__)

_PARALLEL = 1e-9
_BEHIND = 1e-6
_DEGENERATE = 1e-6


def _normalized(v: np.ndarray) -> np.ndarray:
    norm = float(np.linalg.norm(v))
    return v / norm if norm > 0.0 else v


def _count_behind(vertices: np.ndarray, plane: np.ndarray) -> int:
    """Number of vertices lying on the positive side of ``plane``."""
    if len(vertices) == 0:
        return 0
    return int(np.count_nonzero(vertices @ plane[:3] + plane[3] > _BEHIND))


def _inside_triangle(a: np.ndarray, b: np.ndarray, c: np.ndarray, p: np.ndarray) -> bool:
    cb, ab, pb = c - b, a - b, p - b
    if float(np.cross(cb, pb) @ np.cross(cb, ab)) < 0.0:
        return False
    ca, pa, ba = c - a, p - a, -ab
    if float(np.cross(ca, pa) @ np.cross(ca, ba)) < 0.0:
        return False
    return float(np.cross(ba, pa) @ np.cross(ba, ca)) >= 0.0


class ConvexMesh(Body):
    """The convex hull of a mesh, posed, with per-axis scaling and padding.

    Point containment is tested against the hull planes of the unscaled
    mesh; ray casting uses the scaled and padded hull vertices.
    """

    type: ClassVar[ShapeType] = ShapeType.MESH

    def __init__(self, shape: Optional[shapes.Mesh] = None):
        super().__init__()
        self._scale = (1.0, 1.0, 1.0)
        self._padding = (0.0, 0.0, 0.0)
        self._vertices = np.zeros((0, 3))
        self._triangles = np.zeros((0, 3), dtype=np.int64)
        self._planes = np.zeros((0, 4))
        self._mesh_center = np.zeros(3)
        self._mesh_radius_b = 0.0
        self._box_offset = np.zeros(3)
        self._bounding_box = Box()
        if shape is not None:
            self._use_dimensions(shape)
        self._update_internal_data()

    def set_scale(self, sx: float, sy: float, sz: float) -> None:
        self._scale = (float(sx), float(sy), float(sz))
        self._update_internal_data()

    def set_padding(self, px: float, py: float, pz: float) -> None:
        self._padding = (float(px), float(py), float(pz))
        self._update_internal_data()

    @property
    def triangles(self) -> np.ndarray:
        """Hull triangles as rows of three indices into :attr:`scaled_vertices`."""
        return self._triangles.copy()

    @property
    def scaled_vertices(self) -> np.ndarray:
        """Hull vertices with scaling and padding applied, in the body frame."""
        return self._scaled_vertices.copy()

    def _use_dimensions(self, shape) -> None:
        if not isinstance(shape, shapes.Mesh):
            raise TypeError(f"a convex mesh body needs a mesh shape, got {shape!r}")
        points = np.asarray(shape.vertices, dtype=float).reshape(-1, 3)
        if len(points) == 0:
            raise MeshError("unable to compute the convex hull of an empty mesh")
        try:
            hull = ConvexHull(points)
        except (QhullError, ValueError) as exc:
            raise MeshError(f"unable to compute convex hull: {exc}") from exc

        lo, hi = points.min(axis=0), points.max(axis=0)
        order = hull.vertices
        remap = np.full(len(points), -1, dtype=np.int64)
        remap[order] = np.arange(len(order))
        vertices = points[order]
        center = vertices.mean(axis=0)
        radius = math.sqrt(float(np.max(np.sum((vertices - center) ** 2, axis=1))))

        planes: list[np.ndarray] = []
        triangles: list[tuple[int, int, int]] = []
        for simplex, equation in zip(remap[hull.simplices], hull.equations):
            i0, i1, i2 = (int(i) for i in simplex)
            p1, p2, p3 = vertices[i0], vertices[i1], vertices[i2]
            # Wind every triangle so its normal points away from the hull.
            if float(np.cross(p2 - p1, p3 - p1) @ equation[:3]) < 0.0:
                i1, i2 = i2, i1
                p2, p3 = p3, p2
            normal = np.cross(_normalized(p2 - p1), _normalized(p3 - p1))
            if float(normal @ normal) <= _DEGENERATE:
                continue
            normal = normal / np.linalg.norm(normal)
            plane = np.append(normal, -float(normal @ p1))
            behind = _count_behind(vertices, plane)
            if behind > 0 and _count_behind(vertices, -plane) < behind:
                plane = -plane
            planes.append(plane)
            triangles.append((i0, i1, i2))

        self._bounding_box.set_dimensions(shapes.Box(*(float(v) for v in hi - lo)))
        self._box_offset = (lo + hi) / 2.0
        self._vertices = vertices
        self._mesh_center = center
        self._mesh_radius_b = radius
        self._planes = np.array(planes, dtype=float).reshape(-1, 4)
        self._triangles = np.array(triangles, dtype=np.int64).reshape(-1, 3)

    def _update_internal_data(self) -> None:
        pose = self._pose
        self._bounding_box.set_pose(Transform(pose.basis, pose.apply(self._box_offset)))
        self._i_pose = pose.inverse()
        self._center = pose.apply(self._mesh_center)

        scale = np.array(self._scale)
        padding = np.array(self._padding)
        v = self._vertices
        self._scaled_vertices = v * scale + np.where(v >= 0.0, padding, -padding)
        if len(self._scaled_vertices):
            scaled_center = self._scaled_vertices.mean(axis=0)
            max_radius = float(np.max(np.sum((self._scaled_vertices - scaled_center) ** 2, axis=1)))
        else:
            max_radius = 0.0
        self._radius_b = math.sqrt(max_radius)
        self._radius_b_sqr = self._radius_b * self._radius_b

    def contains_point(self, point) -> bool:
        p = _vec(point)
        if not self._bounding_box.contains_point(p):
            return False
        local = self._i_pose.apply(p)
        distances = self._planes[:, :3] @ local + self._planes[:, 3]
        return bool(np.all(distances <= 0.0))

    def intersects_ray(self, origin, direction, count: int = 0) -> list[np.ndarray]:
        origin, direction = _vec(origin), _vec(direction)
        if _distance_sqr(self._center, origin, direction) > self._radius_b_sqr:
            return []
        if not self._bounding_box.intersects_ray(origin, direction):
            return []
        local_origin = self._i_pose.apply(origin)
        local_dir = self._i_pose.rotate(direction)
        verts = self._scaled_vertices
        hits: list[tuple[float, np.ndarray]] = []
        for plane, (ia, ib, ic) in zip(self._planes, self._triangles):
            normal = plane[:3]
            denom = float(normal @ local_dir)
            if abs(denom) < _PARALLEL:
                continue
            t = -(float(normal @ local_origin) + plane[3]) / denom
            if t <= 0.0:
                continue
            p = local_origin + local_dir * t
            if _inside_triangle(verts[ia], verts[ib], verts[ic], p):
                hits.append((t, origin + direction * t))
        hits.sort(key=lambda hit: hit[0])
        if count > 0:
            hits = hits[:count]
        return [p for _, p in hits]

    def compute_volume(self) -> float:
        if len(self._triangles) == 0:
            return 0.0
        corners = self._vertices[self._triangles]
        return abs(float(np.sum(np.linalg.det(corners)))) / 6.0

    def compute_bounding_sphere(self) -> BoundingSphere:
        return BoundingSphere(self._center.copy(), self._radius_b)


def create_body_from_shape(shape: Optional[shapes.Shape]) -> Optional[Body]:
    """Build the body matching a shape; None for no shape or an unknown shape type."""
    if shape is None:
        return None
    if isinstance(shape, shapes.Box):
        return Box(shape)
    if isinstance(shape, shapes.Sphere):
        return Sphere(shape)
    if isinstance(shape, shapes.Cylinder):
        return Cylinder(shape)
    if isinstance(shape, shapes.Mesh):
        return ConvexMesh(shape)
    _log.error("unknown shape type: %r", getattr(shape, "type", shape))
    return None