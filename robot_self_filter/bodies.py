"""Posed solid bodies built from shapes: point containment, ray casting, volumes."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import ClassVar, Iterable

import numpy as np

from . import shapes
from .shapes import ShapeType
from .transform import Transform

__all__ = [
    "BoundingSphere",
    "Body",
    "Sphere",
    "Cylinder",
    "Box",
    "merge_bounding_spheres",
]

_ZERO = 1e-9


def _vec(values) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    if arr.shape != (3,):
        raise ValueError("expected a vector of three components")
    return arr


def _distance_sqr(point: np.ndarray, origin: np.ndarray, direction: np.ndarray) -> float:
    """Squared distance from ``point`` to the line through ``origin`` along ``direction``."""
    a = point - origin
    d = float(direction @ a)
    return float(a @ a) - d * d


@dataclass
class BoundingSphere:
    center: np.ndarray = field(default_factory=lambda: np.zeros(3))
    radius: float = 0.0


def merge_bounding_spheres(spheres: Iterable[BoundingSphere]) -> BoundingSphere:
    """Return a sphere enclosing all the given spheres (zero sphere if there are none)."""
    spheres = list(spheres)
    if not spheres:
        return BoundingSphere(np.zeros(3), 0.0)
    merged = BoundingSphere(np.array(spheres[0].center, dtype=float), float(spheres[0].radius))
    for sphere in spheres[1:]:
        if sphere.radius <= 0.0:
            continue
        center = np.asarray(sphere.center, dtype=float)
        d = float(np.linalg.norm(center - merged.center))
        if d + merged.radius <= sphere.radius:
            merged = BoundingSphere(center.copy(), float(sphere.radius))
        elif d + sphere.radius > merged.radius:
            delta = merged.center - center
            length = float(np.linalg.norm(delta))
            new_radius = (length + sphere.radius + merged.radius) / 2.0
            merged = BoundingSphere(
                delta / length * (new_radius - sphere.radius) + center, new_radius
            )
    return merged


class Body(ABC):
    """A shape placed in space by a pose, with scaling and padding applied."""

    type: ClassVar[ShapeType] = ShapeType.UNKNOWN_SHAPE

    def __init__(self):
        self._pose = Transform.identity()

    @property
    def pose(self) -> Transform:
        return self._pose

    def set_pose(self, pose: Transform) -> None:
        self._pose = pose
        self._update_internal_data()

    def set_dimensions(self, shape: shapes.Shape) -> None:
        self._use_dimensions(shape)
        self._update_internal_data()

    @abstractmethod
    def contains_point(self, point) -> bool:
        """Whether ``point`` lies inside the body."""

    @abstractmethod
    def intersects_ray(self, origin, direction, count: int = 0) -> list[np.ndarray]:
        """Points where the ray meets the body; empty when it misses.

        ``direction`` is expected to be a unit vector.
        """

    @abstractmethod
    def compute_volume(self) -> float:
        """Volume of the scaled and padded body."""

    @abstractmethod
    def compute_bounding_sphere(self) -> BoundingSphere:
        """A sphere enclosing the body."""

    @abstractmethod
    def _use_dimensions(self, shape: shapes.Shape) -> None: ...

    @abstractmethod
    def _update_internal_data(self) -> None: ...


class Sphere(Body):
    type: ClassVar[ShapeType] = ShapeType.SPHERE

    def __init__(self, shape: shapes.Sphere | None = None):
        super().__init__()
        self._scale = 1.0
        self._padding = 0.0
        self._radius = 0.0
        if shape is not None:
            self._use_dimensions(shape)
        self._update_internal_data()

    def set_scale(self, scale: float) -> None:
        self._scale = float(scale)
        self._update_internal_data()

    def set_padding(self, padding: float) -> None:
        self._padding = float(padding)
        self._update_internal_data()

    @property
    def scaled_radius(self) -> float:
        return self._radius_u

    def _use_dimensions(self, shape) -> None:
        if not isinstance(shape, shapes.Sphere):
            raise TypeError(f"a sphere body needs a sphere shape, got {shape!r}")
        self._radius = float(shape.radius)

    def _update_internal_data(self) -> None:
        self._radius_u = self._radius * self._scale + self._padding
        self._radius2 = self._radius_u * self._radius_u
        self._center = self._pose.origin

    def contains_point(self, point) -> bool:
        diff = self._center - _vec(point)
        return float(diff @ diff) < self._radius2

    def compute_volume(self) -> float:
        return 4.0 * math.pi * self._radius_u ** 3 / 3.0

    def compute_bounding_sphere(self) -> BoundingSphere:
        return BoundingSphere(self._center.copy(), self._radius_u)

    def intersects_ray(self, origin, direction, count: int = 0) -> list[np.ndarray]:
        origin, direction = _vec(origin), _vec(direction)
        if _distance_sqr(self._center, origin, direction) > self._radius2:
            return []
        cp = origin - self._center
        w = cp - float(cp @ direction) * direction
        q = self._center + w
        x = self._radius2 - float(w @ w)
        hits: list[np.ndarray] = []
        if abs(x) < _ZERO:
            if float((q - origin) @ direction) > _ZERO:
                hits.append(q)
        elif x > 0.0:
            w = direction * math.sqrt(x)
            near, far = q - w, q + w
            if float((near - origin) @ direction) > _ZERO:
                hits.append(near)
                if count == 1:
                    return hits
            if float((far - origin) @ direction) > _ZERO:
                hits.append(far)
        return hits


class Cylinder(Body):
    """A cylinder along the local z axis, scaled and padded radially and vertically."""

    type: ClassVar[ShapeType] = ShapeType.CYLINDER

    def __init__(self, shape: shapes.Cylinder | None = None):
        super().__init__()
        self._scale_rad = 1.0
        self._scale_vert = 1.0
        self._padding_rad = 0.0
        self._padding_vert = 0.0
        self._length = 0.0
        self._radius = 0.0
        if shape is not None:
            self._use_dimensions(shape)
        self._update_internal_data()

    def set_scale(self, scale_radial: float, scale_vertical: float) -> None:
        self._scale_rad = float(scale_radial)
        self._scale_vert = float(scale_vertical)
        self._update_internal_data()

    def set_padding(self, padding_radial: float, padding_vertical: float) -> None:
        self._padding_rad = float(padding_radial)
        self._padding_vert = float(padding_vertical)
        self._update_internal_data()

    @property
    def scaled_radius(self) -> float:
        return self._radius_u

    @property
    def scaled_half_length(self) -> float:
        return self._length2

    def _use_dimensions(self, shape) -> None:
        if not isinstance(shape, shapes.Cylinder):
            raise TypeError(f"a cylinder body needs a cylinder shape, got {shape!r}")
        self._length = float(shape.length)
        self._radius = float(shape.radius)

    def _update_internal_data(self) -> None:
        self._radius_u = self._radius * self._scale_rad + self._padding_rad
        self._radius2 = self._radius_u * self._radius_u
        self._length2 = self._length * 0.5 * self._scale_vert + self._padding_vert
        self._center = self._pose.origin
        self._radius_b_sqr = self._length2 * self._length2 + self._radius2
        self._radius_b = math.sqrt(self._radius_b_sqr)
        basis = self._pose.basis
        self._normal_b1 = basis[:, 0]
        self._normal_b2 = basis[:, 1]
        self._normal_h = basis[:, 2]
        tmp = -float(self._normal_h @ self._center)
        self._d1 = tmp + self._length2
        self._d2 = tmp - self._length2

    def contains_point(self, point) -> bool:
        v = _vec(point) - self._center
        p_h = float(v @ self._normal_h)
        if abs(p_h) > self._length2:
            return False
        p_b1 = float(v @ self._normal_b1)
        remain = self._radius2 - p_b1 * p_b1
        if remain < 0.0:
            return False
        p_b2 = float(v @ self._normal_b2)
        return p_b2 * p_b2 < remain

    def compute_volume(self) -> float:
        return math.pi * self._radius2 * self._length2 * 2.0

    def compute_bounding_sphere(self) -> BoundingSphere:
        return BoundingSphere(self._center.copy(), self._radius_b)

    def _cap_hit(self, origin, direction, t) -> np.ndarray | None:
        if t <= 0.0:
            return None
        p = origin + direction * t
        v = p - self._center
        v = v - float(self._normal_h @ v) * self._normal_h
        return p if float(v @ v) < self._radius2 + _ZERO else None

    def _barrel_hit(self, origin, direction, t) -> np.ndarray | None:
        if t <= 0.0:
            return None
        p = origin + direction * t
        return p if abs(float(self._normal_h @ (self._center - p))) < self._length2 + _ZERO else None

    def intersects_ray(self, origin, direction, count: int = 0) -> list[np.ndarray]:
        origin, direction = _vec(origin), _vec(direction)
        if _distance_sqr(self._center, origin, direction) > self._radius_b_sqr:
            return []
        hits: list[tuple[float, np.ndarray]] = []
        along = float(self._normal_h @ direction)
        if abs(along) > _ZERO:
            offset = -float(self._normal_h @ origin)
            for d in (self._d1, self._d2):
                t = (offset - d) / along
                p = self._cap_hit(origin, direction, t)
                if p is not None:
                    hits.append((t, p))
        if len(hits) < 2:
            vd = np.cross(self._normal_h, direction)
            rod = np.cross(self._normal_h, origin - self._center)
            a = float(vd @ vd)
            b = 2.0 * float(rod @ vd)
            c = float(rod @ rod) - self._radius2
            disc = b * b - 4.0 * a * c
            if disc > 0.0 and abs(a) > _ZERO:
                root = math.sqrt(disc)
                for t in ((-b + root) / (2.0 * a), (-b - root) / (2.0 * a)):
                    p = self._barrel_hit(origin, direction, t)
                    if p is not None:
                        hits.append((t, p))
        hits.sort(key=lambda hit: hit[0])
        if count > 0:
            hits = hits[:count]
        return [p for _, p in hits]


class Box(Body):
    """A box whose full extents lie along the local x, y and z axes."""

    type: ClassVar[ShapeType] = ShapeType.BOX

    def __init__(self, shape: shapes.Box | None = None):
        super().__init__()
        self._scale = (1.0, 1.0, 1.0)
        self._padding = (0.0, 0.0, 0.0)
        self._length = self._width = self._height = 0.0
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
    def scaled_half_length(self) -> float:
        return self._length2

    @property
    def scaled_half_width(self) -> float:
        return self._width2

    @property
    def scaled_half_height(self) -> float:
        return self._height2

    def _use_dimensions(self, shape) -> None:
        if not isinstance(shape, shapes.Box):
            raise TypeError(f"a box body needs a box shape, got {shape!r}")
        self._length, self._width, self._height = (float(v) for v in shape.size)

    def _update_internal_data(self) -> None:
        self._length2, self._width2, self._height2 = (
            0.5 * size * scale + pad
            for size, scale, pad in zip(
                (self._length, self._width, self._height), self._scale, self._padding
            )
        )
        self._center = self._pose.origin
        self._radius2 = self._length2 ** 2 + self._width2 ** 2 + self._height2 ** 2
        self._radius_b = math.sqrt(self._radius2)
        basis = self._pose.basis
        self._normal_l = basis[:, 0]
        self._normal_w = basis[:, 1]
        self._normal_h = basis[:, 2]
        tmp = (
            self._normal_l * self._length2
            + self._normal_w * self._width2
            + self._normal_h * self._height2
        )
        self._corner1 = self._center - tmp
        self._corner2 = self._center + tmp

    def _axes(self):
        return zip(
            (self._normal_l, self._normal_w, self._normal_h),
            (self._length2, self._width2, self._height2),
        )

    def contains_point(self, point) -> bool:
        v = _vec(point) - self._center
        return all(abs(float(v @ normal)) <= half for normal, half in self._axes())

    def compute_volume(self) -> float:
        return 8.0 * self._length2 * self._width2 * self._height2

    def compute_bounding_sphere(self) -> BoundingSphere:
        return BoundingSphere(self._center.copy(), self._radius_b)

    def intersects_ray(self, origin, direction, count: int = 0) -> list[np.ndarray]:
        origin, direction = _vec(origin), _vec(direction)
        if _distance_sqr(self._center, origin, direction) > self._radius2:
            return []
        t_near, t_far = -math.inf, math.inf
        for normal in (self._normal_l, self._normal_w, self._normal_h):
            dp = float(normal @ direction)
            c1 = float(self._corner1 @ normal)
            c2 = float(self._corner2 @ normal)
            start = float(normal @ origin)
            if abs(dp) > _ZERO:
                t1, t2 = sorted(((c1 - start) / dp, (c2 - start) / dp))
                t_near = max(t_near, t1)
                t_far = min(t_far, t2)
                if t_near > t_far or t_far < 0.0:
                    return []
            elif start < c1 or start > c2:
                return []
        if t_far - t_near > _ZERO:
            hits = [origin + direction * t_near]
            if count > 1:
                hits.append(origin + direction * t_far)
            return hits
        return [origin + direction * t_far]