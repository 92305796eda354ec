"""Classify points as inside the robot, outside it, or in the shadow it casts on a sensor."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, Iterable, Optional, Union

import numpy as np

from .bodies import Body, BoundingSphere, Box, Cylinder, Sphere, _vec, merge_bounding_spheres
from .convex_mesh import ConvexMesh, create_body_from_shape
from .mesh import MeshError
from .point_types import PointCloud
from .transform import Transform, TransformBuffer, TransformLookupError
from .urdf import Collision, construct_shape_with_scale, parse_urdf

__all__ = ["MaskResult", "LinkInfo", "SeeLink", "SelfMask"]

_log = logging.getLogger(__name__)

_MIN_MESH_SCALE = 0.01

Resolver = Callable[[str], bytes]
IntersectionCallback = Callable[[np.ndarray], None]


class MaskResult(IntEnum):
    INSIDE = 0
    OUTSIDE = 1
    SHADOW = 2


def _floats(values: Iterable[float]) -> tuple[float, ...]:
    return tuple(float(v) for v in values)


@dataclass
class LinkInfo:
    """How one link's collision shapes are scaled and padded.

    ``scale`` and ``padding`` apply to every shape; the per-shape fields, when
    given in full (three values for boxes and meshes, two for cylinders),
    take their place for that kind of shape.
    """

    name: str
    scale: float = 1.0
    padding: float = 0.01
    box_scale: tuple[float, ...] = ()
    box_padding: tuple[float, ...] = ()
    cylinder_scale: tuple[float, ...] = ()
    cylinder_padding: tuple[float, ...] = ()
    mesh_scale: tuple[float, ...] = ()
    mesh_padding: tuple[float, ...] = ()

    def __post_init__(self):
        self.scale = float(self.scale)
        self.padding = float(self.padding)
        for name in (
            "box_scale",
            "box_padding",
            "cylinder_scale",
            "cylinder_padding",
            "mesh_scale",
            "mesh_padding",
        ):
            setattr(self, name, _floats(getattr(self, name)))


@dataclass
class SeeLink:
    """A collision body of a link, padded and unpadded, placed relative to the link frame."""

    name: str
    body: Body
    unscaled_body: Body
    const_transform: Transform = field(default_factory=Transform.identity)
    volume: float = 0.0


def _points(points) -> np.ndarray:
    if isinstance(points, PointCloud):
        return points.xyz()
    arr = np.asarray(points, dtype=float)
    if arr.size == 0:
        return np.zeros((0, 3))
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise ValueError("points must be rows of three coordinates")
    return arr


def _frame_of(points, frame_id: Optional[str]) -> str:
    if frame_id is not None:
        return frame_id
    if isinstance(points, PointCloud):
        return points.frame_id
    return ""


class SelfMask:
    """The robot's collision bodies, used to mask points that belong to the robot."""

    def __init__(
        self,
        robot_description: str,
        links: Iterable[LinkInfo],
        transforms: Optional[TransformBuffer] = None,
        resolver: Optional[Resolver] = None,
    ):
        self._transforms = transforms if transforms is not None else TransformBuffer()
        self._resolver = resolver
        self._sensor_pos = np.zeros(3)
        self._min_sensor_dist = 0.01
        self._bodies: list[SeeLink] = []
        self._bspheres: list[BoundingSphere] = []
        self._configure(robot_description, list(links))

    @property
    def bodies(self) -> tuple[SeeLink, ...]:
        """The collision bodies, largest volume first."""
        return tuple(self._bodies)

    @property
    def sensor_position(self) -> np.ndarray:
        return self._sensor_pos.copy()

    def link_names(self) -> list[str]:
        """The link name of every collision body, in body order."""
        return [sl.name for sl in self._bodies]

    def _configure(self, robot_description: str, links: list[LinkInfo]) -> None:
        if not robot_description:
            raise ValueError("robot model not found: the robot description is empty")
        model = parse_urdf(robot_description)
        for info in links:
            link = model.link(info.name)
            if link is None or link.collision is None:
                continue
            for collision in link.collisions:
                see_link = self._make_see_link(info, collision)
                if see_link is not None:
                    self._bodies.append(see_link)
        self._bodies.sort(key=lambda sl: sl.volume, reverse=True)
        self._bspheres = [sl.body.compute_bounding_sphere() for sl in self._bodies]

    def _make_see_link(self, info: LinkInfo, collision: Collision) -> Optional[SeeLink]:
        shape_info = construct_shape_with_scale(collision.geometry, self._resolver)
        if shape_info.shape is None:
            return None
        try:
            body = create_body_from_shape(shape_info.shape)
        except MeshError as exc:
            _log.error("skipping mesh collision shape for link '%s': %s", info.name, exc)
            return None
        if body is None:
            return None
        urdf_scale = shape_info.urdf_scale
        if isinstance(body, Sphere):
            body.set_scale(info.scale)
            body.set_padding(info.padding)
        elif isinstance(body, Box):
            if len(info.box_scale) == 3 and len(info.box_padding) == 3:
                body.set_scale(*info.box_scale)
                body.set_padding(*info.box_padding)
            else:
                body.set_scale(info.scale, info.scale, info.scale)
                body.set_padding(info.padding, info.padding, info.padding)
        elif isinstance(body, Cylinder):
            if len(info.cylinder_scale) == 2 and len(info.cylinder_padding) == 2:
                body.set_scale(*info.cylinder_scale)
                body.set_padding(*info.cylinder_padding)
            else:
                body.set_scale(info.scale, info.scale)
                body.set_padding(info.padding, info.padding)
        elif isinstance(body, ConvexMesh):
            if len(info.mesh_scale) == 3 and len(info.mesh_padding) == 3:
                scale = tuple(u * s for u, s in zip(urdf_scale, info.mesh_scale))
                padding = info.mesh_padding
            else:
                scale = tuple(u * info.scale for u in urdf_scale)
                padding = (info.padding,) * 3
            if min(scale) < _MIN_MESH_SCALE:
                _log.warning(
                    "Skipping mesh collision shape for link '%s' due to problematic scaling "
                    "[%.3f, %.3f, %.3f]. Consider using primitive collision shapes instead.",
                    info.name,
                    *scale,
                )
                return None
            body.set_scale(*scale)
            body.set_padding(*padding)

        unscaled = create_body_from_shape(shape_info.shape)
        if isinstance(unscaled, ConvexMesh):
            unscaled.set_scale(*urdf_scale)
            unscaled.set_padding(0.0, 0.0, 0.0)
        return SeeLink(info.name, body, unscaled, collision.origin, body.compute_volume())

    def assume_frame(self, frame_id: str) -> None:
        """Pose every body in ``frame_id``; bodies whose link cannot be located keep their pose."""
        for sl in self._bodies:
            try:
                link_pose = self._transforms.lookup_transform(frame_id, sl.name)
            except TransformLookupError:
                continue
            pose = link_pose * sl.const_transform
            sl.body.set_pose(pose)
            sl.unscaled_body.set_pose(pose)
        self._bspheres = [sl.body.compute_bounding_sphere() for sl in self._bodies]

    def _lookup_sensor(self, frame_id: str, sensor_frame: str) -> np.ndarray:
        if not sensor_frame:
            return np.zeros(3)
        try:
            return self._transforms.lookup_transform(frame_id, sensor_frame).origin
        except TransformLookupError:
            return np.zeros(3)

    def mask_containment(self, points, frame_id: Optional[str] = None) -> np.ndarray:
        """Mark each point INSIDE a padded body or OUTSIDE all of them.

        ``points`` is an (N, 3) array or a :class:`PointCloud`; ``frame_id``
        defaults to the cloud's frame.
        """
        xyz = _points(points)
        if not self._bodies:
            return np.full(len(xyz), int(MaskResult.OUTSIDE), dtype=np.int64)
        self.assume_frame(_frame_of(points, frame_id))
        return self._containment(xyz)

    def mask_intersection(
        self,
        points,
        frame_id: Optional[str] = None,
        sensor: Union[str, Iterable[float]] = "",
        min_sensor_dist: float = 0.01,
        callback: Optional[IntersectionCallback] = None,
    ) -> np.ndarray:
        """Mark each point INSIDE, OUTSIDE, or SHADOW when the robot blocks the sensor's view of it.

        ``sensor`` is either the sensor's frame name or its position in
        ``frame_id``. An empty frame name means plain containment. A frame
        that cannot be located puts the sensor at the origin. ``callback``
        receives the point where a shadowing body was hit.
        """
        xyz = _points(points)
        if not self._bodies:
            return np.full(len(xyz), int(MaskResult.OUTSIDE), dtype=np.int64)
        frame = _frame_of(points, frame_id)
        self.assume_frame(frame)
        self._min_sensor_dist = float(min_sensor_dist)
        if isinstance(sensor, str):
            self._sensor_pos = self._lookup_sensor(frame, sensor)
            if not sensor:
                return self._containment(xyz)
        else:
            self._sensor_pos = _vec(sensor).copy()
        return self._intersection(xyz, callback)

    def _near(self, xyz: np.ndarray) -> np.ndarray:
        bound = merge_bounding_spheres(self._bspheres)
        if len(xyz) == 0:
            return np.zeros(0, dtype=bool)
        return np.sum((xyz - bound.center) ** 2, axis=1) < bound.radius * bound.radius

    def _containment(self, xyz: np.ndarray) -> np.ndarray:
        mask = np.full(len(xyz), int(MaskResult.OUTSIDE), dtype=np.int64)
        for i in np.flatnonzero(self._near(xyz)):
            if any(sl.body.contains_point(xyz[i]) for sl in self._bodies):
                mask[i] = MaskResult.INSIDE
        return mask

    def _intersection(self, xyz: np.ndarray, callback: Optional[IntersectionCallback]) -> np.ndarray:
        near = self._near(xyz)
        return np.array(
            [int(self._classify(pt, bool(close), callback)) for pt, close in zip(xyz, near)],
            dtype=np.int64,
        ).reshape(-1)

    def _casts_shadow(self, point: np.ndarray, direction: np.ndarray, callback) -> bool:
        for sl in self._bodies:
            hits = sl.body.intersects_ray(point, direction, 1)
            if hits and float(direction @ (self._sensor_pos - hits[0])) >= 0.0:
                if callback is not None:
                    callback(hits[0])
                return True
        return False

    def _classify(self, point: np.ndarray, near: bool, callback) -> MaskResult:
        if near and any(sl.unscaled_body.contains_point(point) for sl in self._bodies):
            return MaskResult.INSIDE
        direction = self._sensor_pos - point
        length = float(np.linalg.norm(direction))
        if length < self._min_sensor_dist or length == 0.0:
            return MaskResult.INSIDE
        direction = direction / length
        if self._casts_shadow(point, direction, callback):
            return MaskResult.SHADOW
        if near and any(sl.body.contains_point(point) for sl in self._bodies):
            return MaskResult.INSIDE
        return MaskResult.OUTSIDE

    def get_mask_containment(self, point) -> MaskResult:
        """INSIDE if any padded body holds ``point``, else OUTSIDE."""
        p = _vec(point)
        if any(sl.body.contains_point(p) for sl in self._bodies):
            return MaskResult.INSIDE
        return MaskResult.OUTSIDE

    def get_mask_intersection(
        self, point, callback: Optional[IntersectionCallback] = None
    ) -> MaskResult:
        """Classify one point against the sensor position set by the last intersection mask."""
        return self._classify(_vec(point), True, callback)