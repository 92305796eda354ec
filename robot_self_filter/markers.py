"""Visualisation markers that describe the collision bodies of a self mask."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import IntEnum

import numpy as np

from .bodies import Body, Box, Cylinder, Sphere
from .convex_mesh import ConvexMesh
from .self_mask import SelfMask

__all__ = ["MarkerType", "MarkerAction", "Marker", "markers_from_mask"]

_log = logging.getLogger(__name__)

_NAMESPACE = "self_filter_shapes"
_DEFAULT_FRAME = "map"


class MarkerType(IntEnum):
    ARROW = 0
    CUBE = 1
    SPHERE = 2
    CYLINDER = 3
    TRIANGLE_LIST = 11


class MarkerAction(IntEnum):
    ADD = 0
    DELETE = 2


def _f32(value: float) -> float:
    return float(np.float32(value))


@dataclass
class Marker:
    """One shape to draw: a primitive, or a triangle list for meshes."""

    frame_id: str
    id: int
    type: MarkerType = MarkerType.ARROW
    ns: str = _NAMESPACE
    action: MarkerAction = MarkerAction.ADD
    stamp: float = field(default_factory=time.time)
    lifetime: float = 0.0
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    orientation: tuple[float, ...] = (0.0, 0.0, 0.0, 1.0)
    scale: tuple[float, float, float] = (0.0, 0.0, 0.0)
    color: tuple[float, float, float, float] = (1.0, 0.0, 0.0, 0.5)
    points: list[np.ndarray] = field(default_factory=list)


def _shape_marker(marker: Marker, body: Body) -> None:
    if isinstance(body, Sphere):
        marker.type = MarkerType.SPHERE
        d = _f32(2.0 * body.scaled_radius)
        marker.scale = (d, d, d)
    elif isinstance(body, Box):
        marker.type = MarkerType.CUBE
        marker.scale = (
            _f32(2.0 * body.scaled_half_length),
            _f32(2.0 * body.scaled_half_width),
            _f32(2.0 * body.scaled_half_height),
        )
    elif isinstance(body, Cylinder):
        marker.type = MarkerType.CYLINDER
        radius = _f32(body.scaled_radius)
        length = _f32(2.0 * body.scaled_half_length)
        diameter = _f32(radius * 2.0)
        marker.scale = (diameter, diameter, length)
    elif isinstance(body, ConvexMesh):
        marker.type = MarkerType.TRIANGLE_LIST
        marker.scale = (1.0, 1.0, 1.0)
        vertices = body.scaled_vertices
        marker.points = [vertices[i].copy() for i in body.triangles.reshape(-1)]


def markers_from_mask(mask: SelfMask, frame_id: str = "") -> list[Marker]:
    """One marker per collision body of ``mask``, posed as the bodies currently are.

    Markers are numbered in body order. An empty ``frame_id`` puts them in
    the ``map`` frame. A mask without bodies gives no markers.
    """
    bodies = mask.bodies
    if not bodies:
        _log.error("No bodies found in SelfMask")
        return []
    frame = frame_id or _DEFAULT_FRAME
    markers = []
    for index, see_link in enumerate(bodies):
        body = see_link.body
        if body is None:
            continue
        pose = body.pose
        marker = Marker(
            frame_id=frame,
            id=index,
            position=np.array(pose.origin, dtype=float),
            orientation=tuple(float(v) for v in pose.quaternion()),
        )
        _shape_marker(marker, body)
        markers.append(marker)
    _log.info("Published %d collision shapes", len(markers))
    return markers