"""Robot descriptions: links, their collision geometry, and the shapes built from it."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Callable, Optional, Union
from urllib.parse import unquote, urlparse

import numpy as np
from scipy.spatial.transform import Rotation

from .mesh import MeshError, create_mesh_from_binary_stl_data, create_mesh_from_dae_data
from .shapes import Box, Cylinder, Shape, Sphere, clone_shape
from .transform import Transform

__all__ = [
    "UrdfError",
    "MeshGeometry",
    "Collision",
    "Link",
    "RobotModel",
    "ShapeWithScale",
    "parse_urdf",
    "construct_shape_with_scale",
]

_log = logging.getLogger(__name__)

Resolver = Callable[[str], bytes]


class UrdfError(ValueError):
    """Raised when a robot description cannot be parsed."""


@dataclass(frozen=True)
class MeshGeometry:
    """A mesh referenced by file name or resource URI, with a per-axis scale."""

    filename: str
    scale: tuple[float, float, float] = (1.0, 1.0, 1.0)


Geometry = Union[Sphere, Box, Cylinder, MeshGeometry]


@dataclass
class Collision:
    """One collision element of a link: its geometry placed at ``origin`` in the link frame."""

    geometry: Geometry
    origin: Transform = field(default_factory=Transform.identity)
    name: str = ""


@dataclass
class Link:
    name: str
    collisions: list[Collision] = field(default_factory=list)

    @property
    def collision(self) -> Optional[Collision]:
        """The first collision element, if the link has any."""
        return self.collisions[0] if self.collisions else None


@dataclass
class RobotModel:
    name: str
    links: dict[str, Link] = field(default_factory=dict)

    def link(self, name: str) -> Optional[Link]:
        """The link called ``name``, or None if the robot has no such link."""
        return self.links.get(name)


@dataclass
class ShapeWithScale:
    """A shape built from collision geometry and the mesh scale the description gave it."""

    shape: Optional[Shape] = None
    urdf_scale: tuple[float, float, float] = (1.0, 1.0, 1.0)


def _numbers(text: Optional[str], count: int, what: str) -> list[float]:
    if text is None:
        raise UrdfError(f"{what} is missing")
    try:
        values = [float(v) for v in text.split()]
    except ValueError as exc:
        raise UrdfError(f"{what} is not numeric: {text!r}") from exc
    if len(values) != count:
        raise UrdfError(f"{what} needs {count} values, got {len(values)}")
    return values


def _parse_origin(element: Optional[ET.Element]) -> Transform:
    if element is None:
        return Transform.identity()
    xyz = _numbers(element.get("xyz", "0 0 0"), 3, "origin xyz")
    rpy = _numbers(element.get("rpy", "0 0 0"), 3, "origin rpy")
    basis = Rotation.from_euler("xyz", rpy).as_matrix()
    return Transform(basis, xyz)


def _parse_geometry(element: Optional[ET.Element]) -> Geometry:
    if element is None:
        raise UrdfError("collision element has no geometry")
    shape = next(iter(element), None)
    if shape is None:
        raise UrdfError("geometry element is empty")
    if shape.tag == "box":
        return Box(*_numbers(shape.get("size"), 3, "box size"))
    if shape.tag == "sphere":
        (radius,) = _numbers(shape.get("radius"), 1, "sphere radius")
        return Sphere(radius)
    if shape.tag == "cylinder":
        (radius,) = _numbers(shape.get("radius"), 1, "cylinder radius")
        (length,) = _numbers(shape.get("length"), 1, "cylinder length")
        return Cylinder(radius, length)
    if shape.tag == "mesh":
        filename = shape.get("filename")
        if filename is None:
            raise UrdfError("mesh has no filename")
        scale = _numbers(shape.get("scale", "1 1 1"), 3, "mesh scale")
        return MeshGeometry(filename, tuple(scale))
    raise UrdfError(f"unknown geometry type '{shape.tag}'")


def parse_urdf(text: Union[str, bytes]) -> RobotModel:
    """Parse a robot description and return its links with their collision geometry."""
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise UrdfError(f"unable to parse robot description: {exc}") from exc
    if root.tag != "robot":
        raise UrdfError("robot description has no <robot> root element")
    model = RobotModel(root.get("name", ""))
    for element in root.iter("link"):
        name = element.get("name")
        if not name:
            raise UrdfError("link without a name")
        if name in model.links:
            raise UrdfError(f"link '{name}' is defined more than once")
        collisions = [
            Collision(
                _parse_geometry(coll.find("geometry")),
                _parse_origin(coll.find("origin")),
                coll.get("name", ""),
            )
            for coll in element.findall("collision")
        ]
        model.links[name] = Link(name, collisions)
    return model


def _read_resource(uri: str) -> bytes:
    parsed = urlparse(uri)
    if parsed.scheme == "file":
        path = unquote(parsed.path)
    elif len(parsed.scheme) <= 1:
        path = uri
    else:
        raise OSError(f"cannot resolve resource '{uri}'")
    return Path(path).read_bytes()


def construct_shape_with_scale(geometry: Optional[Geometry], resolver: Optional[Resolver] = None) -> ShapeWithScale:
    """Build the shape for a collision geometry.

    Meshes are fetched through ``resolver`` (by default plain paths and
    ``file://`` URIs are read from disk); ``.dae``/``.DAE`` files are read as
    COLLADA, anything else as binary STL. A mesh that cannot be fetched or
    read yields no shape, but its scale is still reported.
    """
    if geometry is None:
        return ShapeWithScale()
    if isinstance(geometry, (Sphere, Box, Cylinder)):
        return ShapeWithScale(clone_shape(geometry))
    if not isinstance(geometry, MeshGeometry):
        raise TypeError(f"not a collision geometry: {geometry!r}")
    if not geometry.filename:
        return ShapeWithScale()
    scale = tuple(float(v) for v in geometry.scale)
    fetch = resolver or _read_resource
    try:
        data = fetch(geometry.filename)
    except Exception as exc:  # any failure to fetch means there is no mesh
        _log.debug("could not fetch mesh %s: %s", geometry.filename, exc)
        return ShapeWithScale(None, scale)
    if not data:
        return ShapeWithScale(None, scale)
    suffix = PurePosixPath(geometry.filename).suffix
    try:
        if suffix in (".dae", ".DAE"):
            shape = create_mesh_from_dae_data(data, geometry.filename)
        else:
            shape = create_mesh_from_binary_stl_data(data)
    except MeshError as exc:
        _log.error("could not load mesh %s: %s", geometry.filename, exc)
        shape = None
    return ShapeWithScale(shape, scale)