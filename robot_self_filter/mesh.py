"""Triangle meshes built from vertex lists, binary STL data and COLLADA documents."""

from __future__ import annotations

import logging
import math
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Iterator, Optional, Union

import numpy as np
from scipy.spatial.transform import Rotation

from .shapes import Mesh

__all__ = [
    "MeshError",
    "create_mesh_from_vertices",
    "create_mesh_from_triangle_soup",
    "create_mesh_from_binary_stl_data",
    "create_mesh_from_binary_stl",
    "create_mesh_from_dae_data",
    "get_mesh_unit_rescale",
]

_log = logging.getLogger(__name__)

_STL_HEADER_SIZE = 80
_STL_PREFIX_SIZE = _STL_HEADER_SIZE + 4
_STL_TRIANGLE = np.dtype(
    [("normal", "<f4", (3,)), ("vertices", "<f4", (3, 3)), ("attribute", "<u2")]
)


class MeshError(ValueError):
    """Raised when mesh data cannot be turned into a mesh."""


def _as_points(values) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return np.zeros((0, 3))
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise ValueError("points must be rows of three coordinates")
    return arr


def _triangle_normals(vertices: np.ndarray, triangles: np.ndarray) -> np.ndarray:
    if len(triangles) == 0:
        return np.zeros((0, 3))
    a, b, c = (vertices[triangles[:, k]] for k in range(3))
    normals = np.cross(a - b, b - c)
    lengths = np.linalg.norm(normals, axis=1, keepdims=True)
    # Degenerate triangles keep a zero normal.
    return np.divide(normals, lengths, out=np.zeros_like(normals), where=lengths > 0)


def create_mesh_from_vertices(vertices, triangles) -> Mesh:
    """Build a mesh from vertices and triangle indices, computing one normal per triangle.

    ``triangles`` may be flat or given as rows of three; a trailing partial
    triangle is ignored.
    """
    verts = _as_points(vertices)
    flat = np.asarray(triangles, dtype=np.int64).reshape(-1)
    tris = flat[: len(flat) // 3 * 3].reshape(-1, 3)
    if tris.size and (tris.min() < 0 or tris.max() >= len(verts)):
        raise IndexError("triangle refers to a vertex that does not exist")
    return Mesh(verts.copy(), tris, _triangle_normals(verts, tris))


def create_mesh_from_triangle_soup(source) -> Mesh:
    """Build a mesh where every three consecutive points form a triangle.

    Repeated points are merged into one vertex; vertices are numbered in the
    order they first appear. Points left over after the last whole triangle
    are ignored.
    """
    points = _as_points(source)
    if len(points) < 3:
        raise MeshError("at least three vertices are needed to form a triangle")
    points = points[: len(points) // 3 * 3]
    index: dict[tuple[float, float, float], int] = {}
    unique: list[tuple[float, float, float]] = []
    triangles: list[int] = []
    for point in map(tuple, points.tolist()):
        idx = index.get(point)
        if idx is None:
            idx = index[point] = len(unique)
            unique.append(point)
        triangles.append(idx)
    return create_mesh_from_vertices(np.array(unique, dtype=float), triangles)


def create_mesh_from_binary_stl_data(data) -> Mesh:
    """Build a mesh from the bytes of a binary STL file."""
    buf = bytes(data)
    if len(buf) < _STL_PREFIX_SIZE:
        raise MeshError("binary STL data is shorter than its header")
    count = int.from_bytes(buf[_STL_HEADER_SIZE:_STL_PREFIX_SIZE], "little")
    if _STL_TRIANGLE.itemsize * count + _STL_PREFIX_SIZE > len(buf):
        raise MeshError(f"binary STL data too short for {count} triangles")
    records = np.frombuffer(buf, dtype=_STL_TRIANGLE, count=count, offset=_STL_PREFIX_SIZE)
    return create_mesh_from_triangle_soup(records["vertices"].reshape(-1, 3).astype(float))


def create_mesh_from_binary_stl(filename) -> Mesh:
    """Read a binary STL file and build a mesh from it."""
    return create_mesh_from_binary_stl_data(Path(filename).read_bytes())


def _local(tag) -> str:
    return tag.rsplit("}", 1)[-1] if isinstance(tag, str) else ""


def _child(element: Optional[ET.Element], name: str) -> Optional[ET.Element]:
    if element is None:
        return None
    return next((c for c in element if _local(c.tag) == name), None)


def _children(element: ET.Element, name: str) -> Iterator[ET.Element]:
    return (c for c in element if _local(c.tag) == name)


def _descendants(element: ET.Element, name: str) -> Iterator[ET.Element]:
    return (e for e in element.iter() if _local(e.tag) == name)


def _parse_document(data: Union[bytes, str]) -> Optional[ET.Element]:
    try:
        root = ET.fromstring(data)
    except ET.ParseError:
        return None
    return root if _local(root.tag) == "COLLADA" else None


def get_mesh_unit_rescale(data) -> float:
    """Return the ``meter`` value of a COLLADA document's unit, or 1.0 when it has none."""
    if not data:
        return 1.0
    root = _parse_document(data)
    unit = _child(_child(root, "asset"), "unit")
    if unit is None:
        return 1.0
    meter = unit.get("meter")
    if meter is None:
        return 1.0
    try:
        return float(meter)
    except ValueError:
        _log.warning("Failed to convert unit element meter attribute %r; using scale 1.0", meter)
        return 1.0


def _floats(element: Optional[ET.Element]) -> np.ndarray:
    if element is None:
        return np.zeros(0)
    return np.array((element.text or "").split(), dtype=float)


def _ints(element: Optional[ET.Element]) -> np.ndarray:
    if element is None:
        return np.zeros(0, dtype=np.int64)
    return np.array((element.text or "").split(), dtype=np.int64)


def _ref(element: ET.Element, attribute: str) -> str:
    return element.get(attribute, "").lstrip("#")


def _mesh_sources(mesh: ET.Element) -> dict[str, np.ndarray]:
    sources = {}
    for source in _children(mesh, "source"):
        array = _child(source, "float_array")
        if array is None:
            continue
        values = _floats(array)
        accessor = _child(_child(source, "technique_common"), "accessor")
        stride = int(accessor.get("stride", "3")) if accessor is not None else 3
        if stride < 3:
            continue
        rows = values[: len(values) // stride * stride].reshape(-1, stride)
        sources[source.get("id", "")] = rows[:, :3]
    return sources


def _primitive_polygons(prim: ET.Element, stride: int, offset: int) -> list[np.ndarray]:
    kind = _local(prim.tag)
    if kind == "polygons":
        groups = [_ints(p) for p in _children(prim, "p")]
    else:
        groups = [_ints(_child(prim, "p"))]
    polygons = []
    for group in groups:
        indices = group[: len(group) // stride * stride].reshape(-1, stride)[:, offset]
        if kind == "triangles":
            polygons.extend(indices[: len(indices) // 3 * 3].reshape(-1, 3))
        elif kind == "polylist":
            counts = _ints(_child(prim, "vcount"))
            polygons.extend(np.split(indices, np.cumsum(counts))[: len(counts)])
        else:
            polygons.append(indices)
    return polygons


def _geometry_positions(geometry: ET.Element) -> np.ndarray:
    """Triangle corner positions of a geometry, three rows per triangle."""
    mesh = _child(geometry, "mesh")
    if mesh is None:
        return np.zeros((0, 3))
    sources = _mesh_sources(mesh)
    vertex_sets = {}
    for vertices in _children(mesh, "vertices"):
        for inp in _children(vertices, "input"):
            if inp.get("semantic") == "POSITION" and _ref(inp, "source") in sources:
                vertex_sets[vertices.get("id", "")] = sources[_ref(inp, "source")]
    chunks = []
    for prim in mesh:
        if _local(prim.tag) not in ("triangles", "polylist", "polygons"):
            continue
        inputs = list(_children(prim, "input"))
        if not inputs:
            continue
        stride = max(int(inp.get("offset", "0")) for inp in inputs) + 1
        positions, offset = None, 0
        for inp in inputs:
            semantic = inp.get("semantic")
            if semantic == "VERTEX":
                positions = vertex_sets.get(_ref(inp, "source"))
                offset = int(inp.get("offset", "0"))
            elif semantic == "POSITION" and positions is None:
                positions = sources.get(_ref(inp, "source"))
                offset = int(inp.get("offset", "0"))
        if positions is None:
            continue
        corners: list[int] = []
        for polygon in _primitive_polygons(prim, stride, offset):
            first = int(polygon[0]) if len(polygon) else 0
            for second, third in zip(polygon[1:], polygon[2:]):
                corners.extend((first, int(second), int(third)))
        if not corners:
            continue
        idx = np.array(corners, dtype=np.int64)
        if idx.min() < 0 or idx.max() >= len(positions):
            raise MeshError("COLLADA primitive refers to a vertex that does not exist")
        chunks.append(positions[idx])
    return np.vstack(chunks) if chunks else np.zeros((0, 3))


def _rotation_matrix(axis: np.ndarray, degrees: float) -> np.ndarray:
    norm = np.linalg.norm(axis)
    if norm == 0.0:
        return np.eye(3)
    return Rotation.from_rotvec(axis / norm * math.radians(degrees)).as_matrix()


def _node_matrix(node: ET.Element) -> np.ndarray:
    matrix = np.eye(4)
    for element in node:
        kind = _local(element.tag)
        values = _floats(element) if kind in ("matrix", "translate", "rotate", "scale") else None
        step = np.eye(4)
        if kind == "matrix" and len(values) == 16:
            step = values.reshape(4, 4)
        elif kind == "translate" and len(values) == 3:
            step[:3, 3] = values
        elif kind == "scale" and len(values) == 3:
            step[:3, :3] = np.diag(values)
        elif kind == "rotate" and len(values) == 4:
            step[:3, :3] = _rotation_matrix(values[:3], values[3])
        else:
            continue
        matrix = matrix @ step
    return matrix


def _visual_scene(root: ET.Element) -> Optional[ET.Element]:
    scenes = {s.get("id", ""): s for s in _descendants(root, "visual_scene")}
    instance = _child(_child(root, "scene"), "instance_visual_scene")
    if instance is not None and _ref(instance, "url") in scenes:
        return scenes[_ref(instance, "url")]
    return next(iter(scenes.values()), None)


def create_mesh_from_dae_data(data, name: str = "<memory>") -> Mesh:
    """Build a mesh from a COLLADA document, baking node transforms and the unit scale."""
    root = _parse_document(data)
    if root is None:
        raise MeshError(f"could not load resource [{name}]: not a COLLADA document")
    try:
        geometries = {g.get("id", ""): _geometry_positions(g) for g in _descendants(root, "geometry")}
        scene = _visual_scene(root)
        chunks: list[np.ndarray] = []

        def visit(node: ET.Element, parent: np.ndarray) -> None:
            matrix = parent @ _node_matrix(node)
            for element in node:
                kind = _local(element.tag)
                if kind == "instance_geometry":
                    points = geometries.get(_ref(element, "url"))
                    if points is not None and len(points):
                        chunks.append(points @ matrix[:3, :3].T + matrix[:3, 3])
                elif kind == "node":
                    visit(element, matrix)

        if scene is not None:
            for node in _children(scene, "node"):
                visit(node, np.eye(4))
    except MeshError:
        raise
    except ValueError as exc:
        raise MeshError(f"could not load resource [{name}]: {exc}") from exc
    if not chunks:
        raise MeshError(f"no meshes found in file [{name}]")
    scale = get_mesh_unit_rescale(data)
    return create_mesh_from_triangle_soup(np.vstack(chunks) * scale)