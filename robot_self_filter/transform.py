"""Rigid transforms and a small frame-tree buffer."""

from __future__ import annotations

from collections import deque
from typing import Iterable

import numpy as np

__all__ = ["Transform", "TransformBuffer", "TransformLookupError"]


def _vector(values: Iterable[float], name: str) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    if arr.shape != (3,):
        raise ValueError(f"{name} must have exactly three components")
    return arr


class Transform:
    """A rotation (3x3 basis) followed by a translation (origin)."""

    __slots__ = ("_basis", "_origin")

    def __init__(self, basis=None, origin=None):
        self._basis = np.eye(3) if basis is None else np.array(basis, dtype=float)
        if self._basis.shape != (3, 3):
            raise ValueError("basis must be a 3x3 matrix")
        self._origin = np.zeros(3) if origin is None else _vector(origin, "origin").copy()

    @classmethod
    def identity(cls) -> "Transform":
        """The transform that leaves every point where it is."""
        return cls()

    @classmethod
    def from_quaternion(cls, quaternion, translation=(0.0, 0.0, 0.0)) -> "Transform":
        """Build a transform from an (x, y, z, w) quaternion and a translation."""
        q = np.asarray(quaternion, dtype=float)
        if q.shape != (4,):
            raise ValueError("quaternion must have four components (x, y, z, w)")
        norm = np.linalg.norm(q)
        if norm == 0.0:
            raise ValueError("quaternion must not be zero")
        x, y, z, w = q / norm
        basis = np.array(
            [
                [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
                [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
                [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
            ]
        )
        return cls(basis, translation)

    @property
    def basis(self) -> np.ndarray:
        return self._basis.copy()

    @property
    def origin(self) -> np.ndarray:
        return self._origin.copy()

    def apply(self, point) -> np.ndarray:
        """Transform a point, or an (N, 3) array of points."""
        pts = np.asarray(point, dtype=float)
        return pts @ self._basis.T + self._origin

    def rotate(self, vector) -> np.ndarray:
        """Rotate a direction vector (or an (N, 3) array) without translating it."""
        return np.asarray(vector, dtype=float) @ self._basis.T

    def inverse(self) -> "Transform":
        inv = self._basis.T
        return Transform(inv, -(inv @ self._origin))

    def quaternion(self) -> np.ndarray:
        """The rotation as a unit (x, y, z, w) quaternion."""
        m = self._basis
        trace = m[0, 0] + m[1, 1] + m[2, 2]
        if trace > 0.0:
            s = np.sqrt(trace + 1.0) * 2.0
            w = 0.25 * s
            x = (m[2, 1] - m[1, 2]) / s
            y = (m[0, 2] - m[2, 0]) / s
            z = (m[1, 0] - m[0, 1]) / s
        elif m[0, 0] > m[1, 1] and m[0, 0] > m[2, 2]:
            s = np.sqrt(1.0 + m[0, 0] - m[1, 1] - m[2, 2]) * 2.0
            w = (m[2, 1] - m[1, 2]) / s
            x = 0.25 * s
            y = (m[0, 1] + m[1, 0]) / s
            z = (m[0, 2] + m[2, 0]) / s
        elif m[1, 1] > m[2, 2]:
            s = np.sqrt(1.0 + m[1, 1] - m[0, 0] - m[2, 2]) * 2.0
            w = (m[0, 2] - m[2, 0]) / s
            x = (m[0, 1] + m[1, 0]) / s
            y = 0.25 * s
            z = (m[1, 2] + m[2, 1]) / s
        else:
            s = np.sqrt(1.0 + m[2, 2] - m[0, 0] - m[1, 1]) * 2.0
            w = (m[1, 0] - m[0, 1]) / s
            x = (m[0, 2] + m[2, 0]) / s
            y = (m[1, 2] + m[2, 1]) / s
            z = 0.25 * s
        q = np.array([x, y, z, w])
        return q / np.linalg.norm(q)

    def __mul__(self, other):
        """Compose with another transform, or transform a point."""
        if isinstance(other, Transform):
            return Transform(self._basis @ other._basis, self.apply(other._origin))
        return self.apply(other)

    def __repr__(self) -> str:
        return f"Transform(quaternion={self.quaternion().tolist()}, origin={self._origin.tolist()})"


class TransformLookupError(LookupError):
    """Raised when no chain of transforms connects two frames."""


class TransformBuffer:
    """Holds transforms between named frames and resolves chains between them."""

    def __init__(self):
        self._edges: dict[str, dict[str, Transform]] = {}

    def set_transform(self, target_frame: str, source_frame: str, transform: Transform) -> None:
        """Record the transform taking points in ``source_frame`` to ``target_frame``."""
        if target_frame == source_frame:
            raise ValueError("target and source frame must differ")
        self._edges.setdefault(target_frame, {})[source_frame] = transform
        self._edges.setdefault(source_frame, {})[target_frame] = transform.inverse()

    def lookup_transform(self, target_frame: str, source_frame: str) -> Transform:
        """Return the transform taking points in ``source_frame`` to ``target_frame``."""
        if target_frame == source_frame:
            return Transform.identity()
        if target_frame not in self._edges or source_frame not in self._edges:
            raise TransformLookupError(f"no transform from '{source_frame}' to '{target_frame}'")
        previous: dict[str, str] = {target_frame: target_frame}
        queue = deque([target_frame])
        while queue:
            frame = queue.popleft()
            if frame == source_frame:
                break
            for neighbour in self._edges[frame]:
                if neighbour not in previous:
                    previous[neighbour] = frame
                    queue.append(neighbour)
        if source_frame not in previous:
            raise TransformLookupError(f"no transform from '{source_frame}' to '{target_frame}'")
        result = Transform.identity()
        frame = source_frame
        while frame != target_frame:
            parent = previous[frame]
            result = self._edges[parent][frame] * result
            frame = parent
        return result