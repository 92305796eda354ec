"""Point layouts of the supported lidar sensors, and a simple point cloud container."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

import numpy as np

__all__ = ["SensorType", "PointCloud", "point_dtype"]


class SensorType(IntEnum):
    XYZ = 0
    XYZRGB = 1
    OUSTER = 2
    HESAI = 3
    ROBOSENSE = 4
    PANDAR = 5


_XYZ = [("x", "<f4"), ("y", "<f4"), ("z", "<f4")]

_DTYPES = {
    SensorType.XYZ: np.dtype(_XYZ),
    SensorType.XYZRGB: np.dtype(_XYZ + [("rgb", "<f4")]),
    SensorType.OUSTER: np.dtype(
        _XYZ
        + [
            ("intensity", "<f4"),
            ("t", "<u4"),
            ("reflectivity", "<u2"),
            ("ring", "u1"),
            ("ambient", "<u2"),
            ("range", "<u4"),
        ]
    ),
    SensorType.HESAI: np.dtype(
        _XYZ + [("intensity", "<f4"), ("time", "<u4"), ("ring", "<u2")]
    ),
    SensorType.ROBOSENSE: np.dtype(_XYZ + [("intensity", "<f4")]),
    SensorType.PANDAR: np.dtype(
        _XYZ + [("intensity", "<f4"), ("timestamp", "<f8"), ("ring", "<u2")]
    ),
}


def point_dtype(sensor_type) -> np.dtype:
    """The structured dtype of one point from a sensor; unknown sensors get plain x, y, z."""
    try:
        kind = SensorType(sensor_type)
    except ValueError:
        kind = SensorType.XYZ
    return _DTYPES[kind]


@dataclass
class PointCloud:
    """Points as a structured array, with the frame they are expressed in.

    ``width`` and ``height`` describe an organised cloud; by default the cloud
    is one row of ``len(points)`` points.
    """

    points: np.ndarray
    frame_id: str = ""
    stamp: float = 0.0
    width: Optional[int] = None
    height: Optional[int] = None

    def __post_init__(self):
        self.points = np.asarray(self.points).reshape(-1)
        names = self.points.dtype.names or ()
        missing = [axis for axis in ("x", "y", "z") if axis not in names]
        if missing:
            raise ValueError(f"points lack the fields {', '.join(missing)}")
        if self.width is None and self.height is None:
            self.width, self.height = len(self.points), 1
        elif self.width is None or self.height is None:
            raise ValueError("width and height must be given together")
        if self.width * self.height != len(self.points):
            raise ValueError(
                f"a {self.width}x{self.height} cloud cannot hold {len(self.points)} points"
            )

    @classmethod
    def from_xyz(cls, xyz, sensor_type=SensorType.XYZ, frame_id: str = "") -> "PointCloud":
        """A cloud of the given sensor's layout whose other fields are zero."""
        coords = np.asarray(xyz, dtype=float).reshape(-1, 3)
        points = np.zeros(len(coords), dtype=point_dtype(sensor_type))
        for axis, column in zip("xyz", coords.T):
            points[axis] = column
        return cls(points, frame_id)

    def __len__(self) -> int:
        return len(self.points)

    def xyz(self) -> np.ndarray:
        """The coordinates as an (N, 3) float array."""
        return np.column_stack(
            [self.points[axis].astype(float) for axis in ("x", "y", "z")]
        ).reshape(-1, 3)