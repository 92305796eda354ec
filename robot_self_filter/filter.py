"""A point cloud filter that removes (or keeps only) the points that belong to the robot."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import numpy as np

from .point_types import PointCloud
from .self_mask import LinkInfo, MaskResult, Resolver, SelfMask
from .transform import TransformBuffer

__all__ = ["FilterConfig", "SelfFilter"]

_LINKS = "self_see_links"


def _flatten(parameters: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    flat: dict[str, Any] = {}
    for key, value in parameters.items():
        name = f"{prefix}{key}"
        if isinstance(value, Mapping):
            flat.update(_flatten(value, name + "."))
        else:
            flat[name] = value
    return flat


def _floats(values) -> tuple[float, ...]:
    return tuple(float(v) for v in values)


@dataclass
class FilterConfig:
    """Settings of the self filter and the links it masks."""

    min_sensor_dist: float = 0.01
    keep_organized: bool = False
    zero_for_removed_points: bool = False
    invert: bool = False
    default_box_scale: tuple[float, ...] = (1.0, 1.0, 1.0)
    default_box_padding: tuple[float, ...] = (0.01, 0.01, 0.01)
    default_cylinder_scale: tuple[float, ...] = (1.0, 1.0)
    default_cylinder_padding: tuple[float, ...] = (0.01, 0.01)
    default_sphere_scale: float = 1.0
    default_sphere_padding: float = 0.01
    links: list[LinkInfo] = field(default_factory=list)

    @classmethod
    def from_parameters(cls, parameters: Mapping[str, Any]) -> "FilterConfig":
        """Read a configuration from dotted parameter names, flat or nested.

        Links come from ``self_see_links.names``; each link's settings live
        under ``self_see_links.<name>.``. A link's ``scale`` and ``padding``
        default to the sphere defaults.
        """
        flat = _flatten(parameters)
        defaults = cls()
        config = cls(
            min_sensor_dist=float(flat.get("min_sensor_dist", defaults.min_sensor_dist)),
            keep_organized=bool(flat.get("keep_organized", defaults.keep_organized)),
            zero_for_removed_points=bool(
                flat.get("zero_for_removed_points", defaults.zero_for_removed_points)
            ),
            invert=bool(flat.get("invert", defaults.invert)),
            default_box_scale=_floats(flat.get("default_box_scale", defaults.default_box_scale)),
            default_box_padding=_floats(
                flat.get("default_box_padding", defaults.default_box_padding)
            ),
            default_cylinder_scale=_floats(
                flat.get("default_cylinder_scale", defaults.default_cylinder_scale)
            ),
            default_cylinder_padding=_floats(
                flat.get("default_cylinder_padding", defaults.default_cylinder_padding)
            ),
            default_sphere_scale=float(
                flat.get("default_sphere_scale", defaults.default_sphere_scale)
            ),
            default_sphere_padding=float(
                flat.get("default_sphere_padding", defaults.default_sphere_padding)
            ),
        )
        names = flat.get(f"{_LINKS}.names", [])
        if isinstance(names, str):
            raise TypeError(f"{_LINKS}.names must be a list of link names")
        for name in names:
            prefix = f"{_LINKS}.{name}."
            config.links.append(
                LinkInfo(
                    name=str(name),
                    scale=flat.get(prefix + "scale", config.default_sphere_scale),
                    padding=flat.get(prefix + "padding", config.default_sphere_padding),
                    box_scale=flat.get(prefix + "box_scale", ()),
                    box_padding=flat.get(prefix + "box_padding", ()),
                    cylinder_scale=flat.get(prefix + "cylinder_scale", ()),
                    cylinder_padding=flat.get(prefix + "cylinder_padding", ()),
                    mesh_scale=flat.get(prefix + "mesh_scale", ()),
                    mesh_padding=flat.get(prefix + "mesh_padding", ()),
                )
            )
        return config


class SelfFilter:
    """Filters point clouds against the robot's collision bodies."""

    def __init__(
        self,
        robot_description: str,
        config: Optional[FilterConfig] = None,
        transforms: Optional[TransformBuffer] = None,
        resolver: Optional[Resolver] = None,
    ):
        self.config = config if config is not None else FilterConfig()
        self.transforms = transforms if transforms is not None else TransformBuffer()
        self._mask = SelfMask(robot_description, self.config.links, self.transforms, resolver)

    @property
    def self_mask(self) -> SelfMask:
        return self._mask

    def link_names(self) -> list[str]:
        return self._mask.link_names()

    def update(self, cloud: PointCloud, sensor_frame: str = "") -> PointCloud:
        """Return the cloud without the robot's points (or with only them when inverted).

        With a ``sensor_frame`` points shadowed by the robot are removed too.
        An organised output keeps every slot and blanks removed points with
        NaN coordinates, or zeros when so configured.
        """
        cfg = self.config
        if sensor_frame:
            keep = self._mask.mask_intersection(
                cloud, cloud.frame_id, sensor_frame, cfg.min_sensor_dist
            )
        else:
            keep = self._mask.mask_containment(cloud, cloud.frame_id)
        outside = keep == MaskResult.OUTSIDE
        selected = ~outside if cfg.invert else outside

        if cfg.keep_organized:
            points = cloud.points.copy()
            removed = ~selected
            points[removed] = np.zeros(1, dtype=points.dtype)
            fill = 0.0 if cfg.zero_for_removed_points else np.nan
            for axis in ("x", "y", "z"):
                points[axis][removed] = fill
            return PointCloud(points, cloud.frame_id, cloud.stamp, cloud.width, cloud.height)
        return PointCloud(cloud.points[selected].copy(), cloud.frame_id, cloud.stamp)