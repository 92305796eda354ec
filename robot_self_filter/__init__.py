"""Mask and filter a robot's own body out of point clouds using its URDF collision geometry."""

__version__ = "0.1.0"

__all__ = [
    "bodies",
    "convex_mesh",
    "filter",
    "markers",
    "mesh",
    "point_types",
    "self_mask",
    "shapes",
    "transform",
    "urdf",
]