# robot_self_filter

Remove points that belong to the robot itself from a point cloud.

A lidar or depth camera mounted on a robot sees parts of that robot: arms,
wheels, the chassis. This package reads the robot's URDF description, builds
collision bodies (spheres, boxes, cylinders and convex meshes) for the links
you name, places them using link transforms you supply, and classifies every
point of a cloud as

- `MaskResult.INSIDE` – the point lies within a (padded) robot body,
- `MaskResult.SHADOW` – the ray from the point back to the sensor passes
  through a robot body, so the point is occluded by the robot,
- `MaskResult.OUTSIDE` – the point is a genuine observation of the world.

The filter then keeps the outside points, or, when inverted, only the points
that are not outside.

## Installation

```
pip install .
pip install .[test]   # with pytest, to run the tests
```

The package depends on `numpy` and `scipy`.

## Building blocks

| Module | What it provides |
| --- | --- |
| `robot_self_filter.transform` | `Transform` (rigid transforms, from `Transform.identity()`, `Transform.from_quaternion(quaternion, translation)` or a basis and origin), `TransformBuffer`, a store of frame-to-frame transforms that resolves chains between frames, and `TransformLookupError` |
| `robot_self_filter.shapes` | Plain shape descriptions: `Sphere`, `Cylinder`, `Box`, `Mesh`, `Plane`, the `ShapeType`/`StaticShapeType` enums, and `clone_shape` |
| `robot_self_filter.mesh` | Meshes from vertex lists, triangle soups, binary STL data and COLLADA documents: `create_mesh_from_vertices`, `create_mesh_from_triangle_soup`, `create_mesh_from_binary_stl_data`, `create_mesh_from_binary_stl`, `create_mesh_from_dae_data`, `get_mesh_unit_rescale`, and `MeshError` |
| `robot_self_filter.urdf` | `parse_urdf`, `RobotModel`, `Link`, `Collision`, `MeshGeometry`, `construct_shape_with_scale`, and `UrdfError` |
| `robot_self_filter.bodies` | Posed, scaled and padded `Sphere`, `Box` and `Cylinder` bodies with point containment, ray intersection, volume and bounding spheres; `BoundingSphere` and `merge_bounding_spheres` |
| `robot_self_filter.convex_mesh` | `ConvexMesh` bodies built from the convex hull of a mesh, and `create_body_from_shape` |
| `robot_self_filter.point_types` | `SensorType`, `point_dtype` for XYZ, XYZRGB, Ouster, Hesai, Robosense and Pandar point layouts, and `PointCloud` |
| `robot_self_filter.self_mask` | `SelfMask`, `LinkInfo`, `SeeLink` and `MaskResult` |
| `robot_self_filter.filter` | `SelfFilter` and its `FilterConfig` |
| `robot_self_filter.markers` | `markers_from_mask`, turning the collision bodies into `Marker` records (`MarkerType`, `MarkerAction`) |

## Bodies on their own

```python
from robot_self_filter.bodies import Box
from robot_self_filter.shapes import Box as BoxShape
from robot_self_filter.transform import Transform

box = Box(BoxShape(1.0, 0.5, 0.25))
box.set_padding(0.01, 0.01, 0.01)
box.set_pose(Transform.from_quaternion((0.0, 0.0, 0.0, 1.0), (1.0, 0.0, 0.0)))

box.contains_point((1.2, 0.1, 0.0))                      # True
box.intersects_ray((3.0, 0.0, 0.0), (-1.0, 0.0, 0.0), 1)  # [array([1.51, 0., 0.])]
box.compute_volume()
```

`intersects_ray` returns the list of hit points (empty on a miss) and
expects a unit direction; `count` limits how many hits are returned
(`0` means all).

## Masking a cloud

`SelfMask` needs the URDF text, the links to filter, a `TransformBuffer`
that knows where each link is relative to the cloud's frame, and optionally
a resolver that turns mesh file names from the URDF into their bytes.
Without a resolver, plain paths and `file://` URIs are read from disk; any
other URI scheme, or a mesh that cannot be read, gives that collision
element no body.

```python
import numpy as np

from robot_self_filter.self_mask import LinkInfo, MaskResult, SelfMask
from robot_self_filter.transform import Transform, TransformBuffer

transforms = TransformBuffer()
transforms.set_transform("odom", "base_link", Transform.identity())

mask = SelfMask(
    robot_description=urdf_text,
    links=[LinkInfo(name="base_link", padding=0.05, scale=1.0)],
    transforms=transforms,
    resolver=lambda filename: open(filename, "rb").read(),
)

labels = mask.mask_containment(points, "odom")   # points: (N, 3) array or PointCloud
inside = int(np.count_nonzero(labels == MaskResult.INSIDE))
```

A frame is always connected to itself, so a cloud expressed in a link's own
frame needs no entry in the buffer. Bodies whose link cannot be located keep
their previous pose. An empty robot description raises `ValueError`; a
description that cannot be parsed raises `UrdfError`.

For shadow detection, pass the sensor frame name (or a sensor position) to
`mask.mask_intersection(points, frame_id, sensor, min_sensor_dist, callback)`.
An empty sensor frame falls back to plain containment; a sensor frame that
cannot be located puts the sensor at the origin. The optional callback
receives each point where a ray back to the sensor hits the robot. Single
points can be checked with `get_mask_containment` and
`get_mask_intersection` (which uses the sensor position of the last
intersection mask), and `link_names()` gives the link name of every body,
largest volume first.

Per-link scaling and padding follow the shape type: boxes and meshes take
three values (`box_scale`/`box_padding`, `mesh_scale`/`mesh_padding`),
cylinders take a radial and a vertical value (`cylinder_scale`/
`cylinder_padding`), and spheres – and every shape without its own values –
use the single `scale` and `padding`. A mesh's scale from the URDF is
multiplied in, and mesh bodies whose combined scale falls below 0.01 on any
axis are skipped.

## Filtering a cloud

`SelfFilter` wraps a `SelfMask` and produces the filtered cloud.
`FilterConfig.from_parameters` reads dotted parameter names, given flat or
as nested mappings:

```python
from robot_self_filter.filter import FilterConfig, SelfFilter
from robot_self_filter.point_types import PointCloud, SensorType

config = FilterConfig.from_parameters({
    "min_sensor_dist": 0.01,
    "keep_organized": False,
    "zero_for_removed_points": False,
    "invert": False,
    "self_see_links.names": ["base_link", "arm_link"],
    "self_see_links.arm_link.cylinder_scale": [1.0, 1.0],
    "self_see_links.arm_link.cylinder_padding": [0.02, 0.02],
})

self_filter = SelfFilter(urdf_text, config, transforms, resolver)
cloud = PointCloud.from_xyz(xyz, SensorType.OUSTER, frame_id="odom")
filtered = self_filter.update(cloud, "lidar")
```

A link's `scale` and `padding` default to `default_sphere_scale` and
`default_sphere_padding`. With an empty sensor frame only containment is
tested; otherwise shadowed points are removed as well. `keep_organized`
keeps the cloud's width and height and blanks removed points: their
coordinates become NaN (or zeros when `zero_for_removed_points` is set) and
their other fields zero.

## Markers

`markers_from_mask(mask, frame_id)` returns one `Marker` per body, posed as
the body currently is: spheres, cubes and cylinders sized from the scaled
and padded dimensions, and convex meshes as triangle lists of their scaled
hull vertices. An empty frame id puts the markers in the `map` frame.

## What this package does not do

It is a library only: there is no command-line program and no running
node. It does not subscribe to or publish point clouds or markers, and it
does not listen for transforms – the caller hands in each cloud, fills the
`TransformBuffer` with the current link poses, and does what it likes with
the filtered cloud and the `Marker` records. Package-relative mesh URIs are
not resolved unless a resolver that understands them is supplied.