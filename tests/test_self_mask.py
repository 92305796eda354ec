import struct

import numpy as np
import pytest

from robot_self_filter.point_types import PointCloud
from robot_self_filter.self_mask import LinkInfo, MaskResult, SelfMask
from robot_self_filter.transform import Transform, TransformBuffer
from robot_self_filter.urdf import UrdfError

URDF = """<robot name="test">
  <link name="base_link">
    <collision><origin xyz="0 0 0.2"/><geometry><box size="0.4 0.4 0.4"/></geometry></collision>
  </link>
  <link name="arm">
    <collision><geometry><sphere radius="0.1"/></geometry></collision>
  </link>
  <link name="mast">
    <collision><geometry><cylinder radius="0.05" length="1.0"/></geometry></collision>
  </link>
  <link name="laser"/>
</robot>"""

MESH_URDF = """<robot name="meshy">
  <link name="hand">
    <collision><geometry><mesh filename="package://hand.stl" scale="{scale}"/></geometry></collision>
  </link>
</robot>"""


def _buffer():
    buf = TransformBuffer()
    buf.set_transform("base_link", "arm", Transform(origin=(1.0, 0.0, 0.0)))
    buf.set_transform("base_link", "mast", Transform(origin=(-1.0, 0.0, 0.0)))
    buf.set_transform("base_link", "laser", Transform(origin=(0.0, 0.0, 2.0)))
    return buf


def _mask(links=None):
    if links is None:
        links = [LinkInfo("base_link"), LinkInfo("arm"), LinkInfo("mast")]
    return SelfMask(URDF, links, _buffer())


def _cube_stl(half):
    corners = [(x, y, z) for x in (-half, half) for y in (-half, half) for z in (-half, half)]
    quads = [(0, 1, 3, 2), (4, 5, 7, 6), (0, 1, 5, 4), (2, 3, 7, 6), (0, 2, 6, 4), (1, 3, 7, 5)]
    triangles = []
    for a, b, c, d in quads:
        triangles += [(a, b, c), (a, c, d)]
    data = b"\0" * 80 + struct.pack("<I", len(triangles))
    for tri in triangles:
        coords = [v for i in tri for v in corners[i]]
        data += struct.pack("<12fH", 0.0, 0.0, 0.0, *coords, 0)
    return data


def _mesh_mask(scale="1 1 1", links=None):
    buf = TransformBuffer()
    buf.set_transform("base_link", "hand", Transform(origin=(0.0, 2.0, 0.0)))
    data = _cube_stl(0.1)
    return SelfMask(
        MESH_URDF.format(scale=scale), links or [LinkInfo("hand")], buf, lambda uri: data
    )


def test_bodies_sorted_by_volume():
    assert _mask().link_names() == ["base_link", "mast", "arm"]


def test_unknown_and_shapeless_links_are_skipped():
    mask = _mask([LinkInfo("laser"), LinkInfo("missing"), LinkInfo("arm")])
    assert mask.link_names() == ["arm"]


def test_empty_description_is_an_error():
    with pytest.raises(ValueError):
        SelfMask("", [LinkInfo("base_link")])


def test_unparsable_description_is_an_error():
    with pytest.raises(UrdfError):
        SelfMask("<robot", [LinkInfo("base_link")])


def test_no_bodies_gives_all_outside():
    mask = SelfMask(URDF, [], _buffer())
    result = mask.mask_containment([[0.0, 0.0, 0.2], [5.0, 5.0, 5.0]], "base_link")
    assert result.tolist() == [MaskResult.OUTSIDE, MaskResult.OUTSIDE]


def test_mask_containment():
    mask = _mask()
    points = [[0.0, 0.0, 0.2], [5.0, 5.0, 5.0], [1.0, 0.0, 0.05], [-1.0, 0.0, 0.4], [0.0, 0.0, -1.0]]
    result = mask.mask_containment(points, "base_link")
    assert result.tolist() == [
        MaskResult.INSIDE,
        MaskResult.OUTSIDE,
        MaskResult.INSIDE,
        MaskResult.INSIDE,
        MaskResult.OUTSIDE,
    ]


def test_mask_containment_uses_cloud_frame():
    cloud = PointCloud.from_xyz([[0.0, 0.0, 0.2], [2.0, 2.0, 2.0]], frame_id="base_link")
    assert _mask().mask_containment(cloud).tolist() == [MaskResult.INSIDE, MaskResult.OUTSIDE]


def test_padding_enlarges_body():
    mask = _mask()
    mask.assume_frame("base_link")
    assert mask.get_mask_containment((0.205, 0.0, 0.2)) == MaskResult.INSIDE
    assert mask.get_mask_containment((0.215, 0.0, 0.2)) == MaskResult.OUTSIDE


def test_mask_intersection_with_sensor_frame():
    mask = _mask()
    hits = []
    points = [[0.0, 0.0, 0.2], [0.0, 0.0, -1.0], [3.0, 3.0, 3.0], [0.0, 0.0, 1.995]]
    result = mask.mask_intersection(points, "base_link", "laser", 0.01, hits.append)
    assert result.tolist() == [
        MaskResult.INSIDE,
        MaskResult.SHADOW,
        MaskResult.OUTSIDE,
        MaskResult.INSIDE,
    ]
    assert len(hits) == 1
    np.testing.assert_allclose(hits[0], [0.0, 0.0, -0.01], atol=1e-9)
    np.testing.assert_allclose(mask.sensor_position, [0.0, 0.0, 2.0])


def test_mask_intersection_with_sensor_position():
    mask = _mask()
    points = [[0.0, 0.0, -1.0], [3.0, 3.0, 3.0]]
    result = mask.mask_intersection(points, "base_link", (0.0, 0.0, 2.0))
    assert result.tolist() == [MaskResult.SHADOW, MaskResult.OUTSIDE]


def test_empty_sensor_frame_means_containment():
    mask = _mask()
    result = mask.mask_intersection([[0.0, 0.0, -1.0], [0.0, 0.0, 0.2]], "base_link", "")
    assert result.tolist() == [MaskResult.OUTSIDE, MaskResult.INSIDE]


def test_unknown_sensor_frame_puts_sensor_at_origin():
    mask = _mask()
    result = mask.mask_intersection([[0.0, 0.0, -0.005]], "base_link", "nowhere")
    assert result.tolist() == [MaskResult.INSIDE]
    np.testing.assert_allclose(mask.sensor_position, [0.0, 0.0, 0.0])


def test_padding_region_is_not_outside():
    mask = _mask()
    result = mask.mask_intersection([[0.205, 0.0, 0.2]], "base_link", "laser")
    assert result[0] in (MaskResult.INSIDE, MaskResult.SHADOW)


def test_get_mask_intersection_uses_last_sensor():
    mask = _mask()
    mask.mask_intersection([[5.0, 5.0, 5.0]], "base_link", "laser")
    hits = []
    assert mask.get_mask_intersection((0.0, 0.0, -1.0), hits.append) == MaskResult.SHADOW
    assert len(hits) == 1
    assert mask.get_mask_intersection((3.0, 3.0, 3.0)) == MaskResult.OUTSIDE


def test_random_cloud_intersection_invariants():
    # A padded base link and a tilting laser mount, as in the filter benchmark.
    urdf = """<robot name="r">
      <link name="base_link"><collision><geometry><box size="0.5 0.5 0.5"/></geometry></collision></link>
      <link name="laser_tilt_mount_link"/>
    </robot>"""
    buf = TransformBuffer()
    buf.set_transform("base_link", "laser_tilt_mount_link", Transform(origin=(0.1, 0.0, 0.8)))
    mask = SelfMask(urdf, [LinkInfo("base_link", scale=1.0, padding=0.05)], buf)
    rng = np.random.default_rng(7)
    points = rng.uniform(-1.5, 1.5, size=(3000, 3))
    hits = []
    result = mask.mask_intersection(points, "base_link", "laser_tilt_mount_link", 0.01, hits.append)
    assert len(result) == len(points)
    assert np.count_nonzero(result == MaskResult.SHADOW) == len(hits)
    assert np.count_nonzero(result == MaskResult.INSIDE) > 0
    for point, value in zip(points, result):
        if mask.get_mask_containment(point) == MaskResult.INSIDE:
            assert value in (MaskResult.INSIDE, MaskResult.SHADOW)


def test_mesh_link_contains_points():
    mask = _mesh_mask()
    assert mask.link_names() == ["hand"]
    result = mask.mask_containment([[0.0, 2.0, 0.05], [0.0, 2.5, 0.0]], "base_link")
    assert result.tolist() == [MaskResult.INSIDE, MaskResult.OUTSIDE]


def test_mesh_with_tiny_user_scale_is_skipped():
    links = [LinkInfo("hand", mesh_scale=(0.001, 0.001, 0.001), mesh_padding=(0.0, 0.0, 0.0))]
    assert _mesh_mask(links=links).link_names() == []


def test_mesh_with_tiny_description_scale_is_skipped():
    assert _mesh_mask(scale="0.005 1 1").link_names() == []


def test_link_info_converts_sequences():
    info = LinkInfo("a", scale=2, box_scale=[1, 2, 3])
    assert info.box_scale == (1.0, 2.0, 3.0)
    assert info.scale == 2.0
    assert info.padding == 0.01