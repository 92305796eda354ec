import math

import numpy as np
import pytest

from robot_self_filter import bodies, shapes
from robot_self_filter.bodies import BoundingSphere, merge_bounding_spheres
from robot_self_filter.transform import Transform


def _yaw90():
    s = math.sin(math.pi / 4)
    return Transform.from_quaternion((0.0, 0.0, s, math.cos(math.pi / 4)))


# ---------------------------------------------------------------- sphere


def test_sphere_contains_centre_not_far_point():
    body = bodies.Sphere(shapes.Sphere(1.0))
    assert body.contains_point((0.0, 0.0, 0.0))
    assert body.contains_point((0.5, 0.5, 0.0))
    assert not body.contains_point((2.0, 0.0, 0.0))


def test_sphere_padding_and_scale_grow_radius():
    body = bodies.Sphere(shapes.Sphere(1.0))
    assert not body.contains_point((1.2, 0.0, 0.0))
    body.set_padding(0.5)
    assert body.scaled_radius == pytest.approx(1.5)
    assert body.contains_point((1.2, 0.0, 0.0))
    body.set_padding(0.0)
    body.set_scale(2.0)
    assert body.scaled_radius == pytest.approx(2.0)


def test_sphere_volume_scales_cubically():
    body = bodies.Sphere(shapes.Sphere(1.0))
    small = body.compute_volume()
    body.set_scale(2.0)
    assert body.compute_volume() == pytest.approx(8.0 * small)


def test_sphere_follows_pose():
    body = bodies.Sphere(shapes.Sphere(0.5))
    body.set_pose(Transform(origin=(2.0, 0.0, 0.0)))
    assert body.contains_point((2.0, 0.0, 0.0))
    assert not body.contains_point((0.0, 0.0, 0.0))
    sphere = body.compute_bounding_sphere()
    assert np.allclose(sphere.center, (2.0, 0.0, 0.0))
    assert sphere.radius == pytest.approx(0.5)


def test_sphere_ray_hits_both_sides_in_order():
    body = bodies.Sphere(shapes.Sphere(1.0))
    hits = body.intersects_ray((-5.0, 0.0, 0.0), (1.0, 0.0, 0.0))
    assert len(hits) == 2
    assert np.allclose(hits[0], (-1.0, 0.0, 0.0))
    assert np.allclose(hits[1], (1.0, 0.0, 0.0))


def test_sphere_ray_count_one_returns_nearest():
    body = bodies.Sphere(shapes.Sphere(1.0))
    hits = body.intersects_ray((-5.0, 0.0, 0.0), (1.0, 0.0, 0.0), 1)
    assert len(hits) == 1
    assert np.allclose(hits[0], (-1.0, 0.0, 0.0))


def test_sphere_ray_misses():
    body = bodies.Sphere(shapes.Sphere(1.0))
    assert body.intersects_ray((-5.0, 2.0, 0.0), (1.0, 0.0, 0.0)) == []
    assert body.intersects_ray((5.0, 0.0, 0.0), (1.0, 0.0, 0.0)) == []


def test_sphere_rejects_wrong_shape():
    with pytest.raises(TypeError):
        bodies.Sphere(shapes.Box(1.0, 1.0, 1.0))


# ---------------------------------------------------------------- cylinder


def test_cylinder_containment():
    body = bodies.Cylinder(shapes.Cylinder(radius=1.0, length=2.0))
    assert body.contains_point((0.0, 0.0, 0.9))
    assert body.contains_point((0.7, 0.0, 0.0))
    assert not body.contains_point((0.0, 0.0, 1.1))
    assert not body.contains_point((0.8, 0.8, 0.0))


def test_cylinder_scaled_dimensions():
    body = bodies.Cylinder(shapes.Cylinder(radius=1.0, length=2.0))
    body.set_scale(2.0, 3.0)
    body.set_padding(0.5, 0.25)
    assert body.scaled_radius == pytest.approx(2.5)
    assert body.scaled_half_length == pytest.approx(3.25)


def test_cylinder_ray_through_caps_sorted():
    body = bodies.Cylinder(shapes.Cylinder(radius=1.0, length=2.0))
    hits = body.intersects_ray((0.0, 0.0, -5.0), (0.0, 0.0, 1.0))
    assert len(hits) == 2
    assert np.allclose(hits[0], (0.0, 0.0, -1.0))
    assert np.allclose(hits[1], (0.0, 0.0, 1.0))
    first = body.intersects_ray((0.0, 0.0, -5.0), (0.0, 0.0, 1.0), 1)
    assert len(first) == 1
    assert np.allclose(first[0], (0.0, 0.0, -1.0))


def test_cylinder_ray_through_barrel():
    body = bodies.Cylinder(shapes.Cylinder(radius=1.0, length=2.0))
    hits = body.intersects_ray((-5.0, 0.0, 0.0), (1.0, 0.0, 0.0))
    assert len(hits) == 2
    assert np.allclose(hits[0], (-1.0, 0.0, 0.0))
    assert np.allclose(hits[1], (1.0, 0.0, 0.0))


def test_cylinder_ray_miss():
    body = bodies.Cylinder(shapes.Cylinder(radius=1.0, length=2.0))
    assert body.intersects_ray((-5.0, 0.0, 3.0), (1.0, 0.0, 0.0)) == []


def test_cylinder_bounding_sphere_encloses_rim():
    body = bodies.Cylinder(shapes.Cylinder(radius=1.0, length=2.0))
    sphere = body.compute_bounding_sphere()
    rim = np.array((1.0, 0.0, 1.0))
    assert np.linalg.norm(rim - sphere.center) <= sphere.radius + 1e-12


def test_cylinder_volume_scales_with_length():
    body = bodies.Cylinder(shapes.Cylinder(radius=1.0, length=2.0))
    base = body.compute_volume()
    body.set_scale(1.0, 2.0)
    assert body.compute_volume() == pytest.approx(2.0 * base)


# ---------------------------------------------------------------- box


def test_box_containment_and_half_extents():
    body = bodies.Box(shapes.Box(2.0, 4.0, 6.0))
    assert body.scaled_half_length == pytest.approx(1.0)
    assert body.scaled_half_width == pytest.approx(2.0)
    assert body.scaled_half_height == pytest.approx(3.0)
    assert body.contains_point((0.9, 1.9, 2.9))
    assert not body.contains_point((1.1, 0.0, 0.0))


def test_box_volume_is_product_of_sizes():
    body = bodies.Box(shapes.Box(1.0, 2.0, 3.0))
    assert body.compute_volume() == pytest.approx(6.0)


def test_box_padding_and_scale():
    body = bodies.Box(shapes.Box(2.0, 2.0, 2.0))
    body.set_scale(2.0, 1.0, 1.0)
    body.set_padding(0.0, 0.5, 0.0)
    assert body.scaled_half_length == pytest.approx(2.0)
    assert body.scaled_half_width == pytest.approx(1.5)
    assert body.contains_point((1.9, 1.4, 0.0))


def test_box_rotated_pose():
    body = bodies.Box(shapes.Box(4.0, 1.0, 1.0))
    body.set_pose(_yaw90())
    assert body.contains_point((0.0, 1.5, 0.0))
    assert not body.contains_point((1.5, 0.0, 0.0))


def test_box_ray_near_and_far():
    body = bodies.Box(shapes.Box(2.0, 2.0, 2.0))
    near = body.intersects_ray((-5.0, 0.0, 0.0), (1.0, 0.0, 0.0))
    assert len(near) == 1
    assert np.allclose(near[0], (-1.0, 0.0, 0.0))
    both = body.intersects_ray((-5.0, 0.0, 0.0), (1.0, 0.0, 0.0), 2)
    assert len(both) == 2
    assert np.allclose(both[1], (1.0, 0.0, 0.0))


def test_box_ray_misses():
    body = bodies.Box(shapes.Box(2.0, 2.0, 2.0))
    assert body.intersects_ray((-5.0, 3.0, 0.0), (1.0, 0.0, 0.0)) == []
    assert body.intersects_ray((5.0, 0.0, 0.0), (1.0, 0.0, 0.0)) == []


def test_box_bounding_sphere_touches_corner():
    body = bodies.Box(shapes.Box(2.0, 4.0, 6.0))
    sphere = body.compute_bounding_sphere()
    corner = np.array((1.0, 2.0, 3.0))
    assert np.linalg.norm(corner - sphere.center) == pytest.approx(sphere.radius)


def test_box_rejects_wrong_shape():
    with pytest.raises(TypeError):
        bodies.Box(shapes.Sphere(1.0))


# ---------------------------------------------------------------- merging


def test_merge_empty_is_zero_sphere():
    merged = merge_bounding_spheres([])
    assert merged.radius == 0.0
    assert np.allclose(merged.center, (0.0, 0.0, 0.0))


def test_merge_keeps_enclosing_sphere():
    big = BoundingSphere(np.array((0.0, 0.0, 0.0)), 5.0)
    small = BoundingSphere(np.array((1.0, 0.0, 0.0)), 1.0)
    for order in ([big, small], [small, big]):
        merged = merge_bounding_spheres(order)
        assert merged.radius == pytest.approx(5.0)
        assert np.allclose(merged.center, (0.0, 0.0, 0.0))


def test_merge_disjoint_spheres_encloses_both():
    spheres = [
        BoundingSphere(np.array((-3.0, 0.0, 0.0)), 1.0),
        BoundingSphere(np.array((3.0, 0.0, 0.0)), 1.0),
        BoundingSphere(np.array((0.0, 4.0, 0.0)), 0.5),
    ]
    merged = merge_bounding_spheres(spheres)
    for sphere in spheres:
        distance = np.linalg.norm(sphere.center - merged.center)
        assert distance + sphere.radius <= merged.radius + 1e-9


def test_merge_skips_empty_spheres():
    merged = merge_bounding_spheres(
        [BoundingSphere(np.array((0.0, 0.0, 0.0)), 1.0), BoundingSphere(np.array((10.0, 0.0, 0.0)), 0.0)]
    )
    assert merged.radius == pytest.approx(1.0)
    assert np.allclose(merged.center, (0.0, 0.0, 0.0))