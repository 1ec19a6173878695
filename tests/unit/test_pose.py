"""Unit tests for pose algebra."""

import numpy as np
import pytest

from swarm_slam.core import Pose, lerp_pose, format_pose
from swarm_slam.core.geometry import (
    euler_from_quaternion,
    quaternion_multiply,
    quaternion_slerp,
    quaternion_angle_between,
    rotate_vector,
    unit_vector,
)


def quaternion_from_euler(roll, pitch, yaw):
    """Z-Y-X rotation built from single-axis quaternions."""
    qx = np.array([np.cos(roll / 2), np.sin(roll / 2), 0.0, 0.0])
    qy = np.array([np.cos(pitch / 2), 0.0, np.sin(pitch / 2), 0.0])
    qz = np.array([np.cos(yaw / 2), 0.0, 0.0, np.sin(yaw / 2)])
    return quaternion_multiply(quaternion_multiply(qz, qy), qx)


def random_pose(rng) -> Pose:
    position = rng.uniform(-10.0, 10.0, size=3)
    roll, pitch, yaw = rng.uniform(-np.pi, np.pi, size=3)
    return Pose(position, quaternion_from_euler(roll, pitch, yaw))


class TestGeometry:
    """Test quaternion helpers."""

    def test_quaternion_euler_round_trip(self):
        """Test quaternion to Euler conversion."""
        roll, pitch, yaw = 0.1, 0.2, 0.3
        q = quaternion_from_euler(roll, pitch, yaw)

        assert abs(np.linalg.norm(q) - 1.0) < 1e-10

        roll2, pitch2, yaw2 = euler_from_quaternion(q)
        assert abs(roll - roll2) < 1e-10
        assert abs(pitch - pitch2) < 1e-10
        assert abs(yaw - yaw2) < 1e-10

    def test_rotate_vector_yaw(self):
        """Test 90 degree yaw maps x onto y."""
        q = quaternion_from_euler(0.0, 0.0, np.pi / 2)
        v = rotate_vector(q, np.array([1.0, 0.0, 0.0]))

        np.testing.assert_array_almost_equal(v, [0.0, 1.0, 0.0])

    def test_quaternion_multiply_composes_rotations(self):
        """Test two 45 degree yaws equal one 90 degree yaw."""
        q45 = quaternion_from_euler(0.0, 0.0, np.pi / 4)
        q90 = quaternion_from_euler(0.0, 0.0, np.pi / 2)

        assert quaternion_angle_between(quaternion_multiply(q45, q45), q90) < 1e-6

    def test_slerp_midpoint(self):
        """Test slerp halfway between identity and 90 degree yaw."""
        q0 = np.array([1.0, 0.0, 0.0, 0.0])
        q90 = quaternion_from_euler(0.0, 0.0, np.pi / 2)
        q45 = quaternion_from_euler(0.0, 0.0, np.pi / 4)

        assert quaternion_angle_between(quaternion_slerp(q0, q90, 0.5), q45) < 1e-6

    def test_slerp_takes_shortest_arc(self):
        """Test slerp towards -q behaves like slerp towards q."""
        q0 = np.array([1.0, 0.0, 0.0, 0.0])
        q90 = quaternion_from_euler(0.0, 0.0, np.pi / 2)
        q45 = quaternion_from_euler(0.0, 0.0, np.pi / 4)

        assert quaternion_angle_between(quaternion_slerp(q0, -q90, 0.5), q45) < 1e-6

    def test_unit_vector_fallback(self):
        """Test zero-length vector returns the fallback."""
        fallback = np.array([0.0, 1.0, 0.0])
        np.testing.assert_array_equal(unit_vector(np.zeros(3), fallback), fallback)
        np.testing.assert_array_almost_equal(unit_vector([3.0, 0.0, 4.0], fallback), [0.6, 0.0, 0.8])


class TestPose:
    """Test Pose value type."""

    def test_construction_normalizes_rotation(self):
        """Test rotation is normalized on construction."""
        pose = Pose([0.0, 0.0, 0.0], [2.0, 0.0, 0.0, 0.0])
        np.testing.assert_array_almost_equal(pose.rotation, [1.0, 0.0, 0.0, 0.0])

    def test_arrays_are_copied_and_read_only(self):
        """Test pose does not alias or expose mutable arrays."""
        position = np.array([1.0, 2.0, 3.0])
        pose = Pose(position, [1.0, 0.0, 0.0, 0.0])
        position[0] = 99.0

        assert pose.position[0] == 1.0
        with pytest.raises(ValueError):
            pose.position[0] = 5.0

    def test_identity_is_neutral(self, rng):
        """Test identity * p == p * identity == p."""
        identity = Pose.identity()
        for _ in range(20):
            p = random_pose(rng)
            assert (identity * p).is_close(p)
            assert (p * identity).is_close(p)

    def test_inverse_law(self, rng):
        """Test p * p^-1 and p^-1 * p are identity."""
        identity = Pose.identity()
        for _ in range(20):
            p = random_pose(rng)
            assert (p * p.inverse()).is_close(identity, atol=1e-9)
            assert (p.inverse() * p).is_close(identity, atol=1e-9)

    def test_composition(self):
        """Test b is expressed in a's frame."""
        a = Pose([1.0, 0.0, 0.0], quaternion_from_euler(0.0, 0.0, np.pi / 2))
        b = Pose.from_position([1.0, 0.0, 0.0])

        c = a * b

        np.testing.assert_array_almost_equal(c.position, [1.0, 1.0, 0.0])
        assert quaternion_angle_between(c.rotation, a.rotation) < 1e-9

    def test_composition_is_associative(self, rng):
        """Test (a * b) * c == a * (b * c)."""
        a, b, c = random_pose(rng), random_pose(rng), random_pose(rng)
        assert ((a * b) * c).is_close(a * (b * c), atol=1e-9)

    def test_transform_point(self):
        """Test point mapping into the parent frame."""
        pose = Pose([0.0, 0.0, 5.0], quaternion_from_euler(0.0, 0.0, np.pi / 2))
        np.testing.assert_array_almost_equal(pose.transform_point([2.0, 0.0, 0.0]), [0.0, 2.0, 5.0])

    def test_distance_to(self):
        """Test Euclidean position distance."""
        a = Pose.from_position([0.0, 0.0, 0.0])
        b = Pose.from_position([3.0, 4.0, 0.0])
        assert a.distance_to(b) == pytest.approx(5.0)

    def test_is_close_treats_negated_quaternion_as_equal(self):
        """Test q and -q describe the same orientation."""
        q = quaternion_from_euler(0.3, 0.0, 0.0)
        assert Pose([0.0, 0.0, 0.0], q).is_close(Pose([0.0, 0.0, 0.0], -q))

    def test_multiply_non_pose_unsupported(self):
        """Test composition with a non-pose raises TypeError."""
        with pytest.raises(TypeError):
            Pose.identity() * 2.0


class TestLerpPose:
    """Test pose interpolation."""

    def test_endpoints(self, rng):
        """Test t=0 gives a and t=1 gives b exactly."""
        a, b = random_pose(rng), random_pose(rng)
        assert lerp_pose(a, b, 0.0) is a
        assert lerp_pose(a, b, 1.0) is b

    def test_clamped(self, rng):
        """Test out-of-range fractions are clamped."""
        a, b = random_pose(rng), random_pose(rng)
        assert lerp_pose(a, b, -1.0) is a
        assert lerp_pose(a, b, 2.0) is b

    def test_midpoint(self):
        """Test linear position and spherical rotation at t=0.5."""
        a = Pose.identity()
        b = Pose([2.0, 0.0, 0.0], quaternion_from_euler(0.0, 0.0, np.pi / 2))

        mid = lerp_pose(a, b, 0.5)

        np.testing.assert_array_almost_equal(mid.position, [1.0, 0.0, 0.0])
        expected = quaternion_from_euler(0.0, 0.0, np.pi / 4)
        assert quaternion_angle_between(mid.rotation, expected) < 1e-6


class TestFormatPose:
    """Test diagnostic formatting."""

    def test_format(self):
        """Test position to 3 decimals and yaw in degrees."""
        pose = Pose([1.0, 2.0, 3.0], quaternion_from_euler(0.0, 0.0, np.pi / 2))
        text = format_pose(pose)

        assert "1.000, 2.000, 3.000" in text
        assert "90.0" in text
