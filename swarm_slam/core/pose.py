"""Rigid-body pose value type.

A Pose is a position plus a unit quaternion orientation. Composition
``a * b`` expresses pose b in the frame of a, which is how SLAM-frame
poses are mapped into the shared world frame:

    world_pose = world_correction * slam_pose
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Union

import numpy as np

from .geometry import (
    euler_from_quaternion,
    normalize_quaternion,
    quaternion_conjugate,
    quaternion_angle_between,
    quaternion_multiply,
    quaternion_slerp,
    rotate_vector,
)

VectorLike = Union[np.ndarray, Iterable[float]]


@dataclass(frozen=True, eq=False)
class Pose:
    """Immutable rigid transform.

    Attributes:
        position: [x, y, z] in meters
        rotation: Unit quaternion [w, x, y, z]
    """

    position: np.ndarray
    rotation: np.ndarray

    def __post_init__(self):
        """Copy inputs into read-only float arrays."""
        position = np.array(self.position, dtype=np.float64).reshape(3)
        rotation = normalize_quaternion(np.array(self.rotation, dtype=np.float64).reshape(4))
        position.flags.writeable = False
        rotation.flags.writeable = False
        object.__setattr__(self, "position", position)
        object.__setattr__(self, "rotation", rotation)

    @classmethod
    def identity(cls) -> "Pose":
        """Neutral element of composition."""
        return cls(np.zeros(3), np.array([1.0, 0.0, 0.0, 0.0]))

    @classmethod
    def from_position(cls, position: VectorLike) -> "Pose":
        """Pose with the given position and no rotation."""
        return cls(np.asarray(position, dtype=np.float64), np.array([1.0, 0.0, 0.0, 0.0]))

    def __mul__(self, other: "Pose") -> "Pose":
        if not isinstance(other, Pose):
            return NotImplemented
        return Pose(
            position=self.position + rotate_vector(self.rotation, other.position),
            rotation=quaternion_multiply(self.rotation, other.rotation),
        )

    def inverse(self) -> "Pose":
        """Pose p^-1 such that p * p^-1 == identity."""
        inv_rotation = quaternion_conjugate(self.rotation)
        return Pose(
            position=rotate_vector(inv_rotation, -self.position),
            rotation=inv_rotation,
        )

    def transform_point(self, point: VectorLike) -> np.ndarray:
        """Map a point from this pose's local frame into the parent frame."""
        return self.position + rotate_vector(self.rotation, np.asarray(point, dtype=np.float64))

    def distance_to(self, other: "Pose") -> float:
        """Euclidean distance between positions (meters)."""
        return float(np.linalg.norm(self.position - other.position))

    def is_close(self, other: "Pose", atol: float = 1e-6, angle_tol: float = 1e-5) -> bool:
        """Compare positions and orientations within tolerance.

        q and -q encode the same rotation, so orientation is compared by
        rotation angle (radians) rather than component-wise.
        """
        if not np.allclose(self.position, other.position, atol=atol):
            return False
        return quaternion_angle_between(self.rotation, other.rotation) <= angle_tol

    def __repr__(self) -> str:
        return (
            f"Pose(position={np.array2string(self.position, precision=3)}, "
            f"rotation={np.array2string(self.rotation, precision=4)})"
        )


def lerp_pose(a: Pose, b: Pose, t: float) -> Pose:
    """Interpolate between two poses.

    Position is interpolated linearly, rotation spherically. t is clamped
    to [0, 1]; t == 1 returns b exactly.

    Args:
        a: Start pose
        b: End pose
        t: Interpolation fraction

    Returns:
        Interpolated pose
    """
    t = min(max(float(t), 0.0), 1.0)
    if t >= 1.0:
        return b
    if t <= 0.0:
        return a
    return Pose(
        position=a.position + (b.position - a.position) * t,
        rotation=quaternion_slerp(a.rotation, b.rotation, t),
    )


def format_pose(pose: Pose) -> str:
    """Short diagnostic string: position (m) and Euler angles (deg)."""
    roll, pitch, yaw = euler_from_quaternion(pose.rotation)
    x, y, z = pose.position
    return (
        f"Pos=({x:.3f}, {y:.3f}, {z:.3f}) "
        f"Rot=({np.degrees(roll):.1f}, {np.degrees(pitch):.1f}, {np.degrees(yaw):.1f})"
    )
