"""Quaternion and vector helpers for pose algebra.

Quaternions are numpy arrays in [w, x, y, z] order throughout.
"""

import numpy as np
from typing import Tuple

# Below this norm a vector is treated as zero-length
EPSILON = 1e-9


def normalize_quaternion(q: np.ndarray) -> np.ndarray:
    """Return unit-length copy of quaternion.

    Args:
        q: Quaternion [w, x, y, z]

    Returns:
        Unit quaternion (identity if q has zero norm)
    """
    q = np.asarray(q, dtype=np.float64)
    norm = np.linalg.norm(q)
    if norm < EPSILON:
        return np.array([1.0, 0.0, 0.0, 0.0], dtype=np.float64)
    return q / norm


def euler_from_quaternion(q: np.ndarray) -> Tuple[float, float, float]:
    """Convert quaternion [w, x, y, z] to Euler angles.

    Args:
        q: Quaternion as [w, x, y, z] numpy array

    Returns:
        Tuple of (roll, pitch, yaw) in radians
    """
    w, x, y, z = q

    sinr_cosp = 2 * (w * x + y * z)
    cosr_cosp = 1 - 2 * (x * x + y * y)
    roll = np.arctan2(sinr_cosp, cosr_cosp)

    sinp = 2 * (w * y - z * x)
    if np.abs(sinp) >= 1:
        pitch = np.copysign(np.pi / 2, sinp)  # Clamp at +-90 degrees
    else:
        pitch = np.arcsin(sinp)

    siny_cosp = 2 * (w * z + x * y)
    cosy_cosp = 1 - 2 * (y * y + z * z)
    yaw = np.arctan2(siny_cosp, cosy_cosp)

    return float(roll), float(pitch), float(yaw)


def quaternion_multiply(q1: np.ndarray, q2: np.ndarray) -> np.ndarray:
    """Multiply two quaternions (Hamilton product).

    Args:
        q1: First quaternion [w, x, y, z]
        q2: Second quaternion [w, x, y, z]

    Returns:
        Product quaternion [w, x, y, z]
    """
    w1, x1, y1, z1 = q1
    w2, x2, y2, z2 = q2

    return np.array(
        [
            w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2,
            w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2,
            w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2,
            w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2,
        ],
        dtype=np.float64,
    )


def quaternion_conjugate(q: np.ndarray) -> np.ndarray:
    """Compute quaternion conjugate.

    For unit quaternions this is also the inverse.

    Args:
        q: Quaternion [w, x, y, z]

    Returns:
        Conjugate quaternion [w, -x, -y, -z]
    """
    return np.array([q[0], -q[1], -q[2], -q[3]], dtype=np.float64)


def rotate_vector(q: np.ndarray, v: np.ndarray) -> np.ndarray:
    """Rotate 3-vector v by unit quaternion q.

    Args:
        q: Unit quaternion [w, x, y, z]
        v: [x, y, z] vector

    Returns:
        Rotated vector
    """
    # v' = v + 2w(u x v) + 2(u x (u x v)), u = vector part of q
    u = np.asarray(q[1:], dtype=np.float64)
    w = q[0]
    v = np.asarray(v, dtype=np.float64)
    uv = np.cross(u, v)
    return v + 2.0 * (w * uv + np.cross(u, uv))


def quaternion_slerp(q1: np.ndarray, q2: np.ndarray, t: float) -> np.ndarray:
    """Spherical linear interpolation between unit quaternions.

    Takes the shortest arc. t is clamped to [0, 1].

    Args:
        q1: Start quaternion [w, x, y, z]
        q2: End quaternion [w, x, y, z]
        t: Interpolation fraction

    Returns:
        Interpolated unit quaternion
    """
    t = min(max(t, 0.0), 1.0)
    q1 = normalize_quaternion(q1)
    q2 = normalize_quaternion(q2)

    dot = float(np.dot(q1, q2))
    if dot < 0.0:
        q2 = -q2
        dot = -dot

    if dot > 0.9995:
        # Nearly parallel, fall back to normalized lerp
        return normalize_quaternion(q1 + t * (q2 - q1))

    theta_0 = np.arccos(dot)
    theta = theta_0 * t
    sin_theta_0 = np.sin(theta_0)

    s1 = np.sin(theta_0 - theta) / sin_theta_0
    s2 = np.sin(theta) / sin_theta_0
    return normalize_quaternion(s1 * q1 + s2 * q2)


def quaternion_angle_between(q1: np.ndarray, q2: np.ndarray) -> float:
    """Smallest rotation angle (radians) taking q1 to q2."""
    dot = abs(float(np.dot(normalize_quaternion(q1), normalize_quaternion(q2))))
    return 2.0 * float(np.arccos(min(1.0, dot)))


def unit_vector(v: np.ndarray, fallback: np.ndarray) -> np.ndarray:
    """Normalize v, or return fallback when v is (near) zero-length."""
    v = np.asarray(v, dtype=np.float64)
    norm = np.linalg.norm(v)
    if norm < EPSILON:
        return np.asarray(fallback, dtype=np.float64).copy()
    return v / norm
