"""Shared value types passed between pose providers, the fusion core and limiters."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional

import numpy as np

from .pose import Pose


class TrackingConfidence(IntEnum):
    """SLAM tracking confidence reported with every pose."""

    UNTRACKED = -1  # Provider reports no lock at all
    LOST = 0
    DEGRADED = 1
    GOOD = 2


@dataclass(frozen=True)
class RawPoseSample:
    """Single pose packet from a pose provider.

    Attributes:
        agent_id: Drone identifier
        timestamp: Monotonic sample time (seconds)
        pose: Pose in the agent's own SLAM frame
        tracking_confidence: TrackingConfidence value (plain int accepted)
    """

    agent_id: int
    timestamp: float
    pose: Pose
    tracking_confidence: int = TrackingConfidence.GOOD

    @classmethod
    def at(
        cls,
        agent_id: int,
        timestamp: float,
        position,
        rotation=(1.0, 0.0, 0.0, 0.0),
        confidence: int = TrackingConfidence.GOOD,
    ) -> "RawPoseSample":
        """Build a sample from raw position / quaternion sequences."""
        return cls(
            agent_id=agent_id,
            timestamp=float(timestamp),
            pose=Pose(np.asarray(position, dtype=np.float64), np.asarray(rotation, dtype=np.float64)),
            tracking_confidence=int(confidence),
        )


@dataclass(frozen=True)
class AxisMask:
    """Degrees of freedom a motion limiter may actuate."""

    allow_x: bool = True
    allow_y: bool = True
    allow_z: bool = True
    allow_yaw: bool = True

    @classmethod
    def free(cls) -> "AxisMask":
        return cls()

    @classmethod
    def locked(cls) -> "AxisMask":
        return cls(False, False, False, False)

    def allows_axis(self, axis: int) -> bool:
        """Whether translation axis index (0=x, 1=y, 2=z) is allowed."""
        return (self.allow_x, self.allow_y, self.allow_z)[axis]


@dataclass(frozen=True, eq=False)
class MotionRejection:
    """Hard constraint blocking motion along a direction.

    Attributes:
        active: Whether the constraint applies this tick
        direction: Unit vector toward the threatening neighbor; any commanded
            motion component along it is removed
    """

    active: bool = False
    direction: np.ndarray = field(default_factory=lambda: np.zeros(3))

    @classmethod
    def inactive(cls) -> "MotionRejection":
        return cls()


@dataclass(frozen=True)
class MotionCommand:
    """Per-tick command dispatched to a motion limiter."""

    speed_scale: float = 1.0  # [0, 1]
    axis_mask: AxisMask = field(default_factory=AxisMask)
    rejection: MotionRejection = field(default_factory=MotionRejection)


def confidence_name(confidence: Optional[int]) -> str:
    """Human-readable confidence label for logs and diagnostics."""
    if confidence is None:
        return "UNKNOWN"
    if confidence >= TrackingConfidence.GOOD:
        return "GOOD"
    if confidence == TrackingConfidence.DEGRADED:
        return "DEGRADED"
    if confidence == TrackingConfidence.LOST:
        return "LOST"
    return "UNTRACKED"
