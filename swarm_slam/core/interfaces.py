"""Contracts for the collaborators around the fusion core.

Pose providers push samples in; pose sinks and motion limiters receive the
fused pose and per-tick motion commands. Transport, rendering and actuation
live behind these protocols.
"""

from typing import Callable, Optional, Protocol, runtime_checkable

from .pose import Pose
from .types import AxisMask, MotionRejection, RawPoseSample

# Callback a pose source uses to hand samples to the control loop.
# Must be safe to call from any thread.
PublishFn = Callable[[RawPoseSample], bool]


@runtime_checkable
class PoseSource(Protocol):
    """Stream of raw SLAM poses for one agent."""

    @property
    def agent_id(self) -> int: ...

    def start(self, publish: PublishFn) -> None:
        """Begin delivering samples through publish."""
        ...

    def stop(self) -> None:
        """Stop delivering samples and release resources."""
        ...


@runtime_checkable
class PoseSink(Protocol):
    """Consumer of corrected world poses (controller / visualizer)."""

    def update_pose(self, agent_id: int, pose: Pose, sample: RawPoseSample) -> None:
        ...


@runtime_checkable
class MotionLimiter(Protocol):
    """Actuator-side motion constraints, set once per tick."""

    def set_speed_scale(self, scale: float) -> None:
        """Scale applied to commanded motion (0 = stop, 1 = full speed)."""
        ...

    def set_axis_mask(self, mask: AxisMask) -> None:
        ...

    def set_motion_rejection(self, rejection: MotionRejection) -> None:
        ...


@runtime_checkable
class GroundTruthSource(Protocol):
    """Authoritative pose per agent. Simulation and tests only."""

    def get_truth_pose(self, agent_id: int) -> Optional[Pose]:
        ...
