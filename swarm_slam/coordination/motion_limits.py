"""Tracking-confidence degradation and per-tick motion commands.

Lower SLAM confidence means slower motion and fewer degrees of freedom:

    confidence   speed scale   axes
    GOOD (>=2)   good_scale    all translation + yaw
    DEGRADED (1) degraded      vertical axis locked
    LOST (0)     poor_scale    yaw only
    < 0          poor_scale    nothing
"""

from typing import Optional

import numpy as np

from ..core.config import ConfidenceConfig
from ..core.types import AxisMask, MotionCommand, MotionRejection, TrackingConfidence


def confidence_speed_scale(
    confidence: Optional[int], config: Optional[ConfidenceConfig] = None
) -> float:
    """Speed scale for an agent's last tracking confidence.

    Args:
        confidence: Last tracking confidence, None if never reported
        config: Confidence scaling settings

    Returns:
        Scale in [0, 1]; unknown confidence gets the degraded scale
    """
    config = config or ConfidenceConfig()
    if not config.enabled:
        return 1.0

    if confidence is None:
        return config.degraded_scale
    if confidence >= TrackingConfidence.GOOD:
        return config.good_scale
    if confidence == TrackingConfidence.DEGRADED:
        return config.degraded_scale
    return config.poor_scale


def axis_mask_for_confidence(confidence: Optional[int], vertical_axis: int = 1) -> AxisMask:
    """Degrees of freedom allowed at a tracking confidence.

    Args:
        confidence: Last tracking confidence, None if never reported
        vertical_axis: Translation axis locked when degraded (0=x, 1=y, 2=z)

    Returns:
        AxisMask; unknown confidence leaves all axes free
    """
    if confidence is None or confidence >= TrackingConfidence.GOOD:
        return AxisMask.free()

    if confidence == TrackingConfidence.DEGRADED:
        allowed = [True, True, True]
        allowed[vertical_axis] = False
        return AxisMask(allowed[0], allowed[1], allowed[2], allow_yaw=True)

    if confidence == TrackingConfidence.LOST:
        return AxisMask(False, False, False, allow_yaw=True)

    return AxisMask.locked()


def build_motion_command(
    collision_scale: float,
    collision_active: bool,
    confidence: Optional[int],
    rejection: Optional[MotionRejection] = None,
    config: Optional[ConfidenceConfig] = None,
) -> MotionCommand:
    """Combine collision and confidence limits into one command.

    Args:
        collision_scale: Speed scale from collision avoidance this tick
        collision_active: Whether collision avoidance is active (held state)
        confidence: Agent's last tracking confidence
        rejection: Barrier rejection for this agent, if any
        config: Confidence scaling settings

    Returns:
        MotionCommand with speed scale clamped to [0, 1]
    """
    config = config or ConfidenceConfig()
    scale = collision_scale if collision_active else 1.0
    scale *= confidence_speed_scale(confidence, config)

    return MotionCommand(
        speed_scale=min(max(scale, 0.0), 1.0),
        axis_mask=axis_mask_for_confidence(confidence, config.vertical_axis),
        rejection=rejection if rejection is not None else MotionRejection.inactive(),
    )


def constrain_motion(
    movement: np.ndarray, yaw_rate: float, command: MotionCommand
) -> tuple:
    """Apply a motion command to a requested movement.

    Masked axes are zeroed, then any component along an active rejection
    direction is removed while keeping the requested magnitude, then the
    speed scale is applied to translation. Yaw is only masked.

    Args:
        movement: Requested world-frame translation (any units)
        yaw_rate: Requested yaw rate
        command: MotionCommand from the control loop

    Returns:
        Tuple of (constrained movement, constrained yaw rate)
    """
    movement = np.array(movement, dtype=np.float64)
    mask = command.axis_mask

    for axis in range(3):
        if not mask.allows_axis(axis):
            movement[axis] = 0.0
    yaw = yaw_rate if mask.allow_yaw else 0.0

    rejection = command.rejection
    magnitude = float(np.linalg.norm(movement))
    if rejection.active and magnitude > 1e-6:
        direction = movement / magnitude
        toward = float(np.dot(direction, rejection.direction))
        if toward > 0.0:
            safe_dir = direction - rejection.direction * toward
            safe_norm = float(np.linalg.norm(safe_dir))
            if safe_norm > 1e-6:
                movement = safe_dir / safe_norm * magnitude
            else:
                movement = np.zeros(3)

    return movement * command.speed_scale, yaw
