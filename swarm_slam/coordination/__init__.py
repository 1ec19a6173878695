"""Coordination modules for the fused swarm.

This package provides:
- Anchor health monitoring and continuity-preserving failover
- Predictive collision avoidance with a control-barrier safety layer
- Tracking-confidence motion degradation
- Main SlamSystemManager control loop
"""

from .anchor_failover import (
    AnchorFailoverController,
    AnchorHealth,
    AnchorSwitchEvent,
)

from .collision_predictor import (
    CollisionPredictor,
    CollisionState,
    AgentKinematics,
    ProximityWarning,
    PredictedCollision,
    compute_distance_scale,
    compute_closing_scale,
    compute_speed_scale,
    time_to_closest_approach,
)

from .motion_limits import (
    confidence_speed_scale,
    axis_mask_for_confidence,
    build_motion_command,
    constrain_motion,
)

from .slam_manager import (
    SlamSystemManager,
    TickResult,
    SystemDiagnostics,
    AgentDiagnostics,
)

__all__ = [
    # Anchor failover
    "AnchorFailoverController",
    "AnchorHealth",
    "AnchorSwitchEvent",
    # Collision
    "CollisionPredictor",
    "CollisionState",
    "AgentKinematics",
    "ProximityWarning",
    "PredictedCollision",
    "compute_distance_scale",
    "compute_closing_scale",
    "compute_speed_scale",
    "time_to_closest_approach",
    # Motion limits
    "confidence_speed_scale",
    "axis_mask_for_confidence",
    "build_motion_command",
    "constrain_motion",
    # Control loop
    "SlamSystemManager",
    "TickResult",
    "SystemDiagnostics",
    "AgentDiagnostics",
]
