"""Core data model: pose algebra, shared types, configuration and interfaces."""

from .pose import Pose, lerp_pose, format_pose
from .types import (
    TrackingConfidence,
    RawPoseSample,
    AxisMask,
    MotionRejection,
    MotionCommand,
    confidence_name,
)
from .config import (
    AgentConfig,
    FusionConfig,
    FreshnessConfig,
    AnchorConfig,
    CollisionConfig,
    ConfidenceConfig,
    SystemConfig,
)
from .state import AgentRuntimeState, AgentRegistry
from .interfaces import PoseSource, PoseSink, MotionLimiter, GroundTruthSource, PublishFn
from .logging_setup import configure_logging

__all__ = [
    # Pose algebra
    "Pose",
    "lerp_pose",
    "format_pose",
    # Types
    "TrackingConfidence",
    "RawPoseSample",
    "AxisMask",
    "MotionRejection",
    "MotionCommand",
    "confidence_name",
    # Configuration
    "AgentConfig",
    "FusionConfig",
    "FreshnessConfig",
    "AnchorConfig",
    "CollisionConfig",
    "ConfidenceConfig",
    "SystemConfig",
    # State
    "AgentRuntimeState",
    "AgentRegistry",
    # Interfaces
    "PoseSource",
    "PoseSink",
    "MotionLimiter",
    "GroundTruthSource",
    "PublishFn",
    "configure_logging",
]
