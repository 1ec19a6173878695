"""Navigation modules for shared-frame pose fusion.

This package provides:
- Pose stream quality tracking (packet rate, interval, jitter)
- Finite-difference velocity estimation
- Pose fusion into a shared world frame with smooth relocalization

Example usage:
    from swarm_slam.core import AgentRegistry, FusionConfig
    from swarm_slam.navigation import PoseFusionEngine, PoseQualityMonitor

    registry = AgentRegistry([0, 1])
    engine = PoseFusionEngine(FusionConfig(anchor_id=0), registry)
    quality = PoseQualityMonitor()

    quality.note_packet(sample.agent_id, now)
    world_pose = engine.process_sample(sample)
"""

from .quality_monitor import PoseQualityMonitor, QualityStats

from .velocity_estimator import VelocityEstimator

from .fusion_engine import PoseFusionEngine, CorrectionBlend, FusionSnapshot

__all__ = [
    # Quality
    "PoseQualityMonitor",
    "QualityStats",
    # Velocity
    "VelocityEstimator",
    # Fusion
    "PoseFusionEngine",
    "CorrectionBlend",
    "FusionSnapshot",
]
