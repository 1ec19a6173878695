"""Shared-frame pose fusion with smooth relocalization.

All agents are assumed to share one drifting SLAM coordinate system. A
single world correction maps that system into the world frame:

    anchor:  world = correction * anchor_raw
    client:  world = correction * (anchor_raw * (anchor_raw^-1 * client_raw))

Clients are re-expressed through the anchor's latest raw pose every sample,
so every client tracks the anchor's drift and only the anchor-to-truth
correction has to be estimated. Relocalization recomputes that correction
from ground truth and blends it in over a fixed duration.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Dict, Optional

from ..core.config import FusionConfig
from ..core.interfaces import GroundTruthSource
from ..core.pose import Pose, format_pose, lerp_pose
from ..core.state import AgentRegistry
from ..core.types import RawPoseSample

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CorrectionBlend:
    """Two-endpoint world-correction interpolation."""

    start: Pose
    target: Pose
    started_at: float
    duration: float

    def fraction(self, now: float) -> float:
        """Elapsed fraction clamped to [0, 1]."""
        t = (now - self.started_at) / max(1e-4, self.duration)
        return min(max(t, 0.0), 1.0)


@dataclass(frozen=True)
class FusionSnapshot:
    """Read-only view of fusion state for diagnostics.

    Attributes:
        anchor_id: Current anchor agent
        world_correction: Correction in effect
        is_relocalizing: Whether a correction blend is running
        blend_target: Target correction of the running blend
        anchor_drift: Anchor drift vs ground truth (meters), None if unknown
    """

    anchor_id: int
    world_correction: Pose
    is_relocalizing: bool
    blend_target: Optional[Pose]
    anchor_drift: Optional[float]


class PoseFusionEngine:
    """Maps raw SLAM poses of all agents into the shared world frame.

    Owns the world correction and the anchor identity. Both are mutated
    only from the control loop; other threads read `snapshot()`.

    Example:
        registry = AgentRegistry([0, 1])
        engine = PoseFusionEngine(FusionConfig(anchor_id=0), registry)

        world = engine.process_sample(sample)
        if world is not None:
            controller.update_pose(sample.agent_id, world, sample)

        engine.step(now)  # advance relocalization blend once per tick
    """

    def __init__(
        self,
        config: FusionConfig,
        registry: AgentRegistry,
        ground_truth: Optional[GroundTruthSource] = None,
    ):
        """Initialize fusion engine.

        Args:
            config: Fusion configuration (initial anchor, relocalization)
            registry: Shared per-agent runtime state
            ground_truth: Optional truth source (simulation/test only)
        """
        self.config = config
        self.registry = registry
        self._ground_truth = ground_truth

        self._anchor_id = config.anchor_id
        self._world_correction = Pose.identity()
        self._blend: Optional[CorrectionBlend] = None
        # Last raw pose seen from the anchor, kept after the anchor is removed
        self._last_anchor_raw: Optional[Pose] = None
        self._last_auto_relocalize_time = -math.inf

        # Truth pose of each client relative to the anchor's truth pose
        self._truth_offsets: Dict[int, Pose] = {}

        self._snapshot = self._build_snapshot()

    # ----- Properties -----

    @property
    def anchor_id(self) -> int:
        return self._anchor_id

    @property
    def world_correction(self) -> Pose:
        return self._world_correction

    @property
    def is_relocalizing(self) -> bool:
        return self._blend is not None

    @property
    def blend(self) -> Optional[CorrectionBlend]:
        return self._blend

    def snapshot(self) -> FusionSnapshot:
        """Latest fully-formed fusion state (safe from any thread)."""
        return self._snapshot

    # ----- Pose processing -----

    def process_sample(self, sample: RawPoseSample, freeze: bool = False) -> Optional[Pose]:
        """Fuse one raw sample into a world pose.

        The raw sample is always recorded so the anchor reference and
        failover candidates stay current. When frozen, nothing else changes.

        Args:
            sample: Raw pose sample
            freeze: Skip propagation (stale agent)

        Returns:
            Corrected world pose, or None if frozen or not yet correctable
        """
        state = self.registry.get_or_create(sample.agent_id)
        state.last_raw_sample = sample
        state.last_packet_timestamp = sample.timestamp
        if sample.agent_id == self._anchor_id:
            self._last_anchor_raw = sample.pose

        if freeze:
            logger.debug(f"Agent {sample.agent_id} stale, pose not propagated")
            return None

        state.last_tracking_confidence = int(sample.tracking_confidence)

        world_pose = self.compute_world_pose(sample.agent_id)
        if world_pose is None:
            logger.debug(
                f"Agent {sample.agent_id}: no anchor pose from {self._anchor_id} yet, "
                f"withholding output"
            )
            return None

        state.last_world_pose = world_pose
        return world_pose

    def compute_world_pose(self, agent_id: int) -> Optional[Pose]:
        """World pose for an agent's latest raw pose under the current correction.

        Args:
            agent_id: Agent identifier

        Returns:
            World pose, or None if the agent or the anchor has no raw pose
        """
        raw = self.registry.raw_pose(agent_id)
        if raw is None:
            return None

        if agent_id == self._anchor_id:
            return self._world_correction * raw

        anchor_raw = self.anchor_raw_pose()
        if anchor_raw is None:
            return None

        relative = anchor_raw.inverse() * raw
        aligned_in_slam_world = anchor_raw * relative
        return self._world_correction * aligned_in_slam_world

    def anchor_raw_pose(self) -> Optional[Pose]:
        """Latest raw pose of the anchor, surviving removal of its runtime state."""
        raw = self.registry.raw_pose(self._anchor_id)
        return raw if raw is not None else self._last_anchor_raw

    # ----- Relocalization -----

    def set_ground_truth(self, source: Optional[GroundTruthSource]) -> None:
        """Attach (or detach with None) a ground-truth source."""
        self._ground_truth = source
        self.recompute_truth_offsets()
        self._publish()

    def estimate_anchor_drift(self) -> Optional[float]:
        """Distance between the corrected anchor position and its ground truth.

        Returns:
            Drift in meters, or None without truth or anchor pose
        """
        truth = self._truth_pose(self._anchor_id)
        anchor_raw = self.registry.raw_pose(self._anchor_id)
        if truth is None or anchor_raw is None:
            return None
        return (self._world_correction * anchor_raw).distance_to(truth)

    def relocalize(self, reason: str = "MANUAL", now: Optional[float] = None) -> bool:
        """Start blending the world correction onto ground truth.

        Replaces any running blend.

        Args:
            reason: Trigger description for logs
            now: Current time (monotonic seconds, uses current time if None)

        Returns:
            True if a blend was started
        """
        if not self.config.enable_relocalization:
            logger.warning("[Relocalize] Relocalization disabled in configuration")
            return False

        truth = self._truth_pose(self._anchor_id)
        if truth is None:
            logger.warning(
                f"[Relocalize] No ground truth for anchor {self._anchor_id}, cannot relocalize"
            )
            return False

        anchor_raw = self.registry.raw_pose(self._anchor_id)
        if anchor_raw is None:
            logger.warning("[Relocalize] No anchor SLAM pose received yet, cannot relocalize")
            return False

        if now is None:
            now = time.monotonic()

        # correction * anchor_raw == truth  =>  correction = truth * anchor_raw^-1
        target = truth * anchor_raw.inverse()

        self._blend = CorrectionBlend(
            start=self._world_correction,
            target=target,
            started_at=now,
            duration=self.config.relocalize_blend_seconds,
        )

        drift_before = truth.distance_to(anchor_raw)
        logger.info(
            f"[Relocalize] START ({reason}) driftBefore={drift_before:.3f}m "
            f"TargetWorldCorrection={format_pose(target)}"
        )
        self._publish()
        return True

    def step(self, now: Optional[float] = None) -> None:
        """Advance the correction blend and evaluate auto relocalization.

        Args:
            now: Current time (monotonic seconds, uses current time if None)
        """
        if now is None:
            now = time.monotonic()

        if self._blend is not None:
            t = self._blend.fraction(now)
            if t >= 1.0:
                self._world_correction = self._blend.target
                self._blend = None
                logger.info(
                    f"[Relocalize] Blend complete. WorldCorrection={format_pose(self._world_correction)}"
                )
            else:
                self._world_correction = lerp_pose(self._blend.start, self._blend.target, t)

        self._check_auto_relocalize(now)
        self._publish()

    def _check_auto_relocalize(self, now: float) -> None:
        threshold = self.config.auto_relocalize_threshold
        if threshold <= 0.0 or self._blend is not None:
            return
        if not self.config.enable_relocalization:
            return
        if now - self._last_auto_relocalize_time <= self.config.auto_relocalize_cooldown:
            return

        drift = self.estimate_anchor_drift()
        if drift is not None and drift >= threshold:
            self.relocalize(f"AUTO drift={drift:.3f}m", now)
            self._last_auto_relocalize_time = now

    # ----- Anchor switching -----

    def rebase_anchor(self, new_anchor_id: int) -> bool:
        """Make another agent the anchor without moving anything in the world.

        The new correction maps the new anchor's raw pose onto the old
        anchor's current world pose, and is applied immediately. Any running
        relocalization blend is cancelled.

        Args:
            new_anchor_id: Agent to promote

        Returns:
            True if the anchor changed
        """
        if new_anchor_id == self._anchor_id:
            return False

        new_anchor_raw = self.registry.raw_pose(new_anchor_id)
        if new_anchor_raw is None:
            logger.error(f"[AnchorSwitch] Agent {new_anchor_id} has no pose, cannot become anchor")
            return False

        old_anchor_id = self._anchor_id
        old_anchor_raw = self.anchor_raw_pose()
        if old_anchor_raw is not None:
            old_anchor_world = self._world_correction * old_anchor_raw
        else:
            logger.warning(
                f"[AnchorSwitch] Old anchor {old_anchor_id} never reported a pose, "
                f"pinning new anchor at world origin"
            )
            old_anchor_world = Pose.identity()

        # new_correction * new_anchor_raw == old_anchor_world
        self._world_correction = old_anchor_world * new_anchor_raw.inverse()
        self._blend = None
        self._anchor_id = new_anchor_id
        self._last_anchor_raw = new_anchor_raw

        logger.info(
            f"[AnchorSwitch] New anchor={new_anchor_id} (was {old_anchor_id}) "
            f"WorldCorrection={format_pose(self._world_correction)}"
        )

        self.recompute_truth_offsets()
        self._publish()
        return True

    # ----- Ground truth scaffolding -----

    def recompute_truth_offsets(self) -> None:
        """Recompute each client's truth pose relative to the anchor's truth."""
        self._truth_offsets.clear()

        anchor_truth = self._truth_pose(self._anchor_id)
        if anchor_truth is None:
            return

        anchor_truth_inv = anchor_truth.inverse()
        for agent_id in self.registry.ids():
            if agent_id == self._anchor_id:
                continue
            client_truth = self._truth_pose(agent_id)
            if client_truth is None:
                continue
            offset = anchor_truth_inv * client_truth
            self._truth_offsets[agent_id] = offset
            logger.debug(f"Truth offset for agent {agent_id}: {format_pose(offset)}")

    def true_relative_offsets(self) -> Dict[int, Pose]:
        """Truth pose of each client relative to the anchor's truth pose."""
        return dict(self._truth_offsets)

    def client_alignment_error(self, agent_id: int) -> Optional[float]:
        """Distance between an agent's fused world position and its truth.

        Returns:
            Error in meters, or None without truth or fused pose
        """
        truth = self._truth_pose(agent_id)
        state = self.registry.get(agent_id)
        if truth is None or state is None or state.last_world_pose is None:
            return None
        return state.last_world_pose.distance_to(truth)

    def _truth_pose(self, agent_id: int) -> Optional[Pose]:
        if self._ground_truth is None:
            return None
        return self._ground_truth.get_truth_pose(agent_id)

    # ----- Snapshot publishing -----

    def _build_snapshot(self) -> FusionSnapshot:
        return FusionSnapshot(
            anchor_id=self._anchor_id,
            world_correction=self._world_correction,
            is_relocalizing=self._blend is not None,
            blend_target=self._blend.target if self._blend is not None else None,
            anchor_drift=self.estimate_anchor_drift(),
        )

    def _publish(self) -> None:
        # Single reference assignment; readers never see a partial update
        self._snapshot = self._build_snapshot()
