"""Fixed-rate control loop tying pose fusion, failover and collision safety together.

Pose sources run on their own threads and hand samples over through a
bounded queue. Everything else (fusion, staleness, anchor failover,
relocalization, collision avoidance and motion commands) runs on the single
thread that calls ``tick()``.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from ..core.config import AgentConfig, SystemConfig
from ..core.interfaces import GroundTruthSource, MotionLimiter, PoseSink, PoseSource
from ..core.pose import Pose, format_pose
from ..core.state import AgentRegistry, AgentRuntimeState
from ..core.types import MotionCommand, RawPoseSample, confidence_name
from ..navigation.fusion_engine import PoseFusionEngine
from ..navigation.quality_monitor import PoseQualityMonitor
from ..navigation.velocity_estimator import VelocityEstimator
from .anchor_failover import AnchorFailoverController, AnchorHealth, AnchorSwitchEvent
from .collision_predictor import AgentKinematics, CollisionPredictor, CollisionState
from .motion_limits import build_motion_command

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    """Outputs of one control tick.

    Attributes:
        timestamp: Tick time (monotonic seconds)
        samples_processed: Queued samples handled this tick
        world_poses: World poses emitted this tick, by agent
        commands: Motion command issued to each registered agent
        collision: Collision state for this tick
        anchor_switch: Anchor switch performed this tick, if any
        stale_agents: Agents classified stale after this tick
    """
    timestamp: float
    samples_processed: int = 0
    world_poses: Dict[int, Pose] = field(default_factory=dict)
    commands: Dict[int, MotionCommand] = field(default_factory=dict)
    collision: CollisionState = field(default_factory=CollisionState)
    anchor_switch: Optional[AnchorSwitchEvent] = None
    stale_agents: List[int] = field(default_factory=list)


@dataclass
class AgentDiagnostics:
    """Read-only per-agent view for HUDs and logs."""
    agent_id: int
    name: str
    world_position: Optional[np.ndarray]
    speed: Optional[float]
    tracking_confidence: Optional[int]
    is_stale: bool
    packets_per_second: float
    seconds_since_last: Optional[float]
    ema_interval: float
    ema_jitter: float
    speed_scale: float


@dataclass
class SystemDiagnostics:
    """Read-only system view for HUDs and logs."""
    timestamp: float
    anchor_id: int
    anchor_health: AnchorHealth
    anchor_drift: Optional[float]
    is_relocalizing: bool
    world_correction: Pose
    agents: Dict[int, AgentDiagnostics]
    collision: CollisionState
    tick_count: int
    dropped_samples: int
    last_error: Optional[str] = None


class SlamSystemManager:
    """Shared-frame SLAM fusion and swarm safety control loop.

    Example:
        manager = SlamSystemManager(SystemConfig.with_agents(3))
        manager.register_agent(AgentConfig(1), sink=controller_1, limiter=limiter_1)

        source = InProcessPoseSource(agent_id=1)
        manager.attach_source(source)

        stop = threading.Event()
        manager.run(stop)  # blocks; or call manager.tick() from your own loop
    """

    def __init__(
        self,
        config: Optional[SystemConfig] = None,
        ground_truth: Optional[GroundTruthSource] = None,
        start_time: Optional[float] = None,
    ):
        """Initialize control loop.

        Args:
            config: System configuration (uses defaults if None)
            ground_truth: Optional truth source for relocalization (simulation)
            start_time: Startup time for the anchor grace period (now if None)

        Raises:
            ValueError: If the configuration is inconsistent
        """
        self.config = config or SystemConfig()
        self.config.validate()

        self.registry = AgentRegistry()
        self.quality = PoseQualityMonitor(self.config.freshness)
        self.velocity = VelocityEstimator()
        self.engine = PoseFusionEngine(self.config.fusion, self.registry)
        self.failover = AnchorFailoverController(
            self.engine,
            self.registry,
            self.config.anchor,
            start_time=start_time,
        )
        self.collision = CollisionPredictor(self.config.collision)

        # Producer threads -> control loop hand-off
        self._queue: "queue.Queue[RawPoseSample]" = queue.Queue(maxsize=self.config.queue_size)
        self._dropped_samples = 0
        self._dropped_lock = threading.Lock()

        self._agents: Dict[int, AgentConfig] = {}
        self._sinks: Dict[int, PoseSink] = {}
        self._limiters: Dict[int, MotionLimiter] = {}
        self._sources: Dict[int, PoseSource] = {}

        self._tick_count = 0
        self._last_tick_time: Optional[float] = None

        for agent in self.config.agents:
            self.register_agent(agent)

        self.engine.set_ground_truth(ground_truth)

        logger.info(
            f"SLAM system initialized: agents={self.config.agent_ids} "
            f"anchor={self.engine.anchor_id}"
        )

    # ----- Registration -----

    @property
    def agent_ids(self) -> List[int]:
        """Registered agents in registration (failover) order."""
        return list(self._agents.keys())

    @property
    def anchor_id(self) -> int:
        return self.engine.anchor_id

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def dropped_samples(self) -> int:
        """Samples dropped because the queue was full."""
        return self._dropped_samples

    def register_agent(
        self,
        agent: AgentConfig,
        sink: Optional[PoseSink] = None,
        limiter: Optional[MotionLimiter] = None,
    ) -> None:
        """Register an agent, or replace the sink/limiter of a known one.

        Args:
            agent: Agent configuration
            sink: Receives corrected world poses
            limiter: Receives per-tick motion commands
        """
        if agent.agent_id in self._agents:
            logger.debug(f"Agent {agent.agent_id} already registered, updating")
        else:
            logger.info(f"Registered agent {agent.agent_id} ({agent.name})")

        self._agents[agent.agent_id] = agent
        self.registry.get_or_create(agent.agent_id)
        if sink is not None:
            self._sinks[agent.agent_id] = sink
        if limiter is not None:
            self._limiters[agent.agent_id] = limiter

    def deregister_agent(self, agent_id: int, now: Optional[float] = None) -> bool:
        """Remove an agent and all of its runtime state.

        Removing the anchor hands the anchor role to the first healthy
        candidate while the anchor's raw pose is still known. Without a
        candidate the engine keeps that pose until failover finds one.

        Args:
            agent_id: Agent to remove
            now: Current time (last tick time, or current time, if None)

        Returns:
            True if the agent was registered
        """
        if agent_id not in self._agents:
            logger.warning(f"Agent {agent_id} not registered")
            return False

        if agent_id in self._sources:
            self.detach_source(agent_id)

        if agent_id == self.engine.anchor_id:
            if now is None:
                now = self._last_tick_time if self._last_tick_time is not None else time.monotonic()
            self._hand_over_anchor(agent_id, now)

        del self._agents[agent_id]
        self._sinks.pop(agent_id, None)
        self._limiters.pop(agent_id, None)
        self.registry.remove(agent_id)
        self.quality.forget(agent_id)
        self.velocity.forget(agent_id)

        logger.info(f"Deregistered agent {agent_id}")
        return True

    def _hand_over_anchor(self, agent_id: int, now: float) -> None:
        candidate = self.failover.find_candidate()
        if candidate is None:
            logger.warning(
                f"Deregistered anchor {agent_id} has no healthy successor, "
                f"holding its last pose until failover"
            )
            return
        self.failover.switch_anchor(candidate, now, reason=f"anchor {agent_id} deregistered")

    def attach_source(self, source: PoseSource) -> None:
        """Start a pose source feeding this manager.

        Args:
            source: Pose source for a registered agent
        """
        agent_id = source.agent_id
        if agent_id not in self._agents:
            logger.warning(f"Attaching source for unregistered agent {agent_id}")

        previous = self._sources.get(agent_id)
        if previous is not None and previous is not source:
            self.detach_source(agent_id)

        self._sources[agent_id] = source
        source.start(self.submit)

    def detach_source(self, agent_id: int) -> Optional[PoseSource]:
        """Stop and remove the pose source of an agent."""
        source = self._sources.pop(agent_id, None)
        if source is None:
            return None
        try:
            source.stop()
        except Exception as e:
            logger.error(f"Error stopping pose source for agent {agent_id}: {e}")
        return source

    def set_ground_truth(self, source: Optional[GroundTruthSource]) -> None:
        self.engine.set_ground_truth(source)

    # ----- Producer side -----

    def submit(self, sample: RawPoseSample) -> bool:
        """Enqueue a raw sample for the next tick. Safe from any thread.

        Never blocks; a full queue drops the sample.

        Args:
            sample: Raw pose sample

        Returns:
            True if the sample was queued
        """
        try:
            self._queue.put_nowait(sample)
            return True
        except queue.Full:
            with self._dropped_lock:
                self._dropped_samples += 1
            logger.warning(f"Pose queue full, dropping sample for agent {sample.agent_id}")
            return False

    # ----- Control loop -----

    def tick(self, now: Optional[float] = None) -> TickResult:
        """Run one control tick.

        Args:
            now: Tick time (monotonic seconds, uses current time if None)

        Returns:
            TickResult for this tick
        """
        if now is None:
            now = time.monotonic()

        self._tick_count += 1
        self._last_tick_time = now
        result = TickResult(timestamp=now)

        for sample in self._drain_queue():
            if sample.agent_id not in self._agents:
                logger.debug(f"Sample from unregistered agent {sample.agent_id} ignored")
                continue
            result.samples_processed += 1
            world_pose = self._handle_sample(sample)
            if world_pose is not None:
                result.world_poses[sample.agent_id] = world_pose

        result.stale_agents = self._update_staleness(now)
        result.anchor_switch = self.failover.update(now)
        self.engine.step(now)

        result.collision = self.collision.update(self._collect_kinematics(), now)
        result.commands = self._dispatch_motion_commands(result.collision)

        if self.config.log_every_n_ticks > 0 and self._tick_count % self.config.log_every_n_ticks == 0:
            self._log_diagnostics(now)

        return result

    def run(self, stop_event: threading.Event, tick_rate_hz: Optional[float] = None) -> None:
        """Tick at a fixed rate until stop_event is set.

        Args:
            stop_event: Set to end the loop
            tick_rate_hz: Loop rate (config tick_rate_hz if None)
        """
        rate = tick_rate_hz or self.config.tick_rate_hz
        period = 1.0 / rate
        logger.info(f"Control loop started at {rate:.1f} Hz")

        while not stop_event.is_set():
            frame_start = time.monotonic()
            try:
                self.tick(frame_start)
            except Exception as e:
                logger.error(f"Error in control tick: {e}")

            remaining = period - (time.monotonic() - frame_start)
            if remaining > 0:
                time.sleep(remaining)

        logger.info(f"Control loop stopped after {self._tick_count} ticks")

    def shutdown(self) -> None:
        """Stop all attached pose sources."""
        for agent_id in list(self._sources.keys()):
            self.detach_source(agent_id)
        logger.info("SLAM system shut down")

    def relocalize(self, reason: str = "MANUAL", now: Optional[float] = None) -> bool:
        """Manually re-align the world correction to ground truth."""
        return self.engine.relocalize(reason, now)

    # ----- Tick stages -----

    def _drain_queue(self) -> List[RawPoseSample]:
        # Bounded by the size at entry so constant producers can't starve the tick
        samples = []
        for _ in range(self._queue.qsize()):
            try:
                samples.append(self._queue.get_nowait())
            except queue.Empty:
                break
        return samples

    def _handle_sample(self, sample: RawPoseSample) -> Optional[Pose]:
        agent_id = sample.agent_id
        state = self.registry.get_or_create(agent_id)

        self.quality.note_packet(agent_id, sample.timestamp)

        freeze = self.config.freshness.freeze_on_stale and state.is_stale
        world_pose = self.engine.process_sample(sample, freeze=freeze)
        if world_pose is None:
            return None

        state.estimated_velocity = self.velocity.update(
            agent_id, world_pose.position, sample.timestamp
        )

        sink = self._sinks.get(agent_id)
        if sink is not None:
            try:
                sink.update_pose(agent_id, world_pose, sample)
            except Exception as e:
                logger.error(f"Error in pose sink for agent {agent_id}: {e}")

        return world_pose

    def _update_staleness(self, now: float) -> List[int]:
        threshold = self.config.freshness.stale_pose_seconds
        stale_agents = []

        for agent_id in self._agents:
            state = self.registry.get(agent_id)
            stats = self.quality.get_stats(agent_id, now)
            if state is None or stats is None:
                continue

            state.packets_per_second = stats.packets_per_second
            state.ema_interval = stats.ema_interval
            state.ema_jitter = stats.ema_jitter

            stale = stats.seconds_since_last > threshold
            if stale != state.is_stale:
                state.is_stale = stale
                if stale:
                    logger.warning(
                        f"[Stale] Drone {agent_id} pose stale "
                        f"({stats.seconds_since_last:.2f}s). Freezing updates."
                    )
                else:
                    logger.info(
                        f"[Stale] Drone {agent_id} pose resumed ({stats.seconds_since_last:.2f}s)."
                    )

            if state.is_stale:
                stale_agents.append(agent_id)

        return stale_agents

    def _collect_kinematics(self) -> List[AgentKinematics]:
        agents = []
        for agent_id, agent_config in self._agents.items():
            state = self.registry.get(agent_id)
            if state is None or state.world_position is None:
                continue
            agents.append(
                AgentKinematics(
                    agent_id=agent_id,
                    position=state.world_position,
                    velocity=state.estimated_velocity,
                    safety_radius=agent_config.safety_radius,
                )
            )
        return agents

    def _dispatch_motion_commands(self, collision: CollisionState) -> Dict[int, MotionCommand]:
        commands = {}

        for agent_id in self._agents:
            state = self.registry.get(agent_id)
            confidence = state.last_tracking_confidence if state is not None else None

            command = build_motion_command(
                collision_scale=collision.speed_scale_for(agent_id),
                collision_active=collision.active,
                confidence=confidence,
                rejection=collision.rejection_for(agent_id),
                config=self.config.confidence,
            )
            commands[agent_id] = command

            limiter = self._limiters.get(agent_id)
            if limiter is None:
                continue
            try:
                limiter.set_speed_scale(command.speed_scale)
                limiter.set_axis_mask(command.axis_mask)
                limiter.set_motion_rejection(command.rejection)
            except Exception as e:
                logger.error(f"Error in motion limiter for agent {agent_id}: {e}")

        return commands

    def _log_diagnostics(self, now: float) -> None:
        snapshot = self.engine.snapshot()
        if snapshot.anchor_drift is not None:
            threshold = self.config.fusion.auto_relocalize_threshold
            logger.info(
                f"[Drift] Anchor drift magnitude approx. = {snapshot.anchor_drift:.3f}m "
                f"| auto={'ON' if threshold > 0 else 'OFF'} thr={threshold:.2f} "
                f"| worldCorrection={'blending' if snapshot.is_relocalizing else 'stable'}"
            )

        for agent_id in self._agents:
            stats = self.quality.get_stats(agent_id, now)
            if stats is None:
                continue
            logger.info(
                f"[Quality] Drone {agent_id}: pps approx. ={stats.packets_per_second:.1f} "
                f"sinceLast={stats.seconds_since_last:.2f}s "
                f"emaDt={stats.ema_interval:.3f}s emaJitter={stats.ema_jitter:.3f}s"
            )

    # ----- Diagnostics -----

    def get_diagnostics(self, now: Optional[float] = None) -> SystemDiagnostics:
        """Read-only snapshot of fusion, quality and collision state.

        Args:
            now: Query time (last tick time, or current time, if None)

        Returns:
            SystemDiagnostics
        """
        if now is None:
            now = self._last_tick_time if self._last_tick_time is not None else time.monotonic()

        snapshot = self.engine.snapshot()
        collision = self.collision.state

        agents = {}
        # Copy first, agents may be registered from another thread
        for agent_id, agent_config in list(self._agents.items()):
            state = self.registry.get(agent_id) or AgentRuntimeState(agent_id=agent_id)
            stats = self.quality.get_stats(agent_id, now)
            agents[agent_id] = AgentDiagnostics(
                agent_id=agent_id,
                name=agent_config.name,
                world_position=(
                    state.world_position.copy() if state.world_position is not None else None
                ),
                speed=state.speed,
                tracking_confidence=state.last_tracking_confidence,
                is_stale=state.is_stale,
                packets_per_second=stats.packets_per_second if stats else 0.0,
                seconds_since_last=stats.seconds_since_last if stats else None,
                ema_interval=stats.ema_interval if stats else 0.0,
                ema_jitter=stats.ema_jitter if stats else 0.0,
                speed_scale=collision.speed_scale_for(agent_id),
            )

        return SystemDiagnostics(
            timestamp=now,
            anchor_id=snapshot.anchor_id,
            anchor_health=self.failover.health,
            anchor_drift=snapshot.anchor_drift,
            is_relocalizing=snapshot.is_relocalizing,
            world_correction=snapshot.world_correction,
            agents=agents,
            collision=collision,
            tick_count=self._tick_count,
            dropped_samples=self._dropped_samples,
            last_error=self.failover.last_error,
        )

    def format_status(self, now: Optional[float] = None) -> str:
        """Multi-line status text (one line per agent)."""
        diag = self.get_diagnostics(now)
        drift = f"{diag.anchor_drift:.3f}m" if diag.anchor_drift is not None else "n/a"
        lines = [
            f"anchor={diag.anchor_id} health={diag.anchor_health.value} drift={drift} "
            f"relocalizing={diag.is_relocalizing} correction={format_pose(diag.world_correction)}"
        ]
        for agent in diag.agents.values():
            speed = f"{agent.speed:.2f}m/s" if agent.speed is not None else "n/a"
            lines.append(
                f"  {agent.name}: conf={confidence_name(agent.tracking_confidence)} "
                f"{'STALE' if agent.is_stale else 'OK'} pps={agent.packets_per_second:.1f} "
                f"speed={speed} scale={agent.speed_scale:.2f}"
            )
        return "\n".join(lines)
