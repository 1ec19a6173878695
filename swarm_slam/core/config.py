"""Configuration dataclasses for shared-frame pose fusion and swarm safety."""

from dataclasses import dataclass, field
from typing import List


@dataclass
class AgentConfig:
    """Configuration for a single drone in the fused swarm."""

    agent_id: int
    name: str = ""
    safety_radius: float = 0.5  # meters (SLAM space)

    def __post_init__(self):
        if not self.name:
            self.name = f"drone_{self.agent_id}"


@dataclass
class FusionConfig:
    """Pose fusion and relocalization settings."""

    # Agent whose SLAM pose (with world correction) is treated as truth
    anchor_id: int = 0

    enable_relocalization: bool = True
    relocalize_blend_seconds: float = 0.75  # seconds to blend a new correction in

    # Auto relocalize when anchor drift exceeds this (meters). 0 disables auto.
    auto_relocalize_threshold: float = 0.0
    auto_relocalize_cooldown: float = 2.0  # seconds between auto triggers


@dataclass
class FreshnessConfig:
    """Pose stream quality and staleness settings."""

    stale_pose_seconds: float = 0.25  # no pose for this long -> stale
    freeze_on_stale: bool = True  # stale drones stop updating pose

    rate_window_seconds: float = 1.0  # packet-rate counting window
    ema_alpha: float = 0.10  # EMA smoothing for interval and jitter


@dataclass
class AnchorConfig:
    """Anchor health and failover settings."""

    min_tracking_confidence: int = 1  # minimum confidence to be / become anchor
    recheck_seconds: float = 0.5  # anchor health check cadence
    failure_seconds: float = 10.0  # continuous unhealthy time before failover
    switch_cooldown_seconds: float = 5.0  # minimum time between anchor switches
    startup_grace_seconds: float = 2.0  # no failover right after startup


@dataclass
class CollisionConfig:
    """Predictive collision and control-barrier settings."""

    enabled: bool = True

    # Prediction
    prediction_horizon: float = 2.0  # seconds
    min_relative_speed: float = 0.05  # m/s, below this there is no closing motion

    # Speed scaling
    slow_down_distance: float = 2.5  # meters, slowing begins
    hard_stop_distance: float = 1.5  # meters, full stop toward neighbor
    aggressive_closing_speed: float = 1.5  # m/s, closing speed for max de-rate
    min_closing_scale: float = 0.2  # closing-speed scale floor

    # Control barrier
    barrier_start_distance: float = 2.0  # meters, barrier evaluated inside this
    barrier_hard_distance: float = 1.0  # meters, minimum separation
    barrier_alpha: float = 3.0  # allowed decay rate of h

    # Reporting hysteresis
    collision_hold_seconds: float = 0.25


@dataclass
class ConfidenceConfig:
    """Tracking-confidence speed degradation."""

    enabled: bool = True
    good_scale: float = 1.0
    degraded_scale: float = 0.5
    poor_scale: float = 0.25

    # Axis locked when tracking is degraded (0=x, 1=y, 2=z). SLAM frames are y-up.
    vertical_axis: int = 1


@dataclass
class SystemConfig:
    """Top-level configuration for the fusion control loop."""

    agents: List[AgentConfig] = field(
        default_factory=lambda: [AgentConfig(0), AgentConfig(1)]
    )

    fusion: FusionConfig = field(default_factory=FusionConfig)
    freshness: FreshnessConfig = field(default_factory=FreshnessConfig)
    anchor: AnchorConfig = field(default_factory=AnchorConfig)
    collision: CollisionConfig = field(default_factory=CollisionConfig)
    confidence: ConfidenceConfig = field(default_factory=ConfidenceConfig)

    # Control loop
    tick_rate_hz: float = 60.0
    queue_size: int = 1024  # max pending pose samples

    # Logging
    log_level: str = "INFO"
    log_every_n_ticks: int = 120  # periodic drift / quality diagnostics

    @property
    def agent_ids(self) -> List[int]:
        """Agent ids in configuration (failover search) order."""
        return [a.agent_id for a in self.agents]

    def get_agent(self, agent_id: int) -> AgentConfig:
        """Get AgentConfig by id.

        Raises:
            KeyError: If the agent is not configured
        """
        for agent in self.agents:
            if agent.agent_id == agent_id:
                return agent
        raise KeyError(f"Agent {agent_id} not configured")

    def validate(self) -> None:
        """Check configuration consistency.

        Raises:
            ValueError: On inconsistent settings
        """
        ids = self.agent_ids
        if len(ids) != len(set(ids)):
            raise ValueError(f"Duplicate agent ids in {ids}")

        for agent in self.agents:
            if agent.safety_radius < 0:
                raise ValueError(f"Agent {agent.agent_id} has negative safety radius")

        if self.fusion.relocalize_blend_seconds <= 0:
            raise ValueError("relocalize_blend_seconds must be positive")

        if not 0.0 < self.freshness.ema_alpha <= 1.0:
            raise ValueError("ema_alpha must be in (0, 1]")
        if self.freshness.rate_window_seconds <= 0:
            raise ValueError("rate_window_seconds must be positive")

        c = self.collision
        if c.hard_stop_distance >= c.slow_down_distance:
            raise ValueError(
                f"hard_stop_distance ({c.hard_stop_distance}) must be below "
                f"slow_down_distance ({c.slow_down_distance})"
            )
        if c.barrier_hard_distance >= c.barrier_start_distance:
            raise ValueError("barrier_hard_distance must be below barrier_start_distance")
        if c.prediction_horizon <= 0 or c.aggressive_closing_speed <= 0:
            raise ValueError("prediction_horizon and aggressive_closing_speed must be positive")
        if not 0.0 <= c.min_closing_scale <= 1.0:
            raise ValueError("min_closing_scale must be in [0, 1]")

        if self.confidence.vertical_axis not in (0, 1, 2):
            raise ValueError("vertical_axis must be 0, 1 or 2")

        if self.tick_rate_hz <= 0:
            raise ValueError("tick_rate_hz must be positive")
        if self.queue_size <= 0:
            raise ValueError("queue_size must be positive")

    @classmethod
    def with_agents(
        cls, num_agents: int, safety_radius: float = 0.5, **kwargs
    ) -> "SystemConfig":
        """Create config for agents 0..num_agents-1 (agent 0 is anchor)."""
        agents = [AgentConfig(i, safety_radius=safety_radius) for i in range(num_agents)]
        return cls(agents=agents, **kwargs)

    @classmethod
    def for_simulation(cls, num_agents: int = 2) -> "SystemConfig":
        """Create configuration for simulated drones with ground truth.

        Enables drift-triggered auto relocalization, which needs a
        ground-truth source.
        """
        return cls.with_agents(
            num_agents,
            fusion=FusionConfig(
                auto_relocalize_threshold=0.25,
                auto_relocalize_cooldown=2.0,
            ),
        )

    @classmethod
    def for_hardware(cls, num_agents: int = 2) -> "SystemConfig":
        """Create configuration for real tracking cameras.

        No ground truth, so auto relocalization stays off. Real pose
        streams are burstier, so staleness is judged more leniently.
        """
        return cls.with_agents(
            num_agents,
            freshness=FreshnessConfig(stale_pose_seconds=0.5),
            anchor=AnchorConfig(failure_seconds=5.0),
        )
