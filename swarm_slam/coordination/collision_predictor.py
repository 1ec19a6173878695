"""Pairwise collision prediction and control-barrier motion rejection.

Runs once per control tick over every unordered pair of agents:

1. Immediate proximity: closer than the sum of safety radii (diagnostic).
2. Control barrier: with h = d^2 - r_hard^2 and dh/dt = 2 (dp . dv), a pair
   inside the barrier start radius violates the barrier when
   dh/dt < -alpha * h. Both agents then get a motion rejection blocking
   motion toward each other.
3. Prediction: constant-velocity time to closest approach within the
   horizon; a predicted miss distance below the safety radii slows down
   every agent moving toward the other.
"""

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from ..core.config import CollisionConfig
from ..core.geometry import unit_vector
from ..core.types import MotionRejection

logger = logging.getLogger(__name__)

# Used as rejection direction when two agents occupy the same point
COINCIDENT_FALLBACK = np.array([0.0, 1.0, 0.0])


@dataclass
class AgentKinematics:
    """Per-tick snapshot of one agent for collision checks.

    Attributes:
        agent_id: Agent identifier
        position: World position [x, y, z] (meters)
        velocity: World velocity (m/s), None if not yet estimated
        safety_radius: Collision safety radius (meters)
    """
    agent_id: int
    position: np.ndarray
    velocity: Optional[np.ndarray] = None
    safety_radius: float = 0.5


@dataclass
class ProximityWarning:
    """Two agents currently closer than their combined safety radii."""
    agent_a: int
    agent_b: int
    distance: float  # meters
    safe_distance: float  # meters


@dataclass
class PredictedCollision:
    """Predicted loss of separation between two agents."""
    agent_a: int
    agent_b: int
    time_to_closest_approach: float  # seconds
    future_distance: float  # meters at closest approach
    closing_speed: float  # m/s
    scale: float  # speed scale applied to approaching agents


@dataclass
class CollisionState:
    """Collision avoidance outputs for one tick.

    `active`, `time_to_closest_approach`, `closing_speed` and `applied_scale`
    are held for a short time after the last detection for stable reporting.
    Speed scales and rejections are always from the current tick.
    """
    active: bool = False
    time_to_closest_approach: float = 0.0
    closing_speed: float = 0.0
    applied_scale: float = 1.0
    speed_scales: Dict[int, float] = field(default_factory=dict)
    rejections: Dict[int, MotionRejection] = field(default_factory=dict)
    barrier_active: bool = False
    barrier_h: float = 0.0
    barrier_dhdt: float = 0.0
    proximity_warnings: List[ProximityWarning] = field(default_factory=list)
    predictions: List[PredictedCollision] = field(default_factory=list)

    def speed_scale_for(self, agent_id: int) -> float:
        return self.speed_scales.get(agent_id, 1.0)

    def rejection_for(self, agent_id: int) -> MotionRejection:
        return self.rejections.get(agent_id, MotionRejection.inactive())


def _inverse_lerp(a: float, b: float, value: float) -> float:
    if a == b:
        return 0.0
    return min(max((value - a) / (b - a), 0.0), 1.0)


def compute_distance_scale(distance: float, config: CollisionConfig) -> float:
    """Distance-based speed scale.

    0 at or below hard_stop_distance, 1 at or beyond slow_down_distance,
    quartic ease-in between so braking is gentle far out and steep near
    the limit.
    """
    if distance <= config.hard_stop_distance:
        return 0.0
    if distance >= config.slow_down_distance:
        return 1.0

    t = _inverse_lerp(config.hard_stop_distance, config.slow_down_distance, distance)
    return min(max(t ** 4, 0.0), 1.0)


def compute_closing_scale(closing_speed: float, config: CollisionConfig) -> float:
    """Closing-speed speed scale.

    1 when there is no meaningful closing motion, falling linearly to
    min_closing_scale at aggressive_closing_speed.
    """
    if closing_speed <= config.min_relative_speed:
        return 1.0
    closing01 = min(max(closing_speed / config.aggressive_closing_speed, 0.0), 1.0)
    return 1.0 + (config.min_closing_scale - 1.0) * closing01


def compute_speed_scale(
    future_distance: float, closing_speed: float, config: CollisionConfig
) -> float:
    """Combined speed scale, clamped to [0, 1]."""
    scale = compute_distance_scale(future_distance, config) * compute_closing_scale(
        closing_speed, config
    )
    return min(max(scale, 0.0), 1.0)


def time_to_closest_approach(
    rel_pos: np.ndarray, rel_vel: np.ndarray, min_relative_speed: float
) -> Optional[float]:
    """Time at which constant-velocity agents are closest.

    Args:
        rel_pos: Position of B relative to A
        rel_vel: Velocity of B relative to A
        min_relative_speed: Below this relative speed there is no answer

    Returns:
        t* in seconds (may be negative if closest approach is past), or None
    """
    speed_sq = float(np.dot(rel_vel, rel_vel))
    if speed_sq < min_relative_speed * min_relative_speed:
        return None
    return -float(np.dot(rel_pos, rel_vel)) / speed_sq


def is_moving_toward(velocity: np.ndarray, to_other: np.ndarray) -> bool:
    """Whether velocity has a positive component along to_other."""
    return float(np.dot(velocity, to_other)) > 0.0


class CollisionPredictor:
    """Per-tick collision avoidance over all agent pairs.

    Example:
        predictor = CollisionPredictor(CollisionConfig())

        state = predictor.update([
            AgentKinematics(0, pos0, vel0, safety_radius=0.5),
            AgentKinematics(1, pos1, vel1, safety_radius=0.5),
        ], now)

        scale = state.speed_scale_for(0)
        rejection = state.rejection_for(0)
    """

    def __init__(self, config: Optional[CollisionConfig] = None):
        """Initialize predictor.

        Args:
            config: Collision settings
        """
        self.config = config or CollisionConfig()
        self._hold_until = -math.inf
        self._state = CollisionState()

    @property
    def state(self) -> CollisionState:
        """Most recent collision state."""
        return self._state

    def update(
        self, agents: List[AgentKinematics], now: Optional[float] = None
    ) -> CollisionState:
        """Evaluate all agent pairs for this tick.

        Args:
            agents: Kinematic snapshots of agents with known world position
            now: Current time (monotonic seconds, uses current time if None)

        Returns:
            CollisionState for this tick
        """
        if now is None:
            now = time.monotonic()

        previous = self._state
        state = CollisionState(speed_scales={a.agent_id: 1.0 for a in agents})

        # Carry held reporting values forward
        if now < self._hold_until:
            state.active = previous.active
            state.time_to_closest_approach = previous.time_to_closest_approach
            state.closing_speed = previous.closing_speed
            state.applied_scale = previous.applied_scale

        if not self.config.enabled:
            state.active = False
            self._state = state
            return state

        # Most severe barrier violation (smallest h) per agent
        worst_barrier: Dict[int, Tuple[float, MotionRejection]] = {}

        for i in range(len(agents)):
            a = agents[i]
            for j in range(i + 1, len(agents)):
                b = agents[j]

                self._check_proximity(a, b, state)

                if a.velocity is None or b.velocity is None:
                    continue

                self._check_barrier(a, b, state, worst_barrier, now)
                self._check_predicted(a, b, state, now)

        state.rejections = {agent_id: rej for agent_id, (_, rej) in worst_barrier.items()}
        self._state = state
        return state

    def _check_proximity(
        self, a: AgentKinematics, b: AgentKinematics, state: CollisionState
    ) -> None:
        distance = float(np.linalg.norm(b.position - a.position))
        safe_distance = a.safety_radius + b.safety_radius

        if distance < safe_distance:
            state.proximity_warnings.append(
                ProximityWarning(a.agent_id, b.agent_id, distance, safe_distance)
            )
            logger.warning(
                f"[CollisionRisk] Drones {a.agent_id} and {b.agent_id} TOO CLOSE! "
                f"dist={distance:.2f}m safe={safe_distance:.2f}m"
            )

    def _check_barrier(
        self,
        a: AgentKinematics,
        b: AgentKinematics,
        state: CollisionState,
        worst_barrier: Dict[int, Tuple[float, MotionRejection]],
        now: float,
    ) -> None:
        cfg = self.config
        rel_pos = b.position - a.position
        rel_vel = b.velocity - a.velocity
        distance = float(np.linalg.norm(rel_pos))

        if distance >= cfg.barrier_start_distance:
            return

        h = distance * distance - cfg.barrier_hard_distance * cfg.barrier_hard_distance
        dhdt = 2.0 * float(np.dot(rel_pos, rel_vel))

        if not dhdt < -cfg.barrier_alpha * h:
            return

        normal_ab = unit_vector(rel_pos, COINCIDENT_FALLBACK)
        for agent_id, direction in ((a.agent_id, normal_ab), (b.agent_id, -normal_ab)):
            current = worst_barrier.get(agent_id)
            if current is None or h < current[0]:
                worst_barrier[agent_id] = (h, MotionRejection(active=True, direction=direction))

        # Report the most severe violation
        if not state.barrier_active or h < state.barrier_h:
            state.barrier_h = h
            state.barrier_dhdt = dhdt
        state.active = True
        state.barrier_active = True
        self._hold_until = now + cfg.collision_hold_seconds

        logger.warning(
            f"[Barrier] Drones {a.agent_id} & {b.agent_id} violating barrier "
            f"h={h:.3f} dh/dt={dhdt:.3f} dist={distance:.2f}m"
        )

    def _check_predicted(
        self,
        a: AgentKinematics,
        b: AgentKinematics,
        state: CollisionState,
        now: float,
    ) -> None:
        cfg = self.config
        rel_pos = b.position - a.position
        rel_vel = b.velocity - a.velocity

        t_closest = time_to_closest_approach(rel_pos, rel_vel, cfg.min_relative_speed)
        if t_closest is None:
            return
        if t_closest <= 0.0 or t_closest > cfg.prediction_horizon:
            return

        a_future = a.position + a.velocity * t_closest
        b_future = b.position + b.velocity * t_closest
        future_distance = float(np.linalg.norm(b_future - a_future))
        safe_distance = a.safety_radius + b.safety_radius

        if future_distance >= safe_distance:
            return

        logger.warning(
            f"[PredictedCollision] Drones {a.agent_id} & {b.agent_id} "
            f"TTC={t_closest:.2f}s futureDist={future_distance:.2f}m safe={safe_distance:.2f}m"
        )

        to_b = unit_vector(rel_pos, COINCIDENT_FALLBACK)
        # Approach rate along the line of centers
        closing_speed = max(0.0, -float(np.dot(rel_vel, to_b)))
        scale = compute_speed_scale(future_distance, closing_speed, cfg)

        if is_moving_toward(a.velocity, to_b):
            state.speed_scales[a.agent_id] = min(state.speed_scales.get(a.agent_id, 1.0), scale)
        if is_moving_toward(b.velocity, -to_b):
            state.speed_scales[b.agent_id] = min(state.speed_scales.get(b.agent_id, 1.0), scale)

        state.predictions.append(
            PredictedCollision(
                agent_a=a.agent_id,
                agent_b=b.agent_id,
                time_to_closest_approach=t_closest,
                future_distance=future_distance,
                closing_speed=closing_speed,
                scale=scale,
            )
        )
        state.active = True
        state.time_to_closest_approach = t_closest
        state.closing_speed = closing_speed
        state.applied_scale = scale
        self._hold_until = now + cfg.collision_hold_seconds

        logger.warning(
            f"[Avoidance] Drones {a.agent_id} & {b.agent_id} "
            f"TTC={t_closest:.2f}s dist={future_distance:.2f}m "
            f"closing={closing_speed:.2f}m/s scale={scale:.2f}"
        )
