"""Per-agent runtime state shared by the fusion, failover and collision layers."""

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

import numpy as np

from .pose import Pose
from .types import RawPoseSample

logger = logging.getLogger(__name__)


@dataclass
class AgentRuntimeState:
    """Runtime state for a single agent.

    Attributes:
        agent_id: Agent identifier
        last_raw_sample: Most recent raw sample (recorded even while frozen)
        last_world_pose: Most recent corrected world pose emitted
        last_tracking_confidence: Confidence of last propagated sample
        last_packet_timestamp: Sample timestamp of last packet
        is_stale: Whether the stream is currently classified stale
        estimated_velocity: World-frame velocity estimate (m/s)
        packets_per_second: Approximate packet rate from quality monitor
        ema_interval: EMA of inter-packet interval (seconds)
        ema_jitter: EMA of interval jitter (seconds)
    """

    agent_id: int
    last_raw_sample: Optional[RawPoseSample] = None
    last_world_pose: Optional[Pose] = None
    last_tracking_confidence: Optional[int] = None
    last_packet_timestamp: Optional[float] = None
    is_stale: bool = False
    estimated_velocity: Optional[np.ndarray] = None
    packets_per_second: float = 0.0
    ema_interval: float = 0.0
    ema_jitter: float = 0.0

    @property
    def last_raw_pose(self) -> Optional[Pose]:
        """SLAM-frame pose of the last received sample."""
        if self.last_raw_sample is None:
            return None
        return self.last_raw_sample.pose

    @property
    def world_position(self) -> Optional[np.ndarray]:
        if self.last_world_pose is None:
            return None
        return self.last_world_pose.position

    @property
    def speed(self) -> Optional[float]:
        """Magnitude of estimated velocity (m/s)."""
        if self.estimated_velocity is None:
            return None
        return float(np.linalg.norm(self.estimated_velocity))


class AgentRegistry:
    """Map of agent id to AgentRuntimeState.

    Preserves registration order, which is also the failover candidate
    order. States are created lazily on first packet.
    """

    def __init__(self, agent_ids: Optional[List[int]] = None):
        self._agents: Dict[int, AgentRuntimeState] = {}
        for agent_id in agent_ids or []:
            self.get_or_create(agent_id)

    def get_or_create(self, agent_id: int) -> AgentRuntimeState:
        state = self._agents.get(agent_id)
        if state is None:
            state = AgentRuntimeState(agent_id=agent_id)
            self._agents[agent_id] = state
            logger.debug(f"Created runtime state for agent {agent_id}")
        return state

    def get(self, agent_id: int) -> Optional[AgentRuntimeState]:
        return self._agents.get(agent_id)

    def remove(self, agent_id: int) -> bool:
        """Destroy state for a deregistered agent."""
        return self._agents.pop(agent_id, None) is not None

    def raw_pose(self, agent_id: int) -> Optional[Pose]:
        """Last raw SLAM pose for agent, or None if never received."""
        state = self._agents.get(agent_id)
        return state.last_raw_pose if state is not None else None

    def ids(self) -> List[int]:
        return list(self._agents.keys())

    def __contains__(self, agent_id: int) -> bool:
        return agent_id in self._agents

    def __iter__(self) -> Iterator[AgentRuntimeState]:
        return iter(list(self._agents.values()))

    def __len__(self) -> int:
        return len(self._agents)
