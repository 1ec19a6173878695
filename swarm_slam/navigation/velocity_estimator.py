"""Finite-difference velocity estimation from consecutive world positions."""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np

logger = logging.getLogger(__name__)

# Minimum sample spacing (seconds) for a velocity update
MIN_DT = 1e-4


@dataclass
class _PositionSample:
    position: np.ndarray
    timestamp: float


class VelocityEstimator:
    """Single-step velocity estimates per agent.

    No smoothing is applied; consumers see first-difference noise.
    """

    def __init__(self, min_dt: float = MIN_DT):
        self.min_dt = min_dt
        self._previous: Dict[int, _PositionSample] = {}
        self._velocity: Dict[int, np.ndarray] = {}

    def update(
        self, agent_id: int, position: np.ndarray, timestamp: float
    ) -> Optional[np.ndarray]:
        """Add a world position observation.

        If the previous sample is too close in time the previous estimate is
        kept. The new sample always becomes the reference for the next update.

        Args:
            agent_id: Agent identifier
            position: World position [x, y, z]
            timestamp: Sample time (seconds)

        Returns:
            Current velocity estimate, or None if none exists yet
        """
        position = np.array(position, dtype=np.float64)
        prev = self._previous.get(agent_id)

        if prev is not None:
            dt = timestamp - prev.timestamp
            if dt > self.min_dt:
                self._velocity[agent_id] = (position - prev.position) / dt
            else:
                logger.debug(
                    f"Agent {agent_id}: dt={dt:.6f}s below {self.min_dt}s, keeping velocity"
                )

        self._previous[agent_id] = _PositionSample(position=position, timestamp=timestamp)
        return self.get_velocity(agent_id)

    def get_velocity(self, agent_id: int) -> Optional[np.ndarray]:
        v = self._velocity.get(agent_id)
        return v.copy() if v is not None else None

    def get_speed(self, agent_id: int) -> Optional[float]:
        """Speed magnitude (m/s), or None if unknown."""
        v = self._velocity.get(agent_id)
        return float(np.linalg.norm(v)) if v is not None else None

    def forget(self, agent_id: int) -> None:
        self._previous.pop(agent_id, None)
        self._velocity.pop(agent_id, None)
