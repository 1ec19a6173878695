"""Pose stream quality tracking.

Tracks packet rate, inter-packet interval and jitter for every agent's pose
stream. Staleness is judged by the caller from ``seconds_since_last``.
"""

import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..core.config import FreshnessConfig

logger = logging.getLogger(__name__)


@dataclass
class QualityStats:
    """Snapshot of stream quality for one agent."""

    agent_id: int
    packets_per_second: float
    seconds_since_last: float
    ema_interval: float  # seconds
    ema_jitter: float  # seconds


@dataclass
class _StreamStats:
    agent_id: int
    window_start_time: float
    last_packet_time: float
    packets_in_window: int = 0
    ema_interval: float = 0.0
    ema_jitter: float = 0.0
    initialized: bool = False


def _lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


class PoseQualityMonitor:
    """Per-agent packet timing statistics.

    Example:
        monitor = PoseQualityMonitor()
        monitor.note_packet(agent_id=0)

        stats = monitor.get_stats(0)
        if stats and stats.seconds_since_last > 0.25:
            print("stream stale")
    """

    def __init__(self, config: Optional[FreshnessConfig] = None):
        """Initialize monitor.

        Args:
            config: Freshness settings (rate window and EMA alpha)
        """
        self.config = config or FreshnessConfig()
        self._stats: Dict[int, _StreamStats] = {}

    def note_packet(self, agent_id: int, now: Optional[float] = None) -> None:
        """Record arrival of a pose packet.

        Args:
            agent_id: Agent the packet belongs to
            now: Arrival time (monotonic seconds, uses current time if None)
        """
        if now is None:
            now = time.monotonic()

        s = self._stats.get(agent_id)
        if s is None:
            s = _StreamStats(
                agent_id=agent_id,
                window_start_time=now,
                last_packet_time=now,
            )
            self._stats[agent_id] = s
            logger.debug(f"[Quality] Tracking pose stream for agent {agent_id}")

        dt = now - s.last_packet_time
        alpha = self.config.ema_alpha

        if s.initialized:
            s.ema_interval = _lerp(s.ema_interval, dt, alpha)
            jitter_sample = abs(dt - s.ema_interval)
            s.ema_jitter = _lerp(s.ema_jitter, jitter_sample, alpha)
        else:
            # No prior sample to compare against
            s.ema_interval = dt
            s.ema_jitter = 0.0
            s.initialized = True

        s.last_packet_time = now
        s.packets_in_window += 1

        if now - s.window_start_time >= self.config.rate_window_seconds:
            s.packets_in_window = 0
            s.window_start_time = now

    def get_stats(self, agent_id: int, now: Optional[float] = None) -> Optional[QualityStats]:
        """Get quality metrics for an agent.

        Args:
            agent_id: Agent identifier
            now: Query time (monotonic seconds, uses current time if None)

        Returns:
            QualityStats, or None if no packet was ever seen
        """
        s = self._stats.get(agent_id)
        if s is None:
            return None

        if now is None:
            now = time.monotonic()

        window_age = max(1e-4, now - s.window_start_time)
        return QualityStats(
            agent_id=agent_id,
            packets_per_second=s.packets_in_window / window_age,
            seconds_since_last=now - s.last_packet_time,
            ema_interval=s.ema_interval,
            ema_jitter=s.ema_jitter,
        )

    def forget(self, agent_id: int) -> None:
        """Drop statistics for a deregistered agent."""
        self._stats.pop(agent_id, None)

    @property
    def agent_ids(self) -> List[int]:
        """Agents with at least one recorded packet."""
        return list(self._stats.keys())
