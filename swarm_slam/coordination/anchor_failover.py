"""Anchor health monitoring and failover.

The anchor is the agent whose SLAM pose, with the world correction applied,
is treated as ground truth for the whole swarm. When it stays unhealthy
(stale stream or low tracking confidence) for long enough, the first healthy
agent in priority order is promoted. The world correction is rebased at the
same time so nothing visibly moves.
"""

import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from ..core.config import AnchorConfig
from ..core.state import AgentRegistry
from ..core.types import confidence_name
from ..navigation.fusion_engine import PoseFusionEngine

logger = logging.getLogger(__name__)


class AnchorHealth(Enum):
    """Anchor health status."""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    FAILED = "failed"


@dataclass
class AnchorSwitchEvent:
    """Record of an anchor switch.

    Attributes:
        old_anchor_id: Anchor before the switch
        new_anchor_id: Anchor after the switch
        timestamp: Time of the switch (monotonic seconds)
        reason: Human-readable trigger description
    """
    old_anchor_id: int
    new_anchor_id: int
    timestamp: float
    reason: str = ""


class AnchorFailoverController:
    """Rate-limited anchor health checks with first-match failover.

    Example:
        failover = AnchorFailoverController(engine, registry, AnchorConfig(),
                                            candidate_order=[0, 1, 2])
        failover.on_anchor_switch(lambda e: print(f"anchor -> {e.new_anchor_id}"))

        # Once per control tick (checks are throttled internally):
        failover.update(now)
    """

    def __init__(
        self,
        engine: PoseFusionEngine,
        registry: AgentRegistry,
        config: Optional[AnchorConfig] = None,
        candidate_order: Optional[List[int]] = None,
        start_time: Optional[float] = None,
    ):
        """Initialize failover controller.

        Args:
            engine: Fusion engine owning anchor and world correction
            registry: Shared per-agent runtime state
            config: Anchor health settings
            candidate_order: Failover search order (registry order if None)
            start_time: Startup time for the grace period (now if None)
        """
        self.engine = engine
        self.registry = registry
        self.config = config or AnchorConfig()
        self._candidate_order = list(candidate_order) if candidate_order is not None else None

        self._start_time = start_time if start_time is not None else time.monotonic()
        self._last_check_time = -math.inf
        self._last_switch_time = -math.inf

        self._health = AnchorHealth.HEALTHY
        self._unhealthy_since: Optional[float] = None
        self._last_error: Optional[str] = None

        self._switch_history: List[AnchorSwitchEvent] = []
        self._on_switch: List[Callable[[AnchorSwitchEvent], None]] = []

    # ----- Properties -----

    @property
    def health(self) -> AnchorHealth:
        return self._health

    @property
    def unhealthy_since(self) -> Optional[float]:
        return self._unhealthy_since

    @property
    def last_error(self) -> Optional[str]:
        """Most recent failover error, cleared on the next successful check."""
        return self._last_error

    @property
    def switch_history(self) -> List[AnchorSwitchEvent]:
        return list(self._switch_history)

    @property
    def candidate_order(self) -> List[int]:
        if self._candidate_order is not None:
            return list(self._candidate_order)
        return self.registry.ids()

    def set_candidate_order(self, order: List[int]) -> None:
        """Set the anchor succession order.

        Args:
            order: Agent ids, searched first to last
        """
        self._candidate_order = list(order)

    def in_startup_grace(self, now: float) -> bool:
        return now - self._start_time < self.config.startup_grace_seconds

    # ----- Main update -----

    def update(self, now: Optional[float] = None) -> Optional[AnchorSwitchEvent]:
        """Run a throttled anchor health check and fail over if needed.

        Args:
            now: Current time (monotonic seconds, uses current time if None)

        Returns:
            AnchorSwitchEvent if the anchor changed, None otherwise
        """
        if now is None:
            now = time.monotonic()

        if now - self._last_check_time <= self.config.recheck_seconds:
            return None
        self._last_check_time = now

        # Zero-data startup must not read as anchor failure
        if self.in_startup_grace(now):
            return None

        health = self.evaluate_health(now)
        if health != AnchorHealth.FAILED:
            self._last_error = None
            return None

        if now - self._last_switch_time <= self.config.switch_cooldown_seconds:
            logger.debug("[AnchorSwitch] Anchor failed but switch cooldown active")
            return None

        candidate = self.find_candidate()
        if candidate is None:
            self._last_error = (
                f"Anchor {self.engine.anchor_id} failed and no healthy candidate is available"
            )
            logger.error("[AnchorSwitch] No healthy anchor candidates available.")
            return None

        self._last_error = None
        return self.switch_anchor(candidate, now, reason=f"anchor {self.engine.anchor_id} failed")

    def evaluate_health(self, now: float) -> AnchorHealth:
        """Classify the current anchor and update the unhealthy timer.

        An anchor that never produced a pose counts as failed immediately.

        Args:
            now: Current time (monotonic seconds)

        Returns:
            Current AnchorHealth
        """
        anchor_id = self.engine.anchor_id
        state = self.registry.get(anchor_id)

        if state is None or state.last_raw_sample is None:
            self._health = AnchorHealth.FAILED
            return self._health

        stale = state.is_stale
        confidence = state.last_tracking_confidence
        low_confidence = (
            confidence is not None and confidence < self.config.min_tracking_confidence
        )

        if stale or low_confidence:
            if self._unhealthy_since is None:
                self._unhealthy_since = now
                logger.warning(
                    f"[AnchorHealth] Anchor {anchor_id} unhealthy "
                    f"(stale={stale}, conf={confidence_name(confidence)})"
                )

            unhealthy_for = now - self._unhealthy_since
            if unhealthy_for >= self.config.failure_seconds:
                if self._health != AnchorHealth.FAILED:
                    logger.warning(
                        f"[AnchorHealth] Anchor {anchor_id} failed after "
                        f"{unhealthy_for:.2f}s unhealthy"
                    )
                self._health = AnchorHealth.FAILED
            else:
                self._health = AnchorHealth.UNHEALTHY
            return self._health

        if self._unhealthy_since is not None:
            logger.info(f"[AnchorHealth] Anchor {anchor_id} healthy again")
        self._unhealthy_since = None
        self._health = AnchorHealth.HEALTHY
        return self._health

    def find_candidate(self) -> Optional[int]:
        """First agent in priority order that can take over as anchor.

        A candidate has a pose, is not stale and meets the minimum
        confidence. No scoring; first match wins.

        Returns:
            Agent id, or None if no candidate qualifies
        """
        for agent_id in self.candidate_order:
            if agent_id == self.engine.anchor_id:
                continue

            state = self.registry.get(agent_id)
            if state is None or state.last_raw_sample is None:
                continue
            if state.is_stale:
                continue

            confidence = state.last_tracking_confidence
            if confidence is not None and confidence >= self.config.min_tracking_confidence:
                return agent_id

        return None

    def switch_anchor(
        self, new_anchor_id: int, now: Optional[float] = None, reason: str = "manual"
    ) -> Optional[AnchorSwitchEvent]:
        """Switch the anchor, preserving the anchor's world pose.

        Args:
            new_anchor_id: Agent to promote
            now: Current time (monotonic seconds, uses current time if None)
            reason: Trigger description for logs

        Returns:
            AnchorSwitchEvent, or None if the switch was not possible
        """
        if now is None:
            now = time.monotonic()

        old_anchor_id = self.engine.anchor_id
        if new_anchor_id == old_anchor_id:
            return None

        logger.warning(
            f"[AnchorSwitch] Switching anchor from {old_anchor_id} to {new_anchor_id} ({reason})"
        )
        if not self.engine.rebase_anchor(new_anchor_id):
            return None

        self._last_switch_time = now
        self._unhealthy_since = None
        self._health = AnchorHealth.HEALTHY

        event = AnchorSwitchEvent(
            old_anchor_id=old_anchor_id,
            new_anchor_id=new_anchor_id,
            timestamp=now,
            reason=reason,
        )
        self._switch_history.append(event)

        for callback in self._on_switch:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Error in on_anchor_switch callback: {e}")

        return event

    def on_anchor_switch(self, callback: Callable[[AnchorSwitchEvent], None]) -> None:
        """Register callback for anchor switches.

        Args:
            callback: Function called with each AnchorSwitchEvent
        """
        self._on_switch.append(callback)
