"""In-process pose sources.

Both sources hand samples to the control loop through the publish callback
given to ``start()``, which is the manager's thread-safe queue hand-off.
"""

import logging
import threading
import time
from typing import Callable, Optional

from ..core.interfaces import PublishFn
from ..core.types import RawPoseSample, TrackingConfidence

logger = logging.getLogger(__name__)


class InProcessPoseSource:
    """Pose source fed directly by application code.

    Example:
        source = InProcessPoseSource(agent_id=1)
        manager.attach_source(source)

        # From any thread:
        source.emit(position=[0.0, 1.0, 2.0])
    """

    def __init__(self, agent_id: int):
        self._agent_id = agent_id
        self._publish: Optional[PublishFn] = None
        self._emitted = 0
        self._dropped = 0

    @property
    def agent_id(self) -> int:
        return self._agent_id

    @property
    def is_running(self) -> bool:
        return self._publish is not None

    @property
    def emitted_count(self) -> int:
        return self._emitted

    @property
    def dropped_count(self) -> int:
        """Samples rejected by a full queue or emitted while stopped."""
        return self._dropped

    def start(self, publish: PublishFn) -> None:
        if self._publish is not None:
            logger.warning(f"Pose source for agent {self._agent_id} already started")
            return
        self._publish = publish
        logger.info(f"In-process pose source started for agent {self._agent_id}")

    def stop(self) -> None:
        self._publish = None
        logger.info(f"In-process pose source stopped for agent {self._agent_id}")

    def emit(
        self,
        position,
        rotation=(1.0, 0.0, 0.0, 0.0),
        confidence: int = TrackingConfidence.GOOD,
        timestamp: Optional[float] = None,
    ) -> bool:
        """Publish a pose for this source's agent.

        Args:
            position: SLAM-frame position [x, y, z]
            rotation: SLAM-frame quaternion [w, x, y, z]
            confidence: Tracking confidence
            timestamp: Sample time (monotonic seconds, uses current time if None)

        Returns:
            True if the sample was accepted
        """
        if timestamp is None:
            timestamp = time.monotonic()
        sample = RawPoseSample.at(self._agent_id, timestamp, position, rotation, confidence)
        return self.emit_sample(sample)

    def emit_sample(self, sample: RawPoseSample) -> bool:
        """Publish a prebuilt sample."""
        publish = self._publish
        if publish is None:
            self._dropped += 1
            logger.debug(f"Pose source for agent {self._agent_id} not started, sample dropped")
            return False

        accepted = publish(sample)
        if accepted:
            self._emitted += 1
        else:
            self._dropped += 1
        return accepted


class PollingPoseSource:
    """Pose source that polls a reader function on a background thread.

    The reader returns the next RawPoseSample or None when nothing new is
    available, e.g. a tracking-camera SDK call.
    """

    def __init__(
        self,
        agent_id: int,
        read_fn: Callable[[], Optional[RawPoseSample]],
        poll_rate_hz: float = 200.0,
    ):
        """Initialize polling source.

        Args:
            agent_id: Agent this source reports for
            read_fn: Returns the next sample or None
            poll_rate_hz: Poll rate when no sample is available
        """
        self._agent_id = agent_id
        self._read_fn = read_fn
        self._poll_interval = 1.0 / max(1.0, poll_rate_hz)
        self._publish: Optional[PublishFn] = None
        self._running = False
        self._thread: Optional[threading.Thread] = None

    @property
    def agent_id(self) -> int:
        return self._agent_id

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self, publish: PublishFn) -> None:
        if self._running:
            logger.warning(f"Polling source for agent {self._agent_id} already running")
            return

        self._publish = publish
        self._running = True
        self._thread = threading.Thread(
            target=self._read_loop, name=f"pose-source-{self._agent_id}", daemon=True
        )
        self._thread.start()
        logger.info(f"Polling pose source started for agent {self._agent_id}")

    def stop(self) -> None:
        self._running = False
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        self._publish = None
        logger.info(f"Polling pose source stopped for agent {self._agent_id}")

    def _read_loop(self) -> None:
        """Background loop reading samples."""
        while self._running:
            try:
                sample = self._read_fn()
                if sample is None:
                    time.sleep(self._poll_interval)
                    continue

                if sample.agent_id != self._agent_id:
                    logger.warning(
                        f"Source for agent {self._agent_id} read sample for "
                        f"agent {sample.agent_id}, ignoring"
                    )
                    continue

                publish = self._publish
                if publish is not None:
                    publish(sample)

            except Exception as e:
                if self._running:  # Only log if not shutting down
                    logger.error(f"Error reading pose for agent {self._agent_id}: {e}")
                time.sleep(0.01)
