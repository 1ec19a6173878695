"""Ground-truth pose sources for simulation and tests."""

import threading
from typing import Dict, Optional

from ..core.pose import Pose


class StaticGroundTruth:
    """Dictionary-backed truth poses, updated by the simulation.

    Example:
        truth = StaticGroundTruth({0: Pose.identity()})
        truth.set_pose(1, Pose.from_position([2.0, 0.0, 0.0]))
        engine.set_ground_truth(truth)
    """

    def __init__(self, poses: Optional[Dict[int, Pose]] = None):
        self._poses: Dict[int, Pose] = dict(poses or {})
        self._lock = threading.Lock()

    def set_pose(self, agent_id: int, pose: Pose) -> None:
        with self._lock:
            self._poses[agent_id] = pose

    def remove(self, agent_id: int) -> None:
        with self._lock:
            self._poses.pop(agent_id, None)

    def get_truth_pose(self, agent_id: int) -> Optional[Pose]:
        with self._lock:
            return self._poses.get(agent_id)
