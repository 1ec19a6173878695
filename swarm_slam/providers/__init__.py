"""Reference pose and ground-truth sources."""

from .in_process import InProcessPoseSource, PollingPoseSource
from .ground_truth import StaticGroundTruth

__all__ = [
    "InProcessPoseSource",
    "PollingPoseSource",
    "StaticGroundTruth",
]
