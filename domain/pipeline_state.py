"""Pipeline state machine and published snapshot models."""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from domain.point_cloud import PointCloud
from domain.mesh import Mesh


class PipelineState(Enum):
    """
    States of one pipeline pass.

    Idle -> Capturing -> Reprojecting -> (Processing) -> Published -> Idle
    """
    IDLE = "idle"
    CAPTURING = "capturing"
    REPROJECTING = "reprojecting"
    PROCESSING = "processing"
    PUBLISHED = "published"

    def __str__(self) -> str:
        return self.value.title()

    @property
    def is_busy(self) -> bool:
        """A pass is in flight; new triggers are dropped."""
        return self is not PipelineState.IDLE


class ExecutionPath(Enum):
    """Which implementation produced the points of a pass."""
    PARALLEL = "parallel"
    SERIAL = "serial"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class PublishedResult:
    """
    Read-only snapshot handed to consumers once per completed pass.

    Attributes:
        sequence: Monotonic publish counter (1 for the first publish)
        frame_index: Index of the depth frame the cloud came from
        timestamp: Capture time of that frame
        cloud: Read-only point cloud
        mesh: Splat mesh, present only when reconstruction is enabled
        execution_path: Path that produced the points
    """
    sequence: int
    frame_index: int
    timestamp: float
    cloud: PointCloud
    mesh: Optional[Mesh] = None
    execution_path: ExecutionPath = ExecutionPath.SERIAL

    @property
    def point_count(self) -> int:
        return len(self.cloud)

    def as_arrays(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """(positions, colors, normals) for exporters and network senders."""
        return self.cloud.as_arrays()
