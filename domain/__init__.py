"""Domain models for the depth-to-point-cloud pipeline."""
from domain.depth_frame import CameraIntrinsics, CameraPose, DepthFrame
from domain.point_cloud import Bounds, PointCloud
from domain.mesh import Mesh, MeshStatistics
from domain.pipeline_state import PipelineState, ExecutionPath, PublishedResult
from domain.pipeline_config import PipelineConfig
from domain.errors import (
    PointCloudPipelineError,
    NoDepthDataError,
    MissingCameraPoseError,
    ParallelDispatchFailure,
    InsufficientNeighborsWarning,
)

__all__ = [
    "CameraIntrinsics",
    "CameraPose",
    "DepthFrame",
    "Bounds",
    "PointCloud",
    "Mesh",
    "MeshStatistics",
    "PipelineState",
    "ExecutionPath",
    "PublishedResult",
    "PipelineConfig",
    "PointCloudPipelineError",
    "NoDepthDataError",
    "MissingCameraPoseError",
    "ParallelDispatchFailure",
    "InsufficientNeighborsWarning",
]
