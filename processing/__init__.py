"""Depth-to-point-cloud processing package.

- DepthSampler: strided sampling and validity filtering of depth frames
- PointReprojector: pinhole inverse projection to world space, depth colors
- SerialBackend / ThreadPoolBackend: serial and parallel point generation
- PointCloudProcessor: filtering, downsampling, outliers, bounds, normals
- SurfaceReconstructor: point-splat mesh reconstruction
- PipelineOrchestrator: per-frame capture, processing and publishing
"""

from processing.depth_sampler import DepthSampler, DepthSamples
from processing.point_reprojector import PointReprojector
from processing.frame_buffer_pool import FrameBufferPool
from processing.reprojection_backends import ReprojectionBackend, SerialBackend, ThreadPoolBackend
from processing.point_cloud_processor import PointCloudProcessor, PointCloudStats
from processing.surface_reconstructor import SurfaceReconstructor, compute_vertex_normals
from processing.depth_source import DepthSource, StaticDepthSource, create_synthetic_frame
from processing.consumers import LatestResultCache, Open3DViewerConsumer
from processing.pipeline_orchestrator import PipelineOrchestrator

__all__ = [
    "DepthSampler",
    "DepthSamples",
    "PointReprojector",
    "FrameBufferPool",
    "ReprojectionBackend",
    "SerialBackend",
    "ThreadPoolBackend",
    "PointCloudProcessor",
    "PointCloudStats",
    "SurfaceReconstructor",
    "compute_vertex_normals",
    "DepthSource",
    "StaticDepthSource",
    "create_synthetic_frame",
    "LatestResultCache",
    "Open3DViewerConsumer",
    "PipelineOrchestrator",
]
