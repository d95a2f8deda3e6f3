"""
Execution paths for point generation.

Two implementations of one interface: a serial path that reprojects the
whole lattice in one go, and a parallel path that dispatches bands of
lattice rows to a thread pool (the CPU stand-in for a GPU compute
dispatch). Both produce the same points in the same order.
"""

from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, List
import logging

import numpy as np

from domain.depth_frame import DepthFrame
from domain.errors import MissingCameraPoseError, NoDepthDataError, ParallelDispatchFailure
from domain.pipeline_state import ExecutionPath
from domain.point_cloud import PointCloud
from processing.depth_sampler import DepthSampler
from processing.frame_buffer_pool import FrameBufferPool, FrameBuffers
from processing.point_reprojector import PointReprojector

logger = logging.getLogger(__name__)


class ReprojectionBackend(ABC):
    """Turns one depth frame into a world-space point cloud."""

    execution_path: ExecutionPath

    @abstractmethod
    def generate(
        self,
        frame: DepthFrame,
        sampler: DepthSampler,
        reprojector: PointReprojector
    ) -> PointCloud:
        """
        Sample and reproject a frame.

        Raises:
            NoDepthDataError: frame is missing or empty
            MissingCameraPoseError: frame has no pose
        """

    @property
    def is_available(self) -> bool:
        return True

    def close(self):
        """Release any workers held by the backend."""


class SerialBackend(ReprojectionBackend):
    """Single pass over the whole lattice on the calling thread."""

    execution_path = ExecutionPath.SERIAL

    def generate(
        self,
        frame: DepthFrame,
        sampler: DepthSampler,
        reprojector: PointReprojector
    ) -> PointCloud:
        samples = sampler.sample(frame)
        return reprojector.reproject(samples, frame)


class ThreadPoolBackend(ReprojectionBackend):
    """
    Dispatches bands of lattice rows to worker threads.

    Each worker writes its band into a shared, pooled scratch buffer at a
    disjoint offset, so no locking is needed during the dispatch. The valid
    entries are compacted into a fresh PointCloud at the end.
    """

    execution_path = ExecutionPath.PARALLEL

    def __init__(
        self,
        workers: int = 4,
        rows_per_band: Optional[int] = None,
        buffer_pool: Optional[FrameBufferPool] = None
    ):
        """
        Initialize thread pool backend.

        Args:
            workers: Number of worker threads
            rows_per_band: Lattice rows per task (default: split evenly across workers)
            buffer_pool: Scratch buffer pool (one is created if omitted)
        """
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")

        self.workers = workers
        self.rows_per_band = rows_per_band
        self.buffer_pool = buffer_pool or FrameBufferPool()
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.workers,
                thread_name_prefix="reproject"
            )
        return self._executor

    def close(self):
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _bands(self, lattice_rows: int) -> List[slice]:
        rows_per_band = self.rows_per_band or max(1, -(-lattice_rows // self.workers))
        return [
            slice(start, min(start + rows_per_band, lattice_rows))
            for start in range(0, lattice_rows, rows_per_band)
        ]

    def generate(
        self,
        frame: DepthFrame,
        sampler: DepthSampler,
        reprojector: PointReprojector
    ) -> PointCloud:
        # Whole-frame input checks run before dispatch so they surface as
        # themselves, not as a dispatch failure
        if frame is None or frame.is_empty:
            raise NoDepthDataError("No depth frame available")
        if frame.pose is None:
            raise MissingCameraPoseError(f"Frame {frame.frame_index} has no camera pose")

        lattice_rows, lattice_cols = sampler.lattice_shape(frame)
        try:
            buffers = self.buffer_pool.acquire(lattice_rows * lattice_cols, frame.frame_index)
            futures = [
                self.executor.submit(
                    self._reproject_band, frame, sampler, reprojector, band, lattice_cols, buffers
                )
                for band in self._bands(lattice_rows)
            ]
            for future in futures:
                future.result()

            valid = buffers.valid[:buffers.size]
            return PointCloud(
                positions=buffers.positions[:buffers.size][valid],
                colors=buffers.colors[:buffers.size][valid],
            )
        except Exception as e:
            raise ParallelDispatchFailure(f"Parallel reprojection failed: {e}") from e
        finally:
            self.buffer_pool.release(frame.frame_index)

    @staticmethod
    def _reproject_band(
        frame: DepthFrame,
        sampler: DepthSampler,
        reprojector: PointReprojector,
        band: slice,
        lattice_cols: int,
        buffers: FrameBuffers
    ):
        samples = sampler.sample(frame, rows=band, keep_invalid=True)
        with np.errstate(invalid='ignore', over='ignore'):
            positions, colors = reprojector.reproject_arrays(samples, frame)

        start = band.start * lattice_cols
        stop = start + len(samples)
        buffers.positions[start:stop] = positions
        buffers.colors[start:stop] = colors
        buffers.valid[start:stop] = samples.valid
