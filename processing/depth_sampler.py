"""Depth frame sampling on a strided pixel lattice (CPU-only)."""
from dataclasses import dataclass
from typing import Optional, Dict
import logging

import numpy as np

from domain.depth_frame import DepthFrame
from domain.errors import NoDepthDataError
from domain.pipeline_config import PipelineConfig

logger = logging.getLogger(__name__)


@dataclass
class DepthSamples:
    """
    Pixel coordinates and depths taken from one frame.

    Arrays are index-aligned and in row-major pixel order. When invalid
    samples are kept (dense mode), `valid` marks the usable ones; otherwise
    every entry is valid.
    """
    u: np.ndarray
    v: np.ndarray
    depth: np.ndarray
    valid: np.ndarray

    def __len__(self) -> int:
        return len(self.depth)

    @property
    def valid_count(self) -> int:
        return int(np.count_nonzero(self.valid))


class DepthSampler:
    """
    Enumerates pixels of a depth frame on a strided lattice and rejects
    invalid readings.

    A sample is valid when its depth is finite, strictly positive and inside
    [min_depth, max_depth]. Invalid samples are dropped, never zero-filled,
    so the output holds at most ceil(W/stride) * ceil(H/stride) samples.
    """

    def __init__(
        self,
        stride: int = 1,
        min_depth: float = 0.1,
        max_depth: float = 5.0
    ):
        """
        Initialize depth sampler.

        Args:
            stride: Sample every Nth pixel in each axis (>= 1)
            min_depth: Nearest accepted depth in meters (> 0)
            max_depth: Farthest accepted depth in meters
        """
        if stride < 1:
            raise ValueError(f"stride must be >= 1, got {stride}")
        if min_depth <= 0 or max_depth < min_depth:
            raise ValueError(f"Invalid depth range [{min_depth}, {max_depth}]")

        self.stride = stride
        self.min_depth = min_depth
        self.max_depth = max_depth

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "DepthSampler":
        return cls(
            stride=config.subsample_stride,
            min_depth=config.min_depth,
            max_depth=config.max_depth,
        )

    # ========================================================================
    # LATTICE
    # ========================================================================

    def lattice_shape(self, frame: DepthFrame) -> tuple:
        """(rows, cols) of the strided lattice for this frame."""
        rows = -(-frame.height // self.stride)
        cols = -(-frame.width // self.stride)
        return rows, cols

    def valid_mask(self, depth: np.ndarray) -> np.ndarray:
        """Boolean mask of the usable depth readings."""
        with np.errstate(invalid='ignore'):
            return (
                np.isfinite(depth) &
                (depth > 0) &
                (depth >= self.min_depth) &
                (depth <= self.max_depth)
            )

    # ========================================================================
    # SAMPLING
    # ========================================================================

    def sample(
        self,
        frame: Optional[DepthFrame],
        rows: Optional[slice] = None,
        keep_invalid: bool = False
    ) -> DepthSamples:
        """
        Sample a depth frame.

        Args:
            frame: Depth frame to sample
            rows: Optional band of lattice rows (indices into the strided
                lattice, not pixel rows) to restrict sampling to
            keep_invalid: Keep invalid samples and flag them in `valid`
                instead of dropping them

        Returns:
            DepthSamples in row-major order

        Raises:
            NoDepthDataError: frame is missing or has zero width/height
        """
        self._check_frame(frame)

        pixel_rows = np.arange(0, frame.height, self.stride)
        pixel_cols = np.arange(0, frame.width, self.stride)
        if rows is not None:
            pixel_rows = pixel_rows[rows]

        depth = frame.depth[np.ix_(pixel_rows, pixel_cols)].astype(np.float64)
        v_coords, u_coords = np.meshgrid(pixel_rows, pixel_cols, indexing='ij')

        depth = depth.reshape(-1)
        u_coords = u_coords.reshape(-1)
        v_coords = v_coords.reshape(-1)
        valid = self.valid_mask(depth)

        if keep_invalid:
            return DepthSamples(u=u_coords, v=v_coords, depth=depth, valid=valid)

        return DepthSamples(
            u=u_coords[valid],
            v=v_coords[valid],
            depth=depth[valid],
            valid=np.ones(int(np.count_nonzero(valid)), dtype=bool),
        )

    # ========================================================================
    # STATISTICS
    # ========================================================================

    def frame_statistics(self, frame: Optional[DepthFrame]) -> Dict[str, float]:
        """
        Count valid and invalid readings over the whole frame (stride ignored).

        Args:
            frame: Depth frame

        Returns:
            Statistics dict
        """
        self._check_frame(frame)

        valid = self.valid_mask(frame.depth)
        total_count = int(valid.size)
        valid_count = int(np.count_nonzero(valid))
        valid_depths = frame.depth[valid]

        return {
            'total_pixels': total_count,
            'valid_pixels': valid_count,
            'invalid_pixels': total_count - valid_count,
            'valid_percentage': float(valid_count / total_count * 100),
            'min_depth': float(valid_depths.min()) if valid_count else 0.0,
            'max_depth': float(valid_depths.max()) if valid_count else 0.0,
            'mean_depth': float(valid_depths.mean()) if valid_count else 0.0,
        }

    @staticmethod
    def _check_frame(frame: Optional[DepthFrame]):
        if frame is None:
            raise NoDepthDataError("No depth frame available")
        if frame.is_empty:
            raise NoDepthDataError(f"Depth frame has zero dimensions {tuple(frame.shape)}")
