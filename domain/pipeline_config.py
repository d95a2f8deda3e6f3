"""Pipeline configuration data model."""
from dataclasses import dataclass, replace
from typing import Tuple

from config import (
    DEPTH_SUBSAMPLE_STRIDE,
    MIN_DEPTH,
    MAX_DEPTH,
    CAPTURE_INTERVAL_SECS,
    DISTANCE_CUTOFF,
    USE_PARALLEL_DISPATCH,
    DISPATCH_WORKERS,
    ENABLE_PROCESSING,
    DOWNSAMPLE_STRIDE,
    OUTLIER_NB_NEIGHBORS,
    OUTLIER_STD_RATIO,
    NORMAL_SEARCH_RADIUS,
    NORMAL_FALLBACK_NEIGHBORS,
    ENABLE_RECONSTRUCTION,
    SPLAT_SIZE,
    NEAR_COLOR,
    FAR_COLOR,
)


@dataclass(frozen=True)
class PipelineConfig:
    """
    Settings consumed by the depth-to-point-cloud pipeline.

    Defaults come from config.py. Invalid values raise ValueError on
    construction.

    Attributes:
        subsample_stride: Sample every Nth pixel per axis (>= 1)
        min_depth: Nearest accepted depth in meters (> 0)
        max_depth: Farthest accepted depth in meters
        capture_interval: Seconds between periodic captures
        distance_cutoff: Drop points farther than this from the camera, 0 disables
        use_parallel: Prefer the parallel execution path
        dispatch_workers: Worker threads for the parallel path
        enable_processing: Run outlier removal and normal estimation
        downsample_stride: Keep every Nth point after reprojection
        outlier_neighbors: K for statistical outlier removal
        outlier_sigma: Sigma multiplier for statistical outlier removal
        normal_radius: Neighborhood radius for normal estimation
        normal_fallback_neighbors: K used when the radius finds no neighbors
        enable_reconstruction: Build a splat mesh with every publish
        splat_size: Half-width of each splat quad
        near_color: RGBA color at min_depth
        far_color: RGBA color at max_depth
    """
    subsample_stride: int = DEPTH_SUBSAMPLE_STRIDE
    min_depth: float = MIN_DEPTH
    max_depth: float = MAX_DEPTH
    capture_interval: float = CAPTURE_INTERVAL_SECS
    distance_cutoff: float = DISTANCE_CUTOFF
    use_parallel: bool = USE_PARALLEL_DISPATCH
    dispatch_workers: int = DISPATCH_WORKERS
    enable_processing: bool = ENABLE_PROCESSING
    downsample_stride: int = DOWNSAMPLE_STRIDE
    outlier_neighbors: int = OUTLIER_NB_NEIGHBORS
    outlier_sigma: float = OUTLIER_STD_RATIO
    normal_radius: float = NORMAL_SEARCH_RADIUS
    normal_fallback_neighbors: int = NORMAL_FALLBACK_NEIGHBORS
    enable_reconstruction: bool = ENABLE_RECONSTRUCTION
    splat_size: float = SPLAT_SIZE
    near_color: Tuple[float, ...] = NEAR_COLOR
    far_color: Tuple[float, ...] = FAR_COLOR

    def __post_init__(self):
        if self.subsample_stride < 1:
            raise ValueError(f"subsample_stride must be >= 1, got {self.subsample_stride}")
        if self.downsample_stride < 1:
            raise ValueError(f"downsample_stride must be >= 1, got {self.downsample_stride}")
        if self.min_depth <= 0:
            raise ValueError(f"min_depth must be > 0, got {self.min_depth}")
        if self.max_depth <= self.min_depth:
            raise ValueError(f"max_depth ({self.max_depth}) must exceed min_depth ({self.min_depth})")
        if self.capture_interval <= 0:
            raise ValueError(f"capture_interval must be > 0, got {self.capture_interval}")
        if self.distance_cutoff < 0:
            raise ValueError(f"distance_cutoff must be >= 0, got {self.distance_cutoff}")
        if self.dispatch_workers < 1:
            raise ValueError(f"dispatch_workers must be >= 1, got {self.dispatch_workers}")
        if self.outlier_neighbors < 1 or self.normal_fallback_neighbors < 1:
            raise ValueError("Neighbor counts must be >= 1")
        if self.outlier_sigma <= 0:
            raise ValueError(f"outlier_sigma must be > 0, got {self.outlier_sigma}")
        if self.normal_radius <= 0:
            raise ValueError(f"normal_radius must be > 0, got {self.normal_radius}")
        if self.splat_size <= 0:
            raise ValueError(f"splat_size must be > 0, got {self.splat_size}")
        for name in ("near_color", "far_color"):
            color = tuple(getattr(self, name))
            if len(color) not in (3, 4):
                raise ValueError(f"{name} must have 3 or 4 components, got {len(color)}")
            # RGB gets an opaque alpha
            if len(color) == 3:
                color = color + (1.0,)
            object.__setattr__(self, name, color)

    def with_overrides(self, **overrides) -> "PipelineConfig":
        """Validated copy with some fields replaced."""
        return replace(self, **overrides)
