"""
Point Cloud Processing (CPU-Only)

Stateless operations over PointCloud values: spatial filtering,
downsampling, statistical outlier removal, bounds and centroid, and
normal estimation. Every operation returns a new PointCloud of equal or
smaller size and keeps colors and normals index-aligned with positions.

Neighborhood queries use scipy's cKDTree.
"""

from dataclasses import dataclass
from typing import Optional, Dict, List, Sequence
import logging
import warnings

import numpy as np
from scipy.spatial import cKDTree

from domain.depth_frame import CameraPose
from domain.errors import InsufficientNeighborsWarning
from domain.point_cloud import Bounds, PointCloud
from domain.pipeline_config import PipelineConfig

logger = logging.getLogger(__name__)

# Fewer neighbors than this leave the normal undefined
MIN_NORMAL_NEIGHBORS = 3


@dataclass
class PointCloudStats:
    """Summary of a point cloud."""
    point_count: int
    bounds: Bounds
    centroid: np.ndarray
    has_colors: bool
    has_normals: bool
    undefined_normals: int

    def to_dict(self) -> Dict:
        return {
            'point_count': self.point_count,
            'min_bounds': self.bounds.min_bounds.tolist(),
            'max_bounds': self.bounds.max_bounds.tolist(),
            'dimensions': self.bounds.dimensions.tolist(),
            'centroid': self.centroid.tolist(),
            'has_colors': self.has_colors,
            'has_normals': self.has_normals,
            'undefined_normals': self.undefined_normals,
        }


class PointCloudProcessor:
    """
    Point cloud filtering and surface analysis.

    Features:
    - Filtering (distance from a reference, axis-aligned bounds, non-finite)
    - Uniform downsampling (every Nth point, order preserving)
    - Statistical outlier removal (k-NN mean distance, two-pass)
    - Bounding box and centroid
    - Normal estimation (radius neighborhood, PCA plane fit)
    - Cloud operations (transform, merge)

    The instance only stores default parameters; it holds no cloud state.
    """

    def __init__(
        self,
        outlier_neighbors: int = 16,
        outlier_sigma: float = 2.0,
        normal_radius: float = 0.05,
        normal_fallback_neighbors: int = 8
    ):
        """
        Initialize point cloud processor.

        Args:
            outlier_neighbors: Default K for statistical outlier removal
            outlier_sigma: Default sigma multiplier for outlier removal
            normal_radius: Default neighborhood radius for normals
            normal_fallback_neighbors: K used when the radius finds no neighbor
        """
        self.outlier_neighbors = outlier_neighbors
        self.outlier_sigma = outlier_sigma
        self.normal_radius = normal_radius
        self.normal_fallback_neighbors = normal_fallback_neighbors

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "PointCloudProcessor":
        return cls(
            outlier_neighbors=config.outlier_neighbors,
            outlier_sigma=config.outlier_sigma,
            normal_radius=config.normal_radius,
            normal_fallback_neighbors=config.normal_fallback_neighbors,
        )

    # ========================================================================
    # FILTERING
    # ========================================================================

    def filter_by_distance(
        self,
        cloud: PointCloud,
        reference: Sequence[float],
        min_radius: float = 0.0,
        max_radius: float = np.inf
    ) -> PointCloud:
        """
        Keep points whose distance to `reference` lies in [min_radius, max_radius].

        Args:
            cloud: Input cloud
            reference: Reference point (3,)
            min_radius: Inner radius (inclusive)
            max_radius: Outer radius (inclusive)

        Returns:
            Filtered cloud
        """
        if min_radius < 0 or max_radius < min_radius:
            raise ValueError(f"Invalid radius range [{min_radius}, {max_radius}]")

        distances = np.linalg.norm(
            cloud.positions - np.asarray(reference, dtype=np.float32).reshape(3),
            axis=1
        )
        keep = (distances >= min_radius) & (distances <= max_radius)
        return cloud.select(keep)

    def crop_to_bounds(self, cloud: PointCloud, bounds: Bounds) -> PointCloud:
        """Pass-through filter: keep points inside an axis-aligned box."""
        return cloud.select(bounds.contains(cloud.positions))

    def remove_non_finite(self, cloud: PointCloud) -> PointCloud:
        """Drop points with NaN or infinite coordinates."""
        return cloud.select(np.isfinite(cloud.positions).all(axis=1))

    # ========================================================================
    # DOWNSAMPLING
    # ========================================================================

    def downsample(self, cloud: PointCloud, every_n: int = 1) -> PointCloud:
        """
        Uniform downsampling: keep every Nth point by index.

        Deterministic and order preserving; every_n=1 returns an equal copy.

        Args:
            cloud: Input cloud
            every_n: Keep every Nth point (>= 1)

        Returns:
            Downsampled cloud
        """
        if every_n < 1:
            raise ValueError(f"every_n must be >= 1, got {every_n}")
        return cloud.select(np.arange(0, len(cloud), every_n))

    # ========================================================================
    # OUTLIER REMOVAL
    # ========================================================================

    def mean_neighbor_distances(self, positions: np.ndarray, nb_neighbors: int) -> np.ndarray:
        """Mean distance from each point to its K nearest neighbors (itself excluded)."""
        tree = cKDTree(positions)
        distances, _ = tree.query(positions, k=nb_neighbors + 1)
        # Column 0 is the point itself (distance 0)
        return distances[:, 1:].mean(axis=1)

    def remove_statistical_outliers(
        self,
        cloud: PointCloud,
        nb_neighbors: Optional[int] = None,
        std_ratio: Optional[float] = None
    ) -> PointCloud:
        """
        Statistical outlier removal.

        First pass: mean distance of every point to its K nearest neighbors.
        Second pass: drop points whose mean distance exceeds
        mean + std_ratio * std of all those per-point means. The threshold is
        computed once over the whole cloud, so the result does not depend on
        point order.

        Args:
            cloud: Input cloud
            nb_neighbors: K (default: processor setting)
            std_ratio: Sigma multiplier (default: processor setting)

        Returns:
            Filtered cloud (the input unchanged if it has fewer than K+1 points)
        """
        nb_neighbors = self.outlier_neighbors if nb_neighbors is None else nb_neighbors
        std_ratio = self.outlier_sigma if std_ratio is None else std_ratio
        if nb_neighbors < 1:
            raise ValueError(f"nb_neighbors must be >= 1, got {nb_neighbors}")
        if std_ratio <= 0:
            raise ValueError(f"std_ratio must be > 0, got {std_ratio}")

        if len(cloud) < nb_neighbors + 1:
            logger.debug(f"Outlier removal skipped: {len(cloud)} points < K+1 ({nb_neighbors + 1})")
            return cloud.copy()

        mean_distances = self.mean_neighbor_distances(cloud.positions, nb_neighbors)

        global_mean = float(np.mean(mean_distances))
        global_std = float(np.std(mean_distances, ddof=1))
        threshold = global_mean + std_ratio * global_std

        filtered = cloud.select(mean_distances <= threshold)
        logger.debug(
            f"Outlier removal: {len(cloud) - len(filtered)} of {len(cloud)} points removed "
            f"(threshold={threshold:.4f})"
        )
        return filtered

    # ========================================================================
    # BOUNDS
    # ========================================================================

    def calculate_bounding_box(self, cloud: PointCloud) -> Bounds:
        """
        Minimal axis-aligned box around the cloud.

        An empty cloud gives the zero-sized box at the origin.
        """
        if cloud.is_empty:
            return Bounds.empty()
        return Bounds.from_min_max(cloud.positions.min(axis=0), cloud.positions.max(axis=0))

    def calculate_centroid(self, cloud: PointCloud) -> np.ndarray:
        """Arithmetic mean position; the zero vector for an empty cloud."""
        if cloud.is_empty:
            return np.zeros(3)
        return cloud.positions.astype(np.float64).mean(axis=0)

    # ========================================================================
    # SURFACE ANALYSIS
    # ========================================================================

    def estimate_normals(
        self,
        cloud: PointCloud,
        search_radius: Optional[float] = None,
        fallback_neighbors: Optional[int] = None,
        viewpoint: Sequence[float] = (0.0, 0.0, 0.0)
    ) -> PointCloud:
        """
        Estimate surface normals by local plane fitting.

        For each point the neighborhood is every other point within
        `search_radius`; if there are none, its K nearest neighbors are used
        instead. The normal is the eigenvector of the smallest eigenvalue of
        the neighborhood covariance (point included, centered on the
        neighborhood centroid), flipped to face `viewpoint`. Points with
        fewer than 3 neighbors get a zero normal.

        Args:
            cloud: Input cloud
            search_radius: Neighborhood radius (default: processor setting)
            fallback_neighbors: K for the fallback (default: processor setting)
            viewpoint: Capture origin or other outward reference (3,)

        Returns:
            Copy of the cloud with normals populated
        """
        search_radius = self.normal_radius if search_radius is None else search_radius
        fallback_neighbors = self.normal_fallback_neighbors if fallback_neighbors is None else fallback_neighbors
        if search_radius <= 0:
            raise ValueError(f"search_radius must be > 0, got {search_radius}")
        if fallback_neighbors < 1:
            raise ValueError(f"fallback_neighbors must be >= 1, got {fallback_neighbors}")

        count = len(cloud)
        normals = np.zeros((count, 3), dtype=np.float64)
        if count == 0:
            return cloud.with_normals(normals)

        positions = cloud.positions.astype(np.float64)
        viewpoint = np.asarray(viewpoint, dtype=np.float64).reshape(3)
        tree = cKDTree(positions)
        neighborhoods = tree.query_ball_point(positions, r=search_radius)

        undefined = 0
        for i in range(count):
            neighbors = [j for j in neighborhoods[i] if j != i]

            if not neighbors and count > 1:
                k = min(fallback_neighbors + 1, count)
                _, indices = tree.query(positions[i], k=k)
                neighbors = [j for j in np.atleast_1d(indices) if j != i]

            if len(neighbors) < MIN_NORMAL_NEIGHBORS:
                undefined += 1
                continue

            normals[i] = self._fit_plane_normal(positions[[i] + neighbors])

            # Face the viewpoint
            if np.dot(normals[i], viewpoint - positions[i]) < 0:
                normals[i] = -normals[i]

        if undefined:
            warnings.warn(InsufficientNeighborsWarning(undefined, count), stacklevel=2)

        logger.debug(f"Estimated normals for {count - undefined} of {count} points")
        return cloud.with_normals(normals)

    @staticmethod
    def _fit_plane_normal(neighborhood: np.ndarray) -> np.ndarray:
        centered = neighborhood - neighborhood.mean(axis=0)
        covariance = centered.T @ centered / len(neighborhood)
        # eigh returns eigenvalues in ascending order
        _, eigenvectors = np.linalg.eigh(covariance)
        normal = eigenvectors[:, 0]
        return normal / np.linalg.norm(normal)

    # ========================================================================
    # CLOUD OPERATIONS
    # ========================================================================

    def transform(self, cloud: PointCloud, pose: CameraPose) -> PointCloud:
        """Apply a rigid transform to positions (rotate, translate) and normals (rotate)."""
        return PointCloud(
            positions=pose.transform_points(cloud.positions),
            colors=cloud.colors if cloud.has_colors else None,
            normals=pose.transform_directions(cloud.normals) if cloud.has_normals else None,
        )

    def merge(self, clouds: List[PointCloud]) -> PointCloud:
        """Concatenate clouds in order; attributes survive only if every cloud has them."""
        return PointCloud.concatenate(clouds)

    # ========================================================================
    # STATISTICS
    # ========================================================================

    def calculate_statistics(self, cloud: PointCloud) -> PointCloudStats:
        undefined = 0
        if cloud.has_normals:
            undefined = int(np.count_nonzero(np.linalg.norm(cloud.normals, axis=1) == 0))

        return PointCloudStats(
            point_count=len(cloud),
            bounds=self.calculate_bounding_box(cloud),
            centroid=self.calculate_centroid(cloud),
            has_colors=cloud.has_colors,
            has_normals=cloud.has_normals,
            undefined_normals=undefined,
        )
