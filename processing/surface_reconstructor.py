"""
Splat Mesh Reconstruction

Builds a renderable mesh from an unordered, noisy point set by emitting
one small quad (two triangles) per point, perpendicular to the point's
normal. No global topology is attempted: the goal is a visually plausible
local surface from real-time sensor samples.
"""

from typing import Optional, Sequence
import logging

import numpy as np

from domain.mesh import Mesh
from domain.point_cloud import PointCloud
from domain.pipeline_config import PipelineConfig
from processing.point_cloud_processor import PointCloudProcessor

logger = logging.getLogger(__name__)

# Corner offsets along (tangent, bitangent), counter-clockwise seen from the normal
_QUAD_CORNERS = np.array([
    [-1.0, -1.0],
    [1.0, -1.0],
    [1.0, 1.0],
    [-1.0, 1.0],
])

# Two triangles per quad, local vertex indices
_QUAD_TRIANGLES = np.array([0, 1, 2, 0, 2, 3], dtype=np.int64)


def tangent_frames(normals: np.ndarray):
    """
    Orthonormal (tangent, bitangent) pairs perpendicular to unit normals.

    The helper axis is world up unless the normal is nearly vertical, in
    which case world x is used.

    Returns:
        Tuple of (tangents [N, 3], bitangents [N, 3]); tangent x bitangent = normal
    """
    helper = np.tile(np.array([0.0, 1.0, 0.0]), (len(normals), 1))
    nearly_vertical = np.abs(normals[:, 1]) > 0.9
    helper[nearly_vertical] = np.array([1.0, 0.0, 0.0])

    tangents = np.cross(helper, normals)
    tangents /= np.linalg.norm(tangents, axis=1, keepdims=True)
    bitangents = np.cross(normals, tangents)
    return tangents, bitangents


def compute_vertex_normals(vertices: np.ndarray, triangles: np.ndarray) -> np.ndarray:
    """
    Per-vertex normals from triangle faces.

    Each face adds its (area-weighted) normal to its three vertices; the sums
    are normalized. Vertices not referenced by any face keep a zero normal.

    Args:
        vertices: Vertex positions [V, 3]
        triangles: Flat index list [3T] or faces [T, 3]

    Returns:
        Normals [V, 3]
    """
    vertices = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)
    faces = np.asarray(triangles, dtype=np.int64).reshape(-1, 3)
    normals = np.zeros_like(vertices)
    if len(faces) == 0:
        return normals

    v0, v1, v2 = vertices[faces[:, 0]], vertices[faces[:, 1]], vertices[faces[:, 2]]
    face_normals = np.cross(v1 - v0, v2 - v0)
    for corner in range(3):
        np.add.at(normals, faces[:, corner], face_normals)

    lengths = np.linalg.norm(normals, axis=1, keepdims=True)
    return np.divide(normals, lengths, out=np.zeros_like(normals), where=lengths > 0)


class SurfaceReconstructor:
    """
    Point-splat surface reconstruction.

    Each point with a defined (non-zero) normal becomes four vertices and two
    triangles. All four vertices inherit the point's color and normal.
    Points whose normal is undefined produce no quad.
    """

    def __init__(
        self,
        splat_size: float = 0.01,
        processor: Optional[PointCloudProcessor] = None
    ):
        """
        Initialize surface reconstructor.

        Args:
            splat_size: Half-width of each quad in meters
            processor: Used to estimate normals when the cloud has none
        """
        if splat_size <= 0:
            raise ValueError(f"splat_size must be > 0, got {splat_size}")

        self.splat_size = splat_size
        self.processor = processor or PointCloudProcessor()

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "SurfaceReconstructor":
        return cls(
            splat_size=config.splat_size,
            processor=PointCloudProcessor.from_config(config),
        )

    def reconstruct(
        self,
        cloud: PointCloud,
        viewpoint: Sequence[float] = (0.0, 0.0, 0.0)
    ) -> Mesh:
        """
        Build a splat mesh from a point cloud.

        Args:
            cloud: Input cloud; normals are estimated first if it has none
            viewpoint: Orientation reference for normal estimation

        Returns:
            Mesh (empty for an empty cloud)
        """
        if cloud.is_empty:
            return Mesh.empty()

        if not cloud.has_normals:
            cloud = self.processor.estimate_normals(cloud, viewpoint=viewpoint)

        normals = cloud.normals.astype(np.float64)
        lengths = np.linalg.norm(normals, axis=1)
        defined = lengths > 0
        if not np.any(defined):
            logger.debug("No point has a defined normal; splat mesh is empty")
            return Mesh.empty()

        centers = cloud.positions[defined].astype(np.float64)
        normals = normals[defined] / lengths[defined][:, None]
        tangents, bitangents = tangent_frames(normals)

        # [N, 4, 3]: center + size * (a * tangent + b * bitangent) per corner
        offsets = (
            _QUAD_CORNERS[None, :, 0:1] * tangents[:, None, :]
            + _QUAD_CORNERS[None, :, 1:2] * bitangents[:, None, :]
        )
        vertices = centers[:, None, :] + self.splat_size * offsets

        point_count = len(centers)
        triangles = (np.arange(point_count, dtype=np.int64)[:, None] * 4 + _QUAD_TRIANGLES[None, :])

        colors = None
        if cloud.has_colors:
            colors = np.repeat(cloud.colors[defined], 4, axis=0)

        mesh = Mesh(
            vertices=vertices.reshape(-1, 3),
            triangles=triangles.reshape(-1),
            normals=np.repeat(normals, 4, axis=0),
            colors=colors,
        )

        logger.debug(
            f"Splat mesh: {mesh.vertex_count} vertices, {mesh.triangle_count} triangles "
            f"({len(cloud) - point_count} points without normal skipped)"
        )
        return mesh
