"""
Depth Reprojection

Converts valid depth samples into world-space points and assigns each a
color from a fixed near-to-far depth gradient.

Camera space follows the OpenCV convention: +x to the right, +y down the
image, +z forward along the view ray. World space is reached by rotating
with the frame's orientation and then translating by its position.
"""

from typing import Optional, Sequence, Tuple
import logging

import numpy as np

from domain.depth_frame import DepthFrame, CameraIntrinsics, CameraPose
from domain.errors import MissingCameraPoseError
from domain.point_cloud import PointCloud
from domain.pipeline_config import PipelineConfig
from processing.depth_sampler import DepthSamples

logger = logging.getLogger(__name__)


class PointReprojector:
    """
    Pinhole inverse projection plus camera-to-world transform.

    Pure: output depends only on the samples, the frame and the gradient
    configuration.
    """

    def __init__(
        self,
        min_depth: float = 0.1,
        max_depth: float = 5.0,
        near_color: Sequence[float] = (1.0, 0.0, 0.0, 1.0),
        far_color: Sequence[float] = (0.0, 0.0, 1.0, 1.0)
    ):
        """
        Initialize reprojector.

        Args:
            min_depth: Depth mapped to near_color
            max_depth: Depth mapped to far_color
            near_color: RGB or RGBA color (0-1) at min_depth
            far_color: RGB or RGBA color (0-1) at max_depth
        """
        if max_depth <= min_depth:
            raise ValueError(f"max_depth ({max_depth}) must exceed min_depth ({min_depth})")

        self.min_depth = min_depth
        self.max_depth = max_depth
        self.near_color = self._to_rgba(near_color)
        self.far_color = self._to_rgba(far_color)

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "PointReprojector":
        return cls(
            min_depth=config.min_depth,
            max_depth=config.max_depth,
            near_color=config.near_color,
            far_color=config.far_color,
        )

    @staticmethod
    def _to_rgba(color: Sequence[float]) -> np.ndarray:
        color = np.asarray(color, dtype=np.float64)
        if color.shape == (3,):
            color = np.append(color, 1.0)
        if color.shape != (4,):
            raise ValueError(f"Color must have 3 or 4 components, got {color.shape}")
        return color

    # ========================================================================
    # PROJECTION
    # ========================================================================

    @staticmethod
    def to_camera_space(
        u: np.ndarray,
        v: np.ndarray,
        depth: np.ndarray,
        intrinsics: CameraIntrinsics
    ) -> np.ndarray:
        """
        Inverse pinhole projection.

        x = (u - cx) * depth / fx
        y = (v - cy) * depth / fy
        z = depth

        Returns:
            Camera-space points [N, 3] (float64)
        """
        depth = np.asarray(depth, dtype=np.float64)
        x = (np.asarray(u, dtype=np.float64) - intrinsics.cx) * depth / intrinsics.fx
        y = (np.asarray(v, dtype=np.float64) - intrinsics.cy) * depth / intrinsics.fy
        return np.stack([x, y, depth], axis=1)

    @staticmethod
    def to_world_space(points: np.ndarray, pose: CameraPose) -> np.ndarray:
        """
        Rotate by the pose orientation, then translate by its position.

        Written column by column so every output element is computed the same
        way no matter how the points are split across workers.
        """
        rotation = pose.rotation_matrix
        return (
            points[:, 0:1] * rotation[:, 0]
            + points[:, 1:2] * rotation[:, 1]
            + points[:, 2:3] * rotation[:, 2]
            + pose.position
        )

    def depth_colors(self, depth: np.ndarray) -> np.ndarray:
        """
        Linear gradient from near_color to far_color.

        The depth fraction (depth - min_depth) / (max_depth - min_depth) is
        clamped to [0, 1].

        Returns:
            RGBA colors [N, 4]
        """
        fraction = (np.asarray(depth, dtype=np.float64) - self.min_depth) / (self.max_depth - self.min_depth)
        fraction = np.clip(fraction, 0.0, 1.0)[:, None]
        return self.near_color + (self.far_color - self.near_color) * fraction

    # ========================================================================
    # REPROJECTION
    # ========================================================================

    def reproject_arrays(
        self,
        samples: DepthSamples,
        frame: DepthFrame
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        World positions and colors for every sample, valid or not.

        Raises:
            MissingCameraPoseError: frame has no pose
        """
        pose = self._require_pose(frame)
        camera_points = self.to_camera_space(samples.u, samples.v, samples.depth, frame.intrinsics)
        world_points = self.to_world_space(camera_points, pose)
        return world_points, self.depth_colors(samples.depth)

    def reproject(self, samples: DepthSamples, frame: DepthFrame) -> PointCloud:
        """
        Reproject valid samples into a world-space point cloud.

        Args:
            samples: Output of DepthSampler.sample()
            frame: The frame the samples came from (intrinsics and pose)

        Returns:
            PointCloud with positions and colors, normals empty

        Raises:
            MissingCameraPoseError: frame has no pose (no points are produced)
        """
        positions, colors = self.reproject_arrays(samples, frame)
        valid = samples.valid
        cloud = PointCloud(positions=positions[valid], colors=colors[valid])

        logger.debug(f"Reprojected {len(cloud)} points from frame {frame.frame_index}")
        return cloud

    @staticmethod
    def _require_pose(frame: DepthFrame) -> CameraPose:
        if frame.pose is None:
            raise MissingCameraPoseError(f"Frame {frame.frame_index} has no camera pose")
        return frame.pose

    def reproject_or_empty(self, samples: DepthSamples, frame: DepthFrame) -> PointCloud:
        """Like reproject(), but fails closed with an empty cloud when the pose is missing."""
        try:
            return self.reproject(samples, frame)
        except MissingCameraPoseError as e:
            logger.warning(f"{e}; producing empty cloud")
            return PointCloud.empty()
