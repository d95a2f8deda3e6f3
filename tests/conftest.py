"""Shared fixtures for pipeline tests."""

import numpy as np
import pytest

from domain import CameraIntrinsics, CameraPose, DepthFrame, PipelineConfig, PointCloud


def make_frame(depth, fx=4.0, fy=4.0, cx=2.0, cy=2.0, pose="identity", frame_index=0):
    """Build a DepthFrame around a depth grid."""
    if pose == "identity":
        pose = CameraPose.identity()
    return DepthFrame(
        depth=np.asarray(depth, dtype=np.float32),
        intrinsics=CameraIntrinsics(fx=fx, fy=fy, cx=cx, cy=cy),
        pose=pose,
        frame_index=frame_index,
    )


def make_grid_cloud(count_per_axis=10, spacing=1.0):
    """Uniform cubic grid of count_per_axis^3 points."""
    axis = np.arange(count_per_axis) * spacing
    x, y, z = np.meshgrid(axis, axis, axis, indexing='ij')
    return np.stack([x.ravel(), y.ravel(), z.ravel()], axis=1)


@pytest.fixture
def flat_frame():
    """4x4 frame, every pixel at depth 2.0, fx=fy=4, cx=cy=2, identity pose."""
    return make_frame(np.full((4, 4), 2.0))


@pytest.fixture
def e2e_config():
    """Configuration of the 4x4 end-to-end scenario, processing disabled."""
    return PipelineConfig(
        subsample_stride=1,
        min_depth=0.1,
        max_depth=10.0,
        use_parallel=False,
        enable_processing=False,
        enable_reconstruction=False,
        distance_cutoff=0.0,
        near_color=(0.0, 0.0, 0.0, 0.0),
        far_color=(0.0, 0.0, 1.0, 1.0),
    )


@pytest.fixture
def colored_cloud():
    """Small cloud with colors and normals on every point."""
    positions = np.array([
        [0.0, 0.0, 1.0],
        [0.0, 0.0, 2.0],
        [0.0, 0.0, 3.0],
        [0.0, 0.0, 4.0],
        [0.0, 0.0, 5.0],
    ])
    colors = np.tile([0.5, 0.5, 0.5, 1.0], (5, 1)) * np.arange(1, 6)[:, None] / 5
    normals = np.tile([0.0, 0.0, -1.0], (5, 1))
    return PointCloud(positions=positions, colors=colors, normals=normals)


@pytest.fixture
def planar_grid_cloud():
    """Flat 10x10 grid in the XZ plane (y = 0), 0.1 spacing."""
    axis = np.arange(10) * 0.1
    x, z = np.meshgrid(axis, axis, indexing='ij')
    positions = np.stack([x.ravel(), np.zeros(x.size), z.ravel()], axis=1)
    return PointCloud(positions=positions)
