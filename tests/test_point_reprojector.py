"""Tests for depth reprojection."""

import numpy as np
import pytest

from conftest import make_frame
from domain import CameraPose, MissingCameraPoseError
from processing import DepthSampler, PointReprojector, SerialBackend


class TestPointReprojector:
    """Tests for pinhole inverse projection and depth colors."""

    def test_round_trip_matches_pinhole_formula(self):
        """Identity pose: positions equal the closed-form pinhole result."""
        rng = np.random.default_rng(7)
        depth = rng.uniform(0.5, 4.0, size=(12, 16))
        fx, fy, cx, cy = 20.0, 18.0, 7.5, 5.5
        frame = make_frame(depth, fx=fx, fy=fy, cx=cx, cy=cy)

        samples = DepthSampler(stride=1, min_depth=0.1, max_depth=10.0).sample(frame)
        cloud = PointReprojector(min_depth=0.1, max_depth=10.0).reproject(samples, frame)

        v, u = np.mgrid[0:12, 0:16]
        d = frame.depth.astype(np.float64)
        expected = np.stack([
            (u - cx) * d / fx,
            (v - cy) * d / fy,
            d,
        ], axis=-1).reshape(-1, 3)

        assert len(cloud) == 12 * 16
        np.testing.assert_allclose(cloud.positions, expected, atol=1e-5)
        assert not cloud.has_normals

    def test_end_to_end_scenario(self, flat_frame, e2e_config):
        """4x4 frame at depth 2 gives 16 points at z=2 colored far * depth fraction."""
        cloud = SerialBackend().generate(
            flat_frame,
            DepthSampler.from_config(e2e_config),
            PointReprojector.from_config(e2e_config),
        )

        assert len(cloud) == 16
        np.testing.assert_allclose(cloud.positions[:, 2], 2.0)

        fraction = (2.0 - 0.1) / (10.0 - 0.1)
        expected_color = np.array(e2e_config.far_color) * fraction
        np.testing.assert_allclose(cloud.colors, np.tile(expected_color, (16, 1)), atol=1e-6)

        # Pixel (u=0, v=0) -> x = (0 - 2) * 2 / 4 = -1
        np.testing.assert_allclose(cloud.positions[0], [-1.0, -1.0, 2.0])

    def test_pose_rotates_then_translates(self, flat_frame):
        """World points are R @ camera_point + position."""
        pose = CameraPose(
            position=[1.0, 2.0, 3.0],
            orientation=[0.0, np.sin(np.pi / 4), 0.0, np.cos(np.pi / 4)]
        )
        frame = make_frame(np.full((4, 4), 2.0), pose=pose)
        reprojector = PointReprojector(min_depth=0.1, max_depth=10.0)
        samples = DepthSampler(stride=1, min_depth=0.1, max_depth=10.0).sample(frame)

        world = reprojector.reproject(samples, frame).positions
        camera = reprojector.reproject(samples, flat_frame).positions
        expected = camera @ pose.rotation_matrix.T + pose.position

        np.testing.assert_allclose(world, expected, atol=1e-5)

    def test_gradient_endpoints_and_clamping(self):
        """min_depth maps to near, max_depth to far, beyond is clamped."""
        reprojector = PointReprojector(
            min_depth=1.0, max_depth=3.0,
            near_color=(1.0, 0.0, 0.0), far_color=(0.0, 0.0, 1.0)
        )
        colors = reprojector.depth_colors(np.array([1.0, 2.0, 3.0, 0.5, 9.0]))

        np.testing.assert_allclose(colors[0], [1.0, 0.0, 0.0, 1.0])
        np.testing.assert_allclose(colors[1], [0.5, 0.0, 0.5, 1.0])
        np.testing.assert_allclose(colors[2], [0.0, 0.0, 1.0, 1.0])
        np.testing.assert_allclose(colors[3], colors[0])
        np.testing.assert_allclose(colors[4], colors[2])

    def test_missing_pose_fails_closed(self, flat_frame):
        """Without a pose no points are produced."""
        frame = make_frame(np.full((4, 4), 2.0), pose=None)
        reprojector = PointReprojector(min_depth=0.1, max_depth=10.0)
        samples = DepthSampler(stride=1, min_depth=0.1, max_depth=10.0).sample(frame)

        with pytest.raises(MissingCameraPoseError):
            reprojector.reproject(samples, frame)
        assert reprojector.reproject_or_empty(samples, frame).is_empty

    def test_invalid_gradient_range_rejected(self):
        with pytest.raises(ValueError):
            PointReprojector(min_depth=2.0, max_depth=1.0)
