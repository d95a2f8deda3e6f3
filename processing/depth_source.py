"""Depth input collaborators: the single typed seam to the sensor runtime."""
from abc import ABC, abstractmethod
from typing import Optional, Iterable, List
import threading
import time

import numpy as np

from domain.depth_frame import CameraIntrinsics, CameraPose, DepthFrame


class DepthSource(ABC):
    """
    Supplies depth frames from the sensor/XR runtime.

    The orchestrator checks `is_depth_available()` before every capture;
    False just means no capture this tick.
    """

    @abstractmethod
    def is_depth_available(self) -> bool:
        """Whether the runtime currently has depth data."""

    @abstractmethod
    def acquire_frame(self) -> Optional[DepthFrame]:
        """Latest depth frame, or None if the runtime has none right now."""


class StaticDepthSource(DepthSource):
    """
    Serves a fixed sequence of frames, repeating the last one.

    Each acquired frame is re-stamped with a fresh frame index and
    timestamp, so repeated captures look like new sensor ticks. Used by tests
    and the demo script.
    """

    def __init__(self, frames: Iterable[DepthFrame], available: bool = True):
        self._frames: List[DepthFrame] = list(frames)
        self._position = 0
        self._next_index = 0
        self._lock = threading.Lock()
        self.available = available

    def is_depth_available(self) -> bool:
        return self.available and len(self._frames) > 0

    def acquire_frame(self) -> Optional[DepthFrame]:
        with self._lock:
            if not self._frames:
                return None
            template = self._frames[min(self._position, len(self._frames) - 1)]
            self._position += 1
            frame = DepthFrame(
                depth=template.depth,
                intrinsics=template.intrinsics,
                pose=template.pose,
                frame_index=self._next_index,
                timestamp=time.time(),
            )
            self._next_index += 1
            return frame


def create_synthetic_frame(
    width: int = 64,
    height: int = 48,
    fov_y_degrees: float = 60.0,
    wall_depth: float = 3.0,
    sphere_center: tuple = (0.0, 0.0, 2.0),
    sphere_radius: float = 0.5,
    pose: Optional[CameraPose] = None,
    invalid_fraction: float = 0.0,
    seed: int = 0
) -> DepthFrame:
    """
    Depth frame of a sphere in front of a flat wall.

    Depth is the z (forward) distance of each pixel's ray hit. A fraction of
    pixels can be knocked out (set to NaN) to mimic sensor dropouts.

    Args:
        width, height: Frame size in pixels
        fov_y_degrees: Vertical field of view
        wall_depth: Distance of the wall plane
        sphere_center: Sphere center in camera space
        sphere_radius: Sphere radius
        pose: Camera pose (identity if omitted)
        invalid_fraction: Fraction of pixels set to NaN
        seed: Random seed for the dropout pattern

    Returns:
        DepthFrame
    """
    intrinsics = CameraIntrinsics.from_fov(width, height, fov_y_degrees)
    v_coords, u_coords = np.mgrid[0:height, 0:width].astype(np.float64)

    # Unit-z ray directions through each pixel
    rays = np.stack([
        (u_coords - intrinsics.cx) / intrinsics.fx,
        (v_coords - intrinsics.cy) / intrinsics.fy,
        np.ones_like(u_coords),
    ], axis=-1)

    depth = np.full((height, width), wall_depth, dtype=np.float64)

    # Ray/sphere intersection: |t*r - c|^2 = R^2
    center = np.asarray(sphere_center, dtype=np.float64)
    a = np.sum(rays * rays, axis=-1)
    b = -2.0 * rays @ center
    c = center @ center - sphere_radius ** 2
    discriminant = b * b - 4 * a * c
    hit = discriminant >= 0
    t_hit = (-b[hit] - np.sqrt(discriminant[hit])) / (2 * a[hit])
    depth[hit] = np.minimum(depth[hit], t_hit)

    if invalid_fraction > 0:
        rng = np.random.default_rng(seed)
        depth[rng.random(depth.shape) < invalid_fraction] = np.nan

    return DepthFrame(
        depth=depth,
        intrinsics=intrinsics,
        pose=pose or CameraPose.identity(),
    )
