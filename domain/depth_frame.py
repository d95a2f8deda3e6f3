"""Depth frame, camera intrinsics and camera pose data models."""
from dataclasses import dataclass, field
from typing import Optional, Sequence
import math

import numpy as np
from scipy.spatial.transform import Rotation


@dataclass(frozen=True)
class CameraIntrinsics:
    """
    Pinhole projection parameters of the depth sensor.

    Attributes:
        fx, fy: Focal lengths in pixels
        cx, cy: Principal point in pixels
        near, far: Clip planes of the sensor (meters)
    """
    fx: float
    fy: float
    cx: float
    cy: float
    near: float = 0.1
    far: float = 10.0

    def __post_init__(self):
        if self.fx == 0 or self.fy == 0:
            raise ValueError(f"Focal lengths must be non-zero (fx={self.fx}, fy={self.fy})")

    @property
    def matrix(self) -> np.ndarray:
        """3x3 camera matrix K."""
        return np.array([
            [self.fx, 0.0, self.cx],
            [0.0, self.fy, self.cy],
            [0.0, 0.0, 1.0],
        ])

    @classmethod
    def from_fov(
        cls,
        width: int,
        height: int,
        fov_y_degrees: float,
        near: float = 0.1,
        far: float = 10.0
    ) -> "CameraIntrinsics":
        """Build symmetric intrinsics from a vertical field of view."""
        fy = (height / 2.0) / math.tan(math.radians(fov_y_degrees) / 2.0)
        return cls(fx=fy, fy=fy, cx=width / 2.0, cy=height / 2.0, near=near, far=far)


@dataclass(frozen=True)
class CameraPose:
    """
    Camera-to-world transform for one frame.

    Attributes:
        position: World position of the camera (3,)
        orientation: Unit quaternion (x, y, z, w), scipy convention
    """
    position: np.ndarray
    orientation: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0, 0.0, 1.0]))

    def __post_init__(self):
        position = np.asarray(self.position, dtype=np.float64).reshape(3)
        orientation = np.asarray(self.orientation, dtype=np.float64).reshape(4)
        norm = np.linalg.norm(orientation)
        if norm == 0 or not np.isfinite(norm):
            raise ValueError("Orientation quaternion must be finite and non-zero")
        object.__setattr__(self, "position", position)
        object.__setattr__(self, "orientation", orientation / norm)

    @classmethod
    def identity(cls) -> "CameraPose":
        return cls(position=np.zeros(3))

    @classmethod
    def from_matrix(cls, matrix: np.ndarray) -> "CameraPose":
        """Create a pose from a 4x4 camera-to-world matrix."""
        matrix = np.asarray(matrix, dtype=np.float64)
        if matrix.shape != (4, 4):
            raise ValueError(f"Expected a 4x4 matrix, got shape {matrix.shape}")
        rotation = Rotation.from_matrix(matrix[:3, :3])
        return cls(position=matrix[:3, 3].copy(), orientation=rotation.as_quat())

    @property
    def rotation(self) -> Rotation:
        return Rotation.from_quat(self.orientation)

    @property
    def rotation_matrix(self) -> np.ndarray:
        """3x3 rotation matrix."""
        return self.rotation.as_matrix()

    def to_matrix(self) -> np.ndarray:
        """4x4 camera-to-world matrix."""
        matrix = np.eye(4)
        matrix[:3, :3] = self.rotation_matrix
        matrix[:3, 3] = self.position
        return matrix

    def transform_points(self, points: np.ndarray) -> np.ndarray:
        """Rotate then translate points [N, 3] into world space."""
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        return points @ self.rotation_matrix.T + self.position

    def transform_directions(self, directions: np.ndarray) -> np.ndarray:
        """Rotate directions [N, 3] (normals) without translating."""
        directions = np.asarray(directions, dtype=np.float64).reshape(-1, 3)
        return directions @ self.rotation_matrix.T


@dataclass(frozen=True)
class DepthFrame:
    """
    One capture from the environment depth sensor.

    Each element of `depth` is a metric distance along the sensor's view ray,
    or an invalid marker (NaN, inf, zero or negative). Immutable once
    captured and discarded after one pipeline pass.

    Attributes:
        depth: Depth grid [H, W] in meters
        intrinsics: Projection parameters for this frame
        pose: Camera-to-world pose, None when the runtime has no eye transform
        frame_index: Monotonic capture counter
        timestamp: Capture time in seconds
    """
    depth: np.ndarray
    intrinsics: CameraIntrinsics
    pose: Optional[CameraPose] = None
    frame_index: int = 0
    timestamp: float = 0.0

    def __post_init__(self):
        depth = np.array(self.depth, dtype=np.float32)
        if depth.ndim != 2:
            raise ValueError(f"Depth grid must be 2D, got {depth.ndim} dimensions")
        depth.flags.writeable = False
        object.__setattr__(self, "depth", depth)

    @property
    def width(self) -> int:
        return self.depth.shape[1]

    @property
    def height(self) -> int:
        return self.depth.shape[0]

    @property
    def shape(self) -> Sequence[int]:
        return self.depth.shape

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0
