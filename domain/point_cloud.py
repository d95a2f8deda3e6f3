"""Point cloud and bounds data models."""
from dataclasses import dataclass
from typing import Optional, Tuple, List

import numpy as np


def _as_attribute(values: Optional[np.ndarray], width: int, name: str) -> np.ndarray:
    """Normalize an optional per-point attribute to a float array [N, width]."""
    if values is None:
        return np.zeros((0, width), dtype=np.float32)
    array = np.asarray(values, dtype=np.float32)
    if array.size == 0:
        return np.zeros((0, width), dtype=np.float32)
    if array.ndim != 2 or array.shape[1] != width:
        raise ValueError(f"{name} must have shape [N, {width}], got {array.shape}")
    return array


@dataclass(frozen=True)
class Bounds:
    """
    Axis-aligned box described by its center and half-extent.

    Derived from a point cloud on demand, never stored.
    """
    center: np.ndarray
    half_extent: np.ndarray

    @classmethod
    def empty(cls) -> "Bounds":
        """Zero-sized box at the origin."""
        return cls(center=np.zeros(3), half_extent=np.zeros(3))

    @classmethod
    def from_min_max(cls, min_bounds: np.ndarray, max_bounds: np.ndarray) -> "Bounds":
        min_bounds = np.asarray(min_bounds, dtype=np.float64)
        max_bounds = np.asarray(max_bounds, dtype=np.float64)
        return cls(center=(min_bounds + max_bounds) / 2.0, half_extent=(max_bounds - min_bounds) / 2.0)

    @property
    def min_bounds(self) -> np.ndarray:
        return self.center - self.half_extent

    @property
    def max_bounds(self) -> np.ndarray:
        return self.center + self.half_extent

    @property
    def dimensions(self) -> np.ndarray:
        return self.half_extent * 2.0

    def contains(self, points: np.ndarray) -> np.ndarray:
        """Boolean mask of the points [N, 3] lying inside the box (inclusive)."""
        points = np.asarray(points).reshape(-1, 3)
        return np.all((points >= self.min_bounds) & (points <= self.max_bounds), axis=1)


@dataclass(frozen=True)
class PointCloud:
    """
    Index-aligned positions, colors and normals.

    Colors (RGBA, 0-1) and normals are either empty or exactly as long as
    positions. Every processing operation returns a new PointCloud; the
    instance itself is never mutated.

    Attributes:
        positions: World-space positions [N, 3]
        colors: RGBA colors [N, 4] or empty
        normals: Unit normals [N, 3] or empty (zero rows mean "undefined")
    """
    positions: np.ndarray
    colors: Optional[np.ndarray] = None
    normals: Optional[np.ndarray] = None

    def __post_init__(self):
        positions = np.asarray(self.positions, dtype=np.float32)
        if positions.size == 0:
            positions = np.zeros((0, 3), dtype=np.float32)
        if positions.ndim != 2 or positions.shape[1] != 3:
            raise ValueError(f"positions must have shape [N, 3], got {positions.shape}")

        # RGB input gets an opaque alpha channel
        if self._is_rgb(self.colors):
            colors = self._rgb_to_rgba(self.colors)
        else:
            colors = _as_attribute(self.colors, 4, "colors")
        normals = _as_attribute(self.normals, 3, "normals")

        count = len(positions)
        if len(colors) not in (0, count):
            raise ValueError(f"colors length {len(colors)} does not match point count {count}")
        if len(normals) not in (0, count):
            raise ValueError(f"normals length {len(normals)} does not match point count {count}")

        object.__setattr__(self, "positions", positions)
        object.__setattr__(self, "colors", colors)
        object.__setattr__(self, "normals", normals)

    @staticmethod
    def _is_rgb(colors) -> bool:
        if colors is None:
            return False
        array = np.asarray(colors)
        return array.ndim == 2 and array.shape[1] == 3 and array.shape[0] > 0

    @staticmethod
    def _rgb_to_rgba(colors) -> np.ndarray:
        rgb = np.asarray(colors, dtype=np.float32)
        alpha = np.ones((len(rgb), 1), dtype=np.float32)
        return np.hstack([rgb, alpha])

    @classmethod
    def empty(cls) -> "PointCloud":
        return cls(positions=np.zeros((0, 3), dtype=np.float32))

    def __len__(self) -> int:
        return len(self.positions)

    @property
    def is_empty(self) -> bool:
        return len(self.positions) == 0

    @property
    def has_colors(self) -> bool:
        return len(self.colors) > 0

    @property
    def has_normals(self) -> bool:
        return len(self.normals) > 0

    def select(self, indices: np.ndarray) -> "PointCloud":
        """
        New cloud holding the points at `indices` (integer indices or boolean mask).

        Colors and normals follow in lockstep.
        """
        return PointCloud(
            positions=self.positions[indices],
            colors=self.colors[indices] if self.has_colors else None,
            normals=self.normals[indices] if self.has_normals else None,
        )

    def with_normals(self, normals: np.ndarray) -> "PointCloud":
        return PointCloud(positions=self.positions, colors=self.colors, normals=normals)

    def with_colors(self, colors: np.ndarray) -> "PointCloud":
        return PointCloud(positions=self.positions, colors=colors, normals=self.normals)

    def copy(self) -> "PointCloud":
        return PointCloud(
            positions=self.positions.copy(),
            colors=self.colors.copy(),
            normals=self.normals.copy(),
        )

    def read_only(self) -> "PointCloud":
        """Copy whose arrays cannot be written to, for publishing to consumers."""
        snapshot = self.copy()
        for array in (snapshot.positions, snapshot.colors, snapshot.normals):
            array.flags.writeable = False
        return snapshot

    def as_arrays(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """(positions, colors, normals) tuple handed to exporters and senders."""
        return self.positions, self.colors, self.normals

    def equals(self, other: "PointCloud") -> bool:
        """Exact element-wise equality of all three arrays."""
        return (
            np.array_equal(self.positions, other.positions)
            and np.array_equal(self.colors, other.colors)
            and np.array_equal(self.normals, other.normals)
        )

    @staticmethod
    def concatenate(clouds: List["PointCloud"]) -> "PointCloud":
        """
        Concatenate clouds in order.

        An attribute survives only if every cloud carries it.
        """
        if not clouds:
            return PointCloud.empty()
        keep_colors = all(c.has_colors or c.is_empty for c in clouds) and any(c.has_colors for c in clouds)
        keep_normals = all(c.has_normals or c.is_empty for c in clouds) and any(c.has_normals for c in clouds)
        return PointCloud(
            positions=np.vstack([c.positions for c in clouds]),
            colors=np.vstack([c.colors for c in clouds]) if keep_colors else None,
            normals=np.vstack([c.normals for c in clouds]) if keep_normals else None,
        )
