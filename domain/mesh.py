"""Triangle mesh data model."""
from dataclasses import dataclass
from typing import Optional, List, Dict

import numpy as np

from domain.depth_frame import CameraPose


@dataclass
class MeshStatistics:
    """Element counts of a mesh, as reported to exporters."""
    vertex_count: int
    triangle_count: int
    normal_count: int
    color_count: int

    @property
    def has_normals(self) -> bool:
        return self.normal_count > 0

    @property
    def has_colors(self) -> bool:
        return self.color_count > 0

    def to_dict(self) -> Dict[str, int]:
        return {
            'vertex_count': self.vertex_count,
            'triangle_count': self.triangle_count,
            'normal_count': self.normal_count,
            'color_count': self.color_count,
        }


@dataclass(frozen=True)
class Mesh:
    """
    Terminal render/export artifact.

    `triangles` is a flat index list whose length is a multiple of 3; every
    index addresses a vertex. Normals and colors are per vertex and either
    empty or as long as `vertices`. The core never caches meshes; lifetime
    belongs to whoever receives it.

    Attributes:
        vertices: Vertex positions [V, 3]
        triangles: Flat vertex indices [3T]
        normals: Per-vertex normals [V, 3] or empty
        colors: Per-vertex RGBA colors [V, 4] or empty
    """
    vertices: np.ndarray
    triangles: np.ndarray
    normals: Optional[np.ndarray] = None
    colors: Optional[np.ndarray] = None

    def __post_init__(self):
        vertices = np.asarray(self.vertices, dtype=np.float32).reshape(-1, 3)
        triangles = np.asarray(self.triangles, dtype=np.int64).reshape(-1)
        normals = np.zeros((0, 3), dtype=np.float32) if self.normals is None \
            else np.asarray(self.normals, dtype=np.float32).reshape(-1, 3)
        colors = np.zeros((0, 4), dtype=np.float32) if self.colors is None \
            else np.asarray(self.colors, dtype=np.float32).reshape(-1, 4)

        object.__setattr__(self, "vertices", vertices)
        object.__setattr__(self, "triangles", triangles)
        object.__setattr__(self, "normals", normals)
        object.__setattr__(self, "colors", colors)
        self.validate()

    @classmethod
    def empty(cls) -> "Mesh":
        return cls(vertices=np.zeros((0, 3)), triangles=np.zeros(0, dtype=np.int64))

    def validate(self):
        """Raise ValueError if the index or attribute invariants do not hold."""
        vertex_count = len(self.vertices)
        if len(self.triangles) % 3 != 0:
            raise ValueError(f"Triangle index count {len(self.triangles)} is not a multiple of 3")
        if len(self.triangles) > 0:
            if self.triangles.min() < 0 or self.triangles.max() >= vertex_count:
                raise ValueError(f"Triangle indices out of range [0, {vertex_count})")
        if len(self.normals) not in (0, vertex_count):
            raise ValueError(f"normals length {len(self.normals)} does not match vertex count {vertex_count}")
        if len(self.colors) not in (0, vertex_count):
            raise ValueError(f"colors length {len(self.colors)} does not match vertex count {vertex_count}")

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    @property
    def triangle_count(self) -> int:
        return len(self.triangles) // 3

    @property
    def is_empty(self) -> bool:
        return self.vertex_count == 0

    @property
    def faces(self) -> np.ndarray:
        """Triangle indices reshaped to [T, 3]."""
        return self.triangles.reshape(-1, 3)

    def statistics(self) -> MeshStatistics:
        return MeshStatistics(
            vertex_count=self.vertex_count,
            triangle_count=self.triangle_count,
            normal_count=len(self.normals),
            color_count=len(self.colors),
        )

    def transformed(self, pose: CameraPose) -> "Mesh":
        """Move vertices into the pose's frame; normals are rotated and renormalized."""
        normals = None
        if len(self.normals) > 0:
            rotated = pose.transform_directions(self.normals)
            lengths = np.linalg.norm(rotated, axis=1, keepdims=True)
            normals = np.divide(rotated, lengths, out=np.zeros_like(rotated), where=lengths > 0)
        return Mesh(
            vertices=pose.transform_points(self.vertices),
            triangles=self.triangles.copy(),
            normals=normals,
            colors=self.colors.copy() if len(self.colors) > 0 else None,
        )

    @staticmethod
    def merge(meshes: List["Mesh"]) -> "Mesh":
        """Concatenate meshes, offsetting each mesh's indices by the vertices before it."""
        meshes = [m for m in meshes if not m.is_empty]
        if not meshes:
            return Mesh.empty()

        keep_normals = all(len(m.normals) > 0 for m in meshes)
        keep_colors = all(len(m.colors) > 0 for m in meshes)

        triangles = []
        offset = 0
        for mesh in meshes:
            triangles.append(mesh.triangles + offset)
            offset += mesh.vertex_count

        return Mesh(
            vertices=np.vstack([m.vertices for m in meshes]),
            triangles=np.concatenate(triangles),
            normals=np.vstack([m.normals for m in meshes]) if keep_normals else None,
            colors=np.vstack([m.colors for m in meshes]) if keep_colors else None,
        )
