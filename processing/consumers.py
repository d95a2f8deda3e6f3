"""Output collaborators that receive published results."""
from typing import Optional, List
import threading
import logging

import numpy as np

from domain.pipeline_state import PublishedResult

logger = logging.getLogger(__name__)


class LatestResultCache:
    """
    Keeps the most recent published result.

    Callable, so it can be subscribed directly to the orchestrator.
    """

    def __init__(self, history: int = 0):
        """
        Args:
            history: How many earlier results to retain as well (0 = latest only)
        """
        self._lock = threading.Lock()
        self._latest: Optional[PublishedResult] = None
        self._history: List[PublishedResult] = []
        self.history_size = history
        self.received = 0

    def __call__(self, result: PublishedResult):
        with self._lock:
            self._latest = result
            self.received += 1
            if self.history_size > 0:
                self._history.append(result)
                del self._history[:-self.history_size]

    @property
    def latest(self) -> Optional[PublishedResult]:
        with self._lock:
            return self._latest

    @property
    def history(self) -> List[PublishedResult]:
        with self._lock:
            return list(self._history)


class Open3DViewerConsumer:
    """
    Renders each published cloud (and splat mesh, if present) with Open3D.

    Requires the optional `open3d` dependency; it is imported when the
    consumer is created.
    """

    def __init__(self, window_name: str = "Depth Point Cloud", show_mesh: bool = True):
        import open3d as o3d
        self.o3d = o3d
        self.window_name = window_name
        self.show_mesh = show_mesh

    def to_point_cloud(self, result: PublishedResult):
        """Open3D PointCloud geometry from a published result."""
        positions, colors, normals = result.as_arrays()

        pcd = self.o3d.geometry.PointCloud()
        pcd.points = self.o3d.utility.Vector3dVector(positions.astype(np.float64))
        if len(colors) > 0:
            pcd.colors = self.o3d.utility.Vector3dVector(colors[:, :3].astype(np.float64))
        if len(normals) > 0:
            pcd.normals = self.o3d.utility.Vector3dVector(normals.astype(np.float64))
        return pcd

    def to_triangle_mesh(self, result: PublishedResult):
        """Open3D TriangleMesh from the published splat mesh, or None."""
        mesh = result.mesh
        if mesh is None or mesh.is_empty:
            return None

        o3d_mesh = self.o3d.geometry.TriangleMesh()
        o3d_mesh.vertices = self.o3d.utility.Vector3dVector(mesh.vertices.astype(np.float64))
        o3d_mesh.triangles = self.o3d.utility.Vector3iVector(mesh.faces.astype(np.int32))
        if len(mesh.normals) > 0:
            o3d_mesh.vertex_normals = self.o3d.utility.Vector3dVector(mesh.normals.astype(np.float64))
        if len(mesh.colors) > 0:
            o3d_mesh.vertex_colors = self.o3d.utility.Vector3dVector(mesh.colors[:, :3].astype(np.float64))
        return o3d_mesh

    def __call__(self, result: PublishedResult):
        geometries = []
        mesh = self.to_triangle_mesh(result) if self.show_mesh else None
        if mesh is not None:
            geometries.append(mesh)
        else:
            geometries.append(self.to_point_cloud(result))

        logger.info(f"Rendering publish #{result.sequence} ({result.point_count} points)")
        self.o3d.visualization.draw_geometries(
            geometries,
            window_name=self.window_name,
            width=1280,
            height=720,
            point_show_normal=False
        )
