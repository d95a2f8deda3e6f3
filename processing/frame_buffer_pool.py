"""Reusable per-frame scratch buffers for the parallel reprojection path."""
from dataclasses import dataclass
from typing import Optional
import threading
import logging

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class FrameBuffers:
    """Dense lattice-sized scratch arrays; only the first `size` rows are meaningful."""
    positions: np.ndarray
    colors: np.ndarray
    valid: np.ndarray
    size: int

    @property
    def capacity(self) -> int:
        return len(self.valid)


class FrameBufferPool:
    """
    Holds one set of scratch buffers and hands it out per frame.

    Buffers are reallocated only when a frame needs more capacity than the
    current set; otherwise the same arrays are reused. Only one pass holds
    the buffers at a time.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._buffers: Optional[FrameBuffers] = None
        self._owner: Optional[int] = None
        self.allocations = 0

    def acquire(self, size: int, frame_index: int) -> FrameBuffers:
        """
        Get buffers with room for `size` lattice samples.

        Raises:
            RuntimeError: buffers are still held by another frame
        """
        with self._lock:
            if self._owner is not None:
                raise RuntimeError(
                    f"Frame buffers still held by frame {self._owner} (requested by {frame_index})"
                )

            if self._buffers is None or self._buffers.capacity < size:
                self._buffers = FrameBuffers(
                    positions=np.empty((size, 3), dtype=np.float64),
                    colors=np.empty((size, 4), dtype=np.float64),
                    valid=np.zeros(size, dtype=bool),
                    size=size,
                )
                self.allocations += 1
                logger.debug(f"Allocated frame buffers for {size} samples")
            else:
                self._buffers.size = size
                self._buffers.valid[:] = False

            self._owner = frame_index
            return self._buffers

    def release(self, frame_index: int):
        with self._lock:
            if self._owner == frame_index:
                self._owner = None
