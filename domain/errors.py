"""Error taxonomy for the depth-to-point-cloud pipeline.

None of these are fatal: the worst outcome of any of them is that no new
cloud is published for the current tick.
"""


class PointCloudPipelineError(Exception):
    """Base class for recoverable pipeline errors."""


class NoDepthDataError(PointCloudPipelineError):
    """No depth frame to sample, or the frame has zero width/height. Skip this tick."""


class MissingCameraPoseError(PointCloudPipelineError):
    """
    The frame carries no camera pose.

    Reprojection fails closed: no world-space points are produced and the
    previously published cloud stays in place.
    """


class ParallelDispatchFailure(PointCloudPipelineError):
    """The parallel execution path could not complete. Triggers serial fallback."""


class InsufficientNeighborsWarning(UserWarning):
    """
    Some points had fewer than 3 neighbors during normal estimation.

    Those points receive a zero-length normal ("undefined"). Emitted once per
    call with the number of affected points.
    """

    def __init__(self, count: int, total: int):
        self.count = count
        self.total = total
        super().__init__(
            f"{count} of {total} points had fewer than 3 neighbors; "
            f"their normals are undefined (zero length)"
        )
