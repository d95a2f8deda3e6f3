"""Per-frame depth-to-point-cloud pipeline orchestrator."""
from typing import Callable, List, Optional
import threading
import logging

from domain.depth_frame import DepthFrame
from domain.errors import MissingCameraPoseError, NoDepthDataError, ParallelDispatchFailure
from domain.pipeline_config import PipelineConfig
from domain.pipeline_state import PipelineState, PublishedResult
from domain.point_cloud import PointCloud
from processing.depth_sampler import DepthSampler
from processing.depth_source import DepthSource
from processing.point_cloud_processor import PointCloudProcessor
from processing.point_reprojector import PointReprojector
from processing.reprojection_backends import ReprojectionBackend, SerialBackend, ThreadPoolBackend
from processing.surface_reconstructor import SurfaceReconstructor

logger = logging.getLogger(__name__)

Consumer = Callable[[PublishedResult], None]


class PipelineOrchestrator:
    """
    Runs depth capture -> reprojection -> processing -> publish passes.

    Features:
    - At most one pass in flight; triggers arriving while busy are dropped
    - Parallel execution path with silent fallback to the serial path
    - Synchronous publish to all subscribers, isolated per subscriber
    - Atomically replaced "latest result" snapshot, never older than a
      previously published one
    - Optional periodic capture thread

    A pass that cannot get a depth frame or a camera pose ends early and
    leaves the previously published result in place.
    """

    def __init__(
        self,
        source: DepthSource,
        config: Optional[PipelineConfig] = None,
        parallel_backend: Optional[ReprojectionBackend] = None,
        serial_backend: Optional[ReprojectionBackend] = None
    ):
        """
        Initialize pipeline orchestrator.

        Args:
            source: Depth input collaborator
            config: Pipeline settings (defaults from config.py)
            parallel_backend: Parallel execution path (thread pool if omitted)
            serial_backend: Serial execution path (SerialBackend if omitted)
        """
        self.source = source
        self.config = config or PipelineConfig()

        self.sampler = DepthSampler.from_config(self.config)
        self.reprojector = PointReprojector.from_config(self.config)
        self.processor = PointCloudProcessor.from_config(self.config)
        self.reconstructor = SurfaceReconstructor(
            splat_size=self.config.splat_size,
            processor=self.processor,
        )

        self.serial_backend = serial_backend or SerialBackend()
        self.parallel_backend = parallel_backend
        if self.parallel_backend is None and self.config.use_parallel:
            self.parallel_backend = ThreadPoolBackend(workers=self.config.dispatch_workers)

        self._consumers: List[Consumer] = []
        self._consumers_lock = threading.Lock()

        # Guards state transitions and the published snapshot
        self._state_lock = threading.Lock()
        self._state = PipelineState.IDLE
        self._latest: Optional[PublishedResult] = None
        self._sequence = 0

        # Periodic capture
        self._capture_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

        self.dropped_triggers = 0

    # ========================================================================
    # STATE
    # ========================================================================

    @property
    def state(self) -> PipelineState:
        with self._state_lock:
            return self._state

    @property
    def latest(self) -> Optional[PublishedResult]:
        """Most recent published snapshot, or None before the first publish."""
        with self._state_lock:
            return self._latest

    def _set_state(self, state: PipelineState):
        with self._state_lock:
            self._state = state
        logger.debug(f"Pipeline state -> {state}")

    @property
    def _needs_processing(self) -> bool:
        config = self.config
        return (
            config.distance_cutoff > 0
            or config.downsample_stride > 1
            or config.enable_processing
            or config.enable_reconstruction
        )

    def _try_begin_pass(self) -> bool:
        with self._state_lock:
            if self._state.is_busy:
                self.dropped_triggers += 1
                return False
            self._state = PipelineState.CAPTURING
            return True

    # ========================================================================
    # SUBSCRIBERS
    # ========================================================================

    def subscribe(self, consumer: Consumer):
        """Register a callable that receives every PublishedResult."""
        with self._consumers_lock:
            if consumer not in self._consumers:
                self._consumers.append(consumer)

    def unsubscribe(self, consumer: Consumer):
        with self._consumers_lock:
            if consumer in self._consumers:
                self._consumers.remove(consumer)

    # ========================================================================
    # PIPELINE PASS
    # ========================================================================

    def trigger(self) -> Optional[PublishedResult]:
        """
        Run one pipeline pass now.

        Returns:
            The published result, or None if the trigger was dropped (busy),
            no depth was available, or the pass ended early
        """
        if not self._try_begin_pass():
            logger.debug("Trigger dropped: a pass is already in flight")
            return None

        try:
            return self._run_pass()
        finally:
            self._set_state(PipelineState.IDLE)

    def _run_pass(self) -> Optional[PublishedResult]:
        # CAPTURING
        try:
            if not self.source.is_depth_available():
                logger.debug("Depth not available; no capture this tick")
                return None
            frame = self.source.acquire_frame()
        except Exception:
            logger.exception("Depth source failed; no capture this tick")
            return None

        # REPROJECTING
        self._set_state(PipelineState.REPROJECTING)
        try:
            cloud, path = self.generate_points(frame)
        except NoDepthDataError as e:
            logger.warning(f"Skipping pass: {e}")
            return None
        except MissingCameraPoseError as e:
            logger.warning(f"Skipping pass: {e}; keeping previously published cloud")
            return None

        # PROCESSING
        mesh = None
        if self._needs_processing:
            self._set_state(PipelineState.PROCESSING)
            cloud = self.process(cloud, frame)
            if self.config.enable_reconstruction:
                mesh = self.reconstructor.reconstruct(cloud, viewpoint=frame.pose.position)

        # PUBLISHED
        result = PublishedResult(
            sequence=0,
            frame_index=frame.frame_index,
            timestamp=frame.timestamp,
            cloud=cloud.read_only(),
            mesh=mesh,
            execution_path=path,
        )
        return self._publish(result)

    def generate_points(self, frame: Optional[DepthFrame]):
        """
        Sample and reproject a frame on the preferred execution path.

        Falls back to the serial path if the parallel path is unavailable or
        fails; the failure is only logged.

        Returns:
            Tuple of (PointCloud, ExecutionPath)

        Raises:
            NoDepthDataError: frame is missing or empty
            MissingCameraPoseError: frame has no pose
        """
        backend = self.parallel_backend
        if backend is not None and backend.is_available:
            try:
                cloud = backend.generate(frame, self.sampler, self.reprojector)
                return cloud, backend.execution_path
            except ParallelDispatchFailure as e:
                logger.warning(f"{e}; falling back to serial path")
        elif self.config.use_parallel:
            logger.info("Parallel path unavailable; using serial path")

        cloud = self.serial_backend.generate(frame, self.sampler, self.reprojector)
        return cloud, self.serial_backend.execution_path

    def process(self, cloud: PointCloud, frame: DepthFrame) -> PointCloud:
        """
        Optional post-processing of a freshly reprojected cloud.

        Order: distance cutoff around the camera, downsample, outlier removal,
        normal estimation (normals face the camera).
        """
        camera_position = frame.pose.position
        input_count = len(cloud)

        if self.config.distance_cutoff > 0:
            cloud = self.processor.filter_by_distance(
                cloud, camera_position, 0.0, self.config.distance_cutoff
            )

        if self.config.downsample_stride > 1:
            cloud = self.processor.downsample(cloud, self.config.downsample_stride)

        if self.config.enable_processing:
            cloud = self.processor.remove_statistical_outliers(cloud)
            cloud = self.processor.estimate_normals(cloud, viewpoint=camera_position)

        logger.debug(f"Processing: {input_count} -> {len(cloud)} points")
        return cloud

    def _publish(self, result: PublishedResult) -> Optional[PublishedResult]:
        with self._state_lock:
            # Never publish an older frame after a newer one
            if self._latest is not None and result.frame_index < self._latest.frame_index:
                logger.warning(
                    f"Discarding frame {result.frame_index}: newer frame "
                    f"{self._latest.frame_index} already published"
                )
                return None
            self._sequence += 1
            result = PublishedResult(
                sequence=self._sequence,
                frame_index=result.frame_index,
                timestamp=result.timestamp,
                cloud=result.cloud,
                mesh=result.mesh,
                execution_path=result.execution_path,
            )
            self._latest = result
            self._state = PipelineState.PUBLISHED

        logger.info(
            f"Published #{result.sequence}: frame {result.frame_index}, "
            f"{result.point_count} points ({result.execution_path} path)"
        )

        with self._consumers_lock:
            consumers = list(self._consumers)
        for consumer in consumers:
            try:
                consumer(result)
            except Exception:
                logger.exception(f"Consumer {consumer!r} failed on publish #{result.sequence}")

        return result

    # ========================================================================
    # PERIODIC CAPTURE
    # ========================================================================

    @property
    def is_running(self) -> bool:
        return self._capture_thread is not None and self._capture_thread.is_alive()

    def start(self):
        """Trigger a pass every `capture_interval` seconds on a daemon thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._capture_thread = threading.Thread(
            target=self._capture_loop,
            name="depth-capture",
            daemon=True
        )
        self._capture_thread.start()
        logger.info(f"Periodic capture started (every {self.config.capture_interval}s)")

    def stop(self, timeout: float = 5.0):
        """Stop periodic capture; an in-flight pass runs to completion first."""
        if self._capture_thread is None:
            return

        self._stop_event.set()
        self._capture_thread.join(timeout=timeout)
        self._capture_thread = None
        logger.info("Periodic capture stopped")

    def close(self):
        """Stop capturing and release backend workers."""
        self.stop()
        if self.parallel_backend is not None:
            self.parallel_backend.close()
        self.serial_backend.close()

    def _capture_loop(self):
        while not self._stop_event.is_set():
            try:
                self.trigger()
            except Exception:
                # Keep capturing after a failed pass
                logger.exception("Pipeline pass failed")
            self._stop_event.wait(self.config.capture_interval)
