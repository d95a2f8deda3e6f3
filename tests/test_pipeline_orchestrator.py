"""Tests for the pipeline orchestrator."""

import logging
import threading
import time

import numpy as np
import pytest

from conftest import make_frame
from domain import ExecutionPath, ParallelDispatchFailure, PipelineConfig, PipelineState
from processing import (
    DepthSource,
    LatestResultCache,
    PipelineOrchestrator,
    ReprojectionBackend,
    StaticDepthSource,
    ThreadPoolBackend,
    create_synthetic_frame,
)


class ScriptedDepthSource(DepthSource):
    """Returns the given frames as-is, in order."""

    def __init__(self, frames):
        self.frames = list(frames)

    def is_depth_available(self):
        return bool(self.frames)

    def acquire_frame(self):
        return self.frames.pop(0)


class BlockingDepthSource(DepthSource):
    """Holds acquire_frame() until released, to keep a pass in flight."""

    def __init__(self, frame):
        self.frame = frame
        self.entered = threading.Event()
        self.release = threading.Event()

    def is_depth_available(self):
        return True

    def acquire_frame(self):
        self.entered.set()
        self.release.wait(timeout=5.0)
        return self.frame


class FlakyDepthSource(StaticDepthSource):
    """Raises on the first acquire_frame() call, then serves frames normally."""

    def __init__(self, frames):
        super().__init__(frames)
        self.failures_left = 1

    def acquire_frame(self):
        if self.failures_left:
            self.failures_left -= 1
            raise RuntimeError("runtime hiccup")
        return super().acquire_frame()


class UnavailableParallelBackend(ReprojectionBackend):
    execution_path = ExecutionPath.PARALLEL

    def __init__(self):
        self.calls = 0

    @property
    def is_available(self):
        return False

    def generate(self, frame, sampler, reprojector):
        self.calls += 1
        raise AssertionError("unavailable backend must not be used")


class BrokenParallelBackend(ReprojectionBackend):
    execution_path = ExecutionPath.PARALLEL

    def __init__(self):
        self.calls = 0

    def generate(self, frame, sampler, reprojector):
        self.calls += 1
        raise ParallelDispatchFailure("device lost")


@pytest.fixture
def orchestrator(flat_frame, e2e_config):
    pipeline = PipelineOrchestrator(StaticDepthSource([flat_frame]), e2e_config)
    yield pipeline
    pipeline.close()


class TestTrigger:
    """Tests for single pipeline passes."""

    def test_end_to_end_publish(self, orchestrator, e2e_config):
        """4x4 frame at depth 2 publishes 16 points and returns to idle."""
        cache = LatestResultCache()
        orchestrator.subscribe(cache)

        result = orchestrator.trigger()

        assert result is not None
        assert result.sequence == 1
        assert result.point_count == 16
        assert result.mesh is None
        assert result.execution_path is ExecutionPath.SERIAL
        np.testing.assert_allclose(result.cloud.positions[:, 2], 2.0)
        fraction = (2.0 - 0.1) / (10.0 - 0.1)
        np.testing.assert_allclose(result.cloud.colors[0], np.array(e2e_config.far_color) * fraction, atol=1e-6)

        assert cache.latest is result
        assert orchestrator.latest is result
        assert orchestrator.state is PipelineState.IDLE

    def test_published_cloud_is_read_only(self, orchestrator):
        result = orchestrator.trigger()

        with pytest.raises(ValueError):
            result.cloud.positions[0, 0] = 1.0

    def test_sequence_increments(self, orchestrator):
        first = orchestrator.trigger()
        second = orchestrator.trigger()

        assert (first.sequence, second.sequence) == (1, 2)
        assert second.frame_index > first.frame_index

    def test_depth_unavailable_publishes_nothing(self, flat_frame, e2e_config):
        source = StaticDepthSource([flat_frame], available=False)
        pipeline = PipelineOrchestrator(source, e2e_config)

        assert pipeline.trigger() is None
        assert pipeline.latest is None
        assert pipeline.state is PipelineState.IDLE

    def test_depth_source_failure_skips_one_pass(self, flat_frame, e2e_config, caplog):
        """A source error costs one tick; the next trigger publishes."""
        pipeline = PipelineOrchestrator(FlakyDepthSource([flat_frame]), e2e_config)

        with caplog.at_level(logging.ERROR):
            assert pipeline.trigger() is None

        assert "Depth source failed" in caplog.text
        assert pipeline.state is PipelineState.IDLE

        result = pipeline.trigger()
        assert result is not None and result.point_count == 16

    def test_missing_pose_keeps_previous_result(self, e2e_config):
        source = ScriptedDepthSource([
            make_frame(np.full((4, 4), 2.0), frame_index=0),
            make_frame(np.full((4, 4), 3.0), pose=None, frame_index=1),
        ])
        pipeline = PipelineOrchestrator(source, e2e_config)

        first = pipeline.trigger()
        assert pipeline.trigger() is None
        assert pipeline.latest is first
        assert pipeline.state is PipelineState.IDLE

    def test_older_frame_is_not_published(self, e2e_config):
        source = ScriptedDepthSource([
            make_frame(np.full((4, 4), 2.0), frame_index=5),
            make_frame(np.full((4, 4), 2.0), frame_index=3),
        ])
        pipeline = PipelineOrchestrator(source, e2e_config)
        cache = LatestResultCache()
        pipeline.subscribe(cache)

        newer = pipeline.trigger()

        assert pipeline.trigger() is None
        assert pipeline.latest is newer
        assert cache.received == 1


class TestConcurrency:
    """Tests for the one-pass-in-flight rule."""

    def test_trigger_while_busy_is_dropped(self, flat_frame, e2e_config):
        source = BlockingDepthSource(flat_frame)
        pipeline = PipelineOrchestrator(source, e2e_config)
        results = []

        worker = threading.Thread(target=lambda: results.append(pipeline.trigger()))
        worker.start()
        assert source.entered.wait(timeout=5.0)

        assert pipeline.state.is_busy
        assert pipeline.trigger() is None
        assert pipeline.dropped_triggers == 1

        source.release.set()
        worker.join(timeout=5.0)

        assert len(results) == 1 and results[0].sequence == 1
        assert pipeline.state is PipelineState.IDLE

    def test_concurrent_dropped_triggers_are_all_counted(self, flat_frame, e2e_config):
        source = BlockingDepthSource(flat_frame)
        pipeline = PipelineOrchestrator(source, e2e_config)

        worker = threading.Thread(target=pipeline.trigger)
        worker.start()
        assert source.entered.wait(timeout=5.0)

        callers = [threading.Thread(target=pipeline.trigger) for _ in range(20)]
        for caller in callers:
            caller.start()
        for caller in callers:
            caller.join(timeout=5.0)

        source.release.set()
        worker.join(timeout=5.0)

        assert pipeline.dropped_triggers == 20
        assert pipeline.latest.sequence == 1

    def test_trigger_from_consumer_is_dropped(self, orchestrator):
        nested = []
        orchestrator.subscribe(lambda result: nested.append(orchestrator.trigger()))

        result = orchestrator.trigger()

        assert result.sequence == 1
        assert nested == [None]
        assert orchestrator.dropped_triggers == 1


class TestExecutionPaths:
    """Tests for parallel dispatch and serial fallback."""

    def test_parallel_failure_falls_back_to_serial(self, flat_frame, e2e_config, caplog):
        backend = BrokenParallelBackend()
        pipeline = PipelineOrchestrator(StaticDepthSource([flat_frame]), e2e_config, parallel_backend=backend)

        with caplog.at_level(logging.WARNING):
            result = pipeline.trigger()

        assert backend.calls == 1
        assert result.execution_path is ExecutionPath.SERIAL
        assert result.point_count == 16
        assert "falling back to serial path" in caplog.text

    def test_unavailable_parallel_path_uses_serial(self, flat_frame, e2e_config):
        backend = UnavailableParallelBackend()
        config = e2e_config.with_overrides(use_parallel=True)
        pipeline = PipelineOrchestrator(StaticDepthSource([flat_frame]), config, parallel_backend=backend)

        result = pipeline.trigger()

        assert backend.calls == 0
        assert result.execution_path is ExecutionPath.SERIAL
        assert result.point_count == 16

    def test_parallel_path_used_when_enabled(self, flat_frame, e2e_config):
        config = e2e_config.with_overrides(use_parallel=True, dispatch_workers=2)
        pipeline = PipelineOrchestrator(StaticDepthSource([flat_frame]), config)
        try:
            result = pipeline.trigger()
        finally:
            pipeline.close()

        assert isinstance(pipeline.parallel_backend, ThreadPoolBackend)
        assert result.execution_path is ExecutionPath.PARALLEL
        assert result.point_count == 16


class TestPublishing:
    """Tests for subscriber delivery."""

    def test_failing_consumer_does_not_block_others(self, orchestrator, caplog):
        received = []

        def broken(result):
            raise RuntimeError("renderer gone")

        orchestrator.subscribe(broken)
        orchestrator.subscribe(received.append)

        with caplog.at_level(logging.ERROR):
            result = orchestrator.trigger()

        assert received == [result]
        assert orchestrator.state is PipelineState.IDLE
        assert any(record.levelno == logging.ERROR for record in caplog.records)

    def test_unsubscribe(self, orchestrator):
        cache = LatestResultCache()
        orchestrator.subscribe(cache)
        orchestrator.unsubscribe(cache)

        orchestrator.trigger()

        assert cache.received == 0

    def test_cache_history(self, orchestrator):
        cache = LatestResultCache(history=2)
        orchestrator.subscribe(cache)

        for _ in range(3):
            orchestrator.trigger()

        assert [result.sequence for result in cache.history] == [2, 3]


class TestProcessing:
    """Tests for the optional processing stage."""

    def test_distance_cutoff_applies(self, e2e_config):
        frame = make_frame(np.array([[1.0, 1.0], [6.0, 6.0]]), fx=100.0, fy=100.0, cx=0.0, cy=0.0)
        config = e2e_config.with_overrides(distance_cutoff=4.0)
        pipeline = PipelineOrchestrator(StaticDepthSource([frame]), config)

        result = pipeline.trigger()

        assert result.point_count == 2
        assert (result.cloud.positions[:, 2] < 4.0).all()

    def test_reconstruction_publishes_mesh(self):
        config = PipelineConfig(
            subsample_stride=4,
            use_parallel=False,
            enable_processing=True,
            enable_reconstruction=True,
            distance_cutoff=0.0,
        )
        pipeline = PipelineOrchestrator(StaticDepthSource([create_synthetic_frame()]), config)

        result = pipeline.trigger()

        assert result.cloud.has_normals
        assert result.mesh is not None
        assert result.mesh.triangle_count > 0
        assert result.mesh.vertex_count == 2 * result.mesh.triangle_count


class TestPeriodicCapture:
    """Tests for the background capture thread."""

    def test_start_and_stop(self, flat_frame, e2e_config):
        config = e2e_config.with_overrides(capture_interval=0.01)
        pipeline = PipelineOrchestrator(StaticDepthSource([flat_frame]), config)
        cache = LatestResultCache(history=10)
        pipeline.subscribe(cache)

        pipeline.start()
        assert pipeline.is_running
        deadline = time.time() + 5.0
        while cache.received < 2 and time.time() < deadline:
            time.sleep(0.01)
        pipeline.stop()

        assert not pipeline.is_running
        assert cache.received >= 2
        sequences = [result.sequence for result in cache.history]
        assert sequences == sorted(sequences)
        assert pipeline.state is PipelineState.IDLE

    def test_capture_survives_depth_source_failure(self, flat_frame, e2e_config):
        """A failed pass on the capture thread does not stop later captures."""
        config = e2e_config.with_overrides(capture_interval=0.01)
        pipeline = PipelineOrchestrator(FlakyDepthSource([flat_frame]), config)
        cache = LatestResultCache()
        pipeline.subscribe(cache)

        pipeline.start()
        deadline = time.time() + 5.0
        while cache.received < 2 and time.time() < deadline:
            time.sleep(0.01)
        running = pipeline.is_running
        pipeline.stop()

        assert running
        assert cache.received >= 2
        assert pipeline.latest is not None
