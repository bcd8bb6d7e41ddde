"""Tests for per-deployment serialization."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from canaryctl.core.exceptions import LockTimeoutError, StateConflictError
from canaryctl.deploy.controller import ProgressOutcome
from canaryctl.deploy.engine import RolloutEngine
from canaryctl.deploy.locks import DeploymentLocks
from canaryctl.deploy.models import DeploymentStatus, StepStatus
from canaryctl.deploy.providers.metrics import StaticMetricsProvider
from canaryctl.deploy.state import DeploymentState

from conftest import HEALTHY


class TestDeploymentLocks:
    """Tests for DeploymentLocks."""

    def test_reentrant(self):
        locks = DeploymentLocks(timeout=0.1)

        with locks.hold("abc"):
            with locks.hold("abc"):
                pass

    def test_timeout(self):
        locks = DeploymentLocks(timeout=0.1)
        acquired = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold("abc"):
                acquired.set()
                release.wait(5)

        thread = threading.Thread(target=holder)
        thread.start()
        try:
            acquired.wait(5)
            with pytest.raises(LockTimeoutError) as exc_info:
                with locks.hold("abc"):
                    pass
            assert exc_info.value.timeout_seconds == 0.1
        finally:
            release.set()
            thread.join()

    def test_different_deployments_do_not_contend(self):
        locks = DeploymentLocks(timeout=0.1)
        acquired = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold("abc"):
                acquired.set()
                release.wait(5)

        thread = threading.Thread(target=holder)
        thread.start()
        try:
            acquired.wait(5)
            with locks.hold("xyz"):
                pass
        finally:
            release.set()
            thread.join()


class TestConcurrentProgress:
    """Concurrent callers against one deployment."""

    def test_concurrent_progress_is_serialized(self, engine, request_data):
        deployment = engine.controller.create(request_data)
        engine.controller.start(deployment.id)

        with ThreadPoolExecutor(max_workers=5) as pool:
            results = list(pool.map(lambda _: engine.controller.progress(deployment.id), range(5)))

        assert all(r.outcome == ProgressOutcome.ADVANCED for r in results)
        assert sorted(r.deployment.current_canary_percent for r in results) == [20, 30, 40, 50, 60]

        stored = engine.controller.get(deployment.id)
        assert stored.current_canary_percent == 60
        steps = engine.controller.steps(deployment.id)
        assert sum(1 for s in steps if s.status == StepStatus.RUNNING) == 1
        assert sum(1 for s in steps if s.status == StepStatus.COMPLETED) == 5
        assert len(engine.recorder.history(deployment.id)) == 5

    def test_concurrent_rollbacks_open_one_record(self, engine, request_data):
        deployment = engine.controller.create(request_data)
        engine.controller.start(deployment.id)

        def attempt(i):
            try:
                return engine.rollbacks.initiate(deployment.id, f"attempt {i}")
            except StateConflictError:
                return None

        with ThreadPoolExecutor(max_workers=8) as pool:
            records = list(pool.map(attempt, range(8)))

        assert sum(1 for r in records if r is not None) == 1
        assert len(engine.rollbacks.history(deployment.id)) == 1
        assert engine.controller.get(deployment.id).status == DeploymentStatus.ROLLING_BACK

    def test_progress_races_cancel(self, engine, request_data):
        deployment = engine.controller.create(request_data)
        engine.controller.start(deployment.id)

        def progress():
            try:
                return engine.controller.progress(deployment.id).outcome
            except StateConflictError:
                return "conflict"

        with ThreadPoolExecutor(max_workers=4) as pool:
            futures = [pool.submit(progress) for _ in range(3)]
            futures.append(pool.submit(engine.controller.cancel, deployment.id))
            for future in futures:
                future.result()

        stored = engine.controller.get(deployment.id)
        assert stored.status == DeploymentStatus.CANCELLED
        steps = engine.controller.steps(deployment.id)
        assert not any(s.status in (StepStatus.RUNNING, StepStatus.PENDING) for s in steps)

    def test_file_store_under_contention(self, tmp_path, traffic, request_data):
        engine = RolloutEngine(
            store=DeploymentState(tmp_path),
            metrics=StaticMetricsProvider([HEALTHY]),
            traffic=traffic,
        )
        deployment = engine.controller.create(request_data)
        engine.controller.start(deployment.id)

        with ThreadPoolExecutor(max_workers=4) as pool:
            list(pool.map(lambda _: engine.controller.progress(deployment.id), range(4)))

        steps = engine.controller.steps(deployment.id)
        assert sum(1 for s in steps if s.status == StepStatus.RUNNING) == 1
        assert engine.controller.get(deployment.id).current_canary_percent == 50


class BlockingMetricsProvider(StaticMetricsProvider):
    """Healthy provider that parks inside ``fetch`` until released."""

    def __init__(self) -> None:
        super().__init__([HEALTHY])
        self.entered = threading.Event()
        self.release = threading.Event()

    def fetch(self, deployment):
        self.entered.set()
        self.release.wait(5)
        return super().fetch(deployment)


class TestCrossEngineExclusion:
    """Engines sharing a state directory, as separate CLI processes do."""

    def test_file_lock_serializes_registries(self, tmp_path):
        store = DeploymentState(tmp_path)
        first = DeploymentLocks(timeout=0.1, lock_path=store.lock_path)
        second = DeploymentLocks(timeout=0.1, lock_path=store.lock_path)

        with first.hold("abc12345"):
            with first.hold("abc12345"):
                pass
            with pytest.raises(LockTimeoutError):
                with second.hold("abc12345"):
                    pass

        with second.hold("abc12345"):
            pass

    def test_cancel_waits_for_in_flight_progress(self, tmp_path, traffic, request_data):
        blocking = BlockingMetricsProvider()
        runner = RolloutEngine(store=DeploymentState(tmp_path), metrics=blocking, traffic=traffic)
        operator = RolloutEngine(
            store=DeploymentState(tmp_path),
            metrics=StaticMetricsProvider([HEALTHY]),
            traffic=traffic,
        )
        deployment = runner.controller.create(request_data)
        runner.controller.start(deployment.id)

        with ThreadPoolExecutor(max_workers=2) as pool:
            progress = pool.submit(runner.controller.progress, deployment.id)
            assert blocking.entered.wait(5)

            cancel = pool.submit(operator.controller.cancel, deployment.id)
            time.sleep(0.2)
            assert not cancel.done()

            blocking.release.set()
            assert progress.result(timeout=10).outcome == ProgressOutcome.ADVANCED
            cancel.result(timeout=10)

        stored = operator.controller.get(deployment.id)
        assert stored.status == DeploymentStatus.CANCELLED
        assert stored.current_canary_percent == 0
        steps = operator.controller.steps(deployment.id)
        assert not any(s.status in (StepStatus.RUNNING, StepStatus.PENDING) for s in steps)
        assert traffic.calls_for(deployment.id)[-2:] == [("apply", 20), ("restore", 0)]
