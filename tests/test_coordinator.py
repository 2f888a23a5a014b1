import threading
import time

import pytest

from localrag.errors import DimensionMismatch
from localrag.ingest.coordinator import IndexCoordinator
from localrag.ingest.pipeline import PassReport


class BlockingPipeline:
    """Runs passes that wait for a release signal or for their own cancellation."""

    def __init__(self) -> None:
        self.release = threading.Event()
        self.started = []
        self.sessions = []

    def run_pass(self, session):
        self.sessions.append(session)
        self.started.append(session.root)
        while not self.release.is_set():
            if session.cancelled:
                return PassReport(root=str(session.root), generation=session.generation, cancelled=True)
            time.sleep(0.01)
        return PassReport(root=str(session.root), generation=session.generation, scanned=1)


class FailingPipeline:
    def run_pass(self, session):
        raise DimensionMismatch(384, 768)


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return
        time.sleep(0.01)
    raise AssertionError("condition not reached in time")


def test_second_request_for_same_root_attaches_to_running_pass(tmp_path):
    pipeline = BlockingPipeline()
    coordinator = IndexCoordinator(pipeline)

    first = coordinator.request_pass(tmp_path)
    second = coordinator.request_pass(tmp_path)
    _wait_for(lambda: pipeline.started)
    pipeline.release.set()

    assert first is second
    assert first.result(timeout=5).scanned == 1
    assert len(pipeline.started) == 1
    coordinator.shutdown()


def test_new_root_cancels_the_running_pass(tmp_path):
    old_root = tmp_path / "old"
    new_root = tmp_path / "new"
    old_root.mkdir()
    new_root.mkdir()
    pipeline = BlockingPipeline()
    coordinator = IndexCoordinator(pipeline)

    old = coordinator.request_pass(old_root)
    _wait_for(lambda: pipeline.started)
    new = coordinator.request_pass(new_root)

    old_report = old.result(timeout=5)
    assert old_report.cancelled
    assert pipeline.sessions[0].cancelled
    assert coordinator.status()["state"] == "running"

    pipeline.release.set()
    new_report = new.result(timeout=5)

    assert not new_report.cancelled
    assert new_report.root == str(new_root.resolve())
    status = coordinator.status()
    assert status["state"] == "completed"
    assert status["generation"] == 2
    assert status["last_report"]["root"] == str(new_root.resolve())
    coordinator.shutdown()


def test_finished_pass_is_not_reused(tmp_path):
    pipeline = BlockingPipeline()
    pipeline.release.set()
    coordinator = IndexCoordinator(pipeline)

    coordinator.index_folder(tmp_path)
    coordinator.index_folder(tmp_path)

    assert len(pipeline.started) == 2
    coordinator.shutdown()


def test_pass_level_failure_propagates_and_is_reported(tmp_path):
    coordinator = IndexCoordinator(FailingPipeline())

    with pytest.raises(DimensionMismatch):
        coordinator.index_folder(tmp_path)

    status = coordinator.status()
    assert status["state"] == "failed"
    assert "dimension mismatch" in status["last_error"]
    coordinator.shutdown()


def test_idle_status(tmp_path):
    coordinator = IndexCoordinator(BlockingPipeline())

    assert coordinator.status() == {
        "state": "idle",
        "root": None,
        "generation": None,
        "last_report": None,
        "last_error": None,
    }
    coordinator.shutdown()
