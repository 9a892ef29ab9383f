import threading
from typing import List, Optional

import pytest

from cmd_ai.engine import EngineLifecycle, EngineState, ProgressReporter
from cmd_ai.errors import AlreadyInErrorState, DownloadFailed, DownloadFailedWhileWaiting, LoadFailed


class FakeAssets:
    def __init__(
        self,
        cached: bool = False,
        download_error: Optional[Exception] = None,
        load_error: Optional[Exception] = None,
        gate: Optional[threading.Event] = None,
    ) -> None:
        self.cached = cached
        self.download_error = download_error
        self.load_error = load_error
        self.gate = gate
        self.started = threading.Event()
        self.download_calls = 0
        self.load_calls = 0

    def is_cached(self) -> bool:
        return self.cached

    def download(self, progress) -> None:
        self.download_calls += 1
        self.started.set()
        if self.gate is not None:
            assert self.gate.wait(timeout=5)
        for pct in (10, 10, 5, 50, 99.5, 100):
            progress(pct)
        if self.download_error is not None:
            raise self.download_error
        self.cached = True

    def load(self, progress):
        self.load_calls += 1
        progress(50)
        if self.load_error is not None:
            raise self.load_error
        return "engine-handle"


def test_download_then_load_reaches_loaded() -> None:
    assets = FakeAssets()
    lifecycle = EngineLifecycle(assets)

    handle = lifecycle.ensure_ready()

    assert handle == "engine-handle"
    assert lifecycle.state is EngineState.LOADED
    assert assets.download_calls == 1
    assert assets.load_calls == 1


def test_loaded_engine_is_reused() -> None:
    assets = FakeAssets(cached=True)
    lifecycle = EngineLifecycle(assets)

    lifecycle.ensure_ready()
    lifecycle.ensure_ready()

    assert assets.load_calls == 1
    assert assets.download_calls == 0


def test_explicit_download_leaves_engine_unloaded() -> None:
    assets = FakeAssets()
    lifecycle = EngineLifecycle(assets)

    lifecycle.download()

    assert lifecycle.state is EngineState.UNLOADED
    assert assets.cached is True


def test_download_is_skipped_when_cached() -> None:
    assets = FakeAssets(cached=True)
    lifecycle = EngineLifecycle(assets)

    lifecycle.download()

    assert assets.download_calls == 0


def test_download_failure_is_sticky() -> None:
    assets = FakeAssets(download_error=OSError("disk full"))
    lifecycle = EngineLifecycle(assets)

    with pytest.raises(DownloadFailed):
        lifecycle.ensure_ready()
    assert lifecycle.state is EngineState.ERROR

    with pytest.raises(AlreadyInErrorState):
        lifecycle.ensure_ready()
    with pytest.raises(AlreadyInErrorState):
        lifecycle.download()
    assert assets.download_calls == 1


def test_load_failure_is_sticky() -> None:
    assets = FakeAssets(cached=True, load_error=RuntimeError("bad weights"))
    lifecycle = EngineLifecycle(assets)

    with pytest.raises(LoadFailed):
        lifecycle.ensure_ready()
    with pytest.raises(AlreadyInErrorState):
        lifecycle.ensure_ready()
    assert lifecycle.state is EngineState.ERROR
    assert assets.load_calls == 1


def test_reset_clears_error_state() -> None:
    assets = FakeAssets(cached=True, load_error=RuntimeError("bad weights"))
    lifecycle = EngineLifecycle(assets)
    with pytest.raises(LoadFailed):
        lifecycle.ensure_ready()

    assets.load_error = None
    lifecycle.reset()

    assert lifecycle.state is EngineState.UNLOADED
    assert lifecycle.last_error is None
    assert lifecycle.ensure_ready() == "engine-handle"


def test_progress_is_monotonic_and_finishes_once() -> None:
    seen: List[int] = []
    lifecycle = EngineLifecycle(FakeAssets())

    lifecycle.download(seen.append)

    assert seen == [0, 10, 50, 99, 100]


def test_failed_download_never_reports_completion() -> None:
    seen: List[int] = []
    lifecycle = EngineLifecycle(FakeAssets(download_error=OSError("network down")))

    with pytest.raises(DownloadFailed):
        lifecycle.download(seen.append)

    assert seen[0] == 0
    assert 100 not in seen


def test_progress_reporter_without_sink() -> None:
    reporter = ProgressReporter(None)

    reporter(42)
    reporter.finish()


def test_concurrent_request_waits_for_running_download() -> None:
    gate = threading.Event()
    assets = FakeAssets(gate=gate)
    lifecycle = EngineLifecycle(assets)
    results: List[object] = []

    downloader = threading.Thread(target=lifecycle.download)
    downloader.start()
    assert assets.started.wait(timeout=5)
    assert lifecycle.state is EngineState.DOWNLOADING

    waiter = threading.Thread(target=lambda: results.append(lifecycle.ensure_ready()))
    waiter.start()
    gate.set()
    downloader.join(timeout=5)
    waiter.join(timeout=5)

    assert results == ["engine-handle"]
    assert assets.download_calls == 1
    assert lifecycle.state is EngineState.LOADED


def test_waiter_sees_distinct_error_when_download_fails() -> None:
    gate = threading.Event()
    assets = FakeAssets(gate=gate, download_error=OSError("connection reset"))
    lifecycle = EngineLifecycle(assets)
    errors: List[BaseException] = []

    def _download() -> None:
        try:
            lifecycle.download()
        except DownloadFailed as exc:
            errors.append(exc)

    def _infer() -> None:
        try:
            lifecycle.ensure_ready()
        except DownloadFailed as exc:
            errors.append(exc)

    downloader = threading.Thread(target=_download)
    downloader.start()
    assert assets.started.wait(timeout=5)
    waiter = threading.Thread(target=_infer)
    waiter.start()
    # let the waiter block on the condition before the download fails
    waiter.join(timeout=0.5)
    gate.set()
    downloader.join(timeout=5)
    waiter.join(timeout=5)

    assert len(errors) == 2
    assert sum(isinstance(exc, DownloadFailedWhileWaiting) for exc in errors) == 1
    assert assets.download_calls == 1
    assert lifecycle.state is EngineState.ERROR


def test_failing_progress_sink_leaves_engine_in_error_not_downloading() -> None:
    def sink(pct: int) -> None:
        if pct == 100:
            raise RuntimeError("display closed")

    lifecycle = EngineLifecycle(FakeAssets())

    with pytest.raises(DownloadFailed):
        lifecycle.download(sink)
    assert lifecycle.state is EngineState.ERROR

    # a second caller fails fast instead of waiting on a download that never ends
    results: List[BaseException] = []

    def _infer() -> None:
        try:
            lifecycle.ensure_ready()
        except AlreadyInErrorState as exc:
            results.append(exc)

    waiter = threading.Thread(target=_infer)
    waiter.start()
    waiter.join(timeout=5)
    assert not waiter.is_alive()
    assert len(results) == 1


def test_interrupted_load_is_not_left_loading() -> None:
    assets = FakeAssets(cached=True, load_error=KeyboardInterrupt())
    lifecycle = EngineLifecycle(assets)

    with pytest.raises(KeyboardInterrupt):
        lifecycle.ensure_ready()

    assert lifecycle.state is EngineState.ERROR
    assert isinstance(lifecycle.last_error, LoadFailed)
    lifecycle.reset()
    assert lifecycle.state is EngineState.UNLOADED


def test_download_runs_once_even_if_cache_check_keeps_failing() -> None:
    class NeverCached(FakeAssets):
        def is_cached(self) -> bool:
            return False

    assets = NeverCached()
    lifecycle = EngineLifecycle(assets)

    assert lifecycle.ensure_ready() == "engine-handle"
    assert assets.download_calls == 1
    assert assets.load_calls == 1


def test_concurrent_progress_reaches_sink_in_order() -> None:
    seen: List[int] = []
    reporter = ProgressReporter(seen.append)
    barrier = threading.Barrier(4)

    def _report(offset: int) -> None:
        barrier.wait()
        for pct in range(offset, 99, 4):
            reporter(pct)

    threads = [threading.Thread(target=_report, args=(offset,)) for offset in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)
    reporter.finish()

    assert seen == sorted(seen)
    assert len(seen) == len(set(seen))
    assert seen[0] == 0
    assert seen[-1] == 100
