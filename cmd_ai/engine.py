from __future__ import annotations

import enum
import logging
import threading
from typing import Any, Callable, Optional

from typing_extensions import Protocol

from .errors import AlreadyInErrorState, DownloadFailed, DownloadFailedWhileWaiting, LoadFailed

logger = logging.getLogger(__name__)

ProgressSink = Callable[[int], None]


class EngineState(str, enum.Enum):
    UNLOADED = "unloaded"
    DOWNLOADING = "downloading"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


class EngineAssets(Protocol):
    """Fetches model files and builds the engine object from them."""

    def is_cached(self) -> bool: ...

    def download(self, progress: ProgressSink) -> None: ...

    def load(self, progress: ProgressSink) -> Any: ...


class ProgressReporter:
    """Filter raw progress into 0..100 integer steps.

    Emits 0 first, never goes backwards, never repeats a value and emits 100
    exactly once, from ``finish()``. Raw values of 100 before ``finish()`` are
    held back as 99 so a failing cycle never reports completion.
    """

    def __init__(self, sink: Optional[ProgressSink]) -> None:
        self._sink = sink
        self._last = -1
        self._lock = threading.Lock()

    def _emit(self, value: int) -> None:
        # sink runs under the lock so concurrent reporters cannot reorder values
        with self._lock:
            if value <= self._last:
                return
            self._last = value
            if self._sink is not None:
                self._sink(value)

    def start(self) -> None:
        self._emit(0)

    def __call__(self, percentage: float) -> None:
        if self._last < 0:
            self.start()
        self._emit(max(0, min(99, int(percentage))))

    def finish(self) -> None:
        if self._last < 0:
            self.start()
        self._emit(100)


class EngineLifecycle:
    """Owns the single local engine handle and its readiness.

    Only one download or load runs at a time; other callers block on a
    condition variable until the running transition reaches a resting state.
    ``ERROR`` is sticky until ``reset()``.
    """

    def __init__(self, assets: EngineAssets) -> None:
        self._assets = assets
        self._state = EngineState.UNLOADED
        self._handle: Any = None
        self._error: Optional[BaseException] = None
        self._cond = threading.Condition()

    @property
    def state(self) -> EngineState:
        with self._cond:
            return self._state

    @property
    def last_error(self) -> Optional[BaseException]:
        with self._cond:
            return self._error

    def _wait_for_download(self) -> None:
        # caller holds the lock
        while self._state is EngineState.DOWNLOADING:
            self._cond.wait()
        if self._state is EngineState.ERROR:
            raise DownloadFailedWhileWaiting(f"model download failed while waiting: {self._error}")

    def _set(self, state: EngineState, error: Optional[BaseException] = None) -> None:
        with self._cond:
            logger.debug("engine %s -> %s", self._state.value, state.value)
            self._state = state
            if error is not None:
                self._error = error
            self._cond.notify_all()

    def download(self, progress: Optional[ProgressSink] = None) -> None:
        """Fetch the model assets unless they are already cached."""
        with self._cond:
            if self._state is EngineState.ERROR:
                raise AlreadyInErrorState(self._error)
            if self._state is EngineState.DOWNLOADING:
                self._wait_for_download()
                return
            if self._state is not EngineState.UNLOADED:
                return
            if self._assets.is_cached():
                return
            self._state = EngineState.DOWNLOADING
        self._run_download(progress)

    def _run_download(self, progress: Optional[ProgressSink]) -> None:
        reporter = ProgressReporter(progress)
        try:
            reporter.start()
            self._assets.download(reporter)
            reporter.finish()
        except BaseException as exc:
            logger.warning("model download failed: %s", exc or type(exc).__name__)
            failure = DownloadFailed(f"model download failed: {exc or type(exc).__name__}")
            self._set(EngineState.ERROR, failure)
            if isinstance(exc, Exception):
                raise failure from exc
            raise
        self._set(EngineState.UNLOADED)

    def ensure_ready(self, progress: Optional[ProgressSink] = None) -> Any:
        """Return the loaded engine handle, downloading and loading as needed."""
        downloaded = False
        while True:
            with self._cond:
                if self._state is EngineState.LOADED:
                    return self._handle
                if self._state is EngineState.ERROR:
                    raise AlreadyInErrorState(self._error)
                if self._state is EngineState.DOWNLOADING:
                    self._wait_for_download()
                    downloaded = True
                    continue
                if self._state is EngineState.LOADING:
                    while self._state is EngineState.LOADING:
                        self._cond.wait()
                    continue
                # UNLOADED: this caller drives the next transition, downloading at most once
                if not downloaded and not self._assets.is_cached():
                    self._state = EngineState.DOWNLOADING
                    action = "download"
                else:
                    self._state = EngineState.LOADING
                    action = "load"
            if action == "download":
                self._run_download(progress)
                downloaded = True
            else:
                return self._run_load(progress)

    def _run_load(self, progress: Optional[ProgressSink]) -> Any:
        reporter = ProgressReporter(progress)
        try:
            reporter.start()
            handle = self._assets.load(reporter)
            reporter.finish()
        except BaseException as exc:
            logger.warning("model load failed: %s", exc or type(exc).__name__)
            failure = LoadFailed(f"model load failed: {exc or type(exc).__name__}")
            self._set(EngineState.ERROR, failure)
            if isinstance(exc, Exception):
                raise failure from exc
            raise
        with self._cond:
            self._handle = handle
            self._state = EngineState.LOADED
            self._cond.notify_all()
        logger.debug("engine loaded")
        return handle

    def reset(self) -> None:
        """Explicit reconfiguration: drop the handle and any sticky error."""
        with self._cond:
            while self._state in (EngineState.DOWNLOADING, EngineState.LOADING):
                self._cond.wait()
            self._state = EngineState.UNLOADED
            self._handle = None
            self._error = None
            self._cond.notify_all()
