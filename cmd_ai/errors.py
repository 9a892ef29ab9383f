"""Exception types for cmd-ai.

The parser and the safety classifier never raise; they return typed outcomes.
Everything below propagates up to the CLI, which maps it to an exit code.
"""

from __future__ import annotations

from typing import Optional


class CmdAIError(Exception):
    """Base exception for cmd-ai."""


class ConfigError(CmdAIError):
    """Raised when the provider configuration is missing or invalid."""


class TransportError(CmdAIError):
    """A backend could not produce a reply (unreachable, auth, malformed body)."""

    def __init__(self, provider: str, cause: str) -> None:
        super().__init__(f"{provider}: {cause}")
        self.provider = provider
        self.cause = cause


class EngineError(CmdAIError):
    """Base exception for the local engine lifecycle."""


class DownloadFailed(EngineError):
    """Fetching the local model assets failed."""


class DownloadFailedWhileWaiting(DownloadFailed):
    """Another caller's download failed while this caller was waiting on it."""


class LoadFailed(EngineError):
    """Constructing the local engine from cached assets failed."""


class AlreadyInErrorState(EngineError):
    """The engine is in the sticky error state; reconfigure before retrying."""

    def __init__(self, cause: Optional[BaseException] = None) -> None:
        message = "local engine is in an error state; run 'ai config --provider local' to retry"
        if cause is not None:
            message = f"{message} (last error: {cause})"
        super().__init__(message)
        self.cause = cause
