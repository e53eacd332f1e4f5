from __future__ import annotations

from typing import Optional


class SnappydooError(Exception):
    """Base class for every error raised by snappydoo."""


class ConfigError(SnappydooError):
    """Required configuration is missing or cannot be loaded."""


class SourceControlError(SnappydooError):
    """A source-control query failed for a reason other than a missing object."""

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class NotFoundError(SourceControlError):
    """The requested ref, file or object does not exist."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status=404)


class MalformedSnapshot(SnappydooError):
    def __init__(self, file: str, entry: str, reason: str) -> None:
        super().__init__(f"Cannot decode snapshot '{entry}' in {file}: {reason}")
        self.file = file
        self.entry = entry
        self.reason = reason


class RenderFailed(SnappydooError):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Rendering {path} failed: {reason}")
        self.path = path
        self.reason = reason


class ReconcileError(SnappydooError):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Writing {path} failed: {reason}")
        self.path = path
        self.reason = reason
