"""
Error taxonomy for AutoDash.

UpstreamError is fatal for project/task fetches but only degrades a single
day of time entries. CacheReadError never escapes the cache gateway.
ConflictError is surfaced to the caller as a 409. ConfigError stops startup.
"""


class AutoDashError(Exception):
    """Base class for all AutoDash errors."""


class UpstreamError(AutoDashError):
    """Non-2xx response or transport failure from the TeamGantt API."""

    def __init__(self, message: str, status: int = None, path: str = None):
        super().__init__(message)
        self.status = status
        self.path = path


class CacheReadError(AutoDashError):
    """The persisted snapshot is missing or could not be decoded."""


class ConflictError(AutoDashError):
    """A refresh is already running."""


class ConfigError(AutoDashError):
    """Missing or placeholder credentials."""
