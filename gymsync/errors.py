"""
Exception types shared across the crawl pipeline.

Only ConfigurationError and SessionAlreadyRunning are meant to reach callers;
the others are raised and absorbed inside the pipeline.
"""
from typing import Optional


class GymSyncError(Exception):
    """Base class for pipeline errors."""


class ConfigurationError(GymSyncError):
    """Invalid processor, merger or chain configuration."""


class SourceBlocked(GymSyncError):
    """A web source answered with an anti-bot or block signal."""

    def __init__(self, source: str, status: Optional[int] = None, detail: str = ""):
        self.source = source
        self.status = status
        message = f"{source} blocked the request"
        if status is not None:
            message += f" (HTTP {status})"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class InvalidShape(GymSyncError):
    """A strategy or batch function returned data failing a structural check."""


class ChainExhausted(GymSyncError):
    """Every search strategy was unavailable or failed, including basic info."""


class SessionAlreadyRunning(GymSyncError):
    """A crawl session was requested while another one is in progress."""
