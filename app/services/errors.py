"""
Error types for the analytics pipeline.

None of these reach API callers: each is recovered where it is raised or
turned into an empty bundle by the orchestrator.
"""


class AnalyticsError(Exception):
    """Base class for analytics errors."""


class SourceFetchError(AnalyticsError):
    """A single record source query failed."""

    def __init__(self, query: str, key: str, reason: str = ""):
        self.query = query
        self.key = key
        self.reason = reason
        super().__init__(f"{query}({key}) failed: {reason}" if reason else f"{query}({key}) failed")


class ComputationError(AnalyticsError):
    """Unexpected failure while aggregating, clustering or generating findings."""


class CacheError(AnalyticsError):
    """Analytics cache read or write failed."""


class ComputationCancelled(AnalyticsError):
    """The computation was superseded and aborted."""
