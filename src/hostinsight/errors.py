"""Exception types raised by hostinsight."""

from __future__ import annotations


class HostInsightError(Exception):
    """Base class for all hostinsight errors."""


class SensorReadError(HostInsightError):
    """The metrics provider failed during a poll tick."""


class InvalidMetricsData(HostInsightError, ValueError):
    """A snapshot cannot be summarised, e.g. a zero memory or disk total."""


class InsightError(HostInsightError):
    """Base class for failures of an explain request."""


class TransportFailure(InsightError):
    """The AI endpoint could not be reached or did not answer in time."""


class RemoteStatusFailure(InsightError):
    """The AI endpoint answered with a non-200 status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"Received non-200 response from API: {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class ResponseParseFailure(InsightError):
    """The AI endpoint answered 200 but the payload lacked the expected text."""
