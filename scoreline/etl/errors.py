"""Error taxonomy for the LiveScore sync pipeline."""

from typing import Optional


class LiveScoreError(RuntimeError):
    """Base class for failures talking to the sports-data API."""


class NetworkError(LiveScoreError):
    """Transport failure or non-2xx HTTP response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ParseError(LiveScoreError):
    """Response body was not valid JSON."""


class ApiError(LiveScoreError):
    """The API answered with ``success: false``."""


class RequestBudgetExhausted(LiveScoreError):
    """Process request budget is spent. Callers turn this into ``exhausted=True``."""


class RecordError(ValueError):
    """A single record could not be normalized or persisted."""
