"""Custom exception hierarchy for the SouqView core.

All domain-specific exceptions inherit from DataFetchError, which carries
contextual information about what went wrong while talking to a backend.
Public surfaces (snapshot fetcher, comment sessions, vote aggregator) catch
these and encode the failure in result flags instead of re-raising.
"""


class DataFetchError(Exception):
    """Base exception for all backend failures.

    Attributes:
        ticker: The ticker symbol (or comment id) involved in the failure.
        source: The backend that failed (e.g., "backend", "supabase").
        http_status: The HTTP status code, if the failure was HTTP-related.
    """

    def __init__(
        self,
        message: str,
        *,
        ticker: str,
        source: str,
        http_status: int | None = None,
    ) -> None:
        self.ticker = ticker
        self.source = source
        self.http_status = http_status
        super().__init__(message)


class DataSourceUnavailableError(DataFetchError):
    """Raised when a backend is unreachable, times out, or returns invalid JSON."""


class BackendHTTPError(DataFetchError):
    """Raised when a backend answers with a non-success HTTP status."""


class UpstreamUnavailableError(BackendHTTPError):
    """Raised on HTTP 502: the backend is up but its data source failed."""


class RateLimitExceededError(DataFetchError):
    """Raised when the backend rate limit has been hit (HTTP 429).

    Attributes:
        retry_after: Seconds to wait, parsed from the ``Retry-After`` header.
    """

    def __init__(
        self,
        message: str,
        *,
        ticker: str,
        source: str,
        http_status: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, ticker=ticker, source=source, http_status=http_status)
        self.retry_after = retry_after


class CounterConflictError(DataFetchError):
    """Raised when a compare-and-set counter update keeps losing to other writers."""
