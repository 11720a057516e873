"""
Exception classes for playlist-analyzer.

This module defines all custom exceptions used throughout the application.
Each exception is designed to provide clear, actionable error messages
and to distinguish between different failure modes.

Exception Hierarchy:
    AnalyzerError (base)
        ConfigError - Configuration file issues
        SpotifyError - Spotify API issues
            UnauthorizedError - Missing, invalid or expired bearer token
            RateLimitedError - Rate-limit retries exhausted
            UpstreamError - Any other non-success response, after retries

Outcomes that are NOT exceptions:
    Tracks without audio features and multi-page fetches with some pages
    missing are reported on the returned result objects
    (see spotify.models.TrackFetchResult and FeatureFetchResult).
"""


class AnalyzerError(Exception):
    """
    Base exception for all playlist-analyzer errors.

    All custom exceptions in this project inherit from this class,
    allowing callers to catch all playlist-analyzer errors with a single
    except clause if desired.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (e.g., ids, status codes).

    Example:
        try:
            # some operation
        except AnalyzerError as e:
            logger.error(f"Operation failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description that will be shown to the user.
            details: Optional dictionary containing additional context about the error.
                     Common keys include:
                     - 'playlist_id': Spotify playlist ID involved in the error
                     - 'endpoint': API endpoint that failed
                     - 'original_error': The underlying exception if wrapping another error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(AnalyzerError):
    """
    Raised when there's an issue with the configuration file.

    This is a CRITICAL error that should stop program execution.

    Common causes:
        - config.yaml not found
        - config.yaml has invalid YAML syntax
        - Neither an access token nor OAuth credentials configured
        - Invalid field values (e.g., page size above the API limit)

    Example:
        raise ConfigError(
            "'api.page_size' must be an integer between 1 and 50",
            details={'field': 'api.page_size', 'value': 80}
        )
    """
    pass


class SpotifyError(AnalyzerError):
    """
    Raised when there's an issue with the Spotify API.

    Subclasses identify the failure kind; callers that don't care about
    the kind can catch SpotifyError directly.

    Attributes:
        http_status: HTTP status of the failed response, or None for
                     transport failures (connection reset, timeout).
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        http_status: int | None = None
    ) -> None:
        super().__init__(message, details)
        self.http_status = http_status

    @property
    def is_auth_error(self) -> bool:
        """True if the caller has to re-authenticate."""
        return isinstance(self, UnauthorizedError)

    @property
    def is_rate_limit(self) -> bool:
        """True if the failure was caused by rate limiting."""
        return isinstance(self, RateLimitedError)


class UnauthorizedError(SpotifyError):
    """
    Raised when the bearer token is missing, invalid or expired (HTTP 401).

    Never retried by the client: a fresh token has to be obtained above
    the client and a new client constructed with it.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message, details, http_status=401)


class RateLimitedError(SpotifyError):
    """
    Raised when Spotify keeps answering 429 after the rate-limit budget is spent.

    Attributes:
        retry_after: Last wait hint (seconds) sent by Spotify, or None.
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        retry_after: float | None = None
    ) -> None:
        super().__init__(message, details, http_status=429)
        self.retry_after = retry_after


class UpstreamError(SpotifyError):
    """
    Raised for any other non-success response once retries are exhausted.

    The original status and response body are kept for diagnostics.

    Attributes:
        body: Response body (or transport error text) of the last attempt.

    Example:
        raise UpstreamError(
            "GET /playlists/abc failed after 3 attempts",
            details={'endpoint': 'playlist', 'attempts': 3},
            http_status=502,
            body="Bad gateway"
        )
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        http_status: int | None = None,
        body: str = ""
    ) -> None:
        super().__init__(message, details, http_status=http_status)
        self.body = body
