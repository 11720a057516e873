"""
Retry and backoff policy for Spotify API requests.

Every request the client makes goes through RetryPolicy.execute(), so
the rate-limit and failure handling lives in one place instead of being
repeated around each call site.

Policy:
    429 Too Many Requests:
        Wait for the Retry-After header when Spotify sends one, otherwise
        base_delay * 2 ** (n - 1) for the n-th consecutive 429. Rate-limit
        waits have their own budget (max_rate_limit_retries) and never use
        up max_attempts. When the budget is spent, RateLimitedError.

    401 Unauthorized:
        UnauthorizedError immediately. A new token is needed; retrying with
        the same one cannot succeed.

    Any other non-success response, or a transport error:
        Retried until max_attempts attempts have been made, sleeping
        base_delay * attempt between attempts. Then UpstreamError carrying
        the last status and body, chained to the last exception.

Usage:
    policy = RetryPolicy(max_attempts=3, base_delay=1.0)
    data = policy.execute(lambda: spotify.playlist(playlist_id), "GET /playlists/{id}")
"""

import time
from typing import Callable, Collection, Mapping, TypeVar

import requests
import spotipy

from playlist_analyzer.core import diagnostics as events
from playlist_analyzer.core.config import ApiConfig
from playlist_analyzer.core.diagnostics import DiagnosticEvent, DiagnosticsSink, logging_sink
from playlist_analyzer.core.exceptions import (
    RateLimitedError,
    UnauthorizedError,
    UpstreamError,
)


T = TypeVar("T")


def parse_retry_after(headers: Mapping[str, str] | None) -> float | None:
    """
    Read the Retry-After header (seconds) from a response's headers.

    Returns:
        The hinted wait in seconds, or None if absent or unparsable.
    """
    if not headers:
        return None

    value = None
    for name, raw in headers.items():
        if name.lower() == "retry-after":
            value = raw
            break
    if value is None:
        return None

    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    return max(seconds, 0.0)


class RetryPolicy:
    """
    Configurable retry/backoff strategy injected into SpotifyClient.

    Attributes:
        max_attempts: Attempts per request for non rate-limit failures.
        base_delay: Base delay in seconds for both backoff schedules.
        request_delay: Pause in seconds between consecutive requests of a
                       multi-page or multi-chunk operation.
        max_rate_limit_retries: Consecutive 429 responses tolerated per request.
        sleep: Function used to wait; replaced in tests.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        request_delay: float = 0.1,
        max_rate_limit_retries: int = 5,
        sleep: Callable[[float], None] = time.sleep,
        diagnostics: DiagnosticsSink | None = None
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.request_delay = request_delay
        self.max_rate_limit_retries = max_rate_limit_retries
        self.sleep = sleep
        self._diagnostics = diagnostics or logging_sink()

    @classmethod
    def from_config(
        cls,
        api_config: ApiConfig,
        sleep: Callable[[float], None] = time.sleep,
        diagnostics: DiagnosticsSink | None = None
    ) -> "RetryPolicy":
        """Build a policy from the 'api' configuration section."""
        return cls(
            max_attempts=api_config.max_attempts,
            base_delay=api_config.base_delay,
            request_delay=api_config.request_delay,
            max_rate_limit_retries=api_config.max_rate_limit_retries,
            sleep=sleep,
            diagnostics=diagnostics,
        )

    def rate_limit_wait(self, retry_after: float | None, occurrence: int) -> float:
        """Seconds to wait after the occurrence-th consecutive 429."""
        if retry_after is not None:
            return retry_after
        return self.base_delay * 2 ** (occurrence - 1)

    def backoff(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt` (1-based)."""
        return self.base_delay * attempt

    def pause(self) -> None:
        """Wait between two requests of the same multi-request operation."""
        if self.request_delay > 0:
            self.sleep(self.request_delay)

    def execute(
        self,
        operation: Callable[[], T],
        description: str,
        fail_fast: Collection[int] = (),
        diagnostics: DiagnosticsSink | None = None
    ) -> T:
        """
        Run operation, retrying according to the policy.

        Args:
            operation: Zero-argument callable performing one HTTP request.
            description: Short request description for messages, e.g.
                         "GET /playlists/abc/tracks".
            fail_fast: Statuses that raise UpstreamError on the first
                       occurrence instead of being retried.
            diagnostics: Sink for retry events; defaults to the policy's own.

        Returns:
            Whatever operation returns.

        Raises:
            UnauthorizedError: On HTTP 401.
            RateLimitedError: When 429s outlast max_rate_limit_retries.
            UpstreamError: When other failures outlast max_attempts, or
                           immediately for a fail_fast status.
        """
        emit = diagnostics or self._diagnostics
        attempt = 1
        rate_limited = 0

        while True:
            try:
                return operation()
            except spotipy.SpotifyException as e:
                status = e.http_status
                body = str(e.msg)

                if status == 401:
                    raise UnauthorizedError(
                        f"Spotify rejected the access token ({description})",
                        details={"request": description, "body": body}
                    ) from e

                if status == 429:
                    rate_limited += 1
                    retry_after = parse_retry_after(e.headers)
                    if rate_limited > self.max_rate_limit_retries:
                        raise RateLimitedError(
                            f"Still rate limited after {rate_limited - 1} waits ({description})",
                            details={"request": description, "waits": rate_limited - 1},
                            retry_after=retry_after
                        ) from e
                    wait = self.rate_limit_wait(retry_after, rate_limited)
                    emit(DiagnosticEvent(
                        events.RATE_LIMITED,
                        f"Rate limited on {description}, waiting {wait:g}s",
                        {"request": description, "wait": wait, "retry_after": retry_after},
                    ))
                    self.sleep(wait)
                    continue

                if status in fail_fast:
                    raise UpstreamError(
                        f"{description} failed with HTTP {status}",
                        details={"request": description, "attempts": attempt},
                        http_status=status,
                        body=body
                    ) from e

                last_error: Exception = e
            except requests.exceptions.RequestException as e:
                status = None
                body = str(e)
                last_error = e

            rate_limited = 0

            if attempt >= self.max_attempts:
                status_text = f"HTTP {status}" if status is not None else "network error"
                raise UpstreamError(
                    f"{description} failed after {attempt} attempts ({status_text})",
                    details={"request": description, "attempts": attempt},
                    http_status=status,
                    body=body
                ) from last_error

            delay = self.backoff(attempt)
            emit(DiagnosticEvent(
                events.RETRYING,
                f"{description} failed (attempt {attempt}/{self.max_attempts}), "
                f"retrying in {delay:g}s",
                {"request": description, "attempt": attempt, "status": status, "delay": delay},
            ))
            self.sleep(delay)
            attempt += 1
