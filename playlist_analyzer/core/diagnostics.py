"""
Structured diagnostic events for playlist-analyzer.

The Spotify client and the fetcher report what they are doing (pages
fetched, rate-limit waits, retries, incomplete results) as DiagnosticEvent
objects handed to an injectable sink, instead of printing or logging
directly from inside the fetch loops.

Usage:
    # Default: forward events to the module logger
    client = SpotifyClient(token)

    # Tests: collect events
    events: list[DiagnosticEvent] = []
    client = SpotifyClient(token, diagnostics=events.append)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from playlist_analyzer.core.logger import get_logger


# Event kinds
PAGE_FETCHED = "page_fetched"
CHUNK_FETCHED = "chunk_fetched"
CHUNK_FAILED = "chunk_failed"
PAGE_FAILED = "page_failed"
RATE_LIMITED = "rate_limited"
RETRYING = "retrying"
PARTIAL_RESULT = "partial_result"
FEATURES_UNAVAILABLE = "features_unavailable"
TRACKS_ADDED = "tracks_added"

# Kinds that indicate degraded data and deserve a warning
_WARNING_KINDS = frozenset({
    CHUNK_FAILED,
    PAGE_FAILED,
    RATE_LIMITED,
    RETRYING,
    PARTIAL_RESULT,
    FEATURES_UNAVAILABLE,
})


@dataclass(frozen=True)
class DiagnosticEvent:
    """
    One thing worth knowing about an API interaction.

    Attributes:
        kind: One of the event kind constants of this module.
        message: Human-readable summary.
        data: Machine-readable context (offsets, counts, wait times...).
    """
    kind: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)


DiagnosticsSink = Callable[[DiagnosticEvent], None]


def logging_sink(logger: logging.Logger | None = None) -> DiagnosticsSink:
    """
    Build a sink that writes events to a logger.

    Degraded-data events are logged at WARNING, everything else at DEBUG.
    """
    target = logger or get_logger("playlist_analyzer.diagnostics")

    def sink(event: DiagnosticEvent) -> None:
        level = logging.WARNING if event.kind in _WARNING_KINDS else logging.DEBUG
        target.log(level, event.message, extra={"diagnostic_kind": event.kind})

    return sink
