"""
Utility functions for playlist-analyzer.

This module provides small helpers used across the application:
    - Chunking of id/URI lists to Spotify's per-request limits
    - Spotify id extraction from URLs and URIs
    - Human-readable formatting of durations and musical keys

Usage:
    from playlist_analyzer.utils import (
        chunked,
        extract_playlist_id,
        format_duration
    )
"""

from typing import Sequence, TypeVar


T = TypeVar("T")

# Pitch class names for Spotify's key field (0 = C, 11 = B)
PITCH_CLASSES = ("C", "C♯/D♭", "D", "D♯/E♭", "E", "F", "F♯/G♭", "G", "G♯/A♭", "A", "A♯/B♭", "B")

# Pseudo playlist id for the user's saved tracks
LIKED_SONGS_ID = "liked"


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    """
    Split a sequence into consecutive chunks of at most `size` items.

    Args:
        items: The sequence to split. Order is preserved.
        size: Maximum chunk length. Must be positive.

    Returns:
        List of chunks; empty list for an empty input.

    Raises:
        ValueError: If size is not positive.

    Examples:
        chunked([1, 2, 3, 4, 5], 2)  # [[1, 2], [3, 4], [5]]
        chunked([], 100)             # []
    """
    if size < 1:
        raise ValueError(f"Chunk size must be positive, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def extract_spotify_id(url_or_id: str) -> str:
    """
    Extract Spotify ID from a URL or return ID as-is.

    Handles various Spotify URL formats:
        - https://open.spotify.com/playlist/ID
        - https://open.spotify.com/playlist/ID?si=xxx
        - spotify:playlist:ID
        - Just the ID

    Examples:
        extract_spotify_id("https://open.spotify.com/track/abc123?si=xyz")
        # Returns: "abc123"

        extract_spotify_id("spotify:track:abc123")
        # Returns: "abc123"
    """
    url_or_id = url_or_id.strip()

    if url_or_id.startswith("spotify:"):
        return url_or_id.split(":")[-1]

    if "spotify.com" in url_or_id:
        url_or_id = url_or_id.split("?")[0]
        return url_or_id.rstrip("/").split("/")[-1]

    return url_or_id


def extract_playlist_id(url_or_id: str) -> str:
    """
    Extract a playlist ID from a playlist URL, URI or bare ID.

    The pseudo id "liked" (the user's saved tracks) is returned unchanged.

    Raises:
        ValueError: If a URL/URI is given that does not point to a playlist.

    Examples:
        extract_playlist_id("https://open.spotify.com/playlist/37i9dQZF1DXcBWIGoYBM5M")
        # Returns: "37i9dQZF1DXcBWIGoYBM5M"
    """
    value = url_or_id.strip()
    if value.lower() == LIKED_SONGS_ID:
        return LIKED_SONGS_ID

    looks_like_link = value.startswith("spotify:") or "spotify.com" in value
    if looks_like_link and "playlist" not in value:
        raise ValueError(f"Not a playlist URL: {url_or_id}")

    playlist_id = extract_spotify_id(value)
    if not playlist_id:
        raise ValueError(f"Empty playlist id: {url_or_id!r}")
    return playlist_id


def format_duration(duration_ms: int) -> str:
    """
    Format a duration in milliseconds as "M:SS" or "H:MM:SS".

    Examples:
        format_duration(225_000)    # "3:45"
        format_duration(3_750_000)  # "1:02:30"
        format_duration(0)          # "0:00"
    """
    seconds = max(duration_ms, 0) // 1000
    if seconds < 3600:
        return f"{seconds // 60}:{seconds % 60:02d}"
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    return f"{hours}:{minutes:02d}:{seconds % 60:02d}"


def key_name(key: int, mode: int | None = None) -> str:
    """
    Name a Spotify key/mode pair.

    Args:
        key: Pitch class 0-11, or -1 when unknown.
        mode: 1 for major, 0 for minor, anything else to omit.

    Examples:
        key_name(9, 0)   # "A minor"
        key_name(0, 1)   # "C major"
        key_name(-1)     # "Unknown"
    """
    if not 0 <= key < len(PITCH_CLASSES):
        return "Unknown"
    name = PITCH_CLASSES[key]
    if mode == 1:
        return f"{name} major"
    if mode == 0:
        return f"{name} minor"
    return name
