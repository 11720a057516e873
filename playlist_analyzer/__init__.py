"""
playlist-analyzer: Filter and analyze Spotify playlists.

This package fetches a Spotify playlist (or the user's Liked Songs) with
its audio features, filters the tracks by musical and track properties
and computes summary statistics. A filtered selection can be written
back to Spotify as a new playlist.

Architecture:
    spotify/ (network side): Talk to the Spotify Web API
        - Obtain a bearer token (spotipy OAuth), outside the client
        - Fetch playlists and tracks page by page
        - Fetch audio features in chunks of up to 100 ids
        - Retry transient failures and honor rate limits (RetryPolicy)
        - Report incomplete data instead of dropping it silently
        - Create playlists and append tracks in order

    analysis/ (pure side): Filter and aggregate
        - FilterCriteria: optional inclusive ranges and exact matches
        - filter_tracks(): order-preserving, side-effect free
        - aggregate(): counts, feature means, total duration, popularity

Modules:
    core/       - Configuration, logging, diagnostics, exceptions
    spotify/    - Spotify API client, retry policy, models, fetcher
    analysis/   - Filter/aggregate engine
    utils/      - Chunking, id extraction, formatting helpers
    cli.py      - Command-line interface

Usage:
    Command Line:
        playlist-analyzer dashboard
        playlist-analyzer analyze "https://open.spotify.com/playlist/..." --bpm-min 120 --bpm-max 130

    Python API:
        from playlist_analyzer import SpotifyClient, PlaylistFetcher, FilterCriteria, analyze

        fetcher = PlaylistFetcher(SpotifyClient(token))
        snapshot = fetcher.fetch_playlist("37i9dQZF1DXcBWIGoYBM5M")
        result = analyze(snapshot.tracks, FilterCriteria(bpm_min=120, bpm_max=130))
        print(result.stats.count, result.stats.avg_tempo)
"""

__version__ = "0.1.0"

from playlist_analyzer.analysis import (
    AggregateStats,
    AnalysisResult,
    FeaturelessPolicy,
    FilterCriteria,
    aggregate,
    analyze,
    filter_tracks,
)
from playlist_analyzer.spotify import (
    AnnotatedTrack,
    AudioFeatures,
    PlaylistFetcher,
    PlaylistSnapshot,
    RetryPolicy,
    SpotifyClient,
    Track,
)

__all__ = [
    "__version__",
    "SpotifyClient",
    "RetryPolicy",
    "PlaylistFetcher",
    "PlaylistSnapshot",
    "Track",
    "AudioFeatures",
    "AnnotatedTrack",
    "FilterCriteria",
    "FeaturelessPolicy",
    "filter_tracks",
    "aggregate",
    "analyze",
    "AggregateStats",
    "AnalysisResult",
]
