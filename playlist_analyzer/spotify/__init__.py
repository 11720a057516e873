"""
Spotify integration for playlist-analyzer.

    - auth: obtaining a bearer token
    - client: SpotifyClient (pagination, batching, retries)
    - retry: RetryPolicy
    - models: Track, AudioFeatures, AnnotatedTrack, Playlist, ...
    - fetcher: PlaylistFetcher (snapshots, enrichment, playlist creation)
"""

from playlist_analyzer.spotify.auth import obtain_access_token
from playlist_analyzer.spotify.client import SpotifyClient
from playlist_analyzer.spotify.fetcher import Dashboard, PlaylistFetcher, PlaylistSnapshot
from playlist_analyzer.spotify.models import (
    AnnotatedTrack,
    AudioFeatures,
    CreatedPlaylist,
    FeatureFetchResult,
    Playlist,
    PlaylistFetchResult,
    PlaylistPage,
    Track,
    TrackFetchResult,
    UserProfile,
    annotate,
    merge_features,
)
from playlist_analyzer.spotify.retry import RetryPolicy

__all__ = [
    "obtain_access_token",
    "SpotifyClient",
    "RetryPolicy",
    "PlaylistFetcher",
    "PlaylistSnapshot",
    "Dashboard",
    "Track",
    "AudioFeatures",
    "AnnotatedTrack",
    "Playlist",
    "PlaylistPage",
    "PlaylistFetchResult",
    "UserProfile",
    "CreatedPlaylist",
    "TrackFetchResult",
    "FeatureFetchResult",
    "annotate",
    "merge_features",
]
