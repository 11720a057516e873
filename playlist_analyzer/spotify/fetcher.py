"""
Playlist fetching and enrichment for playlist-analyzer.

This module sits between the CLI and SpotifyClient: it turns a playlist
reference into a PlaylistSnapshot (metadata + annotated tracks), attaches
audio features, builds the dashboard overview and writes filtered
selections back to Spotify as new playlists.

Workflow:
    1. Resolve the playlist reference (id, URL, URI, or "liked")
    2. Fetch metadata and every track (paginated)
    3. Fetch audio features for the tracks (batched), unless disabled
    4. Return an immutable PlaylistSnapshot

Progressive enrichment:
    Snapshots are never modified. enrich() returns a new snapshot with
    features attached to the tracks that still lacked them; the analysis
    engine is simply re-run on the newest snapshot.

Feature capability:
    Spotify closes the audio-features endpoint to some applications (403).
    The first time that happens the fetcher remembers it and later calls
    skip feature requests entirely, reporting the tracks as unavailable.
"""

from dataclasses import dataclass, replace
from typing import Iterable

from playlist_analyzer.core import diagnostics as events
from playlist_analyzer.core.diagnostics import DiagnosticEvent, DiagnosticsSink, logging_sink
from playlist_analyzer.core.logger import get_logger
from playlist_analyzer.spotify.client import SpotifyClient
from playlist_analyzer.spotify.models import (
    AnnotatedTrack,
    CreatedPlaylist,
    Playlist,
    UserProfile,
    annotate,
    merge_features,
)
from playlist_analyzer.utils import LIKED_SONGS_ID, extract_playlist_id

logger = get_logger(__name__)


DEFAULT_PLAYLIST_DESCRIPTION = "Created with Playlist Analyzer"
LIKED_SONGS_NAME = "Liked Songs"


@dataclass(frozen=True)
class Dashboard:
    """The user's profile, playlists and Liked Songs count."""

    user: UserProfile
    playlists: tuple[Playlist, ...]
    liked_songs_total: int = 0
    missing_playlists: int = 0


@dataclass(frozen=True)
class PlaylistSnapshot:
    """
    A playlist with its tracks at one point in time.

    Attributes:
        playlist: Playlist metadata. For Liked Songs a synthetic Playlist
                  with spotify_id "liked".
        tracks: Annotated tracks in playlist order.
        missing_tracks: Tracks on pages that could not be fetched.
        features_unavailable: Tracks Spotify has no audio features for.
        features_failed: Tracks whose feature request failed.
    """

    playlist: Playlist
    tracks: tuple[AnnotatedTrack, ...]
    missing_tracks: int = 0
    features_unavailable: int = 0
    features_failed: int = 0

    @property
    def tracks_with_features(self) -> int:
        return sum(1 for item in self.tracks if item.has_features)

    @property
    def is_complete(self) -> bool:
        """True if no tracks or feature chunks were lost to errors."""
        return self.missing_tracks == 0 and self.features_failed == 0


class PlaylistFetcher:
    """
    Fetches playlists through a SpotifyClient and builds snapshots.

    Example:
        fetcher = PlaylistFetcher(client)
        snapshot = fetcher.fetch_playlist("https://open.spotify.com/playlist/...")
        result = analyze(snapshot.tracks, criteria)
    """

    def __init__(self, client: SpotifyClient, diagnostics: DiagnosticsSink | None = None) -> None:
        self._client = client
        self._diagnostics = diagnostics or logging_sink(logger)
        self._features_available: bool | None = None

    @property
    def client(self) -> SpotifyClient:
        return self._client

    @property
    def features_available(self) -> bool | None:
        """False once the audio-features endpoint refused us, None until known."""
        return self._features_available

    def fetch_dashboard(self) -> Dashboard:
        """Fetch the current user, all their playlists and the Liked Songs count."""
        user = self._client.get_current_user()
        result = self._client.get_all_user_playlists()
        saved_page = self._client.get_saved_tracks(limit=1)

        logger.debug(f"Dashboard for {user.display_name}: {len(result.playlists)} playlists")
        if result.missing:
            logger.warning(f"{result.missing} playlists could not be fetched")

        return Dashboard(
            user=user,
            playlists=result.playlists,
            liked_songs_total=saved_page.get("total", 0),
            missing_playlists=result.missing,
        )

    def fetch_playlist(self, playlist: str, with_features: bool = True) -> PlaylistSnapshot:
        """
        Fetch a playlist and all its tracks.

        Args:
            playlist: Playlist id, URL or URI, or "liked" for Liked Songs.
            with_features: Also fetch audio features.

        Returns:
            PlaylistSnapshot. Check missing_tracks / features_failed for
            incomplete data.

        Raises:
            ValueError: If playlist is not a playlist reference.
            UnauthorizedError, UpstreamError, RateLimitedError: From the client.
        """
        playlist_id = extract_playlist_id(playlist)

        if playlist_id == LIKED_SONGS_ID:
            result = self._client.get_all_saved_tracks()
            metadata = Playlist(
                spotify_id=LIKED_SONGS_ID,
                name=LIKED_SONGS_NAME,
                total_tracks=result.total if result.total is not None else len(result.tracks),
            )
        else:
            metadata = self._client.get_playlist(playlist_id)
            result = self._client.get_all_playlist_tracks(playlist_id)

        logger.info(f"Fetched {len(result.tracks)} tracks from '{metadata.name}'")
        if result.missing:
            logger.warning(f"{result.missing} tracks of '{metadata.name}' could not be fetched")

        snapshot = PlaylistSnapshot(
            playlist=metadata,
            tracks=annotate(result.tracks),
            missing_tracks=result.missing,
        )

        if with_features:
            snapshot = self.enrich(snapshot)
        return snapshot

    def enrich(self, snapshot: PlaylistSnapshot) -> PlaylistSnapshot:
        """
        Return a new snapshot with features for tracks still lacking them.

        Feature counts on the returned snapshot describe this enrichment
        attempt. The given snapshot is left untouched.
        """
        pending = list(dict.fromkeys(
            item.track.spotify_id for item in snapshot.tracks if not item.has_features
        ))
        if not pending:
            return snapshot

        if self._features_available is False:
            self._diagnostics(DiagnosticEvent(
                events.FEATURES_UNAVAILABLE,
                f"Audio features unavailable, skipping {len(pending)} tracks",
                {"ids": len(pending), "cached": True},
            ))
            return replace(snapshot, features_unavailable=len(pending), features_failed=0)

        result = self._client.get_audio_features(pending)

        if not result.endpoint_available:
            self._features_available = False
            logger.warning("Audio features are not available for this Spotify application")
        elif result.features:
            self._features_available = True

        logger.debug(
            f"Audio features: {len(result.features)} found, "
            f"{len(result.unavailable_ids)} unavailable, {len(result.failed_ids)} failed"
        )

        return replace(
            snapshot,
            tracks=merge_features(snapshot.tracks, result.features),
            features_unavailable=len(result.unavailable_ids),
            features_failed=len(result.failed_ids),
        )

    def create_playlist_from(
        self,
        user_id: str,
        name: str,
        items: Iterable[AnnotatedTrack],
        description: str | None = None,
        public: bool = False
    ) -> CreatedPlaylist:
        """
        Create a playlist containing the given tracks, in the given order.

        Raises:
            ValueError: If name is empty or there are no tracks.
            UpstreamError: If creating the playlist or adding tracks fails.
                On a failed add, details['added'] tells how many were added.
        """
        uris = [item.track.uri for item in items]
        if not name.strip():
            raise ValueError("Playlist name must not be empty")
        if not uris:
            raise ValueError("Cannot create a playlist without tracks")

        created = self._client.create_playlist(
            user_id,
            name,
            description=description or DEFAULT_PLAYLIST_DESCRIPTION,
            public=public,
        )
        added = self._client.add_tracks_to_playlist(created.spotify_id, uris)
        logger.info(f"Added {added} tracks to '{name}'")
        return created
