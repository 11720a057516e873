"""
Spotify Web API client for playlist-analyzer.

This module wraps the spotipy library behind a small set of per-resource
operations, hiding pagination, batching and transient-failure recovery.

Authentication:
    The client is constructed with a bearer token and never changes it.
    Obtaining or refreshing the token is done outside the client (see
    spotify.auth); when a token expires, build a new client with a fresh one.

Request handling:
    Every request goes through the injected RetryPolicy. spotipy is given
    a plain requests.Session so that its own urllib3 retry adapter does not
    intercept 429 responses and drop the Retry-After header.

Sequencing:
    Pages and chunks are requested strictly one after another, with
    RetryPolicy.request_delay between requests. Nothing runs concurrently.
    iter_playlist_tracks() and iter_saved_tracks() are generators: a
    consumer that stops iterating stops the page loop.

Limits (Spotify Web API):
    - Paginated reads: at most 50 items per page
    - Audio features: at most 100 ids per request
    - Adding tracks: at most 100 URIs per request

Usage:
    client = SpotifyClient(access_token)

    user = client.get_current_user()
    result = client.get_all_playlist_tracks("37i9dQZF1DXcBWIGoYBM5M")
    features = client.get_audio_features([t.spotify_id for t in result.tracks])
"""

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator

import requests
import spotipy

from playlist_analyzer.core import diagnostics as events
from playlist_analyzer.core.config import (
    MAX_IDS_PER_REQUEST,
    MAX_PAGE_SIZE,
    ApiConfig,
)
from playlist_analyzer.core.diagnostics import DiagnosticEvent, DiagnosticsSink, logging_sink
from playlist_analyzer.core.exceptions import (
    RateLimitedError,
    UnauthorizedError,
    UpstreamError,
)
from playlist_analyzer.core.logger import get_logger
from playlist_analyzer.spotify.models import (
    AudioFeatures,
    CreatedPlaylist,
    FeatureFetchResult,
    Playlist,
    PlaylistFetchResult,
    PlaylistPage,
    Track,
    TrackFetchResult,
    UserProfile,
)
from playlist_analyzer.spotify.retry import RetryPolicy
from playlist_analyzer.utils import chunked

logger = get_logger(__name__)


# Fields requested for playlist metadata (track list is fetched separately)
PLAYLIST_FIELDS = "id,name,description,owner,images,external_urls,tracks.total,public,collaborative"

# Fields requested for each page of playlist items
PLAYLIST_ITEM_FIELDS = (
    "items(added_at,track(id,name,artists(name),album(id,name,images,release_date),"
    "duration_ms,uri,preview_url,popularity,explicit,is_local,type)),total,limit,offset"
)

# Status answered by the audio-features endpoint to apps without access to it
FEATURES_FORBIDDEN_STATUS = 403


@dataclass
class _PageTally:
    """Counters kept while walking pages."""
    missing: int = 0
    skipped: int = 0
    total: int | None = None


class SpotifyClient:
    """
    Spotify API client with pagination, batching and retry handling.

    Attributes:
        page_size: Items requested per page for paginated reads (<= 50).
        feature_chunk_size: Ids per audio-features request (<= 100).

    Example:
        client = SpotifyClient(token, retry_policy=RetryPolicy(max_attempts=5))
        for track in client.iter_playlist_tracks(playlist_id):
            if track.popularity > 80:
                break  # no further pages are requested
    """

    def __init__(
        self,
        access_token: str,
        retry_policy: RetryPolicy | None = None,
        diagnostics: DiagnosticsSink | None = None,
        page_size: int = MAX_PAGE_SIZE,
        feature_chunk_size: int = MAX_IDS_PER_REQUEST,
        timeout: float = 10.0,
        spotify: spotipy.Spotify | None = None
    ) -> None:
        """
        Initialize the client.

        Args:
            access_token: OAuth bearer token for the Spotify Web API.
            retry_policy: Retry/backoff strategy. Defaults to RetryPolicy().
            diagnostics: Sink for structured events. Defaults to logging.
            page_size: Page size for paginated reads, clamped to 1-50.
            feature_chunk_size: Chunk size for audio features, clamped to 1-100.
            timeout: Per-request timeout in seconds.
            spotify: Preconfigured spotipy.Spotify instance (used by tests).

        Raises:
            UnauthorizedError: If access_token is empty.
        """
        if not access_token:
            raise UnauthorizedError("No Spotify access token provided")

        self._access_token = access_token
        self._diagnostics = diagnostics or logging_sink(logger)
        self._retry = retry_policy or RetryPolicy(diagnostics=self._diagnostics)
        self.page_size = min(max(page_size, 1), MAX_PAGE_SIZE)
        self.feature_chunk_size = min(max(feature_chunk_size, 1), MAX_IDS_PER_REQUEST)

        if spotify is None:
            spotify = spotipy.Spotify(
                auth=access_token,
                requests_session=requests.Session(),
                requests_timeout=timeout,
            )
        self._spotify = spotify

    @classmethod
    def from_config(
        cls,
        access_token: str,
        api_config: ApiConfig,
        diagnostics: DiagnosticsSink | None = None
    ) -> "SpotifyClient":
        """Build a client using the 'api' configuration section."""
        sink = diagnostics or logging_sink(logger)
        return cls(
            access_token,
            retry_policy=RetryPolicy.from_config(api_config, diagnostics=sink),
            diagnostics=sink,
            page_size=api_config.page_size,
            feature_chunk_size=api_config.feature_chunk_size,
            timeout=api_config.timeout,
        )

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    def _request(self, operation: Callable[[], Any], description: str, **kwargs: Any) -> Any:
        return self._retry.execute(
            operation, description, diagnostics=self._diagnostics, **kwargs
        )

    def _emit(self, kind: str, message: str, **data: Any) -> None:
        self._diagnostics(DiagnosticEvent(kind, message, data))

    # =========================================================================
    # User Operations
    # =========================================================================

    def get_current_user(self) -> UserProfile:
        """
        Get the profile of the user owning the access token.

        Raises:
            UnauthorizedError: If the token is missing, invalid or expired.
            UpstreamError: If Spotify keeps failing.
        """
        data = self._request(self._spotify.current_user, "GET /me")
        return UserProfile.from_spotify_api(data)

    def get_user_playlists(self, limit: int = MAX_PAGE_SIZE, offset: int = 0) -> PlaylistPage:
        """
        Get one page of the current user's playlists.

        Args:
            limit: Page size, clamped to Spotify's maximum of 50.
            offset: Index of the first playlist to return.

        Returns:
            PlaylistPage with the playlists and Spotify's total count.
            Looping over pages is the caller's job (or use get_all_user_playlists).
        """
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        data = self._get_playlists_page(limit, offset)
        items = tuple(
            Playlist.from_spotify_api(item) for item in data.get("items") or [] if item
        )
        return PlaylistPage(
            items=items,
            total=data.get("total", len(items)),
            limit=limit,
            offset=offset,
        )

    def _get_playlists_page(self, limit: int, offset: int) -> dict[str, Any]:
        return self._request(
            lambda: self._spotify.current_user_playlists(limit=limit, offset=offset),
            f"GET /me/playlists (offset {offset})"
        )

    def get_all_user_playlists(self) -> PlaylistFetchResult:
        """
        Get every playlist of the current user, page by page.

        Same paging protocol as get_all_playlist_tracks(): the page loop ends
        on a short raw page, null entries are counted as skipped, and a page
        failing after the total is known is counted as missing.

        Raises:
            UnauthorizedError: If the token is rejected.
            UpstreamError / RateLimitedError: If the first page cannot be fetched.
        """
        label = "playlists"
        tally = _PageTally()
        playlists = []

        for item in self._walk_pages(self._get_playlists_page, label, tally):
            if not isinstance(item, dict) or not item.get("id"):
                tally.skipped += 1
                continue
            playlists.append(Playlist.from_spotify_api(item))

        if tally.missing:
            self._emit(
                events.PARTIAL_RESULT,
                f"{label}: {tally.missing} playlists could not be fetched",
                label=label, missing=tally.missing, fetched=len(playlists),
            )

        return PlaylistFetchResult(
            playlists=tuple(playlists),
            missing=tally.missing,
            skipped=tally.skipped,
            total=tally.total,
        )

    # =========================================================================
    # Playlist Operations
    # =========================================================================

    def get_playlist(self, playlist_id: str) -> Playlist:
        """
        Get playlist metadata.

        The embedded track list Spotify returns here is truncated for long
        playlists, so it is not requested at all; use get_all_playlist_tracks().

        Raises:
            UpstreamError: If the playlist cannot be fetched (404 included).
        """
        data = self._request(
            lambda: self._spotify.playlist(playlist_id, fields=PLAYLIST_FIELDS),
            f"GET /playlists/{playlist_id}"
        )
        return Playlist.from_spotify_api(data)

    def get_playlist_tracks(
        self,
        playlist_id: str,
        limit: int = MAX_PAGE_SIZE,
        offset: int = 0
    ) -> dict[str, Any]:
        """
        Get one raw page of playlist items.

        Returns:
            Dictionary with 'items' (each with 'added_at' and 'track'),
            'total', 'limit' and 'offset'.
        """
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        return self._request(
            lambda: self._spotify.playlist_items(
                playlist_id,
                fields=PLAYLIST_ITEM_FIELDS,
                limit=limit,
                offset=offset,
                additional_types=("track",),
            ),
            f"GET /playlists/{playlist_id}/tracks (offset {offset})"
        )

    def get_saved_tracks(self, limit: int = MAX_PAGE_SIZE, offset: int = 0) -> dict[str, Any]:
        """Get one raw page of the user's saved tracks (Liked Songs)."""
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        return self._request(
            lambda: self._spotify.current_user_saved_tracks(limit=limit, offset=offset),
            f"GET /me/tracks (offset {offset})"
        )

    def iter_playlist_tracks(self, playlist_id: str) -> Iterator[Track]:
        """Yield a playlist's tracks in order, fetching pages lazily."""
        yield from self._iter_tracks(
            lambda limit, offset: self.get_playlist_tracks(playlist_id, limit, offset),
            f"playlist {playlist_id}",
            _PageTally(),
        )

    def iter_saved_tracks(self) -> Iterator[Track]:
        """Yield the user's saved tracks in order, fetching pages lazily."""
        yield from self._iter_tracks(self.get_saved_tracks, "saved tracks", _PageTally())

    def get_all_playlist_tracks(self, playlist_id: str) -> TrackFetchResult:
        """
        Get ALL tracks of a playlist, handling pagination automatically.

        Pages of page_size items are requested at increasing offsets until a
        page comes back with fewer items than requested. Tracks keep the
        order Spotify returned them in.

        Returns:
            TrackFetchResult. `missing` counts items on pages that failed
            after retries once the total was known; `skipped` counts items
            that are not playable tracks (removed, local files, episodes).

        Raises:
            UnauthorizedError: If the token is rejected.
            UpstreamError / RateLimitedError: If the first page cannot be
                fetched (the size of the playlist is then unknown).
        """
        return self._collect_tracks(
            lambda limit, offset: self.get_playlist_tracks(playlist_id, limit, offset),
            f"playlist {playlist_id}",
        )

    def get_all_saved_tracks(self) -> TrackFetchResult:
        """Get ALL of the user's saved tracks. Same protocol as get_all_playlist_tracks()."""
        return self._collect_tracks(self.get_saved_tracks, "saved tracks")

    def _collect_tracks(
        self,
        fetch_page: Callable[[int, int], dict[str, Any]],
        label: str
    ) -> TrackFetchResult:
        tally = _PageTally()
        tracks = tuple(self._iter_tracks(fetch_page, label, tally))

        if tally.missing:
            self._emit(
                events.PARTIAL_RESULT,
                f"{label}: {tally.missing} tracks could not be fetched",
                label=label, missing=tally.missing, fetched=len(tracks),
            )
        if tally.skipped:
            logger.debug(f"{label}: skipped {tally.skipped} non-track items")

        return TrackFetchResult(
            tracks=tracks,
            missing=tally.missing,
            skipped=tally.skipped,
            total=tally.total,
        )

    def _iter_tracks(
        self,
        fetch_page: Callable[[int, int], dict[str, Any]],
        label: str,
        tally: _PageTally
    ) -> Iterator[Track]:
        for item in self._walk_pages(fetch_page, label, tally):
            if not self._is_valid_track(item):
                tally.skipped += 1
                continue
            yield Track.from_spotify_api(item["track"], added_at=item.get("added_at"))

    def _walk_pages(
        self,
        fetch_page: Callable[[int, int], dict[str, Any]],
        label: str,
        tally: _PageTally
    ) -> Iterator[dict[str, Any]]:
        """
        Yield raw items page by page.

        A page that fails after retries is skipped (its items counted as
        missing) when an earlier page told us the total; otherwise the
        failure propagates. Unauthorized always propagates.
        """
        limit = self.page_size
        offset = 0

        while True:
            if offset:
                self._retry.pause()

            try:
                page = fetch_page(limit, offset)
            except (UpstreamError, RateLimitedError) as e:
                if tally.total is None:
                    raise
                lost = max(0, min(limit, tally.total - offset))
                tally.missing += lost
                self._emit(
                    events.PAGE_FAILED,
                    f"{label}: page at offset {offset} failed, {lost} items missing ({e})",
                    label=label, offset=offset, missing=lost,
                )
                offset += limit
                if offset >= tally.total:
                    break
                continue

            items = page.get("items") or []
            if page.get("total") is not None:
                tally.total = page["total"]

            self._emit(
                events.PAGE_FETCHED,
                f"{label}: fetched {len(items)} items at offset {offset}",
                label=label, offset=offset, count=len(items),
            )

            yield from items

            if len(items) < limit:
                break
            offset += limit

    @staticmethod
    def _is_valid_track(track_item: dict[str, Any] | None) -> bool:
        """
        Check if a playlist/saved-tracks item is a usable track.

        Invalid items:
            - None (removed from Spotify)
            - Missing track object
            - Local files (is_local = True)
            - Podcast episodes (type != 'track')
            - Tracks without id
        """
        if not isinstance(track_item, dict):
            return False

        track = track_item.get("track")
        if not isinstance(track, dict):
            return False

        if track.get("is_local", False):
            return False

        if track.get("type", "track") != "track":
            return False

        return bool(track.get("id"))

    # =========================================================================
    # Audio Features
    # =========================================================================

    def get_audio_features(
        self,
        track_ids: Iterable[str],
        chunk_size: int | None = None
    ) -> FeatureFetchResult:
        """
        Get audio features for any number of tracks.

        Ids are split into chunks of at most chunk_size (default
        feature_chunk_size, never above 100) and one request is issued per
        chunk, sequentially.

        Outcomes per id:
            - features: Spotify returned features for it
            - unavailable_ids: Spotify returned null for it, or the endpoint
              is not available to this application
            - failed_ids: its chunk failed after retries

        A 403 answer means the endpoint is closed to this application: the
        remaining ids are reported unavailable, no further chunks are
        requested and endpoint_available is False.

        Raises:
            UnauthorizedError: If the token is rejected.
        """
        ids = list(track_ids)
        size = min(max(chunk_size or self.feature_chunk_size, 1), MAX_IDS_PER_REQUEST)
        chunks = chunked(ids, size)

        features: dict[str, AudioFeatures] = {}
        unavailable: list[str] = []
        failed: list[str] = []
        requests_made = 0

        for index, chunk in enumerate(chunks):
            if index:
                self._retry.pause()

            requests_made += 1
            try:
                response = self._request(
                    lambda: self._spotify.audio_features(chunk),
                    f"GET /audio-features ({len(chunk)} ids)",
                    fail_fast=(FEATURES_FORBIDDEN_STATUS,),
                )
            except UpstreamError as e:
                if e.http_status == FEATURES_FORBIDDEN_STATUS:
                    remaining = [track_id for rest in chunks[index:] for track_id in rest]
                    unavailable.extend(remaining)
                    self._emit(
                        events.FEATURES_UNAVAILABLE,
                        "Audio features endpoint is not available to this application",
                        status=e.http_status, ids=len(remaining),
                    )
                    return FeatureFetchResult(
                        features=features,
                        unavailable_ids=tuple(unavailable),
                        failed_ids=tuple(failed),
                        requests_made=requests_made,
                        endpoint_available=False,
                    )
                failed.extend(chunk)
                self._emit(
                    events.CHUNK_FAILED,
                    f"Audio features chunk {index + 1}/{len(chunks)} failed: {e}",
                    chunk=index, size=len(chunk), status=e.http_status,
                )
                continue
            except RateLimitedError as e:
                failed.extend(chunk)
                self._emit(
                    events.CHUNK_FAILED,
                    f"Audio features chunk {index + 1}/{len(chunks)} failed: {e}",
                    chunk=index, size=len(chunk), status=429,
                )
                continue

            found = self._parse_features(response, set(chunk))
            features.update(found)
            unavailable.extend(track_id for track_id in chunk if track_id not in found)

            self._emit(
                events.CHUNK_FETCHED,
                f"Audio features chunk {index + 1}/{len(chunks)}: "
                f"{len(found)}/{len(chunk)} available",
                chunk=index, size=len(chunk), found=len(found),
            )

        if failed:
            self._emit(
                events.PARTIAL_RESULT,
                f"Audio features could not be fetched for {len(failed)} tracks",
                failed=len(failed), fetched=len(features),
            )

        return FeatureFetchResult(
            features=features,
            unavailable_ids=tuple(unavailable),
            failed_ids=tuple(failed),
            requests_made=requests_made,
        )

    @staticmethod
    def _parse_features(response: Any, requested: set[str]) -> dict[str, AudioFeatures]:
        """Keep non-null entries whose id was requested."""
        if isinstance(response, dict):
            response = response.get("audio_features")

        found: dict[str, AudioFeatures] = {}
        for entry in response or []:
            if not entry or entry.get("id") not in requested:
                continue
            found[entry["id"]] = AudioFeatures.from_spotify_api(entry)
        return found

    # =========================================================================
    # Write Operations
    # =========================================================================

    def create_playlist(
        self,
        user_id: str,
        name: str,
        description: str = "",
        public: bool = False
    ) -> CreatedPlaylist:
        """
        Create an empty playlist owned by user_id.

        Returns:
            CreatedPlaylist with the new playlist's id and external link.
        """
        data = self._request(
            lambda: self._spotify.user_playlist_create(
                user_id, name, public=public, description=description
            ),
            f"POST /users/{user_id}/playlists"
        )
        created = CreatedPlaylist.from_spotify_api(data)
        logger.info(f"Created playlist '{name}' ({created.spotify_id})")
        return created

    def add_tracks_to_playlist(self, playlist_id: str, track_uris: Iterable[str]) -> int:
        """
        Append tracks to a playlist, preserving the given order.

        URIs are sent in chunks of at most 100, each request issued only
        after the previous one succeeded.

        Returns:
            Number of URIs added.

        Raises:
            UpstreamError / RateLimitedError: If a chunk fails after retries.
                details['added'] holds how many URIs were added before it.
            UnauthorizedError: If the token is rejected.
        """
        chunks = chunked(list(track_uris), MAX_IDS_PER_REQUEST)
        added = 0

        for index, chunk in enumerate(chunks):
            if index:
                self._retry.pause()

            try:
                self._request(
                    lambda: self._spotify.playlist_add_items(playlist_id, chunk),
                    f"POST /playlists/{playlist_id}/tracks ({len(chunk)} uris)"
                )
            except (UpstreamError, RateLimitedError) as e:
                e.details.update({"playlist_id": playlist_id, "added": added})
                raise

            added += len(chunk)
            self._emit(
                events.TRACKS_ADDED,
                f"Added {added}/{sum(len(c) for c in chunks)} tracks to {playlist_id}",
                playlist_id=playlist_id, added=added, size=len(chunk),
            )

        return added
