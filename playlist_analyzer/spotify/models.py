"""
Data models for Spotify entities.

This module defines immutable dataclasses representing Spotify objects
like tracks, audio features and playlists, plus the result containers
returned by the API client.

Design Decisions:
    - All dataclasses are frozen (immutable) to prevent accidental modification
    - Fields match Spotify API response structure where possible
    - Optional fields have sensible defaults
    - Audio features are attached to tracks by building new snapshots
      (annotate / merge_features), never by mutating a shared collection

Usage:
    from playlist_analyzer.spotify.models import Track, AudioFeatures, annotate

    tracks = [Track.from_spotify_api(item["track"]) for item in items]
    snapshot = annotate(tracks, features_by_id)
"""

from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping


UNKNOWN_KEY = -1
UNKNOWN_MODE = -1


def _best_image_url(images: list[dict[str, Any]] | None) -> str | None:
    """Return the URL of the largest image, or None."""
    if not images:
        return None
    try:
        best_image = max(
            images,
            key=lambda img: (img.get("width") or 0) * (img.get("height") or 0)
        )
        return best_image.get("url")
    except (ValueError, TypeError):
        return images[0].get("url")


@dataclass(frozen=True)
class Track:
    """
    Immutable representation of a Spotify track.

    Identified by spotify_id within one playlist; the same id may appear in
    several playlists.

    Attributes:
        spotify_id: Unique Spotify track ID (22-character base62 string).
                    Example: "4cOdK2wGLETKBW3PvgPWqT"

        name: Track title as it appears on Spotify.
              Example: "Bohemian Rhapsody"

        artists: All artist names, in Spotify's order.
                 Example: ("Calvin Harris", "Dua Lipa")

        album: Album name.

        album_id: Spotify album ID, or "" if unknown.

        duration_ms: Track duration in milliseconds.

        explicit: Whether the track is marked explicit on Spotify.

        popularity: Spotify popularity score (0-100).

        uri: Playable URI, used when adding the track to a playlist.
             Example: "spotify:track:4cOdK2wGLETKBW3PvgPWqT"

        preview_url: 30-second preview audio URL, if Spotify provides one.

        cover_url: URL of the largest album cover image.

        release_date: Album release date ("1975-11-21" or just "1975").

        added_at: ISO timestamp of when the track was added to the playlist.
    """

    spotify_id: str
    name: str
    artists: tuple[str, ...]
    album: str
    duration_ms: int
    uri: str
    album_id: str = ""
    explicit: bool = False
    popularity: int = 0
    preview_url: str | None = None
    cover_url: str | None = None
    release_date: str = ""
    added_at: str | None = None

    @classmethod
    def from_spotify_api(
        cls,
        track_data: dict[str, Any],
        added_at: str | None = None
    ) -> "Track":
        """
        Create a Track instance from Spotify API response data.

        Args:
            track_data: The track object from Spotify API (the 'track'
                        field of a playlist or saved-tracks item).
            added_at: Optional ISO timestamp from the item wrapper.

        Returns:
            Track: A new Track instance populated with the extracted data.
        """
        spotify_id = track_data["id"]
        album_info = track_data.get("album") or {}

        return cls(
            spotify_id=spotify_id,
            name=track_data.get("name", ""),
            artists=tuple(a.get("name", "") for a in track_data.get("artists") or []),
            album=album_info.get("name", "Unknown Album"),
            album_id=album_info.get("id") or "",
            duration_ms=int(track_data.get("duration_ms") or 0),
            uri=track_data.get("uri") or f"spotify:track:{spotify_id}",
            explicit=bool(track_data.get("explicit", False)),
            popularity=int(track_data.get("popularity") or 0),
            preview_url=track_data.get("preview_url"),
            cover_url=_best_image_url(album_info.get("images")),
            release_date=album_info.get("release_date") or "",
            added_at=added_at,
        )

    @property
    def artist(self) -> str:
        """Primary artist name (first in the list)."""
        return self.artists[0] if self.artists else "Unknown Artist"

    @property
    def spotify_url(self) -> str:
        return f"https://open.spotify.com/track/{self.spotify_id}"


@dataclass(frozen=True)
class AudioFeatures:
    """
    Immutable audio descriptors Spotify computes for a track.

    Attributes:
        spotify_id: ID of the track these features belong to.
        tempo: Estimated tempo in beats per minute.
        key: Pitch class 0-11, or -1 if no key was detected.
        mode: 1 for major, 0 for minor, -1 if unknown.
        energy, danceability, valence, acousticness, instrumentalness,
        liveness, speechiness: Normalized descriptors in [0, 1].
        loudness: Average loudness in dB (usually negative).
        time_signature: Estimated beats per bar.
    """

    spotify_id: str
    tempo: float
    key: int = UNKNOWN_KEY
    mode: int = UNKNOWN_MODE
    energy: float = 0.0
    danceability: float = 0.0
    valence: float = 0.0
    acousticness: float = 0.0
    instrumentalness: float = 0.0
    liveness: float = 0.0
    speechiness: float = 0.0
    loudness: float = 0.0
    time_signature: int = 4

    @classmethod
    def from_spotify_api(cls, data: dict[str, Any]) -> "AudioFeatures":
        """Create AudioFeatures from one entry of the audio-features response."""
        key = data.get("key")
        mode = data.get("mode")
        return cls(
            spotify_id=data["id"],
            tempo=float(data.get("tempo") or 0.0),
            key=UNKNOWN_KEY if key is None else int(key),
            mode=UNKNOWN_MODE if mode is None else int(mode),
            energy=float(data.get("energy") or 0.0),
            danceability=float(data.get("danceability") or 0.0),
            valence=float(data.get("valence") or 0.0),
            acousticness=float(data.get("acousticness") or 0.0),
            instrumentalness=float(data.get("instrumentalness") or 0.0),
            liveness=float(data.get("liveness") or 0.0),
            speechiness=float(data.get("speechiness") or 0.0),
            loudness=float(data.get("loudness") or 0.0),
            time_signature=int(data.get("time_signature") or 4),
        )

    @property
    def is_major(self) -> bool:
        return self.mode == 1


@dataclass(frozen=True)
class AnnotatedTrack:
    """
    A track paired with its audio features, if any.

    This is the unit the filter/aggregate engine works on. Attaching
    features produces a new AnnotatedTrack.
    """

    track: Track
    features: AudioFeatures | None = None

    @property
    def has_features(self) -> bool:
        return self.features is not None

    def with_features(self, features: AudioFeatures | None) -> "AnnotatedTrack":
        return replace(self, features=features)


def annotate(
    tracks: Iterable[Track],
    features_by_id: Mapping[str, AudioFeatures] | None = None
) -> tuple[AnnotatedTrack, ...]:
    """
    Pair each track with its features by id, preserving track order.

    Tracks without an entry in features_by_id get features=None.
    """
    features_by_id = features_by_id or {}
    return tuple(
        AnnotatedTrack(track=track, features=features_by_id.get(track.spotify_id))
        for track in tracks
    )


def merge_features(
    snapshot: Iterable[AnnotatedTrack],
    features_by_id: Mapping[str, AudioFeatures]
) -> tuple[AnnotatedTrack, ...]:
    """
    Return a new snapshot with additional features attached.

    Features already attached are kept unless features_by_id has a newer
    entry for the same track. The input snapshot is not modified.
    """
    return tuple(
        item.with_features(features_by_id[item.track.spotify_id])
        if item.track.spotify_id in features_by_id
        else item
        for item in snapshot
    )


@dataclass(frozen=True)
class UserProfile:
    """The authenticated Spotify user."""

    spotify_id: str
    display_name: str
    email: str | None = None
    image_url: str | None = None

    @classmethod
    def from_spotify_api(cls, data: dict[str, Any]) -> "UserProfile":
        return cls(
            spotify_id=data["id"],
            display_name=data.get("display_name") or data["id"],
            email=data.get("email"),
            image_url=_best_image_url(data.get("images")),
        )


@dataclass(frozen=True)
class Playlist:
    """
    Immutable representation of a Spotify playlist's metadata.

    Tracks are not part of this model: Spotify truncates embedded track
    lists, so they are always fetched separately with pagination.

    Attributes:
        spotify_id: Unique Spotify playlist ID.
        name: Playlist name.
        description: Playlist description text (may contain HTML).
        owner_id: Spotify user id of the owner.
        owner_name: Display name of the owner.
        cover_url: URL of the largest cover image.
        total_tracks: Track count reported by Spotify.
        public: Whether the playlist is public.
        collaborative: Whether the playlist is collaborative.
    """

    spotify_id: str
    name: str
    description: str = ""
    owner_id: str = ""
    owner_name: str = ""
    cover_url: str | None = None
    total_tracks: int = 0
    public: bool = False
    collaborative: bool = False

    @classmethod
    def from_spotify_api(cls, playlist_data: dict[str, Any]) -> "Playlist":
        """Create a Playlist from a playlist (or simplified playlist) object."""
        owner = playlist_data.get("owner") or {}
        return cls(
            spotify_id=playlist_data.get("id", ""),
            name=playlist_data.get("name", "Unknown Playlist"),
            description=playlist_data.get("description") or "",
            owner_id=owner.get("id", ""),
            owner_name=owner.get("display_name") or owner.get("id", "Unknown"),
            cover_url=_best_image_url(playlist_data.get("images")),
            total_tracks=(playlist_data.get("tracks") or {}).get("total", 0),
            public=bool(playlist_data.get("public")),
            collaborative=bool(playlist_data.get("collaborative")),
        )

    @property
    def spotify_url(self) -> str:
        return f"https://open.spotify.com/playlist/{self.spotify_id}"


@dataclass(frozen=True)
class PlaylistPage:
    """One page of the current user's playlists."""

    items: tuple[Playlist, ...]
    total: int
    limit: int
    offset: int


@dataclass(frozen=True)
class PlaylistFetchResult:
    """
    Result of fetching every playlist of the current user.

    Attributes:
        playlists: Playlists in upstream order.
        missing: Number of playlists on pages that could not be fetched.
        skipped: Number of null entries Spotify returned.
        total: Playlist count reported by Spotify, when known.
    """

    playlists: tuple[Playlist, ...]
    missing: int = 0
    skipped: int = 0
    total: int | None = None

    @property
    def is_complete(self) -> bool:
        return self.missing == 0


@dataclass(frozen=True)
class TrackFetchResult:
    """
    Result of a paginated track fetch.

    Attributes:
        tracks: Valid tracks, in upstream order.
        missing: Number of items on pages that could not be fetched.
        skipped: Number of items that were not playable tracks
                 (removed tracks, local files, podcast episodes).
        total: Item count reported by Spotify, when known.
    """

    tracks: tuple[Track, ...]
    missing: int = 0
    skipped: int = 0
    total: int | None = None

    @property
    def is_complete(self) -> bool:
        return self.missing == 0


@dataclass(frozen=True)
class FeatureFetchResult:
    """
    Result of a batched audio-features lookup.

    Attributes:
        features: Features keyed by track id. Only requested ids appear.
        unavailable_ids: Ids for which Spotify has no features (null entries,
                         or the endpoint is not available to this app).
        failed_ids: Ids whose chunk failed after retries.
        requests_made: Number of HTTP requests issued.
        endpoint_available: False once Spotify refused the endpoint (403).
    """

    features: dict[str, AudioFeatures] = field(default_factory=dict)
    unavailable_ids: tuple[str, ...] = ()
    failed_ids: tuple[str, ...] = ()
    requests_made: int = 0
    endpoint_available: bool = True

    @property
    def is_complete(self) -> bool:
        """True when no chunk failed (unavailable features are not failures)."""
        return not self.failed_ids


@dataclass(frozen=True)
class CreatedPlaylist:
    """A playlist created by the client."""

    spotify_id: str
    external_url: str

    @classmethod
    def from_spotify_api(cls, data: dict[str, Any]) -> "CreatedPlaylist":
        playlist_id = data["id"]
        external_url = (data.get("external_urls") or {}).get(
            "spotify", f"https://open.spotify.com/playlist/{playlist_id}"
        )
        return cls(spotify_id=playlist_id, external_url=external_url)
