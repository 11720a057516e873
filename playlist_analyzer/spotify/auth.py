"""
Obtaining a Spotify bearer token.

SpotifyClient never authenticates by itself: it is handed a token. This
module produces one from the configuration, either directly (a token set
in config.yaml or SPOTIFY_ACCESS_TOKEN) or through spotipy's OAuth
Authorization Code flow, which opens a browser on first use and caches
(and refreshes) the token afterwards.

Scopes:
    - playlist-read-private, playlist-read-collaborative: read the user's playlists
    - user-library-read: read Liked Songs
    - playlist-modify-private, playlist-modify-public: create playlists

Usage:
    token = obtain_access_token(config.spotify)
    client = SpotifyClient(token)
"""

from pathlib import Path

from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError

from playlist_analyzer.core.config import SpotifyConfig
from playlist_analyzer.core.exceptions import ConfigError, UnauthorizedError
from playlist_analyzer.core.logger import get_logger

logger = get_logger(__name__)


OAUTH_SCOPES = (
    "playlist-read-private",
    "playlist-read-collaborative",
    "user-library-read",
    "playlist-modify-private",
    "playlist-modify-public",
)


def build_oauth_manager(
    spotify_config: SpotifyConfig,
    cache_path: Path | None = None,
    open_browser: bool = True
) -> SpotifyOAuth:
    """Create the spotipy OAuth manager for the configured app."""
    return SpotifyOAuth(
        client_id=spotify_config.client_id,
        client_secret=spotify_config.client_secret,
        redirect_uri=spotify_config.redirect_uri,
        scope=" ".join(OAUTH_SCOPES),
        cache_path=str(cache_path) if cache_path else None,
        open_browser=open_browser
    )


def obtain_access_token(
    spotify_config: SpotifyConfig,
    cache_path: Path | None = None,
    open_browser: bool = True,
    oauth_manager: SpotifyOAuth | None = None
) -> str:
    """
    Return a bearer token for the Spotify Web API.

    Args:
        spotify_config: The 'spotify' configuration section.
        cache_path: Where spotipy caches the OAuth token.
        open_browser: Open the authorization page automatically.
        oauth_manager: Preconfigured manager (used by tests).

    Raises:
        ConfigError: If neither a token nor OAuth credentials are configured.
        UnauthorizedError: If the OAuth flow fails.
    """
    if spotify_config.access_token:
        logger.debug("Using configured access token")
        return spotify_config.access_token

    if not spotify_config.has_oauth_credentials:
        raise ConfigError(
            "No Spotify access token or OAuth credentials configured",
            details={"section": "spotify"}
        )

    manager = oauth_manager or build_oauth_manager(spotify_config, cache_path, open_browser)

    try:
        token = manager.get_access_token(as_dict=False)
    except SpotifyOauthError as e:
        raise UnauthorizedError(
            f"Spotify authorization failed: {e}",
            details={"error": getattr(e, "error", None)}
        ) from e

    if not token:
        raise UnauthorizedError("Spotify authorization returned no access token")

    logger.debug("Obtained access token via OAuth")
    return token
