"""
Configuration management for playlist-analyzer.

This module handles loading, validating, and providing access to the
application configuration stored in config.yaml.

The configuration file contains:
    - Spotify credentials (a bearer token, or OAuth app credentials)
    - API client tuning (page size, chunk size, delays, retry budget)
    - Analysis policy (how tracks without audio features are filtered)
    - Optional log directory

Configuration File Location:
    The config.yaml file is looked up in the current working directory
    unless an explicit path is given.

Example config.yaml:
    spotify:
      client_id: "your_client_id_here"
      client_secret: "your_client_secret_here"
      redirect_uri: "http://127.0.0.1:8888/callback"
      access_token: null  # Or set SPOTIFY_ACCESS_TOKEN

    api:
      page_size: 50
      feature_chunk_size: 100
      request_delay: 0.1
      max_attempts: 3
      base_delay: 1.0
      max_rate_limit_retries: 5
      timeout: 10

    analysis:
      featureless_policy: include   # or "exclude"
      fetch_features: true

    output:
      log_directory: "~/.playlist-analyzer"
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from playlist_analyzer.analysis.filters import FeaturelessPolicy
from playlist_analyzer.core.exceptions import ConfigError


# Default configuration file name (in current working directory)
CONFIG_FILENAME = "config.yaml"

# Environment variable that overrides spotify.access_token
ACCESS_TOKEN_ENV = "SPOTIFY_ACCESS_TOKEN"

DEFAULT_REDIRECT_URI = "http://127.0.0.1:8888/callback"

# Spotify Web API hard limits
MAX_PAGE_SIZE = 50
MAX_IDS_PER_REQUEST = 100


@dataclass(frozen=True)
class SpotifyConfig:
    """
    Spotify credentials configuration.

    Either access_token is set (a bearer token obtained elsewhere), or
    client_id/client_secret are set and a token is obtained through the
    OAuth flow at startup.

    Attributes:
        client_id: The Spotify application client ID.
        client_secret: The Spotify application client secret.
        redirect_uri: OAuth redirect URI registered for the application.
        access_token: Pre-obtained bearer token, or None.
    """
    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = DEFAULT_REDIRECT_URI
    access_token: str | None = None

    @property
    def has_oauth_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass(frozen=True)
class ApiConfig:
    """
    Spotify API client tuning.

    Attributes:
        page_size: Items per page for paginated reads (1-50).
        feature_chunk_size: Track ids per audio-features request (1-100).
        request_delay: Seconds to pause between consecutive page/chunk requests.
        max_attempts: Attempts per request for non rate-limit failures.
        base_delay: Base backoff delay in seconds.
        max_rate_limit_retries: Consecutive 429 responses tolerated per request.
        timeout: Per-request timeout in seconds.
    """
    page_size: int = MAX_PAGE_SIZE
    feature_chunk_size: int = MAX_IDS_PER_REQUEST
    request_delay: float = 0.1
    max_attempts: int = 3
    base_delay: float = 1.0
    max_rate_limit_retries: int = 5
    timeout: float = 10.0


@dataclass(frozen=True)
class AnalysisConfig:
    """
    Analysis behavior configuration.

    Attributes:
        featureless_policy: Whether tracks lacking audio features pass
                            (INCLUDE) or fail (EXCLUDE) feature filters.
        fetch_features: Whether to request audio features at all.
    """
    featureless_policy: FeaturelessPolicy = FeaturelessPolicy.INCLUDE
    fetch_features: bool = True


@dataclass(frozen=True)
class OutputConfig:
    """
    Output configuration.

    Attributes:
        log_directory: Directory for log files, or None to log to console only.
    """
    log_directory: Path | None = None


@dataclass(frozen=True)
class Config:
    """
    Complete application configuration.

    Created by load_config() and treated as immutable.

    Example:
        config = load_config()
        print(f"Page size: {config.api.page_size}")
    """
    spotify: SpotifyConfig
    api: ApiConfig = field(default_factory=ApiConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    output: OutputConfig = field(default_factory=OutputConfig)


def load_config(config_path: Path | None = None) -> Config:
    """
    Load and validate configuration from config.yaml.

    Args:
        config_path: Optional explicit path to config file.
                     If None, looks for config.yaml in current working directory.

    Returns:
        Config: A frozen dataclass containing all configuration values.

    Raises:
        ConfigError: If the config file is not found, has invalid YAML syntax,
                     is missing required fields, or contains invalid values.

    Behavior:
        1. Locate config file (explicit path or CWD/config.yaml)
        2. Read and parse YAML content
        3. Validate and extract each section, applying defaults
        4. Apply the SPOTIFY_ACCESS_TOKEN environment override
        5. Create and return frozen Config object
    """
    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILENAME

    if not config_path.exists():
        raise ConfigError(
            f"Configuration file not found: {config_path}",
            details={"file_path": str(config_path)}
        )

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()
    except IOError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML syntax in configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    if raw_config is None:
        raw_config = {}

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": str(config_path)}
        )

    return config_from_dict(raw_config)


def config_from_dict(raw_config: dict[str, Any]) -> Config:
    """
    Build a Config from an already parsed dictionary.

    Raises:
        ConfigError: If any section is invalid.
    """
    for section in ("spotify", "api", "analysis", "output"):
        value = raw_config.get(section)
        if value is not None and not isinstance(value, dict):
            raise ConfigError(
                f"Section '{section}' must be a dictionary",
                details={"section": section}
            )

    return Config(
        spotify=_parse_spotify_config(raw_config.get("spotify") or {}),
        api=_parse_api_config(raw_config.get("api") or {}),
        analysis=_parse_analysis_config(raw_config.get("analysis") or {}),
        output=_parse_output_config(raw_config.get("output") or {}),
    )


def _parse_spotify_config(spotify_section: dict[str, Any]) -> SpotifyConfig:
    """
    Parse and validate the Spotify configuration section.

    The environment variable SPOTIFY_ACCESS_TOKEN takes precedence over
    the access_token field.

    Raises:
        ConfigError: If neither a token nor client credentials are available,
                     or a field has the wrong type.
    """
    values = {}
    for name in ("client_id", "client_secret", "redirect_uri", "access_token"):
        raw = spotify_section.get(name)
        if raw is None:
            continue
        if not isinstance(raw, str):
            raise ConfigError(
                f"'spotify.{name}' must be a string",
                details={"field": f"spotify.{name}"}
            )
        values[name] = raw.strip()

    env_token = os.environ.get(ACCESS_TOKEN_ENV, "").strip()
    if env_token:
        values["access_token"] = env_token

    spotify = SpotifyConfig(
        client_id=values.get("client_id", ""),
        client_secret=values.get("client_secret", ""),
        redirect_uri=values.get("redirect_uri") or DEFAULT_REDIRECT_URI,
        access_token=values.get("access_token") or None,
    )

    if not spotify.access_token and not spotify.has_oauth_credentials:
        raise ConfigError(
            "Configure either 'spotify.access_token' (or "
            f"{ACCESS_TOKEN_ENV}) or both 'spotify.client_id' and "
            "'spotify.client_secret'",
            details={"field": "spotify"}
        )

    return spotify


def _parse_api_config(api_section: dict[str, Any]) -> ApiConfig:
    """
    Parse and validate the API tuning section, applying defaults.

    Raises:
        ConfigError: If a value is out of range.
    """
    defaults = ApiConfig()

    page_size = _int_field(api_section, "page_size", defaults.page_size, 1, MAX_PAGE_SIZE)
    chunk_size = _int_field(
        api_section, "feature_chunk_size", defaults.feature_chunk_size, 1, MAX_IDS_PER_REQUEST
    )
    max_attempts = _int_field(api_section, "max_attempts", defaults.max_attempts, 1, None)
    max_rate_limit_retries = _int_field(
        api_section, "max_rate_limit_retries", defaults.max_rate_limit_retries, 0, None
    )

    request_delay = _float_field(api_section, "request_delay", defaults.request_delay)
    base_delay = _float_field(api_section, "base_delay", defaults.base_delay)
    timeout = _float_field(api_section, "timeout", defaults.timeout)
    if timeout == 0:
        raise ConfigError(
            "'api.timeout' must be greater than zero",
            details={"field": "api.timeout", "value": timeout}
        )

    return ApiConfig(
        page_size=page_size,
        feature_chunk_size=chunk_size,
        request_delay=request_delay,
        max_attempts=max_attempts,
        base_delay=base_delay,
        max_rate_limit_retries=max_rate_limit_retries,
        timeout=timeout,
    )


def _parse_analysis_config(analysis_section: dict[str, Any]) -> AnalysisConfig:
    """Parse the analysis section, applying defaults."""
    raw_policy = analysis_section.get("featureless_policy", FeaturelessPolicy.INCLUDE.value)
    try:
        policy = FeaturelessPolicy(str(raw_policy).strip().lower())
    except ValueError as e:
        allowed = ", ".join(p.value for p in FeaturelessPolicy)
        raise ConfigError(
            f"'analysis.featureless_policy' must be one of: {allowed}",
            details={"field": "analysis.featureless_policy", "value": raw_policy}
        ) from e

    fetch_features = analysis_section.get("fetch_features", True)
    if not isinstance(fetch_features, bool):
        raise ConfigError(
            "'analysis.fetch_features' must be true or false",
            details={"field": "analysis.fetch_features", "value": fetch_features}
        )

    return AnalysisConfig(featureless_policy=policy, fetch_features=fetch_features)


def _parse_output_config(output_section: dict[str, Any]) -> OutputConfig:
    """
    Parse the output section.

    Expands ~ to home directory and converts to absolute Path.
    Does NOT create the directory (that happens in setup_logging).
    """
    raw_dir = output_section.get("log_directory")
    if raw_dir is None:
        return OutputConfig()

    if not isinstance(raw_dir, str) or not raw_dir.strip():
        raise ConfigError(
            "'output.log_directory' must be a non-empty string or null",
            details={"field": "output.log_directory"}
        )

    return OutputConfig(log_directory=Path(raw_dir.strip()).expanduser().resolve())


def _int_field(
    section: dict[str, Any],
    name: str,
    default: int,
    minimum: int,
    maximum: int | None
) -> int:
    value = section.get(name)
    if value is None:
        return default
    # bool is a subclass of int; "true" is not a page size
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(
            f"'api.{name}' must be an integer",
            details={"field": f"api.{name}", "value": value}
        )
    if value < minimum or (maximum is not None and value > maximum):
        if maximum is not None:
            expected = f"between {minimum} and {maximum}"
        else:
            expected = f"at least {minimum}"
        raise ConfigError(
            f"'api.{name}' must be an integer {expected}",
            details={"field": f"api.{name}", "value": value}
        )
    return value


def _float_field(section: dict[str, Any], name: str, default: float) -> float:
    value = section.get(name)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ConfigError(
            f"'api.{name}' must be a non-negative number",
            details={"field": f"api.{name}", "value": value}
        )
    return float(value)
