"""
Command-line interface for playlist-analyzer.

This module implements the CLI using Click, with rich-click for the
help output colors.

Commands:
    playlist-analyzer dashboard                    Profile, playlists, Liked Songs count
    playlist-analyzer analyze <playlist> [filters] Filter a playlist and show statistics
    playlist-analyzer --version                    Show version and exit

Usage:
    # Overview of your library
    playlist-analyzer dashboard

    # Tracks between 120 and 130 BPM, no explicit lyrics
    playlist-analyzer analyze "https://open.spotify.com/playlist/..." --bpm-min 120 --bpm-max 130 --clean

    # Liked Songs, popularity filter only, skip audio features
    playlist-analyzer analyze liked --popularity-min 70 --no-features

    # Save the selection as a new private playlist
    playlist-analyzer analyze <playlist> --energy-min 0.8 --create "Workout"

Configuration:
    The CLI reads config.yaml from the current directory (or --config) with:
    - Spotify credentials: an access token, or client_id/client_secret for OAuth
    - Optional API tuning, analysis policy and log directory

Exit codes:
    0 on success, 1 on any error, 130 when interrupted.
"""

import sys
from pathlib import Path
from typing import Any, Callable, Optional

import rich_click as click
from tqdm import tqdm

# Configure rich-click for better help formatting
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = ""
click.rich_click.MAX_WIDTH = 100
click.rich_click.OPTION_GROUPS = {
    "playlist-analyzer analyze": [
        {
            "name": "Audio Feature Filters",
            "options": [
                "--bpm-min", "--bpm-max", "--energy-min", "--energy-max",
                "--danceability-min", "--danceability-max",
                "--valence-min", "--valence-max", "--key", "--mode",
            ],
        },
        {
            "name": "Track Filters",
            "options": [
                "--popularity-min", "--popularity-max",
                "--duration-min", "--duration-max", "--explicit", "--clean",
            ],
        },
        {
            "name": "Behavior",
            "options": ["--no-features", "--exclude-featureless", "--show"],
        },
        {
            "name": "Create Playlist",
            "options": ["--create", "--description", "--public"],
        },
    ],
}

from playlist_analyzer import __version__
from playlist_analyzer.analysis import (
    AnalysisResult,
    FeaturelessPolicy,
    FilterCriteria,
    analyze as run_analysis,
)
from playlist_analyzer.core import (
    AnalyzerError,
    Config,
    ConfigError,
    SpotifyError,
    UnauthorizedError,
    get_logger,
    load_config,
    setup_logging,
    shutdown_logging,
)
from playlist_analyzer.core import diagnostics as events
from playlist_analyzer.core.diagnostics import DiagnosticEvent, DiagnosticsSink, logging_sink
from playlist_analyzer.core.logger import format_stat_line
from playlist_analyzer.spotify import (
    PlaylistFetcher,
    PlaylistSnapshot,
    SpotifyClient,
    obtain_access_token,
)
from playlist_analyzer.utils import format_duration, key_name

logger = get_logger(__name__)


class ProgressSink:
    """
    Diagnostics sink that drives tqdm progress bars.

    Page and chunk events advance a bar per event kind; every event is
    also forwarded to the wrapped sink.
    """

    _DESCRIPTIONS = {
        events.PAGE_FETCHED: "Items",
        events.CHUNK_FETCHED: "Audio features",
        events.TRACKS_ADDED: "Adding tracks",
    }

    def __init__(self, forward: DiagnosticsSink) -> None:
        self._forward = forward
        self._bars: dict[str, tqdm] = {}

    def __call__(self, event: DiagnosticEvent) -> None:
        if event.kind in self._DESCRIPTIONS:
            bar = self._bars.get(event.kind)
            if bar is None:
                bar = tqdm(desc=self._DESCRIPTIONS[event.kind], unit=" items", leave=False)
                self._bars[event.kind] = bar
            bar.update(event.data.get("count") or event.data.get("size") or 0)
        self._forward(event)

    def close(self) -> None:
        for bar in self._bars.values():
            bar.close()
        self._bars.clear()


@click.group(invoke_without_command=True)
@click.option(
    "--config", "config_path",
    type=click.Path(path_type=Path),
    default=None,
    metavar="<config.yaml>",
    help="Configuration file (default: ./config.yaml)"
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Show debug output on the console"
)
@click.option(
    "--version",
    is_flag=True,
    help="Show version and exit."
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], verbose: bool, version: bool) -> None:
    """
    playlist-analyzer: Filter and analyze Spotify playlists.

    Fetches a playlist with its audio features (tempo, key, energy...),
    filters it by musical and track properties and reports statistics.
    Selections can be saved back to Spotify as a new playlist.

    \b
    BASIC USAGE:
        playlist-analyzer dashboard
        playlist-analyzer analyze <playlist-url> --bpm-min 120 --bpm-max 130
        playlist-analyzer analyze liked --clean --create "Clean favourites"
    """
    if version:
        click.echo(f"playlist-analyzer {__version__}")
        ctx.exit(0)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(0)

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


@cli.command()
@click.pass_context
def dashboard(ctx: click.Context) -> None:
    """Show your profile, playlists and Liked Songs count."""
    _run(ctx.obj, _run_dashboard)


@cli.command()
@click.argument("playlist", metavar="<playlist>")
@click.option("--bpm-min", type=float, default=None, help="Minimum tempo (BPM)")
@click.option("--bpm-max", type=float, default=None, help="Maximum tempo (BPM)")
@click.option("--energy-min", type=click.FloatRange(0, 1), default=None, help="Minimum energy (0-1)")
@click.option("--energy-max", type=click.FloatRange(0, 1), default=None, help="Maximum energy (0-1)")
@click.option("--danceability-min", type=click.FloatRange(0, 1), default=None, help="Minimum danceability (0-1)")
@click.option("--danceability-max", type=click.FloatRange(0, 1), default=None, help="Maximum danceability (0-1)")
@click.option("--valence-min", type=click.FloatRange(0, 1), default=None, help="Minimum valence (0-1)")
@click.option("--valence-max", type=click.FloatRange(0, 1), default=None, help="Maximum valence (0-1)")
@click.option("--key", type=click.IntRange(0, 11), default=None, help="Pitch class, 0 = C ... 11 = B")
@click.option("--mode", type=click.Choice(["major", "minor"]), default=None, help="Major or minor")
@click.option("--popularity-min", type=click.IntRange(0, 100), default=None, help="Minimum popularity (0-100)")
@click.option("--popularity-max", type=click.IntRange(0, 100), default=None, help="Maximum popularity (0-100)")
@click.option("--duration-min", type=click.FloatRange(0), default=None, metavar="SECONDS", help="Minimum duration")
@click.option("--duration-max", type=click.FloatRange(0), default=None, metavar="SECONDS", help="Maximum duration")
@click.option("--explicit", "explicit_only", is_flag=True, help="Explicit tracks only")
@click.option("--clean", "clean_only", is_flag=True, help="Non-explicit tracks only")
@click.option("--no-features", is_flag=True, help="Do not fetch audio features")
@click.option(
    "--exclude-featureless",
    is_flag=True,
    help="Drop tracks without audio features when a feature filter is set"
)
@click.option("--show", type=click.IntRange(0), default=20, show_default=True, help="Tracks to list")
@click.option("--create", "create_name", type=str, default=None, metavar="<name>", help="Save the result as a new playlist")
@click.option("--description", type=str, default=None, help="Description of the created playlist")
@click.option("--public", is_flag=True, help="Make the created playlist public")
@click.pass_context
def analyze(ctx: click.Context, playlist: str, **options: Any) -> None:
    """
    Filter <playlist> and show statistics.

    <playlist> is a playlist URL, URI or id, or "liked" for Liked Songs.
    Every bound is inclusive. Tracks without audio features pass feature
    filters unless --exclude-featureless is given.
    """
    if options["explicit_only"] and options["clean_only"]:
        raise click.UsageError("Cannot use both --explicit and --clean")
    if options["create_name"] is not None and not options["create_name"].strip():
        raise click.UsageError("--create needs a non-empty playlist name")

    criteria = _criteria_from_options(options)
    _run(
        ctx.obj,
        lambda config, fetcher: _run_analyze(config, fetcher, playlist, criteria, options)
    )


def _criteria_from_options(options: dict[str, Any]) -> FilterCriteria:
    """Translate analyze options into FilterCriteria."""
    def to_ms(seconds: float | None) -> int | None:
        return None if seconds is None else int(seconds * 1000)

    mode = options["mode"]
    return FilterCriteria(
        bpm_min=options["bpm_min"],
        bpm_max=options["bpm_max"],
        energy_min=options["energy_min"],
        energy_max=options["energy_max"],
        danceability_min=options["danceability_min"],
        danceability_max=options["danceability_max"],
        valence_min=options["valence_min"],
        valence_max=options["valence_max"],
        key=options["key"],
        mode=None if mode is None else (1 if mode == "major" else 0),
        popularity_min=options["popularity_min"],
        popularity_max=options["popularity_max"],
        duration_min_ms=to_ms(options["duration_min"]),
        duration_max_ms=to_ms(options["duration_max"]),
        explicit_only=options["explicit_only"],
        clean_only=options["clean_only"],
    )


def _run(
    options: dict[str, Any],
    command: Callable[[Config, PlaylistFetcher], None]
) -> None:
    """
    Set up configuration, logging and the Spotify client, then run command.

    Raises:
        SystemExit: On errors (with appropriate exit code).
    """
    progress: ProgressSink | None = None

    try:
        config = _load_configuration(options.get("config_path"))
        setup_logging(config.output.log_directory, verbose=options.get("verbose", False))

        progress = ProgressSink(logging_sink(get_logger("playlist_analyzer.diagnostics")))
        fetcher = _initialize_fetcher(config, progress)

        command(config, fetcher)

    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)

    except UnauthorizedError as e:
        click.echo(f"Spotify authorization error: {e.message}", err=True)
        click.echo(
            "Your access token is invalid or expired. Log in again "
            "(delete the cached token) or set a fresh SPOTIFY_ACCESS_TOKEN.",
            err=True
        )
        logger.debug("Unauthorized", exc_info=True)
        sys.exit(1)

    except SpotifyError as e:
        click.echo(f"Spotify error: {e.message}", err=True)
        if e.is_rate_limit:
            click.echo("Spotify is rate limiting this application. Try again in a few minutes.", err=True)
        logger.error(f"Spotify error: {e}", exc_info=True)
        sys.exit(1)

    except AnalyzerError as e:
        click.echo(f"Error: {e.message}", err=True)
        logger.error(f"Error: {e}", exc_info=True)
        sys.exit(1)

    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        logger.info("Interrupted by user")
        sys.exit(130)

    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        logger.exception("Unexpected error")
        sys.exit(1)

    finally:
        if progress is not None:
            progress.close()
        shutdown_logging()


def _load_configuration(config_path: Path | None) -> Config:
    """
    Load and validate configuration from config.yaml.

    Raises:
        ConfigError: If configuration is invalid or missing.
    """
    return load_config(config_path)


def _initialize_fetcher(config: Config, diagnostics: DiagnosticsSink) -> PlaylistFetcher:
    """
    Obtain a token and build the client and fetcher.

    Raises:
        ConfigError: If no credentials are configured.
        UnauthorizedError: If the OAuth flow fails.
    """
    cache_path = None
    if config.output.log_directory is not None:
        cache_path = config.output.log_directory / ".spotify_token_cache"

    token = obtain_access_token(config.spotify, cache_path=cache_path)
    client = SpotifyClient.from_config(token, config.api, diagnostics=diagnostics)
    return PlaylistFetcher(client, diagnostics=diagnostics)


def _run_dashboard(config: Config, fetcher: PlaylistFetcher) -> None:
    """Print the dashboard overview."""
    overview = fetcher.fetch_dashboard()

    logger.info("=" * 60)
    logger.info(f"SPOTIFY LIBRARY OF {overview.user.display_name.upper()}")
    logger.info("=" * 60)
    logger.info(format_stat_line("Liked Songs", str(overview.liked_songs_total)))
    logger.info(format_stat_line("Playlists", str(len(overview.playlists))))
    if overview.missing_playlists:
        logger.info(format_stat_line("Not fetched", str(overview.missing_playlists)))
    logger.info("-" * 60)
    for playlist in overview.playlists:
        logger.info(f"{playlist.name}  ({playlist.total_tracks} tracks)  {playlist.spotify_id}")
    logger.info("=" * 60)


def _run_analyze(
    config: Config,
    fetcher: PlaylistFetcher,
    playlist: str,
    criteria: FilterCriteria,
    options: dict[str, Any]
) -> None:
    """Fetch, filter and report on a playlist; optionally save the result."""
    with_features = config.analysis.fetch_features and not options["no_features"]
    policy = FeaturelessPolicy.EXCLUDE if options["exclude_featureless"] else config.analysis.featureless_policy

    snapshot = fetcher.fetch_playlist(playlist, with_features=with_features)

    if criteria.is_empty:
        logger.info("No filters given, every track matches")
    elif criteria.has_feature_constraints and snapshot.tracks_with_features == 0:
        if policy is FeaturelessPolicy.EXCLUDE:
            logger.warning("No audio features available: every track is excluded by the feature filters")
        else:
            logger.warning("No audio features available: feature filters have no effect")

    result = run_analysis(snapshot.tracks, criteria, policy)

    _print_tracks(result, options["show"])
    _print_final_stats(snapshot, result)

    if options["create_name"]:
        if not result.tracks:
            logger.warning("No tracks match the filters, playlist not created")
            return
        user = fetcher.client.get_current_user()
        created = fetcher.create_playlist_from(
            user.spotify_id,
            options["create_name"],
            result.tracks,
            description=options["description"],
            public=options["public"],
        )
        logger.info(f"Created playlist: {created.external_url}")


def _print_tracks(result: AnalysisResult, limit: int) -> None:
    """List the first `limit` matching tracks."""
    if not limit or not result.tracks:
        return

    for position, item in enumerate(result.tracks[:limit], start=1):
        track = item.track
        line = f"{position:>3}. {', '.join(track.artists) or track.artist} - {track.name} [{format_duration(track.duration_ms)}]"
        if item.features is not None:
            line += f"  {item.features.tempo:.0f} BPM, {key_name(item.features.key, item.features.mode)}"
        logger.info(line)

    hidden = len(result.tracks) - limit
    if hidden > 0:
        logger.info(f"     ... and {hidden} more")


def _print_final_stats(snapshot: PlaylistSnapshot, result: AnalysisResult) -> None:
    """
    Print the statistics summary.

    Output:
        Matching tracks over total, feature coverage, averages (only when
        audio features are available), total duration, mean popularity and
        any data that could not be fetched.
    """
    stats = result.stats

    logger.info("=" * 60)
    logger.info(f"STATISTICS: {snapshot.playlist.name.upper()}")
    logger.info("=" * 60)
    logger.info(format_stat_line("Matching tracks", f"{stats.count} / {len(snapshot.tracks)}"))
    logger.info(format_stat_line("With features", str(stats.tracks_with_features)))
    if stats.has_audio_features:
        logger.info(format_stat_line("Avg tempo", f"{stats.avg_tempo:.1f} BPM"))
        logger.info(format_stat_line("Avg energy", f"{stats.avg_energy:.2f}"))
        logger.info(format_stat_line("Avg danceability", f"{stats.avg_danceability:.2f}"))
        logger.info(format_stat_line("Avg valence", f"{stats.avg_valence:.2f}"))
    logger.info(format_stat_line("Total duration", format_duration(stats.total_duration_ms)))
    logger.info(format_stat_line("Avg popularity", f"{stats.avg_popularity:.1f}"))
    if snapshot.missing_tracks:
        logger.info(format_stat_line("Not fetched", str(snapshot.missing_tracks)))
    if snapshot.features_failed:
        logger.info(format_stat_line("Features failed", str(snapshot.features_failed)))
    logger.info("=" * 60)


def main() -> None:
    """
    Entry point for the CLI.

    This function is called when running `playlist-analyzer` from the
    command line. It invokes the Click CLI group.
    """
    cli()


if __name__ == "__main__":
    main()
