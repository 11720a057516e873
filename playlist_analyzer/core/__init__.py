"""
Core module for playlist-analyzer.

This module provides the foundational components used throughout the application:
    - exceptions: Custom exception classes for error handling
    - config: Configuration loading and validation
    - logger: Logging system with console and file outputs
    - diagnostics: Structured events emitted by the API client

Usage:
    from playlist_analyzer.core import (
        Config, load_config,
        setup_logging, get_logger,
        AnalyzerError, ConfigError, SpotifyError
    )
"""

from playlist_analyzer.core.config import (
    AnalysisConfig,
    ApiConfig,
    Config,
    OutputConfig,
    SpotifyConfig,
    load_config,
)
from playlist_analyzer.core.diagnostics import (
    DiagnosticEvent,
    DiagnosticsSink,
    logging_sink,
)
from playlist_analyzer.core.exceptions import (
    AnalyzerError,
    ConfigError,
    RateLimitedError,
    SpotifyError,
    UnauthorizedError,
    UpstreamError,
)
from playlist_analyzer.core.logger import (
    get_logger,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    # Config
    "Config",
    "SpotifyConfig",
    "ApiConfig",
    "AnalysisConfig",
    "OutputConfig",
    "load_config",
    # Diagnostics
    "DiagnosticEvent",
    "DiagnosticsSink",
    "logging_sink",
    # Exceptions
    "AnalyzerError",
    "ConfigError",
    "SpotifyError",
    "UnauthorizedError",
    "RateLimitedError",
    "UpstreamError",
    # Logger
    "setup_logging",
    "get_logger",
    "shutdown_logging",
]
