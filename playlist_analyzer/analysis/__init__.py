"""
Filter and aggregate engine.

Pure functions over AnnotatedTrack snapshots:
    - filters: FilterCriteria, FeaturelessPolicy, matches, filter_tracks
    - stats: AggregateStats, aggregate, analyze
"""

from playlist_analyzer.analysis.filters import (
    FeaturelessPolicy,
    FilterCriteria,
    filter_tracks,
    matches,
)
from playlist_analyzer.analysis.stats import (
    AggregateStats,
    AnalysisResult,
    aggregate,
    analyze,
)

__all__ = [
    "FeaturelessPolicy",
    "FilterCriteria",
    "matches",
    "filter_tracks",
    "AggregateStats",
    "AnalysisResult",
    "aggregate",
    "analyze",
]
