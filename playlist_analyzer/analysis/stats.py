"""
Summary statistics over a set of annotated tracks.

Averages of audio features only count tracks that have features; when
none do, those averages are 0.0. Popularity and duration always count
every track.

Usage:
    result = analyze(snapshot, FilterCriteria(energy_min=0.7))
    print(result.stats.count, result.stats.avg_tempo)
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

from playlist_analyzer.analysis.filters import (
    FeaturelessPolicy,
    FilterCriteria,
    filter_tracks,
)

if TYPE_CHECKING:
    from playlist_analyzer.spotify.models import AnnotatedTrack


@dataclass(frozen=True)
class AggregateStats:
    """
    Statistics of a track set.

    Attributes:
        count: Number of tracks.
        tracks_with_features: Number of tracks that have audio features.
        avg_tempo, avg_energy, avg_danceability, avg_valence: Means over the
            tracks with features (0.0 when there are none).
        total_duration_ms: Sum of all durations.
        avg_popularity: Mean popularity over all tracks (0.0 when empty).
        has_audio_features: True if at least one track has features.
    """

    count: int = 0
    tracks_with_features: int = 0
    avg_tempo: float = 0.0
    avg_energy: float = 0.0
    avg_danceability: float = 0.0
    avg_valence: float = 0.0
    total_duration_ms: int = 0
    avg_popularity: float = 0.0
    has_audio_features: bool = False


@dataclass(frozen=True)
class AnalysisResult:
    """Filtered tracks together with their statistics."""

    tracks: tuple["AnnotatedTrack", ...]
    stats: AggregateStats


def aggregate(items: Iterable["AnnotatedTrack"]) -> AggregateStats:
    """Compute AggregateStats for the given tracks."""
    items = tuple(items)
    if not items:
        return AggregateStats()

    with_features = [item.features for item in items if item.features is not None]
    n_features = len(with_features)

    def mean(attribute: str) -> float:
        if not n_features:
            return 0.0
        return sum(getattr(f, attribute) for f in with_features) / n_features

    return AggregateStats(
        count=len(items),
        tracks_with_features=n_features,
        avg_tempo=mean("tempo"),
        avg_energy=mean("energy"),
        avg_danceability=mean("danceability"),
        avg_valence=mean("valence"),
        total_duration_ms=sum(item.track.duration_ms for item in items),
        avg_popularity=sum(item.track.popularity for item in items) / len(items),
        has_audio_features=n_features > 0,
    )


def analyze(
    items: Iterable["AnnotatedTrack"],
    criteria: FilterCriteria | None = None,
    policy: FeaturelessPolicy = FeaturelessPolicy.INCLUDE
) -> AnalysisResult:
    """Filter the tracks and compute statistics over the result."""
    selected = filter_tracks(items, criteria or FilterCriteria(), policy)
    return AnalysisResult(tracks=selected, stats=aggregate(selected))
