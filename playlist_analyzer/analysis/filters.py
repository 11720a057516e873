"""
Declarative track filtering.

FilterCriteria describes optional constraints; matches() and filter_tracks()
evaluate them against AnnotatedTrack snapshots. Nothing here holds state or
talks to the network: the same snapshot and criteria always give the same
result, so the filters can simply be re-run whenever features arrive.

Constraint groups:
    Feature constraints (need audio features):
        tempo (bpm), energy, danceability, valence ranges; exact key; exact mode

    Track constraints (always evaluated):
        popularity range, duration range, explicit-only / clean-only toggles

Every range bound is optional and inclusive. Bounds are evaluated
independently; a min above its max simply matches nothing.

Tracks without features:
    FeaturelessPolicy.INCLUDE (default): feature constraints are skipped for
        them, only track constraints apply.
    FeaturelessPolicy.EXCLUDE: they are dropped whenever at least one feature
        constraint is set.

Usage:
    criteria = FilterCriteria(bpm_min=120, bpm_max=130, clean_only=True)
    selected = filter_tracks(snapshot, criteria)
"""

from dataclasses import dataclass, fields
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable, Mapping

if TYPE_CHECKING:
    from playlist_analyzer.spotify.models import AnnotatedTrack, AudioFeatures, Track


class FeaturelessPolicy(str, Enum):
    """How feature constraints treat tracks that have no audio features."""
    INCLUDE = "include"
    EXCLUDE = "exclude"


# (criteria field, AudioFeatures attribute, bound) for the range constraints
_FEATURE_RANGES = (
    ("bpm_min", "tempo", "min"),
    ("bpm_max", "tempo", "max"),
    ("energy_min", "energy", "min"),
    ("energy_max", "energy", "max"),
    ("danceability_min", "danceability", "min"),
    ("danceability_max", "danceability", "max"),
    ("valence_min", "valence", "min"),
    ("valence_max", "valence", "max"),
)

_TRACK_RANGES = (
    ("popularity_min", "popularity", "min"),
    ("popularity_max", "popularity", "max"),
    ("duration_min_ms", "duration_ms", "min"),
    ("duration_max_ms", "duration_ms", "max"),
)

# Option names used by the web front end, mapped to field names
_CAMEL_CASE_NAMES = {
    "bpmMin": "bpm_min",
    "bpmMax": "bpm_max",
    "energyMin": "energy_min",
    "energyMax": "energy_max",
    "danceabilityMin": "danceability_min",
    "danceabilityMax": "danceability_max",
    "valenceMin": "valence_min",
    "valenceMax": "valence_max",
    "popularityMin": "popularity_min",
    "popularityMax": "popularity_max",
    "durationMinMs": "duration_min_ms",
    "durationMaxMs": "duration_max_ms",
    "explicitOnly": "explicit_only",
    "nonExplicitOnly": "clean_only",
}


@dataclass(frozen=True)
class FilterCriteria:
    """
    Optional constraints on tracks. None means "no constraint".

    Attributes:
        bpm_min, bpm_max: Tempo range in BPM.
        energy_min, energy_max: Energy range (0-1).
        danceability_min, danceability_max: Danceability range (0-1).
        valence_min, valence_max: Valence range (0-1).
        key: Exact pitch class (0-11).
        mode: Exact mode (1 major, 0 minor).
        popularity_min, popularity_max: Popularity range (0-100).
        duration_min_ms, duration_max_ms: Duration range in milliseconds.
        explicit_only: Keep explicit tracks only.
        clean_only: Keep non-explicit tracks only.
    """

    bpm_min: float | None = None
    bpm_max: float | None = None
    energy_min: float | None = None
    energy_max: float | None = None
    danceability_min: float | None = None
    danceability_max: float | None = None
    valence_min: float | None = None
    valence_max: float | None = None
    key: int | None = None
    mode: int | None = None
    popularity_min: int | None = None
    popularity_max: int | None = None
    duration_min_ms: int | None = None
    duration_max_ms: int | None = None
    explicit_only: bool = False
    clean_only: bool = False

    @property
    def has_feature_constraints(self) -> bool:
        """True if any constraint needs audio features."""
        if self.key is not None or self.mode is not None:
            return True
        return any(getattr(self, name) is not None for name, _, _ in _FEATURE_RANGES)

    @property
    def is_empty(self) -> bool:
        return self == FilterCriteria()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FilterCriteria":
        """
        Build criteria from a mapping of options.

        Accepts field names (bpm_min), the front end's camelCase names
        (bpmMin, durationMaxMs, nonExplicitOnly) and a two-item "bpmRange"
        / "bpm_range". None values are ignored.

        Raises:
            ValueError: On an unknown option, a malformed bpm range, or a bpm
                range given together with bpm min/max bounds.

        Example:
            FilterCriteria.from_dict({"bpmRange": [120, 130], "key": 9})
        """
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}

        given = {name for name, value in data.items() if value is not None}
        if given & {"bpmRange", "bpm_range"} and given & {"bpmMin", "bpmMax", "bpm_min", "bpm_max"}:
            raise ValueError("Use either a bpm range or bpm min/max bounds, not both")

        for name, value in data.items():
            if value is None:
                continue

            if name in ("bpmRange", "bpm_range"):
                try:
                    low, high = value
                except (TypeError, ValueError):
                    raise ValueError(f"{name} must be a [min, max] pair, got {value!r}") from None
                values["bpm_min"] = low
                values["bpm_max"] = high
                continue

            field_name = _CAMEL_CASE_NAMES.get(name, name)
            if field_name not in known:
                raise ValueError(f"Unknown filter option: {name}")
            values[field_name] = value

        return cls(**values)


def _within(value: float, bound: float | None, side: str) -> bool:
    if bound is None:
        return True
    return value >= bound if side == "min" else value <= bound


def _features_match(features: "AudioFeatures", criteria: FilterCriteria) -> bool:
    for name, attribute, side in _FEATURE_RANGES:
        if not _within(getattr(features, attribute), getattr(criteria, name), side):
            return False
    if criteria.key is not None and features.key != criteria.key:
        return False
    if criteria.mode is not None and features.mode != criteria.mode:
        return False
    return True


def _track_matches(track: "Track", criteria: FilterCriteria) -> bool:
    for name, attribute, side in _TRACK_RANGES:
        if not _within(getattr(track, attribute), getattr(criteria, name), side):
            return False
    if criteria.explicit_only and not track.explicit:
        return False
    if criteria.clean_only and track.explicit:
        return False
    return True


def matches(
    item: "AnnotatedTrack",
    criteria: FilterCriteria,
    policy: FeaturelessPolicy = FeaturelessPolicy.INCLUDE
) -> bool:
    """
    Check a single annotated track against criteria.

    Returns:
        True if the track satisfies every set constraint.
    """
    if item.features is not None:
        if not _features_match(item.features, criteria):
            return False
    elif policy is FeaturelessPolicy.EXCLUDE and criteria.has_feature_constraints:
        return False

    return _track_matches(item.track, criteria)


def filter_tracks(
    items: Iterable["AnnotatedTrack"],
    criteria: FilterCriteria,
    policy: FeaturelessPolicy = FeaturelessPolicy.INCLUDE
) -> tuple["AnnotatedTrack", ...]:
    """Return the matching tracks, in input order."""
    return tuple(item for item in items if matches(item, criteria, policy))
