"""Test configuration and fixtures"""

from unittest.mock import Mock

import pytest
import spotipy

from playlist_analyzer.spotify.client import SpotifyClient
from playlist_analyzer.spotify.models import AnnotatedTrack, AudioFeatures, Track
from playlist_analyzer.spotify.retry import RetryPolicy


class SleepRecorder:
    """Stand-in for time.sleep that records the requested waits"""

    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)

    @property
    def total(self):
        return sum(self.calls)


def _track_item(index, **overrides):
    track = {
        'id': f'track{index:04d}',
        'name': f'Song {index}',
        'artists': [{'name': f'Artist {index}'}],
        'album': {
            'id': f'album{index}',
            'name': f'Album {index}',
            'images': [{'url': f'https://i.scdn.co/image/{index}', 'width': 640, 'height': 640}],
            'release_date': '2020-05-01',
        },
        'duration_ms': 200000,
        'uri': f'spotify:track:track{index:04d}',
        'preview_url': None,
        'popularity': 50,
        'explicit': False,
        'is_local': False,
        'type': 'track',
    }
    track.update(overrides)
    return {'added_at': '2024-01-01T00:00:00Z', 'track': track}


def _features_data(track_id, tempo=120.0, **overrides):
    data = {
        'id': track_id,
        'tempo': tempo,
        'key': 9,
        'mode': 0,
        'energy': 0.5,
        'danceability': 0.5,
        'valence': 0.5,
        'acousticness': 0.1,
        'instrumentalness': 0.0,
        'liveness': 0.1,
        'speechiness': 0.05,
        'loudness': -6.0,
        'time_signature': 4,
    }
    data.update(overrides)
    return data


@pytest.fixture
def track_item():
    """Factory for raw playlist items as returned by Spotify"""
    return _track_item


@pytest.fixture
def features_data():
    """Factory for raw audio-features entries"""
    return _features_data


@pytest.fixture
def spotify_error():
    """Factory for spotipy exceptions with a given HTTP status"""
    def make(status, headers=None, msg='error'):
        return spotipy.SpotifyException(status, -1, msg, headers=headers)
    return make


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
def events():
    """Diagnostic events collected by the client under test"""
    return []


@pytest.fixture
def retry_policy(sleep, events):
    return RetryPolicy(
        max_attempts=3,
        base_delay=1.0,
        request_delay=0.0,
        max_rate_limit_retries=5,
        sleep=sleep,
        diagnostics=events.append,
    )


@pytest.fixture
def mock_spotify():
    """spotipy.Spotify stand-in; tests configure the endpoints they use"""
    return Mock(spec=spotipy.Spotify)


@pytest.fixture
def client(mock_spotify, retry_policy, events):
    return SpotifyClient(
        'test-token',
        retry_policy=retry_policy,
        diagnostics=events.append,
        spotify=mock_spotify,
    )


@pytest.fixture
def serve_pages():
    """
    Configure a paginated spotipy method to serve `items` by limit/offset.

    Returns the list of (limit, offset) pairs requested.
    """
    def configure(method, items, total=None):
        requested = []

        def fetch(*args, limit=50, offset=0, **kwargs):
            requested.append((limit, offset))
            return {
                'items': items[offset:offset + limit],
                'total': len(items) if total is None else total,
                'limit': limit,
                'offset': offset,
            }

        method.side_effect = fetch
        return requested

    return configure


@pytest.fixture
def make_annotated():
    """Factory for AnnotatedTrack objects used by the analysis tests"""
    counter = {'n': 0}

    def make(tempo=None, energy=0.5, danceability=0.5, valence=0.5, key=9, mode=0,
             popularity=50, duration_ms=200000, explicit=False):
        counter['n'] += 1
        track_id = f'track{counter["n"]:04d}'
        track = Track(
            spotify_id=track_id,
            name=f'Song {counter["n"]}',
            artists=('Test Artist',),
            album='Test Album',
            duration_ms=duration_ms,
            uri=f'spotify:track:{track_id}',
            explicit=explicit,
            popularity=popularity,
        )
        features = None
        if tempo is not None:
            features = AudioFeatures(
                spotify_id=track_id,
                tempo=tempo,
                key=key,
                mode=mode,
                energy=energy,
                danceability=danceability,
                valence=valence,
            )
        return AnnotatedTrack(track=track, features=features)

    return make
