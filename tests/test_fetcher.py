"""Test PlaylistFetcher: snapshots, enrichment and playlist creation"""

from unittest.mock import Mock

import pytest

from playlist_analyzer.core import diagnostics
from playlist_analyzer.core.exceptions import UpstreamError
from playlist_analyzer.spotify.client import SpotifyClient
from playlist_analyzer.spotify.fetcher import (
    DEFAULT_PLAYLIST_DESCRIPTION,
    PlaylistFetcher,
    PlaylistSnapshot,
)
from playlist_analyzer.spotify.models import (
    AudioFeatures,
    CreatedPlaylist,
    FeatureFetchResult,
    Playlist,
    Track,
    annotate,
)


PLAYLIST_DATA = {
    'id': '37i9dQZF1DXcBWIGoYBM5M',
    'name': 'Today\'s Top Hits',
    'owner': {'id': 'spotify', 'display_name': 'Spotify'},
    'tracks': {'total': 120},
}


@pytest.fixture
def fetcher(client, events):
    return PlaylistFetcher(client, diagnostics=events.append)


class TestFetchPlaylist:
    """Test fetching a playlist into a snapshot"""

    def test_playlist_with_features(self, fetcher, mock_spotify, serve_pages, track_item, features_data):
        """Test the full fetch: metadata, 3 track pages, 2 feature chunks"""
        mock_spotify.playlist.return_value = PLAYLIST_DATA
        requested = serve_pages(mock_spotify.playlist_items, [track_item(i) for i in range(120)])
        mock_spotify.audio_features.side_effect = lambda chunk: [
            features_data(i) if i != 'track0005' else None for i in chunk
        ]

        snapshot = fetcher.fetch_playlist('https://open.spotify.com/playlist/37i9dQZF1DXcBWIGoYBM5M?si=x')

        mock_spotify.playlist.assert_called_once()
        assert mock_spotify.playlist.call_args.args[0] == '37i9dQZF1DXcBWIGoYBM5M'
        assert len(requested) == 3
        assert mock_spotify.audio_features.call_count == 2
        assert snapshot.playlist.name == "Today's Top Hits"
        assert len(snapshot.tracks) == 120
        assert snapshot.tracks_with_features == 119
        assert snapshot.features_unavailable == 1
        assert snapshot.is_complete
        assert fetcher.features_available is True

    def test_without_features(self, fetcher, mock_spotify, serve_pages, track_item):
        mock_spotify.playlist.return_value = PLAYLIST_DATA
        serve_pages(mock_spotify.playlist_items, [track_item(i) for i in range(10)])

        snapshot = fetcher.fetch_playlist('37i9dQZF1DXcBWIGoYBM5M', with_features=False)

        mock_spotify.audio_features.assert_not_called()
        assert snapshot.tracks_with_features == 0
        assert fetcher.features_available is None

    def test_liked_songs(self, fetcher, mock_spotify, serve_pages, track_item):
        """Test that "liked" reads the saved library"""
        serve_pages(mock_spotify.current_user_saved_tracks, [track_item(i) for i in range(30)])

        snapshot = fetcher.fetch_playlist('liked', with_features=False)

        mock_spotify.playlist.assert_not_called()
        assert snapshot.playlist.spotify_id == 'liked'
        assert snapshot.playlist.name == 'Liked Songs'
        assert snapshot.playlist.total_tracks == 30
        assert len(snapshot.tracks) == 30

    def test_not_a_playlist(self, fetcher):
        with pytest.raises(ValueError):
            fetcher.fetch_playlist('https://open.spotify.com/album/abc')

    def test_missing_tracks_reported(self, fetcher, mock_spotify, track_item, spotify_error):
        mock_spotify.playlist.return_value = PLAYLIST_DATA
        items = [track_item(i) for i in range(120)]

        def fetch(*args, limit=50, offset=0, **kwargs):
            if offset == 100:
                raise spotify_error(503)
            return {'items': items[offset:offset + limit], 'total': 120}

        mock_spotify.playlist_items.side_effect = fetch
        snapshot = fetcher.fetch_playlist('37i9dQZF1DXcBWIGoYBM5M', with_features=False)

        assert len(snapshot.tracks) == 100
        assert snapshot.missing_tracks == 20
        assert not snapshot.is_complete


class TestEnrich:
    """Test progressive enrichment and the feature capability check"""

    def _snapshot(self, track_item, count):
        tracks = [Track.from_spotify_api(track_item(i)['track']) for i in range(count)]
        return PlaylistSnapshot(playlist=Playlist(spotify_id='p1', name='Test'), tracks=annotate(tracks))

    def test_enrich_returns_new_snapshot(self, fetcher, mock_spotify, track_item, features_data):
        snapshot = self._snapshot(track_item, 3)
        mock_spotify.audio_features.side_effect = lambda chunk: [features_data(i) for i in chunk]

        enriched = fetcher.enrich(snapshot)

        assert enriched.tracks_with_features == 3
        assert snapshot.tracks_with_features == 0

    def test_only_missing_features_requested(self, fetcher, mock_spotify, track_item, features_data):
        snapshot = self._snapshot(track_item, 3)
        first = AudioFeatures.from_spotify_api(features_data('track0000'))
        snapshot = PlaylistSnapshot(
            playlist=snapshot.playlist,
            tracks=(snapshot.tracks[0].with_features(first),) + snapshot.tracks[1:],
        )
        mock_spotify.audio_features.side_effect = lambda chunk: [features_data(i) for i in chunk]

        fetcher.enrich(snapshot)

        assert mock_spotify.audio_features.call_args.args[0] == ['track0001', 'track0002']

    def test_duplicate_tracks_requested_once(self, fetcher, mock_spotify, track_item, features_data):
        tracks = [Track.from_spotify_api(track_item(i % 2)['track']) for i in range(4)]
        snapshot = PlaylistSnapshot(playlist=Playlist(spotify_id='p1', name='Test'), tracks=annotate(tracks))
        mock_spotify.audio_features.side_effect = lambda chunk: [features_data(i) for i in chunk]

        enriched = fetcher.enrich(snapshot)

        assert mock_spotify.audio_features.call_args.args[0] == ['track0000', 'track0001']
        assert enriched.tracks_with_features == 4

    def test_nothing_to_enrich(self, fetcher, mock_spotify):
        snapshot = PlaylistSnapshot(playlist=Playlist(spotify_id='p1', name='Empty'), tracks=())
        assert fetcher.enrich(snapshot) is snapshot
        mock_spotify.audio_features.assert_not_called()

    def test_capability_remembered(self, fetcher, mock_spotify, track_item, spotify_error, events):
        """Test that after a 403 the endpoint is not asked again"""
        mock_spotify.audio_features.side_effect = spotify_error(403)
        snapshot = self._snapshot(track_item, 5)

        first = fetcher.enrich(snapshot)
        second = fetcher.enrich(snapshot)

        assert mock_spotify.audio_features.call_count == 1
        assert fetcher.features_available is False
        assert first.features_unavailable == 5
        assert second.features_unavailable == 5
        assert second.tracks_with_features == 0
        unavailable = [e for e in events if e.kind == diagnostics.FEATURES_UNAVAILABLE]
        assert len(unavailable) == 2

    def test_failed_chunk_counted(self, events, track_item):
        client = Mock(spec=SpotifyClient)
        client.get_audio_features.return_value = FeatureFetchResult(failed_ids=('track0000', 'track0001'))
        fetcher = PlaylistFetcher(client, diagnostics=events.append)

        enriched = fetcher.enrich(self._snapshot(track_item, 2))

        assert enriched.features_failed == 2
        assert not enriched.is_complete
        assert fetcher.features_available is None


class TestDashboard:
    """Test the dashboard overview"""

    def test_fetch_dashboard(self, fetcher, mock_spotify, serve_pages):
        mock_spotify.current_user.return_value = {'id': 'user1', 'display_name': 'Test User'}
        serve_pages(mock_spotify.current_user_playlists, [{'id': f'p{i}', 'name': f'P{i}'} for i in range(3)])
        mock_spotify.current_user_saved_tracks.return_value = {'items': [], 'total': 321}

        overview = fetcher.fetch_dashboard()

        assert overview.user.spotify_id == 'user1'
        assert [p.spotify_id for p in overview.playlists] == ['p0', 'p1', 'p2']
        assert overview.liked_songs_total == 321
        assert overview.missing_playlists == 0
        mock_spotify.current_user_saved_tracks.assert_called_once_with(limit=1, offset=0)

    def test_dashboard_reports_missing_playlists(self, fetcher, mock_spotify, spotify_error):
        """Test that a failed playlist page shows up as missing playlists"""
        mock_spotify.current_user.return_value = {'id': 'user1', 'display_name': 'Test User'}
        playlists = [{'id': f'p{i}', 'name': f'P{i}'} for i in range(60)]

        def fetch(limit=50, offset=0):
            if offset:
                raise spotify_error(503)
            return {'items': playlists[:limit], 'total': 60}

        mock_spotify.current_user_playlists.side_effect = fetch
        mock_spotify.current_user_saved_tracks.return_value = {'items': [], 'total': 5}

        overview = fetcher.fetch_dashboard()

        assert len(overview.playlists) == 50
        assert overview.missing_playlists == 10


class TestCreatePlaylist:
    """Test writing a selection back to Spotify"""

    def _items(self, track_item, count):
        return annotate(Track.from_spotify_api(track_item(i)['track']) for i in range(count))

    def test_create_from_selection(self, fetcher, mock_spotify, track_item):
        mock_spotify.user_playlist_create.return_value = {'id': 'new1'}
        items = self._items(track_item, 250)

        created = fetcher.create_playlist_from('user1', 'Workout', items)

        assert created == CreatedPlaylist('new1', 'https://open.spotify.com/playlist/new1')
        mock_spotify.user_playlist_create.assert_called_once_with(
            'user1', 'Workout', public=False, description=DEFAULT_PLAYLIST_DESCRIPTION
        )
        sent = [uri for c in mock_spotify.playlist_add_items.call_args_list for uri in c.args[1]]
        assert sent == [item.track.uri for item in items]
        assert mock_spotify.playlist_add_items.call_count == 3

    def test_empty_selection_rejected(self, fetcher, mock_spotify):
        with pytest.raises(ValueError):
            fetcher.create_playlist_from('user1', 'Nothing', [])
        mock_spotify.user_playlist_create.assert_not_called()

    def test_empty_name_rejected(self, fetcher, track_item):
        with pytest.raises(ValueError):
            fetcher.create_playlist_from('user1', '  ', self._items(track_item, 1))

    def test_append_failure_propagates(self, fetcher, mock_spotify, track_item, spotify_error):
        mock_spotify.user_playlist_create.return_value = {'id': 'new1'}
        mock_spotify.playlist_add_items.side_effect = spotify_error(500)
        with pytest.raises(UpstreamError) as exc_info:
            fetcher.create_playlist_from('user1', 'Workout', self._items(track_item, 5))
        assert exc_info.value.details['added'] == 0
