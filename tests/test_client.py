"""Test the Spotify API client: pagination, batching, writes and failures"""

from unittest.mock import call

import pytest
import requests

from playlist_analyzer.core import diagnostics
from playlist_analyzer.core.exceptions import (
    RateLimitedError,
    UnauthorizedError,
    UpstreamError,
)
from playlist_analyzer.spotify.client import SpotifyClient
from playlist_analyzer.spotify.retry import RetryPolicy


def kinds(events):
    return [event.kind for event in events]


class TestConstruction:
    """Test client construction"""

    def test_empty_token_rejected(self, mock_spotify):
        """Test that a client cannot be built without a token"""
        with pytest.raises(UnauthorizedError):
            SpotifyClient('', spotify=mock_spotify)

    def test_page_and_chunk_sizes_clamped(self, mock_spotify):
        """Test that sizes above Spotify's limits are clamped"""
        client = SpotifyClient('token', page_size=500, feature_chunk_size=1000, spotify=mock_spotify)
        assert client.page_size == 50
        assert client.feature_chunk_size == 100

    def test_builds_spotipy_with_plain_session(self):
        """Test that a real spotipy client is created when none is injected"""
        client = SpotifyClient('token', timeout=7)
        spotify = client._spotify
        assert spotify._auth == 'token'
        assert spotify.requests_timeout == 7
        assert isinstance(spotify._session, requests.Session)


class TestUserEndpoints:
    """Test profile and playlist listing"""

    def test_get_current_user(self, client, mock_spotify):
        """Test that the profile is parsed"""
        mock_spotify.current_user.return_value = {
            'id': 'user1', 'display_name': 'Test User', 'email': 'u@example.com', 'images': []
        }
        user = client.get_current_user()
        assert user.spotify_id == 'user1'
        assert user.display_name == 'Test User'

    def test_get_current_user_unauthorized(self, client, mock_spotify, spotify_error, sleep):
        """Test that 401 surfaces immediately without retries"""
        mock_spotify.current_user.side_effect = spotify_error(401)
        with pytest.raises(UnauthorizedError):
            client.get_current_user()
        assert mock_spotify.current_user.call_count == 1
        assert sleep.calls == []

    def test_get_user_playlists_clamps_limit(self, client, mock_spotify):
        """Test that the page size sent to Spotify never exceeds 50"""
        mock_spotify.current_user_playlists.return_value = {
            'items': [{'id': 'p1', 'name': 'One', 'tracks': {'total': 3}}, None],
            'total': 1,
        }
        page = client.get_user_playlists(limit=80, offset=0)
        mock_spotify.current_user_playlists.assert_called_once_with(limit=50, offset=0)
        assert [p.spotify_id for p in page.items] == ['p1']
        assert page.total == 1
        assert page.limit == 50

    def test_get_all_user_playlists(self, client, mock_spotify, serve_pages):
        """Test that every playlist page is fetched"""
        items = [{'id': f'p{i}', 'name': f'Playlist {i}'} for i in range(73)]
        requested = serve_pages(mock_spotify.current_user_playlists, items)
        result = client.get_all_user_playlists()
        assert len(result.playlists) == 73
        assert result.is_complete
        assert result.total == 73
        assert requested == [(50, 0), (50, 50)]

    def test_null_playlist_does_not_end_listing(self, client, mock_spotify, serve_pages):
        """Test that a null entry on a full page does not stop the page loop"""
        items = [{'id': f'p{i}', 'name': f'Playlist {i}'} for i in range(80)]
        items[10] = None
        requested = serve_pages(mock_spotify.current_user_playlists, items)

        result = client.get_all_user_playlists()

        assert requested == [(50, 0), (50, 50)]
        assert len(result.playlists) == 79
        assert result.skipped == 1
        assert result.playlists[-1].spotify_id == 'p79'

    def test_failed_playlist_page_counted_as_missing(self, client, mock_spotify, spotify_error, events):
        """Test that playlists already fetched are kept when a later page fails"""
        items = [{'id': f'p{i}', 'name': f'Playlist {i}'} for i in range(80)]

        def fetch(limit=50, offset=0):
            if offset == 50:
                raise spotify_error(502)
            return {'items': items[offset:offset + limit], 'total': 80}

        mock_spotify.current_user_playlists.side_effect = fetch

        result = client.get_all_user_playlists()

        assert len(result.playlists) == 50
        assert result.missing == 30
        assert not result.is_complete
        assert mock_spotify.current_user_playlists.call_count == 1 + 3
        assert diagnostics.PAGE_FAILED in kinds(events)
        assert diagnostics.PARTIAL_RESULT in kinds(events)

    def test_first_playlist_page_failure_raises(self, client, mock_spotify, spotify_error):
        mock_spotify.current_user_playlists.side_effect = spotify_error(500)
        with pytest.raises(UpstreamError):
            client.get_all_user_playlists()


class TestPagination:
    """Test paginated track fetching"""

    def test_120_tracks_three_pages(self, client, mock_spotify, serve_pages, track_item, events):
        """Test that 120 tracks take pages of 50, 50 and 20"""
        items = [track_item(i) for i in range(120)]
        requested = serve_pages(mock_spotify.playlist_items, items)

        result = client.get_all_playlist_tracks('playlist1')

        assert requested == [(50, 0), (50, 50), (50, 100)]
        assert len(result.tracks) == 120
        assert result.is_complete
        assert result.total == 120
        page_sizes = [e.data['count'] for e in events if e.kind == diagnostics.PAGE_FETCHED]
        assert page_sizes == [50, 50, 20]

    @pytest.mark.parametrize('count,expected_requests', [(0, 1), (50, 2), (51, 2), (100, 3)])
    def test_request_count(self, client, mock_spotify, serve_pages, track_item, count, expected_requests):
        """Test the number of page requests around page boundaries"""
        items = [track_item(i) for i in range(count)]
        requested = serve_pages(mock_spotify.playlist_items, items)
        result = client.get_all_playlist_tracks('playlist1')
        assert len(requested) == expected_requests
        assert len(result.tracks) == count

    def test_order_preserved(self, client, mock_spotify, serve_pages, track_item):
        """Test that tracks keep Spotify's order across pages"""
        items = [track_item(i) for i in range(75)]
        serve_pages(mock_spotify.playlist_items, items)
        result = client.get_all_playlist_tracks('playlist1')
        assert [t.spotify_id for t in result.tracks] == [f'track{i:04d}' for i in range(75)]

    def test_invalid_items_skipped(self, client, mock_spotify, serve_pages, track_item):
        """Test that removed, local and episode items are skipped and counted"""
        items = [
            track_item(0),
            {'added_at': None, 'track': None},
            track_item(1, is_local=True),
            track_item(2, type='episode'),
            track_item(3, id=None),
            None,
            track_item(4),
        ]
        serve_pages(mock_spotify.playlist_items, items)
        result = client.get_all_playlist_tracks('playlist1')
        assert [t.spotify_id for t in result.tracks] == ['track0000', 'track0004']
        assert result.skipped == 5

    def test_page_delay_between_requests(self, mock_spotify, serve_pages, track_item, sleep, events):
        """Test that the inter-request delay separates page requests"""
        policy = RetryPolicy(request_delay=0.25, sleep=sleep, diagnostics=events.append)
        client = SpotifyClient('token', retry_policy=policy, diagnostics=events.append, spotify=mock_spotify)
        serve_pages(mock_spotify.playlist_items, [track_item(i) for i in range(120)])
        client.get_all_playlist_tracks('playlist1')
        assert sleep.calls == [0.25, 0.25]

    def test_iterator_stops_early(self, client, mock_spotify, serve_pages, track_item):
        """Test that a consumer that stops iterating stops the page loop"""
        requested = serve_pages(mock_spotify.playlist_items, [track_item(i) for i in range(200)])
        first = []
        for track in client.iter_playlist_tracks('playlist1'):
            first.append(track)
            if len(first) == 10:
                break
        assert requested == [(50, 0)]

    def test_saved_tracks_use_same_protocol(self, client, mock_spotify, serve_pages, track_item):
        """Test that Liked Songs are paginated the same way"""
        requested = serve_pages(mock_spotify.current_user_saved_tracks, [track_item(i) for i in range(60)])
        result = client.get_all_saved_tracks()
        assert requested == [(50, 0), (50, 50)]
        assert len(result.tracks) == 60

    def test_failed_page_counted_as_missing(self, client, mock_spotify, track_item, spotify_error, events):
        """Test that a page failing after retries is reported, not dropped silently"""
        items = [track_item(i) for i in range(120)]

        def fetch(*args, limit=50, offset=0, **kwargs):
            if offset == 50:
                raise spotify_error(500)
            return {'items': items[offset:offset + limit], 'total': 120}

        mock_spotify.playlist_items.side_effect = fetch
        result = client.get_all_playlist_tracks('playlist1')

        assert len(result.tracks) == 70
        assert result.missing == 50
        assert not result.is_complete
        assert diagnostics.PAGE_FAILED in kinds(events)
        assert diagnostics.PARTIAL_RESULT in kinds(events)

    def test_first_page_failure_propagates(self, client, mock_spotify, spotify_error):
        """Test that a failing first page raises, since the size is unknown"""
        mock_spotify.playlist_items.side_effect = spotify_error(404, msg='Not found')
        with pytest.raises(UpstreamError) as exc_info:
            client.get_all_playlist_tracks('missing')
        assert exc_info.value.http_status == 404
        assert mock_spotify.playlist_items.call_count == 3

    def test_unauthorized_mid_fetch_propagates(self, client, mock_spotify, track_item, spotify_error):
        """Test that 401 on a later page is never swallowed"""
        items = [track_item(i) for i in range(120)]

        def fetch(*args, limit=50, offset=0, **kwargs):
            if offset:
                raise spotify_error(401)
            return {'items': items[:limit], 'total': 120}

        mock_spotify.playlist_items.side_effect = fetch
        with pytest.raises(UnauthorizedError):
            client.get_all_playlist_tracks('playlist1')


class TestAudioFeatures:
    """Test batched audio-feature lookups"""

    def test_120_ids_two_chunks(self, client, mock_spotify, features_data):
        """Test that 120 ids take requests of 100 and 20"""
        ids = [f'track{i:04d}' for i in range(120)]
        mock_spotify.audio_features.side_effect = lambda chunk: [features_data(i) for i in chunk]

        result = client.get_audio_features(ids)

        sizes = [len(c.args[0]) for c in mock_spotify.audio_features.call_args_list]
        assert sizes == [100, 20]
        assert result.requests_made == 2
        assert set(result.features) == set(ids)
        assert result.is_complete

    @pytest.mark.parametrize('count,chunk_size,expected', [(0, 100, 0), (100, 100, 1), (101, 100, 2), (45, 20, 3)])
    def test_request_count(self, client, mock_spotify, features_data, count, chunk_size, expected):
        """Test that exactly ceil(N / chunk) requests are made"""
        ids = [f'track{i:04d}' for i in range(count)]
        mock_spotify.audio_features.side_effect = lambda chunk: [features_data(i) for i in chunk]
        result = client.get_audio_features(ids, chunk_size=chunk_size)
        assert mock_spotify.audio_features.call_count == expected
        assert result.requests_made == expected

    def test_chunk_size_capped_at_100(self, client, mock_spotify, features_data):
        """Test that a larger chunk size never exceeds Spotify's limit"""
        ids = [f'track{i:04d}' for i in range(150)]
        mock_spotify.audio_features.side_effect = lambda chunk: [features_data(i) for i in chunk]
        client.get_audio_features(ids, chunk_size=500)
        assert [len(c.args[0]) for c in mock_spotify.audio_features.call_args_list] == [100, 50]

    def test_null_entries_unavailable(self, client, mock_spotify, features_data):
        """Test that null entries are reported unavailable, not as errors"""
        mock_spotify.audio_features.return_value = [features_data('a'), None, features_data('c')]
        result = client.get_audio_features(['a', 'b', 'c'])
        assert set(result.features) == {'a', 'c'}
        assert result.unavailable_ids == ('b',)
        assert result.failed_ids == ()
        assert result.is_complete

    def test_only_requested_ids_returned(self, client, mock_spotify, features_data):
        """Test that entries for ids that were not requested are ignored"""
        mock_spotify.audio_features.return_value = [features_data('a'), features_data('zzz')]
        result = client.get_audio_features(['a'])
        assert set(result.features) == {'a'}

    def test_failed_chunk_does_not_abort(self, client, mock_spotify, features_data, spotify_error, events):
        """Test that a chunk failing after retries is recorded and others continue"""
        ids = [f'track{i:04d}' for i in range(250)]
        calls = {'n': 0}

        def fetch(chunk):
            calls['n'] += 1
            if chunk[0] == 'track0100':
                raise spotify_error(502)
            return [features_data(i) for i in chunk]

        mock_spotify.audio_features.side_effect = fetch
        result = client.get_audio_features(ids)

        assert len(result.features) == 150
        assert len(result.failed_ids) == 100
        assert result.failed_ids[0] == 'track0100'
        assert not result.is_complete
        assert calls['n'] == 1 + 3 + 1
        assert diagnostics.CHUNK_FAILED in kinds(events)

    def test_forbidden_marks_endpoint_unavailable(self, client, mock_spotify, spotify_error, sleep, events):
        """Test that 403 stops feature requests and marks every id unavailable"""
        ids = [f'track{i:04d}' for i in range(250)]
        mock_spotify.audio_features.side_effect = spotify_error(403)

        result = client.get_audio_features(ids)

        assert mock_spotify.audio_features.call_count == 1
        assert not result.endpoint_available
        assert len(result.unavailable_ids) == 250
        assert result.failed_ids == ()
        assert result.features == {}
        assert sleep.calls == []
        assert diagnostics.FEATURES_UNAVAILABLE in kinds(events)


class TestWrites:
    """Test playlist creation and track appends"""

    def test_create_playlist(self, client, mock_spotify):
        """Test that creation returns id and external link"""
        mock_spotify.user_playlist_create.return_value = {
            'id': 'new1', 'external_urls': {'spotify': 'https://open.spotify.com/playlist/new1'}
        }
        created = client.create_playlist('user1', 'Workout', description='Fast songs')
        mock_spotify.user_playlist_create.assert_called_once_with(
            'user1', 'Workout', public=False, description='Fast songs'
        )
        assert created.spotify_id == 'new1'
        assert created.external_url == 'https://open.spotify.com/playlist/new1'

    def test_250_uris_three_ordered_requests(self, client, mock_spotify):
        """Test that 250 URIs are appended as 100, 100, 50 in order"""
        uris = [f'spotify:track:t{i:03d}' for i in range(250)]

        added = client.add_tracks_to_playlist('new1', uris)

        assert added == 250
        assert mock_spotify.playlist_add_items.call_args_list == [
            call('new1', uris[:100]),
            call('new1', uris[100:200]),
            call('new1', uris[200:]),
        ]

    def test_no_uris_no_requests(self, client, mock_spotify):
        """Test that an empty list makes no request"""
        assert client.add_tracks_to_playlist('new1', []) == 0
        mock_spotify.playlist_add_items.assert_not_called()

    def test_failed_append_reports_progress(self, client, mock_spotify, spotify_error):
        """Test that a failed chunk stops the append and tells how many were added"""
        uris = [f'spotify:track:t{i:03d}' for i in range(250)]
        responses = [{'snapshot_id': 's1'}] + [spotify_error(500)] * 3
        mock_spotify.playlist_add_items.side_effect = responses

        with pytest.raises(UpstreamError) as exc_info:
            client.add_tracks_to_playlist('new1', uris)

        assert exc_info.value.details['added'] == 100
        assert mock_spotify.playlist_add_items.call_count == 4


class TestRateLimits:
    """Test rate-limit handling through the client"""

    def test_429_once_then_success(self, client, mock_spotify, spotify_error, sleep):
        """Test exactly one retry after waiting at least the Retry-After hint"""
        mock_spotify.current_user.side_effect = [
            spotify_error(429, headers={'Retry-After': '3'}),
            {'id': 'user1', 'display_name': 'Test User'},
        ]

        user = client.get_current_user()

        assert user.spotify_id == 'user1'
        assert mock_spotify.current_user.call_count == 2
        assert len(sleep.calls) == 1
        assert sleep.calls[0] >= 3

    def test_persistent_429_raises(self, client, mock_spotify, spotify_error):
        """Test that rate limiting beyond the budget raises RateLimitedError"""
        mock_spotify.current_user.side_effect = spotify_error(429, headers={'Retry-After': '1'})
        with pytest.raises(RateLimitedError) as exc_info:
            client.get_current_user()
        assert exc_info.value.retry_after == 1.0
        assert mock_spotify.current_user.call_count == 6
