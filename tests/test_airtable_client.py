"""Unit tests for AirtableClient."""
import json
from datetime import datetime, timezone
from unittest.mock import Mock
from urllib.parse import parse_qs, urlparse

import pytest
import requests
import responses

from processor.fingerprint import generate_fingerprint
from processor.models import Event
from storage.airtable_client import AirtableClient

TABLE_URL = "https://api.airtable.com/v0/appTEST/RawEvents"
META_URL = "https://api.airtable.com/v0/meta/bases/appTEST/tables"


def make_event(index, title=None, source='West Islip Public Library'):
    title = f"Event {index}" if title is None else title
    start_raw = f"Aug {index % 28 + 1}"
    return Event(
        title=title,
        description=f"Description {index}",
        start_raw=start_raw,
        start_resolved=datetime(2025, 8, index % 28 + 1),
        location='West Islip Public Library',
        url='',
        category_hint='library',
        source=source,
        fetched_at=datetime(2025, 6, 15, 13, 30, tzinfo=timezone.utc),
        fingerprint=generate_fingerprint(title, start_raw, f"Description {index}", source)
    )


def delete_callback(request):
    ids = parse_qs(urlparse(request.url).query)['records[]']
    return 200, {}, json.dumps({'records': [{'id': i, 'deleted': True} for i in ids]})


def create_callback(request):
    records = json.loads(request.body)['records']
    created = [{'id': f"recNEW{i}", 'fields': r['fields']} for i, r in enumerate(records)]
    return 200, {}, json.dumps({'records': created})


@pytest.fixture
def sleep():
    return Mock()


@pytest.fixture
def client(sleep):
    """Create an AirtableClient with a mocked sleep."""
    return AirtableClient(token='patTEST', base_id='appTEST', sleep=sleep)


class TestAirtableSync:
    """Test cases for the full-replace sync."""

    @responses.activate
    def test_sync_clears_then_inserts_in_batches(self, client, sleep):
        """Test that 12 old rows are deleted before 25 events are inserted."""
        existing = [{'id': f"recOLD{i}", 'fields': {}} for i in range(12)]
        responses.add(responses.GET, TABLE_URL, json={'records': existing}, status=200)
        responses.add_callback(responses.DELETE, TABLE_URL, callback=delete_callback)
        responses.add_callback(responses.POST, TABLE_URL, callback=create_callback)
        events = [make_event(i) for i in range(25)]

        result = client.sync(events)

        assert result.status == 'completed'
        assert result.sent == 25
        assert result.cleared == 12
        assert result.errors == 0
        assert result.skipped == 0

        methods = [call.request.method for call in responses.calls]
        assert methods == ['GET', 'DELETE', 'DELETE', 'POST', 'POST', 'POST']

        delete_sizes = [
            len(parse_qs(urlparse(call.request.url).query)['records[]'])
            for call in responses.calls[1:3]
        ]
        assert delete_sizes == [10, 2]

        posted = [json.loads(call.request.body)['records'] for call in responses.calls[3:]]
        assert [len(batch) for batch in posted] == [10, 10, 5]
        titles = [record['fields']['title_raw'] for batch in posted for record in batch]
        assert titles == [f"Event {i}" for i in range(25)]

        assert [call.args[0] for call in sleep.call_args_list] == [0.2, 0.2, 0.2]

    @responses.activate
    def test_sync_sends_auth_header(self, client):
        """Test that requests carry the bearer token."""
        responses.add(responses.GET, TABLE_URL, json={'records': []}, status=200)
        responses.add_callback(responses.POST, TABLE_URL, callback=create_callback)

        client.sync([make_event(1)])

        assert responses.calls[0].request.headers['Authorization'] == 'Bearer patTEST'

    def test_sync_without_credentials_skipped(self, sleep):
        """Test that missing credentials skip the sync without requests."""
        client = AirtableClient(token=None, base_id='appTEST', sleep=sleep)

        result = client.sync([make_event(1), make_event(2)])

        assert result.status == 'skipped'
        assert result.skipped == 2
        assert result.sent == 0
        assert 'AIRTABLE_TOKEN' in result.message

    @responses.activate
    def test_sync_filters_empty_titles(self, client):
        """Test that blank titles are never sent."""
        responses.add(responses.GET, TABLE_URL, json={'records': []}, status=200)
        responses.add_callback(responses.POST, TABLE_URL, callback=create_callback)

        result = client.sync([make_event(1), make_event(2, title='   ')])

        assert result.sent == 1
        assert result.skipped == 1

    @responses.activate
    def test_missing_table_on_list_treated_as_empty(self, client):
        """Test that a 404 while listing skips the clear step."""
        responses.add(responses.GET, TABLE_URL, json={'error': 'NOT_FOUND'}, status=404)

        assert client.clear_all() == (0, 0)

    @responses.activate
    def test_insert_client_error_not_retried(self, client, sleep):
        """Test that a 4xx batch fails once and is counted."""
        responses.add(responses.POST, TABLE_URL, json={'error': 'INVALID'}, status=422)

        sent, errors = client.insert_events([make_event(1)])

        assert (sent, errors) == (0, 1)
        assert len(responses.calls) == 1
        sleep.assert_not_called()

    @responses.activate
    def test_failed_batch_does_not_stop_later_batches(self, client):
        """Test that later batches are still sent after a failure."""
        responses.add(responses.POST, TABLE_URL, json={'error': 'INVALID'}, status=422)
        responses.add_callback(responses.POST, TABLE_URL, callback=create_callback)

        sent, errors = client.insert_events([make_event(i) for i in range(15)])

        assert (sent, errors) == (5, 1)


class TestListRecords:
    """Test cases for paginated listing."""

    @responses.activate
    def test_follows_offsets(self, client):
        """Test that every page is fetched."""
        responses.add(
            responses.GET, TABLE_URL,
            json={'records': [{'id': 'rec1'}, {'id': 'rec2'}], 'offset': 'itr1'},
            status=200
        )
        responses.add(responses.GET, TABLE_URL, json={'records': [{'id': 'rec3'}]}, status=200)

        records = client.list_records()

        assert [record['id'] for record in records] == ['rec1', 'rec2', 'rec3']
        assert 'offset=itr1' in responses.calls[1].request.url


class TestRequestRetries:
    """Test cases for rate limiting and transient error handling."""

    @responses.activate
    def test_rate_limit_honors_retry_after(self, client, sleep):
        """Test that a 429 waits for the Retry-After header."""
        responses.add(responses.GET, TABLE_URL, status=429, headers={'Retry-After': '5'})
        responses.add(responses.GET, TABLE_URL, json={'records': []}, status=200)

        records = client.list_records()

        assert records == []
        sleep.assert_called_once_with(5.0)

    @responses.activate
    def test_rate_limit_default_wait(self, client, sleep):
        """Test the default wait when Retry-After is missing."""
        responses.add(responses.GET, TABLE_URL, status=429)
        responses.add(responses.GET, TABLE_URL, json={'records': []}, status=200)

        client.list_records()

        sleep.assert_called_once_with(30)

    @responses.activate
    def test_server_error_backs_off(self, client, sleep):
        """Test exponential backoff on 5xx responses."""
        responses.add(responses.GET, TABLE_URL, status=503)
        responses.add(responses.GET, TABLE_URL, status=502)
        responses.add(responses.GET, TABLE_URL, json={'records': []}, status=200)

        client.list_records()

        assert [call.args[0] for call in sleep.call_args_list] == [2, 4]
        assert len(responses.calls) == 3

    @responses.activate
    def test_network_errors_exhaust_attempts(self, client, sleep):
        """Test that network errors are retried, then counted as a failed batch."""
        for _ in range(3):
            responses.add(responses.POST, TABLE_URL, body=requests.ConnectionError("reset"))

        sent, errors = client.insert_events([make_event(1)])

        assert (sent, errors) == (0, 1)
        assert len(responses.calls) == 3
        assert [call.args[0] for call in sleep.call_args_list] == [2, 4]

    def test_backoff_capped(self, client):
        """Test that the backoff never exceeds the cap."""
        assert client._backoff(1) == 2
        assert client._backoff(3) == 8
        assert client._backoff(6) == 10


class TestVerifySetup:
    """Test cases for setup verification."""

    def _fields(self, names):
        return [{'name': name, 'type': 'singleLineText'} for name in names]

    @responses.activate
    def test_verified(self, client):
        """Test a base with the expected table and columns."""
        responses.add(
            responses.GET, META_URL,
            json={'tables': [
                {'name': 'Events', 'fields': []},
                {'name': 'RawEvents', 'fields': self._fields(AirtableClient.REQUIRED_FIELDS)},
            ]},
            status=200
        )
        responses.add(responses.GET, TABLE_URL, json={'records': []}, status=200)

        assert client.verify_setup() is True

    @responses.activate
    def test_missing_table(self, client):
        """Test that a base without RawEvents fails verification."""
        responses.add(responses.GET, META_URL, json={'tables': [{'name': 'Events'}]}, status=200)

        assert client.verify_setup() is False

    @responses.activate
    def test_missing_fields(self, client):
        """Test that missing columns fail verification."""
        responses.add(
            responses.GET, META_URL,
            json={'tables': [{'name': 'RawEvents', 'fields': self._fields(['title_raw', 'hash'])}]},
            status=200
        )

        assert client.verify_setup() is False

    @responses.activate
    def test_unauthorized(self, client):
        """Test that a rejected token fails verification."""
        responses.add(responses.GET, META_URL, json={'error': 'AUTHENTICATION_REQUIRED'}, status=401)

        assert client.verify_setup() is False

    def test_without_credentials(self):
        """Test that verification fails fast without credentials."""
        client = AirtableClient(token='patTEST', base_id=None)

        assert client.verify_setup() is False


class TestEventToFields:
    """Test cases for record field mapping."""

    def test_fields_bounded(self, client):
        """Test that oversized values are cut to the column limits."""
        event = make_event(1, title='T' * 1200, source='')

        fields = client.event_to_fields(event)

        assert len(fields['title_raw']) == 1000
        assert fields['source_name'] == 'Unknown Source'
        assert fields['fetched_at'] == '2025-06-15T13:30:00Z'
        assert len(fields['hash']) == 64

    def test_from_env(self, monkeypatch):
        """Test credentials read from the environment."""
        monkeypatch.setenv('AIRTABLE_TOKEN', 'patENV')
        monkeypatch.setenv('AIRTABLE_BASE_ID', 'appENV')

        client = AirtableClient.from_env()

        assert client.has_credentials
        assert client.table_url == 'https://api.airtable.com/v0/appENV/RawEvents'
