import json
from urllib.parse import parse_qs, urlsplit

import pytest
import responses
from responses import matchers

from complement.sync import SyncError, load_sync_data

HS_URL = "http://localhost:8008"
SYNC_URL = HS_URL + "/_matrix/client/r0/sync"


def test_loads_from_disk_without_request(tmp_path):
    cache = tmp_path / "sync_snapshot.json"
    cache.write_bytes(b'{"next_batch":"s1"}')
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        result = load_sync_data(HS_URL, "token", cache)
        assert len(rsps.calls) == 0
    assert result == b'{"next_batch":"s1"}'


def test_fetches_and_writes_cache(tmp_path):
    body = json.dumps({"next_batch": "s1", "rooms": {}}).encode()
    cache = tmp_path / "sync_snapshot.json"
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            SYNC_URL,
            body=body,
            status=200,
            match=[matchers.header_matcher({"Authorization": "Bearer token"})],
        )
        result = load_sync_data(HS_URL, "token", cache)
        assert len(rsps.calls) == 1
    assert result == body
    assert cache.read_bytes() == body


def test_sends_federation_filter(tmp_path):
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, SYNC_URL, body=b"{}", status=200)
        result = load_sync_data(HS_URL, "token", tmp_path / "out.json")
        query = parse_qs(urlsplit(rsps.calls[0].request.url).query)
    assert result == b"{}"
    assert json.loads(query["filter"][0]) == {
        "event_format": "federation",
        "room": {"timeline": {"limit": 50}},
    }


def test_retries_after_failure(tmp_path):
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, SYNC_URL, status=500)
        rsps.add(responses.GET, SYNC_URL, body=b'{"ok":true}', status=200)
        result = load_sync_data(HS_URL, "token", tmp_path / "out.json")
        assert len(rsps.calls) == 2
    assert result == b'{"ok":true}'


def test_gives_up_after_twenty_attempts(tmp_path):
    cache = tmp_path / "out.json"
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, SYNC_URL, status=500)
        with pytest.raises(SyncError):
            load_sync_data(HS_URL, "token", cache)
        assert len(rsps.calls) == 20
    assert not cache.exists()


def test_unreadable_cache_raises(tmp_path):
    with pytest.raises(SyncError):
        load_sync_data(HS_URL, "token", tmp_path)