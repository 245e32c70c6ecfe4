"""Unit tests for Request: URL/params resolution, single retry, store use."""

import os
import sys

# Add the project root to the path to import modules
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent.parent.absolute()
sys.path.append(str(PROJECT_ROOT))

import json
from unittest.mock import MagicMock

import pytest
import requests

from api_endpoints.cache.store import MemoryStore, compute_request_hash
from api_endpoints.core.credentials import StaticTokenCredential
from api_endpoints.core.exceptions import AuthorizationError, ConfigurationError, TransportError
from api_endpoints.core.request import Request
from api_endpoints.throttling.policy import RateLimitPolicy


class DummyHostResponse:
    def __init__(self, status=200, text="{}", headers=None):
        self.status = status
        self.text = text
        self.headers = headers or {}

    def get_content_text(self):
        return self.text

    def get_all_headers(self):
        return self.headers

    def get_response_code(self):
        return self.status


class DummyTransport:
    """Returns queued host responses (the last one repeats) and records every call."""

    def __init__(self, *responses):
        self.responses = list(responses) or [DummyHostResponse()]
        self.calls = []

    def fetch(self, url, options):
        self.calls.append((url, options))
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


class EmptyCredential:
    def resolve_token(self):
        raise AuthorizationError("No authorization")


@pytest.fixture
def slept():
    return []


@pytest.fixture
def policy(slept):
    return RateLimitPolicy(clock=lambda: 1_700_000_000.0, sleeper=slept.append)


class TestConstruction:
    def test_rejects_empty_url(self):
        with pytest.raises(ConfigurationError):
            Request("")

    def test_rejects_unknown_method(self):
        with pytest.raises(ConfigurationError, match="Unsupported HTTP method"):
            Request("https://example.com", method="trace")

    def test_method_normalized(self):
        assert Request("https://example.com", method="GET").method == "get"


class TestUrl:
    def test_no_query_string_when_empty(self):
        request = Request("https://sheets.googleapis.com/v4/spreadsheets/id")
        assert request.url == "https://sheets.googleapis.com/v4/spreadsheets/id"
        assert request.get_url() == request.url

    def test_query_and_fields(self):
        request = Request("https://example.com/items", query={"a": 1})
        request.set_fields("items(id)")
        request.set_fields("nextPageToken")
        assert request.url == "https://example.com/items?a=1&fields=items(id)%2CnextPageToken"
        assert request.fields == ("items(id)", "nextPageToken")

    def test_fields_must_be_non_empty_string(self):
        request = Request("https://example.com")
        with pytest.raises(ConfigurationError):
            request.set_fields("")

    def test_clear_fields_and_query(self):
        request = Request("https://example.com", query={"a": 1})
        request.set_fields("x")
        request.clear_fields()
        request.clear_query()
        assert request.url == "https://example.com"

    def test_add_query_affects_next_url(self):
        request = Request("https://example.com")
        request.add_query({"ids": ["1", "2"]})
        assert request.url == "https://example.com?ids=1&ids=2"
        request.add_query({"ids": "3"})
        assert request.url == "https://example.com?ids=3"


class TestGetParams:
    def test_minimal_params(self):
        url, params = Request("https://example.com").get_params()
        assert url == "https://example.com"
        assert params == {"muteHttpExceptions": True, "method": "get"}

    def test_payload_serialized_only_when_non_empty(self):
        _, params = Request("https://example.com", method="post", payload={"a": 1}).get_params()
        assert json.loads(params["payload"]) == {"a": 1}
        assert params["contentType"] == "application/json"

        _, params = Request("https://example.com", method="post").get_params()
        assert "payload" not in params
        assert "contentType" not in params

    def test_embed_url(self):
        url, params = Request("https://example.com", query={"q": "x"}).get_params(embed_url=True)
        assert params["url"] == url == "https://example.com?q=x"

    def test_bearer_injected_without_mutating_headers(self):
        request = Request("https://example.com", headers={"X-Test": "1"}, credential=StaticTokenCredential("tok"))
        _, params = request.get_params()
        assert params["headers"] == {"X-Test": "1", "Authorization": "Bearer tok"}
        assert request.headers == {"X-Test": "1"}

    def test_add_header(self):
        request = Request("https://example.com")
        request.add_header({"Accept": "application/json"})
        _, params = request.get_params()
        assert params["headers"] == {"Accept": "application/json"}

    def test_missing_token_raises(self):
        request = Request("https://example.com", credential=EmptyCredential())
        with pytest.raises(AuthorizationError):
            request.get_params()


class TestFetch:
    def test_success_single_call(self, policy, slept):
        transport = DummyTransport(DummyHostResponse(200, '{"ok": true}'))
        response = Request("https://example.com", transport=transport, policy=policy).fetch()
        assert response.json == {"ok": True}
        assert len(transport.calls) == 1
        assert slept == []

    def test_always_429_makes_exactly_two_calls(self, policy, slept):
        transport = DummyTransport(DummyHostResponse(429, "slow down"))
        response = Request("https://example.com", transport=transport, policy=policy).fetch()
        assert response.status_code == 429
        assert len(transport.calls) == 2
        assert slept == [10.0]

    def test_429_then_success(self, policy, slept):
        transport = DummyTransport(DummyHostResponse(429), DummyHostResponse(200, "[1]"))
        response = Request("https://example.com", transport=transport, policy=policy).fetch()
        assert response.ok
        assert response.json == [1]
        assert len(transport.calls) == 2

    def test_no_retry_when_disabled(self, policy, slept):
        transport = DummyTransport(DummyHostResponse(429))
        response = Request("https://example.com", transport=transport, policy=policy).fetch(retry_on_rate_limit=False)
        assert response.status_code == 429
        assert len(transport.calls) == 1
        assert slept == []

    def test_authorization_error_not_retried(self, policy):
        transport = DummyTransport()
        request = Request("https://example.com", transport=transport, policy=policy, credential=EmptyCredential())
        with pytest.raises(AuthorizationError):
            request.fetch()
        assert transport.calls == []

    def test_transport_exception_wrapped_with_url(self, policy):
        transport = MagicMock()
        transport.fetch.side_effect = requests.ConnectionError("refused")
        request = Request(
            "https://example.com/a", transport=transport, policy=policy, credential=StaticTokenCredential("secret")
        )
        with pytest.raises(TransportError) as exc_info:
            request.fetch()
        assert exc_info.value.url == "https://example.com/a"
        assert exc_info.value.options["headers"]["Authorization"] == "<redacted>"
        assert "secret" not in str(exc_info.value)

    def test_resolve_returns_json(self, policy):
        transport = DummyTransport(DummyHostResponse(200, '{"a": 1}'))
        assert Request("https://example.com", transport=transport, policy=policy).resolve() == {"a": 1}

    def test_extra_reaches_response(self, policy):
        transport = DummyTransport()
        response = Request("https://example.com", transport=transport, policy=policy, extra={"id": 9}).fetch()
        assert response.extra == {"id": 9}
        assert response.request.extra == {"id": 9}

    def test_headers_sent_to_transport(self, policy):
        transport = DummyTransport()
        Request(
            "https://example.com", transport=transport, policy=policy, credential=StaticTokenCredential("abc")
        ).fetch()
        url, options = transport.calls[0]
        assert options["headers"]["Authorization"] == "Bearer abc"
        assert options["method"] == "get"


class TestStore:
    def test_get_served_from_store_on_second_fetch(self, policy):
        store = MemoryStore()
        transport = DummyTransport(DummyHostResponse(200, '{"n": 1}'))
        request = Request("https://example.com", transport=transport, policy=policy, store=store)
        assert request.fetch().json == {"n": 1}
        second = request.fetch()
        assert second.json == {"n": 1}
        assert second.ok
        assert len(transport.calls) == 1

    def test_only_200_stored(self, policy):
        store = MemoryStore()
        transport = DummyTransport(DummyHostResponse(404, "missing"))
        request = Request("https://example.com", transport=transport, policy=policy, store=store)
        request.fetch()
        request.fetch()
        assert len(transport.calls) == 2
        assert len(store) == 0

    def test_post_not_stored(self, policy):
        store = MemoryStore()
        transport = DummyTransport()
        request = Request("https://example.com", method="post", transport=transport, policy=policy, store=store)
        request.fetch()
        request.fetch()
        assert len(transport.calls) == 2

    def test_token_never_reaches_store(self, policy):
        store = MagicMock()
        store.get.return_value = None
        transport = DummyTransport(DummyHostResponse(200, "{}"))
        request = Request(
            "https://example.com",
            transport=transport,
            policy=policy,
            store=store,
            store_ttl=60,
            credential=StaticTokenCredential("very-secret"),
        )
        request.fetch()
        key, value, ttl = store.put.call_args[0]
        assert "very-secret" not in key
        assert value == "{}"
        assert ttl == 60
        expected_params = {"method": "get", "muteHttpExceptions": True, "url": "https://example.com"}
        assert key == compute_request_hash("https://example.com", expected_params)

    def test_set_store(self, policy):
        store = MemoryStore()
        request = Request("https://example.com", transport=DummyTransport(), policy=policy)
        request.set_store(store, 30)
        assert request.store is store
        assert request.store_ttl == 30


def test_repr():
    assert repr(Request("https://example.com", method="delete")) == "<Request [DELETE https://example.com]>"
