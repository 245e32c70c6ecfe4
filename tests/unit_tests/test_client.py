"""Unit tests for the EndpointsClient facade."""

import os
import sys

# Add the project root to the path to import modules
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent.parent.absolute()
sys.path.append(str(PROJECT_ROOT))

import json

import pytest

from api_endpoints.batching.batch import Batch
from api_endpoints.cache.store import ResponseStore
from api_endpoints.core.client import EndpointsClient
from api_endpoints.core.credentials import AmbientCredential
from api_endpoints.core.exceptions import ConfigurationError
from api_endpoints.core.transport import RequestsTransport
from api_endpoints.throttling.policy import RateLimitPolicy


class DummyHostResponse:
    def __init__(self, status=200, text="{}"):
        self.status = status
        self.text = text

    def get_content_text(self):
        return self.text

    def get_all_headers(self):
        return {"Content-Type": "application/json"}

    def get_response_code(self):
        return self.status


class CountingTransport:
    def __init__(self, body=None):
        self.body = body or {"ok": True}
        self.calls = []

    def fetch(self, url, options):
        self.calls.append(url)
        return DummyHostResponse(200, json.dumps(self.body))

    def fetch_all(self, options_list):
        return [self.fetch(options["url"], options) for options in options_list]


def test_defaults_wire_components():
    client = EndpointsClient()
    assert isinstance(client.transport, RequestsTransport)
    assert isinstance(client.policy, RateLimitPolicy)
    assert client.policy.fallback_wait_ms == 10000
    assert client.store is None
    client.close()


def test_invalid_config_raises():
    with pytest.raises(ConfigurationError):
        EndpointsClient({"batch": {"rate_limit": 0}})


def test_http_config_applied():
    client = EndpointsClient({"http": {"timeout": 3, "max_workers": 2, "user_agent": "x/1"}})
    assert client.transport.timeout == 3
    assert client.transport.max_workers == 2
    assert client.transport.user_agent == "x/1"
    client.close()


def test_rate_limit_config_applied():
    client = EndpointsClient({"rate_limit": {"fallback_wait_ms": 250, "epsilon_ms": 5}})
    assert client.policy.fallback_wait_ms == 250
    assert client.policy.epsilon_ms == 5


def test_endpoint_shares_transport_and_policy():
    transport = CountingTransport()
    client = EndpointsClient(transport=transport)
    endpoint = client.create_endpoint(base_url="https://example.com/${id}")
    assert endpoint.transport is transport
    assert endpoint.policy is client.policy
    assert endpoint.httpget({"id": 1}).fetch().json == {"ok": True}
    assert transport.calls == ["https://example.com/1"]


def test_create_request():
    transport = CountingTransport({"n": 2})
    client = EndpointsClient(transport=transport)
    request = client.create_request("get", url="https://example.com/items", query={"page": 2})
    assert request.url == "https://example.com/items?page=2"
    assert request.resolve() == {"n": 2}


def test_batch_uses_config():
    transport = CountingTransport()
    client = EndpointsClient({"batch": {"rate_limit": 7, "max_rounds": 3}}, transport=transport)
    batch = client.batch()
    assert isinstance(batch, Batch)
    assert batch.rate_limit == 7
    assert batch.max_rounds == 3
    assert batch.policy is client.policy
    batch.add(client.create_request("get", url="https://example.com/a"))
    batch.add(client.create_request("get", url="https://example.com/b"))
    assert [r.json for r in batch.fetch_all()] == [{"ok": True}, {"ok": True}]


def test_batch_overrides():
    client = EndpointsClient(transport=CountingTransport())
    assert client.batch(rate_limit=2).rate_limit == 2


def test_store_enabled():
    transport = CountingTransport()
    client = EndpointsClient({"cache": {"enabled": True, "default_ttl_seconds": 120}}, transport=transport)
    assert isinstance(client.store, ResponseStore)
    request = client.create_request("get", url="https://example.com/cached")
    assert request.store_ttl == 120
    request.fetch()
    request.fetch()
    assert len(transport.calls) == 1
    client.close()


def test_ambient_identity_from_config(monkeypatch):
    monkeypatch.setenv("CLIENT_TOKEN", "tok")
    client = EndpointsClient(
        {"auth": {"use_ambient_identity": True, "token_env_var": "CLIENT_TOKEN"}}, transport=CountingTransport()
    )
    endpoint = client.create_endpoint(base_url="https://example.com")
    assert isinstance(endpoint.credential, AmbientCredential)
    _, params = endpoint.httpget().get_params()
    assert params["headers"]["Authorization"] == "Bearer tok"


def test_discovery_uses_client_resolver(monkeypatch):
    document = {
        "baseUrl": "https://www.googleapis.com/drive/v3/",
        "resources": {"files": {"methods": {"get": {"path": "files/{fileId}"}}}},
    }
    transport = CountingTransport(document)
    client = EndpointsClient(transport=transport)
    endpoint = client.discovery("drive", "v3", "files", "get", credential="tok")
    assert endpoint.get_base_url() == "https://www.googleapis.com/drive/v3/files/${fileId}"
    assert transport.calls == ["https://www.googleapis.com/discovery/v1/apis/drive/v3/rest"]


def test_interpolate():
    assert EndpointsClient.interpolate("/a/${b}", {"b": 1}) == "/a/1"


def test_context_manager_closes_transport():
    class ClosableTransport(CountingTransport):
        closed = False

        def close(self):
            self.closed = True

    transport = ClosableTransport()
    with EndpointsClient(transport=transport):
        pass
    assert transport.closed
