from __future__ import annotations

import pytest
import requests

from roadrollup.common.errors import SourceError
from roadrollup.common.http import HttpClient, HttpRequestError, RetryConfig, HostRateLimiter, RetryableHttpError, TokenBucket


class FakeResponse:
    def __init__(self, status_code: int, payload=None, raises_json: bool = False):
        self.status_code = status_code
        self._payload = payload
        self._raises_json = raises_json

    def json(self):
        if self._raises_json:
            raise ValueError("bad json")
        return self._payload


def test_post_form_json_success(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    seen = {}

    def fake_request(**kwargs):
        seen.update(kwargs)
        return FakeResponse(200, {"elements": []})

    monkeypatch.setattr(client.session, "request", fake_request)
    payload = client.post_form_json("https://overpass.example/api/interpreter", data={"data": "q"})

    assert payload == {"elements": []}
    assert seen["method"] == "POST"
    assert seen["headers"]["Content-Type"] == "application/x-www-form-urlencoded"
    assert seen["headers"]["User-Agent"].startswith("roadrollup/")


def test_retryable_status_raises_retryable_error(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(503, {"x": 1}))

    with pytest.raises(RetryableHttpError):
        client.request_json("GET", "https://example.com")


def test_retry_then_success(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=3, multiplier=0.0, max_wait=0.0))
    responses = iter([FakeResponse(429), FakeResponse(200, {"ok": True})])
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: next(responses))

    assert client.request_json("GET", "https://example.com") == {"ok": True}


def test_connection_errors_are_retryable(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))

    def boom(**_kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(client.session, "request", boom)
    with pytest.raises(RetryableHttpError):
        client.request_json("GET", "https://example.com")


def test_invalid_json_raises_source_error(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(200, raises_json=True))

    with pytest.raises(HttpRequestError) as excinfo:
        client.request_json("GET", "https://example.com")
    assert isinstance(excinfo.value, SourceError)
    assert excinfo.value.error_code == "HTTP_ERROR"


def test_token_bucket_allows_burst_up_to_capacity():
    bucket = TokenBucket(rate_per_sec=1.0, capacity=2)
    bucket.acquire()
    bucket.acquire()
    assert bucket.tokens < 1.0


def test_host_rate_limiter_reuses_bucket_per_host(monkeypatch):
    created = []
    original_init = TokenBucket.__init__

    def counting_init(self, *args, **kwargs):
        created.append(self)
        original_init(self, *args, **kwargs)

    monkeypatch.setattr(TokenBucket, "__init__", counting_init)
    limiter = HostRateLimiter(default_rate_per_sec=100.0)
    limiter.acquire("overpass-api.de")
    limiter.acquire("overpass-api.de")
    limiter.acquire("example.com")

    assert len(created) == 2
    assert set(limiter.buckets) == {"overpass-api.de", "example.com"}
