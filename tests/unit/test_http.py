from __future__ import annotations

import math

import pytest
import requests

from carceral_pfas.common.http import HttpClient, HttpRequestError, RetryConfig, RetryableHttpError
from carceral_pfas.pipeline.elevation import EpqsElevationService


class FakeResponse:
    def __init__(self, status_code: int, payload=None, raises_json: bool = False):
        self.status_code = status_code
        self._payload = payload
        self._raises_json = raises_json

    def json(self):
        if self._raises_json:
            raise ValueError("bad json")
        return self._payload


def test_http_get_json_success(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))

    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(200, {"ok": True}))
    payload = client.get_json("https://example.com", service="epqs")

    assert payload == {"ok": True}


def test_http_retryable_status_raises_retryable_error(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(503, {"x": 1}))

    with pytest.raises(RetryableHttpError):
        client.get_json("https://example.com", service="epqs")


def test_http_client_error_is_not_retried(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=3, multiplier=0.0, max_wait=0.0))
    calls = []

    def _request(**kwargs):
        calls.append(kwargs)
        return FakeResponse(404)

    monkeypatch.setattr(client.session, "request", _request)

    with pytest.raises(HttpRequestError) as exc_info:
        client.get_json("https://example.com", service="epqs")
    assert not isinstance(exc_info.value, RetryableHttpError)
    assert len(calls) == 1


def test_http_invalid_json_raises(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(200, raises_json=True))

    with pytest.raises(HttpRequestError):
        client.get_json("https://example.com", service="epqs")


def test_http_transport_failure_retries_then_succeeds(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=3, multiplier=0.0, max_wait=0.0))
    responses = [requests.ConnectionError("reset"), FakeResponse(200, {"value": 1})]

    def _request(**_kwargs):
        item = responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    monkeypatch.setattr(client.session, "request", _request)

    assert client.get_json("https://example.com", service="epqs") == {"value": 1}
    assert responses == []


def test_retry_config_from_config_defaults():
    cfg = RetryConfig.from_config({"max_attempts": 2})
    assert cfg.max_attempts == 2
    assert cfg.max_wait == RetryConfig.max_wait
    assert RetryConfig.from_config(None) == RetryConfig()


def test_epqs_service_sends_one_request_per_point(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    seen = []

    def _request(**kwargs):
        seen.append(kwargs["params"])
        return FakeResponse(200, {"value": kwargs["params"]["x"] * -1, "location": {}})

    monkeypatch.setattr(client.session, "request", _request)
    service = EpqsElevationService(client, endpoint="https://epqs.example/v1/json", units="Feet")

    results = service.lookup([(-84.5, 33.5), (-84.4, 33.6)], crs="EPSG:4326")

    assert [r.value for r in results] == [84.5, 84.4]
    assert {r.units for r in results} == {"Feet"}
    assert [(p["x"], p["y"]) for p in seen] == [(-84.5, 33.5), (-84.4, 33.6)]
    assert seen[0]["wkid"] == 4326
    assert seen[0]["units"] == "Feet"


def test_epqs_service_maps_no_data_to_nan(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(200, {"value": -1000000}))
    service = EpqsElevationService(client, endpoint="https://epqs.example/v1/json")

    (result,) = service.lookup([(-70.0, 40.0)], crs="EPSG:4326")

    assert math.isnan(result.value)


def test_epqs_service_rejects_payload_without_value(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(200, {"location": {}}))
    service = EpqsElevationService(client, endpoint="https://epqs.example/v1/json")

    with pytest.raises(HttpRequestError):
        service.lookup([(-84.5, 33.5)], crs="EPSG:4326")
