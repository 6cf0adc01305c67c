import pytest
import requests

import weather_api
from farm_config import LocationConfig, WeatherConfig


class FakeResponse:
    def __init__(self, status_code=200, body=None, text="{}"):
        self.status_code = status_code
        self._body = body if body is not None else {}
        self.text = text

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


@pytest.fixture
def live():
    return WeatherConfig(api_key="real-key", base_url="https://weather.test"), LocationConfig(lat=1.5, lon=2.5, city="Test")


def test_demo_mode_never_calls_provider(monkeypatch):
    def explode(*args, **kwargs):
        raise AssertionError("provider called in demo mode")

    monkeypatch.setattr(weather_api.requests, "get", explode)
    demo = WeatherConfig(api_key="demo_key")
    assert weather_api.fetch_current_weather(demo, LocationConfig()) is None
    assert weather_api.fetch_forecast(demo, LocationConfig()) is None


def test_current_weather_request(monkeypatch, live):
    calls = []

    def fake_get(url, params=None, timeout=None):
        calls.append((url, params, timeout))
        return FakeResponse(body={"main": {"temp": 21}})

    monkeypatch.setattr(weather_api.requests, "get", fake_get)
    assert weather_api.fetch_current_weather(*live) == {"main": {"temp": 21}}

    url, params, timeout = calls[0]
    assert url == "https://weather.test/weather"
    assert params == {"lat": 1.5, "lon": 2.5, "appid": "real-key", "units": "metric"}
    assert timeout == 5


def test_forecast_request(monkeypatch, live):
    calls = []
    monkeypatch.setattr(weather_api.requests, "get", lambda url, params=None, timeout=None: calls.append((url, params, timeout)) or FakeResponse(body={"list": []}))

    assert weather_api.fetch_forecast(*live) == {"list": []}
    assert calls[0][0] == "https://weather.test/forecast"
    assert calls[0][1]["cnt"] == 40
    assert calls[0][2] == 8


def test_timeout_returns_none(monkeypatch, live):
    def timeout(*args, **kwargs):
        raise requests.exceptions.Timeout()

    monkeypatch.setattr(weather_api.requests, "get", timeout)
    assert weather_api.fetch_current_weather(*live) is None


def test_connection_error_returns_none(monkeypatch, live):
    def refuse(*args, **kwargs):
        raise requests.exceptions.ConnectionError("refused")

    monkeypatch.setattr(weather_api.requests, "get", refuse)
    assert weather_api.fetch_forecast(*live) is None


def test_error_status_returns_none(monkeypatch, live):
    monkeypatch.setattr(weather_api.requests, "get", lambda *a, **k: FakeResponse(401, {"message": "Invalid API key"}))
    assert weather_api.fetch_current_weather(*live) is None


def test_invalid_json_returns_none(monkeypatch, live):
    monkeypatch.setattr(weather_api.requests, "get", lambda *a, **k: FakeResponse(200, ValueError("no json")))
    assert weather_api.fetch_current_weather(*live) is None
