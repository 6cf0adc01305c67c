import random
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

import main
from data_service import FarmDataService
from farm_config import AppConfig
from readings import SoilReading, WeatherReading

NOW = datetime(2024, 6, 3, 6, 0, tzinfo=timezone.utc)

OPENWEATHER_CURRENT = {
    "main": {"temp": 20.04, "humidity": 62, "pressure": 1012},
    "wind": {"speed": 3.6, "deg": 240},
    "weather": [{"description": "few clouds", "icon": "02d"}],
    "visibility": 9000,
    "name": "Bangalore",
}


@pytest.fixture
def make_weather():
    def _make(**overrides):
        fields = dict(
            temperature=20,
            humidity=60,
            pressure=1012,
            wind_speed=3,
            description="clear sky",
            visibility=10,
            uv_index=5,
            timestamp=NOW,
        )
        fields.update(overrides)
        return WeatherReading(**fields)
    return _make


@pytest.fixture
def make_soil():
    def _make(**overrides):
        fields = dict(
            moisture=45,
            temperature=22,
            ph=6.8,
            nitrogen=70,
            phosphorus=50,
            potassium=60,
            conductivity=1.0,
            timestamp=NOW,
        )
        fields.update(overrides)
        return SoilReading(**fields)
    return _make


@pytest.fixture
def service():
    return FarmDataService(
        settings=AppConfig(),
        weather_source=lambda: OPENWEATHER_CURRENT,
        forecast_source=lambda: None,
        rng=random.Random(7),
    )


@pytest.fixture
def client(service):
    main.app.dependency_overrides[main.get_data_service] = lambda: service
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def token_for(client):
    def _token(plan):
        response = client.post("/api/subscribe", json={"plan": plan})
        assert response.status_code == 200
        return response.json()["access_token"]
    return _token
