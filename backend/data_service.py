"""
Smart Farming - Refresh cycle.
One cycle: fetch (or generate) weather, derive soil from that same snapshot, score crop health,
predict yield, fetch the forecast and append to the rolling history.
"""
import logging
import random
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from farm_config import AppConfig, config as default_config
from health_engine import CropHealthAssessment, assess_crop_health
from history import HistoricalSeries
from readings import (
    CamelModel,
    ForecastDay,
    SoilReading,
    WeatherReading,
    aggregate_forecast,
    derive_soil_reading,
    normalize_weather,
    utcnow,
)
from weather_api import fetch_current_weather, fetch_forecast
from yield_engine import YieldPrediction, predict_yield

logger = logging.getLogger("smartfarm.service")

RawSource = Callable[[], Optional[Dict[str, Any]]]

SECONDS_PER_DAY = 24 * 60 * 60


class Location(CamelModel):
    lat: float
    lon: float
    city: str


class CropProfile(CamelModel):
    crop_type: str
    variety: str
    planting_date: datetime
    expected_harvest_date: datetime
    field_size: float


class DashboardPayload(CamelModel):
    weather: WeatherReading
    soil: SoilReading
    crop_health: CropHealthAssessment
    yield_prediction: YieldPrediction
    forecast: List[ForecastDay]
    historical: Dict[str, List[Any]]
    location: Location
    timestamp: datetime

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


def _whole_days(delta: timedelta) -> int:
    return int(delta.total_seconds() // SECONDS_PER_DAY)


class FarmDataService:
    """Produces dashboard payloads; the history and the latest payload are the only state carried between cycles."""

    def __init__(
        self,
        settings: Optional[AppConfig] = None,
        weather_source: Optional[RawSource] = None,
        forecast_source: Optional[RawSource] = None,
        rng: Optional[random.Random] = None,
        started_at: Optional[datetime] = None,
    ):
        self.settings = settings or default_config
        self.weather_source = weather_source or (lambda: fetch_current_weather(self.settings.weather, self.settings.location))
        self.forecast_source = forecast_source or (lambda: fetch_forecast(self.settings.weather, self.settings.location))
        self.rng = rng or random.Random()
        self.history = HistoricalSeries(self.settings.history_max_points)
        self.latest: Optional[DashboardPayload] = None
        self._cycle_lock = threading.Lock()
        self.crop = self._load_crop_profile(started_at or utcnow())
        self.location = Location(
            lat=self.settings.location.lat,
            lon=self.settings.location.lon,
            city=self.settings.location.city,
        )

    def _load_crop_profile(self, started_at: datetime) -> CropProfile:
        crop = self.settings.crop
        return CropProfile(
            crop_type=crop.crop_type,
            variety=crop.variety,
            planting_date=started_at - timedelta(days=crop.planting_days_ago),
            expected_harvest_date=started_at + timedelta(days=crop.days_to_harvest),
            field_size=crop.field_size,
        )

    def days_since_planting(self, now: Optional[datetime] = None) -> int:
        return max(0, _whole_days((now or utcnow()) - self.crop.planting_date))

    def days_to_harvest(self, now: Optional[datetime] = None) -> int:
        return max(0, _whole_days(self.crop.expected_harvest_date - (now or utcnow())))

    def current_weather(self, now: Optional[datetime] = None) -> WeatherReading:
        return normalize_weather(self.weather_source(), rng=self.rng, now=now)

    def soil_data(self, weather: WeatherReading, now: Optional[datetime] = None) -> SoilReading:
        return derive_soil_reading(weather, self.days_since_planting(now), now=now, rng=self.rng)

    def forecast(self, now: Optional[datetime] = None) -> List[ForecastDay]:
        return aggregate_forecast(self.forecast_source(), rng=self.rng, now=now)

    def crop_health(self, weather: WeatherReading, soil: SoilReading, now: Optional[datetime] = None) -> CropHealthAssessment:
        return assess_crop_health(
            weather,
            soil,
            self.days_since_planting(now),
            days_to_harvest=self.days_to_harvest(now),
            now=now,
        )

    def predict(self, health: CropHealthAssessment, weather: WeatherReading, soil: SoilReading) -> YieldPrediction:
        return predict_yield(
            health.score,
            weather,
            soil,
            base_yield=self.settings.crop.base_yield,
            field_size=self.crop.field_size,
        )

    def build_payload(self, now: Optional[datetime] = None) -> DashboardPayload:
        """Run one refresh cycle and append it to the history. Cycles run one at a time."""
        with self._cycle_lock:
            now = now or utcnow()
            weather = self.current_weather(now)
            soil = self.soil_data(weather, now)
            health = self.crop_health(weather, soil, now)
            prediction = self.predict(health, weather, soil)
            forecast = self.forecast(now)

            self.history.append(now, weather.temperature, weather.humidity, soil.moisture)
            logger.debug(
                f"Refresh: {weather.source} weather {weather.temperature}°C, soil moisture {soil.moisture}%, "
                f"health {health.score}, yield {prediction.per_hectare} kg/ha"
            )

            self.latest = DashboardPayload(
                weather=weather,
                soil=soil,
                crop_health=health,
                yield_prediction=prediction,
                forecast=forecast,
                historical=self.history.to_dict(),
                location=self.location,
                timestamp=now,
            )
            return self.latest

    def latest_payload(self) -> DashboardPayload:
        """Most recent cycle, running one if none has happened yet."""
        return self.latest or self.build_payload()
