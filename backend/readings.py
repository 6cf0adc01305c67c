"""
Smart Farming - Weather/Soil input normalizer.
Turns raw provider payloads (or nothing at all) into fixed-schema readings: Celsius, m/s, km,
percentages in 0-100. Anything missing or malformed falls back to a synthetic reading so the
scorers always receive a fully-populated snapshot.
"""
import logging
import math
import random
from collections import Counter, defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Literal, Mapping, Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

logger = logging.getLogger("smartfarm.weather")

WEATHER_DESCRIPTIONS = ["clear sky", "few clouds", "scattered clouds", "broken clouds", "light rain"]
FORECAST_DESCRIPTIONS = ["clear sky", "few clouds", "light rain"]

# Raised by float(), dict access, pydantic and datetime/rounding on out-of-range values in a bad payload
MALFORMED_ERRORS = (KeyError, IndexError, TypeError, ValueError, AttributeError, OverflowError, OSError)


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class WeatherReading(CamelModel):
    temperature: float
    humidity: float = Field(ge=0, le=100)
    pressure: float
    wind_speed: float = Field(ge=0)
    wind_direction: float = 0
    description: str
    icon: str = "01d"
    visibility: float = Field(ge=0)
    uv_index: float = Field(ge=0)
    timestamp: datetime
    source: Literal["live", "synthetic"] = "live"


class SoilReading(CamelModel):
    moisture: float = Field(ge=0, le=100)
    temperature: float
    ph: float
    nitrogen: float = Field(ge=0, le=100)
    phosphorus: float = Field(ge=0, le=100)
    potassium: float = Field(ge=0, le=100)
    conductivity: float = Field(ge=0)
    timestamp: datetime
    source: Literal["derived", "live", "synthetic"] = "derived"


class ForecastTemperature(CamelModel):
    avg: int
    min: int
    max: int


class ForecastDay(CamelModel):
    date: str
    full_date: str
    temperature: ForecastTemperature
    humidity: int
    rainfall: float
    wind_speed: float
    description: str
    day_index: int


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero for positives (x.5 -> x+1), unlike Python's banker's rounding."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def round_int(value: float) -> int:
    return int(round_half_up(value))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def _number(value: Any) -> float:
    """float() that also rejects NaN/inf and booleans."""
    if isinstance(value, bool):
        raise TypeError("boolean is not a reading value")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"non-finite reading value: {value!r}")
    return number


def _pick(fields: Mapping[str, Any], *keys: str, default: Any = KeyError) -> Any:
    """First present key among snake_case/camelCase spellings."""
    for key in keys:
        if key in fields and fields[key] is not None:
            return fields[key]
    if default is KeyError:
        raise KeyError(keys[0])
    return default


def _to_celsius(value: float, units: str) -> float:
    if units == "standard":
        return value - 273.15
    if units == "imperial":
        return (value - 32) * 5 / 9
    return value


def _to_meters_per_second(value: float, units: str) -> float:
    if units == "imperial":
        return value * 0.44704
    return value


# --- Synthetic readings (demo mode / fallback) ---

def generate_mock_weather(rng: Optional[random.Random] = None, now: Optional[datetime] = None) -> WeatherReading:
    rng = rng or random.Random()
    return WeatherReading(
        temperature=round_half_up(18 + rng.random() * 20, 1),
        humidity=round_int(35 + rng.random() * 50),
        pressure=round_int(1000 + rng.random() * 50),
        wind_speed=round_half_up(rng.random() * 15, 1),
        wind_direction=round_int(rng.random() * 360),
        description=rng.choice(WEATHER_DESCRIPTIONS),
        icon="01d",
        visibility=round_half_up(5 + rng.random() * 15, 1),
        uv_index=round_int(rng.random() * 10),
        timestamp=now or utcnow(),
        source="synthetic",
    )


def generate_mock_soil(rng: Optional[random.Random] = None, now: Optional[datetime] = None) -> SoilReading:
    rng = rng or random.Random()
    return SoilReading(
        moisture=round_half_up(25 + rng.random() * 40, 1),
        temperature=round_half_up(15 + rng.random() * 15, 1),
        ph=round_half_up(6.0 + rng.random() * 2.0, 2),
        nitrogen=round_int(30 + rng.random() * 50),
        phosphorus=round_int(20 + rng.random() * 40),
        potassium=round_int(40 + rng.random() * 40),
        conductivity=round_half_up(0.5 + rng.random() * 1.0, 2),
        timestamp=now or utcnow(),
        source="synthetic",
    )


def generate_mock_forecast(rng: Optional[random.Random] = None, now: Optional[datetime] = None, days: int = 7) -> List[ForecastDay]:
    rng = rng or random.Random()
    now = now or utcnow()
    forecast = []
    for index in range(days):
        day = now + timedelta(days=index)
        base_temp = 20 + math.sin(index / 7 * math.pi) * 8
        forecast.append(ForecastDay(
            date=day.strftime("%a"),
            full_date=day.date().isoformat(),
            temperature=ForecastTemperature(
                avg=round_int(base_temp),
                min=round_int(base_temp - 5),
                max=round_int(base_temp + 5),
            ),
            humidity=round_int(40 + rng.random() * 40),
            rainfall=round_half_up(rng.random() * 10, 1),
            wind_speed=round_half_up(rng.random() * 10, 1),
            description=rng.choice(FORECAST_DESCRIPTIONS),
            day_index=index,
        ))
    return forecast


# --- Normalizers ---

def _flatten_openweather(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """OpenWeatherMap current-weather JSON -> flat field dict (visibility still in metres)."""
    main = raw["main"]
    wind = raw.get("wind") or {}
    condition = raw["weather"][0]
    return {
        "temperature": main["temp"],
        "humidity": main["humidity"],
        "pressure": main["pressure"],
        "wind_speed": wind.get("speed", 0),
        "wind_direction": wind.get("deg", 0),
        "description": condition["description"],
        "icon": condition.get("icon", "01d"),
        "visibility": _number(raw.get("visibility", 10000)) / 1000,
        "uv_index": raw.get("uvi"),
    }


def normalize_weather(
    raw: Optional[Mapping[str, Any]],
    units: str = "metric",
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> WeatherReading:
    """
    Normalize an OpenWeatherMap payload or a flat reading dict.
    Returns a synthetic reading (source="synthetic") when raw is None or malformed; never raises.
    """
    rng = rng or random.Random()
    now = now or utcnow()
    if not isinstance(raw, Mapping):
        if raw is not None:
            logger.warning(f"Weather payload is not a mapping ({type(raw).__name__}); using synthetic reading")
        return generate_mock_weather(rng, now)

    try:
        fields = _flatten_openweather(raw) if "main" in raw else raw
        uv_index = _pick(fields, "uv_index", "uvIndex", default=None)
        if uv_index is None:
            # Current-weather endpoint carries no UV value
            uv_index = round_int(rng.random() * 10)
        return WeatherReading(
            temperature=round_half_up(_to_celsius(_number(_pick(fields, "temperature")), units), 1),
            humidity=_clamp(_number(_pick(fields, "humidity")), 0, 100),
            pressure=_number(_pick(fields, "pressure")),
            wind_speed=max(0.0, _to_meters_per_second(_number(_pick(fields, "wind_speed", "windSpeed", default=0)), units)),
            wind_direction=_number(_pick(fields, "wind_direction", "windDirection", default=0)) % 360,
            description=str(_pick(fields, "description")),
            icon=str(_pick(fields, "icon", default="01d")),
            visibility=max(0.0, _number(_pick(fields, "visibility", default=10))),
            uv_index=max(0.0, _number(uv_index)),
            timestamp=now,
            source="live",
        )
    except MALFORMED_ERRORS as e:
        logger.warning(f"Malformed weather payload ({e!r}); using synthetic reading")
        return generate_mock_weather(rng, now)


def normalize_soil(
    raw: Optional[Mapping[str, Any]],
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> SoilReading:
    """Normalize a soil sensor payload; synthetic fallback when raw is None or malformed."""
    rng = rng or random.Random()
    now = now or utcnow()
    if not isinstance(raw, Mapping):
        return generate_mock_soil(rng, now)

    try:
        return SoilReading(
            moisture=_clamp(_number(raw["moisture"]), 0, 100),
            temperature=_number(raw["temperature"]),
            ph=_number(raw["ph"]),
            nitrogen=_clamp(_number(raw["nitrogen"]), 0, 100),
            phosphorus=_clamp(_number(raw["phosphorus"]), 0, 100),
            potassium=_clamp(_number(raw["potassium"]), 0, 100),
            conductivity=max(0.0, _number(raw["conductivity"])),
            timestamp=now,
            source="live",
        )
    except MALFORMED_ERRORS as e:
        logger.warning(f"Malformed soil payload ({e!r}); using synthetic reading")
        return generate_mock_soil(rng, now)


def derive_soil_reading(
    weather: WeatherReading,
    days_since_planting: int,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> SoilReading:
    """
    Estimate soil conditions from the current weather, the season and crop age.
    Moisture follows a yearly sine plus humidity/rain/heat adjustments; nutrients deplete
    linearly with days since planting.
    """
    rng = rng or random.Random()
    now = now or utcnow()
    try:
        day_of_year = now.timetuple().tm_yday
        seasonal_factor = math.sin((day_of_year / 365) * 2 * math.pi) * 0.3

        base_moisture = 40 + seasonal_factor * 20
        if weather.humidity > 70:
            base_moisture += 10
        if weather.humidity < 40:
            base_moisture -= 8
        if "rain" in weather.description:
            base_moisture += 25
        if "clear" in weather.description and weather.temperature > 30:
            base_moisture -= 12

        moisture = _clamp(base_moisture + (rng.random() - 0.5) * 8, 5, 85)
        soil_temp = weather.temperature * 0.8 + 5 + (rng.random() - 0.5) * 3
        ph = 6.5 + (moisture - 40) * 0.01 + (rng.random() - 0.5) * 0.6

        days = max(0, days_since_planting)
        nitrogen = max(20, 80 - days * 0.5 + (rng.random() - 0.5) * 15)
        phosphorus = max(15, 60 - days * 0.3 + (rng.random() - 0.5) * 10)
        potassium = max(25, 75 - days * 0.4 + (rng.random() - 0.5) * 12)

        return SoilReading(
            moisture=round_half_up(moisture, 1),
            temperature=round_half_up(soil_temp, 1),
            ph=round_half_up(ph, 2),
            nitrogen=_clamp(round_int(nitrogen), 0, 100),
            phosphorus=_clamp(round_int(phosphorus), 0, 100),
            potassium=_clamp(round_int(potassium), 0, 100),
            conductivity=round_half_up(0.8 + rng.random() * 0.4, 2),
            timestamp=now,
            source="derived",
        )
    except MALFORMED_ERRORS as e:
        logger.error(f"Soil derivation failed ({e!r}); using synthetic reading")
        return generate_mock_soil(rng, now)


def aggregate_forecast(
    raw: Optional[Mapping[str, Any]],
    days: int = 7,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> List[ForecastDay]:
    """
    Collapse the 3-hourly OpenWeatherMap forecast list into daily summaries (local city time).
    Falls back to a synthetic forecast when the payload is missing, empty or malformed.
    """
    if not isinstance(raw, Mapping) or not raw.get("list"):
        return generate_mock_forecast(rng, now, days)

    try:
        tz = timezone(timedelta(seconds=int((raw.get("city") or {}).get("timezone", 0))))
        daily: Dict[str, Dict[str, Any]] = defaultdict(
            lambda: {"temps": [], "humidity": [], "wind": [], "rainfall": 0.0, "descriptions": [], "date": None}
        )
        for item in raw["list"]:
            moment = datetime.fromtimestamp(_number(item["dt"]), tz=tz)
            day = daily[moment.date().isoformat()]
            day["date"] = day["date"] or moment
            day["temps"].append(_number(item["main"]["temp"]))
            day["humidity"].append(_number(item["main"]["humidity"]))
            day["wind"].append(_number((item.get("wind") or {}).get("speed", 0)))
            day["descriptions"].append(item["weather"][0]["description"])
            rain = item.get("rain") or {}
            if rain.get("3h"):
                day["rainfall"] += _number(rain["3h"])

        forecast = []
        for index, (full_date, day) in enumerate(list(daily.items())[:days]):
            temps = np.array(day["temps"])
            forecast.append(ForecastDay(
                date=day["date"].strftime("%a"),
                full_date=full_date,
                temperature=ForecastTemperature(
                    avg=round_int(float(temps.mean())),
                    min=round_int(float(temps.min())),
                    max=round_int(float(temps.max())),
                ),
                humidity=round_int(float(np.mean(day["humidity"]))),
                rainfall=round_half_up(day["rainfall"], 1),
                wind_speed=round_half_up(float(np.mean(day["wind"])), 1),
                description=Counter(day["descriptions"]).most_common(1)[0][0],
                day_index=index,
            ))
        return forecast
    except MALFORMED_ERRORS as e:
        logger.warning(f"Malformed forecast payload ({e!r}); using synthetic forecast")
        return generate_mock_forecast(rng, now, days)
