"""
Smart Farming - OpenWeatherMap client.
Returns the provider's raw JSON or None; never raises, so callers can fall back to synthetic data.
"""
import logging
from typing import Any, Dict, Optional

import requests

from farm_config import WeatherConfig, LocationConfig

logger = logging.getLogger("smartfarm.weather")


def _get_json(url: str, params: Dict[str, Any], timeout: float) -> Optional[Dict[str, Any]]:
    try:
        response = requests.get(url, params=params, timeout=timeout)
        if response.status_code != 200:
            error_data = response.json() if response.text else {}
            logger.warning(f"Weather API error: {error_data.get('message', f'HTTP {response.status_code}')}")
            return None
        return response.json()
    except requests.exceptions.Timeout:
        logger.warning(f"Weather API request timed out after {timeout}s")
    except requests.exceptions.RequestException as e:
        logger.warning(f"Failed to fetch weather: {e}")
    except ValueError as e:
        logger.warning(f"Weather API returned invalid JSON: {e}")
    return None


def fetch_current_weather(weather: WeatherConfig, location: LocationConfig) -> Optional[Dict[str, Any]]:
    """Current conditions at the farm location (metric units)."""
    if weather.demo_mode:
        return None
    params = {"lat": location.lat, "lon": location.lon, "appid": weather.api_key, "units": "metric"}
    return _get_json(f"{weather.base_url}/weather", params, weather.weather_timeout)


def fetch_forecast(weather: WeatherConfig, location: LocationConfig) -> Optional[Dict[str, Any]]:
    """5-day / 3-hour forecast list (40 entries) at the farm location."""
    if weather.demo_mode:
        return None
    params = {"lat": location.lat, "lon": location.lon, "appid": weather.api_key, "units": "metric", "cnt": 40}
    return _get_json(f"{weather.base_url}/forecast", params, weather.forecast_timeout)
