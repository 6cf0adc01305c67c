"""
Smart Farming - Configuration.
Values come from the environment (or a local .env file); every field has a demo default.
"""
import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

DEMO_API_KEY = "demo_key"


class LocationConfig(BaseModel):
    lat: float = Field(default_factory=lambda: float(os.getenv("LATITUDE", "12.9716")))
    lon: float = Field(default_factory=lambda: float(os.getenv("LONGITUDE", "77.5946")))
    city: str = Field(default_factory=lambda: os.getenv("CITY", "Bangalore"))


class WeatherConfig(BaseModel):
    api_key: str = Field(default_factory=lambda: os.getenv("OPENWEATHER_API_KEY", DEMO_API_KEY))
    base_url: str = Field(default_factory=lambda: os.getenv("OPENWEATHER_BASE_URL", "https://api.openweathermap.org/data/2.5"))
    weather_timeout: float = Field(default_factory=lambda: float(os.getenv("WEATHER_TIMEOUT", "5")))
    forecast_timeout: float = Field(default_factory=lambda: float(os.getenv("FORECAST_TIMEOUT", "8")))

    @property
    def demo_mode(self) -> bool:
        return not self.api_key or self.api_key == DEMO_API_KEY


class CropConfig(BaseModel):
    crop_type: str = Field(default_factory=lambda: os.getenv("CROP_TYPE", "wheat"))
    variety: str = Field(default_factory=lambda: os.getenv("CROP_VARIETY", "HD-2967"))
    field_size: float = Field(default_factory=lambda: float(os.getenv("FIELD_SIZE", "2.5")))
    base_yield: float = Field(default_factory=lambda: float(os.getenv("BASE_YIELD", "4500")))
    planting_days_ago: int = Field(default_factory=lambda: int(os.getenv("PLANTING_DAYS_AGO", "45")))
    days_to_harvest: int = Field(default_factory=lambda: int(os.getenv("DAYS_TO_HARVEST", "75")))


class AuthConfig(BaseModel):
    secret_key: str = Field(default_factory=lambda: os.getenv("SECRET_KEY", "smartfarm-demo-secret-key-change-in-production"))
    algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(default_factory=lambda: int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60")))


class AppConfig(BaseModel):
    location: LocationConfig = LocationConfig()
    weather: WeatherConfig = WeatherConfig()
    crop: CropConfig = CropConfig()
    auth: AuthConfig = AuthConfig()
    update_interval: float = Field(default_factory=lambda: float(os.getenv("UPDATE_INTERVAL", "120")))  # seconds
    history_max_points: int = Field(default_factory=lambda: int(os.getenv("HISTORY_MAX_POINTS", "50")))
    host: str = Field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = Field(default_factory=lambda: int(os.getenv("PORT", "3000")))
    debug: bool = Field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")
    version: str = "1.0.0"


config = AppConfig()
