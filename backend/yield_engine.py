"""
Smart Farming - Yield prediction.
Multiplicative model: base yield x health x weather x soil multipliers.
"""
from numbers import Real

from readings import CamelModel, SoilReading, WeatherReading, round_int

DEFAULT_BASE_YIELD = 4500  # kg/ha


class YieldFactors(CamelModel):
    # Percentages of each multiplier; weather/soil can exceed 100
    health: int
    weather: int
    soil: int


class YieldPrediction(CamelModel):
    predicted: int
    per_hectare: int
    total_field: int
    confidence: int
    factors: YieldFactors


def weather_multiplier(weather: WeatherReading) -> float:
    multiplier = 1.0
    if 15 <= weather.temperature <= 25:
        multiplier += 0.1
    if weather.temperature < 10 or weather.temperature > 35:
        multiplier -= 0.2
    return multiplier


def soil_multiplier(soil: SoilReading) -> float:
    multiplier = 1.0
    if 30 <= soil.moisture <= 60:
        multiplier += 0.1
    if 6.0 <= soil.ph <= 7.5:
        multiplier += 0.05
    if soil.nitrogen > 60:
        multiplier += 0.1
    return multiplier


def predict_yield(
    health_score: float,
    weather: WeatherReading,
    soil: SoilReading,
    base_yield: float = DEFAULT_BASE_YIELD,
    field_size: float = 1.0,
) -> YieldPrediction:
    """
    Predict kg/ha and whole-field yield from the crop health score and current readings.
    Total field yield uses the unrounded per-hectare figure.
    """
    if health_score is None:
        raise ValueError("health_score is required")
    if isinstance(health_score, bool) or not isinstance(health_score, Real):
        raise TypeError(f"health_score must be a number, got {type(health_score).__name__}")
    if weather is None or soil is None:
        raise ValueError("yield prediction needs both a weather and a soil reading")

    health = health_score / 100
    weather_factor = weather_multiplier(weather)
    soil_factor = soil_multiplier(soil)

    predicted = base_yield * health * weather_factor * soil_factor
    per_hectare = round_int(predicted)

    return YieldPrediction(
        predicted=per_hectare,
        per_hectare=per_hectare,
        total_field=round_int(predicted * field_size),
        confidence=max(0, min(100, round_int((health * 0.7 + 0.3) * 100))),
        factors=YieldFactors(
            health=round_int(health * 100),
            weather=round_int(weather_factor * 100),
            soil=round_int(soil_factor * 100),
        ),
    )
