"""
Smart Farming - Crop health scoring.
Additive point system over the latest weather + soil snapshot: start at 70, adjust per factor,
clamp 0-100. Recommendations come back in evaluation order (temperature, moisture, pH, nitrogen).
"""
from datetime import datetime
from typing import Dict, List, Literal, Optional, Tuple

from readings import CamelModel, SoilReading, WeatherReading, round_int

BASE_SCORE = 70

OPTIMAL_TEMPERATURE = (15, 25)
OPTIMAL_MOISTURE = (30, 60)
OPTIMAL_PH = (6.0, 7.5)
LOW_NITROGEN = 40

FactorStatus = Literal["optimal", "moderate", "suboptimal", "critical", "excessive"]
Priority = Literal["HIGH", "MEDIUM", "LOW"]

# (last day of stage, name, stage start, stage length, minimum days to be on track)
GROWTH_STAGES = [
    (15, "Germination", 0, 15, 7),
    (45, "Vegetative", 15, 30, 20),
    (75, "Reproductive", 45, 30, 50),
    (120, "Maturation", 75, 45, 90),
]
HARVEST_STAGE = "Ready for Harvest"


class Factor(CamelModel):
    status: FactorStatus
    value: float


class Recommendation(CamelModel):
    type: str
    priority: Priority
    message: str
    action: str


class GrowthStage(CamelModel):
    stage: str
    progress: float
    optimal: bool


class CropHealthAssessment(CamelModel):
    score: int
    status: str
    factors: Dict[str, Factor]
    recommendations: List[Recommendation]
    growth_stage: str
    growth_stage_detail: GrowthStage
    days_from_planting: int
    expected_harvest: int = 0
    timestamp: datetime


def _fmt(value: float) -> str:
    """38.0 -> '38', 6.85 -> '6.85'."""
    return f"{value:g}"


def _in_range(value: float, bounds: Tuple[float, float]) -> bool:
    return bounds[0] <= value <= bounds[1]


def get_growth_stage(days: int) -> GrowthStage:
    """
    Coarse crop lifecycle bucket from days since planting.
    Upper bounds are inclusive: days 15, 45, 75 and 120 still belong to the stage ending on them
    (Germination, Vegetative, Reproductive, Maturation), not to the next one.
    """
    for upper, stage, start, length, on_track_from in GROWTH_STAGES:
        if days <= upper:
            return GrowthStage(stage=stage, progress=(days - start) / length * 100, optimal=days >= on_track_from)
    return GrowthStage(stage=HARVEST_STAGE, progress=100, optimal=True)


def health_status_label(score: int) -> str:
    if score > 80:
        return "Excellent"
    if score > 60:
        return "Good"
    return "Fair"


def _score_temperature(temperature: float) -> Tuple[int, Factor, Optional[Recommendation]]:
    if _in_range(temperature, OPTIMAL_TEMPERATURE):
        return 15, Factor(status="optimal", value=temperature), None
    if temperature < 10 or temperature > 35:
        recommendation = Recommendation(
            type="temperature",
            priority="HIGH",
            message=f"Temperature {_fmt(temperature)}°C is outside optimal range (15-25°C)",
            action="Consider shade nets or cooling systems" if temperature > 35 else "Protect crops from cold stress",
        )
        return -20, Factor(status="critical", value=temperature), recommendation
    return 5, Factor(status="moderate", value=temperature), None


def _score_moisture(moisture: float) -> Tuple[int, Factor, Optional[Recommendation]]:
    if _in_range(moisture, OPTIMAL_MOISTURE):
        return 15, Factor(status="optimal", value=moisture), None
    if moisture < 20:
        recommendation = Recommendation(
            type="irrigation",
            priority="HIGH",
            message=f"Soil moisture critically low at {_fmt(moisture)}%",
            action=f"Apply {irrigation_amount(moisture)}L/m² of water immediately",
        )
        return -25, Factor(status="critical", value=moisture), recommendation
    if moisture > 75:
        recommendation = Recommendation(
            type="drainage",
            priority="MEDIUM",
            message=f"Soil moisture too high at {_fmt(moisture)}%",
            action="Check drainage systems and reduce irrigation",
        )
        return -15, Factor(status="excessive", value=moisture), recommendation
    return 0, Factor(status="moderate", value=moisture), None


def _score_ph(ph: float) -> Tuple[int, Factor, Optional[Recommendation]]:
    if _in_range(ph, OPTIMAL_PH):
        return 10, Factor(status="optimal", value=ph), None
    recommendation = Recommendation(
        type="soil",
        priority="MEDIUM",
        message=f"Soil pH {_fmt(ph)} outside optimal range (6.0-7.5)",
        action="Apply lime to increase pH" if ph < OPTIMAL_PH[0] else "Apply sulfur or organic matter to decrease pH",
    )
    return -10, Factor(status="suboptimal", value=ph), recommendation


def _score_nitrogen(nitrogen: float) -> Tuple[int, Optional[Recommendation]]:
    # Only deficiency is scored; adequate N/P/K adds nothing
    if nitrogen < LOW_NITROGEN:
        recommendation = Recommendation(
            type="fertilizer",
            priority="HIGH",
            message=f"Low nitrogen levels ({_fmt(nitrogen)}%)",
            action="Apply nitrogen-rich fertilizer (urea 46-0-0) at 120kg/ha",
        )
        return -15, recommendation
    return 0, None


def irrigation_amount(moisture: float) -> int:
    """Litres per m² needed to bring critically dry soil back towards 35% moisture."""
    return round_int((35 - moisture) * 15)


def assess_crop_health(
    weather: WeatherReading,
    soil: SoilReading,
    days_from_planting: int,
    days_to_harvest: Optional[int] = None,
    now: Optional[datetime] = None,
) -> CropHealthAssessment:
    """
    Score crop health 0-100 from one weather and one soil reading.
    Raises ValueError on a missing reading or negative crop age instead of guessing.
    """
    if weather is None or soil is None:
        raise ValueError("crop health needs both a weather and a soil reading")
    if days_from_planting is None or days_from_planting < 0:
        raise ValueError(f"days_from_planting must be >= 0, got {days_from_planting!r}")

    score = BASE_SCORE
    factors: Dict[str, Factor] = {}
    recommendations: List[Recommendation] = []

    for key, scorer, value in (
        ("temperature", _score_temperature, weather.temperature),
        ("soilMoisture", _score_moisture, soil.moisture),
        ("ph", _score_ph, soil.ph),
    ):
        points, factor, recommendation = scorer(value)
        score += points
        factors[key] = factor
        if recommendation:
            recommendations.append(recommendation)

    points, recommendation = _score_nitrogen(soil.nitrogen)
    score += points
    if recommendation:
        recommendations.append(recommendation)

    score = max(0, min(100, round_int(score)))
    stage = get_growth_stage(days_from_planting)

    return CropHealthAssessment(
        score=score,
        status=health_status_label(score),
        factors=factors,
        recommendations=recommendations,
        growth_stage=stage.stage,
        growth_stage_detail=stage,
        days_from_planting=int(days_from_planting),
        expected_harvest=max(0, int(days_to_harvest or 0)),
        timestamp=now or max(weather.timestamp, soil.timestamp),
    )
