"""
Smart Farming - Rolling history of readings for the trend charts.
"""
from collections import deque
from datetime import datetime
from typing import Dict, List, Union

DEFAULT_MAX_POINTS = 50


class HistoricalSeries:
    """Four parallel FIFO buffers, appended together so they always have the same length."""

    def __init__(self, capacity: int = DEFAULT_MAX_POINTS):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self.timestamps: deque = deque(maxlen=capacity)
        self.temperature: deque = deque(maxlen=capacity)
        self.humidity: deque = deque(maxlen=capacity)
        self.soil_moisture: deque = deque(maxlen=capacity)

    def append(self, timestamp: Union[datetime, str], temperature: float, humidity: float, soil_moisture: float) -> None:
        if isinstance(timestamp, datetime):
            timestamp = timestamp.isoformat()
        self.timestamps.append(timestamp)
        self.temperature.append(temperature)
        self.humidity.append(humidity)
        self.soil_moisture.append(soil_moisture)

    def __len__(self) -> int:
        return len(self.timestamps)

    def to_dict(self) -> Dict[str, List]:
        return {
            "temperature": list(self.temperature),
            "humidity": list(self.humidity),
            "soilMoisture": list(self.soil_moisture),
            "timestamps": list(self.timestamps),
        }
