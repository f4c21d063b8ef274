"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class MeasurementKind(str, Enum):
    """Families of measurements reported by sensors, keyed by name prefix."""

    temperature = "temperature"
    humidity = "humidity"
    soil_moisture = "soil_moisture"
    other = "other"

    @classmethod
    def from_name(cls, name: str) -> "MeasurementKind":
        for kind in (cls.temperature, cls.humidity, cls.soil_moisture):
            if name.startswith(kind.value):
                return kind
        return cls.other


DEFAULT_UNITS = {
    MeasurementKind.temperature: "Celsius",
    MeasurementKind.humidity: "%",
    MeasurementKind.soil_moisture: "VWC",
}


@dataclass(slots=True)
class Measurement:
    """A single named value reported by a sensor."""

    name: str
    value: float
    unit: str

    @property
    def kind(self) -> MeasurementKind:
        return MeasurementKind.from_name(self.name)


@dataclass(slots=True)
class MinMaxMeasurement:
    """Lowest and highest value of one measurement within an hour bucket."""

    name: str
    min: Measurement
    max: Measurement


@dataclass(slots=True)
class Location:
    latitude: float
    longitude: float


@dataclass(slots=True)
class Sensor:
    """Sensor metadata as stored in the sensors table."""

    id: str
    account_id: str
    name: str
    state: str
    location_enabled: bool = False
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    sample_frequency: int = 1

    @property
    def location(self) -> Optional[Location]:
        if self.latitude is None or self.longitude is None:
            return None
        return Location(latitude=self.latitude, longitude=self.longitude)


def composite_key(account_id: str, sensor_id: str) -> str:
    """Hash key under which a sensor's readings and rollups are stored."""
    return f"{account_id}:{sensor_id}"


@dataclass(slots=True)
class Reading:
    """Raw measurements captured by a sensor at one instant (epoch seconds)."""

    account_id: str
    sensor_id: str
    timestamp: int
    measurements: List[Measurement] = field(default_factory=list)

    @property
    def key(self) -> str:
        return composite_key(self.account_id, self.sensor_id)


@dataclass(slots=True)
class HourlyRollup:
    """Min/max summary of a sensor's readings for the hour starting at `timestamp`."""

    account_id: str
    sensor_id: str
    timestamp: int
    measurements: List[MinMaxMeasurement] = field(default_factory=list)

    @property
    def key(self) -> str:
        return composite_key(self.account_id, self.sensor_id)


@dataclass(slots=True)
class LatestReading:
    """A sensor paired with its most recent reading, if one exists."""

    sensor: Sensor
    reading: Optional[Reading] = None
