"""Aggregation logic for hourly rollups."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List

from models.records import Measurement, MinMaxMeasurement, Reading


@dataclass
class MeasurementSummary:
    """Running statistics for one measurement name."""

    name: str
    unit: str
    min_value: float
    max_value: float
    count: int = 1

    def add(self, value: float) -> None:
        self.count += 1
        if value < self.min_value:
            self.min_value = value
        if value > self.max_value:
            self.max_value = value


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def aggregate(self, readings: Iterable[Reading]) -> Dict[str, MeasurementSummary]:
        summaries: Dict[str, MeasurementSummary] = {}

        for reading in readings:
            for measurement in reading.measurements:
                summary = summaries.get(measurement.name)
                if summary is None:
                    summaries[measurement.name] = MeasurementSummary(
                        name=measurement.name,
                        unit=measurement.unit,
                        min_value=measurement.value,
                        max_value=measurement.value,
                    )
                else:
                    summary.add(measurement.value)

        return summaries

    def min_max(self, readings: Iterable[Reading]) -> List[MinMaxMeasurement]:
        """Collapse readings into one min/max pair per measurement name, in first-seen order."""
        return [
            MinMaxMeasurement(
                name=summary.name,
                min=Measurement(name=summary.name, value=summary.min_value, unit=summary.unit),
                max=Measurement(name=summary.name, value=summary.max_value, unit=summary.unit),
            )
            for summary in self.aggregate(readings).values()
        ]
