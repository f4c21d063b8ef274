"""Sensor metadata stored in the unpartitioned sensors table."""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, List, Mapping, Optional, Tuple, Union

from datastore.backend import StorageBackend
from datastore.items import sensor_from_item, sensor_to_item
from errors import InvalidRequestError, ItemNotFoundError, SensorNotFoundError
from models.records import Location, Sensor

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset(
    {"name", "state", "location_enabled", "latitude", "longitude", "sample_frequency"}
)

LocationInput = Union[Location, Tuple[float, float]]


class SensorRegistry:
    """Stores sensor records keyed by sensor id, listable per account."""

    def __init__(
        self,
        backend: StorageBackend,
        table: str = "sensors",
        account_index: str = "account_id-index",
    ) -> None:
        self.backend = backend
        self.table = table
        self.account_index = account_index

    def upsert_sensor(
        self,
        account_id: str,
        sensor_id: str,
        state: str,
        location: Optional[LocationInput] = None,
        name: Optional[str] = None,
        sample_frequency: int = 1,
    ) -> Sensor:
        """Write a complete sensor record, replacing whatever was stored before.

        Registering without a location clears any previously stored
        coordinates; callers wanting field-level changes use ``update_sensor``.
        """
        if not account_id or not sensor_id:
            raise InvalidRequestError("account_id and sensor_id are required.")
        if location is not None and not isinstance(location, Location):
            latitude, longitude = location
            location = Location(latitude=float(latitude), longitude=float(longitude))

        sensor = Sensor(
            id=sensor_id,
            account_id=account_id,
            name=name if name is not None else f"Sensor {sensor_id}",
            state=state,
            location_enabled=location is not None,
            latitude=location.latitude if location is not None else None,
            longitude=location.longitude if location is not None else None,
            sample_frequency=sample_frequency,
        )
        self.backend.put(self.table, sensor_to_item(sensor))
        logger.info(
            "Registered sensor",
            extra={"account_id": account_id, "sensor_id": sensor_id, "status": state},
        )
        return sensor

    def get_sensor(self, sensor_id: str) -> Sensor:
        try:
            item = self.backend.get(self.table, {"id": sensor_id})
        except ItemNotFoundError as exc:
            raise SensorNotFoundError(sensor_id) from exc
        return sensor_from_item(item, self.table)

    def list_sensors(self, account_id: str, state: Optional[str] = None) -> List[Sensor]:
        items = self.backend.scan(self.table, account_id, index=self.account_index)
        sensors = [sensor_from_item(item, self.table) for item in items]
        if state:
            sensors = [sensor for sensor in sensors if sensor.state == state]
        return sensors

    def update_sensor(self, sensor_id: str, changes: Mapping[str, Any]) -> Sensor:
        """Apply a field-level patch: only the supplied fields change."""
        unknown = sorted(set(changes) - UPDATABLE_FIELDS)
        if unknown:
            raise InvalidRequestError(f"Fields cannot be updated: {', '.join(unknown)}")

        current = self.get_sensor(sensor_id)
        updated = dataclasses.replace(current, **dict(changes))
        if updated.latitude is None or updated.longitude is None:
            updated.latitude = updated.longitude = None
        self.backend.put(self.table, sensor_to_item(updated))
        logger.info(
            "Updated sensor",
            extra={
                "account_id": updated.account_id,
                "sensor_id": sensor_id,
                "reason": ",".join(sorted(changes)),
            },
        )
        return updated
