"""Data-access engine for the sensor telemetry catalog."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from functools import lru_cache
from threading import Lock
from types import TracebackType
from typing import Any, Dict, Iterator, Mapping, Optional, Type

from datastore.document_store import DocumentCollection, StoreConnection, connect
from logging_config import configure_logging
from models.errors import EngineError, ErrorCode, StoreError
from models.records import (
    Document,
    Envelope,
    Reading,
    SearchResult,
    Sensor,
    SensorType,
)
from services.series import (
    classify,
    is_aligned,
    next_index,
    previous_index,
    walk_back,
    walk_start,
)
from services.validator import Operation, validate
from settings import get_settings

logger = logging.getLogger(__name__)

SENSOR_TYPES = "sensorTypes"
SENSORS = "sensors"
SENSOR_DATA = "sensorData"
SENSOR_DATA_ENVELOPES = "sensorDataEnvelopes"


@contextmanager
def _reporting(operation: Operation) -> Iterator[None]:
    try:
        yield
    except EngineError as exc:
        logger.info(
            "Rejected %s",
            operation.value,
            extra={
                "operation": operation.value,
                "error_count": len(exc.errors),
                "error_codes": ",".join(code.value for code in exc.codes),
            },
        )
        raise


def _stored_fields(record: Mapping[str, Any]) -> Dict[str, Any]:
    return {name: value for name, value in record.items() if not name.startswith("_")}


class Engine:
    """Validates, integrity-checks, stores and queries catalog records.

    Every user-facing failure is raised as :class:`EngineError`, which always
    carries a non-empty list of errors.
    """

    def __init__(self, connection: StoreConnection) -> None:
        self.connection = connection
        database = connection.database
        self.sensor_types = database.collection(SENSOR_TYPES, SensorType)
        self.sensors = database.collection(SENSORS, Sensor)
        self.readings = database.collection(SENSOR_DATA, Reading)
        self.envelopes = database.collection(SENSOR_DATA_ENVELOPES, Envelope)
        self._sensor_locks: Dict[str, Lock] = {}
        self._sensor_locks_lock = Lock()

    @classmethod
    def connect(cls, url: str, root_path: Optional[str] = None) -> "Engine":
        """Open ``scheme://host:port/database``; fails with ``BAD_URL``."""
        return cls(connect(url, root_path=root_path))

    def close(self) -> None:
        """Release the store connection."""
        self.connection.close()

    def __enter__(self) -> "Engine":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        self.close()

    def clear(self) -> None:
        self.connection.database.clear()
        logger.info("Cleared catalog", extra={"database": self.connection.url.database})

    def add_sensor_type(self, info: Mapping[str, Any]) -> None:
        """Add a sensor type, replacing any earlier one with the same id."""
        with _reporting(Operation.add_sensor_type):
            record = validate(Operation.add_sensor_type, info)
            sensor_type = SensorType.model_validate(_stored_fields(record))
            self.sensor_types.upsert(sensor_type)
        logger.debug("Stored sensor type", extra={"sensor_type_id": sensor_type.id})

    def add_sensor(self, info: Mapping[str, Any]) -> None:
        """Add a sensor whose ``model`` names an existing sensor type."""
        with _reporting(Operation.add_sensor):
            record = validate(Operation.add_sensor, info)
            model = record["model"]
            if self.sensor_types.get(model) is None:
                raise EngineError.single(ErrorCode.X_ID, f'unknown sensor type "{model}"')
            sensor = Sensor.model_validate(_stored_fields(record))
            self.sensors.upsert(sensor)
        logger.debug(
            "Stored sensor",
            extra={"sensor_id": sensor.id, "sensor_type_id": model},
        )

    def add_sensor_data(self, info: Mapping[str, Any]) -> None:
        """Add one reading, replacing an earlier one at the same timestamp.

        After the first reading, a timestamp must be a whole number of
        periods away from the earliest one recorded for the sensor.
        """
        with _reporting(Operation.add_sensor_data):
            record = validate(Operation.add_sensor_data, info)
            sensor_id = record["sensorId"]
            timestamp = record["timestamp"]
            sensor = self.sensors.get(sensor_id)
            if sensor is None:
                raise EngineError.single(ErrorCode.X_ID, f'unknown sensor "{sensor_id}"')

            with self._sensor_lock(sensor_id):
                envelope = self.envelopes.get(sensor_id)
                is_first = envelope is None
                if envelope is None:
                    envelope = Envelope(id=sensor_id, earliest=timestamp, latest=timestamp)
                elif not is_aligned(timestamp, envelope.earliest, sensor.period):
                    raise EngineError.single(
                        ErrorCode.BAD_TIMESTAMP,
                        f"timestamp {timestamp} does not match period {sensor.period} "
                        f'of sensor "{sensor_id}"',
                    )

                fields = _stored_fields(record)
                fields["id"] = Reading.key_for(sensor_id, timestamp)
                reading = Reading.model_validate(fields)
                self.readings.upsert(reading)
                if envelope.widen(timestamp) or is_first:
                    # Only a timestamp outside the envelope gets here, so the
                    # reading is new and dropping it restores the old state.
                    try:
                        self.envelopes.upsert(envelope)
                    except StoreError:
                        self.readings.delete(reading.id)
                        raise

        logger.debug(
            "Stored reading",
            extra={"sensor_id": sensor_id, "timestamp": timestamp},
        )

    def find_sensor_types(self, info: Optional[Mapping[str, Any]] = None) -> SearchResult:
        """Page through sensor types matching the non-meta search fields."""
        with _reporting(Operation.find_sensor_types):
            search = validate(Operation.find_sensor_types, info or {})
            documents = self._scan(self.sensor_types, search, "sensor-type")
            return self._page(search, [document.to_wire() for document in documents])

    def find_sensors(self, info: Optional[Mapping[str, Any]] = None) -> SearchResult:
        """Page through sensors; ``_doDetail`` attaches each sensor's type."""
        with _reporting(Operation.find_sensors):
            search = validate(Operation.find_sensors, info or {})
            sensors = self._scan(self.sensors, search, "sensor")
            data = []
            for sensor in sensors:
                item = sensor.to_wire()
                if search["_doDetail"]:
                    item["sensorType"] = self._sensor_type_of(sensor).to_wire()
                data.append(item)
            return self._page(search, data)

    def find_sensor_data(self, info: Mapping[str, Any]) -> SearchResult:
        """Return readings for one sensor, latest first.

        The walk starts at the latest stored timestamp not after the
        requested ``timestamp`` and steps back one period at a time; only
        readings whose derived status is among ``statuses`` are returned.
        """
        with _reporting(Operation.find_sensor_data):
            search = validate(Operation.find_sensor_data, info)
            sensor_id = search["sensorId"]
            sensor = self.sensors.get(sensor_id)
            if sensor is None:
                raise EngineError.single(ErrorCode.X_ID, f'unknown sensor id "{sensor_id}"')
            sensor_type = self._sensor_type_of(sensor)
            envelope = self.envelopes.get(sensor_id)
            if envelope is None:
                raise EngineError.single(
                    ErrorCode.NOT_FOUND, f'no sensor data for sensor "{sensor_id}"'
                )

            count = search["_count"]
            statuses = search["statuses"]
            start = walk_start(search["timestamp"], envelope.latest, sensor.period)
            data = []
            for timestamp in walk_back(start, envelope.earliest, sensor.period):
                if len(data) >= count:
                    break
                reading = self.readings.get(Reading.key_for(sensor_id, timestamp))
                if reading is None:
                    continue
                status = classify(reading.value, sensor_type.limits, sensor.expected)
                if status in statuses:
                    data.append(
                        {"timestamp": timestamp, "value": reading.value, "status": status.value}
                    )

            result = SearchResult(data=data)
            if search["_doDetail"]:
                result.sensor = sensor.to_wire()
                result.sensor_type = sensor_type.to_wire()
            return result

    def _scan(
        self,
        collection: DocumentCollection[Any],
        search: Dict[str, Any],
        label: str,
    ) -> list[Document]:
        filters = dict(search)
        if filters.get("id") is None:
            filters.pop("id", None)
        documents = collection.scan(filters, offset=search["_index"], limit=search["_count"])
        if "id" in filters and not documents:
            raise EngineError.single(
                ErrorCode.NOT_FOUND, f"no results for {label} id '{filters['id']}'"
            )
        return documents

    @staticmethod
    def _page(search: Dict[str, Any], data: list[Dict[str, Any]]) -> SearchResult:
        id_scoped = search.get("id") is not None
        count = search["_count"]
        return SearchResult(
            data=data,
            next_index=next_index(id_scoped, search["_index"], count, len(data)),
            previous_index=previous_index(id_scoped, search.get("_index"), count),
        )

    def _sensor_type_of(self, sensor: Sensor) -> SensorType:
        sensor_type = self.sensor_types.get(sensor.model)
        # Sensor models are resolved when the sensor is added.
        assert sensor_type is not None, f"sensor {sensor.id!r} has no type {sensor.model!r}"
        return sensor_type

    @contextmanager
    def _sensor_lock(self, sensor_id: str) -> Iterator[None]:
        with self._sensor_locks_lock:
            lock = self._sensor_locks.setdefault(sensor_id, Lock())
        with lock:
            yield


@lru_cache
def build_default_engine(url: Optional[str] = None) -> Engine:
    """Factory that connects the engine to the configured store."""
    configure_logging()
    settings = get_settings()
    return Engine.connect(url or settings.database_url)
