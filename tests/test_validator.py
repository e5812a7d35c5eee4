"""Unit tests for table-driven record validation."""

from __future__ import annotations

import time

import pytest

from models.errors import EngineError, ErrorCode
from models.records import ReadingStatus
from services.validator import FAR_FUTURE_OFFSET_MS, Operation, validate
from settings import get_settings


def _sensor_type(**overrides):
    info = {
        "id": "T1",
        "manufacturer": "Acme",
        "modelNumber": "A-100",
        "quantity": "temperature",
        "unit": "C",
        "limits": {"min": "0", "max": "100.5"},
    }
    info.update(overrides)
    return info


def _errors(operation: Operation, info) -> EngineError:
    with pytest.raises(EngineError) as excinfo:
        validate(operation, info)
    return excinfo.value


def test_valid_sensor_type_is_converted() -> None:
    record = validate(Operation.add_sensor_type, _sensor_type())

    assert record["limits"] == {"min": 0, "max": 100.5}
    assert isinstance(record["limits"]["min"], int)
    assert record["modelNumber"] == "A-100"


def test_operation_may_be_named_by_its_wire_name() -> None:
    record = validate("addSensorData", {"sensorId": "S1", "timestamp": "1000", "value": "-2.5e1"})

    assert record == {"sensorId": "S1", "timestamp": 1000, "value": -25.0}


def test_unknown_properties_pass_through() -> None:
    raw = _sensor_type(location="roof")

    record = validate(Operation.add_sensor_type, raw)

    assert record["location"] == "roof"
    assert record is not raw
    assert raw["limits"] == {"min": "0", "max": "100.5"}


def test_all_missing_fields_are_reported_together() -> None:
    error = _errors(Operation.add_sensor, {"id": "S1", "period": ""})

    messages = sorted(str(item) for item in error.errors)
    assert error.codes == [ErrorCode.MISSING] * 3
    assert messages == [
        "MISSING: missing value for expected",
        "MISSING: missing value for model",
        "MISSING: missing value for period",
    ]


def test_type_errors_do_not_stop_validation() -> None:
    error = _errors(
        Operation.add_sensor,
        {"id": 7, "model": "T1", "period": "ten", "expected": {"min": "x"}},
    )

    assert sorted(code.value for code in error.codes) == ["MISSING", "TYPE", "TYPE", "TYPE"]
    text = " ".join(str(item) for item in error.errors)
    assert "expected.min" in text
    assert "missing value for expected.max" in text


def test_range_must_be_an_object() -> None:
    error = _errors(Operation.add_sensor_type, _sensor_type(limits="0-100"))

    assert error.codes == [ErrorCode.TYPE]
    assert "limits" in error.errors[0].message


def test_reserved_field_is_always_rejected() -> None:
    error = _errors(Operation.find_sensor_types, {"_id": "T1"})

    assert error.codes == [ErrorCode.RESERVED]


def test_reserved_field_is_reported_with_other_errors() -> None:
    error = _errors(Operation.add_sensor_data, {"_id": "x", "sensorId": "S1"})

    assert error.codes[0] == ErrorCode.RESERVED
    assert error.codes.count(ErrorCode.MISSING) == 2


@pytest.mark.parametrize("value", ["1.5", 1.5, True, "12abc", [1]])
def test_integer_rejects_non_integers(value) -> None:
    error = _errors(Operation.add_sensor_data, {"sensorId": "S1", "timestamp": value, "value": 1})

    assert error.codes == [ErrorCode.TYPE]


def test_integer_accepts_integral_float() -> None:
    record = validate(Operation.add_sensor_data, {"sensorId": "S1", "timestamp": 20.0, "value": 1})

    assert record["timestamp"] == 20
    assert isinstance(record["timestamp"], int)


def test_period_must_be_positive() -> None:
    error = _errors(
        Operation.add_sensor,
        {"id": "S1", "model": "T1", "period": 0, "expected": {"min": 0, "max": 1}},
    )

    assert error.codes == [ErrorCode.TYPE]
    assert "period" in error.errors[0].message


def test_find_defaults_are_applied() -> None:
    record = validate(Operation.find_sensors, {})

    assert record == {"id": None, "_index": 0, "_count": 5, "_doDetail": None}


def test_page_size_default_follows_settings(monkeypatch) -> None:
    monkeypatch.setenv("SENSORS_DEFAULT_PAGE_SIZE", "12")
    get_settings.cache_clear()

    record = validate(Operation.find_sensor_types, {})

    assert record["_count"] == 12


def test_find_sensor_data_defaults() -> None:
    before = int(time.time() * 1000)

    record = validate(Operation.find_sensor_data, {"sensorId": "S1"})

    assert record["statuses"] == frozenset({ReadingStatus.ok})
    assert record["timestamp"] >= before + FAR_FUTURE_OFFSET_MS
    assert record["_doDetail"] is None


def test_statuses_are_parsed() -> None:
    record = validate(
        Operation.find_sensor_data, {"sensorId": "S1", "statuses": "error|outOfRange"}
    )

    assert record["statuses"] == frozenset({ReadingStatus.error, ReadingStatus.out_of_range})


def test_statuses_all_selects_every_status() -> None:
    record = validate(Operation.find_sensor_data, {"sensorId": "S1", "statuses": "all"})

    assert record["statuses"] == frozenset(ReadingStatus)


def test_unknown_statuses_are_named() -> None:
    error = _errors(
        Operation.find_sensor_data, {"sensorId": "S1", "statuses": "ok|bad|worse"}
    )

    assert error.codes == [ErrorCode.TYPE]
    assert "bad, worse" in error.errors[0].message


@pytest.mark.parametrize("value", ["true", "on", "maybe", "1"])
def test_detail_accepts_any_text(value) -> None:
    record = validate(Operation.find_sensors, {"_doDetail": value})

    assert record["_doDetail"] == value


def test_blank_detail_falls_back_to_default() -> None:
    record = validate(Operation.find_sensor_data, {"sensorId": "S1", "_doDetail": "  "})

    assert record["_doDetail"] is None


def test_detail_must_be_text() -> None:
    error = _errors(Operation.find_sensors, {"_doDetail": 1})

    assert error.codes == [ErrorCode.TYPE]


def test_unknown_operation_is_a_programming_error() -> None:
    with pytest.raises(ValueError):
        validate("dropSensors", {})


def test_non_mapping_record_is_a_type_error() -> None:
    error = _errors(Operation.add_sensor, ["S1"])

    assert error.codes == [ErrorCode.TYPE]
