"""Table-driven validation of raw records for every engine operation.

Each operation owns a schema mapping field names to a :class:`FieldSpec`.
One generic pass walks the schema, converts the values it knows about,
plugs in defaults and collects every problem before failing, so a caller
always sees the complete list of errors for a record.
"""

from __future__ import annotations

import math
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional

from models.errors import AppError, EngineError, ErrorCode
from models.records import ReadingStatus
from settings import get_settings

RESERVED_FIELD = "_id"
FAR_FUTURE_OFFSET_MS = 999_999_999
ALL_STATUSES = "all"

_INTEGER_RE = re.compile(r"[-+]?\d+")
_NUMBER_RE = re.compile(r"[-+]?\d+(\.\d+)?([eE][-+]?\d+)?")


class Operation(str, Enum):
    add_sensor_type = "addSensorType"
    add_sensor = "addSensor"
    add_sensor_data = "addSensorData"
    find_sensor_types = "findSensorTypes"
    find_sensors = "findSensors"
    find_sensor_data = "findSensorData"


class FieldKind(str, Enum):
    string = "string"
    integer = "integer"
    number = "number"
    range = "range"
    statuses = "statuses"


_REQUIRED = object()


@dataclass(frozen=True)
class FieldSpec:
    kind: FieldKind = FieldKind.string
    default: Any = _REQUIRED
    minimum: Optional[int] = None

    @property
    def required(self) -> bool:
        return self.default is _REQUIRED

    def default_value(self) -> Any:
        return self.default() if callable(self.default) else self.default


Schema = Mapping[str, FieldSpec]


def _far_future_timestamp() -> int:
    return int(time.time() * 1000) + FAR_FUTURE_OFFSET_MS


def _default_page_size() -> int:
    return get_settings().default_page_size


_RANGE_SCHEMA: Schema = {
    "min": FieldSpec(FieldKind.number),
    "max": FieldSpec(FieldKind.number),
}

_INDEX = FieldSpec(FieldKind.integer, default=0, minimum=0)
_COUNT = FieldSpec(FieldKind.integer, default=_default_page_size, minimum=1)
_DO_DETAIL = FieldSpec(default=None)

SCHEMAS: Dict[Operation, Schema] = {
    Operation.add_sensor_type: {
        "id": FieldSpec(),
        "manufacturer": FieldSpec(),
        "modelNumber": FieldSpec(),
        "quantity": FieldSpec(),
        "unit": FieldSpec(),
        "limits": FieldSpec(FieldKind.range),
    },
    Operation.add_sensor: {
        "id": FieldSpec(),
        "model": FieldSpec(),
        "period": FieldSpec(FieldKind.integer, minimum=1),
        "expected": FieldSpec(FieldKind.range),
    },
    Operation.add_sensor_data: {
        "sensorId": FieldSpec(),
        "timestamp": FieldSpec(FieldKind.integer),
        "value": FieldSpec(FieldKind.number),
    },
    Operation.find_sensor_types: {
        "id": FieldSpec(default=None),
        "_index": _INDEX,
        "_count": _COUNT,
    },
    Operation.find_sensors: {
        "id": FieldSpec(default=None),
        "_index": _INDEX,
        "_count": _COUNT,
        "_doDetail": _DO_DETAIL,
    },
    Operation.find_sensor_data: {
        "sensorId": FieldSpec(),
        "timestamp": FieldSpec(FieldKind.integer, default=_far_future_timestamp),
        "_count": _COUNT,
        "statuses": FieldSpec(
            FieldKind.statuses, default=frozenset({ReadingStatus.ok})
        ),
        "_doDetail": _DO_DETAIL,
    },
}

_unmapped = set(Operation) - SCHEMAS.keys()
if _unmapped:
    raise RuntimeError(f"Operations without a schema: {sorted(_unmapped)}")


def validate(operation: Operation | str, raw: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a typed copy of ``raw`` or raise :class:`EngineError`.

    Unknown properties pass through unchanged.
    """

    schema = SCHEMAS[Operation(operation)]
    if not isinstance(raw, Mapping):
        raise EngineError.single(
            ErrorCode.TYPE,
            f"require an object of named fields instead of {type(raw).__name__}",
        )

    errors: List[AppError] = []
    if RESERVED_FIELD in raw:
        errors.append(
            AppError(
                code=ErrorCode.RESERVED,
                message=f"the {RESERVED_FIELD} parameter is reserved for internal use only",
            )
        )
    values = _validate_fields(schema, raw, errors)
    if errors:
        raise EngineError(errors)
    return values


def _validate_fields(
    schema: Schema,
    raw: Mapping[str, Any],
    errors: List[AppError],
    path: str = "",
) -> Dict[str, Any]:
    values = dict(raw)
    for name, spec in schema.items():
        qualified = f"{path}.{name}" if path else name
        value = raw.get(name)
        if _is_blank(value):
            if spec.required:
                errors.append(
                    AppError(code=ErrorCode.MISSING, message=f"missing value for {qualified}")
                )
            else:
                values[name] = spec.default_value()
            continue

        converted = _CONVERTERS[spec.kind](qualified, value, errors)
        if (
            spec.minimum is not None
            and isinstance(converted, int)
            and converted < spec.minimum
        ):
            errors.append(
                _type_error(f"value {converted} for {qualified} must be at least {spec.minimum}")
            )
        values[name] = converted
    return values


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def _type_error(message: str) -> AppError:
    return AppError(code=ErrorCode.TYPE, message=message)


def _describe(name: str, value: Any, expected: str) -> str:
    return (
        f"require type {expected} for {name} value {value!r} "
        f"instead of type {type(value).__name__}"
    )


def _to_string(name: str, value: Any, errors: List[AppError]) -> Optional[str]:
    if not isinstance(value, str):
        errors.append(_type_error(_describe(name, value, "string")))
        return None
    return value


def _to_integer(name: str, value: Any, errors: List[AppError]) -> Optional[int]:
    if isinstance(value, bool):
        errors.append(_type_error(_describe(name, value, "integer or string")))
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        errors.append(_type_error(f"value {value} for {name} is not an integer"))
        return None
    if isinstance(value, str):
        candidate = value.strip()
        if _INTEGER_RE.fullmatch(candidate):
            return int(candidate)
        errors.append(_type_error(f"value {value!r} for {name} is not an integer"))
        return None
    errors.append(_type_error(_describe(name, value, "integer or string")))
    return None


def _to_number(name: str, value: Any, errors: List[AppError]) -> Optional[float]:
    if isinstance(value, bool):
        errors.append(_type_error(_describe(name, value, "number or string")))
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            errors.append(_type_error(f"value {value} for {name} is not a finite number"))
            return None
        return value
    if isinstance(value, str):
        candidate = value.strip()
        if _INTEGER_RE.fullmatch(candidate):
            return int(candidate)
        if _NUMBER_RE.fullmatch(candidate):
            return float(candidate)
        errors.append(_type_error(f"value {value!r} for {name} is not a number"))
        return None
    errors.append(_type_error(_describe(name, value, "number or string")))
    return None


def _to_range(name: str, value: Any, errors: List[AppError]) -> Optional[Dict[str, Any]]:
    if not isinstance(value, Mapping):
        errors.append(_type_error(_describe(name, value, "object with min and max")))
        return None
    return _validate_fields(_RANGE_SCHEMA, value, errors, path=name)


def _to_statuses(
    name: str, value: Any, errors: List[AppError]
) -> Optional[FrozenSet[ReadingStatus]]:
    if isinstance(value, str):
        if value.strip() == ALL_STATUSES:
            return frozenset(ReadingStatus)
        tokens = [token.strip() for token in value.split("|")]
    elif isinstance(value, (set, frozenset, list, tuple)):
        tokens = [token.value if isinstance(token, ReadingStatus) else token for token in value]
    else:
        errors.append(_type_error(_describe(name, value, "string")))
        return None

    known = {status.value for status in ReadingStatus}
    unknown = [token for token in tokens if token not in known]
    if unknown:
        bad = ", ".join(str(token) for token in unknown)
        errors.append(_type_error(f"invalid status {bad} in {name} value {value!r}"))
        return None
    return frozenset(ReadingStatus(token) for token in tokens)


_CONVERTERS: Dict[FieldKind, Callable[[str, Any, List[AppError]], Any]] = {
    FieldKind.string: _to_string,
    FieldKind.integer: _to_integer,
    FieldKind.number: _to_number,
    FieldKind.range: _to_range,
    FieldKind.statuses: _to_statuses,
}
