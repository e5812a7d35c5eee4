from __future__ import annotations

from typing import Iterator

import pytest

from services.engine import Engine
from settings import get_settings


@pytest.fixture(autouse=True)
def isolated_store_root(monkeypatch, tmp_path) -> Iterator[None]:
    monkeypatch.setenv("SENSORS_STORE_ROOT_PATH", str(tmp_path / "docstore"))
    monkeypatch.delenv("SENSORS_DEFAULT_PAGE_SIZE", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def engine() -> Iterator[Engine]:
    service = Engine.connect("docstore://localhost:27017/catalog")
    yield service
    service.close()


@pytest.fixture()
def seeded_engine(engine: Engine) -> Engine:
    engine.add_sensor_type(
        {
            "id": "T1",
            "manufacturer": "Acme",
            "modelNumber": "A-100",
            "quantity": "temperature",
            "unit": "C",
            "limits": {"min": 0, "max": 100},
        }
    )
    engine.add_sensor(
        {"id": "S1", "model": "T1", "period": 10, "expected": {"min": 10, "max": 90}}
    )
    return engine
