from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_DATABASE_URL_ENV = "SENSORS_DATABASE_URL"
_STORE_ROOT_ENV = "SENSORS_STORE_ROOT_PATH"
_PAGE_SIZE_ENV = "SENSORS_DEFAULT_PAGE_SIZE"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    database_url: str
    store_root_path: Optional[str]
    default_page_size: int
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_page_size(default: int) -> int:
    value = os.getenv(_PAGE_SIZE_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        database_url=_read_str_env(_DATABASE_URL_ENV, "docstore://localhost:27017/sensors"),
        store_root_path=_read_optional_env(_STORE_ROOT_ENV, "./tmp/docstore"),
        default_page_size=_read_page_size(5),
        log_level=_read_log_level("INFO"),
    )
