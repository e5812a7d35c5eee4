"""Error taxonomy reported by the engine."""

from __future__ import annotations

from enum import Enum
from typing import Iterable, List

from pydantic import BaseModel


class ErrorCode(str, Enum):
    """User-facing error categories."""

    RESERVED = "RESERVED"
    MISSING = "MISSING"
    TYPE = "TYPE"
    X_ID = "X_ID"
    BAD_TIMESTAMP = "BAD_TIMESTAMP"
    NOT_FOUND = "NOT_FOUND"
    BAD_URL = "BAD_URL"


class AppError(BaseModel):
    """A single problem with a caller-supplied record or query."""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class EngineError(Exception):
    """Raised with every error found for one operation.

    ``errors`` is never empty, even when a single problem was detected, so
    that batch loaders can merge the lists of many records into one report.
    """

    def __init__(self, errors: Iterable[AppError]) -> None:
        self.errors: List[AppError] = list(errors)
        if not self.errors:
            raise ValueError("EngineError requires at least one AppError.")
        super().__init__("; ".join(str(error) for error in self.errors))

    @classmethod
    def single(cls, code: ErrorCode, message: str) -> "EngineError":
        return cls([AppError(code=code, message=message)])

    @property
    def codes(self) -> List[ErrorCode]:
        return [error.code for error in self.errors]

    def tagged(self, prefix: str = "") -> List[str]:
        """Render each error as text, prefixed with e.g. a file and record index."""
        return [f"{prefix}{error}" for error in self.errors]


class StoreError(RuntimeError):
    """The document store could not read or write its persisted state."""
