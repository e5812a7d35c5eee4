from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Generic, List, Mapping, Optional, Tuple, Type, TypeVar

from models.errors import EngineError, ErrorCode, StoreError
from models.records import Document
from settings import get_settings

logger = logging.getLogger(__name__)

DocumentT = TypeVar("DocumentT", bound=Document)

_URL_PATTERN = re.compile(
    r"^(?P<scheme>[A-Za-z][A-Za-z0-9+.\-]*)://"
    r"(?P<host>[^:/\s]+):(?P<port>\d+)/(?P<database>[^/\s]+)$"
)


@dataclass(frozen=True)
class ConnectionUrl:
    scheme: str
    host: str
    port: int
    database: str

    def __str__(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}/{self.database}"


def parse_connection_url(url: str) -> ConnectionUrl:
    """Split ``scheme://host:port/database`` or fail with ``BAD_URL``."""
    match = _URL_PATTERN.match(url.strip()) if isinstance(url, str) else None
    if match is None:
        raise EngineError.single(
            ErrorCode.BAD_URL,
            f"bad connection url {url!r}; expected scheme://host:port/database",
        )
    return ConnectionUrl(
        scheme=match["scheme"],
        host=match["host"],
        port=int(match["port"]),
        database=match["database"],
    )


class DocumentCollection(Generic[DocumentT]):

    def __init__(
        self,
        name: str,
        model: Type[DocumentT],
        persistence_path: Optional[Path] = None,
    ) -> None:
        self.name = name
        self.model = model
        self._items: Dict[str, DocumentT] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def upsert(self, document: DocumentT) -> None:
        """Insert ``document`` or wholly replace the one sharing its id."""
        with self._lock:
            items = dict(self._items)
            items[document.id] = document.model_copy(deep=True)
            self._persist(items)
            self._items = items
        logger.debug(
            "Upserted document %s",
            document.id,
            extra={"collection": self.name},
        )

    def get(self, key: str) -> Optional[DocumentT]:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            return item.model_copy(deep=True)

    def scan(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[DocumentT]:
        """Return documents equal to every filter value, ascending by id.

        Filter names starting with ``_`` are ignored.  When the filters carry
        an ``id`` the lookup is exact and ``offset``/``limit`` do not apply.
        """

        criteria = {
            name: value
            for name, value in (filters or {}).items()
            if not name.startswith("_")
        }
        key = criteria.pop("id", None)

        with self._lock:
            if key is not None:
                item = self._items.get(key)
                candidates = [item] if item is not None else []
            else:
                candidates = [self._items[k] for k in sorted(self._items)]
            matches = [item for item in candidates if _matches(item, criteria)]
            if key is None:
                end = None if limit is None else offset + limit
                matches = matches[offset:end]
            return [item.model_copy(deep=True) for item in matches]

    def delete(self, key: str) -> None:
        with self._lock:
            if key not in self._items:
                return
            items = {name: item for name, item in self._items.items() if name != key}
            self._persist(items)
            self._items = items

    def clear(self) -> None:
        with self._lock:
            self._persist({})
            self._items = {}

    def _persist(self, items: Dict[str, DocumentT]) -> None:
        # The file is written before ``items`` replaces the in-memory state.
        if not self.persistence_path:
            return
        payload = {
            key: item.model_dump(mode="json", by_alias=True)
            for key, item in items.items()
        }
        try:
            self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))
        except OSError as exc:
            raise StoreError(
                f"Cannot write collection {self.name!r} to {self.persistence_path}."
            ) from exc

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreError(
                f"Cannot load collection {self.name!r} from {self.persistence_path}."
            ) from exc

        for key, payload in data.items():
            self._items[key] = self.model.model_validate(payload)


def _matches(document: Document, criteria: Mapping[str, Any]) -> bool:
    if not criteria:
        return True
    wire = document.to_wire()
    return all(
        name in wire and wire[name] == expected for name, expected in criteria.items()
    )


class DocumentDatabase:
    """Named group of collections sharing one persistence directory."""

    def __init__(self, name: str, root_path: Optional[Path] = None) -> None:
        self.name = name
        self.root_path = root_path
        self._collections: Dict[str, DocumentCollection[Any]] = {}
        self._lock = Lock()

    def collection(self, name: str, model: Type[DocumentT]) -> DocumentCollection[DocumentT]:
        with self._lock:
            existing = self._collections.get(name)
            if existing is None:
                path = self.root_path / f"{name}.json" if self.root_path else None
                existing = DocumentCollection(name=name, model=model, persistence_path=path)
                self._collections[name] = existing
            elif existing.model is not model:
                raise TypeError(
                    f"Collection {name!r} already holds {existing.model.__name__} documents."
                )
            return existing

    def clear(self) -> None:
        with self._lock:
            collections = list(self._collections.values())
        for collection in collections:
            collection.clear()


class StoreConnection:
    """Handle on a shared database; acquired once, released by ``close``."""

    def __init__(self, url: ConnectionUrl, database: DocumentDatabase) -> None:
        self.url = url
        self.database = database
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.info("Closed store connection", extra={"database": self.url.database})


_databases: Dict[Tuple[Optional[str], str, int, str], DocumentDatabase] = {}
_databases_lock = Lock()


def connect(url: str, root_path: Optional[str] = None) -> StoreConnection:
    """Open a connection to the database named by ``url``.

    ``root_path`` defaults to the configured store root; an empty string keeps
    the database in memory.  Connections to the same database share state.
    """

    parsed = parse_connection_url(url)
    settings = get_settings()
    store_root = settings.store_root_path if root_path is None else root_path
    database_path = (
        Path(store_root) / f"{parsed.host}_{parsed.port}" / parsed.database
        if store_root
        else None
    )
    registry_key = (
        str(database_path) if database_path else None,
        parsed.host,
        parsed.port,
        parsed.database,
    )
    with _databases_lock:
        database = _databases.get(registry_key)
        if database is None:
            database = DocumentDatabase(name=parsed.database, root_path=database_path)
            _databases[registry_key] = database

    logger.info(
        "Opened store connection to %s",
        parsed,
        extra={"database": parsed.database},
    )
    return StoreConnection(url=parsed, database=database)
