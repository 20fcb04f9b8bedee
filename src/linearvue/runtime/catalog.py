"""Media catalog adapters.

The catalog is an external collaborator; the scheduler only needs per-item
metadata and runtimes. ``DbMediaCatalog`` reads the ``library_items`` cache
table; ``InMemoryCatalog`` backs tests and ad hoc tooling.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from linearvue.domain.entities import LibraryItem
from linearvue.domain.interfaces import MediaCatalog
from linearvue.infra.exceptions import StoreError
from linearvue.infra.uow import read_session
from linearvue.runtime.schedule_types import CatalogItem


def catalog_item_from_row(row: LibraryItem) -> CatalogItem:
    return CatalogItem(
        item_id=row.id,
        name=row.name,
        item_type=row.item_type,
        series_name=row.series_name,
        season_number=row.season_number,
        episode_number=row.episode_number,
        duration_ms=row.runtime_ms,
        year=row.production_year,
        rating=row.rating,
    )


class InMemoryCatalog(MediaCatalog):
    """Thread-safe dict-backed catalog."""

    def __init__(self, items: Iterable[CatalogItem] = ()):
        self._items: dict[str, CatalogItem] = {item.item_id: item for item in items}
        self._lock = threading.Lock()

    def add(self, item: CatalogItem) -> None:
        with self._lock:
            self._items[item.item_id] = item

    def remove(self, item_id: str) -> None:
        with self._lock:
            self._items.pop(item_id, None)

    def get_items(self, item_ids: Sequence[str]) -> dict[str, CatalogItem]:
        with self._lock:
            return {i: self._items[i] for i in item_ids if i in self._items}


class DbMediaCatalog(MediaCatalog):
    """Catalog backed by the ``library_items`` table."""

    # SQLite caps bound parameters per statement.
    _CHUNK = 500

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def get_items(self, item_ids: Sequence[str]) -> dict[str, CatalogItem]:
        ids = list(dict.fromkeys(item_ids))
        found: dict[str, CatalogItem] = {}
        if not ids:
            return found
        try:
            with read_session(self._session_factory) as db:
                for i in range(0, len(ids), self._CHUNK):
                    chunk = ids[i : i + self._CHUNK]
                    rows = db.execute(select(LibraryItem).where(LibraryItem.id.in_(chunk))).scalars()
                    for row in rows:
                        found[row.id] = catalog_item_from_row(row)
        except SQLAlchemyError as e:
            raise StoreError(f"catalog read failed: {e}") from e
        return found
