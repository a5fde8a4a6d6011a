"""SQLite persistence for inventory items, orders and production cards."""

from __future__ import annotations

import pickle
import sqlite3
from typing import Any, Callable, Generic, Iterator, List, Sequence, TypeVar

from .domain import InventoryItem, ManufacturingOrder, ProductionCard
from .repository import DuplicateRecordError, RecordNotFoundError

T = TypeVar("T")

INVENTORY_TABLE = "inventory_items"
ORDERS_TABLE = "manufacturing_orders"
CARDS_TABLE = "production_cards"


class SQLiteRepository(Generic[T]):
    """Record store keeping one pickled document per row.

    Orders and cards embed their component lists, so a row is the whole
    aggregate. Rows come back in insertion order, like the in-memory store.
    """

    def __init__(self, connection: sqlite3.Connection, table: str) -> None:
        self._connection = connection
        self._table = table
        with connection:
            connection.execute(
                f"CREATE TABLE IF NOT EXISTS {table} ("  # nosec - fixed table names
                "id TEXT PRIMARY KEY, payload BLOB NOT NULL)"
            )

    def _read(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        return self._connection.execute(sql.format(table=self._table), params)

    def _write(self, sql: str, params: Sequence[Any]) -> sqlite3.Cursor:
        with self._connection:
            return self._connection.execute(sql.format(table=self._table), params)

    def __contains__(self, item_id: object) -> bool:
        if not isinstance(item_id, str):
            return False
        return self._read("SELECT 1 FROM {table} WHERE id = ?", (item_id,)).fetchone() is not None

    def __len__(self) -> int:
        (total,) = self._read("SELECT COUNT(*) FROM {table}").fetchone()
        return int(total)

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())

    def add(self, item_id: str, item: T) -> None:
        try:
            self._write(
                "INSERT INTO {table} (id, payload) VALUES (?, ?)",
                (item_id, pickle.dumps(item)),
            )
        except sqlite3.IntegrityError as exc:
            raise DuplicateRecordError(f"Record with id {item_id!r} already exists") from exc

    def upsert(self, item_id: str, item: T) -> None:
        self._write(
            "INSERT INTO {table} (id, payload) VALUES (?, ?) "
            "ON CONFLICT(id) DO UPDATE SET payload = excluded.payload",
            (item_id, pickle.dumps(item)),
        )

    def get(self, item_id: str) -> T:
        row = self._read("SELECT payload FROM {table} WHERE id = ?", (item_id,)).fetchone()
        if row is None:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found")
        return pickle.loads(row[0])

    def remove(self, item_id: str) -> None:
        if self._write("DELETE FROM {table} WHERE id = ?", (item_id,)).rowcount == 0:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found")

    def list(self) -> List[T]:
        rows = self._read("SELECT payload FROM {table} ORDER BY rowid").fetchall()
        return [pickle.loads(payload) for (payload,) in rows]

    def find(self, predicate: Callable[[T], bool]) -> List[T]:
        return [item for item in self.list() if predicate(item)]


class TrackerDatabase:
    """One SQLite connection holding the three record sets."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._connection = sqlite3.connect(path, check_same_thread=False)
        self.inventory = SQLiteRepository[InventoryItem](self._connection, INVENTORY_TABLE)
        self.orders = SQLiteRepository[ManufacturingOrder](self._connection, ORDERS_TABLE)
        self.cards = SQLiteRepository[ProductionCard](self._connection, CARDS_TABLE)

    @property
    def connection(self) -> sqlite3.Connection:
        return self._connection

    def close(self) -> None:
        self._connection.close()

    def __enter__(self) -> "TrackerDatabase":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = ["SQLiteRepository", "TrackerDatabase"]
