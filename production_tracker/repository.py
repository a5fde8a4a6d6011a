"""Record stores used by the service layer.

A store hands out detached copies: a record read from it only changes the
stored document once it is written back with ``upsert``. Embedded component
lists therefore never alias between orders and cards, whichever store is used.
"""

from __future__ import annotations

import copy
from typing import Callable, Dict, Generic, Iterator, List, Protocol, TypeVar

from .errors import ConflictError, NotFoundError

T = TypeVar("T")


class RepositoryError(RuntimeError):
    """Base exception for repository errors."""


class DuplicateRecordError(RepositoryError, ConflictError):
    """An insert reused an id that is already stored."""


class RecordNotFoundError(RepositoryError, NotFoundError):
    """A requested id is not stored."""


class RecordStore(Protocol[T]):
    """Operations the services need from a record set."""

    def add(self, item_id: str, item: T) -> None: ...

    def upsert(self, item_id: str, item: T) -> None: ...

    def get(self, item_id: str) -> T: ...

    def remove(self, item_id: str) -> None: ...

    def list(self) -> List[T]: ...

    def find(self, predicate: Callable[[T], bool]) -> List[T]: ...

    def __iter__(self) -> Iterator[T]: ...

    def __len__(self) -> int: ...

    def __contains__(self, item_id: object) -> bool: ...


class InMemoryRepository(Generic[T]):
    """Dictionary-backed store, kept in insertion order."""

    def __init__(self) -> None:
        self._documents: Dict[str, T] = {}

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._documents

    def __len__(self) -> int:
        return len(self._documents)

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())

    def add(self, item_id: str, item: T) -> None:
        if item_id in self._documents:
            raise DuplicateRecordError(f"Record with id {item_id!r} already exists")
        self._documents[item_id] = copy.deepcopy(item)

    def upsert(self, item_id: str, item: T) -> None:
        self._documents[item_id] = copy.deepcopy(item)

    def get(self, item_id: str) -> T:
        document = self._documents.get(item_id)
        if document is None:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found")
        return copy.deepcopy(document)

    def remove(self, item_id: str) -> None:
        if self._documents.pop(item_id, None) is None:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found")

    def list(self) -> List[T]:
        return [copy.deepcopy(document) for document in self._documents.values()]

    def find(self, predicate: Callable[[T], bool]) -> List[T]:
        return [
            copy.deepcopy(document)
            for document in self._documents.values()
            if predicate(document)
        ]


__all__ = [
    "RecordStore",
    "InMemoryRepository",
    "RepositoryError",
    "DuplicateRecordError",
    "RecordNotFoundError",
]
