"""Client-side collection cache.

A ``ClientCache`` is owned by exactly one sync object; readers get tuples,
only the sync engine calls the mutators.
"""

from __future__ import annotations

from enum import Enum
from typing import Generic, Iterable, Optional, Protocol, TypeVar

from ..errors import SyncStateError


class CacheState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    READY = "ready"
    ERROR = "error"


class Identified(Protocol):
    id: str


T = TypeVar("T", bound=Identified)


class ClientCache(Generic[T]):
    def __init__(self, name: str) -> None:
        self.name = name
        self.state = CacheState.IDLE
        self.error: Optional[str] = None
        self._items: list[T] = []

    def __repr__(self) -> str:
        return f"ClientCache({self.name!r}, state={self.state.value}, items={len(self._items)})"

    @property
    def items(self) -> tuple[T, ...]:
        return tuple(self._items)

    @property
    def ready(self) -> bool:
        return self.state is CacheState.READY

    def get(self, item_id: str) -> Optional[T]:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def require_ready(self, action: str) -> None:
        if self.state is not CacheState.READY:
            raise SyncStateError(f"Cannot {action}: {self.name} are {self.state.value}, load them first")

    # -- state transitions ---------------------------------------------

    def begin_fetch(self) -> None:
        self.state = CacheState.FETCHING

    def fill(self, items: Iterable[T]) -> None:
        self._items = list(items)
        self.error = None
        self.state = CacheState.READY

    def fail(self, message: str) -> None:
        self._items = []
        self.error = message
        self.state = CacheState.ERROR

    # -- optimistic edits ------------------------------------------------

    def append(self, item: T) -> None:
        self._items.append(item)

    def replace_item(self, item_id: str, item: T) -> bool:
        for index, current in enumerate(self._items):
            if current.id == item_id:
                self._items[index] = item
                return True
        return False

    def remove(self, item_id: str) -> Optional[T]:
        for index, current in enumerate(self._items):
            if current.id == item_id:
                return self._items.pop(index)
        return None

    def replace_all(self, items: Iterable[T]) -> None:
        self._items = list(items)
