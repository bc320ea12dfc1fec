"""
Per-contract key/value storage.

Item is a single cell, Map an ordered key -> value table. Values are copied
on save and on load, so a loaded object can be mutated freely and only a
save() makes the change visible.
"""

import copy
from typing import Any, Dict, Generic, Hashable, Iterator, List, Optional, Tuple, TypeVar

from ..errors import NotFound

T = TypeVar("T")


class MemoryStorage:
    """Dict-backed store keyed by (namespace, key) tuples."""

    def __init__(self):
        self._data: Dict[Tuple[str, Hashable], Any] = {}

    def get(self, key: Tuple[str, Hashable]) -> Any:
        return self._data.get(key)

    def set(self, key: Tuple[str, Hashable], value: Any):
        self._data[key] = value

    def remove(self, key: Tuple[str, Hashable]):
        self._data.pop(key, None)

    def has(self, key: Tuple[str, Hashable]) -> bool:
        return key in self._data

    def namespace(self, namespace: str) -> List[Tuple[Hashable, Any]]:
        """All (key, value) pairs of a namespace in ascending key order."""
        items = [(k[1], v) for k, v in self._data.items() if k[0] == namespace]
        items.sort(key=lambda kv: kv[0])
        return items

    def snapshot(self) -> Dict[Tuple[str, Hashable], Any]:
        return copy.deepcopy(self._data)

    def restore(self, data: Dict[Tuple[str, Hashable], Any]):
        self._data = data

    def __len__(self) -> int:
        return len(self._data)


class Item(Generic[T]):
    """A single value cell."""

    def __init__(self, namespace: str):
        self.namespace = namespace

    @property
    def _key(self) -> Tuple[str, Hashable]:
        return (self.namespace, "")

    def save(self, storage: MemoryStorage, value: T):
        storage.set(self._key, copy.deepcopy(value))

    def may_load(self, storage: MemoryStorage) -> Optional[T]:
        return copy.deepcopy(storage.get(self._key))

    def load(self, storage: MemoryStorage) -> T:
        if not storage.has(self._key):
            raise NotFound(f"{self.namespace} not found")
        return copy.deepcopy(storage.get(self._key))

    def exists(self, storage: MemoryStorage) -> bool:
        return storage.has(self._key)


class Map(Generic[T]):
    """An ordered key -> value table."""

    def __init__(self, namespace: str):
        self.namespace = namespace

    def _key(self, key: Hashable) -> Tuple[str, Hashable]:
        return (self.namespace, key)

    def save(self, storage: MemoryStorage, key: Hashable, value: T):
        storage.set(self._key(key), copy.deepcopy(value))

    def may_load(self, storage: MemoryStorage, key: Hashable) -> Optional[T]:
        return copy.deepcopy(storage.get(self._key(key)))

    def load(self, storage: MemoryStorage, key: Hashable) -> T:
        if not storage.has(self._key(key)):
            raise NotFound(f"{self.namespace}[{key!r}] not found")
        return copy.deepcopy(storage.get(self._key(key)))

    def has(self, storage: MemoryStorage, key: Hashable) -> bool:
        return storage.has(self._key(key))

    def remove(self, storage: MemoryStorage, key: Hashable):
        storage.remove(self._key(key))

    def range(self, storage: MemoryStorage, start_after: Optional[Hashable] = None,
              limit: Optional[int] = None) -> Iterator[Tuple[Hashable, T]]:
        """Ascending (key, value) pairs strictly after start_after."""
        count = 0
        for key, value in storage.namespace(self.namespace):
            if start_after is not None and key <= start_after:
                continue
            if limit is not None and count >= limit:
                return
            count += 1
            yield key, copy.deepcopy(value)

    def keys(self, storage: MemoryStorage) -> List[Hashable]:
        return [k for k, _ in storage.namespace(self.namespace)]
