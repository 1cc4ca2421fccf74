#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from diskcache import Cache

from cowork.constants import DEFAULT_CACHE_DIR


class KeyValueCache(ABC):
    """Short-lived shared state, such as resolved person names. Entries may
    expire; a missing entry is not an error."""

    @abstractmethod
    def get(self, key: str) -> Any | None: ...

    @abstractmethod
    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store `value` under `key`, expiring it after `ttl` seconds if
        given."""

    @abstractmethod
    def delete(self, key: str) -> None: ...


class DiskKeyValueCache(KeyValueCache):
    """A `KeyValueCache` persisted with `diskcache`. Several processes
    pointing to the same directory share entries.

    Parameters
    ----------
    cache_dir
        Where the cache is stored. It is created if it does not exist.
    """

    def __init__(self, cache_dir: Path | str = DEFAULT_CACHE_DIR / "kv"):
        cache_dir = Path(cache_dir)
        cache_dir.mkdir(exist_ok=True, parents=True)
        self._cache = Cache(str(cache_dir))

    @property
    def backend(self) -> Cache:
        return self._cache

    def get(self, key: str) -> Any | None:
        return self._cache.get(key)

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        self._cache.set(key, value, expire=ttl)

    def delete(self, key: str) -> None:
        self._cache.delete(key)

    def close(self) -> None:
        self._cache.close()
