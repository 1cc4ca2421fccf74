#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Per-room mutual exclusion around the check-then-create sequence of a
booking. The record store has no transactions, so two requests for the same
slot could otherwise both pass the conflict check before either writes.

Locks are keyed by room id: requests for different rooms never wait on each
other."""

import contextlib
import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterator

from diskcache import Cache

from cowork.aliases import RoomId
from cowork.cache import DiskKeyValueCache
from cowork.constants import DEFAULT_LOCK_TIMEOUT_SECONDS
from cowork.exceptions import RoomLockTimeout

logger = logging.getLogger(__name__)

_POLL_INTERVAL_SECONDS = 0.01


class RoomLocks(ABC):
    """Mutual exclusion per room.

    Parameters
    ----------
    timeout
        Maximum time, in seconds, to wait for a lock before giving up with
        `RoomLockTimeout`.
    """

    def __init__(self, timeout: float = DEFAULT_LOCK_TIMEOUT_SECONDS):
        self.timeout = timeout

    @abstractmethod
    @contextlib.contextmanager
    def hold(self, room_id: RoomId) -> Iterator[None]:
        """Hold the lock of `room_id` for the duration of the `with` block.

        Raises
        ------
        RoomLockTimeout
            If the lock could not be acquired within `timeout` seconds.
        """


class InProcessRoomLocks(RoomLocks):
    """Room locks for a single process serving requests from several threads."""

    def __init__(self, timeout: float = DEFAULT_LOCK_TIMEOUT_SECONDS):
        super().__init__(timeout)
        self._registry_lock = threading.Lock()
        self._locks: dict[RoomId, threading.Lock] = {}

    def _lock_for(self, room_id: RoomId) -> threading.Lock:
        with self._registry_lock:
            return self._locks.setdefault(room_id, threading.Lock())

    @contextlib.contextmanager
    def hold(self, room_id: RoomId) -> Iterator[None]:
        lock = self._lock_for(room_id)
        if not lock.acquire(timeout=self.timeout):
            raise RoomLockTimeout(
                f"Timed out after {self.timeout}s waiting for the lock of room {room_id}"
            )
        try:
            yield
        finally:
            lock.release()


class SharedRoomLocks(RoomLocks):
    """Room locks shared by all the processes, or replicas, using the same
    cache directory.

    A lock is a cache entry added only if absent. It expires after `expire`
    seconds so a crashed holder cannot block a room forever.

    Parameters
    ----------
    cache
        The cache holding the locks.
    expire
        Lifetime, in seconds, of a lock nobody released.
    """

    def __init__(
        self,
        cache: DiskKeyValueCache | Cache,
        timeout: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
        expire: float = 60.0,
    ):
        super().__init__(timeout)
        self._cache = cache.backend if isinstance(cache, DiskKeyValueCache) else cache
        self._expire = expire

    @staticmethod
    def _key(room_id: RoomId) -> str:
        return f"room-lock:{room_id}"

    def _acquire(self, key: str, token: str) -> bool:
        deadline = time.monotonic() + self.timeout
        while True:
            if self._cache.add(key, token, expire=self._expire, retry=True):
                return True
            if time.monotonic() >= deadline:
                return False
            time.sleep(_POLL_INTERVAL_SECONDS)

    def _release(self, key: str, token: str) -> None:
        with self._cache.transact(retry=True):
            if self._cache.get(key) == token:
                self._cache.delete(key, retry=True)
            else:
                logger.warning(f"Lock {key} expired before it was released")

    @contextlib.contextmanager
    def hold(self, room_id: RoomId) -> Iterator[None]:
        key, token = self._key(room_id), uuid.uuid4().hex
        if not self._acquire(key, token):
            raise RoomLockTimeout(
                f"Timed out after {self.timeout}s waiting for the lock of room {room_id}"
            )
        try:
            yield
        finally:
            self._release(key, token)
