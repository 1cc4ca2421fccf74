#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import logging

from cowork.aliases import PersonId
from cowork.cache import KeyValueCache
from cowork.constants import PERSON_NAME_CACHE_TTL_SECONDS, UNKNOWN_PERSON_NAME
from cowork.exceptions import UpstreamUnavailable
from cowork.store.database_schemas import TableName
from cowork.store.record_store import RecordStore

logger = logging.getLogger(__name__)


class PersonDirectory:
    """Resolves member display names from the People table.

    Parameters
    ----------
    cache
        Where resolved names are kept for `ttl` seconds. Names are looked up
        on every call if not given.
    """

    def __init__(
        self,
        store: RecordStore,
        cache: KeyValueCache | None = None,
        ttl: float = PERSON_NAME_CACHE_TTL_SECONDS,
    ):
        self._store = store
        self._cache = cache
        self._ttl = ttl

    @staticmethod
    def _key(user_id: PersonId) -> str:
        return f"person-name:{user_id}"

    def lookup_person_name(self, user_id: PersonId) -> str:
        """Return the name of `user_id`, or "Unknown" if the person does not
        exist, has no name or cannot be looked up."""
        if self._cache is not None:
            cached = self._cache.get(self._key(user_id))
            if cached is not None:
                logger.debug(f"Retrieving cached name of {user_id} ... ")
                return cached
        try:
            record = self._store.get(TableName.PEOPLE, user_id)
        except UpstreamUnavailable as e:
            logger.warning(f"Could not look up the name of {user_id}: {e}")
            return UNKNOWN_PERSON_NAME
        name = record.fields.get("Name") if record is not None else None
        if not name:
            logger.warning(f"No name found for person {user_id}")
            return UNKNOWN_PERSON_NAME
        if self._cache is not None:
            self._cache.set(self._key(user_id), name, ttl=self._ttl)
        return name
