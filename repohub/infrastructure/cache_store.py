import logging
import time
from typing import Callable, List, Optional

from repohub.domain.exceptions import SchemaError
from repohub.domain.models import CacheLoadResult, CacheSnapshot, Repository, StoreState
from repohub.domain.schema import decode_snapshot, encode_snapshot, make_snapshot
from repohub.infrastructure.storage import CACHE_KEY, KeyValueStore

logger = logging.getLogger(__name__)

CACHE_EXPIRY_SECONDS = 60 * 60
CACHE_FAILURE_NOTE = "Failed to cache results."


class CacheStore:
    """
    Keeps one timestamped snapshot of the aggregated repository list under a
    fixed key. Reads never raise; a malformed entry is removed and reported as
    absent.
    """

    def __init__(
        self,
        storage: KeyValueStore,
        state: StoreState,
        clock: Callable[[], float] = time.time,
        expiry_seconds: float = CACHE_EXPIRY_SECONDS,
    ):
        self.storage = storage
        self.state = state
        self.clock = clock
        self.expiry_ms = expiry_seconds * 1000

    def _now_ms(self) -> float:
        return self.clock() * 1000

    def save(self, repositories: List[Repository]) -> bool:
        """
        Writes {timestamp: now, data: repositories}. On failure the note is
        appended to the state's error and the repositories are left alone.
        """
        snapshot = make_snapshot(repositories, int(self._now_ms()))
        try:
            self.storage.set(CACHE_KEY, encode_snapshot(snapshot))
        except Exception as e:
            logger.error(f"Error saving repositories to cache: {e}")
            self.state.append_error(CACHE_FAILURE_NOTE)
            return False
        return True

    def read(self) -> Optional[CacheSnapshot]:
        """Returns the stored snapshot, or None when absent or malformed (malformed entries are removed)."""
        try:
            raw = self.storage.get(CACHE_KEY)
        except Exception as e:
            logger.error(f"Error reading cached repositories: {e}")
            return None
        if raw is None:
            return None

        try:
            return decode_snapshot(raw)
        except SchemaError as e:
            logger.warning(f"Cached repositories data is malformed ({e}). Removing.")
            self._discard()
            return None

    def load(self) -> CacheLoadResult:
        snapshot = self.read()
        if snapshot is None:
            logger.info("No cached repositories found.")
            return CacheLoadResult(success=False, is_stale=True)

        self.state.repositories = list(snapshot.data)
        self.state.error = None

        is_stale = self.age_ms(snapshot) > self.expiry_ms
        logger.info(f"Repositories loaded from cache ({'stale' if is_stale else 'fresh'}).")
        return CacheLoadResult(success=True, is_stale=is_stale)

    def is_fresh(self) -> bool:
        snapshot = self.read()
        return snapshot is not None and self.age_ms(snapshot) < self.expiry_ms

    def age_ms(self, snapshot: CacheSnapshot) -> float:
        return self._now_ms() - snapshot.timestamp

    def clear(self) -> None:
        self._discard()
        logger.info("Repository cache cleared.")

    def _discard(self) -> None:
        try:
            self.storage.remove(CACHE_KEY)
        except Exception as e:
            logger.error(f"Failed to remove cached repositories: {e}")
