import logging
import time
from typing import Callable, Mapping, Optional, Tuple

from repohub.application.aggregation_service import ADAPTER_TIMEOUT_SECONDS, AggregationService
from repohub.application.group_registry import GroupRegistry
from repohub.application.scheduler import REFRESH_INTERVAL_SECONDS, RefreshScheduler
from repohub.application.token_registry import TokenRegistry, TokenRegistryEvent
from repohub.application.view import project
from repohub.domain.models import (
    Platform,
    PlatformToken,
    RepoGroup,
    RepoId,
    Repository,
    RepositoryView,
    StoreState,
)
from repohub.infrastructure.cache_store import CacheStore
from repohub.infrastructure.platform_clients import RepositorySource, default_sources
from repohub.infrastructure.storage import KeyValueStore

logger = logging.getLogger(__name__)


class RepoHub:
    """
    Application facade over one StoreState.

    Exposes a read-only model (tokens, repositories, loading flag, error,
    groups, search query and the grouped projection) plus the actions that
    mutate it. Tokens and groups are loaded from storage on construction.
    """

    def __init__(
        self,
        storage: KeyValueStore,
        sources: Optional[Mapping[Platform, RepositorySource]] = None,
        clock: Callable[[], float] = time.time,
        refresh_interval: float = REFRESH_INTERVAL_SECONDS,
        adapter_timeout: float = ADAPTER_TIMEOUT_SECONDS,
    ):
        self._state = StoreState()
        self.cache_store = CacheStore(storage, self._state, clock=clock)
        self.token_registry = TokenRegistry(storage, self._state)
        self.group_registry = GroupRegistry(storage, self._state)
        self.aggregation = AggregationService(
            self._state,
            self.cache_store,
            sources if sources is not None else default_sources(),
            adapter_timeout=adapter_timeout,
        )
        self.scheduler = RefreshScheduler(self._periodic_refresh, interval=refresh_interval)
        self.token_registry.subscribe(self._on_token_event)

        self.load_tokens()
        self.load_groups()

    # --- Read model ---

    @property
    def tokens(self) -> Tuple[PlatformToken, ...]:
        return tuple(self._state.tokens)

    @property
    def repositories(self) -> Tuple[Repository, ...]:
        return tuple(self._state.repositories)

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def error(self) -> Optional[str]:
        return self._state.error

    @property
    def groups(self) -> Tuple[RepoGroup, ...]:
        return tuple(g.model_copy(deep=True) for g in self._state.groups)

    @property
    def search_query(self) -> str:
        return self._state.search_query

    @property
    def is_authenticated(self) -> bool:
        return bool(self._state.tokens)

    @property
    def repositories_by_group(self) -> RepositoryView:
        return project(self._state.repositories, self._state.groups, self._state.search_query)

    # --- Actions ---

    def load_tokens(self) -> None:
        self.token_registry.load()

    def load_groups(self) -> None:
        self.group_registry.load()

    def set_search_query(self, query: str) -> None:
        self._state.search_query = query.strip()

    def save_token(self, token: PlatformToken) -> PlatformToken:
        return self.token_registry.save(token)

    def delete_token(self, token_id: str) -> None:
        self.token_registry.delete(token_id)

    async def refresh(self, force_refresh: bool = False, is_background: bool = False) -> None:
        await self.aggregation.refresh(force_refresh=force_refresh, is_background=is_background)

    def add_group(self, name: str) -> RepoGroup:
        return self.group_registry.add_group(name).model_copy(deep=True)

    def delete_group(self, group_id: str) -> None:
        self.group_registry.delete_group(group_id)

    def add_repo_to_group(self, group_id: str, repo_id: RepoId) -> None:
        self.group_registry.add_repo_to_group(group_id, repo_id)

    def remove_repo_from_group(self, group_id: str, repo_id: RepoId) -> None:
        self.group_registry.remove_repo_from_group(group_id, repo_id)

    def get_repo_group_id(self, repo_id: RepoId) -> Optional[str]:
        return self.group_registry.group_id_of(repo_id)

    async def initialize_and_refresh(self) -> None:
        """Loads the cached snapshot and refreshes in the background when it is absent or stale."""
        if not self._state.tokens:
            logger.info("Initialization skipped: No tokens available.")
            return

        if not self.scheduler.is_running:
            self.scheduler.start()

        cache_status = self.cache_store.load()
        if cache_status.success and not cache_status.is_stale:
            logger.info("Fresh data loaded from cache. No immediate refresh needed.")
            return

        reason = "absent cache" if not cache_status.success else "stale cache"
        logger.info(f"Initiating background refresh due to {reason}.")
        await self.refresh(force_refresh=True, is_background=True)
        logger.info("Background refresh completed.")

    def close(self) -> None:
        self.scheduler.stop()

    # --- Lifecycle wiring ---

    async def _periodic_refresh(self) -> None:
        if not self._state.tokens:
            self.scheduler.stop()
            return
        await self.refresh(force_refresh=False, is_background=True)

    def _on_token_event(self, event: TokenRegistryEvent) -> None:
        if event is TokenRegistryEvent.FIRST_TOKEN_ADDED:
            self.scheduler.start()
        elif event is TokenRegistryEvent.LAST_TOKEN_REMOVED:
            self.scheduler.stop()
            self.cache_store.clear()
