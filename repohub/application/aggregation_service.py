import asyncio
import logging
from typing import List, Mapping, Optional

from repohub.domain.exceptions import ApiError
from repohub.domain.models import Platform, PlatformToken, Repository, StoreState
from repohub.infrastructure.cache_store import CacheStore
from repohub.infrastructure.platform_clients import RepositorySource

logger = logging.getLogger(__name__)

ADAPTER_TIMEOUT_SECONDS = 30.0
NO_TOKENS_MESSAGE = "No platform tokens are configured."
ERROR_SEPARATOR = " | "


class AggregationService:
    """
    Collects repositories from every configured token into one list.

    Tokens are processed sequentially in registration order. A failing token is
    recorded as an error line and never stops the remaining tokens; the joined
    lines end up in the state's error field. Only one aggregation runs at a
    time: concurrent callers wait for the run already in flight.
    """

    def __init__(
            self,
            state: StoreState,
            cache_store: CacheStore,
            sources: Mapping[Platform, RepositorySource],
            adapter_timeout: float = ADAPTER_TIMEOUT_SECONDS,
    ):
        self.state = state
        self.cache_store = cache_store
        self.sources = dict(sources)
        self.adapter_timeout = adapter_timeout
        self._in_flight: Optional[asyncio.Task] = None

    async def refresh(self, force_refresh: bool = False, is_background: bool = False) -> None:
        if self._in_flight is not None and not self._in_flight.done():
            logger.info("Refresh already in progress; waiting for it to finish.")
            await asyncio.shield(self._in_flight)
            return

        task = asyncio.ensure_future(self._refresh(force_refresh, is_background))
        self._in_flight = task
        try:
            await asyncio.shield(task)
        finally:
            if self._in_flight is task and task.done():
                self._in_flight = None

    async def _refresh(self, force_refresh: bool, is_background: bool) -> None:
        if not self.state.tokens:
            self.state.error = NO_TOKENS_MESSAGE
            self.state.repositories = []
            self.cache_store.clear()
            return

        if not force_refresh and self.state.repositories and self.cache_store.is_fresh():
            logger.info("Skipping fetch; using recently validated cached repositories.")
            return

        if not is_background:
            self.state.is_loading = True
        self.state.error = None

        try:
            all_repositories: List[Repository] = []
            errors: List[str] = []

            for platform_token in list(self.state.tokens):
                repos = await self._collect(platform_token, errors)
                all_repositories.extend(repos)

            self.state.repositories = all_repositories

            if errors:
                self.state.error = ERROR_SEPARATOR.join(errors)

            if all_repositories or self.state.tokens:
                self.cache_store.save(all_repositories)
            else:
                # Every token was removed while the run was in flight.
                self.cache_store.clear()

            logger.info(
                f"Aggregated {len(all_repositories)} repositories "
                f"from {len(self.state.tokens)} token(s) with {len(errors)} error(s)."
            )
        finally:
            if not is_background:
                self.state.is_loading = False

    async def _collect(self, platform_token: PlatformToken, errors: List[str]) -> List[Repository]:
        """Fetches and tags one token's repositories, appending an error line instead of raising."""
        platform = platform_token.platform
        source = self.sources.get(platform)
        if source is None:
            logger.warning(f"Unsupported platform: {platform.value}")
            errors.append(f"Unsupported platform: {platform.value} for token {platform_token.label}.")
            return []

        if not platform_token.token.strip():
            logger.warning(f"Token for {platform.value} (ID: {platform_token.id}) is empty. Skipping.")
            label = f"({platform_token.name})" if platform_token.name else f"(ID: {platform_token.id})"
            errors.append(f"Token for {platform.value} {label} is empty.")
            return []

        message = f"Error fetching from {platform.value}"
        if platform_token.name:
            message += f" (Token: {platform_token.name})"

        try:
            repos = await asyncio.wait_for(source.get_repositories(platform_token.token), self.adapter_timeout)
        except ApiError as e:
            logger.error(f"Failed to fetch repositories for {platform.value} ({platform_token.label}): {e}")
            errors.append(f"{message}: {e.message}")
            return []
        except asyncio.TimeoutError:
            logger.error(f"Timed out fetching repositories for {platform.value} ({platform_token.label}).")
            errors.append(f"{message}: Request timed out after {self.adapter_timeout:g}s.")
            return []
        except Exception:
            logger.exception(f"Unexpected error fetching repositories for {platform.value} ({platform_token.label}).")
            errors.append(f"{message}: An unexpected error occurred.")
            return []

        return [
            repo.model_copy(update={"source_platform": platform, "token_id": platform_token.id})
            for repo in repos
        ]
