import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

REFRESH_INTERVAL_SECONDS = 30 * 60


class RefreshScheduler:
    """
    Periodic timer that re-runs a refresh callback every `interval` seconds.
    At most one timer exists: start() replaces a running one and stop() is a
    no-op when nothing runs.
    """

    def __init__(self, refresh: Callable[[], Awaitable[None]], interval: float = REFRESH_INTERVAL_SECONDS):
        self._refresh = refresh
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self.stop()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; periodic cache refresh not started.")
            return
        self._task = loop.create_task(self._run())
        logger.info(f"Periodic cache refresh started (every {self.interval:g}s).")

    def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        logger.info("Periodic cache refresh stopped.")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            logger.info("Periodic cache refresh triggered.")
            try:
                await self._refresh()
            except Exception:
                logger.exception("Periodic cache refresh failed.")
