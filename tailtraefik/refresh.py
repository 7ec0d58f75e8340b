"""
Background refresh of the generated Traefik configuration.

One task regenerates the configuration on a fixed period and swaps it
into a single cache slot. Readers copy the current value out under a
short read lock and never wait on the daemon. When the slot is still
empty, readers generate on demand; concurrent readers share one
in-flight generation.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from .tailscale.errors import TailscaleError
from .traefik.config import DynamicConfig
from .traefik.provider import TraefikProvider

logger = logging.getLogger(__name__)


def _retrieve_exception(future: asyncio.Future) -> None:
    # Every caller may have been cancelled; the error is already recorded
    if not future.cancelled():
        future.exception()


class RWLock:
    """
    Asyncio reader-writer lock.

    Any number of readers may hold it at once; a writer holds it alone.
    Waiting writers block new readers so swaps are not starved.
    """

    def __init__(self):
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def writer_active(self) -> bool:
        return self._writer

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(
                lambda: not self._writer and self._waiting_writers == 0
            )
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._cond:
            self._waiting_writers += 1
            try:
                await self._cond.wait_for(
                    lambda: not self._writer and self._readers == 0
                )
            finally:
                self._waiting_writers -= 1
                # Wake readers held back by this writer if it gave up
                self._cond.notify_all()
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


class ConfigCache:
    """Single slot holding the latest generated configuration."""

    def __init__(self):
        self._lock = RWLock()
        self._config: Optional[DynamicConfig] = None
        self.last_updated: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.generations = 0

    async def get(self) -> Optional[DynamicConfig]:
        """A private copy of the cached configuration, or None."""
        async with self._lock.read():
            config = self._config
        return config.model_copy(deep=True) if config is not None else None

    async def swap(self, config: DynamicConfig) -> None:
        async with self._lock.write():
            self._config = config
            self.last_updated = datetime.now(timezone.utc)
            self.last_error = None
            self.generations += 1

    def record_error(self, error: str) -> None:
        self.last_error = error

    @property
    def is_empty(self) -> bool:
        return self._config is None

    def stats(self) -> dict:
        return {
            "cached": self._config is not None,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "last_error": self.last_error,
            "generations": self.generations,
        }


class RefreshLoop:
    """
    Periodically regenerate configuration into a ConfigCache.

    Usage:
        loop = RefreshLoop(provider, interval=30)
        await loop.start()
        config = await loop.get_or_generate()
        await loop.stop()
    """

    def __init__(
        self,
        provider: TraefikProvider,
        interval: Optional[float] = None,
        cache: Optional[ConfigCache] = None,
    ):
        self.provider = provider
        self.interval = interval if interval is not None else provider.config.update_interval_seconds
        if not self.interval > 0:
            raise ValueError(f"Refresh interval must be positive, got {self.interval}")
        self.cache = cache or ConfigCache()

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Future] = None

        # Metrics
        self._refreshes = 0
        self._failures = 0
        self._on_demand = 0

    @property
    def running(self) -> bool:
        return self._running

    async def refresh_once(self) -> bool:
        """
        Run one refresh cycle.

        Failures are logged and leave the cached configuration untouched.
        Returns True when the cache was replaced.
        """
        self._refreshes += 1
        try:
            config = await self.provider.generate_config()
        except TailscaleError as e:
            self._failures += 1
            self.cache.record_error(str(e))
            logger.error(f"Failed to update configuration: {e}")
            return False
        except Exception as e:
            self._failures += 1
            self.cache.record_error(str(e))
            logger.exception(f"Unexpected error updating configuration: {e}")
            return False

        await self.cache.swap(config)
        logger.info("Updated Traefik configuration from Tailscale")
        return True

    async def _refresh_loop(self, run_immediately: bool) -> None:
        if not run_immediately:
            await asyncio.sleep(self.interval)
        while self._running:
            await self.refresh_once()
            await asyncio.sleep(self.interval)

    async def start(self, run_immediately: bool = True) -> None:
        """Start the background task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._refresh_loop(run_immediately))
        logger.info(f"Refresh loop started (every {self.interval}s)")

    async def stop(self) -> None:
        """Stop the background task."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Refresh loop stopped")

    async def get_config(self) -> Optional[DynamicConfig]:
        """The cached configuration, without touching the daemon."""
        return await self.cache.get()

    async def get_or_generate(self) -> DynamicConfig:
        """
        The cached configuration, generating it first if the cache is empty.

        Raises:
            TailscaleError: on-demand generation failed
        """
        config = await self.cache.get()
        if config is not None:
            return config

        if self._inflight is None or self._inflight.done():
            self._on_demand += 1
            self._inflight = asyncio.ensure_future(self._generate_and_store())
            self._inflight.add_done_callback(_retrieve_exception)
        config = await asyncio.shield(self._inflight)
        # The shared result is the cached object
        return config.model_copy(deep=True)

    async def _generate_and_store(self) -> DynamicConfig:
        try:
            config = await self.provider.generate_config()
        except Exception as e:
            self._failures += 1
            self.cache.record_error(str(e))
            logger.error(f"On-demand configuration failed: {e}")
            raise
        await self.cache.swap(config)
        return config

    def stats(self) -> dict:
        return {
            "running": self._running,
            "interval_seconds": self.interval,
            "refreshes": self._refreshes,
            "failures": self._failures,
            "on_demand_generations": self._on_demand,
            **self.cache.stats(),
        }
