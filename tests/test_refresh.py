"""
Tests for the configuration cache and the refresh loop.
"""

import asyncio
import gc

import pytest

from tailtraefik.config import ProviderConfig
from tailtraefik.refresh import ConfigCache, RefreshLoop, RWLock
from tailtraefik.tailscale.errors import SocketConnectionError
from tailtraefik.traefik.config import DynamicConfig
from tailtraefik.traefik.provider import TraefikProvider

from conftest import FakeTailscaleClient, make_status, peer_dict


class SlowClient(FakeTailscaleClient):
    """Holds every status fetch until released."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.release = asyncio.Event()

    async def get_status(self):
        self.calls += 1
        await self.release.wait()
        if self.fail:
            raise SocketConnectionError("daemon unreachable")
        return self.status


def make_loop(client, interval: float = 30) -> RefreshLoop:
    provider = TraefikProvider(ProviderConfig(), tailscale_client=client)
    return RefreshLoop(provider, interval=interval)


class TestRWLock:
    """Tests for the reader-writer lock."""

    @pytest.mark.asyncio
    async def test_readers_share(self):
        lock = RWLock()
        async with lock.read():
            async with lock.read():
                assert lock.readers == 2
        assert lock.readers == 0

    @pytest.mark.asyncio
    async def test_writer_waits_for_readers(self):
        lock = RWLock()
        order = []

        async def writer():
            async with lock.write():
                order.append("write")

        async with lock.read():
            task = asyncio.create_task(writer())
            await asyncio.sleep(0.01)
            assert order == []
            order.append("read done")

        await task
        assert order == ["read done", "write"]

    @pytest.mark.asyncio
    async def test_waiting_writer_blocks_new_readers(self):
        lock = RWLock()
        order = []

        async def writer():
            async with lock.write():
                order.append("write")

        async def reader():
            async with lock.read():
                order.append("late read")

        async with lock.read():
            write_task = asyncio.create_task(writer())
            await asyncio.sleep(0.01)
            read_task = asyncio.create_task(reader())
            await asyncio.sleep(0.01)
            assert order == []

        await asyncio.gather(write_task, read_task)
        assert order == ["write", "late read"]

    @pytest.mark.asyncio
    async def test_cancelled_writer_releases_readers(self):
        lock = RWLock()
        reads = []

        async def writer():
            async with lock.write():
                pass

        async def reader():
            async with lock.read():
                reads.append(1)

        async with lock.read():
            write_task = asyncio.create_task(writer())
            await asyncio.sleep(0.01)
            read_task = asyncio.create_task(reader())
            await asyncio.sleep(0.01)
            write_task.cancel()
            await asyncio.sleep(0.01)
            assert reads == [1]
            await read_task

        with pytest.raises(asyncio.CancelledError):
            await write_task
        assert not lock.writer_active


class TestConfigCache:
    """Tests for the single-slot cache."""

    @pytest.mark.asyncio
    async def test_starts_empty(self):
        cache = ConfigCache()
        assert cache.is_empty
        assert await cache.get() is None
        assert cache.stats()["cached"] is False

    @pytest.mark.asyncio
    async def test_swap_replaces_value(self):
        cache = ConfigCache()
        first, second = DynamicConfig(), DynamicConfig()

        await cache.swap(first)
        assert await cache.get() == first
        await cache.swap(second)
        assert await cache.get() == second

        assert cache.generations == 2
        assert cache.last_updated is not None

    @pytest.mark.asyncio
    async def test_swap_clears_error(self):
        cache = ConfigCache()
        cache.record_error("boom")
        assert cache.stats()["last_error"] == "boom"

        await cache.swap(DynamicConfig())
        assert cache.last_error is None

    @pytest.mark.asyncio
    async def test_readers_get_private_copies(self, fake_client):
        cache = ConfigCache()
        provider = TraefikProvider(ProviderConfig(), tailscale_client=fake_client)
        await cache.swap(await provider.generate_config())

        first = await cache.get()
        first.http.services.clear()
        first.http.routers["injected"] = first.http.routers.get("tailscale-box1-web-router")

        second = await cache.get()
        assert first is not second
        assert list(second.http.services) == ["tailscale-box1-web"]
        assert "injected" not in second.http.routers


class TestRefreshLoop:
    """Tests for periodic and on-demand generation."""

    @pytest.mark.asyncio
    async def test_refresh_once_fills_cache(self, fake_client):
        loop = make_loop(fake_client)
        assert await loop.refresh_once() is True

        config = await loop.get_config()
        assert "tailscale-box1-web" in config.to_dict()["http"]["services"]

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_previous_config(self):
        client = FakeTailscaleClient(make_status(peer_dict(tags=["tag:web"])))
        loop = make_loop(client)
        await loop.refresh_once()
        before = await loop.get_config()

        client.fail = True
        assert await loop.refresh_once() is False

        assert await loop.get_config() == before
        stats = loop.stats()
        assert stats["failures"] == 1
        assert "daemon unreachable" in stats["last_error"]

    @pytest.mark.asyncio
    async def test_unexpected_error_is_contained(self, fake_client):
        loop = make_loop(fake_client)

        async def broken():
            raise RuntimeError("bug")

        loop.provider.generate_config = broken
        assert await loop.refresh_once() is False
        assert loop.cache.is_empty

    @pytest.mark.asyncio
    async def test_get_or_generate_uses_cache(self, fake_client):
        loop = make_loop(fake_client)
        await loop.refresh_once()

        await loop.get_or_generate()
        await loop.get_or_generate()
        assert fake_client.calls == 1

    @pytest.mark.asyncio
    async def test_get_or_generate_fills_empty_cache(self, fake_client):
        loop = make_loop(fake_client)
        config = await loop.get_or_generate()

        assert await loop.get_config() == config
        assert loop.stats()["on_demand_generations"] == 1

    @pytest.mark.asyncio
    async def test_generated_config_is_not_the_cached_object(self, fake_client):
        loop = make_loop(fake_client)
        config = await loop.get_or_generate()
        config.http.services.clear()

        cached = await loop.get_config()
        assert "tailscale-box1-web" in cached.http.services

    @pytest.mark.asyncio
    async def test_concurrent_misses_share_one_generation(self):
        client = SlowClient(make_status(peer_dict(tags=["tag:web"])))
        loop = make_loop(client)

        waiters = [asyncio.create_task(loop.get_or_generate()) for _ in range(5)]
        await asyncio.sleep(0.01)
        client.release.set()
        results = await asyncio.gather(*waiters)

        assert client.calls == 1
        assert all(result == results[0] for result in results)

    @pytest.mark.asyncio
    async def test_on_demand_failure_raises_and_retries(self):
        client = FakeTailscaleClient(fail=True)
        loop = make_loop(client)

        with pytest.raises(SocketConnectionError):
            await loop.get_or_generate()
        assert loop.cache.is_empty

        client.fail = False
        assert await loop.get_or_generate() is not None
        assert client.calls == 2

    @pytest.mark.asyncio
    async def test_on_demand_failure_is_recorded(self):
        loop = make_loop(FakeTailscaleClient(fail=True))

        with pytest.raises(SocketConnectionError):
            await loop.get_or_generate()

        stats = loop.stats()
        assert stats["failures"] == 1
        assert "daemon unreachable" in stats["last_error"]

    @pytest.mark.asyncio
    async def test_failure_after_all_callers_cancelled(self):
        client = SlowClient(fail=True)
        loop = make_loop(client)
        unhandled = []
        asyncio.get_running_loop().set_exception_handler(
            lambda _, context: unhandled.append(context)
        )

        caller = asyncio.create_task(loop.get_or_generate())
        await asyncio.sleep(0.01)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        client.release.set()
        await asyncio.sleep(0.01)
        assert loop._inflight.done()
        loop._inflight = None
        gc.collect()
        asyncio.get_running_loop().set_exception_handler(None)

        assert loop.stats()["failures"] == 1
        assert "daemon unreachable" in loop.stats()["last_error"]
        assert unhandled == []

    @pytest.mark.asyncio
    async def test_reads_do_not_wait_for_refresh(self):
        client = SlowClient(make_status(peer_dict(tags=["tag:web"])))
        loop = make_loop(client)
        await loop.cache.swap(DynamicConfig())

        refresh = asyncio.create_task(loop.refresh_once())
        await asyncio.sleep(0.01)
        # The fetch is still pending, readers see the old value
        assert (await asyncio.wait_for(loop.get_config(), timeout=1)).is_empty

        client.release.set()
        assert await refresh is True
        assert not (await loop.get_config()).is_empty

    @pytest.mark.asyncio
    async def test_start_and_stop(self, fake_client):
        loop = make_loop(fake_client, interval=0.01)
        await loop.start()
        assert loop.running
        await asyncio.sleep(0.05)
        await loop.stop()

        assert not loop.running
        assert fake_client.calls >= 2
        assert not loop.cache.is_empty

    @pytest.mark.asyncio
    async def test_start_delayed(self, fake_client):
        loop = make_loop(fake_client, interval=10)
        await loop.start(run_immediately=False)
        await asyncio.sleep(0.01)
        await loop.stop()
        assert fake_client.calls == 0

    @pytest.mark.asyncio
    async def test_interval_defaults_to_config(self, fake_client):
        provider = TraefikProvider(
            ProviderConfig(update_interval_seconds=7),
            tailscale_client=fake_client,
        )
        assert RefreshLoop(provider).interval == 7

    @pytest.mark.parametrize("interval", [0, -5])
    def test_rejects_non_positive_interval(self, fake_client, interval):
        provider = TraefikProvider(
            ProviderConfig(update_interval_seconds=interval),
            tailscale_client=fake_client,
        )
        with pytest.raises(ValueError):
            RefreshLoop(provider)

    @pytest.mark.asyncio
    async def test_negative_interval_setting_does_not_spin(self, fake_client):
        config = ProviderConfig.from_env({"UPDATE_INTERVAL_SECONDS": "-5"})
        provider = TraefikProvider(config, tailscale_client=fake_client)
        loop = RefreshLoop(provider)

        await loop.start()
        await asyncio.sleep(0.1)
        await loop.stop()

        assert loop.interval == 30
        assert fake_client.calls == 1
