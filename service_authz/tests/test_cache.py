"""
Unit tests for the policy cache.
"""

import pytest
import asyncio
from unittest.mock import AsyncMock, MagicMock

from service_authz.app.policies.cache import PolicyCache
from service_authz.app.policies.models import PolicyEffect
from shared.errors import PolicyLoadError
from shared.test_helpers import create_policy


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class TestPolicyCache:
    """Test cases for PolicyCache."""

    @pytest.fixture
    def clock(self):
        """Create fake clock."""
        return FakeClock()

    @pytest.fixture
    def default_policy(self):
        """Built-in policy."""
        return create_policy("default-1", priority=200)

    @pytest.fixture
    def store(self):
        """Mock policy store."""
        store = MagicMock()
        store.list_policies = AsyncMock(return_value=[
            create_policy("custom-1", priority=10),
            create_policy("custom-disabled", priority=10, enabled=False),
        ])
        return store

    @pytest.fixture
    def metrics(self):
        """Mock metrics collector."""
        return MagicMock()

    @pytest.fixture
    def cache(self, store, default_policy, clock, metrics):
        """Create PolicyCache instance."""
        return PolicyCache(store, [default_policy], ttl_seconds=300, clock=clock, metrics=metrics)

    @pytest.mark.asyncio
    async def test_merges_defaults_and_enabled_custom_policies(self, cache):
        """Test that the cached set holds defaults first, then enabled store policies."""
        policies = await cache.get()

        assert [p.id for p in policies] == ["default-1", "custom-1"]

    @pytest.mark.asyncio
    async def test_serves_from_cache_within_ttl(self, cache, store, clock):
        """Test that the store is read once per TTL."""
        first = await cache.get()
        clock.advance(299)
        second = await cache.get()

        assert first is second
        store.list_policies.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_refreshes_after_ttl(self, cache, store, clock):
        """Test that an expired snapshot is reloaded."""
        await cache.get()
        clock.advance(300)
        await cache.get()

        assert store.list_policies.await_count == 2

    @pytest.mark.asyncio
    async def test_invalidate_forces_reload(self, cache, store):
        """Test that invalidate drops the cached set."""
        await cache.get()
        cache.invalidate()

        assert cache.stats()["cached"] is False

        await cache.get()
        assert store.list_policies.await_count == 2

    @pytest.mark.asyncio
    async def test_store_failure_raises_policy_load_error(self, cache, store, metrics):
        """Test that store errors surface as PolicyLoadError."""
        store.list_policies.side_effect = ConnectionError("database down")

        with pytest.raises(PolicyLoadError):
            await cache.get()

        metrics.increment_counter.assert_called_with("policy_cache_refresh_total", status="error")

    @pytest.mark.asyncio
    async def test_policy_load_error_propagates_unchanged(self, cache, store):
        """Test that a PolicyLoadError from the store is not wrapped."""
        error = PolicyLoadError("Invalid stored policy")
        store.list_policies.side_effect = error

        with pytest.raises(PolicyLoadError) as exc_info:
            await cache.get()

        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_nothing(self, cache, store):
        """Test that a failed refresh leaves the cache empty."""
        store.list_policies.side_effect = ConnectionError("database down")

        with pytest.raises(PolicyLoadError):
            await cache.get()

        assert cache.stats()["cached"] is False

    @pytest.mark.asyncio
    async def test_store_timeout(self, default_policy, clock):
        """Test that a slow store raises PolicyLoadError."""
        async def slow_list():
            await asyncio.sleep(1)
            return []

        store = MagicMock()
        store.list_policies = slow_list
        cache = PolicyCache(store, [default_policy], clock=clock)

        with pytest.raises(PolicyLoadError) as exc_info:
            await cache.get(timeout=0.01)

        assert exc_info.value.details["timeout_seconds"] == 0.01

    @pytest.mark.asyncio
    async def test_refresh_racing_with_invalidate_is_not_cached(self, default_policy, clock):
        """Test that policies loaded before an invalidate are not kept."""
        release = asyncio.Event()

        async def gated_list():
            await release.wait()
            return [create_policy("stale", effect=PolicyEffect.DENY)]

        store = MagicMock()
        store.list_policies = gated_list
        cache = PolicyCache(store, [default_policy], clock=clock)

        pending = asyncio.ensure_future(cache.get())
        await asyncio.sleep(0)
        cache.invalidate()
        release.set()
        policies = await pending

        assert [p.id for p in policies] == ["default-1", "stale"]
        assert cache.stats()["cached"] is False

    @pytest.mark.asyncio
    async def test_stats(self, cache, clock):
        """Test cache statistics."""
        await cache.get()
        clock.advance(10)

        stats = cache.stats()

        assert stats["cached"] is True
        assert stats["policies"] == 2
        assert stats["default_policies"] == 1
        assert stats["age_seconds"] == 10
        assert stats["ttl_seconds"] == 300
        assert stats["refresh_count"] == 1
