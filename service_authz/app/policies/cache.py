"""
In-memory policy cache with time-boxed refresh from the policy store.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Tuple, TYPE_CHECKING

from shared.errors import PolicyLoadError
from shared.logging import get_logger
from .models import Policy

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector
    from ..persistence import PolicyStore


DEFAULT_CACHE_TTL_SECONDS = 300.0


@dataclass(frozen=True)
class _CacheSnapshot:
    policies: Tuple[Policy, ...]
    loaded_at: float


class PolicyCache:
    """Holds the merged default + custom policy set.

    The cached set is an immutable snapshot swapped in with one assignment,
    so readers never observe a partially refreshed list. Concurrent refills
    are not coordinated; they only repeat the same store read.
    """

    def __init__(
        self,
        store: "PolicyStore",
        default_policies: Iterable[Policy] = (),
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.default_policies: Tuple[Policy, ...] = tuple(default_policies)
        self.ttl_seconds = ttl_seconds
        self.metrics = metrics
        self.logger = get_logger("authz.policy_cache")
        self._clock = clock
        self._snapshot: Optional[_CacheSnapshot] = None
        self._generation = 0
        self._refresh_count = 0

    async def get(self, timeout: Optional[float] = None) -> Tuple[Policy, ...]:
        """Return the cached policies, reloading from the store when empty or stale.

        Raises:
            PolicyLoadError: if the store fails or does not answer within ``timeout``.
        """
        snapshot = self._snapshot
        if snapshot is not None and not self._is_expired(snapshot):
            return snapshot.policies

        return await self._refresh(timeout)

    def invalidate(self) -> None:
        """Drop the cached set; the next get() reloads from the store."""
        self._generation += 1
        self._snapshot = None
        self.logger.info("Policy cache invalidated")

    def stats(self) -> Dict[str, Any]:
        snapshot = self._snapshot
        return {
            "cached": snapshot is not None,
            "policies": len(snapshot.policies) if snapshot else 0,
            "default_policies": len(self.default_policies),
            "age_seconds": self._clock() - snapshot.loaded_at if snapshot else None,
            "ttl_seconds": self.ttl_seconds,
            "refresh_count": self._refresh_count,
        }

    def _is_expired(self, snapshot: _CacheSnapshot) -> bool:
        return self._clock() - snapshot.loaded_at >= self.ttl_seconds

    async def _refresh(self, timeout: Optional[float]) -> Tuple[Policy, ...]:
        generation = self._generation

        try:
            if timeout is None:
                custom_policies = await self.store.list_policies()
            else:
                custom_policies = await asyncio.wait_for(self.store.list_policies(), timeout)
        except PolicyLoadError:
            self._record_refresh("error")
            raise
        except asyncio.TimeoutError as e:
            self._record_refresh("error")
            self.logger.error("Policy store timed out", timeout_seconds=timeout)
            raise PolicyLoadError("Policy store timed out", {"timeout_seconds": timeout}) from e
        except Exception as e:
            self._record_refresh("error")
            self.logger.error("Failed to load policies", error=str(e))
            raise PolicyLoadError(f"Failed to load policies: {e}") from e

        policies = self.default_policies + tuple(p for p in custom_policies if p.enabled)

        # A refresh that raced with invalidate() must not resurrect stale data
        if generation == self._generation:
            self._snapshot = _CacheSnapshot(policies=policies, loaded_at=self._clock())

        self._refresh_count += 1
        self._record_refresh("ok")
        self.logger.info(
            "Policy cache refreshed",
            default_policies=len(self.default_policies),
            custom_policies=len(policies) - len(self.default_policies),
        )
        return policies

    def _record_refresh(self, status: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("policy_cache_refresh_total", status=status)
