"""
Policy evaluation engine for the Authorization Service.
"""

import time
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, TypeVar, TYPE_CHECKING

from shared.logging import get_logger
from .cache import DEFAULT_CACHE_TTL_SECONDS, PolicyCache
from .conditions import ConditionEvaluator
from .defaults import DEFAULT_POLICIES
from .fields import FieldFilter
from .matcher import PolicyMatcher
from .models import EvaluationContext, EvaluationResult, Policy, PolicyEffect
from .sandbox import ExpressionSandbox

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector
    from ..persistence import PolicyStore


FieldT = TypeVar("FieldT", bound=Mapping[str, Any])


class PolicyEngine:
    """Deny-overrides policy evaluation engine.

    Owns the policy cache for its store. One long-lived instance is meant to
    serve every request of a process.
    """

    def __init__(
        self,
        store: "PolicyStore",
        default_policies: Optional[Iterable[Policy]] = None,
        cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        store_timeout_seconds: Optional[float] = None,
        sandbox: Optional[ExpressionSandbox] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.logger = get_logger("authz.policy_engine")
        self.metrics = metrics
        self.store_timeout_seconds = store_timeout_seconds
        self.cache = PolicyCache(
            store,
            DEFAULT_POLICIES if default_policies is None else default_policies,
            ttl_seconds=cache_ttl_seconds,
            metrics=metrics,
        )
        self.matcher = PolicyMatcher(ConditionEvaluator(sandbox, metrics=metrics))
        self.field_filter = FieldFilter(self, metrics=metrics)

    async def evaluate(self, context: EvaluationContext, deadline: Optional[float] = None) -> EvaluationResult:
        """Evaluate all policies against ``context``.

        ``deadline`` is an absolute ``time.monotonic()`` value bounding custom
        expression execution.

        Raises:
            PolicyLoadError: if the policy set cannot be loaded.
        """
        start_time = time.time()

        policies = await self.cache.get(timeout=self.store_timeout_seconds)

        matching = [p for p in policies if self.matcher.matches(p, context, deadline=deadline)]
        # list.sort is stable, equal priorities keep their order
        matching.sort(key=lambda p: p.priority, reverse=True)

        denied_by = [p.id for p in matching if p.effect == PolicyEffect.DENY]
        allowed_by = [p.id for p in matching if p.effect == PolicyEffect.ALLOW]

        # DENY takes precedence over ALLOW
        allowed = not denied_by and bool(allowed_by)

        result = EvaluationResult(
            allowed=allowed,
            denied_by=denied_by,
            allowed_by=allowed_by,
            reason=self._reason(matching, denied_by, allowed_by),
            evaluation_time_ms=(time.time() - start_time) * 1000,
        )

        self.logger.debug(
            "Policy evaluation",
            user_id=context.subject.id,
            resource=context.resource.type,
            action=context.action,
            allowed=allowed,
            denied_by=denied_by,
            allowed_by=allowed_by,
        )
        if self.metrics:
            self.metrics.increment_counter(
                "policy_evaluations_total", decision="allow" if allowed else "deny"
            )
            self.metrics.observe_histogram(
                "policy_evaluation_duration_seconds", result.evaluation_time_ms / 1000
            )

        return result

    async def filter_fields(
        self,
        context: EvaluationContext,
        fields: Sequence[FieldT],
        deadline: Optional[float] = None,
    ) -> List[FieldT]:
        """Keep only the fields the subject may read."""
        return await self.field_filter.filter_fields(context, fields, deadline=deadline)

    def invalidate_cache(self) -> None:
        """Clear the policy cache. Call after any policy mutation."""
        self.cache.invalidate()

    def get_engine_stats(self) -> Dict[str, Any]:
        """Get engine statistics."""
        stats = self.cache.stats()
        stats["sandbox_timeout_ms"] = self.matcher.condition_evaluator.sandbox.timeout_ms
        return stats

    @staticmethod
    def _reason(matching: List[Policy], denied_by: List[str], allowed_by: List[str]) -> str:
        if not matching:
            return "No applicable policies matched"
        if denied_by:
            return f"Denied by policy '{denied_by[0]}'"
        if allowed_by:
            return f"Allowed by policy '{allowed_by[0]}'"
        return "No allowing policy matched"
