"""
Field-level authorization filtering.
"""

from typing import Any, List, Mapping, Optional, Sequence, TypeVar, TYPE_CHECKING

from shared.logging import get_logger
from .models import EvaluationContext

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector
    from .engine import PolicyEngine


FIELD_SEGMENT = "field"
FIELD_ACTION = "read"

FieldT = TypeVar("FieldT", bound=Mapping[str, Any])


class FieldFilter:
    """Keeps only the child fields of a resource the subject may read."""

    def __init__(self, engine: "PolicyEngine", metrics: Optional["MetricsCollector"] = None):
        self.engine = engine
        self.metrics = metrics
        self.logger = get_logger("authz.field_filter")

    def field_context(self, context: EvaluationContext, field: Mapping[str, Any]) -> EvaluationContext:
        """Sub-context for one field: parent resource + field attributes, type ``<parent>:field``, action ``read``."""
        field_type = str(context.resource.path.child(FIELD_SEGMENT))
        return context.with_resource(
            context.resource.merged(field, resource_type=field_type),
            action=FIELD_ACTION,
        )

    async def filter_fields(
        self,
        context: EvaluationContext,
        fields: Sequence[FieldT],
        deadline: Optional[float] = None,
    ) -> List[FieldT]:
        """Return the readable fields, in input order. The input is not modified."""
        retained: List[FieldT] = []

        for field in fields:
            result = await self.engine.evaluate(self.field_context(context, field), deadline=deadline)
            if result.allowed:
                retained.append(field)
            if self.metrics:
                self.metrics.increment_counter(
                    "fields_filtered_total", outcome="retained" if result.allowed else "removed"
                )

        self.logger.debug(
            "Fields filtered",
            user_id=context.subject.id,
            resource=context.resource.type,
            total=len(fields),
            retained=len(retained),
        )
        return retained
