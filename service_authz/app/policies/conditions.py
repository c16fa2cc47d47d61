"""
Condition clause evaluation.

Every function here is total: bad input evaluates to False rather than
raising. The one exception is the custom clause, whose sandbox errors are
caught in ConditionEvaluator and turned into a failed clause.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, TYPE_CHECKING

from shared.errors import ConditionEvaluationError
from shared.logging import get_logger
from .models import (
    Condition, ConditionOperator, EvaluationContext, GeoCondition,
    OWNER_PLACEHOLDER, PolicyConditions, TimeCondition
)
from .sandbox import ExpressionSandbox

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


logger = get_logger("authz.conditions")

_SEQUENCE_TYPES = (list, tuple, set, frozenset)


def _strict_equals(actual: Any, expected: Any) -> bool:
    # True == 1 in Python; keep booleans distinct from numbers
    if isinstance(actual, bool) != isinstance(expected, bool):
        return False
    return actual == expected


def _ordered(compare: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def check(actual: Any, expected: Any) -> bool:
        try:
            return bool(compare(actual, expected))
        except TypeError:
            return False
    return check


def _contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, str):
        return isinstance(expected, str) and expected in actual
    if isinstance(actual, _SEQUENCE_TYPES):
        return expected in actual
    return False


_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    ConditionOperator.EQUALS.value: _strict_equals,
    ConditionOperator.NOT_EQUALS.value: lambda a, e: not _strict_equals(a, e),
    ConditionOperator.IN.value: lambda a, e: isinstance(e, _SEQUENCE_TYPES) and a in e,
    ConditionOperator.NOT_IN.value: lambda a, e: isinstance(e, _SEQUENCE_TYPES) and a not in e,
    ConditionOperator.GREATER.value: _ordered(lambda a, e: a > e),
    ConditionOperator.LESS.value: _ordered(lambda a, e: a < e),
    ConditionOperator.GREATER_OR_EQUAL.value: _ordered(lambda a, e: a >= e),
    ConditionOperator.LESS_OR_EQUAL.value: _ordered(lambda a, e: a <= e),
    ConditionOperator.CONTAINS.value: _contains,
    ConditionOperator.STARTS_WITH.value: lambda a, e: isinstance(a, str) and isinstance(e, str) and a.startswith(e),
    ConditionOperator.ENDS_WITH.value: lambda a, e: isinstance(a, str) and isinstance(e, str) and a.endswith(e),
}


def compare(operator: Any, actual: Any, expected: Any) -> bool:
    """Apply a comparison operator; unknown operators evaluate to False."""
    if isinstance(operator, ConditionOperator):
        operator = operator.value
    check = _OPERATORS.get(operator) if isinstance(operator, str) else None
    if check is None:
        logger.warning("Unknown condition operator", operator=str(operator))
        return False
    try:
        return check(actual, expected)
    except TypeError:
        # unhashable values in membership tests
        return False


def evaluate_attribute(condition: Condition, actual: Any) -> bool:
    """Compare an attribute value against the condition's expected value."""
    return compare(condition.operator, actual, condition.value)


def evaluate_ownership(condition: Condition, actual: Any, subject_id: str) -> bool:
    """Like evaluate_attribute, with ``{{user.id}}`` resolved to the subject id."""
    expected = subject_id if condition.value == OWNER_PLACEHOLDER else condition.value
    return compare(condition.operator, actual, expected)


def _align(moment: datetime, reference: datetime) -> datetime:
    """Make ``moment`` comparable with ``reference``; naive values are taken as UTC."""
    if (moment.tzinfo is None) == (reference.tzinfo is None):
        return moment
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def evaluate_time(condition: TimeCondition, at: datetime) -> bool:
    """Check absolute bounds, hour-of-day window and day-of-week set at ``at``."""
    if condition.before is not None and _align(at, condition.before) > condition.before:
        return False

    if condition.after is not None and _align(at, condition.after) < condition.after:
        return False

    if condition.hours is not None:
        hour = at.hour
        start, end = condition.hours.start, condition.hours.end
        if start <= end:
            if hour < start or hour >= end:
                return False
        else:
            # Overnight window, e.g. 22-6
            if start > hour >= end:
                return False

    if condition.days_of_week is not None:
        day = at.isoweekday() % 7  # Sunday=0
        if day not in condition.days_of_week:
            return False

    return True


def evaluate_geo(condition: GeoCondition, country: Optional[str]) -> bool:
    """Check country allow/deny lists. An unknown country always passes."""
    if not country:
        return True

    if condition.allowed_countries is not None:
        return country in condition.allowed_countries

    if condition.denied_countries is not None:
        return country not in condition.denied_countries

    return True


class ConditionEvaluator:
    """Evaluates a policy's condition set against an evaluation context."""

    def __init__(
        self,
        sandbox: Optional[ExpressionSandbox] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.sandbox = sandbox or ExpressionSandbox()
        self.metrics = metrics
        self.logger = get_logger("authz.conditions")

    def evaluate(
        self,
        conditions: PolicyConditions,
        context: EvaluationContext,
        policy_id: Optional[str] = None,
        deadline: Optional[float] = None,
    ) -> bool:
        """Return True when every clause present in ``conditions`` holds."""
        if conditions.user_attribute is not None:
            actual = context.subject.get_attribute(conditions.user_attribute.field)
            if not evaluate_attribute(conditions.user_attribute, actual):
                return False

        if conditions.resource_attribute is not None:
            actual = context.resource.get_attribute(conditions.resource_attribute.field)
            if not evaluate_attribute(conditions.resource_attribute, actual):
                return False

        if conditions.resource_ownership is not None:
            actual = context.resource.get_attribute(conditions.resource_ownership.field)
            if not evaluate_ownership(conditions.resource_ownership, actual, context.subject.id):
                return False

        if conditions.time is not None:
            at = context.request.timestamp if context.request and context.request.timestamp else datetime.now()
            if not evaluate_time(conditions.time, at):
                return False

        if conditions.geo is not None:
            country = context.request.country if context.request else None
            if not evaluate_geo(conditions.geo, country):
                return False

        if conditions.custom:
            if not self.evaluate_custom(conditions.custom, context, policy_id, deadline):
                return False

        return True

    def evaluate_custom(
        self,
        expression: str,
        context: EvaluationContext,
        policy_id: Optional[str] = None,
        deadline: Optional[float] = None,
    ) -> bool:
        """Run a custom expression in the sandbox; any sandbox error fails the clause."""
        try:
            return self.sandbox.evaluate(
                expression,
                user=context.subject.to_binding(),
                resource=context.resource.to_binding(),
                subscription=context.subscription.to_binding() if context.subscription else None,
                deadline=deadline,
            )
        except ConditionEvaluationError as e:
            self.logger.error(
                "Error evaluating custom expression",
                policy_id=policy_id,
                expression=expression,
                error=e.message
            )
            if self.metrics:
                self.metrics.record_error(e.code)
            return False
