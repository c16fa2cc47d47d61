"""
Policy applicability checks.
"""

from typing import Optional

from .conditions import ConditionEvaluator
from .models import EvaluationContext, Policy
from .resource_path import WILDCARD


class PolicyMatcher:
    """Decides whether a single policy applies to an evaluation context.

    Matching is independent per policy; ordering and conflict resolution
    belong to the engine.
    """

    def __init__(self, condition_evaluator: Optional[ConditionEvaluator] = None):
        self.condition_evaluator = condition_evaluator or ConditionEvaluator()

    def matches(self, policy: Policy, context: EvaluationContext, deadline: Optional[float] = None) -> bool:
        """Return True if ``policy`` applies to ``context``."""
        if not policy.resource_path.matches(context.resource.path):
            return False

        if not self.matches_action(policy.action, context.action):
            return False

        # Subject-scoped policy
        if policy.user_id and policy.user_id != context.subject.id:
            return False

        if policy.conditions is None:
            return True

        return self.condition_evaluator.evaluate(
            policy.conditions, context, policy_id=policy.id, deadline=deadline
        )

    @staticmethod
    def matches_action(pattern: str, action: str) -> bool:
        return pattern == WILDCARD or pattern == action
