"""
Policy evaluation package.

Defines the ABAC policy model and the components that evaluate it:

- models: Policy, condition clauses, evaluation context and result.
- sandbox: Bounded evaluator for custom condition expressions.
- conditions: Attribute, ownership, time, geography and custom clauses.
- matcher: Per-policy applicability (resource, action, scope, conditions).
- cache: Default + store policy set with TTL refresh.
- engine: Priority ordering and deny-overrides resolution.
- fields: Per-field read filtering built on the engine.
- defaults: Built-in baseline policies.
"""

from .engine import PolicyEngine
from .models import EvaluationContext, EvaluationResult, Policy, PolicyEffect

__all__ = ["PolicyEngine", "EvaluationContext", "EvaluationResult", "Policy", "PolicyEffect"]
