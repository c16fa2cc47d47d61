"""
Test helper functions and factory methods for the Access Layer authorization service.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from service_authz.app.policies.models import (
    EvaluationContext, Policy, PolicyConditions, PolicyEffect, RequestEnvironment,
    Resource, Subject, Subscription
)


def create_subject(
    user_id: str = "user-1",
    role: str = "user",
    tier: str = "free",
    stats: Optional[Dict[str, Any]] = None,
    **attributes
) -> Subject:
    """Create a test subject."""
    return Subject(id=user_id, role=role, tier=tier, attributes=attributes, stats=stats)


def create_resource(
    resource_type: str = "form",
    resource_id: Optional[str] = "form-1",
    owner_id: Optional[str] = None,
    visibility: Optional[str] = None,
    **attributes
) -> Resource:
    """Create a test resource."""
    return Resource(
        type=resource_type,
        id=resource_id,
        owner_id=owner_id,
        visibility=visibility,
        attributes=attributes,
    )


def create_context(
    subject: Optional[Subject] = None,
    resource: Optional[Resource] = None,
    action: str = "read",
    limits: Optional[Dict[str, Any]] = None,
    country: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> EvaluationContext:
    """Create an evaluation context with sensible defaults."""
    request = None
    if country is not None or timestamp is not None:
        request = RequestEnvironment(ip="127.0.0.1", country=country, timestamp=timestamp)

    return EvaluationContext(
        subject=subject or create_subject(),
        resource=resource or create_resource(),
        action=action,
        subscription=Subscription(limits=limits) if limits is not None else None,
        request=request,
    )


def create_policy(
    policy_id: str,
    effect: PolicyEffect = PolicyEffect.ALLOW,
    resource: str = "*",
    action: str = "*",
    priority: int = 0,
    conditions: Optional[PolicyConditions] = None,
    **kwargs
) -> Policy:
    """Create a test policy."""
    return Policy(
        id=policy_id,
        name=kwargs.pop("name", policy_id),
        resource=resource,
        action=action,
        effect=effect,
        conditions=conditions,
        priority=priority,
        **kwargs
    )


def create_policy_document(policy_id: str, **overrides) -> Dict[str, Any]:
    """Create a stored (camelCase JSON) policy document."""
    document: Dict[str, Any] = {
        "id": policy_id,
        "name": f"Policy {policy_id}",
        "resource": "form",
        "action": "read",
        "effect": "allow",
        "conditions": {},
        "priority": 10,
        "enabled": True,
        "createdAt": "2024-01-01T00:00:00Z",
        "updatedAt": "2024-01-01T00:00:00Z",
    }
    document.update(overrides)
    return document


def create_fields(*names: str, premium: Optional[List[str]] = None) -> List[Dict[str, Any]]:
    """Create field descriptors; names listed in ``premium`` are flagged isPremium."""
    premium = premium or []
    return [{"id": name, "label": name.title(), "isPremium": name in premium} for name in names]
