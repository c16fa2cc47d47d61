"""
FastAPI dependencies that enforce policy decisions on routes.
"""

from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import HTTPException, Request

from shared.errors import AuthorizationError
from shared.logging import get_logger, set_user_context
from .policies.engine import PolicyEngine
from .policies.models import (
    EvaluationContext, EvaluationResult, RequestEnvironment, Resource, Subject, Subscription
)


logger = get_logger("authz.dependencies")

COUNTRY_HEADER = "x-country-code"

ResourceExtractor = Callable[[Request], Awaitable[Dict[str, Any]]]


def get_policy_engine(request: Request) -> PolicyEngine:
    """The engine attached to the application by AuthzService."""
    return request.app.state.policy_engine


def build_context(
    request: Request,
    subject: Subject,
    resource: Resource,
    action: str,
    subscription: Optional[Subscription] = None,
) -> EvaluationContext:
    """Build an evaluation context with the request environment filled in."""
    return EvaluationContext(
        subject=subject,
        resource=resource,
        action=action,
        subscription=subscription,
        request=RequestEnvironment(
            ip=request.client.host if request.client else None,
            country=request.headers.get(COUNTRY_HEADER),
            timestamp=datetime.now(),
        ),
    )


def require_access(
    resource_type: str,
    action: str,
    resource_extractor: Optional[ResourceExtractor] = None,
) -> Callable[[Request], Awaitable[EvaluationResult]]:
    """Dependency factory enforcing ``action`` on ``resource_type``.

    The authenticated subject is read from ``request.state.subject`` (and an
    optional ``request.state.subscription``), which the authentication layer
    sets. A denied decision raises AuthorizationError (403, with the denying
    policy ids); a PolicyLoadError propagates and is rendered as a 500.
    """

    async def dependency(request: Request) -> EvaluationResult:
        subject: Optional[Subject] = getattr(request.state, "subject", None)
        if subject is None:
            raise HTTPException(status_code=401, detail="Authentication required")
        set_user_context(subject.id)

        resource_data: Dict[str, Any] = {"type": resource_type}
        if resource_extractor:
            resource_data.update(await resource_extractor(request))
            resource_data["type"] = resource_type

        context = build_context(
            request,
            subject,
            Resource.from_dict(resource_data),
            action,
            getattr(request.state, "subscription", None),
        )

        result = await get_policy_engine(request).evaluate(context)
        if not result.allowed:
            logger.warning(
                "Authorization denied",
                user_id=subject.id,
                resource=resource_type,
                action=action,
                denied_by=result.denied_by,
            )
            raise AuthorizationError(denied_by=result.denied_by)

        request.state.authorization = result
        return result

    return dependency
