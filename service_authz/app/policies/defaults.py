"""
Baseline policies compiled into the service.

They are merged with store policies on every cache refresh and cannot be
disabled or deleted through the store. Evaluation order and conflict rules:

1. Matching policies are ordered by priority (higher first).
2. Any matching DENY policy denies access.
3. Otherwise any matching ALLOW policy allows access.
4. No matching policy denies access (default deny).
"""

from datetime import datetime
from typing import List

from .models import (
    Condition, ConditionOperator, HourRange, OWNER_PLACEHOLDER, Policy,
    PolicyConditions, PolicyEffect, TimeCondition
)


_BUILT_IN = datetime(2024, 1, 1)


def _policy(**kwargs) -> Policy:
    return Policy(created_at=_BUILT_IN, updated_at=_BUILT_IN, **kwargs)


def _is_admin(operator: ConditionOperator = ConditionOperator.EQUALS) -> PolicyConditions:
    return PolicyConditions(
        user_attribute=Condition(field="role", operator=operator.value, value="admin")
    )


DEFAULT_POLICIES: List[Policy] = [
    _policy(
        id="policy_admin_full_access",
        name="Admin Full Access",
        description="Admins have full access to all resources",
        resource="*",
        action="*",
        effect=PolicyEffect.ALLOW,
        conditions=_is_admin(),
        priority=200,
    ),
    _policy(
        id="policy_user_management_deny_non_admin",
        name="User Management - Deny Non-Admin",
        description="Non-admin users cannot list users",
        resource="user",
        action="list",
        effect=PolicyEffect.DENY,
        conditions=_is_admin(ConditionOperator.NOT_EQUALS),
        priority=190,
    ),
    _policy(
        id="policy_management_deny_non_admin",
        name="Policy Management - Deny Non-Admin",
        description="Non-admin users cannot access ABAC policies",
        resource="policy",
        action="*",
        effect=PolicyEffect.DENY,
        conditions=_is_admin(ConditionOperator.NOT_EQUALS),
        priority=190,
    ),
    _policy(
        id="policy_free_tier_form_limit",
        name="Free Tier Form Creation Limit",
        description="Free tier users cannot exceed their form limit",
        resource="form",
        action="create",
        effect=PolicyEffect.DENY,
        conditions=PolicyConditions(
            user_attribute=Condition(
                field="subscriptionTier", operator=ConditionOperator.EQUALS.value, value="free"
            ),
            custom="user.stats.formCount >= subscription.limits.forms",
        ),
        priority=150,
    ),
    _policy(
        id="policy_form_owner_full_access",
        name="Form Owner Full Access",
        description="Form owners have full access to their forms",
        resource="form",
        action="*",
        effect=PolicyEffect.ALLOW,
        conditions=PolicyConditions(
            resource_ownership=Condition(
                field="userId", operator=ConditionOperator.EQUALS.value, value=OWNER_PLACEHOLDER
            )
        ),
        priority=100,
    ),
    _policy(
        id="policy_self_user_access",
        name="Self User Profile Access",
        description="Users can read their own profile",
        resource="user",
        action="read",
        effect=PolicyEffect.ALLOW,
        conditions=PolicyConditions(
            resource_ownership=Condition(
                field="id", operator=ConditionOperator.EQUALS.value, value=OWNER_PLACEHOLDER
            )
        ),
        priority=100,
    ),
    _policy(
        id="policy_business_hours_only",
        name="Business Hours Only",
        description="Analytics are not readable between midnight and 8am",
        resource="analytics",
        action="read",
        effect=PolicyEffect.DENY,
        conditions=PolicyConditions(time=TimeCondition(hours=HourRange(start=0, end=8))),
        priority=90,
    ),
    _policy(
        id="policy_premium_fields",
        name="Premium Field Access",
        description="Pro and Enterprise users can read premium fields",
        resource="form:field",
        action="read",
        effect=PolicyEffect.ALLOW,
        conditions=PolicyConditions(
            user_attribute=Condition(
                field="subscriptionTier", operator=ConditionOperator.IN.value, value=["pro", "enterprise"]
            ),
            resource_attribute=Condition(
                field="isPremium", operator=ConditionOperator.EQUALS.value, value=True
            ),
        ),
        priority=80,
    ),
    _policy(
        id="policy_public_form_read",
        name="Public Form Read Access",
        description="Anyone can read public forms",
        resource="form",
        action="read",
        effect=PolicyEffect.ALLOW,
        conditions=PolicyConditions(
            resource_attribute=Condition(
                field="visibility", operator=ConditionOperator.EQUALS.value, value="public"
            )
        ),
        priority=50,
    ),
    _policy(
        id="policy_enterprise_custom_policies",
        name="Enterprise Custom Policies",
        description="Enterprise users can create custom policies",
        resource="policy",
        action="create",
        effect=PolicyEffect.ALLOW,
        conditions=PolicyConditions(
            user_attribute=Condition(
                field="subscriptionTier", operator=ConditionOperator.EQUALS.value, value="enterprise"
            )
        ),
        priority=100,
    ),
]
