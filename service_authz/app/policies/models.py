"""
Policy data models for the Authorization Service.
"""

from typing import Dict, Any, Optional, List, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from shared.errors import ValidationError
from .resource_path import ResourcePath, parse_resource_path


OWNER_PLACEHOLDER = "{{user.id}}"


class PolicyEffect(str, Enum):
    """Policy effect types."""
    ALLOW = "allow"
    DENY = "deny"


class ConditionOperator(str, Enum):
    """Attribute comparison operators."""
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    IN = "in"
    NOT_IN = "notIn"
    GREATER = "greater"
    LESS = "less"
    GREATER_OR_EQUAL = "greaterOrEqual"
    LESS_OR_EQUAL = "lessOrEqual"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"


@dataclass
class Condition:
    """Attribute comparison. ``operator`` is kept as given so unknown operators can fail closed."""
    field: str
    operator: str
    value: Any = None


@dataclass
class HourRange:
    """Hour-of-day window, ``start`` inclusive and ``end`` exclusive (0-23)."""
    start: int
    end: int


@dataclass
class TimeCondition:
    """Time window condition."""
    before: Optional[datetime] = None
    after: Optional[datetime] = None
    hours: Optional[HourRange] = None
    days_of_week: Optional[List[int]] = None  # 0=Sunday ... 6=Saturday


@dataclass
class GeoCondition:
    """Country allow/deny lists."""
    allowed_countries: Optional[List[str]] = None
    denied_countries: Optional[List[str]] = None


@dataclass
class PolicyConditions:
    """Condition set; every clause present must hold."""
    user_attribute: Optional[Condition] = None
    resource_attribute: Optional[Condition] = None
    resource_ownership: Optional[Condition] = None
    time: Optional[TimeCondition] = None
    geo: Optional[GeoCondition] = None
    custom: Optional[str] = None


@dataclass
class Policy:
    """Authorization policy."""
    id: str
    name: str
    description: Optional[str] = None
    resource: str = "*"
    action: str = "*"
    effect: PolicyEffect = PolicyEffect.DENY
    conditions: Optional[PolicyConditions] = None
    priority: int = 0
    user_id: Optional[str] = None
    enabled: bool = True
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def resource_path(self) -> ResourcePath:
        return parse_resource_path(self.resource)


def lookup_attribute(attributes: Mapping[str, Any], name: str) -> Any:
    """Resolve ``name`` in ``attributes``; dotted names descend into nested mappings."""
    if name in attributes:
        return attributes[name]

    if "." not in name:
        return None

    value: Any = attributes
    for part in name.split("."):
        if isinstance(value, Mapping) and part in value:
            value = value[part]
        else:
            return None
    return value


def _overlay(binding: Dict[str, Any], typed: Mapping[str, Any]) -> None:
    # Unset typed fields leave attribute-map entries of the same name visible
    binding.update({key: value for key, value in typed.items() if value is not None})


@dataclass
class Subject:
    """The user a decision is made for."""
    id: str
    role: Optional[str] = None
    tier: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)
    stats: Optional[Dict[str, Any]] = None

    def to_binding(self) -> Dict[str, Any]:
        """Attribute map overlaid with the typed fields that are set."""
        binding = dict(self.attributes)
        _overlay(binding, {
            "id": self.id,
            "role": self.role,
            "tier": self.tier,
            "subscriptionTier": self.tier,
            "stats": dict(self.stats) if self.stats is not None else None,
        })
        return binding

    def get_attribute(self, name: str) -> Any:
        return lookup_attribute(self.to_binding(), name)


_RESOURCE_OWNER_KEYS = ("userId", "owner_id", "ownerId")


@dataclass
class Resource:
    """The object being accessed."""
    type: str
    id: Optional[str] = None
    owner_id: Optional[str] = None
    visibility: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def path(self) -> ResourcePath:
        return parse_resource_path(self.type)

    def to_binding(self) -> Dict[str, Any]:
        binding = dict(self.attributes)
        owner_id = self.owner_id
        if owner_id is None:
            owner_id = next(
                (binding[key] for key in _RESOURCE_OWNER_KEYS if binding.get(key) is not None), None
            )
        _overlay(binding, {
            "type": self.type,
            "id": self.id,
            "userId": owner_id,
            "owner_id": owner_id,
            "visibility": self.visibility,
        })
        return binding

    def get_attribute(self, name: str) -> Any:
        return lookup_attribute(self.to_binding(), name)

    def merged(self, extra: Mapping[str, Any], resource_type: str) -> "Resource":
        """Copy of this resource overlaid with ``extra`` and forced to ``resource_type``."""
        overlay = Resource.from_dict(dict(extra), default_type=resource_type)
        return Resource(
            type=resource_type,
            id=overlay.id if overlay.id is not None else self.id,
            owner_id=overlay.owner_id if overlay.owner_id is not None else self.owner_id,
            visibility=overlay.visibility if overlay.visibility is not None else self.visibility,
            attributes={**self.attributes, **overlay.attributes},
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], default_type: str = "") -> "Resource":
        attributes = dict(data)
        owner_id = None
        for key in _RESOURCE_OWNER_KEYS:
            if key in attributes:
                candidate = attributes.pop(key)
                if owner_id is None:
                    owner_id = candidate
        return cls(
            type=attributes.pop("type", default_type),
            id=attributes.pop("id", None),
            owner_id=owner_id,
            visibility=attributes.pop("visibility", None),
            attributes=attributes,
        )


@dataclass
class Subscription:
    """Plan limits of the subject's subscription."""
    limits: Dict[str, Any] = field(default_factory=dict)

    def to_binding(self) -> Dict[str, Any]:
        return {"limits": dict(self.limits)}


@dataclass
class RequestEnvironment:
    """Request environment supplied by the caller."""
    ip: Optional[str] = None
    country: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass
class EvaluationContext:
    """Context for policy evaluation."""
    subject: Subject
    resource: Resource
    action: str
    subscription: Optional[Subscription] = None
    request: Optional[RequestEnvironment] = None

    def with_resource(self, resource: Resource, action: Optional[str] = None) -> "EvaluationContext":
        return replace(self, resource=resource, action=action if action is not None else self.action)


@dataclass
class EvaluationResult:
    """Result of policy evaluation."""
    allowed: bool
    denied_by: List[str] = field(default_factory=list)
    allowed_by: List[str] = field(default_factory=list)
    reason: Optional[str] = None
    evaluation_time_ms: float = 0.0


# Decoding of the stored (camelCase JSON) policy shape

_DATETIME = TypeAdapter(datetime)


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def _parse_datetime(value: Any, name: str) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return _DATETIME.validate_python(value)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid datetime for '{name}'", {"value": str(value)}) from e


def condition_from_dict(data: Mapping[str, Any]) -> Condition:
    if not isinstance(data, Mapping) or "field" not in data:
        raise ValidationError("Condition requires a 'field'", {"condition": str(data)})
    operator = data.get("operator", "")
    if isinstance(operator, Enum):
        operator = operator.value
    return Condition(
        field=str(data["field"]),
        operator=str(operator),
        value=data.get("value"),
    )


def conditions_from_dict(data: Optional[Mapping[str, Any]]) -> Optional[PolicyConditions]:
    """Decode a stored condition set; ``None`` and ``{}`` both mean "no conditions"."""
    if not data:
        return None
    if not isinstance(data, Mapping):
        raise ValidationError("Policy conditions must be an object", {"conditions": str(data)})

    def optional_condition(*keys: str) -> Optional[Condition]:
        value = _pick(data, *keys)
        return condition_from_dict(value) if value is not None else None

    time_condition = None
    time_data = data.get("time")
    if time_data is not None:
        hours = None
        hours_data = time_data.get("hours")
        if hours_data is not None:
            hours = HourRange(start=int(hours_data["start"]), end=int(hours_data["end"]))
        days = _pick(time_data, "daysOfWeek", "days_of_week")
        time_condition = TimeCondition(
            before=_parse_datetime(time_data.get("before"), "time.before"),
            after=_parse_datetime(time_data.get("after"), "time.after"),
            hours=hours,
            days_of_week=[int(day) for day in days] if days is not None else None,
        )

    geo_condition = None
    geo_data = data.get("geo")
    if geo_data is not None:
        allowed = _pick(geo_data, "allowedCountries", "allowed_countries")
        denied = _pick(geo_data, "deniedCountries", "denied_countries")
        geo_condition = GeoCondition(
            allowed_countries=list(allowed) if allowed is not None else None,
            denied_countries=list(denied) if denied is not None else None,
        )

    return PolicyConditions(
        user_attribute=optional_condition("userAttribute", "user_attribute"),
        resource_attribute=optional_condition("resourceAttribute", "resource_attribute"),
        resource_ownership=optional_condition("resourceOwnership", "resource_ownership"),
        time=time_condition,
        geo=geo_condition,
        custom=data.get("custom") or None,
    )


def policy_from_dict(data: Mapping[str, Any]) -> Policy:
    """Build a Policy from its stored representation."""
    raw_effect = data.get("effect", PolicyEffect.DENY)
    if isinstance(raw_effect, Enum):
        raw_effect = raw_effect.value
    try:
        policy_id = str(data["id"])
        effect = PolicyEffect(str(raw_effect).lower())
    except KeyError as e:
        raise ValidationError("Policy requires an 'id'", {"policy": str(data)}) from e
    except ValueError as e:
        raise ValidationError("Unknown policy effect", {"effect": str(data.get("effect"))}) from e

    now = datetime.now()
    created_at = _parse_datetime(_pick(data, "createdAt", "created_at"), "created_at") or now
    updated_at = _parse_datetime(_pick(data, "updatedAt", "updated_at"), "updated_at") or created_at
    enabled = data.get("enabled")
    try:
        conditions = conditions_from_dict(data.get("conditions"))
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise ValidationError("Malformed policy conditions", {"policy_id": policy_id, "error": str(e)}) from e
    try:
        priority = int(data.get("priority") or 0)
    except (TypeError, ValueError) as e:
        raise ValidationError(
            "Invalid policy priority", {"policy_id": policy_id, "priority": str(data.get("priority"))}
        ) from e

    return Policy(
        id=policy_id,
        name=str(data.get("name") or policy_id),
        description=data.get("description"),
        resource=str(data.get("resource") or "*"),
        action=str(data.get("action") or "*"),
        effect=effect,
        conditions=conditions,
        priority=priority,
        user_id=_pick(data, "userId", "user_id"),
        enabled=True if enabled is None else bool(enabled),
        created_at=created_at,
        updated_at=updated_at,
    )


# API models

class SubjectModel(BaseModel):
    """Subject part of an evaluation request."""
    id: str = Field(..., description="Subject (user) ID")
    role: Optional[str] = Field(None, description="Subject role")
    tier: Optional[str] = Field(None, description="Subscription tier")
    attributes: Dict[str, Any] = Field(default_factory=dict, description="Additional subject attributes")
    stats: Optional[Dict[str, Any]] = Field(None, description="Usage statistics")


class ResourceModel(BaseModel):
    """Resource part of an evaluation request."""
    type: str = Field(..., description="Resource type, e.g. 'form' or 'form:field'")
    id: Optional[str] = Field(None, description="Resource ID")
    owner_id: Optional[str] = Field(None, description="Owning user ID")
    visibility: Optional[str] = Field(None, description="Resource visibility")
    attributes: Dict[str, Any] = Field(default_factory=dict, description="Additional resource attributes")


class SubscriptionModel(BaseModel):
    """Subscription limits."""
    limits: Dict[str, Any] = Field(default_factory=dict)


class RequestEnvironmentModel(BaseModel):
    """Request environment."""
    ip: Optional[str] = None
    country: Optional[str] = None
    timestamp: Optional[datetime] = None


class EvaluationRequest(BaseModel):
    """Request model for a policy decision."""
    subject: SubjectModel
    resource: ResourceModel
    action: str = Field(..., description="Action to perform")
    subscription: Optional[SubscriptionModel] = None
    request: Optional[RequestEnvironmentModel] = None

    def to_context(self) -> EvaluationContext:
        return EvaluationContext(
            subject=Subject(**self.subject.model_dump()),
            resource=Resource(**self.resource.model_dump()),
            action=self.action,
            subscription=Subscription(**self.subscription.model_dump()) if self.subscription else None,
            request=RequestEnvironment(**self.request.model_dump()) if self.request else None,
        )


class EvaluationResponse(BaseModel):
    """Response model for a policy decision."""
    allowed: bool = Field(..., description="Whether the action is allowed")
    denied_by: List[str] = Field(default_factory=list, description="Policy IDs that denied")
    allowed_by: List[str] = Field(default_factory=list, description="Policy IDs that allowed")
    reason: Optional[str] = Field(None, description="Reason for the decision")
    evaluation_time_ms: float = 0.0

    @classmethod
    def from_result(cls, result: EvaluationResult) -> "EvaluationResponse":
        return cls(
            allowed=result.allowed,
            denied_by=result.denied_by,
            allowed_by=result.allowed_by,
            reason=result.reason,
            evaluation_time_ms=result.evaluation_time_ms,
        )


class FieldFilterRequest(EvaluationRequest):
    """Request model for field-level filtering; ``action`` is ignored per field."""
    action: str = Field("read", description="Action on the parent resource")
    fields: List[Dict[str, Any]] = Field(default_factory=list)


class FieldFilterResponse(BaseModel):
    """Response model for field-level filtering."""
    fields: List[Dict[str, Any]]
    total: int
    retained: int

