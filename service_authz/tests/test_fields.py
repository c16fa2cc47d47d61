"""
Unit tests for field-level filtering.
"""

import pytest
from unittest.mock import MagicMock

from service_authz.app.persistence import InMemoryPolicyStore
from service_authz.app.policies.engine import PolicyEngine
from service_authz.app.policies.models import Condition, PolicyConditions, PolicyEffect
from shared.test_helpers import (
    create_context, create_fields, create_policy, create_resource, create_subject
)


class TestFieldFilter:
    """Test cases for FieldFilter."""

    @pytest.fixture
    def engine(self):
        """Create PolicyEngine with built-in policies."""
        return PolicyEngine(InMemoryPolicyStore())

    @pytest.fixture
    def fields(self):
        """Form fields, one premium."""
        return create_fields("name", "email", "score", premium=["score"])

    def test_field_context(self, engine):
        """Test the per-field sub-context."""
        context = create_context(
            resource=create_resource("form", owner_id="u1", visibility="public"),
            action="update",
        )

        field_context = engine.field_filter.field_context(context, {"id": "score", "type": "text", "isPremium": True})

        assert field_context.resource.type == "form:field"
        assert field_context.action == "read"
        assert field_context.resource.id == "score"
        assert field_context.resource.owner_id == "u1"
        assert field_context.resource.get_attribute("isPremium") is True
        assert context.resource.type == "form"

    @pytest.mark.asyncio
    async def test_public_form_fields_readable(self, engine, fields):
        """Test that every field of a public form is readable."""
        context = create_context(
            subject=create_subject("u2", tier="free"),
            resource=create_resource("form", owner_id="u1", visibility="public"),
        )

        result = await engine.filter_fields(context, fields)

        assert result == fields

    @pytest.mark.asyncio
    async def test_pro_user_reads_premium_fields(self, engine, fields):
        """Test that a pro user reads only premium fields of another user's private form."""
        context = create_context(
            subject=create_subject("u2", tier="pro"),
            resource=create_resource("form", owner_id="u1", visibility="private"),
        )

        result = await engine.filter_fields(context, fields)

        assert [f["id"] for f in result] == ["score"]

    @pytest.mark.asyncio
    async def test_owner_keeps_every_field(self, engine, fields):
        """Test that the form owner can read all fields."""
        context = create_context(
            subject=create_subject("u1", tier="free"),
            resource=create_resource("form", owner_id="u1", visibility="private"),
        )

        result = await engine.filter_fields(context, fields)

        assert result == fields

    @pytest.mark.asyncio
    async def test_no_access_removes_everything(self, engine, fields):
        """Test that a free user reads no field of another user's private form."""
        context = create_context(
            subject=create_subject("u2", tier="free"),
            resource=create_resource("form", owner_id="u1", visibility="private"),
        )

        result = await engine.filter_fields(context, fields)

        assert result == []

    @pytest.mark.asyncio
    async def test_returns_original_objects_in_order(self):
        """Test that retained fields are the input objects, in input order."""
        store = InMemoryPolicyStore([
            create_policy("allow-fields", resource="form:field", action="read"),
            create_policy(
                "deny-secret",
                effect=PolicyEffect.DENY,
                resource="form:field",
                conditions=PolicyConditions(
                    resource_attribute=Condition(field="secret", operator="equals", value=True)
                ),
            ),
        ])
        engine = PolicyEngine(store, default_policies=[])
        fields = [{"id": "c"}, {"id": "a", "secret": True}, {"id": "b"}]

        result = await engine.filter_fields(create_context(), fields)

        assert result == [{"id": "c"}, {"id": "b"}]
        assert result[0] is fields[0]
        assert len(fields) == 3

    @pytest.mark.asyncio
    async def test_empty_field_list(self, engine):
        """Test filtering of no fields."""
        assert await engine.filter_fields(create_context(), []) == []

    @pytest.mark.asyncio
    async def test_field_outcomes_counted(self):
        """Test the fields_filtered_total counter."""
        metrics = MagicMock()
        store = InMemoryPolicyStore([create_policy("allow-fields", resource="form:field", action="read")])
        engine = PolicyEngine(store, default_policies=[], metrics=metrics)

        await engine.filter_fields(create_context(), [{"id": "a"}])

        metrics.increment_counter.assert_any_call("fields_filtered_total", outcome="retained")
