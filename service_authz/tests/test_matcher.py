"""
Unit tests for policy matching and resource paths.
"""

import pytest

from service_authz.app.policies.matcher import PolicyMatcher
from service_authz.app.policies.models import Condition, PolicyConditions, PolicyEffect
from service_authz.app.policies.resource_path import ResourcePath, parse_resource_path
from shared.test_helpers import create_context, create_policy, create_resource, create_subject


class TestResourcePath:
    """Test cases for ResourcePath."""

    def test_parse(self):
        """Test parsing of hierarchical resource types."""
        path = parse_resource_path("form:field")

        assert path.segments == ("form", "field")
        assert path.base == "form"
        assert str(path) == "form:field"

    def test_child(self):
        """Test building a child path."""
        assert str(parse_resource_path("form").child("field")) == "form:field"

    def test_wildcard(self):
        """Test the wildcard path."""
        assert ResourcePath(("*",)).is_wildcard is True
        assert parse_resource_path("form:*").is_wildcard is False


class TestPolicyMatcher:
    """Test cases for PolicyMatcher."""

    @pytest.fixture
    def matcher(self):
        """Create PolicyMatcher instance."""
        return PolicyMatcher()

    @pytest.mark.parametrize("pattern,resource_type,expected", [
        ("*", "form", True),
        ("*", "form:field", True),
        ("form", "form", True),
        ("form", "form:field", True),
        ("form:field", "form", True),
        ("form:*", "form", True),
        ("form:field", "form:field", True),
        ("user", "form", False),
        ("form:field", "user:field", False),
    ])
    def test_matches_resource(self, matcher, pattern, resource_type, expected):
        """Test resource pattern matching through the policy resource path."""
        policy = create_policy("p1", resource=pattern)
        context = create_context(resource=create_resource(resource_type))

        assert policy.resource_path.matches(context.resource.path) is expected
        assert matcher.matches(policy, context) is expected

    @pytest.mark.parametrize("pattern,action,expected", [
        ("*", "delete", True),
        ("read", "read", True),
        ("read", "update", False),
        ("Read", "read", False),
    ])
    def test_matches_action(self, pattern, action, expected):
        """Test action pattern matching."""
        assert PolicyMatcher.matches_action(pattern, action) is expected

    def test_matches_unconditional_policy(self, matcher):
        """Test a policy without conditions."""
        policy = create_policy("p1", resource="form", action="read")

        assert matcher.matches(policy, create_context(action="read")) is True
        assert matcher.matches(policy, create_context(action="update")) is False

    def test_subject_scoped_policy(self, matcher):
        """Test that a policy bound to a user only applies to that user."""
        policy = create_policy("p1", user_id="user-7")

        assert matcher.matches(policy, create_context(subject=create_subject("user-7"))) is True
        assert matcher.matches(policy, create_context(subject=create_subject("user-8"))) is False

    def test_conditions_are_evaluated(self, matcher):
        """Test that conditions gate matching."""
        policy = create_policy(
            "p1",
            effect=PolicyEffect.DENY,
            resource="form",
            conditions=PolicyConditions(
                resource_attribute=Condition(field="visibility", operator="equals", value="public")
            ),
        )

        public = create_context(resource=create_resource(visibility="public"))
        private = create_context(resource=create_resource(visibility="private"))

        assert matcher.matches(policy, public) is True
        assert matcher.matches(policy, private) is False

    def test_resource_mismatch_skips_conditions(self, matcher):
        """Test that a non-matching resource short-circuits."""
        policy = create_policy(
            "p1",
            resource="user",
            conditions=PolicyConditions(custom="user.stats.formCount > 1"),
        )

        assert matcher.matches(policy, create_context()) is False
