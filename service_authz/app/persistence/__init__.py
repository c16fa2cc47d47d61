"""
Policy store contract and in-process store.

The engine only reads from the store. Writes go through the admin surface,
which must call ``PolicyEngine.invalidate_cache()`` afterwards.
"""

from typing import Dict, List, Optional, Protocol

from shared.logging import get_logger
from ..policies.models import Policy


class PolicyStore(Protocol):
    """Read contract the policy cache depends on."""

    async def list_policies(self) -> List[Policy]:
        """Return every custom policy, enabled or not.

        Raises:
            PolicyLoadError: if the backing store cannot be read.
        """
        ...


class InMemoryPolicyStore:
    """Policy store kept in process memory."""

    def __init__(self, policies: Optional[List[Policy]] = None):
        self.logger = get_logger("authz.persistence.memory")
        self.policies: Dict[str, Policy] = {}
        for policy in policies or []:
            self.policies[policy.id] = policy

    async def list_policies(self) -> List[Policy]:
        return sorted(self.policies.values(), key=lambda p: p.priority, reverse=True)

    def save_policy(self, policy: Policy) -> None:
        self.policies[policy.id] = policy
        self.logger.info("Policy saved", policy_id=policy.id, name=policy.name)

    def delete_policy(self, policy_id: str) -> bool:
        if policy_id in self.policies:
            del self.policies[policy_id]
            self.logger.info("Policy deleted", policy_id=policy_id)
            return True
        return False

    async def health_check(self) -> bool:
        return True
