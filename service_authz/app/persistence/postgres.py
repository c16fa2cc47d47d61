"""
PostgreSQL policy store for the Authorization Service.
"""

import json
from typing import Any, Dict, List, Mapping, Optional

import asyncpg
from shared.logging import get_logger
from shared.errors import PolicyLoadError, ValidationError
from ..policies.models import Policy, policy_from_dict


class PostgresPolicyStore:
    """Read-only access to custom policies kept in PostgreSQL."""

    def __init__(self, dsn: str, table: str = "policies"):
        self.dsn = dsn
        self.table = table
        self.logger = get_logger("authz.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Start the connection pool."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=1,
                max_size=5,
                command_timeout=30
            )
            self.logger.info("PostgreSQL policy store started")

        except (OSError, asyncpg.PostgresError) as e:
            self.logger.error("Failed to start PostgreSQL policy store", error=str(e))
            raise PolicyLoadError("Policy store unavailable", {"error": str(e)}) from e

    async def stop(self):
        """Stop the connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL policy store stopped")

    async def list_policies(self) -> List[Policy]:
        """Load all custom policies, highest priority first."""
        if self.pool is None:
            raise PolicyLoadError("Policy store not started")

        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(f"""
                    SELECT id, name, description, resource, action, effect, conditions,
                           priority, user_id, enabled, created_at, updated_at
                    FROM {self.table}
                    ORDER BY priority DESC, created_at ASC
                """)
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            self.logger.error("Error loading policies", error=str(e))
            raise PolicyLoadError("Failed to load policies", {"error": str(e)}) from e

        policies = []
        for row in rows:
            try:
                policies.append(self._row_to_policy(row))
            except ValidationError as e:
                # An unreadable policy could be a DENY; refuse to evaluate without it
                self.logger.error("Invalid stored policy", policy_id=row["id"], error=e.message)
                raise PolicyLoadError("Invalid stored policy", {"policy_id": row["id"], **e.details}) from e

        return policies

    def _row_to_policy(self, row: Mapping[str, Any]) -> Policy:
        """Convert database row to Policy object."""
        data: Dict[str, Any] = dict(row)

        # JSONB arrives as text unless a codec is registered on the pool
        conditions = data.get("conditions")
        if isinstance(conditions, str):
            try:
                data["conditions"] = json.loads(conditions)
            except json.JSONDecodeError as e:
                raise ValidationError("Conditions are not valid JSON", {"policy_id": data.get("id")}) from e

        return policy_from_dict(data)

    async def health_check(self) -> bool:
        """Check database health."""
        if self.pool is None:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError):
            return False
