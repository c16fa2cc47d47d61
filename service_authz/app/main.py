"""
Authorization service for the Access Layer.
"""

from typing import Dict, Optional

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from .persistence import InMemoryPolicyStore, PolicyStore
from .persistence.postgres import PostgresPolicyStore
from .policies.engine import PolicyEngine
from .policies.models import (
    EvaluationRequest, EvaluationResponse, FieldFilterRequest, FieldFilterResponse
)
from .policies.sandbox import ExpressionSandbox


SERVICE_NAME = "authz"
SERVICE_PORT = 8013


class AuthzService(BaseService):
    """Authorization service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None, store: Optional[PolicyStore] = None):
        super().__init__(SERVICE_NAME, SERVICE_PORT, config or get_config(SERVICE_NAME, SERVICE_PORT))

        self.store = store if store is not None else self._create_store()
        self.policy_engine = PolicyEngine(
            self.store,
            default_policies=None if self.config.load_default_policies else [],
            cache_ttl_seconds=self.config.policy_cache_ttl_seconds,
            store_timeout_seconds=self.config.policy_store_timeout_seconds,
            sandbox=ExpressionSandbox(
                timeout_ms=self.config.expression_timeout_ms,
                max_steps=self.config.expression_max_steps,
            ),
            metrics=self.metrics,
        )
        self.app.state.policy_engine = self.policy_engine

        self._setup_authz_routes()

    def _create_store(self) -> PolicyStore:
        if self.config.policy_store == "postgres":
            return PostgresPolicyStore(self.config.postgres_dsn)
        return InMemoryPolicyStore()

    async def on_startup(self):
        if isinstance(self.store, PostgresPolicyStore):
            await self.store.start()

    async def on_shutdown(self):
        if isinstance(self.store, PostgresPolicyStore):
            await self.store.stop()

    async def _check_dependencies(self) -> Dict[str, str]:
        healthy = await self.store.health_check() if hasattr(self.store, "health_check") else True
        return {"policy_store": "ok" if healthy else "unavailable"}

    def _setup_authz_routes(self):
        """Set up authorization routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": SERVICE_NAME,
                "message": "Access Layer - Authorization Service",
                "version": "1.0.0",
                "capabilities": ["policy_evaluation", "field_filtering", "policy_cache"]
            }

        @self.app.post("/authz/evaluate", response_model=EvaluationResponse)
        async def evaluate(request: EvaluationRequest):
            """Evaluate policies for a subject, resource and action."""
            result = await self.policy_engine.evaluate(request.to_context())
            return EvaluationResponse.from_result(result)

        @self.app.post("/authz/filter-fields", response_model=FieldFilterResponse)
        async def filter_fields(request: FieldFilterRequest):
            """Return the fields of a resource the subject may read."""
            fields = await self.policy_engine.filter_fields(request.to_context(), request.fields)
            return FieldFilterResponse(fields=fields, total=len(request.fields), retained=len(fields))

        @self.app.post("/authz/cache/invalidate")
        async def invalidate_cache():
            """Drop cached policies; called by the admin layer after policy changes."""
            self.policy_engine.invalidate_cache()
            return {"status": "invalidated"}

        @self.app.get("/authz/stats")
        async def stats():
            """Policy engine statistics."""
            return self.policy_engine.get_engine_stats()


def create_app(config: Optional[ServiceConfig] = None, store: Optional[PolicyStore] = None):
    """Create authorization service application."""
    service = AuthzService(config=config, store=store)
    return service.app


if __name__ == "__main__":
    service = AuthzService()
    service.run()
