"""
Authorization Service package for the Access Layer.

This package decides whether a subject may perform an action on a
resource, and which fields of a resource the subject may read. It provides:

- app.main: API surface for decisions, field filtering and cache control.
- app.policies: Policy model, condition evaluation, cache and engine.
- app.persistence: Policy store contract, in-memory and PostgreSQL stores.
- app.dependencies: FastAPI dependency enforcing decisions on routes.

Guidelines:
- Evaluation is pure with respect to the context handed in by the caller.
- Fail closed: errors deny, except an unknown request country in geo clauses.
- A policy store failure is an error, never an allow.
"""
