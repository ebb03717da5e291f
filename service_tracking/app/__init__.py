"""
Tracking Service package.

Answers "where is shipment X" for a tracking number. It provides:

- app.main: API surface for tracking queries and health.
- app.models: Tracking record models and the cache wire codec.
- app.persistence: PostgreSQL assembler for package records.
- app.cache: Redis hash cache holding serialized records.
- app.lookup: Cache-aside orchestration between the two.

Guidelines:
- The service is stateless; rely on external cache/DB.
- Clients are built once by the service and passed in explicitly.
- Keep the NotFound / unavailable / corrupt-cache distinction up to the HTTP response.
"""
