"""
Tracking service: answers "where is shipment X".
"""

from typing import Optional

from fastapi import Query

from shared.base_service import BaseService

from .cache.redis_cache import TrackingCache
from .lookup.orchestrator import TrackingLookupService
from .persistence.postgres import PackageRepository


class TrackingService(BaseService):
    """Tracking service implementation."""

    def __init__(self, **config_overrides):
        super().__init__("tracking", 3000, **config_overrides)

        self.persistence = PackageRepository(
            self.config.postgres_dsn,
            min_size=self.config.postgres_pool_min_size,
            max_size=self.config.postgres_pool_max_size,
            command_timeout=self.config.postgres_command_timeout,
            create_schema=self.config.postgres_create_schema,
        )
        self.cache = TrackingCache(
            self.config.redis_url,
            namespace=self.config.cache_namespace,
            ttl_seconds=self.config.cache_ttl_seconds,
            ttl_scope=self.config.cache_ttl_scope,
            socket_timeout=self.config.redis_socket_timeout,
        )
        self.lookup_service = TrackingLookupService(
            self.cache,
            self.persistence,
            metrics=self.metrics,
            coalesce_misses=self.config.coalesce_misses,
            timeout_seconds=self.config.lookup_timeout_seconds,
        )

        self._setup_tracking_routes()

    def _setup_tracking_routes(self):
        """Set up tracking-specific routes."""

        @self.app.get("/hi")
        async def hi():
            """Liveness probe."""
            return {"status": "success"}

        @self.app.get("/query")
        async def query_tracking(
            sno: Optional[str] = Query(None, description="Tracking number")
        ):
            """Look up the tracking record for a shipment."""
            record = await self.lookup_service.lookup(sno)
            return {
                "status": "success",
                "data": record.to_wire(),
                "error": None
            }

    async def _check_dependencies(self):
        """Check tracking service dependencies."""
        return {
            "redis": "ok" if await self.cache.health_check() else "error",
            "postgres": "ok" if await self.persistence.health_check() else "error",
        }

    async def start(self):
        """Start tracking service components."""
        await self.persistence.start()
        try:
            await self.cache.start()
        except Exception:
            await self.persistence.stop()
            raise
        self.logger.info("Tracking service started", port=self.port)

    async def stop(self):
        """Stop tracking service components."""
        await self.cache.stop()
        await self.persistence.stop()
        self.logger.info("Tracking service stopped")


def create_app():
    """Create tracking service application."""
    service = TrackingService()
    return service.app


if __name__ == "__main__":
    service = TrackingService()
    service.run()
