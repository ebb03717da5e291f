"""
Cache-aside lookup for tracking records.
"""

import asyncio
import time
from typing import Dict, Optional, TYPE_CHECKING

from shared.errors import (
    InvalidTrackingNumberError,
    TrackingNotFoundError,
    TrackingSerializationError,
    TrackingServiceException,
    TrackingTransientError,
)
from shared.logging import get_logger, set_tracking_context
from shared.tracing import trace_operation
from ..models import PackageRecord, decode_record, encode_record

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..cache.redis_cache import TrackingCache
    from ..persistence.postgres import PackageRepository
    from shared.metrics import MetricsCollector


CACHE_TYPE = "tracking"


class TrackingLookupService:
    """Resolve tracking numbers from the cache, falling back to PostgreSQL on a miss.

    Cache read errors are not masked by a database fallback, and a corrupt
    cached payload is reported rather than re-read. Failing to write the
    cache after a successful database read only costs freshness, so it is
    logged and the record is still returned.
    """

    def __init__(
        self,
        cache: "TrackingCache",
        repository: "PackageRepository",
        *,
        metrics: Optional["MetricsCollector"] = None,
        coalesce_misses: bool = True,
        timeout_seconds: Optional[float] = 5.0,
    ):
        self.cache = cache
        self.repository = repository
        self.metrics = metrics
        self.coalesce_misses = coalesce_misses
        self.timeout_seconds = timeout_seconds
        self.logger = get_logger("tracking.lookup")
        self._inflight: Dict[str, "asyncio.Future[PackageRecord]"] = {}

    async def lookup(self, tracking_number: Optional[str]) -> PackageRecord:
        """Return the tracking record for ``tracking_number``.

        Raises:
            InvalidTrackingNumberError: blank tracking number.
            TrackingNotFoundError: no resolvable record.
            TrackingTransientError: cache or database unreachable, or deadline exceeded.
            TrackingSerializationError: cached payload is corrupt.
        """
        tracking_number = (tracking_number or "").strip()
        if not tracking_number:
            raise InvalidTrackingNumberError()

        set_tracking_context(tracking_number)
        start_time = time.time()
        source = "error"
        try:
            with trace_operation("tracking.lookup", tracking_number=tracking_number):
                if self.timeout_seconds:
                    record, source = await asyncio.wait_for(
                        self._resolve(tracking_number), self.timeout_seconds
                    )
                else:
                    record, source = await self._resolve(tracking_number)
        except asyncio.TimeoutError as e:
            self._count("tracking_lookups_total", outcome="timeout")
            self.logger.error("Tracking lookup timed out", timeout_seconds=self.timeout_seconds)
            raise TrackingTransientError(
                "lookup", f"Deadline of {self.timeout_seconds}s exceeded",
                {"tracking_number": tracking_number}
            ) from e
        except TrackingServiceException as e:
            self._count("tracking_lookups_total", outcome=e.code.lower())
            raise
        finally:
            if self.metrics:
                self.metrics.observe_histogram(
                    "tracking_lookup_duration_seconds", time.time() - start_time, source=source
                )

        self._count("tracking_lookups_total", outcome=source)
        return record

    async def _resolve(self, tracking_number: str):
        cached = await self.cache.get(tracking_number)
        if cached is not None:
            self._count("cache_hits_total", cache_type=CACHE_TYPE)
            self.logger.debug("Cache hit")
            try:
                return decode_record(cached), "cache"
            except TrackingSerializationError as e:
                e.details["tracking_number"] = tracking_number
                self.logger.error("Corrupt cached tracking record", error=e.details.get("error"))
                raise

        self._count("cache_misses_total", cache_type=CACHE_TYPE)
        self.logger.info("Cache miss, reading from database")

        if not self.coalesce_misses:
            return await self._load_and_fill(tracking_number), "database"

        inflight = self._inflight.get(tracking_number)
        if inflight is None:
            inflight = asyncio.ensure_future(self._load_and_fill(tracking_number))
            self._inflight[tracking_number] = inflight
            inflight.add_done_callback(lambda _: self._inflight.pop(tracking_number, None))
        else:
            self.logger.debug("Joining in-flight database read")

        # Shielded so one caller's deadline does not cancel the shared fill.
        return await asyncio.shield(inflight), "database"

    async def _load_and_fill(self, tracking_number: str) -> PackageRecord:
        try:
            record = await self.repository.fetch_record(tracking_number)
        except TrackingNotFoundError as e:
            self.logger.info("Tracking number not found", missing=e.reason)
            raise
        except TrackingTransientError as e:
            self.logger.error("Database read failed", error=e.message)
            raise

        try:
            await self.cache.store(tracking_number, encode_record(record))
        except TrackingServiceException as e:
            self._count("cache_write_failures_total", cache_type=CACHE_TYPE)
            self.logger.warning("Failed to populate cache", error=e.message)

        return record

    def _count(self, metric_name: str, **labels):
        if self.metrics:
            self.metrics.increment_counter(metric_name, **labels)

    def inflight_count(self) -> int:
        """Number of database reads currently shared between callers."""
        return len(self._inflight)
