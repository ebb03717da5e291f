"""
PostgreSQL persistence layer for the Tracking service.

Assembles a PackageRecord from four independent reads on one pooled
connection. The reads are not wrapped in a transaction, so concurrent
writers can produce a torn record.
"""

import asyncio
from typing import Optional

import asyncpg

from shared.logging import get_logger
from shared.errors import TrackingNotFoundError, TrackingTransientError
from ..models import Location, PackageRecord, Recipient, TrackingEvent


PACKAGE_QUERY = """
    SELECT sno, tracking_status, estimated_delivery
    FROM Packages
    WHERE sno = $1
"""

EVENTS_QUERY = """
    SELECT id, date, time, status, location_id
    FROM TrackingDetails
    WHERE sno = $1
    ORDER BY date ASC, time ASC, id ASC
"""

RECIPIENT_QUERY = """
    SELECT id, name, address, phone
    FROM Recipients
    WHERE sno = $1
"""

CURRENT_LOCATION_QUERY = """
    SELECT location_id, title, city, address
    FROM Locations
    WHERE location_id = (
        SELECT location_id
        FROM TrackingDetails
        WHERE sno = $1
        ORDER BY date DESC, time DESC, id DESC
        LIMIT 1
    )
"""

CONNECTIVITY_ERRORS = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
    asyncio.TimeoutError,
)


class PackageRepository:
    """Reads package tracking data from PostgreSQL."""

    def __init__(
        self,
        dsn: str,
        *,
        min_size: int = 2,
        max_size: int = 10,
        command_timeout: float = 30.0,
        create_schema: bool = False,
    ):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.create_schema = create_schema
        self.logger = get_logger("tracking.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout
            )

            if self.create_schema:
                await self._create_tables()

            package_count = await self.count_packages()
            self.logger.info("PostgreSQL persistence started", package_count=package_count)

        except CONNECTIVITY_ERRORS as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise TrackingTransientError("postgres", str(e))

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL persistence stopped")

    async def _create_tables(self):
        """Create tracking tables for local development."""
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS Locations (
                    location_id SERIAL PRIMARY KEY,
                    title VARCHAR(255) NOT NULL,
                    city VARCHAR(255) NOT NULL,
                    address TEXT NOT NULL
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS Packages (
                    sno VARCHAR(64) PRIMARY KEY,
                    tracking_status VARCHAR(64) NOT NULL,
                    estimated_delivery DATE NOT NULL
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS TrackingDetails (
                    id SERIAL PRIMARY KEY,
                    sno VARCHAR(64) NOT NULL REFERENCES Packages(sno),
                    date DATE NOT NULL,
                    time TIME NOT NULL,
                    status VARCHAR(64) NOT NULL,
                    location_id INTEGER NOT NULL REFERENCES Locations(location_id)
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS Recipients (
                    id SERIAL PRIMARY KEY,
                    sno VARCHAR(64) NOT NULL UNIQUE REFERENCES Packages(sno),
                    name VARCHAR(255) NOT NULL,
                    address TEXT NOT NULL,
                    phone VARCHAR(32) NOT NULL
                );
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_tracking_details_sno
                ON TrackingDetails(sno, date DESC, time DESC);
            """)

    async def fetch_record(self, tracking_number: str) -> PackageRecord:
        """Assemble the tracking record for one tracking number.

        Raises:
            TrackingNotFoundError: package, recipient or current location missing.
            TrackingTransientError: database unreachable or query failed.
        """
        if self.pool is None:
            raise TrackingTransientError("postgres", "Connection pool not started")

        try:
            async with self.pool.acquire() as conn:
                package = await conn.fetchrow(PACKAGE_QUERY, tracking_number)
                if package is None:
                    raise TrackingNotFoundError(tracking_number, "package")

                event_rows = await conn.fetch(EVENTS_QUERY, tracking_number)

                recipient = await conn.fetchrow(RECIPIENT_QUERY, tracking_number)
                if recipient is None:
                    raise TrackingNotFoundError(tracking_number, "recipient")

                location = await conn.fetchrow(CURRENT_LOCATION_QUERY, tracking_number)
                if location is None:
                    raise TrackingNotFoundError(tracking_number, "current_location")

        except CONNECTIVITY_ERRORS as e:
            self.logger.error("Error fetching tracking record", tracking_number=tracking_number, error=str(e))
            raise TrackingTransientError("postgres", str(e), {"tracking_number": tracking_number}) from e

        record = PackageRecord(
            tracking_number=package["sno"],
            status=package["tracking_status"],
            estimated_delivery=package["estimated_delivery"],
            tracking_events=[self._row_to_event(row) for row in event_rows],
            recipient=Recipient(
                id=recipient["id"],
                name=recipient["name"],
                address=recipient["address"],
                phone=recipient["phone"]
            ),
            current_location=Location(
                id=location["location_id"],
                title=location["title"],
                city=location["city"],
                address=location["address"]
            )
        )

        self.logger.debug(
            "Tracking record assembled",
            tracking_number=tracking_number,
            events=len(record.tracking_events)
        )
        return record

    def _row_to_event(self, row) -> TrackingEvent:
        """Convert database row to TrackingEvent."""
        return TrackingEvent(
            id=row["id"],
            date=row["date"],
            time=row["time"],
            status=row["status"],
            location_id=row["location_id"]
        )

    async def count_packages(self) -> int:
        """Get total number of packages."""
        try:
            async with self.pool.acquire() as conn:
                count = await conn.fetchval("SELECT COUNT(*) FROM Packages")
                return count or 0
        except CONNECTIVITY_ERRORS as e:
            raise TrackingTransientError("postgres", str(e)) from e

    async def health_check(self) -> bool:
        """Check database health."""
        if self.pool is None:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except CONNECTIVITY_ERRORS:
            return False
