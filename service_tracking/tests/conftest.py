"""
Shared fixtures and test data for Tracking service tests.
"""

import datetime
from typing import Any, Dict, List
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from service_tracking.app.models import Location, PackageRecord, Recipient, TrackingEvent


class TrackingDataFactory:
    """Factory for database rows and records of one sample shipment."""

    TRACKING_NUMBER = "TW123456789"

    @staticmethod
    def package_row(tracking_number: str = TRACKING_NUMBER) -> Dict[str, Any]:
        return {
            "sno": tracking_number,
            "tracking_status": "In Transit",
            "estimated_delivery": datetime.date(2024, 3, 8),
        }

    @staticmethod
    def event_rows() -> List[Dict[str, Any]]:
        return [
            {"id": 1, "date": datetime.date(2024, 3, 1), "time": datetime.time(9, 15), "status": "Picked up", "location_id": 10},
            {"id": 2, "date": datetime.date(2024, 3, 2), "time": datetime.time(8, 0), "status": "Departed hub", "location_id": 11},
            {"id": 3, "date": datetime.date(2024, 3, 2), "time": datetime.time(21, 45), "status": "Arrived at depot", "location_id": 12},
        ]

    @staticmethod
    def recipient_row() -> Dict[str, Any]:
        return {"id": 7, "name": "Lin Mei", "address": "No. 5, Zhongshan Rd, Taipei", "phone": "0912-345-678"}

    @staticmethod
    def location_row(location_id: int = 12) -> Dict[str, Any]:
        return {"location_id": location_id, "title": "Taipei Depot", "city": "Taipei", "address": "No. 1, Depot St"}

    @classmethod
    def record(cls, tracking_number: str = TRACKING_NUMBER) -> PackageRecord:
        package = cls.package_row(tracking_number)
        location = cls.location_row()
        return PackageRecord(
            tracking_number=package["sno"],
            status=package["tracking_status"],
            estimated_delivery=package["estimated_delivery"],
            tracking_events=[TrackingEvent(**row) for row in cls.event_rows()],
            recipient=Recipient(**cls.recipient_row()),
            current_location=Location(
                id=location["location_id"],
                title=location["title"],
                city=location["city"],
                address=location["address"],
            ),
        )


def make_pool(conn) -> MagicMock:
    """Mock asyncpg pool whose acquire() yields ``conn``."""
    pool = MagicMock()
    acquire = pool.acquire.return_value
    acquire.__aenter__ = AsyncMock(return_value=conn)
    acquire.__aexit__ = AsyncMock(return_value=False)
    return pool


class TransactionalHashClient:
    """In-memory stand-in for the hash and TTL commands used inside MULTI/EXEC.

    Queued commands apply only when ``execute`` succeeds; a command listed in
    ``failing`` aborts the whole transaction, as Redis does with EXECABORT.
    """

    def __init__(self, failing=()):
        self.hashes = {}
        self.key_ttls = {}
        self.field_ttls = {}
        self.failing = set(failing)
        self.transactions = []

    async def hget(self, name, key):
        return self.hashes.get(name, {}).get(key)

    def pipeline(self, transaction=True):
        self.transactions.append(transaction)
        return _QueuedTransaction(self)


class _QueuedTransaction:
    def __init__(self, client):
        self.client = client
        self.queued = []

    def hset(self, name, key, value):
        self.queued.append(("hset", name, key, value))
        return self

    def expire(self, name, seconds):
        self.queued.append(("expire", name, seconds))
        return self

    def hexpire(self, name, seconds, *fields):
        self.queued.append(("hexpire", name, seconds, fields))
        return self

    async def execute(self):
        for command in self.queued:
            if command[0] in self.client.failing:
                raise RedisConnectionError(f"{command[0]} failed")

        for command in self.queued:
            if command[0] == "hset":
                _, name, key, value = command
                self.client.hashes.setdefault(name, {})[key] = value
            elif command[0] == "expire":
                _, name, seconds = command
                self.client.key_ttls[name] = seconds
            else:
                _, name, seconds, fields = command
                for field in fields:
                    self.client.field_ttls[(name, field)] = seconds
        return [True] * len(self.queued)


@pytest.fixture
def factory():
    """Sample tracking data."""
    return TrackingDataFactory


@pytest.fixture
def sample_record():
    """Fully assembled sample record."""
    return TrackingDataFactory.record()
