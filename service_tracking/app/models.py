"""
Tracking record models and the cache wire codec.

Records are serialized as camelCase JSON, the shape stored in the
``logistics_cache`` hash and returned by the ``/query`` endpoint.
"""

import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from shared.errors import TrackingSerializationError


class WireModel(BaseModel):
    """Base model for records that travel through the cache."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class Location(WireModel):
    """Depot or hub a package has passed through."""
    id: int = Field(..., description="Location ID")
    title: str = Field(..., description="Location name")
    city: str = Field(..., description="City")
    address: str = Field(..., description="Street address")


class Recipient(WireModel):
    """Addressee of a package."""
    id: int = Field(..., description="Recipient ID")
    name: str = Field(..., description="Recipient name")
    address: str = Field(..., description="Delivery address")
    phone: str = Field(..., description="Contact phone")


class TrackingEvent(WireModel):
    """Single scan or status change for a package."""
    id: int = Field(..., description="Event ID")
    date: datetime.date = Field(..., description="Event date")
    time: datetime.time = Field(..., description="Event time of day")
    status: str = Field(..., description="Status reported by the event")
    location_id: int = Field(..., description="Location where the event happened")

    @property
    def occurred_at(self):
        return (self.date, self.time, self.id)


class PackageRecord(WireModel):
    """Aggregate tracking record for one tracking number."""
    tracking_number: str = Field(..., description="Tracking number")
    status: str = Field(..., description="Current tracking status")
    estimated_delivery: datetime.date = Field(..., description="Estimated delivery date")
    tracking_events: List[TrackingEvent] = Field(default_factory=list, description="Events, oldest first")
    recipient: Recipient = Field(..., description="Package recipient")
    current_location: Location = Field(..., description="Location of the latest event")

    def latest_event(self) -> Optional[TrackingEvent]:
        """Return the event with the greatest (date, time), if any."""
        if not self.tracking_events:
            return None
        return max(self.tracking_events, key=lambda event: event.occurred_at)

    def to_wire(self) -> dict:
        """JSON-compatible dict in wire (camelCase) form."""
        return self.model_dump(mode="json", by_alias=True)


def encode_record(record: PackageRecord) -> bytes:
    """Serialize a record for the cache."""
    return record.model_dump_json(by_alias=True).encode("utf-8")


def decode_record(payload) -> PackageRecord:
    """Deserialize a cached record.

    Raises:
        TrackingSerializationError: payload is not a valid record.
    """
    try:
        return PackageRecord.model_validate_json(payload)
    except (ValidationError, ValueError, TypeError) as exc:
        raise TrackingSerializationError(details={"error": str(exc)}) from exc
