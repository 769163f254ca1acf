"""Data models for package tracking - platform-agnostic."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..const import UNKNOWN_CARRIER


class CanonicalStatus(Enum):
    """Coarse delivery state every raw status is classified into."""

    DELIVERED = "delivered"
    OUT_FOR_DELIVERY = "out_for_delivery"
    IN_TRANSIT = "in_transit"
    PENDING = "pending"
    UNKNOWN = "unknown"

    @property
    def display(self) -> str:
        """Return the human-readable name of the status."""
        return _STATUS_DISPLAY[self]

    @classmethod
    def from_stored(cls, value: Any) -> Optional["CanonicalStatus"]:
        """Match a persisted status by value or display name."""
        if not isinstance(value, str):
            return None
        wanted = value.strip().lower()
        for status in cls:
            if wanted in (status.value, status.display.lower()):
                return status
        return None


_STATUS_DISPLAY = {
    CanonicalStatus.DELIVERED: "Delivered",
    CanonicalStatus.OUT_FOR_DELIVERY: "Out for Delivery",
    CanonicalStatus.IN_TRANSIT: "In Transit",
    CanonicalStatus.PENDING: "Pending",
    CanonicalStatus.UNKNOWN: "Unknown",
}


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string or epoch milliseconds into an aware datetime."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def identity_key(tracking_number: str, carrier: Optional[str]) -> Tuple[str, str]:
    """Return the deduplication key for a shipment."""
    return (tracking_number or "").strip(), (carrier or UNKNOWN_CARRIER).strip().lower()


@dataclass
class ProgressStep:
    """One milestone in a shipment's lifecycle."""

    text: str
    completed: bool = False
    is_delivery_milestone: bool = False
    sequence: int = 0
    timestamp: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted step format."""
        return {
            "text": self.text,
            "completed": self.completed,
            "isDeliveryMilestone": self.is_delivery_milestone,
            "sequence": self.sequence,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


@dataclass
class TrackingSignals:
    """Raw evidence gathered by an extractor before normalization."""

    steps: List[ProgressStep] = field(default_factory=list)
    explicit_delivered_marker: bool = False
    page_status_text: Optional[str] = None


@dataclass
class NormalizedTracking:
    """Canonical answer produced from a set of tracking signals."""

    status: CanonicalStatus
    status_text: str
    steps: List[ProgressStep] = field(default_factory=list)


@dataclass
class ShipmentRecord:
    """A tracked shipment as kept in the ledger."""

    tracking_number: str
    carrier: str = UNKNOWN_CARRIER
    status: CanonicalStatus = CanonicalStatus.UNKNOWN
    status_text: str = ""
    steps: List[ProgressStep] = field(default_factory=list)
    label: Optional[str] = None
    last_updated: Optional[datetime] = None

    def __post_init__(self) -> None:
        """Normalize the identity fields and make the timestamp UTC-aware."""
        self.tracking_number, self.carrier = identity_key(
            self.tracking_number, self.carrier or None
        )
        self.last_updated = parse_timestamp(self.last_updated)

    @property
    def key(self) -> Tuple[str, str]:
        """Return the identity key of this record."""
        return self.tracking_number, self.carrier

    @property
    def is_delivered(self) -> bool:
        """Return True once the shipment has been delivered."""
        return self.status is CanonicalStatus.DELIVERED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted shipment format."""
        return {
            "trackingNumber": self.tracking_number,
            "carrier": self.carrier,
            "status": self.status.display,
            "statusText": self.status_text,
            "timestamp": self.last_updated.isoformat() if self.last_updated else None,
            "details": [step.to_dict() for step in self.steps],
            "label": self.label or "",
        }
