"""Shared fixtures for the parcel tracker tests."""

import copy
from datetime import datetime, timedelta, timezone

import pytest

from custom_components.parcel_tracker.app.ledger import ShipmentLedger
from custom_components.parcel_tracker.app.models import CanonicalStatus, ShipmentRecord

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class MemoryStore:
    """In-memory stand-in for Home Assistant's Store."""

    def __init__(self, data=None):
        self.data = copy.deepcopy(data)
        self.saves = 0

    async def async_load(self):
        return copy.deepcopy(self.data)

    async def async_save(self, data):
        self.data = copy.deepcopy(data)
        self.saves += 1


def make_record(
    tracking_number,
    carrier="ups",
    status=CanonicalStatus.IN_TRANSIT,
    age=timedelta(0),
    label=None,
):
    """Build a record updated `age` before NOW."""
    return ShipmentRecord(
        tracking_number=tracking_number,
        carrier=carrier,
        status=status,
        status_text=status.display,
        label=label,
        last_updated=NOW - age,
    )


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def ledger(store):
    return ShipmentLedger(store, now=lambda: NOW)
