"""
Tests for the shipment ledger and its display filter.
"""

import asyncio
import logging
from datetime import date, datetime, timedelta, timezone

import pytest
import voluptuous as vol

from custom_components.parcel_tracker.app.exceptions import (
    FilterDateFailure,
    LedgerReadFailure,
)
from custom_components.parcel_tracker.app.ledger import (
    ShipmentFilter,
    ShipmentLedger,
    parse_date_bound,
    record_from_dict,
)
from custom_components.parcel_tracker.app.models import CanonicalStatus, ShipmentRecord

from .conftest import NOW, MemoryStore, make_record

DELIVERED = CanonicalStatus.DELIVERED


@pytest.mark.asyncio
async def test_upsert_identical_record_is_idempotent(ledger, store):
    record = make_record("1Z999")

    await ledger.async_upsert(record)
    first = store.data
    await ledger.async_upsert(record)

    assert store.data == first
    assert len(await ledger.async_records()) == 1


@pytest.mark.asyncio
async def test_newer_record_wins_in_either_order():
    older = make_record("1Z999", age=timedelta(hours=2))
    newer = make_record("1Z999", status=CanonicalStatus.OUT_FOR_DELIVERY)

    forward = ShipmentLedger(MemoryStore(), now=lambda: NOW)
    await forward.async_upsert(older)
    await forward.async_upsert(newer)

    backward = ShipmentLedger(MemoryStore(), now=lambda: NOW)
    await backward.async_upsert(newer)
    survivor = await backward.async_upsert(older)

    assert survivor.status is CanonicalStatus.OUT_FOR_DELIVERY
    for ledger in (forward, backward):
        records = await ledger.async_records()
        assert [r.status for r in records] == [CanonicalStatus.OUT_FOR_DELIVERY]


@pytest.mark.asyncio
async def test_equal_timestamps_favor_incoming(ledger):
    await ledger.async_upsert(make_record("1Z999", status=CanonicalStatus.PENDING))
    await ledger.async_upsert(make_record("1Z999", status=CanonicalStatus.IN_TRANSIT))

    records = await ledger.async_records()

    assert [r.status for r in records] == [CanonicalStatus.IN_TRANSIT]


@pytest.mark.asyncio
async def test_missing_timestamp_is_older(ledger):
    undated = ShipmentRecord("1Z999", "ups", CanonicalStatus.PENDING, "Pending")
    dated = make_record("1Z999", age=timedelta(days=3))

    await ledger.async_upsert(undated)
    await ledger.async_upsert(dated)
    survivor = await ledger.async_upsert(undated)

    assert survivor.status is CanonicalStatus.IN_TRANSIT


@pytest.mark.asyncio
async def test_naive_timestamp_compares_with_stored_ones(ledger):
    await ledger.async_upsert(make_record("1Z999", age=timedelta(hours=1)))
    naive = ShipmentRecord(
        "1Z999",
        "ups",
        CanonicalStatus.OUT_FOR_DELIVERY,
        "Out for Delivery",
        last_updated=NOW.replace(tzinfo=None),
    )

    survivor = await ledger.async_upsert(naive)

    assert naive.last_updated == NOW
    assert survivor.status is CanonicalStatus.OUT_FOR_DELIVERY


@pytest.mark.asyncio
async def test_identity_key_is_normalized(ledger):
    await ledger.async_upsert(make_record(" 1Z999 ", carrier="UPS"))
    await ledger.async_upsert(make_record("1Z999", carrier="ups"))

    records = await ledger.async_records()

    assert [r.key for r in records] == [("1Z999", "ups")]
    assert await ledger.async_get(("1Z999", " UPS")) is not None


@pytest.mark.asyncio
async def test_same_number_different_carrier_kept_apart(ledger):
    await ledger.async_upsert(make_record("7489", carrier="ups"))
    await ledger.async_upsert(make_record("7489", carrier="fedex"))

    assert len(await ledger.async_records()) == 2


@pytest.mark.asyncio
async def test_size_is_capped_dropping_the_tail(ledger, store):
    for i in range(25):
        await ledger.async_upsert(make_record(f"TN{i:02d}"))

    records = await ledger.async_records()

    assert len(records) == 20
    assert len(store.data) == 20
    assert records[0].tracking_number == "TN24"
    assert records[-1].tracking_number == "TN05"


@pytest.mark.asyncio
async def test_upserted_record_moves_to_head(ledger):
    await ledger.async_upsert(make_record("A"))
    await ledger.async_upsert(make_record("B"))
    await ledger.async_upsert(make_record("A"))

    records = await ledger.async_records()

    assert [r.tracking_number for r in records] == ["A", "B"]


@pytest.mark.asyncio
async def test_delivered_records_expire(ledger, store):
    await ledger.async_upsert(make_record("OLD", status=DELIVERED, age=timedelta(days=6)))
    await ledger.async_upsert(
        make_record("EDGE", status=DELIVERED, age=timedelta(days=5, hours=11))
    )
    await ledger.async_upsert(make_record("SLOW", age=timedelta(days=30)))
    await ledger.async_upsert(
        ShipmentRecord("UNDATED", "ups", DELIVERED, "Delivered")
    )

    records = await ledger.async_records()

    assert sorted(r.tracking_number for r in records) == ["EDGE", "SLOW", "UNDATED"]
    assert sorted(entry["trackingNumber"] for entry in store.data) == [
        "EDGE",
        "SLOW",
        "UNDATED",
    ]


@pytest.mark.asyncio
async def test_evict_reports_count_and_skips_needless_writes(ledger, store):
    await ledger.async_upsert(make_record("OLD", status=DELIVERED, age=timedelta(days=9)))
    saves = store.saves

    assert await ledger.async_evict_expired() == 1
    assert store.saves == saves + 1
    assert await ledger.async_evict_expired() == 0
    assert store.saves == saves + 1


@pytest.mark.asyncio
async def test_remove_is_idempotent(ledger):
    await ledger.async_upsert(make_record("1Z999"))

    assert await ledger.async_remove(("1Z999", "UPS")) is True
    assert await ledger.async_remove(("1Z999", "ups")) is False
    assert await ledger.async_records() == []


@pytest.mark.asyncio
async def test_concurrent_upserts_are_serialized(ledger):
    await asyncio.gather(*(ledger.async_upsert(make_record(f"TN{i}")) for i in range(10)))

    assert len(await ledger.async_records()) == 10


@pytest.mark.asyncio
async def test_serialized_form(ledger, store):
    await ledger.async_upsert(make_record("1Z999", label="Shoes"))

    assert store.data == [
        {
            "trackingNumber": "1Z999",
            "carrier": "ups",
            "status": "In Transit",
            "statusText": "In Transit",
            "timestamp": NOW.isoformat(),
            "details": [],
            "label": "Shoes",
        }
    ]


@pytest.mark.asyncio
async def test_filter_composition(ledger):
    await ledger.async_upsert(make_record("A", carrier="ups", status=DELIVERED))
    await ledger.async_upsert(make_record("B", carrier="ups"))
    await ledger.async_upsert(make_record("C", carrier="fedex", status=DELIVERED))

    delivered_ups = await ledger.async_list_filtered(
        {"status": "delivered", "carrier": " UPS "}
    )
    not_delivered = await ledger.async_list_filtered({"status": "not-delivered"})
    everything = await ledger.async_list_filtered()

    assert [r.tracking_number for r in delivered_ups] == ["A"]
    assert [r.tracking_number for r in not_delivered] == ["B"]
    assert [r.tracking_number for r in everything] == ["C", "B", "A"]


@pytest.mark.asyncio
async def test_date_bounds_are_inclusive(ledger):
    await ledger.async_upsert(make_record("TWO_DAYS", age=timedelta(days=2)))
    await ledger.async_upsert(ShipmentRecord("UNDATED", "ups"))

    same_day = await ledger.async_list_filtered({"from": "2026-10-17", "to": "2026-10-17"})
    after = await ledger.async_list_filtered({"from": "2026-10-18"})
    before = await ledger.async_list_filtered(ShipmentFilter(date_to=date(2026, 10, 16)))
    unbounded = await ledger.async_list_filtered({"from": "", "to": None})

    assert [r.tracking_number for r in same_day] == ["TWO_DAYS"]
    assert after == []
    assert before == []
    assert sorted(r.tracking_number for r in unbounded) == ["TWO_DAYS", "UNDATED"]


@pytest.mark.asyncio
async def test_unparsable_date_bound_matches_nothing(ledger, caplog):
    await ledger.async_upsert(make_record("1Z999"))

    with caplog.at_level(logging.WARNING):
        records = await ledger.async_list_filtered({"from": "last tuesday"})

    assert records == []
    assert "last tuesday" in caplog.text


@pytest.mark.asyncio
async def test_invalid_status_filter_is_rejected(ledger):
    with pytest.raises(vol.Invalid):
        await ledger.async_list_filtered({"status": "lost"})


def test_parse_date_bound():
    assert parse_date_bound("") is None
    assert parse_date_bound(None) is None
    assert parse_date_bound("2026-10-17") == date(2026, 10, 17)
    assert parse_date_bound("2026-10-17T23:00:00Z") == date(2026, 10, 17)
    with pytest.raises(FilterDateFailure):
        parse_date_bound("soon")


@pytest.mark.asyncio
async def test_unreadable_history_self_heals(caplog):
    store = MemoryStore({"shipments": "corrupt"})
    ledger = ShipmentLedger(store, now=lambda: NOW)

    with caplog.at_level(logging.WARNING):
        assert await ledger.async_records() == []
    await ledger.async_upsert(make_record("1Z999"))

    assert "unreadable" in caplog.text
    assert [entry["trackingNumber"] for entry in store.data] == ["1Z999"]


@pytest.mark.asyncio
async def test_bad_entries_are_dropped():
    store = MemoryStore(
        [
            42,
            {"status": "Delivered"},
            {"trackingNumber": "A", "carrier": "ups", "status": "In Transit"},
            {"trackingNumber": "A", "carrier": "UPS", "status": "Pending"},
        ]
    )
    ledger = ShipmentLedger(store, now=lambda: NOW)

    records = await ledger.async_records()

    assert [(r.key, r.status) for r in records] == [
        (("A", "ups"), CanonicalStatus.IN_TRANSIT)
    ]


def test_record_from_dict_defaults():
    record = record_from_dict(
        {
            "trackingNumber": "1Z999",
            "status": "Shipment departed hub",
            "timestamp": 1792324800000,
        }
    )

    assert record.carrier == "unknown"
    assert record.label is None
    assert record.steps == []
    assert record.status is CanonicalStatus.IN_TRANSIT
    assert record.status_text == "Shipment departed hub"
    assert record.last_updated == datetime(2026, 10, 18, 12, tzinfo=timezone.utc)


def test_record_from_dict_reads_steps():
    record = record_from_dict(
        {
            "trackingNumber": "1Z999",
            "carrier": "ups",
            "status": "Out for Delivery",
            "statusText": "Out for delivery today",
            "details": [
                {"text": "Shipped", "completed": True},
                "",
                {"text": "Delivered", "isDeliveryMilestone": True},
            ],
            "label": "",
        }
    )

    assert record.status is CanonicalStatus.OUT_FOR_DELIVERY
    assert record.status_text == "Out for delivery today"
    assert [(s.text, s.sequence) for s in record.steps] == [("Shipped", 0), ("Delivered", 1)]
    assert record.steps[1].is_delivery_milestone is True
    assert record.last_updated is None


@pytest.mark.parametrize("data", [None, "1Z999", {"carrier": "ups"}, {"trackingNumber": " "}])
def test_record_from_dict_rejects_non_shipments(data):
    with pytest.raises(LedgerReadFailure):
        record_from_dict(data)
