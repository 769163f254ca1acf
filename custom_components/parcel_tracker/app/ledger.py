"""Persistent, deduplicated history of tracked shipments."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple, Union

import voluptuous as vol

from ..const import (
    FILTER_ALL,
    FILTER_DELIVERED,
    FILTER_NOT_DELIVERED,
    MAX_SHIPMENTS,
    RETENTION_DAYS,
)
from .exceptions import FilterDateFailure, LedgerReadFailure
from .models import (
    CanonicalStatus,
    ProgressStep,
    ShipmentRecord,
    identity_key,
    parse_timestamp,
)
from .normalizer import classify_status_text

_LOGGER = logging.getLogger(__name__)

FILTER_SCHEMA = vol.Schema(
    {
        vol.Optional("status", default=FILTER_ALL): vol.In(
            [FILTER_ALL, FILTER_DELIVERED, FILTER_NOT_DELIVERED]
        ),
        vol.Optional("carrier", default=FILTER_ALL): vol.All(
            str, vol.Strip, vol.Lower
        ),
        vol.Optional("from", default=""): vol.Any(None, str, date),
        vol.Optional("to", default=""): vol.Any(None, str, date),
    }
)


class KeyValueStore(Protocol):
    """Load-all/save-all persistence, as provided by Home Assistant's Store."""

    async def async_load(self) -> Any:
        """Return everything that was saved, or None."""

    async def async_save(self, data: Any) -> None:
        """Replace everything that was saved."""


def parse_date_bound(value: Union[None, str, date]) -> Optional[date]:
    """Parse a filter date bound; empty means unbounded.

    Raises:
        FilterDateFailure: If the bound is not a date
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        parsed = parse_timestamp(text)
        if parsed is None:
            raise FilterDateFailure(f"Invalid date bound: {value!r}") from None
        return parsed.date()


@dataclass
class ShipmentFilter:
    """Display filter over the ledger; all predicates are ANDed."""

    status: str = FILTER_ALL
    carrier: str = FILTER_ALL
    date_from: Union[None, str, date] = None
    date_to: Union[None, str, date] = None

    @classmethod
    def from_query(cls, query: Dict[str, Any]) -> "ShipmentFilter":
        """Build a filter from the query surface {status, carrier, from, to}."""
        validated = FILTER_SCHEMA(dict(query))
        return cls(
            status=validated["status"],
            carrier=validated["carrier"] or FILTER_ALL,
            date_from=validated["from"],
            date_to=validated["to"],
        )

    @property
    def is_date_bounded(self) -> bool:
        """Return True if either date bound is set."""
        return self.date_from not in (None, "") or self.date_to not in (None, "")

    def apply(self, records: List[ShipmentRecord]) -> List[ShipmentRecord]:
        """Return the records matching every predicate, order preserved."""
        try:
            lower = parse_date_bound(self.date_from)
            upper = parse_date_bound(self.date_to)
        except FilterDateFailure as err:
            _LOGGER.warning("%s; no shipments match the date range", err)
            return []

        return [
            record
            for record in records
            if self._matches_status(record)
            and self._matches_carrier(record)
            and self._matches_dates(record, lower, upper)
        ]

    def _matches_status(self, record: ShipmentRecord) -> bool:
        if self.status == FILTER_DELIVERED:
            return record.is_delivered
        if self.status == FILTER_NOT_DELIVERED:
            return not record.is_delivered
        return True

    def _matches_carrier(self, record: ShipmentRecord) -> bool:
        if self.carrier == FILTER_ALL:
            return True
        return record.carrier == self.carrier.strip().lower()

    def _matches_dates(
        self, record: ShipmentRecord, lower: Optional[date], upper: Optional[date]
    ) -> bool:
        if lower is None and upper is None:
            return True
        if record.last_updated is None:
            return False
        day = record.last_updated.astimezone(timezone.utc).date()
        if lower is not None and day < lower:
            return False
        if upper is not None and day > upper:
            return False
        return True


def _step_from_dict(step_data: Any, sequence: int) -> Optional[ProgressStep]:
    if isinstance(step_data, str):
        text = step_data.strip()
        return ProgressStep(text=text, sequence=sequence) if text else None
    if not isinstance(step_data, dict):
        return None
    text = step_data.get("text") or step_data.get("activityScan") or step_data.get("status")
    if not isinstance(text, str) or not text.strip():
        return None
    return ProgressStep(
        text=text.strip(),
        completed=step_data.get("completed") is True,
        is_delivery_milestone=bool(
            step_data.get("isDeliveryMilestone", step_data.get("isDelivered", False))
        ),
        sequence=sequence,
        timestamp=parse_timestamp(step_data.get("timestamp") or step_data.get("dateTime")),
    )


def record_from_dict(data: Any) -> ShipmentRecord:
    """Rebuild a record from its persisted form, defaulting absent fields.

    Raises:
        LedgerReadFailure: If the entry is not a shipment
    """
    if not isinstance(data, dict):
        raise LedgerReadFailure(f"Shipment entry is not an object: {data!r}")
    tracking_number = data.get("trackingNumber")
    if not isinstance(tracking_number, str) or not tracking_number.strip():
        raise LedgerReadFailure("Shipment entry has no tracking number")

    raw_status = data.get("status")
    status = CanonicalStatus.from_stored(raw_status) or classify_status_text(
        raw_status if isinstance(raw_status, str) else None
    )

    steps = []
    details = data.get("details")
    for step_data in details if isinstance(details, list) else []:
        step = _step_from_dict(step_data, len(steps))
        if step is not None:
            steps.append(step)

    status_text = data.get("statusText")
    if not isinstance(status_text, str) or not status_text:
        status_text = raw_status if isinstance(raw_status, str) else status.display

    carrier = data.get("carrier")
    label = data.get("label")
    return ShipmentRecord(
        tracking_number=tracking_number,
        carrier=carrier if isinstance(carrier, str) else None,
        status=status,
        status_text=status_text,
        steps=steps,
        label=label if isinstance(label, str) and label else None,
        last_updated=parse_timestamp(data.get("timestamp")),
    )


def _is_newer(candidate: ShipmentRecord, other: ShipmentRecord) -> bool:
    """Return True if candidate was updated strictly after other."""
    if candidate.last_updated is None:
        return False
    if other.last_updated is None:
        return True
    return candidate.last_updated > other.last_updated


class ShipmentLedger:
    """Deduplicated, size-capped shipment history with delivered-retention.

    Every mutation reads the whole collection from the store, changes it and
    saves it back while holding the ledger lock.
    """

    def __init__(
        self,
        store: KeyValueStore,
        max_size: int = MAX_SHIPMENTS,
        retention_days: int = RETENTION_DAYS,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize the ledger on top of a key-value store."""
        self._store = store
        self._max_size = max_size
        self._retention_days = retention_days
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._lock = asyncio.Lock()

    async def _async_read(self) -> List[ShipmentRecord]:
        try:
            data = await self._store.async_load()
            if data is None:
                return []
            if not isinstance(data, list):
                raise LedgerReadFailure(f"Expected a list of shipments, got {type(data).__name__}")
        except LedgerReadFailure as err:
            _LOGGER.warning("Ignoring unreadable shipment history: %s", err)
            return []

        records: List[ShipmentRecord] = []
        seen = set()
        for entry in data:
            try:
                record = record_from_dict(entry)
            except LedgerReadFailure as err:
                _LOGGER.warning("Dropping unreadable shipment entry: %s", err)
                continue
            if record.key in seen:
                continue
            seen.add(record.key)
            records.append(record)
        return records[: self._max_size]

    async def _async_write(self, records: List[ShipmentRecord]) -> None:
        await self._store.async_save([record.to_dict() for record in records])

    def _is_expired(self, record: ShipmentRecord, today: date) -> bool:
        if not record.is_delivered or record.last_updated is None:
            return False
        age = today - record.last_updated.astimezone(timezone.utc).date()
        return age.days > self._retention_days

    async def async_upsert(self, record: ShipmentRecord) -> ShipmentRecord:
        """Insert or replace a record, keeping the more recently updated one.

        Returns:
            The record that survived
        """
        async with self._lock:
            records = await self._async_read()
            existing = next((r for r in records if r.key == record.key), None)
            survivor = existing if existing and _is_newer(existing, record) else record
            records = [survivor] + [r for r in records if r.key != record.key]
            dropped = records[self._max_size :]
            del records[self._max_size :]
            await self._async_write(records)

        for old in dropped:
            _LOGGER.info("Shipment history full, dropped %s", old.tracking_number)
        return survivor

    async def async_remove(self, key: Tuple[str, str]) -> bool:
        """Remove the record with the given identity key.

        Returns:
            True if a record was removed, False if none matched
        """
        key = identity_key(*key)
        async with self._lock:
            records = await self._async_read()
            remaining = [r for r in records if r.key != key]
            if len(remaining) == len(records):
                return False
            await self._async_write(remaining)
        return True

    async def async_evict_expired(self) -> int:
        """Remove delivered records older than the retention window.

        Returns:
            Number of records removed
        """
        today = self._now().astimezone(timezone.utc).date()
        async with self._lock:
            records = await self._async_read()
            remaining = [r for r in records if not self._is_expired(r, today)]
            evicted = len(records) - len(remaining)
            if evicted:
                await self._async_write(remaining)

        if evicted:
            _LOGGER.info("Removed %d delivered shipments past retention", evicted)
        return evicted

    async def async_records(self) -> List[ShipmentRecord]:
        """Return all current records, most recently updated first."""
        await self.async_evict_expired()
        async with self._lock:
            return await self._async_read()

    async def async_get(self, key: Tuple[str, str]) -> Optional[ShipmentRecord]:
        """Return the record with the given identity key, if any."""
        key = identity_key(*key)
        for record in await self.async_records():
            if record.key == key:
                return record
        return None

    async def async_list_filtered(
        self, shipment_filter: Union[ShipmentFilter, Dict[str, Any], None] = None
    ) -> List[ShipmentRecord]:
        """Return current records matching a filter or filter query."""
        if shipment_filter is None:
            shipment_filter = ShipmentFilter()
        elif isinstance(shipment_filter, dict):
            shipment_filter = ShipmentFilter.from_query(shipment_filter)
        return shipment_filter.apply(await self.async_records())
