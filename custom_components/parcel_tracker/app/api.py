"""Platform-agnostic API interface for package tracking.

Shipments are tracked through the tracking server, which renders carrier
pages itself. `normalize_document` and `async_track_document` take a page
rendered by the caller instead; nothing in the Home Assistant layer renders
pages, so they serve library callers that bring their own renderer.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..const import TRACKING_FAILED_MESSAGE
from ..tracking.adapter import TrackingPayloadAdapter
from ..tracking.extractor import Document, DocumentExtractor
from ..tracking.probe import EndpointProbe
from .exceptions import ExtractionNotFound, ProbeFailure, TrackingFailed
from .ledger import ShipmentFilter, ShipmentLedger
from .models import CanonicalStatus, NormalizedTracking, ShipmentRecord, TrackingSignals
from .normalizer import StatusNormalizer

_LOGGER = logging.getLogger(__name__)


@dataclass
class RefreshSummary:
    """Outcome of refreshing every undelivered shipment."""

    updated: int = 0
    untouched: int = 0
    evicted: int = 0

    @property
    def message(self) -> str:
        """Return a one-line summary for display."""
        return f"Updated {self.updated} shipments, {self.untouched} unchanged"


class ParcelTrackingAPI:
    """Platform-agnostic API for package tracking."""

    def __init__(
        self,
        probe: EndpointProbe,
        ledger: ShipmentLedger,
        extractor: Optional[DocumentExtractor] = None,
        normalizer: Optional[StatusNormalizer] = None,
    ):
        """Initialize with the tracking backend and the shipment ledger."""
        self._probe = probe
        self._ledger = ledger
        self._extractor = extractor or DocumentExtractor()
        self._normalizer = normalizer or StatusNormalizer()
        self._adapter = TrackingPayloadAdapter()

    @property
    def ledger(self) -> ShipmentLedger:
        """Return the shipment ledger owned by this API."""
        return self._ledger

    async def _async_fetch(
        self, tracking_number: str, carrier: str, label: Optional[str]
    ) -> ShipmentRecord:
        """Probe the tracking server and build a normalized record.

        Raises:
            ProbeFailure: If no tracking route answered
        """
        payload = await self._probe.probe(tracking_number, carrier)
        normalized = self._normalizer.normalize(self._adapter.to_signals(payload))
        return self._adapter.to_record(
            payload, normalized, tracking_number, carrier, label
        )

    async def async_track(
        self, tracking_number: str, carrier: str, label: Optional[str] = None
    ) -> ShipmentRecord:
        """Track a shipment and remember it.

        Args:
            tracking_number: The tracking number
            carrier: Carrier name, e.g. "ups"
            label: Optional user annotation

        Returns:
            The record now stored for the shipment

        Raises:
            TrackingFailed: If the tracking server could not be queried
        """
        tracking_number = tracking_number.strip()
        carrier = carrier.strip().lower()
        try:
            record = await self._async_fetch(tracking_number, carrier, label)
        except ProbeFailure as err:
            _LOGGER.debug("Tracking %s failed: %s", tracking_number, err)
            raise TrackingFailed(TRACKING_FAILED_MESSAGE) from err

        stored = await self._ledger.async_upsert(record)
        _LOGGER.info(
            "Tracked %s (%s): %s", tracking_number, carrier, stored.status.display
        )
        return stored

    def normalize_document(self, document: Document) -> NormalizedTracking:
        """Extract and normalize a rendered tracking page.

        Pages without tracking information normalize to an unknown status.
        """
        try:
            signals = self._extractor.extract(document)
        except ExtractionNotFound as err:
            _LOGGER.debug("No tracking information in document: %s", err)
            signals = TrackingSignals()
        return self._normalizer.normalize(signals)

    async def async_track_document(
        self,
        document: Document,
        tracking_number: str,
        carrier: str,
        label: Optional[str] = None,
    ) -> ShipmentRecord:
        """Track a shipment from a page rendered by the caller.

        The record is only stored when the page contained tracking information.
        """
        try:
            signals = self._extractor.extract(document)
        except ExtractionNotFound:
            _LOGGER.info("No tracking information found for %s", tracking_number)
            return ShipmentRecord(
                tracking_number=tracking_number,
                carrier=carrier,
                status=CanonicalStatus.UNKNOWN,
                status_text=CanonicalStatus.UNKNOWN.display,
                label=label or None,
                last_updated=datetime.now(timezone.utc),
            )

        normalized = self._normalizer.normalize(signals)
        record = ShipmentRecord(
            tracking_number=tracking_number,
            carrier=carrier,
            status=normalized.status,
            status_text=normalized.status_text,
            steps=normalized.steps,
            label=label or None,
            last_updated=datetime.now(timezone.utc),
        )
        return await self._ledger.async_upsert(record)

    async def async_refresh_undelivered(self) -> RefreshSummary:
        """Refresh every undelivered shipment in parallel.

        All probes settle before anything is written; results are merged in
        the order the shipments were requested.
        """
        pending = [r for r in await self._ledger.async_records() if not r.is_delivered]
        summary = RefreshSummary()
        if not pending:
            return summary

        results = await asyncio.gather(
            *(
                self._async_fetch(record.tracking_number, record.carrier, record.label)
                for record in pending
            ),
            return_exceptions=True,
        )

        for record, result in zip(pending, results):
            if isinstance(result, BaseException):
                summary.untouched += 1
                _LOGGER.debug("No update for %s: %s", record.tracking_number, result)
                continue
            await self._ledger.async_upsert(result)
            summary.updated += 1

        summary.evicted = await self._ledger.async_evict_expired()
        _LOGGER.info(summary.message)
        return summary

    async def async_remove(self, tracking_number: str, carrier: str) -> bool:
        """Stop tracking a shipment.

        Returns:
            True if removed, False if it was not tracked
        """
        removed = await self._ledger.async_remove((tracking_number, carrier))
        if removed:
            _LOGGER.info("Removed tracking: %s (%s)", tracking_number, carrier)
        return removed

    async def async_list(
        self, query: Optional[Dict[str, Any]] = None
    ) -> List[ShipmentRecord]:
        """Return tracked shipments matching a filter query."""
        if query is None:
            return await self._ledger.async_records()
        return await self._ledger.async_list_filtered(ShipmentFilter.from_query(query))
