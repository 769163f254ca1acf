"""Tracking payload adapter - Converts tracking server responses to core models."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..app.models import (
    NormalizedTracking,
    ProgressStep,
    ShipmentRecord,
    TrackingSignals,
    parse_timestamp,
)
from .extractor import is_delivery_milestone

_LOGGER = logging.getLogger(__name__)


class TrackingPayloadAdapter:
    """Adapter for converting tracking server payloads to signals and records."""

    @staticmethod
    def _step_text(step_data: Any) -> str:
        """Return the description of a step in any of the known shapes."""
        if isinstance(step_data, str):
            return step_data.strip()
        if not isinstance(step_data, dict):
            return ""
        for key in ("text", "activityScan", "status"):
            value = step_data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return ""

    @staticmethod
    def _parse_steps(steps_data: List[Any]) -> List[ProgressStep]:
        """Parse progress steps, dropping blank ones and renumbering densely."""
        steps = []
        for step_data in steps_data or []:
            text = TrackingPayloadAdapter._step_text(step_data)
            if not text:
                continue

            completed = False
            timestamp = None
            if isinstance(step_data, dict):
                completed = step_data.get("completed") is True
                timestamp = parse_timestamp(
                    step_data.get("dateTime") or step_data.get("timestamp")
                )
            # Activity scans are history, so they already happened.
            if text.lower().startswith("past event"):
                completed = True

            steps.append(
                ProgressStep(
                    text=text,
                    completed=completed,
                    is_delivery_milestone=is_delivery_milestone(text),
                    sequence=len(steps),
                    timestamp=timestamp,
                )
            )
        return steps

    @staticmethod
    def to_signals(payload: Dict[str, Any]) -> TrackingSignals:
        """Convert a tracking payload to raw signals.

        Args:
            payload: Decoded JSON from a tracking route

        Returns:
            TrackingSignals for the normalizer
        """
        steps_data = payload.get("progressSteps")
        if not isinstance(steps_data, list):
            steps_data = payload.get("details")
        steps = TrackingPayloadAdapter._parse_steps(
            steps_data if isinstance(steps_data, list) else []
        )

        page_status = payload.get("status") or payload.get("currentStep")
        if not isinstance(page_status, str) or not page_status.strip():
            page_status = None

        return TrackingSignals(
            steps=steps,
            explicit_delivered_marker=payload.get("isDelivered") is True,
            page_status_text=page_status,
        )

    @staticmethod
    def to_record(
        payload: Dict[str, Any],
        normalized: NormalizedTracking,
        tracking_number: str,
        carrier: str,
        label: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ShipmentRecord:
        """Build the ledger record for a normalized tracking result.

        The payload's own timestamp is used when it parses, otherwise `now`.
        """
        last_updated = parse_timestamp(payload.get("timestamp"))
        if last_updated is None:
            last_updated = now or datetime.now(timezone.utc)

        return ShipmentRecord(
            tracking_number=tracking_number,
            carrier=carrier,
            status=normalized.status,
            status_text=normalized.status_text,
            steps=normalized.steps,
            label=label or None,
            last_updated=last_updated,
        )
