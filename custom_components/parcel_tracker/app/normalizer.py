"""Turn raw tracking signals into one canonical delivery status."""

import logging
import re
from dataclasses import replace
from typing import Iterable, List, Optional, Pattern, Sequence

from .models import CanonicalStatus, NormalizedTracking, ProgressStep, TrackingSignals

_LOGGER = logging.getLogger(__name__)

# Checked in order; the first matching class wins.
STATUS_KEYWORDS = (
    (CanonicalStatus.DELIVERED, ("delivered",)),
    (CanonicalStatus.OUT_FOR_DELIVERY, ("out for delivery",)),
    (CanonicalStatus.IN_TRANSIT, ("transit", "shipped", "departed", "arrived")),
    (CanonicalStatus.PENDING, ("pending", "processing", "label")),
)

# Machine-readable keys that leak out of carrier pages instead of prose.
DEFAULT_PLACEHOLDER_PATTERNS = (
    re.compile(r"^status not found$", re.IGNORECASE),
    re.compile(r"^status found via api$", re.IGNORECASE),
    re.compile(r"^[a-z][a-z0-9]*(?:[._][a-z0-9]+)*\.[a-z0-9_]+$", re.IGNORECASE),
    re.compile(r"^[A-Z][A-Z0-9]*(?:_[A-Z0-9]+)+$"),
    re.compile(r"^\{\{.*\}\}$"),
)


def classify_status_text(text: Optional[str]) -> CanonicalStatus:
    """Map a free-form status string onto a canonical status."""
    lowered = (text or "").lower()
    for status, keywords in STATUS_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return status
    return CanonicalStatus.UNKNOWN


class StatusNormalizer:
    """Reconcile step-level and page-level signals into a canonical status."""

    def __init__(self, placeholder_patterns: Optional[Iterable[Pattern]] = None) -> None:
        """Initialize with an optional table of placeholder token patterns."""
        self._placeholders: List[Pattern] = list(
            DEFAULT_PLACEHOLDER_PATTERNS
            if placeholder_patterns is None
            else placeholder_patterns
        )

    def add_placeholder_pattern(self, pattern: str) -> None:
        """Register another placeholder token pattern."""
        self._placeholders.append(re.compile(pattern, re.IGNORECASE))

    def is_placeholder(self, text: str) -> bool:
        """Return True if the text is a known placeholder token."""
        stripped = text.strip()
        return any(pattern.match(stripped) for pattern in self._placeholders)

    def normalize(self, signals: TrackingSignals) -> NormalizedTracking:
        """Normalize tracking signals.

        Never raises: absent evidence yields an unknown status with no steps.
        """
        steps = sorted(
            (replace(step) for step in signals.steps), key=lambda step: step.sequence
        )

        if self._is_delivered(signals, steps):
            if steps and steps[-1].is_delivery_milestone:
                # Pages can confirm delivery globally while leaving the final
                # milestone unmarked.
                steps[-1].completed = True
            milestone = next(
                (
                    step
                    for step in reversed(steps)
                    if step.is_delivery_milestone and step.completed
                ),
                None,
            )
            status_text = CanonicalStatus.DELIVERED.display
            if milestone and not self.is_placeholder(milestone.text):
                status_text = milestone.text
            return NormalizedTracking(CanonicalStatus.DELIVERED, status_text, steps)

        working = self._working_status(signals, steps)
        if working is None or not working.strip():
            return NormalizedTracking(
                CanonicalStatus.UNKNOWN, CanonicalStatus.UNKNOWN.display, steps
            )

        if self.is_placeholder(working):
            _LOGGER.debug("Suppressing placeholder status token %r", working)
            status = (
                CanonicalStatus.DELIVERED
                if signals.explicit_delivered_marker
                else CanonicalStatus.UNKNOWN
            )
            return NormalizedTracking(status, status.display, steps)

        working = working.strip()
        return NormalizedTracking(classify_status_text(working), working, steps)

    @staticmethod
    def _is_delivered(signals: TrackingSignals, steps: Sequence[ProgressStep]) -> bool:
        if signals.explicit_delivered_marker:
            return True
        if any(step.is_delivery_milestone and step.completed for step in steps):
            return True
        return bool(steps) and all(step.completed for step in steps)

    @staticmethod
    def _working_status(
        signals: TrackingSignals, steps: Sequence[ProgressStep]
    ) -> Optional[str]:
        # Latest completed milestone is the current state.
        for step in reversed(steps):
            if step.completed:
                return step.text
        if steps:
            return steps[0].text
        return signals.page_status_text


_DEFAULT_NORMALIZER = StatusNormalizer()


def normalize(signals: TrackingSignals) -> NormalizedTracking:
    """Normalize signals with the default placeholder table."""
    return _DEFAULT_NORMALIZER.normalize(signals)
