"""Errors raised by the platform-agnostic tracking core."""


class ParcelTrackerError(Exception):
    """Base error for parcel tracking."""


class ExtractionFailure(ParcelTrackerError):
    """A document could not be turned into tracking signals."""


class ExtractionNotFound(ExtractionFailure):
    """No extraction strategy found tracking information in the document."""


class ProbeFailure(ParcelTrackerError):
    """The tracking service could not be queried."""


class AllCandidatesExhausted(ProbeFailure):
    """Every probe candidate failed or returned unusable data."""

    def __init__(self, tracking_number: str, attempted: int) -> None:
        """Initialize with the tracking number and how many routes were tried."""
        super().__init__(
            f"No tracking route answered for {tracking_number} ({attempted} tried)"
        )
        self.tracking_number = tracking_number
        self.attempted = attempted


class LedgerReadFailure(ParcelTrackerError):
    """Persisted shipment data is missing or malformed."""


class FilterDateFailure(ParcelTrackerError):
    """A date bound in a filter query could not be parsed."""


class TrackingFailed(ParcelTrackerError):
    """A tracking request failed; the message is safe to show to the user."""
