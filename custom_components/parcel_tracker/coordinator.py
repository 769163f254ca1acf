"""DataUpdateCoordinator for Parcel Tracker integration."""

import logging
from datetime import timedelta
from typing import Any, Callable, Optional

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from .app.api import ParcelTrackingAPI
from .app.exceptions import ParcelTrackerError
from .app.models import ShipmentRecord
from .const import DEFAULT_UPDATE_INTERVAL, DOMAIN

_LOGGER = logging.getLogger(__name__)


def record_entity_key(record: ShipmentRecord) -> str:
    """Return the key a shipment is published under in coordinator data."""
    return f"{record.carrier}_{record.tracking_number}"


class ParcelTrackerDataUpdateCoordinator(DataUpdateCoordinator[dict[str, ShipmentRecord]]):
    """Class to manage refreshing tracked shipments."""

    def __init__(
        self,
        hass: HomeAssistant,
        api: ParcelTrackingAPI,
        entry: ConfigEntry,
        update_interval: int = DEFAULT_UPDATE_INTERVAL,
    ) -> None:
        """Initialize coordinator."""
        self.api = api
        self.entry = entry
        self._last_error: str | None = None
        self._last_message: str | None = None
        self._async_remove_entity: Optional[Callable[[str], None]] = None

        super().__init__(
            hass,
            _LOGGER,
            name=DOMAIN,
            update_interval=timedelta(seconds=update_interval),
        )

    @property
    def last_error(self) -> str | None:
        """Return the last error shown in the message sensor."""
        return self._last_error

    @property
    def last_message(self) -> str | None:
        """Return the last message shown in the message sensor."""
        return self._last_message

    def set_remove_entity_callback(self, remove: Callable[[str], None]) -> None:
        """Register the callback that removes a shipment's entity."""
        self._async_remove_entity = remove

    async def _async_snapshot(self) -> dict[str, ShipmentRecord]:
        records = await self.api.async_list()
        return {record_entity_key(record): record for record in records}

    def _async_remove_stale_entities(self, data: dict[str, ShipmentRecord]) -> None:
        """Remove entities of shipments missing from the new snapshot."""
        if self.data and self._async_remove_entity:
            for key in set(self.data) - set(data):
                self._async_remove_entity(key)

    def _async_publish(self, data: dict[str, ShipmentRecord]) -> None:
        """Publish a snapshot taken outside the refresh cycle."""
        self._async_remove_stale_entities(data)
        self.async_set_updated_data(data)

    async def _async_update_data(self) -> dict[str, ShipmentRecord]:
        """Refresh undelivered shipments via App Layer."""
        try:
            summary = await self.api.async_refresh_undelivered()
            data = await self._async_snapshot()
        except ParcelTrackerError as err:
            self._last_error = f"Failed to refresh shipments: {err}"
            raise UpdateFailed(self._last_error) from err

        self._last_message = summary.message
        if summary.evicted:
            self._last_message += f", {summary.evicted} delivered removed"
        self._last_error = None

        # Entities of shipments that aged out disappear with them
        self._async_remove_stale_entities(data)
        return data

    async def async_track(
        self, tracking_number: str, carrier: str, label: str | None = None
    ) -> ShipmentRecord:
        """Track a shipment and publish it.

        Raises:
            TrackingFailed: If the tracking server could not be queried
        """
        try:
            record = await self.api.async_track(tracking_number, carrier, label)
        except ParcelTrackerError as err:
            self._last_error = f"Error tracking {tracking_number}: {err}"
            self.async_update_listeners()
            raise

        self._last_message = f"Tracked {tracking_number}: {record.status.display}"
        self._last_error = None
        # Tracking can push the oldest shipment out of the history
        self._async_publish(await self._async_snapshot())
        return record

    async def async_remove(self, tracking_number: str, carrier: str) -> bool:
        """Stop tracking a shipment and remove its entity.

        Returns:
            True if removed, False if it was not tracked
        """
        removed = await self.api.async_remove(tracking_number, carrier)
        if not removed:
            return False

        self._last_message = f"Removed tracking: {tracking_number}"
        self._last_error = None
        self._async_publish(await self._async_snapshot())
        return True

    async def async_list(self, query: dict[str, Any]) -> dict[str, Any]:
        """Return the shipments matching a filter query as service response data."""
        records = await self.api.async_list(query)
        return {"shipments": [record.to_dict() for record in records]}
