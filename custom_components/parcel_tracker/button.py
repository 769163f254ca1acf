"""Button entities for Parcel Tracker."""

import logging

from homeassistant.components.button import ButtonEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from .const import DOMAIN
from .coordinator import ParcelTrackerDataUpdateCoordinator
from .sensor import device_info

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up Parcel Tracker button from a config entry."""
    coordinator: ParcelTrackerDataUpdateCoordinator = hass.data[DOMAIN][
        entry.entry_id
    ]["coordinator"]
    async_add_entities([ParcelTrackerRefreshButton(coordinator)])


class ParcelTrackerRefreshButton(
    CoordinatorEntity[ParcelTrackerDataUpdateCoordinator], ButtonEntity
):
    """Button to refresh all undelivered shipments."""

    _attr_has_entity_name = True
    _attr_unique_id = f"{DOMAIN}_refresh"
    _attr_name = "Refresh All"
    _attr_icon = "mdi:refresh"

    def __init__(self, coordinator: ParcelTrackerDataUpdateCoordinator) -> None:
        """Initialize the refresh button."""
        super().__init__(coordinator)
        self._attr_device_info = device_info()

    @property
    def available(self) -> bool:
        """Refreshing is possible even after a failed update."""
        return True

    async def async_press(self) -> None:
        """Handle the button press - refresh all undelivered shipments."""
        _LOGGER.info("Refresh button pressed - updating all undelivered shipments")
        # The coordinator reports the outcome in the message sensor
        await self.coordinator.async_request_refresh()
