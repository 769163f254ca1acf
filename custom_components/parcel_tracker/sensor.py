"""Sensor entities for Parcel Tracker shipments."""

import logging
from typing import Any

from homeassistant.components.sensor import SensorEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers import entity_registry as er
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from .app.models import CanonicalStatus
from .const import (
    ATTR_CARRIER,
    ATTR_LABEL,
    ATTR_LAST_UPDATE,
    ATTR_STATUS,
    ATTR_STATUS_TEXT,
    ATTR_STEP_COUNT,
    ATTR_STEPS,
    ATTR_TRACKING_NUMBER,
    DEVICE_IDENTIFIER,
    DEVICE_NAME,
    DOMAIN,
)
from .coordinator import ParcelTrackerDataUpdateCoordinator

_LOGGER = logging.getLogger(__name__)

STATUS_ICONS = {
    CanonicalStatus.PENDING: "mdi:package-variant",
    CanonicalStatus.IN_TRANSIT: "mdi:truck-delivery",
    CanonicalStatus.OUT_FOR_DELIVERY: "mdi:truck-fast",
    CanonicalStatus.DELIVERED: "mdi:check-circle",
    CanonicalStatus.UNKNOWN: "mdi:help-circle",
}


def device_info() -> DeviceInfo:
    """Return the device all Parcel Tracker entities belong to."""
    return DeviceInfo(
        identifiers={DEVICE_IDENTIFIER},
        name=DEVICE_NAME,
        manufacturer="Parcel Tracker",
        model="Package Tracking",
    )


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up shipment sensors from a config entry."""
    coordinator: ParcelTrackerDataUpdateCoordinator = hass.data[DOMAIN][
        entry.entry_id
    ]["coordinator"]
    known_keys: set[str] = set()

    @callback
    def async_add_new_sensors() -> None:
        """Create sensors for shipments that do not have one yet."""
        new_keys = set(coordinator.data or {}) - known_keys
        if not new_keys:
            return
        known_keys.update(new_keys)
        async_add_entities(
            ParcelTrackerShipmentSensor(coordinator, key) for key in sorted(new_keys)
        )

    @callback
    def async_remove_sensor(key: str) -> None:
        """Remove the sensor of a shipment that is no longer tracked."""
        known_keys.discard(key)
        entity_registry = er.async_get(hass)
        entity_id = entity_registry.async_get_entity_id(
            "sensor", DOMAIN, f"{DOMAIN}_{key}"
        )
        if entity_id:
            entity_registry.async_remove(entity_id)
            _LOGGER.info("Removed entity %s for shipment %s", entity_id, key)

    coordinator.set_remove_entity_callback(async_remove_sensor)

    async_add_entities([ParcelTrackerMessageSensor(coordinator)])

    # Don't fail setup if the tracking server is not up yet; the coordinator retries
    await coordinator.async_refresh()
    if not coordinator.last_update_success:
        _LOGGER.warning(
            "Initial refresh failed: %s. Sensors will update on the next refresh.",
            coordinator.last_error,
        )

    async_add_new_sensors()
    entry.async_on_unload(coordinator.async_add_listener(async_add_new_sensors))


class ParcelTrackerShipmentSensor(
    CoordinatorEntity[ParcelTrackerDataUpdateCoordinator], SensorEntity
):
    """Representation of one tracked shipment."""

    _attr_has_entity_name = True

    def __init__(self, coordinator: ParcelTrackerDataUpdateCoordinator, key: str) -> None:
        """Initialize the sensor."""
        super().__init__(coordinator)
        self._key = key
        self._attr_unique_id = f"{DOMAIN}_{key}"
        record = (coordinator.data or {}).get(key)
        self._attr_name = (record.label or record.tracking_number) if record else key
        self._attr_device_info = device_info()

    @property
    def _record(self):
        return (self.coordinator.data or {}).get(self._key)

    @property
    def available(self) -> bool:
        """Return if entity is available."""
        return super().available and self._record is not None

    @property
    def native_value(self) -> str | None:
        """Return the canonical status of the shipment."""
        record = self._record
        return record.status.display if record else None

    @property
    def icon(self) -> str:
        """Return the icon for the sensor."""
        record = self._record
        if not record:
            return STATUS_ICONS[CanonicalStatus.UNKNOWN]
        return STATUS_ICONS[record.status]

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        """Return extra state attributes."""
        record = self._record
        if not record:
            return {}
        return {
            ATTR_TRACKING_NUMBER: record.tracking_number,
            ATTR_CARRIER: record.carrier,
            ATTR_STATUS: record.status.value,
            ATTR_STATUS_TEXT: record.status_text,
            ATTR_LAST_UPDATE: (
                record.last_updated.isoformat() if record.last_updated else None
            ),
            ATTR_STEPS: [step.to_dict() for step in record.steps],
            ATTR_STEP_COUNT: len(record.steps),
            ATTR_LABEL: record.label,
        }


class ParcelTrackerMessageSensor(
    CoordinatorEntity[ParcelTrackerDataUpdateCoordinator], SensorEntity
):
    """Sensor for displaying the last tracking message or error."""

    _attr_has_entity_name = True
    _attr_unique_id = f"{DOMAIN}_logging"
    _attr_name = "Last Message"

    def __init__(self, coordinator: ParcelTrackerDataUpdateCoordinator) -> None:
        """Initialize the message sensor."""
        super().__init__(coordinator)
        self._attr_device_info = device_info()

    @property
    def available(self) -> bool:
        """Stay available so refresh errors can be shown."""
        return True

    @property
    def native_value(self) -> str:
        """Return the last message or error."""
        if self.coordinator.last_error:
            return f"Error: {self.coordinator.last_error}"
        return self.coordinator.last_message or "No messages"

    @property
    def icon(self) -> str:
        """Return the icon for the sensor."""
        return "mdi:alert-circle" if self.coordinator.last_error else "mdi:message-text"
