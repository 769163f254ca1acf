"""The Parcel Tracker integration."""

import logging

import voluptuous as vol

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import Platform
from homeassistant.core import (
    HomeAssistant,
    ServiceCall,
    ServiceResponse,
    SupportsResponse,
)
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers import config_validation as cv
from homeassistant.helpers.aiohttp_client import async_get_clientsession
from homeassistant.helpers.storage import Store
from homeassistant.helpers.typing import ConfigType

from .app.api import ParcelTrackingAPI
from .app.exceptions import TrackingFailed
from .app.ledger import FILTER_SCHEMA, ShipmentLedger
from .const import (
    CONF_BASE_URL,
    CONF_UPDATE_INTERVAL,
    DEFAULT_UPDATE_INTERVAL,
    DOMAIN,
    SERVICE_LIST,
    SERVICE_REFRESH,
    SERVICE_REMOVE,
    SERVICE_TRACK,
    STORAGE_KEY,
    STORAGE_VERSION,
    UNKNOWN_CARRIER,
)
from .coordinator import ParcelTrackerDataUpdateCoordinator
from .tracking.client import TrackingServiceClient
from .tracking.probe import EndpointProbe

_LOGGER = logging.getLogger(__name__)

PLATFORMS: list[Platform] = [Platform.SENSOR, Platform.BUTTON]

# Config schema - this integration only uses config flow
CONFIG_SCHEMA = cv.config_entry_only_config_schema(DOMAIN)

TRACK_SCHEMA = vol.Schema(
    {
        vol.Required("tracking_number"): cv.string,
        vol.Optional("carrier", default=UNKNOWN_CARRIER): cv.string,
        vol.Optional("label"): cv.string,
    }
)

REMOVE_SCHEMA = vol.Schema(
    {
        vol.Required("tracking_number"): cv.string,
        vol.Optional("carrier", default=UNKNOWN_CARRIER): cv.string,
    }
)


async def async_setup(hass: HomeAssistant, config: ConfigType) -> bool:
    """Set up the Parcel Tracker component."""
    hass.data.setdefault(DOMAIN, {})
    return True


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up Parcel Tracker from a config entry."""
    base_url = entry.data[CONF_BASE_URL]
    update_interval = entry.options.get(
        CONF_UPDATE_INTERVAL,
        entry.data.get(CONF_UPDATE_INTERVAL, DEFAULT_UPDATE_INTERVAL),
    )

    # Initialize tracking layers
    client = TrackingServiceClient(base_url, async_get_clientsession(hass))
    ledger = ShipmentLedger(Store(hass, STORAGE_VERSION, STORAGE_KEY))
    api = ParcelTrackingAPI(EndpointProbe(client), ledger)

    coordinator = ParcelTrackerDataUpdateCoordinator(hass, api, entry, update_interval)

    hass.data.setdefault(DOMAIN, {})
    hass.data[DOMAIN][entry.entry_id] = {
        "coordinator": coordinator,
        "api": api,
        "client": client,
    }

    # Forward entry setup to platforms (first refresh happens in sensor.py)
    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)

    async def async_track(call: ServiceCall) -> None:
        """Handle track service call."""
        tracking_number = call.data["tracking_number"]
        try:
            await coordinator.async_track(
                tracking_number, call.data["carrier"], call.data.get("label")
            )
        except TrackingFailed as err:
            _LOGGER.error("Failed to track %s: %s", tracking_number, err)
            raise HomeAssistantError(str(err)) from err

    async def async_remove(call: ServiceCall) -> None:
        """Handle remove service call."""
        tracking_number = call.data["tracking_number"]
        if not await coordinator.async_remove(tracking_number, call.data["carrier"]):
            _LOGGER.warning("Tracking number %s was not tracked", tracking_number)

    async def async_refresh(call: ServiceCall) -> None:
        """Handle refresh service call."""
        await coordinator.async_request_refresh()

    async def async_list(call: ServiceCall) -> ServiceResponse:
        """Handle list service call."""
        return await coordinator.async_list(dict(call.data))

    hass.services.async_register(DOMAIN, SERVICE_TRACK, async_track, schema=TRACK_SCHEMA)
    hass.services.async_register(
        DOMAIN, SERVICE_REMOVE, async_remove, schema=REMOVE_SCHEMA
    )
    hass.services.async_register(DOMAIN, SERVICE_REFRESH, async_refresh)
    hass.services.async_register(
        DOMAIN,
        SERVICE_LIST,
        async_list,
        schema=FILTER_SCHEMA,
        supports_response=SupportsResponse.ONLY,
    )

    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry."""
    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)

    if unload_ok:
        hass.data[DOMAIN].pop(entry.entry_id)
        if not hass.data[DOMAIN]:
            for service in (
                SERVICE_TRACK,
                SERVICE_REMOVE,
                SERVICE_REFRESH,
                SERVICE_LIST,
            ):
                hass.services.async_remove(DOMAIN, service)

    return unload_ok
