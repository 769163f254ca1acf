"""Config flow for Parcel Tracker integration."""

import logging
from typing import Any

import voluptuous as vol

from homeassistant import config_entries
from homeassistant.data_entry_flow import FlowResult
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.aiohttp_client import async_get_clientsession

from .const import (
    CONF_BASE_URL,
    CONF_UPDATE_INTERVAL,
    DEFAULT_UPDATE_INTERVAL,
    DOMAIN,
    INTEGRATION_NAME,
    MIN_UPDATE_INTERVAL,
)
from .tracking.client import TrackingServiceClient

_LOGGER = logging.getLogger(__name__)

STEP_USER_DATA_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_BASE_URL, default="http://localhost:3000"): str,
        vol.Optional(CONF_UPDATE_INTERVAL, default=DEFAULT_UPDATE_INTERVAL): vol.All(
            vol.Coerce(int), vol.Range(min=MIN_UPDATE_INTERVAL)
        ),
    }
)


class CannotConnect(HomeAssistantError):
    """Error to indicate the tracking server is unreachable."""


class ParcelTrackerConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Handle a config flow for Parcel Tracker."""

    VERSION = 1

    async def _async_validate_base_url(self, base_url: str) -> None:
        """Validate the tracking server by testing connection."""
        client = TrackingServiceClient(base_url, async_get_clientsession(self.hass))
        if not await client.test_connection():
            raise CannotConnect

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> FlowResult:
        """Handle the initial step."""
        if user_input is None:
            return self.async_show_form(
                step_id="user", data_schema=STEP_USER_DATA_SCHEMA
            )

        errors = {}
        base_url = user_input[CONF_BASE_URL].rstrip("/")

        await self.async_set_unique_id(base_url)
        self._abort_if_unique_id_configured()

        try:
            await self._async_validate_base_url(base_url)
        except CannotConnect:
            errors["base"] = "cannot_connect"
        except Exception:  # pylint: disable=broad-except
            _LOGGER.exception("Unexpected exception")
            errors["base"] = "unknown"

        if errors:
            return self.async_show_form(
                step_id="user", data_schema=STEP_USER_DATA_SCHEMA, errors=errors
            )

        return self.async_create_entry(
            title=INTEGRATION_NAME,
            data={
                CONF_BASE_URL: base_url,
                CONF_UPDATE_INTERVAL: user_input[CONF_UPDATE_INTERVAL],
            },
        )
