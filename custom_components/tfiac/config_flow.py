"""Adds config flow for TFIAC."""

from __future__ import annotations

from typing import Any

import voluptuous as vol
from homeassistant import config_entries
from homeassistant.const import CONF_HOST, CONF_NAME, CONF_PORT
from homeassistant.core import callback

from .api import (
    TfiacApiClient,
    TfiacApiClientCommunicationError,
    TfiacApiClientError,
    async_discover_devices,
)
from .const import (
    CONF_MIN_COMMAND_DELAY,
    CONF_POLL_INTERVAL,
    DEFAULT_MIN_COMMAND_DELAY_MS,
    DEFAULT_NAME,
    DEFAULT_POLL_INTERVAL,
    DOMAIN,
    LOGGER,
    UDP_COMMAND_PORT,
)
from .log_utils import log_warning

POLL_INTERVAL_VALIDATOR = vol.All(vol.Coerce(int), vol.Range(min=5, max=3600))
COMMAND_DELAY_VALIDATOR = vol.All(vol.Coerce(int), vol.Range(min=0, max=10000))


async def _async_probe(host: str, port: int) -> str | None:
    """Read one status; returns the device name, if it reports one."""
    client = TfiacApiClient(host, port, max_retries=1)
    try:
        status = await client.async_update_state(force=True)
    finally:
        await client.async_cleanup()
    return status.device_name


class TfiacFlowHandler(config_entries.ConfigFlow, domain=DOMAIN):
    """Config flow for TFIAC."""

    VERSION = 1

    def __init__(self) -> None:
        """Initialize the flow."""
        self._user_input: dict[str, Any] = {}
        self._discovered: dict[str, str] = {}

    @staticmethod
    @callback
    def async_get_options_flow(
        config_entry: config_entries.ConfigEntry,
    ) -> config_entries.OptionsFlow:
        """Create the options flow."""
        return TfiacOptionsFlowHandler()

    async def async_step_user(
        self,
        user_input: dict | None = None,
    ) -> config_entries.ConfigFlowResult:
        """Handle a flow initialized by the user; a blank host discovers."""
        errors: dict[str, str] = {}
        if user_input is not None:
            self._user_input = user_input
            host = user_input.get(CONF_HOST, "").strip()
            if host:
                return await self._async_create(host)

            port = user_input.get(CONF_PORT, UDP_COMMAND_PORT)
            try:
                devices = await async_discover_devices(port)
            except TfiacApiClientCommunicationError as exception:
                log_warning(LOGGER, "discovery_failed", error=str(exception))
                devices = []
            self._discovered = {
                device.host: f"{device.name or DEFAULT_NAME} ({device.host})"
                for device in devices
            }
            if self._discovered:
                return await self.async_step_pick()
            errors["base"] = "no_devices_found"

        return self.async_show_form(
            step_id="user",
            data_schema=vol.Schema(
                {
                    vol.Optional(CONF_HOST, default=""): str,
                    vol.Optional(CONF_PORT, default=UDP_COMMAND_PORT): vol.Coerce(
                        int
                    ),
                    vol.Optional(CONF_NAME, default=""): str,
                    vol.Optional(
                        CONF_POLL_INTERVAL, default=DEFAULT_POLL_INTERVAL
                    ): POLL_INTERVAL_VALIDATOR,
                    vol.Optional(
                        CONF_MIN_COMMAND_DELAY, default=DEFAULT_MIN_COMMAND_DELAY_MS
                    ): COMMAND_DELAY_VALIDATOR,
                }
            ),
            errors=errors,
        )

    async def async_step_pick(
        self,
        user_input: dict | None = None,
    ) -> config_entries.ConfigFlowResult:
        """Let the user choose one of the discovered units."""
        if user_input is not None:
            return await self._async_create(user_input[CONF_HOST])

        return self.async_show_form(
            step_id="pick",
            data_schema=vol.Schema(
                {vol.Required(CONF_HOST): vol.In(self._discovered)}
            ),
        )

    async def _async_create(self, host: str) -> config_entries.ConfigFlowResult:
        port = self._user_input.get(CONF_PORT, UDP_COMMAND_PORT)
        await self.async_set_unique_id(f"{host}:{port}")
        self._abort_if_unique_id_configured()

        try:
            device_name = await _async_probe(host, port)
        except TfiacApiClientCommunicationError as exception:
            log_warning(
                LOGGER, "config_probe_failed", host=host, error=str(exception)
            )
            return self.async_abort(reason="cannot_connect")
        except TfiacApiClientError as exception:
            log_warning(
                LOGGER, "config_probe_invalid", host=host, error=str(exception)
            )
            return self.async_abort(reason="invalid_response")

        return self.async_create_entry(
            title=self._user_input.get(CONF_NAME) or device_name or DEFAULT_NAME,
            data={
                CONF_HOST: host,
                CONF_PORT: port,
                CONF_POLL_INTERVAL: self._user_input.get(
                    CONF_POLL_INTERVAL, DEFAULT_POLL_INTERVAL
                ),
                CONF_MIN_COMMAND_DELAY: self._user_input.get(
                    CONF_MIN_COMMAND_DELAY, DEFAULT_MIN_COMMAND_DELAY_MS
                ),
            },
        )


class TfiacOptionsFlowHandler(config_entries.OptionsFlow):
    """TFIAC options flow."""

    async def async_step_init(
        self, user_input: dict[str, Any] | None = None
    ) -> config_entries.ConfigFlowResult:
        """Manage the options."""
        if user_input is not None:
            return self.async_create_entry(title="", data=user_input)

        return self.async_show_form(
            step_id="init",
            data_schema=vol.Schema(
                {
                    vol.Optional(
                        CONF_POLL_INTERVAL,
                        default=self.config_entry.options.get(
                            CONF_POLL_INTERVAL,
                            self.config_entry.data.get(
                                CONF_POLL_INTERVAL, DEFAULT_POLL_INTERVAL
                            ),
                        ),
                    ): POLL_INTERVAL_VALIDATOR,
                    vol.Optional(
                        CONF_MIN_COMMAND_DELAY,
                        default=self.config_entry.options.get(
                            CONF_MIN_COMMAND_DELAY,
                            self.config_entry.data.get(
                                CONF_MIN_COMMAND_DELAY, DEFAULT_MIN_COMMAND_DELAY_MS
                            ),
                        ),
                    ): COMMAND_DELAY_VALIDATOR,
                }
            ),
        )
