"""
Custom integration to control TFIAC air conditioners with Home Assistant.

Units are reached directly on the LAN over the vendor's UDP/XML protocol.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from homeassistant.const import CONF_HOST, CONF_PORT, Platform
from homeassistant.exceptions import ConfigEntryNotReady
from homeassistant.loader import async_get_loaded_integration

from .cache_manager import CacheManagerRegistry
from .const import (
    CONF_MIN_COMMAND_DELAY,
    CONF_POLL_INTERVAL,
    DEFAULT_MIN_COMMAND_DELAY_MS,
    DEFAULT_POLL_INTERVAL,
    DOMAIN,
    EVENT_STATE_CHANGED,
    UDP_COMMAND_PORT,
)
from .coordinator import TfiacDataUpdateCoordinator
from .data import TfiacData
from .models import TfiacDeviceConfig

if TYPE_CHECKING:
    from typing import Any

    from homeassistant.core import HomeAssistant

    from .data import TfiacConfigEntry

PLATFORMS: list[Platform] = [
    Platform.CLIMATE,
    Platform.SWITCH,
    Platform.SENSOR,
]


def _get_setting(entry: TfiacConfigEntry, key: str, default: Any) -> Any:
    """Options override the values entered at setup."""
    return entry.options.get(key, entry.data.get(key, default))


def _get_registry(hass: HomeAssistant) -> CacheManagerRegistry:
    return hass.data.setdefault(DOMAIN, CacheManagerRegistry())


# https://developers.home-assistant.io/docs/config_entries_index/#setting-up-an-entry
async def async_setup_entry(
    hass: HomeAssistant,
    entry: TfiacConfigEntry,
) -> bool:
    """Set up this integration using UI."""
    config = TfiacDeviceConfig(
        host=entry.data[CONF_HOST],
        port=entry.data.get(CONF_PORT, UDP_COMMAND_PORT),
        name=entry.title,
        poll_interval=_get_setting(entry, CONF_POLL_INTERVAL, DEFAULT_POLL_INTERVAL),
        min_command_delay_ms=_get_setting(
            entry, CONF_MIN_COMMAND_DELAY, DEFAULT_MIN_COMMAND_DELAY_MS
        ),
    )
    registry = _get_registry(hass)
    manager = await registry.async_get_or_create(config)
    coordinator = TfiacDataUpdateCoordinator(hass, entry, manager)

    entry.runtime_data = TfiacData(
        manager=manager,
        coordinator=coordinator,
        integration=async_get_loaded_integration(hass, entry.domain),
    )

    # https://developers.home-assistant.io/docs/integration_fetching_data#coordinated-single-api-poll-for-data-for-all-entities
    try:
        await coordinator.async_config_entry_first_refresh()
    except ConfigEntryNotReady:
        await registry.async_dispose(config.host, config.port)
        raise

    entry.async_on_unload(
        manager.device_state.add_listener(
            EVENT_STATE_CHANGED, coordinator.async_handle_state_changed
        )
    )
    manager.start()

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    entry.async_on_unload(entry.add_update_listener(async_reload_entry))

    return True


async def async_unload_entry(
    hass: HomeAssistant,
    entry: TfiacConfigEntry,
) -> bool:
    """Handle removal of an entry."""
    unloaded = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if unloaded:
        manager = entry.runtime_data.manager
        await _get_registry(hass).async_dispose(
            manager.client.host, manager.client.port
        )
    return unloaded


async def async_reload_entry(
    hass: HomeAssistant,
    entry: TfiacConfigEntry,
) -> None:
    """Reload config entry."""
    await hass.config_entries.async_reload(entry.entry_id)
