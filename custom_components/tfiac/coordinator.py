"""DataUpdateCoordinator for tfiac."""

from __future__ import annotations

from typing import TYPE_CHECKING

from homeassistant.core import callback
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from .const import DOMAIN, LOGGER

if TYPE_CHECKING:
    from homeassistant.core import HomeAssistant

    from .cache_manager import CacheManager
    from .data import TfiacConfigEntry
    from .device_state import DeviceState


# https://developers.home-assistant.io/docs/integration_fetching_data#coordinated-single-api-poll-for-data-for-all-entities
class TfiacDataUpdateCoordinator(DataUpdateCoordinator["DeviceState"]):
    """Push-style coordinator fed by the cache manager's state changes."""

    config_entry: TfiacConfigEntry

    def __init__(
        self,
        hass: HomeAssistant,
        config_entry: TfiacConfigEntry,
        manager: CacheManager,
    ) -> None:
        """Initialize; the cache manager does the periodic polling."""
        super().__init__(
            hass,
            logger=LOGGER,
            config_entry=config_entry,
            name=DOMAIN,
            update_interval=None,
        )
        self.manager = manager

    async def _async_update_data(self) -> DeviceState:
        """Update data via the cache manager."""
        state = await self.manager.async_update_device_state(force=True)
        if self.manager.consecutive_failed_polls:
            msg = f"No response from {self.manager.client.host}"
            raise UpdateFailed(msg)
        return state

    @callback
    def async_handle_state_changed(self, state: DeviceState) -> None:
        """Push a changed DeviceState to the entities."""
        self.async_set_updated_data(state)
