"""TfiacEntity class."""

from __future__ import annotations

from typing import TYPE_CHECKING

from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from .coordinator import TfiacDataUpdateCoordinator
from .exceptions import TfiacApiClientError

if TYPE_CHECKING:
    from collections.abc import Callable

    from .device_state import DeviceState


class TfiacEntity(CoordinatorEntity[TfiacDataUpdateCoordinator]):
    """TfiacEntity class."""

    def __init__(self, coordinator: TfiacDataUpdateCoordinator) -> None:
        """Initialize."""
        super().__init__(coordinator)
        self._attr_unique_id = coordinator.config_entry.entry_id
        self._attr_device_info = DeviceInfo(
            identifiers={
                (
                    coordinator.config_entry.domain,
                    coordinator.config_entry.entry_id,
                ),
            },
            name=coordinator.config_entry.title,
            manufacturer="TFIAC",
            model="UDP AC",
        )

    @property
    def device_state(self) -> DeviceState:
        """Canonical state shared by every entity of the unit."""
        return self.coordinator.manager.get_device_state()

    async def _async_apply(self, change: Callable[[DeviceState], object]) -> None:
        """Apply ``change`` to a copy of the state and send the difference."""
        desired = self.device_state.clone()
        change(desired)
        try:
            await self.coordinator.manager.async_apply_state_to_device(desired)
        except TfiacApiClientError as exception:
            msg = f"Failed to update {self.entity_id}: {exception}"
            raise HomeAssistantError(msg) from exception
