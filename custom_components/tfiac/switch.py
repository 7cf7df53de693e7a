"""Switch platform for TFIAC."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from homeassistant.components.switch import SwitchEntity
from homeassistant.helpers.entity import EntityCategory

from .const import LOGGER, PowerState, SleepModeState
from .entity import TfiacEntity
from .log_utils import log_info

if TYPE_CHECKING:
    from homeassistant.core import HomeAssistant
    from homeassistant.helpers.entity_platform import AddEntitiesCallback

    from .coordinator import TfiacDataUpdateCoordinator
    from .data import TfiacConfigEntry
    from .device_state import DeviceState


async def async_setup_entry(
    _hass: HomeAssistant,
    entry: TfiacConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up the switch platform."""
    coordinator = entry.runtime_data.coordinator
    async_add_entities(
        [
            TfiacSwitch(coordinator, "eco", "Eco Mode", "mdi:leaf"),
            TfiacSwitch(
                coordinator,
                "display",
                "Display",
                "mdi:led-on",
                EntityCategory.CONFIG,
            ),
            TfiacSwitch(coordinator, "sleep", "Sleep Mode", "mdi:sleep"),
            TfiacSwitch(coordinator, "turbo", "Turbo Mode", "mdi:rocket"),
            TfiacSwitch(
                coordinator,
                "beep",
                "Beep",
                "mdi:volume-high",
                EntityCategory.CONFIG,
            ),
        ]
    )


class TfiacSwitch(TfiacEntity, SwitchEntity):
    """TFIAC toggle backed by a ``<key>_mode`` field of the device state."""

    def __init__(  # noqa: PLR0913
        self,
        coordinator: TfiacDataUpdateCoordinator,
        key: str,
        name: str,
        icon: str,
        category: EntityCategory | None = None,
    ) -> None:
        """Initialize the switch."""
        super().__init__(coordinator)
        self._key = key
        self._attr_name = f"{coordinator.config_entry.title} {name}"
        self._attr_unique_id = f"{coordinator.config_entry.entry_id}_{key}"
        self._attr_icon = icon
        if category:
            self._attr_entity_category = category
        # Sleep carries a profile string instead of on/off
        self._on_value = SleepModeState.ON if key == "sleep" else PowerState.ON
        self._off_value = SleepModeState.OFF if key == "sleep" else PowerState.OFF

    @property
    def is_on(self) -> bool | None:
        """Return true if the switch is on."""
        return getattr(self.device_state, f"{self._key}_mode") == self._on_value

    def _set(self, state: DeviceState, value: Any) -> None:
        getattr(state, f"set_{self._key}_mode")(value)

    async def async_turn_on(self, **_kwargs: Any) -> None:
        """Turn the switch on."""
        log_info(
            LOGGER,
            "entity_switch_turn_on",
            entity=self.entity_id,
            key=self._key,
        )
        await self._async_apply(lambda state: self._set(state, self._on_value))

    async def async_turn_off(self, **_kwargs: Any) -> None:
        """Turn the switch off."""
        log_info(
            LOGGER,
            "entity_switch_turn_off",
            entity=self.entity_id,
            key=self._key,
        )
        await self._async_apply(lambda state: self._set(state, self._off_value))
