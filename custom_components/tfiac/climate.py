"""Climate platform for TFIAC."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

from homeassistant.components.climate import (
    SWING_BOTH,
    SWING_HORIZONTAL,
    SWING_OFF,
    SWING_VERTICAL,
    ClimateEntity,
    ClimateEntityFeature,
    HVACMode,
)
from homeassistant.const import ATTR_TEMPERATURE, UnitOfTemperature

from .const import (
    LOGGER,
    MAX_TARGET_TEMP,
    MIN_TARGET_TEMP,
    FanSpeed,
    OperationMode,
    PowerState,
    SwingMode,
)
from .entity import TfiacEntity
from .log_utils import log_info

if TYPE_CHECKING:
    from homeassistant.core import HomeAssistant
    from homeassistant.helpers.entity_platform import AddEntitiesCallback

    from .coordinator import TfiacDataUpdateCoordinator
    from .data import TfiacConfigEntry
    from .device_state import DeviceState

HVAC_MODE_MAP = {
    HVACMode.AUTO: OperationMode.AUTO,
    HVACMode.COOL: OperationMode.COOL,
    HVACMode.DRY: OperationMode.DRY,
    HVACMode.FAN_ONLY: OperationMode.FAN_ONLY,
    HVACMode.HEAT: OperationMode.HEAT,
}
HVAC_MODE_MAP_REV = {v: k for k, v in HVAC_MODE_MAP.items()}

SWING_MODE_MAP = {
    SWING_OFF: SwingMode.OFF,
    SWING_VERTICAL: SwingMode.VERTICAL,
    SWING_HORIZONTAL: SwingMode.HORIZONTAL,
    SWING_BOTH: SwingMode.BOTH,
}
SWING_MODE_MAP_REV = {v: k for k, v in SWING_MODE_MAP.items()}


async def async_setup_entry(
    _hass: HomeAssistant,
    entry: TfiacConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up the climate platform."""
    async_add_entities([TfiacClimate(entry.runtime_data.coordinator)])


class TfiacClimate(TfiacEntity, ClimateEntity):
    """TFIAC Climate entity."""

    _attr_temperature_unit = UnitOfTemperature.CELSIUS
    _attr_supported_features = (
        ClimateEntityFeature.TARGET_TEMPERATURE
        | ClimateEntityFeature.TURN_ON
        | ClimateEntityFeature.TURN_OFF
        | ClimateEntityFeature.FAN_MODE
        | ClimateEntityFeature.SWING_MODE
    )
    _attr_hvac_modes: ClassVar[list[HVACMode]] = [
        HVACMode.OFF,
        *HVAC_MODE_MAP,
    ]
    _attr_fan_modes: ClassVar[list[str]] = [speed.value for speed in FanSpeed]
    _attr_swing_modes: ClassVar[list[str]] = list(SWING_MODE_MAP)
    _attr_min_temp = MIN_TARGET_TEMP
    _attr_max_temp = MAX_TARGET_TEMP
    _attr_target_temperature_step = 0.5
    _attr_precision = 0.1

    def __init__(self, coordinator: TfiacDataUpdateCoordinator) -> None:
        """Initialize the climate entity."""
        super().__init__(coordinator)
        self._attr_name = coordinator.config_entry.title
        self._attr_unique_id = f"{coordinator.config_entry.entry_id}_climate"

    @property
    def current_temperature(self) -> float | None:
        """Return the current temperature."""
        return self.device_state.current_temperature

    @property
    def target_temperature(self) -> float | None:
        """Return the target temperature."""
        return self.device_state.target_temperature

    @property
    def hvac_mode(self) -> HVACMode:
        """Return the current HVAC mode."""
        state = self.device_state
        if not state.is_on:
            return HVACMode.OFF
        return HVAC_MODE_MAP_REV.get(state.operation_mode, HVACMode.AUTO)

    @property
    def fan_mode(self) -> str | None:
        """Return the fan setting."""
        return self.device_state.fan_speed.value

    @property
    def swing_mode(self) -> str | None:
        """Return the swing setting."""
        return SWING_MODE_MAP_REV[self.device_state.swing_mode]

    async def async_set_temperature(self, **kwargs: Any) -> None:
        """Set new target temperature."""
        temperature = kwargs.get(ATTR_TEMPERATURE)
        if temperature is None:
            return
        log_info(
            LOGGER,
            "entity_set_temperature",
            entity=self.entity_id,
            temperature=temperature,
        )
        await self._async_apply(
            lambda state: state.set_target_temperature(float(temperature))
        )

    async def async_set_hvac_mode(self, hvac_mode: HVACMode) -> None:
        """Set new HVAC mode."""
        log_info(
            LOGGER,
            "entity_set_hvac_mode",
            entity=self.entity_id,
            hvac_mode=hvac_mode,
        )
        if hvac_mode == HVACMode.OFF:
            await self._async_apply(lambda state: state.set_power(PowerState.OFF))
            return

        def _change(state: DeviceState) -> None:
            state.set_power(PowerState.ON)
            state.set_operation_mode(HVAC_MODE_MAP[hvac_mode])

        await self._async_apply(_change)

    async def async_set_fan_mode(self, fan_mode: str) -> None:
        """Set new fan mode."""
        log_info(
            LOGGER,
            "entity_set_fan_mode",
            entity=self.entity_id,
            fan_mode=fan_mode,
        )
        await self._async_apply(lambda state: state.set_fan_speed(FanSpeed(fan_mode)))

    async def async_set_swing_mode(self, swing_mode: str) -> None:
        """Set new swing mode."""
        log_info(
            LOGGER,
            "entity_set_swing_mode",
            entity=self.entity_id,
            swing_mode=swing_mode,
        )
        await self._async_apply(
            lambda state: state.set_swing_mode(SWING_MODE_MAP[swing_mode])
        )

    async def async_turn_on(self) -> None:
        """Turn on the AC in its last mode."""
        log_info(LOGGER, "entity_turn_on", entity=self.entity_id)
        await self._async_apply(lambda state: state.set_power(PowerState.ON))

    async def async_turn_off(self) -> None:
        """Turn off the AC."""
        log_info(LOGGER, "entity_turn_off", entity=self.entity_id)
        await self._async_apply(lambda state: state.set_power(PowerState.OFF))
