"""Sensor platform for TFIAC."""

from __future__ import annotations

from typing import TYPE_CHECKING

from homeassistant.components.sensor import (
    SensorDeviceClass,
    SensorEntity,
    SensorStateClass,
)
from homeassistant.const import UnitOfTemperature

from .entity import TfiacEntity

if TYPE_CHECKING:
    from homeassistant.core import HomeAssistant
    from homeassistant.helpers.entity_platform import AddEntitiesCallback

    from .coordinator import TfiacDataUpdateCoordinator
    from .data import TfiacConfigEntry


async def async_setup_entry(
    _hass: HomeAssistant,
    entry: TfiacConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up the sensor platform."""
    coordinator = entry.runtime_data.coordinator
    async_add_entities(
        [
            TfiacTemperatureSensor(coordinator, "current_temperature", "Indoor"),
            TfiacTemperatureSensor(coordinator, "outdoor_temperature", "Outdoor"),
        ]
    )


class TfiacTemperatureSensor(TfiacEntity, SensorEntity):
    """TFIAC temperature sensor."""

    _attr_device_class = SensorDeviceClass.TEMPERATURE
    _attr_state_class = SensorStateClass.MEASUREMENT
    _attr_native_unit_of_measurement = UnitOfTemperature.CELSIUS

    def __init__(
        self, coordinator: TfiacDataUpdateCoordinator, field: str, label: str
    ) -> None:
        """Initialize the sensor."""
        super().__init__(coordinator)
        self._field = field
        self._attr_name = f"{coordinator.config_entry.title} {label} Temperature"
        self._attr_unique_id = f"{coordinator.config_entry.entry_id}_{field}"

    @property
    def native_value(self) -> float | None:
        """Return the state of the sensor; None when the probe is absent."""
        return getattr(self.device_state, self._field)
