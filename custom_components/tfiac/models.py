"""Data models for the TFIAC integration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypedDict

from .const import (
    DEFAULT_MIN_COMMAND_DELAY_MS,
    DEFAULT_NAME,
    DEFAULT_POLL_INTERVAL,
    UDP_COMMAND_PORT,
    FanSpeed,
    OperationMode,
    PowerState,
    SleepModeState,
    SwingMode,
)


@dataclass(frozen=True, slots=True)
class RawDeviceStatus:
    """Flat status record decoded from a statusUpdateMsg.

    Temperatures are Fahrenheit as reported by the unit. Optional fields the
    device did not send stay None.
    """

    power: bool
    operation_mode: OperationMode
    target_temp: float
    current_temp: float
    fan_speed: FanSpeed
    outdoor_temp: float | None = None
    swing_horizontal: bool | None = None
    swing_vertical: bool | None = None
    display: bool | None = None
    beep: bool | None = None
    eco: bool | None = None
    turbo: bool | None = None
    sleep_mode: str | None = None
    device_name: str | None = None
    wifi_version: str | None = None


class DeviceOptions(TypedDict, total=False):
    """Ordered set of option changes; `temp` is Celsius."""

    power: PowerState
    mode: OperationMode
    temp: float
    fan_speed: FanSpeed
    swing_mode: SwingMode
    sleep: SleepModeState
    turbo: PowerState
    eco: PowerState
    display: PowerState
    beep: PowerState


@dataclass(frozen=True, slots=True)
class TfiacDeviceConfig:
    """Connection and scheduling settings for one unit."""

    host: str
    port: int = UDP_COMMAND_PORT
    name: str = DEFAULT_NAME
    poll_interval: float = DEFAULT_POLL_INTERVAL
    min_command_delay_ms: int = DEFAULT_MIN_COMMAND_DELAY_MS

    @property
    def key(self) -> str:
        """Registry key for this unit."""
        return f"{self.host}:{self.port}"


@dataclass(frozen=True, slots=True)
class DiscoveredDevice:
    """A unit that answered the broadcast probe."""

    host: str
    port: int
    name: str | None = None
