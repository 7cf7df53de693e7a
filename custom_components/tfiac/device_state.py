"""Canonical device state with change notification and transition guards."""

from __future__ import annotations

import math
import time
from typing import TYPE_CHECKING, Any

from .const import (
    DEFAULT_CURRENT_TEMP,
    DEFAULT_TARGET_TEMP,
    EVENT_STATE_CHANGED,
    LOGGER,
    MAX_TARGET_TEMP,
    MIN_TARGET_TEMP,
    OUTDOOR_TEMP_MAX_F,
    OUTDOOR_TEMP_MIN_F,
    POWER_OFF_GUARD_SECONDS,
    SLEEP_DEBOUNCE_SECONDS,
    TURBO_OFF_GUARD_SECONDS,
    FanSpeed,
    OperationMode,
    PowerState,
    SleepModeState,
    SwingMode,
)
from .listeners import ListenerRegistry
from .log_utils import log_debug
from .protocol import fahrenheit_to_celsius

if TYPE_CHECKING:
    from collections.abc import Callable

    from .models import DeviceOptions, RawDeviceStatus

# State attribute -> DeviceOptions key, in wire order
_OPTION_KEYS = {
    "power": "power",
    "operation_mode": "mode",
    "target_temperature": "temp",
    "fan_speed": "fan_speed",
    "swing_mode": "swing_mode",
    "sleep_mode": "sleep",
    "turbo_mode": "turbo",
    "eco_mode": "eco",
    "display_mode": "display",
    "beep_mode": "beep",
}


def clamp_target_temperature(value: float) -> float:
    """Clamp a set point to the range the unit accepts."""
    return min(max(value, MIN_TARGET_TEMP), MAX_TARGET_TEMP)


def sleep_state_from_token(token: str) -> SleepModeState:
    """Normalize a sleep profile token; anything not on counts as off."""
    value = token.strip()
    if value.startswith("sleepMode") or value.lower() == "on":
        return SleepModeState.ON
    return SleepModeState.OFF


def swing_from_flags(*, horizontal: bool, vertical: bool) -> SwingMode:
    """Combine louver flags into a swing mode."""
    if horizontal and vertical:
        return SwingMode.BOTH
    if horizontal:
        return SwingMode.HORIZONTAL
    if vertical:
        return SwingMode.VERTICAL
    return SwingMode.OFF


class DeviceState(ListenerRegistry):
    """
    Single source of truth for one unit.

    Temperatures are Celsius. Device reports go through update_from_device,
    local intent through update_from_options. Listeners registered for
    ``state_changed`` receive this instance whenever a value changes.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep_debounce: float = SLEEP_DEBOUNCE_SECONDS,
        power_off_guard: float = POWER_OFF_GUARD_SECONDS,
        turbo_off_guard: float = TURBO_OFF_GUARD_SECONDS,
    ) -> None:
        """Initialize with the unit off."""
        super().__init__()
        self._clock = clock
        self._sleep_debounce = sleep_debounce
        self._power_off_guard = power_off_guard
        self._turbo_off_guard = turbo_off_guard

        self._power = PowerState.OFF
        self._operation_mode = OperationMode.AUTO
        self._target_temperature = DEFAULT_TARGET_TEMP
        self._current_temperature = DEFAULT_CURRENT_TEMP
        self._outdoor_temperature: float | None = None
        self._fan_speed = FanSpeed.AUTO
        self._swing_mode = SwingMode.OFF
        self._sleep_mode = SleepModeState.OFF
        self._turbo_mode = PowerState.OFF
        self._eco_mode = PowerState.OFF
        self._display_mode = PowerState.ON
        self._beep_mode = PowerState.ON

        # Monotonic time of the last local command of each kind
        self._sleep_on_at: float | None = None
        self._power_off_at: float | None = None
        self._turbo_off_at: float | None = None

    @property
    def power(self) -> PowerState:
        """Power state."""
        return self._power

    @property
    def operation_mode(self) -> OperationMode:
        """Operation mode."""
        return self._operation_mode

    @property
    def target_temperature(self) -> float:
        """Set point, Celsius."""
        return self._target_temperature

    @property
    def current_temperature(self) -> float:
        """Indoor temperature, Celsius."""
        return self._current_temperature

    @property
    def outdoor_temperature(self) -> float | None:
        """Outdoor temperature, Celsius, None when unknown."""
        return self._outdoor_temperature

    @property
    def fan_speed(self) -> FanSpeed:
        """Fan level."""
        return self._fan_speed

    @property
    def swing_mode(self) -> SwingMode:
        """Louver swing."""
        return self._swing_mode

    @property
    def sleep_mode(self) -> SleepModeState:
        """Sleep profile."""
        return self._sleep_mode

    @property
    def turbo_mode(self) -> PowerState:
        """Turbo toggle."""
        return self._turbo_mode

    @property
    def eco_mode(self) -> PowerState:
        """ECO toggle."""
        return self._eco_mode

    @property
    def display_mode(self) -> PowerState:
        """Front panel display."""
        return self._display_mode

    @property
    def beep_mode(self) -> PowerState:
        """Command beep."""
        return self._beep_mode

    @property
    def is_on(self) -> bool:
        """Whether the unit is powered."""
        return self._power == PowerState.ON

    def to_dict(self) -> dict[str, Any]:
        """Return a plain snapshot of every value."""
        return {
            "power": self._power,
            "operation_mode": self._operation_mode,
            "target_temperature": self._target_temperature,
            "current_temperature": self._current_temperature,
            "outdoor_temperature": self._outdoor_temperature,
            "fan_speed": self._fan_speed,
            "swing_mode": self._swing_mode,
            "sleep_mode": self._sleep_mode,
            "turbo_mode": self._turbo_mode,
            "eco_mode": self._eco_mode,
            "display_mode": self._display_mode,
            "beep_mode": self._beep_mode,
        }

    def __repr__(self) -> str:
        """Return a readable state dump."""
        values = ", ".join(f"{key}={value}" for key, value in self.to_dict().items())
        return f"DeviceState({values})"

    def clone(self) -> DeviceState:
        """Copy the values into a detached instance without listeners."""
        copy = DeviceState(
            clock=self._clock,
            sleep_debounce=self._sleep_debounce,
            power_off_guard=self._power_off_guard,
            turbo_off_guard=self._turbo_off_guard,
        )
        for key, value in self.to_dict().items():
            setattr(copy, f"_{key}", value)
        return copy

    def diff(self, other: DeviceState) -> DeviceOptions:
        """Return the options that would turn this state into ``other``."""
        mine = self.to_dict()
        theirs = other.to_dict()
        changes: dict[str, Any] = {
            option: theirs[field]
            for field, option in _OPTION_KEYS.items()
            if mine[field] != theirs[field]
        }
        return changes  # type: ignore[return-value]

    def _within(self, started_at: float | None, window: float, now: float) -> bool:
        return started_at is not None and now - started_at < window

    def _notify_if_changed(self, before: dict[str, Any], source: str) -> bool:
        after = self.to_dict()
        changes = {
            key: f"{before[key]}->{value}"
            for key, value in after.items()
            if before[key] != value
        }
        if not changes:
            return False
        log_debug(LOGGER, "state_changed", source=source, changes=changes)
        self._emit(EVENT_STATE_CHANGED, self)
        return True

    def update_from_device(self, raw: RawDeviceStatus) -> bool:  # noqa: PLR0912
        """
        Reconcile with a device report.

        Transient echoes right after a local power-off, sleep-on or turbo-off
        command are ignored until their window passes. Returns whether any
        value changed.
        """
        now = self._clock()
        before = self.to_dict()

        power = PowerState.ON if raw.power else PowerState.OFF
        if (
            power == PowerState.ON
            and self._power == PowerState.OFF
            and self._within(self._power_off_at, self._power_off_guard, now)
        ):
            log_debug(LOGGER, "Ignoring transient power on echo after power off")
        else:
            self._power = power

        self._operation_mode = raw.operation_mode

        target = fahrenheit_to_celsius(raw.target_temp)
        if math.isfinite(target):
            self._target_temperature = clamp_target_temperature(target)
        current = fahrenheit_to_celsius(raw.current_temp)
        if math.isfinite(current):
            self._current_temperature = current
        if raw.outdoor_temp is not None:
            if OUTDOOR_TEMP_MIN_F < raw.outdoor_temp < OUTDOOR_TEMP_MAX_F:
                self._outdoor_temperature = fahrenheit_to_celsius(raw.outdoor_temp)
            else:
                self._outdoor_temperature = None

        self._fan_speed = raw.fan_speed

        if raw.swing_horizontal is not None or raw.swing_vertical is not None:
            horizontal = raw.swing_horizontal
            if horizontal is None:
                horizontal = self._swing_mode in (SwingMode.HORIZONTAL, SwingMode.BOTH)
            vertical = raw.swing_vertical
            if vertical is None:
                vertical = self._swing_mode in (SwingMode.VERTICAL, SwingMode.BOTH)
            self._swing_mode = swing_from_flags(
                horizontal=horizontal, vertical=vertical
            )

        if raw.eco is not None:
            self._eco_mode = PowerState.ON if raw.eco else PowerState.OFF
        if raw.display is not None:
            self._display_mode = PowerState.ON if raw.display else PowerState.OFF
        if raw.beep is not None:
            self._beep_mode = PowerState.ON if raw.beep else PowerState.OFF
        if raw.turbo is not None:
            self._turbo_mode = PowerState.ON if raw.turbo else PowerState.OFF
        # Units report Auto or High while turbo runs
        if self._turbo_mode == PowerState.ON:
            self._fan_speed = FanSpeed.TURBO

        if raw.sleep_mode is not None:
            sleep = sleep_state_from_token(raw.sleep_mode)
            if (
                sleep == SleepModeState.OFF
                and self._sleep_mode == SleepModeState.ON
                and self._within(self._sleep_on_at, self._sleep_debounce, now)
            ):
                log_debug(
                    LOGGER,
                    "Ignoring intermediate off state for sleep mode during transition",
                    token=raw.sleep_mode,
                )
            elif (
                sleep == SleepModeState.ON
                and self._sleep_mode == SleepModeState.OFF
                and self._within(self._turbo_off_at, self._turbo_off_guard, now)
            ):
                log_debug(
                    LOGGER,
                    "Ignoring spurious sleep on echo after turbo off",
                    token=raw.sleep_mode,
                )
            else:
                self._sleep_mode = sleep

        return self._notify_if_changed(before, "device")

    def update_from_options(self, options: DeviceOptions) -> bool:  # noqa: PLR0912
        """
        Apply local intent directly, bypassing the transition guards.

        Related settings are harmonized the way the unit resolves them: turbo
        and sleep exclude each other, a Turbo fan means turbo is on, and
        powering off clears both. Returns whether any value changed.
        """
        now = self._clock()
        before = self.to_dict()

        if "power" in options:
            self._power = PowerState(options["power"])
            if self._power == PowerState.OFF:
                self._power_off_at = now
        if "mode" in options:
            self._operation_mode = OperationMode(options["mode"])
        if "temp" in options and math.isfinite(options["temp"]):
            self._target_temperature = clamp_target_temperature(options["temp"])
        if "swing_mode" in options:
            self._swing_mode = SwingMode(options["swing_mode"])
        if "eco" in options:
            self._eco_mode = PowerState(options["eco"])
        if "display" in options:
            self._display_mode = PowerState(options["display"])
        if "beep" in options:
            self._beep_mode = PowerState(options["beep"])

        fan_speed = options.get("fan_speed")
        turbo = options.get("turbo")
        sleep = options.get("sleep")
        if fan_speed is not None:
            self._fan_speed = FanSpeed(fan_speed)
        if turbo is not None:
            self._turbo_mode = PowerState(turbo)
            if self._turbo_mode == PowerState.OFF:
                self._turbo_off_at = now
        if sleep is not None:
            self._sleep_mode = sleep_state_from_token(sleep)
            if self._sleep_mode == SleepModeState.ON:
                self._sleep_on_at = now

        sleep_requested = self._sleep_mode == SleepModeState.ON and sleep is not None
        turbo_requested = turbo == PowerState.ON or (
            fan_speed == FanSpeed.TURBO and turbo is None
        )
        if turbo_requested:
            self._turbo_mode = PowerState.ON
            self._fan_speed = FanSpeed.TURBO
            self._sleep_mode = SleepModeState.OFF
        else:
            if turbo == PowerState.OFF or sleep_requested:
                self._turbo_mode = PowerState.OFF
                if self._fan_speed == FanSpeed.TURBO:
                    self._fan_speed = FanSpeed.AUTO
            if fan_speed is not None and fan_speed != FanSpeed.TURBO:
                self._turbo_mode = PowerState.OFF

        if self._power == PowerState.OFF and "power" in options:
            self._turbo_mode = PowerState.OFF
            self._sleep_mode = SleepModeState.OFF

        return self._notify_if_changed(before, "options")

    def set_power(self, power: PowerState) -> bool:
        """Set power."""
        return self.update_from_options({"power": power})

    def set_operation_mode(self, mode: OperationMode) -> bool:
        """Set operation mode."""
        return self.update_from_options({"mode": mode})

    def set_target_temperature(self, temperature: float) -> bool:
        """Set the set point in Celsius; clamped to the device range."""
        return self.update_from_options({"temp": temperature})

    def set_fan_speed(self, fan_speed: FanSpeed) -> bool:
        """Set fan level."""
        return self.update_from_options({"fan_speed": fan_speed})

    def set_swing_mode(self, swing_mode: SwingMode) -> bool:
        """Set louver swing."""
        return self.update_from_options({"swing_mode": swing_mode})

    def set_sleep_mode(self, sleep: SleepModeState) -> bool:
        """Set sleep profile."""
        return self.update_from_options({"sleep": sleep})

    def set_turbo_mode(self, turbo: PowerState) -> bool:
        """Set turbo."""
        return self.update_from_options({"turbo": turbo})

    def set_eco_mode(self, eco: PowerState) -> bool:
        """Set ECO."""
        return self.update_from_options({"eco": eco})

    def set_display_mode(self, display: PowerState) -> bool:
        """Set display."""
        return self.update_from_options({"display": display})

    def set_beep_mode(self, beep: PowerState) -> bool:
        """Set beep."""
        return self.update_from_options({"beep": beep})
