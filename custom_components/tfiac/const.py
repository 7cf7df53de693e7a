"""Constants for tfiac."""

from enum import StrEnum
from logging import Logger, getLogger

LOGGER: Logger = getLogger(__package__)

DOMAIN = "tfiac"

# UDP port the indoor unit listens on
UDP_COMMAND_PORT = 7777
UDP_BUFFER_SIZE = 4096

# Default values
DEFAULT_NAME = "TFIAC AC"
DEFAULT_POLL_INTERVAL = 30
DEFAULT_MIN_COMMAND_DELAY_MS = 500

# Config keys
CONF_POLL_INTERVAL = "poll_interval"
CONF_MIN_COMMAND_DELAY = "min_command_delay"

# Client timing (seconds)
RESPONSE_TIMEOUT = 3.0
SEND_MAX_RETRIES = 3
SEND_RETRY_DELAY = 0.5
THROTTLE_SHORT_WAIT = 1.0
THROTTLE_LONG_WAIT = 2.0

# Command queue timing
QUEUE_MAX_RETRIES = 2
QUEUE_RETRY_DELAY = 1.0

# Poll scheduling
QUICK_REFRESH_DELAY = 2.0
MAX_CONSECUTIVE_FAILED_POLLS = 3
DEGRADED_POLL_FACTOR = 4

# Transition guards
SLEEP_DEBOUNCE_SECONDS = 5.0
POWER_OFF_GUARD_SECONDS = 5.0
TURBO_OFF_GUARD_SECONDS = 5.0

# Device range, Celsius
MIN_TARGET_TEMP = 16.0
MAX_TARGET_TEMP = 30.0
DEFAULT_TARGET_TEMP = 22.0
DEFAULT_CURRENT_TEMP = 20.0

# Outdoor probe reports values like 176 when disconnected
OUTDOOR_TEMP_MIN_F = -40
OUTDOOR_TEMP_MAX_F = 160

# Events
EVENT_STATUS = "status"
EVENT_STATE_CHANGED = "state_changed"
EVENT_EXECUTED = "executed"
EVENT_RETRY = "retry"
EVENT_MAX_RETRIES_REACHED = "max_retries_reached"
EVENT_ERROR = "error"

# Swing/Boolean wire values
VALUE_ON = "on"
VALUE_OFF = "off"


class PowerState(StrEnum):
    """Power state of the unit or of a single option."""

    ON = "on"
    OFF = "off"


class OperationMode(StrEnum):
    """Canonical operation modes."""

    COOL = "cool"
    HEAT = "heat"
    AUTO = "auto"
    FAN_ONLY = "fan_only"
    DRY = "dry"


class FanSpeed(StrEnum):
    """Named fan levels, values are the wire literals."""

    AUTO = "Auto"
    SILENT = "Silent"
    LOW = "Low"
    MEDIUM_LOW = "MediumLow"
    MEDIUM = "Medium"
    MEDIUM_HIGH = "MediumHigh"
    HIGH = "High"
    TURBO = "Turbo"


FAN_SPEED_PERCENT: dict[FanSpeed, int] = {
    FanSpeed.AUTO: 0,
    FanSpeed.SILENT: 15,
    FanSpeed.LOW: 30,
    FanSpeed.MEDIUM_LOW: 45,
    FanSpeed.MEDIUM: 60,
    FanSpeed.MEDIUM_HIGH: 75,
    FanSpeed.HIGH: 100,
    FanSpeed.TURBO: 100,
}


class SwingMode(StrEnum):
    """Louver swing combinations."""

    OFF = "Off"
    VERTICAL = "Vertical"
    HORIZONTAL = "Horizontal"
    BOTH = "Both"


class SleepModeState(StrEnum):
    """Sleep profile tokens; the device reports "on" as a profile string."""

    OFF = "off"
    ON = "sleepMode1:0:0:0:0:0:0:0:0:0:0:0:0:0:0:0:0:0:0:0:0:0:0:0"
