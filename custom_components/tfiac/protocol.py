"""XML codec for the TFIAC UDP control protocol."""

from __future__ import annotations

import math
import xml.etree.ElementTree as ET
from typing import TYPE_CHECKING
from xml.sax.saxutils import escape

from homeassistant.const import UnitOfTemperature
from homeassistant.util.unit_conversion import TemperatureConverter

from .const import (
    FAN_SPEED_PERCENT,
    VALUE_OFF,
    VALUE_ON,
    FanSpeed,
    OperationMode,
    PowerState,
    SleepModeState,
    SwingMode,
)
from .exceptions import TfiacProtocolError
from .models import RawDeviceStatus

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .models import DeviceOptions

MSG_SET = "SetMessage"
MSG_ACK = "ACKSetMessage"
MSG_STATUS = "statusUpdateMsg"
MSG_STATUS_REQUEST = "SyncStatusReq"

TAG_POWER = "TurnOn"
TAG_MODE = "BaseMode"
TAG_SET_TEMP = "SetTemp"
TAG_INDOOR_TEMP = "IndoorTemp"
TAG_OUTDOOR_TEMP = "OutdoorTemp"
TAG_FAN = "WindSpeed"
TAG_SWING_H = "WindDirection_H"
TAG_SWING_V = "WindDirection_V"
TAG_DISPLAY = "Opt_display"
TAG_ECO = "Opt_ECO"
TAG_BEEP = "Opt_beep"
TAG_TURBO = "Opt_super"
TAG_SLEEP = "Opt_sleepMode"
TAG_RETURN = "Return"

MODE_TO_WIRE: dict[OperationMode, str] = {
    OperationMode.COOL: "cool",
    OperationMode.HEAT: "heat",
    OperationMode.AUTO: "selfFeel",
    OperationMode.FAN_ONLY: "fan",
    OperationMode.DRY: "dehumi",
}
WIRE_TO_MODE: dict[str, OperationMode] = {
    "cool": OperationMode.COOL,
    "heat": OperationMode.HEAT,
    "selffeel": OperationMode.AUTO,
    "auto": OperationMode.AUTO,
    "fan": OperationMode.FAN_ONLY,
    "fan_only": OperationMode.FAN_ONLY,
    "dehumi": OperationMode.DRY,
    "dry": OperationMode.DRY,
}
FAN_LITERALS: dict[str, FanSpeed] = {speed.value.lower(): speed for speed in FanSpeed}
FAN_LITERALS["middle"] = FanSpeed.MEDIUM

# Auto and Turbo only match exactly; everything else goes by distance
_NEAREST_FAN_LEVELS = tuple(
    speed for speed in FanSpeed if speed not in (FanSpeed.AUTO, FanSpeed.TURBO)
)

# Settings that make no sense with the unit off; sending them powers it on
_OPERATIONAL_OPTIONS = ("mode", "temp", "fan_speed", "swing_mode", "sleep", "turbo")

_TRUE_TOKENS = {"on", "1", "true"}
_FALSE_TOKENS = {"off", "0", "false"}


def fahrenheit_to_celsius(value: float) -> float:
    """Convert a device temperature to Celsius, one decimal."""
    return round(
        TemperatureConverter.convert(
            value, UnitOfTemperature.FAHRENHEIT, UnitOfTemperature.CELSIUS
        ),
        1,
    )


def celsius_to_fahrenheit(value: float) -> int:
    """Convert Celsius to the integer Fahrenheit the device expects."""
    return round(
        TemperatureConverter.convert(
            value, UnitOfTemperature.CELSIUS, UnitOfTemperature.FAHRENHEIT
        )
    )


def on_off(*, enabled: bool) -> str:
    """Render a flag as the on/off wire token."""
    return VALUE_ON if enabled else VALUE_OFF


def decode_fan_speed(token: str) -> tuple[FanSpeed, bool]:
    """
    Map a WindSpeed token to a named level.

    Returns the level and whether turbo can be inferred from it. Numeric
    tokens pick the nearest level; on equal distance the faster one wins.
    """
    value = token.strip()
    literal = FAN_LITERALS.get(value.lower())
    if literal is not None:
        return literal, literal is FanSpeed.TURBO

    try:
        percent = float(value)
    except ValueError as exception:
        msg = f"Unknown {TAG_FAN} value: {token!r}"
        raise TfiacProtocolError(msg) from exception
    if not math.isfinite(percent):
        msg = f"Invalid {TAG_FAN} value: {token!r}"
        raise TfiacProtocolError(msg)

    if percent == FAN_SPEED_PERCENT[FanSpeed.AUTO]:
        return FanSpeed.AUTO, False
    if percent == FAN_SPEED_PERCENT[FanSpeed.TURBO]:
        return FanSpeed.TURBO, True

    speed = min(
        _NEAREST_FAN_LEVELS,
        key=lambda level: (
            abs(FAN_SPEED_PERCENT[level] - percent),
            -FAN_SPEED_PERCENT[level],
        ),
    )
    return speed, False


def build_status_request(seq: int) -> str:
    """Build a SyncStatusReq envelope."""
    return (
        f'<msg msgid="{MSG_STATUS_REQUEST}" type="Control" seq="{seq}">'
        f"<{MSG_STATUS_REQUEST}></{MSG_STATUS_REQUEST}>"
        f"</msg>"
    )


def build_set_message(seq: int, tags: Mapping[str, str]) -> str:
    """Build a SetMessage envelope carrying one or more option tags in order."""
    if not tags:
        msg = "SetMessage needs at least one option"
        raise ValueError(msg)
    body = "".join(f"<{tag}>{escape(value)}</{tag}>" for tag, value in tags.items())
    return (
        f'<msg msgid="{MSG_SET}" type="Control" seq="{seq}">'
        f"<{MSG_SET}>{body}</{MSG_SET}>"
        f"</msg>"
    )


def encode_options(
    options: DeviceOptions, current: RawDeviceStatus | None = None
) -> dict[str, str]:
    """
    Turn an option set into the ordered SetMessage tags.

    Power-off only carries the last known mode and set point so the message
    stays self-consistent. Turbo wins over sleep when both are requested.
    """
    tags: dict[str, str] = {}

    if options.get("power") == PowerState.OFF:
        tags[TAG_POWER] = VALUE_OFF
        if current is not None:
            tags[TAG_MODE] = MODE_TO_WIRE[current.operation_mode]
            tags[TAG_SET_TEMP] = str(round(current.target_temp))
        return tags

    turbo = options.get("turbo")
    sleep = options.get("sleep")
    fan_speed = options.get("fan_speed")
    if fan_speed == FanSpeed.TURBO and turbo is None:
        turbo = PowerState.ON
    if turbo == PowerState.ON:
        fan_speed = FanSpeed.TURBO
        sleep = SleepModeState.OFF
    elif sleep == SleepModeState.ON:
        turbo = PowerState.OFF

    if "power" in options:
        tags[TAG_POWER] = VALUE_ON
    elif (
        current is not None
        and not current.power
        and any(key in options for key in _OPERATIONAL_OPTIONS)
    ):
        tags[TAG_POWER] = VALUE_ON

    if "mode" in options:
        tags[TAG_MODE] = MODE_TO_WIRE[options["mode"]]
    if "temp" in options:
        tags[TAG_SET_TEMP] = str(celsius_to_fahrenheit(options["temp"]))
    if fan_speed is not None:
        tags[TAG_FAN] = FanSpeed(fan_speed).value
    if "swing_mode" in options:
        swing = options["swing_mode"]
        tags[TAG_SWING_H] = on_off(
            enabled=swing in (SwingMode.HORIZONTAL, SwingMode.BOTH)
        )
        tags[TAG_SWING_V] = on_off(
            enabled=swing in (SwingMode.VERTICAL, SwingMode.BOTH)
        )
    if "display" in options:
        tags[TAG_DISPLAY] = PowerState(options["display"]).value
    if "eco" in options:
        tags[TAG_ECO] = PowerState(options["eco"]).value
    if "beep" in options:
        tags[TAG_BEEP] = PowerState(options["beep"]).value
    if turbo is not None:
        tags[TAG_TURBO] = PowerState(turbo).value
    if sleep is not None:
        tags[TAG_SLEEP] = SleepModeState(sleep).value
    return tags


def parse_message(message: str) -> ET.Element:
    """Parse a datagram into its root element."""
    if not message.strip():
        msg = "Empty response from device"
        raise TfiacProtocolError(msg)
    try:
        # Local network only, same trust model as the rest of the protocol
        return ET.fromstring(message)  # noqa: S314
    except ET.ParseError as exception:
        msg = f"Malformed XML from device: {exception}"
        raise TfiacProtocolError(msg) from exception


def parse_ack(message: str) -> str | None:
    """Return the Return value of an ACKSetMessage, None for other replies."""
    root = parse_message(message)
    ack = root if root.tag == MSG_ACK else root.find(MSG_ACK)
    if ack is None:
        return None
    return ack.findtext(TAG_RETURN)


def _find(parent: ET.Element, *tags: str) -> ET.Element | None:
    """Find the first tag present, trying PascalCase and camelCase spellings."""
    for tag in tags:
        for name in (tag, tag[0].lower() + tag[1:]):
            node = parent.find(name)
            if node is not None:
                return node
    return None


def _get_node_value(node: ET.Element | None) -> str | None:
    """Extract value from node, handling both <tag value='x'> and <tag>x</tag>."""
    if node is None:
        return None
    val = node.get("value")
    if val is None:
        val = node.text
    if val is None:
        return None
    val = val.strip()
    return val or None


def _require(parent: ET.Element, *tags: str) -> str:
    val = _get_node_value(_find(parent, *tags))
    if val is None:
        msg = f"Status is missing required field {tags[0]}"
        raise TfiacProtocolError(msg)
    return val


def _to_number(tag: str, val: str) -> float:
    try:
        number = float(val)
    except ValueError as exception:
        msg = f"Invalid {tag} value: {val!r}"
        raise TfiacProtocolError(msg) from exception
    if not math.isfinite(number):
        msg = f"Invalid {tag} value: {val!r}"
        raise TfiacProtocolError(msg)
    return number


def _to_bool(tag: str, val: str) -> bool:
    token = val.lower()
    if token in _TRUE_TOKENS:
        return True
    if token in _FALSE_TOKENS:
        return False
    msg = f"Invalid {tag} value: {val!r}"
    raise TfiacProtocolError(msg)


def _optional_bool(parent: ET.Element, *tags: str) -> bool | None:
    val = _get_node_value(_find(parent, *tags))
    return None if val is None else _to_bool(tags[0], val)


def _optional_number(parent: ET.Element, *tags: str) -> float | None:
    val = _get_node_value(_find(parent, *tags))
    return None if val is None else _to_number(tags[0], val)


def parse_status(message: str) -> RawDeviceStatus:
    """Parse a statusUpdateMsg response into a RawDeviceStatus."""
    root = parse_message(message)
    if root.tag in (MSG_STATUS, "StatusUpdateMsg"):
        status_msg = root
    else:
        status_msg = _find(root, "StatusUpdateMsg")
    if status_msg is None:
        msg = f"Response has no {MSG_STATUS}: <{root.tag}>"
        raise TfiacProtocolError(msg)

    mode_val = _require(status_msg, TAG_MODE)
    operation_mode = WIRE_TO_MODE.get(mode_val.lower())
    if operation_mode is None:
        msg = f"Unknown {TAG_MODE} value: {mode_val!r}"
        raise TfiacProtocolError(msg)

    fan_speed, turbo_inferred = decode_fan_speed(_require(status_msg, TAG_FAN))
    turbo = _optional_bool(status_msg, TAG_TURBO, "Opt_turbo")
    if turbo is None and turbo_inferred:
        turbo = True

    return RawDeviceStatus(
        power=_to_bool(TAG_POWER, _require(status_msg, TAG_POWER)),
        operation_mode=operation_mode,
        target_temp=_to_number(TAG_SET_TEMP, _require(status_msg, TAG_SET_TEMP)),
        current_temp=_to_number(
            TAG_INDOOR_TEMP, _require(status_msg, TAG_INDOOR_TEMP, "InTemp")
        ),
        fan_speed=fan_speed,
        outdoor_temp=_optional_number(status_msg, TAG_OUTDOOR_TEMP, "OutTemp"),
        swing_horizontal=_optional_bool(status_msg, TAG_SWING_H),
        swing_vertical=_optional_bool(status_msg, TAG_SWING_V),
        display=_optional_bool(status_msg, TAG_DISPLAY),
        beep=_optional_bool(status_msg, TAG_BEEP, "BeepEnable"),
        eco=_optional_bool(status_msg, TAG_ECO),
        turbo=turbo,
        sleep_mode=_get_node_value(_find(status_msg, TAG_SLEEP)),
        device_name=_get_node_value(_find(status_msg, "DeviceName")),
        wifi_version=_get_node_value(_find(status_msg, "WifiVer")),
    )
