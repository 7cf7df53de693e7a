"""UDP API Client for TFIAC air conditioners."""

from __future__ import annotations

import asyncio
import contextlib
import socket
import time
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from .const import (
    EVENT_STATUS,
    LOGGER,
    RESPONSE_TIMEOUT,
    SEND_MAX_RETRIES,
    SEND_RETRY_DELAY,
    THROTTLE_LONG_WAIT,
    THROTTLE_SHORT_WAIT,
    UDP_BUFFER_SIZE,
    UDP_COMMAND_PORT,
    VALUE_ON,
    FanSpeed,
    OperationMode,
    PowerState,
    SleepModeState,
    SwingMode,
)
from .exceptions import (
    TfiacApiClientCommunicationError,
    TfiacApiClientError,
    TfiacProtocolError,
)
from .listeners import ListenerRegistry
from .log_utils import log_debug, log_info, log_warning
from .models import DiscoveredDevice
from .protocol import (
    TAG_BEEP,
    TAG_DISPLAY,
    TAG_ECO,
    TAG_FAN,
    TAG_MODE,
    TAG_POWER,
    TAG_SET_TEMP,
    TAG_SLEEP,
    TAG_SWING_H,
    TAG_SWING_V,
    TAG_TURBO,
    WIRE_TO_MODE,
    build_set_message,
    build_status_request,
    encode_options,
    parse_ack,
    parse_status,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from .models import DeviceOptions, RawDeviceStatus

__all__ = [
    "TfiacApiClient",
    "TfiacApiClientCommunicationError",
    "TfiacApiClientError",
    "TfiacProtocolError",
    "async_discover_devices",
]

# Cached-status field updated by each boolean SetMessage tag
_FLAG_FIELDS = {
    TAG_POWER: "power",
    TAG_SWING_H: "swing_horizontal",
    TAG_SWING_V: "swing_vertical",
    TAG_DISPLAY: "display",
    TAG_ECO: "eco",
    TAG_BEEP: "beep",
    TAG_TURBO: "turbo",
}


class TfiacApiClient(ListenerRegistry):
    """Request/response client for one unit.

    Every exchange opens its own UDP socket, sends one datagram and waits for
    the reply. Exchanges are serialized so replies can never be mismatched.
    Emits ``status`` with the cached RawDeviceStatus after every successful
    read or write.
    """

    def __init__(  # noqa: PLR0913
        self,
        host: str,
        port: int = UDP_COMMAND_PORT,
        *,
        timeout: float = RESPONSE_TIMEOUT,
        max_retries: int = SEND_MAX_RETRIES,
        retry_delay: float = SEND_RETRY_DELAY,
        short_wait: float = THROTTLE_SHORT_WAIT,
        long_wait: float = THROTTLE_LONG_WAIT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the API client."""
        super().__init__()
        self._host = host
        self._port = port
        self._timeout = timeout
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._short_wait = short_wait
        self._long_wait = long_wait
        self._clock = clock

        self._lock = asyncio.Lock()
        self._closed = False

        self._sequence = 0
        self._last_seq = 0
        self._last_update = 0.0
        self._last_status: RawDeviceStatus | None = None

    @property
    def host(self) -> str:
        """Address of the unit."""
        return self._host

    @property
    def port(self) -> int:
        """UDP port of the unit."""
        return self._port

    @property
    def closed(self) -> bool:
        """Whether async_cleanup has run."""
        return self._closed

    def get_last_status(self) -> RawDeviceStatus | None:
        """Get the last received (or optimistically merged) status."""
        return self._last_status

    def _ensure_open(self) -> None:
        if self._closed:
            msg = f"Client for {self._host}:{self._port} is closed"
            raise TfiacApiClientError(msg)

    def _next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    async def _async_exchange(self, message: str) -> str:
        """Send one datagram and wait for the reply."""
        loop = asyncio.get_running_loop()
        async with self._lock:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            try:
                sock.setblocking(False)  # noqa: FBT003
                log_debug(
                    LOGGER,
                    "udp_send",
                    host=self._host,
                    port=self._port,
                    message=message,
                )
                await loop.sock_sendto(
                    sock, message.encode("utf-8"), (self._host, self._port)
                )
                async with asyncio.timeout(self._timeout):
                    data, addr = await loop.sock_recvfrom(sock, UDP_BUFFER_SIZE)
            finally:
                sock.close()

        LOGGER.debug("UDP recv: %d bytes from %s:%d", len(data), addr[0], addr[1])
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as exception:
            msg = f"Error decoding response from {self._host}: {exception}"
            raise TfiacProtocolError(msg) from exception

    async def _async_send_with_retry(self, message: str) -> str:
        """
        Exchange a message, retrying transport failures.

        Makes at most ``max_retries + 1`` attempts, waiting
        ``retry_delay * attempt`` between them. Protocol errors surface
        immediately.
        """
        attempts = self._max_retries + 1
        last_error: OSError | None = None
        for attempt in range(1, attempts + 1):
            try:
                return await self._async_exchange(message)
            except OSError as exception:  # TimeoutError is an OSError
                last_error = exception
                if attempt == attempts:
                    break
                log_warning(
                    LOGGER,
                    "udp_retry",
                    host=self._host,
                    attempt=attempt,
                    max_attempts=attempts,
                    error=repr(exception),
                )
                await asyncio.sleep(self._retry_delay * attempt)

        msg = (
            f"No response from {self._host}:{self._port} "
            f"after {attempts} attempts: {last_error!r}"
        )
        raise TfiacApiClientCommunicationError(msg) from last_error

    async def async_update_state(self, *, force: bool = False) -> RawDeviceStatus:
        """
        Read the unit status.

        Returns the cached status while inside the throttle window unless
        forced. The window is short until the first command succeeds.
        """
        self._ensure_open()
        if not force and self._last_status is not None:
            window = self._short_wait if self._last_seq == 0 else self._long_wait
            age = self._clock() - self._last_update
            if age < window:
                log_debug(LOGGER, "status_throttled", host=self._host, age=age)
                return self._last_status

        response = await self._async_send_with_retry(
            build_status_request(self._next_sequence())
        )
        status = parse_status(response)
        self._last_status = status
        self._last_update = self._clock()
        log_debug(LOGGER, "status_received", host=self._host, status=status)
        self._emit(EVENT_STATUS, status)
        return status

    async def async_set_device_options(self, options: DeviceOptions) -> None:
        """Send one SetMessage carrying every option and merge the intent."""
        self._ensure_open()
        if not options:
            return
        if self._last_status is None:
            await self.async_update_state(force=True)

        tags = encode_options(options, self._last_status)
        seq = self._next_sequence()
        log_info(LOGGER, "set_options", host=self._host, seq=seq, options=tags)
        response = await self._async_send_with_retry(build_set_message(seq, tags))

        result = parse_ack(response)
        if result is not None and result.lower() == "error":
            log_warning(LOGGER, "set_options_rejected", host=self._host, seq=seq)

        self._last_seq = seq
        self._merge_intent(tags)
        self._emit(EVENT_STATUS, self._last_status)

    def _merge_intent(self, tags: Mapping[str, str]) -> None:
        """Fold sent tags into the cached status, in wire units."""
        if self._last_status is None:
            return
        changes: dict[str, Any] = {
            field: tags[tag] == VALUE_ON
            for tag, field in _FLAG_FIELDS.items()
            if tag in tags
        }
        if TAG_MODE in tags:
            changes["operation_mode"] = WIRE_TO_MODE[tags[TAG_MODE].lower()]
        if TAG_SET_TEMP in tags:
            changes["target_temp"] = float(tags[TAG_SET_TEMP])
        if TAG_FAN in tags:
            changes["fan_speed"] = FanSpeed(tags[TAG_FAN])
        if TAG_SLEEP in tags:
            changes["sleep_mode"] = tags[TAG_SLEEP]
        self._last_status = replace(self._last_status, **changes)

    async def async_set_power(self, power: PowerState) -> None:
        """Set power on/off."""
        await self.async_set_device_options({"power": power})

    async def async_turn_on(self) -> None:
        """Turn the unit on."""
        await self.async_set_power(PowerState.ON)

    async def async_turn_off(self) -> None:
        """Turn the unit off."""
        await self.async_set_power(PowerState.OFF)

    async def async_set_operation_mode(self, mode: OperationMode) -> None:
        """Set operation mode."""
        await self.async_set_device_options({"mode": mode})

    async def async_set_temperature(self, temperature: float) -> None:
        """Set target temperature (Celsius, sent as Fahrenheit)."""
        await self.async_set_device_options({"temp": temperature})

    async def async_set_swing_mode(self, swing_mode: SwingMode) -> None:
        """Set both louvers in one message."""
        await self.async_set_device_options({"swing_mode": swing_mode})

    async def async_set_fan_speed(self, fan_speed: FanSpeed) -> None:
        """Set fan speed."""
        await self.async_set_device_options({"fan_speed": fan_speed})

    async def async_set_display(self, state: PowerState) -> None:
        """Set display on/off."""
        await self.async_set_device_options({"display": state})

    async def async_set_eco(self, state: PowerState) -> None:
        """Set ECO mode."""
        await self.async_set_device_options({"eco": state})

    async def async_set_beep(self, state: PowerState) -> None:
        """Set beep on/off."""
        await self.async_set_device_options({"beep": state})

    async def async_set_sleep(self, state: SleepModeState) -> None:
        """Set sleep mode."""
        await self.async_set_device_options({"sleep": state})

    async def async_set_turbo(self, state: PowerState) -> None:
        """Set turbo (super) mode."""
        await self.async_set_device_options({"turbo": state})

    async def async_set_fan_and_sleep(
        self, fan_speed: FanSpeed, sleep: SleepModeState
    ) -> None:
        """Set fan speed and sleep profile together."""
        await self.async_set_device_options({"fan_speed": fan_speed, "sleep": sleep})

    async def async_set_sleep_and_turbo(
        self, sleep: SleepModeState, turbo: PowerState
    ) -> None:
        """Set sleep and turbo together; turbo on wins."""
        await self.async_set_device_options({"sleep": sleep, "turbo": turbo})

    async def async_cleanup(self) -> None:
        """Close the client; safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        # Sockets only live inside an exchange, which closes its own
        self.remove_all_listeners()
        log_info(LOGGER, "client_closed", host=self._host, port=self._port)


async def async_discover_devices(
    port: int = UDP_COMMAND_PORT,
    timeout: float = RESPONSE_TIMEOUT,
    broadcast_address: str = "<broadcast>",
) -> list[DiscoveredDevice]:
    """Broadcast a status request and collect every unit that answers."""
    loop = asyncio.get_running_loop()
    devices: dict[str, DiscoveredDevice] = {}

    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        sock.setblocking(False)  # noqa: FBT003
        await loop.sock_sendto(
            sock, build_status_request(1).encode("utf-8"), (broadcast_address, port)
        )
        with contextlib.suppress(TimeoutError):
            async with asyncio.timeout(timeout):
                while True:
                    data, addr = await loop.sock_recvfrom(sock, UDP_BUFFER_SIZE)
                    try:
                        status = parse_status(data.decode("utf-8"))
                    except (UnicodeDecodeError, TfiacProtocolError) as exception:
                        log_debug(
                            LOGGER,
                            "discovery_reply_ignored",
                            host=addr[0],
                            error=str(exception),
                        )
                        continue
                    if addr[0] not in devices:
                        devices[addr[0]] = DiscoveredDevice(
                            host=addr[0], port=port, name=status.device_name
                        )
    except OSError as exception:
        msg = f"Discovery broadcast failed: {exception}"
        raise TfiacApiClientCommunicationError(msg) from exception
    finally:
        sock.close()

    log_info(LOGGER, "discovery_finished", found=len(devices))
    return list(devices.values())
