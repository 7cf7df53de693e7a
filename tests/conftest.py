"""Pytest configuration and fixtures for TFIAC tests."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest
import pytest_asyncio

from custom_components.tfiac.const import FanSpeed, OperationMode
from custom_components.tfiac.models import RawDeviceStatus

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

DEFAULT_STATUS_TAGS: dict[str, str] = {
    "IndoorTemp": "77",
    "SetTemp": "72",
    "BaseMode": "cool",
    "WindSpeed": "Low",
    "TurnOn": "on",
    "WindDirection_H": "off",
    "WindDirection_V": "on",
    "Opt_display": "on",
    "Opt_ECO": "off",
    "Opt_super": "off",
    "Opt_sleepMode": "off",
    "OutdoorTemp": "86",
    "DeviceName": "Living Room",
    "WifiVer": "1.2.3",
}

ACK_OK = (
    '<msg msgid="ACKSetMessage" type="Control" seq="1">'
    "<ACKSetMessage><Return>ok</Return></ACKSetMessage></msg>"
)


def build_status_xml(**tags: str | None) -> str:
    """Build a status response; a tag set to None is left out."""
    values = {**DEFAULT_STATUS_TAGS, **tags}
    body = "".join(
        f"<{tag}>{value}</{tag}>" for tag, value in values.items() if value is not None
    )
    return (
        '<msg msgid="statusUpdateMsg" type="Notify" seq="1">'
        f"<statusUpdateMsg>{body}</statusUpdateMsg></msg>"
    )


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        """Start the clock at ``start`` seconds."""
        self.now = start

    def __call__(self) -> float:
        """Return the current time."""
        return self.now

    def advance(self, seconds: float) -> None:
        """Move the clock forward."""
        self.now += seconds


class FakeDevice(asyncio.DatagramProtocol):
    """UDP endpoint answering like an indoor unit."""

    def __init__(self) -> None:
        """Answer status requests with the default status."""
        self.requests: list[str] = []
        self.status_xml = build_status_xml()
        self.ack_xml = ACK_OK
        self.respond = True
        self.port = 0
        self.transport: asyncio.DatagramTransport | None = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        """Keep the transport for replies."""
        self.transport = transport  # type: ignore[assignment]

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        """Record the request and answer it."""
        message = data.decode("utf-8")
        self.requests.append(message)
        if not self.respond or self.transport is None:
            return
        reply = self.status_xml if "SyncStatusReq" in message else self.ack_xml
        self.transport.sendto(reply.encode("utf-8"), addr)


@pytest_asyncio.fixture
async def fake_device() -> AsyncIterator[FakeDevice]:
    """Fake unit listening on an ephemeral localhost port."""
    loop = asyncio.get_running_loop()
    transport, device = await loop.create_datagram_endpoint(
        FakeDevice, local_addr=("127.0.0.1", 0)
    )
    device.port = transport.get_extra_info("sockname")[1]
    yield device
    transport.close()


@pytest.fixture
def clock() -> FakeClock:
    """Fixture providing a manual clock."""
    return FakeClock()


@pytest.fixture
def status_xml() -> Callable[..., str]:
    """Fixture providing the status response builder."""
    return build_status_xml


@pytest.fixture
def make_raw() -> Callable[..., RawDeviceStatus]:
    """Fixture building a RawDeviceStatus matching a fresh DeviceState."""

    def _make_raw(**overrides: object) -> RawDeviceStatus:
        values: dict[str, object] = {
            "power": False,
            "operation_mode": OperationMode.AUTO,
            "target_temp": 71.6,
            "current_temp": 68.0,
            "fan_speed": FanSpeed.AUTO,
        }
        values.update(overrides)
        return RawDeviceStatus(**values)  # type: ignore[arg-type]

    return _make_raw
