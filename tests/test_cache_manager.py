"""Tests for the cache manager and its registry."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio

from custom_components.tfiac.cache_manager import (
    CacheManager,
    CacheManagerRegistry,
    create_cache_manager,
)
from custom_components.tfiac.command_queue import CommandQueue
from custom_components.tfiac.const import (
    EVENT_STATE_CHANGED,
    OperationMode,
    PowerState,
)
from custom_components.tfiac.device_state import DeviceState
from custom_components.tfiac.exceptions import TfiacApiClientCommunicationError
from custom_components.tfiac.models import TfiacDeviceConfig

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from custom_components.tfiac.models import RawDeviceStatus

    from .conftest import FakeClock


@pytest.fixture
def raw_status(make_raw: Callable[..., RawDeviceStatus]) -> RawDeviceStatus:
    """Status of a unit cooling to 72F in a 77F room."""
    return make_raw(
        power=True,
        operation_mode=OperationMode.COOL,
        target_temp=72.0,
        current_temp=77.0,
    )


@pytest.fixture
def mock_client(raw_status: RawDeviceStatus) -> Mock:
    """Client answering every read with the same status."""
    client = Mock()
    client.host = "192.0.2.10"
    client.port = 7777
    client.async_update_state = AsyncMock(return_value=raw_status)
    client.async_set_device_options = AsyncMock(return_value=None)
    client.async_cleanup = AsyncMock(return_value=None)
    return client


def _make_manager(client: Mock, clock: FakeClock, **kwargs: float) -> CacheManager:
    queue = CommandQueue(client, min_command_delay=0, max_retries=0, retry_delay=0)
    return CacheManager(
        client,
        command_queue=queue,
        device_state=DeviceState(clock=clock),
        clock=clock,
        **kwargs,
    )


@pytest_asyncio.fixture
async def manager(mock_client: Mock, clock: FakeClock) -> AsyncIterator[CacheManager]:
    """Manager with a 30 second poll interval and a fast quick refresh."""
    manager = _make_manager(
        mock_client, clock, poll_interval=30, quick_refresh_delay=0.01
    )
    yield manager
    await manager.async_cleanup()


class TestReads:
    """Tests for cached reads."""

    @pytest.mark.asyncio
    async def test_fresh_cache_skips_poll(
        self, manager: CacheManager, mock_client: Mock, clock: FakeClock
    ) -> None:
        """Test that reads inside the poll interval are served from cache."""
        state = await manager.async_get_status()
        assert state.is_on
        assert state.target_temperature == 22.2

        clock.advance(10)
        await manager.async_get_status()
        assert mock_client.async_update_state.await_count == 1

        clock.advance(25)
        await manager.async_get_status()
        assert mock_client.async_update_state.await_count == 2

    @pytest.mark.asyncio
    async def test_forced_read_always_polls(
        self, manager: CacheManager, mock_client: Mock
    ) -> None:
        """Test that a forced update bypasses the cache."""
        await manager.async_get_status()
        await manager.async_update_device_state(force=True)
        assert mock_client.async_update_state.await_count == 2
        mock_client.async_update_state.assert_awaited_with(force=True)

    @pytest.mark.asyncio
    async def test_clear_forgets_freshness(
        self, manager: CacheManager, mock_client: Mock
    ) -> None:
        """Test that clear makes the next read poll."""
        await manager.async_get_status()
        manager.clear()
        await manager.async_get_status()
        assert mock_client.async_update_state.await_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_reads_share_one_poll(
        self, manager: CacheManager, mock_client: Mock, raw_status: RawDeviceStatus
    ) -> None:
        """Test that simultaneous readers wait on the same request."""

        async def _slow_read(*, force: bool) -> RawDeviceStatus:
            await asyncio.sleep(0.01)
            return raw_status

        mock_client.async_update_state.side_effect = _slow_read

        states = await asyncio.gather(
            manager.async_get_status(),
            manager.async_get_status(),
            manager.async_get_status(),
        )

        assert mock_client.async_update_state.await_count == 1
        assert all(state is manager.device_state for state in states)

    @pytest.mark.asyncio
    async def test_state_changes_are_forwarded(
        self, manager: CacheManager
    ) -> None:
        """Test that listeners on the state see polled values."""
        received = []
        manager.device_state.add_listener(EVENT_STATE_CHANGED, received.append)
        await manager.async_get_status()
        assert received == [manager.device_state]
        assert manager.get_device_state() is manager.device_state
        assert isinstance(manager.get_command_queue(), CommandQueue)


class TestPollFailures:
    """Tests for failed polls and backoff."""

    @pytest.mark.asyncio
    async def test_failures_degrade_and_recover(
        self,
        manager: CacheManager,
        mock_client: Mock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test the degraded interval after repeated failures."""
        caplog.set_level(logging.INFO, logger="custom_components.tfiac")
        mock_client.async_update_state.side_effect = TfiacApiClientCommunicationError(
            "timeout"
        )

        for _ in range(2):
            await manager.async_update_device_state(force=True)
        assert manager.consecutive_failed_polls == 2
        assert manager.current_poll_interval == 30

        await manager.async_update_device_state(force=True)
        assert manager.consecutive_failed_polls == 3
        assert manager.current_poll_interval == 120
        assert "poll_degraded" in caplog.text

        mock_client.async_update_state.side_effect = None
        await manager.async_update_device_state(force=True)
        assert manager.consecutive_failed_polls == 0
        assert manager.current_poll_interval == 30
        assert "poll_recovered" in caplog.text


    @pytest.mark.asyncio
    async def test_degraded_interval_drives_the_timer(self, mock_client: Mock) -> None:
        """Test that the next timed poll waits for the degraded interval."""
        mock_client.async_update_state.side_effect = TfiacApiClientCommunicationError(
            "timeout"
        )
        manager = CacheManager(
            mock_client,
            poll_interval=0.02,
            max_consecutive_failed_polls=1,
            degraded_factor=10,
        )
        manager.start()
        try:
            await asyncio.sleep(0.15)
            assert mock_client.async_update_state.await_count == 1
            assert manager.current_poll_interval == pytest.approx(0.2)

            mock_client.async_update_state.side_effect = None
            await asyncio.sleep(0.15)
            assert mock_client.async_update_state.await_count >= 3
            assert manager.current_poll_interval == pytest.approx(0.02)
        finally:
            await manager.async_cleanup()

    @pytest.mark.asyncio
    async def test_failed_poll_keeps_last_state(
        self, manager: CacheManager, mock_client: Mock
    ) -> None:
        """Test that a failing read returns the cached state without raising."""
        await manager.async_get_status()
        mock_client.async_update_state.side_effect = TfiacApiClientCommunicationError(
            "timeout"
        )

        state = await manager.async_update_device_state(force=True)

        assert state.is_on
        assert state.operation_mode is OperationMode.COOL


class TestApplyState:
    """Tests for writing a desired state."""

    @pytest.mark.asyncio
    async def test_no_changes_sends_nothing(
        self,
        manager: CacheManager,
        mock_client: Mock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test that an identical desired state is a no-op."""
        caplog.set_level(logging.INFO, logger="custom_components.tfiac")
        await manager.async_get_status()

        await manager.async_apply_state_to_device(manager.device_state.clone())

        assert "No changes to apply" in caplog.text
        mock_client.async_set_device_options.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sends_only_the_difference(
        self, manager: CacheManager, mock_client: Mock
    ) -> None:
        """Test the queued command, optimistic update and quick refresh."""
        await manager.async_get_status()
        desired = manager.device_state.clone()
        desired.set_target_temperature(24.0)

        await manager.async_apply_state_to_device(desired)

        mock_client.async_set_device_options.assert_awaited_once_with({"temp": 24.0})
        assert manager.device_state.target_temperature == 24.0
        reads = mock_client.async_update_state.await_count

        await asyncio.sleep(0.05)
        assert mock_client.async_update_state.await_count == reads + 1
        mock_client.async_update_state.assert_awaited_with(force=True)

    @pytest.mark.asyncio
    async def test_power_off_is_sent_alone(
        self, manager: CacheManager, mock_client: Mock
    ) -> None:
        """Test that other changes are dropped when turning off."""
        await manager.async_get_status()
        desired = manager.device_state.clone()
        desired.set_target_temperature(25.0)
        desired.set_power(PowerState.OFF)

        await manager.async_apply_state_to_device(desired)

        mock_client.async_set_device_options.assert_awaited_once_with(
            {"power": PowerState.OFF}
        )
        assert not manager.device_state.is_on

    @pytest.mark.asyncio
    async def test_delivery_failure_raises(
        self,
        manager: CacheManager,
        mock_client: Mock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test that a command the unit never acknowledged is reported."""
        caplog.set_level(logging.WARNING, logger="custom_components.tfiac")
        mock_client.async_set_device_options.side_effect = (
            TfiacApiClientCommunicationError("timeout")
        )
        await manager.async_get_status()
        desired = manager.device_state.clone()
        desired.set_eco_mode(PowerState.ON)

        with pytest.raises(TfiacApiClientCommunicationError):
            await manager.async_apply_state_to_device(desired)
        assert "command_not_applied" in caplog.text


class TestLifecycle:
    """Tests for polling and cleanup."""

    @pytest.mark.asyncio
    async def test_start_polls_periodically(self, mock_client: Mock) -> None:
        """Test that start reads at once and then on every interval."""
        manager = CacheManager(mock_client, poll_interval=0.02)
        manager.start()
        await asyncio.sleep(0.1)
        await manager.async_cleanup()

        assert mock_client.async_update_state.await_count >= 3
        mock_client.async_update_state.assert_awaited_with(force=True)

    @pytest.mark.asyncio
    async def test_cleanup_is_idempotent(
        self, manager: CacheManager, mock_client: Mock
    ) -> None:
        """Test that cleanup closes the client exactly once."""
        manager.device_state.add_listener(EVENT_STATE_CHANGED, lambda _state: None)
        manager.start()

        await manager.async_cleanup()
        await manager.async_cleanup()

        mock_client.async_cleanup.assert_awaited_once()
        assert manager.device_state.listener_count(EVENT_STATE_CHANGED) == 0

    @pytest.mark.asyncio
    async def test_reads_after_cleanup_do_not_poll(
        self, manager: CacheManager, mock_client: Mock
    ) -> None:
        """Test that a closed manager only serves its last state."""
        await manager.async_cleanup()
        state = await manager.async_update_device_state(force=True)
        assert state is manager.device_state
        mock_client.async_update_state.assert_not_awaited()


    @pytest.mark.asyncio
    async def test_cleanup_during_read_returns_last_state(
        self, manager: CacheManager, mock_client: Mock
    ) -> None:
        """Test that a reader waiting on a poll gets the state when closed."""
        never = asyncio.Event()

        async def _slow_read(**_kwargs: object) -> RawDeviceStatus:
            await never.wait()
            raise AssertionError

        mock_client.async_update_state.side_effect = _slow_read
        reader = asyncio.create_task(manager.async_get_status())
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert not reader.done()

        await manager.async_cleanup()

        assert await asyncio.wait_for(reader, timeout=1) is manager.device_state
        assert not reader.cancelled()


class TestRegistry:
    """Tests for the per-unit registry."""

    def test_create_cache_manager_uses_config(self) -> None:
        """Test the default factory."""
        config = TfiacDeviceConfig(host="192.0.2.20", port=7778, poll_interval=45)
        manager = create_cache_manager(config)
        assert manager.client.host == "192.0.2.20"
        assert manager.client.port == 7778
        assert manager.current_poll_interval == 45

    @pytest.mark.asyncio
    async def test_same_unit_shares_manager(self) -> None:
        """Test that one manager exists per host and port."""
        registry = CacheManagerRegistry()
        config = TfiacDeviceConfig(host="192.0.2.20")

        first = await registry.async_get_or_create(config)
        second = await registry.async_get_or_create(config)
        other = await registry.async_get_or_create(
            TfiacDeviceConfig(host="192.0.2.20", port=7778)
        )

        assert first is second
        assert other is not first
        assert len(registry) == 2
        assert registry.get("192.0.2.20") is first
        assert registry.get("192.0.2.20", 7778) is other
        await registry.async_dispose_all()

    @pytest.mark.asyncio
    async def test_dispose_cleans_up(self) -> None:
        """Test that disposing a unit closes its client and forgets it."""
        registry = CacheManagerRegistry()
        manager = await registry.async_get_or_create(
            TfiacDeviceConfig(host="192.0.2.20")
        )

        await registry.async_dispose("192.0.2.20")
        await registry.async_dispose("192.0.2.20")

        assert manager.client.closed
        assert registry.get("192.0.2.20") is None
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_dispose_all(self) -> None:
        """Test that every manager is cleaned up."""
        managers = [Mock(async_cleanup=AsyncMock()) for _ in range(2)]
        factory = Mock(side_effect=managers)
        registry = CacheManagerRegistry(factory=factory)
        await registry.async_get_or_create(TfiacDeviceConfig(host="192.0.2.20"))
        await registry.async_get_or_create(TfiacDeviceConfig(host="192.0.2.21"))

        await registry.async_dispose_all()

        assert len(registry) == 0
        for manager in managers:
            manager.async_cleanup.assert_awaited_once()
