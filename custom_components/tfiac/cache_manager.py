"""Polling, caching and write orchestration for TFIAC units."""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any

from .api import TfiacApiClient
from .command_queue import CommandQueue
from .const import (
    DEFAULT_POLL_INTERVAL,
    DEGRADED_POLL_FACTOR,
    EVENT_ERROR,
    EVENT_EXECUTED,
    EVENT_MAX_RETRIES_REACHED,
    LOGGER,
    MAX_CONSECUTIVE_FAILED_POLLS,
    QUICK_REFRESH_DELAY,
    UDP_COMMAND_PORT,
    PowerState,
)
from .device_state import DeviceState
from .exceptions import TfiacApiClientError
from .log_utils import log_debug, log_info, log_warning

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

    from homeassistant.core import CALLBACK_TYPE

    from .models import DeviceOptions, TfiacDeviceConfig


class CacheManager:
    """
    Owns the DeviceState of one unit and keeps it in sync.

    Reads are served from cache while younger than the poll interval.
    Concurrent readers share one in-flight poll. Poll failures are logged,
    never raised; after repeated failures the poll interval backs off until
    the next success. Writes are diffed against a fresh read, queued, applied
    optimistically and confirmed by a quick re-poll.
    """

    def __init__(  # noqa: PLR0913
        self,
        client: TfiacApiClient,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        quick_refresh_delay: float = QUICK_REFRESH_DELAY,
        max_consecutive_failed_polls: int = MAX_CONSECUTIVE_FAILED_POLLS,
        degraded_factor: float = DEGRADED_POLL_FACTOR,
        command_queue: CommandQueue | None = None,
        device_state: DeviceState | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the manager; polling starts with start()."""
        self._client = client
        if command_queue is None:
            command_queue = CommandQueue(client)
        self._queue = command_queue
        self._state = device_state if device_state is not None else DeviceState()
        self._poll_interval = poll_interval
        self._quick_refresh_delay = quick_refresh_delay
        self._max_failed_polls = max_consecutive_failed_polls
        self._degraded_factor = degraded_factor
        self._clock = clock

        self._current_interval = poll_interval
        self._failed_polls = 0
        self._last_refresh: float | None = None
        self._poll_task: asyncio.Task | None = None
        self._poll_handle: asyncio.TimerHandle | None = None
        self._quick_refresh_handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()
        self._started = False
        self._closed = False

        self._unsubscribers: list[CALLBACK_TYPE] = [
            self._queue.add_listener(EVENT_EXECUTED, self._on_command_executed),
            self._queue.add_listener(
                EVENT_MAX_RETRIES_REACHED, self._on_command_failed
            ),
            self._queue.add_listener(EVENT_ERROR, self._on_command_failed),
        ]

    @property
    def client(self) -> TfiacApiClient:
        """API client of the unit."""
        return self._client

    @property
    def device_state(self) -> DeviceState:
        """Canonical state of the unit."""
        return self._state

    @property
    def current_poll_interval(self) -> float:
        """Poll interval in effect, degraded after repeated failures."""
        return self._current_interval

    @property
    def consecutive_failed_polls(self) -> int:
        """Failures since the last successful poll."""
        return self._failed_polls

    def get_device_state(self) -> DeviceState:
        """Return the canonical state without polling."""
        return self._state

    def get_command_queue(self) -> CommandQueue:
        """Return the command queue."""
        return self._queue

    def _is_fresh(self) -> bool:
        return (
            self._last_refresh is not None
            and self._clock() - self._last_refresh < self._poll_interval
        )

    def _track(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def async_get_status(self) -> DeviceState:
        """Return the state, polling first if the cache is stale."""
        return await self.async_update_device_state()

    async def async_update_device_state(self, *, force: bool = False) -> DeviceState:
        """Poll unless the cache is fresh; never raises on device errors."""
        if self._closed:
            return self._state
        if not force and self._is_fresh():
            return self._state
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.get_running_loop().create_task(
                self._async_poll(force=force)
            )
        # Shielded so one cancelled caller does not abort the shared poll
        try:
            await asyncio.shield(self._poll_task)
        except asyncio.CancelledError:
            # Cleanup cancelled the poll; readers still get the last state
            current = asyncio.current_task()
            if not self._closed or (current is not None and current.cancelling()):
                raise
        return self._state

    async def _async_poll(self, *, force: bool) -> None:
        try:
            raw = await self._client.async_update_state(force=force)
        except TfiacApiClientError as exception:
            self._failed_polls += 1
            log_warning(
                LOGGER,
                "poll_failed",
                host=self._client.host,
                failures=self._failed_polls,
                error=str(exception),
            )
            if (
                self._failed_polls >= self._max_failed_polls
                and self._current_interval == self._poll_interval
            ):
                self._current_interval = self._poll_interval * self._degraded_factor
                log_warning(
                    LOGGER,
                    "poll_degraded",
                    host=self._client.host,
                    interval=self._current_interval,
                )
        else:
            if self._current_interval != self._poll_interval:
                log_info(LOGGER, "poll_recovered", host=self._client.host)
            self._failed_polls = 0
            self._current_interval = self._poll_interval
            self._last_refresh = self._clock()
            self._state.update_from_device(raw)
        finally:
            self._schedule_poll()

    def _schedule_poll(self) -> None:
        if not self._started or self._closed:
            return
        if self._poll_handle is not None:
            self._poll_handle.cancel()
        self._poll_handle = asyncio.get_running_loop().call_later(
            self._current_interval, self._on_poll_timer
        )

    def _on_poll_timer(self) -> None:
        self._poll_handle = None
        self._track(self.async_update_device_state(force=True))

    def _schedule_quick_refresh(self) -> None:
        if self._closed:
            return
        if self._quick_refresh_handle is not None:
            self._quick_refresh_handle.cancel()
        self._quick_refresh_handle = asyncio.get_running_loop().call_later(
            self._quick_refresh_delay, self._on_quick_refresh_timer
        )

    def _on_quick_refresh_timer(self) -> None:
        self._quick_refresh_handle = None
        self._track(self.async_update_device_state(force=True))

    def _on_command_executed(self, _payload: dict[str, Any]) -> None:
        self._schedule_quick_refresh()

    def _on_command_failed(self, payload: dict[str, Any]) -> None:
        log_warning(
            LOGGER,
            "command_not_applied",
            host=self._client.host,
            command=payload.get("command"),
            error=str(payload.get("error")),
        )
        # Optimistic values are kept; the next read reconciles them
        if not self._closed:
            self._track(self.async_update_device_state(force=True))

    async def async_apply_state_to_device(self, desired: DeviceState) -> None:
        """
        Send whatever differs between ``desired`` and a fresh read.

        Turning off sends power alone. Raises when the command cannot be
        delivered; the optimistic values stay until the next poll.
        """
        current = await self.async_update_device_state(force=True)
        changes: DeviceOptions = current.diff(desired)
        if not changes:
            log_info(LOGGER, "No changes to apply", host=self._client.host)
            return
        if changes.get("power") == PowerState.OFF:
            changes = {"power": PowerState.OFF}

        log_info(LOGGER, "apply_state", host=self._client.host, changes=changes)
        future = self._queue.enqueue_command(changes)
        self._state.update_from_options(changes)
        await future

    def start(self) -> None:
        """Begin periodic polling."""
        if self._started or self._closed:
            return
        self._started = True
        if self._last_refresh is None:
            self._track(self.async_update_device_state(force=True))
        else:
            self._schedule_poll()
        log_debug(LOGGER, "polling_started", interval=self._poll_interval)

    def clear(self) -> None:
        """Forget cache freshness so the next read polls."""
        self._last_refresh = None

    async def async_cleanup(self) -> None:
        """Cancel timers and tasks, stop the queue and close the client."""
        if self._closed:
            return
        self._closed = True
        for handle in (self._poll_handle, self._quick_refresh_handle):
            if handle is not None:
                handle.cancel()
        self._poll_handle = None
        self._quick_refresh_handle = None

        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        await self._queue.async_stop()

        pending = [task for task in self._tasks if not task.done()]
        if self._poll_task is not None and not self._poll_task.done():
            pending.append(self._poll_task)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()
        self._poll_task = None

        await self._client.async_cleanup()
        self._state.remove_all_listeners()
        log_info(LOGGER, "cache_manager_closed", host=self._client.host)


def create_cache_manager(config: TfiacDeviceConfig) -> CacheManager:
    """Build the client, queue and manager for one configured unit."""
    client = TfiacApiClient(config.host, config.port)
    queue = CommandQueue(client, min_command_delay=config.min_command_delay_ms / 1000)
    return CacheManager(
        client, poll_interval=config.poll_interval, command_queue=queue
    )


class CacheManagerRegistry:
    """One CacheManager per ``host:port``, created on first use."""

    def __init__(
        self,
        factory: Callable[[TfiacDeviceConfig], CacheManager] = create_cache_manager,
    ) -> None:
        """Initialize an empty registry."""
        self._factory = factory
        self._managers: dict[str, CacheManager] = {}

    def __len__(self) -> int:
        """Return the number of live managers."""
        return len(self._managers)

    async def async_get_or_create(self, config: TfiacDeviceConfig) -> CacheManager:
        """Return the manager for the unit, creating it when missing."""
        manager = self._managers.get(config.key)
        if manager is None:
            manager = self._factory(config)
            self._managers[config.key] = manager
            log_info(LOGGER, "cache_manager_created", key=config.key)
        return manager

    def get(self, host: str, port: int = UDP_COMMAND_PORT) -> CacheManager | None:
        """Return the manager for the unit, if any."""
        return self._managers.get(f"{host}:{port}")

    async def async_dispose(self, host: str, port: int = UDP_COMMAND_PORT) -> None:
        """Clean up and forget the manager for the unit."""
        manager = self._managers.pop(f"{host}:{port}", None)
        if manager is not None:
            await manager.async_cleanup()

    async def async_dispose_all(self) -> None:
        """Clean up every manager."""
        managers = list(self._managers.values())
        self._managers.clear()
        for manager in managers:
            await manager.async_cleanup()
