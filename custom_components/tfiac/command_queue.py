"""Serial command queue in front of the API client."""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections import deque
from typing import TYPE_CHECKING, Any

from .const import (
    DEFAULT_MIN_COMMAND_DELAY_MS,
    EVENT_ERROR,
    EVENT_EXECUTED,
    EVENT_MAX_RETRIES_REACHED,
    EVENT_RETRY,
    LOGGER,
    QUEUE_MAX_RETRIES,
    QUEUE_RETRY_DELAY,
)
from .exceptions import TfiacApiClientCommunicationError, TfiacApiClientError
from .listeners import ListenerRegistry
from .log_utils import log_debug, log_error, log_warning

if TYPE_CHECKING:
    from collections.abc import Callable

    from .api import TfiacApiClient
    from .models import DeviceOptions


class CommandQueue(ListenerRegistry):
    """
    FIFO of option sets sent one at a time.

    Each command waits until ``min_command_delay`` has passed since the
    previous one completed. Transport failures are retried ``max_retries``
    times; other client errors fail the command at once.

    Events: ``executed`` {command}, ``retry`` {command, attempt, error},
    ``max_retries_reached`` {command, error}, ``error`` {command, error}.
    """

    def __init__(
        self,
        client: TfiacApiClient,
        *,
        min_command_delay: float = DEFAULT_MIN_COMMAND_DELAY_MS / 1000,
        max_retries: int = QUEUE_MAX_RETRIES,
        retry_delay: float = QUEUE_RETRY_DELAY,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize an idle queue."""
        super().__init__()
        self._client = client
        self._min_command_delay = min_command_delay
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._clock = clock

        self._queue: deque[tuple[DeviceOptions, asyncio.Future[None]]] = deque()
        self._task: asyncio.Task | None = None
        self._last_completed: float | None = None

    def __len__(self) -> int:
        """Return the number of commands not yet finished."""
        return len(self._queue)

    @property
    def busy(self) -> bool:
        """Whether the drain task is running."""
        return self._task is not None and not self._task.done()

    def enqueue_command(self, options: DeviceOptions) -> asyncio.Future[None]:
        """Queue a copy of ``options``; the future resolves once it is sent."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future[None] = loop.create_future()
        command: DeviceOptions = dict(options)  # type: ignore[assignment]
        self._queue.append((command, future))
        log_debug(LOGGER, "command_queued", command=command, pending=len(self._queue))
        if not self.busy:
            self._task = loop.create_task(self._async_drain())
        return future

    async def _async_drain(self) -> None:
        while self._queue:
            command, future = self._queue[0]
            if future.done():
                self._queue.popleft()
                continue

            await self._async_wait_for_gap()
            try:
                await self._async_execute(command)
            except TfiacApiClientCommunicationError as exception:
                self._finish()
                log_warning(
                    LOGGER, "command_failed", command=command, error=str(exception)
                )
                self._emit(
                    EVENT_MAX_RETRIES_REACHED, {"command": command, "error": exception}
                )
                self._settle(future, exception)
            except TfiacApiClientError as exception:
                self._finish()
                log_warning(
                    LOGGER, "command_rejected", command=command, error=str(exception)
                )
                self._emit(EVENT_ERROR, {"command": command, "error": exception})
                self._settle(future, exception)
            except Exception as exception:  # noqa: BLE001
                self._finish()
                log_error(LOGGER, "command_crashed", command=command)
                self._emit(EVENT_ERROR, {"command": command, "error": exception})
                self._settle(future, exception)
            else:
                self._finish()
                log_debug(LOGGER, "command_executed", command=command)
                self._emit(EVENT_EXECUTED, {"command": command})
                self._settle(future, None)

    def _finish(self) -> None:
        self._last_completed = self._clock()
        self._queue.popleft()

    @staticmethod
    def _settle(future: asyncio.Future[None], error: Exception | None) -> None:
        if future.done():
            return
        if error is None:
            future.set_result(None)
        else:
            future.set_exception(error)

    async def _async_wait_for_gap(self) -> None:
        if self._last_completed is None:
            return
        remaining = self._min_command_delay - (self._clock() - self._last_completed)
        if remaining > 0:
            await asyncio.sleep(remaining)

    async def _async_execute(self, command: DeviceOptions) -> None:
        attempt = 0
        while True:
            try:
                await self._client.async_set_device_options(command)
            except TfiacApiClientCommunicationError as exception:
                attempt += 1
                if attempt > self._max_retries:
                    raise
                log_warning(
                    LOGGER,
                    "command_retry",
                    command=command,
                    attempt=attempt,
                    error=str(exception),
                )
                payload: dict[str, Any] = {
                    "command": command,
                    "attempt": attempt,
                    "error": exception,
                }
                self._emit(EVENT_RETRY, payload)
                await asyncio.sleep(self._retry_delay)
            else:
                return

    async def async_stop(self) -> None:
        """Stop draining and cancel every pending command."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        while self._queue:
            _, future = self._queue.popleft()
            if not future.done():
                future.cancel()
