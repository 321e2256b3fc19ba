"""Rate limiting for reload commands.

Browsers disable an extension that is reloaded too many times in a short
burst. The throttle counts acknowledged reloads inside a sliding idle
window and, once the ceiling is hit, holds further commands back for a
fixed countdown before retrying the request that hit the ceiling.

Only acknowledged reloads move the counter, so a burst of triggers sent
before any acknowledgment returns is not capped here.
"""

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from extreload.domain import ReloadCommand, ThrottleDecision

if TYPE_CHECKING:
    from extreload.reload.connection import Connection

logger = logging.getLogger(__name__)

MAX_RELOADS = 5
RELOAD_WINDOW_SECONDS = 10.0
BACKOFF_SECONDS = 10

RetryCallback = Callable[[], Awaitable[Any]]


class ChannelClosedError(Exception):
    """Raised by a channel when a send hits a socket that is already closed."""


@dataclass
class ThrottleState:
    """Counters that survive connection replacement."""

    reload_count: int = 0
    last_reload_at: float | None = None  # clock() value of the last acknowledgment
    is_waiting: bool = False


class ReloadThrottle:
    """Decides whether a reload command is sent now, delayed, or dropped.

    Usage:
        throttle = ReloadThrottle()

        decision = await throttle.request(connection, ReloadCommand.RELOAD_ALL, retry)
        if decision == ThrottleDecision.BACKOFF:
            # retry() is awaited once when the countdown reaches zero
            ...

        # When the extension reports a completed reload
        throttle.record_reload()
    """

    def __init__(
        self,
        max_reloads: int = MAX_RELOADS,
        window_seconds: float = RELOAD_WINDOW_SECONDS,
        backoff_seconds: int = BACKOFF_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize the throttle.

        Args:
            max_reloads: Acknowledged reloads allowed inside one window.
            window_seconds: Idle time after which the count starts over.
            backoff_seconds: Length of the countdown, in one-second ticks.
            clock: Monotonic time source in seconds.
            sleep: Coroutine used to wait between countdown ticks.
        """
        self.max_reloads = max_reloads
        self.window_seconds = window_seconds
        self.backoff_seconds = backoff_seconds
        self._clock = clock
        self._sleep = sleep

        self.state = ThrottleState()
        self._pending_retry: RetryCallback | None = None
        self._countdown: asyncio.Task | None = None

    async def request(
        self,
        connection: "Connection | None",
        command: ReloadCommand,
        retry: RetryCallback | None = None,
    ) -> ThrottleDecision:
        """Evaluate a reload request and act on it.

        Args:
            connection: The currently tracked connection, if any.
            command: Command to send when allowed.
            retry: Awaited once if this request is redirected into backoff.

        Returns:
            What happened to the request.
        """
        if self.state.is_waiting:
            return ThrottleDecision.SUPPRESSED

        if connection is None:
            logger.warning("No extension connected.")
            return ThrottleDecision.NO_CONNECTION

        name = connection.display_name

        if not connection.is_open:
            logger.warning(f"Connection with {name} was lost and it might need a reload.")
            return ThrottleDecision.STALE_CONNECTION

        if self._window_elapsed():
            self.state.reload_count = 0

        if self.state.reload_count >= self.max_reloads:
            self._start_backoff(name, retry)
            return ThrottleDecision.BACKOFF

        try:
            await connection.send(command.value)
        except ChannelClosedError:
            logger.warning(f"Connection with {name} was lost and it might need a reload.")
            return ThrottleDecision.STALE_CONNECTION

        logger.debug(f"Sent {command.value} to {name}")
        return ThrottleDecision.SENT

    def record_reload(self) -> None:
        """Count an acknowledged reload."""
        self.state.last_reload_at = self._clock()
        self.state.reload_count += 1

    def _window_elapsed(self) -> bool:
        last = self.state.last_reload_at
        if last is None:
            return True
        return self._clock() - last > self.window_seconds

    def _start_backoff(self, name: str, retry: RetryCallback | None) -> None:
        if self.state.is_waiting:
            return

        self.state.is_waiting = True
        self._pending_retry = retry

        logger.warning(
            f"{name} will reload in {self.backoff_seconds} seconds to prevent it being disabled."
        )
        self._countdown = asyncio.create_task(self._run_countdown())

    async def _run_countdown(self) -> None:
        remaining = self.backoff_seconds
        while remaining > 0:
            await self._sleep(1)
            remaining -= 1
            logger.info(f"Reloading in {remaining}")

        self.state.is_waiting = False
        self.state.reload_count = 0

        retry, self._pending_retry = self._pending_retry, None
        if retry is not None:
            await retry()

    @property
    def backoff_task(self) -> asyncio.Task | None:
        """The running (or last) countdown task."""
        return self._countdown

    async def wait_for_backoff(self) -> None:
        """Wait until the current countdown, including its retry, has finished."""
        if self._countdown is not None:
            await self._countdown

    async def aclose(self) -> None:
        """Cancel a running countdown on shutdown."""
        task = self._countdown
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._pending_retry = None

    def snapshot(self) -> dict:
        return {
            "reload_count": self.state.reload_count,
            "last_reload_at": self.state.last_reload_at,
            "is_waiting": self.state.is_waiting,
            "max_reloads": self.max_reloads,
        }
