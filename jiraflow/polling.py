"""Consistency poller for Jira status reads.

Jira acknowledges a transition before the new status is visible to reads,
and reads themselves fail now and then. This module wraps a status reader
with two bounded policies:

- read_with_retry: a few attempts with a fixed delay, for a trustworthy
  "before" status.
- wait_for_change: poll until the status differs from a known value or a
  deadline passes, then settle for one last best-effort read.

Both have async twins so the same policy can run inside an event loop.
"""

import asyncio
import logging
import math
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from tenacity import (
    AsyncRetrying,
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from jiraflow.config import Config
from jiraflow.interfaces import UNKNOWN_STATUS
from jiraflow.jira.errors import JiraApiError, RemoteReadError
from jiraflow.logger import get_logger

logger = get_logger(__name__)

StatusReader = Callable[[str], str]


@dataclass(frozen=True)
class ConfirmedStatus:
    """Result of waiting for a status change.

    Attributes:
        status: Last status observed (UNKNOWN_STATUS if even the final read failed)
        changed: Whether that status differs from the "before" value
        polls: Number of reads performed
    """

    status: str
    changed: bool
    polls: int


class ConsistencyPoller:
    """Retry and wait-for-change policies around a status reader."""

    def __init__(
        self,
        reader: StatusReader,
        read_attempts: int = 3,
        read_delay: float = 0.6,
        poll_interval: float = 1.2,
        poll_timeout: float = 20.0,
        sleep: Callable[[float], None] = time.sleep,
        async_sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the poller.

        Args:
            reader: Callable returning the current status for an issue key
            read_attempts: Attempts for read_with_retry (>= 1)
            read_delay: Seconds between read attempts
            poll_interval: Seconds between confirmation polls
            poll_timeout: Ceiling in seconds for wait_for_change
            sleep: Blocking sleep, injectable for tests
            async_sleep: Awaitable sleep, injectable for tests
            clock: Monotonic clock, injectable for tests

        Raises:
            ValueError: If poll_interval is not positive
        """
        if poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {poll_interval}")
        self._reader = reader
        self.read_attempts = max(1, read_attempts)
        self.read_delay = max(0.0, read_delay)
        self.poll_interval = poll_interval
        self.poll_timeout = max(0.0, poll_timeout)
        self._sleep = sleep
        self._async_sleep = async_sleep
        self._clock = clock

    @classmethod
    def from_config(cls, reader: StatusReader, config: Config) -> "ConsistencyPoller":
        return cls(
            reader,
            read_attempts=config.read_attempts,
            read_delay=config.read_delay_ms / 1000,
            poll_interval=config.poll_interval_ms / 1000,
            poll_timeout=config.poll_timeout_ms / 1000,
        )

    @property
    def max_polls(self) -> int:
        """Upper bound on polls inside wait_for_change, before the final read."""
        return math.ceil(self.poll_timeout / self.poll_interval) + 1

    def _retry_kwargs(self) -> dict:
        return {
            "stop": stop_after_attempt(self.read_attempts),
            "wait": wait_fixed(self.read_delay),
            "retry": retry_if_exception_type(RemoteReadError),
            "before_sleep": before_sleep_log(logger, logging.WARNING),
            "reraise": True,
        }

    def read_with_retry(self, issue_key: str) -> str:
        """Read the status, retrying transient read failures.

        Raises:
            RemoteReadError: The last failure, once all attempts are used
        """
        retrying = Retrying(sleep=self._sleep, **self._retry_kwargs())
        return retrying(self._reader, issue_key)

    def read_best_effort(self, issue_key: str) -> str:
        """Single read for display purposes; never raises on remote failure."""
        try:
            return self._reader(issue_key)
        except JiraApiError as e:
            logger.debug(f"Best-effort status read failed for {issue_key}: {e}")
            return UNKNOWN_STATUS

    def _settle(self, issue_key: str, before: str, polls: int) -> ConfirmedStatus:
        final = self.read_best_effort(issue_key)
        changed = final not in (before, UNKNOWN_STATUS)
        logger.warning(
            f"Status of {issue_key} not confirmed within {self.poll_timeout:.1f}s; "
            f"last read: {final}"
        )
        return ConfirmedStatus(status=final, changed=changed, polls=polls + 1)

    def wait_for_change(self, issue_key: str, before: str) -> ConfirmedStatus:
        """Poll until the status differs from `before` or the timeout elapses.

        Read failures while polling are tolerated. On timeout the result of
        one final best-effort read is returned instead of an error, since the
        transition may well have been applied.
        """
        deadline = self._clock() + self.poll_timeout

        for poll in range(1, self.max_polls + 1):
            try:
                status = self._reader(issue_key)
            except JiraApiError as e:
                logger.debug(f"Poll {poll} for {issue_key} failed: {e}")
            else:
                if status != before:
                    logger.info(f"Status change confirmed for {issue_key}: {before} -> {status}")
                    return ConfirmedStatus(status=status, changed=True, polls=poll)

            remaining = deadline - self._clock()
            if remaining <= 0:
                return self._settle(issue_key, before, poll)
            self._sleep(min(self.poll_interval, remaining))

        return self._settle(issue_key, before, self.max_polls)

    async def _async_read(self, issue_key: str) -> str:
        return await asyncio.to_thread(self._reader, issue_key)

    async def async_read_with_retry(self, issue_key: str) -> str:
        """Async variant of read_with_retry; the reader runs in a worker thread."""
        retrying = AsyncRetrying(sleep=self._async_sleep, **self._retry_kwargs())
        return await retrying(self._async_read, issue_key)

    async def async_wait_for_change(self, issue_key: str, before: str) -> ConfirmedStatus:
        """Async variant of wait_for_change."""
        deadline = self._clock() + self.poll_timeout

        for poll in range(1, self.max_polls + 1):
            try:
                status = await self._async_read(issue_key)
            except JiraApiError as e:
                logger.debug(f"Poll {poll} for {issue_key} failed: {e}")
            else:
                if status != before:
                    logger.info(f"Status change confirmed for {issue_key}: {before} -> {status}")
                    return ConfirmedStatus(status=status, changed=True, polls=poll)

            remaining = deadline - self._clock()
            if remaining <= 0:
                break
            await self._async_sleep(min(self.poll_interval, remaining))

        final = UNKNOWN_STATUS
        try:
            final = await self._async_read(issue_key)
        except JiraApiError as e:
            logger.debug(f"Best-effort status read failed for {issue_key}: {e}")
        logger.warning(f"Status of {issue_key} not confirmed within {self.poll_timeout:.1f}s")
        return ConfirmedStatus(
            status=final, changed=final not in (before, UNKNOWN_STATUS), polls=poll + 1
        )
