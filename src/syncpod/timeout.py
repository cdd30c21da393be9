"""Timeout class for Kubernetes and SSH operations."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

from .exceptions import OperationTimeoutError

__all__ = ["Timeout"]


class Timeout:
    """Track a cumulative timeout on a series of operations.

    Creating a helper involves several Kubernetes calls and a wait for the
    pod to start, all of which must complete within a total timeout. This
    class encapsulates that type of timeout and provides methods to retrieve
    timeouts for individual operations.

    Parameters
    ----------
    operation
        Human-readable name of operation, for error reporting.
    timeout
        Duration of the timeout.
    error
        Exception class to raise when the timeout expires.
    """

    def __init__(
        self,
        operation: str,
        timeout: timedelta,
        *,
        error: type[OperationTimeoutError] = OperationTimeoutError,
    ) -> None:
        self._operation = operation
        self._timeout = timeout
        self._error = error
        self._start = datetime.now(tz=UTC)

    def elapsed(self) -> float:
        """Elapsed time since the timeout started.

        Returns
        -------
        float
            Seconds elapsed since the object was created.
        """
        now = datetime.now(tz=UTC)
        return (now - self._start).total_seconds()

    @asynccontextmanager
    async def enforce(self) -> AsyncIterator[None]:
        """Enforce the timeout and translate `TimeoutError`.

        Used to wrap a block of code in `asyncio.timeout` and catch any
        `TimeoutError`, translating it into
        `~syncpod.exceptions.OperationTimeoutError` with additional context.

        Raises
        ------
        OperationTimeoutError
            Raised if `TimeoutError` was raised inside the enclosed operation.
        """
        try:
            async with asyncio.timeout(self.left()):
                yield
        except (OperationTimeoutError, TimeoutError) as e:
            raise self._expired() from e

    def left(self) -> float:
        """Return the amount of time remaining in seconds.

        Returns
        -------
        float
            Time remaining in the timeout in seconds.

        Raises
        ------
        OperationTimeoutError
            Raised if the timeout has expired.
        """
        now = datetime.now(tz=UTC)
        left = (self._timeout - (now - self._start)).total_seconds()
        if left <= 0.0:
            raise self._expired()
        return left

    def _expired(self) -> OperationTimeoutError:
        now = datetime.now(tz=UTC)
        return self._error(
            self._operation, started_at=self._start, failed_at=now
        )
