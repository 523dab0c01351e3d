"""
Retry Executor

Runs a single ledger operation with bounded retries and exponential backoff,
short-circuiting on kinds that cannot heal by retrying.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Coroutine, Optional, TypeVar

from ...services.events import EventBus, EventType, Severity
from .errors import BotError, ErrorKind, classify_error

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[Any]]


class RetryExecutor:
    """
    Executes operations with retry and exponential backoff.

    The wait before attempt ``a + 1`` is ``base_delay_ms * 2 ** (a - 1)``
    milliseconds, so the first retry waits exactly the base delay. There is
    no jitter and no cap: the schedule is bounded by ``max_attempts``.
    """

    def __init__(
        self,
        base_delay_ms: int,
        max_attempts: int = 3,
        sleep: SleepFunc = asyncio.sleep,
        events: Optional[EventBus] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.base_delay_ms = base_delay_ms
        self.max_attempts = max_attempts
        self._sleep = sleep
        self._events = events
        self.logger = logger or logging.getLogger(__name__)

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt ``attempt`` (1-indexed)."""
        return self.base_delay_ms * (2 ** (attempt - 1)) / 1000

    async def execute(
        self,
        operation: Callable[[], Coroutine[Any, Any, T]],
        operation_name: str = "operation",
        max_attempts: Optional[int] = None,
    ) -> T:
        """
        Execute an operation with retry support.

        Args:
            operation: Async operation to execute
            operation_name: Name used in logs, events and the final error
            max_attempts: Override the executor's attempt bound

        Returns:
            The operation's result

        Raises:
            BotError: Immediately on an insufficient-balance failure, or
                after all attempts are exhausted
        """
        attempts_allowed = max_attempts or self.max_attempts
        last_error: Optional[BaseException] = None

        for attempt in range(1, attempts_allowed + 1):
            if attempt > 1:
                await self._emit(
                    EventType.STEP_RETRY,
                    f"Retrying {operation_name} (attempt {attempt}/{attempts_allowed})",
                    Severity.WARNING,
                    operation=operation_name,
                    attempt=attempt,
                    max_attempts=attempts_allowed,
                )

            try:
                return await operation()
            except Exception as e:
                last_error = e
                kind = classify_error(e)

                if kind is ErrorKind.INSUFFICIENT_BALANCE:
                    self.logger.error(f"{operation_name} failed with non-retryable {kind.value}: {e}")
                    await self._emit_failure(operation_name, kind, attempt, str(e))
                    raise BotError(kind, str(e), cause=e) from e

                if attempt < attempts_allowed:
                    delay = self.delay_for(attempt)
                    self.logger.warning(
                        f"{operation_name} attempt {attempt}/{attempts_allowed} "
                        f"failed ({kind.value}): {e}. Retrying in {delay:.3f}s"
                    )
                    await self._sleep(delay)

        assert last_error is not None
        kind = classify_error(last_error)
        message = f"{operation_name} failed after {attempts_allowed} attempts: {last_error}"
        self.logger.error(message)
        await self._emit_failure(operation_name, kind, attempts_allowed, str(last_error))
        raise BotError(kind, message, cause=last_error) from last_error

    async def _emit_failure(self, operation_name: str, kind: ErrorKind, attempts: int, error: str) -> None:
        await self._emit(
            EventType.STEP_FAILED,
            f"{operation_name} failed",
            Severity.ERROR,
            operation=operation_name,
            kind=kind.value,
            attempts=attempts,
            error=error,
        )

    async def _emit(self, event_type: EventType, message: str, severity: Severity, **payload: Any) -> None:
        if self._events is not None:
            await self._events.emit(event_type, message, severity, **payload)
