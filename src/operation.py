"""
Operation context for a single Create/Read/Update/Delete invocation.

Each invocation is sequential. The context carries the caller's
cancellation signal and deadline, guards every backend call so nothing runs
after an error has been reported, and records the identity of a newly
created object as soon as the backend assigns it.
"""

import asyncio
import contextlib
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from errors import ErrorReporter, OperationCancelledError

logger = logging.getLogger(__name__)

IdentityCallback = Callable[[str], None]


class OperationContext:
    """Per-invocation state shared by controller, resolver and poller."""

    def __init__(
        self,
        kind: str,
        operation: str,
        name: str = "",
        cancel_event: Optional[asyncio.Event] = None,
        timeout: Optional[float] = None,
        on_identity: Optional[IdentityCallback] = None,
    ):
        self.kind = kind
        self.operation = operation
        self.name = name
        self.cancel_event = cancel_event
        self.deadline = time.monotonic() + timeout if timeout is not None else None
        self.on_identity = on_identity
        self.identity: Optional[str] = None
        self.reporter = ErrorReporter(self.label)

    @property
    def label(self) -> str:
        if self.name:
            return f"{self.operation} {self.kind} {self.name}"
        return f"{self.operation} {self.kind}"

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without a deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def check(self) -> None:
        """
        Raise if the operation must not continue.

        Raises:
            OntapError: The error already reported for this operation.
            OperationCancelledError: On cancellation or an expired deadline.
        """
        if self.reporter.error is not None:
            raise self.reporter.error
        if self.cancelled:
            raise OperationCancelledError(f"{self.label}: cancelled by caller")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise OperationCancelledError(f"{self.label}: deadline exceeded")

    async def call(self, fn: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Run one backend call under this context.

        The call is abandoned when the cancel event fires or the deadline
        passes, whichever comes first.
        """
        self.check()
        remaining = self.remaining()
        if self.cancel_event is None and remaining is None:
            return await fn(*args, **kwargs)

        call_task = asyncio.ensure_future(fn(*args, **kwargs))
        waiters = {call_task}
        cancel_task = None
        if self.cancel_event is not None:
            cancel_task = asyncio.ensure_future(self.cancel_event.wait())
            waiters.add(cancel_task)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if cancel_task is not None and not cancel_task.done():
                cancel_task.cancel()

        if call_task in done:
            return call_task.result()

        call_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await call_task
        self.check()
        raise OperationCancelledError(f"{self.label}: deadline exceeded")

    async def sleep(self, seconds: float) -> None:
        """Wait, waking early to raise on cancellation or deadline."""
        self.check()
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)

        if self.cancel_event is None:
            await asyncio.sleep(seconds)
        else:
            try:
                await asyncio.wait_for(self.cancel_event.wait(), timeout=seconds)
            except asyncio.TimeoutError:
                pass
        self.check()

    def record_identity(self, identity: str) -> None:
        """Record a backend-assigned identity and notify the caller."""
        self.identity = identity
        logger.debug(f"{self.label}: recorded identity {identity}")
        if self.on_identity is not None:
            self.on_identity(identity)
