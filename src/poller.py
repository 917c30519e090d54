"""
Transition Poller - waits for asynchronous backend state changes.

Used for replication initialization: after the initialize request the
relationship moves from 'uninitialized' through a transient transfer phase
into a steady state. The poller re-reads until the state leaves the starting
value or the configured timeout elapses.
"""

import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from config import PollerConfig
from errors import TransitionTimeoutError
from operation import OperationContext

logger = logging.getLogger(__name__)

ReadFn = Callable[[], Awaitable[Optional[Dict[str, Any]]]]
DoneFn = Callable[[Dict[str, Any]], bool]


class TransitionPoller:
    """Bounded, cancellable poll loop."""

    def __init__(self, config: Optional[PollerConfig] = None):
        self.config = config or PollerConfig()

    async def wait_for_transition(
        self,
        ctx: OperationContext,
        read_fn: ReadFn,
        from_state: str,
        is_done: Optional[DoneFn] = None,
    ) -> Dict[str, Any]:
        """
        Re-read until the observed state leaves from_state.

        Args:
            ctx: Operation context; sleeps and reads honour its cancellation.
            read_fn: Coroutine function returning the current record.
            from_state: The state the transition starts from.
            is_done: Optional predicate replacing the default
                "state != from_state" check.

        Returns:
            The first record satisfying the condition.

        Raises:
            TransitionTimeoutError: The condition was not observed in time.
            OperationCancelledError: The caller cancelled or the deadline passed.
        """
        start_time = time.monotonic()
        attempts = 0
        observed: Optional[Dict[str, Any]] = None

        def done(record: Dict[str, Any]) -> bool:
            if is_done is not None:
                return is_done(record)
            return record.get("state") != from_state

        while True:
            await ctx.sleep(self.config.interval)
            attempts += 1
            observed = await read_fn()

            if observed is not None and done(observed):
                logger.info(
                    f"{ctx.label}: state changed from {from_state} to "
                    f"{observed.get('state')} after {attempts} poll(s)"
                )
                return observed

            elapsed = time.monotonic() - start_time
            if elapsed >= self.config.timeout:
                last_state = observed.get("state") if observed else None
                raise TransitionTimeoutError(
                    f"{ctx.label}: state still {last_state} after "
                    f"{elapsed:.0f}s ({attempts} poll(s))",
                    last_observed=observed,
                )

            logger.debug(
                f"{ctx.label}: state {observed.get('state') if observed else None}, "
                f"waiting {self.config.interval}s..."
            )
