"""
Retry/Waiter Engine - Bounded polling of asynchronous remote operations.

Two call shapes are supported:

- wait-until: poll a read-only check until it reports a terminal outcome
  (stable, deleted, active);
- retry-when: re-issue a mutating call while a classifier says its error is
  transient (for example a dependency that has not finished propagating).

Each wait runs inside the calling invocation and is bounded by a caller
supplied deadline; it never blocks past the deadline by more than one poll
interval. Terminal outcomes are never retried.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Collection, Optional, Tuple

from errors import (
    NotFoundError,
    ProviderError,
    RetryableError,
    TerminalError,
    UnexpectedStateError,
    WaitTimeoutError,
)

logger = logging.getLogger(__name__)


class OutcomeKind(Enum):
    """Classification of a single check result."""

    SUCCESS = "success"
    NOT_FOUND = "not_found"
    RETRYABLE = "retryable"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class Outcome:
    """Result of one check of a remote operation."""

    kind: OutcomeKind
    state: Any = None
    reason: str = ""
    error: Optional[BaseException] = None

    @classmethod
    def success(cls, state: Any = None) -> "Outcome":
        return cls(OutcomeKind.SUCCESS, state=state)

    @classmethod
    def not_found(
        cls, reason: str = "", error: Optional[BaseException] = None
    ) -> "Outcome":
        return cls(OutcomeKind.NOT_FOUND, reason=reason, error=error)

    @classmethod
    def retryable(
        cls,
        reason: str = "",
        state: Any = None,
        error: Optional[BaseException] = None,
    ) -> "Outcome":
        return cls(OutcomeKind.RETRYABLE, state=state, reason=reason, error=error)

    @classmethod
    def terminal(
        cls,
        reason: str = "",
        state: Any = None,
        error: Optional[BaseException] = None,
    ) -> "Outcome":
        return cls(OutcomeKind.TERMINAL, state=state, reason=reason, error=error)


class WaitState(Enum):
    """States of a single wait invocation."""

    POLLING = "polling"
    SUCCEEDED = "succeeded"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


class NotFoundPolicy(Enum):
    """How a wait treats a NOT_FOUND outcome."""

    RETRY = "retry"  # creation waits: not visible yet
    SUCCEED = "succeed"  # deletion waits: gone is done
    FAIL = "fail"


Check = Callable[[], Awaitable[Outcome]]


async def outcome_of(fn: Callable[[], Awaitable[Any]]) -> Outcome:
    """
    Run a finder call and classify its result as an Outcome.

    Args:
        fn: Coroutine function returning the located record or raising a
            classified ProviderError.

    Returns:
        SUCCESS with the record, or the outcome matching the error kind.
    """
    try:
        state = await fn()
    except NotFoundError as e:
        return Outcome.not_found(str(e), error=e)
    except RetryableError as e:
        return Outcome.retryable(str(e), error=e)
    except ProviderError as e:
        return Outcome.terminal(str(e), error=e)
    return Outcome.success(state)


class Waiter:
    """
    Polling engine shared by every resource type.

    The clock and sleep functions are injectable so waits can be driven
    deterministically.
    """

    def __init__(
        self,
        poll_interval: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep

    def _transition(
        self, description: str, old: WaitState, new: WaitState, attempts: int
    ) -> WaitState:
        if old is not WaitState.POLLING:
            raise RuntimeError(f"wait for {description} already {old.value}")
        logger.debug(
            f"Wait for {description}: {old.value} -> {new.value} "
            f"after {attempts} attempt(s)"
        )
        return new

    async def until(
        self,
        check: Check,
        timeout: float,
        *,
        not_found: NotFoundPolicy = NotFoundPolicy.RETRY,
        not_found_checks: Optional[int] = None,
        description: str = "resource",
    ) -> Any:
        """
        Poll a check until it reports success or a terminal outcome.

        Args:
            check: Coroutine function returning an Outcome.
            timeout: Wait budget in seconds.
            not_found: What a NOT_FOUND outcome means for this wait.
            not_found_checks: With NotFoundPolicy.RETRY, how many consecutive
                NOT_FOUND outcomes are tolerated before failing. None means
                no limit other than the deadline.
            description: Human-readable subject used in logs and errors.

        Returns:
            The state carried by the successful outcome (None when a
            NOT_FOUND outcome satisfied a deletion wait).

        Raises:
            WaitTimeoutError: The deadline passed while still polling. Carries
                the last observed state.
            NotFoundError: Absence was not acceptable for this wait.
            TerminalError: The check reported a terminal failure.
        """
        state = WaitState.POLLING
        start = self._clock()
        attempts = 0
        not_found_count = 0
        last_state: Any = None
        last_reason = ""

        while True:
            attempts += 1
            outcome = await check()

            if outcome.kind is OutcomeKind.SUCCESS:
                state = self._transition(
                    description, state, WaitState.SUCCEEDED, attempts
                )
                return outcome.state

            if outcome.kind is OutcomeKind.NOT_FOUND:
                if not_found is NotFoundPolicy.SUCCEED:
                    state = self._transition(
                        description, state, WaitState.SUCCEEDED, attempts
                    )
                    return None
                not_found_count += 1
                if not_found is NotFoundPolicy.FAIL or (
                    not_found_checks is not None
                    and not_found_count > not_found_checks
                ):
                    state = self._transition(
                        description, state, WaitState.FAILED, attempts
                    )
                    if isinstance(outcome.error, NotFoundError):
                        raise outcome.error
                    raise NotFoundError(
                        outcome.reason or f"couldn't find {description}"
                    )
                last_reason = outcome.reason or "not found"

            elif outcome.kind is OutcomeKind.TERMINAL:
                state = self._transition(
                    description, state, WaitState.FAILED, attempts
                )
                if outcome.error is not None:
                    raise outcome.error
                raise TerminalError(f"{description}: {outcome.reason}")

            else:
                not_found_count = 0
                last_state = outcome.state
                last_reason = outcome.reason

            elapsed = self._clock() - start
            if elapsed >= timeout:
                state = self._transition(
                    description, state, WaitState.TIMED_OUT, attempts
                )
                raise WaitTimeoutError(
                    f"timeout while waiting for {description} "
                    f"({timeout:g}s): last result: {last_reason or 'pending'}",
                    timeout=timeout,
                    last_state=last_state,
                    last_error=outcome.error,
                )

            logger.debug(
                f"Waiting for {description} (attempt {attempts}): "
                f"{last_reason or 'pending'}"
            )
            await self._sleep(min(self.poll_interval, timeout - elapsed))

    async def for_status(
        self,
        refresh: Callable[[], Awaitable[Tuple[Any, str]]],
        *,
        pending: Collection[str],
        target: Collection[str],
        timeout: float,
        not_found: NotFoundPolicy = NotFoundPolicy.RETRY,
        not_found_checks: Optional[int] = 20,
        description: str = "resource",
    ) -> Any:
        """
        Poll a status-returning refresh function until a target status.

        Args:
            refresh: Coroutine function returning ``(record, status)``;
                a None record or a NotFoundError means absent.
            pending: Statuses that keep the wait polling.
            target: Statuses that end the wait successfully.
            timeout: Wait budget in seconds.
            not_found: What absence means for this wait.
            not_found_checks: Consecutive absences tolerated while retrying.
            description: Human-readable subject used in logs and errors.

        Returns:
            The record in a target status, or None for a satisfied
            deletion wait.

        Raises:
            UnexpectedStateError: A status outside pending and target.
            WaitTimeoutError: The deadline passed.
        """

        async def check() -> Outcome:
            try:
                record, status = await refresh()
            except NotFoundError as e:
                return Outcome.not_found(str(e), error=e)
            except RetryableError as e:
                return Outcome.retryable(str(e), error=e)
            except ProviderError as e:
                return Outcome.terminal(str(e), error=e)

            if record is None:
                return Outcome.not_found(f"couldn't find {description}")
            if status in target:
                return Outcome.success(record)
            if status in pending:
                return Outcome.retryable(f"status {status}", state=record)
            err = UnexpectedStateError(status, target)
            return Outcome.terminal(str(err), state=record, error=err)

        return await self.until(
            check,
            timeout,
            not_found=not_found,
            not_found_checks=(
                not_found_checks if not_found is NotFoundPolicy.RETRY else None
            ),
            description=description,
        )

    async def retry_when(
        self,
        fn: Callable[[], Awaitable[Any]],
        timeout: float,
        is_retryable: Callable[[BaseException], bool],
        *,
        description: str = "operation",
    ) -> Any:
        """
        Re-issue a call while its error is classified as transient.

        Args:
            fn: Coroutine function issuing the call.
            timeout: Retry budget in seconds.
            is_retryable: Classifier for errors raised by ``fn``.
            description: Human-readable subject used in logs and errors.

        Returns:
            The result of the first successful call.

        Raises:
            WaitTimeoutError: Still failing transiently at the deadline;
                the last error is chained.
            Exception: Any error the classifier rejects, unchanged.
        """
        start = self._clock()
        attempts = 0

        while True:
            attempts += 1
            try:
                return await fn()
            except Exception as e:
                if not is_retryable(e):
                    raise
                elapsed = self._clock() - start
                if elapsed >= timeout:
                    raise WaitTimeoutError(
                        f"timeout while retrying {description} ({timeout:g}s): {e}",
                        timeout=timeout,
                        last_error=e,
                    ) from e
                logger.debug(
                    f"Retrying {description} after transient error "
                    f"(attempt {attempts}): {e}"
                )
                await self._sleep(min(self.poll_interval, timeout - elapsed))

    async def retry_when_new_resource_not_found(
        self,
        fn: Callable[[], Awaitable[Any]],
        timeout: float,
        is_new_resource: bool,
        *,
        description: str = "resource",
    ) -> Any:
        """Retry a lookup on NotFoundError, but only for a freshly created resource."""
        if not is_new_resource:
            return await fn()
        return await self.retry_when(
            fn,
            timeout,
            lambda e: isinstance(e, NotFoundError),
            description=f"reading new {description}",
        )

    async def retry_until_not_found(
        self,
        fn: Callable[[], Awaitable[Any]],
        timeout: float,
        *,
        description: str = "resource",
    ) -> None:
        """Poll a lookup until it reports the resource as absent."""

        async def check() -> Outcome:
            outcome = await outcome_of(fn)
            if outcome.kind is OutcomeKind.SUCCESS:
                return Outcome.retryable("still exists", state=outcome.state)
            return outcome

        await self.until(
            check,
            timeout,
            not_found=NotFoundPolicy.SUCCEED,
            description=f"{description} deletion",
        )
