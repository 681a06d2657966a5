"""Retry, backoff and cancellation for backend calls.

A failed attempt is classified by its HTTP-like status code:

- 500: fatal, raised immediately.
- 503 (model overloaded): retried forever with a growing, capped delay.
- Anything else, including 429: retried a few times with a fixed delay
  sequence, then fatal.

The two retry paths keep separate counters. Each time one path waits, the
other path's counter is reset.

Every wait polls a CancellationToken so that the user can abort the whole
call while it is backing off.

This is an internal module and should not be imported directly by users.
"""

import asyncio
import json
import logging
import re
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pydantic import BaseModel, Field

from client.exceptions import CancellationError, FatalBackendError, RetriesExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Delays are in seconds.
DEFAULT_OVERLOAD_INITIAL_DELAY = 10.0
DEFAULT_OVERLOAD_DELAY_INCREMENT = 5.0
DEFAULT_OVERLOAD_MAX_DELAY = 30.0
DEFAULT_OTHER_DELAYS = (30.0, 45.0, 60.0)
DEFAULT_POLL_INTERVAL = 0.1

FATAL_STATUS_CODE = 500
OVERLOADED_STATUS_CODE = 503
RATE_LIMITED_STATUS_CODE = 429

_STATUS_IN_MESSAGE = re.compile(r"\[(\d{3})\]")


class RetryPolicy(BaseModel):
    """Tunable backoff settings.

    Args:
        overload_initial_delay: First wait after a 503.
        overload_delay_increment: Added to the wait on each further 503.
        overload_max_delay: Upper bound for the 503 wait.
        other_delays: Waits for other errors; its length is the retry limit.
        poll_interval: How often a wait checks for cancellation.
    """

    overload_initial_delay: float = Field(default=DEFAULT_OVERLOAD_INITIAL_DELAY, ge=0)
    overload_delay_increment: float = Field(default=DEFAULT_OVERLOAD_DELAY_INCREMENT, ge=0)
    overload_max_delay: float = Field(default=DEFAULT_OVERLOAD_MAX_DELAY, ge=0)
    other_delays: tuple[float, ...] = Field(default=DEFAULT_OTHER_DELAYS)
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0)

    @property
    def max_other_retries(self) -> int:
        return len(self.other_delays)

    def overload_delay(self, retries: int) -> float:
        """Delay before retry number ``retries`` (0-indexed) after a 503."""
        return min(
            self.overload_initial_delay + retries * self.overload_delay_increment,
            self.overload_max_delay,
        )


class CancellationToken:
    """Cooperative cancellation flag shared by a turn and its waits."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def reset(self) -> None:
        self._cancelled = False

    def raise_if_cancelled(self) -> None:
        """Raise CancellationError if cancellation was requested."""
        if self._cancelled:
            raise CancellationError()


SleepFunc = Callable[[float, CancellationToken], Awaitable[None]]
StatusCallback = Callable[[str], None]


async def cancellable_sleep(
    seconds: float,
    token: CancellationToken,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
) -> None:
    """Sleep for ``seconds`` unless the token is cancelled first.

    Raises:
        CancellationError: If the token is cancelled during the wait.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + seconds
    while True:
        token.raise_if_cancelled()
        remaining = deadline - loop.time()
        if remaining <= 0:
            return
        await asyncio.sleep(min(poll_interval, remaining))


def extract_status_code(error: BaseException) -> int | None:
    """Find an HTTP-like status code on an error.

    Checked in order: a structured ``status_code``/``code``/``status``
    attribute, the message parsed as JSON (``{"error": {"code": 503}}`` or
    ``{"code": 503}``), then a ``[nnn]`` marker in the message.

    Args:
        error: The exception raised by a failed attempt.

    Returns:
        The status code, or None if none could be found.
    """
    for attr in ("status_code", "code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value

    message = str(error)
    try:
        body: Any = json.loads(message)
    except ValueError:
        body = None
    if isinstance(body, dict):
        nested = body.get("error")
        code = nested.get("code") if isinstance(nested, dict) else body.get("code")
        if isinstance(code, int) and not isinstance(code, bool):
            return code

    match = _STATUS_IN_MESSAGE.search(message)
    if match:
        return int(match.group(1))
    return None


async def call_with_retries(
    attempt: Callable[[], Awaitable[T]],
    token: CancellationToken,
    policy: RetryPolicy | None = None,
    on_status: StatusCallback | None = None,
    sleep: SleepFunc | None = None,
) -> T:
    """Run ``attempt`` until it succeeds, a fatal error occurs, or the user cancels.

    Args:
        attempt: Coroutine factory performing one backend call.
        token: Cancellation token checked before every attempt and during waits.
        policy: Backoff settings. Defaults to RetryPolicy().
        on_status: Receives user-facing status text (retry notices, errors).
        sleep: Interruptible sleep, replaceable in tests.

    Returns:
        Whatever the first successful attempt returned.

    Raises:
        CancellationError: If the token is cancelled.
        FatalBackendError: On a 500 response.
        RetriesExhaustedError: When a non-503 error outlives the retry limit.
    """
    policy = policy or RetryPolicy()
    notify = on_status or (lambda message: None)
    if sleep is None:
        async def sleep(seconds: float, tok: CancellationToken) -> None:
            await cancellable_sleep(seconds, tok, policy.poll_interval)

    overload_retries = 0
    other_retries = 0

    while True:
        token.raise_if_cancelled()

        try:
            return await attempt()
        except Exception as error:
            token.raise_if_cancelled()

            status_code = extract_status_code(error)
            message = str(error)
            logger.warning(f"Backend call failed (status: {status_code}): {message}")

            if status_code == FATAL_STATUS_CODE:
                notify(
                    "Error: A server error occurred. The input context may be too long. "
                    "Please shorten your prompt or reduce the number of attached files."
                    f"\n\nDetails: {message}"
                )
                logger.error(f"Fatal backend error, not retrying: {message}")
                raise FatalBackendError(message, status_code=status_code, cause=error) from error

            if status_code == OVERLOADED_STATUS_CODE:
                delay = policy.overload_delay(overload_retries)
                overload_retries += 1
                notify(f"Model is overloaded. Retrying in {delay:g}s...")
                await sleep(delay, token)
                other_retries = 0
                continue

            if other_retries < policy.max_other_retries:
                delay = policy.other_delays[other_retries]
                retry_number = other_retries + 1
                if status_code == RATE_LIMITED_STATUS_CODE:
                    notify(
                        f"API rate limit reached. Retrying in {delay:g}s... "
                        f"(Attempt {retry_number}/{policy.max_other_retries})"
                    )
                else:
                    notify(
                        f"An unknown error occurred. Retrying in {delay:g}s... "
                        f"(Attempt {retry_number}/{policy.max_other_retries})"
                    )
                other_retries += 1
                await sleep(delay, token)
                overload_retries = 0
                continue

            notify(
                "Error: Maximum retries reached for this issue. Please try again later."
                f"\n\nDetails: {message}"
            )
            logger.error(f"Retries exhausted after {other_retries} attempts: {message}")
            raise RetriesExhaustedError(
                message, attempts=other_retries, status_code=status_code, cause=error
            ) from error
