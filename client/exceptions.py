"""Exception hierarchy for the backend client and chat session.

Exception Hierarchy:
    CoderClientError (base)
    ├── CancellationError - the user cancelled the in-flight turn
    └── BackendError - a backend call failed (retried unless fatal)
        └── FatalBackendError - not retried; ends the turn
            ├── RetriesExhaustedError - transient retries used up
            └── ToolLoopLimitError - the model kept issuing tool calls

Example:
    Handling the end of a turn::

        try:
            await session.submit_prompt("Refactor utils.py")
        except CancellationError:
            pass
        except FatalBackendError as e:
            print(f"Turn failed ({e.status_code}): {e.message}")
"""

from typing import Any


class CoderClientError(Exception):
    """Base exception for all client errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
        """
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation of the error."""
        return self.message


class CancellationError(CoderClientError):
    """The user cancelled the request.

    Raised at the next cancellation checkpoint: before an attempt, during a
    backoff wait, between stream chunks, or around tool execution.
    """

    def __init__(self, message: str = "Cancelled by user") -> None:
        super().__init__(message)


class BackendError(CoderClientError):
    """A call to the generative backend failed.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code, when known.
        details: Parsed error body, when available.
        cause: The underlying exception, when this wraps another error.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            status_code: HTTP status code, when known.
            details: Parsed error body.
            cause: Underlying exception.
        """
        self.status_code = status_code
        self.details = details
        self.cause = cause
        super().__init__(message)


class FatalBackendError(BackendError):
    """A backend error that must not be retried.

    Raised immediately for HTTP 500, which usually means the request
    context is too large for the model.
    """


class RetriesExhaustedError(FatalBackendError):
    """A transient error persisted past the retry limit.

    Attributes:
        attempts: Number of retries made before giving up.
    """

    def __init__(
        self,
        message: str,
        attempts: int,
        status_code: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.attempts = attempts
        super().__init__(message, status_code=status_code, cause=cause)


class ToolLoopLimitError(FatalBackendError):
    """The model issued tool calls on more consecutive requests than allowed.

    Attributes:
        iterations: The number of requests made in the turn.
    """

    def __init__(self, iterations: int) -> None:
        self.iterations = iterations
        super().__init__(
            f"The model kept issuing tool calls after {iterations} requests; "
            "the turn was stopped."
        )
