"""Backend client, retry engine and chat session.

This package drives conversations with the generative backend. It retries
failed calls according to their status code, honours user cancellation, and
runs the tool-call loop that lets the model edit the virtual project.

Example:
    Running a coder turn::

        from client import ChatSession, GeminiBackend, SessionSettings
        from models import VirtualFilesystem

        filesystem = VirtualFilesystem()
        filesystem.sync_entries([("src/app.py", "print('hi')")])

        async with GeminiBackend(api_key="...") as backend:
            session = ChatSession(filesystem, backend, SessionSettings(mode="simple-coder"))
            result = await session.submit_prompt("Add a main() function")

Exports:
    ChatSession: The per-turn request/tool-call loop.
    SessionSettings: Session configuration.
    TurnResult: Outcome of one submitted prompt.
    GeminiBackend: httpx-based backend for the Gemini REST API.
    RetryPolicy: Backoff settings.
    CancellationToken: Cooperative cancellation flag.
    AdvancedCoderPipeline: Multi-phase generation behind the advanced coder mode.

    Exceptions:
        CoderClientError: Base exception for all client errors.
        CancellationError: The user cancelled the turn.
        BackendError: A backend call failed.
        FatalBackendError: A backend error that is not retried.
        RetriesExhaustedError: Retries for a transient error were used up.
        ToolLoopLimitError: The model kept issuing tool calls.
"""

from client._backend import Backend, GeminiBackend
from client._retry import (
    CancellationToken,
    RetryPolicy,
    call_with_retries,
    cancellable_sleep,
    extract_status_code,
)
from client.exceptions import (
    BackendError,
    CancellationError,
    CoderClientError,
    FatalBackendError,
    RetriesExhaustedError,
    ToolLoopLimitError,
)
from client.models import (
    ChatMessage,
    ChatPart,
    FunctionCall,
    FunctionResponsePayload,
    GenerateRequest,
    GenerateResponse,
    ResponseChunk,
)
from client.modes import MODES, Mode, get_mode
from client.pipeline import AdvancedCoderPipeline, PipelineSettings, parse_file_operations
from client.session import ChatSession, SessionSettings, TurnResult

__all__ = [
    # Session
    "ChatSession",
    "SessionSettings",
    "TurnResult",
    # Backend
    "Backend",
    "GeminiBackend",
    # Retry
    "CancellationToken",
    "RetryPolicy",
    "call_with_retries",
    "cancellable_sleep",
    "extract_status_code",
    # Models
    "ChatMessage",
    "ChatPart",
    "FunctionCall",
    "FunctionResponsePayload",
    "GenerateRequest",
    "GenerateResponse",
    "ResponseChunk",
    # Modes
    "MODES",
    "Mode",
    "get_mode",
    # Advanced coder
    "AdvancedCoderPipeline",
    "PipelineSettings",
    "parse_file_operations",
    # Exceptions
    "CoderClientError",
    "CancellationError",
    "BackendError",
    "FatalBackendError",
    "RetriesExhaustedError",
    "ToolLoopLimitError",
]
