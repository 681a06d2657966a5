"""Chat endpoints.

These endpoints submit prompts to the chat session, expose its transcript,
and let the caller cancel a running turn or clear the history.
"""

from typing import Any, Literal

from fastapi import APIRouter
from pydantic import BaseModel, Field

from api.dependencies import ChatSessionDep
from api.exceptions import PromptInProgressError
from client.modes import ModeId
from client.session import ChatSession

router = APIRouter(
    prefix="/chat",
    tags=["chat"],
)


# Request/Response Models


class SubmitPromptRequest(BaseModel):
    """Request model for submitting a prompt.

    Attributes:
        text: The user's prompt.
        mode: Chat mode id. Defaults to the session's mode.
        streaming: Whether to stream the response. Defaults to the session setting.
    """

    text: str = Field(min_length=1)
    mode: ModeId | None = None
    streaming: bool | None = None


class SubmitPromptResponse(BaseModel):
    """Response model for a finished turn.

    Attributes:
        status: How the turn ended: completed, cancelled or error.
        iterations: Number of backend requests made.
        error: Error text when the turn failed.
        messages: Transcript entries added by this turn.
    """

    status: Literal["completed", "cancelled", "error"]
    iterations: int
    error: str | None = None
    messages: list[dict[str, Any]]


class ChatHistoryResponse(BaseModel):
    """Response model for the chat transcript.

    Attributes:
        is_processing: Whether a turn is running.
        messages: Every transcript entry, error entries included.
    """

    is_processing: bool
    messages: list[dict[str, Any]]


class CancelResponse(BaseModel):
    """Response model for a cancel request.

    Attributes:
        cancelled: True if a running turn was asked to stop.
    """

    cancelled: bool


def _dump_messages(session: ChatSession, messages=None) -> list[dict[str, Any]]:
    source = session.history if messages is None else messages
    return [message.model_dump(mode="json", exclude_none=True) for message in source]


# Route Handlers


@router.get("/history", response_model=ChatHistoryResponse)
async def get_history(session: ChatSessionDep):
    """Get the full transcript."""
    return ChatHistoryResponse(
        is_processing=session.is_processing,
        messages=_dump_messages(session),
    )


@router.post("/prompt", response_model=SubmitPromptResponse)
async def submit_prompt(request: SubmitPromptRequest, session: ChatSessionDep):
    """Submit a prompt and wait for the turn to finish.

    In coder mode with a linked project the model may edit the virtual
    filesystem through tool calls before answering.

    Args:
        request: The prompt and per-turn options.
        session: The ChatSession instance (injected by FastAPI).

    Returns:
        The turn outcome and the transcript entries it added.

    Raises:
        PromptInProgressError: If another turn is still running (409).
    """
    if session.is_processing:
        raise PromptInProgressError()
    result = await session.submit_prompt(
        request.text, mode=request.mode, streaming=request.streaming
    )
    return SubmitPromptResponse(
        status=result.status,
        iterations=result.iterations,
        error=result.error,
        messages=_dump_messages(session, result.messages),
    )


@router.post("/cancel", response_model=CancelResponse)
async def cancel_prompt(session: ChatSessionDep):
    """Ask the running turn, if any, to stop."""
    was_processing = session.is_processing
    session.cancel()
    return CancelResponse(cancelled=was_processing)


@router.delete("/history", response_model=ChatHistoryResponse)
async def clear_history(session: ChatSessionDep):
    """Clear the transcript. Responds 409 while a turn is running."""
    if session.is_processing:
        raise PromptInProgressError("Cannot clear the chat while a prompt is being processed")
    session.clear()
    return ChatHistoryResponse(is_processing=False, messages=[])
