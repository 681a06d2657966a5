"""Chat session: the per-turn request/tool-call loop.

A turn starts when the user submits a prompt and runs until the model answers
without tool calls, the user cancels, an error ends it, or the iteration cap
is reached. Each iteration:

1. builds the outgoing history (serialized project context injected as the
   second-to-last turn in coder mode, or last when the history ends with
   tool results),
2. sends it through the retry engine, streaming or not,
3. records the model's reply, and
4. if the reply contains tool calls, applies them to the virtual filesystem
   and appends a tool turn with one response per call.

While a request is in flight the transcript ends with a placeholder model
message that shows status text (retry notices) or streamed text.
"""

import logging
from collections.abc import AsyncIterator
from typing import Literal

from pydantic import BaseModel, Field

from client._backend import Backend
from client._retry import CancellationToken, RetryPolicy, SleepFunc, call_with_retries
from client.exceptions import CancellationError, ToolLoopLimitError
from client.models import (
    ChatMessage,
    ChatPart,
    FunctionCall,
    FunctionResponsePayload,
    GenerateRequest,
    GenerateResponse,
)
from client.modes import CONTEXT_PREAMBLE, THINK_PRIMER, Mode, get_mode, strip_think_block
from client.pipeline import PIPELINE_CONTEXT_PREAMBLE, AdvancedCoderPipeline, PipelineSettings
from models.filesystem import VirtualFilesystem
from models.function_calls import FILE_SYSTEM_TOOLS

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_MAX_TOOL_ITERATIONS = 25


class SessionSettings(BaseModel):
    """Per-session configuration.

    Args:
        model: Backend model name.
        mode: Default chat mode id.
        streaming: Whether to stream responses by default.
        max_tool_iterations: Maximum tool-loop requests in a single turn.
        retry_policy: Backoff settings for backend calls.
        pipeline: Models and fan-out for the advanced coder.
    """

    model: str = DEFAULT_MODEL
    mode: str = "default"
    streaming: bool = False
    max_tool_iterations: int = Field(default=DEFAULT_MAX_TOOL_ITERATIONS, ge=1)
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)


class TurnResult(BaseModel):
    """Outcome of one submitted prompt.

    Args:
        status: How the turn ended.
        iterations: Number of backend requests made.
        error: Error text when the turn failed.
        messages: Transcript entries added by this turn.
    """

    status: Literal["completed", "cancelled", "error"]
    iterations: int
    error: str | None = None
    messages: list[ChatMessage] = Field(default_factory=list)


def clean_history(messages: list[ChatMessage]) -> list[ChatMessage]:
    """Prepare transcript messages for the backend.

    Error entries are dropped, model text loses its think block, empty text
    parts are removed, and messages left without parts are skipped.
    """
    cleaned = []
    for message in messages:
        if message.is_error:
            continue
        parts = message.parts
        if message.role == "model":
            parts = []
            for part in message.parts:
                if part.text is not None:
                    text = strip_think_block(part.text)
                    if text:
                        parts.append(ChatPart(text=text))
                else:
                    parts.append(part)
        if parts:
            cleaned.append(ChatMessage(role=message.role, parts=parts))
    return cleaned


def _context_index(messages: list[ChatMessage]) -> int:
    # A function response must directly follow its call.
    if messages and messages[-1].role == "tool":
        return len(messages)
    return max(len(messages) - 1, 0)


class ChatSession:
    """A conversation with the backend bound to one virtual filesystem.

    Attributes:
        filesystem: The project store tool calls are applied to.
        backend: The generative backend.
        settings: Session configuration.
        history: The visible transcript.
        is_processing: Whether a turn is in progress.
    """

    def __init__(
        self,
        filesystem: VirtualFilesystem,
        backend: Backend | None,
        settings: SessionSettings | None = None,
        sleep: SleepFunc | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            filesystem: The project store.
            backend: The backend, or None when no API key is configured.
            settings: Session configuration.
            sleep: Interruptible sleep for backoff waits, replaceable in tests.
        """
        self.filesystem = filesystem
        self.backend = backend
        self.settings = settings or SessionSettings()
        self.history: list[ChatMessage] = []
        self.is_processing = False
        self._token = CancellationToken()
        self._sleep = sleep
        self._placeholder_active = False
        self._placeholder_has_text = False
        self._requests = 0

    # ===== Controls =====

    def cancel(self) -> None:
        """Request cancellation of the turn in progress."""
        if self.is_processing:
            logger.info("Cancellation requested")
            self._token.cancel()

    def clear(self) -> None:
        """Clear the transcript.

        Raises:
            RuntimeError: If a turn is in progress.
        """
        if self.is_processing:
            raise RuntimeError("Cannot clear the chat while a prompt is being processed")
        self.history = []

    # ===== Placeholder handling =====

    def _start_placeholder(self) -> None:
        self.history.append(ChatMessage.from_text("model", ""))
        self._placeholder_active = True
        self._placeholder_has_text = False

    def _set_placeholder_text(self, text: str, is_model_text: bool) -> None:
        if not self._placeholder_active:
            return
        self.history[-1] = ChatMessage.from_text("model", text)
        self._placeholder_has_text = is_model_text

    def _on_status(self, message: str) -> None:
        self._set_placeholder_text(message, is_model_text=False)

    def _drop_placeholder(self) -> None:
        if self._placeholder_active:
            self.history.pop()
            self._placeholder_active = False

    def _record_error(self, error_text: str) -> None:
        error_message = ChatMessage(
            role="model", parts=[ChatPart(text=f"Error: {error_text}")], is_error=True
        )
        if self._placeholder_active and not self._placeholder_has_text:
            self.history[-1] = error_message
        else:
            self.history.append(error_message)
        self._placeholder_active = False

    # ===== Request building =====

    def _build_request(self, mode: Mode, first_iteration: bool) -> GenerateRequest:
        project_linked = self.filesystem.is_linked
        # The in-flight placeholder is never part of the request.
        contents = clean_history(self.history[:-1] if self._placeholder_active else self.history)

        if mode.is_coder and project_linked:
            context = self.filesystem.get_serializable_context()
            if context:
                contents.insert(
                    _context_index(contents),
                    ChatMessage.from_text("user", f"{CONTEXT_PREAMBLE}\n\n{context}"),
                )

        if mode.is_coder and first_iteration:
            contents.append(ChatMessage.from_text("model", THINK_PRIMER))

        return GenerateRequest(
            model=self.settings.model,
            contents=contents,
            system_instruction=mode.instruction_for(project_linked),
            tools=FILE_SYSTEM_TOOLS if mode.is_coder and project_linked else None,
        )

    def _pipeline_history(self) -> list[ChatMessage]:
        contents = clean_history(self.history[:-1] if self._placeholder_active else self.history)
        context = self.filesystem.get_serializable_context()
        if context:
            contents.insert(
                _context_index(contents),
                ChatMessage.from_text("user", f"{PIPELINE_CONTEXT_PREAMBLE}\n\n{context}"),
            )
        return contents

    # ===== Backend calls =====

    def _require_backend(self) -> Backend:
        if self.backend is None:
            raise RuntimeError("API Key is missing. Please add it in settings.")
        return self.backend

    async def _generate_once(self, request: GenerateRequest) -> GenerateResponse:
        backend = self._require_backend()
        self._requests += 1
        return await call_with_retries(
            lambda: backend.generate_content(request),
            self._token,
            self.settings.retry_policy,
            self._on_status,
            self._sleep,
        )

    async def _generate(
        self, request: GenerateRequest, streaming: bool
    ) -> tuple[str, list[FunctionCall]]:
        if not streaming:
            response = await self._generate_once(request)
            return response.text, list(response.function_calls)

        backend = self._require_backend()
        self._requests += 1
        stream: AsyncIterator = await call_with_retries(
            lambda: backend.generate_content_stream(request),
            self._token,
            self.settings.retry_policy,
            self._on_status,
            self._sleep,
        )
        text = ""
        calls: list[FunctionCall] = []
        try:
            async for chunk in stream:
                if self._token.cancelled:
                    break
                if chunk.text:
                    text += chunk.text
                    self._set_placeholder_text(text, is_model_text=True)
                if chunk.function_call:
                    calls.append(chunk.function_call)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        self._token.raise_if_cancelled()
        return text, calls

    # ===== Recording results =====

    def _record_reply(self, text: str, calls: list[FunctionCall]) -> bool:
        """Replace the placeholder with the model's reply.

        Returns:
            False when the reply was empty and the placeholder was dropped.
        """
        if not text and not calls:
            self._drop_placeholder()
            return False
        parts = [ChatPart(text=text)] if text else []
        parts.extend(ChatPart(function_call=call) for call in calls)
        self.history[-1] = ChatMessage(role="model", parts=parts)
        self._placeholder_active = False
        return True

    def _apply_calls(self, calls: list[FunctionCall]) -> None:
        self._token.raise_if_cancelled()
        responses = self.filesystem.apply_function_calls(calls)
        self._token.raise_if_cancelled()
        self.history.append(
            ChatMessage(
                role="tool",
                parts=[
                    ChatPart(
                        function_response=FunctionResponsePayload(name=r.name, response=r.response)
                    )
                    for r in responses
                ],
            )
        )

    # ===== Turn strategies =====

    async def _run_tool_loop(self, mode: Mode, streaming: bool) -> None:
        while True:
            if self._requests >= self.settings.max_tool_iterations:
                raise ToolLoopLimitError(self._requests)

            self._token.raise_if_cancelled()
            self._start_placeholder()
            request = self._build_request(mode, first_iteration=self._requests == 0)
            response_text, calls = await self._generate(request, streaming)
            self._token.raise_if_cancelled()

            if not self._record_reply(response_text, calls) or not calls:
                return
            self._apply_calls(calls)

    async def _run_pipeline(self) -> None:
        self._start_placeholder()
        pipeline = AdvancedCoderPipeline(
            self._generate_once, self.settings.pipeline, self._on_status
        )
        result = await pipeline.run(self._pipeline_history())
        self._token.raise_if_cancelled()

        if self._record_reply(result.summary, result.function_calls) and result.function_calls:
            self._apply_calls(result.function_calls)

    # ===== Turn entry point =====

    async def submit_prompt(
        self,
        text: str,
        mode: str | None = None,
        streaming: bool | None = None,
    ) -> TurnResult:
        """Send a user prompt and run the turn until it ends.

        Coder and default modes run the tool-call loop. The advanced coder
        runs the multi-phase pipeline and applies its file operations once.
        Cancellation and backend errors do not raise; they are reflected in
        the returned TurnResult and in the transcript (an ``Error:`` entry for
        failures, nothing for cancellation).

        Args:
            text: The user's prompt.
            mode: Chat mode id; defaults to the session setting.
            streaming: Whether to stream; defaults to the session setting.
                Ignored by the advanced coder.

        Returns:
            A TurnResult describing how the turn ended.

        Raises:
            RuntimeError: If another turn is already in progress.
            ValueError: If the mode does not exist.
        """
        if self.is_processing:
            raise RuntimeError("A prompt is already being processed")
        active_mode = get_mode(mode or self.settings.mode)
        use_streaming = self.settings.streaming if streaming is None else streaming

        self.is_processing = True
        self._token.reset()
        self._requests = 0
        start_index = len(self.history)
        self.history.append(ChatMessage.from_text("user", text))
        error_text: str | None = None
        logger.info(f"Turn started (mode={active_mode.id}, streaming={use_streaming})")

        try:
            if active_mode.is_pipeline:
                await self._run_pipeline()
            else:
                await self._run_tool_loop(active_mode, use_streaming)
            status = "completed"
        except CancellationError:
            self._drop_placeholder()
            status = "cancelled"
            logger.info("Turn cancelled by user")
        except Exception as e:
            error_text = str(e) or type(e).__name__
            self._record_error(error_text)
            status = "error"
            logger.error(f"Turn failed: {error_text}")
        finally:
            self.is_processing = False
            self._placeholder_active = False
            self._token.reset()

        logger.info(f"Turn finished with status {status} after {self._requests} requests")
        return TurnResult(
            status=status,
            iterations=self._requests,
            error=error_text,
            messages=self.history[start_index:],
        )
