"""Chat transcript and backend request/response models.

These models mirror the Gemini ``Content``/``Part`` shapes closely enough to
be serialized straight into a request body (camelCase aliases), while staying
plain pydantic models for the rest of the code.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FunctionCall(_CamelModel):
    """A tool call issued by the model.

    Args:
        name: Tool name. The backend may omit it.
        args: Tool arguments. The backend may omit them.
    """

    name: str | None = None
    args: dict[str, Any] | None = None


class FunctionResponsePayload(_CamelModel):
    """Response to a tool call, sent back to the model."""

    name: str
    response: dict[str, Any]


class ChatPart(_CamelModel):
    """One part of a chat message. Exactly one field is set."""

    text: str | None = None
    function_call: FunctionCall | None = None
    function_response: FunctionResponsePayload | None = None

    def to_api(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ChatMessage(BaseModel):
    """A single transcript entry.

    Args:
        role: Who produced the message.
        parts: Message content.
        is_error: Marks a terminal error entry; never sent to the backend.
    """

    role: Literal["user", "model", "tool"]
    parts: list[ChatPart] = Field(default_factory=list)
    is_error: bool = False

    @classmethod
    def from_text(cls, role: Literal["user", "model", "tool"], text: str) -> "ChatMessage":
        return cls(role=role, parts=[ChatPart(text=text)])

    @property
    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(part.text for part in self.parts if part.text)

    @property
    def function_calls(self) -> list[FunctionCall]:
        return [part.function_call for part in self.parts if part.function_call]


class GenerateRequest(BaseModel):
    """Everything the backend needs for one call.

    Args:
        model: Backend model name.
        contents: Ordered conversation history.
        system_instruction: Optional system prompt.
        tools: Optional function declarations.
        response_mime_type: Requested output format, e.g. "application/json".
        response_schema: Schema the output must follow (JSON output only).
    """

    model: str
    contents: list[ChatMessage]
    system_instruction: str | None = None
    tools: list[dict[str, Any]] | None = None
    response_mime_type: str | None = None
    response_schema: dict[str, Any] | None = None


class GenerateResponse(BaseModel):
    """Aggregate (non-streaming) backend response."""

    text: str = ""
    function_calls: list[FunctionCall] = Field(default_factory=list)


class ResponseChunk(BaseModel):
    """One streamed increment: at most one text fragment or one function call."""

    text: str | None = None
    function_call: FunctionCall | None = None
