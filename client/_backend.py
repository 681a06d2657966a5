"""Backend transport for the Gemini generative language REST API.

The rest of the client only depends on the ``Backend`` protocol: one call
returning an aggregate response, and one returning a stream of chunks.
``GeminiBackend`` implements it with httpx.

This is an internal module and should not be imported directly by users.
"""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol

import httpx

from client.exceptions import BackendError
from client.models import (
    ChatMessage,
    FunctionCall,
    GenerateRequest,
    GenerateResponse,
    ResponseChunk,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TIMEOUT = 300.0


class Backend(Protocol):
    """Interface to a generative model backend."""

    async def generate_content(self, request: GenerateRequest) -> GenerateResponse:
        """Run one request and return the complete response."""
        ...

    async def generate_content_stream(
        self, request: GenerateRequest
    ) -> AsyncIterator[ResponseChunk]:
        """Open a streamed response.

        Errors from opening the stream are raised by the awaited call itself,
        so that they can be retried; the returned iterator yields chunks.
        """
        ...


def _parse_error_response(response: httpx.Response) -> tuple[str, dict | None]:
    """Extract a message and the parsed body from an error response."""
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return text or f"HTTP {response.status_code} error", None

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"]), body
        if isinstance(error, str):
            return error, body
    return str(body), body if isinstance(body, dict) else None


def _raise_for_status(response: httpx.Response) -> None:
    """Raise BackendError for non-2xx responses.

    The message carries a ``[status]`` marker so the status survives even
    if only the message is inspected.
    """
    if response.is_success:
        return
    message, details = _parse_error_response(response)
    raise BackendError(
        message=f"[{response.status_code}] {message}",
        status_code=response.status_code,
        details=details,
    )


def _content_to_api(message: ChatMessage) -> dict[str, Any]:
    # Gemini has no "tool" role; function responses travel as user content.
    role = "user" if message.role == "tool" else message.role
    return {"role": role, "parts": [part.to_api() for part in message.parts]}


def build_request_body(request: GenerateRequest) -> dict[str, Any]:
    """Translate a GenerateRequest into a Gemini JSON request body."""
    body: dict[str, Any] = {
        "contents": [_content_to_api(message) for message in request.contents],
    }
    if request.system_instruction:
        body["systemInstruction"] = {"parts": [{"text": request.system_instruction}]}
    if request.tools:
        body["tools"] = [{"functionDeclarations": request.tools}]
    generation_config: dict[str, Any] = {}
    if request.response_mime_type:
        generation_config["responseMimeType"] = request.response_mime_type
    if request.response_schema:
        generation_config["responseSchema"] = request.response_schema
    if generation_config:
        body["generationConfig"] = generation_config
    return body


def _iter_parts(payload: dict[str, Any]) -> list[dict[str, Any]]:
    candidates = payload.get("candidates") or []
    if not candidates:
        return []
    content = candidates[0].get("content") or {}
    return content.get("parts") or []


def parse_response(payload: dict[str, Any]) -> GenerateResponse:
    """Collect text and function calls from a Gemini response payload."""
    text = ""
    calls: list[FunctionCall] = []
    for part in _iter_parts(payload):
        if part.get("thought"):
            continue
        if "text" in part:
            text += part["text"]
        if "functionCall" in part:
            calls.append(FunctionCall.model_validate(part["functionCall"]))
    return GenerateResponse(text=text, function_calls=calls)


def parse_chunks(payload: dict[str, Any]) -> list[ResponseChunk]:
    """Split one streamed payload into single-item chunks."""
    chunks = []
    for part in _iter_parts(payload):
        if part.get("thought"):
            continue
        if part.get("text"):
            chunks.append(ResponseChunk(text=part["text"]))
        if "functionCall" in part:
            chunks.append(
                ResponseChunk(function_call=FunctionCall.model_validate(part["functionCall"]))
            )
    return chunks


class GeminiBackend:
    """Backend talking to the Gemini REST API.

    Attributes:
        base_url: API root URL.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the backend.

        Args:
            api_key: Google AI API key.
            base_url: API root URL.
            timeout: Request timeout in seconds.
            transport: Custom transport (e.g., MockTransport for testing).

        Raises:
            ValueError: If the API key is empty.
        """
        if not api_key:
            raise ValueError("API Key is missing. Please add it in settings.")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"x-goog-api-key": api_key},
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "GeminiBackend":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _send(self, http_request: httpx.Request, stream: bool = False) -> httpx.Response:
        try:
            return await self._client.send(http_request, stream=stream)
        except httpx.TimeoutException as e:
            raise BackendError(f"Request to {http_request.url} timed out", cause=e) from e
        except httpx.TransportError as e:
            raise BackendError(f"Failed to connect to {http_request.url}: {e}", cause=e) from e

    async def generate_content(self, request: GenerateRequest) -> GenerateResponse:
        """Run a non-streaming generateContent call.

        Raises:
            BackendError: On transport failure or a non-2xx response.
        """
        http_request = self._client.build_request(
            "POST",
            f"/models/{request.model}:generateContent",
            json=build_request_body(request),
        )
        response = await self._send(http_request)
        _raise_for_status(response)
        return parse_response(response.json())

    async def generate_content_stream(
        self, request: GenerateRequest
    ) -> AsyncIterator[ResponseChunk]:
        """Open a streamGenerateContent call using server-sent events.

        Raises:
            BackendError: If the stream cannot be opened.
        """
        http_request = self._client.build_request(
            "POST",
            f"/models/{request.model}:streamGenerateContent",
            params={"alt": "sse"},
            json=build_request_body(request),
        )
        response = await self._send(http_request, stream=True)
        if not response.is_success:
            await response.aread()
            await response.aclose()
            _raise_for_status(response)
        return self._iter_stream(response)

    async def _iter_stream(self, response: httpx.Response) -> AsyncIterator[ResponseChunk]:
        try:
            async for line in response.aiter_lines():
                if not line.startswith("data:"):
                    continue
                data = line[len("data:"):].strip()
                if not data:
                    continue
                try:
                    payload = json.loads(data)
                except ValueError:
                    logger.warning(f"Skipping malformed stream event: {data[:200]}")
                    continue
                for chunk in parse_chunks(payload):
                    yield chunk
        finally:
            await response.aclose()
