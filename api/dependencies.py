"""Dependency injection providers for the FastAPI application.

This module owns the application's single workspace: one VirtualFilesystem
and the ChatSession bound to it. Route handlers receive them through FastAPI
dependencies instead of reaching for globals themselves.
"""

import logging
import os
from typing import Annotated

from fastapi import Depends
from pydantic import BaseModel, ConfigDict

from client import ChatSession, GeminiBackend, SessionSettings
from client.session import DEFAULT_MODEL
from models.filesystem import VirtualFilesystem

logger = logging.getLogger(__name__)


class Workspace(BaseModel):
    """The project store and the chat session operating on it."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    filesystem: VirtualFilesystem
    session: ChatSession


# Global state
# Created once when the app starts and torn down on shutdown
_workspace: Workspace | None = None


def get_workspace() -> Workspace:
    """Get the shared Workspace instance.

    Raises:
        RuntimeError: If the workspace hasn't been initialized yet.
    """
    if _workspace is None:
        raise RuntimeError("Workspace not initialized. Call initialize_workspace() first.")
    return _workspace


def get_filesystem(workspace: Annotated[Workspace, Depends(get_workspace)]) -> VirtualFilesystem:
    """Get the workspace's virtual filesystem."""
    return workspace.filesystem


def get_chat_session(workspace: Annotated[Workspace, Depends(get_workspace)]) -> ChatSession:
    """Get the workspace's chat session."""
    return workspace.session


def initialize_workspace(
    api_key: str | None = None,
    settings: SessionSettings | None = None,
) -> Workspace:
    """Create the shared Workspace.

    Without an API key the session is created without a backend; prompts then
    end with an error entry asking for a key.

    Args:
        api_key: Gemini API key. Defaults to the GEMINI_API_KEY environment variable.
        settings: Session settings. Defaults use the GEMINI_MODEL environment variable.

    Returns:
        The newly created Workspace.
    """
    global _workspace

    api_key = api_key if api_key is not None else os.getenv("GEMINI_API_KEY", "")
    if settings is None:
        settings = SessionSettings(model=os.getenv("GEMINI_MODEL", DEFAULT_MODEL))

    backend = GeminiBackend(api_key=api_key) if api_key else None
    if backend is None:
        logger.warning("GEMINI_API_KEY is not set; chat requests will fail until it is")

    filesystem = VirtualFilesystem()
    _workspace = Workspace(
        filesystem=filesystem,
        session=ChatSession(filesystem, backend, settings),
    )
    return _workspace


async def shutdown_workspace() -> None:
    """Release the workspace and close its backend connection."""
    global _workspace

    if _workspace is not None:
        backend = _workspace.session.backend
        if isinstance(backend, GeminiBackend):
            await backend.close()
    _workspace = None


# Type aliases for cleaner route signatures
FilesystemDep = Annotated[VirtualFilesystem, Depends(get_filesystem)]
ChatSessionDep = Annotated[ChatSession, Depends(get_chat_session)]
