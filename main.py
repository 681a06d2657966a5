"""Main entry point for the Gemini Coder FastAPI application.

This module creates and configures the FastAPI app that serves the virtual
project filesystem and the chat session driving the Gemini backend.

Configuration is read from the environment (a ``.env`` file is loaded first):
    GEMINI_API_KEY: API key for the Gemini backend.
    GEMINI_MODEL: Model name, defaults to gemini-2.5-flash.

To run the development server:
    uv run uvicorn main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from pydantic import ValidationError

from api.dependencies import initialize_workspace, shutdown_workspace
from api.exceptions import (
    DeletionNotConfirmedError,
    PromptInProgressError,
    deletion_not_confirmed_handler,
    generic_exception_handler,
    os_error_handler,
    path_conflict_handler,
    path_exists_handler,
    prompt_in_progress_handler,
    runtime_error_handler,
    validation_exception_handler,
    value_error_handler,
)
from api.routes import chat as chat_routes
from api.routes import project as project_routes
from models.filesystem import PathExistsError
from models.path_tree import PathConflictError

load_dotenv()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events.

    Creates the workspace (virtual filesystem plus chat session) at startup
    and closes the backend connection at shutdown.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to FastAPI to handle requests.
    """
    logger.info("Starting Gemini Coder - initializing workspace")
    initialize_workspace()

    yield

    logger.info("Shutting down Gemini Coder")
    await shutdown_workspace()


app = FastAPI(
    title="Gemini Coder",
    description="Virtual project filesystem and tool-calling chat for the Gemini API",
    version="0.1.0",
    lifespan=lifespan,
)

# Register exception handlers
# Order matters: specific exceptions before general ones
app.add_exception_handler(PathExistsError, path_exists_handler)
app.add_exception_handler(PathConflictError, path_conflict_handler)
app.add_exception_handler(DeletionNotConfirmedError, deletion_not_confirmed_handler)
app.add_exception_handler(PromptInProgressError, prompt_in_progress_handler)
app.add_exception_handler(ValidationError, validation_exception_handler)
app.add_exception_handler(ValueError, value_error_handler)
app.add_exception_handler(OSError, os_error_handler)
app.add_exception_handler(RuntimeError, runtime_error_handler)
app.add_exception_handler(Exception, generic_exception_handler)

app.include_router(project_routes.router)
app.include_router(chat_routes.router)


@app.get("/")
async def root():
    """Root endpoint - returns a welcome message."""
    return {
        "message": "Welcome to the Gemini Coder API",
        "version": "0.1.0",
        "docs_url": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    return {"status": "healthy"}
