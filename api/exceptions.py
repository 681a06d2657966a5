"""Exception handlers for the FastAPI application.

This module converts Python exceptions into consistent JSON responses.
"""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from models.filesystem import PathExistsError
from models.path_tree import PathConflictError

logger = logging.getLogger(__name__)


class DeletionNotConfirmedError(Exception):
    """Raised when a delete request arrives without explicit confirmation.

    Args:
        path: The path the caller asked to delete.
    """

    def __init__(self, path: str):
        self.path = path
        super().__init__(f'Deleting "{path}" requires confirmation')


class PromptInProgressError(Exception):
    """Raised when a prompt is submitted while another one is still running."""

    def __init__(self, message: str = "A prompt is already being processed"):
        self.message = message
        super().__init__(message)


async def path_exists_handler(request: Request, exc: PathExistsError):
    """Handle PathExistsError with a 409 naming the colliding path."""
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={
            "error": "Path Exists",
            "detail": str(exc),
            "path": exc.path,
        },
    )


async def path_conflict_handler(request: Request, exc: PathConflictError):
    """Handle PathConflictError (file/directory collisions) with a 409."""
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={
            "error": "Path Conflict",
            "detail": str(exc),
            "path": exc.path,
        },
    )


async def deletion_not_confirmed_handler(request: Request, exc: DeletionNotConfirmedError):
    """Handle DeletionNotConfirmedError.

    Returns a 400 telling the caller how to confirm.
    """
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Confirmation Required",
            "detail": str(exc),
            "suggestion": "Repeat the request with confirm=true",
        },
    )


async def prompt_in_progress_handler(request: Request, exc: PromptInProgressError):
    """Handle PromptInProgressError with a 409."""
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={
            "error": "Prompt In Progress",
            "detail": exc.message,
            "suggestion": "Wait for the current prompt or POST /chat/cancel",
        },
    )


async def validation_exception_handler(request: Request, exc: ValidationError):
    """Handle Pydantic validation errors raised inside handlers."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "Validation Error",
            "detail": "The request data failed validation",
            "validation_errors": exc.errors(),
        },
    )


async def value_error_handler(request: Request, exc: ValueError):
    """Handle ValueError exceptions.

    ValueErrors indicate input that passed schema validation but failed
    business logic validation.
    """
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Invalid Value",
            "detail": str(exc),
            "type": "ValueError",
        },
    )


async def os_error_handler(request: Request, exc: OSError):
    """Handle OSError raised while reading or writing a real directory."""
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Disk Error",
            "detail": str(exc),
            "type": type(exc).__name__,
        },
    )


async def runtime_error_handler(request: Request, exc: RuntimeError):
    """Handle RuntimeError exceptions."""
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Runtime Error",
            "detail": str(exc),
            "type": "RuntimeError",
        },
    )


async def generic_exception_handler(request: Request, exc: Exception):
    """Handle any unhandled exceptions.

    This is a catch-all handler for unexpected errors. It prevents
    stack traces from being exposed to clients.
    """
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal Server Error",
            "detail": "An unexpected error occurred",
            "type": type(exc).__name__,
        },
    )
