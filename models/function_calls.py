"""Execution of model-issued file system tool calls.

The model may call four tools: ``writeFile``, ``createFolder``, ``move`` and
``deletePath``. Each raw call (a name plus an argument mapping) is parsed into
one of a closed set of call models and applied to a project tree.

Execution is pure with respect to the store: it receives the current tree and
tombstones and returns the new versions. The caller decides when to commit.
Failures never raise; they come back as unsuccessful results so they can be
reported to the model as tool responses.
"""

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from models.path_tree import (
    PathTree,
    create_file,
    create_folder,
    delete_path,
    extract_subtree,
    merge_trees,
    move_path,
    normalize_path,
)

logger = logging.getLogger(__name__)


# Tool declarations advertised to the model, in Gemini function-declaration form.
FILE_SYSTEM_TOOLS: list[dict[str, Any]] = [
    {
        "name": "writeFile",
        "description": (
            "Writes content to a file at a given path. Creates the file if it does "
            "not exist, and overwrites it if it does."
        ),
        "parameters": {
            "type": "OBJECT",
            "properties": {"path": {"type": "STRING"}, "content": {"type": "STRING"}},
            "required": ["path", "content"],
        },
    },
    {
        "name": "createFolder",
        "description": "Creates a new directory at a given path.",
        "parameters": {
            "type": "OBJECT",
            "properties": {"path": {"type": "STRING"}},
            "required": ["path"],
        },
    },
    {
        "name": "move",
        "description": "Moves or renames a file or folder.",
        "parameters": {
            "type": "OBJECT",
            "properties": {
                "sourcePath": {"type": "STRING"},
                "destinationPath": {"type": "STRING"},
            },
            "required": ["sourcePath", "destinationPath"],
        },
    },
    {
        "name": "deletePath",
        "description": "Deletes a file or folder at a given path.",
        "parameters": {
            "type": "OBJECT",
            "properties": {"path": {"type": "STRING"}},
            "required": ["path"],
        },
    },
]


class WriteFileCall(BaseModel):
    """Write (create or overwrite) a file."""

    path: str
    content: str

    @field_validator("path")
    @classmethod
    def check_path(cls, value: str) -> str:
        return normalize_path(value)


class CreateFolderCall(BaseModel):
    """Create a directory and its ancestors."""

    path: str

    @field_validator("path")
    @classmethod
    def check_path(cls, value: str) -> str:
        return normalize_path(value)


class MoveCall(BaseModel):
    """Move or rename a file or directory. Overwrites the destination."""

    model_config = ConfigDict(populate_by_name=True)

    source_path: str = Field(alias="sourcePath")
    destination_path: str = Field(alias="destinationPath")

    @field_validator("source_path", "destination_path")
    @classmethod
    def check_paths(cls, value: str) -> str:
        return normalize_path(value)


class DeletePathCall(BaseModel):
    """Delete a file or directory, recording it as a tombstone."""

    path: str

    @field_validator("path")
    @classmethod
    def check_path(cls, value: str) -> str:
        return normalize_path(value)


class UnknownCall(BaseModel):
    """A call to a tool that was never declared."""

    name: str


FileSystemCall = WriteFileCall | CreateFolderCall | MoveCall | DeletePathCall | UnknownCall

_CALL_MODELS: dict[str, type[BaseModel]] = {
    "writeFile": WriteFileCall,
    "createFolder": CreateFolderCall,
    "move": MoveCall,
    "deletePath": DeletePathCall,
}


class FunctionCallResult(BaseModel):
    """Outcome reported back to the model for one tool call.

    Args:
        success: Whether the operation was applied.
        message: Description of what happened (successful calls only).
        error: Why the call failed (failed calls only).
    """

    success: bool
    message: str | None = None
    error: str | None = None

    @classmethod
    def ok(cls, message: str) -> "FunctionCallResult":
        return cls(success=True, message=message)

    @classmethod
    def failure(cls, error: str) -> "FunctionCallResult":
        return cls(success=False, error=error)

    def to_response(self) -> dict[str, Any]:
        """Return the JSON payload sent back as the function response."""
        return self.model_dump(exclude_none=True)


class FunctionCallOutcome(BaseModel):
    """Result of executing a single call plus the resulting trees."""

    result: FunctionCallResult
    new_current: PathTree
    new_deleted: PathTree


def parse_function_call(name: str | None, args: dict[str, Any]) -> FileSystemCall:
    """Parse a raw tool call into its typed form.

    Args:
        name: The tool name issued by the model.
        args: The tool arguments.

    Returns:
        The matching call model, or UnknownCall for undeclared tools.

    Raises:
        pydantic.ValidationError: If a declared tool's arguments are malformed.
    """
    model = _CALL_MODELS.get(name or "")
    if model is None:
        return UnknownCall(name=name or "unknown")
    return model.model_validate(args)


def _apply(
    call: FileSystemCall, current: PathTree, deleted: PathTree
) -> tuple[FunctionCallResult, PathTree, PathTree]:
    if isinstance(call, WriteFileCall):
        return FunctionCallResult.ok(f"Wrote to {call.path}"), create_file(
            call.path, call.content, current
        ), deleted
    if isinstance(call, CreateFolderCall):
        return FunctionCallResult.ok(f"Created folder {call.path}"), create_folder(
            call.path, current
        ), deleted
    if isinstance(call, MoveCall):
        moved = move_path(call.source_path, call.destination_path, current)
        message = f"Moved {call.source_path} to {call.destination_path}"
        return FunctionCallResult.ok(message), moved, deleted
    if isinstance(call, DeletePathCall):
        subtree = extract_subtree(call.path, current)
        if subtree.is_empty():
            return (
                FunctionCallResult.failure(f"Path not found for deletion: {call.path}"),
                current,
                deleted,
            )
        return (
            FunctionCallResult.ok(f"Deleted {call.path}"),
            delete_path(call.path, current),
            merge_trees(deleted, subtree),
        )
    if isinstance(call, UnknownCall):
        return FunctionCallResult.failure(f"Unknown function: {call.name}"), current, deleted
    raise TypeError(f"Unhandled call type: {type(call).__name__}")


def execute_function_call(
    name: str | None,
    args: dict[str, Any] | None,
    current: PathTree,
    deleted: PathTree,
) -> FunctionCallOutcome:
    """Execute one model-issued tool call against the given trees.

    Never raises: malformed arguments, unknown tools, missing paths and any
    exception inside a handler all produce an unsuccessful result with the
    trees unchanged.

    Args:
        name: Tool name from the model.
        args: Tool arguments, or None when the model sent none.
        current: Current project tree.
        deleted: Current tombstones.

    Returns:
        The result together with the (possibly unchanged) trees.
    """
    if args is None:
        result = FunctionCallResult.failure(
            f"Function call '{name or 'unknown'}' is missing arguments."
        )
        return FunctionCallOutcome(result=result, new_current=current, new_deleted=deleted)

    try:
        call = parse_function_call(name, args)
        result, new_current, new_deleted = _apply(call, current, deleted)
    except ValidationError as e:
        problems = ", ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'args'}: {err['msg']}"
            for err in e.errors()
        )
        result = FunctionCallResult.failure(
            f"Invalid arguments for function '{name}': {problems}"
        )
        new_current, new_deleted = current, deleted
    except Exception as e:
        result = FunctionCallResult.failure(str(e))
        new_current, new_deleted = current, deleted

    if result.success:
        logger.debug(f"Tool call {name} succeeded: {result.message}")
    else:
        logger.debug(f"Tool call {name} failed: {result.error}")

    return FunctionCallOutcome(result=result, new_current=new_current, new_deleted=new_deleted)
