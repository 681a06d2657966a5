"""Virtual project filesystem endpoints.

These endpoints expose every user-facing filesystem command: syncing a
project, creating, saving, deleting and moving paths, reverting or unlinking,
toggling context exclusions, and syncing with a real directory on disk.

Errors raised by the filesystem (PathExistsError, PathConflictError, OSError)
are turned into JSON responses by the handlers registered in main.py.
"""

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from api.dependencies import FilesystemDep
from api.exceptions import DeletionNotConfirmedError
from api.models import ProjectActionResponse, ProjectStateResponse
from models.disk import LocalDirectory
from models.filesystem import VirtualFilesystem

router = APIRouter(
    prefix="/project",
    tags=["project"],
)


# Request/Response Models


class FileEntry(BaseModel):
    """A file to import.

    Attributes:
        path: Project-relative path, e.g. ``src/app.py``.
        content: Text content (or a data URL for images).
    """

    path: str = Field(min_length=1)
    content: str = ""


class SyncProjectRequest(BaseModel):
    """Request model for syncing a project from uploaded files.

    Attributes:
        entries: Every uploaded file.
        ignore_content: Extra ignore rules applied on top of any root
            ``.gitignore``/``.gcignore`` among the entries.
    """

    entries: list[FileEntry]
    ignore_content: str = ""


class CreateFileRequest(BaseModel):
    """Request model for creating a new file."""

    path: str = Field(min_length=1)
    content: str = ""


class SaveFileRequest(BaseModel):
    """Request model for saving editor content."""

    path: str = Field(min_length=1)
    content: str


class AddFilesRequest(BaseModel):
    """Request model for adding loose files."""

    entries: list[FileEntry]


class CreateFolderRequest(BaseModel):
    """Request model for creating a new folder."""

    path: str = Field(min_length=1)


class MovePathRequest(BaseModel):
    """Request model for renaming or moving a path."""

    old_path: str = Field(min_length=1)
    new_path: str = Field(min_length=1)


class ToggleExclusionRequest(BaseModel):
    """Request model for toggling a context exclusion."""

    path: str = Field(min_length=1)


class DirectoryRequest(BaseModel):
    """Request model for disk operations.

    Attributes:
        directory: Path of a real directory on the server.
    """

    directory: str = Field(min_length=1)


class ContextResponse(BaseModel):
    """Serialized project context as sent to the model.

    Attributes:
        linked: Whether a project is linked.
        context: The serialized context, or None without a project.
    """

    linked: bool
    context: str | None = None


# Helpers


def _snapshot(filesystem: VirtualFilesystem) -> ProjectStateResponse:
    return ProjectStateResponse(**filesystem.get_snapshot())


def _action(
    filesystem: VirtualFilesystem, action: str, message: str, details: dict | None = None
) -> ProjectActionResponse:
    return ProjectActionResponse(
        action=action,
        message=message,
        project=_snapshot(filesystem),
        details=details,
    )


# Route Handlers


@router.get("", response_model=ProjectStateResponse)
async def get_project(filesystem: FilesystemDep):
    """Get the current project state.

    Returns every display entry (tombstones included) with its diff status.
    """
    return _snapshot(filesystem)


@router.get("/context", response_model=ContextResponse)
async def get_context(filesystem: FilesystemDep):
    """Get the serialized context that coder mode sends to the model."""
    return ContextResponse(
        linked=filesystem.is_linked,
        context=filesystem.get_serializable_context(),
    )


@router.post("/sync", response_model=ProjectActionResponse)
async def sync_project(request: SyncProjectRequest, filesystem: FilesystemDep):
    """Replace the project with uploaded files and make them the baseline.

    Ignored paths and ``.git`` internals are dropped during import.

    Args:
        request: The uploaded files and optional extra ignore rules.
        filesystem: The VirtualFilesystem instance (injected by FastAPI).

    Returns:
        The action summary with the new project snapshot.
    """
    tree = filesystem.sync_entries(
        [(entry.path, entry.content) for entry in request.entries],
        request.ignore_content,
    )
    return _action(
        filesystem,
        "sync",
        f"Synced {len(tree.files)} files",
        {"imported": len(tree.files), "skipped": len(request.entries) - len(tree.files)},
    )


@router.post("/files", response_model=ProjectActionResponse)
async def create_file(request: CreateFileRequest, filesystem: FilesystemDep):
    """Create a new file. Responds 409 if the path already exists."""
    filesystem.create_file(request.path, request.content)
    return _action(filesystem, "create_file", f"Created file {request.path}")


@router.put("/files", response_model=ProjectActionResponse)
async def save_file(request: SaveFileRequest, filesystem: FilesystemDep):
    """Save content to a file, creating or overwriting it."""
    filesystem.save_file(request.path, request.content)
    return _action(filesystem, "save_file", f"Saved {request.path}")


@router.post("/files/batch", response_model=ProjectActionResponse)
async def add_files(request: AddFilesRequest, filesystem: FilesystemDep):
    """Add loose files to the project, overwriting any with the same path."""
    filesystem.add_files([(entry.path, entry.content) for entry in request.entries])
    return _action(filesystem, "add_files", f"Added {len(request.entries)} files")


@router.post("/folders", response_model=ProjectActionResponse)
async def create_folder(request: CreateFolderRequest, filesystem: FilesystemDep):
    """Create a new folder. Responds 409 if the path already exists."""
    filesystem.create_folder(request.path)
    return _action(filesystem, "create_folder", f"Created folder {request.path}")


@router.delete("/paths", response_model=ProjectActionResponse)
async def delete_path(
    filesystem: FilesystemDep,
    path: str = Query(min_length=1),
    confirm: bool = Query(default=False),
):
    """Delete a file or folder.

    Deleted paths stay visible as tombstones until the changes are applied
    or reverted.

    Args:
        filesystem: The VirtualFilesystem instance (injected by FastAPI).
        path: The path to delete.
        confirm: Must be true; deletion without confirmation is refused.

    Raises:
        DeletionNotConfirmedError: If ``confirm`` is not set.
    """
    if not confirm:
        raise DeletionNotConfirmedError(path)
    removed = filesystem.delete_path(path)
    message = f"Deleted {path}" if removed else f"Nothing to delete at {path}"
    return _action(filesystem, "delete_path", message, {"removed": removed})


@router.post("/move", response_model=ProjectActionResponse)
async def move_path(request: MovePathRequest, filesystem: FilesystemDep):
    """Rename or move a path. Responds 409 if the destination exists."""
    filesystem.move_path(request.old_path, request.new_path)
    return _action(
        filesystem, "move_path", f"Moved {request.old_path} to {request.new_path}"
    )


@router.post("/revert", response_model=ProjectActionResponse)
async def revert_project(filesystem: FilesystemDep):
    """Discard every change made since the baseline."""
    filesystem.revert()
    return _action(filesystem, "revert", "Reverted all changes")


@router.post("/unlink", response_model=ProjectActionResponse)
async def unlink_project(filesystem: FilesystemDep):
    """Forget the project entirely."""
    filesystem.unlink()
    return _action(filesystem, "unlink", "Project unlinked")


@router.post("/exclusions/toggle", response_model=ProjectActionResponse)
async def toggle_exclusion(request: ToggleExclusionRequest, filesystem: FilesystemDep):
    """Toggle whether a path (and, for folders, its descendants) is sent to the model."""
    filesystem.toggle_exclusion(request.path)
    excluded = request.path in filesystem.excluded_paths
    return _action(
        filesystem,
        "toggle_exclusion",
        f"{'Excluded' if excluded else 'Included'} {request.path}",
        {"excluded": excluded},
    )


@router.post("/disk/load", response_model=ProjectActionResponse)
async def load_from_disk(request: DirectoryRequest, filesystem: FilesystemDep):
    """Sync the project from a real directory on the server.

    Raises:
        ValueError: If the directory does not exist.
    """
    try:
        handle = LocalDirectory(request.directory)
    except NotADirectoryError as e:
        raise ValueError(str(e)) from e
    filesystem.load_from_disk(handle)
    return _action(
        filesystem, "load_from_disk", f"Loaded project from {request.directory}"
    )


@router.post("/disk/apply", response_model=ProjectActionResponse)
async def apply_to_disk(request: DirectoryRequest, filesystem: FilesystemDep):
    """Write pending changes to a real directory and make them the new baseline."""
    try:
        handle = LocalDirectory(request.directory)
    except NotADirectoryError as e:
        raise ValueError(str(e)) from e
    summary = filesystem.apply_to_disk(handle)
    return _action(
        filesystem,
        "apply_to_disk",
        f"Applied changes to {request.directory}",
        summary,
    )
