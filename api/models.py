"""Shared request and response models for API endpoints.

These models are used by both the project and chat routers.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field


class ProjectEntry(BaseModel):
    """One path in the display tree.

    Attributes:
        path: Project-relative path.
        type: Whether the path is a file or a directory.
        status: Diff status against the baseline.
        excluded: Whether the path is excluded from the model context.
    """

    path: str
    type: Literal["file", "directory"]
    status: Literal["deleted", "created", "modified", "unchanged"]
    excluded: bool


class ProjectStateResponse(BaseModel):
    """Snapshot of the virtual filesystem.

    Attributes:
        linked: Whether a project baseline exists.
        file_count: Number of files in the current tree.
        dir_count: Number of directories in the current tree.
        entries: Display entries, tombstones included, sorted by path.
        excluded_paths: Paths excluded from the model context.
    """

    linked: bool
    file_count: int
    dir_count: int
    entries: list[ProjectEntry] = Field(default_factory=list)
    excluded_paths: list[str] = Field(default_factory=list)


class ProjectActionResponse(BaseModel):
    """Result of a mutating project operation.

    Attributes:
        action: Name of the operation that ran.
        message: Human-readable description of what happened.
        project: Snapshot of the filesystem after the operation.
        details: Extra operation-specific data.
    """

    action: str
    message: str
    project: ProjectStateResponse
    details: dict[str, Any] | None = None
