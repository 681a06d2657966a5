"""Virtual project filesystem models.

This package contains the path-indexed project tree and its pure operations,
the filesystem store that tracks baseline and tombstones, the serializer that
renders a project for the model, the tool-call executor, and the reconciler
that syncs the virtual tree with a real directory.
"""

from models.context import filter_excluded, is_path_excluded, serialize_project_context
from models.disk import DirectoryHandle, LocalDirectory, apply_changes_to_disk, read_directory
from models.filesystem import FunctionResponse, PathExistsError, PathStatus, VirtualFilesystem
from models.function_calls import FILE_SYSTEM_TOOLS, FunctionCallResult, execute_function_call
from models.ignore import build_tree_from_entries, create_is_ignored
from models.path_tree import InvalidPathError, PathConflictError, PathTree, normalize_path

__all__ = [
    "PathTree",
    "PathConflictError",
    "InvalidPathError",
    "normalize_path",
    "VirtualFilesystem",
    "PathExistsError",
    "PathStatus",
    "FunctionResponse",
    "FILE_SYSTEM_TOOLS",
    "FunctionCallResult",
    "execute_function_call",
    "serialize_project_context",
    "filter_excluded",
    "is_path_excluded",
    "build_tree_from_entries",
    "create_is_ignored",
    "DirectoryHandle",
    "LocalDirectory",
    "read_directory",
    "apply_changes_to_disk",
]
