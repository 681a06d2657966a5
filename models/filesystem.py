"""The virtual filesystem store.

VirtualFilesystem owns every piece of project state for one session:

- current: the live, editable tree
- original: the baseline captured at the last sync or apply (None when no
  project is linked)
- deleted: tombstones for every path removed since the baseline
- excluded_paths: paths left out of the context sent to the model

All mutation goes through the methods below, which is what keeps the four
pieces consistent. Tree operations themselves live in models.path_tree and
are pure; the store swaps in the new trees they return.
"""

import logging
from collections.abc import Iterable
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from models.context import filter_excluded, serialize_project_context
from models.disk import DirectoryHandle, apply_changes_to_disk, read_directory
from models.function_calls import execute_function_call
from models.ignore import build_tree_from_entries
from models.path_tree import (
    PathTree,
    create_file,
    create_folder,
    delete_path,
    extract_subtree,
    is_descendant,
    is_directory,
    merge_trees,
    move_path,
    normalize_path,
    path_exists,
)

logger = logging.getLogger(__name__)


class PathExistsError(ValueError):
    """Raised when a user-initiated create or move targets an existing path.

    Args:
        path: The path that already exists.
    """

    def __init__(self, path: str):
        self.path = path
        super().__init__(f'Path "{path}" already exists.')


class PathStatus(str, Enum):
    """Diff classification of a path relative to the baseline."""

    DELETED = "deleted"
    CREATED = "created"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"


class FunctionResponse(BaseModel):
    """The response to one tool call, as folded back into the chat history.

    Args:
        name: Name of the tool that was called.
        response: JSON payload with ``success`` and ``message`` or ``error``.
    """

    name: str
    response: dict[str, Any]


class VirtualFilesystem(BaseModel):
    """Single owner of a project session's virtual filesystem state.

    Not thread-safe: one command is expected to run at a time.

    Attributes:
        current: The live project tree.
        original: Baseline tree, or None when no project is linked.
        deleted: Tombstones of paths removed since the baseline.
        excluded_paths: Paths excluded from the serialized model context.
    """

    current: PathTree = Field(default_factory=PathTree)
    original: PathTree | None = None
    deleted: PathTree = Field(default_factory=PathTree)
    excluded_paths: set[str] = Field(default_factory=set)

    # ===== Lifecycle =====

    @property
    def is_linked(self) -> bool:
        """Whether a project baseline exists."""
        return self.original is not None

    def sync(self, tree: PathTree) -> None:
        """Replace the whole project with ``tree`` and make it the baseline."""
        self.current = tree.copy_tree()
        self.original = tree.copy_tree()
        self.deleted = PathTree()
        self.excluded_paths = set()
        logger.info(
            f"Project synced: {len(tree.files)} files, {len(tree.dirs)} directories"
        )

    def sync_entries(
        self, entries: Iterable[tuple[str, str]], ignore_content: str = ""
    ) -> PathTree:
        """Bulk-import uploaded files, honouring ignore rules, and sync to them."""
        tree = build_tree_from_entries(entries, ignore_content)
        self.sync(tree)
        return tree

    def unlink(self) -> None:
        """Forget the project entirely."""
        self.current = PathTree()
        self.original = None
        self.deleted = PathTree()
        self.excluded_paths = set()
        logger.info("Project unlinked")

    def revert(self) -> None:
        """Discard all changes since the baseline. Exclusions are kept."""
        self.current = self.original.copy_tree() if self.original else PathTree()
        self.deleted = PathTree()
        logger.info("Project changes reverted")

    def _ensure_baseline(self) -> None:
        if self.original is None:
            self.original = PathTree()

    # ===== User commands =====

    def create_file(self, path: str, content: str = "") -> None:
        """Create a new file.

        Raises:
            InvalidPathError: If ``path`` is not a valid project path.
            PathExistsError: If ``path`` is already a file or directory.
            PathConflictError: If an ancestor of ``path`` is a file.
        """
        path = normalize_path(path)
        if path_exists(path, self.current):
            raise PathExistsError(path)
        self.current = create_file(path, content, self.current)
        self._ensure_baseline()
        logger.debug(f"Created file {path}")

    def create_folder(self, path: str) -> None:
        """Create a new folder.

        Raises:
            InvalidPathError: If ``path`` is not a valid project path.
            PathExistsError: If ``path`` is already a file or directory.
            PathConflictError: If an ancestor of ``path`` is a file.
        """
        path = normalize_path(path)
        if path_exists(path, self.current):
            raise PathExistsError(path)
        self.current = create_folder(path, self.current)
        self._ensure_baseline()
        logger.debug(f"Created folder {path}")

    def save_file(self, path: str, content: str) -> None:
        """Save editor content to a file, overwriting it."""
        self.current = create_file(path, content, self.current)
        self._ensure_baseline()
        logger.debug(f"Saved file {path}")

    def add_files(self, entries: Iterable[tuple[str, str]]) -> None:
        """Add loose files (e.g. dropped onto the window), overwriting existing ones."""
        tree = self.current
        count = 0
        for path, content in entries:
            tree = create_file(path, content, tree)
            count += 1
        self.current = tree
        if count:
            self._ensure_baseline()
        logger.debug(f"Added {count} files")

    def delete_path(self, path: str) -> bool:
        """Delete a path, keeping a tombstone of everything removed.

        Confirmation is the caller's responsibility.

        Returns:
            True if anything was removed.
        """
        path = normalize_path(path)
        subtree = extract_subtree(path, self.current)
        if subtree.is_empty():
            return False
        self.deleted = merge_trees(self.deleted, subtree)
        self.current = delete_path(path, self.current)
        logger.debug(f"Deleted {path} ({len(subtree.files)} files)")
        return True

    def move_path(self, old_path: str, new_path: str) -> None:
        """Rename or move a path.

        Raises:
            InvalidPathError: If either path is not a valid project path.
            PathExistsError: If ``new_path`` already exists.
        """
        old_path = normalize_path(old_path)
        new_path = normalize_path(new_path)
        if path_exists(new_path, self.current):
            raise PathExistsError(new_path)
        self.current = move_path(old_path, new_path, self.current)
        logger.debug(f"Moved {old_path} to {new_path}")

    def toggle_exclusion(self, path: str) -> None:
        """Toggle whether ``path`` is sent to the model.

        For a directory the new state is decided by the directory's own
        membership and then applied to every descendant, across both the
        current tree and the tombstones.
        """
        path = normalize_path(path)
        combined = merge_trees(self.deleted, self.current)
        excluded = set(self.excluded_paths)

        if not is_directory(path, combined):
            excluded.symmetric_difference_update({path})
            self.excluded_paths = excluded
            return

        should_exclude = path not in excluded
        targets = {path} | {p for p in combined.all_paths() if is_descendant(p, path)}
        if should_exclude:
            excluded |= targets
        else:
            excluded -= targets
        self.excluded_paths = excluded

    # ===== Tool calls =====

    def apply_function_calls(self, calls: Iterable[Any]) -> list[FunctionResponse]:
        """Apply a batch of model tool calls in order and commit the result once.

        Each call sees the state produced by the calls before it.

        Args:
            calls: Objects exposing ``name`` and ``args`` attributes.

        Returns:
            One FunctionResponse per call, in call order.
        """
        current = self.current
        deleted = self.deleted
        responses = []
        for call in calls:
            outcome = execute_function_call(call.name, call.args, current, deleted)
            current = outcome.new_current
            deleted = outcome.new_deleted
            responses.append(
                FunctionResponse(
                    name=call.name or "unknown", response=outcome.result.to_response()
                )
            )

        self.current = current
        self.deleted = deleted
        succeeded = sum(1 for r in responses if r.response.get("success"))
        logger.info(f"Applied {len(responses)} tool calls ({succeeded} succeeded)")
        return responses

    # ===== Derived views =====

    def display_tree(self) -> PathTree:
        """Return tombstones and current entries merged for display."""
        return merge_trees(self.deleted, self.current)

    def status(self, path: str) -> PathStatus:
        """Classify ``path`` against the baseline."""
        if path in self.deleted.files or path in self.deleted.dirs:
            return PathStatus.DELETED
        if self.original is None or not path_exists(path, self.original):
            return PathStatus.CREATED
        if path in self.current.files and self.current.files[path] != self.original.files.get(path):
            return PathStatus.MODIFIED
        return PathStatus.UNCHANGED

    def get_serializable_context(self) -> str | None:
        """Serialize the non-excluded part of the project for the model.

        Returns:
            The context text, or None when no project is linked.
        """
        if not self.is_linked:
            return None
        return serialize_project_context(filter_excluded(self.current, self.excluded_paths))

    def get_snapshot(self) -> dict[str, Any]:
        """Return a JSON-serializable view of the store for API responses."""
        display = self.display_tree()
        entries = [
            {
                "path": path,
                "type": "directory" if path in display.dirs else "file",
                "status": self.status(path).value,
                "excluded": path in self.excluded_paths,
            }
            for path in sorted(display.all_paths())
        ]
        return {
            "linked": self.is_linked,
            "file_count": len(self.current.files),
            "dir_count": len(self.current.dirs),
            "entries": entries,
            "excluded_paths": sorted(self.excluded_paths),
        }

    # ===== Disk =====

    def load_from_disk(self, handle: DirectoryHandle) -> None:
        """Sync the project from a real directory."""
        self.sync(read_directory(handle))

    def apply_to_disk(self, handle: DirectoryHandle) -> dict[str, list[str]]:
        """Write pending changes to a real directory and rebase onto them.

        Raises:
            InvalidPathError: If a tree holds a non-canonical path.
            OSError: If a disk operation fails. State is left untouched.
        """
        summary = apply_changes_to_disk(
            handle, self.original or PathTree(), self.current, self.deleted
        )
        self.original = self.current.copy_tree()
        self.deleted = PathTree()
        return summary
