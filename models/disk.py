"""Reconciliation between the virtual project tree and a real directory.

Two directions are supported:

- Loading: ``read_directory`` walks a directory and builds a PathTree,
  honouring the root ignore files.
- Applying: ``apply_changes_to_disk`` writes the difference between the
  baseline and the current tree back to the directory.

Disk access goes through the ``DirectoryHandle`` protocol so the reconciler
can run against anything that behaves like a directory. ``LocalDirectory`` is
the implementation backed by the local filesystem.
"""

import base64
import logging
import mimetypes
import shutil
from collections.abc import Iterator
from pathlib import Path
from typing import Protocol

from models.ignore import (
    IGNORE_FILE_NAMES,
    combine_ignore_texts,
    create_is_ignored,
    is_always_excluded,
)
from models.path_tree import (
    InvalidPathError,
    PathTree,
    ancestors,
    is_descendant,
    normalize_path,
)

logger = logging.getLogger(__name__)


class DirectoryHandle(Protocol):
    """Minimal directory interface used by the reconciler.

    All paths are relative to the directory root and "/"-separated.
    """

    def iter_entries(self, path: str = "") -> Iterator[tuple[str, bool]]:
        """Yield ``(name, is_directory)`` for each entry directly under ``path``."""
        ...

    def exists(self, path: str) -> bool: ...

    def read_bytes(self, path: str) -> bytes: ...

    def write_text(self, path: str, content: str) -> None: ...

    def make_dirs(self, path: str) -> None: ...

    def remove(self, path: str, recursive: bool = False) -> None: ...


class LocalDirectory:
    """DirectoryHandle backed by a directory on the local filesystem.

    Every path must stay inside ``root``. Paths with ``..`` segments, or that
    resolve outside ``root`` through a symlink, raise InvalidPathError.

    Args:
        root: The directory to operate on. Must already exist.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        if not self.root.is_dir():
            raise NotADirectoryError(f"Not a directory: {self.root}")

    def _resolve(self, path: str) -> Path:
        if not path:
            return self.root
        target = self.root.joinpath(*normalize_path(path).split("/"))
        if not target.resolve().is_relative_to(self.root.resolve()):
            raise InvalidPathError(path, "resolves outside the project directory")
        return target

    def iter_entries(self, path: str = "") -> Iterator[tuple[str, bool]]:
        for entry in sorted(self._resolve(path).iterdir()):
            yield entry.name, entry.is_dir()

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def read_bytes(self, path: str) -> bytes:
        return self._resolve(path).read_bytes()

    def write_text(self, path: str, content: str) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    def make_dirs(self, path: str) -> None:
        self._resolve(path).mkdir(parents=True, exist_ok=True)

    def remove(self, path: str, recursive: bool = False) -> None:
        target = self._resolve(path)
        if target.is_dir():
            if recursive:
                shutil.rmtree(target)
            else:
                target.rmdir()
        else:
            target.unlink()


def _decode_file(name: str, data: bytes) -> str:
    mime_type, _ = mimetypes.guess_type(name)
    if mime_type and mime_type.startswith("image/"):
        return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return f"[Binary file: {name}. Content not displayed.]"


def read_directory(handle: DirectoryHandle) -> PathTree:
    """Read a directory into a PathTree.

    Root ``.gitignore`` and ``.gcignore`` rules are applied, and ``.git``
    metadata plus the ignore files themselves are always skipped. Images are
    stored as ``data:`` URLs and undecodable files as a placeholder string.

    Args:
        handle: The directory to read.

    Returns:
        A new PathTree with the directory's contents.
    """
    ignore_texts = {}
    for name in IGNORE_FILE_NAMES:
        if handle.exists(name):
            ignore_texts[name] = handle.read_bytes(name).decode("utf-8", errors="replace")
    combined = combine_ignore_texts(ignore_texts.get(".gitignore"), ignore_texts.get(".gcignore"))
    is_ignored = create_is_ignored(combined) if combined.strip() else (lambda path: False)

    files: dict[str, str] = {}
    dirs: set[str] = set()

    def traverse(current: str) -> None:
        for name, is_dir in handle.iter_entries(current):
            entry_path = f"{current}/{name}" if current else name
            match_path = f"{entry_path}/" if is_dir else entry_path
            if is_always_excluded(entry_path) or is_ignored(match_path):
                continue
            if is_dir:
                dirs.add(entry_path)
                traverse(entry_path)
            else:
                files[entry_path] = _decode_file(name, handle.read_bytes(entry_path))

    traverse("")
    logger.info(f"Read {len(files)} files and {len(dirs)} directories from disk")
    return PathTree(files=files, dirs=dirs)


def apply_changes_to_disk(
    handle: DirectoryHandle,
    original: PathTree,
    current: PathTree,
    deleted: PathTree,
) -> dict[str, list[str]]:
    """Write the difference between ``original`` and ``current`` to disk.

    Deletions run before writes so that a move (delete plus create of
    overlapping names) ends up with the new content on disk. A file is
    written when it is new, when its content changed, or when a directory
    containing it was removed earlier in the same pass.

    The pass is not transactional: the first failing operation aborts it and
    its error propagates, leaving earlier operations applied.

    Args:
        handle: Directory to write into.
        original: Baseline the directory currently reflects.
        current: Tree to bring the directory in line with.
        deleted: Tombstones recorded since the baseline.

    Returns:
        Dictionary with the "deleted", "written" and "created_dirs" paths.

    Raises:
        InvalidPathError: If a tree holds a path that is not in canonical
            form. Nothing is touched on disk in that case.
        OSError: If any disk operation fails.
    """
    for path in deleted.all_paths() | current.all_paths():
        if normalize_path(path) != path:
            raise InvalidPathError(path, "not a canonical project path")

    removed: list[str] = []

    def already_removed(path: str) -> bool:
        return any(is_descendant(path, gone) for gone in removed)

    for path in sorted(deleted.dirs):
        if path in original.dirs and not already_removed(path):
            handle.remove(path, recursive=True)
            removed.append(path)
            logger.debug(f"Removed directory {path}")

    for path in deleted.files:
        if path in original.files and not already_removed(path):
            handle.remove(path)
            removed.append(path)
            logger.debug(f"Removed file {path}")

    created_dirs: list[str] = []
    for path in sorted(current.dirs):
        if path not in original.dirs or already_removed(path) or path in removed:
            handle.make_dirs(path)
            created_dirs.append(path)

    written: list[str] = []
    for path, content in current.files.items():
        changed = original.files.get(path) != content
        if changed or path in removed or already_removed(path):
            for parent in ancestors(path):
                if parent not in created_dirs and not handle.exists(parent):
                    handle.make_dirs(parent)
            handle.write_text(path, content)
            written.append(path)
            logger.debug(f"Wrote file {path}")

    logger.info(
        f"Applied changes to disk: {len(removed)} removed, {len(written)} written, "
        f"{len(created_dirs)} directories created"
    )
    return {"deleted": removed, "written": written, "created_dirs": created_dirs}
