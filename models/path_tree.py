"""Path-indexed project tree and the pure operations over it.

A PathTree is the in-memory representation of a project: a mapping of file
paths to their contents plus a set of directory paths. Paths use "/" as the
separator and never carry a leading slash.

Every function in this module is pure: the input tree is left untouched and a
new tree is returned.
"""

from pydantic import BaseModel, Field


class PathConflictError(ValueError):
    """Raised when an operation would make a path both a file and a directory.

    Args:
        path: The path that collides.
        reason: Human-readable description of the collision.
    """

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot use '{path}': {reason}")


class InvalidPathError(ValueError):
    """Raised when a path is empty or has an empty, "." or ".." segment.

    Args:
        path: The rejected path, as given.
        reason: Human-readable description of the problem.
    """

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid path '{path}': {reason}")


class PathTree(BaseModel):
    """Snapshot of a project's files and directories.

    Invariant: every ancestor directory of every file is present in ``dirs``.

    Args:
        files: Mapping of file path to file content, in insertion order.
        dirs: Set of directory paths.
    """

    files: dict[str, str] = Field(
        default_factory=dict, description="Mapping of file path to file content"
    )
    dirs: set[str] = Field(default_factory=set, description="Set of directory paths")

    def is_empty(self) -> bool:
        """Return True when the tree holds no files and no directories."""
        return not self.files and not self.dirs

    def copy_tree(self) -> "PathTree":
        """Return an independent copy of this tree."""
        return PathTree(files=dict(self.files), dirs=set(self.dirs))

    def all_paths(self) -> set[str]:
        """Return every file and directory path in the tree."""
        return set(self.files) | self.dirs


def normalize_path(path: str) -> str:
    """Return ``path`` in canonical project form.

    Leading and trailing slashes are stripped, so ``"/src/a.py"`` becomes
    ``"src/a.py"``. Everything else must already be canonical.

    Raises:
        InvalidPathError: If the path is empty or contains an empty, ``.`` or
            ``..`` segment.
    """
    candidate = path.strip("/")
    if not candidate:
        raise InvalidPathError(path, "path is empty")
    for segment in candidate.split("/"):
        if not segment:
            raise InvalidPathError(path, "empty path segment")
        if segment in (".", ".."):
            raise InvalidPathError(path, f"'{segment}' segments are not allowed")
    return candidate


def ancestors(path: str) -> list[str]:
    """Return the proper ancestor directories of a path, shallowest first.

    Args:
        path: A "/"-separated path.

    Returns:
        List of ancestor paths, e.g. ``["a", "a/b"]`` for ``"a/b/c.txt"``.
    """
    parts = path.split("/")[:-1]
    return ["/".join(parts[: i + 1]) for i in range(len(parts))]


def is_descendant(path: str, parent: str) -> bool:
    """Return True when ``path`` lies strictly beneath ``parent``."""
    return path.startswith(f"{parent}/")


def is_directory(path: str, tree: PathTree) -> bool:
    """Return True when ``path`` is a directory of ``tree``.

    A path is a directory if it is listed in ``dirs`` or if any file path has
    it as a proper prefix. The second test covers directories that were only
    ever implied by a file's ancestry.
    """
    if path in tree.dirs:
        return True
    return any(is_descendant(file_path, path) for file_path in tree.files)


def path_exists(path: str, tree: PathTree) -> bool:
    """Return True when ``path`` is a file key or a directory key of ``tree``."""
    return path in tree.files or path in tree.dirs


def _check_file_target(path: str, tree: PathTree) -> None:
    if path not in tree.files and is_directory(path, tree):
        raise PathConflictError(path, "a directory already exists at this path")
    for parent in ancestors(path):
        if parent in tree.files:
            raise PathConflictError(path, f"'{parent}' is a file, not a directory")


def create_file(path: str, content: str, tree: PathTree) -> PathTree:
    """Create or overwrite a file, adding any missing ancestor directories.

    Args:
        path: Path of the file to write.
        content: New file content.
        tree: The tree to start from.

    Returns:
        A new tree containing the file.

    Raises:
        InvalidPathError: If ``path`` is not a valid project path.
        PathConflictError: If ``path`` is a directory or one of its ancestors
            is a file.
    """
    path = normalize_path(path)
    _check_file_target(path, tree)
    files = dict(tree.files)
    dirs = set(tree.dirs)
    files[path] = content
    dirs.update(ancestors(path))
    return PathTree(files=files, dirs=dirs)


def create_folder(path: str, tree: PathTree) -> PathTree:
    """Create a directory and all of its ancestors. Idempotent.

    Raises:
        InvalidPathError: If ``path`` is not a valid project path.
        PathConflictError: If ``path`` or one of its ancestors is a file.
    """
    path = normalize_path(path)
    for candidate in [*ancestors(path), path]:
        if candidate in tree.files:
            raise PathConflictError(path, f"'{candidate}' is a file, not a directory")
    dirs = set(tree.dirs)
    dirs.update(ancestors(path))
    dirs.add(path)
    return PathTree(files=dict(tree.files), dirs=dirs)


def delete_path(path: str, tree: PathTree) -> PathTree:
    """Delete a file, or a directory together with everything beneath it.

    Deleting a path that does not exist returns an equal tree.
    """
    files = dict(tree.files)
    dirs = set(tree.dirs)

    if path in files:
        del files[path]
    elif is_directory(path, tree):
        dirs.discard(path)
        files = {p: c for p, c in files.items() if not is_descendant(p, path)}
        dirs = {d for d in dirs if not is_descendant(d, path)}

    return PathTree(files=files, dirs=dirs)


def move_path(source: str, destination: str, tree: PathTree) -> PathTree:
    """Move (rename) a file or a directory subtree.

    A file is deleted and recreated at ``destination`` with the same content.
    A directory has its whole subtree recreated with the ``source`` prefix
    replaced by ``destination``. Moving a path that does not exist is a no-op.

    Raises:
        InvalidPathError: If either path is not a valid project path.
        PathConflictError: If the destination collides with an existing path
            of the other kind.
    """
    source = normalize_path(source)
    destination = normalize_path(destination)
    if source in tree.files:
        content = tree.files[source]
        return create_file(destination, content, delete_path(source, tree))

    if not is_directory(source, tree):
        return tree.copy_tree()

    subtree = extract_subtree(source, tree)
    moved = create_folder(destination, delete_path(source, tree))

    for dir_path in sorted(subtree.dirs):
        if is_descendant(dir_path, source):
            moved = create_folder(destination + dir_path[len(source):], moved)
    for file_path, content in subtree.files.items():
        moved = create_file(destination + file_path[len(source):], content, moved)

    return moved


def extract_subtree(path: str, tree: PathTree) -> PathTree:
    """Return the part of ``tree`` rooted at ``path``.

    For a directory the result holds the directory itself plus every
    descendant file and directory. For a file it holds just that file. An
    unknown path yields an empty tree.
    """
    if is_directory(path, tree):
        return PathTree(
            files={p: c for p, c in tree.files.items() if is_descendant(p, path)},
            dirs={path} | {d for d in tree.dirs if is_descendant(d, path)},
        )
    if path in tree.files:
        return PathTree(files={path: tree.files[path]})
    return PathTree()


def merge_trees(base: PathTree, overlay: PathTree) -> PathTree:
    """Merge two trees: files key-wise with ``overlay`` winning, dirs unioned."""
    return PathTree(
        files={**base.files, **overlay.files},
        dirs=base.dirs | overlay.dirs,
    )
