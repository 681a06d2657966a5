"""Ignore-file matching and bulk project import.

Ignore files use gitignore syntax and are compiled with ``pathspec``. Two
conventional ignore files are recognised, ``.gitignore`` and ``.gcignore``,
either at the top of a project or at the top of the folder an upload is
wrapped in. When both are present their rules are merged.

Regardless of the ignore rules, version-control metadata under ``.git/`` and
the ignore files themselves are never imported.
"""

import logging
import re
from collections.abc import Callable, Iterable

import pathspec

from models.path_tree import InvalidPathError, PathTree, ancestors, is_descendant, normalize_path

logger = logging.getLogger(__name__)

IGNORE_FILE_NAMES = (".gitignore", ".gcignore")

_GIT_PATH = re.compile(r"(^|/)\.git(/|$)")
_IGNORE_FILE_PATH = re.compile(r"(^|/)\.(gitignore|gcignore)$")


def create_is_ignored(ignore_content: str) -> Callable[[str], bool]:
    """Compile ignore-file text into a predicate over relative paths.

    Blank lines and ``#`` comments are skipped. Directory patterns such as
    ``build/`` match every path beneath the directory.

    Args:
        ignore_content: Text of one or more ignore files, newline separated.

    Returns:
        A function returning True when a path should be ignored.
    """
    spec = pathspec.PathSpec.from_lines("gitwildmatch", ignore_content.splitlines())

    def is_ignored(path: str) -> bool:
        return spec.match_file(path)

    return is_ignored


def is_always_excluded(path: str) -> bool:
    """Return True for ``.git`` metadata and the ignore files themselves."""
    return bool(_GIT_PATH.search(path) or _IGNORE_FILE_PATH.search(path))


def combine_ignore_texts(gitignore: str | None = None, gcignore: str | None = None) -> str:
    """Merge the contents of the two recognised ignore files."""
    combined = ""
    if gitignore:
        combined += gitignore + "\n"
    if gcignore:
        combined += gcignore
    return combined


def _find_ignore_files(paths: Iterable[str]) -> tuple[str, dict[str, str]]:
    """Locate the ignore files of an upload.

    Uploads from a directory picker prefix every path with the chosen
    folder (``proj/.gitignore``), so ignore files are found by name. The
    shallowest match for each name wins, and the folder holding the
    shallowest one is the root its rules are matched against.

    Returns:
        The ignore root ("" for the top level) and a mapping of ignore file
        name to the path it was found at.
    """
    found: dict[str, str] = {}
    for path in paths:
        name = path.rsplit("/", 1)[-1]
        if name in IGNORE_FILE_NAMES:
            if name not in found or path.count("/") < found[name].count("/"):
                found[name] = path
    if not found:
        return "", found
    shallowest = min(found.values(), key=lambda p: p.count("/"))
    root = shallowest.rsplit("/", 1)[0] if "/" in shallowest else ""
    return root, found


def build_tree_from_entries(
    entries: Iterable[tuple[str, str]],
    ignore_content: str = "",
) -> PathTree:
    """Build a project tree from a flat list of uploaded files.

    ``.gitignore``/``.gcignore`` entries are merged into ``ignore_content``
    before filtering. When the upload is wrapped in a top folder, the rules
    apply relative to the folder the ignore file sits in. Entries whose path
    is not a valid project path are skipped.

    Args:
        entries: ``(relative_path, content)`` pairs.
        ignore_content: Ignore rules supplied alongside the entries.

    Returns:
        A new PathTree holding every entry that survived filtering, with all
        ancestor directories populated.
    """
    valid: list[tuple[str, str]] = []
    skipped = 0
    for path, content in entries:
        try:
            valid.append((normalize_path(path), content))
        except InvalidPathError as e:
            logger.warning(f"Skipping upload entry: {e}")
            skipped += 1

    contents = dict(valid)
    ignore_root, ignore_files = _find_ignore_files(contents)
    combined = combine_ignore_texts(
        contents.get(ignore_files.get(".gitignore", "")),
        contents.get(ignore_files.get(".gcignore", "")),
    )
    if ignore_content:
        combined = ignore_content + "\n" + combined

    matcher = create_is_ignored(combined) if combined.strip() else None

    def is_ignored(path: str) -> bool:
        if matcher is None:
            return False
        if ignore_root and is_descendant(path, ignore_root):
            return matcher(path[len(ignore_root) + 1:])
        return matcher(path)

    files: dict[str, str] = {}
    dirs: set[str] = set()
    for path, content in valid:
        if is_always_excluded(path) or is_ignored(path):
            skipped += 1
            continue
        files[path] = content
        dirs.update(ancestors(path))

    logger.debug(f"Imported {len(files)} files ({skipped} skipped)")
    return PathTree(files=files, dirs=dirs)
