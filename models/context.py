"""Serialization of a project tree into model-prompt text.

The output has two sections: a box-drawing listing of every directory and
file, followed by one delimited block per file with its content.
"""

from typing import Any

from models.path_tree import PathTree

CONTEXT_HEADER = "File System Structure:\n"
CONTENTS_HEADER = "\nFile Contents:\n"


def is_path_excluded(path: str, excluded_paths: set[str]) -> bool:
    """Return True when ``path`` or any of its ancestors is excluded."""
    if path in excluded_paths:
        return True
    return any(path.startswith(f"{excluded}/") for excluded in excluded_paths)


def filter_excluded(tree: PathTree, excluded_paths: set[str]) -> PathTree:
    """Return a copy of ``tree`` without excluded paths or their descendants."""
    return PathTree(
        files={
            path: content
            for path, content in tree.files.items()
            if not is_path_excluded(path, excluded_paths)
        },
        dirs={path for path in tree.dirs if not is_path_excluded(path, excluded_paths)},
    )


def _build_nested(paths: list[str]) -> dict[str, Any]:
    root: dict[str, Any] = {}
    for path in paths:
        node = root
        for part in path.split("/"):
            node = node.setdefault(part, {})
    return root


def _render_tree(node: dict[str, Any], prefix: str = "") -> str:
    lines = []
    entries = list(node.items())
    for index, (name, children) in enumerate(entries):
        is_last = index == len(entries) - 1
        connector = "└── " if is_last else "├── "
        lines.append(f"{prefix}{connector}{name}\n")
        if children:
            lines.append(_render_tree(children, prefix + ("    " if is_last else "│   ")))
    return "".join(lines)


def serialize_project_context(tree: PathTree) -> str:
    """Render a tree as deterministic prompt text.

    Example output for a tree holding ``src/b.txt`` with content ``x``::

        File System Structure:
        └── src
            └── b.txt

        File Contents:
        --- BEGIN FILE: src/b.txt ---
        x
        --- END FILE: src/b.txt ---

    Args:
        tree: The (already filtered) tree to render.

    Returns:
        The serialized context text.
    """
    all_paths = sorted(tree.dirs | set(tree.files))

    output = CONTEXT_HEADER
    output += _render_tree(_build_nested(all_paths))
    output += CONTENTS_HEADER

    for path, content in tree.files.items():
        output += f"--- BEGIN FILE: {path} ---\n"
        output += f"{content}\n"
        output += f"--- END FILE: {path} ---\n\n"

    return output
