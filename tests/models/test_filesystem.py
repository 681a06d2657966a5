"""Unit tests for the VirtualFilesystem store (models/filesystem.py).

This module tests:
- Lifecycle: sync, sync_entries, unlink, revert
- User commands: create, save, add, delete (tombstones), move, exclusions
- Tool-call batches committed through apply_function_calls
- Derived views: display_tree, status, serialized context, snapshot
"""

import pytest

from client.models import FunctionCall
from models.filesystem import PathExistsError, PathStatus, VirtualFilesystem
from models.path_tree import InvalidPathError, PathConflictError
from tests.fixtures.project import create_filesystem, create_tree


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    """Tests for syncing, unlinking and reverting."""

    def test_new_store_is_unlinked(self, empty_filesystem):
        """Verify a fresh store has no baseline."""
        assert not empty_filesystem.is_linked
        assert empty_filesystem.current.is_empty()
        assert empty_filesystem.get_serializable_context() is None

    def test_sync_sets_baseline(self, sample_tree):
        """Verify sync makes current and original equal but independent."""
        store = VirtualFilesystem()
        store.sync(sample_tree)

        assert store.is_linked
        assert store.current == sample_tree
        assert store.original == sample_tree
        store.save_file("README.md", "changed")
        assert store.original.files["README.md"] == "# Project"

    def test_sync_clears_tombstones_and_exclusions(self, filesystem, sample_tree):
        """Verify a re-sync starts from a clean slate."""
        filesystem.delete_path("README.md")
        filesystem.toggle_exclusion("src/main.py")

        filesystem.sync(sample_tree)

        assert filesystem.deleted.is_empty()
        assert filesystem.excluded_paths == set()

    def test_sync_entries_honours_ignore(self):
        """Verify bulk import applies the ignore rules."""
        store = VirtualFilesystem()
        tree = store.sync_entries(
            [("src/a.py", "a"), ("dist/app.js", "x")], ignore_content="dist/"
        )

        assert set(tree.files) == {"src/a.py"}
        assert store.original == tree

    def test_unlink(self, filesystem):
        """Verify unlink forgets everything."""
        filesystem.toggle_exclusion("README.md")
        filesystem.unlink()

        assert not filesystem.is_linked
        assert filesystem.current.is_empty()
        assert filesystem.excluded_paths == set()

    def test_revert_restores_baseline(self, filesystem, sample_tree):
        """Verify revert discards edits and tombstones but keeps exclusions."""
        filesystem.save_file("README.md", "edited")
        filesystem.delete_path("src")
        filesystem.toggle_exclusion("README.md")

        filesystem.revert()

        assert filesystem.current == sample_tree
        assert filesystem.deleted.is_empty()
        assert filesystem.excluded_paths == {"README.md"}


# =============================================================================
# User commands
# =============================================================================


class TestUserCommands:
    """Tests for create, save, add, delete and move."""

    def test_create_file(self, filesystem):
        """Verify a new file is created with its ancestors."""
        filesystem.create_file("docs/guide.md", "guide")

        assert filesystem.current.files["docs/guide.md"] == "guide"
        assert "docs" in filesystem.current.dirs

    def test_create_existing_file_rejected(self, filesystem):
        """Verify creating an existing path raises PathExistsError."""
        with pytest.raises(PathExistsError) as exc_info:
            filesystem.create_file("README.md")
        assert str(exc_info.value) == 'Path "README.md" already exists.'

    def test_create_folder_over_existing_dir_rejected(self, filesystem):
        """Verify creating an existing folder raises PathExistsError."""
        with pytest.raises(PathExistsError):
            filesystem.create_folder("src")

    def test_create_file_under_file_rejected(self, filesystem):
        """Verify nesting under a file raises PathConflictError."""
        with pytest.raises(PathConflictError):
            filesystem.create_file("README.md/child.txt")

    def test_create_on_unlinked_store_links_empty_baseline(self, empty_filesystem):
        """Verify the first create gives an unlinked store an empty baseline."""
        empty_filesystem.create_file("new.txt", "n")

        assert empty_filesystem.is_linked
        assert empty_filesystem.original.is_empty()
        assert empty_filesystem.status("new.txt") == PathStatus.CREATED

    def test_save_file_overwrites(self, filesystem):
        """Verify save overwrites without complaint."""
        filesystem.save_file("README.md", "updated")
        assert filesystem.current.files["README.md"] == "updated"

    def test_add_files(self, filesystem):
        """Verify loose files are added and overwrite existing ones."""
        filesystem.add_files([("README.md", "dropped"), ("notes/todo.txt", "t")])

        assert filesystem.current.files["README.md"] == "dropped"
        assert filesystem.current.files["notes/todo.txt"] == "t"

    def test_delete_file_tombstones(self, filesystem):
        """Verify a deleted file moves to the tombstones."""
        assert filesystem.delete_path("README.md")

        assert "README.md" not in filesystem.current.files
        assert filesystem.deleted.files == {"README.md": "# Project"}

    def test_delete_directory_tombstones_subtree(self, filesystem):
        """Verify deleting a directory tombstones every descendant."""
        filesystem.delete_path("src")

        assert filesystem.deleted.dirs == {"src", "src/utils"}
        assert set(filesystem.deleted.files) == {"src/main.py", "src/utils/helpers.py"}
        assert filesystem.current.files == {"README.md": "# Project"}

    def test_delete_missing_returns_false(self, filesystem):
        """Verify deleting an unknown path reports nothing removed."""
        assert filesystem.delete_path("ghost") is False
        assert filesystem.deleted.is_empty()

    def test_move(self, filesystem):
        """Verify move relocates a file."""
        filesystem.move_path("README.md", "docs/README.md")

        assert filesystem.current.files["docs/README.md"] == "# Project"
        assert "README.md" not in filesystem.current.files

    def test_move_onto_existing_rejected(self, filesystem):
        """Verify a user move onto an existing path raises PathExistsError."""
        with pytest.raises(PathExistsError):
            filesystem.move_path("README.md", "src/main.py")
        assert filesystem.current.files["README.md"] == "# Project"

    def test_leading_slash_normalized(self, filesystem):
        """Verify user paths are stored in canonical form."""
        filesystem.create_file("/notes.txt", "n")

        assert filesystem.current.files["notes.txt"] == "n"
        assert "" not in filesystem.current.dirs

    @pytest.mark.parametrize("path", ["a/../b.txt", "../up.txt", "", "x//y"])
    def test_malformed_paths_rejected(self, filesystem, path):
        """Verify malformed user paths raise InvalidPathError."""
        before = filesystem.current.copy_tree()

        with pytest.raises(InvalidPathError):
            filesystem.create_file(path, "x")
        with pytest.raises(InvalidPathError):
            filesystem.move_path("README.md", path)
        assert filesystem.current == before


# =============================================================================
# Exclusions
# =============================================================================


class TestExclusions:
    """Tests for toggle_exclusion."""

    def test_toggle_file(self, filesystem):
        """Verify toggling a file adds then removes it."""
        filesystem.toggle_exclusion("README.md")
        assert filesystem.excluded_paths == {"README.md"}

        filesystem.toggle_exclusion("README.md")
        assert filesystem.excluded_paths == set()

    def test_toggle_directory_applies_to_descendants(self, filesystem):
        """Verify toggling a directory excludes its whole subtree."""
        filesystem.toggle_exclusion("src")

        assert filesystem.excluded_paths == {
            "src",
            "src/main.py",
            "src/utils",
            "src/utils/helpers.py",
        }

    def test_toggle_directory_twice_restores(self, filesystem):
        """Verify toggling a directory twice restores the exclusion set."""
        filesystem.toggle_exclusion("README.md")
        before = set(filesystem.excluded_paths)

        filesystem.toggle_exclusion("src")
        filesystem.toggle_exclusion("src")

        assert filesystem.excluded_paths == before

    def test_toggle_directory_covers_tombstones(self, filesystem):
        """Verify deleted descendants are toggled too."""
        filesystem.delete_path("src/main.py")
        filesystem.toggle_exclusion("src")

        assert "src/main.py" in filesystem.excluded_paths

    def test_excluded_paths_left_out_of_context(self, filesystem):
        """Verify excluded files are not serialized."""
        filesystem.toggle_exclusion("src/utils")
        context = filesystem.get_serializable_context()

        assert "helpers.py" not in context
        assert "--- BEGIN FILE: src/main.py ---" in context


# =============================================================================
# Status and snapshots
# =============================================================================


class TestStatus:
    """Tests for status classification against the baseline."""

    def test_statuses(self, filesystem):
        """Verify each status is reported for the matching change."""
        filesystem.save_file("README.md", "changed")
        filesystem.create_file("new.txt", "n")
        filesystem.delete_path("src/utils")

        assert filesystem.status("README.md") == PathStatus.MODIFIED
        assert filesystem.status("new.txt") == PathStatus.CREATED
        assert filesystem.status("src/utils") == PathStatus.DELETED
        assert filesystem.status("src/utils/helpers.py") == PathStatus.DELETED
        assert filesystem.status("src/main.py") == PathStatus.UNCHANGED

    def test_deleted_wins_over_recreated(self, filesystem):
        """Verify a deleted then recreated path still shows as deleted."""
        filesystem.delete_path("README.md")
        filesystem.create_file("README.md", "again")

        assert filesystem.status("README.md") == PathStatus.DELETED

    def test_display_tree_includes_tombstones(self, filesystem):
        """Verify the display tree merges tombstones with current entries."""
        filesystem.delete_path("README.md")
        assert "README.md" in filesystem.display_tree().files

    def test_snapshot(self, filesystem):
        """Verify the snapshot lists every display entry with its status."""
        filesystem.delete_path("README.md")
        snapshot = filesystem.get_snapshot()

        assert snapshot["linked"] is True
        assert snapshot["file_count"] == 2
        entries = {entry["path"]: entry for entry in snapshot["entries"]}
        assert entries["README.md"]["status"] == "deleted"
        assert entries["src"]["type"] == "directory"
        assert entries["src/main.py"]["status"] == "unchanged"


# =============================================================================
# Tool-call batches
# =============================================================================


class TestApplyFunctionCalls:
    """Tests for apply_function_calls and the documented scenarios."""

    def test_write_then_delete_scenario(self):
        """Verify the import, write, delete and serialize scenario end to end."""
        store = create_filesystem({"src/a.txt": "hello"})

        responses = store.apply_function_calls(
            [
                FunctionCall(name="writeFile", args={"path": "src/b.txt", "content": "x"}),
                FunctionCall(name="deletePath", args={"path": "src/a.txt"}),
            ]
        )

        assert [r.response["success"] for r in responses] == [True, True]
        assert store.current.files == {"src/b.txt": "x"}
        assert store.deleted.files == {"src/a.txt": "hello"}
        assert store.get_serializable_context() == (
            "File System Structure:\n"
            "└── src\n"
            "    └── b.txt\n"
            "\n"
            "File Contents:\n"
            "--- BEGIN FILE: src/b.txt ---\n"
            "x\n"
            "--- END FILE: src/b.txt ---\n"
            "\n"
        )

    def test_move_directory_scenario(self):
        """Verify moving src to lib leaves no src entries."""
        store = create_filesystem({"src/a.txt": "a", "src/b.txt": "b"})

        store.apply_function_calls(
            [FunctionCall(name="move", args={"sourcePath": "src", "destinationPath": "lib"})]
        )

        assert store.current.files == {"lib/a.txt": "a", "lib/b.txt": "b"}
        assert "lib" in store.current.dirs
        assert "src" not in store.current.dirs

    def test_calls_see_earlier_results(self):
        """Verify each call in a batch observes the previous calls."""
        store = create_filesystem({})

        responses = store.apply_function_calls(
            [
                FunctionCall(name="createFolder", args={"path": "pkg"}),
                FunctionCall(name="writeFile", args={"path": "pkg/mod.py", "content": "m"}),
                FunctionCall(name="move", args={"sourcePath": "pkg", "destinationPath": "lib"}),
            ]
        )

        assert all(r.response["success"] for r in responses)
        assert store.current.files == {"lib/mod.py": "m"}

    def test_failures_reported_in_order(self):
        """Verify failed calls produce error responses without stopping the batch."""
        store = create_filesystem({"a.txt": "a"})

        responses = store.apply_function_calls(
            [
                FunctionCall(name="deletePath", args={"path": "ghost"}),
                FunctionCall(name="bogus", args={}),
                FunctionCall(name="writeFile", args={"path": "b.txt", "content": "b"}),
            ]
        )

        assert [r.name for r in responses] == ["deletePath", "bogus", "writeFile"]
        assert responses[0].response == {
            "success": False,
            "error": "Path not found for deletion: ghost",
        }
        assert responses[1].response["error"] == "Unknown function: bogus"
        assert responses[2].response["success"] is True
        assert set(store.current.files) == {"a.txt", "b.txt"}

    def test_escaping_write_rejected(self):
        """Verify a tool call cannot write above the project root."""
        store = create_filesystem({"a.txt": "a"})

        responses = store.apply_function_calls(
            [
                FunctionCall(name="writeFile", args={"path": "../escape.txt", "content": "x"}),
                FunctionCall(name="writeFile", args={"path": "/b.txt", "content": "b"}),
            ]
        )

        assert responses[0].response["success"] is False
        assert "Invalid path" in responses[0].response["error"]
        assert responses[1].response == {"success": True, "message": "Wrote to b.txt"}
        assert store.current.files == {"a.txt": "a", "b.txt": "b"}
