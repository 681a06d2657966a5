"""Unit tests for the tool-call executor (models/function_calls.py).

The executor never raises: every failure is reported as an unsuccessful
FunctionCallResult and leaves both trees unchanged.
"""

import pytest
from pydantic import ValidationError

from models.function_calls import (
    FILE_SYSTEM_TOOLS,
    CreateFolderCall,
    DeletePathCall,
    FunctionCallResult,
    MoveCall,
    UnknownCall,
    WriteFileCall,
    execute_function_call,
    parse_function_call,
)
from models.path_tree import PathTree
from tests.fixtures.project import create_tree


# =============================================================================
# Declarations and parsing
# =============================================================================


class TestToolDeclarations:
    """Tests for the tool declarations advertised to the model."""

    def test_four_tools_declared(self):
        """Verify exactly the four filesystem tools are declared."""
        names = [tool["name"] for tool in FILE_SYSTEM_TOOLS]
        assert names == ["writeFile", "createFolder", "move", "deletePath"]

    def test_move_requires_both_paths(self):
        """Verify move declares both of its required parameters."""
        move = next(tool for tool in FILE_SYSTEM_TOOLS if tool["name"] == "move")
        assert move["parameters"]["required"] == ["sourcePath", "destinationPath"]


class TestParseFunctionCall:
    """Tests for parse_function_call."""

    @pytest.mark.parametrize(
        "name,args,expected",
        [
            ("writeFile", {"path": "a.txt", "content": "x"}, WriteFileCall),
            ("createFolder", {"path": "dir"}, CreateFolderCall),
            ("move", {"sourcePath": "a", "destinationPath": "b"}, MoveCall),
            ("deletePath", {"path": "a.txt"}, DeletePathCall),
            ("launchRockets", {}, UnknownCall),
        ],
    )
    def test_dispatch(self, name, args, expected):
        """Verify each tool name parses into its call model."""
        assert isinstance(parse_function_call(name, args), expected)

    def test_move_aliases(self):
        """Verify move arguments use the camelCase names."""
        call = parse_function_call("move", {"sourcePath": "a", "destinationPath": "b"})
        assert call.source_path == "a"
        assert call.destination_path == "b"

    def test_malformed_arguments_raise(self):
        """Verify missing required arguments raise ValidationError."""
        with pytest.raises(ValidationError):
            parse_function_call("writeFile", {"path": "a.txt"})


# =============================================================================
# Execution
# =============================================================================


class TestExecuteFunctionCall:
    """Tests for execute_function_call."""

    def test_write_file(self):
        """Verify writeFile creates the file and reports success."""
        outcome = execute_function_call(
            "writeFile", {"path": "src/b.txt", "content": "x"}, PathTree(), PathTree()
        )

        assert outcome.result == FunctionCallResult(success=True, message="Wrote to src/b.txt")
        assert outcome.new_current.files == {"src/b.txt": "x"}
        assert outcome.new_current.dirs == {"src"}

    def test_create_folder(self):
        """Verify createFolder adds the directory."""
        outcome = execute_function_call("createFolder", {"path": "a/b"}, PathTree(), PathTree())

        assert outcome.result.success
        assert outcome.result.message == "Created folder a/b"
        assert outcome.new_current.dirs == {"a", "a/b"}

    def test_move(self):
        """Verify move relocates a file."""
        current = create_tree({"a.txt": "a"})
        outcome = execute_function_call(
            "move", {"sourcePath": "a.txt", "destinationPath": "b.txt"}, current, PathTree()
        )

        assert outcome.result.message == "Moved a.txt to b.txt"
        assert outcome.new_current.files == {"b.txt": "a"}

    def test_delete_records_tombstone(self):
        """Verify deletePath removes the subtree and tombstones it."""
        current = create_tree({"src/a.txt": "hello", "b.txt": "b"})
        outcome = execute_function_call("deletePath", {"path": "src"}, current, PathTree())

        assert outcome.result.message == "Deleted src"
        assert outcome.new_current.files == {"b.txt": "b"}
        assert outcome.new_deleted.files == {"src/a.txt": "hello"}
        assert outcome.new_deleted.dirs == {"src"}

    def test_delete_missing_path_fails(self):
        """Verify deleting an unknown path fails and changes nothing."""
        current = create_tree({"a.txt": "a"})
        outcome = execute_function_call("deletePath", {"path": "ghost"}, current, PathTree())

        assert outcome.result == FunctionCallResult(
            success=False, error="Path not found for deletion: ghost"
        )
        assert outcome.new_current == current

    def test_unknown_function(self):
        """Verify an undeclared tool fails with its name."""
        outcome = execute_function_call("formatDisk", {}, PathTree(), PathTree())
        assert outcome.result.error == "Unknown function: formatDisk"

    def test_missing_arguments(self):
        """Verify a call without arguments fails."""
        outcome = execute_function_call("writeFile", None, PathTree(), PathTree())
        assert outcome.result.error == "Function call 'writeFile' is missing arguments."

    def test_invalid_arguments(self):
        """Verify malformed arguments fail instead of raising."""
        outcome = execute_function_call("writeFile", {"path": "a.txt"}, PathTree(), PathTree())

        assert not outcome.result.success
        assert outcome.result.error.startswith("Invalid arguments for function 'writeFile'")
        assert "content" in outcome.result.error

    def test_conflict_reported_as_failure(self):
        """Verify a file/directory collision fails with the conflict message."""
        current = create_tree({"src/a.txt": "a"})
        outcome = execute_function_call(
            "writeFile", {"path": "src", "content": "x"}, current, PathTree()
        )

        assert not outcome.result.success
        assert "src" in outcome.result.error
        assert outcome.new_current == current

    def test_response_payload_omits_unset_fields(self):
        """Verify the function response carries only the relevant keys."""
        assert FunctionCallResult.ok("done").to_response() == {"success": True, "message": "done"}
        assert FunctionCallResult.failure("bad").to_response() == {"success": False, "error": "bad"}


# =============================================================================
# Path validation
# =============================================================================


class TestPathValidation:
    """Tests for path checks on tool-call arguments."""

    def test_leading_slash_normalized(self):
        """Verify an absolute-looking path is stored relative to the project."""
        outcome = execute_function_call(
            "writeFile", {"path": "/abs.txt", "content": "x"}, PathTree(), PathTree()
        )

        assert outcome.result.message == "Wrote to abs.txt"
        assert outcome.new_current == PathTree(files={"abs.txt": "x"})

    @pytest.mark.parametrize("path", ["../escape.txt", "", "a//b.txt", "src/./a.txt"])
    def test_write_rejects_malformed_path(self, path):
        """Verify malformed write paths fail and leave the tree unchanged."""
        current = create_tree({"a.txt": "a"})
        outcome = execute_function_call(
            "writeFile", {"path": path, "content": "x"}, current, PathTree()
        )

        assert not outcome.result.success
        assert "Invalid path" in outcome.result.error
        assert outcome.new_current == current

    def test_move_rejects_parent_destination(self):
        """Verify a move cannot place a file above the project root."""
        current = create_tree({"a.txt": "a"})
        outcome = execute_function_call(
            "move", {"sourcePath": "a.txt", "destinationPath": "../a.txt"}, current, PathTree()
        )

        assert not outcome.result.success
        assert "destinationPath" in outcome.result.error
        assert outcome.new_current == current

    def test_delete_rejects_parent_path(self):
        """Verify deletePath refuses paths that climb out of the project."""
        current = create_tree({"a.txt": "a"})
        outcome = execute_function_call("deletePath", {"path": "../a.txt"}, current, PathTree())

        assert not outcome.result.success
        assert outcome.new_deleted == PathTree()
