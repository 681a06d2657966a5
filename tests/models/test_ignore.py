"""Unit tests for ignore rules and bulk project import (models/ignore.py)."""

from models.ignore import (
    build_tree_from_entries,
    combine_ignore_texts,
    create_is_ignored,
    is_always_excluded,
)


class TestCreateIsIgnored:
    """Tests for compiling gitignore text into a predicate."""

    def test_simple_glob(self):
        """Verify a glob pattern matches at any depth."""
        is_ignored = create_is_ignored("*.log")

        assert is_ignored("debug.log")
        assert is_ignored("logs/debug.log")
        assert not is_ignored("debug.txt")

    def test_directory_pattern_matches_descendants(self):
        """Verify ``build/`` ignores everything under build."""
        is_ignored = create_is_ignored("build/")

        assert is_ignored("build/out.js")
        assert is_ignored("pkg/build/out.js")
        assert not is_ignored("builder.py")

    def test_comments_and_blank_lines_skipped(self):
        """Verify comments and blank lines never match."""
        is_ignored = create_is_ignored("# comment\n\n*.tmp\n")

        assert is_ignored("a.tmp")
        assert not is_ignored("# comment")

    def test_negation_reincludes(self):
        """Verify a later negation re-includes a file."""
        is_ignored = create_is_ignored("*.log\n!keep.log")

        assert is_ignored("other.log")
        assert not is_ignored("keep.log")

    def test_anchored_pattern(self):
        """Verify a leading slash anchors the pattern to the root."""
        is_ignored = create_is_ignored("/config.json")

        assert is_ignored("config.json")
        assert not is_ignored("sub/config.json")


class TestAlwaysExcluded:
    """Tests for the paths that are never imported."""

    def test_git_metadata(self):
        """Verify .git internals are excluded at any depth."""
        assert is_always_excluded(".git/HEAD")
        assert is_always_excluded("vendor/lib/.git/config")
        assert not is_always_excluded(".github/workflows/ci.yml")

    def test_ignore_files(self):
        """Verify the ignore files themselves are excluded."""
        assert is_always_excluded(".gitignore")
        assert is_always_excluded("sub/.gcignore")
        assert not is_always_excluded("gitignore.md")


class TestCombineIgnoreTexts:
    """Tests for merging the two ignore files."""

    def test_both_present(self):
        """Verify both files contribute their rules."""
        combined = combine_ignore_texts("*.log", "dist/")
        is_ignored = create_is_ignored(combined)

        assert is_ignored("a.log")
        assert is_ignored("dist/app.js")

    def test_none_present(self):
        """Verify no ignore files yields empty text."""
        assert combine_ignore_texts(None, None) == ""


class TestBuildTreeFromEntries:
    """Tests for importing a flat list of uploaded files."""

    def test_builds_files_and_dirs(self):
        """Verify every file lands with its ancestor directories."""
        tree = build_tree_from_entries([("src/a.txt", "hello"), ("README.md", "r")])

        assert tree.files == {"src/a.txt": "hello", "README.md": "r"}
        assert tree.dirs == {"src"}

    def test_applies_supplied_ignore_content(self):
        """Verify supplied ignore rules filter entries."""
        tree = build_tree_from_entries(
            [("src/a.py", "a"), ("node_modules/x/index.js", "x")],
            ignore_content="node_modules/",
        )

        assert set(tree.files) == {"src/a.py"}
        assert tree.dirs == {"src"}

    def test_applies_root_ignore_entries(self):
        """Verify a root .gitignore among the entries is honoured and dropped."""
        tree = build_tree_from_entries(
            [
                (".gitignore", "*.secret"),
                ("keys.secret", "s"),
                ("app.py", "print()"),
            ]
        )

        assert set(tree.files) == {"app.py"}

    def test_skips_git_metadata(self):
        """Verify .git internals never import."""
        tree = build_tree_from_entries([(".git/HEAD", "ref"), ("a.txt", "a")])
        assert set(tree.files) == {"a.txt"}
        assert ".git" not in tree.dirs

    def test_strips_leading_slash(self):
        """Verify a leading slash is removed from entry paths."""
        tree = build_tree_from_entries([("/src/a.txt", "a")])
        assert set(tree.files) == {"src/a.txt"}

    def test_ignore_file_inside_upload_folder(self):
        """Verify a .gitignore under the uploaded folder's name is honoured."""
        tree = build_tree_from_entries(
            [
                ("proj/.gitignore", "*.log\n"),
                ("proj/a.log", "x"),
                ("proj/a.txt", "y"),
            ]
        )

        assert set(tree.files) == {"proj/a.txt"}
        assert tree.dirs == {"proj"}

    def test_anchored_rule_relative_to_upload_folder(self):
        """Verify anchored rules match from the folder holding the ignore file."""
        tree = build_tree_from_entries(
            [
                ("proj/.gcignore", "/build\n"),
                ("proj/build/out.bin", "b"),
                ("proj/src/build/keep.txt", "k"),
            ]
        )

        assert set(tree.files) == {"proj/src/build/keep.txt"}

    def test_shallowest_ignore_file_wins(self):
        """Verify a nested ignore file does not override the top-level one."""
        tree = build_tree_from_entries(
            [
                ("proj/.gitignore", "*.tmp\n"),
                ("proj/vendor/.gitignore", "*.txt\n"),
                ("proj/a.tmp", "t"),
                ("proj/vendor/a.txt", "v"),
            ]
        )

        assert set(tree.files) == {"proj/vendor/a.txt"}

    def test_invalid_entry_paths_skipped(self):
        """Verify entries with malformed paths are dropped."""
        tree = build_tree_from_entries(
            [("../escape.txt", "x"), ("a//b.txt", "y"), ("", "z"), ("ok.txt", "ok")]
        )

        assert tree.files == {"ok.txt": "ok"}
        assert tree.dirs == set()
