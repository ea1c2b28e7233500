"""Tests for include directive expansion."""

import pytest

from aisync.exceptions import (
    IncludeCycleError,
    IncludeDepthError,
    IncludeNotFoundError,
    IncludeReadError,
)
from aisync.includes import (
    MappingIncludeSource,
    find_includes,
    resolve_include_path,
    resolve_includes,
)


class _BrokenSource:
    def read(self, path: str) -> str | None:
        raise PermissionError(path)


class _BinarySource:
    def read(self, path: str) -> str | None:
        return b"\xff\xfe".decode("utf-8")


class TestIncludePaths:
    """Test directive discovery and path resolution."""

    def test_find_includes(self) -> None:
        """Test that only whole-line directives count."""
        body = "@include a.md\n  @include \"b c.md\"\ntext @include d.md\n@include <e.md>"
        assert find_includes(body) == ["a.md", "b c.md", "e.md"]

    def test_relative_to_including_file(self) -> None:
        """Test resolution against the including file's directory."""
        assert resolve_include_path("rules/api.md", "shared/auth.md") == "rules/shared/auth.md"
        assert resolve_include_path("rules/api.md", "../common/x.md") == "common/x.md"
        assert resolve_include_path("rules/api.md", "/common/x.md") == "common/x.md"
        assert resolve_include_path("main.md", "../x.md") == "../x.md"


class TestResolveIncludes:
    """Test splicing included bodies."""

    def test_splices_body_without_metadata(self) -> None:
        """Test that fragments lose their metadata block."""
        source = MappingIncludeSource(
            {"rules/shared.md": "---\nname: shared\n---\n\nShared text\n"},
        )
        result = resolve_includes("before\n@include shared.md\nafter", "rules/main.md", source)
        assert result.body == "before\nShared text\nafter"
        assert result.included == ["rules/shared.md"]

    def test_nested_includes(self) -> None:
        """Test includes inside included files."""
        source = MappingIncludeSource(
            {
                "rules/a.md": "A1\n@include sub/b.md\nA2",
                "rules/sub/b.md": "B",
            },
        )
        result = resolve_includes("@include a.md", "rules/main.md", source)
        assert result.body == "A1\nB\nA2"
        assert result.included == ["rules/a.md", "rules/sub/b.md"]

    def test_same_file_twice_is_not_a_cycle(self) -> None:
        """Test that sibling includes of one file are allowed."""
        source = MappingIncludeSource({"rules/x.md": "X"})
        result = resolve_includes("@include x.md\n@include x.md", "rules/main.md", source)
        assert result.body == "X\nX"

    def test_body_without_directives_unchanged(self) -> None:
        """Test the no-op case."""
        result = resolve_includes("plain\n\ntext", "rules/main.md", MappingIncludeSource())
        assert result.body == "plain\n\ntext"
        assert result.included == []

    def test_missing_file(self) -> None:
        """Test a directive naming a file that does not exist."""
        with pytest.raises(IncludeNotFoundError) as exc_info:
            resolve_includes("@include gone.md", "rules/main.md", MappingIncludeSource())
        assert str(exc_info.value) == "Include file not found: rules/gone.md"

    def test_direct_cycle(self) -> None:
        """Test a file including itself."""
        source = MappingIncludeSource({"rules/a.md": "@include a.md"})
        with pytest.raises(IncludeCycleError) as exc_info:
            resolve_includes("@include a.md", "rules/a.md", source)
        assert exc_info.value.chain == ["rules/a.md", "rules/a.md"]

    def test_indirect_cycle(self) -> None:
        """Test a cycle through another file."""
        source = MappingIncludeSource(
            {"rules/a.md": "@include b.md", "rules/b.md": "@include a.md"},
        )
        with pytest.raises(IncludeCycleError, match="rules/a.md -> rules/b.md -> rules/a.md"):
            resolve_includes("@include b.md", "rules/a.md", source)

    def test_depth_limit(self) -> None:
        """Test that nesting beyond the limit fails."""
        source = MappingIncludeSource(
            {
                "rules/1.md": "@include 2.md",
                "rules/2.md": "@include 3.md",
                "rules/3.md": "end",
            },
        )
        result = resolve_includes("@include 1.md\n", "rules/main.md", source, max_depth=3)
        assert result.body == "end\n"
        with pytest.raises(IncludeDepthError):
            resolve_includes("@include 1.md", "rules/main.md", source, max_depth=2)

    def test_read_failure(self) -> None:
        """Test that source errors surface as include errors."""
        with pytest.raises(IncludeReadError):
            resolve_includes("@include a.md", "rules/main.md", _BrokenSource())

    def test_undecodable_file(self) -> None:
        """Test that a file that is not UTF-8 is a read error naming the path."""
        with pytest.raises(IncludeReadError, match="rules/a.md") as excinfo:
            resolve_includes("@include a.md", "rules/main.md", _BinarySource())
        assert excinfo.value.details == {"path": "rules/a.md"}


class TestIncludeOrder:
    """Test splicing several fragments into one body."""

    def test_fragments_keep_directive_order(self) -> None:
        """Test that fragment A precedes fragment B."""
        source = MappingIncludeSource(
            {
                "rules/a.md": "---\nname: a\n---\nFragment A",
                "rules/b.md": "---\nname: b\n---\nFragment B",
            },
        )
        result = resolve_includes("@include a.md\n@include b.md", "rules/main.md", source)
        assert result.body == "Fragment A\nFragment B"
        assert "name:" not in result.body
