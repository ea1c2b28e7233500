"""Tests for platform-conditional template blocks."""

import pytest

from aisync.exceptions import TemplateError
from aisync.models import Platform
from aisync.templates import (
    has_template_blocks,
    parse_block_expression,
    parse_template,
    process_template,
    tidy_whitespace,
)


class TestBlockExpressions:
    """Test the block expression language."""

    @pytest.mark.parametrize(
        ("expression", "target", "expected"),
        [
            ("claude", "claude", True),
            ("claude", "cursor", False),
            ("claude|cursor", "cursor", True),
            ("claude | cursor", "factory", False),
            ("!factory", "claude", True),
            ("!factory", "factory", False),
            ("claude&!cursor", "claude", True),
            ("cursor&claude", "claude", False),
            ("factory|claude&!claude", "factory", True),
        ],
    )
    def test_matches(self, expression: str, target: str, expected: bool) -> None:
        """Test matching expressions against targets."""
        assert parse_block_expression(expression).matches(target) is expected

    @pytest.mark.parametrize("expression", ["", "claude||cursor", "claude cursor", "!", "&claude"])
    def test_malformed(self, expression: str) -> None:
        """Test that malformed expressions raise."""
        with pytest.raises(TemplateError):
            parse_block_expression(expression)

    def test_platform_names(self) -> None:
        """Test listing referenced platforms."""
        assert parse_block_expression("claude|!cursor&factory").platforms() == [
            "claude",
            "cursor",
            "factory",
        ]


class TestProcessTemplate:
    """Test rendering bodies per target."""

    def test_inline_blocks(self) -> None:
        """Test adjacent inline blocks for different platforms."""
        body = "before {{#claude}}X{{/claude}}{{#cursor}}Y{{/cursor}} after"
        assert process_template(body, Platform.CLAUDE).text == "before X after"
        assert process_template(body, Platform.CURSOR).text == "before Y after"
        assert process_template(body, Platform.FACTORY).text == "before  after"

    def test_tag_lines_removed(self) -> None:
        """Test that tags alone on a line take the line with them."""
        body = "Intro\n{{#claude}}\nClaude only\n{{/claude}}\nOutro"
        assert process_template(body, "claude").text == "Intro\nClaude only\nOutro"
        assert process_template(body, "cursor").text == "Intro\nOutro"

    def test_blank_lines_collapsed(self) -> None:
        """Test tidying after a removed block."""
        body = "A\n\n{{#cursor}}\nC\n{{/cursor}}\n\nB\n"
        result = process_template(body, "claude")
        assert result.text == "A\n\nB\n"
        assert result.blocks == 1

    def test_body_without_blocks_untouched(self) -> None:
        """Test that whitespace is preserved when nothing was processed."""
        body = "\n\nA   \n\n\n\nB"
        result = process_template(body, "claude")
        assert result.text == body
        assert result.blocks == 0
        assert result.warnings == []

    def test_nested_blocks_are_literal(self) -> None:
        """Test that an inner block is plain text of the outer one."""
        body = "{{#claude}}A {{#cursor}}B{{/cursor}} C{{/claude}}"
        assert process_template(body, "claude").text == "A {{#cursor}}B{{/cursor}} C"
        assert process_template(body, "cursor").text == ""

    def test_unclosed_block_warns(self) -> None:
        """Test that an unclosed block stays literal."""
        body = "{{#claude}} dangling"
        result = process_template(body, "claude")
        assert result.text == body
        assert "never closed" in result.warnings[0]

    def test_stray_close_warns(self) -> None:
        """Test a closing tag without an opening tag."""
        body = "text {{/claude}} more {{#cursor}}c{{/cursor}}"
        result = process_template(body, "cursor")
        assert result.text == "text {{/claude}} more c"
        assert "no opening tag" in result.warnings[0]

    def test_unknown_platform_warns(self) -> None:
        """Test blocks for platforms outside the known set."""
        result = process_template("a{{#vscode}}b{{/vscode}}c", "claude")
        assert result.text == "ac"
        assert "Unknown platform 'vscode'" in result.warnings[0]

    def test_custom_known_platforms(self) -> None:
        """Test extending the platform set."""
        result = process_template(
            "a{{#vscode}}b{{/vscode}}c",
            "vscode",
            known_platforms=("claude", "vscode"),
        )
        assert result.text == "abc"
        assert result.warnings == []

    def test_malformed_expression_raises(self) -> None:
        """Test that a broken block expression is an error."""
        with pytest.raises(TemplateError):
            process_template("{{#claude||}}x{{/claude||}}", "claude")

    def test_parse_template_nodes(self) -> None:
        """Test the parsed node sequence."""
        template = parse_template("a{{#claude}}b{{/claude}}c")
        assert len(template.nodes) == 3
        assert template.blocks[0].expression == "claude"


class TestHelpers:
    """Test whitespace and detection helpers."""

    def test_tidy_whitespace(self) -> None:
        """Test trailing space and blank-line normalization."""
        assert tidy_whitespace("\n\nA  \n\n\n\nB\n\n") == "A\n\nB\n"

    def test_has_template_blocks(self) -> None:
        """Test tag detection."""
        assert has_template_blocks("x {{#claude}}")
        assert not has_template_blocks("{{ not a tag }}")


class TestNegatedBlocks:
    """Test complementary blocks written with negation."""

    def test_claude_and_everyone_else(self) -> None:
        """Test a block and its negation side by side."""
        body = "before {{#claude}}X{{/claude}}{{#!claude}}Y{{/!claude}} after"
        assert process_template(body, "claude").text == "before X after"
        assert process_template(body, "cursor").text == "before Y after"
        assert process_template(body, "factory").text == "before Y after"
