"""Tests for metadata block parsing and document validation."""

import pytest

from aisync.exceptions import DocumentValidationError, ParseError
from aisync.frontmatter import (
    parse_frontmatter,
    serialize_frontmatter,
    split_frontmatter,
    strip_frontmatter,
)
from aisync.models import (
    ALL_PLATFORMS,
    DiagnosticCategory,
    DocumentKind,
    Platform,
    Priority,
    Provenance,
    RawDocument,
    Severity,
)
from aisync.parser import infer_name, parse_document, parse_text


def raw(kind: str, text: str, path: str = "rules/example.md") -> RawDocument:
    """Build a raw document from the local source."""
    return RawDocument(
        kind=DocumentKind(kind),
        text=text,
        provenance=Provenance(source="local", path=path),
    )


class TestFrontmatter:
    """Test splitting and parsing the metadata block."""

    def test_text_without_block_is_all_body(self) -> None:
        """Test that a missing block is not an error."""
        result = parse_frontmatter("# Title\n\nBody")
        assert result.has_block is False
        assert result.data == {}
        assert result.body == "# Title\n\nBody"

    def test_block_and_body(self) -> None:
        """Test a well-formed document."""
        result = parse_frontmatter("---\nname: a\npriority: high\n---\nBody text\n")
        assert result.data == {"name": "a", "priority": "high"}
        assert result.body == "Body text\n"
        assert result.body_line == 5

    def test_empty_block(self) -> None:
        """Test an empty metadata block."""
        result = parse_frontmatter("---\n---\nBody")
        assert result.has_block is True
        assert result.data == {}

    def test_crlf_line_endings(self) -> None:
        """Test Windows line endings."""
        result = parse_frontmatter("---\r\nname: a\r\n---\r\nBody")
        assert result.data == {"name": "a"}
        assert result.body == "Body"

    def test_invalid_yaml_reports_line_and_column(self) -> None:
        """Test that YAML errors point into the original file."""
        text = "---\nname: a\ntools: [read, write\n---\nBody"
        with pytest.raises(ParseError) as exc_info:
            parse_frontmatter(text, file_path="personas/a.md")
        error = exc_info.value
        assert error.file_path == "personas/a.md"
        assert error.line is not None
        assert error.line >= 3
        assert error.column is not None
        assert error.format().startswith(f"personas/a.md:{error.line}:{error.column}: ")

    def test_non_mapping_block(self) -> None:
        """Test that a list is rejected as metadata."""
        with pytest.raises(ParseError, match="must be a mapping"):
            parse_frontmatter("---\n- a\n- b\n---\nBody")

    def test_unterminated_block(self) -> None:
        """Test a block without a closing delimiter."""
        with pytest.raises(ParseError, match="Unterminated"):
            split_frontmatter("---\nname: a\nBody")

    def test_strip_frontmatter(self) -> None:
        """Test removing the block from included fragments."""
        assert strip_frontmatter("---\nname: x\n---\nFragment") == "Fragment"
        assert strip_frontmatter("No block") == "No block"

    def test_serialize_frontmatter(self) -> None:
        """Test rendering a block, dropping None values and keeping order."""
        text = serialize_frontmatter({"name": "a", "description": None, "alwaysApply": True})
        assert text == "---\nname: a\nalwaysApply: true\n---\n"
        assert serialize_frontmatter({}) == ""


class TestParseDocument:
    """Test kind-specific parsing, defaults and diagnostics."""

    def test_rule_defaults(self) -> None:
        """Test defaults applied to a minimal rule."""
        outcome = parse_document(raw("rule", "---\nname: style\n---\nUse tabs."))
        assert outcome.ok
        rule = outcome.document
        assert rule.kind == "rule"
        assert rule.name == "style"
        assert rule.body == "Use tabs."
        assert rule.metadata.always_apply is False
        assert rule.metadata.priority == Priority.MEDIUM
        assert rule.metadata.globs == []
        assert rule.metadata.requires == []
        assert rule.targets == list(ALL_PLATFORMS)
        assert outcome.diagnostics == []

    def test_rule_accepts_camel_case_alias(self) -> None:
        """Test alwaysApply spelled the Cursor way."""
        outcome = parse_document(raw("rule", "---\nname: a\nalwaysApply: true\n---\n"))
        assert outcome.document.metadata.always_apply is True

    def test_persona_defaults(self) -> None:
        """Test persona tool and model defaults."""
        outcome = parse_document(raw("persona", "---\nname: dev\n---\nYou build.", "personas/dev.md"))
        persona = outcome.document
        assert persona.metadata.tools == ["read", "write", "edit", "search", "glob", "ls"]
        assert persona.metadata.model == "default"
        assert persona.metadata.extends is None

    def test_name_inferred_with_warning(self) -> None:
        """Test that a missing name comes from the file stem."""
        outcome = parse_document(raw("rule", "---\npriority: high\n---\nBody", "rules/testing.md"))
        assert outcome.document.name == "testing"
        assert len(outcome.diagnostics) == 1
        assert outcome.diagnostics[0].severity == Severity.WARNING
        assert "inferred 'testing'" in outcome.diagnostics[0].message

    def test_name_inference_disabled_in_strict_mode(self) -> None:
        """Test that strict mode makes a missing name an error."""
        outcome = parse_document(raw("rule", "---\npriority: high\n---\nBody"), strict=True)
        assert outcome.document is None
        assert outcome.diagnostics[0].severity == Severity.ERROR
        assert outcome.diagnostics[0].category == DiagnosticCategory.VALIDATION

    def test_document_without_block_uses_file_name(self) -> None:
        """Test plain markdown documents."""
        outcome = parse_document(raw("rule", "Just text", "rules/plain.md"))
        assert outcome.document.name == "plain"
        assert outcome.document.body == "Just text"

    def test_parse_error_becomes_diagnostic(self) -> None:
        """Test fail-soft behavior for malformed YAML."""
        outcome = parse_document(raw("rule", "---\nname: [oops\n---\nBody"))
        assert outcome.document is None
        assert outcome.diagnostics[0].category == DiagnosticCategory.PARSE
        assert outcome.diagnostics[0].message.startswith("rules/example.md:")

    def test_invalid_priority(self) -> None:
        """Test values outside declared choices."""
        outcome = parse_document(raw("rule", "---\nname: a\npriority: urgent\n---\n"))
        assert outcome.document is None
        assert any("priority" in d.message for d in outcome.diagnostics)

    def test_invalid_target(self) -> None:
        """Test unknown platforms in targets."""
        outcome = parse_document(raw("rule", "---\nname: a\ntargets: [vscode]\n---\n"))
        assert outcome.document is None
        assert any("targets" in d.message for d in outcome.diagnostics)

    def test_invalid_version(self) -> None:
        """Test that versions must be semantic versions."""
        outcome = parse_document(raw("rule", "---\nname: a\nversion: v1\n---\n"))
        assert outcome.document is None
        assert any("semantic versioning" in d.message for d in outcome.diagnostics)

    def test_invalid_persona_tool(self) -> None:
        """Test tool names outside the generic vocabulary."""
        outcome = parse_document(
            raw("persona", "---\nname: a\ntools: [read, teleport]\n---\n", "personas/a.md"),
        )
        assert outcome.document is None
        assert any("teleport" in d.message for d in outcome.diagnostics)

    def test_hook_requires_event(self) -> None:
        """Test that hooks must declare an event."""
        outcome = parse_document(raw("hook", "---\nname: h\nexecute: ./lint.sh\n---\n", "hooks/h.md"))
        assert outcome.document is None
        assert any(d.message.startswith("event") for d in outcome.diagnostics)

    def test_hook_fields(self) -> None:
        """Test hook tool matcher aliases."""
        outcome = parse_document(
            raw(
                "hook",
                "---\nname: h\nevent: PreToolUse\ntoolMatch: Bash\nexecute: ./check.sh\n---\n",
                "hooks/h.md",
            ),
        )
        hook = outcome.document
        assert hook.metadata.event.value == "PreToolUse"
        assert hook.metadata.tool_match == "Bash"

    def test_command_argument_default_must_be_choice(self) -> None:
        """Test argument defaults against choices."""
        text = (
            "---\nname: deploy\nargs:\n"
            "  - name: env\n    choices: [dev, prod]\n    default: staging\n---\n"
        )
        outcome = parse_document(raw("command", text, "commands/deploy.md"))
        assert outcome.document is None
        assert any("one of the choices" in d.message for d in outcome.diagnostics)

    def test_unknown_fields_warn_in_strict_mode(self) -> None:
        """Test that strict mode flags unexpected keys."""
        outcome = parse_document(raw("rule", "---\nname: a\ncolour: blue\n---\n"), strict=True)
        assert outcome.ok
        assert any("colour" in d.message for d in outcome.diagnostics)

    @pytest.mark.parametrize("strict", [False, True])
    def test_boolean_key_is_a_validation_error(self, strict: bool) -> None:
        """Test that an unquoted 'on' key is reported, not raised."""
        text = "---\nname: r\non: push\nfoo: bar\n---\nBody"
        outcome = parse_document(raw("rule", text), strict=strict)
        assert outcome.document is None
        assert len(outcome.diagnostics) == 1
        diagnostic = outcome.diagnostics[0]
        assert diagnostic.category == DiagnosticCategory.VALIDATION
        assert diagnostic.severity == Severity.ERROR
        assert diagnostic.message.startswith("True: field name is not a string")

    def test_targets_subset(self) -> None:
        """Test explicit targets."""
        outcome = parse_document(raw("rule", "---\nname: a\ntargets: [claude]\n---\n"))
        assert outcome.document.targets == [Platform.CLAUDE]
        assert outcome.document.supports(Platform.CLAUDE)
        assert not outcome.document.supports(Platform.CURSOR)


class TestParseText:
    """Test the raising convenience wrapper."""

    def test_returns_document(self) -> None:
        """Test parsing text directly."""
        command = parse_text("command", "---\nname: test\nexecute: pytest\n---\nRun tests.")
        assert command.metadata.execute == "pytest"
        assert command.provenance.source == "inline"

    def test_raises_validation_error(self) -> None:
        """Test that invalid metadata raises."""
        with pytest.raises(DocumentValidationError) as exc_info:
            parse_text("hook", "---\nname: h\nevent: Whenever\n---\n")
        assert exc_info.value.errors[0].path == "event"

    def test_infer_name(self) -> None:
        """Test file-stem name inference."""
        assert infer_name("rules/nested/api-style.md") == "api-style"
