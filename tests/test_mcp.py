"""Tests for MCP server configuration."""

import json

import pytest

from aisync.conditions import StaticFactContext
from aisync.exceptions import DocumentValidationError, ParseError
from aisync.generators import ClaudeGenerator, CursorGenerator, FactoryGenerator
from aisync.mcp import interpolate_env, merge_servers, parse_mcp_config, servers_for
from aisync.models import (
    DiagnosticCategory,
    MultiSourceLoadResult,
    Platform,
    Provenance,
    RawMcpConfig,
    ResolvedContent,
    Severity,
    SourceLoadResult,
)
from aisync.resolver import ResolveOptions, Resolver

SERVERS = """\
version: 1.0.0
servers:
  github:
    command: npx
    args: ["-y", "@modelcontextprotocol/server-github"]
    env:
      GITHUB_TOKEN: ${GITHUB_TOKEN}
  docs:
    url: https://docs.example.com/mcp
    headers:
      Authorization: Bearer ${DOCS_TOKEN}
    targets: [claude, factory]
  legacy:
    command: ./legacy-server
    enabled: false
"""


def raw_config(text: str, source: str = "local") -> RawMcpConfig:
    return RawMcpConfig(text=text, provenance=Provenance(source=source, path="mcp.yaml"))


class TestParseMcpConfig:
    """Test parsing and validating server definitions."""

    def test_command_and_url_servers(self) -> None:
        """Test both transports with their defaults."""
        config = parse_mcp_config(SERVERS)
        github = config.servers["github"]
        assert github.is_command
        assert github.args == ["-y", "@modelcontextprotocol/server-github"]
        assert github.enabled is True
        assert github.targets == [Platform.CURSOR, Platform.CLAUDE, Platform.FACTORY]
        docs = config.servers["docs"]
        assert not docs.is_command
        assert docs.url == "https://docs.example.com/mcp"
        assert docs.targets == [Platform.CLAUDE, Platform.FACTORY]

    def test_environment_interpolation(self) -> None:
        """Test that set variables expand and unset ones keep their placeholder."""
        config = parse_mcp_config(SERVERS, environ={"GITHUB_TOKEN": "ghp_123"})
        assert config.servers["github"].env == {"GITHUB_TOKEN": "ghp_123"}
        assert config.servers["docs"].headers == {"Authorization": "Bearer ${DOCS_TOKEN}"}

    def test_no_interpolation_without_environment(self) -> None:
        config = parse_mcp_config(SERVERS)
        assert config.servers["github"].env == {"GITHUB_TOKEN": "${GITHUB_TOKEN}"}

    def test_interpolate_nested_values(self) -> None:
        value = {"a": ["${X}", 3, {"b": "x=${X}"}], "c": None}
        assert interpolate_env(value, {"X": "1"}) == {"a": ["1", 3, {"b": "x=1"}], "c": None}

    @pytest.mark.parametrize(
        ("server", "message"),
        [
            ("{}", 'either "command" or "url"'),
            ("{command: run, url: 'https://x.dev'}", 'both "command" and "url"'),
            ("{url: not-a-url}", "invalid URL"),
            ("{command: ''}", "command cannot be empty"),
            ("{command: run, targets: []}", "at least one platform"),
            ("{command: run, targets: [vscode]}", "targets"),
        ],
    )
    def test_invalid_servers(self, server: str, message: str) -> None:
        """Test per-server validation failures."""
        with pytest.raises(DocumentValidationError) as exc_info:
            parse_mcp_config(f"servers:\n  bad: {server}\n")
        assert exc_info.value.file_path == "mcp.yaml"
        assert any(message in str(fe) for fe in exc_info.value.errors)
        assert all(fe.path.startswith("servers.bad") for fe in exc_info.value.errors)

    def test_servers_required(self) -> None:
        with pytest.raises(DocumentValidationError) as exc_info:
            parse_mcp_config("version: 1.0.0\n")
        assert exc_info.value.errors[0].path == "servers"

    def test_invalid_version(self) -> None:
        with pytest.raises(DocumentValidationError, match="semantic versioning"):
            parse_mcp_config("version: one\nservers: {}\n")

    def test_invalid_yaml(self) -> None:
        """Test that YAML errors carry a position."""
        with pytest.raises(ParseError) as exc_info:
            parse_mcp_config("servers:\n  a: [oops\n", file_path="mcp.yml")
        assert exc_info.value.format().startswith("mcp.yml:")
        assert exc_info.value.line is not None

    def test_not_a_mapping(self) -> None:
        with pytest.raises(ParseError, match="must be a mapping"):
            parse_mcp_config("- a\n- b\n")


class TestServerSelection:
    """Test merging sources and selecting servers per target."""

    def test_first_source_wins(self) -> None:
        """Test that later definitions of a name are ignored with a warning."""
        local = raw_config("servers:\n  db: {command: local-db}\n")
        shared = raw_config("servers:\n  db: {command: shared-db}\n  web: {url: 'https://w.dev'}\n", "shared")
        servers, diagnostics = merge_servers(
            [(local, parse_mcp_config(local.text)), (shared, parse_mcp_config(shared.text))],
        )
        assert servers["db"].command == "local-db"
        assert set(servers) == {"db", "web"}
        assert len(diagnostics) == 1
        assert diagnostics[0].severity == Severity.WARNING
        assert diagnostics[0].provenance.source == "shared"
        assert "already defined by local:mcp.yaml" in diagnostics[0].message

    def test_servers_for_target(self) -> None:
        """Test that disabled servers and other targets are left out."""
        servers = parse_mcp_config(SERVERS).servers
        assert list(servers_for(servers, Platform.CURSOR)) == ["github"]
        assert list(servers_for(servers, Platform.CLAUDE)) == ["docs", "github"]


class TestResolverMcp:
    """Test MCP configuration flowing through resolution."""

    @staticmethod
    def load(*configs: tuple[str, str]) -> MultiSourceLoadResult:
        return MultiSourceLoadResult(
            sources=[
                SourceLoadResult(source=source, mcp=raw_config(text, source))
                for source, text in configs
            ],
        )

    def test_servers_resolved_per_target(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test environment expansion and target selection."""
        monkeypatch.setenv("GITHUB_TOKEN", "from-env")
        resolver = Resolver(self.load(("local", SERVERS)), StaticFactContext({}))
        cursor = resolver.resolve(Platform.CURSOR)
        assert list(cursor.mcp_servers) == ["github"]
        assert cursor.mcp_servers["github"].env == {"GITHUB_TOKEN": "from-env"}
        assert list(resolver.resolve(Platform.FACTORY).mcp_servers) == ["docs", "github"]
        assert cursor.errors == []

    def test_interpolation_disabled(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GITHUB_TOKEN", "from-env")
        resolver = Resolver(
            self.load(("local", SERVERS)),
            StaticFactContext({}),
            options=ResolveOptions(interpolate_env=False),
        )
        servers = resolver.resolve(Platform.CLAUDE).mcp_servers
        assert servers["github"].env == {"GITHUB_TOKEN": "${GITHUB_TOKEN}"}

    def test_invalid_config_is_scoped(self) -> None:
        """Test that a broken file only drops its own servers."""
        resolver = Resolver(
            self.load(
                ("local", "servers:\n  bad: {}\n"),
                ("shared", "servers:\n  ok: {command: run}\n"),
            ),
            StaticFactContext({}),
        )
        content = resolver.resolve(Platform.CLAUDE)
        assert list(content.mcp_servers) == ["ok"]
        assert len(content.errors) == 1
        assert content.errors[0].category == DiagnosticCategory.MCP
        assert content.errors[0].provenance.source == "local"
        assert 'either "command" or "url"' in content.errors[0].message

    def test_yaml_error_is_scoped(self) -> None:
        resolver = Resolver(self.load(("local", "servers: [oops\n")), StaticFactContext({}))
        content = resolver.resolve(Platform.CURSOR)
        assert content.mcp_servers == {}
        assert content.errors[0].category == DiagnosticCategory.MCP
        assert content.errors[0].message.startswith("mcp.yaml:")


class TestMcpArtifacts:
    """Test the per-target MCP files."""

    @staticmethod
    def content(platform: Platform) -> ResolvedContent:
        servers = servers_for(parse_mcp_config(SERVERS).servers, platform)
        return ResolvedContent(target=platform, mcp_servers=servers)

    def test_cursor(self) -> None:
        """Test that Cursor entries carry no transport type."""
        artifacts = CursorGenerator().generate(self.content(Platform.CURSOR))
        data = json.loads(artifacts.get(".cursor/mcp.json"))
        assert data == {
            "mcpServers": {
                "github": {
                    "command": "npx",
                    "args": ["-y", "@modelcontextprotocol/server-github"],
                    "env": {"GITHUB_TOKEN": "${GITHUB_TOKEN}"},
                },
            },
        }

    def test_claude(self) -> None:
        artifacts = ClaudeGenerator().generate(self.content(Platform.CLAUDE))
        servers = json.loads(artifacts.get(".mcp.json"))["mcpServers"]
        assert list(servers) == ["docs", "github"]
        assert servers["docs"] == {
            "type": "http",
            "url": "https://docs.example.com/mcp",
            "headers": {"Authorization": "Bearer ${DOCS_TOKEN}"},
        }
        assert servers["github"]["type"] == "stdio"

    def test_factory(self) -> None:
        artifacts = FactoryGenerator().generate(self.content(Platform.FACTORY))
        servers = json.loads(artifacts.get(".factory/mcp.json"))["mcpServers"]
        assert servers["docs"]["type"] == "http"
        assert servers["github"]["command"] == "npx"

    @pytest.mark.parametrize(
        ("generator", "path"),
        [
            (CursorGenerator, ".cursor/mcp.json"),
            (ClaudeGenerator, ".mcp.json"),
            (FactoryGenerator, ".factory/mcp.json"),
        ],
    )
    def test_no_file_without_servers(self, generator, path: str) -> None:
        artifacts = generator().generate(ResolvedContent(target=generator.platform))
        assert path not in artifacts.paths
