"""Shared machinery for target generators."""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar

import yaml

from ..exceptions import GenerationError
from ..frontmatter import serialize_frontmatter
from ..models import (
    Artifact,
    ArtifactSet,
    Command,
    CommandArgument,
    Diagnostic,
    DiagnosticCategory,
    Hook,
    HookEvent,
    McpServer,
    Persona,
    Platform,
    Provenance,
    ResolvedContent,
    Rule,
    error,
    warning,
)
from ..vocabulary import ToolMapper

logger = logging.getLogger(__name__)

DO_NOT_EDIT_HEADER = (
    "<!-- Generated by aisync. Do not edit directly; "
    "change the sources under .ai/ and run `aisync sync`. -->"
)

_HOOK_EVENT_ORDER = {event: index for index, event in enumerate(HookEvent)}


@dataclass
class HookEntry:
    """A hook ready for rendering: from a document or from configuration."""

    name: str
    event: HookEvent
    command: str
    matcher: str | None = None
    timeout: int | None = None
    extension: dict[str, Any] = field(default_factory=dict)
    provenance: Provenance | None = None


@dataclass
class GeneratorOptions:
    """Settings shared by every generator."""

    add_headers: bool = False
    settings: dict[str, Any] = field(default_factory=dict)
    hooks: list[HookEntry] = field(default_factory=list)
    tool_mappings: dict[str, str] = field(default_factory=dict)
    preserve_unknown_tools: bool = False


def safe_filename(name: str) -> str:
    """Turn a document name into a file-system safe stem."""
    stem = re.sub(r"[^a-z0-9_-]", "-", name.strip().lower())
    stem = re.sub(r"-{2,}", "-", stem).strip("-")
    return stem or "unnamed"


def sort_rules(rules: list[Rule]) -> list[Rule]:
    """Highest priority first, then by name."""
    return sorted(rules, key=lambda r: (r.metadata.priority.rank, r.name))


def sort_by_name(documents: list[Any]) -> list[Any]:
    return sorted(documents, key=lambda d: d.name)


def sort_hooks(hooks: list[Hook]) -> list[Hook]:
    """By event in lifecycle order, then by name."""
    return sorted(hooks, key=lambda h: (_HOOK_EVENT_ORDER[h.metadata.event], h.name))


def sort_hook_entries(entries: list[HookEntry]) -> list[HookEntry]:
    return sorted(entries, key=lambda e: (_HOOK_EVENT_ORDER[e.event], e.name))


def to_json(data: Any) -> str:
    """Serialize a JSON artifact."""
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def compose_markdown(
    body: str,
    frontmatter: dict[str, Any] | None = None,
    header: bool = False,
) -> str:
    """Assemble a markdown artifact.

    The metadata block, if any, stays first so consumers can parse it; the
    generated-file header follows it.
    """
    parts = []
    if frontmatter:
        parts.append(serialize_frontmatter(frontmatter))
    text = body.strip()
    if header:
        text = f"{DO_NOT_EDIT_HEADER}\n\n{text}" if text else DO_NOT_EDIT_HEADER
    parts.append(text + "\n")
    return "".join(parts)


def bullet_list(items: list[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


def name_list(value: Any) -> list[str]:
    """Names from an extension value given as a list or a comma-separated string."""
    if not value:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    return [str(value)]


def mcp_servers_json(servers: dict[str, McpServer], typed: bool = False) -> str:
    """Render servers as an ``mcpServers`` JSON document.

    Args:
        servers: Servers selected for the target
        typed: Add the ``type`` field (``stdio`` or ``http``) that Claude and Factory expect
    """
    entries: dict[str, Any] = {}
    for name, server in servers.items():
        entry: dict[str, Any] = {}
        if server.is_command:
            if typed:
                entry["type"] = "stdio"
            entry["command"] = server.command
            if server.args:
                entry["args"] = list(server.args)
            if server.env:
                entry["env"] = dict(server.env)
            if server.cwd:
                entry["cwd"] = server.cwd
        else:
            if typed:
                entry["type"] = "http"
            entry["url"] = server.url
            if server.headers:
                entry["headers"] = dict(server.headers)
        entries[name] = entry
    return to_json({"mcpServers": entries})


def metadata_line(rule: Rule) -> str:
    """One-line summary of how a rule activates."""
    meta = rule.metadata
    parts = []
    if meta.always_apply:
        parts.append("**Always Active**")
    if meta.globs:
        parts.append("**Triggers:** " + ", ".join(f"`{g}`" for g in meta.globs))
    if meta.priority.value != "medium":
        parts.append(f"**Priority:** {meta.priority.value}")
    if meta.requires:
        parts.append("**Requires:** " + ", ".join(meta.requires))
    return " | ".join(parts)


def describe(document: Rule | Persona | Command | Hook) -> str:
    return document.description or f"{document.name} {document.kind}"


def argument_hint(args: list[CommandArgument]) -> str | None:
    """Compact usage hint such as ``<target> [env]``."""
    if not args:
        return None
    hints = []
    for arg in args:
        label = "|".join(str(c) for c in arg.choices) if arg.choices else arg.name
        hints.append(f"<{label}>" if arg.required else f"[{label}]")
    return " ".join(hints)


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def arguments_section(args: list[CommandArgument]) -> str:
    """Markdown documentation of command arguments."""
    lines = ["## Arguments", ""]
    for arg in args:
        flags = [arg.type.value]
        if arg.required:
            flags.append("required")
        line = f"- `{arg.name}` ({', '.join(flags)})"
        if arg.description:
            line += f": {arg.description}"
        extras = []
        if arg.default is not None:
            extras.append(f"Default: `{_format_value(arg.default)}`")
        if arg.choices:
            extras.append("Choices: " + ", ".join(f"`{_format_value(c)}`" for c in arg.choices))
        if extras:
            line += ". " + ". ".join(extras)
        lines.append(line)
    return "\n".join(lines)


def execute_section(execute: str) -> str:
    return f"## Execute\n\n```bash\n{execute.strip()}\n```"


def command_body(command: Command) -> str:
    """Body of a command followed by its execute and argument sections."""
    sections = [command.body.strip()] if command.body.strip() else []
    if command.metadata.execute:
        sections.append(execute_section(command.metadata.execute))
    if command.metadata.args:
        sections.append(arguments_section(command.metadata.args))
    return "\n\n".join(sections)


def hook_entries(hooks: list[Hook]) -> tuple[list[HookEntry], list[Diagnostic]]:
    """Convert hook documents into entries; hooks without a command are skipped."""
    entries = []
    problems = []
    for hook in sort_hooks(hooks):
        if not hook.metadata.execute:
            problems.append(
                warning(
                    DiagnosticCategory.GENERATION,
                    f"Hook '{hook.name}' has no execute command; skipped",
                    hook.provenance,
                ),
            )
            continue
        entries.append(
            HookEntry(
                name=hook.name,
                event=hook.metadata.event,
                command=hook.metadata.execute,
                matcher=hook.metadata.tool_match,
                timeout=hook.metadata.timeout,
                extension={
                    "cursor": hook.metadata.extension("cursor"),
                    "claude": hook.metadata.extension("claude"),
                    "factory": hook.metadata.extension("factory"),
                },
                provenance=hook.provenance,
            ),
        )
    return entries, problems


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge mappings recursively; lists and scalars in ``override`` win."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ArtifactBuilder:
    """Collects artifacts for one target, first path wins."""

    def __init__(self, target: Platform | None = None) -> None:
        self.target = target
        self._artifacts: dict[str, Artifact] = {}
        self._owners: dict[str, Provenance | None] = {}
        self.diagnostics: list[Diagnostic] = []

    def add(self, path: str, content: str, provenance: Provenance | None = None) -> bool:
        """Add an artifact unless another document already produced the path."""
        if path in self._artifacts:
            owner = self._owners.get(path)
            self.warn(
                f"Output {path} already generated"
                + (f" from {owner}" if owner else "")
                + "; duplicate skipped",
                provenance,
            )
            return False
        self._artifacts[path] = Artifact(path=path, content=content)
        self._owners[path] = provenance
        return True

    def render(
        self,
        document: Rule | Persona | Command | Hook,
        path: str,
        renderer: Callable[[], str],
    ) -> bool:
        """Render one document's artifact, recording failures as diagnostics."""
        try:
            content = renderer()
        except (GenerationError, yaml.YAMLError, TypeError, ValueError) as e:
            logger.warning("Failed to render %s '%s': %s", document.kind, document.name, e)
            self.diagnostics.append(
                error(
                    DiagnosticCategory.GENERATION,
                    f"Failed to generate {path}: {e}",
                    document.provenance,
                ),
            )
            return False
        return self.add(path, content, document.provenance)

    def warn(self, message: str, provenance: Provenance | None = None) -> None:
        self.diagnostics.append(warning(DiagnosticCategory.GENERATION, message, provenance))

    def result(self) -> ArtifactSet:
        artifacts = [self._artifacts[p] for p in sorted(self._artifacts)]
        return ArtifactSet(target=self.target, artifacts=artifacts, diagnostics=self.diagnostics)


class Generator(ABC):
    """Turns resolved content into one platform's artifact set."""

    platform: ClassVar[Platform]

    def __init__(self, options: GeneratorOptions | None = None) -> None:
        self.options = options or GeneratorOptions()
        self.tools = ToolMapper(
            self.platform,
            custom=self.options.tool_mappings,
            preserve_unknown=self.options.preserve_unknown_tools,
        )

    def generate(self, content: ResolvedContent) -> ArtifactSet:
        """Generate artifacts for resolved content.

        Args:
            content: Content resolved for this generator's platform

        Returns:
            Artifacts sorted by path, with generation diagnostics

        Raises:
            GenerationError: If the content was resolved for another platform
        """
        if content.target != self.platform:
            msg = (
                f"{type(self).__name__} cannot generate content resolved "
                f"for {content.target.value}"
            )
            raise GenerationError(msg, details={"target": content.target.value})
        builder = ArtifactBuilder(self.platform)
        self.build(content, builder)
        result = builder.result()
        logger.info("Generated %d %s artifacts", len(result), self.platform.value)
        return result

    @abstractmethod
    def build(self, content: ResolvedContent, builder: ArtifactBuilder) -> None:
        """Add this platform's artifacts to the builder."""

    def markdown(
        self,
        body: str,
        frontmatter: dict[str, Any] | None = None,
    ) -> str:
        return compose_markdown(body, frontmatter, header=self.options.add_headers)

    def hook_entries(self, content: ResolvedContent, builder: ArtifactBuilder) -> list[HookEntry]:
        """Document hooks followed by configured hooks, in stable order."""
        entries, problems = hook_entries(content.hooks)
        builder.diagnostics.extend(problems)
        return entries + sort_hook_entries(list(self.options.hooks))
