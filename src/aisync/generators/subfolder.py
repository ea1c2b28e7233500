"""Per-subfolder CLAUDE.md and AGENTS.md for monorepo packages."""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field
from typing import Callable, Mapping

from ..models import (
    ALL_PLATFORMS,
    ArtifactSet,
    Command,
    Persona,
    Platform,
    ResolvedContent,
    Rule,
)
from . import claude, cursor, factory
from .base import (
    ArtifactBuilder,
    GeneratorOptions,
    compose_markdown,
    safe_filename,
    sort_by_name,
    sort_rules,
)

logger = logging.getLogger(__name__)


@dataclass
class SubfolderContext:
    """Documents selected for one subfolder, by name."""

    path: str
    rules: list[str] = field(default_factory=list)
    personas: list[str] = field(default_factory=list)
    commands: list[str] = field(default_factory=list)
    description: str | None = None
    targets: list[Platform] = field(default_factory=lambda: list(ALL_PLATFORMS))

    @property
    def prefix(self) -> str:
        """Relative path from the subfolder back to the project root."""
        depth = len([part for part in self.path.split("/") if part])
        return "../" * depth


@dataclass
class _Selection:
    rules: list[Rule]
    personas: list[Persona]
    commands: list[Command]


def _link(document: Rule | Persona | Command, path: str) -> str:
    suffix = f" - {document.description}" if document.description else ""
    return f"- [{document.name}]({path}){suffix}"


class SubfolderContextGenerator:
    """Writes context files into subfolders from already resolved targets.

    ``CLAUDE.md`` is written when Claude is compiled and targeted. ``AGENTS.md``
    links into Factory's layout when Factory is compiled and targeted, and into
    Cursor's otherwise.
    """

    def __init__(
        self,
        contexts: list[SubfolderContext],
        options: GeneratorOptions | None = None,
    ) -> None:
        self.contexts = sorted(contexts, key=lambda c: c.path)
        self.options = options or GeneratorOptions()

    def generate(self, contents: Mapping[Platform, ResolvedContent]) -> ArtifactSet:
        """Generate context files for every configured subfolder.

        Args:
            contents: Resolved content of each compiled target

        Returns:
            Artifacts across targets, with warnings for names that resolved nowhere
        """
        builder = ArtifactBuilder()
        for context in self.contexts:
            used: list[ResolvedContent] = []
            claude_content = self._content(contents, context, Platform.CLAUDE)
            if claude_content is not None:
                used.append(claude_content)
                selection = self.select(claude_content, context)
                builder.add(
                    posixpath.join(context.path, "CLAUDE.md"),
                    self.render_claude(context, selection),
                )

            agents_content = self._content(contents, context, Platform.FACTORY)
            if agents_content is None:
                agents_content = self._content(contents, context, Platform.CURSOR)
            if agents_content is not None:
                used.append(agents_content)
                selection = self.select(agents_content, context)
                builder.add(
                    posixpath.join(context.path, "AGENTS.md"),
                    self.render_agents(context, selection, agents_content.target),
                )

            if used:
                self._warn_missing(context, used, builder)

        result = builder.result()
        logger.info("Generated %d subfolder context files", len(result))
        return result

    @staticmethod
    def _content(
        contents: Mapping[Platform, ResolvedContent],
        context: SubfolderContext,
        platform: Platform,
    ) -> ResolvedContent | None:
        if platform not in context.targets:
            return None
        return contents.get(platform)

    @staticmethod
    def select(content: ResolvedContent, context: SubfolderContext) -> _Selection:
        """Documents named by the context; hooks never apply to a subfolder."""
        return _Selection(
            rules=sort_rules([r for r in content.rules if r.name in context.rules]),
            personas=sort_by_name([p for p in content.personas if p.name in context.personas]),
            commands=sort_by_name([c for c in content.commands if c.name in context.commands]),
        )

    def _warn_missing(
        self,
        context: SubfolderContext,
        used: list[ResolvedContent],
        builder: ArtifactBuilder,
    ) -> None:
        wanted = (
            ("rule", context.rules, lambda c: c.rules),
            ("persona", context.personas, lambda c: c.personas),
            ("command", context.commands, lambda c: c.commands),
        )
        for kind, names, documents in wanted:
            available = {d.name for content in used for d in documents(content)}
            for name in names:
                if name not in available:
                    builder.warn(
                        f"Subfolder context '{context.path}' lists unknown {kind} '{name}'",
                    )

    def _markdown(self, title: str, context: SubfolderContext, sections: list[str]) -> str:
        parts = [f"# {title}"]
        if context.description:
            parts.append(f"> {context.description}")
        parts.extend(sections)
        return compose_markdown("\n\n".join(parts), header=self.options.add_headers)

    def render_claude(self, context: SubfolderContext, selection: _Selection) -> str:
        """Render CLAUDE.md importing skills and linking agents."""
        prefix = context.prefix
        sections = []
        if selection.rules:
            imports = [f"@import {prefix}{claude.skill_path(r)}" for r in selection.rules]
            sections.append("## Relevant Skills\n\n" + "\n".join(imports))
        if selection.personas:
            links = [_link(p, prefix + claude.agent_path(p)) for p in selection.personas]
            sections.append("## Recommended Agents\n\n" + "\n".join(links))
        if selection.commands:
            lines = []
            for command in selection.commands:
                suffix = f" - {command.description}" if command.description else ""
                lines.append(f"- /{safe_filename(command.name)}{suffix}")
            sections.append("## Available Commands\n\n" + "\n".join(lines))
        return self._markdown("Claude Code Context", context, sections)

    def render_agents(
        self,
        context: SubfolderContext,
        selection: _Selection,
        platform: Platform,
    ) -> str:
        """Render AGENTS.md linking into the Factory or Cursor layout."""
        layouts: dict[Platform, tuple[tuple[str, Callable], ...]] = {
            Platform.FACTORY: (
                ("Relevant Skills", factory.skill_path),
                ("Recommended Droids", factory.droid_path),
                ("Available Commands", factory.command_path),
            ),
            Platform.CURSOR: (
                ("Relevant Rules", cursor.rule_path),
                ("Roles", cursor.role_path),
                ("Available Commands", cursor.command_path),
            ),
        }
        groups = (selection.rules, selection.personas, selection.commands)
        sections = []
        for (heading, path_for), documents in zip(layouts[platform], groups):
            if documents:
                links = [_link(d, context.prefix + path_for(d)) for d in documents]
                sections.append(f"## {heading}\n\n" + "\n".join(links))
        return self._markdown("AI Agents", context, sections)
