"""Claude Code artifact generator."""

from __future__ import annotations

from typing import Any

from ..models import Command, HookEvent, Persona, Platform, ResolvedContent, Rule
from ..vocabulary import map_model
from .base import (
    ArtifactBuilder,
    Generator,
    HookEntry,
    argument_hint,
    bullet_list,
    command_body,
    deep_merge,
    describe,
    mcp_servers_json,
    metadata_line,
    name_list,
    safe_filename,
    sort_by_name,
    sort_rules,
    to_json,
)

SUPPORTED_EVENTS = frozenset(
    {
        HookEvent.PRE_TOOL_USE,
        HookEvent.POST_TOOL_USE,
        HookEvent.USER_PROMPT_SUBMIT,
        HookEvent.NOTIFICATION,
        HookEvent.STOP,
        HookEvent.SUBAGENT_STOP,
        HookEvent.SESSION_START,
        HookEvent.SESSION_END,
        HookEvent.PRE_COMPACT,
    },
)


def skill_path(rule: Rule) -> str:
    return f".claude/skills/{safe_filename(rule.name)}/SKILL.md"


def agent_path(persona: Persona) -> str:
    return f".claude/agents/{safe_filename(persona.name)}.md"


def command_path(command: Command) -> str:
    return f".claude/commands/{safe_filename(command.name)}.md"


class ClaudeGenerator(Generator):
    """Generates skills, agents, commands, settings and CLAUDE.md."""

    platform = Platform.CLAUDE

    def build(self, content: ResolvedContent, builder: ArtifactBuilder) -> None:
        rules = sort_rules(content.rules)
        personas = sort_by_name(content.personas)
        commands = sort_by_name(content.commands)

        for rule in rules:
            builder.render(rule, skill_path(rule), lambda r=rule: self.render_skill(r))
        for persona in personas:
            builder.render(persona, agent_path(persona), lambda p=persona: self.render_agent(p))
        for command in commands:
            builder.render(
                command,
                command_path(command),
                lambda c=command: self.render_command(c),
            )

        hooks = self.hook_entries(content, builder)
        settings = self.render_settings(hooks, builder)
        if settings is not None:
            builder.add(".claude/settings.json", to_json(settings))
        if content.mcp_servers:
            builder.add(".mcp.json", mcp_servers_json(content.mcp_servers, typed=True))

        builder.add("CLAUDE.md", self.render_entry_point(content, rules, personas, commands, hooks))

    def render_skill(self, rule: Rule) -> str:
        """Render a rule as a skill with a name/description metadata block."""
        extension = rule.metadata.extension(Platform.CLAUDE)
        frontmatter: dict[str, Any] = {
            "name": safe_filename(rule.name),
            "description": extension.get("description") or describe(rule),
        }
        tools = extension.get("allowed-tools") or extension.get("tools")
        if tools:
            frontmatter["allowed-tools"] = ", ".join(self.tools.map_all(name_list(tools)))

        sections = [f"# {rule.name}"]
        if rule.description:
            sections.append(f"> {rule.description}")
        line = metadata_line(rule)
        if line:
            sections.append(line)
        if rule.body:
            sections.append(rule.body)
        return self.markdown("\n\n".join(sections), frontmatter)

    def render_agent(self, persona: Persona) -> str:
        """Render a persona as a subagent definition."""
        meta = persona.metadata
        extension = meta.extension(Platform.CLAUDE)
        tools = extension.get("tools") or meta.tools
        model = extension.get("model") or meta.model
        frontmatter = {
            "name": safe_filename(persona.name),
            "description": describe(persona),
            "tools": ", ".join(self.tools.map_all(name_list(tools))),
            "model": map_model(model, Platform.CLAUDE),
        }

        sections = [persona.body] if persona.body else []
        if meta.traits:
            traits = [f"**{key}:** {value}" for key, value in sorted(meta.traits.items())]
            sections.append("## Traits\n\n" + bullet_list(traits))
        return self.markdown("\n\n".join(sections), frontmatter)

    def render_command(self, command: Command) -> str:
        """Render a slash command."""
        meta = command.metadata
        extension = meta.extension(Platform.CLAUDE)
        frontmatter: dict[str, Any] = {"description": describe(command)}
        hint = extension.get("argument-hint") or argument_hint(meta.args)
        if hint:
            frontmatter["argument-hint"] = hint
        tools = extension.get("allowed-tools") or meta.allowed_tools
        if tools:
            frontmatter["allowed-tools"] = ", ".join(self.tools.map_all(name_list(tools)))
        return self.markdown(command_body(command), frontmatter)

    def render_settings(
        self,
        hooks: list[HookEntry],
        builder: ArtifactBuilder,
    ) -> dict[str, Any] | None:
        """Aggregate hooks into settings.json, merged over configured settings.

        Returns None when there is nothing to write.
        """
        events: dict[str, list[dict[str, Any]]] = {}
        for entry in hooks:
            if entry.event not in SUPPORTED_EVENTS:
                builder.warn(
                    f"Hook '{entry.name}': event {entry.event.value} is not supported "
                    "by Claude Code; skipped",
                    entry.provenance,
                )
                continue
            command: dict[str, Any] = {"type": "command", "command": entry.command}
            if entry.timeout:
                command["timeout"] = entry.timeout
            events.setdefault(entry.event.value, []).append(
                {"matcher": entry.matcher or "*", "hooks": [command]},
            )

        if not events and not self.options.settings:
            return None
        settings = dict(self.options.settings)
        if events:
            settings = deep_merge(settings, {"hooks": events})
        return settings

    def render_entry_point(
        self,
        content: ResolvedContent,
        rules: list[Rule],
        personas: list[Persona],
        commands: list[Command],
        hooks: list[HookEntry],
    ) -> str:
        """Render CLAUDE.md, importing always-active skills."""
        sections = ["# Claude Code Context"]
        if content.project_name:
            sections.append(f"Project: **{content.project_name}**")

        core = [r for r in rules if r.metadata.always_apply]
        contextual = [r for r in rules if not r.metadata.always_apply]
        if core:
            imports = "\n".join(f"@{skill_path(r)}" for r in core)
            sections.append(f"## Core Skills (Always Active)\n\n{imports}")
        if contextual:
            items = []
            for rule in contextual:
                item = f"**{rule.name}**: {describe(rule)}"
                if rule.metadata.globs:
                    item += " (" + ", ".join(f"`{g}`" for g in rule.metadata.globs) + ")"
                items.append(item)
            sections.append("## Context-Aware Skills\n\n" + bullet_list(items))
        if personas:
            items = [f"**{p.name}**: {describe(p)}" for p in personas]
            sections.append("## Available Agents\n\n" + bullet_list(items))
        if commands:
            items = [f"`/{safe_filename(c.name)}`: {describe(c)}" for c in commands]
            sections.append("## Available Commands\n\n" + bullet_list(items))
        active = [h for h in hooks if h.event in SUPPORTED_EVENTS]
        if active:
            items = [
                f"**{h.event.value}** (`{h.matcher or '*'}`): {h.name}" for h in active
            ]
            sections.append("## Active Hooks\n\n" + bullet_list(items))
        return self.markdown("\n\n".join(sections))
