"""Cursor artifact generator."""

from __future__ import annotations

from typing import Any

from ..models import Command, HookEvent, Persona, Platform, ResolvedContent, Rule
from .base import (
    ArtifactBuilder,
    Generator,
    HookEntry,
    bullet_list,
    command_body,
    describe,
    mcp_servers_json,
    name_list,
    safe_filename,
    sort_by_name,
    sort_rules,
    to_json,
)

HOOK_EVENTS: dict[HookEvent, str] = {
    HookEvent.PRE_TOOL_USE: "beforeShellExecution",
    HookEvent.POST_TOOL_USE: "afterFileEdit",
    HookEvent.USER_PROMPT_SUBMIT: "beforeSubmitPrompt",
    HookEvent.STOP: "stop",
}


def rule_path(rule: Rule) -> str:
    return f".cursor/rules/{safe_filename(rule.name)}.mdc"


def role_path(persona: Persona) -> str:
    return f".cursor/commands/roles/{safe_filename(persona.name)}.md"


def command_path(command: Command) -> str:
    return f".cursor/commands/{safe_filename(command.name)}.md"


class CursorGenerator(Generator):
    """Generates .mdc rules, role and command prompts, hooks.json and AGENTS.md."""

    platform = Platform.CURSOR

    def build(self, content: ResolvedContent, builder: ArtifactBuilder) -> None:
        personas = sort_by_name(content.personas)
        commands = sort_by_name(content.commands)

        for rule in sort_rules(content.rules):
            builder.render(rule, rule_path(rule), lambda r=rule: self.render_rule(r))
        for persona in personas:
            builder.render(persona, role_path(persona), lambda p=persona: self.render_role(p))
        for command in commands:
            builder.render(
                command,
                command_path(command),
                lambda c=command: self.render_command(c),
            )

        hooks = self.render_hooks(self.hook_entries(content, builder), builder)
        if hooks:
            builder.add(".cursor/hooks.json", to_json({"version": 1, "hooks": hooks}))
        if content.mcp_servers:
            builder.add(".cursor/mcp.json", mcp_servers_json(content.mcp_servers))

        if personas or commands:
            builder.add("AGENTS.md", self.render_agents_index(personas, commands))

    def render_rule(self, rule: Rule) -> str:
        """Render a rule as an .mdc file; ``cursor`` overrides win."""
        meta = rule.metadata
        extension = meta.extension(Platform.CURSOR)
        globs = extension.get("globs", meta.globs)
        if isinstance(globs, list):
            globs = ", ".join(str(g) for g in globs)
        frontmatter: dict[str, Any] = {
            "description": extension.get("description") or describe(rule),
        }
        if globs:
            frontmatter["globs"] = globs
        frontmatter["alwaysApply"] = bool(extension.get("alwaysApply", meta.always_apply))
        return self.markdown(rule.body, frontmatter)

    def render_role(self, persona: Persona) -> str:
        """Render a persona as a role prompt."""
        tools = persona.metadata.extension(Platform.CURSOR).get("tools") or persona.metadata.tools
        sections = [f"# {persona.name}"]
        if persona.description:
            sections.append(f"> {persona.description}")
        if persona.body:
            sections.append(persona.body)
        mapped = self.tools.map_all(name_list(tools))
        if mapped:
            sections.append("## Available Tools\n\n" + bullet_list(mapped))
        return self.markdown("\n\n".join(sections))

    def render_command(self, command: Command) -> str:
        meta = command.metadata
        extension = meta.extension(Platform.CURSOR)
        frontmatter: dict[str, Any] = {"description": describe(command)}
        tools = extension.get("allowedTools") or meta.allowed_tools
        if tools:
            frontmatter["allowedTools"] = self.tools.map_all(name_list(tools))
        globs = extension.get("globs") or meta.globs
        if globs:
            frontmatter["globs"] = name_list(globs)
        return self.markdown(command_body(command), frontmatter)

    def render_hooks(
        self,
        entries: list[HookEntry],
        builder: ArtifactBuilder,
    ) -> dict[str, list[dict[str, Any]]]:
        """Group hook commands by Cursor event name.

        A ``cursor.event`` override names the Cursor event directly.
        """
        hooks: dict[str, list[dict[str, Any]]] = {}
        for entry in entries:
            event = entry.extension.get("cursor", {}).get("event") or HOOK_EVENTS.get(entry.event)
            if not event:
                builder.warn(
                    f"Hook '{entry.name}': event {entry.event.value} has no Cursor "
                    "equivalent; skipped",
                    entry.provenance,
                )
                continue
            hooks.setdefault(event, []).append({"command": entry.command})
        return hooks

    def render_agents_index(self, personas: list[Persona], commands: list[Command]) -> str:
        sections = ["# AI Agents"]
        if personas:
            items = [f"[{p.name}]({role_path(p)}): {describe(p)}" for p in personas]
            sections.append("## Available Roles\n\n" + bullet_list(items))
        if commands:
            items = [f"[/{safe_filename(c.name)}]({command_path(c)}): {describe(c)}" for c in commands]
            sections.append("## Available Commands\n\n" + bullet_list(items))
        return self.markdown("\n\n".join(sections))
