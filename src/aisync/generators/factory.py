"""Factory (Droid) artifact generator."""

from __future__ import annotations

import re
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

ARGUMENTS_VARIABLE = "$ARGUMENTS"
_ARGUMENTS_REFERENCE = re.compile(r"\$ARGUMENTS\b")


def skill_path(rule: Rule) -> str:
    return f".factory/skills/{safe_filename(rule.name)}/SKILL.md"


def droid_path(persona: Persona) -> str:
    return f".factory/droids/{safe_filename(persona.name)}.md"


def command_path(command: Command) -> str:
    return f".factory/commands/{safe_filename(command.name)}.md"


class FactoryGenerator(Generator):
    """Generates skills, droids, commands, settings.json and AGENTS.md."""

    platform = Platform.FACTORY

    def build(self, content: ResolvedContent, builder: ArtifactBuilder) -> None:
        rules = sort_rules(content.rules)
        personas = sort_by_name(content.personas)
        commands = sort_by_name(content.commands)

        for rule in rules:
            builder.render(rule, skill_path(rule), lambda r=rule: self.render_skill(r))
        for persona in personas:
            builder.render(persona, droid_path(persona), lambda p=persona: self.render_droid(p))
        for command in commands:
            builder.render(
                command,
                command_path(command),
                lambda c=command: self.render_command(c),
            )

        settings = self.render_settings(self.hook_entries(content, builder), builder)
        if settings is not None:
            builder.add(".factory/settings.json", to_json(settings))
        if content.mcp_servers:
            builder.add(".factory/mcp.json", mcp_servers_json(content.mcp_servers, typed=True))

        builder.add("AGENTS.md", self.render_agents_index(content, rules, personas, commands))

    def render_skill(self, rule: Rule) -> str:
        extension = rule.metadata.extension(Platform.FACTORY)
        frontmatter: dict[str, Any] = {
            "name": safe_filename(rule.name),
            "description": describe(rule),
        }
        tools = extension.get("allowed-tools") or extension.get("tools")
        if tools:
            frontmatter["allowed-tools"] = self.tools.map_all(name_list(tools))

        sections = [f"# {rule.name}"]
        if rule.description:
            sections.append(f"> {rule.description}")
        line = metadata_line(rule)
        if line:
            sections.append(line)
        if rule.body:
            sections.append(rule.body)
        return self.markdown("\n\n".join(sections), frontmatter)

    def render_droid(self, persona: Persona) -> str:
        """Render a persona as a droid; ``factory`` overrides win."""
        meta = persona.metadata
        extension = meta.extension(Platform.FACTORY)
        frontmatter: dict[str, Any] = {
            "name": safe_filename(persona.name),
            "description": describe(persona),
            "model": map_model(extension.get("model") or meta.model, Platform.FACTORY),
            "tools": self.tools.map_all(name_list(extension.get("tools") or meta.tools)),
        }
        effort = extension.get("reasoningEffort") or extension.get("reasoning_effort")
        if effort:
            frontmatter["reasoningEffort"] = effort
        return self.markdown(persona.body, frontmatter)

    def render_command(self, command: Command) -> str:
        """Render a slash command, documenting the variables it uses."""
        meta = command.metadata
        frontmatter: dict[str, Any] = {"description": describe(command)}
        hint = argument_hint(meta.args)
        if hint:
            frontmatter["argument-hint"] = hint

        body = command_body(command)
        variables = []
        if _ARGUMENTS_REFERENCE.search(command.body) or (
            meta.execute and _ARGUMENTS_REFERENCE.search(meta.execute)
        ):
            variables.append(f"`{ARGUMENTS_VARIABLE}`: User input after command name")
        for variable in meta.variables:
            item = f"`${variable.name}`"
            if variable.description:
                item += f": {variable.description}"
            if variable.default is not None:
                item += f" (default: `{variable.default}`)"
            variables.append(item)
        if variables:
            body = f"{body}\n\n## Variables\n\n{bullet_list(variables)}".strip()
        return self.markdown(body, frontmatter)

    def render_settings(
        self,
        hooks: list[HookEntry],
        builder: ArtifactBuilder,
    ) -> dict[str, Any] | None:
        """Aggregate hooks into settings.json; None when there is nothing to write."""
        events: dict[str, list[dict[str, Any]]] = {}
        for entry in hooks:
            if entry.event not in SUPPORTED_EVENTS:
                builder.warn(
                    f"Hook '{entry.name}': event {entry.event.value} is not supported "
                    "by Factory; skipped",
                    entry.provenance,
                )
                continue
            command: dict[str, Any] = {"type": "command", "command": entry.command}
            if entry.timeout:
                command["timeout"] = entry.timeout
            group: dict[str, Any] = {"hooks": [command]}
            if entry.matcher and entry.matcher != "*":
                group = {"matcher": entry.matcher, **group}
            events.setdefault(entry.event.value, []).append(group)

        if not events and not self.options.settings:
            return None
        settings = dict(self.options.settings)
        if events:
            settings = deep_merge(settings, {"hooks": events})
        return settings

    def render_agents_index(
        self,
        content: ResolvedContent,
        rules: list[Rule],
        personas: list[Persona],
        commands: list[Command],
    ) -> str:
        """Render AGENTS.md, which Factory always reads."""
        sections = ["# AI Agents"]
        if content.project_name:
            sections.append(f"Project: **{content.project_name}**")
        required = [r for r in rules if r.metadata.always_apply]
        optional = [r for r in rules if not r.metadata.always_apply]
        if required:
            items = [f"[{r.name}]({skill_path(r)}): {describe(r)}" for r in required]
            sections.append("## Required Skills\n\n" + bullet_list(items))
        if optional:
            items = [f"[{r.name}]({skill_path(r)}): {describe(r)}" for r in optional]
            sections.append("## Available Skills\n\n" + bullet_list(items))
        if personas:
            items = [f"[{p.name}]({droid_path(p)}): {describe(p)}" for p in personas]
            sections.append("## Available Droids\n\n" + bullet_list(items))
        if commands:
            items = [
                f"[/{safe_filename(c.name)}]({command_path(c)}): {describe(c)}" for c in commands
            ]
            sections.append("## Available Commands\n\n" + bullet_list(items))
        return self.markdown("\n\n".join(sections))
