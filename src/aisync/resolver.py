"""Resolution orchestrator: loaded sources to per-target resolved content."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Iterable, TypeVar

from .conditions import ConditionCache, FactContext
from .exceptions import (
    ConditionError,
    DocumentValidationError,
    IncludeError,
    ParseError,
    TemplateError,
)
from .includes import (
    MAX_INCLUDE_DEPTH,
    IncludeSource,
    MappingIncludeSource,
    find_includes,
    resolve_includes,
)
from .inheritance import MAX_INHERITANCE_DEPTH, resolve_inheritance
from .mcp import merge_servers, parse_mcp_config, servers_for
from .models import (
    ALL_PLATFORMS,
    EXTENSION_KEYS,
    Command,
    Diagnostic,
    DiagnosticCategory,
    Hook,
    McpConfig,
    McpServer,
    MultiSourceLoadResult,
    Persona,
    Platform,
    RawMcpConfig,
    ResolvedContent,
    Rule,
    error,
    warning,
)
from .parser import parse_document
from .templates import process_template

logger = logging.getLogger(__name__)

AnyDocument = Rule | Persona | Command | Hook
D = TypeVar("D", Rule, Persona, Command, Hook)


@dataclass
class ResolveOptions:
    """Caller policy for a resolution run."""

    strict: bool = False
    use_personas: list[str] | None = None
    use_commands: list[str] | None = None
    project_name: str | None = None
    project_root: str | None = None
    max_include_depth: int = MAX_INCLUDE_DEPTH
    max_inheritance_depth: int = MAX_INHERITANCE_DEPTH
    interpolate_env: bool = True


@dataclass
class PreparedContent:
    """Documents after the target-independent steps."""

    rules: list[Rule] = field(default_factory=list)
    personas: list[Persona] = field(default_factory=list)
    commands: list[Command] = field(default_factory=list)
    hooks: list[Hook] = field(default_factory=list)
    mcp_servers: dict[str, McpServer] = field(default_factory=dict)
    diagnostics: list[Diagnostic] = field(default_factory=list)

    def documents(self) -> list[AnyDocument]:
        return [*self.rules, *self.personas, *self.commands, *self.hooks]


class Resolver:
    """Resolves a multi-source document set for one or more targets.

    Parsing, condition filtering, inheritance and include expansion do not
    depend on the target, so they run once per resolver and are reused by
    every ``resolve`` call.
    """

    def __init__(
        self,
        sources: MultiSourceLoadResult,
        facts: FactContext,
        include_sources: dict[str, IncludeSource] | None = None,
        options: ResolveOptions | None = None,
    ) -> None:
        """Initialize resolver.

        Args:
            sources: Raw documents grouped by source, highest precedence first
            facts: Project facts for ``when:`` conditions
            include_sources: Per-source readers for ``@include`` targets;
                sources without one resolve includes against their own documents
            options: Caller policy
        """
        self.sources = sources
        self.facts = facts
        self.include_sources = dict(include_sources or {})
        self.options = options or ResolveOptions()
        self.conditions = ConditionCache()
        self._prepared: PreparedContent | None = None

    @property
    def diagnostics(self) -> list[Diagnostic]:
        """Diagnostics from the target-independent steps."""
        return list(self.prepare().diagnostics)

    def prepare(self) -> PreparedContent:
        """Run parsing, condition filtering, inheritance, include expansion and MCP loading."""
        if self._prepared is not None:
            return self._prepared

        prepared = PreparedContent(diagnostics=self.sources.load_errors())
        parsed = self._parse(prepared.diagnostics)
        active = self._filter_conditions(parsed, prepared.diagnostics)

        personas = [d for d in active if isinstance(d, Persona)]
        inheritance = resolve_inheritance(
            personas,
            max_depth=self.options.max_inheritance_depth,
        )
        prepared.diagnostics.extend(inheritance.diagnostics)

        prepared.rules = self._expand_includes(
            [d for d in active if isinstance(d, Rule)],
            prepared.diagnostics,
        )
        prepared.personas = self._expand_includes(
            _allowed(inheritance.personas, self.options.use_personas),
            prepared.diagnostics,
        )
        prepared.commands = self._expand_includes(
            _allowed([d for d in active if isinstance(d, Command)], self.options.use_commands),
            prepared.diagnostics,
        )
        prepared.hooks = self._expand_includes(
            [d for d in active if isinstance(d, Hook)],
            prepared.diagnostics,
        )
        prepared.mcp_servers = self._load_mcp(prepared.diagnostics)
        logger.debug(
            "Prepared %d rules, %d personas, %d commands, %d hooks, %d MCP servers",
            len(prepared.rules),
            len(prepared.personas),
            len(prepared.commands),
            len(prepared.hooks),
            len(prepared.mcp_servers),
        )
        self._prepared = prepared
        return prepared

    def resolve(self, target: Platform | str) -> ResolvedContent:
        """Resolve content for one target platform.

        Args:
            target: Platform to resolve for

        Returns:
            Resolved content with every diagnostic of the run attached
        """
        target = Platform(target)
        prepared = self.prepare()
        diagnostics = list(prepared.diagnostics)

        content = ResolvedContent(
            target=target,
            rules=self._for_target(prepared.rules, target, diagnostics),
            personas=self._for_target(prepared.personas, target, diagnostics),
            commands=self._for_target(prepared.commands, target, diagnostics),
            hooks=self._for_target(prepared.hooks, target, diagnostics),
            mcp_servers=servers_for(prepared.mcp_servers, target),
            project_root=self.options.project_root,
            project_name=self.options.project_name,
        )
        diagnostics.extend(_check_requires(content.rules))
        content.diagnostics = diagnostics
        logger.info(
            "Resolved %s: %d rules, %d personas, %d commands, %d hooks",
            target.value,
            len(content.rules),
            len(content.personas),
            len(content.commands),
            len(content.hooks),
        )
        return content

    def resolve_all(
        self,
        targets: Iterable[Platform | str] = ALL_PLATFORMS,
    ) -> dict[Platform, ResolvedContent]:
        """Resolve content for several targets."""
        return {Platform(t): self.resolve(t) for t in targets}

    def _parse(self, diagnostics: list[Diagnostic]) -> list[AnyDocument]:
        documents: list[AnyDocument] = []
        for raw in self.sources.raw_documents():
            outcome = parse_document(raw, strict=self.options.strict)
            diagnostics.extend(outcome.diagnostics)
            if outcome.document is not None:
                documents.append(outcome.document)
        return documents

    def _filter_conditions(
        self,
        documents: list[AnyDocument],
        diagnostics: list[Diagnostic],
    ) -> list[AnyDocument]:
        active = []
        for document in documents:
            if not document.when:
                active.append(document)
                continue
            try:
                matched = self.conditions.parse(document.when).evaluate(self.facts)
            except ConditionError as e:
                diagnostics.append(
                    error(
                        DiagnosticCategory.CONDITION,
                        f"{document.kind} '{document.name}' excluded: {e.message}",
                        document.provenance,
                    ),
                )
                continue
            if matched:
                active.append(document)
            else:
                logger.debug("Skipping %s '%s': when not met", document.kind, document.name)
        return active

    def _load_mcp(self, diagnostics: list[Diagnostic]) -> dict[str, McpServer]:
        environ = os.environ if self.options.interpolate_env else None
        parsed: list[tuple[RawMcpConfig, McpConfig]] = []
        for raw in self.sources.mcp_configs():
            try:
                config = parse_mcp_config(raw.text, raw.provenance.path, environ)
            except ParseError as e:
                diagnostics.append(error(DiagnosticCategory.MCP, e.format(), raw.provenance))
                continue
            except DocumentValidationError as e:
                diagnostics.extend(
                    error(DiagnosticCategory.MCP, str(fe), raw.provenance) for fe in e.errors
                )
                continue
            parsed.append((raw, config))
        servers, shadowed = merge_servers(parsed)
        diagnostics.extend(shadowed)
        return servers

    def _include_source(self, source_id: str) -> IncludeSource:
        if source_id not in self.include_sources:
            files = {
                raw.provenance.path: raw.text
                for load in self.sources.sources
                if load.source == source_id
                for raw in load.documents
            }
            self.include_sources[source_id] = MappingIncludeSource(files)
        return self.include_sources[source_id]

    def _expand_includes(self, documents: list[D], diagnostics: list[Diagnostic]) -> list[D]:
        expanded: list[D] = []
        for document in documents:
            if not find_includes(document.body):
                expanded.append(document)
                continue
            try:
                result = resolve_includes(
                    document.body,
                    document.provenance.path,
                    self._include_source(document.provenance.source),
                    max_depth=self.options.max_include_depth,
                )
            except IncludeError as e:
                diagnostics.append(
                    error(DiagnosticCategory.INCLUDE, e.message, document.provenance),
                )
                continue
            expanded.append(document.with_body(result.body))
        return expanded

    def _for_target(
        self,
        documents: list[D],
        target: Platform,
        diagnostics: list[Diagnostic],
    ) -> list[D]:
        selected: list[D] = []
        for document in documents:
            if not document.supports(target):
                continue
            try:
                rendered = process_template(document.body, target, EXTENSION_KEYS)
            except TemplateError as e:
                diagnostics.append(
                    error(DiagnosticCategory.TEMPLATE, e.message, document.provenance),
                )
                continue
            diagnostics.extend(
                warning(DiagnosticCategory.TEMPLATE, w, document.provenance)
                for w in rendered.warnings
            )
            if rendered.text != document.body:
                document = document.with_body(rendered.text)
            selected.append(document)
        return selected


def _allowed(documents: list[D], names: list[str] | None) -> list[D]:
    if names is None:
        return documents
    wanted = set(names)
    return [d for d in documents if d.name in wanted]


def _check_requires(rules: list[Rule]) -> list[Diagnostic]:
    names = {rule.name for rule in rules}
    problems = []
    for rule in rules:
        for required in rule.metadata.requires:
            if required not in names:
                problems.append(
                    warning(
                        DiagnosticCategory.VALIDATION,
                        f"Rule '{rule.name}' requires '{required}', "
                        "which is not available for this target",
                        rule.provenance,
                    ),
                )
    return problems


def resolve(
    sources: MultiSourceLoadResult,
    target: Platform | str,
    facts: FactContext,
    include_sources: dict[str, IncludeSource] | None = None,
    options: ResolveOptions | None = None,
) -> ResolvedContent:
    """Resolve a multi-source document set for a single target.

    Args:
        sources: Raw documents grouped by source
        target: Platform to resolve for
        facts: Project facts for ``when:`` conditions
        include_sources: Per-source readers for ``@include`` targets
        options: Caller policy

    Returns:
        Resolved content for ``target``
    """
    return Resolver(sources, facts, include_sources, options).resolve(target)
