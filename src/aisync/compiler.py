"""Multi-target compile pipeline and artifact writing."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable

from .conditions import FactContext
from .config import ConfigLoader, ProjectConfig
from .facts import ProjectFacts
from .generators import (
    GeneratorOptions,
    HookEntry,
    SubfolderContext,
    SubfolderContextGenerator,
    get_generator,
)
from .includes import IncludeSource
from .loaders import LocalLoader
from .models import (
    ArtifactSet,
    Diagnostic,
    DiagnosticCategory,
    MultiSourceLoadResult,
    Platform,
    ResolvedContent,
    warning,
)
from .resolver import ResolveOptions, Resolver

logger = logging.getLogger(__name__)


@dataclass
class TargetOutput:
    """Resolved content and generated artifacts for one platform."""

    content: ResolvedContent
    artifacts: ArtifactSet


@dataclass
class CompileResult:
    """Outcome of compiling every requested target."""

    targets: dict[Platform, TargetOutput] = field(default_factory=dict)
    subfolders: ArtifactSet = field(default_factory=ArtifactSet)
    extra_diagnostics: list[Diagnostic] = field(default_factory=list)

    @property
    def diagnostics(self) -> list[Diagnostic]:
        """All diagnostics, each reported once, in the order first seen."""
        collected: list[Diagnostic] = []
        for output in self.targets.values():
            collected.extend(output.content.diagnostics)
            collected.extend(output.artifacts.diagnostics)
        collected.extend(self.subfolders.diagnostics)
        collected.extend(self.extra_diagnostics)
        return list(dict.fromkeys(collected))

    def failed(self, strict: bool = False) -> bool:
        diagnostics = self.diagnostics
        if any(d.is_error for d in diagnostics):
            return True
        return strict and bool(diagnostics)

    def artifacts(self) -> dict[str, str]:
        """Every artifact path mapped to its content across targets.

        When two targets produce the same path with different content, the
        target compiled first keeps it. Subfolder context files come last.
        """
        merged: dict[str, str] = {}
        owners: dict[str, str] = {}
        sets = [(platform.value, output.artifacts) for platform, output in self.targets.items()]
        sets.append(("subfolder contexts", self.subfolders))
        for producer, artifact_set in sets:
            for artifact in artifact_set.artifacts:
                if artifact.path not in merged:
                    merged[artifact.path] = artifact.content
                    owners[artifact.path] = producer
                elif merged[artifact.path] != artifact.content:
                    message = (
                        f"{artifact.path} is generated by both {owners[artifact.path]} "
                        f"and {producer}; keeping {owners[artifact.path]}"
                    )
                    note = warning(DiagnosticCategory.GENERATION, message)
                    if note not in self.extra_diagnostics:
                        self.extra_diagnostics.append(note)
        return dict(sorted(merged.items()))


class ArtifactCompiler:
    """Loads a project's sources and compiles them for each target."""

    def __init__(
        self,
        project_root: Path,
        config: ProjectConfig | None = None,
        facts: FactContext | None = None,
    ) -> None:
        """Initialize compiler.

        Args:
            project_root: Project directory
            config: Configuration; loaded from ``.ai/config.yaml`` when omitted
            facts: Fact context; inspects ``project_root`` when omitted
        """
        self.project_root = Path(project_root)
        self.loader = ConfigLoader(self.project_root)
        self.config = config if config is not None else self.loader.load()
        self.facts = facts or ProjectFacts(self.project_root, self.config.variables)

    def load_sources(self) -> tuple[MultiSourceLoadResult, dict[str, IncludeSource]]:
        """Load every configured source in precedence order."""
        loads = []
        include_sources: dict[str, IncludeSource] = {}
        for source in self.config.sources:
            loader = LocalLoader(self.loader.source_root(source), source.source_id)
            loads.append(loader.load())
            include_sources[source.source_id] = loader.include_source()
        return MultiSourceLoadResult(sources=loads), include_sources

    def resolve_options(self, strict: bool | None = None) -> ResolveOptions:
        return ResolveOptions(
            strict=self.config.strict if strict is None else strict,
            use_personas=self.config.use.personas,
            use_commands=self.config.use.commands,
            project_name=self.config.project_name or self.project_root.resolve().name,
            project_root=str(self.project_root),
        )

    def generator_options(self, platform: Platform) -> GeneratorOptions:
        """Generator options for a platform from the configuration."""
        settings = self.config.platform(platform)
        hooks = [
            HookEntry(
                name=hook.name or f"{event.value}-{index + 1}",
                event=event,
                command=hook.command,
                matcher=hook.matcher,
                timeout=hook.timeout,
            )
            for event, entries in self.config.hooks.items()
            for index, hook in enumerate(entries)
        ]
        return GeneratorOptions(
            add_headers=self.config.output.add_do_not_edit_headers,
            settings=dict(settings.settings),
            hooks=hooks,
            tool_mappings=dict(settings.tool_mappings),
        )

    def subfolder_contexts(self) -> list[SubfolderContext]:
        return [
            SubfolderContext(
                path=path,
                rules=list(context.rules),
                personas=list(context.personas),
                commands=list(context.commands),
                description=context.description,
                targets=list(context.targets),
            )
            for path, context in self.config.subfolder_contexts.items()
        ]

    def compile(
        self,
        targets: Iterable[Platform | str] | None = None,
        strict: bool | None = None,
    ) -> CompileResult:
        """Resolve and generate artifacts for each target.

        Args:
            targets: Platforms to compile; the configured targets when omitted
            strict: Override the configured strict mode

        Returns:
            Per-target content and artifacts
        """
        sources, include_sources = self.load_sources()
        resolver = Resolver(
            sources,
            self.facts,
            include_sources=include_sources,
            options=self.resolve_options(strict),
        )
        selected = [Platform(t) for t in (targets or self.config.targets)]
        result = CompileResult()
        for platform in selected:
            content = resolver.resolve(platform)
            generator = get_generator(platform, self.generator_options(platform))
            result.targets[platform] = TargetOutput(content, generator.generate(content))
        if self.config.subfolder_contexts:
            subfolder_generator = SubfolderContextGenerator(
                self.subfolder_contexts(),
                GeneratorOptions(add_headers=self.config.output.add_do_not_edit_headers),
            )
            result.subfolders = subfolder_generator.generate(
                {platform: output.content for platform, output in result.targets.items()},
            )
        # records cross-target path collisions as diagnostics
        result.artifacts()
        return result


def compile_project(
    project_root: Path,
    config: ProjectConfig | None = None,
    targets: Iterable[Platform | str] | None = None,
    strict: bool | None = None,
) -> CompileResult:
    """Compile a project's sources for its targets in one call."""
    return ArtifactCompiler(project_root, config=config).compile(targets, strict=strict)


class ArtifactStatus(str, Enum):
    """How a generated artifact compares with the file on disk."""

    NEW = "new"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"


class ArtifactWriter:
    """Writes generated artifacts into a project."""

    def __init__(self, project_root: Path) -> None:
        self.project_root = Path(project_root)

    def status(self, path: str, content: str) -> ArtifactStatus:
        target = self.project_root / path
        if not target.exists():
            return ArtifactStatus.NEW
        try:
            existing = target.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return ArtifactStatus.MODIFIED
        return ArtifactStatus.UNCHANGED if existing == content else ArtifactStatus.MODIFIED

    def plan(self, artifacts: dict[str, str]) -> dict[str, ArtifactStatus]:
        """Status of every artifact without touching the disk."""
        return {path: self.status(path, content) for path, content in artifacts.items()}

    def write(self, artifacts: dict[str, str], dry_run: bool = False) -> dict[str, ArtifactStatus]:
        """Write new and modified artifacts.

        Args:
            artifacts: Paths relative to the project root mapped to content
            dry_run: Report what would change without writing

        Returns:
            Status of each artifact before writing
        """
        statuses = self.plan(artifacts)
        if dry_run:
            return statuses
        for path, status in statuses.items():
            if status == ArtifactStatus.UNCHANGED:
                continue
            target = self.project_root / path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(artifacts[path], encoding="utf-8")
            logger.debug("Wrote %s (%s)", path, status.value)
        return statuses
