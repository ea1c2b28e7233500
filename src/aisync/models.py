"""Core data models for the aisync content engine."""

from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Any, Literal, Union
from urllib.parse import urlparse

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


class Platform(str, Enum):
    """Consumer tools that artifacts are generated for."""

    CURSOR = "cursor"
    CLAUDE = "claude"
    FACTORY = "factory"


ALL_PLATFORMS: tuple[Platform, ...] = (
    Platform.CURSOR,
    Platform.CLAUDE,
    Platform.FACTORY,
)

# Per-platform override blocks that may appear in any metadata block.
EXTENSION_KEYS: tuple[str, ...] = tuple(p.value for p in ALL_PLATFORMS)


class DocumentKind(str, Enum):
    """Kinds of content document."""

    RULE = "rule"
    PERSONA = "persona"
    COMMAND = "command"
    HOOK = "hook"


class Priority(str, Enum):
    """Rule priority levels."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort rank, highest priority first."""
        return {"high": 0, "medium": 1, "low": 2}[self.value]


class RuleCategory(str, Enum):
    """Optional rule categorization."""

    CORE = "core"
    LANGUAGE = "language"
    FRAMEWORK = "framework"
    TESTING = "testing"
    SECURITY = "security"
    TOOLING = "tooling"
    DOCUMENTATION = "documentation"
    INFRASTRUCTURE = "infrastructure"
    OTHER = "other"


class HookEvent(str, Enum):
    """Lifecycle events a hook can attach to."""

    PRE_TOOL_USE = "PreToolUse"
    POST_TOOL_USE = "PostToolUse"
    USER_PROMPT_SUBMIT = "UserPromptSubmit"
    NOTIFICATION = "Notification"
    STOP = "Stop"
    SUBAGENT_STOP = "SubagentStop"
    SESSION_START = "SessionStart"
    SESSION_END = "SessionEnd"
    PRE_COMPACT = "PreCompact"
    PRE_MESSAGE = "PreMessage"
    POST_MESSAGE = "PostMessage"
    PRE_COMMIT = "PreCommit"


class ArgumentType(str, Enum):
    """Value types accepted by command arguments."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"


GENERIC_TOOLS: tuple[str, ...] = (
    "read",
    "write",
    "edit",
    "execute",
    "search",
    "glob",
    "fetch",
    "ls",
)
DEFAULT_PERSONA_TOOLS: tuple[str, ...] = ("read", "write", "edit", "search", "glob", "ls")
DEFAULT_MODEL = "default"

_SEMVER = re.compile(r"^\d+\.\d+\.\d+$")


def _as_list(value: Any) -> Any:
    """Accept a bare scalar where a list is expected."""
    if value is None:
        return []
    if isinstance(value, (str, int, float)):
        return [value]
    return value


class Provenance(BaseModel):
    """Where a document came from, used only for diagnostics."""

    model_config = ConfigDict(frozen=True)

    source: str = Field(..., description="Identifier of the originating source")
    path: str = Field(..., description="File path relative to the source root")

    def __str__(self) -> str:
        return f"{self.source}:{self.path}"


class RawDocument(BaseModel):
    """Unparsed loader output: kind, raw text and provenance."""

    model_config = ConfigDict(frozen=True)

    kind: DocumentKind
    text: str
    provenance: Provenance


class DocumentMetadata(BaseModel):
    """Fields shared by every document kind."""

    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    name: str = Field(..., description="Unique name within kind and source")
    description: str | None = Field(default=None, description="Short summary")
    version: str | None = Field(default=None, description="Semantic version")
    targets: list[Platform] = Field(
        default_factory=lambda: list(ALL_PLATFORMS),
        description="Platforms this document is generated for",
    )
    when: str | None = Field(
        default=None,
        description="Condition expression gating inclusion",
    )
    cursor: dict[str, Any] | None = Field(default=None, description="Cursor overrides")
    claude: dict[str, Any] | None = Field(default=None, description="Claude overrides")
    factory: dict[str, Any] | None = Field(default=None, description="Factory overrides")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate name is a non-empty string."""
        if not isinstance(v, str) or not v.strip():
            msg = "name must be a non-empty string"
            raise ValueError(msg)
        return v.strip()

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str | None) -> str | None:
        """Validate version follows MAJOR.MINOR.PATCH."""
        if v is not None and not _SEMVER.match(str(v)):
            msg = "version must follow semantic versioning (e.g., 1.0.0)"
            raise ValueError(msg)
        return v

    @field_validator("targets", mode="before")
    @classmethod
    def validate_targets(cls, v: Any) -> Any:
        """Accept a single platform and reject an empty list."""
        v = _as_list(v)
        if isinstance(v, list) and not v:
            msg = "targets must list at least one platform"
            raise ValueError(msg)
        return v

    @field_validator("when", mode="before")
    @classmethod
    def validate_when(cls, v: Any) -> Any:
        """Condition expressions must be written as strings."""
        if v is not None and not isinstance(v, str):
            msg = "when must be a condition expression string"
            raise ValueError(msg)
        return v

    def extension(self, platform: Platform | str) -> dict[str, Any]:
        """Return the override block for a platform, or an empty dict."""
        key = platform.value if isinstance(platform, Platform) else platform
        return dict(getattr(self, key) or {})


class RuleMetadata(DocumentMetadata):
    """Metadata for rule documents."""

    always_apply: bool = Field(
        default=False,
        validation_alias=AliasChoices("always_apply", "alwaysApply"),
        description="Whether the rule is always active",
    )
    globs: list[str] = Field(
        default_factory=list,
        description="File patterns that activate the rule",
    )
    priority: Priority = Field(default=Priority.MEDIUM, description="Rule priority")
    requires: list[str] = Field(
        default_factory=list,
        description="Names of other rules this rule depends on",
    )
    category: RuleCategory | None = Field(default=None, description="Categorization")

    @field_validator("globs", "requires", mode="before")
    @classmethod
    def coerce_list(cls, v: Any) -> Any:
        """Accept a single string for list fields."""
        return _as_list(v)


class PersonaMetadata(DocumentMetadata):
    """Metadata for persona documents."""

    tools: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PERSONA_TOOLS),
        description="Generic tool names the persona may use",
    )
    model: str = Field(default=DEFAULT_MODEL, description="Generic model name")
    extends: str | None = Field(default=None, description="Parent persona name")
    traits: dict[str, Any] | None = Field(default=None, description="Free-form traits")

    @field_validator("tools", mode="before")
    @classmethod
    def validate_tools(cls, v: Any) -> Any:
        """Validate every tool is a known generic tool name."""
        v = _as_list(v)
        if isinstance(v, list):
            invalid = [t for t in v if not isinstance(t, str) or t not in GENERIC_TOOLS]
            if invalid:
                msg = (
                    f"Invalid tools: {', '.join(map(str, invalid))}. "
                    f"Valid tools: {', '.join(GENERIC_TOOLS)}"
                )
                raise ValueError(msg)
        return v

    @field_validator("extends")
    @classmethod
    def validate_extends(cls, v: str | None) -> str | None:
        """Validate extends names a persona when present."""
        if v is not None and not v.strip():
            msg = "extends must be a non-empty string"
            raise ValueError(msg)
        return v.strip() if v else v


class CommandArgument(BaseModel):
    """A declared argument of a command."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Argument name")
    type: ArgumentType = Field(default=ArgumentType.STRING, description="Value type")
    description: str | None = Field(default=None, description="Help text")
    default: str | int | float | bool | None = Field(
        default=None,
        description="Value used when the argument is omitted",
    )
    choices: list[str | int | float | bool] | None = Field(
        default=None,
        description="Allowed values",
    )
    required: bool = Field(default=False, description="Whether the argument is mandatory")

    @model_validator(mode="after")
    def validate_default(self) -> CommandArgument:
        """Validate the default matches the declared type and choices."""
        if self.default is None:
            return self
        if self.type == ArgumentType.BOOLEAN and not isinstance(self.default, bool):
            msg = f"default for '{self.name}' must be a boolean"
            raise ValueError(msg)
        if self.type == ArgumentType.NUMBER and (
            isinstance(self.default, bool) or not isinstance(self.default, (int, float))
        ):
            msg = f"default for '{self.name}' must be a number"
            raise ValueError(msg)
        if self.choices is not None and self.default not in self.choices:
            msg = f"default for '{self.name}' must be one of the choices"
            raise ValueError(msg)
        return self


class CommandVariable(BaseModel):
    """A variable a command body references, documented for the user."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    description: str | None = None
    default: str | None = None


class CommandMetadata(DocumentMetadata):
    """Metadata for command documents."""

    execute: str | None = Field(default=None, description="Opaque command string")
    args: list[CommandArgument] = Field(default_factory=list)
    variables: list[CommandVariable] = Field(default_factory=list)
    allowed_tools: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("allowed_tools", "allowedTools", "allowed-tools"),
        description="Generic tool names the command may use",
    )
    globs: list[str] = Field(default_factory=list)

    @field_validator("allowed_tools", "globs", mode="before")
    @classmethod
    def coerce_list(cls, v: Any) -> Any:
        """Accept a single string for list fields."""
        return _as_list(v)

    @field_validator("args")
    @classmethod
    def validate_unique_args(cls, v: list[CommandArgument]) -> list[CommandArgument]:
        """Argument names must be unique."""
        seen: set[str] = set()
        for arg in v:
            if arg.name in seen:
                msg = f"duplicate argument name: {arg.name}"
                raise ValueError(msg)
            seen.add(arg.name)
        return v


class HookMetadata(DocumentMetadata):
    """Metadata for hook documents."""

    event: HookEvent = Field(..., description="Lifecycle event to attach to")
    tool_match: str | None = Field(
        default=None,
        validation_alias=AliasChoices("tool_match", "toolMatch", "matcher"),
        description="Tool-name pattern the hook applies to",
    )
    execute: str | None = Field(default=None, description="Opaque command string")
    timeout: int | None = Field(default=None, gt=0, description="Timeout in seconds")


METADATA_MODELS: dict[DocumentKind, type[DocumentMetadata]] = {
    DocumentKind.RULE: RuleMetadata,
    DocumentKind.PERSONA: PersonaMetadata,
    DocumentKind.COMMAND: CommandMetadata,
    DocumentKind.HOOK: HookMetadata,
}


class _DocumentBase(BaseModel):
    """Envelope shared by all document kinds."""

    model_config = ConfigDict(frozen=True)

    body: str = Field(default="", description="Free text after the metadata block")
    original_body: str | None = Field(
        default=None,
        description="Body as parsed, before any resolution step",
    )
    provenance: Provenance

    @property
    def name(self) -> str:
        return self.metadata.name  # type: ignore[attr-defined]

    @property
    def targets(self) -> list[Platform]:
        return self.metadata.targets  # type: ignore[attr-defined]

    @property
    def when(self) -> str | None:
        return self.metadata.when  # type: ignore[attr-defined]

    @property
    def description(self) -> str:
        return self.metadata.description or ""  # type: ignore[attr-defined]

    def supports(self, target: Platform) -> bool:
        """Whether this document is eligible for a target platform."""
        return target in self.targets

    def with_body(self, body: str):  # noqa: ANN201
        """Return a copy with a new body, remembering the parsed one."""
        original = self.original_body if self.original_body is not None else self.body
        return self.model_copy(update={"body": body, "original_body": original})


class Rule(_DocumentBase):
    """A rule document."""

    kind: Literal["rule"] = "rule"
    metadata: RuleMetadata


class Persona(_DocumentBase):
    """A persona document."""

    kind: Literal["persona"] = "persona"
    metadata: PersonaMetadata
    lineage: tuple[str, ...] = Field(
        default=(),
        description="Resolved extends chain, root first, ending with this persona",
    )


class Command(_DocumentBase):
    """A command document."""

    kind: Literal["command"] = "command"
    metadata: CommandMetadata


class Hook(_DocumentBase):
    """A hook document."""

    kind: Literal["hook"] = "hook"
    metadata: HookMetadata


Document = Annotated[Union[Rule, Persona, Command, Hook], Field(discriminator="kind")]

DOCUMENT_MODELS: dict[DocumentKind, type[_DocumentBase]] = {
    DocumentKind.RULE: Rule,
    DocumentKind.PERSONA: Persona,
    DocumentKind.COMMAND: Command,
    DocumentKind.HOOK: Hook,
}


class McpServer(BaseModel):
    """An MCP server, launched from a command or reached at a URL."""

    model_config = ConfigDict(frozen=True)

    command: str | None = Field(default=None, description="Executable for a local server")
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    cwd: str | None = None
    url: str | None = Field(default=None, description="Endpoint of a remote server")
    headers: dict[str, str] = Field(default_factory=dict)
    description: str | None = None
    enabled: bool = True
    targets: list[Platform] = Field(default_factory=lambda: list(ALL_PLATFORMS))

    @field_validator("args", mode="before")
    @classmethod
    def coerce_args(cls, v: Any) -> Any:
        return _as_list(v)

    @field_validator("targets", mode="before")
    @classmethod
    def validate_targets(cls, v: Any) -> Any:
        """Accept a single platform and reject an empty list."""
        v = _as_list(v)
        if isinstance(v, list) and not v:
            msg = "targets must list at least one platform"
            raise ValueError(msg)
        return v

    @field_validator("command")
    @classmethod
    def validate_command(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            msg = "command cannot be empty"
            raise ValueError(msg)
        return v

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """URLs need a scheme and a host."""
        if v is None:
            return v
        parsed = urlparse(v.strip())
        if not parsed.scheme or not parsed.netloc:
            msg = f"invalid URL: {v}"
            raise ValueError(msg)
        return v.strip()

    @model_validator(mode="after")
    def validate_transport(self) -> McpServer:
        """Exactly one of command and url."""
        if self.command is None and self.url is None:
            msg = 'server must have either "command" or "url"'
            raise ValueError(msg)
        if self.command is not None and self.url is not None:
            msg = 'server cannot have both "command" and "url"'
            raise ValueError(msg)
        return self

    @property
    def is_command(self) -> bool:
        return self.command is not None

    def supports(self, target: Platform) -> bool:
        """Whether the server is enabled for a target platform."""
        return self.enabled and target in self.targets


class McpConfig(BaseModel):
    """Contents of a source's ``mcp.yaml``."""

    model_config = ConfigDict(frozen=True)

    version: str | None = None
    servers: dict[str, McpServer] = Field(..., description="Servers by name")

    @field_validator("version", mode="before")
    @classmethod
    def validate_version(cls, v: Any) -> Any:
        if v is not None and not _SEMVER.match(str(v)):
            msg = "version must follow semantic versioning (e.g., 1.0.0)"
            raise ValueError(msg)
        return v if v is None else str(v)


class RawMcpConfig(BaseModel):
    """Unparsed MCP configuration file from a source."""

    model_config = ConfigDict(frozen=True)

    text: str
    provenance: Provenance


class Severity(str, Enum):
    """Diagnostic severity levels."""

    ERROR = "error"
    WARNING = "warning"


class DiagnosticCategory(str, Enum):
    """Which stage produced a diagnostic."""

    LOAD = "load"
    PARSE = "parse"
    VALIDATION = "validation"
    CONDITION = "condition"
    INHERITANCE = "inheritance"
    INCLUDE = "include"
    TEMPLATE = "template"
    GENERATION = "generation"
    MCP = "mcp"


class Diagnostic(BaseModel):
    """A scoped problem reported during a run."""

    model_config = ConfigDict(frozen=True)

    severity: Severity
    category: DiagnosticCategory
    message: str
    provenance: Provenance | None = None

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR

    def __str__(self) -> str:
        where = f"{self.provenance}: " if self.provenance else ""
        return f"[{self.severity.value}] {where}{self.message}"


def error(
    category: DiagnosticCategory,
    message: str,
    provenance: Provenance | None = None,
) -> Diagnostic:
    """Build an error diagnostic."""
    return Diagnostic(
        severity=Severity.ERROR,
        category=category,
        message=message,
        provenance=provenance,
    )


def warning(
    category: DiagnosticCategory,
    message: str,
    provenance: Provenance | None = None,
) -> Diagnostic:
    """Build a warning diagnostic."""
    return Diagnostic(
        severity=Severity.WARNING,
        category=category,
        message=message,
        provenance=provenance,
    )


class SourceLoadResult(BaseModel):
    """Raw documents returned by one loader for one source."""

    source: str = Field(..., description="Source identifier")
    documents: list[RawDocument] = Field(default_factory=list)
    mcp: RawMcpConfig | None = Field(default=None, description="MCP server configuration")
    errors: list[Diagnostic] = Field(default_factory=list)


class MultiSourceLoadResult(BaseModel):
    """Ordered load results; earlier sources take precedence."""

    sources: list[SourceLoadResult] = Field(default_factory=list)

    def raw_documents(self) -> list[RawDocument]:
        """Flatten every source's documents, preserving source order."""
        return [doc for source in self.sources for doc in source.documents]

    def load_errors(self) -> list[Diagnostic]:
        """Collect loader-reported problems."""
        return [err for source in self.sources for err in source.errors]

    def mcp_configs(self) -> list[RawMcpConfig]:
        """MCP configuration files, in source order."""
        return [source.mcp for source in self.sources if source.mcp is not None]


def _diagnostic_filter(diagnostics: list[Diagnostic], severity: Severity) -> list[Diagnostic]:
    return [d for d in diagnostics if d.severity == severity]


class ResolvedContent(BaseModel):
    """Fully resolved documents for a single target."""

    target: Platform
    rules: list[Rule] = Field(default_factory=list)
    personas: list[Persona] = Field(default_factory=list)
    commands: list[Command] = Field(default_factory=list)
    hooks: list[Hook] = Field(default_factory=list)
    mcp_servers: dict[str, McpServer] = Field(default_factory=dict)
    project_root: str | None = None
    project_name: str | None = None
    diagnostics: list[Diagnostic] = Field(default_factory=list)

    @property
    def errors(self) -> list[Diagnostic]:
        return _diagnostic_filter(self.diagnostics, Severity.ERROR)

    @property
    def warnings(self) -> list[Diagnostic]:
        return _diagnostic_filter(self.diagnostics, Severity.WARNING)

    def documents(self) -> list[Rule | Persona | Command | Hook]:
        """All resolved documents in kind order."""
        return [*self.rules, *self.personas, *self.commands, *self.hooks]

    def is_empty(self) -> bool:
        return not (self.rules or self.personas or self.commands or self.hooks)

    def failed(self, strict: bool = False) -> bool:
        """Apply the caller's failure policy.

        Args:
            strict: Treat warnings as failures

        Returns:
            True when the run should be reported as failed
        """
        if self.errors:
            return True
        return strict and bool(self.warnings)


class Artifact(BaseModel):
    """One concrete output file."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Output path relative to the project root")
    content: str = Field(..., description="Literal file content")


class ArtifactSet(BaseModel):
    """Artifacts generated for one target, or for several when ``target`` is None."""

    target: Platform | None = None
    artifacts: list[Artifact] = Field(default_factory=list)
    diagnostics: list[Diagnostic] = Field(default_factory=list)

    @property
    def paths(self) -> list[str]:
        return [a.path for a in self.artifacts]

    def get(self, path: str) -> str | None:
        """Return the content generated for a path, if any."""
        for artifact in self.artifacts:
            if artifact.path == path:
                return artifact.content
        return None

    def as_dict(self) -> dict[str, str]:
        """Artifact paths mapped to their content."""
        return {a.path: a.content for a in self.artifacts}

    def __len__(self) -> int:
        return len(self.artifacts)
