"""Project configuration loading with schema validation."""

from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any

import jsonschema
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import ConfigError
from .models import ALL_PLATFORMS, HookEvent, Platform

logger = logging.getLogger(__name__)

CONFIG_DIR = ".ai"
CONFIG_FILENAMES = ("config.yaml", "config.yml")
SCHEMA_DIR = Path(__file__).parent / "schemas"


class SourceType(str, Enum):
    """Kinds of content source."""

    LOCAL = "local"


class SourceConfig(BaseModel):
    """One content source, highest precedence first in the list."""

    type: SourceType = Field(default=SourceType.LOCAL, description="Source kind")
    path: str = Field(..., description="Directory relative to the config directory")
    name: str | None = Field(default=None, description="Source identifier")

    @property
    def source_id(self) -> str:
        return self.name or self.path


class UseConfig(BaseModel):
    """Allow-lists; None means everything is used."""

    personas: list[str] | None = None
    commands: list[str] | None = None


class OutputConfig(BaseModel):
    """Artifact output options."""

    add_do_not_edit_headers: bool = Field(
        default=False,
        description="Prefix generated markdown with a do-not-edit notice",
    )


class HookConfig(BaseModel):
    """A hook declared directly in the configuration."""

    name: str | None = None
    matcher: str | None = None
    command: str = Field(..., min_length=1)
    timeout: int | None = Field(default=None, gt=0)


class PlatformSettings(BaseModel):
    """Per-platform passthrough settings."""

    settings: dict[str, Any] = Field(
        default_factory=dict,
        description="Merged into the platform's settings file",
    )
    tool_mappings: dict[str, str] = Field(
        default_factory=dict,
        description="Extra generic-to-platform tool names",
    )


class SubfolderContextConfig(BaseModel):
    """Context files for one subfolder, keyed by its path in ``subfolder_contexts``."""

    rules: list[str] = Field(..., description="Rule names imported in the subfolder")
    personas: list[str] = Field(default_factory=list)
    commands: list[str] = Field(default_factory=list)
    description: str | None = None
    targets: list[Platform] = Field(default_factory=lambda: list(ALL_PLATFORMS))


def _default_sources() -> list[SourceConfig]:
    return [SourceConfig(path=".", name="local")]


class ProjectConfig(BaseModel):
    """Contents of ``.ai/config.yaml``."""

    version: str = Field(default="1.0.0", description="Config format version")
    project_name: str | None = Field(default=None, description="Shown in entry points")
    targets: list[Platform] = Field(
        default_factory=lambda: list(ALL_PLATFORMS),
        description="Platforms to generate",
    )
    sources: list[SourceConfig] = Field(default_factory=_default_sources)
    use: UseConfig = Field(default_factory=UseConfig)
    variables: dict[str, Any] = Field(
        default_factory=dict,
        description="Values for var: conditions",
    )
    strict: bool = Field(default=False, description="Treat warnings as failures")
    output: OutputConfig = Field(default_factory=OutputConfig)
    hooks: dict[HookEvent, list[HookConfig]] = Field(default_factory=dict)
    cursor: PlatformSettings = Field(default_factory=PlatformSettings)
    claude: PlatformSettings = Field(default_factory=PlatformSettings)
    factory: PlatformSettings = Field(default_factory=PlatformSettings)
    subfolder_contexts: dict[str, SubfolderContextConfig] = Field(
        default_factory=dict,
        description="CLAUDE.md and AGENTS.md written into subfolders",
    )

    @field_validator("sources")
    @classmethod
    def validate_sources(cls, v: list[SourceConfig]) -> list[SourceConfig]:
        """Source identifiers must be unique."""
        ids = [s.source_id for s in v]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            msg = f"Duplicate source names: {', '.join(duplicates)}"
            raise ValueError(msg)
        return v

    @field_validator("subfolder_contexts")
    @classmethod
    def validate_subfolder_paths(
        cls,
        v: dict[str, SubfolderContextConfig],
    ) -> dict[str, SubfolderContextConfig]:
        """Subfolders are relative paths inside the project."""
        normalized = {}
        for key, context in v.items():
            path = PurePosixPath(key.strip())
            if path.is_absolute() or ".." in path.parts or str(path) == ".":
                msg = f"Subfolder path must be a relative path inside the project: {key!r}"
                raise ValueError(msg)
            normalized[path.as_posix()] = context
        return normalized

    def platform(self, platform: Platform) -> PlatformSettings:
        return getattr(self, platform.value)


class ConfigLoader:
    """Finds, validates and loads a project's configuration."""

    def __init__(self, project_root: Path, config_dir: str = CONFIG_DIR) -> None:
        """Initialize loader.

        Args:
            project_root: Project directory
            config_dir: Directory holding config.yaml and content, relative to the root
        """
        self.project_root = Path(project_root)
        self.config_dir = self.project_root / config_dir
        self._schema_cache: dict[str, dict[str, Any]] = {}

    @property
    def config_path(self) -> Path | None:
        for name in CONFIG_FILENAMES:
            candidate = self.config_dir / name
            if candidate.exists():
                return candidate
        return None

    def _load_schema(self, schema_name: str) -> dict[str, Any]:
        """Load and cache a bundled JSON schema."""
        if schema_name not in self._schema_cache:
            schema_path = SCHEMA_DIR / f"{schema_name}.schema.json"
            try:
                with schema_path.open(encoding="utf-8") as f:
                    self._schema_cache[schema_name] = json.load(f)
            except (json.JSONDecodeError, OSError) as e:
                msg = f"Failed to load schema {schema_name}: {e}"
                raise ConfigError(msg) from e
        return self._schema_cache[schema_name]

    def _validate_against_schema(self, data: dict[str, Any], schema_name: str) -> None:
        schema = self._load_schema(schema_name)
        try:
            jsonschema.validate(data, schema)
        except jsonschema.ValidationError as e:
            location = "/".join(str(p) for p in e.absolute_path) or "<root>"
            msg = f"Invalid configuration at {location}: {e.message}"
            raise ConfigError(
                msg,
                details={"path": list(e.absolute_path), "schema": schema_name},
            ) from e

    def load(self, validate: bool = True) -> ProjectConfig:
        """Load the project configuration.

        A project without a config file gets the defaults.

        Args:
            validate: Whether to perform schema validation

        Returns:
            Validated configuration

        Raises:
            ConfigError: If the file cannot be read or is invalid
        """
        path = self.config_path
        if path is None:
            logger.info("No configuration in %s, using defaults", self.config_dir)
            return ProjectConfig()

        try:
            with path.open(encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            msg = f"Failed to parse {path.name}: {e}"
            raise ConfigError(msg, details={"file": str(path)}) from e
        except OSError as e:
            msg = f"Failed to read {path}: {e}"
            raise ConfigError(msg, details={"file": str(path)}) from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            msg = f"{path.name} must contain a mapping"
            raise ConfigError(msg, details={"file": str(path)})

        if validate:
            self._validate_against_schema(data, "config")

        try:
            return ProjectConfig.model_validate(data)
        except ValidationError as e:
            msg = f"Configuration validation failed: {e}"
            raise ConfigError(msg, details={"file": str(path)}) from e

    def source_root(self, source: SourceConfig) -> Path:
        """Directory a source's content lives in."""
        path = Path(source.path)
        return path if path.is_absolute() else (self.config_dir / path).resolve()


def load_config(project_root: Path, config_dir: str = CONFIG_DIR) -> ProjectConfig:
    return ConfigLoader(project_root, config_dir).load()


def default_config_yaml(project_name: str) -> str:
    """Starter configuration written by ``aisync init``."""
    data = {
        "version": "1.0.0",
        "project_name": project_name,
        "targets": [p.value for p in ALL_PLATFORMS],
        "sources": [{"path": ".", "name": "local"}],
        "output": {"add_do_not_edit_headers": True},
    }
    return yaml.safe_dump(data, sort_keys=False)
