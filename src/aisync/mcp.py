"""MCP server configuration: parsing, merging and per-target selection."""

from __future__ import annotations

import logging
import re
from typing import Any, Mapping

import yaml
from pydantic import ValidationError

from .exceptions import DocumentValidationError, ParseError
from .models import (
    Diagnostic,
    DiagnosticCategory,
    McpConfig,
    McpServer,
    Platform,
    RawMcpConfig,
    warning,
)
from .parser import field_errors

logger = logging.getLogger(__name__)

MCP_FILENAMES: tuple[str, ...] = ("mcp.yaml", "mcp.yml")

_ENV_REF = re.compile(r"\$\{([^}]+)\}")


def interpolate_env(value: Any, environ: Mapping[str, str]) -> Any:
    """Replace ``${VAR}`` references in every string of a nested value.

    Unset variables keep their placeholder so the consumer tool can expand it.
    """
    if isinstance(value, str):
        return _ENV_REF.sub(lambda m: environ.get(m.group(1), m.group(0)), value)
    if isinstance(value, list):
        return [interpolate_env(item, environ) for item in value]
    if isinstance(value, dict):
        return {key: interpolate_env(item, environ) for key, item in value.items()}
    return value


def parse_mcp_config(
    text: str,
    file_path: str = "mcp.yaml",
    environ: Mapping[str, str] | None = None,
) -> McpConfig:
    """Parse and validate an MCP configuration file.

    Args:
        text: YAML text of the file
        file_path: Path used in error messages
        environ: Variables for ``${VAR}`` interpolation, None to skip it

    Returns:
        Validated configuration

    Raises:
        ParseError: If the text is not a YAML mapping
        DocumentValidationError: If a server definition is invalid
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        line = column = None
        mark = getattr(e, "problem_mark", None)
        if mark is not None:
            line = mark.line + 1
            column = mark.column + 1
        problem = getattr(e, "problem", None) or str(e)
        msg = f"Invalid YAML in MCP configuration: {problem}"
        raise ParseError(msg, file_path=file_path, line=line, column=column) from e

    if not isinstance(data, dict):
        msg = "MCP configuration must be a mapping with a 'servers' key"
        raise ParseError(msg, file_path=file_path, line=1, column=1)

    if environ is not None:
        data = interpolate_env(data, environ)

    try:
        return McpConfig.model_validate(data)
    except ValidationError as e:
        problems = field_errors(e)
        summary = "; ".join(str(fe) for fe in problems)
        raise DocumentValidationError(
            f"Invalid MCP configuration: {summary}",
            file_path=file_path,
            errors=problems,
        ) from e


def merge_servers(
    configs: list[tuple[RawMcpConfig, McpConfig]],
) -> tuple[dict[str, McpServer], list[Diagnostic]]:
    """Combine servers from several sources, earlier sources taking precedence.

    Returns:
        Tuple of (servers by name, warnings for shadowed servers)
    """
    servers: dict[str, McpServer] = {}
    owners: dict[str, RawMcpConfig] = {}
    diagnostics = []
    for raw, config in configs:
        for name, server in config.servers.items():
            if name in servers:
                diagnostics.append(
                    warning(
                        DiagnosticCategory.MCP,
                        f"MCP server '{name}' is already defined by {owners[name].provenance}; "
                        "this definition is ignored",
                        raw.provenance,
                    ),
                )
                continue
            servers[name] = server
            owners[name] = raw
    return servers, diagnostics


def servers_for(servers: Mapping[str, McpServer], target: Platform) -> dict[str, McpServer]:
    """Servers that are enabled for a target, in name order."""
    selected = {name: servers[name] for name in sorted(servers) if servers[name].supports(target)}
    logger.debug("Selected %d of %d MCP servers for %s", len(selected), len(servers), target.value)
    return selected
