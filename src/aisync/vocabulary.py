"""Tool and model vocabulary translation per platform."""

from __future__ import annotations

from .models import DEFAULT_MODEL, Platform

TOOL_NAMES: dict[Platform, dict[str, str]] = {
    Platform.CURSOR: {
        "read": "Read",
        "write": "Create",
        "edit": "Edit",
        "execute": "Execute",
        "search": "Grep",
        "glob": "Glob",
        "fetch": "FetchUrl",
        "ls": "LS",
    },
    Platform.CLAUDE: {
        "read": "Read",
        "write": "Write",
        "edit": "Edit",
        "execute": "Bash",
        "search": "Grep",
        "glob": "Glob",
        "fetch": "WebFetch",
        "ls": "LS",
    },
    Platform.FACTORY: {
        "read": "read",
        "write": "write",
        "edit": "edit",
        "execute": "execute",
        "search": "search",
        "glob": "glob",
        "fetch": "fetch",
        "ls": "list",
    },
}

MODEL_NAMES: dict[Platform, dict[str, str]] = {
    Platform.CURSOR: {
        "default": "inherit",
        "fast": "inherit",
        "powerful": "inherit",
    },
    Platform.CLAUDE: {
        "default": "sonnet",
        "fast": "haiku",
        "powerful": "opus",
    },
    Platform.FACTORY: {},
}


class ToolMapper:
    """Translates generic tool names into a platform's vocabulary."""

    def __init__(
        self,
        platform: Platform,
        custom: dict[str, str] | None = None,
        preserve_unknown: bool = False,
    ) -> None:
        """Initialize mapper.

        Args:
            platform: Platform whose names are produced
            custom: Extra or overriding generic-to-platform mappings
            preserve_unknown: Pass unknown names through unchanged instead of
                adjusting their case to the platform's convention
        """
        self.platform = platform
        self.mapping = {**TOOL_NAMES[platform], **(custom or {})}
        self.preserve_unknown = preserve_unknown

    def map(self, tool: str) -> str:
        key = tool.strip()
        mapped = self.mapping.get(key.lower())
        if mapped is not None:
            return mapped
        if self.preserve_unknown:
            return key
        if self.platform == Platform.FACTORY:
            return key.lower()
        return key[:1].upper() + key[1:]

    def map_all(self, tools: list[str]) -> list[str]:
        """Map a list of tools, dropping duplicates but keeping order."""
        mapped: list[str] = []
        for tool in tools:
            name = self.map(tool)
            if name not in mapped:
                mapped.append(name)
        return mapped


def map_tools(tools: list[str], platform: Platform) -> list[str]:
    return ToolMapper(platform).map_all(tools)


def map_model(model: str | None, platform: Platform) -> str:
    """Translate a generic model name; unknown names pass through."""
    name = (model or DEFAULT_MODEL).strip()
    if name == "inherit":
        return name
    return MODEL_NAMES[platform].get(name, name)
