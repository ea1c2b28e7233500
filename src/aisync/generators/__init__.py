"""Target generators, one per consumer platform."""

from __future__ import annotations

from ..models import Platform
from .base import (
    DO_NOT_EDIT_HEADER,
    ArtifactBuilder,
    Generator,
    GeneratorOptions,
    HookEntry,
    safe_filename,
)
from .claude import ClaudeGenerator
from .cursor import CursorGenerator
from .factory import FactoryGenerator
from .subfolder import SubfolderContext, SubfolderContextGenerator

GENERATORS: dict[Platform, type[Generator]] = {
    Platform.CLAUDE: ClaudeGenerator,
    Platform.CURSOR: CursorGenerator,
    Platform.FACTORY: FactoryGenerator,
}


def get_generator(platform: Platform | str, options: GeneratorOptions | None = None) -> Generator:
    """Create the generator for a platform."""
    return GENERATORS[Platform(platform)](options)


__all__ = [
    "DO_NOT_EDIT_HEADER",
    "GENERATORS",
    "ArtifactBuilder",
    "ClaudeGenerator",
    "CursorGenerator",
    "FactoryGenerator",
    "Generator",
    "GeneratorOptions",
    "HookEntry",
    "SubfolderContext",
    "SubfolderContextGenerator",
    "get_generator",
    "safe_filename",
]
