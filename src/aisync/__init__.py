"""aisync: compile AI assistant guidance for multiple coding tools."""

__version__ = "0.1.0"
__author__ = "aisync Contributors"
__description__ = "Content resolution and multi-target generation for AI coding assistants"

from .compiler import ArtifactCompiler, compile_project
from .conditions import StaticFactContext, evaluate_condition, parse_condition
from .models import (
    MultiSourceLoadResult,
    Platform,
    RawDocument,
    ResolvedContent,
    SourceLoadResult,
)
from .resolver import ResolveOptions, Resolver, resolve

__all__ = [
    "ArtifactCompiler",
    "MultiSourceLoadResult",
    "Platform",
    "RawDocument",
    "ResolveOptions",
    "ResolvedContent",
    "Resolver",
    "SourceLoadResult",
    "StaticFactContext",
    "compile_project",
    "evaluate_condition",
    "parse_condition",
    "resolve",
]
