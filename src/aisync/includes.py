"""``@include`` directive expansion for document bodies."""

from __future__ import annotations

import logging
import posixpath
import re
from dataclasses import dataclass, field
from typing import Protocol

from .exceptions import (
    IncludeCycleError,
    IncludeDepthError,
    IncludeNotFoundError,
    IncludeReadError,
)
from .frontmatter import strip_frontmatter

logger = logging.getLogger(__name__)

MAX_INCLUDE_DEPTH = 10

INCLUDE_DIRECTIVE = re.compile(r"^[ \t]*@include[ \t]+(\S.*?)[ \t]*$")


class IncludeSource(Protocol):
    """Read access to files that may be included."""

    def read(self, path: str) -> str | None:
        """Return file text, or None when the file does not exist."""


class MappingIncludeSource:
    """Include source over an in-memory mapping of path to text."""

    def __init__(self, files: dict[str, str] | None = None) -> None:
        self._files = {posixpath.normpath(p): t for p, t in (files or {}).items()}

    def read(self, path: str) -> str | None:
        return self._files.get(posixpath.normpath(path))

    def add(self, path: str, text: str) -> None:
        self._files[posixpath.normpath(path)] = text


@dataclass
class IncludeResult:
    """Expanded body and the files spliced into it, in splice order."""

    body: str
    included: list[str] = field(default_factory=list)


@dataclass
class _Frame:
    path: str
    lines: list[str]
    index: int = 0
    output: list[str] = field(default_factory=list)


def find_includes(body: str) -> list[str]:
    """Return the raw paths of every include directive in a body."""
    paths = []
    for line in body.split("\n"):
        match = INCLUDE_DIRECTIVE.match(line)
        if match:
            paths.append(_clean_path(match.group(1)))
    return paths


def _clean_path(raw: str) -> str:
    raw = raw.strip()
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in "\"'":
        return raw[1:-1]
    if raw.startswith("<") and raw.endswith(">"):
        return raw[1:-1]
    return raw


def resolve_include_path(including_file: str, target: str) -> str:
    """Resolve an include target relative to the including file's directory.

    A leading ``/`` makes the target relative to the source root instead.
    """
    if target.startswith("/"):
        return posixpath.normpath(target.lstrip("/"))
    base = posixpath.dirname(including_file)
    return posixpath.normpath(posixpath.join(base, target))


def resolve_includes(
    body: str,
    file_path: str,
    source: IncludeSource,
    max_depth: int = MAX_INCLUDE_DEPTH,
) -> IncludeResult:
    """Expand ``@include`` directives in a body.

    Each directive line is replaced by the referenced file's body with its
    metadata block stripped. Included text is expanded the same way. The walk
    is depth-first over an explicit stack, so the files currently being
    expanded are always known.

    Args:
        body: Body text to expand
        file_path: Path of the document owning the body
        source: Where included files are read from
        max_depth: Deepest allowed nesting of includes

    Returns:
        The expanded body and the included paths

    Raises:
        IncludeCycleError: If a file includes itself directly or indirectly
        IncludeDepthError: If nesting exceeds ``max_depth``
        IncludeNotFoundError: If an included file does not exist
        IncludeReadError: If an included file cannot be read
    """
    root_path = posixpath.normpath(file_path)
    stack = [_Frame(root_path, body.split("\n"))]
    active = {root_path}
    included: list[str] = []
    result = body

    while stack:
        frame = stack[-1]
        if frame.index >= len(frame.lines):
            stack.pop()
            active.discard(frame.path)
            text = "\n".join(frame.output)
            if stack:
                stack[-1].output.append(text)
            else:
                result = text
            continue

        line = frame.lines[frame.index]
        frame.index += 1
        match = INCLUDE_DIRECTIVE.match(line)
        if not match:
            frame.output.append(line)
            continue

        target = resolve_include_path(frame.path, _clean_path(match.group(1)))
        if target in active:
            raise IncludeCycleError([f.path for f in stack] + [target])
        if len(stack) > max_depth:
            msg = f"Maximum include depth ({max_depth}) exceeded at {target}"
            raise IncludeDepthError(
                msg,
                details={"chain": [f.path for f in stack] + [target]},
            )

        try:
            text = source.read(target)
        except (OSError, UnicodeDecodeError) as e:
            msg = f"Failed to read include file {target}: {e}"
            raise IncludeReadError(msg, details={"path": target}) from e
        if text is None:
            raise IncludeNotFoundError(target, included_from=frame.path)

        logger.debug("Including %s into %s", target, frame.path)
        included.append(target)
        fragment = strip_frontmatter(text).strip()
        stack.append(_Frame(target, fragment.split("\n")))
        active.add(target)

    return IncludeResult(body=result, included=included)
