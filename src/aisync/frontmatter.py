"""Metadata block (YAML frontmatter) handling."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import yaml

from .exceptions import ParseError

DELIMITER = "---"


@dataclass
class Frontmatter:
    """A document split into its metadata mapping and body text."""

    data: dict[str, Any] = field(default_factory=dict)
    body: str = ""
    has_block: bool = False
    body_line: int = 1


def _is_delimiter(line: str) -> bool:
    return line.rstrip("\r\n").rstrip() == DELIMITER


def split_frontmatter(text: str, file_path: str | None = None) -> tuple[str | None, str, int]:
    """Split raw text into the metadata block source and the body.

    Args:
        text: Raw document text
        file_path: Path used in error messages

    Returns:
        Tuple of (block source or None, body, 1-based line where the body starts)

    Raises:
        ParseError: If the opening delimiter is never closed
    """
    if text.startswith("\ufeff"):
        text = text[1:]
    lines = text.splitlines(keepends=True)
    if not lines or not _is_delimiter(lines[0]):
        return None, text, 1

    for index in range(1, len(lines)):
        if _is_delimiter(lines[index]):
            block = "".join(lines[1:index])
            body = "".join(lines[index + 1 :])
            return block, body, index + 2

    msg = "Unterminated metadata block: missing closing '---'"
    raise ParseError(msg, file_path=file_path, line=1, column=1)


def parse_frontmatter(text: str, file_path: str | None = None) -> Frontmatter:
    """Parse the YAML metadata block at the top of a document.

    Text that does not start with a delimiter line is all body.

    Args:
        text: Raw document text
        file_path: Path used in error messages

    Returns:
        Parsed frontmatter

    Raises:
        ParseError: If the block is unterminated, is not valid YAML, or is not a mapping
    """
    block, body, body_line = split_frontmatter(text, file_path)
    if block is None:
        return Frontmatter(data={}, body=body, has_block=False, body_line=1)

    try:
        data = yaml.safe_load(block)
    except yaml.YAMLError as e:
        line = column = None
        mark = getattr(e, "problem_mark", None)
        if mark is not None:
            # +1 for 0-based marks, +1 for the opening delimiter line
            line = mark.line + 2
            column = mark.column + 1
        problem = getattr(e, "problem", None) or str(e)
        msg = f"Invalid YAML in metadata block: {problem}"
        raise ParseError(msg, file_path=file_path, line=line, column=column) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        msg = f"Metadata block must be a mapping, got {type(data).__name__}"
        raise ParseError(msg, file_path=file_path, line=2, column=1)

    return Frontmatter(data=data, body=body, has_block=True, body_line=body_line)


def strip_frontmatter(text: str) -> str:
    """Return only the body of a document, dropping any metadata block.

    An unterminated block is left in place.
    """
    try:
        block, body, _ = split_frontmatter(text)
    except ParseError:
        return text
    return body if block is not None else text


def serialize_frontmatter(data: dict[str, Any]) -> str:
    """Render a mapping as a delimited YAML metadata block.

    Keys whose value is None are dropped; key order is preserved.
    """
    cleaned = {k: v for k, v in data.items() if v is not None}
    if not cleaned:
        return ""
    dumped = yaml.safe_dump(
        cleaned,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        width=10_000,
    )
    return f"{DELIMITER}\n{dumped}{DELIMITER}\n"
