"""Platform-conditional template blocks.

A body may contain ``{{#expr}}...{{/expr}}`` regions. ``expr`` is a platform
id, ids joined by ``|`` (any) or ``&`` (all, binds tighter), each optionally
negated with ``!``. Blocks do not nest: an opening tag inside a block is
plain text of that block. A tag that is alone on its line takes the whole
line with it.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Union

from .exceptions import TemplateError
from .models import EXTENSION_KEYS, Platform

logger = logging.getLogger(__name__)

_TAG = re.compile(r"\{\{([#/])([^\s{}][^{}\n]*?)\}\}")
_IDENT = re.compile(r"[A-Za-z][A-Za-z0-9_-]*")


@dataclass(frozen=True)
class PlatformRef:
    name: str
    negated: bool = False

    def matches(self, target: str) -> bool:
        return (self.name == target) != self.negated


@dataclass(frozen=True)
class AllOf:
    terms: tuple[PlatformRef, ...]

    def matches(self, target: str) -> bool:
        return all(term.matches(target) for term in self.terms)


@dataclass(frozen=True)
class AnyOf:
    options: tuple[AllOf, ...]

    def matches(self, target: str) -> bool:
        return any(option.matches(target) for option in self.options)

    def platforms(self) -> list[str]:
        return [term.name for option in self.options for term in option.terms]


def parse_block_expression(expression: str) -> AnyOf:
    """Parse a block expression such as ``claude|cursor`` or ``!factory``.

    Raises:
        TemplateError: If the expression is empty or malformed
    """
    text = expression.strip()
    position = 0

    def fail(message: str) -> TemplateError:
        return TemplateError(
            f"{message} in block expression '{expression}' at column {position + 1}",
            details={"expression": expression, "position": position},
        )

    def skip_spaces() -> None:
        nonlocal position
        while position < len(text) and text[position] == " ":
            position += 1

    def term() -> PlatformRef:
        nonlocal position
        skip_spaces()
        negated = False
        if position < len(text) and text[position] == "!":
            negated = True
            position += 1
            skip_spaces()
        match = _IDENT.match(text, position)
        if not match:
            raise fail("Expected a platform name")
        position = match.end()
        skip_spaces()
        return PlatformRef(match.group(0), negated)

    def conjunction() -> AllOf:
        nonlocal position
        terms = [term()]
        while position < len(text) and text[position] == "&":
            position += 1
            terms.append(term())
        return AllOf(tuple(terms))

    if not text:
        raise fail("Empty expression")
    options = [conjunction()]
    while position < len(text) and text[position] == "|":
        position += 1
        options.append(conjunction())
    if position != len(text):
        raise fail(f"Unexpected '{text[position]}'")
    return AnyOf(tuple(options))


@dataclass(frozen=True)
class Text:
    content: str


@dataclass(frozen=True)
class Block:
    expression: str
    condition: AnyOf
    content: str


Node = Union[Text, Block]


@dataclass
class Template:
    """A parsed body: literal text and conditional blocks in order."""

    nodes: list[Node] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def blocks(self) -> list[Block]:
        return [n for n in self.nodes if isinstance(n, Block)]

    def render(self, target: Platform | str) -> str:
        """Keep the blocks that match a target and drop the rest."""
        name = target.value if isinstance(target, Platform) else target
        parts = []
        for node in self.nodes:
            if isinstance(node, Text):
                parts.append(node.content)
            elif node.condition.matches(name):
                parts.append(node.content)
        return "".join(parts)


def _tag_span(text: str, start: int, end: int) -> tuple[int, int]:
    """Widen a tag to its whole line when nothing else is on that line."""
    line_start = text.rfind("\n", 0, start) + 1
    line_end = text.find("\n", end)
    if line_end == -1:
        line_end = len(text)
    if text[line_start:start].strip() or text[end:line_end].strip():
        return start, end
    return line_start, min(line_end + 1, len(text))


def parse_template(body: str, known_platforms: tuple[str, ...] = EXTENSION_KEYS) -> Template:
    """Parse a body into text and block nodes.

    Unclosed opening tags and stray closing tags stay as literal text and are
    reported as warnings, as are platform names outside ``known_platforms``.

    Raises:
        TemplateError: If a block expression is malformed
    """
    tags = list(_TAG.finditer(body))
    template = Template()
    cursor = 0
    i = 0
    while i < len(tags):
        tag = tags[i]
        if tag.start() < cursor:
            i += 1
            continue
        kind, expression = tag.group(1), tag.group(2).strip()
        if kind == "/":
            template.warnings.append(f"Closing tag '{tag.group(0)}' has no opening tag")
            i += 1
            continue

        close_index = next(
            (
                j
                for j in range(i + 1, len(tags))
                if tags[j].group(1) == "/" and tags[j].group(2).strip() == expression
            ),
            None,
        )
        if close_index is None:
            template.warnings.append(f"Block '{tag.group(0)}' is never closed")
            i += 1
            continue

        condition = parse_block_expression(expression)
        for name in condition.platforms():
            if name not in known_platforms:
                template.warnings.append(f"Unknown platform '{name}' in block '{tag.group(0)}'")

        close = tags[close_index]
        open_start, open_end = _tag_span(body, tag.start(), tag.end())
        close_start, close_end = _tag_span(body, close.start(), close.end())
        if open_start > cursor:
            template.nodes.append(Text(body[cursor:open_start]))
        template.nodes.append(Block(expression, condition, body[open_end:close_start]))
        cursor = close_end
        i = close_index + 1

    if cursor < len(body):
        template.nodes.append(Text(body[cursor:]))
    return template


def tidy_whitespace(text: str) -> str:
    """Normalize whitespace left behind by removed blocks."""
    text = "\n".join(line.rstrip() for line in text.split("\n"))
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = text.lstrip("\n")
    if text.endswith("\n"):
        text = text.rstrip("\n") + "\n"
    return text


def has_template_blocks(body: str) -> bool:
    return _TAG.search(body) is not None


@dataclass
class TemplateResult:
    """Rendered body for one target."""

    text: str
    warnings: list[str] = field(default_factory=list)
    blocks: int = 0


def process_template(
    body: str,
    target: Platform | str,
    known_platforms: tuple[str, ...] = EXTENSION_KEYS,
) -> TemplateResult:
    """Render a body for a target platform.

    Bodies without blocks come back unchanged. When blocks were processed the
    whitespace they leave behind is tidied.

    Args:
        body: Body text
        target: Active platform
        known_platforms: Platform names that may appear in block expressions

    Returns:
        Rendered text, warnings and the number of blocks processed

    Raises:
        TemplateError: If a block expression is malformed
    """
    if not has_template_blocks(body):
        return TemplateResult(text=body)
    template = parse_template(body, known_platforms)
    if not template.blocks:
        return TemplateResult(text=body, warnings=template.warnings)
    text = tidy_whitespace(template.render(target))
    logger.debug("Processed %d template blocks for %s", len(template.blocks), target)
    return TemplateResult(text=text, warnings=template.warnings, blocks=len(template.blocks))
