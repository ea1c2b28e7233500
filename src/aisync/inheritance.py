"""Persona ``extends`` resolution over an explicit inheritance graph."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .exceptions import InheritanceCycleError, InheritanceDepthError
from .models import (
    EXTENSION_KEYS,
    Diagnostic,
    DiagnosticCategory,
    Persona,
    PersonaMetadata,
    error,
    warning,
)

logger = logging.getLogger(__name__)

MAX_INHERITANCE_DEPTH = 10
BODY_SEPARATOR = "\n\n---\n\n"


class MissingParent(Exception):
    """Internal signal: the chain names a persona that does not exist."""

    def __init__(self, child: str, parent: str) -> None:
        super().__init__(parent)
        self.child = child
        self.parent = parent


class InheritanceGraph:
    """Personas indexed by name with ``extends`` edges materialized.

    When several personas share a name, the first one in input order is the
    node other personas inherit from.
    """

    def __init__(self, personas: list[Persona]) -> None:
        self.nodes: dict[str, Persona] = {}
        for persona in personas:
            self.nodes.setdefault(persona.name, persona)
        self.edges: dict[str, str] = {
            name: persona.metadata.extends
            for name, persona in self.nodes.items()
            if persona.metadata.extends
        }

    def parent_of(self, name: str) -> str | None:
        return self.edges.get(name)

    def chain(self, persona: Persona, max_depth: int = MAX_INHERITANCE_DEPTH) -> list[Persona]:
        """Walk ``extends`` links from a persona up to its root.

        Args:
            persona: Persona to start from
            max_depth: Most ``extends`` links allowed in one chain

        Returns:
            Personas ordered root first, ending with ``persona``

        Raises:
            InheritanceCycleError: If a name repeats along the chain
            InheritanceDepthError: If the chain has more than ``max_depth`` links
            MissingParent: If a named parent is not in the graph
        """
        chain = [persona]
        seen = [persona.name]
        parent_name = persona.metadata.extends
        while parent_name:
            if parent_name in seen:
                start = seen.index(parent_name)
                raise InheritanceCycleError([*seen[start:], parent_name])
            if len(chain) > max_depth:
                msg = (
                    f"Maximum inheritance depth ({max_depth}) exceeded "
                    f"for persona '{persona.name}'"
                )
                raise InheritanceDepthError(msg, details={"chain": seen})
            parent = self.nodes.get(parent_name)
            if parent is None:
                raise MissingParent(seen[-1], parent_name)
            chain.append(parent)
            seen.append(parent_name)
            parent_name = self.edges.get(parent_name)
        chain.reverse()
        return chain


def merge_metadata(chain: list[PersonaMetadata]) -> dict[str, Any]:
    """Fold metadata root to leaf.

    Only fields a persona sets explicitly override its parent, so defaults
    never hide inherited values. Platform override blocks merge key by key.
    """
    merged: dict[str, Any] = {}
    for metadata in chain:
        for field_name in metadata.model_fields_set:
            value = getattr(metadata, field_name)
            if field_name in EXTENSION_KEYS and isinstance(value, dict):
                merged[field_name] = {**(merged.get(field_name) or {}), **value}
            else:
                merged[field_name] = value
        if metadata.model_extra:
            merged.update(metadata.model_extra)
    merged.pop("extends", None)
    return merged


def merge_bodies(bodies: list[str]) -> str:
    """Join bodies parent first with a horizontal rule between them."""
    return BODY_SEPARATOR.join(b.strip() for b in bodies if b.strip())


@dataclass
class InheritanceResult:
    """Personas after resolution, in input order, plus diagnostics.

    Personas whose chain has a cycle or is too deep are dropped.
    """

    personas: list[Persona] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)


def resolve_persona(
    persona: Persona,
    graph: InheritanceGraph,
    max_depth: int = MAX_INHERITANCE_DEPTH,
) -> Persona:
    """Resolve one persona against the graph.

    Returns the persona unchanged when it has no ``extends``.

    Raises:
        InheritanceCycleError: If the chain loops
        InheritanceDepthError: If the chain is too long
        MissingParent: If a parent is missing
    """
    if not persona.metadata.extends:
        return persona
    chain = graph.chain(persona, max_depth=max_depth)
    data = merge_metadata([p.metadata for p in chain])
    data["name"] = persona.name
    metadata = PersonaMetadata.model_validate(data)
    resolved = persona.with_body(merge_bodies([p.body for p in chain]))
    return resolved.model_copy(
        update={
            "metadata": metadata,
            "lineage": tuple(p.name for p in chain),
        },
    )


def resolve_inheritance(
    personas: list[Persona],
    max_depth: int = MAX_INHERITANCE_DEPTH,
) -> InheritanceResult:
    """Resolve ``extends`` for every persona.

    Args:
        personas: All loaded personas, in source order
        max_depth: Most ``extends`` links allowed in one chain

    Returns:
        Resolved personas and diagnostics. A missing parent is a warning
        and the persona keeps its own fields; a cycle or excessive depth is
        an error and the persona is excluded.
    """
    graph = InheritanceGraph(personas)
    result = InheritanceResult()
    for persona in personas:
        try:
            result.personas.append(resolve_persona(persona, graph, max_depth))
        except MissingParent as e:
            logger.warning(
                "Persona '%s' extends unknown persona '%s'",
                persona.name,
                e.parent,
            )
            result.diagnostics.append(
                warning(
                    DiagnosticCategory.INHERITANCE,
                    f"Persona '{e.child}' extends unknown persona '{e.parent}'; "
                    "inheritance skipped",
                    persona.provenance,
                ),
            )
            result.personas.append(persona)
        except (InheritanceCycleError, InheritanceDepthError) as e:
            result.diagnostics.append(
                error(DiagnosticCategory.INHERITANCE, e.message, persona.provenance),
            )
    return result
