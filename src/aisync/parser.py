"""Metadata block parser: raw documents into typed documents."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any

from pydantic import AliasChoices, ValidationError

from .exceptions import DocumentValidationError, FieldError, ParseError
from .frontmatter import parse_frontmatter
from .models import (
    DOCUMENT_MODELS,
    METADATA_MODELS,
    Command,
    Diagnostic,
    DiagnosticCategory,
    DocumentKind,
    DocumentMetadata,
    Hook,
    Persona,
    Provenance,
    RawDocument,
    Rule,
    error,
    warning,
)

logger = logging.getLogger(__name__)


@dataclass
class ParseOutcome:
    """Result of parsing one raw document.

    ``document`` is None when the document could not be parsed or validated;
    the reasons are in ``diagnostics``.
    """

    document: Rule | Persona | Command | Hook | None
    diagnostics: list[Diagnostic] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.document is not None


def infer_name(file_path: str) -> str:
    """Derive a document name from its file name."""
    return PurePosixPath(file_path).stem


def _known_keys(model: type[DocumentMetadata]) -> set[str]:
    keys: set[str] = set()
    for name, info in model.model_fields.items():
        keys.add(name)
        alias = info.validation_alias
        if isinstance(alias, AliasChoices):
            keys.update(str(choice) for choice in alias.choices)
        elif isinstance(alias, str):
            keys.add(alias)
    return keys


def field_errors(exc: ValidationError) -> list[FieldError]:
    errors = []
    for item in exc.errors():
        path = ".".join(str(part) for part in item.get("loc", ()))
        message = item.get("msg", "invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, ") :]
        errors.append(FieldError(path=path, message=message, value=item.get("input")))
    return errors


def parse_metadata(
    kind: DocumentKind,
    data: dict[str, Any],
    file_path: str,
    strict: bool = False,
) -> tuple[DocumentMetadata, list[str]]:
    """Validate a metadata mapping for a document kind and apply defaults.

    Args:
        kind: Document kind selecting the metadata schema
        data: Parsed metadata block
        file_path: Originating file, used for name inference and messages
        strict: Disallow name inference and flag unknown fields

    Returns:
        Tuple of (validated metadata, warning messages)

    Raises:
        DocumentValidationError: If required fields are missing or values are invalid
    """
    model = METADATA_MODELS[kind]
    warnings: list[str] = []
    data = dict(data)

    # YAML reads unquoted keys such as on/yes/1 as booleans and numbers
    odd_keys = [key for key in data if not isinstance(key, str)]
    if odd_keys:
        raise DocumentValidationError(
            f"Invalid {kind.value} metadata: field names must be strings",
            file_path=file_path,
            errors=[
                FieldError(
                    path=str(key),
                    message="field name is not a string; quote it in the metadata block",
                    value=key,
                )
                for key in odd_keys
            ],
        )

    if data.get("name") is None:
        if strict:
            raise DocumentValidationError(
                f"Missing required field 'name' in {kind.value}",
                file_path=file_path,
                errors=[FieldError(path="name", message="name is required")],
            )
        data["name"] = infer_name(file_path)
        warnings.append(f"No name given; inferred '{data['name']}' from file name")

    if strict:
        unknown = sorted(set(data) - _known_keys(model))
        if unknown:
            warnings.append(f"Unknown {kind.value} fields: {', '.join(unknown)}")

    try:
        metadata = model.model_validate(data)
    except ValidationError as e:
        problems = field_errors(e)
        summary = "; ".join(str(fe) for fe in problems)
        raise DocumentValidationError(
            f"Invalid {kind.value} metadata: {summary}",
            file_path=file_path,
            errors=problems,
        ) from e

    return metadata, warnings


def parse_document(raw: RawDocument, strict: bool = False) -> ParseOutcome:
    """Parse and validate one raw document.

    Never raises for malformed input: parse and validation failures become
    error diagnostics and the outcome carries no document.

    Args:
        raw: Loader output carrying kind, text and provenance
        strict: Disallow name inference and flag unknown fields

    Returns:
        Parse outcome with the typed document and any diagnostics
    """
    provenance = raw.provenance
    try:
        frontmatter = parse_frontmatter(raw.text, file_path=provenance.path)
    except ParseError as e:
        logger.debug("Parse error in %s: %s", provenance, e)
        return ParseOutcome(
            document=None,
            diagnostics=[error(DiagnosticCategory.PARSE, e.format(), provenance)],
        )

    try:
        metadata, notes = parse_metadata(
            raw.kind,
            frontmatter.data,
            provenance.path,
            strict=strict,
        )
    except DocumentValidationError as e:
        diagnostics = [
            error(DiagnosticCategory.VALIDATION, str(fe), provenance) for fe in e.errors
        ] or [error(DiagnosticCategory.VALIDATION, e.message, provenance)]
        return ParseOutcome(document=None, diagnostics=diagnostics)

    document_model = DOCUMENT_MODELS[raw.kind]
    document = document_model(
        metadata=metadata,
        body=frontmatter.body.strip(),
        provenance=provenance,
    )
    diagnostics = [warning(DiagnosticCategory.VALIDATION, n, provenance) for n in notes]
    return ParseOutcome(document=document, diagnostics=diagnostics)


def parse_text(
    kind: DocumentKind | str,
    text: str,
    path: str = "<memory>",
    source: str = "inline",
    strict: bool = False,
) -> Rule | Persona | Command | Hook:
    """Parse a document from text, raising on failure.

    Convenience wrapper for callers that want exceptions instead of
    diagnostics.

    Raises:
        ParseError: If the metadata block is malformed
        DocumentValidationError: If the metadata is invalid
    """
    kind = DocumentKind(kind)
    frontmatter = parse_frontmatter(text, file_path=path)
    metadata, _ = parse_metadata(kind, frontmatter.data, path, strict=strict)
    return DOCUMENT_MODELS[kind](
        metadata=metadata,
        body=frontmatter.body.strip(),
        provenance=Provenance(source=source, path=path),
    )
