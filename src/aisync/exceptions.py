"""Custom exceptions for aisync."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class AiSyncError(Exception):
    """Base exception for all aisync errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ParseError(AiSyncError):
    """Raised when a document's metadata block cannot be parsed."""

    def __init__(
        self,
        message: str,
        file_path: str | None = None,
        line: int | None = None,
        column: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.file_path = file_path
        self.line = line
        self.column = column

    def format(self) -> str:
        """Render the error as ``path:line:column: message``."""
        location = self.file_path or "<unknown>"
        if self.line is not None:
            location += f":{self.line}"
            if self.column is not None:
                location += f":{self.column}"
        return f"{location}: {self.message}"


@dataclass
class FieldError:
    """A single field-level validation failure."""

    path: str
    message: str
    value: Any = None

    def __str__(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message


class DocumentValidationError(AiSyncError):
    """Raised when document metadata fails kind-specific validation."""

    def __init__(
        self,
        message: str,
        file_path: str | None = None,
        errors: list[FieldError] | None = None,
    ) -> None:
        super().__init__(message, details={"file_path": file_path})
        self.file_path = file_path
        self.errors = errors or []


class ConditionError(AiSyncError):
    """Raised when a ``when:`` expression cannot be parsed or evaluated."""


class ConditionSyntaxError(ConditionError):
    """Raised when a condition expression is malformed."""

    def __init__(self, message: str, expression: str, position: int) -> None:
        super().__init__(
            f"{message} at column {position + 1} in '{expression}'",
            details={"expression": expression, "position": position},
        )
        self.expression = expression
        self.position = position


class UnknownNamespaceError(ConditionError):
    """Raised when a condition references a namespace with no fact provider."""

    def __init__(self, namespace: str) -> None:
        super().__init__(
            f"Unknown condition namespace: {namespace}",
            details={"namespace": namespace},
        )
        self.namespace = namespace


class IncludeError(AiSyncError):
    """Raised when ``@include`` resolution fails."""


class IncludeCycleError(IncludeError):
    """Raised when an include chain revisits a file already being expanded."""

    def __init__(self, chain: list[str]) -> None:
        super().__init__(
            f"Circular include detected: {' -> '.join(chain)}",
            details={"chain": chain},
        )
        self.chain = chain


class IncludeNotFoundError(IncludeError):
    """Raised when an included file does not exist."""

    def __init__(self, path: str, included_from: str) -> None:
        super().__init__(
            f"Include file not found: {path}",
            details={"path": path, "included_from": included_from},
        )
        self.path = path


class IncludeDepthError(IncludeError):
    """Raised when include nesting exceeds the depth limit."""


class IncludeReadError(IncludeError):
    """Raised when an included file exists but cannot be read."""


class InheritanceError(AiSyncError):
    """Raised when persona ``extends`` resolution fails."""


class InheritanceCycleError(InheritanceError):
    """Raised when a persona's ``extends`` chain loops back on itself."""

    def __init__(self, cycle: list[str]) -> None:
        super().__init__(
            f"Circular inheritance detected: {' -> '.join(cycle)}",
            details={"cycle": cycle},
        )
        self.cycle = cycle


class InheritanceDepthError(InheritanceError):
    """Raised when an ``extends`` chain is longer than allowed."""


class TemplateError(AiSyncError):
    """Raised when a platform template block is malformed."""


class GenerationError(AiSyncError):
    """Raised when a resolved document cannot be rendered for a target."""


class ConfigError(AiSyncError):
    """Raised when the project configuration is missing or invalid."""


class LoaderError(AiSyncError):
    """Raised when a content source cannot be read."""
