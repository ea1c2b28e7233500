"""Local directory content source."""

from __future__ import annotations

import logging
from pathlib import Path

from .exceptions import LoaderError
from .mcp import MCP_FILENAMES
from .models import (
    DiagnosticCategory,
    DocumentKind,
    Provenance,
    RawDocument,
    RawMcpConfig,
    SourceLoadResult,
    error,
)

logger = logging.getLogger(__name__)

KIND_DIRECTORIES: dict[str, DocumentKind] = {
    "rules": DocumentKind.RULE,
    "personas": DocumentKind.PERSONA,
    "commands": DocumentKind.COMMAND,
    "hooks": DocumentKind.HOOK,
}


class FileSystemIncludeSource:
    """Reads ``@include`` targets relative to a source root."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def read(self, path: str) -> str | None:
        """Read a file under the source root.

        Raises:
            PermissionError: If the path leads outside the source root
        """
        root = self.root.resolve()
        target = (root / path).resolve()
        if not target.is_relative_to(root):
            msg = f"{path} is outside the source directory {self.root}"
            raise PermissionError(msg)
        if not target.is_file():
            return None
        return target.read_text(encoding="utf-8")


class LocalLoader:
    """Loads documents from ``rules/``, ``personas/``, ``commands/`` and ``hooks/``.

    An ``mcp.yaml`` at the root holds MCP server definitions.
    """

    def __init__(self, root: Path, source_id: str | None = None) -> None:
        """Initialize loader.

        Args:
            root: Directory containing the kind subdirectories
            source_id: Identifier recorded in provenance, defaults to the directory name
        """
        self.root = Path(root)
        self.source_id = source_id or self.root.name

    def discover(self) -> list[tuple[DocumentKind, Path]]:
        """Find every markdown document, ordered by kind directory then path.

        Raises:
            LoaderError: If the source root does not exist
        """
        if not self.root.is_dir():
            msg = f"Source directory not found: {self.root}"
            raise LoaderError(msg, details={"source": self.source_id})

        found = []
        for directory, kind in KIND_DIRECTORIES.items():
            base = self.root / directory
            if not base.is_dir():
                continue
            for path in sorted(base.rglob("*.md")):
                if path.is_file():
                    found.append((kind, path))
        return found

    def load(self) -> SourceLoadResult:
        """Read all documents; unreadable files become load errors."""
        result = SourceLoadResult(source=self.source_id)
        try:
            entries = self.discover()
        except LoaderError as e:
            result.errors.append(error(DiagnosticCategory.LOAD, e.message))
            return result

        for kind, path in entries:
            relative = path.relative_to(self.root).as_posix()
            provenance = Provenance(source=self.source_id, path=relative)
            try:
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                result.errors.append(
                    error(DiagnosticCategory.LOAD, f"Failed to read file: {e}", provenance),
                )
                continue
            result.documents.append(RawDocument(kind=kind, text=text, provenance=provenance))

        result.mcp = self._load_mcp(result)

        logger.debug("Loaded %d documents from %s", len(result.documents), self.root)
        return result

    def _load_mcp(self, result: SourceLoadResult) -> RawMcpConfig | None:
        """Read the first MCP configuration file found at the source root."""
        for filename in MCP_FILENAMES:
            path = self.root / filename
            if not path.is_file():
                continue
            provenance = Provenance(source=self.source_id, path=filename)
            try:
                return RawMcpConfig(text=path.read_text(encoding="utf-8"), provenance=provenance)
            except (OSError, UnicodeDecodeError) as e:
                result.errors.append(
                    error(DiagnosticCategory.LOAD, f"Failed to read file: {e}", provenance),
                )
                return None
        return None

    def include_source(self) -> FileSystemIncludeSource:
        return FileSystemIncludeSource(self.root)
