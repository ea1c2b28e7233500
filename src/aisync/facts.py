"""Project inspection: facts for condition evaluation.

``ProjectFacts`` answers ``when:`` queries by reading dependency manifests and
checking the file system under a project root. Each manifest is read at most
once per instance.
"""

from __future__ import annotations

import json
import logging
import re
import tomllib
import xml.etree.ElementTree as ET
from pathlib import Path, PurePosixPath
from typing import Any, Callable

import yaml

from .conditions import ABSENT, KNOWN_NAMESPACES
from .exceptions import ConditionError

logger = logging.getLogger(__name__)

_REQUIREMENT_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")
_GEM_LINE = re.compile(r"""^\s*gem\s+['"]([^'"]+)['"](?:\s*,\s*['"]([^'"]+)['"])?""", re.M)
_GO_REQUIRE_LINE = re.compile(r"^\s*([^\s()]+)\s+(v[^\s]+)")
_GRADLE_COORDINATE = re.compile(r"""['"]([\w.\-]+):([\w.\-]+)(?::([\w.\-+]+))?['"]""")
_GLOB_CHARS = set("*?[")


def normalize_python_name(name: str) -> str:
    """Normalize a Python distribution name for comparison."""
    return re.sub(r"[-_.]+", "-", name).lower()


class ProjectFacts:
    """Fact context backed by the files of a project directory."""

    def __init__(
        self,
        project_root: Path,
        variables: dict[str, Any] | None = None,
    ) -> None:
        """Initialize fact collector.

        Args:
            project_root: Directory containing the project's manifests
            variables: Values exposed through the ``var:`` namespace
        """
        self.root = Path(project_root)
        self.variables = dict(variables or {})
        self._cache: dict[str, dict[str, Any]] = {}
        self._loaders: dict[str, Callable[[], dict[str, Any]]] = {
            "npm": self._npm_dependencies,
            "pip": self._pip_dependencies,
            "go": self._go_dependencies,
            "cargo": self._cargo_dependencies,
            "composer": self._composer_dependencies,
            "gem": self._gem_dependencies,
            "pub": self._pub_dependencies,
            "maven": self._maven_dependencies,
            "gradle": self._gradle_dependencies,
            "nuget": self._nuget_dependencies,
            "pkg": self._package_json,
        }

    def resolve(self, namespace: str, key: str) -> Any:
        """Look up a fact.

        Args:
            namespace: Fact namespace such as ``npm`` or ``file``
            key: Fact key within the namespace

        Returns:
            The fact value, or ``ABSENT``
        """
        if namespace == "file":
            return True if self._exists(key, directory=False) else ABSENT
        if namespace == "dir":
            return True if self._exists(key, directory=True) else ABSENT
        if namespace == "var":
            return _dotted_get(self.variables, key)
        if namespace == "pkg":
            return _dotted_get(self._facts("pkg"), key)
        if namespace == "pip":
            return self._facts("pip").get(normalize_python_name(key), ABSENT)
        if namespace in self._loaders:
            return self._facts(namespace).get(key, ABSENT)
        if namespace not in KNOWN_NAMESPACES:
            logger.debug("No fact provider for namespace %s", namespace)
        return ABSENT

    def dependencies(self, namespace: str) -> dict[str, Any]:
        """All dependencies found for an ecosystem namespace."""
        return dict(self._facts(namespace))

    def _facts(self, namespace: str) -> dict[str, Any]:
        if namespace not in self._cache:
            self._cache[namespace] = self._loaders[namespace]()
        return self._cache[namespace]

    def _exists(self, key: str, directory: bool) -> bool:
        relative = PurePosixPath(key)
        if relative.is_absolute() or ".." in relative.parts:
            msg = f"Path condition must stay inside the project: {key}"
            raise ConditionError(msg, details={"path": key})
        if _GLOB_CHARS & set(key):
            matches = self.root.glob(key)
            return any(p.is_dir() if directory else p.is_file() for p in matches)
        path = self.root / key
        return path.is_dir() if directory else path.is_file()

    def _read_text(self, name: str) -> str | None:
        path = self.root / name
        if not path.is_file():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read %s: %s", path, e)
            return None

    def _read_json(self, name: str) -> dict[str, Any]:
        text = self._read_text(name)
        if text is None:
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning("Ignoring malformed %s: %s", name, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _read_toml(self, name: str) -> dict[str, Any]:
        text = self._read_text(name)
        if text is None:
            return {}
        try:
            return tomllib.loads(text)
        except tomllib.TOMLDecodeError as e:
            logger.warning("Ignoring malformed %s: %s", name, e)
            return {}

    def _package_json(self) -> dict[str, Any]:
        return self._read_json("package.json")

    def _npm_dependencies(self) -> dict[str, Any]:
        manifest = self._package_json()
        found: dict[str, Any] = {}
        for section in (
            "dependencies",
            "devDependencies",
            "peerDependencies",
            "optionalDependencies",
        ):
            deps = manifest.get(section)
            if isinstance(deps, dict):
                for name, spec in deps.items():
                    found.setdefault(name, spec)
        return found

    def _pip_dependencies(self) -> dict[str, Any]:
        found: dict[str, Any] = {}

        def add(requirement: str) -> None:
            match = _REQUIREMENT_NAME.match(requirement)
            if match:
                found.setdefault(
                    normalize_python_name(match.group(1)),
                    requirement[match.end() :].strip() or True,
                )

        for path in sorted(self.root.glob("requirements*.txt")):
            text = self._read_text(path.name) or ""
            for line in text.splitlines():
                line = line.split("#", 1)[0].strip()
                if line and not line.startswith("-"):
                    add(line)

        pyproject = self._read_toml("pyproject.toml")
        project = pyproject.get("project", {})
        for requirement in project.get("dependencies", []) or []:
            add(str(requirement))
        for group in (project.get("optional-dependencies") or {}).values():
            for requirement in group or []:
                add(str(requirement))
        poetry = pyproject.get("tool", {}).get("poetry", {})
        poetry_sections = [poetry.get("dependencies", {}), poetry.get("dev-dependencies", {})]
        poetry_sections += [g.get("dependencies", {}) for g in poetry.get("group", {}).values()]
        for section in poetry_sections:
            for name, spec in (section or {}).items():
                if name.lower() != "python":
                    found.setdefault(normalize_python_name(name), spec)

        pipfile = self._read_toml("Pipfile")
        for section in ("packages", "dev-packages"):
            for name, spec in (pipfile.get(section) or {}).items():
                found.setdefault(normalize_python_name(name), spec)
        return found

    def _go_dependencies(self) -> dict[str, Any]:
        text = self._read_text("go.mod")
        if text is None:
            return {}
        found: dict[str, Any] = {}
        in_block = False
        for raw_line in text.splitlines():
            line = raw_line.split("//", 1)[0].strip()
            if line.startswith("require ("):
                in_block = True
                continue
            if in_block and line == ")":
                in_block = False
                continue
            if line.startswith("require "):
                line = line[len("require ") :]
            elif not in_block:
                continue
            match = _GO_REQUIRE_LINE.match(line)
            if match:
                found.setdefault(match.group(1), match.group(2))
        return found

    def _cargo_dependencies(self) -> dict[str, Any]:
        manifest = self._read_toml("Cargo.toml")
        found: dict[str, Any] = {}
        for section in ("dependencies", "dev-dependencies", "build-dependencies"):
            for name, spec in (manifest.get(section) or {}).items():
                found.setdefault(name, spec)
        return found

    def _composer_dependencies(self) -> dict[str, Any]:
        manifest = self._read_json("composer.json")
        found: dict[str, Any] = {}
        for section in ("require", "require-dev"):
            deps = manifest.get(section)
            if isinstance(deps, dict):
                for name, spec in deps.items():
                    found.setdefault(name, spec)
        return found

    def _gem_dependencies(self) -> dict[str, Any]:
        text = self._read_text("Gemfile")
        if text is None:
            return {}
        return {m.group(1): m.group(2) or True for m in _GEM_LINE.finditer(text)}

    def _pub_dependencies(self) -> dict[str, Any]:
        text = self._read_text("pubspec.yaml")
        if text is None:
            return {}
        try:
            manifest = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            logger.warning("Ignoring malformed pubspec.yaml: %s", e)
            return {}
        found: dict[str, Any] = {}
        for section in ("dependencies", "dev_dependencies"):
            deps = manifest.get(section) if isinstance(manifest, dict) else None
            if isinstance(deps, dict):
                for name, spec in deps.items():
                    found.setdefault(name, spec if spec is not None else True)
        return found

    def _maven_dependencies(self) -> dict[str, Any]:
        text = self._read_text("pom.xml")
        if text is None:
            return {}
        try:
            root = ET.fromstring(text)
        except ET.ParseError as e:
            logger.warning("Ignoring malformed pom.xml: %s", e)
            return {}
        found: dict[str, Any] = {}
        for element in root.iter():
            if _local_name(element.tag) != "dependency":
                continue
            fields = {_local_name(child.tag): (child.text or "").strip() for child in element}
            artifact = fields.get("artifactId")
            if not artifact:
                continue
            version = fields.get("version") or True
            found.setdefault(artifact, version)
            if fields.get("groupId"):
                found.setdefault(f"{fields['groupId']}:{artifact}", version)
        return found

    def _gradle_dependencies(self) -> dict[str, Any]:
        found: dict[str, Any] = {}
        for name in ("build.gradle", "build.gradle.kts"):
            text = self._read_text(name)
            if text is None:
                continue
            for match in _GRADLE_COORDINATE.finditer(text):
                group, artifact, version = match.groups()
                found.setdefault(artifact, version or True)
                found.setdefault(f"{group}:{artifact}", version or True)
        return found

    def _nuget_dependencies(self) -> dict[str, Any]:
        found: dict[str, Any] = {}
        candidates = sorted(self.root.glob("*.csproj"))
        if (self.root / "packages.config").is_file():
            candidates.append(self.root / "packages.config")
        for path in candidates:
            text = self._read_text(path.name)
            if text is None:
                continue
            try:
                root = ET.fromstring(text)
            except ET.ParseError as e:
                logger.warning("Ignoring malformed %s: %s", path.name, e)
                continue
            for element in root.iter():
                tag = _local_name(element.tag)
                if tag == "PackageReference" and element.get("Include"):
                    found.setdefault(element.get("Include"), element.get("Version") or True)
                elif tag == "package" and element.get("id"):
                    found.setdefault(element.get("id"), element.get("version") or True)
        return found


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _dotted_get(data: dict[str, Any], key: str) -> Any:
    """Read ``a.b.c`` from nested mappings; an exact key match wins."""
    if key in data:
        return data[key]
    current: Any = data
    for part in key.split("."):
        if not isinstance(current, dict) or part not in current:
            return ABSENT
        current = current[part]
    return current
