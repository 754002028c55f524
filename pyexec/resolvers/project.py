"""
Project strategy - expand a project manifest into its direct references.

Supported manifests (first match wins when given a directory):
- pyproject.toml: ``[project].dependencies`` become package references,
  ``[tool.pyexec].frameworks`` become framework references
- requirements*.txt: one requirement per line

A single ``==`` pin becomes a pinned version; any other constraint is kept as
a range for the package strategy to select within. Nested projects are not
followed.
"""

import logging
import tomllib
from pathlib import Path
from typing import Optional

from packaging.requirements import InvalidRequirement, Requirement
from packaging.version import InvalidVersion, Version

from pyexec.errors import ResolutionError
from pyexec.schemas.references import (
    FrameworkReference,
    PackageReference,
    ProjectReference,
    ReferenceSpecifier,
)
from pyexec.stack_clients.registry_client import requirement_applies

logger = logging.getLogger(__name__)


def find_manifest(path: Path) -> Optional[Path]:
    if path.is_file():
        return path
    if not path.is_dir():
        return None
    pyproject = path / "pyproject.toml"
    if pyproject.is_file():
        return pyproject
    requirements = sorted(path.glob("requirements*.txt"))
    return requirements[0] if requirements else None


def pinned_version(requirement: Requirement) -> Optional[Version]:
    specs = list(requirement.specifier)
    if len(specs) == 1 and specs[0].operator in ("==", "==="):
        try:
            return Version(specs[0].version)
        except InvalidVersion:
            return None
    return None


def _requirement_lines(text: str) -> list[str]:
    lines = []
    for raw in text.splitlines():
        line = raw.split("#", 1)[0].strip()
        # Pip options (-r, -e, --index-url) are not references
        if line and not line.startswith("-"):
            lines.append(line)
    return lines


class ProjectReferenceResolver:
    """Expands a project: specifier; resolution happens in the other strategies."""

    def expand(self, reference: ProjectReference, target_framework: str) -> list[ReferenceSpecifier]:
        path = Path(reference.path).expanduser()
        manifest = find_manifest(path)
        if manifest is None:
            logger.warning("Project manifest not found: %s", path)
            return []

        frameworks: list[str] = []
        if manifest.suffix == ".toml":
            try:
                with open(manifest, "rb") as f:
                    data = tomllib.load(f)
            except (OSError, tomllib.TOMLDecodeError) as e:
                raise ResolutionError(f"Invalid project file {manifest}: {e}", str(reference)) from e
            lines = list(data.get("project", {}).get("dependencies", []))
            frameworks = list(data.get("tool", {}).get("pyexec", {}).get("frameworks", []))
        else:
            try:
                lines = _requirement_lines(manifest.read_text(encoding="utf-8"))
            except OSError as e:
                raise ResolutionError(f"Cannot read {manifest}: {e}", str(reference)) from e

        specifiers: list[ReferenceSpecifier] = []
        for line in lines:
            try:
                requirement = Requirement(line)
            except InvalidRequirement:
                logger.warning("Skipping invalid requirement in %s: %r", manifest, line)
                continue
            if not requirement_applies(requirement, target_framework):
                continue
            version = pinned_version(requirement)
            specifier = requirement.specifier if version is None and requirement.specifier else None
            specifiers.append(PackageReference(requirement.name, version, specifier))

        specifiers.extend(FrameworkReference(name) for name in frameworks if name)
        logger.debug("Project %s expanded to %d reference(s)", manifest, len(specifiers))
        return specifiers
