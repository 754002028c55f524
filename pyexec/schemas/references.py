"""
Reference specifiers - tagged requests for one dependency source.

Grammar (prefixes are case-insensitive):
    nuget:<id>[,<version>]   registry package, optional pinned version
    pypi:<id>[,<version>]    alias of nuget:
    framework:<name>         shared framework by name
    folder:<path>            every module file directly inside a directory
    project:<path>           a project manifest's own references
    <path>                   a single file (or package directory)

Malformed specifiers parse to None and are skipped by the resolver.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from packaging.specifiers import SpecifierSet
from packaging.utils import canonicalize_name
from packaging.version import InvalidVersion, Version

logger = logging.getLogger(__name__)


# Files that count as importable modules when enumerating a folder or a pack
MODULE_SUFFIXES = (".py", ".pyc", ".pyi", ".so", ".pyd", ".whl", ".zip", ".egg")


@dataclass(frozen=True)
class FileReference:
    path: str

    def __str__(self) -> str:
        return self.path


@dataclass(frozen=True)
class FolderReference:
    path: str

    def __str__(self) -> str:
        return f"folder:{self.path}"


@dataclass(frozen=True)
class ProjectReference:
    path: str

    def __str__(self) -> str:
        return f"project:{self.path}"


@dataclass(frozen=True)
class FrameworkReference:
    name: str

    def __str__(self) -> str:
        return f"framework:{self.name}"


@dataclass(frozen=True)
class PackageReference:
    """
    A registry package request.

    Attributes:
        package_id: Package name as written by the user
        version: Pinned version, or None to let the resolver pick one
        specifier: Allowed range (from a project manifest) used when no
            version is pinned
    """
    package_id: str
    version: Optional[Version] = None
    specifier: Optional[SpecifierSet] = None

    @property
    def canonical_id(self) -> str:
        return canonicalize_name(self.package_id)

    def __str__(self) -> str:
        if self.version is None:
            return f"nuget:{self.package_id}"
        return f"nuget:{self.package_id},{self.version}"


ReferenceSpecifier = Union[
    FileReference, FolderReference, ProjectReference, FrameworkReference, PackageReference
]

_PACKAGE_PREFIXES = ("nuget:", "pypi:")


def _strip_prefix(text: str, prefix: str) -> Optional[str]:
    if text[:len(prefix)].lower() == prefix:
        return text[len(prefix):].strip()
    return None


def _parse_package(body: str) -> Optional[PackageReference]:
    parts = [p.strip() for p in body.split(",") if p.strip()]
    if not parts:
        return None
    version = None
    if len(parts) >= 2:
        try:
            version = Version(parts[1])
        except InvalidVersion:
            logger.debug("Skipping package reference with invalid version: %s", body)
            return None
    return PackageReference(parts[0], version)


def parse_reference(text: str) -> Optional[ReferenceSpecifier]:
    """
    Classify a raw reference string.

    Args:
        text: Raw specifier as given on the command line or in a profile

    Returns:
        The typed specifier, or None when the text is empty or malformed
    """
    if text is None:
        return None
    text = text.strip()
    if not text:
        return None

    for prefix in _PACKAGE_PREFIXES:
        body = _strip_prefix(text, prefix)
        if body is not None:
            return _parse_package(body)

    body = _strip_prefix(text, "framework:")
    if body is not None:
        return FrameworkReference(body) if body else None

    body = _strip_prefix(text, "folder:")
    if body is not None:
        return FolderReference(body) if body else None

    body = _strip_prefix(text, "project:")
    if body is not None:
        return ProjectReference(body) if body else None

    return FileReference(text)


def parse_references(texts: Iterable[str]) -> list[ReferenceSpecifier]:
    """Parse a list of raw specifiers, dropping malformed entries."""
    specifiers = []
    for text in texts or ():
        specifier = parse_reference(text)
        if specifier is None:
            logger.debug("Skipping malformed reference: %r", text)
            continue
        specifiers.append(specifier)
    return specifiers
