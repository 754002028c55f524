"""
Registry client - version listing and package restore against a PyPI index.

The package resolver only needs two things from a registry:
- list_versions(id) -> available versions
- resolve_package(id, version, target_framework) -> restored on-disk modules
  plus the package's own dependencies for that framework

PyPIClient talks to the PyPI JSON API with requests, picks the best wheel for
the target framework with packaging.tags and extracts it once into the
package cache:

    <cache>/<canonical-name>/<version>/<wheel-tag>/

Error classification:
- TransientError: network failures, 429 and 5xx responses
- PermanentError: unknown package/version, no compatible wheel, bad digest
"""

import hashlib
import logging
import os
import shutil
import sys
import tempfile
import zipfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Optional

import requests
from packaging import tags
from packaging.markers import default_environment
from packaging.requirements import InvalidRequirement, Requirement
from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.utils import InvalidWheelFilename, canonicalize_name, parse_wheel_filename
from packaging.version import InvalidVersion, Version

from pyexec.cancellation import CancellationToken
from pyexec.errors import PermanentError, TransientError
from pyexec.schemas.options import parse_target_framework

logger = logging.getLogger(__name__)


DEFAULT_INDEX_URL = "https://pypi.org/pypi"
DEFAULT_TIMEOUT = 30.0
COMPLETE_MARKER = ".pyexec-complete"
_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class RestoredPackage:
    """
    A package restored for one target framework.

    Attributes:
        package_id: Canonical package name
        version: Restored version
        paths: Top-level importable modules inside the extracted wheel
        dependencies: Requirements that apply to the target framework
    """
    package_id: str
    version: Version
    paths: tuple[str, ...]
    dependencies: tuple[Requirement, ...] = ()


def target_environment(target_framework: str) -> dict[str, str]:
    """Marker environment describing the target framework."""
    major, minor = parse_target_framework(target_framework)
    env = default_environment()
    env["python_version"] = f"{major}.{minor}"
    if not env["python_full_version"].startswith(f"{major}.{minor}."):
        env["python_full_version"] = f"{major}.{minor}.0"
    env["extra"] = ""
    return env


def requirement_applies(requirement: Requirement, target_framework: str) -> bool:
    if requirement.marker is None:
        return True
    return requirement.marker.evaluate(target_environment(target_framework))


def supported_tags(target_framework: str) -> list[tags.Tag]:
    """Wheel tags in priority order (best first) for the target framework."""
    major, minor = parse_target_framework(target_framework)
    if (major, minor) == sys.version_info[:2]:
        return list(tags.sys_tags())
    version = (major, minor)
    return list(tags.cpython_tags(python_version=version)) + list(
        tags.compatible_tags(python_version=version)
    )


def top_level_entries(directory: Path) -> list[str]:
    """Importable top-level modules directly inside an extracted wheel."""
    entries = []
    for entry in sorted(directory.iterdir()):
        name = entry.name
        if name.startswith(".") or name.endswith((".dist-info", ".data")) or name == "__pycache__":
            continue
        if entry.is_dir() or entry.suffix in (".py", ".so", ".pyd", ".pyi"):
            entries.append(str(entry))
    return entries


class RegistryClient(ABC):
    """Contract consumed by the package resolver."""

    @abstractmethod
    def list_versions(
        self, package_id: str, token: Optional[CancellationToken] = None
    ) -> list[Version]:
        """Return every published version of package_id, ascending."""
        pass

    @abstractmethod
    def resolve_package(
        self,
        package_id: str,
        version: Version,
        target_framework: str,
        token: Optional[CancellationToken] = None,
    ) -> RestoredPackage:
        """Restore package_id==version for target_framework."""
        pass

    def resolve_assemblies(
        self,
        package_id: str,
        version: Version,
        target_framework: str,
        token: Optional[CancellationToken] = None,
    ) -> list[str]:
        """Module paths of a restored package, without its dependencies."""
        return list(self.resolve_package(package_id, version, target_framework, token).paths)


class PyPIClient(RegistryClient):
    """
    RegistryClient over the PyPI JSON API.

    Usage:
        client = PyPIClient(cache_dir=Path("~/.config/pyexec/packages").expanduser())
        versions = client.list_versions("attrs")
        restored = client.resolve_package("attrs", max(versions), "py3.12")
    """

    def __init__(
        self,
        index_url: str = DEFAULT_INDEX_URL,
        cache_dir: Optional[Path] = None,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._index_url = index_url.rstrip("/")
        self._cache_dir = Path(cache_dir) if cache_dir else Path(tempfile.gettempdir()) / "pyexec-packages"
        self._session = session or requests.Session()
        self._timeout = timeout

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    def _request_timeout(self, token: Optional[CancellationToken]) -> float:
        remaining = token.remaining() if token is not None else None
        if remaining is None:
            return self._timeout
        return max(0.1, min(self._timeout, remaining))

    def _get_json(self, url: str, token: Optional[CancellationToken]) -> dict[str, Any]:
        if token is not None:
            token.raise_if_cancelled(f"GET {url}")
        try:
            response = self._session.get(url, timeout=self._request_timeout(token))
        except requests.RequestException as e:
            raise TransientError(f"Registry request failed: {url}: {e}") from e

        if response.status_code == 404:
            raise PermanentError(f"Not found in registry: {url}")
        if response.status_code == 429 or response.status_code >= 500:
            raise TransientError(f"Registry returned {response.status_code}: {url}")
        if response.status_code >= 400:
            raise PermanentError(f"Registry returned {response.status_code}: {url}")
        try:
            return response.json()
        except ValueError as e:
            raise TransientError(f"Invalid registry response from {url}: {e}") from e

    def list_versions(
        self, package_id: str, token: Optional[CancellationToken] = None
    ) -> list[Version]:
        data = self._get_json(f"{self._index_url}/{canonicalize_name(package_id)}/json", token)
        versions = []
        for raw, files in (data.get("releases") or {}).items():
            if files and all(f.get("yanked") for f in files):
                continue
            try:
                versions.append(Version(raw))
            except InvalidVersion:
                logger.debug("Skipping invalid version %r of %s", raw, package_id)
        return sorted(versions)

    def resolve_package(
        self,
        package_id: str,
        version: Version,
        target_framework: str,
        token: Optional[CancellationToken] = None,
    ) -> RestoredPackage:
        name = canonicalize_name(package_id)
        data = self._get_json(f"{self._index_url}/{name}/{version}/json", token)
        info = data.get("info") or {}

        requires_python = info.get("requires_python")
        if requires_python:
            major, minor = parse_target_framework(target_framework)
            try:
                if not SpecifierSet(requires_python).contains(f"{major}.{minor}", prereleases=True):
                    raise PermanentError(
                        f"{name}=={version} requires Python {requires_python}, target is {target_framework}"
                    )
            except InvalidSpecifier:
                logger.debug("Ignoring invalid requires_python %r on %s", requires_python, name)

        wheel = self.select_wheel(data.get("urls") or [], target_framework)
        if wheel is None:
            raise PermanentError(f"No wheel of {name}=={version} is compatible with {target_framework}")

        _, _, _, wheel_tags = parse_wheel_filename(wheel["filename"])
        tag_dir = sorted(str(t) for t in wheel_tags)[0]
        target_dir = self._cache_dir / name / str(version) / tag_dir
        if not (target_dir / COMPLETE_MARKER).exists():
            self._download_and_extract(wheel, target_dir, token)
        else:
            logger.debug("Using cached %s==%s from %s", name, version, target_dir)

        dependencies = tuple(
            r for r in self._parse_requirements(info.get("requires_dist") or ())
            if requirement_applies(r, target_framework)
        )
        return RestoredPackage(name, version, tuple(top_level_entries(target_dir)), dependencies)

    @staticmethod
    def select_wheel(files: Iterable[dict[str, Any]], target_framework: str) -> Optional[dict[str, Any]]:
        """Pick the wheel whose best tag ranks highest for the target."""
        priority = {tag: index for index, tag in enumerate(supported_tags(target_framework))}
        best, best_rank = None, None
        for file in files:
            if file.get("packagetype") != "bdist_wheel" or file.get("yanked"):
                continue
            try:
                _, _, _, wheel_tags = parse_wheel_filename(file["filename"])
            except InvalidWheelFilename:
                continue
            ranks = [priority[t] for t in wheel_tags if t in priority]
            if not ranks:
                continue
            rank = min(ranks)
            if best_rank is None or rank < best_rank:
                best, best_rank = file, rank
        return best

    @staticmethod
    def _parse_requirements(lines: Iterable[str]) -> list[Requirement]:
        requirements = []
        for line in lines:
            try:
                requirements.append(Requirement(line))
            except InvalidRequirement:
                logger.debug("Skipping invalid requirement %r", line)
        return requirements

    def _download_and_extract(
        self, wheel: dict[str, Any], target_dir: Path, token: Optional[CancellationToken]
    ) -> None:
        url = wheel["url"]
        expected = (wheel.get("digests") or {}).get("sha256")
        target_dir.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Downloading %s", wheel["filename"])

        with tempfile.TemporaryDirectory(dir=target_dir.parent) as work:
            archive = Path(work) / wheel["filename"]
            digest = hashlib.sha256()
            try:
                with self._session.get(url, stream=True, timeout=self._request_timeout(token)) as response:
                    if response.status_code >= 400:
                        raise TransientError(f"Download of {url} returned {response.status_code}")
                    with open(archive, "wb") as f:
                        for chunk in response.iter_content(_CHUNK_SIZE):
                            if token is not None:
                                token.raise_if_cancelled(f"download {wheel['filename']}")
                            digest.update(chunk)
                            f.write(chunk)
            except requests.RequestException as e:
                raise TransientError(f"Download failed: {url}: {e}") from e

            if expected and digest.hexdigest() != expected:
                raise PermanentError(f"sha256 mismatch for {wheel['filename']}")

            staging = Path(work) / "extract"
            try:
                with zipfile.ZipFile(archive) as zf:
                    zf.extractall(staging)
            except zipfile.BadZipFile as e:
                raise PermanentError(f"Corrupt wheel {wheel['filename']}: {e}") from e
            (staging / COMPLETE_MARKER).touch()

            try:
                os.replace(staging, target_dir)
            except OSError:
                # Another branch restored the same wheel first
                if not (target_dir / COMPLETE_MARKER).exists():
                    shutil.rmtree(target_dir, ignore_errors=True)
                    os.replace(staging, target_dir)
