"""
Package strategy - restore registry packages and their dependencies.

Requests are grouped by canonical package id before resolution:
- if any request of an id pins a version, the highest pinned version wins
- otherwise the latest release inside every requested range is used, or
  the latest stable release when no request carries a range

Transitive ``Requires-Dist`` dependencies whose markers match the target are
restored level by level, concurrently within a level. Each id is restored
once: top-level requests win over transitives, and for transitives the first
version selected wins.
"""

import logging
from typing import Iterable, Optional, Union

from packaging.specifiers import SpecifierSet
from packaging.utils import canonicalize_name
from packaging.version import Version

from pyexec.errors import PermanentError, ResolutionError, TransientError
from pyexec.schemas.references import PackageReference
from pyexec.resolvers.base import DEFAULT_MAX_WORKERS, ReferenceStrategy, ResolveContext, fan_out
from pyexec.stack_clients.registry_client import RegistryClient, RestoredPackage

logger = logging.getLogger(__name__)


VersionConstraint = Union[Version, SpecifierSet, None]


def select_package_requests(references: Iterable[PackageReference]) -> dict[str, VersionConstraint]:
    """
    Collapse package requests to one version constraint per canonical id.

    Returns:
        Mapping of canonical id to the highest explicit version. Ids with no
        pinned request map to the combined ranges of their requests, or None
        when none of them carries a range
    """
    pins: dict[str, Optional[Version]] = {}
    ranges: dict[str, SpecifierSet] = {}
    for reference in references:
        key = reference.canonical_id
        current = pins.get(key)
        if reference.version is not None and (current is None or reference.version > current):
            pins[key] = reference.version
        else:
            pins.setdefault(key, current)
        if reference.specifier:
            ranges[key] = ranges[key] & reference.specifier if key in ranges else reference.specifier

    selected: dict[str, VersionConstraint] = {}
    for key, pin in sorted(pins.items()):
        selected[key] = pin if pin is not None else ranges.get(key)
    return selected


class PackageReferenceResolver(ReferenceStrategy):
    """Resolve nuget:/pypi: specifiers through a RegistryClient."""

    def __init__(self, registry_client: RegistryClient, max_workers: int = DEFAULT_MAX_WORKERS):
        self._registry_client = registry_client
        self._max_workers = max_workers

    def resolve(self, reference: PackageReference, ctx: ResolveContext) -> list[str]:
        return self.resolve_group({reference.canonical_id: reference.version or reference.specifier}, ctx)

    def select_version(self, package_id: str, constraint: VersionConstraint, ctx: ResolveContext) -> Version:
        if isinstance(constraint, Version):
            return constraint

        versions = self._registry_client.list_versions(package_id, ctx.cancellation_token)
        if isinstance(constraint, SpecifierSet):
            candidates = list(constraint.filter(versions))
        else:
            candidates = [v for v in versions if not v.is_prerelease] or list(versions)
        if not candidates:
            wanted = f" matching '{constraint}'" if constraint else ""
            raise ResolutionError(f"No version of {package_id}{wanted} found", f"nuget:{package_id}")
        return max(candidates)

    def _restore(self, package_id: str, constraint: VersionConstraint, ctx: ResolveContext) -> RestoredPackage:
        ctx.raise_if_cancelled(f"restore {package_id}")
        try:
            version = self.select_version(package_id, constraint, ctx)
            logger.debug("Restoring %s==%s for %s", package_id, version, ctx.target_framework)
            return self._registry_client.resolve_package(
                package_id, version, ctx.target_framework, ctx.cancellation_token
            )
        except (TransientError, PermanentError) as e:
            raise ResolutionError(f"Failed to resolve package {package_id}: {e}", f"nuget:{package_id}") from e

    def resolve_group(self, requests: dict[str, VersionConstraint], ctx: ResolveContext) -> list[str]:
        """
        Restore the requested packages and everything they depend on.

        Args:
            requests: Canonical id to version constraint, see select_package_requests()
            ctx: Resolution settings

        Returns:
            Module paths of every restored package
        """
        seen = set(requests)
        level = list(requests.items())
        paths: list[str] = []

        while level:
            tasks = [
                (lambda pid=pid, constraint=constraint: self._restore(pid, constraint, ctx))
                for pid, constraint in level
            ]
            restored = fan_out(tasks, ctx.cancellation_token, self._max_workers)

            next_level: list[tuple[str, VersionConstraint]] = []
            for package in restored:
                paths.extend(package.paths)
                for requirement in sorted(package.dependencies, key=lambda r: canonicalize_name(r.name)):
                    dep_id = canonicalize_name(requirement.name)
                    if dep_id in seen:
                        continue
                    seen.add(dep_id)
                    next_level.append((dep_id, requirement.specifier or None))
            level = next_level

        return paths
