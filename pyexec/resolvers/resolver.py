"""
ReferenceResolver - turn reference specifiers into a deduplicated path set.

Classification and dispatch:
- file:       FileReferenceResolver
- folder:     FolderReferenceResolver
- project:    expanded into package/framework specifiers first
- framework:  FrameworkReferenceResolver (plus the frameworks it depends on)
- nuget/pypi: grouped by id, one PackageReferenceResolver branch

Every branch runs concurrently; results are merged, deduplicated by absolute
path and sorted, so the same specifiers in any order give the same set.
Results of resolve_references() and resolve_metadata_references() are cached
per (operation, compilation) for the lifetime of the resolver.
"""

import logging
import os
from typing import Callable, Iterable, Optional

from pyexec.cache import ResolutionCache, cache_key
from pyexec.cancellation import CancellationToken
from pyexec.schemas.options import ExecOptions
from pyexec.schemas.references import (
    FileReference,
    FolderReference,
    FrameworkReference,
    PackageReference,
    ProjectReference,
    ReferenceSpecifier,
    parse_references,
)
from pyexec.resolvers.base import DEFAULT_MAX_WORKERS, ResolveContext, fan_out
from pyexec.resolvers.file import FileReferenceResolver, FolderReferenceResolver
from pyexec.resolvers.framework import (
    CORE_FRAMEWORK,
    WEB_FRAMEWORK,
    FrameworkLayout,
    FrameworkReferenceResolver,
    framework_dependencies,
    get_framework_layout,
    wide_references,
)
from pyexec.resolvers.module_index import ModuleIndex
from pyexec.resolvers.package import PackageReferenceResolver, select_package_requests
from pyexec.resolvers.project import ProjectReferenceResolver
from pyexec.stack_clients.registry_client import RegistryClient

logger = logging.getLogger(__name__)


def implicit_frameworks(options: ExecOptions) -> list[FrameworkReference]:
    frameworks = [FrameworkReference(CORE_FRAMEWORK)]
    if options.include_web_references:
        frameworks.append(FrameworkReference(WEB_FRAMEWORK))
    return frameworks


def normalize_paths(paths: Iterable[str]) -> list[str]:
    return sorted({os.path.abspath(p) for p in paths})


class ReferenceResolver:
    """
    Resolve references for one invocation.

    Usage:
        resolver = ReferenceResolver(PyPIClient(cache_dir=...))
        paths = resolver.resolve_references(options, compilation=False)
        index = resolver.resolve_metadata_references(options, compilation=True)
    """

    def __init__(
        self,
        registry_client: RegistryClient,
        layout: Optional[FrameworkLayout] = None,
        cache: Optional[ResolutionCache] = None,
        disable_cache: bool = False,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self._layout = layout or get_framework_layout()
        self._cache = cache or ResolutionCache(disable_cache=disable_cache)
        if disable_cache:
            self._cache.disable_cache = True
        self._max_workers = max_workers
        self._file = FileReferenceResolver()
        self._folder = FolderReferenceResolver()
        self._project = ProjectReferenceResolver()
        self._framework = FrameworkReferenceResolver(self._layout, registry_client)
        self._package = PackageReferenceResolver(registry_client, max_workers)

    @property
    def disable_cache(self) -> bool:
        return self._cache.disable_cache

    @disable_cache.setter
    def disable_cache(self, value: bool) -> None:
        self._cache.disable_cache = value

    @property
    def cache(self) -> ResolutionCache:
        return self._cache

    @property
    def layout(self) -> FrameworkLayout:
        return self._layout

    def _expand(self, specifiers: Iterable[ReferenceSpecifier], target_framework: str) -> list[ReferenceSpecifier]:
        expanded: list[ReferenceSpecifier] = []
        for specifier in specifiers:
            if isinstance(specifier, ProjectReference):
                expanded.extend(self._project.expand(specifier, target_framework))
            else:
                expanded.append(specifier)
        return expanded

    def _plan(self, specifiers: list[ReferenceSpecifier], ctx: ResolveContext) -> list[Callable[[], list[str]]]:
        """One task per branch, in specifier order."""
        tasks: list[Callable[[], list[str]]] = []
        seen_frameworks: set[str] = set()
        packages = [s for s in specifiers if isinstance(s, PackageReference)]
        package_task_added = False

        def add_framework(name: str) -> None:
            if name.lower() in seen_frameworks:
                return
            seen_frameworks.add(name.lower())
            reference = FrameworkReference(name)
            tasks.append(lambda: self._framework.resolve(reference, ctx))
            for dependency in framework_dependencies(name):
                add_framework(dependency)

        for specifier in specifiers:
            if isinstance(specifier, FileReference):
                tasks.append(lambda s=specifier: self._file.resolve(s, ctx))
            elif isinstance(specifier, FolderReference):
                tasks.append(lambda s=specifier: self._folder.resolve(s, ctx))
            elif isinstance(specifier, FrameworkReference):
                add_framework(specifier.name)
            elif isinstance(specifier, PackageReference) and not package_task_added:
                package_task_added = True
                requests = select_package_requests(packages)
                tasks.append(lambda: self._package.resolve_group(dict(requests), ctx))
        return tasks

    def resolve(
        self,
        specifiers: Iterable[ReferenceSpecifier],
        target_framework: str,
        compilation: bool,
        cancellation_token: Optional[CancellationToken] = None,
        use_reference_packages: bool = False,
    ) -> list[str]:
        """
        Resolve specifiers into sorted, deduplicated absolute paths.

        Raises:
            ResolutionError: First branch failure in specifier order
            OperationCancelled: If the token fired during resolution
        """
        ctx = ResolveContext(
            target_framework=target_framework,
            compilation=compilation,
            cancellation_token=cancellation_token or CancellationToken(),
            use_reference_packages=use_reference_packages,
        )
        expanded = self._expand(specifiers, target_framework)
        tasks = self._plan(expanded, ctx)
        results = fan_out(tasks, ctx.cancellation_token, self._max_workers)
        return normalize_paths(path for paths in results for path in paths)

    def resolve_references(self, options: ExecOptions, compilation: bool) -> list[str]:
        """
        Every reference path for options, including implicit frameworks and
        the wide baseline. Cached per compilation mode.
        """
        def compute() -> list[str]:
            specifiers = parse_references(options.references)
            specifiers.extend(implicit_frameworks(options))
            paths = self.resolve(
                specifiers,
                options.target_framework,
                compilation,
                options.cancellation_token,
                options.use_ref_assemblies_for_compile,
            )
            if options.include_wide_references:
                paths = normalize_paths(paths + wide_references())
            logger.debug(
                "Resolved %d reference(s) (compilation=%s)", len(paths), compilation
            )
            return paths

        return list(self._cache.get_or_compute(
            cache_key("resolve_references", compilation), compute, options.disable_cache
        ))

    def resolve_metadata_references(self, options: ExecOptions, compilation: bool) -> ModuleIndex:
        """Index of importable modules among the resolved references."""
        def compute() -> ModuleIndex:
            paths = self.resolve_references(options, compilation)
            return ModuleIndex.build(paths, include_stubs=compilation)

        return self._cache.get_or_compute(
            cache_key("resolve_metadata_references", compilation), compute, options.disable_cache
        )
