"""
Framework strategy - resolve a named framework into module paths.

Layout under the packs directory:

    <packs>/<Framework>.Ref/<version>/ref/<tfm>/   stub pack (compile mode)
    <packs>/shared/<Framework>/<version>/          shared runtime (execute mode)

When no shared runtime is installed, Python.Core falls back to the running
interpreter's stdlib (plus lib-dynload) and Python.Web to the stdlib web
modules. Compile mode prefers the highest stub pack matching the target
version; when none is installed it may fetch ``<framework>-ref`` from the
registry, and otherwise falls through to the runtime files.
"""

import logging
import os
import sysconfig
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from packaging.version import InvalidVersion, Version

from pyexec.errors import PermanentError, ResolutionError, TransientError
from pyexec.schemas.options import framework_version, parse_target_framework
from pyexec.schemas.references import MODULE_SUFFIXES, FrameworkReference
from pyexec.resolvers.base import ReferenceStrategy, ResolveContext
from pyexec.stack_clients.registry_client import RegistryClient

logger = logging.getLogger(__name__)


CORE_FRAMEWORK = "Python.Core"
WEB_FRAMEWORK = "Python.Web"

# Stdlib modules standing in for the web framework when no shared runtime exists
WEB_MODULES = (
    "http",
    "urllib",
    "wsgiref",
    "email",
    "html",
    "json",
    "xml",
    "xmlrpc",
    "mimetypes",
    "socketserver",
    "ssl",
)


@dataclass(frozen=True)
class FrameworkLayout:
    """
    Where framework files live on this machine.

    Attributes:
        packs_dir: Root of stub packs and shared runtimes
        stdlib_dir: The interpreter's stdlib directory
        dynload_dir: Extension modules shipped with the stdlib, if present
    """
    packs_dir: Path
    stdlib_dir: Path
    dynload_dir: Optional[Path] = None


@lru_cache(maxsize=None)
def get_framework_layout(packs_dir: Optional[Path] = None) -> FrameworkLayout:
    """Discover the toolchain layout once per packs directory."""
    if packs_dir is None:
        from pyexec.config import get_pyexec_home
        packs_dir = Path(os.environ.get("PYEXEC_PACKS_DIR") or get_pyexec_home() / "packs")
    stdlib_dir = Path(sysconfig.get_paths()["stdlib"])
    dynload_dir = stdlib_dir / "lib-dynload"
    return FrameworkLayout(
        packs_dir=Path(packs_dir).expanduser(),
        stdlib_dir=stdlib_dir,
        dynload_dir=dynload_dir if dynload_dir.is_dir() else None,
    )


def framework_dependencies(name: str) -> list[str]:
    """Frameworks that must be resolved alongside name."""
    if name.lower() == CORE_FRAMEWORK.lower():
        return []
    return [CORE_FRAMEWORK]


def reference_package_id(name: str) -> str:
    """Registry id of a framework's reference package: Python.Web -> python-web-ref."""
    return f"{name.lower().replace('.', '-')}-ref"


def wide_references() -> list[str]:
    """Baseline helper packages added when wide references are enabled."""
    import rich
    import yaml
    return [os.path.dirname(os.path.abspath(m.__file__)) for m in (rich, yaml)]


def list_module_entries(directory: Path) -> list[str]:
    """Module files and package directories directly inside directory."""
    if not directory.is_dir():
        return []
    entries = []
    for entry in sorted(directory.iterdir()):
        if entry.is_dir():
            if entry.name.isidentifier():
                entries.append(str(entry))
        elif entry.name.endswith(MODULE_SUFFIXES) and entry.name.split(".", 1)[0].isidentifier():
            entries.append(str(entry))
    return entries


def find_versioned_dir(root: Path, version_prefix: str) -> Optional[Path]:
    """
    Highest version directory under root matching version_prefix.

    A directory matches when its name equals the prefix or continues it with a
    dot, so 3.1 never matches 3.12.
    """
    if not root.is_dir():
        return None
    best, best_version = None, None
    for entry in root.iterdir():
        name = entry.name
        if not entry.is_dir() or not (name == version_prefix or name.startswith(version_prefix + ".")):
            continue
        try:
            version = Version(name)
        except InvalidVersion:
            continue
        if best_version is None or version > best_version:
            best, best_version = entry, version
    return best


def _find_dir_case_insensitive(root: Path, name: str) -> Optional[Path]:
    exact = root / name
    if exact.is_dir():
        return exact
    if not root.is_dir():
        return None
    for entry in root.iterdir():
        if entry.is_dir() and entry.name.lower() == name.lower():
            return entry
    return None


class FrameworkReferenceResolver(ReferenceStrategy):
    """
    Resolve framework: specifiers.

    Usage:
        resolver = FrameworkReferenceResolver(get_framework_layout(), registry_client)
        paths = resolver.resolve(FrameworkReference("Python.Web"), ctx)
    """

    def __init__(self, layout: FrameworkLayout, registry_client: Optional[RegistryClient] = None):
        self.layout = layout
        self._registry_client = registry_client

    def resolve(self, reference: FrameworkReference, ctx: ResolveContext) -> list[str]:
        ctx.raise_if_cancelled(f"resolve {reference}")
        if ctx.compilation:
            paths = self.resolve_for_compile(reference.name, ctx.target_framework)
            if paths:
                return paths
            if ctx.use_reference_packages:
                paths = self.resolve_reference_package(reference.name, ctx)
                if paths:
                    return paths
            logger.info(
                "No reference pack for %s (%s), compiling against runtime files",
                reference.name,
                ctx.target_framework,
            )
        return self.resolve_runtime(reference.name, ctx.target_framework)

    def find_reference_pack(self, name: str, target_framework: str) -> Optional[Path]:
        pack_root = _find_dir_case_insensitive(self.layout.packs_dir, f"{name}.Ref")
        if pack_root is None:
            return None
        version_dir = find_versioned_dir(pack_root, framework_version(target_framework))
        if version_dir is None:
            return None
        ref_dir = version_dir / "ref" / target_framework
        return ref_dir if ref_dir.is_dir() else None

    def resolve_for_compile(self, name: str, target_framework: str) -> list[str]:
        ref_dir = self.find_reference_pack(name, target_framework)
        if ref_dir is None:
            return []
        logger.debug("Using reference pack %s", ref_dir)
        return list_module_entries(ref_dir)

    def resolve_reference_package(self, name: str, ctx: ResolveContext) -> list[str]:
        if self._registry_client is None:
            return []
        package_id = reference_package_id(name)
        major, minor = parse_target_framework(ctx.target_framework)
        token = ctx.cancellation_token
        try:
            versions = [
                v for v in self._registry_client.list_versions(package_id, token)
                if v.major == major and v.minor == minor
            ]
            if not versions:
                logger.debug("No %s release matches %s", package_id, ctx.target_framework)
                return []
            return self._registry_client.resolve_assemblies(
                package_id, max(versions), ctx.target_framework, token
            )
        except (TransientError, PermanentError) as e:
            logger.warning("Reference package %s unavailable: %s", package_id, e)
            return []

    def resolve_runtime(self, name: str, target_framework: str) -> list[str]:
        shared_root = _find_dir_case_insensitive(self.layout.packs_dir / "shared", name)
        if shared_root is not None:
            version_dir = find_versioned_dir(shared_root, framework_version(target_framework))
            if version_dir is not None:
                logger.debug("Using shared framework %s", version_dir)
                return list_module_entries(version_dir)

        if name.lower() == CORE_FRAMEWORK.lower():
            paths = list_module_entries(self.layout.stdlib_dir)
            if self.layout.dynload_dir is not None:
                paths.extend(list_module_entries(self.layout.dynload_dir))
            return paths

        if name.lower() == WEB_FRAMEWORK.lower():
            paths = []
            for module in WEB_MODULES:
                package = self.layout.stdlib_dir / module
                single = self.layout.stdlib_dir / f"{module}.py"
                if package.is_dir():
                    paths.append(str(package))
                elif single.is_file():
                    paths.append(str(single))
            return paths

        raise ResolutionError(f"Unknown framework: {name}", f"framework:{name}")
