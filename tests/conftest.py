import threading
from pathlib import Path
from typing import Optional

import pytest
from packaging.requirements import Requirement
from packaging.utils import canonicalize_name
from packaging.version import Version

from pyexec.cancellation import CancellationToken
from pyexec.errors import OperationCancelled, PermanentError, TransientError
from pyexec.resolvers import ReferenceResolver, get_framework_layout
from pyexec.stack_clients.registry_client import RegistryClient, RestoredPackage


class FakeRegistryClient(RegistryClient):
    """
    In-memory registry.

    packages maps an id to {version: [requirement strings]}. Restoring a
    package creates ``<root>/<id>/<version>/<module>/__init__.py`` whose
    VERSION attribute is the restored version.
    """

    def __init__(self, root: Path, packages: Optional[dict[str, dict[str, list[str]]]] = None):
        self.root = Path(root)
        self.packages = {canonicalize_name(k): v for k, v in (packages or {}).items()}
        self.failures: dict[str, Exception] = {}
        self.cancel_on: set[str] = set()
        self.list_calls: list[str] = []
        self.resolve_calls: list[tuple[str, Version]] = []
        self._lock = threading.Lock()

    def list_versions(self, package_id, token=None):
        package_id = canonicalize_name(package_id)
        with self._lock:
            self.list_calls.append(package_id)
        self._check(package_id, token)
        if package_id not in self.packages:
            raise PermanentError(f"Not found in registry: {package_id}")
        return sorted(Version(v) for v in self.packages[package_id])

    def resolve_package(self, package_id, version, target_framework, token=None):
        package_id = canonicalize_name(package_id)
        with self._lock:
            self.resolve_calls.append((package_id, version))
        self._check(package_id, token)
        releases = self.packages.get(package_id, {})
        if str(version) not in releases:
            raise PermanentError(f"Not found in registry: {package_id}=={version}")

        module_dir = self.root / package_id / str(version) / package_id.replace("-", "_")
        module_dir.mkdir(parents=True, exist_ok=True)
        (module_dir / "__init__.py").write_text(f"VERSION = {str(version)!r}\n")
        dependencies = tuple(Requirement(r) for r in releases[str(version)])
        return RestoredPackage(package_id, version, (str(module_dir),), dependencies)

    def restored_versions(self, package_id: str) -> list[str]:
        return [str(v) for pid, v in self.resolve_calls if pid == canonicalize_name(package_id)]

    def _check(self, package_id: str, token: Optional[CancellationToken]) -> None:
        if package_id in self.cancel_on and token is not None:
            token.cancel()
            raise OperationCancelled(f"restore {package_id} cancelled")
        if package_id in self.failures:
            raise self.failures[package_id]
        if token is not None:
            token.raise_if_cancelled(f"restore {package_id}")


@pytest.fixture(autouse=True)
def pyexec_home(monkeypatch, tmp_path):
    """Keep every test away from the real ~/.config/pyexec."""
    home = tmp_path / "pyexec-home"
    monkeypatch.setenv("PYEXEC_HOME", str(home))
    monkeypatch.delenv("PYEXEC_PACKS_DIR", raising=False)
    monkeypatch.delenv("PYEXEC_PACKAGE_CACHE", raising=False)
    monkeypatch.delenv("PYEXEC_INDEX_URL", raising=False)
    return home


@pytest.fixture
def packs_dir(tmp_path):
    path = tmp_path / "packs"
    path.mkdir()
    return path


@pytest.fixture
def layout(packs_dir):
    return get_framework_layout(packs_dir)


@pytest.fixture
def registry(tmp_path):
    return FakeRegistryClient(
        tmp_path / "registry",
        {
            "alpha": {"1.0": [], "2.0": [], "3.0rc1": []},
            "beta": {"0.5": ["gamma>=1.0"], "1.0": ["gamma>=1.0"]},
            "gamma": {"0.9": [], "1.1": [], "1.2": []},
        },
    )


@pytest.fixture
def resolver(registry, layout):
    return ReferenceResolver(registry, layout)


@pytest.fixture
def make_registry(tmp_path):
    """Build a FakeRegistryClient with its own package catalogue."""
    def factory(packages, name="custom-registry"):
        return FakeRegistryClient(tmp_path / name, packages)
    return factory
