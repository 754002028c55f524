"""
ExecutionContext - an arena owning everything one run loads.

The context installs two ``sys.meta_path`` finders:
- in front: the run's in-memory modules (additional scripts, generated code)
- at the end: the consumed reference paths, so they never shadow modules the
  interpreter already provides

Every module imported through either finder, the run's own module and the
``__main__``/``sys.argv`` swap are undone by release(), which the executor
calls in a finally block.
"""

import importlib
import importlib.abc
import importlib.machinery
import importlib.util
import logging
import marshal
import os
import sys
import types
import zipimport
from typing import Iterable, Optional, Sequence

from pyexec.errors import ExecuteException
from pyexec.resolvers.module_index import ModuleIndex

logger = logging.getLogger(__name__)


class InMemoryLoader(importlib.abc.Loader):
    """Load a module from marshal bytes."""

    def __init__(self, code_bytes: bytes, filename: str):
        self._code_bytes = code_bytes
        self._filename = filename

    def create_module(self, spec):
        return None

    def exec_module(self, module) -> None:
        module.__file__ = self._filename
        exec(marshal.loads(self._code_bytes), module.__dict__)


def spec_for_path(fullname: str, location: str) -> Optional[importlib.machinery.ModuleSpec]:
    """Module spec for a top-level module provided by a reference path."""
    if os.path.isdir(location):
        init = os.path.join(location, "__init__.py")
        if os.path.isfile(init):
            return importlib.util.spec_from_file_location(
                fullname, init, submodule_search_locations=[location]
            )
        # Namespace package
        spec = importlib.machinery.ModuleSpec(fullname, None, is_package=True)
        spec.submodule_search_locations = [location]
        return spec
    if location.endswith((".whl", ".zip", ".egg")):
        try:
            return zipimport.zipimporter(location).find_spec(fullname)
        except zipimport.ZipImportError:
            logger.debug("Cannot import from archive %s", location)
            return None
    return importlib.util.spec_from_file_location(fullname, location)


class ReferenceFinder(importlib.abc.MetaPathFinder):
    """
    Finder for top-level modules of one run.

    Submodules are left to the regular path machinery, which follows the
    parent package's ``__path__``.
    """

    def __init__(self, index: Optional[ModuleIndex] = None, modules: Optional[dict[str, bytes]] = None):
        self._index = index or ModuleIndex()
        self._modules = dict(modules or {})
        self.loaded: set[str] = set()

    def find_spec(self, fullname, path=None, target=None):
        if path is not None or "." in fullname:
            return None
        if fullname in self._modules:
            spec = importlib.util.spec_from_loader(
                fullname, InMemoryLoader(self._modules[fullname], f"<{fullname}>")
            )
        else:
            location = self._index.find(fullname)
            if location is None:
                return None
            spec = spec_for_path(fullname, location)
        if spec is not None:
            self.loaded.add(fullname)
        return spec


def _drop_modules(names: Iterable[str]) -> None:
    names = set(names)
    for name in list(sys.modules):
        if name in names or name.partition(".")[0] in names:
            sys.modules.pop(name, None)


class ExecutionContext:
    """
    Per-run import arena.

    Usage:
        with ExecutionContext(result.references, result.modules) as context:
            module = context.load_module(result.module_name, code, result.filename)
    """

    def __init__(self, references: Sequence[str] = (), modules: Optional[dict[str, bytes]] = None):
        self._references = list(references)
        self._modules = dict(modules or {})
        self._sibling_finder: Optional[ReferenceFinder] = None
        self._reference_finder: Optional[ReferenceFinder] = None
        self._owned: set[str] = set()
        self._saved_main: Optional[types.ModuleType] = None
        self._saved_argv: Optional[list[str]] = None
        self._main_swapped = False
        self._installed = False

    @property
    def installed(self) -> bool:
        return self._installed

    def install(self) -> None:
        """Install the finders; raises ExecuteException when indexing fails."""
        if self._installed:
            return
        try:
            index = ModuleIndex.build(self._references, include_stubs=False)
        except (OSError, ValueError) as e:
            raise ExecuteException(f"Failed to index references: {e}") from e
        self._sibling_finder = ReferenceFinder(modules=self._modules)
        self._reference_finder = ReferenceFinder(index=index)
        sys.meta_path.insert(0, self._sibling_finder)
        sys.meta_path.append(self._reference_finder)
        self._installed = True
        logger.debug(
            "Execution context installed: %d reference module(s), %d in-memory module(s)",
            len(index), len(self._modules),
        )

    def new_module(self, name: str, filename: str) -> types.ModuleType:
        module = types.ModuleType(name)
        if os.path.isfile(filename):
            module.__file__ = filename
        module.__builtins__ = __builtins__
        return module

    def load_module(self, name: str, code: types.CodeType, filename: str) -> types.ModuleType:
        """Register a fresh module owned by the context and run its body."""
        module = self.new_module(name, filename)
        sys.modules[name] = module
        self._owned.add(name)
        exec(code, module.__dict__)
        return module

    def enter_main(self, filename: str, arguments: Sequence[str]) -> types.ModuleType:
        """Swap in a fresh ``__main__`` module and ``sys.argv``."""
        module = self.new_module("__main__", filename)
        self._saved_main = sys.modules.get("__main__")
        self._saved_argv = sys.argv[:]
        self._main_swapped = True
        sys.modules["__main__"] = module
        sys.argv = [filename] + list(arguments)
        return module

    def release(self) -> None:
        """Undo everything the context did. Safe to call more than once."""
        for finder in (self._sibling_finder, self._reference_finder):
            if finder is None:
                continue
            if finder in sys.meta_path:
                sys.meta_path.remove(finder)
            self._owned.update(finder.loaded)
        self._sibling_finder = self._reference_finder = None

        _drop_modules(self._owned)
        self._owned.clear()

        if self._main_swapped:
            if self._saved_main is not None:
                sys.modules["__main__"] = self._saved_main
            else:
                sys.modules.pop("__main__", None)
            sys.argv = self._saved_argv
            self._main_swapped = False

        importlib.invalidate_caches()
        self._installed = False

    def __enter__(self) -> "ExecutionContext":
        self.install()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
