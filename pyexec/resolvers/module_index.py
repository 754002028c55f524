"""
ModuleIndex - top-level module names provided by a set of reference paths.

The compiler checks imports against it and the execution context's import
hook uses it to find where a module lives. When two paths provide the same
name the first one wins.
"""

import logging
import os
import zipfile
from typing import Iterable, Iterator, Optional

logger = logging.getLogger(__name__)


_SOURCE_SUFFIXES = (".py", ".pyi", ".pyc")
_EXTENSION_SUFFIXES = (".so", ".pyd")
_ARCHIVE_SUFFIXES = (".whl", ".zip", ".egg")


def module_name_for(path: str) -> Optional[str]:
    """Top-level module name a single file or directory provides."""
    base = os.path.basename(path.rstrip(os.sep))
    if os.path.isdir(path):
        return base if base.isidentifier() else None
    if base.endswith(_SOURCE_SUFFIXES + _EXTENSION_SUFFIXES):
        name = base.split(".", 1)[0]
        return name if name.isidentifier() else None
    return None


def archive_top_level_names(path: str) -> list[str]:
    """Top-level importable names inside a wheel/zip/egg archive."""
    names = set()
    with zipfile.ZipFile(path) as zf:
        for member in zf.namelist():
            head, sep, _ = member.partition("/")
            if sep:
                if head.isidentifier():
                    names.add(head)
            elif member.endswith(_SOURCE_SUFFIXES + _EXTENSION_SUFFIXES):
                name = member.split(".", 1)[0]
                if name.isidentifier():
                    names.add(name)
    return sorted(names)


class ModuleIndex:
    """
    Mapping of top-level module name -> providing path.

    Usage:
        index = ModuleIndex.build(["/refs/attrs", "/refs/six.py"])
        index.find("six")   # "/refs/six.py"
        "attrs" in index    # True
    """

    def __init__(self) -> None:
        self._modules: dict[str, str] = {}
        self._paths: list[str] = []

    @classmethod
    def build(cls, paths: Iterable[str], include_stubs: bool = True) -> "ModuleIndex":
        """
        Index reference paths.

        Args:
            paths: Reference paths in priority order
            include_stubs: Whether .pyi stubs provide names (compile mode)
        """
        index = cls()
        for path in paths:
            if not include_stubs and path.endswith(".pyi"):
                continue
            index.add(path)
        return index

    def add(self, path: str) -> None:
        if path.endswith(_ARCHIVE_SUFFIXES) and os.path.isfile(path):
            try:
                names = archive_top_level_names(path)
            except (zipfile.BadZipFile, OSError) as e:
                logger.debug("Skipping unreadable archive %s: %s", path, e)
                return
        else:
            name = module_name_for(path)
            if name is None:
                return
            names = [name]

        self._paths.append(path)
        for name in names:
            self._modules.setdefault(name, path)

    def find(self, name: str) -> Optional[str]:
        return self._modules.get(name.partition(".")[0])

    @property
    def paths(self) -> list[str]:
        return list(self._paths)

    def names(self) -> list[str]:
        return sorted(self._modules)

    def __contains__(self, name: str) -> bool:
        return name.partition(".")[0] in self._modules

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __len__(self) -> int:
        return len(self._modules)
