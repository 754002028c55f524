"""File and folder strategies."""

import logging
import os

from pyexec.schemas.references import MODULE_SUFFIXES, FileReference, FolderReference
from pyexec.resolvers.base import ReferenceStrategy, ResolveContext

logger = logging.getLogger(__name__)


class FileReferenceResolver(ReferenceStrategy):
    """A single file (or package directory); missing paths are dropped."""

    def resolve(self, reference: FileReference, ctx: ResolveContext) -> list[str]:
        path = os.path.abspath(os.path.expanduser(reference.path))
        if not os.path.exists(path):
            logger.debug("Reference file not found, skipping: %s", path)
            return []
        return [path]


class FolderReferenceResolver(ReferenceStrategy):
    """Every module file directly inside a directory (non-recursive)."""

    def resolve(self, reference: FolderReference, ctx: ResolveContext) -> list[str]:
        folder = os.path.abspath(os.path.expanduser(reference.path))
        if not os.path.isdir(folder):
            logger.debug("Reference folder not found, skipping: %s", folder)
            return []
        paths = []
        for entry in sorted(os.scandir(folder), key=lambda e: e.name):
            if entry.is_file() and entry.name.endswith(MODULE_SUFFIXES):
                paths.append(entry.path)
        return paths
