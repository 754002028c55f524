"""
pyexec resolvers - reference specifiers to on-disk module paths.
"""

from .base import ReferenceStrategy, ResolveContext, fan_out
from .file import FileReferenceResolver, FolderReferenceResolver
from .framework import (
    CORE_FRAMEWORK,
    WEB_FRAMEWORK,
    FrameworkLayout,
    FrameworkReferenceResolver,
    get_framework_layout,
    wide_references,
)
from .module_index import ModuleIndex
from .package import PackageReferenceResolver, select_package_requests
from .project import ProjectReferenceResolver
from .resolver import ReferenceResolver

__all__ = [
    "ReferenceStrategy",
    "ResolveContext",
    "fan_out",
    "FileReferenceResolver",
    "FolderReferenceResolver",
    "CORE_FRAMEWORK",
    "WEB_FRAMEWORK",
    "FrameworkLayout",
    "FrameworkReferenceResolver",
    "get_framework_layout",
    "wide_references",
    "ModuleIndex",
    "PackageReferenceResolver",
    "select_package_requests",
    "ProjectReferenceResolver",
    "ReferenceResolver",
]
