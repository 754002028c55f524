"""
pyexec schemas - value types shared by the resolver, compilers and executors.
"""

from .options import (
    ExecOptions,
    OptionsFrozenError,
    DEFAULT_ENTRY_POINT,
    DEFAULT_COMPILER_TYPE,
    DEFAULT_EXECUTOR_TYPE,
    default_target_framework,
    parse_target_framework,
    framework_version,
)
from .references import (
    MODULE_SUFFIXES,
    FileReference,
    FolderReference,
    ProjectReference,
    FrameworkReference,
    PackageReference,
    ReferenceSpecifier,
    parse_reference,
    parse_references,
)
from .results import (
    ExitCodes,
    Severity,
    OutputKind,
    Diagnostic,
    CompileResult,
    ExecuteResult,
    format_diagnostics,
)

__all__ = [
    "ExecOptions",
    "OptionsFrozenError",
    "DEFAULT_ENTRY_POINT",
    "DEFAULT_COMPILER_TYPE",
    "DEFAULT_EXECUTOR_TYPE",
    "default_target_framework",
    "parse_target_framework",
    "framework_version",
    "MODULE_SUFFIXES",
    "FileReference",
    "FolderReference",
    "ProjectReference",
    "FrameworkReference",
    "PackageReference",
    "ReferenceSpecifier",
    "parse_reference",
    "parse_references",
    "ExitCodes",
    "Severity",
    "OutputKind",
    "Diagnostic",
    "CompileResult",
    "ExecuteResult",
    "format_diagnostics",
]
