"""
pyexec compilers - source text to loadable module code.
"""

from .base import (
    CodeCompiler,
    MISSING_MODULE_ID,
    NO_ENTRY_POINT_ID,
    SYNTAX_ERROR_ID,
    has_entry_point,
)
from .factory import CompilerFactory
from .script import ScriptCodeCompiler
from .simple import SimpleCodeCompiler
from .workspace import SOURCE_GENERATOR_GROUP, WorkspaceCodeCompiler

__all__ = [
    "CodeCompiler",
    "MISSING_MODULE_ID",
    "NO_ENTRY_POINT_ID",
    "SYNTAX_ERROR_ID",
    "has_entry_point",
    "CompilerFactory",
    "ScriptCodeCompiler",
    "SimpleCodeCompiler",
    "SOURCE_GENERATOR_GROUP",
    "WorkspaceCodeCompiler",
]
