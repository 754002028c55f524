"""
Compiler factory - select a compiler strategy by name.

    simple     SimpleCodeCompiler (no resolution)
    script     ScriptCodeCompiler (interactive-style evaluation)
    <other>    WorkspaceCodeCompiler (default)
"""

from typing import Iterable, Optional

from pyexec.compilers.base import CodeCompiler
from pyexec.compilers.script import ScriptCodeCompiler
from pyexec.compilers.simple import SimpleCodeCompiler
from pyexec.compilers.workspace import SourceGenerator, WorkspaceCodeCompiler
from pyexec.resolvers.resolver import ReferenceResolver


class CompilerFactory:
    """
    Usage:
        factory = CompilerFactory()
        compiler = factory.get_compiler(options.compiler_type, resolver)
    """

    def __init__(self, source_generators: Optional[Iterable[SourceGenerator]] = None):
        self._source_generators = list(source_generators) if source_generators is not None else None

    def get_compiler(self, compiler_type: Optional[str], resolver: ReferenceResolver) -> CodeCompiler:
        kind = (compiler_type or "").strip().lower()
        if kind == "simple":
            return SimpleCodeCompiler()
        if kind == "script":
            return ScriptCodeCompiler(resolver)
        return WorkspaceCodeCompiler(resolver, self._source_generators)
