"""
Workspace compiler - the default strategy.

Steps:
1. Inject the effective using set in front of the source
2. Resolve compile-mode references and check every unconditional top-level
   import against them (PY0246)
3. Compile additional scripts and source generator output as sibling modules
4. Emit the script (application, or library on PY5001)
5. Resolve execute-mode references for the executor

Source generators are callables ``generator(tree, options) -> {name: source}``
registered on the compiler or advertised under the entry-point group
``pyexec.source_generators``.
"""

import ast
import logging
import sys
from importlib.metadata import entry_points
from pathlib import Path
from typing import Callable, Iterable, Optional

from pyexec.errors import CompileError, ResolutionError
from pyexec.schemas.options import ExecOptions
from pyexec.schemas.results import CompileResult, Diagnostic, Severity
from pyexec.compilers.base import (
    GENERATOR_WARNING_ID,
    MISSING_FILE_ID,
    MISSING_MODULE_ID,
    CodeCompiler,
    build_syntax_tree,
    compile_tree,
    make_diagnostic,
    parse_source,
    script_filename,
)
from pyexec.resolvers.resolver import ReferenceResolver
from pyexec.usings import get_usings

logger = logging.getLogger(__name__)


SOURCE_GENERATOR_GROUP = "pyexec.source_generators"

SourceGenerator = Callable[[ast.Module, ExecOptions], dict[str, str]]


def discover_source_generators() -> list[SourceGenerator]:
    """Load every generator advertised under the entry-point group."""
    generators = []
    for ep in entry_points(group=SOURCE_GENERATOR_GROUP):
        try:
            generators.append(ep.load())
        except Exception as e:
            logger.warning("Failed to load source generator %s: %s", ep.name, e)
    return generators


def top_level_imports(tree: ast.Module) -> list[tuple[str, ast.stmt]]:
    """Absolute imports executed unconditionally at module level."""
    imports = []
    for node in tree.body:
        if isinstance(node, ast.Import):
            for alias in node.names:
                imports.append((alias.name.partition(".")[0], node))
        elif isinstance(node, ast.ImportFrom) and node.level == 0 and node.module:
            if node.module != "__future__":
                imports.append((node.module.partition(".")[0], node))
    return imports


class WorkspaceCodeCompiler(CodeCompiler):
    """
    Compile against resolved references.

    Usage:
        compiler = WorkspaceCodeCompiler(resolver)
        result = compiler.compile(options, "import attrs\\nprint(attrs.__version__)")
    """

    def __init__(
        self,
        resolver: ReferenceResolver,
        source_generators: Optional[Iterable[SourceGenerator]] = None,
    ):
        self._resolver = resolver
        self._source_generators = list(source_generators) if source_generators is not None else None

    @property
    def source_generators(self) -> list[SourceGenerator]:
        if self._source_generators is None:
            self._source_generators = discover_source_generators()
        return self._source_generators

    def compile(self, options: ExecOptions, source_text: str) -> CompileResult:
        filename = script_filename(options)
        try:
            tree, diagnostics = build_syntax_tree(source_text, get_usings(options.usings), filename)
        except CompileError as e:
            return CompileResult.failed(e, e.diagnostics, filename=filename)

        modules, module_diagnostics = self.compile_additional_scripts(options)
        diagnostics.extend(module_diagnostics)
        generated, generator_diagnostics = self.run_source_generators(tree, options)
        modules.update(generated)
        diagnostics.extend(generator_diagnostics)

        try:
            index = self._resolver.resolve_metadata_references(options, compilation=True)
        except ResolutionError as e:
            return CompileResult.failed(e, diagnostics, filename=filename)

        known = set(index.names()) | set(sys.builtin_module_names) | set(modules)
        for name, node in top_level_imports(tree):
            if name not in known:
                diagnostics.append(make_diagnostic(
                    MISSING_MODULE_ID,
                    Severity.ERROR,
                    f"The module '{name}' could not be found (are you missing a reference?)",
                    filename,
                    node.lineno,
                    node.col_offset + 1,
                ))

        if any(d.is_error for d in diagnostics):
            failed = next(d for d in diagnostics if d.is_error)
            return CompileResult.failed(CompileError(failed.message, diagnostics), diagnostics, filename=filename)

        try:
            references = self._resolver.resolve_references(options, compilation=False)
        except ResolutionError as e:
            return CompileResult.failed(e, diagnostics, filename=filename)

        return self.emit(tree, filename, diagnostics, references=references, modules=modules)

    def compile_additional_scripts(self, options: ExecOptions) -> tuple[dict[str, bytes], list[Diagnostic]]:
        """Compile each additional script as a module named after its file stem."""
        modules: dict[str, bytes] = {}
        diagnostics: list[Diagnostic] = []
        for script in options.additional_scripts:
            path = Path(script).expanduser()
            try:
                source = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                diagnostics.append(make_diagnostic(
                    MISSING_FILE_ID, Severity.ERROR, f"Cannot read additional script: {e}", str(path)
                ))
                continue
            code, module_diagnostics = self._compile_module(source, str(path.resolve()))
            diagnostics.extend(module_diagnostics)
            if code is not None:
                modules[path.stem] = code
        return modules, diagnostics

    def run_source_generators(
        self, tree: ast.Module, options: ExecOptions
    ) -> tuple[dict[str, bytes], list[Diagnostic]]:
        modules: dict[str, bytes] = {}
        diagnostics: list[Diagnostic] = []
        for generator in self.source_generators:
            name = getattr(generator, "__name__", repr(generator))
            try:
                generated = generator(tree, options) or {}
            except Exception as e:
                diagnostics.append(make_diagnostic(
                    GENERATOR_WARNING_ID, Severity.WARNING, f"Source generator {name} failed: {e}", "<generator>"
                ))
                continue
            for module_name, source in generated.items():
                code, module_diagnostics = self._compile_module(source, f"<generated:{module_name}>")
                diagnostics.extend(module_diagnostics)
                if code is not None:
                    modules[module_name] = code
        return modules, diagnostics

    @staticmethod
    def _compile_module(source: str, filename: str) -> tuple[Optional[bytes], list[Diagnostic]]:
        try:
            tree, diagnostics = parse_source(source, filename)
        except CompileError as e:
            return None, list(e.diagnostics)
        code, emitted = compile_tree(tree, filename)
        return code, diagnostics + emitted
