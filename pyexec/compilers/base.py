"""
Compiler protocol and the shared parse/emit helpers.

Every strategy compiles source text into marshal bytes of a module code
object. The shared emit step tries an application first; when the only error
is PY5001 (the module holds nothing but imports, definitions, assignments and
a docstring) the same syntax tree is re-emitted as a library and entry point
discovery is left to the executor.

Diagnostic ids:
- PY1001: syntax error
- PY1002: compiler warning (recorded, never fatal)
- PY0246: imported module not found in the compile-mode references
- PY2001: additional script could not be read
- PY5001: no entry point (triggers the library fallback)
- PY8001: source generator failed (warning)
"""

import ast
import logging
import marshal
import os
import uuid
import warnings
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from pyexec.errors import CompileError
from pyexec.schemas.options import ExecOptions
from pyexec.schemas.results import CompileResult, Diagnostic, OutputKind, Severity
from pyexec.stack_clients.script_fetcher import CODE_PREFIX, is_url
from pyexec.usings import UsingDirective, get_import_text

logger = logging.getLogger(__name__)


SYNTAX_ERROR_ID = "PY1001"
COMPILER_WARNING_ID = "PY1002"
MISSING_MODULE_ID = "PY0246"
MISSING_FILE_ID = "PY2001"
NO_ENTRY_POINT_ID = "PY5001"
GENERATOR_WARNING_ID = "PY8001"

MODULE_NAME_PREFIX = "pyexec_dynamic_"

# Statements that never run anything by themselves
_DECLARATION_NODES = (
    ast.Import,
    ast.ImportFrom,
    ast.FunctionDef,
    ast.AsyncFunctionDef,
    ast.ClassDef,
    ast.Pass,
)

# Expressions that run code when evaluated
_EFFECT_NODES = (ast.Call, ast.Await, ast.Yield, ast.YieldFrom, ast.NamedExpr)


def new_module_name() -> str:
    return f"{MODULE_NAME_PREFIX}{uuid.uuid4().hex}"


def script_filename(options: ExecOptions) -> str:
    """Filename recorded in tracebacks for the compiled script."""
    script = options.script or ""
    if script.startswith(CODE_PREFIX):
        return "<script>"
    if is_url(script):
        return script
    path = os.path.expanduser(script)
    if os.path.isfile(path):
        return os.path.abspath(path)
    return "<script>"


def make_diagnostic(
    diagnostic_id: str,
    severity: Severity,
    text: str,
    filename: str,
    line: Optional[int] = None,
    col: Optional[int] = None,
) -> Diagnostic:
    label = "error" if severity is Severity.ERROR else "warning"
    return Diagnostic(
        id=diagnostic_id,
        severity=severity,
        message=f"{filename}({line or 1},{col or 1}): {label} {diagnostic_id}: {text}",
    )


def syntax_error_diagnostic(error: SyntaxError, filename: str) -> Diagnostic:
    return make_diagnostic(
        SYNTAX_ERROR_ID, Severity.ERROR, error.msg or str(error), filename, error.lineno, error.offset
    )


def warning_diagnostics(caught: Iterable[warnings.WarningMessage], filename: str) -> list[Diagnostic]:
    diagnostics = []
    for w in caught:
        text = f"{w.category.__name__}: {w.message}"
        diagnostics.append(make_diagnostic(COMPILER_WARNING_ID, Severity.WARNING, text, filename, w.lineno))
    return diagnostics


def parse_source(source: str, filename: str) -> tuple[ast.Module, list[Diagnostic]]:
    """
    Parse source into a syntax tree.

    Returns:
        (tree, warning diagnostics)

    Raises:
        CompileError: With a PY1001 diagnostic on invalid syntax
    """
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        try:
            tree = ast.parse(source, filename=filename)
        except SyntaxError as e:
            diagnostic = syntax_error_diagnostic(e, filename)
            raise CompileError(diagnostic.message, [diagnostic]) from e
        except ValueError as e:
            diagnostic = make_diagnostic(SYNTAX_ERROR_ID, Severity.ERROR, str(e), filename)
            raise CompileError(diagnostic.message, [diagnostic]) from e
    return tree, warning_diagnostics(caught, filename)


def _preamble_index(tree: ast.Module) -> int:
    """Position after the docstring and any __future__ imports."""
    index = 0
    body = tree.body
    if body and isinstance(body[0], ast.Expr) and isinstance(body[0].value, ast.Constant) \
            and isinstance(body[0].value.value, str):
        index = 1
    while index < len(body) and isinstance(body[index], ast.ImportFrom) \
            and body[index].module == "__future__":
        index += 1
    return index


def inject_usings(tree: ast.Module, usings: Iterable[UsingDirective]) -> ast.Module:
    """Insert the using imports in front of the user's code, in place."""
    import_text = get_import_text(usings)
    if not import_text:
        return tree
    preamble = ast.parse(import_text).body
    # Keep the user's own line numbers; the preamble points at line 1
    for node in preamble:
        for child in ast.walk(node):
            if hasattr(child, "lineno"):
                child.lineno = child.end_lineno = 1
    index = _preamble_index(tree)
    tree.body[index:index] = preamble
    return tree


def build_syntax_tree(
    source: str, usings: Iterable[UsingDirective], filename: str
) -> tuple[ast.Module, list[Diagnostic]]:
    tree, diagnostics = parse_source(source, filename)
    return inject_usings(tree, usings), diagnostics


def _has_effects(node: ast.AST) -> bool:
    if isinstance(node, _EFFECT_NODES):
        return True
    if isinstance(node, ast.Lambda):
        # Only the defaults run at definition time
        return any(_has_effects(d) for d in node.args.defaults + node.args.kw_defaults if d is not None)
    return any(_has_effects(child) for child in ast.iter_child_nodes(node))


def is_declaration(node: ast.stmt) -> bool:
    """True for statements that only bind names without running user code."""
    if isinstance(node, _DECLARATION_NODES):
        return True
    if isinstance(node, (ast.Assign, ast.AnnAssign)):
        targets = node.targets if isinstance(node, ast.Assign) else [node.target]
        if not all(isinstance(t, ast.Name) for t in targets):
            return False
        return node.value is None or not _has_effects(node.value)
    return False


def has_entry_point(tree: ast.Module) -> bool:
    """True when the module body does anything beyond declaring names."""
    for index, node in enumerate(tree.body):
        if is_declaration(node):
            continue
        if index == 0 and isinstance(node, ast.Expr) and isinstance(node.value, ast.Constant) \
                and isinstance(node.value.value, str):
            continue
        return True
    return False


def compile_tree(
    tree: ast.Module, filename: str, flags: int = 0
) -> tuple[Optional[bytes], list[Diagnostic]]:
    """Compile a syntax tree into marshal bytes, collecting diagnostics."""
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        try:
            code = compile(tree, filename, "exec", flags=flags, dont_inherit=True)
        except SyntaxError as e:
            return None, [syntax_error_diagnostic(e, filename)] + warning_diagnostics(caught, filename)
        except ValueError as e:
            return None, [make_diagnostic(SYNTAX_ERROR_ID, Severity.ERROR, str(e), filename)]
    return marshal.dumps(code), warning_diagnostics(caught, filename)


class CodeCompiler(ABC):
    """
    Abstract base class for compiler strategies.

    Strategies receive frozen ExecOptions and the fetched source text and
    return a CompileResult; they never raise for user errors.
    """

    @abstractmethod
    def compile(self, options: ExecOptions, source_text: str) -> CompileResult:
        """
        Compile source_text.

        Args:
            options: Frozen options of the current run
            source_text: Script source

        Returns:
            CompileResult (success=False with diagnostics on failure)

        Raises:
            OperationCancelled: If the token fired during reference resolution
        """
        pass

    def emit(
        self,
        tree: ast.Module,
        filename: str,
        diagnostics: Iterable[Diagnostic] = (),
        references: Iterable[str] = (),
        modules: Optional[dict[str, bytes]] = None,
        allow_library: bool = True,
    ) -> CompileResult:
        """
        Emit an application, falling back to a library when PY5001 is the
        only error.
        """
        diagnostics = list(diagnostics)
        module_name = new_module_name()
        common = dict(
            references=tuple(references),
            modules=dict(modules or {}),
            module_name=module_name,
            filename=filename,
        )

        code, emitted = compile_tree(tree, filename, ast.PyCF_ALLOW_TOP_LEVEL_AWAIT)
        app_diagnostics = diagnostics + emitted
        if allow_library and code is not None and not has_entry_point(tree):
            app_diagnostics.append(make_diagnostic(
                NO_ENTRY_POINT_ID, Severity.ERROR, "Program does not contain an entry point", filename
            ))

        errors = [d for d in app_diagnostics if d.is_error]
        if not errors:
            self._log_warnings(app_diagnostics)
            return CompileResult(
                success=True, diagnostics=app_diagnostics, code=code,
                output_kind=OutputKind.APPLICATION, **common,
            )

        if allow_library and all(d.id == NO_ENTRY_POINT_ID for d in errors):
            logger.debug("No entry point in %s, emitting a library", filename)
            code, emitted = compile_tree(tree, filename)
            lib_diagnostics = diagnostics + emitted
            if code is not None and not any(d.is_error for d in lib_diagnostics):
                self._log_warnings(lib_diagnostics)
                return CompileResult(
                    success=True, diagnostics=lib_diagnostics, code=code,
                    output_kind=OutputKind.LIBRARY, **common,
                )
            app_diagnostics = lib_diagnostics

        failed = [d for d in app_diagnostics if d.is_error]
        return CompileResult.failed(
            CompileError(failed[0].message if failed else "Compilation failed", app_diagnostics),
            app_diagnostics,
            **common,
        )

    @staticmethod
    def _log_warnings(diagnostics: Iterable[Diagnostic]) -> None:
        for d in diagnostics:
            if not d.is_error:
                logger.warning(d.format())
