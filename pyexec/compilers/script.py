"""
Script compiler - interactive-style evaluation.

The source always runs as an application with top-level ``await`` allowed.
A source consisting of a single expression is routed through
``sys.displayhook`` so ``pyexec run --compiler script "2 ** 10"`` prints
1024 the way the interactive interpreter would.
"""

import ast
import logging

from pyexec.errors import CompileError, ResolutionError
from pyexec.schemas.options import ExecOptions
from pyexec.schemas.results import CompileResult
from pyexec.compilers.base import CodeCompiler, inject_usings, parse_source, script_filename
from pyexec.resolvers.resolver import ReferenceResolver
from pyexec.usings import get_usings

logger = logging.getLogger(__name__)


def display_expression(tree: ast.Module) -> ast.Module:
    """Wrap a lone expression statement in ``__import__('sys').displayhook(...)``."""
    if len(tree.body) != 1 or not isinstance(tree.body[0], ast.Expr):
        return tree
    expr = tree.body[0]
    hook = ast.Attribute(
        value=ast.Call(func=ast.Name("__import__", ast.Load()), args=[ast.Constant("sys")], keywords=[]),
        attr="displayhook",
        ctx=ast.Load(),
    )
    expr.value = ast.Call(func=hook, args=[expr.value], keywords=[])
    ast.copy_location(expr.value, expr)
    ast.fix_missing_locations(tree)
    return tree


class ScriptCodeCompiler(CodeCompiler):

    def __init__(self, resolver: ReferenceResolver):
        self._resolver = resolver

    def compile(self, options: ExecOptions, source_text: str) -> CompileResult:
        filename = script_filename(options)
        try:
            tree, diagnostics = parse_source(source_text, filename)
        except CompileError as e:
            return CompileResult.failed(e, e.diagnostics, filename=filename)

        tree = inject_usings(display_expression(tree), get_usings(options.usings))
        try:
            references = self._resolver.resolve_references(options, compilation=False)
        except ResolutionError as e:
            return CompileResult.failed(e, diagnostics, filename=filename)
        return self.emit(tree, filename, diagnostics, references=references, allow_library=False)
