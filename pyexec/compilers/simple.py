"""Simple compiler - the text plus usings, against a fixed reference baseline."""

import logging

from pyexec.errors import CompileError
from pyexec.schemas.options import ExecOptions
from pyexec.schemas.results import CompileResult
from pyexec.compilers.base import CodeCompiler, build_syntax_tree, script_filename
from pyexec.resolvers.framework import get_framework_layout, wide_references
from pyexec.usings import get_usings

logger = logging.getLogger(__name__)


def baseline_references() -> list[str]:
    """The stdlib directory and the wide reference packages."""
    return [str(get_framework_layout().stdlib_dir)] + wide_references()


class SimpleCodeCompiler(CodeCompiler):
    """
    Compile without resolving anything.

    Useful when the script only needs the stdlib: no registry or framework
    resolution happens and imports are not checked.
    """

    def compile(self, options: ExecOptions, source_text: str) -> CompileResult:
        filename = script_filename(options)
        try:
            tree, diagnostics = build_syntax_tree(source_text, get_usings(options.usings), filename)
        except CompileError as e:
            return CompileResult.failed(e, e.diagnostics, filename=filename)
        return self.emit(tree, filename, diagnostics, references=baseline_references())
