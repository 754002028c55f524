"""Tests for the compiler strategies."""

import ast
import marshal

import pytest

from pyexec.compilers import (
    CompilerFactory,
    ScriptCodeCompiler,
    SimpleCodeCompiler,
    WorkspaceCodeCompiler,
)
from pyexec.compilers.base import (
    COMPILER_WARNING_ID,
    GENERATOR_WARNING_ID,
    MISSING_FILE_ID,
    MISSING_MODULE_ID,
    SYNTAX_ERROR_ID,
    build_syntax_tree,
    has_entry_point,
    inject_usings,
)
from pyexec.compilers.script import display_expression
from pyexec.errors import ResolutionError
from pyexec.schemas import ExecOptions, OutputKind
from pyexec.usings import get_usings


def options(**kwargs):
    kwargs.setdefault("script", "code:")
    kwargs.setdefault("include_wide_references", False)
    return ExecOptions(**kwargs).freeze()


class TestSyntaxTree:

    def test_usings_injected_after_future_imports(self):
        source = '"""doc"""\nfrom __future__ import annotations\nx: int = 1\n'
        tree, _ = build_syntax_tree(source, get_usings(["json", "static math"]), "<script>")
        kinds = [type(node).__name__ for node in tree.body]
        assert kinds == ["Expr", "ImportFrom", "Import", "ImportFrom", "AnnAssign"]
        assert tree.body[3].module == "math"

    def test_user_line_numbers_kept(self):
        tree, _ = build_syntax_tree("x = 1\ny = 2\n", get_usings(["json"]), "<script>")
        assert tree.body[0].lineno == 1
        assert [n.lineno for n in tree.body[1:]] == [1, 2]

    def test_no_usings_leaves_tree_alone(self):
        tree = ast.parse("x = 1")
        assert inject_usings(tree, []) is tree
        assert len(tree.body) == 1

    @pytest.mark.parametrize(
        "source, expected",
        [
            ("print(1)", True),
            ("import os\nclass A: pass\ndef f(): pass\nX = 1\n", False),
            ('"""only a docstring"""', False),
            ("if True:\n    pass\n", True),
            ("x = f()", True),
            ("import sys\nw = sys.stdout.write('a')", True),
            ("config: dict = {'debug': True}\nhandler = lambda: run()", False),
            ("import os\nos.environ_copy = 1", True),
        ],
    )
    def test_has_entry_point(self, source, expected):
        assert has_entry_point(ast.parse(source)) is expected


class TestSimpleCompiler:

    def test_application(self):
        result = SimpleCodeCompiler().compile(options(), "print(123)")
        assert result.success
        assert result.output_kind is OutputKind.APPLICATION
        assert result.module_name.startswith("pyexec_dynamic_")
        marshal.loads(result.code)

    def test_declarations_only_becomes_library(self):
        source = "class Program:\n    @staticmethod\n    def MainTest():\n        return 0\n"
        result = SimpleCodeCompiler().compile(options(), source)
        assert result.success
        assert result.output_kind is OutputKind.LIBRARY
        assert all(not d.is_error for d in result.diagnostics)

    def test_syntax_error(self):
        result = SimpleCodeCompiler().compile(options(), "print(")
        assert not result.success
        assert result.diagnostics[0].id == SYNTAX_ERROR_ID
        assert result.message.startswith("PY1001-Error-<script>(1,")

    def test_warnings_are_not_fatal(self):
        result = SimpleCodeCompiler().compile(options(), "x = 1\nprint(x is 1)\n")
        assert result.success
        assert [d.id for d in result.diagnostics] == [COMPILER_WARNING_ID]
        assert "warning PY1002" in result.diagnostics[0].message

    def test_unique_module_names(self):
        compiler = SimpleCodeCompiler()
        first = compiler.compile(options(), "print(1)")
        second = compiler.compile(options(), "print(1)")
        assert first.module_name != second.module_name

    def test_file_name_recorded(self, tmp_path):
        script = tmp_path / "hello.py"
        script.write_text("print(1)")
        result = SimpleCodeCompiler().compile(options(script=str(script)), "print(1)")
        assert result.filename == str(script)


class TestWorkspaceCompiler:

    @pytest.fixture
    def compiler(self, resolver):
        return WorkspaceCodeCompiler(resolver, source_generators=[])

    def test_stdlib_imports_resolve(self, compiler):
        result = compiler.compile(options(), "import json\nimport sys\nprint(json.dumps(sys.argv))\n")
        assert result.success
        assert result.references

    def test_missing_module(self, compiler):
        result = compiler.compile(options(), "import os\nimport not_a_real_module_xyz\n")
        assert not result.success
        assert result.diagnostics[0].id == MISSING_MODULE_ID
        assert "(2,1): error PY0246" in result.diagnostics[0].message

    def test_conditional_import_not_checked(self, compiler):
        source = "try:\n    import not_a_real_module_xyz\nexcept ImportError:\n    pass\n"
        assert compiler.compile(options(), source).success

    def test_reference_folder_satisfies_import(self, compiler, tmp_path):
        lib = tmp_path / "lib"
        lib.mkdir()
        (lib / "mylib_for_tests.py").write_text("VALUE = 1\n")
        result = compiler.compile(
            options(references=[f"folder:{lib}"]),
            "import mylib_for_tests\nprint(mylib_for_tests.VALUE)\n",
        )
        assert result.success
        assert str(lib / "mylib_for_tests.py") in result.references

    def test_package_reference(self, compiler):
        result = compiler.compile(options(references=["nuget:alpha"]), "import alpha\nprint(alpha.VERSION)\n")
        assert result.success

    def test_resolution_failure(self, compiler):
        result = compiler.compile(options(references=["nuget:nope"]), "print(1)")
        assert not result.success
        assert isinstance(result.error, ResolutionError)

    def test_additional_scripts(self, compiler, tmp_path):
        helper = tmp_path / "helpers.py"
        helper.write_text("def greet():\n    return 'hi'\n")
        result = compiler.compile(
            options(additional_scripts=[str(helper)]),
            "import helpers\nprint(helpers.greet())\n",
        )
        assert result.success
        assert set(result.modules) == {"helpers"}

    def test_missing_additional_script(self, compiler, tmp_path):
        result = compiler.compile(options(additional_scripts=[str(tmp_path / "gone.py")]), "print(1)")
        assert not result.success
        assert result.diagnostics[0].id == MISSING_FILE_ID

    def test_source_generators(self, resolver):
        def constants(tree, opts):
            return {"generated_constants": "ANSWER = 42\n"}

        def broken(tree, opts):
            raise RuntimeError("generator exploded")

        compiler = WorkspaceCodeCompiler(resolver, source_generators=[constants, broken])
        result = compiler.compile(options(), "import generated_constants\nprint(generated_constants.ANSWER)\n")

        assert result.success
        assert "generated_constants" in result.modules
        warnings = [d for d in result.diagnostics if d.id == GENERATOR_WARNING_ID]
        assert len(warnings) == 1
        assert "generator exploded" in warnings[0].message


class TestScriptCompiler:

    def test_lone_expression_displayed(self):
        tree = display_expression(ast.parse("2 ** 10"))
        assert "displayhook" in ast.unparse(tree)

    def test_statements_untouched(self):
        tree = display_expression(ast.parse("x = 2 ** 10"))
        assert ast.unparse(tree) == "x = 2 ** 10"

    def test_definitions_only_still_application(self, resolver):
        result = ScriptCodeCompiler(resolver).compile(options(), "def f():\n    return 1\n")
        assert result.success
        assert result.output_kind is OutputKind.APPLICATION


def test_factory_selects_strategy(resolver):
    factory = CompilerFactory(source_generators=[])
    assert isinstance(factory.get_compiler("simple", resolver), SimpleCodeCompiler)
    assert isinstance(factory.get_compiler("Script", resolver), ScriptCodeCompiler)
    assert isinstance(factory.get_compiler("workspace", resolver), WorkspaceCodeCompiler)
    assert isinstance(factory.get_compiler(None, resolver), WorkspaceCodeCompiler)
