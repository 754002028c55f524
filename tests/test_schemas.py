"""Tests for pyexec value types: reference specifiers, options and results."""

import pytest
from packaging.version import Version

from pyexec.schemas import (
    CompileResult,
    Diagnostic,
    ExecOptions,
    ExecuteResult,
    ExitCodes,
    FileReference,
    FolderReference,
    FrameworkReference,
    OptionsFrozenError,
    PackageReference,
    ProjectReference,
    Severity,
    default_target_framework,
    format_diagnostics,
    framework_version,
    parse_reference,
    parse_references,
    parse_target_framework,
)
from pyexec.errors import CompileError


class TestParseReference:

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("nuget:attrs", PackageReference("attrs")),
            ("NuGet:attrs, 23.1.0", PackageReference("attrs", Version("23.1.0"))),
            ("pypi:requests,2.31.0", PackageReference("requests", Version("2.31.0"))),
            ("framework:Python.Web", FrameworkReference("Python.Web")),
            ("FRAMEWORK:Python.Web", FrameworkReference("Python.Web")),
            ("folder:/opt/lib", FolderReference("/opt/lib")),
            ("project:./pyproject.toml", ProjectReference("./pyproject.toml")),
            ("/opt/lib/helpers.py", FileReference("/opt/lib/helpers.py")),
            ("  ./mod.py  ", FileReference("./mod.py")),
        ],
    )
    def test_classifies_by_prefix(self, text, expected):
        assert parse_reference(text) == expected

    @pytest.mark.parametrize("text", ["", "   ", "nuget:", "nuget: , ", "nuget:attrs,not-a-version", "framework:", "folder:"])
    def test_malformed_returns_none(self, text):
        assert parse_reference(text) is None

    def test_parse_references_skips_malformed(self):
        result = parse_references(["nuget:", "nuget:attrs", ""])
        assert result == [PackageReference("attrs")]

    def test_package_canonical_id(self):
        assert PackageReference("Typing_Extensions").canonical_id == "typing-extensions"

    def test_str_round_trips_prefix(self):
        assert str(PackageReference("attrs", Version("1.0"))) == "nuget:attrs,1.0"
        assert str(FrameworkReference("Python.Web")) == "framework:Python.Web"


class TestTargetFramework:

    def test_default_matches_interpreter(self):
        import sys
        assert default_target_framework() == f"py{sys.version_info.major}.{sys.version_info.minor}"

    @pytest.mark.parametrize("tfm, expected", [("py3.12", (3, 12)), ("3.11", (3, 11)), ("py3.12.4", (3, 12))])
    def test_parse(self, tfm, expected):
        assert parse_target_framework(tfm) == expected

    @pytest.mark.parametrize("tfm", ["", "net8.0", "py3", "python"])
    def test_parse_invalid(self, tfm):
        with pytest.raises(ValueError):
            parse_target_framework(tfm)

    def test_framework_version(self):
        assert framework_version("py3.12") == "3.12"


class TestExecOptions:

    def test_defaults(self):
        options = ExecOptions()
        assert options.entry_point == "MainTest"
        assert options.compiler_type == "workspace"
        assert options.executor_type == "default"
        assert options.include_wide_references is True
        assert options.include_web_references is False
        assert options.use_ref_assemblies_for_compile is False
        assert not options.frozen

    def test_mutable_until_frozen(self):
        options = ExecOptions(script="code:print(1)")
        options.references.append("nuget:attrs")
        options.dry_run = True
        options.freeze()

        assert options.frozen
        assert options.references == ("nuget:attrs",)
        with pytest.raises(OptionsFrozenError):
            options.dry_run = False

    def test_freeze_idempotent(self):
        options = ExecOptions().freeze()
        assert options.freeze() is options

    def test_to_dict_excludes_token(self):
        data = ExecOptions(references=["a"]).freeze().to_dict()
        assert "cancellation_token" not in data
        assert data["references"] == ["a"]


class TestResults:

    def test_exit_codes_stable(self):
        assert [int(c) for c in ExitCodes] == [0, 1, 2, 3, 4, 5, 6]

    def test_diagnostic_format(self):
        d = Diagnostic("PY1001", Severity.ERROR, "<script>(1,1): error PY1001: invalid syntax")
        assert d.is_error
        assert d.format() == "PY1001-Error-<script>(1,1): error PY1001: invalid syntax"

    def test_format_diagnostics_one_per_line(self):
        ds = [Diagnostic("A", Severity.ERROR, "x"), Diagnostic("B", Severity.WARNING, "y")]
        assert format_diagnostics(ds) == "A-Error-x\nB-Warning-y"

    def test_compile_result_failed_message(self):
        result = CompileResult.failed(CompileError("bad"))
        assert not result.success
        assert result.message == "bad"

    def test_execute_result_helpers(self):
        assert ExecuteResult.ok(3).exit_code == 3
        failed = ExecuteResult.failed(CompileError("x"), ExitCodes.EXECUTE_ERROR)
        assert not failed.success
        assert failed.exit_code == ExitCodes.EXECUTE_ERROR
