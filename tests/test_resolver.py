"""Tests for the reference resolver and its strategies."""

import itertools
import os
import threading
from pathlib import Path

import pytest
from packaging.specifiers import SpecifierSet
from packaging.version import Version

from pyexec.cancellation import CancellationToken
from pyexec.errors import OperationCancelled, PermanentError, ResolutionError
from pyexec.resolvers import (
    FrameworkReferenceResolver,
    ReferenceResolver,
    ResolveContext,
    fan_out,
    select_package_requests,
)
from pyexec.resolvers.framework import find_versioned_dir, reference_package_id
from pyexec.resolvers.package import PackageReferenceResolver
from pyexec.resolvers.project import ProjectReferenceResolver
from pyexec.schemas import (
    ExecOptions,
    FrameworkReference,
    PackageReference,
    ProjectReference,
    parse_references,
)

TFM = "py3.12"


def names(paths):
    return [os.path.basename(p) for p in paths]


def restored(paths):
    """(package, version) pairs from FakeRegistryClient paths."""
    return sorted((Path(p).parent.parent.name, Path(p).parent.name) for p in paths)


class TestFanOut:

    def test_results_in_task_order(self):
        token = CancellationToken()
        assert fan_out([lambda: 1, lambda: 2, lambda: 3], token) == [1, 2, 3]

    def test_empty(self):
        assert fan_out([], CancellationToken()) == []

    def test_first_error_in_task_order(self):
        started = threading.Event()

        def slow_failure():
            started.wait(1)
            raise ResolutionError("first")

        def fast_failure():
            started.set()
            raise ResolutionError("second")

        with pytest.raises(ResolutionError, match="first"):
            fan_out([slow_failure, fast_failure], CancellationToken())

    def test_cancellation_beats_errors(self):
        token = CancellationToken()

        def fail():
            raise ResolutionError("boom")

        def cancel():
            token.cancel()
            raise OperationCancelled("cancelled")

        with pytest.raises(OperationCancelled):
            fan_out([fail, cancel], token)

    def test_unexpected_errors_wrapped(self):
        def broken():
            raise KeyError("x")

        with pytest.raises(ResolutionError):
            fan_out([broken], CancellationToken())

    def test_already_cancelled_runs_nothing(self):
        calls = []
        with pytest.raises(OperationCancelled):
            fan_out([lambda: calls.append(1)], CancellationToken.cancelled())
        assert calls == []


class TestFileAndFolder:

    def test_missing_file_dropped(self, resolver, tmp_path):
        helper = tmp_path / "helper.py"
        helper.write_text("")
        paths = resolver.resolve(parse_references([str(helper), str(tmp_path / "gone.py")]), TFM, False)
        assert paths == [str(helper)]

    def test_folder_is_not_recursive(self, resolver, tmp_path):
        folder = tmp_path / "lib"
        (folder / "nested").mkdir(parents=True)
        (folder / "a.py").write_text("")
        (folder / "b.whl").write_text("")
        (folder / "notes.txt").write_text("")
        (folder / "nested" / "c.py").write_text("")

        paths = resolver.resolve(parse_references([f"folder:{folder}"]), TFM, False)
        assert names(paths) == ["a.py", "b.whl"]

    def test_missing_folder_dropped(self, resolver, tmp_path):
        assert resolver.resolve(parse_references([f"folder:{tmp_path / 'nope'}"]), TFM, False) == []

    def test_duplicates_collapsed(self, resolver, tmp_path):
        helper = tmp_path / "helper.py"
        helper.write_text("")
        specs = parse_references([str(helper), f"folder:{tmp_path}", str(helper)])
        assert resolver.resolve(specs, TFM, False) == [str(helper)]


class TestPackages:

    def test_select_package_requests_highest_pin_wins(self):
        refs = [
            PackageReference("Alpha"),
            PackageReference("alpha", Version("1.0")),
            PackageReference("ALPHA", Version("2.0")),
            PackageReference("beta"),
        ]
        assert select_package_requests(refs) == {"alpha": Version("2.0"), "beta": None}

    def test_select_package_requests_combines_ranges(self):
        refs = [
            PackageReference("alpha", specifier=SpecifierSet("<3")),
            PackageReference("alpha", specifier=SpecifierSet(">=1.0")),
            PackageReference("beta", specifier=SpecifierSet("<1")),
            PackageReference("beta", Version("1.0")),
        ]
        assert select_package_requests(refs) == {
            "alpha": SpecifierSet(">=1.0,<3"),
            "beta": Version("1.0"),
        }

    def test_pinned_tie_break(self, resolver, registry):
        specs = parse_references(["nuget:alpha,1.0", "nuget:alpha", "pypi:alpha,2.0"])
        paths = resolver.resolve(specs, TFM, False)
        assert restored(paths) == [("alpha", "2.0")]
        assert registry.restored_versions("alpha") == ["2.0"]
        assert registry.list_calls == []

    def test_latest_stable_skips_prerelease(self, resolver, registry):
        paths = resolver.resolve(parse_references(["nuget:alpha"]), TFM, False)
        assert restored(paths) == [("alpha", "2.0")]

    def test_only_prereleases_available(self, make_registry):
        registry = make_registry({"edge": {"1.0a1": [], "1.0b2": []}})
        ctx = ResolveContext(TFM, compilation=False)
        assert PackageReferenceResolver(registry).select_version("edge", None, ctx) == Version("1.0b2")

    def test_specifier_filter(self, registry):
        ctx = ResolveContext(TFM, compilation=False)
        version = PackageReferenceResolver(registry).select_version("gamma", SpecifierSet("<1.2"), ctx)
        assert version == Version("1.1")

    def test_transitive_dependencies_restored(self, resolver):
        paths = resolver.resolve(parse_references(["nuget:beta"]), TFM, False)
        assert restored(paths) == [("beta", "1.0"), ("gamma", "1.2")]

    def test_top_level_pin_beats_transitive(self, resolver, registry):
        paths = resolver.resolve(parse_references(["nuget:beta", "nuget:gamma,1.1"]), TFM, False)
        assert restored(paths) == [("beta", "1.0"), ("gamma", "1.1")]
        assert registry.restored_versions("gamma") == ["1.1"]

    def test_unknown_package_fails(self, resolver):
        with pytest.raises(ResolutionError) as exc_info:
            resolver.resolve(parse_references(["nuget:nope"]), TFM, False)
        assert exc_info.value.specifier == "nuget:nope"

    def test_no_matching_version(self, registry):
        ctx = ResolveContext(TFM, compilation=False)
        with pytest.raises(ResolutionError, match="matching"):
            PackageReferenceResolver(registry).select_version("gamma", SpecifierSet(">5"), ctx)

    def test_cancellation_beats_failure(self, resolver, registry):
        registry.failures["alpha"] = PermanentError("gone")
        registry.cancel_on.add("beta")
        with pytest.raises(OperationCancelled):
            resolver.resolve(parse_references(["nuget:alpha", "nuget:beta"]), TFM, False, CancellationToken())


class TestDeterminism:

    def test_permutations_give_same_set(self, registry, layout, tmp_path):
        helper = tmp_path / "helper.py"
        helper.write_text("")
        folder = tmp_path / "lib"
        folder.mkdir()
        (folder / "x.py").write_text("")
        raw = [str(helper), f"folder:{folder}", "nuget:alpha,1.0", "nuget:beta"]

        results = set()
        for order in itertools.permutations(raw):
            resolver = ReferenceResolver(registry, layout)
            results.add(tuple(resolver.resolve(parse_references(order), TFM, False)))
        assert len(results) == 1

    def test_first_failure_in_specifier_order(self, resolver):
        specs = parse_references(["nuget:nope", "framework:Nope"])
        with pytest.raises(ResolutionError) as exc_info:
            resolver.resolve(specs, TFM, False)
        assert exc_info.value.specifier == "nuget:nope"

        with pytest.raises(ResolutionError) as exc_info:
            resolver.resolve(list(reversed(specs)), TFM, False)
        assert exc_info.value.specifier == "framework:Nope"


class TestFrameworks:

    def test_find_versioned_dir_does_not_confuse_minor_versions(self, tmp_path):
        for name in ("3.1", "3.1.5", "3.12", "3.12.3", "notes"):
            (tmp_path / name).mkdir()
        assert find_versioned_dir(tmp_path, "3.1").name == "3.1.5"
        assert find_versioned_dir(tmp_path, "3.12").name == "3.12.3"
        assert find_versioned_dir(tmp_path, "3.13") is None
        assert find_versioned_dir(tmp_path / "missing", "3.12") is None

    def test_stub_pack_used_for_compile(self, resolver, packs_dir):
        ref_dir = packs_dir / "Python.Web.Ref" / "3.12.1" / "ref" / TFM
        ref_dir.mkdir(parents=True)
        (ref_dir / "webstub.pyi").write_text("")
        older = packs_dir / "Python.Web.Ref" / "3.12.0" / "ref" / TFM
        older.mkdir(parents=True)
        (older / "old.pyi").write_text("")

        paths = resolver.resolve([FrameworkReference("Python.Web")], TFM, True)
        assert "webstub.pyi" in names(paths)
        assert "old.pyi" not in names(paths)

    def test_shared_runtime_for_execute(self, resolver, packs_dir):
        shared = packs_dir / "shared" / "Python.Web" / "3.12.0"
        shared.mkdir(parents=True)
        (shared / "webruntime.py").write_text("")

        framework = FrameworkReferenceResolver(resolver.layout)
        paths = framework.resolve(FrameworkReference("python.web"), ResolveContext(TFM, compilation=False))
        assert names(paths) == ["webruntime.py"]

    def test_compile_without_pack_falls_back_to_runtime(self, resolver, packs_dir):
        shared = packs_dir / "shared" / "Python.Web" / "3.12.0"
        shared.mkdir(parents=True)
        (shared / "webruntime.py").write_text("")

        framework = FrameworkReferenceResolver(resolver.layout)
        paths = framework.resolve(FrameworkReference("Python.Web"), ResolveContext(TFM, compilation=True))
        assert names(paths) == ["webruntime.py"]

    def test_web_falls_back_to_stdlib_modules(self, layout):
        framework = FrameworkReferenceResolver(layout)
        paths = framework.resolve(FrameworkReference("Python.Web"), ResolveContext(TFM, compilation=False))
        assert "http" in names(paths)
        assert all(p.startswith(str(layout.stdlib_dir)) for p in paths)

    def test_core_falls_back_to_stdlib(self, layout):
        framework = FrameworkReferenceResolver(layout)
        paths = framework.resolve(FrameworkReference("Python.Core"), ResolveContext(TFM, compilation=False))
        assert {"json", "os.py"} <= set(names(paths))

    def test_unknown_framework(self, layout):
        framework = FrameworkReferenceResolver(layout)
        with pytest.raises(ResolutionError, match="Unknown framework"):
            framework.resolve(FrameworkReference("Python.Nope"), ResolveContext(TFM, compilation=False))

    def test_reference_package_fallback(self, layout, make_registry):
        registry = make_registry({
            reference_package_id("Python.Web"): {"3.11.0": [], "3.12.0": [], "3.12.4": []},
        })
        framework = FrameworkReferenceResolver(layout, registry)
        ctx = ResolveContext(TFM, compilation=True, use_reference_packages=True)

        paths = framework.resolve(FrameworkReference("Python.Web"), ctx)

        assert restored(paths) == [("python-web-ref", "3.12.4")]

    def test_reference_package_unavailable_falls_through(self, layout, make_registry):
        registry = make_registry({})
        framework = FrameworkReferenceResolver(layout, registry)
        ctx = ResolveContext(TFM, compilation=True, use_reference_packages=True)
        paths = framework.resolve(FrameworkReference("Python.Web"), ctx)
        assert "http" in names(paths)

    def test_framework_pulls_in_core(self, resolver):
        paths = resolver.resolve([FrameworkReference("Python.Web")], TFM, False)
        assert "os.py" in names(paths)

    def test_reference_package_id(self):
        assert reference_package_id("Python.Web") == "python-web-ref"


class TestProjects:

    def test_pyproject_expansion(self, tmp_path):
        (tmp_path / "pyproject.toml").write_text(
            "[project]\n"
            "name = 'demo'\n"
            "dependencies = ['alpha==1.0', 'gamma>=1.0', \"tomli; python_version < '3.0'\"]\n"
            "[tool.pyexec]\n"
            "frameworks = ['Python.Web']\n"
        )
        specs = ProjectReferenceResolver().expand(ProjectReference(str(tmp_path)), TFM)
        assert specs == [
            PackageReference("alpha", Version("1.0")),
            PackageReference("gamma", specifier=SpecifierSet(">=1.0")),
            FrameworkReference("Python.Web"),
        ]

    def test_requirements_file(self, tmp_path):
        manifest = tmp_path / "requirements.txt"
        manifest.write_text("# deps\n-r other.txt\nalpha==2.0  # pinned\n\nbeta\n")
        specs = ProjectReferenceResolver().expand(ProjectReference(str(manifest)), TFM)
        assert specs == [PackageReference("alpha", Version("2.0")), PackageReference("beta")]

    def test_missing_manifest_is_empty(self, tmp_path):
        assert ProjectReferenceResolver().expand(ProjectReference(str(tmp_path / "nope")), TFM) == []

    def test_invalid_toml(self, tmp_path):
        (tmp_path / "pyproject.toml").write_text("[project\n")
        with pytest.raises(ResolutionError):
            ProjectReferenceResolver().expand(ProjectReference(str(tmp_path)), TFM)

    def test_project_references_resolved(self, resolver, tmp_path):
        (tmp_path / "requirements.txt").write_text("alpha==1.0\n")
        paths = resolver.resolve(parse_references([f"project:{tmp_path}"]), TFM, False)
        assert restored(paths) == [("alpha", "1.0")]

    def test_project_range_respected(self, resolver, registry, tmp_path):
        (tmp_path / "pyproject.toml").write_text(
            "[project]\n"
            "name = 'demo'\n"
            "dependencies = ['alpha<2']\n"
        )
        paths = resolver.resolve(parse_references([f"project:{tmp_path}"]), TFM, False)
        assert restored(paths) == [("alpha", "1.0")]
        assert registry.restored_versions("alpha") == ["1.0"]

    def test_explicit_pin_beats_project_range(self, resolver, registry, tmp_path):
        (tmp_path / "requirements.txt").write_text("alpha<2\n")
        specs = parse_references([f"project:{tmp_path}", "nuget:alpha,2.0"])
        resolver.resolve(specs, TFM, False)
        assert registry.restored_versions("alpha") == ["2.0"]


class TestResolveReferences:

    def options(self, **kwargs):
        kwargs.setdefault("include_wide_references", False)
        kwargs.setdefault("target_framework", TFM)
        return ExecOptions(**kwargs).freeze()

    def test_cached_per_compilation_mode(self, resolver, registry):
        options = self.options(references=["nuget:alpha"])
        first = resolver.resolve_references(options, compilation=False)
        second = resolver.resolve_references(options, compilation=False)
        assert first == second
        assert registry.list_calls == ["alpha"]

        resolver.resolve_references(options, compilation=True)
        assert registry.list_calls == ["alpha", "alpha"]

    def test_disable_cache(self, resolver, registry):
        options = self.options(references=["nuget:alpha"], disable_cache=True)
        resolver.resolve_references(options, compilation=False)
        resolver.resolve_references(options, compilation=False)
        assert registry.list_calls == ["alpha", "alpha"]

    def test_disable_cache_on_resolver(self, registry, layout):
        resolver = ReferenceResolver(registry, layout, disable_cache=True)
        options = self.options(references=["nuget:alpha"])
        resolver.resolve_references(options, compilation=False)
        resolver.resolve_references(options, compilation=False)
        assert len(registry.list_calls) == 2

    def test_core_framework_implicit(self, resolver):
        paths = resolver.resolve_references(self.options(), compilation=False)
        assert "os.py" in names(paths)

    def test_wide_references(self, resolver):
        paths = resolver.resolve_references(self.options(include_wide_references=True), compilation=False)
        assert {"rich", "yaml"} <= set(names(paths))

    def test_metadata_index(self, resolver):
        options = self.options(references=["nuget:alpha"])
        index = resolver.resolve_metadata_references(options, compilation=True)
        assert "alpha" in index
        assert "json" in index
        assert resolver.resolve_metadata_references(options, compilation=True) is index
