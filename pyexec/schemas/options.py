"""
ExecOptions - one compilation + execution request.

Options are built once per invocation (command line, config profile, tests),
adjusted by the configure pipeline and then frozen. After ``freeze()`` any
attribute assignment raises OptionsFrozenError and list fields become tuples.
"""

import re
import sys
from dataclasses import dataclass, field, fields
from typing import Any, Optional

from pyexec.cancellation import CancellationToken


DEFAULT_ENTRY_POINT = "MainTest"
DEFAULT_COMPILER_TYPE = "workspace"
DEFAULT_EXECUTOR_TYPE = "default"

# py3.12, py3.12.1, 3.12
TARGET_FRAMEWORK_PATTERN = re.compile(r"^(?:py)?(\d+)\.(\d+)(?:\.\d+)?$", re.IGNORECASE)


def default_target_framework() -> str:
    """Moniker of the running interpreter, e.g. ``py3.12``."""
    return f"py{sys.version_info.major}.{sys.version_info.minor}"


def parse_target_framework(target_framework: str) -> tuple[int, int]:
    """
    Parse a target-framework moniker into (major, minor).

    Raises:
        ValueError: If the moniker is not of the form ``py<major>.<minor>``
    """
    match = TARGET_FRAMEWORK_PATTERN.match((target_framework or "").strip())
    if not match:
        raise ValueError(f"Invalid target framework: {target_framework!r}")
    return int(match.group(1)), int(match.group(2))


def framework_version(target_framework: str) -> str:
    """Version prefix of a moniker: ``py3.12`` -> ``3.12``."""
    major, minor = parse_target_framework(target_framework)
    return f"{major}.{minor}"


class OptionsFrozenError(AttributeError):
    """Raised when frozen ExecOptions are mutated."""
    pass


@dataclass
class ExecOptions:
    """
    A single pyexec request.

    Attributes:
        script: Inline code (``code:`` prefix), file path or URL
        target_framework: Target moniker (``py3.12``)
        references: Raw reference specifiers
        usings: Raw using directives (``ns``, ``static ns``, ``alias = ns``, ``-ns``)
        compiler_type: simple | workspace | script
        executor_type: default | noop
        entry_point: Method name looked up on library-compiled modules
        startup_type: Restrict entry discovery to this class name
        arguments: Argument vector handed to the executed module
        project_path: Project manifest whose references are added
        additional_scripts: Extra source files importable as sibling modules
        include_wide_references: Add the baseline helper packages
        include_web_references: Add the web framework and web usings
        use_ref_assemblies_for_compile: Fetch reference packages from the
            registry when no local stub pack is installed
        dry_run: Compile only, never execute
        disable_cache: Bypass the resolution cache
    """
    script: str = ""
    target_framework: str = field(default_factory=default_target_framework)
    references: list[str] = field(default_factory=list)
    usings: list[str] = field(default_factory=list)
    compiler_type: str = DEFAULT_COMPILER_TYPE
    executor_type: str = DEFAULT_EXECUTOR_TYPE
    entry_point: str = DEFAULT_ENTRY_POINT
    startup_type: Optional[str] = None
    arguments: list[str] = field(default_factory=list)
    project_path: Optional[str] = None
    additional_scripts: list[str] = field(default_factory=list)
    include_wide_references: bool = True
    include_web_references: bool = False
    use_ref_assemblies_for_compile: bool = False
    dry_run: bool = False
    disable_cache: bool = False
    debug: bool = False
    config_profile: Optional[str] = None
    cancellation_token: CancellationToken = field(
        default_factory=CancellationToken, repr=False, compare=False
    )
    _frozen: bool = field(default=False, init=False, repr=False, compare=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_frozen", False):
            raise OptionsFrozenError(f"ExecOptions are frozen, cannot set '{name}'")
        super().__setattr__(name, value)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> "ExecOptions":
        """Make the options immutable. Idempotent."""
        if self._frozen:
            return self
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, list):
                object.__setattr__(self, f.name, tuple(value))
        object.__setattr__(self, "_frozen", True)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serializable view for debug logging."""
        result = {}
        for f in fields(self):
            if f.name in ("cancellation_token", "_frozen"):
                continue
            value = getattr(self, f.name)
            result[f.name] = list(value) if isinstance(value, tuple) else value
        return result
