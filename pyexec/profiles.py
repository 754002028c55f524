"""
Config profiles - named option presets stored as YAML.

Profiles live at ``<home>/profiles/<name>.yaml``:

    references: ["nuget:attrs", "folder:~/lib"]
    usings: ["static math", "-asyncio"]
    include_web_references: true
    entry_point: Run

A profile is merged into ExecOptions before they are frozen: list values are
unioned, scalar values only fill options still at their defaults, so explicit
command line values win.
"""

import logging
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from pyexec.errors import ConfigError
from pyexec.schemas.options import ExecOptions

logger = logging.getLogger(__name__)


PROFILE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")

_LIST_FIELDS = ("references", "usings")
_SCALAR_FIELDS = (
    "target_framework",
    "compiler_type",
    "executor_type",
    "entry_point",
    "include_web_references",
    "include_wide_references",
    "use_ref_assemblies_for_compile",
)


@dataclass
class ConfigProfile:
    """
    A named option preset. Unset scalars are None.
    """
    name: str
    references: list[str] = field(default_factory=list)
    usings: list[str] = field(default_factory=list)
    target_framework: Optional[str] = None
    compiler_type: Optional[str] = None
    executor_type: Optional[str] = None
    entry_point: Optional[str] = None
    include_web_references: Optional[bool] = None
    include_wide_references: Optional[bool] = None
    use_ref_assemblies_for_compile: Optional[bool] = None

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> "ConfigProfile":
        known = {f.name for f in fields(cls)} - {"name"}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown keys in profile '{name}': {', '.join(unknown)}")
        for key in _LIST_FIELDS:
            value = data.get(key)
            if value is not None and not isinstance(value, list):
                raise ConfigError(f"Profile '{name}': {key} must be a list")
        return cls(name=name, **{k: v for k, v in data.items() if v is not None})

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for f in fields(self):
            if f.name == "name":
                continue
            value = getattr(self, f.name)
            if value is None or value == []:
                continue
            result[f.name] = value
        return result


def apply_profile(options: ExecOptions, profile: ConfigProfile) -> ExecOptions:
    """Merge profile into options in place and return them."""
    defaults = ExecOptions()
    for key in _LIST_FIELDS:
        merged = list(getattr(options, key))
        for value in getattr(profile, key):
            if value not in merged:
                merged.append(value)
        setattr(options, key, merged)

    for key in _SCALAR_FIELDS:
        value = getattr(profile, key)
        if value is not None and getattr(options, key) == getattr(defaults, key):
            setattr(options, key, value)
    return options


class ConfigProfileManager:
    """
    Load and store profiles in a directory.

    Usage:
        manager = ConfigProfileManager(get_pyexec_home() / "profiles")
        manager.save_profile(ConfigProfile("web", include_web_references=True))
        profile = manager.get_profile("web")
    """

    def __init__(self, profiles_dir: Path):
        self.profiles_dir = Path(profiles_dir)

    def _path(self, name: str) -> Path:
        if not PROFILE_NAME_PATTERN.match(name or ""):
            raise ConfigError(f"Invalid profile name: {name!r}")
        return self.profiles_dir / f"{name}.yaml"

    def list_profiles(self) -> list[str]:
        if not self.profiles_dir.exists():
            return []
        return sorted(p.stem for p in self.profiles_dir.glob("*.yaml"))

    def get_profile(self, name: str) -> Optional[ConfigProfile]:
        path = self._path(name)
        if not path.exists():
            return None
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML syntax in {path}: {e}")
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"Profile file must contain a mapping: {path}")
        return ConfigProfile.from_dict(name, data)

    def save_profile(self, profile: ConfigProfile) -> Path:
        path = self._path(profile.name)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.safe_dump(profile.to_dict(), f, default_flow_style=False, sort_keys=False)
        logger.debug("Saved profile %s to %s", profile.name, path)
        return path

    def delete_profile(self, name: str) -> bool:
        path = self._path(name)
        if not path.exists():
            return False
        path.unlink()
        return True
