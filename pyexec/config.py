"""
Configuration management for pyexec.

Loads ``<home>/config.yaml`` where home is ``$PYEXEC_HOME`` or
``~/.config/pyexec``. A missing file yields defaults. Environment variables
override the file for the toolchain locations:

    PYEXEC_PACKS_DIR       local stub packs and shared frameworks
    PYEXEC_PACKAGE_CACHE   extracted registry packages
    PYEXEC_INDEX_URL       registry JSON API base URL
"""

import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from .errors import ConfigError
from .schemas.options import DEFAULT_ENTRY_POINT
from .stack_clients.registry_client import DEFAULT_INDEX_URL


def get_pyexec_home() -> Path:
    """Return the pyexec home directory."""
    env_home = os.environ.get("PYEXEC_HOME")
    if env_home:
        return Path(env_home).expanduser()
    return Path("~/.config/pyexec").expanduser()


@dataclass(frozen=True)
class PyexecConfig:
    """
    pyexec settings.

    Attributes:
        packs_dir: Stub packs (<Framework>.Ref/) and shared frameworks (shared/)
        package_cache_dir: Where registry packages are extracted
        index_url: Registry JSON API base URL
        default_target_framework: Moniker used when the CLI gives none
        default_entry_point: Entry method name for library-compiled scripts
        log_level: DEBUG, INFO, WARNING, ERROR
        log_format: pretty (rich) or plain
        log_file: Optional structured (JSON lines) log file
        env_file: Optional .env file loaded into the environment
    """
    packs_dir: Optional[str] = None
    package_cache_dir: Optional[str] = None
    index_url: str = DEFAULT_INDEX_URL
    default_target_framework: Optional[str] = None
    default_entry_point: str = DEFAULT_ENTRY_POINT
    log_level: str = "INFO"
    log_format: str = "pretty"
    log_file: Optional[str] = None
    env_file: Optional[str] = None

    def resolved_packs_dir(self) -> Path:
        value = os.environ.get("PYEXEC_PACKS_DIR") or self.packs_dir
        return Path(value).expanduser() if value else get_pyexec_home() / "packs"

    def resolved_package_cache_dir(self) -> Path:
        value = os.environ.get("PYEXEC_PACKAGE_CACHE") or self.package_cache_dir
        return Path(value).expanduser() if value else get_pyexec_home() / "packages"

    def resolved_index_url(self) -> str:
        return os.environ.get("PYEXEC_INDEX_URL") or self.index_url

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


_KNOWN_KEYS = {f.name for f in fields(PyexecConfig)}


def load_config(config_path: Optional[Path] = None) -> PyexecConfig:
    """
    Load pyexec configuration from YAML.

    Args:
        config_path: Path to config file. Defaults to <home>/config.yaml

    Returns:
        PyexecConfig instance (defaults when the file does not exist)

    Raises:
        ConfigError: If the file is not valid YAML or has unknown keys
    """
    if config_path is None:
        config_path = get_pyexec_home() / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        return PyexecConfig()

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {config_path}: {e}")

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file must contain a mapping: {config_path}")

    unknown = sorted(set(data) - _KNOWN_KEYS)
    if unknown:
        raise ConfigError(f"Unknown configuration keys in {config_path}: {', '.join(unknown)}")

    config = PyexecConfig(**data)
    if config.log_format not in ("pretty", "plain"):
        raise ConfigError(f"log_format must be 'pretty' or 'plain', got {config.log_format!r}")

    if config.env_file:
        env_path = Path(config.env_file).expanduser()
        if env_path.exists():
            load_dotenv(env_path)

    return config
