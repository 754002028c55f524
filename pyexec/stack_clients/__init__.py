"""
Clients for the collaborators pyexec talks to: the package registry and the
script source (file, inline text or URL).
"""

from .registry_client import (
    DEFAULT_INDEX_URL,
    RegistryClient,
    PyPIClient,
    RestoredPackage,
    requirement_applies,
    target_environment,
)
from .script_fetcher import FetchResult, ScriptContentFetcher

__all__ = [
    "DEFAULT_INDEX_URL",
    "RegistryClient",
    "PyPIClient",
    "RestoredPackage",
    "requirement_applies",
    "target_environment",
    "FetchResult",
    "ScriptContentFetcher",
]
