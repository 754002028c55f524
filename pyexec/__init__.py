"""
pyexec - Run Python snippets, files and URLs with declared references.

Resolves reference specifiers (files, folders, projects, frameworks and
registry packages), compiles the script through a pluggable compiler and runs
it inside an isolated, reclaimable execution context.
"""

__version__ = "0.1.0"
__author__ = "pyexec maintainers"


__all__ = ["PyexecConfig", "load_config", "get_pyexec_home", "ExecOptions", "ScriptRunner"]

from .config import PyexecConfig, load_config, get_pyexec_home
from .schemas import ExecOptions
from .runner import ScriptRunner
