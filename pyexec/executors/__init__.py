"""
pyexec executors - run compiled modules in an isolated context.
"""

from .base import CodeExecutor, NoOpExecutor
from .context import ExecutionContext, ReferenceFinder
from .default import DefaultCodeExecutor, find_entry_point
from .factory import ExecutorFactory

__all__ = [
    "CodeExecutor",
    "NoOpExecutor",
    "ExecutionContext",
    "ReferenceFinder",
    "DefaultCodeExecutor",
    "find_entry_point",
    "ExecutorFactory",
]
