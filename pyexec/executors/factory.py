"""
Executor factory - select an executor by name.

    noop       NoOpExecutor (compile-only verification)
    <other>    DefaultCodeExecutor
"""

from typing import Optional

from pyexec.executors.base import CodeExecutor, NoOpExecutor
from pyexec.executors.default import DefaultCodeExecutor


class ExecutorFactory:

    def get_executor(self, executor_type: Optional[str]) -> CodeExecutor:
        if (executor_type or "").strip().lower() == "noop":
            return NoOpExecutor()
        return DefaultCodeExecutor()
