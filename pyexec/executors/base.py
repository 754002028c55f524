"""
Executor protocol and the no-op executor.

Executors receive a successful CompileResult and run it:
- default: load into an isolated ExecutionContext and invoke the entry point
- noop: verify nothing, execute nothing (compile-only runs)
"""

from abc import ABC, abstractmethod

from pyexec.schemas.options import ExecOptions
from pyexec.schemas.results import CompileResult, ExecuteResult


class CodeExecutor(ABC):
    """
    Abstract base class for executors.

    Executors never raise for failures of the executed code; they convert
    them into an ExecuteResult with the matching exit code.
    """

    @abstractmethod
    def execute(self, compile_result: CompileResult, options: ExecOptions) -> ExecuteResult:
        """
        Execute a compiled module.

        Args:
            compile_result: Successful compile result
            options: Frozen options of the current run

        Returns:
            ExecuteResult with the process exit code
        """
        pass


class NoOpExecutor(CodeExecutor):
    """
    No-op executor for compile-only verification.

    Returns success without loading anything.
    """

    def execute(self, compile_result: CompileResult, options: ExecOptions) -> ExecuteResult:
        """Return a no-op result without executing."""
        return ExecuteResult.ok(message="noop")
