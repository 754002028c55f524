"""
Result values passed between the compile and execute phases.

Phases raise internally and convert to these values at their own boundary,
so the runner only inspects ``success`` and ``error``.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional

from pyexec.errors import PyexecError


class ExitCodes(IntEnum):
    """Process exit codes; stable so calling scripts can branch on cause."""
    SUCCESS = 0
    INVALID_SCRIPT = 1
    FETCH_ERROR = 2
    COMPILE_ERROR = 3
    EXECUTE_ERROR = 4
    OPERATION_CANCELLED = 5
    EXECUTE_EXCEPTION = 6


class Severity(str, Enum):
    ERROR = "Error"
    WARNING = "Warning"


class OutputKind(str, Enum):
    APPLICATION = "application"
    LIBRARY = "library"


@dataclass(frozen=True)
class Diagnostic:
    """
    A single compiler diagnostic.

    Attributes:
        id: Stable diagnostic id (e.g. PY1001)
        severity: Error or Warning
        message: Formatted ``file(line,col): severity id: text`` message
    """
    id: str
    severity: Severity
    message: str

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def format(self) -> str:
        return f"{self.id}-{self.severity.value}-{self.message}"


def format_diagnostics(diagnostics) -> str:
    return "\n".join(d.format() for d in diagnostics)


@dataclass
class CompileResult:
    """
    Outcome of a compiler strategy.

    Attributes:
        success: True when ``code`` holds a loadable module
        diagnostics: Every diagnostic reported, warnings included
        code: marshal bytes of the top-level code object
        output_kind: application (run the body) or library (find an entry method)
        references: Execute-mode reference paths the module may import from
        modules: Extra in-memory modules (sibling scripts, generated code)
        module_name: Unique name of the compiled module
        filename: Filename recorded in the code object
        error: The taxonomy exception when compilation failed
    """
    success: bool
    diagnostics: list[Diagnostic] = field(default_factory=list)
    code: Optional[bytes] = None
    output_kind: OutputKind = OutputKind.APPLICATION
    references: tuple[str, ...] = ()
    modules: dict[str, bytes] = field(default_factory=dict)
    module_name: str = ""
    filename: str = "<script>"
    error: Optional[PyexecError] = None

    @property
    def message(self) -> str:
        if self.diagnostics:
            return format_diagnostics(self.diagnostics)
        return str(self.error) if self.error is not None else ""

    @classmethod
    def failed(cls, error: PyexecError, diagnostics=(), **kwargs) -> "CompileResult":
        return cls(success=False, diagnostics=list(diagnostics), error=error, **kwargs)


@dataclass
class ExecuteResult:
    """Outcome of an executor: success flag, message and process exit code."""
    success: bool
    message: str = ""
    exit_code: int = ExitCodes.SUCCESS
    error: Optional[PyexecError] = None

    @classmethod
    def ok(cls, exit_code: int = ExitCodes.SUCCESS, message: str = "") -> "ExecuteResult":
        return cls(success=True, message=message, exit_code=exit_code)

    @classmethod
    def failed(cls, error: PyexecError, exit_code: int) -> "ExecuteResult":
        return cls(success=False, message=str(error), exit_code=exit_code, error=error)
