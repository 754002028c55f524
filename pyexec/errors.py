"""
Error classes for pyexec.

Every phase of a run raises these internally and converts them into a result
value at its own boundary:
- FetchError: the script source could not be obtained
- ResolutionError: a reference specifier could not be resolved
- CompileError: diagnostics remained after the library fallback
- NoEntryPointFound: a library compile has nothing that can be invoked
- ExecuteError: the executed code raised
- ExecuteException: the execution machinery itself faulted

OperationCancelled is the only error allowed to cross phase boundaries; the
runner catches it once and maps it to the cancelled exit code.

The registry client classifies its own failures for retry decisions:
- TransientError: Safe to retry (rate limits, network issues)
- PermanentError: Do not retry (unknown package, no compatible wheel)
"""


class PyexecError(Exception):
    """Base exception for pyexec."""
    pass


class TransientError(PyexecError):
    """
    Transient error - safe to retry.

    Examples:
    - Registry rate limit exceeded
    - Network timeout
    - Connection reset
    """
    pass


class PermanentError(PyexecError):
    """
    Permanent error - do not retry.

    Examples:
    - Package or version not found (404)
    - No wheel compatible with the target framework
    - Digest mismatch on a downloaded archive
    """
    pass


class ConfigError(PyexecError):
    """Configuration validation error."""
    pass


class FetchError(PyexecError):
    """The script content could not be fetched."""
    pass


class ResolutionError(PyexecError):
    """A reference specifier could not be resolved."""

    def __init__(self, message: str, specifier: str | None = None):
        super().__init__(message)
        self.specifier = specifier


class CompileError(PyexecError):
    """Compilation produced error diagnostics."""

    def __init__(self, message: str, diagnostics=()):
        super().__init__(message)
        self.diagnostics = list(diagnostics)


class NoEntryPointFound(PyexecError):
    """A library module declares no method matching the entry point."""
    pass


class ExecuteError(PyexecError):
    """The executed code raised an exception."""
    pass


class ExecuteException(PyexecError):
    """The execution machinery failed (context creation, module load)."""
    pass


class OperationCancelled(PyexecError):
    """The cancellation token fired while an operation was in flight."""
    pass
