"""
Default executor - run compiled code inside an ExecutionContext.

Application modules run their body as ``__main__`` with ``sys.argv`` swapped.
Library modules are loaded under their unique name and the entry point is
looked up on their classes:

1. classes in declaration order, restricted to ``startup_type`` when given,
   public names before ``_private`` ones
2. the first ``staticmethod``/``classmethod`` named ``entry_point``
3. a module-level function with that name, when no startup type is given

Exit code: an ``int`` returned by the entry point (``bool`` excluded) is used
verbatim, ``None`` and anything else give 0, ``SystemExit`` is honoured.
"""

import asyncio
import inspect
import logging
import marshal
import sys
import traceback
import types
from typing import Any, Callable, Optional, Sequence

from pyexec.errors import ExecuteError, ExecuteException, NoEntryPointFound
from pyexec.schemas.options import ExecOptions
from pyexec.schemas.results import CompileResult, ExecuteResult, ExitCodes, OutputKind
from pyexec.executors.base import CodeExecutor
from pyexec.executors.context import ExecutionContext

logger = logging.getLogger(__name__)


def exit_code_from_system_exit(e: SystemExit) -> int:
    code = e.code
    if code is None:
        return ExitCodes.SUCCESS
    if isinstance(code, int) and not isinstance(code, bool):
        return code
    print(code, file=sys.stderr)
    return 1


def exit_code_from_return(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return ExitCodes.SUCCESS


def find_entry_point(
    module: types.ModuleType, entry_point: str, startup_type: Optional[str] = None
) -> Callable[..., Any]:
    """
    Locate the entry callable of a library module.

    Raises:
        NoEntryPointFound: If no class (or function) provides entry_point
    """
    classes = [
        obj for obj in vars(module).values()
        if isinstance(obj, type) and obj.__module__ == module.__name__
    ]
    if startup_type:
        classes = [cls for cls in classes if cls.__name__ == startup_type]
    classes.sort(key=lambda cls: cls.__name__.startswith("_"))

    for cls in classes:
        attr = cls.__dict__.get(entry_point)
        if isinstance(attr, (staticmethod, classmethod)):
            logger.debug("Entry point: %s.%s", cls.__name__, entry_point)
            return getattr(cls, entry_point)

    if not startup_type:
        func = vars(module).get(entry_point)
        if inspect.isfunction(func) and func.__module__ == module.__name__:
            logger.debug("Entry point: module function %s", entry_point)
            return func

    where = f"type '{startup_type}'" if startup_type else "any type"
    raise NoEntryPointFound(f"No static method '{entry_point}' found in {where}")


def accepts_arguments(func: Callable[..., Any]) -> bool:
    try:
        return len(inspect.signature(func).parameters) > 0
    except (TypeError, ValueError):
        return False


def run_awaitable(value: Any) -> Any:
    if inspect.isawaitable(value):
        async def _await():
            return await value
        return asyncio.run(_await())
    return value


class DefaultCodeExecutor(CodeExecutor):
    """
    Execute in a fresh ExecutionContext per call.

    Usage:
        executor = DefaultCodeExecutor()
        result = executor.execute(compile_result, options)
    """

    def execute(self, compile_result: CompileResult, options: ExecOptions) -> ExecuteResult:
        context = ExecutionContext(compile_result.references, compile_result.modules)
        try:
            try:
                context.install()
                code = marshal.loads(compile_result.code)
            except ExecuteException as e:
                return ExecuteResult.failed(e, ExitCodes.EXECUTE_EXCEPTION)
            except (ValueError, EOFError, TypeError) as e:
                error = ExecuteException(f"Failed to load compiled module: {e}")
                return ExecuteResult.failed(error, ExitCodes.EXECUTE_EXCEPTION)

            if compile_result.output_kind is OutputKind.APPLICATION:
                exit_code = self._run_application(context, code, compile_result, options.arguments)
            else:
                exit_code = self._run_library(context, code, compile_result, options)
            return ExecuteResult.ok(exit_code)
        except (ExecuteError, NoEntryPointFound) as e:
            return ExecuteResult.failed(e, ExitCodes.EXECUTE_ERROR)
        finally:
            context.release()

    @staticmethod
    def _invoke(action: Callable[[], Any]) -> int:
        try:
            return exit_code_from_return(run_awaitable(action()))
        except SystemExit as e:
            return exit_code_from_system_exit(e)
        except Exception as e:
            raise ExecuteError("".join(traceback.format_exception(e)).rstrip()) from e

    def _run_application(
        self,
        context: ExecutionContext,
        code: types.CodeType,
        compile_result: CompileResult,
        arguments: Sequence[str],
    ) -> int:
        module = context.enter_main(compile_result.filename, arguments)
        # Code with top-level await evaluates to a coroutine
        return self._invoke(lambda: eval(code, module.__dict__))

    def _run_library(
        self,
        context: ExecutionContext,
        code: types.CodeType,
        compile_result: CompileResult,
        options: ExecOptions,
    ) -> int:
        try:
            context.load_module(compile_result.module_name, code, compile_result.filename)
        except SystemExit as e:
            # The body ended the run before any entry point was looked up
            return exit_code_from_system_exit(e)
        except Exception as e:
            raise ExecuteError("".join(traceback.format_exception(e)).rstrip()) from e
        module = sys.modules[compile_result.module_name]
        entry = find_entry_point(module, options.entry_point, options.startup_type)
        if accepts_arguments(entry):
            return self._invoke(lambda: entry(list(options.arguments)))
        return self._invoke(entry)
