"""
ScriptRunner - fetch, configure, compile and execute one script.

Flow:
    empty script                 -> INVALID_SCRIPT
    fetch failure                -> FETCH_ERROR
    configure (profile, defaults, freeze)
    compile failure              -> COMPILE_ERROR
    dry run                      -> SUCCESS
    execute failure / no entry   -> EXECUTE_ERROR
    execution machinery fault    -> EXECUTE_EXCEPTION
    cancellation anywhere        -> OPERATION_CANCELLED
    otherwise                    -> the executed code's exit code

Every phase converts its own failures into result values; only
OperationCancelled crosses phases and is caught here.
"""

import logging
import sys
import time
from collections.abc import Callable
from typing import Optional

from pyexec.compilers.factory import CompilerFactory
from pyexec.config import PyexecConfig, get_pyexec_home, load_config
from pyexec.errors import ConfigError, OperationCancelled
from pyexec.executors.factory import ExecutorFactory
from pyexec.options_pipeline import OptionsConfigurePipeline
from pyexec.profiles import ConfigProfileManager, apply_profile
from pyexec.resolvers.framework import get_framework_layout
from pyexec.resolvers.resolver import ReferenceResolver
from pyexec.schemas.options import DEFAULT_COMPILER_TYPE, ExecOptions
from pyexec.schemas.results import ExitCodes
from pyexec.stack_clients.registry_client import PyPIClient, RegistryClient
from pyexec.stack_clients.script_fetcher import ScriptContentFetcher
from pyexec.utils import format_duration

logger = logging.getLogger(__name__)


ResolverFactory = Callable[[ExecOptions], ReferenceResolver]

__all__ = ["ExitCodes", "ScriptRunner"]


class ScriptRunner:
    """
    Orchestrates a single run.

    Usage:
        runner = ScriptRunner.create_default()
        exit_code = runner.execute(ExecOptions(script="code:print(123)"))
    """

    def __init__(
        self,
        resolver_factory: ResolverFactory,
        compiler_factory: Optional[CompilerFactory] = None,
        executor_factory: Optional[ExecutorFactory] = None,
        fetcher: Optional[ScriptContentFetcher] = None,
        profile_manager: Optional[ConfigProfileManager] = None,
        configure_pipeline: Optional[OptionsConfigurePipeline] = None,
    ):
        self._resolver_factory = resolver_factory
        self._compiler_factory = compiler_factory or CompilerFactory()
        self._executor_factory = executor_factory or ExecutorFactory()
        self._fetcher = fetcher or ScriptContentFetcher()
        self._profile_manager = profile_manager
        self._configure_pipeline = configure_pipeline or OptionsConfigurePipeline()

    @classmethod
    def create_default(
        cls,
        config: Optional[PyexecConfig] = None,
        registry_client: Optional[RegistryClient] = None,
    ) -> "ScriptRunner":
        """
        Create a runner wired from configuration.

        Args:
            config: Loaded configuration (load_config() when omitted)
            registry_client: Registry client (PyPIClient over the configured index when omitted)
        """
        config = config or load_config()
        if registry_client is None:
            registry_client = PyPIClient(
                index_url=config.resolved_index_url(),
                cache_dir=config.resolved_package_cache_dir(),
            )
        layout = get_framework_layout(config.resolved_packs_dir())

        def resolver_factory(options: ExecOptions) -> ReferenceResolver:
            return ReferenceResolver(registry_client, layout, disable_cache=options.disable_cache)

        return cls(
            resolver_factory=resolver_factory,
            profile_manager=ConfigProfileManager(get_pyexec_home() / "profiles"),
        )

    def execute(self, options: ExecOptions) -> int:
        """Run options end to end and return the process exit code."""
        try:
            return self._execute(options)
        except OperationCancelled as e:
            logger.warning("Operation cancelled: %s", e)
            return ExitCodes.OPERATION_CANCELLED
        except KeyboardInterrupt:
            options.cancellation_token.cancel()
            logger.warning("Operation cancelled by user")
            return ExitCodes.OPERATION_CANCELLED

    def _apply_profile(self, options: ExecOptions) -> None:
        if not options.config_profile or self._profile_manager is None:
            return
        try:
            profile = self._profile_manager.get_profile(options.config_profile)
        except ConfigError as e:
            logger.warning("Ignoring config profile %s: %s", options.config_profile, e)
            return
        if profile is None:
            logger.debug("Config profile %s not found, ignoring", options.config_profile)
            return
        apply_profile(options, profile)

    def _execute(self, options: ExecOptions) -> int:
        if not options.script or not options.script.strip():
            logger.error("The script can not be empty")
            return ExitCodes.INVALID_SCRIPT

        token = options.cancellation_token
        token.raise_if_cancelled("fetch")
        fetch_result = self._fetcher.fetch(options.script, token)
        if not fetch_result.success:
            logger.error(fetch_result.message)
            return ExitCodes.FETCH_ERROR

        if not options.frozen:
            self._apply_profile(options)
            if fetch_result.script_mode and options.compiler_type == DEFAULT_COMPILER_TYPE:
                options.compiler_type = "script"
            options = self._configure_pipeline.configure(options)

        logger.debug(
            "Compiler: %s, executor: %s, references: %s, usings: %s",
            options.compiler_type,
            options.executor_type,
            ";".join(options.references),
            ";".join(options.usings),
        )

        resolver = self._resolver_factory(options)
        compiler = self._compiler_factory.get_compiler(options.compiler_type, resolver)
        started = time.monotonic()
        compile_result = compiler.compile(options, fetch_result.text)
        logger.debug("Compile elapsed: %s", format_duration(time.monotonic() - started))

        if not compile_result.success:
            logger.error("Compile error:\n%s", compile_result.message)
            return ExitCodes.COMPILE_ERROR

        if options.dry_run:
            return ExitCodes.SUCCESS

        token.raise_if_cancelled("execute")
        executor = self._executor_factory.get_executor(options.executor_type)
        started = time.monotonic()
        try:
            execute_result = executor.execute(compile_result, options)
        except (OperationCancelled, KeyboardInterrupt):
            raise
        except Exception:
            logger.exception("Execute code exception")
            return ExitCodes.EXECUTE_EXCEPTION
        finally:
            sys.stdout.flush()

        if not execute_result.success:
            logger.error("Execute error:\n%s", execute_result.message)
            return execute_result.exit_code

        logger.debug("Execute elapsed: %s", format_duration(time.monotonic() - started))
        return execute_result.exit_code
