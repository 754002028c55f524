"""
Base strategy protocol and the fan-out/fan-in join shared by the resolver.

Every specifier kind has a strategy that turns one specifier into module
paths. The resolver runs independent branches concurrently with fan_out(),
which waits for every branch before reporting:
- OperationCancelled from any branch (or a fired token) wins
- otherwise the first ResolutionError in branch order is re-raised
- anything else a branch raises is wrapped in ResolutionError
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence, TypeVar

from pyexec.cancellation import CancellationToken
from pyexec.errors import OperationCancelled, ResolutionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_WORKERS = 8
_POLL_INTERVAL = 0.1


@dataclass
class ResolveContext:
    """
    Per-call resolution settings handed to every strategy.

    Attributes:
        target_framework: Target moniker (py3.12)
        compilation: True for compile-mode (stub) references
        cancellation_token: Token polled by long-running branches
        use_reference_packages: Allow registry fallback for missing stub packs
    """
    target_framework: str
    compilation: bool
    cancellation_token: CancellationToken = field(default_factory=CancellationToken)
    use_reference_packages: bool = False

    def raise_if_cancelled(self, operation: str = "resolve") -> None:
        self.cancellation_token.raise_if_cancelled(operation)


class ReferenceStrategy(ABC):
    """Resolve one specifier kind into absolute module paths."""

    @abstractmethod
    def resolve(self, reference, ctx: ResolveContext) -> list[str]:
        """
        Resolve a single specifier.

        Args:
            reference: Specifier of the kind this strategy handles
            ctx: Resolution settings for the current call

        Returns:
            Absolute paths (possibly empty)

        Raises:
            ResolutionError: If the specifier cannot be satisfied
            OperationCancelled: If the token fired
        """
        pass


def fan_out(
    tasks: Sequence[Callable[[], T]],
    token: CancellationToken,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> list[T]:
    """
    Run tasks concurrently and join them.

    Args:
        tasks: Zero-argument callables, one per branch
        token: Cancellation token; pending branches are dropped once it fires
        max_workers: Thread pool size

    Returns:
        Branch results in task order

    Raises:
        OperationCancelled: If the token fired or any branch was cancelled
        ResolutionError: First branch failure in task order
    """
    if not tasks:
        return []
    token.raise_if_cancelled("resolve")

    executor = ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(tasks))))
    futures: list[Future] = []
    try:
        futures = [executor.submit(task) for task in tasks]
        pending = set(futures)
        while pending:
            done, pending = wait(pending, timeout=_POLL_INTERVAL, return_when=FIRST_COMPLETED)
            if token.is_cancellation_requested:
                for future in pending:
                    future.cancel()
                raise OperationCancelled("resolve cancelled")
    except KeyboardInterrupt:
        token.cancel()
        for future in futures:
            future.cancel()
        raise
    finally:
        executor.shutdown(wait=not token.is_cancellation_requested, cancel_futures=True)

    token.raise_if_cancelled("resolve")

    errors = [future.exception() for future in futures]
    for error in errors:
        if isinstance(error, OperationCancelled):
            raise error
    for error in errors:
        if isinstance(error, ResolutionError):
            raise error
        if error is not None:
            raise ResolutionError(str(error)) from error
    return [future.result() for future in futures]
