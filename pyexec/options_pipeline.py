"""
Configure stage - the last chance to adjust ExecOptions before they freeze.

Steps run in order; each takes the mutable options and returns them. The
default steps:
1. prepend the default usings (plus the web usings when requested)
2. add a ``project:`` reference for ``project_path``
3. drop duplicate references, keeping first occurrences

After the last step the options are frozen.
"""

import logging
from collections.abc import Callable
from typing import Iterable, Optional

from pyexec.schemas.options import ExecOptions
from pyexec.usings import default_usings

logger = logging.getLogger(__name__)


ConfigureStep = Callable[[ExecOptions], ExecOptions]


def add_default_usings(options: ExecOptions) -> ExecOptions:
    options.usings = default_usings(options.include_web_references) + list(options.usings)
    return options


def add_project_reference(options: ExecOptions) -> ExecOptions:
    if options.project_path:
        options.references = list(options.references) + [f"project:{options.project_path}"]
    return options


def dedupe_references(options: ExecOptions) -> ExecOptions:
    seen: set[str] = set()
    references = []
    for reference in options.references:
        key = reference.strip()
        if key and key not in seen:
            seen.add(key)
            references.append(key)
    options.references = references
    return options


DEFAULT_STEPS: tuple[ConfigureStep, ...] = (
    add_default_usings,
    add_project_reference,
    dedupe_references,
)


class OptionsConfigurePipeline:
    """
    Usage:
        pipeline = OptionsConfigurePipeline()
        options = pipeline.configure(options)   # options.frozen is now True
    """

    def __init__(self, steps: Optional[Iterable[ConfigureStep]] = None):
        self.steps = list(steps) if steps is not None else list(DEFAULT_STEPS)

    def configure(self, options: ExecOptions) -> ExecOptions:
        for step in self.steps:
            options = step(options)
        logger.debug("Configured options: %s", options.to_dict())
        return options.freeze()
