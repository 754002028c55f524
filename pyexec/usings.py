"""
Using directives - imports injected in front of every compiled script.

Grammar:
    ns            import ns
    static ns     from ns import *
    alias = ns    import ns as alias
    -<any above>  remove every directive targeting ns

Removal always wins over addition of the same namespace, independent of the
order the directives were given in.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

logger = logging.getLogger(__name__)


GLOBAL_PREFIX = "global::"

DEFAULT_USINGS = (
    "os",
    "sys",
    "re",
    "json",
    "asyncio",
    "pathlib",
    "collections",
    "itertools",
    "functools",
)

WEB_USINGS = (
    "http",
    "urllib.request",
    "urllib.parse",
    "http.client",
    "http.server",
    "wsgiref.simple_server",
)


class UsingKind(str, Enum):
    PLAIN = "plain"
    STATIC = "static"
    ALIAS = "alias"
    REMOVE = "remove"


@dataclass(frozen=True)
class UsingDirective:
    kind: UsingKind
    namespace: str
    alias: Optional[str] = None

    def to_import(self) -> str:
        if self.kind is UsingKind.STATIC:
            return f"from {self.namespace} import *"
        if self.kind is UsingKind.ALIAS:
            return f"import {self.namespace} as {self.alias}"
        if self.kind is UsingKind.PLAIN:
            return f"import {self.namespace}"
        raise ValueError(f"Remove directive has no import form: {self.namespace}")

    def __str__(self) -> str:
        if self.kind is UsingKind.STATIC:
            return f"static {self.namespace}"
        if self.kind is UsingKind.ALIAS:
            return f"{self.alias} = {self.namespace}"
        if self.kind is UsingKind.REMOVE:
            return f"-{self.namespace}"
        return self.namespace


def _normalize_namespace(text: str) -> Optional[str]:
    namespace = text.strip()
    if namespace.startswith(GLOBAL_PREFIX):
        namespace = namespace[len(GLOBAL_PREFIX):]
    if not namespace or not all(part.isidentifier() for part in namespace.split(".")):
        return None
    return namespace


def parse_using(text: str) -> Optional[UsingDirective]:
    """
    Parse one raw using directive.

    Returns:
        The directive, or None when the text is empty or malformed
    """
    if text is None:
        return None
    text = text.strip()
    if not text:
        return None

    remove = text.startswith("-")
    if remove:
        text = text[1:].strip()

    alias = None
    if text.startswith("static "):
        kind = UsingKind.STATIC
        text = text[len("static "):]
    elif "=" in text:
        kind = UsingKind.ALIAS
        alias, text = (part.strip() for part in text.split("=", 1))
        if not alias.isidentifier():
            return None
    else:
        kind = UsingKind.PLAIN

    namespace = _normalize_namespace(text)
    if namespace is None:
        return None
    if remove:
        return UsingDirective(UsingKind.REMOVE, namespace)
    return UsingDirective(kind, namespace, alias)


def get_usings(texts: Iterable[str]) -> list[UsingDirective]:
    """
    Compute the effective using set.

    Adds keep their first-seen order; any removal of a namespace drops every
    add targeting it.
    """
    adds: list[UsingDirective] = []
    removed: set[str] = set()
    for text in texts or ():
        directive = parse_using(text)
        if directive is None:
            logger.debug("Skipping malformed using: %r", text)
            continue
        if directive.kind is UsingKind.REMOVE:
            removed.add(directive.namespace)
        elif directive not in adds:
            adds.append(directive)
    return [d for d in adds if d.namespace not in removed]


def default_usings(include_web_references: bool = False) -> list[str]:
    usings = list(DEFAULT_USINGS)
    if include_web_references:
        usings.extend(WEB_USINGS)
    return usings


def get_import_text(usings: Iterable[UsingDirective]) -> str:
    """Import statements for the effective using set, one per line."""
    return "\n".join(u.to_import() for u in usings)
