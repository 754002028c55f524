"""
Script content fetcher - turns a script descriptor into source text.

Descriptors:
- ``code:<text>``: inline source
- ``script:<text>``: inline source evaluated by the script compiler
- http(s) URL: fetched with requests; GitHub blob pages and gist pages are
  rewritten to their raw content URLs
- existing file path: read as UTF-8
- anything else that parses as Python (and is not a ``*.py`` path): inline
  source evaluated by the script compiler, e.g. ``pyexec run "2 ** 10"``
"""

import ast
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import requests

from pyexec.cancellation import CancellationToken
from pyexec.errors import FetchError

logger = logging.getLogger(__name__)


CODE_PREFIX = "code:"
SCRIPT_PREFIX = "script:"
DEFAULT_TIMEOUT = 30.0


@dataclass
class FetchResult:
    success: bool
    text: str = ""
    message: str = ""
    # Inline text meant for the script compiler
    script_mode: bool = False


def is_url(script: str) -> bool:
    parsed = urlparse(script)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def normalize_url(url: str) -> str:
    """
    Rewrite human-facing URLs to raw content URLs.

    https://github.com/<owner>/<repo>/blob/<ref>/<path>
        -> https://raw.githubusercontent.com/<owner>/<repo>/<ref>/<path>
    https://gist.github.com/<user>/<id>
        -> https://gist.githubusercontent.com/<user>/<id>/raw
    """
    parsed = urlparse(url)
    parts = [p for p in parsed.path.split("/") if p]
    if parsed.netloc == "github.com" and len(parts) > 4 and parts[2] == "blob":
        owner, repo, _, ref, *rest = parts
        return f"https://raw.githubusercontent.com/{owner}/{repo}/{ref}/{'/'.join(rest)}"
    if parsed.netloc == "gist.github.com" and len(parts) == 2:
        user, gist_id = parts
        return f"https://gist.githubusercontent.com/{user}/{gist_id}/raw"
    return url


def looks_like_code(script: str) -> bool:
    if script.strip().endswith(".py"):
        return False
    try:
        ast.parse(script)
    except (SyntaxError, ValueError):
        return False
    return True


class ScriptContentFetcher:
    """Fetch script text for a descriptor; failures come back as FetchResult."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = DEFAULT_TIMEOUT):
        self._session = session or requests.Session()
        self._timeout = timeout

    def fetch(self, script: str, token: Optional[CancellationToken] = None) -> FetchResult:
        try:
            text, script_mode = self._fetch(script, token)
        except FetchError as e:
            return FetchResult(success=False, message=str(e))
        return FetchResult(success=True, text=text, script_mode=script_mode)

    def _fetch(self, script: str, token: Optional[CancellationToken]) -> tuple[str, bool]:
        if script.startswith(SCRIPT_PREFIX):
            return script[len(SCRIPT_PREFIX):], True
        if script.startswith(CODE_PREFIX):
            return script[len(CODE_PREFIX):], False

        if is_url(script):
            return self._fetch_url(normalize_url(script), token), False

        path = Path(script).expanduser()
        if path.is_file():
            try:
                return path.read_text(encoding="utf-8"), False
            except (OSError, UnicodeDecodeError) as e:
                raise FetchError(f"Failed to read script {path}: {e}") from e

        if looks_like_code(script):
            logger.debug("Treating script argument as inline code")
            return script, True

        raise FetchError(f"Script not found: {script}")

    def _fetch_url(self, url: str, token: Optional[CancellationToken]) -> str:
        if token is not None:
            token.raise_if_cancelled(f"fetch {url}")
        logger.debug("Fetching script from %s", url)
        try:
            response = self._session.get(url, timeout=self._timeout)
        except requests.RequestException as e:
            raise FetchError(f"Failed to fetch {url}: {e}") from e
        if response.status_code >= 400:
            raise FetchError(f"Failed to fetch {url}: HTTP {response.status_code}")
        return response.text
