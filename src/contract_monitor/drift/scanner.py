"""Client source scanner.

Extracts HTTP call sites from JavaScript/TypeScript source with a small
tokenizer and a fixed set of call shapes:

    fetch('/api/notes')
    fetch('/api/notes', { method: 'POST' })
    axios.post('/api/notes')            api.get<Note[]>('/api/notes')
    request({ url: '/api/notes', method: 'PUT' })

This is not a full parse. Calls whose path is built at runtime (template
literals with ``${...}``, concatenation, variables) are not detected.
"""

import logging
import os
import re
from pathlib import Path
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict

from contract_monitor.errors import ScanIoError

logger = logging.getLogger(__name__)

DEFAULT_API_PREFIX = "/api"
DEFAULT_EXTENSIONS = (".js", ".jsx", ".ts", ".tsx")
DEFAULT_SKIP_DIRS = ("node_modules", ".git", "dist", "build")

HTTP_VERBS = {"get", "post", "put", "patch", "delete", "head", "options"}
CLIENT_SUFFIXES = ("axios", "api", "client", "http")
CONFIG_CALLEES = {"request", "axios"}

_TOKEN_RE = re.compile(
    r"""
    (?P<comment>//[^\n]*|/\*.*?\*/)
  | (?P<string>'(?:\\.|[^'\\\n])*'|"(?:\\.|[^"\\\n])*")
  | (?P<template>`(?:\\.|[^`\\])*`)
  | (?P<ident>[A-Za-z_$][\w$]*)
  | (?P<number>\d+(?:\.\d+)?)
  | (?P<space>\s+)
  | (?P<punct>.)
    """,
    re.VERBOSE | re.DOTALL,
)


class ApiCallSite(BaseModel):
    """One HTTP call found in client source. Approximate by construction."""

    model_config = ConfigDict(frozen=True)

    method: str
    path: str
    file: str
    line: int


class Token(NamedTuple):
    kind: str  # ident / string / punct / number
    value: str
    offset: int
    dynamic: bool = False


def tokenize(source: str) -> list[Token]:
    """Significant tokens of ``source``; comments and whitespace are dropped."""
    tokens = []
    for match in _TOKEN_RE.finditer(source):
        kind = match.lastgroup
        text = match.group()
        if kind in ("comment", "space"):
            continue
        if kind == "string":
            tokens.append(Token("string", text[1:-1], match.start()))
        elif kind == "template":
            tokens.append(Token("string", text[1:-1], match.start(), dynamic="${" in text))
        else:
            tokens.append(Token(kind, text, match.start()))
    return tokens


class SourceScanner:
    """Finds API call sites in client source files."""

    def __init__(
        self,
        api_prefix: str = DEFAULT_API_PREFIX,
        extensions: tuple[str, ...] = DEFAULT_EXTENSIONS,
        skip_dirs: tuple[str, ...] = DEFAULT_SKIP_DIRS,
    ):
        self.api_prefix = api_prefix
        self.extensions = tuple(extensions)
        self.skip_dirs = set(skip_dirs)

    # -- single file ----------------------------------------------------------

    def extract_call_sites(self, source_text: str, file_id: str) -> list[ApiCallSite]:
        tokens = tokenize(source_text)
        sites = []
        for index, token in enumerate(tokens):
            if token.kind != "ident":
                continue
            found = self._match_call(tokens, index)
            if found is None:
                continue
            method, url = found
            path = _strip_query(url)
            if not path.startswith(self.api_prefix):
                continue
            sites.append(
                ApiCallSite(
                    method=method.upper(),
                    path=path,
                    file=file_id,
                    line=source_text.count("\n", 0, token.offset) + 1,
                )
            )
        return sites

    def _match_call(self, tokens: list[Token], i: int) -> tuple[str, str] | None:
        name = tokens[i].value

        # fetch(url) / fetch(url, { method })
        if name == "fetch" and _is_punct(tokens, i + 1, "("):
            url = _static_string(tokens, i + 2)
            if url is None:
                return None
            method = "GET"
            if _is_punct(tokens, i + 3, ",") and _is_punct(tokens, i + 4, "{"):
                method = _object_fields(tokens, i + 4).get("method", method)
            return method, url

        # <client>.<verb>(url) with an optional generic argument
        if name.lower().endswith(CLIENT_SUFFIXES) and _is_punct(tokens, i + 1, "."):
            verb = tokens[i + 2] if i + 2 < len(tokens) else None
            if verb is None or verb.kind != "ident" or verb.value.lower() not in HTTP_VERBS:
                return None
            j = _skip_generic(tokens, i + 3)
            if not _is_punct(tokens, j, "("):
                return None
            url = _static_string(tokens, j + 1)
            if url is None:
                return None
            return verb.value, url

        # request({ url, method }) / axios({ url, method })
        if name in CONFIG_CALLEES and _is_punct(tokens, i + 1, "(") and _is_punct(tokens, i + 2, "{"):
            fields = _object_fields(tokens, i + 2)
            if "url" in fields:
                return fields.get("method", "GET"), fields["url"]

        return None

    # -- source tree ------------------------------------------------------------

    def scan_tree(self, root: Path) -> dict[tuple[str, str], list[ApiCallSite]]:
        """Scan every relevant file under ``root``, grouped by (method, path)."""
        root = Path(root)
        if not root.is_dir():
            raise ScanIoError(str(root), "not a readable directory")

        calls: dict[tuple[str, str], list[ApiCallSite]] = {}
        for file_path in self._iter_files(root):
            try:
                text = file_path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Failed to scan file %s: %s", file_path, e)
                continue
            for site in self.extract_call_sites(text, str(file_path)):
                calls.setdefault((site.method, site.path), []).append(site)

        logger.info("Found %d distinct API calls under %s", len(calls), root)
        return calls

    def _iter_files(self, root: Path):
        def on_error(error: OSError) -> None:
            if Path(error.filename or "") == root:
                raise ScanIoError(str(root), error.strerror or str(error))
            logger.warning("Skipping unreadable directory %s: %s", error.filename, error)

        for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
            dirnames[:] = sorted(d for d in dirnames if d not in self.skip_dirs)
            for filename in sorted(filenames):
                if filename.endswith(self.extensions):
                    yield Path(dirpath) / filename


def _is_punct(tokens: list[Token], i: int, value: str) -> bool:
    return i < len(tokens) and tokens[i].kind == "punct" and tokens[i].value == value


def _static_string(tokens: list[Token], i: int) -> str | None:
    if i < len(tokens) and tokens[i].kind == "string" and not tokens[i].dynamic:
        return tokens[i].value
    return None


def _skip_generic(tokens: list[Token], i: int) -> int:
    """Index just past a ``<...>`` type argument starting at ``i``, else ``i``."""
    if not _is_punct(tokens, i, "<"):
        return i
    depth = 0
    for j in range(i, len(tokens)):
        if _is_punct(tokens, j, "<"):
            depth += 1
        elif _is_punct(tokens, j, ">"):
            depth -= 1
            if depth == 0:
                return j + 1
        elif _is_punct(tokens, j, "(") or _is_punct(tokens, j, ";"):
            break
    return i


def _object_fields(tokens: list[Token], start: int) -> dict[str, str]:
    """Top-level ``key: 'literal'`` pairs of the object literal opening at ``start``."""
    fields: dict[str, str] = {}
    depth = 0
    for j in range(start, len(tokens)):
        token = tokens[j]
        if token.kind == "punct" and token.value in "{[(":
            depth += 1
        elif token.kind == "punct" and token.value in "}])":
            depth -= 1
            if depth == 0:
                break
        elif depth == 1 and token.kind in ("ident", "string") and _is_punct(tokens, j + 1, ":"):
            value = _static_string(tokens, j + 2)
            if value is not None and token.value in ("url", "method"):
                fields.setdefault(token.value, value)
    return fields


def _strip_query(url: str) -> str:
    return re.split(r"[?#]", url, maxsplit=1)[0]
