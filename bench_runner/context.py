"""Worker facts and dependency versions attached to every benchmark result."""

from __future__ import annotations

import logging
import platform
import re
from pathlib import Path
from typing import Any, Iterator

import psutil

from bench_runner.models import WorkerContext
from bench_runner.settings import Settings, get_settings

logger = logging.getLogger(__name__)

# Tokens of the Elixir term literals found in a mix.lock file.
_TOKEN = re.compile(
    r"""
    (?P<space>\s+)
    |(?P<map_open>%\{)
    |(?P<open>[\[{])
    |(?P<close>[\]}])
    |(?P<comma>,)
    |(?P<arrow>=>)
    |(?P<key>(?:"(?:[^"\\]|\\.)*"|[A-Za-z_][\w@]*[?!]?):(?=\s))
    |(?P<string>"(?:[^"\\]|\\.)*")
    |(?P<atom>:(?:"(?:[^"\\]|\\.)*"|[A-Za-z_][\w@.]*[?!]?))
    |(?P<number>-?\d+(?:\.\d+)?)
    |(?P<word>true|false|nil)
    """,
    re.VERBOSE,
)

_CLOSING = {"[": "]", "{": "}", "%{": "}"}


class LockfileError(ValueError):
    pass


class Atom(str):
    """An Elixir atom, kept apart from strings so source tags can be matched."""


def collect_context(output_dir: Path, settings: Settings | None = None) -> WorkerContext:
    settings = settings or get_settings()
    return WorkerContext(
        dependency_versions=read_dependency_versions(output_dir / settings.lockfile_name),
        cpu_count=psutil.cpu_count(logical=True),
        worker_os=platform.system(),
        memory=_total_memory(),
        cpu_speed=_cpu_speed(),
    )


def read_dependency_versions(lockfile: Path) -> dict[str, str]:
    """Map each locked dependency to its git ref, hex version or local path.

    Returns an empty mapping when the lockfile is missing or does not parse
    as a single map literal.
    """
    try:
        lock = parse_lock(lockfile.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, LockfileError) as exc:
        logger.debug("no usable lockfile at %s: %s", lockfile, exc)
        return {}

    versions: dict[str, str] = {}
    for name, source in lock.items():
        value = _source_version(source)
        if isinstance(name, str) and isinstance(value, str):
            versions[name] = value
    return versions


def _source_version(source: Any) -> Any:
    if not isinstance(source, tuple) or len(source) < 2:
        return None
    tag = source[0]
    if not isinstance(tag, Atom):
        return None
    if tag in ("git", "hex") and len(source) > 2:
        return source[2]
    if tag == "path":
        return source[1]
    return None


def parse_lock(text: str) -> dict[Any, Any]:
    tokens = _Tokens(text)
    value = tokens.value()
    if not isinstance(value, dict):
        raise LockfileError("lockfile is not a map literal")
    tokens.expect_end()
    return value


class _Tokens:
    def __init__(self, text: str) -> None:
        self._iter = self._scan(text)
        self._peek: tuple[str, str] | None = next(self._iter, None)

    @staticmethod
    def _scan(text: str) -> Iterator[tuple[str, str]]:
        pos = 0
        while pos < len(text):
            match = _TOKEN.match(text, pos)
            if match is None:
                raise LockfileError(f"unexpected input at offset {pos}")
            pos = match.end()
            if match.lastgroup != "space":
                yield match.lastgroup, match.group()

    def _next(self) -> tuple[str, str]:
        if self._peek is None:
            raise LockfileError("unexpected end of lockfile")
        token, self._peek = self._peek, next(self._iter, None)
        return token

    def _at(self, kind: str, text: str | None = None) -> bool:
        return (
            self._peek is not None
            and self._peek[0] == kind
            and (text is None or self._peek[1] == text)
        )

    def expect_end(self) -> None:
        if self._peek is not None:
            raise LockfileError(f"trailing input {self._peek[1]!r}")

    def value(self) -> Any:
        kind, text = self._next()
        if kind == "map_open":
            return dict(self._items("%{", self._map_entry))
        if kind == "open" and text == "{":
            return tuple(self._items("{", self.value))
        if kind == "open":
            return list(self._items("[", self._list_item))
        if kind == "string":
            return _unquote(text)
        if kind == "atom":
            return Atom(_unquote(text[1:]))
        if kind == "number":
            return float(text) if "." in text else int(text)
        if kind == "word":
            return {"true": True, "false": False, "nil": None}[text]
        raise LockfileError(f"unexpected {text!r}")

    def _items(self, opener: str, item) -> Iterator[Any]:
        closer = _CLOSING[opener]
        while not self._at("close", closer):
            yield item()
            if self._at("comma"):
                self._next()
            elif not self._at("close", closer):
                raise LockfileError(f"expected ',' or {closer!r}")
        self._next()

    def _map_entry(self) -> tuple[Any, Any]:
        if self._at("key"):
            return _unquote(self._next()[1][:-1]), self.value()
        key = self.value()
        kind, text = self._next()
        if kind != "arrow":
            raise LockfileError(f"expected '=>' after map key, got {text!r}")
        return key, self.value()

    def _list_item(self) -> Any:
        if self._at("key"):
            return Atom(_unquote(self._next()[1][:-1])), self.value()
        return self.value()


def _unquote(text: str) -> str:
    if text.startswith('"'):
        return re.sub(r"\\(.)", r"\1", text[1:-1])
    return text


def _total_memory() -> str:
    return f"{psutil.virtual_memory().total / 1024**3:.2f} GB"


def _cpu_speed() -> str:
    try:
        freq = psutil.cpu_freq()
    except (NotImplementedError, OSError):
        freq = None
    mhz = (freq.max or freq.current) if freq else 0
    if mhz:
        return f"{mhz:.0f} MHz"
    return platform.processor() or "Unknown"
