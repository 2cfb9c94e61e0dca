"""Helpers that load domain patterns into matchers and group matchers together."""

from __future__ import annotations

import io
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from mosdns.matcher.domain import MATCHER_DOMAIN, Matcher, MixMatcher, WriteableMatcher

T = TypeVar("T")

ParseStringFunc = Callable[[str], tuple[str, Any]]


def _remove_comment(s: str, symbol: str) -> str:
    return s.partition(symbol)[0]


def pattern_only(s: str) -> tuple[str, None]:
    """Return s as a pattern with no value; s must hold exactly one field."""
    fields = s.split()
    if len(fields) == 1:
        return fields[0], None
    raise ValueError("string does not only contain pattern")


def load(
    m: WriteableMatcher[T], s: str, parse_string: ParseStringFunc | None = None
) -> None:
    """Parse s into a pattern and a value and add them to m."""
    parse = parse_string or pattern_only
    pattern, v = parse(s)
    m.add(pattern, v)


def batch_load(
    m: WriteableMatcher[T], b: Iterable[str], parse_string: ParseStringFunc | None = None
) -> None:
    """Load every string of b into m."""
    for s in b:
        try:
            load(m, s, parse_string)
        except ValueError as exc:
            raise ValueError(f"failed to load data {s}: {exc}") from exc


def load_from_text_reader(
    m: WriteableMatcher[T],
    r: Iterable[str] | Iterable[bytes],
    parse_string: ParseStringFunc | None = None,
) -> None:
    """Load one pattern per line from r, skipping blanks and '#' comments."""
    for line_no, line in enumerate(r, 1):
        if isinstance(line, bytes):
            line = line.decode()
        s = _remove_comment(line, "#").strip()
        if not s:
            continue
        try:
            load(m, s, parse_string)
        except ValueError as exc:
            raise ValueError(f"line {line_no}: {exc}") from exc


def new_domain_mix_matcher() -> MixMatcher[None]:
    """Return a MixMatcher whose default pattern type is 'domain'."""
    m: MixMatcher[None] = MixMatcher()
    m.set_default_matcher(MATCHER_DOMAIN)
    return m


def parse_text_domain_file(data: bytes | str) -> MixMatcher[None]:
    """Build a domain MixMatcher from the text of a domain list file."""
    text = data.decode() if isinstance(data, bytes) else data
    m = new_domain_mix_matcher()
    load_from_text_reader(m, io.StringIO(text))
    return m


@dataclass
class V2Filter:
    """A tag of a v2ray domain list and the attributes a domain must have."""

    tag: str
    attrs: list[str] = field(default_factory=list)


def parse_v2_suffix(s: str) -> list[V2Filter]:
    """Parse 'tag[@attr@attr...],tag[@attr...]...' into filters."""
    filters = []
    for t in s.split(","):
        t = t.strip()
        if not t:
            continue
        tag, *attrs = t.split("@")
        filters.append(V2Filter(tag=tag, attrs=attrs))
    return filters


class MatcherGroup(Matcher[T]):
    """Matches with the first of its matchers that matches."""

    def __init__(self, matchers: Iterable[Matcher[T]] = ()) -> None:
        self._matchers: list[Matcher[T]] = list(matchers)

    def match(self, s: str) -> tuple[T | None, bool]:
        for sub in self._matchers:
            v, ok = sub.match(s)
            if ok:
                return v, True
        return None, False

    def __len__(self) -> int:
        return sum(len(sub) for sub in self._matchers)

    def append(self, m: Matcher[T]) -> None:
        self._matchers.append(m)


class DynamicMatcher(Matcher[T]):
    """A matcher that is rebuilt from raw data on each update."""

    def __init__(self, parser_func: Callable[[bytes], Matcher[T]]) -> None:
        self._parser_func = parser_func
        self._lock = threading.Lock()
        self._matcher: Matcher[T] | None = None

    def _current(self) -> Matcher[T] | None:
        with self._lock:
            return self._matcher

    def match(self, s: str) -> tuple[T | None, bool]:
        m = self._current()
        if m is None:
            return None, False
        return m.match(s)

    def __len__(self) -> int:
        m = self._current()
        return 0 if m is None else len(m)

    def update(self, data: bytes) -> None:
        m = self._parser_func(data)
        with self._lock:
            self._matcher = m