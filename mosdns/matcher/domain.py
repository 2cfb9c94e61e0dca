"""Domain name matchers: full, sub-domain, keyword, regular expression and mixed."""

from __future__ import annotations

import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from itertools import islice
from typing import Any, Generic, TypeVar

T = TypeVar("T")

MATCHER_FULL = "full"
MATCHER_DOMAIN = "domain"
MATCHER_REGEXP = "regexp"
MATCHER_KEYWORD = "keyword"


def trim_dot(s: str) -> str:
    """Remove one trailing '.' from s."""
    return s.removesuffix(".")


def unify_domain(s: str) -> str:
    """Remove the trailing '.' and lower-case the domain."""
    return trim_dot(s).lower()


class Matcher(ABC, Generic[T]):
    """Matches a domain name and returns ``(value, matched)``."""

    @abstractmethod
    def match(self, s: str) -> tuple[T | None, bool]:
        """Match domain s, which may or may not be a fqdn; case-insensitive."""

    @abstractmethod
    def __len__(self) -> int:
        """Number of patterns held."""


class WriteableMatcher(Matcher[T]):
    """A matcher that accepts new patterns."""

    @abstractmethod
    def add(self, pattern: str, v: T) -> None:
        """Add pattern with its value v."""


class DomainScanner:
    """Walks the labels of a unified domain from right to left."""

    def __init__(self, s: str) -> None:
        self._domain = unify_domain(s)
        self._n = len(self._domain)

    def scan(self) -> bool:
        return self._n > 0

    def prev_label_offset(self) -> int:
        self._n = self._domain.rfind(".", 0, self._n)
        return self._n + 1

    def prev_label(self) -> tuple[str, bool]:
        n = self._domain.rfind(".", 0, self._n)
        label = self._domain[n + 1 : self._n]
        self._n = n
        return label, n == -1

    def prev_sub_domain(self) -> tuple[str, bool]:
        n = self._domain.rfind(".", 0, self._n)
        self._n = n
        return self._domain[n + 1 :], n == -1


class LabelNode(Generic[T]):
    """A node of a label tree, optionally holding a value."""

    def __init__(self) -> None:
        self._children: dict[str, LabelNode[T]] = {}
        self._value: T | None = None
        self._has_value = False

    def store_value(self, v: T) -> None:
        self._value = v
        self._has_value = True

    def get_value(self) -> T | None:
        return self._value

    def has_value(self) -> bool:
        return self._has_value

    def new_child(self, key: str) -> LabelNode[T]:
        node: LabelNode[T] = LabelNode()
        self._children[key] = node
        return node

    def get_child(self, key: str) -> LabelNode[T] | None:
        return self._children.get(key)

    def __len__(self) -> int:
        return sum(len(node) + int(node.has_value()) for node in self._children.values())


class SubDomainMatcher(WriteableMatcher[T]):
    """Matches a domain and all of its sub-domains."""

    def __init__(self) -> None:
        self._root: LabelNode[T] = LabelNode()

    def match(self, s: str) -> tuple[T | None, bool]:
        node: LabelNode[T] | None = self._root
        value: T | None = None
        ok = False
        scanner = DomainScanner(s)
        while scanner.scan():
            label, _ = scanner.prev_label()
            node = node.get_child(label)
            if node is None:
                break
            if node.has_value():
                value, ok = node.get_value(), True
        return value, ok

    def add(self, s: str, v: T) -> None:
        node = self._root
        scanner = DomainScanner(s)
        while scanner.scan():
            label, _ = scanner.prev_label()
            child = node.get_child(label)
            if child is None:
                child = node.new_child(label)
            node = child
        node.store_value(v)

    def __len__(self) -> int:
        return len(self._root)


class FullMatcher(WriteableMatcher[T]):
    """Matches a domain exactly."""

    def __init__(self) -> None:
        self._entries: dict[str, T] = {}

    def add(self, s: str, v: T) -> None:
        self._entries[unify_domain(s)] = v

    def match(self, s: str) -> tuple[T | None, bool]:
        key = unify_domain(s)
        if key in self._entries:
            return self._entries[key], True
        return None, False

    def __len__(self) -> int:
        return len(self._entries)


class KeywordMatcher(WriteableMatcher[T]):
    """Matches domains that contain a keyword."""

    def __init__(self) -> None:
        self._keywords: dict[str, T] = {}

    def add(self, keyword: str, v: T) -> None:
        self._keywords[keyword] = v

    def match(self, s: str) -> tuple[T | None, bool]:
        domain = unify_domain(s)
        for keyword, v in self._keywords.items():
            if keyword in domain:
                return v, True
        return None, False

    def __len__(self) -> int:
        return len(self._keywords)


@dataclass
class _RegElem:
    reg: re.Pattern[str]
    value: Any


class _RegCache:
    """A bounded cache of regexp match results."""

    def __init__(self, capacity: int) -> None:
        self._capacity = capacity
        self._lock = threading.Lock()
        self._entries: dict[str, _RegElem | None] = {}

    def cache(self, s: str, res: _RegElem | None) -> None:
        with self._lock:
            if len(self._entries) >= self._capacity:
                evicted = list(islice(self._entries, self._capacity // 8 + 1))
                for key in evicted:
                    del self._entries[key]
            self._entries[s] = res

    def lookup(self, s: str) -> tuple[_RegElem | None, bool]:
        with self._lock:
            if s in self._entries:
                return self._entries[s], True
            return None, False

    def reset(self) -> None:
        with self._lock:
            self._entries = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RegexMatcher(WriteableMatcher[T]):
    """Matches domains against regular expressions, with an optional result cache."""

    def __init__(self, cache_size: int = 0) -> None:
        self._regs: dict[str, _RegElem] = {}
        self._cache = _RegCache(cache_size) if cache_size > 0 else None

    def add(self, expr: str, v: T) -> None:
        elem = self._regs.get(expr)
        if elem is not None:
            elem.value = v
            return
        try:
            reg = re.compile(expr)
        except re.error as exc:
            raise ValueError(f"invalid regular expression {expr!r}: {exc}") from exc
        self._regs[expr] = _RegElem(reg, v)

    def match(self, s: str) -> tuple[T | None, bool]:
        domain = trim_dot(s)
        if self._cache is not None:
            elem, hit = self._cache.lookup(domain)
            if hit:
                return (elem.value, True) if elem is not None else (None, False)

        for elem in self._regs.values():
            if elem.reg.search(domain):
                if self._cache is not None:
                    self._cache.cache(domain, elem)
                return elem.value, True

        if self._cache is not None:
            self._cache.cache(domain, None)
        return None, False

    def __len__(self) -> int:
        return len(self._regs)

    def reset_cache(self) -> None:
        if self._cache is not None:
            self._cache.reset()


class MixMatcher(WriteableMatcher[T]):
    """Dispatches patterns of the form ``type:pattern`` to typed sub-matchers."""

    def __init__(self) -> None:
        self._default_matcher = MATCHER_FULL
        self._subs: dict[str, WriteableMatcher[T]] = {
            MATCHER_FULL: FullMatcher(),
            MATCHER_DOMAIN: SubDomainMatcher(),
            MATCHER_REGEXP: RegexMatcher(),
            MATCHER_KEYWORD: KeywordMatcher(),
        }

    def set_default_matcher(self, s: str) -> None:
        self._default_matcher = s

    def get_sub_matcher(self, typ: str) -> WriteableMatcher[T] | None:
        return self._subs.get(typ)

    def add(self, s: str, v: T) -> None:
        typ, sep, pattern = s.partition(":")
        if not sep:
            typ, pattern = "", s
        if not typ:
            typ = self._default_matcher or MATCHER_FULL
        sub = self.get_sub_matcher(typ)
        if sub is None:
            raise ValueError(f"unsupported match type [{typ}]")
        sub.add(pattern, v)

    def match(self, s: str) -> tuple[T | None, bool]:
        for sub in self._subs.values():
            v, ok = sub.match(s)
            if ok:
                return v, True
        return None, False

    def __len__(self) -> int:
        return sum(len(sub) for sub in self._subs.values())