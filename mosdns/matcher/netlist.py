"""IP prefix lists with binary search, and helpers that load them from text."""

from __future__ import annotations

import ipaddress
import threading
from bisect import bisect_right
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Protocol

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address
IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network
IPInterface = ipaddress.IPv4Interface | ipaddress.IPv6Interface

_ALL_BITS = (1 << 128) - 1
_V4_MAPPED = 0xFFFF << 32


class NotSortedError(RuntimeError):
    """Raised when a list is searched before it was sorted."""


class InvalidAddrError(ValueError):
    """Raised when an address cannot be used for matching."""


class _IPMatcher(Protocol):
    def match(self, ip: object) -> bool: ...

    def __len__(self) -> int: ...


def _to6(addr: IPAddress) -> int:
    """Return addr as a 128-bit integer; IPv4 becomes IPv4-mapped IPv6."""
    if addr.version == 4:
        return _V4_MAPPED | int(addr)
    return int(addr)


def _parse_addr(s: str) -> IPAddress:
    try:
        return ipaddress.ip_address(s)
    except ValueError as exc:
        raise ValueError(f"invalid ip address {s!r}") from exc


def _parse_prefix(s: str) -> tuple[IPAddress, int]:
    addr_s, _, bits_s = s.partition("/")
    addr = _parse_addr(addr_s)
    if not (bits_s.isascii() and bits_s.isdigit()):
        raise ValueError(f"invalid prefix length in {s!r}")
    bits = int(bits_s)
    if bits > addr.max_prefixlen:
        raise ValueError(f"prefix length out of range in {s!r}")
    return addr, bits


@dataclass(frozen=True, order=True)
class _Prefix:
    """A masked prefix in 128-bit address space."""

    addr: int
    bits: int

    @classmethod
    def build(cls, addr: IPAddress, bits: int) -> _Prefix:
        if not 0 <= bits <= addr.max_prefixlen:
            raise ValueError(f"invalid prefix length {bits} for {addr}")
        if addr.version == 4:
            bits += 96
        host_mask = (1 << (128 - bits)) - 1
        return cls(_to6(addr) & (_ALL_BITS ^ host_mask), bits)

    def contains(self, a: int) -> bool:
        shift = 128 - self.bits
        return (a >> shift) == (self.addr >> shift)


def _coerce_prefix(n: object) -> tuple[IPAddress, int]:
    if isinstance(n, (ipaddress.IPv4Network, ipaddress.IPv6Network)):
        return n.network_address, n.prefixlen
    if isinstance(n, (ipaddress.IPv4Interface, ipaddress.IPv6Interface)):
        return n.ip, n.network.prefixlen
    if isinstance(n, str):
        return _parse_prefix(n)
    if isinstance(n, tuple) and len(n) == 2:
        addr, bits = n
        if not isinstance(addr, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
            addr = _parse_addr(str(addr))
        return addr, int(bits)
    raise TypeError(f"cannot use {n!r} as a prefix")


def _coerce_addr(ip: object) -> IPAddress:
    if isinstance(ip, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return ip
    if isinstance(ip, (str, bytes, bytearray)):
        try:
            return ipaddress.ip_address(bytes(ip) if not isinstance(ip, str) else ip)
        except ValueError as exc:
            raise InvalidAddrError(f"invalid ip {ip!r}") from exc
    raise InvalidAddrError(f"invalid ip {ip!r}")


class NetList:
    """A list of prefixes searched by binary search; suited to large static lists.

    Call sort() after modifying the list and before matching.
    """

    def __init__(self) -> None:
        self._entries: list[_Prefix] = []
        self._starts: list[int] = []
        self._sorted = False

    def append(self, *args: IPNetwork | IPInterface | str | tuple) -> None:
        """Add prefixes; they may be networks, interfaces, 'addr/bits' or (addr, bits)."""
        new = [_Prefix.build(*_coerce_prefix(n)) for n in args]
        self._entries.extend(new)
        self._sorted = False

    def sort(self) -> None:
        """Sort the list and merge prefixes that are covered by others."""
        if self._sorted:
            return
        out: list[_Prefix] = []
        for n in sorted(self._entries):
            if out:
                last = out[-1]
                if n.addr == last.addr:
                    if n.bits < last.bits:
                        out[-1] = n
                    continue
                if last.contains(n.addr):
                    continue
            out.append(n)
        self._entries = out
        self._starts = [p.addr for p in out]
        self._sorted = True

    def __len__(self) -> int:
        return len(self._entries)

    def match(self, ip: IPAddress | str | bytes) -> bool:
        """Report whether ip (an address, its text or 4/16 raw bytes) is in the list."""
        return self.contains(_coerce_addr(ip))

    def contains(self, addr: IPAddress) -> bool:
        """Report whether the list includes addr."""
        if not self._sorted:
            raise NotSortedError("list is not sorted")
        if not isinstance(addr, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
            raise InvalidAddrError("addr is invalid")
        a = _to6(addr)
        i = bisect_right(self._starts, a)
        if i == 0:
            return False
        return self._entries[i - 1].contains(a)


class MatcherGroup:
    """Matches if any of its matchers matches."""

    def __init__(self, matchers: Iterable[_IPMatcher] = ()) -> None:
        self._matchers: list[_IPMatcher] = list(matchers)

    def match(self, ip: object) -> bool:
        return any(m.match(ip) for m in self._matchers)

    def __len__(self) -> int:
        return sum(len(m) for m in self._matchers)


class DynamicMatcher:
    """A list that is rebuilt from raw data on each update."""

    def __init__(self, parse_func: Callable[[bytes], NetList]) -> None:
        self._parse_func = parse_func
        self._lock = threading.Lock()
        self._list: NetList | None = None

    def update(self, data: bytes) -> None:
        lst = self._parse_func(data)
        with self._lock:
            self._list = lst

    def _current(self) -> NetList | None:
        with self._lock:
            return self._list

    def match(self, ip: object) -> bool:
        lst = self._current()
        return False if lst is None else lst.match(ip)

    def __len__(self) -> int:
        lst = self._current()
        return 0 if lst is None else len(lst)


def load(lst: NetList, ip: str) -> None:
    """Load one address or prefix, ignoring surrounding spaces."""
    load_from_text(lst, ip.strip())


def load_from_reader(lst: NetList, reader: Iterable[str] | Iterable[bytes]) -> None:
    """Load one address or prefix per line; '#' starts a comment and text after a space is ignored."""
    for line_no, line in enumerate(reader, 1):
        if isinstance(line, (bytes, bytearray)):
            line = bytes(line).decode()
        s = line.strip()
        s = s.partition("#")[0]
        s = s.partition(" ")[0]
        if not s:
            continue
        try:
            load_from_text(lst, s)
        except ValueError as exc:
            raise ValueError(f"invalid data at line #{line_no}: {exc}") from exc


def load_from_text(lst: NetList, s: str) -> None:
    """Load an address ('1.2.3.4') or a prefix ('1.2.3.0/24') into lst."""
    if "/" in s:
        addr, bits = _parse_prefix(s)
    else:
        addr = _parse_addr(s)
        bits = addr.max_prefixlen
    lst.append((addr, bits))