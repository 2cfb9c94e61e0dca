"""The query context that is passed through plugins."""

from __future__ import annotations

import copy
import enum
import ipaddress
import threading
import time
from dataclasses import dataclass

import dns.message
import dns.rdataclass
import dns.rdatatype

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address

MAX_MARK = (1 << 64) - 1
_ID_MODULUS = 1 << 32


@dataclass(frozen=True)
class RequestMeta:
    """Metadata about a request."""

    client_ip: IPAddress | None = None
    from_udp: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.client_ip, (str, bytes)):
            object.__setattr__(self, "client_ip", ipaddress.ip_address(self.client_ip))


_ZERO_META = RequestMeta()


class ContextStatus(enum.IntEnum):
    WAITING_RESPONSE = 0
    RESPONDED = 1
    SERVER_FAILED = 2
    DROPPED = 3
    REJECTED = 4

    def __str__(self) -> str:
        return _STATUS_TO_STR[self]


_STATUS_TO_STR = {
    ContextStatus.WAITING_RESPONSE: "waiting response",
    ContextStatus.RESPONDED: "responded",
    ContextStatus.SERVER_FAILED: "server failed",
    ContextStatus.DROPPED: "dropped",
    ContextStatus.REJECTED: "rejected",
}


class MarkOverflowError(OverflowError):
    """Raised when no more marks can be allocated."""


class _IdCounter:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last = 0

    def next(self) -> int:
        with self._lock:
            self._last = (self._last + 1) % _ID_MODULUS
            return self._last


class _MarkAllocator:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last = 0

    def allocate(self) -> int:
        with self._lock:
            if self._last >= MAX_MARK:
                raise MarkOverflowError("too many allocated marks")
            self._last += 1
            return self._last


_id_counter = _IdCounter()
_mark_allocator = _MarkAllocator()


def allocate_mark() -> int:
    """Return a new unique mark."""
    return _mark_allocator.allocate()


class Context:
    """A query context. It always holds a query message."""

    def __init__(self, q: dns.message.Message, meta: RequestMeta | None = None) -> None:
        if q is None:
            raise ValueError("query message is None")
        self._start_time = time.time()
        self._q = q
        self._original_query = copy.deepcopy(q)
        self._req_meta = meta if meta is not None else _ZERO_META
        self._id = _id_counter.next()
        self._status = ContextStatus.WAITING_RESPONSE
        self._r: dns.message.Message | None = None
        self._marks: set[int] = set()

    def __str__(self) -> str:
        if self._q.question:
            rrset = self._q.question[0]
            question = (
                f"{rrset.name.to_text()} "
                f"{dns.rdataclass.to_text(rrset.rdclass)} "
                f"{dns.rdatatype.to_text(rrset.rdtype)}"
            )
        else:
            question = "empty question"
        client_ip = self._req_meta.client_ip
        client_addr = str(client_ip) if client_ip is not None else "unknown client"
        return f"{question} {self._q.id} {self._id} {client_addr}"

    @property
    def q(self) -> dns.message.Message:
        """The query message."""
        return self._q

    @property
    def original_query(self) -> dns.message.Message:
        """A copy of the query this context was created with; do not modify it."""
        return self._original_query

    @property
    def req_meta(self) -> RequestMeta:
        return self._req_meta

    @property
    def r(self) -> dns.message.Message | None:
        """The response, if any."""
        return self._r

    @property
    def status(self) -> ContextStatus:
        return self._status

    def set_response(self, r: dns.message.Message | None, status: ContextStatus) -> None:
        """Store r (by reference) and the new status."""
        self._r = r
        self._status = status

    @property
    def id(self) -> int:
        """A unique number growing with each query; not the DNS message id."""
        return self._id

    @property
    def start_time(self) -> float:
        """When the context was created, in seconds since the epoch."""
        return self._start_time

    def copy(self) -> Context:
        """Return a deep copy of this context."""
        d = Context.__new__(Context)
        d._r = None
        d._marks = set()
        return self.copy_to(d)

    def copy_to(self, d: Context) -> Context:
        """Deep copy this context into d and return d."""
        d._start_time = self._start_time
        d._q = copy.deepcopy(self._q)
        d._original_query = self._original_query
        d._req_meta = self._req_meta
        d._id = self._id
        d._status = self._status
        if self._r is not None:
            d._r = copy.deepcopy(self._r)
        d._marks = set(getattr(d, "_marks", set())) | self._marks
        return d

    def add_mark(self, m: int) -> None:
        self._marks.add(m)

    def has_mark(self, m: int) -> bool:
        return m in self._marks