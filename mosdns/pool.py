"""Pooled byte buffers sized in powers of two, and packing DNS messages into them."""

from __future__ import annotations

import sys
import threading
from types import TracebackType

import dns.message

_INT_SIZE = sys.maxsize.bit_length() + 1

# There is no way to know a packed message's size in advance, so packing asks
# for a big buffer and hopes it gets reused most of the time.
PACK_BUF_SIZE = 4096


def shard(size: int) -> int:
    """Return the index of the pool whose buffers best fit size."""
    if size <= 1:
        return 0
    return (size - 1).bit_length()


class Buffer:
    """A pooled bytearray with an adjustable visible length."""

    def __init__(self, allocator: Allocator, data: bytearray) -> None:
        self._allocator = allocator
        self._data = data
        self._len = len(data)

    def resize(self, length: int) -> None:
        """Set the visible length; it may not exceed the capacity."""
        if length < 0 or length > len(self._data):
            raise ValueError("buffer length overflowed")
        self._len = length

    def all_bytes(self) -> bytearray:
        """Return the whole underlying bytearray."""
        return self._data

    def bytes(self) -> memoryview:
        """Return a view of the visible part of the buffer."""
        return memoryview(self._data)[: self._len]

    def __len__(self) -> int:
        return self._len

    def capacity(self) -> int:
        return len(self._data)

    def release(self) -> None:
        """Return this buffer to its allocator."""
        self._allocator.release(self)

    def __enter__(self) -> Buffer:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


class Allocator:
    """Hands out buffers whose capacity is the next power of two of the size asked.

    Buffers shorter than 1 << max_pool_bits_len are pooled, so no more than
    half of an allocated buffer is ever wasted.
    """

    def __init__(self, max_pool_bits_len: int) -> None:
        if max_pool_bits_len > _INT_SIZE - 1 or max_pool_bits_len <= 0:
            raise ValueError("invalid pool length")
        if max_pool_bits_len == _INT_SIZE - 1:
            self._max_pool_len = sys.maxsize
        else:
            self._max_pool_len = 1 << max_pool_bits_len
        self._lock = threading.Lock()
        self._pools: list[list[Buffer]] = [[] for _ in range(max_pool_bits_len + 1)]

    @property
    def max_pool_len(self) -> int:
        return self._max_pool_len

    @staticmethod
    def _buf_size(i: int) -> int:
        return sys.maxsize if i == _INT_SIZE - 1 else 1 << i

    def get(self, size: int) -> Buffer:
        """Return a buffer of length size from the best fitting pool."""
        if size < 0:
            raise ValueError(f"invalid slice size {size}")
        if size > self._max_pool_len:
            raise ValueError(f"slice size {size} is too large")
        i = shard(size)
        with self._lock:
            pool = self._pools[i]
            buf = pool.pop() if pool else None
        if buf is None:
            buf = Buffer(self, bytearray(self._buf_size(i)))
        buf.resize(size)
        return buf

    def release(self, buf: Buffer) -> None:
        """Put buf back into its pool."""
        c = buf.capacity()
        i = shard(c)
        if c == 0 or c > self._max_pool_len or c != 1 << i:
            raise ValueError("unexpected cap size")
        with self._lock:
            self._pools[i].append(buf)


_default_buf_pool = Allocator(_INT_SIZE - 1)


def get_buf(size: int) -> Buffer:
    """Return a buffer of length size from the default allocator."""
    return _default_buf_pool.get(size)


def pack_buffer(msg: dns.message.Message) -> tuple[memoryview, Buffer]:
    """Pack msg to wire format inside a pooled buffer.

    Returns the wire view and the buffer holding it. The caller releases the
    buffer once it is done with the wire data.
    """
    wire = msg.to_wire()
    n = len(wire)
    buf = get_buf(max(PACK_BUF_SIZE, n))
    buf.all_bytes()[:n] = wire
    buf.resize(n)
    return buf.bytes(), buf


class BytesBufPool:
    """A pool of growable bytearrays."""

    def __init__(self, init_size: int) -> None:
        if init_size < 0:
            raise ValueError(f"negative init size {init_size}")
        self.init_size = init_size
        self._lock = threading.Lock()
        self._free: list[bytearray] = []

    def get(self) -> bytearray:
        with self._lock:
            if self._free:
                return self._free.pop()
        return bytearray()

    def release(self, b: bytearray) -> None:
        """Empty b and keep it for reuse."""
        b.clear()
        with self._lock:
            self._free.append(b)