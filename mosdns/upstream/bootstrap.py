"""Resolves and caches the address of an upstream server's domain name."""

from __future__ import annotations

import asyncio
import enum
import ipaddress
import logging
import time
from typing import Protocol

import dns.message
import dns.rdatatype

BOOTSTRAP_TIMEOUT = 5.0
BOOTSTRAP_RETRY_INTERVAL = 2.0

DEFAULT_MINIMUM_UPDATE_INTERVAL = 600.0
DEFAULT_MAXIMUM_UPDATE_INTERVAL = 3600.0

_logger = logging.getLogger(__name__)

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


class Upstream(Protocol):
    async def exchange(self, q: dns.message.Message) -> dns.message.Message: ...


class BootstrapMode(enum.IntEnum):
    INVALID = 0
    V4 = 1
    V6 = 2


class Bootstrap:
    """Keeps the address of fqdn up to date, querying upstream in the background."""

    def __init__(
        self,
        fqdn: str,
        upstream: Upstream,
        mode: BootstrapMode,
        minimum_update_interval: float | None = None,
        maximum_update_interval: float | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if mode not in (BootstrapMode.V4, BootstrapMode.V6):
            raise ValueError(f"invalid bootstrap mode {int(mode)}")
        self.fqdn = fqdn
        self.upstream = upstream
        self.mode = BootstrapMode(mode)
        self.minimum_update_interval = (
            minimum_update_interval
            if minimum_update_interval and minimum_update_interval > 0
            else DEFAULT_MINIMUM_UPDATE_INTERVAL
        )
        self.maximum_update_interval = (
            maximum_update_interval
            if maximum_update_interval and maximum_update_interval > 0
            else DEFAULT_MAXIMUM_UPDATE_INTERVAL
        )
        self.logger = logger or _logger

        self._booted = asyncio.Event()
        self._ip_addr = ""
        self._expire_time: float | None = None
        self._last_update_time: float | None = None
        self._update_task: asyncio.Task[None] | None = None

    async def get_addr(self) -> str:
        """Return the current address, waiting for the first resolution if needed.

        Bound the wait with asyncio.wait_for; it waits until an update succeeds.
        """
        now = time.monotonic()
        if self._expire_time is None or self._expire_time < now:
            self._try_background_update(now)
        if self._ip_addr:
            return self._ip_addr
        await self._booted.wait()
        return self._ip_addr

    def _try_background_update(self, now: float) -> None:
        if self._update_task is not None and not self._update_task.done():
            return
        if (
            self._last_update_time is not None
            and self._last_update_time + BOOTSTRAP_RETRY_INTERVAL > now
        ):
            return
        self._last_update_time = now
        self._update_task = asyncio.get_running_loop().create_task(
            self._update_and_store()
        )

    async def _update_and_store(self) -> None:
        try:
            ip, ttl = await self._update()
        except Exception as exc:
            self.logger.warning("failed to update bootstrap: %s", exc)
            return
        self.logger.debug("bootstrap address updated: new_addr=%s ttl=%s", ip, ttl)
        self._ip_addr = str(ip)
        self._expire_time = time.monotonic() + ttl
        self._booted.set()

    def _restrict_ttl(self, ttl: float) -> float:
        return min(max(ttl, self.minimum_update_interval), self.maximum_update_interval)

    async def _update(self) -> tuple[IPAddress, float]:
        qtype = dns.rdatatype.A if self.mode == BootstrapMode.V4 else dns.rdatatype.AAAA
        q = dns.message.make_query(self.fqdn, qtype)
        try:
            r = await asyncio.wait_for(self.upstream.exchange(q), BOOTSTRAP_TIMEOUT)
        except Exception as exc:
            raise RuntimeError(f"upstream failed, {exc!r}") from exc

        ip: str | None = None
        ttl = 0
        for rrset in r.answer:
            if rrset.rdtype in (dns.rdatatype.A, dns.rdatatype.AAAA):
                for rdata in rrset:
                    ip = rdata.address
                    ttl = rrset.ttl
        if ip is None:
            raise ValueError(f"response does not have valid ip, [{r}]")
        return ipaddress.ip_address(ip), self._restrict_ttl(float(ttl))