import asyncio

import dns.message
import dns.rdatatype
import dns.rrset
import pytest

from mosdns.upstream.bootstrap import Bootstrap, BootstrapMode


class FakeUpstream:
    def __init__(self, rdtype="A", addr="1.2.3.4", ttl=1, fail=False, empty=False):
        self.rdtype = rdtype
        self.addr = addr
        self.ttl = ttl
        self.fail = fail
        self.empty = empty
        self.queries = []

    async def exchange(self, q):
        self.queries.append(q)
        await asyncio.sleep(0)
        if self.fail:
            raise ConnectionError("upstream down")
        r = dns.message.make_response(q)
        if not self.empty:
            r.answer.append(
                dns.rrset.from_text(q.question[0].name, self.ttl, "IN", self.rdtype, self.addr)
            )
        return r


@pytest.mark.asyncio
async def test_get_addr_v4():
    up = FakeUpstream()
    b = Bootstrap("dns.example.", up, BootstrapMode.V4)
    addr = await asyncio.wait_for(b.get_addr(), 1)
    assert addr == "1.2.3.4"
    assert len(up.queries) == 1
    q = up.queries[0].question[0]
    assert q.name.to_text() == "dns.example."
    assert q.rdtype == dns.rdatatype.A


@pytest.mark.asyncio
async def test_get_addr_v6():
    up = FakeUpstream(rdtype="AAAA", addr="2001:db8::1")
    b = Bootstrap("dns.example.", up, BootstrapMode.V6)
    addr = await asyncio.wait_for(b.get_addr(), 1)
    assert addr == "2001:db8::1"
    assert up.queries[0].question[0].rdtype == dns.rdatatype.AAAA


@pytest.mark.asyncio
async def test_short_ttl_is_raised_to_minimum_and_cached():
    up = FakeUpstream(ttl=1)
    b = Bootstrap("dns.example.", up, BootstrapMode.V4)
    first = await asyncio.wait_for(b.get_addr(), 1)
    second = await asyncio.wait_for(b.get_addr(), 1)
    assert first == second == "1.2.3.4"
    assert len(up.queries) == 1


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_update():
    up = FakeUpstream()
    b = Bootstrap("dns.example.", up, BootstrapMode.V4)
    results = await asyncio.wait_for(
        asyncio.gather(*(b.get_addr() for _ in range(5))), 1
    )
    assert results == ["1.2.3.4"] * 5
    assert len(up.queries) == 1


@pytest.mark.asyncio
async def test_upstream_failure_keeps_waiting():
    up = FakeUpstream(fail=True)
    b = Bootstrap("dns.example.", up, BootstrapMode.V4)
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(b.get_addr(), 0.1)
    assert len(up.queries) == 1


@pytest.mark.asyncio
async def test_response_without_ip_keeps_waiting():
    up = FakeUpstream(empty=True)
    b = Bootstrap("dns.example.", up, BootstrapMode.V4)
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(b.get_addr(), 0.1)
    assert len(up.queries) == 1


def test_invalid_mode_raises():
    with pytest.raises(ValueError):
        Bootstrap("dns.example.", FakeUpstream(), BootstrapMode.INVALID)


def test_default_update_intervals():
    b = Bootstrap("dns.example.", FakeUpstream(), BootstrapMode.V4)
    assert b.minimum_update_interval == 600
    assert b.maximum_update_interval == 3600


def test_custom_update_intervals():
    b = Bootstrap(
        "dns.example.",
        FakeUpstream(),
        BootstrapMode.V4,
        minimum_update_interval=5,
        maximum_update_interval=50,
    )
    assert (b.minimum_update_interval, b.maximum_update_interval) == (5, 50)