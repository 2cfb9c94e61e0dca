# mosdns

Building blocks for a pluggable DNS forwarder, built on `dnspython`.

## What is inside

- `mosdns.matcher.domain`: domain matchers. These are `FullMatcher`,
  `SubDomainMatcher`, `KeywordMatcher`, `RegexMatcher` and `MixMatcher`.
  `RegexMatcher(cache_size)` keeps an optional match cache. `MixMatcher` sends
  each pattern to a sub-matcher by its prefix: `full:`, `domain:`, `regexp:`
  or `keyword:`. Every `match(s)` returns a `(value, matched)` tuple. Matching
  ignores case and a trailing dot. `DomainScanner` walks the labels of a
  domain from right to left.
- `mosdns.matcher.domain_loader`: loads patterns into matchers. It provides
  `load`, `batch_load`, `load_from_text_reader` (one pattern per line, with `#`
  comments), `parse_text_domain_file` and `new_domain_mix_matcher`, whose
  default pattern type is `domain`. It also provides `MatcherGroup`,
  `DynamicMatcher` (rebuilt by `update(data)`) and `parse_v2_suffix`, which
  parses `tag@attr,...` into `V2Filter` objects.
- `mosdns.matcher.netlist`: `NetList` holds IPv4 and IPv6 prefixes. After
  `sort()` it holds them sorted and merged, and `match`/`contains` search them
  by bisection. Calling either before sorting raises `NotSortedError`. The
  module also provides the loaders `load`, `load_from_text` and
  `load_from_reader`, plus `MatcherGroup` and `DynamicMatcher`.
- `mosdns.matcher.elem`: `IntMatcher` for query types, classes and rcodes.
- `mosdns.matcher.msg_matcher`: matchers over a query context or a message.
  Each checks one thing:
  - `ClientIPMatcher`: the client IP.
  - `ClientECSMatcher`: the EDNS client subnet.
  - `QNameMatcher`, `QTypeMatcher`, `QClassMatcher`: the question name, type
    and class.
  - `AAAAAIPMatcher`: the A/AAAA answer addresses.
  - `CNameMatcher`: CNAME targets.
  - `RCodeMatcher`: the rcode.
- `mosdns.query_context`: `Context` carries a query, its response, a
  `ContextStatus` and integer marks. Use `allocate_mark()` to get unique marks,
  and `RequestMeta` for the client IP and whether the request came over UDP.
- `mosdns.upstream.bootstrap`: `Bootstrap` resolves an upstream's domain name
  in the background and caches the result. It sends A queries for
  `BootstrapMode.V4` and AAAA queries for `BootstrapMode.V6`, through any
  object that has an async `exchange(q)` method. It keeps the answer for the
  answer's TTL, clamped between the minimum and maximum update intervals
  (600 s and 3600 s by default). `await get_addr()` returns the address.
- `mosdns.metrics`: thread-safe `Counter`, `Gauge`, `GaugeFunc` and `Histogram`
  (a uniform reservoir sample), plus a `Registry` whose `publish()` gathers
  them all. `handle_func(var, logger)` returns a WSGI application that serves
  the published values as JSON.
- `mosdns.pool`: byte buffers pooled in power-of-two sizes (`Allocator`,
  `Buffer`, `get_buf`, `shard`), plus `pack_buffer` to pack a DNS message into
  a pooled buffer, and `BytesBufPool`.
- `mosdns.safe_close`: `SafeClose` coordinates the shutdown of a service and
  the worker threads it attaches.
- `mosdns.nftset_utils`: `broadcast_addr` and `next_ip` give the address
  arithmetic for interval sets.

## What it does not do

This package holds the parts of a DNS forwarder; it does not make a whole one.
It has no DNS server and no request handler that listens for queries. It has
no transport that sends queries to upstream servers over UDP, TCP, TLS or
HTTPS. It has no configuration loading and no command to run. `Bootstrap`
expects you to supply the upstream object it queries through.

## Install

```
pip install .
```

To also install the tools for running the tests:

```
pip install ".[test]"
```

## Example

```python
from mosdns.matcher.domain_loader import new_domain_mix_matcher, load
from mosdns.matcher.netlist import NetList, load_from_text

domains = new_domain_mix_matcher()
load(domains, "example.com", None)
load(domains, "full:exact.example.org", None)
print(domains.match("www.example.com."))   # (None, True)

nets = NetList()
load_from_text(nets, "192.168.0.0/16")
nets.sort()
print(nets.match("192.168.3.4"))           # True
```

## Tests

```
pytest
```