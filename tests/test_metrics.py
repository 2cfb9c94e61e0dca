import json

from mosdns.metrics import (
    Counter,
    Gauge,
    GaugeFunc,
    Histogram,
    Registry,
    Var,
    handle_func,
)


def test_registry_get_missing():
    assert Registry().get("missing") is None


def test_registry_set_and_get():
    r = Registry()
    c = Counter()
    r.set("c", c)
    assert r.get("c") is c


def test_registry_get_or_set_calls_factory_once():
    r = Registry()
    calls = []

    def factory():
        calls.append(1)
        return Counter()

    first = r.get_or_set("x", factory)
    second = r.get_or_set("x", factory)
    assert first is second
    assert len(calls) == 1


def test_registry_publish_nested():
    r = Registry()
    c = Counter()
    c.inc(7)
    g = Gauge()
    g.update(42)
    sub = Registry()
    sub.set("g", g)
    r.set("c", c)
    r.set("sub", sub)
    assert r.publish() == {"c": 7, "sub": {"g": 42}}


def test_counter_inc_dec():
    c = Counter()
    c.inc(7)
    assert c.count() == 7
    c.dec(7)
    assert c.publish() == 0


def test_gauge():
    g = Gauge()
    g.update(13)
    assert g.value() == 13
    assert g.publish() == 13


def test_gauge_func_calls_function():
    seen = []

    def f():
        seen.append(1)
        return 99

    gf = GaugeFunc(f)
    assert gf.publish() == 99
    assert gf.publish() == 99
    assert len(seen) == 2


def test_histogram_percentiles_small():
    h = Histogram(10)
    for v in (3, 1, 2):
        h.update(v)
    assert h.percentiles([0, 0.5, 1]) == [1.0, 2.0, 3.0]
    assert h.mean() == 2.0
    pub = h.publish()
    assert pub["min"] == 1.0
    assert pub["max"] == 3.0
    assert pub["avg"] == 2


def test_histogram_empty():
    h = Histogram(4)
    assert h.percentiles([0, 0.5, 1]) == [0.0, 0.0, 0.0]
    assert h.publish()["avg"] == 0


def test_histogram_reservoir_invariants():
    h = Histogram(10)
    for v in range(1000):
        h.update(v)
    pub = h.publish()
    assert 0 <= pub["min"] <= pub["p25"] <= pub["p50"] <= pub["p75"] <= pub["max"] <= 999


def _call(app):
    status = {}

    def start_response(s, headers):
        status["status"] = s
        status["headers"] = dict(headers)

    body = b"".join(app({}, start_response))
    return status, body


def test_handle_func_serves_json():
    r = Registry()
    c = Counter()
    c.inc(5)
    r.set("queries", c)
    status, body = _call(handle_func(r))
    assert status["status"] == "200 OK"
    assert json.loads(body) == r.publish()


class _Broken(Var):
    def publish(self):
        return object()


def test_handle_func_encode_error():
    status, body = _call(handle_func(_Broken()))
    assert status["status"].startswith("500")
    assert body