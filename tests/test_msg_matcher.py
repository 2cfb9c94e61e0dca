import dns.edns
import dns.message
import dns.rcode
import dns.rdataclass
import dns.rdatatype
import dns.rrset
import pytest

from mosdns.matcher.domain import SubDomainMatcher
from mosdns.matcher.elem import IntMatcher
from mosdns.matcher.msg_matcher import (
    AAAAAIPMatcher,
    ClientECSMatcher,
    ClientIPMatcher,
    CNameMatcher,
    QClassMatcher,
    QNameMatcher,
    QTypeMatcher,
    RCodeMatcher,
)
from mosdns.matcher.netlist import NetList, load_from_text
from mosdns.query_context import Context, ContextStatus, RequestMeta


@pytest.fixture
def nl():
    lst = NetList()
    load_from_text(lst, "127.0.0.0/24")
    lst.sort()
    return lst


@pytest.mark.parametrize(
    "meta, want",
    [
        (RequestMeta(client_ip="127.0.0.1"), True),
        (RequestMeta(client_ip="128.0.0.1"), False),
        (None, False),
        (RequestMeta(), False),
    ],
)
def test_client_ip_matcher(nl, meta, want):
    m = ClientIPMatcher(nl)
    assert m.match(Context(dns.message.Message(), meta)) is want


def _ecs_query(addr):
    return dns.message.make_query(
        ".", "A", use_edns=0, options=[dns.edns.ECSOption(addr)]
    )


@pytest.mark.parametrize(
    "msg, want",
    [
        (_ecs_query("127.0.0.1"), True),
        (_ecs_query("128.0.0.1"), False),
        (dns.message.make_query(".", "A", use_edns=0), False),
        (dns.message.Message(), False),
    ],
)
def test_client_ecs_matcher(nl, msg, want):
    m = ClientECSMatcher(nl)
    assert m.match(Context(msg, None)) is want


def test_qname_matcher():
    dm = SubDomainMatcher()
    dm.add("com.", None)
    qm = QNameMatcher(dm)
    assert qm.match_msg(dns.message.make_query("example.com.", "A")) is True
    assert qm.match_msg(dns.message.make_query("example.xxx.", "A")) is False


def test_qname_matcher_via_context():
    dm = SubDomainMatcher()
    dm.add("com.", None)
    qm = QNameMatcher(dm)
    assert qm.match(Context(dns.message.make_query("example.com.", "A"))) is True


def test_qtype_matcher():
    qm = QTypeMatcher(IntMatcher([dns.rdatatype.A]))
    assert qm.match_msg(dns.message.make_query(".", "A")) is True
    assert qm.match_msg(dns.message.make_query(".", "AAAA")) is False


def test_qclass_matcher():
    qm = QClassMatcher(IntMatcher([dns.rdataclass.IN]))
    assert qm.match_msg(dns.message.make_query(".", "A", rdclass="IN")) is True
    assert qm.match_msg(dns.message.make_query(".", "A", rdclass="ANY")) is False


def _a(addr):
    return dns.rrset.from_text("a.", 300, "IN", "A", addr)


def test_aaaaa_ip_matcher_match_msg(nl):
    m = AAAAAIPMatcher(nl)
    msg = dns.message.Message()
    msg.answer = [_a("128.0.0.1"), _a("127.0.0.1")]
    assert m.match_msg(msg) is True

    msg.answer = [_a("128.0.0.1")]
    assert m.match_msg(msg) is False

    msg.answer = []
    assert m.match_msg(msg) is False


def test_aaaaa_ip_matcher_aaaa_record():
    lst = NetList()
    load_from_text(lst, "2000::/16")
    lst.sort()
    m = AAAAAIPMatcher(lst)
    msg = dns.message.Message()
    msg.answer = [dns.rrset.from_text("a.", 300, "IN", "AAAA", "2000::1")]
    assert m.match_msg(msg) is True


def test_response_matchers_without_response(nl):
    ctx = Context(dns.message.make_query("a.", "A"))
    assert AAAAAIPMatcher(nl).match(ctx) is False
    assert CNameMatcher(SubDomainMatcher()).match(ctx) is False
    assert RCodeMatcher(IntMatcher([0])).match(ctx) is False


def test_cname_matcher():
    dm = SubDomainMatcher()
    dm.add("com", None)
    m = CNameMatcher(dm)
    q = dns.message.make_query("a.example.", "A")
    r = dns.message.make_response(q)
    r.answer.append(dns.rrset.from_text("a.example.", 300, "IN", "CNAME", "target.com."))
    ctx = Context(q)
    ctx.set_response(r, ContextStatus.RESPONDED)
    assert m.match(ctx) is True

    r.answer = [dns.rrset.from_text("a.example.", 300, "IN", "CNAME", "target.net.")]
    assert m.match_msg(r) is False


def test_rcode_matcher():
    m = RCodeMatcher(IntMatcher([dns.rcode.NXDOMAIN]))
    q = dns.message.make_query("a.example.", "A")
    r = dns.message.make_response(q)
    r.set_rcode(dns.rcode.NXDOMAIN)
    ctx = Context(q)
    ctx.set_response(r, ContextStatus.RESPONDED)
    assert m.match(ctx) is True

    r.set_rcode(dns.rcode.NOERROR)
    assert m.match_msg(r) is False