"""Matchers that look at the query or the response of a query context."""

from __future__ import annotations

from typing import Any, Protocol

import dns.edns
import dns.message
import dns.rdataclass
import dns.rdatatype

from mosdns.matcher.domain import Matcher
from mosdns.matcher.elem import IntMatcher
from mosdns.query_context import Context


class _IPMatcher(Protocol):
    def match(self, ip: Any) -> bool: ...


def _get_msg_ecs(msg: dns.message.Message) -> dns.edns.ECSOption | None:
    """Return the first EDNS client subnet option of msg, if any."""
    for opt in msg.options:
        if isinstance(opt, dns.edns.ECSOption):
            return opt
    return None


class ClientIPMatcher:
    """Matches the client address of the request."""

    def __init__(self, ip_matcher: _IPMatcher) -> None:
        self._ip_matcher = ip_matcher

    def match(self, q_ctx: Context) -> bool:
        client_ip = q_ctx.req_meta.client_ip
        if client_ip is None:
            return False
        return self._ip_matcher.match(client_ip)


class ClientECSMatcher:
    """Matches the address of the query's EDNS client subnet option."""

    def __init__(self, ip_matcher: _IPMatcher) -> None:
        self._ip_matcher = ip_matcher

    def match(self, q_ctx: Context) -> bool:
        ecs = _get_msg_ecs(q_ctx.q)
        if ecs is None:
            return False
        return self._ip_matcher.match(ecs.address)


class QNameMatcher:
    """Matches if any question name is matched by the domain matcher."""

    def __init__(self, domain_matcher: Matcher[Any]) -> None:
        self._domain_matcher = domain_matcher

    def match(self, q_ctx: Context) -> bool:
        return self.match_msg(q_ctx.q)

    def match_msg(self, msg: dns.message.Message) -> bool:
        return any(
            self._domain_matcher.match(q.name.to_text())[1] for q in msg.question
        )


class QTypeMatcher:
    """Matches if any question type is in the set."""

    def __init__(self, elem_matcher: IntMatcher) -> None:
        self._elem_matcher = elem_matcher

    def match(self, q_ctx: Context) -> bool:
        return self.match_msg(q_ctx.q)

    def match_msg(self, msg: dns.message.Message) -> bool:
        return any(self._elem_matcher.match(int(q.rdtype)) for q in msg.question)


class QClassMatcher:
    """Matches if any question class is in the set."""

    def __init__(self, elem_matcher: IntMatcher) -> None:
        self._elem_matcher = elem_matcher

    def match(self, q_ctx: Context) -> bool:
        return self.match_msg(q_ctx.q)

    def match_msg(self, msg: dns.message.Message) -> bool:
        return any(self._elem_matcher.match(int(q.rdclass)) for q in msg.question)


class AAAAAIPMatcher:
    """Matches if any A or AAAA address in the response's answer is matched."""

    def __init__(self, ip_matcher: _IPMatcher) -> None:
        self._ip_matcher = ip_matcher

    def match(self, q_ctx: Context) -> bool:
        r = q_ctx.r
        if r is None:
            return False
        return self.match_msg(r)

    def match_msg(self, msg: dns.message.Message) -> bool:
        for rrset in msg.answer:
            if rrset.rdtype not in (dns.rdatatype.A, dns.rdatatype.AAAA):
                continue
            for rdata in rrset:
                if self._ip_matcher.match(rdata.address):
                    return True
        return False


class CNameMatcher:
    """Matches if any CNAME target in the response's answer is matched."""

    def __init__(self, domain_matcher: Matcher[Any]) -> None:
        self._domain_matcher = domain_matcher

    def match(self, q_ctx: Context) -> bool:
        r = q_ctx.r
        if r is None:
            return False
        return self.match_msg(r)

    def match_msg(self, msg: dns.message.Message) -> bool:
        for rrset in msg.answer:
            if rrset.rdtype != dns.rdatatype.CNAME:
                continue
            for rdata in rrset:
                if self._domain_matcher.match(rdata.target.to_text())[1]:
                    return True
        return False


class RCodeMatcher:
    """Matches the response code of the response."""

    def __init__(self, elem_matcher: IntMatcher) -> None:
        self._elem_matcher = elem_matcher

    def match(self, q_ctx: Context) -> bool:
        r = q_ctx.r
        if r is None:
            return False
        return self.match_msg(r)

    def match_msg(self, msg: dns.message.Message) -> bool:
        return self._elem_matcher.match(int(msg.rcode()))