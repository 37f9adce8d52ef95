"""
Brief: Tests for lantern.resolver.Resolver decision logic and message assembly.

Inputs:
  - None

Outputs:
  - None
"""

import logging
from typing import List

import pytest
from dnslib import QTYPE, RCODE, RR, A, DNSQuestion, DNSRecord
from dnslib.dns import DNSError

from lantern.forwarder import ForwardError, ForwardingConfig
from lantern.querylog import BaseQueryLog, QueryLogEvent, QueryOutcome
from lantern.resolver import Authoritative, NegativeAnswer, Resolver
from lantern.zone import RawRecordEntry, RecordStore


class _RecordingLog(BaseQueryLog):
    def __init__(self):
        self.events: List[QueryLogEvent] = []

    def record(self, event):
        self.events.append(event)


class _FakeForwarder:
    """Forwarder stand-in returning a canned upstream answer or raising."""

    def __init__(self, address="198.51.100.7", fail=False):
        self.address = address
        self.fail = fail
        self.calls: List[DNSRecord] = []

    def exchange(self, request):
        self.calls.append(request)
        if self.fail:
            raise ForwardError("timed out")
        resp = request.reply(aa=0)
        resp.add_answer(
            RR(str(request.q.qname), QTYPE.A, ttl=30, rdata=A(self.address))
        )
        return resp


def _store():
    return RecordStore.build(
        [
            RawRecordEntry(name="example.com", type="A", ttl=600, data="192.0.2.1"),
            RawRecordEntry(name="Multi.Example.com", type="A", ttl=60, data="192.0.2.10"),
            RawRecordEntry(name="multi.example.com", type="A", ttl=60, data="192.0.2.11"),
            RawRecordEntry(
                name="www.example.com", type="CNAME", ttl=300, data="example.com."
            ),
            RawRecordEntry(name="broken.example.com", type="A", ttl=60, data="nope"),
            RawRecordEntry(name="mail.example.com", type="MX", ttl=60, data="10 mx."),
        ]
    )


def _resolver(enabled=False, address=None, forwarder=None, log=None):
    return Resolver(
        _store(),
        ForwardingConfig(enabled=enabled, upstream_address=address),
        forwarder=forwarder,
        query_log=log,
    )


def test_end_to_end_local_a_record():
    """
    Brief: A query for example.com. returns exactly one A record.

    Inputs:
      - None

    Outputs:
      - None: Asserts address, TTL, AA flag and NOERROR
    """
    req = DNSRecord.question("example.com.", "A")
    reply = _resolver().handle(req)

    assert reply.header.id == req.header.id
    assert reply.header.qr == 1
    assert reply.header.aa == 1
    assert reply.header.rcode == RCODE.NOERROR
    assert len(reply.rr) == 1
    assert reply.rr[0].rtype == QTYPE.A
    assert str(reply.rr[0].rdata) == "192.0.2.1"
    assert reply.rr[0].ttl == 600


@pytest.mark.parametrize("qname", ["example.com", "EXAMPLE.COM.", "Example.Com."])
def test_lookup_is_case_insensitive(qname):
    """
    Brief: Query name case does not affect local matching.

    Inputs:
      - qname: spelling of the query name

    Outputs:
      - None
    """
    outcome = _resolver().resolve(qname, QTYPE.A, DNSRecord.question(qname))
    assert isinstance(outcome, Authoritative)
    assert str(outcome.records[0].address) == "192.0.2.1"


def test_multiple_records_returned_together():
    """
    Brief: All records under one owner are answered in load order.

    Inputs:
      - None

    Outputs:
      - None
    """
    reply = _resolver().handle(DNSRecord.question("multi.example.com", "A"))
    assert [str(rr.rdata) for rr in reply.rr] == ["192.0.2.10", "192.0.2.11"]


def test_lookup_ignores_query_type():
    """
    Brief: An AAAA query against an A-only name still receives the A record.

    Inputs:
      - None

    Outputs:
      - None
    """
    reply = _resolver().handle(DNSRecord.question("example.com", "AAAA"))
    assert reply.header.rcode == RCODE.NOERROR
    assert [rr.rtype for rr in reply.rr] == [QTYPE.A]


def test_cname_answered_without_chasing():
    """
    Brief: A CNAME owner is answered with the CNAME only.

    Inputs:
      - None

    Outputs:
      - None
    """
    reply = _resolver().handle(DNSRecord.question("www.example.com", "A"))
    assert [rr.rtype for rr in reply.rr] == [QTYPE.CNAME]
    assert str(reply.rr[0].rdata) == "example.com."


def test_invalid_a_record_is_known_but_not_answered():
    """
    Brief: A name with only an invalid A record gets an empty NOERROR answer.

    Inputs:
      - None

    Outputs:
      - None: Asserts no forwarding and no NXDOMAIN
    """
    fwd = _FakeForwarder()
    resolver = _resolver(enabled=True, address="198.51.100.1", forwarder=fwd)
    reply = resolver.handle(DNSRecord.question("broken.example.com", "A"))
    assert reply.header.rcode == RCODE.NOERROR
    assert reply.rr == []
    assert fwd.calls == []


def test_unencodable_cname_target_gets_empty_noerror_answer():
    """
    Brief: A CNAME whose target cannot be encoded is left out, not raised.

    Inputs:
      - None

    Outputs:
      - None: Asserts NOERROR, empty answer, and the valid sibling still served
    """
    store = RecordStore.build(
        [
            RawRecordEntry(name="alias.test", type="CNAME", ttl=60, data="a..b"),
            RawRecordEntry(name="mixed.test", type="CNAME", ttl=60, data="x" * 64),
            RawRecordEntry(name="mixed.test", type="A", ttl=60, data="192.0.2.9"),
        ]
    )
    resolver = Resolver(store, ForwardingConfig(enabled=False))

    reply = resolver.handle(DNSRecord.question("alias.test", "A"))
    assert reply.header.rcode == RCODE.NOERROR
    assert reply.rr == []
    DNSRecord.parse(reply.pack())

    reply = resolver.handle(DNSRecord.question("mixed.test", "A"))
    assert [(rr.rtype, str(rr.rdata)) for rr in reply.rr] == [(QTYPE.A, "192.0.2.9")]


def test_reply_header_copies_only_id_opcode_rd_cd():
    """
    Brief: AD and other query-only bits are not echoed into the reply header.

    Inputs:
      - None

    Outputs:
      - None
    """
    req = DNSRecord.question("example.com", "A")
    req.header.ad = 1
    req.header.cd = 1
    req.header.rd = 0
    req.header.tc = 1
    req.header.opcode = 2
    req.header.rcode = RCODE.REFUSED

    reply = DNSRecord.parse(_resolver().handle(req).pack())
    assert reply.header.id == req.header.id
    assert reply.header.qr == 1
    assert reply.header.opcode == 2
    assert reply.header.rd == 0
    assert reply.header.cd == 1
    assert reply.header.ad == 0
    assert reply.header.tc == 0
    assert reply.header.aa == 1
    assert reply.header.rcode == RCODE.NOERROR


def test_reply_header_echoes_rd_and_sets_ra_when_forwarding():
    """
    Brief: RD is echoed and RA reflects whether forwarding is active.

    Inputs:
      - None

    Outputs:
      - None
    """
    req = DNSRecord.question("example.com", "A")
    assert req.header.rd == 1
    local = _resolver().handle(req)
    assert (local.header.rd, local.header.ra, local.header.cd) == (1, 0, 0)
    fwd = _resolver(enabled=True, address="198.51.100.1", forwarder=_FakeForwarder())
    assert fwd.handle(req).header.ra == 1


def test_unsupported_type_name_is_nxdomain():
    """
    Brief: A name whose only entry was an unsupported type is unknown.

    Inputs:
      - None

    Outputs:
      - None
    """
    reply = _resolver().handle(DNSRecord.question("mail.example.com", "MX"))
    assert reply.header.rcode == RCODE.NXDOMAIN


def test_nxdomain_when_forwarding_disabled_even_with_upstream():
    """
    Brief: enable_forwarding=false never forwards, whatever the address.

    Inputs:
      - None

    Outputs:
      - None
    """
    fwd = _FakeForwarder()
    resolver = _resolver(enabled=False, address="198.51.100.1", forwarder=fwd)
    req = DNSRecord.question("nosuch.example.com.", "A")
    reply = resolver.handle(req)
    assert reply.header.rcode == RCODE.NXDOMAIN
    assert reply.header.id == req.header.id
    assert reply.rr == []
    assert fwd.calls == []


@pytest.mark.parametrize("address", [None, "", "   "])
def test_nxdomain_when_no_upstream_address(address):
    """
    Brief: Forwarding enabled without an upstream address answers NXDOMAIN.

    Inputs:
      - address: empty-ish upstream address

    Outputs:
      - None
    """
    fwd = _FakeForwarder()
    resolver = _resolver(enabled=True, address=address, forwarder=fwd)
    outcome = resolver.resolve("nosuch.example.com", QTYPE.A, DNSRecord.question("x"))
    assert isinstance(outcome, NegativeAnswer)
    assert outcome.rcode == RCODE.NXDOMAIN
    assert fwd.calls == []


def test_forwarded_response_relayed_verbatim():
    """
    Brief: An unmatched query is answered with the upstream reply as is.

    Inputs:
      - None

    Outputs:
      - None: Asserts the original request was sent and the reply returned
    """
    fwd = _FakeForwarder(address="203.0.113.5")
    resolver = _resolver(enabled=True, address="198.51.100.1", forwarder=fwd)
    req = DNSRecord.question("nosuch.example.com", "A")
    reply = resolver.handle(req)

    assert len(fwd.calls) == 1 and fwd.calls[0] is req
    assert reply.header.id == req.header.id
    assert reply.header.aa == 0
    assert [str(rr.rdata) for rr in reply.rr] == ["203.0.113.5"]


def test_forwarded_nxdomain_rcode_is_preserved():
    """
    Brief: The upstream rcode is not rewritten on the way back.

    Inputs:
      - None

    Outputs:
      - None
    """

    class _NX(_FakeForwarder):
        def exchange(self, request):
            self.calls.append(request)
            resp = request.reply(aa=0)
            resp.header.rcode = RCODE.NXDOMAIN
            return resp

    resolver = _resolver(enabled=True, address="198.51.100.1", forwarder=_NX())
    reply = resolver.handle(DNSRecord.question("nosuch.example.com"))
    assert reply.header.rcode == RCODE.NXDOMAIN


def test_forward_failure_degrades_to_nxdomain(caplog):
    """
    Brief: A ForwardError is logged and answered with NXDOMAIN.

    Inputs:
      - caplog: pytest log capture

    Outputs:
      - None
    """
    caplog.set_level(logging.WARNING, logger="lantern.resolver")
    log = _RecordingLog()
    fwd = _FakeForwarder(fail=True)
    resolver = _resolver(enabled=True, address="198.51.100.1", forwarder=fwd, log=log)
    reply = resolver.handle(DNSRecord.question("nosuch.example.com"))

    assert reply.header.rcode == RCODE.NXDOMAIN
    assert len(fwd.calls) == 1
    assert [e.outcome for e in log.events] == [QueryOutcome.NXDOMAIN]
    assert any("Error forwarding" in r.getMessage() for r in caplog.records)


def test_local_name_never_forwarded():
    """
    Brief: Local answers win over forwarding.

    Inputs:
      - None

    Outputs:
      - None
    """
    fwd = _FakeForwarder()
    resolver = _resolver(enabled=True, address="198.51.100.1", forwarder=fwd)
    outcome = resolver.resolve("example.com", QTYPE.A, DNSRecord.question("example.com"))
    assert isinstance(outcome, Authoritative)
    assert fwd.calls == []


def test_query_log_events_use_original_name():
    """
    Brief: One event per question, tagged with the pre-normalization name.

    Inputs:
      - None

    Outputs:
      - None
    """
    log = _RecordingLog()
    fwd = _FakeForwarder()
    resolver = _resolver(enabled=True, address="198.51.100.1", forwarder=fwd, log=log)
    resolver.handle(DNSRecord.question("EXAMPLE.com", "A"))
    resolver.handle(DNSRecord.question("Other.Test", "A"))

    assert log.events == [
        QueryLogEvent("EXAMPLE.com.", QueryOutcome.AUTHORITATIVE),
        QueryLogEvent("Other.Test.", QueryOutcome.FORWARDED),
    ]

    log.events.clear()
    _resolver(log=log).handle(DNSRecord.question("gone.test"))
    assert log.events == [QueryLogEvent("gone.test.", QueryOutcome.NXDOMAIN)]


def _multi_question(*names):
    req = DNSRecord.question(names[0], "A")
    for name in names[1:]:
        req.add_question(DNSQuestion(name, QTYPE.A))
    return req


def test_multi_question_first_forward_ends_processing():
    """
    Brief: The first forwarded question returns the upstream reply at once.

    Inputs:
      - None

    Outputs:
      - None: Asserts later questions are never looked at
    """
    log = _RecordingLog()
    fwd = _FakeForwarder(address="203.0.113.9")
    resolver = _resolver(enabled=True, address="198.51.100.1", forwarder=fwd, log=log)
    req = _multi_question("example.com", "unknown.test", "www.example.com")
    reply = resolver.handle(req)

    assert len(fwd.calls) == 1
    assert [str(rr.rdata) for rr in reply.rr] == ["203.0.113.9"]
    assert [e.outcome for e in log.events] == [
        QueryOutcome.AUTHORITATIVE,
        QueryOutcome.FORWARDED,
    ]


def test_multi_question_nxdomain_sticks_with_local_answers():
    """
    Brief: NXDOMAIN for one question sets the rcode; local answers still added.

    Inputs:
      - None

    Outputs:
      - None
    """
    req = _multi_question("unknown.test", "example.com")
    reply = _resolver().handle(req)
    assert reply.header.rcode == RCODE.NXDOMAIN
    assert [str(rr.rdata) for rr in reply.rr] == ["192.0.2.1"]
    assert len(reply.questions) == 1


def test_message_without_questions_gets_empty_reply():
    """
    Brief: A query with no questions is answered with an empty NOERROR reply.

    Inputs:
      - None

    Outputs:
      - None
    """
    req = DNSRecord()
    reply = _resolver().handle(req)
    assert reply.header.rcode == RCODE.NOERROR
    assert reply.questions == []
    assert reply.rr == []


def test_handle_bytes_roundtrip():
    """
    Brief: handle_bytes parses, resolves and packs.

    Inputs:
      - None

    Outputs:
      - None
    """
    req = DNSRecord.question("example.com", "A")
    wire = _resolver().handle_bytes(req.pack())
    reply = DNSRecord.parse(wire)
    assert reply.header.id == req.header.id
    assert str(reply.rr[0].rdata) == "192.0.2.1"


def test_handle_bytes_propagates_parse_errors():
    """
    Brief: Garbage input raises DNSError for the listener to drop.

    Inputs:
      - None

    Outputs:
      - None
    """
    with pytest.raises(DNSError):
        _resolver().handle_bytes(b"\x01")


def test_resolver_builds_forwarder_from_config():
    """
    Brief: A Forwarder is constructed when forwarding is active and none given.

    Inputs:
      - None

    Outputs:
      - None
    """
    resolver = Resolver(
        _store(),
        ForwardingConfig(enabled=True, upstream_address="192.0.2.53", port=5353),
    )
    assert resolver.forwarder is not None
    assert resolver.forwarder.upstream_host == "192.0.2.53"
    assert resolver.forwarder.port == 5353
    assert Resolver(_store(), ForwardingConfig(enabled=False)).forwarder is None
