"""Per-query resolution: local zone, else upstream, else NXDOMAIN.

Brief:
  The Resolver is the only entry point the transport layer calls. For every
  question in an incoming message it:
    1. normalizes the query name (trailing dot, lowercase)
    2. answers from the RecordStore when the name is known locally
    3. otherwise forwards the original message upstream when forwarding is
       enabled and an upstream is configured
    4. otherwise answers NXDOMAIN

Notes:
  - Lookups ignore the requested type: every record owned by the name is
    returned (an AAAA query for a name with only A records gets the A
    records).
  - A forwarded answer ends processing of the message. Any later questions in
    the same message are not looked at, and the upstream reply is relayed as
    is (only the ID is pinned to the client's).
  - An NXDOMAIN for any question sets the message rcode; later local answers
    for other questions are still appended.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

from dnslib import QTYPE, RCODE, DNSHeader, DNSRecord

from .forwarder import ForwardError, Forwarder, ForwardingConfig
from .querylog import BaseQueryLog, NullQueryLog, QueryLogEvent, QueryOutcome
from .zone.records import ResourceRecord, normalize_name
from .zone.store import RecordStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Authoritative:
    records: Tuple[ResourceRecord, ...]


@dataclass(frozen=True)
class Forwarded:
    response: DNSRecord


@dataclass(frozen=True)
class NegativeAnswer:
    rcode: int = field(default=RCODE.NXDOMAIN)


ResolutionOutcome = Union[Authoritative, Forwarded, NegativeAnswer]


class Resolver:
    """Decides how each question is answered.

    Inputs (constructor):
        store: Immutable RecordStore built at startup.
        forwarding: ForwardingConfig snapshot.
        forwarder: Optional Forwarder; built from ``forwarding`` when omitted
            and forwarding is active.
        query_log: Optional sink for per-question events (NullQueryLog when
            omitted).

    Outputs:
        Resolver instance holding no per-query state; safe to call from many
        handler threads at once.

    Example use:
        >>> from lantern.zone import RawRecordEntry, RecordStore
        >>> store = RecordStore.build(
        ...     [RawRecordEntry(name="example.com", type="A", ttl=600, data="192.0.2.1")]
        ... )
        >>> resolver = Resolver(store, ForwardingConfig(enabled=False))
        >>> reply = resolver.handle(DNSRecord.question("example.com", "A"))
        >>> str(reply.rr[0].rdata)
        '192.0.2.1'
    """

    def __init__(
        self,
        store: RecordStore,
        forwarding: ForwardingConfig,
        forwarder: Optional[Forwarder] = None,
        query_log: Optional[BaseQueryLog] = None,
    ) -> None:
        self.store = store
        self.forwarding = forwarding
        if forwarder is None and forwarding.active:
            forwarder = Forwarder.from_config(forwarding)
        self.forwarder = forwarder
        self.query_log = query_log or NullQueryLog()

    def _emit(self, qname: str, outcome: QueryOutcome) -> None:
        try:
            self.query_log.record(QueryLogEvent(qname=qname, outcome=outcome))
        except Exception:  # pragma: no cover - sink failures never fail a query
            logger.exception("Query log sink failed for %s", qname)

    def resolve(
        self, query_name: str, query_type: int, request: DNSRecord
    ) -> ResolutionOutcome:
        """Brief: Resolve a single question.

        Inputs:
          - query_name: Name as sent by the client.
          - query_type: Requested RR type (not used to filter the answer).
          - request: The full original query message, forwarded unmodified.

        Outputs:
          - Authoritative, Forwarded, or NegativeAnswer.
        """
        qname = normalize_name(query_name)
        logger.debug(
            "Received query for %s %s", query_name, QTYPE.get(query_type, query_type)
        )

        records = self.store.lookup(qname)
        if records is not None:
            logger.debug("Found %d local records for %s", len(records), query_name)
            self._emit(query_name, QueryOutcome.AUTHORITATIVE)
            return Authoritative(records)

        logger.debug("No local records found for %s", query_name)
        if self.forwarding.active and self.forwarder is not None:
            try:
                response = self.forwarder.exchange(request)
            except ForwardError as exc:
                logger.warning("Error forwarding query for %s: %s", query_name, exc)
            else:
                self._emit(query_name, QueryOutcome.FORWARDED)
                return Forwarded(response)

        self._emit(query_name, QueryOutcome.NXDOMAIN)
        return NegativeAnswer()

    def _new_reply(self, request: DNSRecord) -> DNSRecord:
        # Only ID, OPCODE, RD and CD carry over from the query header; AD, TC
        # and the query's own RCODE bits start cleared.
        query = request.header
        header = DNSHeader(
            id=query.id,
            bitmap=0,
            qr=1,
            opcode=query.opcode,
            aa=0,
            rd=query.rd,
            ra=1 if self.forwarding.active else 0,
            cd=query.cd,
        )
        return DNSRecord(header, questions=list(request.questions[:1]))

    def handle(self, request: DNSRecord) -> DNSRecord:
        """Brief: Build the response message for an incoming query.

        Inputs:
          - request: Parsed query message.

        Outputs:
          - DNSRecord: Response to send back to the client.
        """
        reply = self._new_reply(request)

        for question in request.questions:
            outcome = self.resolve(str(question.qname), question.qtype, request)

            if isinstance(outcome, Forwarded):
                response = outcome.response
                response.header.id = request.header.id
                return response

            if isinstance(outcome, Authoritative):
                reply.header.aa = 1
                for record in outcome.records:
                    if not record.is_valid:
                        logger.warning(
                            "Leaving invalid %s record for %s out of the answer",
                            record.rtype,
                            record.owner,
                        )
                        continue
                    reply.add_answer(record.to_rr())
                continue

            reply.header.rcode = outcome.rcode

        return reply

    def handle_bytes(self, data: bytes) -> bytes:
        """Parse a wire-format query, resolve it, and return the packed reply.

        DNSError from an unparsable query propagates to the caller.
        """
        return self.handle(DNSRecord.parse(data)).pack()
