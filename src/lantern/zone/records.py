"""Typed resource records materialized from raw zone entries."""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass
from typing import Optional, Union

from dnslib import CLASS, CNAME, QTYPE, RR, A
from dnslib.label import DNSBuffer, DNSLabel, DNSLabelError

from .loader import RawRecordEntry

logger = logging.getLogger(__name__)


def normalize_name(name: str) -> str:
    """Brief: Canonical owner-name form used as the lookup key.

    Inputs:
      - name: Domain name, with or without the trailing dot, any case.

    Outputs:
      - str: Lowercased name that always ends with a single trailing dot.

    Example:
      normalize_name("Example.COM") -> "example.com."
      normalize_name("example.com.") -> "example.com."
    """
    name = str(name)
    if not name.endswith("."):
        name += "."
    return name.lower()


@dataclass(frozen=True)
class ARecord:
    """IPv4 address record.

    ``address`` is None when the zone data was not a valid IPv4 literal; the
    record is kept (so the name stays locally known) but is never packed into
    an answer.
    """

    owner: str
    ttl: int
    address: Optional[ipaddress.IPv4Address]
    raw_data: str = ""

    rtype = "A"

    @property
    def is_valid(self) -> bool:
        return self.address is not None

    def to_rr(self) -> RR:
        if self.address is None:
            raise ValueError(f"A record for {self.owner} has no valid address")
        return RR(
            self.owner,
            rtype=QTYPE.A,
            rclass=CLASS.IN,
            ttl=self.ttl,
            rdata=A(str(self.address)),
        )


@dataclass(frozen=True)
class CNAMERecord:
    """Alias record; the target is kept exactly as written.

    ``valid`` is False when the target cannot be encoded as a DNS name (empty
    label, label over 63 octets, name over 253 octets); such a record keeps
    the name locally known but is never packed into an answer.
    """

    owner: str
    ttl: int
    target: str
    valid: bool = True

    rtype = "CNAME"

    @property
    def is_valid(self) -> bool:
        return self.valid

    def to_rr(self) -> RR:
        if not self.valid:
            raise ValueError(f"CNAME record for {self.owner} has an unencodable target")
        return RR(
            self.owner,
            rtype=QTYPE.CNAME,
            rclass=CLASS.IN,
            ttl=self.ttl,
            rdata=CNAME(self.target),
        )


ResourceRecord = Union[ARecord, CNAMERecord]


def _parse_ipv4(text: str) -> Optional[ipaddress.IPv4Address]:
    try:
        return ipaddress.IPv4Address(str(text).strip())
    except ValueError:
        return None


def _encodable_name(name: str) -> bool:
    try:
        DNSBuffer().encode_name(DNSLabel(str(name)))
    except (UnicodeError, DNSLabelError):
        return False
    return True


def materialize(entry: RawRecordEntry) -> Optional[ResourceRecord]:
    """Brief: Turn a raw zone entry into a typed record.

    Inputs:
      - entry: RawRecordEntry from the loader.

    Outputs:
      - ARecord or CNAMERecord, or None when the type is not supported.

    Notes:
      - The owner is normalized with normalize_name(); type tags are matched
        case-insensitively.
      - An A record with unparsable data is returned with ``address=None``.
      - A CNAME whose target is not a wire-encodable name is returned with
        ``valid=False``; a well-formed target need not exist anywhere.
    """
    owner = normalize_name(entry.name)
    rtype = entry.type.strip().upper()

    if rtype == "A":
        address = _parse_ipv4(entry.data)
        if address is None:
            logger.warning(
                "A record %s has invalid IPv4 data %r; it will not be answered",
                entry.name,
                entry.data,
            )
        return ARecord(owner=owner, ttl=entry.ttl, address=address, raw_data=entry.data)
    if rtype == "CNAME":
        valid = _encodable_name(entry.data)
        if not valid:
            logger.warning(
                "CNAME record %s has unencodable target %r; it will not be answered",
                entry.name,
                entry.data,
            )
        return CNAMERecord(owner=owner, ttl=entry.ttl, target=entry.data, valid=valid)

    logger.warning("Unsupported record type %r for %s; skipping", entry.type, entry.name)
    return None
