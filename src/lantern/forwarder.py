"""Single-shot upstream forwarding for queries with no local answer."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from dnslib import DNSRecord
from dnslib.dns import DNSError

from .transports.udp import UDPError, udp_query

logger = logging.getLogger(__name__)

DEFAULT_PORT = 53
DEFAULT_TIMEOUT_MS = 2000


class ForwardError(Exception):
    """
    Brief: Upstream exchange failed (network, timeout, or bad reply).

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


@dataclass(frozen=True)
class ForwardingConfig:
    """Brief: Forwarding settings snapshot consumed by the resolver.

    Inputs:
      - enabled: Whether unmatched queries may be forwarded at all.
      - upstream_address: Upstream resolver host/IP; empty disables forwarding.
      - port: Upstream port.
      - timeout_ms: Deadline for one exchange.

    Outputs:
      - ForwardingConfig instance.
    """

    enabled: bool = True
    upstream_address: Optional[str] = None
    port: int = DEFAULT_PORT
    timeout_ms: int = DEFAULT_TIMEOUT_MS

    @property
    def active(self) -> bool:
        return bool(self.enabled and (self.upstream_address or "").strip())


class Forwarder:
    """Performs exactly one request/response exchange with an upstream.

    No retries, no secondary upstream, nothing is cached. Each call opens its
    own socket so concurrent handler threads never contend.

    Example use:
        >>> fwd = Forwarder("192.0.2.53", timeout_ms=500)
        >>> # resp = fwd.exchange(DNSRecord.question("example.com"))
    """

    def __init__(
        self,
        upstream_host: str,
        port: int = DEFAULT_PORT,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> None:
        self.upstream_host = str(upstream_host).strip()
        self.port = int(port)
        self.timeout_ms = max(1, int(timeout_ms))

    @classmethod
    def from_config(cls, cfg: ForwardingConfig) -> "Forwarder":
        return cls(cfg.upstream_address or "", port=cfg.port, timeout_ms=cfg.timeout_ms)

    def exchange(self, request: DNSRecord) -> DNSRecord:
        """Brief: Relay the client's query upstream and return the parsed reply.

        Inputs:
          - request: Original, unmodified query message.

        Outputs:
          - DNSRecord: Upstream response.

        Raises:
          - ForwardError: Transport failure, timeout, unparsable reply, or a
            reply whose ID does not match the query.
        """
        try:
            wire = udp_query(
                self.upstream_host,
                self.port,
                request.pack(),
                timeout_ms=self.timeout_ms,
            )
        except UDPError as exc:
            raise ForwardError(str(exc)) from exc

        try:
            response = DNSRecord.parse(wire)
        except (DNSError, ValueError, IndexError) as exc:
            raise ForwardError(
                f"malformed response from {self.upstream_host}:{self.port}: {exc}"
            ) from exc

        if response.header.id != request.header.id:
            raise ForwardError(
                f"response id {response.header.id} from {self.upstream_host}:"
                f"{self.port} does not match query id {request.header.id}"
            )
        return response

    def __repr__(self) -> str:
        return (
            f"Forwarder({self.upstream_host!r}, port={self.port}, "
            f"timeout_ms={self.timeout_ms})"
        )
