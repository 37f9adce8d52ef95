import logging
import socketserver
from typing import Optional

from dnslib import RCODE, DNSRecord
from dnslib.dns import DNSError

from ..resolver import Resolver

logger = logging.getLogger("lantern.server")


def _servfail_for(data: bytes) -> Optional[bytes]:
    """Build a SERVFAIL reply for a query the resolver could not handle.

    Inputs:
      - data: Raw query datagram.
    Outputs:
      - bytes: Packed SERVFAIL response carrying the request ID, or None when
        the datagram is not a parsable DNS message.
    """
    try:
        request = DNSRecord.parse(data)
    except DNSError:
        return None
    reply = request.reply(aa=0)
    reply.header.rcode = RCODE.SERVFAIL
    return reply.pack()


class DNSUDPHandler(socketserver.BaseRequestHandler):
    """
    Handles UDP DNS requests.
    This class is instantiated for each incoming DNS query, in its own thread.

    Example use:
        This handler is used internally by the DNSServer and is not
        typically instantiated directly by users.
    """

    resolver: Optional[Resolver] = None

    def handle(self):
        """
        Resolve the datagram and send the reply.

        Inputs:
          - None (uses self.request and self.client_address)
        Outputs:
          - None

        Unparsable datagrams are dropped without a reply; any other failure
        while resolving answers SERVFAIL.
        """
        data, sock = self.request
        client_ip = self.client_address[0]

        try:
            wire = self.resolver.handle_bytes(data)
        except Exception as e:
            wire = _servfail_for(data)
            if wire is None:
                logger.debug("Dropping unparsable query from %s: %s", client_ip, e)
                return
            logger.exception("Error resolving query from %s", client_ip)

        try:
            sock.sendto(wire, self.client_address)
        except OSError as e:  # pragma: no cover - client went away
            logger.debug("Failed to send response to %s: %s", client_ip, e)


class DNSServer:
    """A basic UDP DNS server wrapper.

    Example use:
        >>> import threading
        >>> server = DNSServer("127.0.0.1", 5355, resolver)
        >>> server_thread = threading.Thread(target=server.serve_forever, daemon=True)
        >>> server_thread.start()
        >>> server.stop()
    """

    def __init__(self, host: str, port: int, resolver: Resolver) -> None:
        """Initialize a UDP DNSServer.

        Inputs:
            host: The host to listen on.
            port: The port to listen on (0 picks a free port).
            resolver: Resolver shared by every handler thread.

        Raises:
            OSError: When the socket cannot be bound.
        """
        DNSUDPHandler.resolver = resolver
        try:
            self.server = socketserver.ThreadingUDPServer((host, port), DNSUDPHandler)
        except PermissionError as e:
            logger.error(
                "Permission denied when binding to %s:%d. Try a port >1024 or run with elevated privileges. Original error: %s",
                host,
                port,
                e,
            )
            raise

        # Ensure request handler threads do not block shutdown
        self.server.daemon_threads = True
        logger.debug("DNS UDP server bound to %s:%d", *self.server.server_address[:2])

    @property
    def address(self):
        return self.server.server_address

    def serve_forever(self) -> None:
        """Start the UDP server loop and listen for requests.

        Inputs:
          - None
        Outputs:
          - None; runs until shutdown is requested or KeyboardInterrupt occurs.
        """
        try:
            self.server.serve_forever()
        except KeyboardInterrupt:
            pass

    def stop(self) -> None:
        """Request graceful shutdown and close the underlying UDP socket.

        Inputs:
          - None
        Outputs:
          - None; best-effort shutdown suitable for use from signal handlers.
        """
        try:
            # First ask the ThreadingUDPServer loop to stop accepting requests.
            self.server.shutdown()
        except Exception:  # pragma: no cover - log-only path
            logger.exception("Error while shutting down UDP server")
        try:
            # Then close the socket so resources are released promptly.
            self.server.server_close()
        except Exception:  # pragma: no cover - log-only path
            logger.exception("Error while closing UDP server socket")
