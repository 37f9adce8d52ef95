import socket


class UDPError(Exception):
    """
    Brief: DNS-over-UDP transport error.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


def udp_query(
    host: str,
    port: int,
    query: bytes,
    *,
    timeout_ms: int = 2000,
) -> bytes:
    """
    Brief: Send one DNS query datagram and wait for a single reply.

    Inputs:
    - host: upstream resolver host/IP
    - port: upstream UDP port
    - query: wire-format DNS query bytes
    - timeout_ms: receive deadline in milliseconds

    Outputs:
    - bytes: wire-format DNS response

    Example:
        >>> try:
        ...     udp_query('127.0.0.1', 9, b'\x00\x01', timeout_ms=10)
        ... except UDPError:
        ...     pass
    """
    try:
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        with socket.socket(family, socket.SOCK_DGRAM) as s:
            s.settimeout(timeout_ms / 1000.0)
            s.sendto(query, (host, int(port)))
            data, _ = s.recvfrom(65535)
            return data
    except OSError as e:
        raise UDPError(f"UDP error talking to {host}:{port}: {e}") from e
