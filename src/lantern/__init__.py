"""Lantern: an authoritative DNS server with optional upstream forwarding."""

__version__ = "0.1.0"
