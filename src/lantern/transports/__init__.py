"""Upstream transports."""
