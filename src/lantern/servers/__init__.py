"""Listeners that feed queries to the resolver."""
